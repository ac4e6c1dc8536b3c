#!/usr/bin/env python

""" Tests for the correlations analysis manager.

.. codeauthor:: Raymond Ehlers <raymond.ehlers@cern.ch>, Yale University
"""

import contextlib
import logging
import os
import pytest

from pachyderm import histogram
from pachyderm import yaml

from dijet_hadron.base import analysis_objects
from dijet_hadron.base import params
from dijet_hadron.analysis import correlations
from dijet_hadron.analysis import input_files

# Setup logger
logger = logging.getLogger(__name__)

TEST_CONFIG = """
outputPrefix: "{output_prefix}"
binning:
    centrality: [0, 1]
    vz: [0, 2]
    aj: [0, 3]
    pt_bins: [0.5, 1.0, 2.0, 3.0, 4.0, 6.0]
CorrelationsManager:
    ajSplitBin: 2
    outputFilename: "correlations.root"
    yamlOutputFilename: "yields.yaml"
    processing_options:
        mixingGranularity: "{granularity}"
    analyses:
        - label: "test"
          signal: "signal.root"
          mixed: "mixed.root"
"""

@pytest.fixture
def setup_manager(tmp_path, selector, make_hist_3d, make_event_counts, mocker):
    """ Setup the correlations manager with mocked input files and fits. """
    def func(granularity = params.MixingGranularity.per_cent_vz_pt, include_subleading = True):
        files = {}
        for filename, source in [("signal.root", params.CorrelationSource.signal), ("mixed.root", params.CorrelationSource.mixed)]:
            f = {"nevents": make_event_counts(selector)}
            for i, key in enumerate(selector.raw_bins([0])):
                f[input_files.input_hist_name(source, params.JetType.leading, key)] = make_hist_3d(seed = i)
                if include_subleading:
                    f[input_files.input_hist_name(source, params.JetType.subleading, key)] = make_hist_3d(seed = 500 + i)
            files[filename] = f
        mocker.patch(
            "dijet_hadron.analysis.input_files.uproot.open",
            side_effect = lambda filename: contextlib.nullcontext(files[filename]),
        )
        # The fits are tested separately, so we skip them here.
        mocker.patch(
            "dijet_hadron.analysis.fit._perform_fits",
            side_effect = lambda hists, **kwargs: {k: None for k in hists},
        )

        output_prefix = tmp_path / "output"
        config_filename = tmp_path / "config.yaml"
        config_filename.write_text(TEST_CONFIG.format(output_prefix = str(output_prefix), granularity = granularity.name))
        manager = correlations.CorrelationsManager(config_filename = str(config_filename))
        return manager, output_prefix
    return func

def test_manager_settings(logging_mixin, setup_manager):
    """ Test the manager settings from the configuration. """
    manager, output_prefix = setup_manager(granularity = params.MixingGranularity.per_cent_pt)

    assert manager.label == "test"
    assert manager.aj_split_bin == 2
    assert manager.mixing_granularity == params.MixingGranularity.per_cent_pt
    assert manager.output_filename == "correlations.root"
    assert manager.output_info.output_prefix == str(output_prefix)

@pytest.mark.parametrize("granularity", [
    params.MixingGranularity.per_cent_vz_pt,
    params.MixingGranularity.per_cent_pt,
], ids = ["Mixed events per centrality, vz, pt", "Mixed events per centrality, pt"])
def test_run(logging_mixin, setup_manager, granularity):
    """ Test running the full analysis. """
    manager, output_prefix = setup_manager(granularity = granularity)

    assert manager._run() is True

    assert set(manager.jet_correlations) == {params.JetType.leading, params.JetType.subleading}
    jet = manager.jet_correlations[params.JetType.leading]
    slot = analysis_objects.PtSlot(file = 0, pt = 0)
    assert jet.corrected[slot] is not None
    assert jet.corrected_not_averaged[slot] is not None
    assert jet.delta_phi[slot] is not None
    assert jet.delta_eta[slot] is not None
    assert jet.delta_phi_aj_difference[slot] is not None
    # The aj split projections are from the averaged correlations without the acceptance correction.
    assert jet.delta_phi_high[slot].metadata["stage"] == "averaged"
    assert jet.delta_phi_high[slot].metadata["name"] == "test_lead_high_avg_file_0_pt_0_dphi"
    assert jet.delta_phi_low[slot].metadata["name"] == "test_lead_low_avg_file_0_pt_0_dphi"
    assert set(jet.extracted_values) == {"delta_phi_uncorrected", "delta_phi_near_minus_far", "delta_phi", "delta_eta"}
    assert jet.extracted_values["delta_phi"].integrals[slot] is not None
    assert "test_lead_delta_phi_integral_yields" in manager.graphs
    assert len(manager.graphs["test_lead_delta_phi_integral_yields"][0]) == manager.selector.n_pt_bins

    assert os.path.exists(output_prefix / "correlations.root")
    y = yaml.yaml(modules_to_register = [histogram])
    with open(output_prefix / "yields.yaml", "r") as f:
        output = y.load(f)
    assert "test_lead_delta_phi_integral_yields_graph_file_0" in output

def test_run_without_subleading(logging_mixin, setup_manager, caplog):
    """ Test that only the leading jets are processed if the subleading jets aren't available. """
    manager, _ = setup_manager(include_subleading = False)

    manager._run()

    assert list(manager.jet_correlations) == [params.JetType.leading]
    assert any("Subleading" in record.message for record in caplog.records if record.levelno == logging.WARNING)
