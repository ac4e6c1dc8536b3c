#!/usr/bin/env python

""" Tests for loading the input histograms.

.. codeauthor:: Raymond Ehlers <raymond.ehlers@cern.ch>, Yale University
"""

import logging
import pytest

from dijet_hadron.base import analysis_objects
from dijet_hadron.base import params
from dijet_hadron.analysis import input_files

# Setup logger
logger = logging.getLogger(__name__)

@pytest.fixture
def input_file(selector, make_hist_3d, make_event_counts):
    """ Create an input file containing the leading and subleading correlations. """
    def func(source = params.CorrelationSource.signal, include_subleading = True):
        f = {"nevents": make_event_counts(selector)}
        for i, key in enumerate(selector.raw_bins([0])):
            f[input_files.input_hist_name(source, params.JetType.leading, key)] = make_hist_3d(seed = i)
            if include_subleading:
                f[input_files.input_hist_name(source, params.JetType.subleading, key)] = make_hist_3d(seed = 1000 + i)
        return f
    return func

@pytest.mark.parametrize("source, jet_type, expected", [
    (params.CorrelationSource.signal, params.JetType.leading, "lead_aj_3_cent_1_vz_5"),
    (params.CorrelationSource.mixed, params.JetType.subleading, "mix_sub_aj_3_cent_1_vz_5"),
], ids = ["Signal leading", "Mixed subleading"])
def test_input_hist_name(logging_mixin, source, jet_type, expected):
    """ Test the names of the hists in the input files. """
    key = analysis_objects.RawBin(file = 0, centrality = 1, vz = 5, aj = 3)
    assert input_files.input_hist_name(source, jet_type, key) == expected

def test_load_signal(logging_mixin, selector, input_file):
    """ Test loading the signal from multiple files. """
    hists = input_files.load_signal([input_file(), input_file()], selector, label = "test")

    assert hists.source == params.CorrelationSource.signal
    assert hists.n_files == 2
    assert len(hists.leading) == 2 * len(list(selector.raw_bins([0])))
    assert all(h is not None for h in hists.subleading.values())

    key = analysis_objects.RawBin(file = 1, centrality = 1, vz = 2, aj = 3)
    h = hists.correlations(params.JetType.leading)[key]
    assert h.metadata["key"] == key
    assert h.name == "test_corr_file_1_lead_aj_3_cent_1_vz_2"
    assert hists.event_counts[1].entries > 0

def test_load_mixed(logging_mixin, selector, input_file):
    """ Test loading the mixed events, which are distinguished by their prefix. """
    hists = input_files.load_mixed([input_file(source = params.CorrelationSource.mixed)], selector, label = "test")

    assert hists.source == params.CorrelationSource.mixed
    key = analysis_objects.RawBin(file = 0, centrality = 0, vz = 0, aj = 0)
    assert hists.leading[key].name == "test_mix_file_0_mix_lead_aj_0_cent_0_vz_0"

def test_load_mixed_events_from_signal_file(logging_mixin, selector, input_file):
    """ Test that loading mixed events from a signal file fails. """
    with pytest.raises(input_files.LoadError) as exception_info:
        input_files.load_mixed([input_file(source = params.CorrelationSource.signal)], selector)
    assert exception_info.value.hist_name.startswith("mix_lead")

def test_missing_subleading(logging_mixin, selector, input_file, caplog):
    """ Test that missing subleading hists are recorded as empty slots. """
    hists = input_files.load_signal([input_file(include_subleading = False)], selector)

    assert len(hists.subleading) == len(hists.leading)
    assert all(h is None for h in hists.subleading.values())
    assert any("subleading" in record.message for record in caplog.records if record.levelno == logging.WARNING)

def test_missing_leading(logging_mixin, selector, input_file):
    """ Test that a missing leading hist aborts the load. """
    f = input_file()
    hist_name = input_files.input_hist_name(
        params.CorrelationSource.signal, params.JetType.leading,
        analysis_objects.RawBin(file = 0, centrality = 1, vz = 1, aj = 2),
    )
    del f[hist_name]
    with pytest.raises(input_files.LoadError) as exception_info:
        input_files.load_signal([f], selector)
    assert exception_info.value.hist_name == hist_name

def test_missing_event_counts(logging_mixin, selector, input_file):
    """ Test that the event counts are required. """
    f = input_file()
    del f["nevents"]
    with pytest.raises(input_files.LoadError):
        input_files.load_signal([f], selector)

def test_load_from_path(logging_mixin, selector, input_file, mocker):
    """ Test that paths are opened with uproot. """
    f = input_file()
    mock_open = mocker.patch("dijet_hadron.analysis.input_files.uproot.open")
    mock_open.return_value.__enter__.return_value = f

    hists = input_files.load_signal(["signal.root"], selector)

    mock_open.assert_called_once_with("signal.root")
    assert hists.n_files == 1
