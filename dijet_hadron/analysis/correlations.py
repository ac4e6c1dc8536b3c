#!/usr/bin/env python

""" Main dijet-hadron correlations analysis module.

It loads the raw correlations, corrects them for the pair acceptance using mixed events,
projects them into delta phi and delta eta, subtracts the background, and extracts the yields
and widths.

.. codeauthor:: Raymond Ehlers <raymond.ehlers@cern.ch>, Yale University
"""

import argparse
from dataclasses import dataclass, field
import IPython
import logging
import os
from typing import Any, Dict, Iterator, List, Optional, Tuple

import uproot

from pachyderm import histogram
from pachyderm import yaml

from dijet_hadron.base import analysis_manager
from dijet_hadron.base import analysis_objects
from dijet_hadron.base import histogram_nd
from dijet_hadron.base import params
from dijet_hadron.analysis import correlations_helpers
from dijet_hadron.analysis import extracted
from dijet_hadron.analysis import fit
from dijet_hadron.analysis import input_files
from dijet_hadron.analysis import mixed_events
from dijet_hadron.analysis import projections

logger = logging.getLogger(__name__)

Correlations2D = analysis_objects.Slots[analysis_objects.PtSlot, histogram_nd.Histogram2D]
Projections = analysis_objects.Slots[analysis_objects.PtSlot, histogram.Histogram1D]

@dataclass
class ExtractedValues:
    """ Values extracted from a set of 1D correlations.

    Attributes:
        fits: Fit objects.
        fit_values: Near side yields and widths from the fits.
        integrals: Yields from integrating the correlations.
    """
    fits: fit.Fits = field(default_factory = dict)
    fit_values: analysis_objects.Slots[analysis_objects.PtSlot, extracted.FitValues] = field(default_factory = dict)
    integrals: extracted.Observables = field(default_factory = dict)

@dataclass
class JetCorrelations:
    """ Correlations of a single trigger jet type at each stage of the analysis.

    Attributes:
        jet_type: Type of the trigger jet.
        correlations: 2D correlations for each (file, centrality, vz, pt bin).
        correlations_high: Unbalanced (high aj) 2D correlations.
        correlations_low: Balanced (low aj) 2D correlations.
        averaged: 2D correlations summed over centrality and vz.
        averaged_high: Unbalanced 2D correlations summed over centrality and vz.
        averaged_low: Balanced 2D correlations summed over centrality and vz.
        mixed_events: Normalized mixed events for each (file, centrality, vz, pt bin).
        recombined_mixed_events: Normalized mixed events for each (file, pt bucket).
        corrected: Acceptance corrected correlations, using the recombined mixed events.
        corrected_not_averaged: Acceptance corrected correlations, corrected before averaging.
        corrected_high: Acceptance corrected unbalanced correlations.
        corrected_low: Acceptance corrected balanced correlations.
        delta_phi_uncorrected: Delta phi projections without the acceptance correction.
        delta_phi_near_minus_far: Near-minus-far delta phi projections.
        delta_phi: Delta phi projections.
        delta_eta: Delta eta projections.
        delta_phi_high: Unbalanced delta phi projections.
        delta_phi_low: Balanced delta phi projections.
        delta_phi_aj_difference: Balanced minus unbalanced delta phi projections.
        extracted_values: Values extracted from each set of projections.
    """
    jet_type: params.JetType
    correlations: analysis_objects.Slots[analysis_objects.CentVzPtBin, histogram_nd.Histogram2D] = field(default_factory = dict)
    correlations_high: analysis_objects.Slots[analysis_objects.CentVzPtBin, histogram_nd.Histogram2D] = field(default_factory = dict)
    correlations_low: analysis_objects.Slots[analysis_objects.CentVzPtBin, histogram_nd.Histogram2D] = field(default_factory = dict)
    averaged: Correlations2D = field(default_factory = dict)
    averaged_high: Correlations2D = field(default_factory = dict)
    averaged_low: Correlations2D = field(default_factory = dict)
    mixed_events: analysis_objects.Slots[analysis_objects.CentVzPtBin, histogram_nd.Histogram2D] = field(default_factory = dict)
    recombined_mixed_events: Correlations2D = field(default_factory = dict)
    corrected: Correlations2D = field(default_factory = dict)
    corrected_not_averaged: Correlations2D = field(default_factory = dict)
    corrected_high: Correlations2D = field(default_factory = dict)
    corrected_low: Correlations2D = field(default_factory = dict)
    delta_phi_uncorrected: Projections = field(default_factory = dict)
    delta_phi_near_minus_far: Projections = field(default_factory = dict)
    delta_phi: Projections = field(default_factory = dict)
    delta_eta: Projections = field(default_factory = dict)
    delta_phi_high: Projections = field(default_factory = dict)
    delta_phi_low: Projections = field(default_factory = dict)
    delta_phi_aj_difference: Projections = field(default_factory = dict)
    extracted_values: Dict[str, ExtractedValues] = field(default_factory = dict)

    def hists_2d(self) -> Iterator[Tuple[str, Correlations2D]]:
        """ Iterate over the corrected 2D correlations which are written to file. """
        yield "corrected", self.corrected
        yield "corrected_not_averaged", self.corrected_not_averaged
        yield "corrected_high", self.corrected_high
        yield "corrected_low", self.corrected_low

    def hists_1d(self) -> Iterator[Tuple[str, Projections]]:
        """ Iterate over the 1D correlations which are written to file. """
        yield "delta_phi_uncorrected", self.delta_phi_uncorrected
        yield "delta_phi_near_minus_far", self.delta_phi_near_minus_far
        yield "delta_phi", self.delta_phi
        yield "delta_eta", self.delta_eta
        yield "delta_phi_aj_difference", self.delta_phi_aj_difference

class CorrelationsManager(analysis_manager.Manager):
    """ Manages the dijet-hadron correlations analysis.

    Args:
        config_filename: Path to the configuration filename.
        terminal_args: Parsed command line arguments, which override the configuration. Default: None.

    Attributes:
        analyses: Input files for each analysis. The position determines the file index.
        labels: Label of each analysis, indexed by file index.
        signal: Signal input histograms.
        mixed: Mixed event input histograms.
        pt_centers: Mean pt of each (file, pt bin).
        pt_spectra: Pt spectrum of each file.
        jet_correlations: Correlations for each trigger jet type which is available.
        graphs: Yields as a function of pt, for each jet type and extraction method.
    """
    def __init__(self, config_filename: str, terminal_args: Optional[argparse.Namespace] = None, **kwargs: Any):
        super().__init__(
            config_filename = config_filename, manager_task_name = "CorrelationsManager",
            terminal_args = terminal_args, **kwargs,
        )
        self.analyses = self.settings.analyses
        self.labels = [analysis.label for analysis in self.analyses]
        self.aj_split_bin = self.settings.aj_split_bin
        self.output_filename = self.task_config.get("outputFilename", "dijet_hadron_correlations.root")
        self.yaml_output_filename = self.task_config.get("yamlOutputFilename", "dijet_hadron_yields.yaml")
        self.mixing_granularity = params.MixingGranularity[
            self.processing_options.get("mixingGranularity", params.MixingGranularity.per_cent_vz_pt.name)
        ]

        self.signal: input_files.InputHistograms
        self.mixed: input_files.InputHistograms
        self.pt_centers: analysis_objects.Slots[analysis_objects.PtSlot, float] = {}
        self.pt_spectra: Dict[int, Optional[histogram.Histogram1D]] = {}
        self.jet_correlations: Dict[params.JetType, JetCorrelations] = {}
        self.graphs: Dict[str, Dict[int, extracted.YieldGraph]] = {}

    @property
    def label(self) -> str:
        """ Label which prefixes all output names. """
        return "_".join(self.labels)

    def load(self) -> None:
        """ Load the signal and mixed event inputs. """
        self.signal = input_files.load_signal(
            files = [analysis.signal_filename for analysis in self.analyses],
            selector = self.selector, label = self.label,
        )
        self.mixed = input_files.load_mixed(
            files = [analysis.mixed_filename for analysis in self.analyses],
            selector = self.selector, label = self.label,
        )

    def _available_jet_types(self) -> List[params.JetType]:
        """ Determine which jet types are available in both the signal and mixed events. """
        jet_types = [params.JetType.leading]
        subleading_signal = any(h is not None for h in self.signal.subleading.values())
        subleading_mixed = any(h is not None for h in self.mixed.subleading.values())
        if subleading_signal and subleading_mixed:
            jet_types.append(params.JetType.subleading)
        else:
            logger.warning("Subleading jet correlations are not available. Only processing leading jets.")
        return jet_types

    def _build_correlations(self, jet: JetCorrelations) -> None:
        """ Reduce the raw correlations into 2D correlations and correct them for the acceptance. """
        signal = self.signal.correlations(jet.jet_type)
        mixed = self.mixed.correlations(jet.jet_type)

        jet.correlations = correlations_helpers.build_single_correlation(
            signal, self.selector, label = self.label, jet_type = jet.jet_type,
        )
        jet.correlations_high, jet.correlations_low = correlations_helpers.build_aj_split_correlation(
            signal, self.selector, split_bin = self.aj_split_bin, label = self.label, jet_type = jet.jet_type,
        )
        jet.averaged = correlations_helpers.average_correlations(jet.correlations, self.selector)
        jet.averaged_high = correlations_helpers.average_correlations(jet.correlations_high, self.selector)
        jet.averaged_low = correlations_helpers.average_correlations(jet.correlations_low, self.selector)

        # Mixed events
        jet.recombined_mixed_events = mixed_events.recombine_mixed_events(
            mixed, self.selector, label = self.label, jet_type = jet.jet_type,
        )
        mixed_events.scale_mixed_events(jet.recombined_mixed_events)
        if self.mixing_granularity == params.MixingGranularity.per_cent_pt:
            not_averaged_mixed_events = mixed_events.partial_recombine_mixed_events(
                mixed, self.selector, label = self.label, jet_type = jet.jet_type,
            )
        else:
            not_averaged_mixed_events = mixed_events.build_mixed_events(
                mixed, self.selector, label = self.label, jet_type = jet.jet_type,
            )
        mixed_events.scale_mixed_events(not_averaged_mixed_events)
        jet.mixed_events = not_averaged_mixed_events  # type: ignore

        # Acceptance correction
        jet.corrected = mixed_events.event_mixing_correction(
            jet.averaged, jet.recombined_mixed_events, self.selector, params.MixingGranularity.per_pt,
        )
        jet.corrected_not_averaged = mixed_events.event_mixing_correction(
            jet.correlations, not_averaged_mixed_events, self.selector, self.mixing_granularity,
        )
        jet.corrected_high = mixed_events.event_mixing_correction(
            jet.correlations_high, not_averaged_mixed_events, self.selector, self.mixing_granularity,
        )
        jet.corrected_low = mixed_events.event_mixing_correction(
            jet.correlations_low, not_averaged_mixed_events, self.selector, self.mixing_granularity,
        )

    def _extract_delta_phi(self, hists: Projections, restricted: bool = False) -> ExtractedValues:
        fits = fit.fit_delta_phi_restricted(hists, self.selector) if restricted else fit.fit_delta_phi(hists, self.selector)
        return ExtractedValues(
            fits = fits,
            fit_values = extracted.extract_fit_values(fits),
            integrals = extracted.extract_integral_delta_phi(hists, self.selector),
        )

    def _project_and_fit(self, jet: JetCorrelations) -> None:
        """ Project the 2D correlations, subtract the background, and extract the yields and widths. """
        event_counts = self.signal.event_counts

        # Uncorrected delta phi
        jet.delta_phi_uncorrected = projections.project_delta_phi(jet.averaged, self.selector)
        fit.subtract_background_delta_phi(jet.delta_phi_uncorrected, self.selector)
        projections.normalize_1d(jet.delta_phi_uncorrected, event_counts)
        jet.extracted_values["delta_phi_uncorrected"] = self._extract_delta_phi(jet.delta_phi_uncorrected)

        # Corrected near-minus-far delta phi
        jet.delta_phi_near_minus_far = projections.project_delta_phi_near_minus_far(jet.corrected, self.selector)
        fit.subtract_background_delta_phi(jet.delta_phi_near_minus_far, self.selector)
        projections.normalize_1d(jet.delta_phi_near_minus_far, event_counts)
        jet.extracted_values["delta_phi_near_minus_far"] = self._extract_delta_phi(
            jet.delta_phi_near_minus_far, restricted = True,
        )

        # Corrected delta phi
        jet.delta_phi = projections.project_delta_phi(jet.corrected, self.selector)
        fit.subtract_background_delta_phi(jet.delta_phi, self.selector)
        projections.normalize_1d(jet.delta_phi, event_counts)
        jet.extracted_values["delta_phi"] = self._extract_delta_phi(jet.delta_phi)

        # Corrected delta eta
        jet.delta_eta = projections.project_delta_eta(jet.corrected, self.selector)
        fit.subtract_background_delta_eta(jet.delta_eta, self.selector)
        projections.normalize_1d(jet.delta_eta, event_counts)
        fits = fit.fit_delta_eta(jet.delta_eta, self.selector)
        jet.extracted_values["delta_eta"] = ExtractedValues(
            fits = fits,
            fit_values = extracted.extract_fit_values(fits),
            integrals = extracted.extract_integral_delta_eta(jet.delta_eta, self.selector),
        )

        # Aj split. The balanced and unbalanced selections aren't acceptance corrected, and they are
        # normalized by their own number of events.
        high_range = params.IndexRange(max(self.aj_split_bin, self.selector.aj.min), self.selector.aj.max)
        low_range = params.IndexRange(self.selector.aj.min, min(self.aj_split_bin - 1, self.selector.aj.max))
        jet.delta_phi_high = projections.project_delta_phi(jet.averaged_high, self.selector)
        jet.delta_phi_low = projections.project_delta_phi(jet.averaged_low, self.selector)
        for hists, aj_range in [(jet.delta_phi_high, high_range), (jet.delta_phi_low, low_range)]:
            if aj_range.max < aj_range.min:
                logger.warning(f"Aj range {aj_range} is empty. Cannot normalize the aj split correlations.")
                continue
            projections.normalize_1d_aj_split(hists, event_counts, aj_range, self.selector)
            fit.subtract_background_delta_phi(hists, self.selector)
        jet.delta_phi_aj_difference = projections.subtract_1d(jet.delta_phi_low, jet.delta_phi_high)

    def _build_graphs(self, jet: JetCorrelations) -> None:
        """ Create the yields and widths as a function of pt.

        The yields are divided by the pt bin width, so the errors are scaled in the same manner.
        """
        pt_range = params.IndexRange(0, self.selector.n_pt_bins - 1)
        for name, values in jet.extracted_values.items():
            prefix = f"{self.label}_{jet.jet_type.value}_{name}"
            fit_yields = {k: v.yield_value if v else None for k, v in values.fit_values.items()}
            fit_yield_errors = {k: v.yield_error if v else None for k, v in values.fit_values.items()}
            widths = {k: v.width if v else None for k, v in values.fit_values.items()}
            width_errors = {k: v.width_error if v else None for k, v in values.fit_values.items()}
            integrals = {k: v.value if v else None for k, v in values.integrals.items()}
            integral_errors = {k: v.error if v else None for k, v in values.integrals.items()}
            self.graphs[f"{prefix}_fit_yields"] = extracted.make_graphs(
                self.pt_centers, fit_yields, extracted.scale_errors(fit_yield_errors, self.selector),
                pt_range, self.selector, name = f"{prefix}_fit_yields",
            )
            self.graphs[f"{prefix}_integral_yields"] = extracted.make_graphs(
                self.pt_centers, integrals, extracted.scale_errors(integral_errors, self.selector),
                pt_range, self.selector, name = f"{prefix}_integral_yields",
            )
            # The widths are not differential in pt, so undo the division by the pt bin width.
            scaled_widths = {
                k: v * self.selector.pt_bin_width(k.pt) if v is not None else None for k, v in widths.items()
            }
            self.graphs[f"{prefix}_widths"] = extracted.make_graphs(
                self.pt_centers, scaled_widths, width_errors, pt_range, self.selector, name = f"{prefix}_widths",
            )
            # Systematic uncertainty from the tracking efficiency.
            self.graphs[f"{prefix}_fit_yields_tracking_sys"] = extracted.make_graphs(
                self.pt_centers, fit_yields, extracted.build_yield_error_values(fit_yields, self.selector),
                pt_range, self.selector, name = f"{prefix}_fit_yields_tracking_sys",
            )

    def write_to_root_file(self) -> None:
        """ Write the corrected 2D correlations and the 1D projections to a ROOT file. """
        filename = os.path.join(self.output_info.output_prefix, self.output_filename)
        logger.info(f"Writing histograms to {filename}")
        with uproot.recreate(filename) as f:
            for jet in self.jet_correlations.values():
                for _, hists_2d in jet.hists_2d():
                    for _, h_2d in analysis_objects.filled_slots(hists_2d):
                        f[h_2d.name] = (h_2d.values, h_2d.x_bin_edges, h_2d.y_bin_edges)
                for _, hists_1d in jet.hists_1d():
                    for _, h_1d in analysis_objects.filled_slots(hists_1d):
                        f[h_1d.metadata["name"]] = (h_1d.y, h_1d.bin_edges)

    def write_to_yaml(self) -> None:
        """ Write the 1D correlations and the extracted values to YAML. """
        filename = os.path.join(self.output_info.output_prefix, self.yaml_output_filename)
        logger.info(f"Writing extracted values to {filename}")
        y = yaml.yaml(modules_to_register = [histogram])

        output: Dict[str, Any] = {}
        for jet in self.jet_correlations.values():
            for _, hists_1d in jet.hists_1d():
                for _, h in analysis_objects.filled_slots(hists_1d):
                    # Only store the name to keep the output simple.
                    output[h.metadata["name"]] = histogram.Histogram1D(
                        bin_edges = h.bin_edges, y = h.y, errors_squared = h.errors_squared,
                        metadata = {"name": h.metadata["name"]},
                    )
            for name, values in jet.extracted_values.items():
                prefix = f"{self.label}_{jet.jet_type.value}_{name}"
                for key, fit_values in analysis_objects.filled_slots(values.fit_values):
                    output[f"{prefix}_fit_{key}"] = {
                        "yield": fit_values.yield_value, "yield_error": fit_values.yield_error,
                        "width": fit_values.width, "width_error": fit_values.width_error,
                    }
                for key, integral in analysis_objects.filled_slots(values.integrals):
                    output[f"{prefix}_integral_{key}"] = {"yield": integral.value, "yield_error": integral.error}
        for graphs in self.graphs.values():
            for graph in graphs.values():
                output[graph.name] = {
                    "x": graph.x.tolist(), "y": graph.y.tolist(),
                    "x_errors": graph.x_errors.tolist(), "y_errors": graph.y_errors.tolist(),
                }

        with open(filename, "w") as f:
            y.dump(output, f)

    def run(self) -> bool:
        """ Run the analysis. """
        steps = ["load", "pt centers", "correlations", "projections", "graphs", "write"]
        with self._progress_manager.counter(total = len(steps), desc = "Analyzing:", unit = "steps") as progress:
            self.load()
            progress.update()

            self.pt_centers, self.pt_spectra = correlations_helpers.find_pt_centers(
                self.signal.leading, self.selector, n_files = self.signal.n_files,
            )
            progress.update()

            jet_types = self._available_jet_types()
            for jet_type in jet_types:
                jet = JetCorrelations(jet_type = jet_type)
                self._build_correlations(jet)
                self.jet_correlations[jet_type] = jet
            progress.update()

            for jet in self.jet_correlations.values():
                self._project_and_fit(jet)
            progress.update()

            for jet in self.jet_correlations.values():
                self._build_graphs(jet)
            progress.update()

            os.makedirs(self.output_info.output_prefix, exist_ok = True)
            self.write_to_root_file()
            self.write_to_yaml()
            progress.update()

        return True

def run_from_terminal() -> CorrelationsManager:
    """ Driver function for running the correlations analysis. """
    # Basic setup
    # Quiet down pachyderm
    logging.getLogger("pachyderm").setLevel(logging.INFO)

    # Setup and run the analysis
    manager: CorrelationsManager = analysis_manager.run_helper(
        manager_class = CorrelationsManager, task_name = "Correlations",
    )

    # Quiet down IPython.
    logging.getLogger("parso").setLevel(logging.INFO)
    # Embed IPython to allow for some additional exploration
    IPython.embed()

    # Return the manager for convenience.
    return manager

if __name__ == "__main__":
    run_from_terminal()
