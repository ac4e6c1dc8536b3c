#!/usr/bin/env python

""" Mixed event handling and the acceptance correction.

The mixed events describe the pair acceptance. They are normalized such that the maximum of the
delta eta acceptance is 1, and then the signal is divided by the mixed events.

.. codeauthor:: Raymond Ehlers <raymond.ehlers@cern.ch>, Yale University
"""

import logging
import numpy as np
from typing import Dict, Hashable, Mapping, Optional, Union

from dijet_hadron.base import analysis_objects
from dijet_hadron.base import binning
from dijet_hadron.base import histogram_nd
from dijet_hadron.base import params

from dijet_hadron.analysis import correlations_helpers

logger = logging.getLogger(__name__)

MixedEvents = Mapping[Hashable, Optional[histogram_nd.Histogram2D]]
SignalKey = Union[analysis_objects.CentVzPtBin, analysis_objects.PtSlot]

def build_mixed_events(correlations: correlations_helpers.RawCorrelations, selector: binning.BinSelector,
                       label: str = "", jet_type: params.JetType = params.JetType.leading) -> analysis_objects.Slots[analysis_objects.CentVzPtBin, histogram_nd.Histogram2D]:
    """ Build the mixed events for each (file, centrality, vz, pt bin), summing only over aj.

    These retain the full differential binning, so they are used for the non-averaged correction.

    Args:
        correlations: Raw mixed event correlations.
        selector: Binning of the analysis.
        label: Label of the analysis. Default: "".
        jet_type: Jet type of the correlations. Default: leading.
    Returns:
        2D mixed events. Slots are None if there were no inputs.
    """
    return correlations_helpers.build_single_correlation(
        correlations = correlations, selector = selector, label = f"{label}_mix", jet_type = jet_type,
    )

def _recombine(correlations: correlations_helpers.RawCorrelations, selector: binning.BinSelector,
               keep_centrality: bool, label: str, jet_type: params.JetType) -> Dict[Hashable, Optional[histogram_nd.Histogram2D]]:
    """ Sum the mixed events into the pooled pt buckets.

    Args:
        correlations: Raw mixed event correlations.
        selector: Binning of the analysis.
        keep_centrality: If True, the output remains differential in centrality.
        label: Label of the analysis.
        jet_type: Jet type of the correlations.
    Returns:
        2D mixed events for each pt bucket.
    """
    file_indices = sorted({k.file for k in correlations})
    output: Dict[Hashable, Optional[histogram_nd.Histogram2D]] = {}
    for file_index in file_indices:
        for bucket in range(selector.n_mixing_buckets):
            if keep_centrality:
                for centrality in selector.centrality:
                    output[analysis_objects.CentPtBin(file = file_index, centrality = centrality, pt = bucket)] = None
            else:
                output[analysis_objects.PtSlot(file = file_index, pt = bucket)] = None

    for key, hist in correlations.items():
        if hist is None:
            continue
        for pt_bin in selector.pt_bins:
            bucket = selector.mixing_bucket(pt_bin.bin)
            output_key: Hashable
            if keep_centrality:
                output_key = analysis_objects.CentPtBin(file = key.file, centrality = key.centrality, pt = bucket)
            else:
                output_key = analysis_objects.PtSlot(file = key.file, pt = bucket)
            min_bin, max_bin = correlations_helpers.pt_bin_range(hist, pt_bin)
            correlations_helpers.accumulate(
                output, output_key, hist.project_xy(min_bin, max_bin),
                name = f"{label}_mix_{jet_type.value}_avg_{output_key}",
                label = label, jet_type = jet_type, stage = "mixed",
            )

    return output

def recombine_mixed_events(correlations: correlations_helpers.RawCorrelations, selector: binning.BinSelector,
                           label: str = "", jet_type: params.JetType = params.JetType.leading) -> analysis_objects.Slots[analysis_objects.PtSlot, histogram_nd.Histogram2D]:
    """ Sum the mixed events over the full (centrality, vz, aj) grid into pooled pt buckets.

    Pt bins below the pooling threshold each get their own bucket, while all of the remaining pt bins
    are pooled together in the last bucket to improve the statistics at high pt.

    Args:
        correlations: Raw mixed event correlations.
        selector: Binning of the analysis.
        label: Label of the analysis. Default: "".
        jet_type: Jet type of the correlations. Default: leading.
    Returns:
        2D mixed events for each (file, pt bucket).
    """
    return _recombine(correlations, selector, keep_centrality = False, label = label, jet_type = jet_type)  # type: ignore

def partial_recombine_mixed_events(correlations: correlations_helpers.RawCorrelations, selector: binning.BinSelector,
                                   label: str = "", jet_type: params.JetType = params.JetType.leading) -> analysis_objects.Slots[analysis_objects.CentPtBin, histogram_nd.Histogram2D]:
    """ Sum the mixed events over the (vz, aj) grid into pooled pt buckets, keeping the centrality.

    Args:
        correlations: Raw mixed event correlations.
        selector: Binning of the analysis.
        label: Label of the analysis. Default: "".
        jet_type: Jet type of the correlations. Default: leading.
    Returns:
        2D mixed events for each (file, centrality, pt bucket).
    """
    return _recombine(correlations, selector, keep_centrality = True, label = label, jet_type = jet_type)  # type: ignore

def scale_mixed_events(mixed_events: MixedEvents) -> None:
    """ Normalize the mixed events such that the maximum of the delta eta acceptance is 1.

    The delta eta acceptance is the projection onto delta eta divided by the number of delta phi bins.
    Normalizing an already normalized hist doesn't change it. Empty hists are left untouched.

    Args:
        mixed_events: Mixed events to be normalized.
    Returns:
        None. The hists are scaled in place.
    """
    for key, hist in mixed_events.items():
        if hist is None:
            continue
        if hist.entries == 0:
            logger.debug(f"Mixed event {hist.name} is empty. Not scaling it.")
            continue
        acceptance = hist.project_x()
        n_phi_bins = len(hist.y_bin_edges) - 1
        maximum = np.max(acceptance.y) / n_phi_bins
        if maximum <= 0:
            logger.warning(f"Mixed event {hist.name} has non-positive maximum {maximum}. Not scaling it.")
            continue
        logger.debug(f"Scaling mixed event {hist.name} by 1 / {maximum}")
        hist.scale(1.0 / maximum)

def _select_mixed_event(mixed_events: MixedEvents, key: SignalKey,
                        selector: binning.BinSelector,
                        granularity: params.MixingGranularity) -> Optional[histogram_nd.Histogram2D]:
    """ Select the mixed event which should be used to correct the signal with the given key.

    For the pooled granularities, the mixed event of the corresponding pt bucket is used if it is
    available. Otherwise, it falls back to the pooled (last) bucket.

    Args:
        mixed_events: Available mixed events.
        key: Key of the signal correlation.
        selector: Binning of the analysis.
        granularity: Granularity of the mixed events.
    Returns:
        The mixed event, or None if there isn't a usable mixed event.
    """
    def lookup(pt: int) -> Optional[histogram_nd.Histogram2D]:
        mixed_key: Hashable
        if granularity == params.MixingGranularity.per_cent_vz_pt:
            mixed_key = analysis_objects.CentVzPtBin(file = key.file, centrality = key.centrality, vz = key.vz, pt = pt)  # type: ignore
        elif granularity == params.MixingGranularity.per_cent_pt:
            mixed_key = analysis_objects.CentPtBin(file = key.file, centrality = key.centrality, pt = pt)  # type: ignore
        else:
            mixed_key = analysis_objects.PtSlot(file = key.file, pt = pt)
        hist = mixed_events.get(mixed_key)
        if hist is None or hist.entries == 0:
            return None
        return hist

    if not granularity.pooled:
        return lookup(key.pt)

    pooled_bucket = selector.n_mixing_buckets - 1
    if key.pt <= selector.mixing_pooling_threshold:
        hist = lookup(selector.mixing_bucket(key.pt))
        if hist is not None:
            return hist
    return lookup(pooled_bucket)

def event_mixing_correction(signal: Mapping[SignalKey, Optional[histogram_nd.Histogram2D]],
                            mixed_events: MixedEvents, selector: binning.BinSelector,
                            granularity: params.MixingGranularity) -> analysis_objects.Slots[analysis_objects.PtSlot, histogram_nd.Histogram2D]:
    """ Correct the signal for the pair acceptance by dividing by the mixed events.

    Each (centrality, vz, pt bin) slice of the signal is divided by the corresponding mixed event
    (as determined by the granularity), and then the corrected slices are summed into (file, pt bin).
    A slice is skipped if the signal or the mixed event is empty, so we never divide by an empty hist.

    Args:
        signal: Signal correlations for each (file, centrality, vz, pt bin). For the ``per_pt``
            granularity, signal which was already averaged over (centrality, vz) is also accepted.
        mixed_events: Normalized mixed events. Keys must match the granularity.
        selector: Binning of the analysis.
        granularity: How differential the mixed events are.
    Returns:
        Corrected correlations for each (file, pt bin). Slots are None if all slices were skipped.
    """
    file_indices = sorted({k.file for k in signal})
    output: analysis_objects.Slots[analysis_objects.PtSlot, histogram_nd.Histogram2D] = {
        k: None for k in selector.pt_slots(file_indices)
    }
    for key, hist in signal.items():
        if granularity != params.MixingGranularity.per_pt and not isinstance(key, analysis_objects.CentVzPtBin):
            raise ValueError(key, f"Mixing granularity {granularity} requires signal which is differential in centrality and vz.")
        if hist is None or hist.entries == 0:
            logger.debug(f"Signal for {key} is empty. Skipping the mixed event correction.")
            continue
        mixed_event = _select_mixed_event(mixed_events, key, selector, granularity)
        if mixed_event is None:
            if granularity.pooled:
                logger.error(f"No mixed event available for {key} (including the pooled bucket). Skipping.")
            else:
                logger.debug(f"Mixed event for {key} is empty. Skipping.")
            continue

        corrected = hist / mixed_event
        output_key = analysis_objects.PtSlot(file = key.file, pt = key.pt)
        label = hist.metadata.get("label", "")
        jet_type = hist.metadata.get("jet_type", params.JetType.leading)
        selection = hist.metadata.get("selection", params.AsymmetrySelection.all)
        tag = f"_{selection.value}" if selection.value else ""
        correlations_helpers.accumulate(
            output, output_key, corrected,
            name = f"{label}_{jet_type.value}{tag}_corrected_{granularity}_{output_key}",
            label = label, jet_type = jet_type, selection = selection, stage = "corrected",
        )

    return output
