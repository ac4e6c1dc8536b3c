#!/usr/bin/env python

""" Helper functions for aggregating the raw correlations.

The raw correlations are 3D (delta eta, delta phi, pt) histograms for each (file, centrality, vz, aj)
bin. These functions reduce them into 2D (delta eta, delta phi) correlations for each pt bin, summing
over the requested axes.

.. codeauthor:: Raymond Ehlers <raymond.ehlers@cern.ch>, Yale University
"""

import logging
import numpy as np
from typing import Any, Callable, Dict, Hashable, Mapping, Optional, Tuple, TypeVar

from pachyderm import histogram

from dijet_hadron.base import analysis_objects
from dijet_hadron.base import binning
from dijet_hadron.base import histogram_nd
from dijet_hadron.base import params

logger = logging.getLogger(__name__)

RawCorrelations = Mapping[analysis_objects.RawBin, Optional[histogram_nd.Histogram3D]]
_K = TypeVar("_K", bound = Hashable)
_H = TypeVar("_H", bound = histogram_nd.HistogramND)

def accumulate(slots: Dict[_K, Optional[_H]], key: _K, hist: _H, name: str, **metadata: Any) -> None:
    """ Add a histogram into the given slot.

    If the slot is empty, a copy of the hist is stored (with the given name and metadata), so
    the input is never modified.

    Args:
        slots: Collection of histograms.
        key: Key of the slot where the hist should be added.
        hist: Histogram to be added.
        name: Name of the output histogram.
        metadata: Additional metadata to store with the output histogram.
    Returns:
        None. The slots are modified in place.
    """
    existing = slots.get(key)
    if existing is None:
        new = hist.copy()
        new.metadata["name"] = name
        new.metadata["key"] = key
        new.metadata.update(metadata)
        slots[key] = new
    else:
        existing += hist

def pt_bin_range(hist: histogram_nd.Histogram3D, pt_bin: analysis_objects.PtBin) -> Tuple[int, int]:
    """ Determine the inclusive range of pt axis bins which correspond to the given pt bin.

    Args:
        hist: Histogram containing the pt axis.
        pt_bin: Pt bin of interest.
    Returns:
        (min bin, max bin), where both are inclusive.
    """
    return histogram_nd.find_bin_range(hist.bin_edges[2], pt_bin.range.min, pt_bin.range.max)

def find_pt_centers(correlations: RawCorrelations, selector: binning.BinSelector,
                    n_files: int) -> Tuple[analysis_objects.Slots[analysis_objects.PtSlot, float],
                                           Dict[int, Optional[histogram.Histogram1D]]]:
    """ Determine the mean pt within each pt bin.

    The pt spectrum is accumulated over the entire (centrality, vz, aj) space of each file before the
    mean of each pt bin is calculated.

    Args:
        correlations: Raw correlations.
        selector: Binning of the analysis.
        n_files: Number of input files.
    Returns:
        (mean pt for each (file, pt bin), pt spectrum for each file). A pt bin without any content
            has a mean of None.
    """
    spectra: Dict[int, Optional[histogram.Histogram1D]] = {i: None for i in range(n_files)}
    for key, hist in correlations.items():
        if hist is None:
            continue
        spectrum = hist.project_z(name = f"pt_spectrum_file_{key.file}")
        existing = spectra[key.file]
        spectra[key.file] = spectrum if existing is None else existing + spectrum

    centers: analysis_objects.Slots[analysis_objects.PtSlot, float] = {}
    for file_index, spectrum in spectra.items():
        for pt_bin in selector.pt_bins:
            slot = analysis_objects.PtSlot(file = file_index, pt = pt_bin.bin)
            centers[slot] = None
            if spectrum is None:
                continue
            min_bin, max_bin = histogram_nd.find_bin_range(spectrum.bin_edges, pt_bin.range.min, pt_bin.range.max)
            selected = slice(min_bin, max_bin + 1)
            content = spectrum.y[selected]
            total = np.sum(content)
            if total <= 0:
                logger.warning(f"No content in pt bin {pt_bin.label} for file {file_index}. Cannot determine the center.")
                continue
            centers[slot] = float(np.sum(spectrum.x[selected] * content) / total)
            logger.debug(f"Mean pt for file {file_index}, pt bin {pt_bin.label}: {centers[slot]}")

    return centers, spectra

def _build_correlations(correlations: RawCorrelations, selector: binning.BinSelector,
                        select: Callable[[analysis_objects.RawBin], bool],
                        label: str, jet_type: params.JetType,
                        selection: params.AsymmetrySelection) -> analysis_objects.Slots[analysis_objects.CentVzPtBin, histogram_nd.Histogram2D]:
    """ Project the raw correlations into 2D for each pt bin, summing over the selected aj bins.

    Args:
        correlations: Raw correlations.
        selector: Binning of the analysis.
        select: Function which determines whether the raw bin should be included.
        label: Label of the analysis.
        jet_type: Jet type of the correlations.
        selection: Asymmetry selection which is applied by ``select``.
    Returns:
        2D correlations for each (file, centrality, vz, pt bin). Slots are None if there were no inputs.
    """
    file_indices = sorted({k.file for k in correlations})
    output: analysis_objects.Slots[analysis_objects.CentVzPtBin, histogram_nd.Histogram2D] = {
        k: None for k in selector.cent_vz_pt_bins(file_indices)
    }
    tag = f"_{selection.value}" if selection.value else ""
    for key, hist in correlations.items():
        if hist is None or not select(key):
            continue
        for pt_bin in selector.pt_bins:
            output_key = analysis_objects.CentVzPtBin(
                file = key.file, centrality = key.centrality, vz = key.vz, pt = pt_bin.bin
            )
            min_bin, max_bin = pt_bin_range(hist, pt_bin)
            accumulate(
                output, output_key, hist.project_xy(min_bin, max_bin),
                name = f"{label}_{jet_type.value}{tag}_{output_key}",
                label = label, jet_type = jet_type, selection = selection, stage = "reduced",
            )

    return output

def build_single_correlation(correlations: RawCorrelations, selector: binning.BinSelector, label: str = "",
                             jet_type: params.JetType = params.JetType.leading) -> analysis_objects.Slots[analysis_objects.CentVzPtBin, histogram_nd.Histogram2D]:
    """ Build the 2D correlations for each (file, centrality, vz, pt bin), summing over all aj bins.

    Args:
        correlations: Raw correlations.
        selector: Binning of the analysis.
        label: Label of the analysis. Default: "".
        jet_type: Jet type of the correlations. Default: leading.
    Returns:
        2D correlations. Slots are None if there were no inputs.
    """
    return _build_correlations(
        correlations = correlations, selector = selector, select = lambda key: True,
        label = label, jet_type = jet_type, selection = params.AsymmetrySelection.all,
    )

def build_aj_split_correlation(correlations: RawCorrelations, selector: binning.BinSelector, split_bin: int,
                               label: str = "", jet_type: params.JetType = params.JetType.leading) -> Tuple[
                                   analysis_objects.Slots[analysis_objects.CentVzPtBin, histogram_nd.Histogram2D],
                                   analysis_objects.Slots[analysis_objects.CentVzPtBin, histogram_nd.Histogram2D]]:
    """ Build the 2D correlations split by the dijet asymmetry.

    Aj bins at or above the split bin are unbalanced ("high"), while those below are balanced ("low").

    Args:
        correlations: Raw correlations.
        selector: Binning of the analysis.
        split_bin: First aj bin of the unbalanced selection.
        label: Label of the analysis. Default: "".
        jet_type: Jet type of the correlations. Default: leading.
    Returns:
        (unbalanced correlations, balanced correlations).
    """
    if split_bin not in selector.aj:
        logger.warning(f"Aj split bin {split_bin} is outside of the aj range {selector.aj}. One selection will be empty.")
    high = _build_correlations(
        correlations = correlations, selector = selector, select = lambda key: key.aj >= split_bin,
        label = label, jet_type = jet_type, selection = params.AsymmetrySelection.unbalanced,
    )
    low = _build_correlations(
        correlations = correlations, selector = selector, select = lambda key: key.aj < split_bin,
        label = label, jet_type = jet_type, selection = params.AsymmetrySelection.balanced,
    )
    return high, low

def average_correlations(correlations: Mapping[analysis_objects.CentVzPtBin, Optional[histogram_nd.Histogram2D]],
                         selector: binning.BinSelector) -> analysis_objects.Slots[analysis_objects.PtSlot, histogram_nd.Histogram2D]:
    """ Sum the 2D correlations over the full (centrality, vz) grid.

    The asymmetry selection (if any) of the input is carried through to the name of the output.

    Args:
        correlations: 2D correlations for each (file, centrality, vz, pt bin).
        selector: Binning of the analysis.
    Returns:
        2D correlations for each (file, pt bin). Slots are None if there were no inputs.
    """
    file_indices = sorted({k.file for k in correlations})
    output: analysis_objects.Slots[analysis_objects.PtSlot, histogram_nd.Histogram2D] = {
        k: None for k in selector.pt_slots(file_indices)
    }
    for key, hist in analysis_objects.filled_slots(correlations):
        output_key = analysis_objects.PtSlot(file = key.file, pt = key.pt)
        selection = hist.metadata.get("selection", params.AsymmetrySelection.all)
        jet_type = hist.metadata.get("jet_type", params.JetType.leading)
        label = hist.metadata.get("label", "")
        tag = f"_{selection.value}" if selection.value else ""
        accumulate(
            output, output_key, hist,
            name = f"{label}_{jet_type.value}{tag}_avg_{output_key}",
            label = label, jet_type = jet_type, selection = selection, stage = "averaged",
        )

    return output
