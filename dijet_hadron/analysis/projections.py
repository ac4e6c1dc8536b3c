#!/usr/bin/env python

""" Project the 2D correlations into 1D delta phi and delta eta correlations.

Includes the near-minus-far subtraction, where the delta phi projection of the large delta eta
(far) region is scaled and subtracted from the projection of the small delta eta (near) region.

.. codeauthor:: Raymond Ehlers <raymond.ehlers@cern.ch>, Yale University
"""

import logging
import numpy as np
from typing import Mapping, Optional, Tuple

from pachyderm import histogram

from dijet_hadron.base import analysis_objects
from dijet_hadron.base import binning
from dijet_hadron.base import histogram_nd
from dijet_hadron.base import params

logger = logging.getLogger(__name__)

Correlations2D = Mapping[analysis_objects.PtSlot, Optional[histogram_nd.Histogram2D]]
Projections = analysis_objects.Slots[analysis_objects.PtSlot, histogram.Histogram1D]

def _projection_name(hist: histogram_nd.Histogram2D, tag: str) -> str:
    return f"{hist.name}_{tag}"

def project_delta_phi(correlations: Correlations2D, selector: binning.BinSelector) -> Projections:
    """ Project the 2D correlations onto delta phi within the delta eta projection bound.

    Args:
        correlations: 2D correlations.
        selector: Binning of the analysis.
    Returns:
        Delta phi projections. Slots are None if the input was None.
    """
    output: Projections = {}
    for key, hist in correlations.items():
        if hist is None:
            output[key] = None
            continue
        min_bin, max_bin = histogram_nd.find_bin_range(
            hist.x_bin_edges, selector.phi_projection_eta_bound.min, selector.phi_projection_eta_bound.max,
        )
        logger.debug(f"Projecting delta phi for {key} using delta eta bins {min_bin} - {max_bin}")
        output[key] = hist.project_y(min_bin, max_bin, name = _projection_name(hist, "dphi"))
    return output

def project_delta_eta(correlations: Correlations2D, selector: binning.BinSelector, extended: bool = False) -> Projections:
    """ Project the 2D correlations onto delta eta within the delta phi projection bound.

    Args:
        correlations: 2D correlations.
        selector: Binning of the analysis.
        extended: If True, use the extended delta phi bound. Default: False.
    Returns:
        Delta eta projections. Slots are None if the input was None.
    """
    bound = selector.eta_projection_phi_bound_extended if extended else selector.eta_projection_phi_bound
    output: Projections = {}
    for key, hist in correlations.items():
        if hist is None:
            output[key] = None
            continue
        min_bin, max_bin = histogram_nd.find_bin_range(hist.y_bin_edges, bound.min, bound.max)
        logger.debug(f"Projecting delta eta for {key} using delta phi bins {min_bin} - {max_bin}")
        output[key] = hist.project_x(
            min_bin, max_bin, name = _projection_name(hist, "deta_extended" if extended else "deta"),
        )
    return output

def near_far_regions(bin_edges: np.ndarray, edges: Tuple[float, ...]) -> Tuple[Tuple[int, int], ...]:
    """ Determine the delta eta bin ranges of the near-minus-far regions.

    The regions are ``[edge1, edge2)``, ``[edge2, edge3]``, and ``(edge3, edge4]``, such that they
    are mutually exclusive and cover the entire range between edge1 and edge4. Region 2 is the
    near region, while regions 1 and 3 make up the far region.

    .. code-block:: python

        >>> near_far_regions(np.linspace(-1, 1, 11), (-1.0, -0.6, 0.6, 1.0))
        ((0, 1), (2, 7), (8, 9))

    Args:
        bin_edges: Delta eta bin edges.
        edges: Four edges which define the regions.
    Returns:
        Inclusive (low, high) bins for region 1, region 2, and region 3.
    """
    region_1 = (histogram_nd.find_bin(bin_edges, edges[0]), histogram_nd.find_bin(bin_edges, edges[1]) - 1)
    region_2 = (histogram_nd.find_bin(bin_edges, edges[1]), histogram_nd.find_upper_bin(bin_edges, edges[2]))
    region_3 = (histogram_nd.find_upper_bin(bin_edges, edges[2]) + 1, histogram_nd.find_upper_bin(bin_edges, edges[3]))
    return region_1, region_2, region_3

def _project_near_and_far(hist: histogram_nd.Histogram2D, edges: Tuple[float, ...],
                          tag: str) -> Optional[Tuple[histogram.Histogram1D, histogram.Histogram1D]]:
    """ Project the near and far regions onto delta phi.

    The far region is scaled by the ratio of the number of near bins to far bins.

    Args:
        hist: 2D correlation.
        edges: Four edges which define the regions.
        tag: Tag for naming the projections.
    Returns:
        (near, scaled far), or None if the regions are invalid.
    """
    regions = near_far_regions(hist.x_bin_edges, edges)
    for i, (low, high) in enumerate(regions, start = 1):
        if high < low:
            logger.error(
                f"Region {i} is invalid for {hist.name}: high bin {high} < low bin {low}. Edges: {edges}"
            )
            return None
    (region_1_low, region_1_high), (region_2_low, region_2_high), (region_3_low, region_3_high) = regions
    logger.debug(f"Near-minus-far regions for {hist.name}: {regions}")

    near = hist.project_y(region_2_low, region_2_high, name = _projection_name(hist, f"{tag}_near"))
    far = hist.project_y(region_1_low, region_1_high, name = _projection_name(hist, f"{tag}_far"))
    far += hist.project_y(region_3_low, region_3_high)

    n_near_bins = region_2_high - region_2_low + 1
    n_far_bins = (region_1_high - region_1_low + 1) + (region_3_high - region_3_low + 1)
    far *= n_near_bins / n_far_bins

    return near, far

def project_delta_phi_near_minus_far(correlations: Correlations2D, selector: binning.BinSelector,
                                     extended: bool = False) -> Projections:
    """ Project the 2D correlations onto delta phi, subtracting the far region from the near region.

    The far region projection is scaled by ``n_near_bins / n_far_bins`` before it is subtracted.
    Slots where the region definitions are invalid are logged and left as None.

    Args:
        correlations: 2D correlations.
        selector: Binning of the analysis.
        extended: If True, use the extended region edges. Default: False.
    Returns:
        Near-minus-far delta phi projections.
    """
    edges = selector.phi_projection_subtraction_regions_extended if extended else selector.phi_projection_subtraction_regions
    tag = "dphi_near_minus_far_extended" if extended else "dphi_near_minus_far"
    output: Projections = {}
    for key, hist in correlations.items():
        output[key] = None
        if hist is None:
            continue
        result = _project_near_and_far(hist, edges, tag)
        if result is None:
            continue
        near, far = result
        subtracted = near - far
        subtracted.metadata["name"] = _projection_name(hist, tag)
        output[key] = subtracted
    return output

def project_delta_phi_near_and_far(correlations: Correlations2D, selector: binning.BinSelector,
                                   extended: bool = False) -> Tuple[Projections, Projections]:
    """ Project the near and the (scaled) far regions onto delta phi separately.

    Args:
        correlations: 2D correlations.
        selector: Binning of the analysis.
        extended: If True, use the extended region edges. Default: False.
    Returns:
        (near projections, scaled far projections).
    """
    edges = selector.phi_projection_subtraction_regions_extended if extended else selector.phi_projection_subtraction_regions
    tag = "dphi_extended" if extended else "dphi"
    near_projections: Projections = {}
    far_projections: Projections = {}
    for key, hist in correlations.items():
        near_projections[key] = None
        far_projections[key] = None
        if hist is None:
            continue
        result = _project_near_and_far(hist, edges, tag)
        if result is None:
            continue
        near_projections[key], far_projections[key] = result
    return near_projections, far_projections

def normalize_1d(hists: Projections, event_counts: Mapping[int, histogram_nd.Histogram3D]) -> None:
    """ Normalize by the bin width and the number of events.

    Args:
        hists: Projections to be normalized.
        event_counts: Number of events histogram for each file. The number of entries is used.
    Returns:
        None. The hists are scaled in place.
    """
    for key, hist in analysis_objects.filled_slots(hists):
        n_events = event_counts[key.file].entries
        if n_events <= 0:
            logger.warning(f"No events available for file {key.file}. Cannot normalize {key}.")
            continue
        hist *= 1.0 / (hist.bin_widths[0] * n_events)

def normalize_1d_aj_split(hists: Projections, event_counts: Mapping[int, histogram_nd.Histogram3D],
                          aj_range: params.IndexRange, selector: binning.BinSelector) -> None:
    """ Normalize by the bin width and the number of events within the selected aj bins.

    Args:
        hists: Projections to be normalized.
        event_counts: Number of events histogram for each file.
        aj_range: Inclusive range of aj bins of the selected events.
        selector: Binning of the analysis. Determines the event counts axis which contains aj.
    Returns:
        None. The hists are scaled in place.
    """
    for key, hist in analysis_objects.filled_slots(hists):
        counts = event_counts[key.file]
        bin_ranges = [None, None, None]
        bin_ranges[selector.event_count_asymmetry_axis] = (aj_range.min, aj_range.max)  # type: ignore
        n_events = counts.integral(bin_ranges)
        if n_events <= 0:
            logger.warning(f"No events available for file {key.file} in aj bins {aj_range}. Cannot normalize {key}.")
            continue
        hist *= 1.0 / (hist.bin_widths[0] * n_events)

def subtract_1d(base: Projections, subtraction: Projections) -> Projections:
    """ Subtract one set of projections from another.

    Args:
        base: Projections from which we subtract.
        subtraction: Projections to be subtracted.
    Returns:
        ``base - subtraction``. Slots are None if either input is None.
    """
    output: Projections = {}
    for key, hist in base.items():
        other = subtraction.get(key)
        if hist is None or other is None:
            output[key] = None
            continue
        subtracted = hist - other
        subtracted.metadata["name"] = f"subtracted_{hist.metadata.get('name', key)}"
        output[key] = subtracted
    return output
