#!/usr/bin/env python

""" Handle extracted widths and yields, as well as their systematic uncertainties.

.. codeauthor:: Raymond Ehlers <raymond.ehlers@cern.ch>, Yale University
"""

from dataclasses import dataclass, field
import logging
import numpy as np
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from pachyderm import histogram

from dijet_hadron.base import analysis_objects
from dijet_hadron.base import binning
from dijet_hadron.base import histogram_nd
from dijet_hadron.base import params

from dijet_hadron.analysis import fit

logger = logging.getLogger(__name__)

Projections = Mapping[analysis_objects.PtSlot, Optional[histogram.Histogram1D]]
Observables = analysis_objects.Slots[analysis_objects.PtSlot, analysis_objects.ExtractedObservable]
Values = Mapping[analysis_objects.PtSlot, Optional[float]]

# Relative uncertainty on the yields due to the tracking efficiency.
YIELD_RELATIVE_ERROR = 0.05

@dataclass
class FitValues:
    """ Near side values extracted from a fit.

    Attributes:
        yield_value: Near side yield (the gaussian amplitude).
        yield_error: Error on the near side yield.
        width: Near side width.
        width_error: Error on the near side width.
    """
    yield_value: float
    yield_error: float
    width: float
    width_error: float

    @property
    def yield_observable(self) -> analysis_objects.ExtractedObservable:
        return analysis_objects.ExtractedObservable(value = self.yield_value, error = self.yield_error)

    @property
    def width_observable(self) -> analysis_objects.ExtractedObservable:
        return analysis_objects.ExtractedObservable(value = self.width, error = self.width_error)

@dataclass
class YieldGraph:
    """ Yields (or widths) as a function of pt.

    Attributes:
        name: Name of the graph.
        x: Mean pt of each pt bin.
        y: Value of each pt bin, divided by the pt bin width.
        x_errors: Errors on x.
        y_errors: Errors on y.
        metadata: Additional information about the graph.
    """
    name: str
    x: np.ndarray
    y: np.ndarray
    x_errors: np.ndarray
    y_errors: np.ndarray
    metadata: Dict[str, Any] = field(default_factory = dict)

    def __iter__(self) -> Iterator[Tuple[float, float, float, float]]:
        for values in zip(self.x, self.y, self.x_errors, self.y_errors):
            yield values

    def __len__(self) -> int:
        return len(self.x)

def extract_fit_values(fits: fit.Fits) -> analysis_objects.Slots[analysis_objects.PtSlot, FitValues]:
    """ Extract the near side yield and width from each fit.

    Args:
        fits: Fit objects which have been fit.
    Returns:
        Extracted values. Slots are None if the fit is not available.
    """
    output: analysis_objects.Slots[analysis_objects.PtSlot, FitValues] = {}
    for key, fit_object in fits.items():
        if fit_object is None:
            output[key] = None
            continue
        fit_result = fit_object.fit_result
        yield_name = fit_object.yield_parameter
        width_name = fit_object.width_parameter
        output[key] = FitValues(
            yield_value = float(fit_result.values_at_minimum[yield_name]),
            yield_error = float(fit_result.errors_on_parameters[yield_name]),
            # The width is symmetric in the fit function, so only the magnitude is meaningful.
            width = float(np.abs(fit_result.values_at_minimum[width_name])),
            width_error = float(fit_result.errors_on_parameters[width_name]),
        )
        logger.debug(f"Extracted values for {key}: {output[key]}")

    return output

def _integral(h: histogram.Histogram1D, integral_range: params.SelectedRange) -> analysis_objects.ExtractedObservable:
    """ Integrate the histogram (including the bin widths) over the bins containing the range.

    Both bins which contain the edges of the range are included in the integral.

    Args:
        h: Histogram to integrate.
        integral_range: Range to integrate over.
    Returns:
        Integral and the error on the integral.
    """
    min_bin = histogram_nd.find_bin(h.bin_edges, integral_range.min)
    max_bin = histogram_nd.find_bin(h.bin_edges, integral_range.max)
    selected = slice(min_bin, max_bin + 1)
    widths = h.bin_widths[selected]
    value = np.sum(h.y[selected] * widths)
    error = np.sqrt(np.sum(h.errors_squared[selected] * widths ** 2))
    return analysis_objects.ExtractedObservable(value = float(value), error = float(error))

def _extract_integrals(hists: Projections, integral_range: params.SelectedRange) -> Observables:
    output: Observables = {}
    for key, h in hists.items():
        output[key] = None if h is None else _integral(h, integral_range)
    return output

def extract_integral_delta_phi(hists: Projections, selector: binning.BinSelector) -> Observables:
    """ Extract the yields by integrating the delta phi correlations over the integral range. """
    return _extract_integrals(hists, selector.phi_projection_integral_range)

def extract_integral_delta_eta(hists: Projections, selector: binning.BinSelector) -> Observables:
    """ Extract the yields by integrating the delta eta correlations over the integral range. """
    return _extract_integrals(hists, selector.eta_projection_integral_range)

def only_yields_delta_phi(hists: Projections, selector: binning.BinSelector) -> analysis_objects.Slots[analysis_objects.PtSlot, float]:
    """ Same as ``extract_integral_delta_phi``, but only the yields are returned. """
    return {
        k: v.value if v is not None else None
        for k, v in extract_integral_delta_phi(hists, selector).items()
    }

def only_yields_delta_eta(hists: Projections, selector: binning.BinSelector) -> analysis_objects.Slots[analysis_objects.PtSlot, float]:
    """ Same as ``extract_integral_delta_eta``, but only the yields are returned. """
    return {
        k: v.value if v is not None else None
        for k, v in extract_integral_delta_eta(hists, selector).items()
    }

def make_graphs(centers: Values, values: Values, errors: Values,
                pt_range: params.IndexRange, selector: binning.BinSelector,
                name: str = "", x_errors: Optional[Values] = None) -> Dict[int, YieldGraph]:
    """ Create graphs of the values as a function of pt for each file.

    The values are divided by the pt bin width, while the errors are stored as provided. Pt bins where
    the center, value, or error is not available are skipped.

    Args:
        centers: Mean pt of each (file, pt bin).
        values: Values (usually yields) of each (file, pt bin).
        errors: Errors on the values.
        pt_range: Inclusive range of pt bins to include in the graph.
        selector: Binning of the analysis.
        name: Name of the graphs. The file index is appended. Default: "".
        x_errors: Errors on the pt centers. Default: None, which corresponds to 0.
    Returns:
        Graph for each file.
    """
    file_indices = sorted({k.file for k in values})
    graphs: Dict[int, YieldGraph] = {}
    for file_index in file_indices:
        x: List[float] = []
        y: List[float] = []
        x_err: List[float] = []
        y_err: List[float] = []
        for pt_index in pt_range:
            key = analysis_objects.PtSlot(file = file_index, pt = pt_index)
            center, value, error = centers.get(key), values.get(key), errors.get(key)
            if center is None or value is None or error is None:
                logger.warning(f"Values for {key} are not available. Skipping the point in the graph.")
                continue
            x.append(center)
            y.append(value / selector.pt_bin_width(pt_index))
            x_err.append((x_errors.get(key) or 0.0) if x_errors else 0.0)
            y_err.append(error)

        graphs[file_index] = YieldGraph(
            name = f"{name}_graph_file_{file_index}" if name else f"graph_file_{file_index}",
            x = np.array(x), y = np.array(y),
            x_errors = np.array(x_err), y_errors = np.array(y_err),
            metadata = {"pt_range": pt_range},
        )

    return graphs

def _check_matching_binning(a: histogram.Histogram1D, b: histogram.Histogram1D) -> None:
    if not np.allclose(a.bin_edges, b.bin_edges):
        raise ValueError(f"Binning is different for {a.metadata.get('name')} and {b.metadata.get('name')}")

def build_systematic_histogram(upper: Projections, lower: Projections,
                               name: str = "systematic") -> analysis_objects.Slots[analysis_objects.PtSlot, histogram.Histogram1D]:
    """ Build a systematic uncertainty band from an upper and lower variation.

    The bin content is the mean of the variations, while the error is the full difference between them.

    Args:
        upper: Upper variation (for example, from the tower energy scale).
        lower: Lower variation.
        name: Prefix for the output names. Default: "systematic".
    Returns:
        Systematic histograms. Slots are None if either variation is not available.
    """
    output: analysis_objects.Slots[analysis_objects.PtSlot, histogram.Histogram1D] = {}
    for key, u in upper.items():
        l = lower.get(key)  # noqa: E741
        if u is None or l is None:
            output[key] = None
            continue
        _check_matching_binning(u, l)
        output[key] = histogram.Histogram1D(
            bin_edges = np.array(u.bin_edges, copy = True),
            y = np.abs(u.y + l.y) / 2.0,
            errors_squared = (u.y - l.y) ** 2,
            metadata = {"name": f"{name}_{key}"},
        )
    return output

def add_in_quadrature(first: Projections, second: Projections,
                      name: str = "sys_quad") -> analysis_objects.Slots[analysis_objects.PtSlot, histogram.Histogram1D]:
    """ Combine two systematic uncertainty bands by adding the errors in quadrature.

    The bin content is the mean of the two inputs.

    Args:
        first: First systematic histograms.
        second: Second systematic histograms.
        name: Prefix for the output names. Default: "sys_quad".
    Returns:
        Combined systematic histograms. Slots are None if either input is not available.
    """
    output: analysis_objects.Slots[analysis_objects.PtSlot, histogram.Histogram1D] = {}
    for key, a in first.items():
        b = second.get(key)
        if a is None or b is None:
            output[key] = None
            continue
        _check_matching_binning(a, b)
        output[key] = histogram.Histogram1D(
            bin_edges = np.array(a.bin_edges, copy = True),
            y = np.abs(a.y + b.y) / 2.0,
            errors_squared = a.errors_squared + b.errors_squared,
            metadata = {"name": f"{name}_{key}"},
        )
    return output

def add_values_in_quadrature(upper: Values, lower: Values) -> analysis_objects.Slots[analysis_objects.PtSlot, float]:
    """ Add two sets of uncertainties in quadrature. Slots are None if either value is not available. """
    output: analysis_objects.Slots[analysis_objects.PtSlot, float] = {}
    for key, u in upper.items():
        l = lower.get(key)  # noqa: E741
        output[key] = None if u is None or l is None else float(np.sqrt(u ** 2 + l ** 2))
    return output

def build_yield_error(hists: Projections, name: str = "yield_sys_err") -> analysis_objects.Slots[analysis_objects.PtSlot, histogram.Histogram1D]:
    """ Assign the relative tracking uncertainty as the error of each bin.

    Args:
        hists: Histograms which contain the yields.
        name: Prefix for the output names. Default: "yield_sys_err".
    Returns:
        Copies of the histograms with errors set to the relative tracking uncertainty.
    """
    output: analysis_objects.Slots[analysis_objects.PtSlot, histogram.Histogram1D] = {}
    for key, h in hists.items():
        if h is None:
            output[key] = None
            continue
        output[key] = histogram.Histogram1D(
            bin_edges = np.array(h.bin_edges, copy = True),
            y = np.array(h.y, copy = True),
            errors_squared = (h.y * YIELD_RELATIVE_ERROR) ** 2,
            metadata = {"name": f"{name}_{key}"},
        )
    return output

def build_yield_error_values(yields: Values, selector: binning.BinSelector) -> analysis_objects.Slots[analysis_objects.PtSlot, float]:
    """ Relative tracking uncertainty on the yields, divided by the pt bin width.

    The result is on the same scale as the values of the yield graphs.
    """
    return {
        k: None if v is None else YIELD_RELATIVE_ERROR * v / selector.pt_bin_width(k.pt)
        for k, v in yields.items()
    }

def reset_systematic_bin_content(errors: Projections, hists: Projections) -> None:
    """ Set the bin content of the systematic histograms to the content of the measured histograms.

    This way, the systematic band is centered on the measurement. The errors are left unchanged.

    Args:
        errors: Systematic histograms. They are modified in place.
        hists: Measured histograms.
    Returns:
        None.
    Raises:
        ValueError: If the keys or the binning of the inputs don't match.
    """
    if set(errors) != set(hists):
        raise ValueError("Mismatched slots between the systematic and measured histograms.")
    for key, error_hist in errors.items():
        h = hists[key]
        if error_hist is None or h is None:
            continue
        _check_matching_binning(error_hist, h)
        error_hist.y = np.array(h.y, copy = True)

def scale_errors(errors: Values, selector: binning.BinSelector) -> analysis_objects.Slots[analysis_objects.PtSlot, float]:
    """ Divide the errors by the pt bin width, matching the scale of the yield graphs. """
    return {
        k: None if v is None else v / selector.pt_bin_width(k.pt)
        for k, v in errors.items()
    }

def get_difference(first: Values, second: Values) -> analysis_objects.Slots[analysis_objects.PtSlot, float]:
    """ Absolute difference between two sets of values. Slots are None if either value is not available. """
    output: analysis_objects.Slots[analysis_objects.PtSlot, float] = {}
    for key, a in first.items():
        b = second.get(key)
        output[key] = None if a is None or b is None else float(np.abs(a - b))
    return output
