#!/usr/bin/env python

""" Tests for extracting yields and widths, as well as the systematic helpers.

.. codeauthor:: Raymond Ehlers <raymond.ehlers@cern.ch>, Yale University
"""

import logging
import numpy as np
import pytest

from pachyderm import histogram

from dijet_hadron.base import analysis_objects
from dijet_hadron.base import params
from dijet_hadron.analysis import extracted
from dijet_hadron.analysis import fit

logger = logging.getLogger(__name__)

def _slot(pt: int, file_index: int = 0) -> analysis_objects.PtSlot:
    return analysis_objects.PtSlot(file = file_index, pt = pt)

def _flat_hist(value: float = 1.0, errors_squared: float = 1.0, n_bins: int = 10) -> histogram.Histogram1D:
    return histogram.Histogram1D(
        bin_edges = np.linspace(-1, 1, n_bins + 1),
        y = np.full(n_bins, value),
        errors_squared = np.full(n_bins, errors_squared),
        metadata = {"name": "flat"},
    )

def test_integral_includes_edge_bins(logging_mixin, selector):
    """ Test that the bins containing both edges of the integral range are included. """
    hists = {_slot(0): _flat_hist(), _slot(1): None}
    integrals = extracted.extract_integral_delta_phi(hists, selector)

    # Range of [-0.6, 0.6] corresponds to bins 2 - 8 with a width of 0.2.
    assert integrals[_slot(0)].value == pytest.approx(7 * 0.2)
    assert integrals[_slot(0)].error == pytest.approx(np.sqrt(7 * 0.2 ** 2))
    assert integrals[_slot(1)] is None

def test_only_yields(logging_mixin, selector):
    """ Test that only the yields are returned. """
    hists = {_slot(0): _flat_hist(value = 2.0), _slot(1): None}

    assert extracted.only_yields_delta_eta(hists, selector) == {_slot(0): pytest.approx(2 * 7 * 0.2), _slot(1): None}
    assert extracted.only_yields_delta_phi(hists, selector)[_slot(0)] == pytest.approx(2 * 7 * 0.2)

def test_extract_fit_values(logging_mixin, selector):
    """ Test extracting the yield and width from the near side fits. """
    bin_edges = np.linspace(-np.pi / 2, np.pi / 2, 37)
    x = (bin_edges[1:] + bin_edges[:-1]) / 2
    y = fit.pedestal_with_extended_gaussian(x, mean = 0, width = 0.3, amplitude = 4.0, pedestal = 0.0)
    hists = {
        _slot(0): histogram.Histogram1D(bin_edges = bin_edges, y = y, errors_squared = np.full(len(y), 1e-4)),
        _slot(1): None,
    }
    fits = fit.fit_delta_phi_restricted(hists, selector)

    values = extracted.extract_fit_values(fits)

    assert values[_slot(1)] is None
    fit_values = values[_slot(0)]
    assert fit_values.yield_value == pytest.approx(4.0, rel = 0.03)
    assert fit_values.width == pytest.approx(0.3, rel = 0.03)
    assert fit_values.width > 0
    assert fit_values.yield_error > 0
    assert fit_values.yield_observable.value == fit_values.yield_value
    assert fit_values.width_observable.error == fit_values.width_error

def test_make_graphs(logging_mixin, selector, caplog):
    """ Test that the values are divided by the pt bin width and missing points are skipped. """
    centers = {_slot(0): 0.75, _slot(1): 1.5, _slot(2): 2.5, _slot(4): 5.0}
    values = {_slot(0): 1.0, _slot(1): 4.0, _slot(2): None, _slot(4): 6.0}
    errors = {_slot(0): 0.1, _slot(1): 0.2, _slot(2): 0.3, _slot(4): 0.4}

    graphs = extracted.make_graphs(centers, values, errors, params.IndexRange(0, 4), selector, name = "yields")

    assert list(graphs) == [0]
    graph = graphs[0]
    assert graph.name == "yields_graph_file_0"
    assert len(graph) == 3
    np.testing.assert_allclose(graph.x, [0.75, 1.5, 5.0])
    # Pt bin widths are 0.5, 1, and 2.
    np.testing.assert_allclose(graph.y, [2.0, 4.0, 3.0])
    np.testing.assert_allclose(graph.y_errors, [0.1, 0.2, 0.4])
    np.testing.assert_allclose(graph.x_errors, 0)
    assert list(graph)[1] == (1.5, 4.0, 0.0, 0.2)
    assert any(record.levelno == logging.WARNING for record in caplog.records)

def test_make_graphs_multiple_files(logging_mixin, selector):
    """ Test that there is one graph per file, restricted to the pt range. """
    keys = [_slot(pt, file_index) for file_index in range(2) for pt in range(5)]
    centers = {k: 1.0 for k in keys}
    values = {k: float(k.file + 1) for k in keys}
    errors = {k: 0.0 for k in keys}

    graphs = extracted.make_graphs(
        centers, values, errors, params.IndexRange(1, 3), selector, x_errors = {k: 0.5 for k in keys},
    )

    assert sorted(graphs) == [0, 1]
    np.testing.assert_allclose(graphs[1].y, 2.0)
    np.testing.assert_allclose(graphs[1].x_errors, 0.5)
    assert graphs[0].name == "graph_file_0"

def test_scale_errors(logging_mixin, selector):
    """ Test dividing the errors by the pt bin width. The input isn't modified. """
    errors = {_slot(0): 1.0, _slot(4): 1.0, _slot(1): None}
    scaled = extracted.scale_errors(errors, selector)

    assert scaled == {_slot(0): pytest.approx(2.0), _slot(4): pytest.approx(0.5), _slot(1): None}
    assert errors[_slot(0)] == 1.0

def test_build_systematic_histogram(logging_mixin):
    """ Test the systematic band from the upper and lower variations. """
    upper = {_slot(0): _flat_hist(value = 3.0), _slot(1): _flat_hist()}
    lower = {_slot(0): _flat_hist(value = 1.0), _slot(1): None}

    systematic = extracted.build_systematic_histogram(upper, lower)

    np.testing.assert_allclose(systematic[_slot(0)].y, 2.0)
    np.testing.assert_allclose(systematic[_slot(0)].errors_squared, 4.0)
    assert systematic[_slot(1)] is None

def test_add_in_quadrature(logging_mixin):
    """ Test combining two systematic bands. """
    first = {_slot(0): _flat_hist(value = 2.0, errors_squared = 9.0)}
    second = {_slot(0): _flat_hist(value = 4.0, errors_squared = 16.0)}

    combined = extracted.add_in_quadrature(first, second)

    np.testing.assert_allclose(combined[_slot(0)].y, 3.0)
    np.testing.assert_allclose(np.sqrt(combined[_slot(0)].errors_squared), 5.0)
    assert extracted.add_values_in_quadrature({_slot(0): 3.0, _slot(1): 1.0}, {_slot(0): 4.0, _slot(1): None}) == \
        {_slot(0): pytest.approx(5.0), _slot(1): None}

def test_mismatched_binning(logging_mixin):
    """ Test that systematics can't be combined with different binning. """
    with pytest.raises(ValueError):
        extracted.build_systematic_histogram({_slot(0): _flat_hist()}, {_slot(0): _flat_hist(n_bins = 5)})

def test_yield_error(logging_mixin, selector):
    """ Test the relative tracking uncertainty. """
    errors = extracted.build_yield_error({_slot(0): _flat_hist(value = 10.0), _slot(1): None})
    np.testing.assert_allclose(errors[_slot(0)].y, 10.0)
    np.testing.assert_allclose(np.sqrt(errors[_slot(0)].errors_squared), 10.0 * extracted.YIELD_RELATIVE_ERROR)
    assert errors[_slot(1)] is None

    values = extracted.build_yield_error_values({_slot(0): 10.0, _slot(4): 10.0}, selector)
    assert values[_slot(0)] == pytest.approx(10.0 * extracted.YIELD_RELATIVE_ERROR / 0.5)
    assert values[_slot(4)] == pytest.approx(10.0 * extracted.YIELD_RELATIVE_ERROR / 2.0)

def test_reset_systematic_bin_content(logging_mixin):
    """ Test centering the systematic band on the measurement. """
    errors = {_slot(0): _flat_hist(value = 1.0, errors_squared = 4.0)}
    hists = {_slot(0): _flat_hist(value = 7.0)}

    extracted.reset_systematic_bin_content(errors, hists)

    np.testing.assert_allclose(errors[_slot(0)].y, 7.0)
    np.testing.assert_allclose(errors[_slot(0)].errors_squared, 4.0)

    with pytest.raises(ValueError):
        extracted.reset_systematic_bin_content(errors, {_slot(1): _flat_hist()})

def test_get_difference(logging_mixin):
    """ Test the absolute difference between two sets of values. """
    difference = extracted.get_difference({_slot(0): 1.0, _slot(1): 2.0}, {_slot(0): 3.5, _slot(1): None})
    assert difference == {_slot(0): pytest.approx(2.5), _slot(1): None}
