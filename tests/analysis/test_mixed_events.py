#!/usr/bin/env python

""" Tests for the mixed event handling and acceptance correction.

.. codeauthor:: Raymond Ehlers <raymond.ehlers@cern.ch>, Yale University
"""

import logging
import numpy as np
import pytest

from dijet_hadron.base import analysis_objects
from dijet_hadron.base import params
from dijet_hadron.analysis import correlations_helpers
from dijet_hadron.analysis import mixed_events

logger = logging.getLogger(__name__)

def _triangle(make_hist_2d, peak: float = 8.0):
    """ Mixed event with a triangular delta eta acceptance. """
    h = make_hist_2d(values = 1.0)
    eta_centers = h.bin_centers[0]
    acceptance = peak * (1 - np.abs(eta_centers) / 2.0)
    values = np.repeat(acceptance[:, np.newaxis], len(h.y_bin_edges) - 1, axis = 1)
    return make_hist_2d(values = values)

def test_scale_mixed_events(logging_mixin, make_hist_2d):
    """ Test that the maximum of the delta eta acceptance is normalized to 1. """
    h = _triangle(make_hist_2d)
    mixed = {"a": h}
    mixed_events.scale_mixed_events(mixed)

    acceptance = mixed["a"].project_x()
    n_phi_bins = len(mixed["a"].y_bin_edges) - 1
    assert np.max(acceptance.y) / n_phi_bins == pytest.approx(1.0)

def test_scale_mixed_events_is_idempotent(logging_mixin, make_hist_2d):
    """ Test that scaling an already scaled mixed event doesn't change it. """
    mixed = {"a": _triangle(make_hist_2d)}
    mixed_events.scale_mixed_events(mixed)
    values = np.array(mixed["a"].values, copy = True)
    errors_squared = np.array(mixed["a"].errors_squared, copy = True)

    mixed_events.scale_mixed_events(mixed)

    np.testing.assert_allclose(mixed["a"].values, values)
    np.testing.assert_allclose(mixed["a"].errors_squared, errors_squared)

def test_scale_empty_mixed_events(logging_mixin, make_hist_2d):
    """ Test that empty mixed events are left untouched. """
    empty = make_hist_2d(values = 0.0)
    mixed = {"empty": empty, "missing": None}
    mixed_events.scale_mixed_events(mixed)

    np.testing.assert_allclose(mixed["empty"].values, 0.0)
    assert mixed["missing"] is None

def test_recombine_mixed_events(logging_mixin, selector, raw_correlations):
    """ Test pooling the high pt bins into the last bucket. """
    recombined = mixed_events.recombine_mixed_events(raw_correlations, selector, label = "test")
    single = correlations_helpers.build_single_correlation(raw_correlations, selector)

    assert set(recombined) == {analysis_objects.PtSlot(file = 0, pt = i) for i in range(3)}
    # Bucket 0 is just pt bin 0.
    expected = sum(h.values for k, h in single.items() if k.pt == 0)
    np.testing.assert_allclose(recombined[analysis_objects.PtSlot(file = 0, pt = 0)].values, expected)
    # Bucket 2 contains pt bins 2, 3, and 4.
    expected = sum(h.values for k, h in single.items() if k.pt >= 2)
    np.testing.assert_allclose(recombined[analysis_objects.PtSlot(file = 0, pt = 2)].values, expected)

def test_partial_recombine_mixed_events(logging_mixin, selector, raw_correlations):
    """ Test pooling while retaining the centrality. """
    recombined = mixed_events.partial_recombine_mixed_events(raw_correlations, selector)
    single = correlations_helpers.build_single_correlation(raw_correlations, selector)

    assert len(recombined) == len(selector.centrality) * 3
    key = analysis_objects.CentPtBin(file = 0, centrality = 1, pt = 2)
    expected = sum(h.values for k, h in single.items() if k.pt >= 2 and k.centrality == 1)
    np.testing.assert_allclose(recombined[key].values, expected)

def test_correction_skips_zero_entry_mixed_events(logging_mixin, selector, make_hist_2d):
    """ Test that we never divide by an empty mixed event. The slot remains empty. """
    signal = {
        analysis_objects.CentVzPtBin(file = 0, centrality = 0, vz = 0, pt = 1): make_hist_2d(values = 4.0),
    }
    mixed = {
        analysis_objects.CentVzPtBin(file = 0, centrality = 0, vz = 0, pt = 1): make_hist_2d(values = 0.0),
    }
    corrected = mixed_events.event_mixing_correction(
        signal, mixed, selector, params.MixingGranularity.per_cent_vz_pt,
    )

    assert corrected[analysis_objects.PtSlot(file = 0, pt = 1)] is None

def test_correction_per_cent_vz_pt(logging_mixin, selector, make_hist_2d):
    """ Test the correction sums the corrected slices over centrality and vz. """
    signal = {}
    mixed = {}
    for c in selector.centrality:
        for vz in selector.vz:
            key = analysis_objects.CentVzPtBin(file = 0, centrality = c, vz = vz, pt = 0)
            signal[key] = make_hist_2d(values = 4.0)
            mixed[key] = make_hist_2d(values = 2.0)

    corrected = mixed_events.event_mixing_correction(
        signal, mixed, selector, params.MixingGranularity.per_cent_vz_pt,
    )

    n_slices = len(selector.centrality) * len(selector.vz)
    result = corrected[analysis_objects.PtSlot(file = 0, pt = 0)]
    np.testing.assert_allclose(result.values, 2.0 * n_slices)
    assert result.metadata["stage"] == "corrected"
    # Pt bins without signal remain empty.
    assert corrected[analysis_objects.PtSlot(file = 0, pt = 1)] is None

def test_correction_falls_back_to_pooled_bucket(logging_mixin, selector, make_hist_2d):
    """ Test that a pooled correction uses the last bucket if the nominal bucket is empty. """
    signal = {
        analysis_objects.PtSlot(file = 0, pt = 1): make_hist_2d(values = 6.0),
        analysis_objects.PtSlot(file = 0, pt = 4): make_hist_2d(values = 6.0),
    }
    mixed = {
        analysis_objects.PtSlot(file = 0, pt = 0): make_hist_2d(values = 1.0),
        analysis_objects.PtSlot(file = 0, pt = 1): make_hist_2d(values = 0.0),
        analysis_objects.PtSlot(file = 0, pt = 2): make_hist_2d(values = 3.0),
    }
    corrected = mixed_events.event_mixing_correction(signal, mixed, selector, params.MixingGranularity.per_pt)

    # Bucket 1 is empty, so the pooled bucket is used instead.
    np.testing.assert_allclose(corrected[analysis_objects.PtSlot(file = 0, pt = 1)].values, 2.0)
    # High pt bins always use the pooled bucket.
    np.testing.assert_allclose(corrected[analysis_objects.PtSlot(file = 0, pt = 4)].values, 2.0)

def test_correction_per_cent_pt(logging_mixin, selector, make_hist_2d):
    """ Test the correction with mixed events which are differential in centrality. """
    signal = {
        analysis_objects.CentVzPtBin(file = 0, centrality = 1, vz = 2, pt = 3): make_hist_2d(values = 6.0),
    }
    mixed = {
        analysis_objects.CentPtBin(file = 0, centrality = 0, pt = 2): make_hist_2d(values = 1.0),
        analysis_objects.CentPtBin(file = 0, centrality = 1, pt = 2): make_hist_2d(values = 2.0),
    }
    corrected = mixed_events.event_mixing_correction(signal, mixed, selector, params.MixingGranularity.per_cent_pt)

    np.testing.assert_allclose(corrected[analysis_objects.PtSlot(file = 0, pt = 3)].values, 3.0)

def test_correction_requires_differential_signal(logging_mixin, selector, make_hist_2d):
    """ Test that the differential granularities require differential signal. """
    signal = {analysis_objects.PtSlot(file = 0, pt = 0): make_hist_2d(values = 1.0)}
    with pytest.raises(ValueError):
        mixed_events.event_mixing_correction(signal, {}, selector, params.MixingGranularity.per_cent_vz_pt)
