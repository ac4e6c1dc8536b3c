#!/usr/bin/env python

""" Shared fixtures for the dijet-hadron tests.

.. codeauthor:: Raymond Ehlers <raymond.ehlers@cern.ch>, Yale University
"""

import logging
import numpy as np
import pytest
from typing import Any, Callable, Dict

from dijet_hadron.base import analysis_objects
from dijet_hadron.base import binning
from dijet_hadron.base import histogram_nd
from dijet_hadron.base import params

# Setup logger
logger = logging.getLogger(__name__)

# Binning of the test correlations.
ETA_EDGES = np.linspace(-1.6, 1.6, 17)
PHI_EDGES = np.linspace(-np.pi / 2, 3 * np.pi / 2, 37)
PT_EDGES = np.array([0.5, 0.75, 1.0, 1.5, 2.0, 3.0, 4.0, 6.0])

@pytest.fixture
def logging_mixin(caplog):
    """ Logging mixin to capture logging messages from modules.

    It logs at the debug level, which is probably most useful for when a test fails.
    """
    caplog.set_level(logging.DEBUG)

@pytest.fixture
def selector() -> binning.BinSelector:
    """ Bin selector with a reduced number of centrality, vz, and aj bins. """
    return binning.BinSelector(
        centrality = params.IndexRange(0, 1),
        vz = params.IndexRange(0, 2),
        aj = params.IndexRange(0, 3),
    )

@pytest.fixture
def make_hist_3d() -> Callable[..., histogram_nd.Histogram3D]:
    """ Create a 3D (delta eta, delta phi, pt) histogram with the test binning. """
    def func(values: Any = None, seed: int = 1234, name: str = "") -> histogram_nd.Histogram3D:
        shape = (len(ETA_EDGES) - 1, len(PHI_EDGES) - 1, len(PT_EDGES) - 1)
        if values is None:
            values = np.random.RandomState(seed).poisson(lam = 10, size = shape).astype(np.float64)
        else:
            values = np.broadcast_to(np.asarray(values, dtype = np.float64), shape).copy()
        return histogram_nd.Histogram3D(
            bin_edges = [ETA_EDGES, PHI_EDGES, PT_EDGES],
            values = values,
            errors_squared = np.array(values, copy = True),
            entries = float(np.sum(values)),
            metadata = {"name": name},
        )
    return func

@pytest.fixture
def make_hist_2d() -> Callable[..., histogram_nd.Histogram2D]:
    """ Create a 2D (delta eta, delta phi) histogram with the test binning. """
    def func(values: Any = 1.0, entries: float = None, name: str = "") -> histogram_nd.Histogram2D:
        shape = (len(ETA_EDGES) - 1, len(PHI_EDGES) - 1)
        values = np.broadcast_to(np.asarray(values, dtype = np.float64), shape).copy()
        return histogram_nd.Histogram2D(
            bin_edges = [ETA_EDGES, PHI_EDGES],
            values = values,
            errors_squared = np.abs(values),
            entries = float(np.sum(values)) if entries is None else entries,
            metadata = {"name": name},
        )
    return func

@pytest.fixture
def make_event_counts() -> Callable[..., histogram_nd.Histogram3D]:
    """ Create an event count histogram with (centrality, vz, aj) axes. """
    def func(selector: binning.BinSelector, events_per_bin: float = 10.0) -> histogram_nd.Histogram3D:
        shape = (len(selector.centrality), len(selector.vz), len(selector.aj))
        values = np.full(shape, events_per_bin)
        return histogram_nd.Histogram3D(
            bin_edges = [np.arange(n + 1, dtype = np.float64) for n in shape],
            values = values,
            errors_squared = np.array(values, copy = True),
            entries = float(np.sum(values)),
            metadata = {"name": "nevents"},
        )
    return func

@pytest.fixture
def raw_correlations(selector, make_hist_3d) -> Dict[analysis_objects.RawBin, histogram_nd.Histogram3D]:
    """ Raw correlations for each (centrality, vz, aj) bin of a single file. """
    return {
        key: make_hist_3d(seed = i, name = str(key))
        for i, key in enumerate(selector.raw_bins([0]))
    }
