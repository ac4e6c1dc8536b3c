#!/usr/bin/env python

""" Numpy based 2D and 3D histograms.

These follow the conventions of ``pachyderm.histogram.Histogram1D``, and all projections return
``Histogram1D`` objects so that they can be used directly with ``pachyderm.fit``. Projections
never modify the projected histogram. Instead, the selected bins are passed explicitly.

Bins are indexed from 0. Unlike ROOT, there are no underflow or overflow bins.

.. codeauthor:: Raymond Ehlers <raymond.ehlers@cern.ch>, Yale University
"""

import copy
from dataclasses import dataclass, field
import logging
import numpy as np
from typing import Any, Dict, List, Optional, Sequence, Tuple, TypeVar

from pachyderm import histogram

logger = logging.getLogger(__name__)

# Small offset from the bin edges when finding bins.
epsilon = 1e-5

def find_bin(bin_edges: np.ndarray, value: float) -> int:
    """ Find the bin which contains the value, for use as a lower boundary.

    Values which sit exactly on a bin edge are assigned to the bin above the edge. The value
    is shifted up by epsilon to avoid floating point issues with the stored edges. Values outside
    of the axis are clipped to the first or last bin.

    .. code-block:: python

        >>> edges = np.linspace(-1, 1, 11)
        >>> find_bin(edges, -0.6)
        2
        >>> find_bin(edges, -0.5)
        2

    Args:
        bin_edges: Bin edges of the axis.
        value: Value to be located.
    Returns:
        Index of the bin containing the value.
    """
    index = int(np.searchsorted(bin_edges, value + epsilon, side = "right")) - 1
    return int(np.clip(index, 0, len(bin_edges) - 2))

def find_upper_bin(bin_edges: np.ndarray, value: float) -> int:
    """ Find the bin which contains the value, for use as an upper boundary.

    Values which sit exactly on a bin edge are assigned to the bin below the edge, so that the upper
    edge of a range doesn't include the following bin.

    .. code-block:: python

        >>> edges = np.linspace(-1, 1, 11)
        >>> find_upper_bin(edges, 0.6)
        7
        >>> find_upper_bin(edges, 0.5)
        7

    Args:
        bin_edges: Bin edges of the axis.
        value: Value to be located.
    Returns:
        Index of the bin containing the value.
    """
    index = int(np.searchsorted(bin_edges, value - epsilon, side = "right")) - 1
    return int(np.clip(index, 0, len(bin_edges) - 2))

def find_bin_range(bin_edges: np.ndarray, min_value: float, max_value: float) -> Tuple[int, int]:
    """ Find the (inclusive) bin range which corresponds to the given values. """
    return find_bin(bin_edges, min_value), find_upper_bin(bin_edges, max_value)

_T = TypeVar("_T", bound = "HistogramND")

@dataclass
class HistogramND:
    """ Base class for numpy based histograms.

    Attributes:
        bin_edges: Bin edges for each axis.
        values: Bin contents. The shape must match the number of bins on each axis.
        errors_squared: Squared errors on the bin contents.
        entries: Number of entries in the histogram.
        metadata: Any additional information about the histogram, such as the name and key.
    """
    bin_edges: List[np.ndarray]
    values: np.ndarray
    errors_squared: np.ndarray
    entries: float = 0
    metadata: Dict[str, Any] = field(default_factory = dict)

    _n_dim = 0

    def __post_init__(self) -> None:
        """ Perform validation on the input arrays. """
        self.bin_edges = [np.array(edges, dtype = np.float64) for edges in self.bin_edges]
        self.values = np.array(self.values, dtype = np.float64)
        self.errors_squared = np.array(self.errors_squared, dtype = np.float64)

        if len(self.bin_edges) != self._n_dim:
            raise ValueError(f"Expected {self._n_dim} axes, but received {len(self.bin_edges)}.")
        expected_shape = tuple(len(edges) - 1 for edges in self.bin_edges)
        if self.values.shape != expected_shape:
            raise ValueError(f"Values shape {self.values.shape} doesn't match bin edges shape {expected_shape}.")
        if self.errors_squared.shape != expected_shape:
            raise ValueError(
                f"Errors squared shape {self.errors_squared.shape} doesn't match bin edges shape {expected_shape}."
            )

    @property
    def name(self) -> str:
        """ Name of the histogram, stored in the metadata. """
        return self.metadata.get("name", "")

    @property
    def errors(self) -> np.ndarray:
        return np.sqrt(self.errors_squared)

    @property
    def bin_widths(self) -> List[np.ndarray]:
        """ Bin widths along each axis. """
        return [edges[1:] - edges[:-1] for edges in self.bin_edges]

    @property
    def bin_centers(self) -> List[np.ndarray]:
        """ Bin centers along each axis. """
        return [(edges[1:] + edges[:-1]) / 2 for edges in self.bin_edges]

    @property
    def n_bins(self) -> Tuple[int, ...]:
        return self.values.shape

    def sum(self) -> float:
        """ Sum of all bin contents. """
        return float(np.sum(self.values))

    def copy(self: _T) -> _T:
        """ Copies the object.

        In principle, this should be the same as ``copy.deepcopy(...)``, at least when this was written in
        Feb 2019. But ``deepcopy(...)`` often seems to have very bad performance (and perhaps does additional
        implicit copying), so we copy these numpy arrays by hand.
        """
        return type(self)(
            bin_edges = [np.array(edges, copy = True) for edges in self.bin_edges],
            values = np.array(self.values, copy = True),
            errors_squared = np.array(self.errors_squared, copy = True),
            entries = self.entries,
            metadata = copy.deepcopy(self.metadata),
        )

    def _check_binning(self, other: "HistogramND") -> None:
        """ Ensure that the binning of two histograms is identical so they can be combined. """
        if type(self) is not type(other):
            raise TypeError(f"Cannot combine {type(self).__name__} with {type(other).__name__}.")
        for axis, (edges, other_edges) in enumerate(zip(self.bin_edges, other.bin_edges)):
            if len(edges) != len(other_edges) or not np.allclose(edges, other_edges):
                raise ValueError(
                    f"Binning on axis {axis} is different! Cannot combine {self.name} and {other.name}."
                )

    def __add__(self: _T, other: _T) -> _T:
        """ Handles ``a = b + c.`` """
        new = self.copy()
        new += other
        return new

    def __iadd__(self: _T, other: _T) -> _T:
        """ Handles ``a += b``. """
        self._check_binning(other)
        self.values = self.values + other.values
        self.errors_squared = self.errors_squared + other.errors_squared
        self.entries = self.entries + other.entries
        return self

    def __sub__(self: _T, other: _T) -> _T:
        """ Handles ``a = b - c``. """
        new = self.copy()
        new -= other
        return new

    def __isub__(self: _T, other: _T) -> _T:
        """ Handles ``a -= b``. """
        self._check_binning(other)
        self.values = self.values - other.values
        self.errors_squared = self.errors_squared + other.errors_squared
        return self

    def __mul__(self: _T, other: float) -> _T:
        """ Handles ``a = b * c`` for a scalar ``c``. """
        new = self.copy()
        new.scale(other)
        return new

    __rmul__ = __mul__

    def __truediv__(self: _T, other: _T) -> _T:
        """ Handles ``a = b / c``.

        Bins where the denominator is 0 are set to 0 (with 0 error). For the other bins, the errors
        are propagated as uncorrelated: ``err_c^2 = (err_a^2 * b^2 + err_b^2 * a^2) / b^4``.
        The number of entries is taken from the numerator.
        """
        self._check_binning(other)
        new = self.copy()
        a, b = self.values, other.values
        nonzero = b != 0
        values = np.zeros_like(a)
        errors_squared = np.zeros_like(a)
        values[nonzero] = a[nonzero] / b[nonzero]
        errors_squared[nonzero] = (
            self.errors_squared[nonzero] * b[nonzero] ** 2 + other.errors_squared[nonzero] * a[nonzero] ** 2
        ) / b[nonzero] ** 4
        new.values = values
        new.errors_squared = errors_squared
        return new

    def scale(self, factor: float) -> None:
        """ Scale the histogram in place by the given factor. Entries are not modified. """
        self.values = self.values * factor
        self.errors_squared = self.errors_squared * factor ** 2

    @classmethod
    def from_existing_hist(cls: Any, hist: Any, metadata: Optional[Dict[str, Any]] = None) -> Any:
        """ Convert an existing histogram into a numpy based histogram.

        Both ``uproot`` histograms and existing objects of this type are supported.

        Args:
            hist: Histogram to be converted.
            metadata: Additional metadata to store with the histogram.
        Returns:
            The converted histogram.
        """
        if metadata is None:
            metadata = {}
        if isinstance(hist, HistogramND):
            new = hist.copy()
            new.metadata.update(metadata)
            return new

        # Assume that it's an uproot histogram.
        bin_edges = [axis.edges(flow = False) for axis in hist.axes]
        values = hist.values(flow = False)
        errors_squared = hist.variances(flow = False)
        entries = hist.member("fEntries")
        return cls(
            bin_edges = bin_edges, values = values, errors_squared = errors_squared,
            entries = entries, metadata = metadata,
        )

    def _selected_bins(self, axis: int, min_bin: Optional[int], max_bin: Optional[int]) -> slice:
        """ Convert an inclusive bin range into a slice, defaulting to the full axis. """
        n_bins = len(self.bin_edges[axis]) - 1
        min_bin = 0 if min_bin is None else min_bin
        max_bin = n_bins - 1 if max_bin is None else max_bin
        if min_bin < 0 or max_bin >= n_bins:
            raise ValueError(f"Bin range [{min_bin}, {max_bin}] is outside of axis {axis} with {n_bins} bins.")
        return slice(min_bin, max_bin + 1)

    def integral(self, bin_ranges: Optional[Sequence[Optional[Tuple[int, int]]]] = None) -> float:
        """ Integral (sum of contents) over the given inclusive bin ranges.

        Args:
            bin_ranges: Inclusive (min, max) bin range for each axis. None selects the full axis.
        Returns:
            Sum of the bin contents in the selected range.
        """
        if bin_ranges is None:
            bin_ranges = [None] * self._n_dim
        selection = tuple(
            self._selected_bins(axis, *(r if r is not None else (None, None)))
            for axis, r in enumerate(bin_ranges)
        )
        return float(np.sum(self.values[selection]))

def _project_to_1d(hist: HistogramND, keep_axis: int, selection: Tuple[slice, ...], name: str) -> histogram.Histogram1D:
    """ Project a histogram onto a single axis after restricting the other axes. """
    sum_axes = tuple(axis for axis in range(hist._n_dim) if axis != keep_axis)
    y = np.sum(hist.values[selection], axis = sum_axes)
    errors_squared = np.sum(hist.errors_squared[selection], axis = sum_axes)
    metadata = copy.deepcopy(hist.metadata)
    metadata["name"] = name
    metadata["entries"] = float(np.sum(y))
    kept = selection[keep_axis]
    bin_edges = hist.bin_edges[keep_axis][kept.start:(None if kept.stop is None else kept.stop + 1)]
    return histogram.Histogram1D(
        bin_edges = bin_edges,
        y = y, errors_squared = errors_squared, metadata = metadata,
    )

@dataclass
class Histogram2D(HistogramND):
    """ 2D histogram. For correlations, the x axis is delta eta and the y axis is delta phi. """
    _n_dim = 2

    @property
    def x_bin_edges(self) -> np.ndarray:
        return self.bin_edges[0]

    @property
    def y_bin_edges(self) -> np.ndarray:
        return self.bin_edges[1]

    def project_x(self, y_min_bin: Optional[int] = None, y_max_bin: Optional[int] = None,
                  name: str = "") -> histogram.Histogram1D:
        """ Project onto the x axis, restricting the y axis to the inclusive bin range.

        Args:
            y_min_bin: Lowest y bin to include. Default: first bin.
            y_max_bin: Highest y bin to include. Default: last bin.
            name: Name of the projection. Default: "{name}_px".
        Returns:
            The projection.
        """
        selection = (slice(None), self._selected_bins(1, y_min_bin, y_max_bin))
        return _project_to_1d(self, keep_axis = 0, selection = selection, name = name or f"{self.name}_px")

    def project_y(self, x_min_bin: Optional[int] = None, x_max_bin: Optional[int] = None,
                  name: str = "") -> histogram.Histogram1D:
        """ Project onto the y axis, restricting the x axis to the inclusive bin range.

        Args:
            x_min_bin: Lowest x bin to include. Default: first bin.
            x_max_bin: Highest x bin to include. Default: last bin.
            name: Name of the projection. Default: "{name}_py".
        Returns:
            The projection.
        """
        selection = (self._selected_bins(0, x_min_bin, x_max_bin), slice(None))
        return _project_to_1d(self, keep_axis = 1, selection = selection, name = name or f"{self.name}_py")

@dataclass
class Histogram3D(HistogramND):
    """ 3D histogram. For correlations, the axes are (delta eta, delta phi, pt). """
    _n_dim = 3

    def project_xy(self, z_min_bin: Optional[int] = None, z_max_bin: Optional[int] = None,
                   name: str = "") -> Histogram2D:
        """ Project onto the (x, y) plane, restricting the z axis to the inclusive bin range.

        The entries of the projection are the sum of the projected contents.

        Args:
            z_min_bin: Lowest z bin to include. Default: first bin.
            z_max_bin: Highest z bin to include. Default: last bin.
            name: Name of the projection. Default: "{name}_xy".
        Returns:
            The projection.
        """
        selection = (slice(None), slice(None), self._selected_bins(2, z_min_bin, z_max_bin))
        values = np.sum(self.values[selection], axis = 2)
        metadata = copy.deepcopy(self.metadata)
        metadata["name"] = name or f"{self.name}_xy"
        return Histogram2D(
            bin_edges = [self.bin_edges[0], self.bin_edges[1]],
            values = values,
            errors_squared = np.sum(self.errors_squared[selection], axis = 2),
            entries = float(np.sum(values)),
            metadata = metadata,
        )

    def project_z(self, z_min_bin: Optional[int] = None, z_max_bin: Optional[int] = None,
                  name: str = "") -> histogram.Histogram1D:
        """ Project onto the z axis over the full (x, y) range.

        Args:
            z_min_bin: Lowest z bin to include. Default: first bin.
            z_max_bin: Highest z bin to include. Default: last bin.
            name: Name of the projection. Default: "{name}_z".
        Returns:
            The projection.
        """
        selection = (slice(None), slice(None), self._selected_bins(2, z_min_bin, z_max_bin))
        return _project_to_1d(self, keep_axis = 2, selection = selection, name = name or f"{self.name}_z")
