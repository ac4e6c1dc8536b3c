#!/usr/bin/env python

""" Binning geometry and selection ranges for the dijet-hadron analysis.

The ``BinSelector`` is the single source of truth for how the input histograms are binned and
which ranges are selected during processing. It is created once from the configuration and then
only read.

.. codeauthor:: Raymond Ehlers <raymond.ehlers@cern.ch>, Yale University
"""

from dataclasses import dataclass, field
import logging
import numpy as np
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from dijet_hadron.base import analysis_objects
from dijet_hadron.base import params

logger = logging.getLogger(__name__)

def _default_pt_bins() -> List[analysis_objects.PtBin]:
    return analysis_objects.pt_bins_from_edges([0.5, 1.0, 2.0, 3.0, 4.0, 6.0])

@dataclass(frozen = True)
class BinSelector:
    """ Binning geometry and selection ranges.

    Attributes:
        centrality: Inclusive range of centrality bins to process.
        vz: Inclusive range of z vertex bins to process.
        aj: Inclusive range of dijet asymmetry bins to process.
        pt_bins: Associated particle pt bins.
        jet_radius: Jet resolution parameter. It determines the delta eta acceptance.
        phi_projection_eta_bound: Delta eta range used when projecting onto delta phi.
        phi_projection_subtraction_regions: Four delta eta edges which define the near and far
            regions for the near-minus-far subtraction.
        phi_projection_subtraction_regions_extended: Extended variant of the near-minus-far edges.
        eta_projection_phi_bound: Delta phi range used when projecting onto delta eta.
        eta_projection_phi_bound_extended: Extended variant of the delta phi range.
        eta_fit_range: Fit range for the delta eta background fit.
        phi_fit_range: Fit range for the delta phi background fit.
        phi_corrected_fit_range: Fit range for the restricted (near-side only) delta phi fit.
        phi_projection_integral_range: Delta phi range for integrating the delta phi yield.
        eta_projection_integral_range: Delta eta range for integrating the delta eta yield.
        mixing_pooling_threshold: Mixed event pt bins above this index are pooled into this bucket.
        background_fit_max_pt_bin: Background subtraction is only performed for pt bins below this index.
        narrow_width_seed: Width seed used in the delta phi background fit for selected slots.
        narrow_width_seed_slots: (file, pt bin) slots which use the narrow width seed.
        event_count_asymmetry_axis: Axis of the event count histogram which contains the asymmetry bins.
    """
    centrality: params.IndexRange = params.IndexRange(0, 1)
    vz: params.IndexRange = params.IndexRange(0, 9)
    aj: params.IndexRange = params.IndexRange(0, 19)
    pt_bins: List[analysis_objects.PtBin] = field(default_factory = _default_pt_bins)
    jet_radius: float = 0.4
    phi_projection_eta_bound: params.SelectedRange = params.SelectedRange(-0.6, 0.6)
    phi_projection_subtraction_regions: Tuple[float, ...] = (-1.2, -0.6, 0.6, 1.2)
    phi_projection_subtraction_regions_extended: Tuple[float, ...] = (-1.6, -0.8, 0.8, 1.6)
    eta_projection_phi_bound: params.SelectedRange = params.SelectedRange(-np.pi / 2, np.pi / 2)
    eta_projection_phi_bound_extended: params.SelectedRange = params.SelectedRange(-np.pi / 2, np.pi / 2)
    eta_fit_range: params.SelectedRange = params.SelectedRange(-1.6, 1.6)
    phi_fit_range: params.SelectedRange = params.SelectedRange(-np.pi / 2, 3 * np.pi / 2)
    phi_corrected_fit_range: params.SelectedRange = params.SelectedRange(-np.pi / 2, np.pi / 2)
    phi_projection_integral_range: params.SelectedRange = params.SelectedRange(-0.6, 0.6)
    eta_projection_integral_range: params.SelectedRange = params.SelectedRange(-0.6, 0.6)
    mixing_pooling_threshold: int = 2
    background_fit_max_pt_bin: int = 4
    narrow_width_seed: float = 0.4
    narrow_width_seed_slots: Tuple[Tuple[int, int], ...] = ((0, 1),)
    event_count_asymmetry_axis: int = 2

    def __post_init__(self) -> None:
        """ Validate the binning. """
        for name in ["centrality", "vz", "aj"]:
            index_range = getattr(self, name)
            if index_range.min < 0 or index_range.max < index_range.min:
                raise ValueError(index_range, f"Invalid {name} index range.")
        if len(self.pt_bins) == 0:
            raise ValueError(self.pt_bins, "Must provide at least one pt bin.")
        for pt_bin in self.pt_bins:
            if pt_bin.range.max <= pt_bin.range.min:
                raise ValueError(pt_bin, f"Pt bin {pt_bin.bin} has max <= min.")
        for name in ["phi_projection_subtraction_regions", "phi_projection_subtraction_regions_extended"]:
            edges = getattr(self, name)
            if len(edges) != 4:
                raise ValueError(edges, f"Must provide exactly 4 edges for {name}.")
            if np.any(np.diff(edges) <= 0):
                raise ValueError(edges, f"Edges for {name} must be strictly increasing.")
        if self.jet_radius <= 0 or self.jet_radius >= 2.0:
            raise ValueError(self.jet_radius, "Jet radius must be between 0 and 2.")
        if self.mixing_pooling_threshold < 0:
            raise ValueError(self.mixing_pooling_threshold, "Mixed event pooling threshold must be non-negative.")
        if self.event_count_asymmetry_axis not in [0, 1, 2]:
            raise ValueError(self.event_count_asymmetry_axis, "Event count asymmetry axis must be 0, 1, or 2.")

    @classmethod
    def from_config(cls, config: Mapping[str, Any], jet_radius: Optional[float] = None) -> "BinSelector":
        """ Create the selector from the ``binning`` block of the YAML configuration.

        Any value which isn't specified in the configuration takes the default value.

        Args:
            config: Binning configuration.
            jet_radius: Jet radius. If specified, it takes precedence over the configuration.
        Returns:
            The bin selector.
        """
        arguments: Dict[str, Any] = dict(config)
        if jet_radius is not None:
            arguments["jet_radius"] = jet_radius
        # Convert sequence based values into the expected types.
        for name in ["centrality", "vz", "aj"]:
            if name in arguments and not isinstance(arguments[name], params.IndexRange):
                arguments[name] = params.IndexRange(*arguments[name])
        if "pt_bins" in arguments and not all(isinstance(v, analysis_objects.PtBin) for v in arguments["pt_bins"]):
            arguments["pt_bins"] = analysis_objects.pt_bins_from_edges(list(arguments["pt_bins"]))
        for name in ["phi_projection_subtraction_regions", "phi_projection_subtraction_regions_extended"]:
            if name in arguments:
                arguments[name] = tuple(float(v) for v in arguments[name])
        if "narrow_width_seed_slots" in arguments:
            arguments["narrow_width_seed_slots"] = tuple(
                (int(file_index), int(pt_index)) for file_index, pt_index in arguments["narrow_width_seed_slots"]
            )
        for name, value in arguments.items():
            if isinstance(value, Sequence) and len(value) == 2 and name.endswith(("_bound", "_range", "_bound_extended")):
                arguments[name] = params.SelectedRange(*value)

        logger.debug(f"Creating bin selector with arguments: {arguments}")
        return cls(**arguments)

    @property
    def n_pt_bins(self) -> int:
        return len(self.pt_bins)

    def pt_bin_width(self, pt_index: int) -> float:
        """ Width of the pt bin with the given index. """
        return self.pt_bins[pt_index].width

    def pt_bin_label(self, pt_index: int) -> str:
        """ Label of the pt bin with the given index, such as "0.5-1.0". """
        return self.pt_bins[pt_index].label

    @property
    def pt_range(self) -> params.SelectedRange:
        """ Full pt range covered by the pt bins. """
        return params.SelectedRange(self.pt_bins[0].range.min, self.pt_bins[-1].range.max)

    @property
    def delta_eta_acceptance(self) -> params.SelectedRange:
        """ Delta eta acceptance, which depends on the jet radius. """
        return params.SelectedRange(self.jet_radius - 2.0, 2.0 - self.jet_radius)

    @property
    def n_mixing_buckets(self) -> int:
        """ Number of pt buckets used for the pooled mixed events. """
        return min(self.mixing_pooling_threshold + 1, self.n_pt_bins)

    def mixing_bucket(self, pt_index: int) -> int:
        """ Mixed event pt bucket corresponding to a pt bin.

        Pt bins below the pooling threshold map 1:1, while all others are pooled into the last bucket.
        """
        return min(pt_index, self.n_mixing_buckets - 1)

    def uses_narrow_width_seed(self, file_index: int, pt_index: int) -> bool:
        """ True if the delta phi background fit for this slot should be seeded with narrow widths. """
        return (file_index, pt_index) in self.narrow_width_seed_slots

    def raw_bins(self, file_indices: Iterable[int]) -> Iterator[analysis_objects.RawBin]:
        """ Iterate over all raw input bins for the given files. """
        for file_index in file_indices:
            for centrality in self.centrality:
                for vz in self.vz:
                    for aj in self.aj:
                        yield analysis_objects.RawBin(file = file_index, centrality = centrality, vz = vz, aj = aj)

    def pt_slots(self, file_indices: Iterable[int]) -> List[analysis_objects.PtSlot]:
        """ All (file, pt bin) slots for the given files. """
        return [
            analysis_objects.PtSlot(file = file_index, pt = pt_bin.bin)
            for file_index in file_indices for pt_bin in self.pt_bins
        ]

    def cent_vz_pt_bins(self, file_indices: Iterable[int]) -> List[analysis_objects.CentVzPtBin]:
        """ All (file, centrality, vz, pt bin) keys for the given files. """
        return [
            analysis_objects.CentVzPtBin(file = file_index, centrality = centrality, vz = vz, pt = pt_bin.bin)
            for file_index in file_indices
            for centrality in self.centrality
            for vz in self.vz
            for pt_bin in self.pt_bins
        ]
