#!/usr/bin/env python

""" Analysis objects for the dijet-hadron analysis.

Contains the bins, the composite keys which identify each histogram in the processing chain,
and simple containers for extracted observables.

.. codeauthor:: Raymond Ehlers <raymond.ehlers@cern.ch>, Yale University
"""

from abc import ABC
from dataclasses import dataclass
import logging
import numpy as np
import re
from typing import Dict, Iterator, List, Optional, Tuple, TypeVar

from pachyderm import yaml

from dijet_hadron.base import params

# Setup logger
logger = logging.getLogger(__name__)

###################################
# Iterables for binning (with YAML)
###################################
@dataclass(frozen = True)
class AnalysisBin(ABC):
    """ Represent a binned quantity.

    Attributes:
        range: Min and maximum of the bin.
        name: Name of the analysis bin (based on the class name).
    """
    range: params.SelectedRange

    def __str__(self) -> str:
        return str(f"{self.name} Range: ({self.range.min}, {self.range.max})")

    @property
    def name(self) -> str:
        """ Convert class name into capital case. For example: 'TrackPtBin' -> 'Track Pt Bin'. """
        return re.sub("([a-z])([A-Z])", r"\1 \2", self.__class__.__name__)

@dataclass(frozen = True)
class PtBin(AnalysisBin):
    """ Represents an associated particle pt bin.

    Attributes:
        range: Min and maximum of the bin.
        bin: Pt bin index. Counting starts at 0, such that it can be used directly as an index.
        name: Name of the pt bin (based on the class name).
    """
    bin: int

    def __str__(self) -> str:
        """ Redefine the string to return the bin number. """
        return str(self.bin)

    @property
    def width(self) -> float:
        """ Width of the pt bin. """
        return self.range.max - self.range.min

    @property
    def label(self) -> str:
        """ Label of the pt range, such as "0.5-1.0". """
        return f"{self.range.min:.1f}-{self.range.max:.1f}"

class PtBins:
    """ Define an array of pt bins.

    .. code-block:: yaml

        - pt_bins: !PtBins [0.5, 1, 2]

    yields

    .. code-block:: python

        >>> pt_bins = [
        ...     PtBin(range = (0.5, 1), bin = 0),
        ...     PtBin(range = (1, 2), bin = 1),
        ... ]

    Note:
        This is just convenience function for YAML. It isn't round-trip because we would never use write back out.
        This just allow us to define the bins in a compact manner when we write YAML.
    """
    @classmethod
    def from_yaml(cls, constructor: yaml.Constructor, data: yaml.ruamel.yaml.nodes.SequenceNode) -> List[PtBin]:
        """ Convert input YAML list to set of ``PtBin``. """
        values = [constructor.construct_object(v) for v in data.value]
        return pt_bins_from_edges(values)

class PiScaledRange:
    """ Define a range in units of pi.

    It reads arrays registered under the tag ``!PiScaledRange``, such that ``!PiScaledRange [-0.5, 1.5]``
    yields ``params.SelectedRange(-np.pi / 2, 3 * np.pi / 2)``.
    """
    @classmethod
    def from_yaml(cls, constructor: yaml.Constructor, data: yaml.ruamel.yaml.nodes.SequenceNode) -> params.SelectedRange:
        """ Convert input YAML list into a ``SelectedRange``. """
        values = [constructor.construct_object(v) * np.pi for v in data.value]
        return params.SelectedRange(*values)

def pt_bins_from_edges(edges: List[float]) -> List[PtBin]:
    """ Create pt bins from a list of bin edges.

    Args:
        edges: Pt bin edges.
    Returns:
        The pt bins, with bin indices starting from 0.
    """
    bins = []
    for i, (val, val_next) in enumerate(zip(edges[:-1], edges[1:])):
        bins.append(PtBin(range = params.SelectedRange(min = val, max = val_next), bin = i))
    return bins

################
# Composite keys
################
# These identify each histogram throughout the processing chain. The file index is always
# included so that multiple inputs can be processed together.
@dataclass(frozen = True)
class RawBin:
    """ Identifies a raw 3D correlation from the input files. """
    file: int
    centrality: int
    vz: int
    aj: int

    def __str__(self) -> str:
        return f"aj_{self.aj}_cent_{self.centrality}_vz_{self.vz}"

@dataclass(frozen = True)
class CentVzPtBin:
    """ Identifies a reduced 2D correlation which is still differential in centrality and vz. """
    file: int
    centrality: int
    vz: int
    pt: int

    def __str__(self) -> str:
        return f"file_{self.file}_cent_{self.centrality}_vz_{self.vz}_pt_{self.pt}"

@dataclass(frozen = True)
class CentPtBin:
    """ Identifies a 2D correlation which is differential in centrality (but not vz). """
    file: int
    centrality: int
    pt: int

    def __str__(self) -> str:
        return f"file_{self.file}_cent_{self.centrality}_pt_{self.pt}"

@dataclass(frozen = True)
class PtSlot:
    """ Identifies a result for a particular file and pt bin (or mixed event pt bucket). """
    file: int
    pt: int

    def __str__(self) -> str:
        return f"file_{self.file}_pt_{self.pt}"

# Each output collection contains all of the expected keys. A value of None means that
# there was no data available for that key.
_K = TypeVar("_K")
_V = TypeVar("_V")
Slots = Dict[_K, Optional[_V]]

def filled_slots(slots: Dict[_K, Optional[_V]]) -> Iterator[Tuple[_K, _V]]:
    """ Iterate over only the slots which contain data.

    Args:
        slots: Collection of optional values.
    Returns:
        (key, value) for each slot where the value is not None.
    """
    for k, v in slots.items():
        if v is not None:
            yield k, v

####################
# Basic data classes
####################
@dataclass
class ExtractedObservable:
    """ For extracted observable such as widths or yields. """
    value: float
    error: float

@dataclass
class OutputWrapper:
    """ Simple wrapper around the output location.

    Attributes:
        output_prefix: File path to where files should be saved.
    """
    output_prefix: str
