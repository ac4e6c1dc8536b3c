#!/usr/bin/env python

""" Dijet-hadron analysis parameters.

Also contains methods to access that information.

.. codeauthor:: Raymond Ehlers <raymond.ehlers@cern.ch>, Yale University
"""

from dataclasses import dataclass
import enum
import logging
from typing import Iterator, Tuple, Union

from pachyderm import yaml

logger = logging.getLogger(__name__)

#########################
## Helpers and containers
#########################
@dataclass(frozen = True)
class SelectedRange:
    """ Helper for selected ranges. """
    min: float
    max: float

    def __iter__(self) -> Iterator[Tuple[str, float]]:
        for k, v in vars(self).items():
            yield k, v

    @classmethod
    def from_yaml(cls, constructor: yaml.Constructor,
                  data: Union[yaml.ruamel.yaml.nodes.MappingNode, yaml.ruamel.yaml.nodes.SequenceNode]) -> "SelectedRange":
        """ Decode YAML representer.

        Expected block is of the form:

        .. code-block:: yaml

            val: !SelectedRange [1, 5]

        or alternatively (which will be used when YAML is dumping the object):

        .. code-block:: yaml

            val: !SelectedRange
                min: 1
                max: 5

        which will yield:

        .. code-block:: python

            >>> val == SelectedRange(min = 1, max = 5)
        """
        # We've just passed a list, so just reconstruct it assuming that the arguments are in order.
        if isinstance(data, yaml.ruamel.yaml.nodes.SequenceNode):
            values = [constructor.construct_object(v) for v in data.value]
            return cls(*values)

        # Otherwise, we should have received a MappingNode, which is what YAML writes.
        # NOTE: Just calling ``dict(...)`` would not be sufficient because the nodes wouldn't be converted
        arguments = {
            constructor.construct_object(key_node): constructor.construct_object(value_node)
            for key_node, value_node in data.value
        }
        return cls(**arguments)

@dataclass(frozen = True)
class IndexRange:
    """ Inclusive range of bin indices, such as the centrality bins which should be processed.

    Attributes:
        min: First index in the range.
        max: Last index in the range (inclusive).
    """
    min: int
    max: int

    def __iter__(self) -> Iterator[int]:
        """ Iterate over all indices in the range (including the max). """
        return iter(range(self.min, self.max + 1))

    def __len__(self) -> int:
        return max(self.max - self.min + 1, 0)

    def __contains__(self, value: object) -> bool:
        return isinstance(value, int) and self.min <= value <= self.max

    @classmethod
    def from_yaml(cls, constructor: yaml.Constructor,
                  data: Union[yaml.ruamel.yaml.nodes.MappingNode, yaml.ruamel.yaml.nodes.SequenceNode]) -> "IndexRange":
        """ Decode YAML representer.

        Expected block is of the form:

        .. code-block:: yaml

            val: !IndexRange [0, 9]

        The mapping form (with ``min`` and ``max`` keys) is also supported.
        """
        if isinstance(data, yaml.ruamel.yaml.nodes.SequenceNode):
            values = [int(constructor.construct_object(v)) for v in data.value]
            return cls(*values)

        arguments = {
            constructor.construct_object(key_node): int(constructor.construct_object(value_node))
            for key_node, value_node in data.value
        }
        return cls(**arguments)

#########
# Classes
#########
class JetType(enum.Enum):
    """ Type of the trigger jet of the dijet pair.

    The value is the prefix used to name the histograms in the input files.
    """
    leading = "lead"
    subleading = "sub"

    def __str__(self) -> str:
        """ Return the name of the jet type. """
        return self.name

    # Handle YAML serialization
    to_yaml = classmethod(yaml.enum_to_yaml)
    from_yaml = classmethod(yaml.enum_from_yaml)

class CorrelationSource(enum.Enum):
    """ Source of the correlation, either same event (signal) or mixed events.

    The value is the prefix which disambiguates the histogram names in the input files.
    """
    signal = ""
    mixed = "mix_"

    def __str__(self) -> str:
        """ Return the name of the source. """
        return self.name

    @property
    def short_name(self) -> str:
        """ Short name used when naming histograms derived from this source. """
        return "corr" if self == CorrelationSource.signal else "mix"

    # Handle YAML serialization
    to_yaml = classmethod(yaml.enum_to_yaml)
    from_yaml = classmethod(yaml.enum_from_yaml)

class AsymmetrySelection(enum.Enum):
    """ Selection of events based on the dijet momentum asymmetry.

    Values are the tags which are appended to the histogram names.
    """
    all = ""
    balanced = "low"
    unbalanced = "high"

    def __str__(self) -> str:
        """ Returns the name of the selection. """
        return self.name

    # Handle YAML serialization
    to_yaml = classmethod(yaml.enum_to_yaml)
    from_yaml = classmethod(yaml.enum_from_yaml)

class MixingGranularity(enum.Enum):
    """ How differential the mixed event baseline is when correcting the signal.

    - ``per_cent_vz_pt``: One mixed event for each (centrality, vz, pt) bin. No pooling is applied.
    - ``per_cent_pt``: One mixed event for each (centrality, pt bucket). The high pt bins are pooled.
    - ``per_pt``: One mixed event for each pt bucket. The high pt bins are pooled.
    """
    per_cent_vz_pt = "per_cent_vz_pt"
    per_cent_pt = "per_cent_pt"
    per_pt = "per_pt"

    def __str__(self) -> str:
        """ Returns the name of the granularity. """
        return self.name

    @property
    def pooled(self) -> bool:
        """ True if the high pt bins are pooled into a common bucket. """
        return self != MixingGranularity.per_cent_vz_pt

    # Handle YAML serialization
    to_yaml = classmethod(yaml.enum_to_yaml)
    from_yaml = classmethod(yaml.enum_from_yaml)
