#!/usr/bin/env python

""" Load the raw correlation and mixed event histograms from the input files.

.. codeauthor:: Raymond Ehlers <raymond.ehlers@cern.ch>, Yale University
"""

from contextlib import ExitStack
from dataclasses import dataclass, field
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, Union

import uproot

from dijet_hadron.base import analysis_objects
from dijet_hadron.base import binning
from dijet_hadron.base import histogram_nd
from dijet_hadron.base import params

logger = logging.getLogger(__name__)

# An input is either a path to a file or an already opened mapping from histogram name to histogram.
InputFile = Union[str, Path, Mapping[str, Any]]

class LoadError(Exception):
    """ Raised when a required histogram is not available in an input file.

    This indicates that the wrong type of file was provided, so it can't be recovered.
    """
    def __init__(self, filename: str, hist_name: str, *args: Any):
        self.filename = filename
        self.hist_name = hist_name
        super().__init__(f"Could not retrieve hist {hist_name} from {filename}.", *args)

@dataclass
class InputHistograms:
    """ Histograms loaded from a set of input files.

    Attributes:
        source: Whether the histograms are from the same events (signal) or from mixed events.
        leading: Raw leading jet correlations. Always available.
        subleading: Raw subleading jet correlations. Slots are None when not available in the input.
        event_counts: Number of events histogram for each file.
    """
    source: params.CorrelationSource
    leading: Dict[analysis_objects.RawBin, histogram_nd.Histogram3D] = field(default_factory = dict)
    subleading: analysis_objects.Slots[analysis_objects.RawBin, histogram_nd.Histogram3D] = field(default_factory = dict)
    event_counts: Dict[int, histogram_nd.Histogram3D] = field(default_factory = dict)

    def correlations(self, jet_type: params.JetType) -> Mapping[analysis_objects.RawBin, Optional[histogram_nd.Histogram3D]]:
        """ Retrieve the correlations for the given jet type. """
        return self.leading if jet_type == params.JetType.leading else self.subleading

    @property
    def n_files(self) -> int:
        return len(self.event_counts)

def input_hist_name(source: params.CorrelationSource, jet_type: params.JetType, key: analysis_objects.RawBin) -> str:
    """ Name of a raw correlation in the input file, such as ``mix_lead_aj_3_cent_0_vz_5``. """
    return f"{source.value}{jet_type.value}_{key}"

def _retrieve_hist(f: Mapping[str, Any], hist_name: str) -> Optional[Any]:
    """ Retrieve a histogram from an open file, returning None if it's not available. """
    try:
        return f[hist_name]
    except (KeyError, uproot.KeyInFileError):
        return None

def _load(files: Sequence[InputFile], selector: binning.BinSelector,
          source: params.CorrelationSource, label: str) -> InputHistograms:
    """ Load the correlations from the input files.

    Args:
        files: Input files.
        selector: Binning of the analysis.
        source: Source of the correlations.
        label: Label of the analysis. It is used to ensure that each hist name is unique.
    Returns:
        The loaded histograms.
    Raises:
        LoadError: If a leading jet correlation or the event counts are not available.
    """
    hists = InputHistograms(source = source)
    with ExitStack() as stack:
        for file_index, input_file in enumerate(files):
            if isinstance(input_file, (str, Path)):
                filename = str(input_file)
                logger.info(f"Loading {source} histograms from {filename}")
                f = stack.enter_context(uproot.open(filename))
            else:
                filename = f"<input {file_index}>"
                f = input_file

            def convert(hist: Any, hist_name: str, key: Optional[analysis_objects.RawBin] = None) -> histogram_nd.Histogram3D:
                metadata: Dict[str, Any] = {
                    "name": f"{label}_{source.short_name}_file_{file_index}_{hist_name}",
                    "label": label,
                }
                if key is not None:
                    metadata["key"] = key
                return histogram_nd.Histogram3D.from_existing_hist(hist, metadata = metadata)

            event_counts = _retrieve_hist(f, "nevents")
            if event_counts is None:
                raise LoadError(filename, "nevents")
            hists.event_counts[file_index] = convert(event_counts, "nevents")

            for key in selector.raw_bins([file_index]):
                # Leading jet correlations are required.
                hist_name = input_hist_name(source, params.JetType.leading, key)
                h = _retrieve_hist(f, hist_name)
                if h is None:
                    raise LoadError(filename, hist_name)
                hists.leading[key] = convert(h, hist_name, key)

                # Not every input includes the subleading jet correlations, so they are optional.
                hist_name = input_hist_name(source, params.JetType.subleading, key)
                h = _retrieve_hist(f, hist_name)
                if h is None:
                    logger.debug(f"Subleading hist {hist_name} is not available in {filename}.")
                    hists.subleading[key] = None
                else:
                    hists.subleading[key] = convert(h, hist_name, key)

            n_missing = sum(1 for k, v in hists.subleading.items() if k.file == file_index and v is None)
            if n_missing:
                logger.warning(f"{n_missing} subleading {source} hists are not available in {filename}.")

    return hists

def load_signal(files: Sequence[InputFile], selector: binning.BinSelector, label: str = "") -> InputHistograms:
    """ Load the same event (signal) correlations.

    Args:
        files: Input files, containing ``{lead|sub}_aj_{aj}_cent_{cent}_vz_{vz}`` and ``nevents``.
        selector: Binning of the analysis.
        label: Label of the analysis. Default: "".
    Returns:
        The loaded histograms.
    Raises:
        LoadError: If a leading jet correlation or the event counts are not available.
    """
    return _load(files = files, selector = selector, source = params.CorrelationSource.signal, label = label)

def load_mixed(files: Sequence[InputFile], selector: binning.BinSelector, label: str = "") -> InputHistograms:
    """ Load the mixed event correlations.

    Args:
        files: Input files, containing ``mix_{lead|sub}_aj_{aj}_cent_{cent}_vz_{vz}`` and ``nevents``.
        selector: Binning of the analysis.
        label: Label of the analysis. Default: "".
    Returns:
        The loaded histograms.
    Raises:
        LoadError: If a leading jet correlation or the event counts are not available.
    """
    return _load(files = files, selector = selector, source = params.CorrelationSource.mixed, label = label)
