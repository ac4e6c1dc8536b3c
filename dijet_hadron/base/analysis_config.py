#!/usr/bin/env python

""" Manages configuration of the dijet-hadron analysis

.. codeauthor:: Raymond Ehlers <raymond.ehlers@cern.ch>, Yale University
"""

import argparse
from dataclasses import dataclass
import logging
from typing import Any, Callable, List, Optional, Sequence, Set, Tuple

from pachyderm import generic_config
from pachyderm import yaml

from dijet_hadron.base import analysis_objects
from dijet_hadron.base import binning
from dijet_hadron.base import params

logger = logging.getLogger(__name__)

@dataclass(frozen = True)
class AnalysisInput:
    """ Input files for a single analysis.

    Attributes:
        label: Label of the analysis. It is used as a prefix for all output names.
        signal_filename: Filename of the same event correlations.
        mixed_filename: Filename of the mixed event correlations.
    """
    label: str
    signal_filename: str
    mixed_filename: str

@dataclass(frozen = True)
class TaskSettings:
    """ Fully determined settings for an analysis task.

    Attributes:
        task_name: Name of the task.
        config: Task configuration.
        selector: Binning of the analysis.
        analyses: Input files. The order determines the file index.
        aj_split_bin: First aj bin of the unbalanced selection.
        output_info: Output location.
    """
    task_name: str
    config: generic_config.DictLike
    selector: binning.BinSelector
    analyses: List[AnalysisInput]
    aj_split_bin: int
    output_info: analysis_objects.OutputWrapper

def determine_arguments_from_terminal(
        args: Optional[List[Any]] = None,
        description: str = "Dijet-hadron {task_name}.",
        add_options_function: Optional[Callable[[argparse.ArgumentParser], Any]] = None,
        **kwargs: str) -> Tuple[str, argparse.Namespace]:
    """ Determine the arguments from the command line.

    Defaults are equivalent to None so that values which aren't specified on the command line
    can be taken from the configuration.

    Args:
        args (list): Arguments to parse. Default: None (which will then use sys.argv)
        description (str): Help description for arguments
        add_options_function (func): Function which takes the ArgumentParser() object and adds arguments.
        kwargs (dict): Additional arguments to format the help description. Often contains ``task_name``
            to specify the task name.
    Returns:
        tuple: (config_filename, argparse.Namespace).
    """
    # Make sure there is always a task name
    if "task_name" not in kwargs:
        kwargs["task_name"] = "analysis"

    # Setup parser
    parser = argparse.ArgumentParser(description = description.format(**kwargs))
    # General options
    parser.add_argument("-c", "--configFilename", metavar = "configFilename",
                        type = str, default = "config/config.yaml",
                        help = "Path to config filename")
    parser.add_argument("--ajSplitBin", metavar = "ajSplitBin",
                        type = int, default = None,
                        help = "First aj bin of the unbalanced selection")
    parser.add_argument("-o", "--outputPrefix", metavar = "outputPrefix",
                        type = str, default = None,
                        help = "Output directory")
    parser.add_argument("-r", "--jetRadius", metavar = "jetRadius",
                        type = float, default = None,
                        help = "Jet resolution parameter")
    parser.add_argument("--analysis", nargs = 3, action = "append", default = None,
                        metavar = ("SIGNAL", "MIXED", "LABEL"),
                        help = "Signal filename, mixed event filename, and label of an analysis. Can be repeated.")

    # Extension for additional arguments
    if add_options_function:
        add_options_function(parser)

    # Parse arguments
    parsed_args = parser.parse_args(args)

    return (parsed_args.configFilename, parsed_args)

def read_config(config_filename: str, additional_classes_to_register: Optional[Sequence[Any]] = None) -> generic_config.DictLike:
    """ Read the YAML config.

    The classes defined in the ``params`` and ``analysis_objects`` modules are registered, so they
    can be constructed directly from the YAML.

    Args:
        config_filename: Filename of the YAML config.
        additional_classes_to_register: Additional classes to register for YAML object
            construction. Default: None.
    Returns:
        The YAML configuration.
    """
    # Validation
    if additional_classes_to_register is None:
        additional_classes_to_register = []

    # Classes to register for reconstruction within YAML
    classes_to_register: Set[Any] = set()
    classes_to_register.update(additional_classes_to_register)
    logger.debug(f"classes_to_register: {classes_to_register}")
    # Add in all classes defined in the params and analysis_objects module
    yml = yaml.yaml(modules_to_register = [params, analysis_objects], classes_to_register = classes_to_register)

    config = generic_config.load_configuration(
        yaml = yml,
        filename = config_filename,
    )
    return config

def determine_analyses(task_config: generic_config.DictLike, parsed_args: Optional[argparse.Namespace] = None) -> List[AnalysisInput]:
    """ Determine the analyses to process.

    Analyses which are specified on the command line take precedence over those in the configuration.

    Args:
        task_config: Task configuration. Analyses are specified as a list of ``label``, ``signal``,
            and ``mixed`` maps under the ``analyses`` key.
        parsed_args: Parsed command line arguments. Default: None.
    Returns:
        The analyses, in the order that they were specified.
    Raises:
        ValueError: If no analyses are specified, or if the analyses are misconfigured.
    """
    analyses: List[AnalysisInput] = []
    if parsed_args is not None and parsed_args.analysis:
        for signal_filename, mixed_filename, label in parsed_args.analysis:
            analyses.append(AnalysisInput(label = label, signal_filename = signal_filename, mixed_filename = mixed_filename))
    else:
        for analysis_config in task_config.get("analyses", []):
            try:
                analyses.append(AnalysisInput(
                    label = str(analysis_config["label"]),
                    signal_filename = str(analysis_config["signal"]),
                    mixed_filename = str(analysis_config["mixed"]),
                ))
            except KeyError as e:
                raise ValueError(analysis_config, f"Analysis is missing required value {e}.") from e

    if not analyses:
        raise ValueError("No analyses were specified. Need at least one signal file, mixed file, and label.")

    labels = [analysis.label for analysis in analyses]
    if len(set(labels)) != len(labels):
        raise ValueError(labels, "Analysis labels must be unique.")

    return analyses

def setup_task(task_name: str, config_filename: str,
               parsed_args: Optional[argparse.Namespace] = None) -> TaskSettings:
    """ Determine the settings of the analysis task from the configuration and command line.

    Values which are specified on the command line take precedence over the configuration.

    Args:
        task_name: Name of the task. It selects the task configuration block.
        config_filename: Filename of the YAML config.
        parsed_args: Parsed command line arguments. Default: None.
    Returns:
        Task settings.
    """
    config = read_config(config_filename = config_filename)
    task_config = config.get(task_name, {})

    def from_args_or_config(arg_name: str, config_value: Any) -> Any:
        value = getattr(parsed_args, arg_name, None) if parsed_args is not None else None
        return value if value is not None else config_value

    jet_radius = from_args_or_config("jetRadius", task_config.get("jetRadius", None))
    selector = binning.BinSelector.from_config(config.get("binning", {}), jet_radius = jet_radius)
    aj_split_bin = int(from_args_or_config("ajSplitBin", task_config.get("ajSplitBin", 10)))
    output_prefix = from_args_or_config("outputPrefix", config.get("outputPrefix", "output"))
    analyses = determine_analyses(task_config, parsed_args)

    logger.info(f"Task {task_name}: {len(analyses)} analyses, aj split bin: {aj_split_bin}, output: {output_prefix}")
    return TaskSettings(
        task_name = task_name,
        config = task_config,
        selector = selector,
        analyses = analyses,
        aj_split_bin = aj_split_bin,
        output_info = analysis_objects.OutputWrapper(output_prefix = output_prefix),
    )
