#!/usr/bin/env python

""" Base functionality for analysis managers.

.. codeauthor:: Raymond Ehlers <raymond.ehlers@cern.ch>, Yale University
"""

import abc
import argparse
import coloredlogs
import enlighten
import logging
from typing import Any, Optional, Type, TypeVar

from pachyderm import generic_class

from dijet_hadron.base import analysis_config

class Manager(generic_class.EqualityMixin, abc.ABC):
    """ Analysis manager for creating and directing analysis tasks.

    Args:
        config_filename: Path to the configuration filename.
        manager_task_name: Name of the analysis manager task name in the config.
        terminal_args: Parsed command line arguments, which override the configuration. Default: None.

    Attributes:
        config_filename: Path to the configuration filename.
        task_name: Name of the analysis manager task name in the config.
        settings: Fully determined settings of the task.
        task_config: Task YAML configuration. This is equivalent to ``config[self.task_name]``.
        selector: Binning of the analysis.
        output_info: Output information for storing data, histograms, etc.
        processing_options: Processing options specified in the task config. Created for convenience.
        _progress_manager: Keep track of the analysis progress using status bars.
    """
    def __init__(self, config_filename: str, manager_task_name: str,
                 terminal_args: Optional[argparse.Namespace] = None,
                 **kwargs: Any):
        self.config_filename = config_filename
        self.task_name = manager_task_name

        # Retrieve YAML config for manager configuration
        self.settings = analysis_config.setup_task(
            task_name = self.task_name,
            config_filename = self.config_filename,
            parsed_args = terminal_args,
        )
        # Additional helper variables
        self.task_config = self.settings.config
        self.selector = self.settings.selector
        self.output_info = self.settings.output_info
        # For convenience since it is frequently accessed.
        self.processing_options = self.task_config.get("processing_options", {})

        # Monitor the progress of the analysis.
        self._progress_manager = enlighten.get_manager()

    @abc.abstractmethod
    def run(self) -> bool:
        """ Run the analyses contained in the manager.

        Returns:
            True if the analyses were run successfully.
        """
        ...

    def _run(self) -> bool:
        """ Wrapper around the actual call to run to restore a normal output.

        Returns:
            True if the analyses were run successfully
        """
        result = self.run()

        # Disable enlighten so that it won't mess with any later steps (such as exploration with IPython).
        # Otherwise, IPython will act very strangely and is basically impossible to use.
        self._progress_manager.stop()

        return result

_T = TypeVar("_T", bound = Manager)

def run_helper(manager_class: Type[_T], **kwargs: str) -> _T:
    """ Helper function to execute most analysis managers.

    It sets up the passed analysis manager object and then calls ``run()``. It also enables logging
    with colors in the output.

    Note:
        This won't pass the ``task_name`` to the manager class. It's expected to have that name hard coded
        in the inherited manager class.

    Args:
        manager_class: Class which will manage execution of the task.
        task_name: Name of the tasks that will be analyzed for the argument parsing help (it doesn't
            matter if it matches the YAML config).
        description: Description of the task for the argument parsing help.
    Returns:
        The created and executed task manager.
    """
    # Basic setup
    coloredlogs.install(
        level = logging.DEBUG,
        fmt = "%(asctime)s %(name)s:%(lineno)d %(levelname)s %(message)s"
    )
    # Quiet down the noisy loggers
    logging.getLogger("pachyderm").setLevel(logging.INFO)
    logging.getLogger("parso").setLevel(logging.INFO)

    # Setup the analysis
    (config_filename, terminal_args) = analysis_config.determine_arguments_from_terminal(**kwargs)
    analysis_manager = manager_class(
        config_filename = config_filename,
        terminal_args = terminal_args,
    )
    # Finally run the analysis.
    analysis_manager._run()

    # Provide the final result back to the caller.
    return analysis_manager
