#!/usr/bin/env python

""" Tests for the analysis manager base functionality.

.. codeauthor:: Raymond Ehlers <raymond.ehlers@cern.ch>, Yale University
"""

import logging

from dijet_hadron.base import analysis_manager

# Setup logger
logger = logging.getLogger(__name__)

TEST_CONFIG = """
outputPrefix: "output"
binning:
    centrality: [0, 1]
    vz: [0, 2]
    aj: [0, 3]
    pt_bins: [0.5, 1.0, 2.0]
TestManager:
    ajSplitBin: 2
    analyses:
        - label: "test"
          signal: "signal.root"
          mixed: "mixed.root"
"""

class TestManager(analysis_manager.Manager):
    """ Minimal manager which only records that it was run. """
    __test__ = False

    def __init__(self, config_filename: str, **kwargs: str):
        super().__init__(config_filename = config_filename, manager_task_name = "TestManager", **kwargs)
        self.ran = False

    def run(self) -> bool:
        self.ran = True
        return True

def test_run_helper(logging_mixin, tmp_path, mocker):
    """ Test setting up and running a manager from the terminal arguments. """
    mock_install = mocker.patch("dijet_hadron.base.analysis_manager.coloredlogs.install")
    config_filename = tmp_path / "config.yaml"
    config_filename.write_text(TEST_CONFIG)
    levels = {name: logging.getLogger(name).level for name in ["pachyderm", "parso", "matplotlib"]}

    try:
        manager = analysis_manager.run_helper(
            manager_class = TestManager, args = ["-c", str(config_filename), "--ajSplitBin", "1"],
        )

        mock_install.assert_called_once()
        assert manager.ran is True
        assert manager.settings.aj_split_bin == 1
        assert [a.label for a in manager.settings.analyses] == ["test"]
        # Only the loggers of our dependencies are quieted.
        assert logging.getLogger("pachyderm").level == logging.INFO
        assert logging.getLogger("matplotlib").level == levels["matplotlib"]
    finally:
        for name, level in levels.items():
            logging.getLogger(name).setLevel(level)
