#!/usr/bin/env python

""" Main analysis tasks for the dijet-hadron analysis.

.. codeauthor:: Raymond Ehlers <raymond.ehlers@cern.ch>, Yale University
"""

__all__ = [
    "correlations",
    "correlations_helpers",
    "extracted",
    "fit",
    "input_files",
    "mixed_events",
    "projections",
]
