#!/usr/bin/env python

""" Dijet-hadron correlations analysis.

.. codeauthor:: Raymond Ehlers <raymond.ehlers@cern.ch>, Yale University
"""

from dijet_hadron.version import __version__  # noqa: F401
