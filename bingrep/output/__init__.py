"""
bingrep Output Module
======================

Rich console rendering and JSON report generation.
"""

from bingrep.output.console import BingrepConsoleOutput
from bingrep.output.report import BingrepReportGenerator

__all__ = [
    "BingrepConsoleOutput",
    "BingrepReportGenerator",
]
