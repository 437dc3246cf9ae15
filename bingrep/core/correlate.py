"""
Correlation Reporter
=====================

Composes the pattern search engine with the offset locator: every match
offset is paired with the ranges containing it.

Reports are ordered by ascending match offset; ranges inside a report
keep the locator's order.  With no ranges built, each match still gets
a report with an empty range list.
"""

from __future__ import annotations

from typing import Iterable

from bingrep.core.locator import OffsetLocator
from bingrep.core.models import MatchReport, Range
from bingrep.core.search import Pattern, find_all


class CorrelationReporter:
    """Correlates pattern matches with a fixed range table."""

    __slots__ = ("_locator", "_chunk_size", "_encoding")

    def __init__(
        self,
        ranges: Iterable[Range] = (),
        *,
        chunk_size: int = 0,
        encoding: str = "utf-8",
    ) -> None:
        self._locator = OffsetLocator(ranges)
        self._chunk_size = chunk_size
        self._encoding = encoding

    @property
    def locator(self) -> OffsetLocator:
        return self._locator

    def correlate(
        self,
        haystack: bytes | bytearray | memoryview,
        needle: Pattern,
    ) -> list[MatchReport]:
        """Search *haystack* for *needle* and locate every hit.

        Raises:
            EmptyPatternError: If *needle* is empty.
        """
        offsets = find_all(
            haystack, needle,
            chunk_size=self._chunk_size, encoding=self._encoding,
        )
        return [
            MatchReport(offset=o, ranges=self._locator.ranges_containing(o))
            for o in offsets
        ]


def correlate(
    haystack: bytes | bytearray | memoryview,
    needle: Pattern,
    ranges: Iterable[Range] = (),
    *,
    chunk_size: int = 0,
    encoding: str = "utf-8",
) -> list[MatchReport]:
    """One-shot :meth:`CorrelationReporter.correlate`."""
    reporter = CorrelationReporter(ranges, chunk_size=chunk_size, encoding=encoding)
    return reporter.correlate(haystack, needle)
