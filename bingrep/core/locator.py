"""
Offset Locator
===============

Resolves a raw file offset to every :class:`Range` containing it.

Containment is half-open, so a zero-sized range never matches.  Results
keep the order the ranges were built in (segments and program headers
before sections), which makes the last entry the innermost one.
"""

from __future__ import annotations

from typing import Iterable, Optional

from bingrep.core.errors import InvalidPatternError
from bingrep.core.models import LocatedRange, Range


class OffsetLocator:
    """Linear scan over an immutable range table.

    A query costs O(number of ranges); tables are bounded by header
    counts, and query volume by the number of search hits.

    Usage::

        locator = OffsetLocator(build_ranges(parsed))
        for hit in locator.ranges_containing(0x1234):
            print(hit.range.label, hit.address)
    """

    __slots__ = ("_ranges",)

    def __init__(self, ranges: Iterable[Range]) -> None:
        self._ranges: tuple[Range, ...] = tuple(ranges)

    @property
    def ranges(self) -> tuple[Range, ...]:
        return self._ranges

    def __len__(self) -> int:
        return len(self._ranges)

    def ranges_containing(self, offset: int) -> tuple[LocatedRange, ...]:
        """Return every range containing *offset* with its normalised address.

        Raises:
            InvalidPatternError: If *offset* is negative.
        """
        if offset < 0:
            raise InvalidPatternError(f"offset must be non-negative, got {offset}")
        return tuple(
            LocatedRange(range=r, address=r.normalize(offset))
            for r in self._ranges
            if r.contains(offset)
        )

    def innermost(self, offset: int) -> Optional[LocatedRange]:
        """The most specific containing range, or ``None``."""
        hits = self.ranges_containing(offset)
        return hits[-1] if hits else None
