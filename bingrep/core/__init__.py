"""
bingrep Core Module
====================

Data models, errors and the format-independent correlation machinery:
string tables, symbol and relocation cross-referencing, the pattern
search engine, the offset locator and the range adapter.

The pipeline orchestrator lives in :mod:`bingrep.core.engine`; it is
re-exported from the top-level :mod:`bingrep` package.
"""

from bingrep.core.correlate import CorrelationReporter, correlate
from bingrep.core.errors import (
    BingrepError,
    EmptyPatternError,
    FileTooLargeError,
    InputError,
    InvalidPatternError,
    ParseError,
    TruncatedTableError,
    UnsupportedFormatError,
)
from bingrep.core.locator import OffsetLocator
from bingrep.core.models import (
    BinaryFormat,
    BinaryInfo,
    BinaryReport,
    LocatedRange,
    MatchReport,
    Range,
    RangeKind,
    RelocationRef,
    SymbolRef,
)
from bingrep.core.ranges import build_ranges
from bingrep.core.search import find_all, parse_hex_pattern
from bingrep.core.strtab import StringTable

__all__ = [
    "BinaryFormat",
    "BinaryInfo",
    "BinaryReport",
    "BingrepError",
    "CorrelationReporter",
    "EmptyPatternError",
    "FileTooLargeError",
    "InputError",
    "InvalidPatternError",
    "LocatedRange",
    "MatchReport",
    "OffsetLocator",
    "ParseError",
    "Range",
    "RangeKind",
    "RelocationRef",
    "StringTable",
    "SymbolRef",
    "TruncatedTableError",
    "UnsupportedFormatError",
    "build_ranges",
    "correlate",
    "find_all",
    "parse_hex_pattern",
]
