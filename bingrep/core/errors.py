"""
bingrep Exceptions
===================

Exception hierarchy shared by the parsers, the correlation core and the
CLI.

Two families are distinguished:

* :class:`InputError` -- the caller can fix the problem (empty search
  pattern, malformed hex pattern, a file too short for the tables its
  header declares).  Raised immediately; no partial report is produced.
* :class:`ParseError` -- the file could not be decoded at all (bad
  magic, truncated header).  Propagated unchanged to the caller.

Data-integrity anomalies (an out-of-range section index, an undecodable
name) are *not* exceptions: they are rendered inline as sentinel text
and recorded as findings.
"""

from __future__ import annotations


class BingrepError(Exception):
    """Base class for every error raised by bingrep."""


class InputError(BingrepError, ValueError):
    """Caller-fixable input problem."""


class EmptyPatternError(InputError):
    """The search pattern is empty."""

    def __init__(self) -> None:
        super().__init__("search pattern must not be empty")


class InvalidPatternError(InputError):
    """The search pattern or offset could not be interpreted."""


class TruncatedTableError(InputError):
    """A table declared by the file header extends past the end of the file.

    Attributes:
        table:  Human-readable table name (e.g. ``"section headers"``).
        offset: Declared start offset of the table.
        size:   Declared size of the table in bytes.
        length: Actual length of the file.
    """

    def __init__(self, table: str, offset: int, size: int, length: int) -> None:
        self.table = table
        self.offset = offset
        self.size = size
        self.length = length
        super().__init__(
            f"file too short for {table}: table spans "
            f"[{offset:#x}, {offset + size:#x}) but file is {length:#x} bytes"
        )


class FileTooLargeError(InputError):
    """The input exceeds the configured maximum file size."""


class ParseError(BingrepError):
    """The file could not be decoded by its format parser."""


class UnsupportedFormatError(ParseError):
    """No parser recognises the file's magic bytes."""
