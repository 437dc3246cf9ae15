"""
String Tables
==============

Immutable, index-addressed view over a NUL-separated string table
(ELF ``.strtab`` / ``.dynstr`` / ``.shstrtab``, Mach-O symbol strings,
the GNU ``ar`` long-name table).

Names are looked up by byte offset.  An offset past the end of the table
or bytes that are not valid UTF-8 yield ``None`` so callers can decide
which placeholder to show.
"""

from __future__ import annotations

from bingrep.core.models import UNREADABLE


class StringTable:
    """A NUL-separated string table addressed by byte offset.

    Usage::

        strtab = StringTable(b"\\x00.text\\x00.data\\x00")
        strtab.get(1)      # ".text"
        strtab.get(99)     # None
    """

    __slots__ = ("_data",)

    def __init__(self, data: bytes = b"") -> None:
        self._data: bytes = bytes(data)

    def __len__(self) -> int:
        return len(self._data)

    def __bool__(self) -> bool:
        return bool(self._data)

    def __repr__(self) -> str:
        return f"StringTable({len(self._data)} bytes)"

    def get(self, offset: int) -> str | None:
        """Return the string starting at *offset*, or ``None`` if unreadable."""
        if offset == 0 and not self._data:
            return ""
        if offset < 0 or offset >= len(self._data):
            return None
        end = self._data.find(b"\x00", offset)
        if end == -1:
            end = len(self._data)
        try:
            return self._data[offset:end].decode("utf-8")
        except UnicodeDecodeError:
            return None

    def name_at(self, offset: int) -> str:
        """Like :meth:`get` but substitutes :data:`UNREADABLE`."""
        name = self.get(offset)
        return UNREADABLE if name is None else name

