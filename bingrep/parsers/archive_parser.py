"""
Static Archive (``ar``) Parser
===============================

Manual parser for Unix ``ar`` archives (``.a`` static libraries).

Supported variants:
    - GNU / System V: ``/`` symbol index, ``//`` long-name table and
      ``/<offset>`` member names, ``name/`` short names.
    - BSD: ``#1/<len>`` names stored in front of the member data and the
      ``__.SYMDEF`` symbol index.

Archives are listed, not correlated: members carry no virtual address.

References:
    - ar(5), FreeBSD File Formats Manual.
    - System V Application Binary Interface, Edition 4.1, ch. 7 "Archive File".
"""

from __future__ import annotations

import struct
from typing import Optional

from bingrep.core.errors import ParseError, TruncatedTableError
from bingrep.core.models import ArchiveMember, BinaryFormat, BinaryInfo, UNREADABLE
from bingrep.core.strtab import StringTable


AR_MAGIC: bytes = b"!<arch>\n"
AR_FMAG: bytes = b"`\n"
_HEADER_SIZE: int = 60

_GNU_SYMBOL_INDEX: str = "/"
_GNU_LONG_NAMES: str = "//"
_BSD_SYMBOL_INDEX: frozenset[str] = frozenset({"__.SYMDEF", "__.SYMDEF SORTED"})


class MemberHeader:
    """Parsed 60-byte ``ar_hdr``."""
    __slots__ = ("raw_name", "date", "uid", "gid", "mode", "size", "offset")

    def __init__(self) -> None:
        self.raw_name: str = ""
        self.date: int = 0
        self.uid: int = 0
        self.gid: int = 0
        self.mode: int = 0
        self.size: int = 0
        self.offset: int = 0


def _decimal(field: bytes, base: int = 10) -> int:
    text = field.decode("ascii", errors="replace").strip()
    if not text:
        return 0
    try:
        return int(text, base)
    except ValueError as exc:
        raise ParseError(f"malformed archive header field {text!r}") from exc


class ArchiveParser:
    """Parser for ``ar`` static archives.

    Usage::

        ar = ArchiveParser(raw_bytes).parse()
        for member in ar.members:
            print(member.name, member.size)
    """

    format: BinaryFormat = BinaryFormat.ARCHIVE

    def __init__(self, data: bytes) -> None:
        self._data: bytes = data
        self.members: list[ArchiveMember] = []
        self.headers: list[MemberHeader] = []
        self.symbol_index: dict[str, str] = {}
        self._long_names: StringTable = StringTable()

    def parse(self) -> ArchiveParser:
        """Walk every member header.

        Raises:
            ParseError: Bad magic or a malformed header.
            TruncatedTableError: A member's declared size exceeds the file.
        """
        if not self._data.startswith(AR_MAGIC):
            raise ParseError("bad archive magic")

        index_offsets: list[tuple[str, int]] = []
        pos = len(AR_MAGIC)
        while pos + _HEADER_SIZE <= len(self._data):
            hdr = self._parse_header(pos)
            data_start = pos + _HEADER_SIZE
            if data_start + hdr.size > len(self._data):
                raise TruncatedTableError(
                    f"archive member at {pos:#x}", data_start, hdr.size, len(self._data),
                )
            body = self._data[data_start:data_start + hdr.size]

            if hdr.raw_name == _GNU_SYMBOL_INDEX:
                index_offsets = self._gnu_symbol_index(body)
            elif hdr.raw_name == _GNU_LONG_NAMES:
                # GNU terminates long names with "/\n" rather than NUL
                self._long_names = StringTable(body.replace(b"/\n", b"\x00"))
            else:
                name, skip = self._member_name(hdr.raw_name, body)
                if name in _BSD_SYMBOL_INDEX:
                    index_offsets = self._bsd_symbol_index(body[skip:])
                else:
                    self.headers.append(hdr)
                    self.members.append(ArchiveMember(
                        name=name,
                        header_offset=pos,
                        offset=data_start + skip,
                        size=hdr.size - skip,
                    ))

            # Member data is 2-byte aligned
            pos = data_start + hdr.size + (hdr.size & 1)

        by_header = {m.header_offset: m.name for m in self.members}
        for symbol, header_offset in index_offsets:
            self.symbol_index[symbol] = by_header.get(header_offset, f"{header_offset:#x}")
        return self

    @property
    def data(self) -> bytes:
        return self._data

    def get_binary_info(self) -> BinaryInfo:
        return BinaryInfo(format=BinaryFormat.ARCHIVE, kind="AR")

    def member_data(self, name: str) -> Optional[bytes]:
        """Contents of the first member called *name*."""
        for member in self.members:
            if member.name == name:
                return self._data[member.offset:member.offset + member.size]
        return None

    # ------------------------------------------------------------------ #
    #  Internals
    # ------------------------------------------------------------------ #

    def _parse_header(self, pos: int) -> MemberHeader:
        raw = self._data[pos:pos + _HEADER_SIZE]
        if raw[58:60] != AR_FMAG:
            raise ParseError(f"bad archive member header at {pos:#x}")
        hdr = MemberHeader()
        hdr.offset = pos
        hdr.raw_name = raw[0:16].decode("ascii", errors="replace").rstrip(" ")
        hdr.date = _decimal(raw[16:28])
        hdr.uid = _decimal(raw[28:34])
        hdr.gid = _decimal(raw[34:40])
        hdr.mode = _decimal(raw[40:48], 8)
        hdr.size = _decimal(raw[48:58])
        return hdr

    def _member_name(self, raw_name: str, body: bytes) -> tuple[str, int]:
        """Resolve a member name; returns ``(name, bytes of body holding the name)``."""
        if raw_name.startswith("#1/"):
            length = _decimal(raw_name[3:].encode("ascii"))
            try:
                return body[:length].rstrip(b"\x00").decode("utf-8"), length
            except UnicodeDecodeError:
                return UNREADABLE, length
        if raw_name.startswith("/") and raw_name[1:].isdigit():
            return self._long_names.name_at(int(raw_name[1:])), 0
        if raw_name.endswith("/"):
            return raw_name[:-1], 0
        return raw_name, 0

    @staticmethod
    def _gnu_symbol_index(body: bytes) -> list[tuple[str, int]]:
        """``/`` member: big-endian count, offsets, then NUL-separated names."""
        if len(body) < 4:
            return []
        count = struct.unpack_from(">I", body, 0)[0]
        if 4 + count * 4 > len(body):
            raise TruncatedTableError("archive symbol index", 4, count * 4, len(body))
        offsets = struct.unpack_from(f">{count}I", body, 4)
        names = body[4 + count * 4:].split(b"\x00")
        return [
            (name.decode("utf-8", errors="replace"), off)
            for name, off in zip(names, offsets)
        ]

    @staticmethod
    def _bsd_symbol_index(body: bytes) -> list[tuple[str, int]]:
        """``__.SYMDEF`` member: ranlib array followed by its string table."""
        if len(body) < 4:
            return []
        ranlib_size = struct.unpack_from("<I", body, 0)[0]
        strtab_start = 4 + ranlib_size + 4
        if strtab_start > len(body):
            raise TruncatedTableError("archive symbol index", 4, ranlib_size, len(body))
        strsize = struct.unpack_from("<I", body, 4 + ranlib_size)[0]
        strtab = StringTable(body[strtab_start:strtab_start + strsize])
        result: list[tuple[str, int]] = []
        for i in range(ranlib_size // 8):
            strx, off = struct.unpack_from("<II", body, 4 + i * 8)
            result.append((strtab.name_at(strx), off))
        return result
