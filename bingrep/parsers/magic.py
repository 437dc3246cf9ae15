"""
Magic Number Format Identification
====================================

Identifies the container format of a file from its leading bytes.

Only the formats bingrep can lay out are recognised: ELF, PE, thin and
fat Mach-O, and ``ar`` archives.  The fat Mach-O magic ``0xcafebabe`` is
shared with Java class files; the two are told apart by the field that
follows it (architecture count for a fat header, class-file version for
Java, which is always 45 or more).

References:
    - Gary Kessler's File Signatures Table.
      https://www.garykessler.net/library/file_sigs.html
    - ``file(1)`` command magic database. https://github.com/file/file
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

from bingrep.core.models import BinaryFormat


@dataclass(frozen=True, slots=True)
class _Signature:
    """A single file-type magic signature entry.

    Attributes:
        magic: Byte pattern to match.
        offset: Byte offset within the file where *magic* is expected.
        description: Human-readable type description.
        format: Container format the signature identifies.
    """
    magic: bytes
    offset: int
    description: str
    format: BinaryFormat


# Ordered by specificity
_SIGNATURES: list[_Signature] = [
    _Signature(b"\x7fELF", 0, "ELF executable", BinaryFormat.ELF),
    _Signature(b"!<arch>\n", 0, "ar archive", BinaryFormat.ARCHIVE),
    _Signature(b"\xfe\xed\xfa\xce", 0, "Mach-O 32-bit (big-endian)", BinaryFormat.MACHO),
    _Signature(b"\xfe\xed\xfa\xcf", 0, "Mach-O 64-bit (big-endian)", BinaryFormat.MACHO),
    _Signature(b"\xce\xfa\xed\xfe", 0, "Mach-O 32-bit", BinaryFormat.MACHO),
    _Signature(b"\xcf\xfa\xed\xfe", 0, "Mach-O 64-bit", BinaryFormat.MACHO),
    _Signature(b"\xca\xfe\xba\xbe", 0, "Mach-O fat binary", BinaryFormat.MACHO_FAT),
    _Signature(b"MZ", 0, "PE/MS-DOS executable", BinaryFormat.PE),
]

#: Largest architecture count accepted as a fat header.
_MAX_FAT_ARCHES: int = 30


class MagicIdentifier:
    """Container format detection from leading bytes.

    Usage::

        identifier = MagicIdentifier()
        identifier.identify_format(raw_bytes)   # BinaryFormat.ELF
        identifier.identify(raw_bytes)          # "ELF executable"
    """

    def __init__(self) -> None:
        self._signatures: list[_Signature] = list(_SIGNATURES)

    def _match(self, data: bytes) -> _Signature | None:
        for sig in self._signatures:
            end = sig.offset + len(sig.magic)
            if end > len(data) or data[sig.offset:end] != sig.magic:
                continue
            if sig.format is BinaryFormat.MACHO_FAT and not self._is_fat(data):
                continue
            return sig
        return None

    def identify(self, data: bytes) -> str:
        """Human-readable description, ``"Unknown binary"`` if unrecognised."""
        if not data:
            return "Empty file"
        sig = self._match(data)
        return sig.description if sig else "Unknown binary"

    def identify_format(self, data: bytes) -> BinaryFormat:
        """Detected :class:`BinaryFormat`, ``UNKNOWN`` if unrecognised."""
        sig = self._match(data)
        return sig.format if sig else BinaryFormat.UNKNOWN

    @staticmethod
    def _is_fat(data: bytes) -> bool:
        if len(data) < 8:
            return False
        nfat_arch = struct.unpack_from(">I", data, 4)[0]
        return 0 < nfat_arch < _MAX_FAT_ARCHES


def identify_format(data: bytes) -> BinaryFormat:
    """Module-level shorthand for :meth:`MagicIdentifier.identify_format`."""
    return MagicIdentifier().identify_format(data)
