"""
Mach-O Binary Format Parser
=============================

Manual struct-based parser for Mach-O, the executable format of macOS,
iOS and the other Darwin platforms, including fat (universal) files that
bundle one Mach-O slice per architecture.

The parser extracts:
    - Mach header (magic, CPU type, file type, flags)
    - Every load command, in order, with its file extent
    - Segments and their sections (``LC_SEGMENT`` / ``LC_SEGMENT_64``)
    - Linked dylibs, install name and entry point (``LC_MAIN``)
    - The ``LC_SYMTAB`` symbol table, from which exported (defined,
      external) and imported (undefined, external) symbols are derived

Segment and section names are fixed 16-byte fields; a name that is not
valid UTF-8 is reported as ``"<unreadable>"`` instead of failing the
whole parse.

References:
    - Apple. (2024). Mach-O File Format Reference (``<mach-o/loader.h>``,
      ``<mach-o/nlist.h>``, ``<mach-o/fat.h>``).
    - Levin, J. (2017). *MacOS and iOS Internals, Volume I*, ch. 6.
"""

from __future__ import annotations

import struct
from typing import Iterator, Optional

from bingrep.core.errors import ParseError, TruncatedTableError
from bingrep.core.models import (
    UNREADABLE,
    BinaryFormat,
    BinaryInfo,
    ExportInfo,
    ImportInfo,
)
from bingrep.core.strtab import StringTable


# ---------------------------------------------------------------------------
# Mach-O Constants
# ---------------------------------------------------------------------------

MH_MAGIC: int = 0xFEEDFACE
MH_CIGAM: int = 0xCEFAEDFE
MH_MAGIC_64: int = 0xFEEDFACF
MH_CIGAM_64: int = 0xCFFAEDFE
FAT_MAGIC: int = 0xCAFEBABE

# magic (as read little-endian) -> (is_64, endian)
_MAGICS: dict[int, tuple[bool, str]] = {
    MH_MAGIC: (False, "<"),
    MH_MAGIC_64: (True, "<"),
    MH_CIGAM: (False, ">"),
    MH_CIGAM_64: (True, ">"),
}

# CPU types
CPU_ARCH_ABI64: int = 0x01000000
CPU_TYPE_X86: int = 7
CPU_TYPE_X86_64: int = CPU_TYPE_X86 | CPU_ARCH_ABI64
CPU_TYPE_ARM: int = 12
CPU_TYPE_ARM64: int = CPU_TYPE_ARM | CPU_ARCH_ABI64
CPU_TYPE_ARM64_32: int = CPU_TYPE_ARM | 0x02000000
CPU_TYPE_POWERPC: int = 18
CPU_TYPE_POWERPC64: int = CPU_TYPE_POWERPC | CPU_ARCH_ABI64

_CPU_NAMES: dict[int, str] = {
    CPU_TYPE_X86: "x86",
    CPU_TYPE_X86_64: "x86_64",
    CPU_TYPE_ARM: "arm",
    CPU_TYPE_ARM64: "arm64",
    CPU_TYPE_ARM64_32: "arm64_32",
    CPU_TYPE_POWERPC: "powerpc",
    CPU_TYPE_POWERPC64: "powerpc64",
}

# File types
MH_OBJECT: int = 0x1
MH_EXECUTE: int = 0x2
MH_DYLIB: int = 0x6
MH_DYLINKER: int = 0x7
MH_BUNDLE: int = 0x8

_FILETYPE_NAMES: dict[int, str] = {
    MH_OBJECT: "MH_OBJECT",
    MH_EXECUTE: "MH_EXECUTE",
    0x3: "MH_FVMLIB",
    0x4: "MH_CORE",
    0x5: "MH_PRELOAD",
    MH_DYLIB: "MH_DYLIB",
    MH_DYLINKER: "MH_DYLINKER",
    MH_BUNDLE: "MH_BUNDLE",
    0x9: "MH_DYLIB_STUB",
    0xA: "MH_DSYM",
    0xB: "MH_KEXT_BUNDLE",
}

# Load commands
LC_REQ_DYLD: int = 0x80000000
LC_SEGMENT: int = 0x1
LC_SYMTAB: int = 0x2
LC_UNIXTHREAD: int = 0x5
LC_DYSYMTAB: int = 0xB
LC_LOAD_DYLIB: int = 0xC
LC_ID_DYLIB: int = 0xD
LC_LOAD_DYLINKER: int = 0xE
LC_SEGMENT_64: int = 0x19
LC_UUID: int = 0x1B
LC_CODE_SIGNATURE: int = 0x1D
LC_LAZY_LOAD_DYLIB: int = 0x20
LC_DYLD_INFO: int = 0x22
LC_DYLD_INFO_ONLY: int = 0x22 | LC_REQ_DYLD
LC_LOAD_WEAK_DYLIB: int = 0x18 | LC_REQ_DYLD
LC_RPATH: int = 0x1C | LC_REQ_DYLD
LC_REEXPORT_DYLIB: int = 0x1F | LC_REQ_DYLD
LC_MAIN: int = 0x28 | LC_REQ_DYLD

_LC_NAMES: dict[int, str] = {
    LC_SEGMENT: "LC_SEGMENT",
    LC_SYMTAB: "LC_SYMTAB",
    0x4: "LC_THREAD",
    LC_UNIXTHREAD: "LC_UNIXTHREAD",
    LC_DYSYMTAB: "LC_DYSYMTAB",
    LC_LOAD_DYLIB: "LC_LOAD_DYLIB",
    LC_ID_DYLIB: "LC_ID_DYLIB",
    LC_LOAD_DYLINKER: "LC_LOAD_DYLINKER",
    0xF: "LC_ID_DYLINKER",
    0x16: "LC_TWOLEVEL_HINTS",
    LC_SEGMENT_64: "LC_SEGMENT_64",
    0x1A: "LC_ROUTINES_64",
    LC_UUID: "LC_UUID",
    LC_CODE_SIGNATURE: "LC_CODE_SIGNATURE",
    0x1E: "LC_SEGMENT_SPLIT_INFO",
    LC_LAZY_LOAD_DYLIB: "LC_LAZY_LOAD_DYLIB",
    0x21: "LC_ENCRYPTION_INFO",
    LC_DYLD_INFO: "LC_DYLD_INFO",
    0x24: "LC_VERSION_MIN_MACOSX",
    0x25: "LC_VERSION_MIN_IPHONEOS",
    0x26: "LC_FUNCTION_STARTS",
    0x27: "LC_DYLD_ENVIRONMENT",
    0x29: "LC_DATA_IN_CODE",
    0x2A: "LC_SOURCE_VERSION",
    0x2B: "LC_DYLIB_CODE_SIGN_DRS",
    0x2C: "LC_ENCRYPTION_INFO_64",
    0x2D: "LC_LINKER_OPTION",
    0x2E: "LC_LINKER_OPTIMIZATION_HINT",
    0x32: "LC_BUILD_VERSION",
    LC_DYLD_INFO_ONLY: "LC_DYLD_INFO_ONLY",
    LC_LOAD_WEAK_DYLIB: "LC_LOAD_WEAK_DYLIB",
    LC_RPATH: "LC_RPATH",
    LC_REEXPORT_DYLIB: "LC_REEXPORT_DYLIB",
    LC_MAIN: "LC_MAIN",
    0x23 | LC_REQ_DYLD: "LC_LOAD_UPWARD_DYLIB",
    0x33 | LC_REQ_DYLD: "LC_DYLD_EXPORTS_TRIE",
    0x34 | LC_REQ_DYLD: "LC_DYLD_CHAINED_FIXUPS",
}

_DYLIB_COMMANDS: frozenset[int] = frozenset({
    LC_LOAD_DYLIB, LC_LOAD_WEAK_DYLIB, LC_REEXPORT_DYLIB, LC_LAZY_LOAD_DYLIB,
    0x23 | LC_REQ_DYLD,
})

# Section types (low byte of section flags) that occupy no file bytes
S_ZEROFILL: int = 0x1
S_GB_ZEROFILL: int = 0xC
S_THREAD_LOCAL_ZEROFILL: int = 0x12
_ZEROFILL_TYPES: frozenset[int] = frozenset({
    S_ZEROFILL, S_GB_ZEROFILL, S_THREAD_LOCAL_ZEROFILL,
})

# nlist n_type bits
N_STAB: int = 0xE0
N_TYPE: int = 0x0E
N_EXT: int = 0x01
N_UNDF: int = 0x0
N_ABS: int = 0x2
N_SECT: int = 0xE

# Two-level namespace library ordinals
SELF_LIBRARY_ORDINAL: int = 0x0
DYNAMIC_LOOKUP_ORDINAL: int = 0xFE
EXECUTABLE_ORDINAL: int = 0xFF


def load_command_name(cmd: int) -> str:
    return _LC_NAMES.get(cmd, f"{cmd:#x}")


def cpu_type_name(cputype: int) -> str:
    return _CPU_NAMES.get(cputype, f"cpu({cputype:#x})")


def _fixed_name(raw: bytes) -> str:
    """Decode a NUL-padded 16-byte name field."""
    try:
        return raw.split(b"\x00", 1)[0].decode("utf-8")
    except UnicodeDecodeError:
        return UNREADABLE


# ---------------------------------------------------------------------------
# Parsed structures
# ---------------------------------------------------------------------------

class MachHeader:
    """Parsed ``mach_header`` / ``mach_header_64``."""
    __slots__ = (
        "magic", "cputype", "cpusubtype", "filetype",
        "ncmds", "sizeofcmds", "flags", "reserved",
    )

    def __init__(self) -> None:
        self.magic: int = 0
        self.cputype: int = 0
        self.cpusubtype: int = 0
        self.filetype: int = 0
        self.ncmds: int = 0
        self.sizeofcmds: int = 0
        self.flags: int = 0
        self.reserved: int = 0


class LoadCommand:
    """A load command header and its location within the slice."""
    __slots__ = ("index", "cmd", "cmdsize", "offset")

    def __init__(self, index: int, cmd: int, cmdsize: int, offset: int) -> None:
        self.index = index
        self.cmd = cmd
        self.cmdsize = cmdsize
        self.offset = offset

    @property
    def name(self) -> str:
        return load_command_name(self.cmd)


class Section:
    """Parsed ``section`` / ``section_64`` record."""
    __slots__ = (
        "sectname", "segname", "addr", "size", "offset", "align",
        "reloff", "nreloc", "flags",
    )

    def __init__(self) -> None:
        self.sectname: str = ""
        self.segname: str = ""
        self.addr: int = 0
        self.size: int = 0
        self.offset: int = 0
        self.align: int = 0
        self.reloff: int = 0
        self.nreloc: int = 0
        self.flags: int = 0

    @property
    def is_zerofill(self) -> bool:
        return (self.flags & 0xFF) in _ZEROFILL_TYPES

    @property
    def file_size(self) -> int:
        """Bytes the section occupies in the file (zero for zerofill)."""
        return 0 if self.is_zerofill else self.size


class Segment:
    """Parsed ``segment_command`` / ``segment_command_64`` with its sections."""
    __slots__ = (
        "segname", "vmaddr", "vmsize", "fileoff", "filesize",
        "maxprot", "initprot", "nsects", "flags", "sections", "command",
    )

    def __init__(self, command: LoadCommand) -> None:
        self.command = command
        self.segname: str = ""
        self.vmaddr: int = 0
        self.vmsize: int = 0
        self.fileoff: int = 0
        self.filesize: int = 0
        self.maxprot: int = 0
        self.initprot: int = 0
        self.nsects: int = 0
        self.flags: int = 0
        self.sections: list[Section] = []


class NList:
    """Parsed ``nlist`` / ``nlist_64`` symbol entry."""
    __slots__ = ("n_strx", "n_type", "n_sect", "n_desc", "n_value")

    def __init__(self) -> None:
        self.n_strx: int = 0
        self.n_type: int = 0
        self.n_sect: int = 0
        self.n_desc: int = 0
        self.n_value: int = 0

    @property
    def is_external(self) -> bool:
        return not self.n_type & N_STAB and bool(self.n_type & N_EXT)

    @property
    def kind(self) -> int:
        return self.n_type & N_TYPE

    @property
    def library_ordinal(self) -> int:
        return (self.n_desc >> 8) & 0xFF


# ---------------------------------------------------------------------------
# Mach-O Parser
# ---------------------------------------------------------------------------

class MachOParser:
    """Manual struct-based Mach-O (thin) parser.

    *base* is the offset of this slice within the enclosing file; every
    offset the parser stores is relative to the slice.

    Usage::

        macho = MachOParser(raw_bytes).parse()
        for seg in macho.segments:
            print(seg.segname, hex(seg.vmaddr))
    """

    format: BinaryFormat = BinaryFormat.MACHO

    def __init__(self, data: bytes, base: int = 0) -> None:
        self._data: bytes = data
        self.base: int = base
        self.header: MachHeader = MachHeader()
        self.load_commands: list[LoadCommand] = []
        self.segments: list[Segment] = []
        self.libraries: list[str] = []
        self.rpaths: list[str] = []
        self.name: Optional[str] = None
        self.entry: int = 0
        self.symbols: list[NList] = []
        self.strtab: StringTable = StringTable()
        self._is_64bit: bool = False
        self._endian: str = "<"

    # ------------------------------------------------------------------ #
    #  Public interface
    # ------------------------------------------------------------------ #

    def parse(self) -> MachOParser:
        """Parse the slice.

        Raises:
            ParseError: Bad magic, truncated header or malformed command.
            TruncatedTableError: Load commands or symbol table exceed the data.
        """
        if len(self._data) < 4:
            raise ParseError("file too short for a Mach-O magic")
        magic = struct.unpack_from("<I", self._data, 0)[0]
        if magic not in _MAGICS:
            raise ParseError(f"bad Mach-O magic {magic:#010x}")
        self._is_64bit, self._endian = _MAGICS[magic]

        try:
            self._parse_header()
            self._parse_load_commands()
        except struct.error as exc:
            raise ParseError(f"malformed Mach-O structure: {exc}") from exc
        # LC_MAIN stores the entry as an offset into __TEXT
        if self.entry:
            text = next((s for s in self.segments if s.segname == "__TEXT"), None)
            if text is not None:
                self.entry += text.vmaddr
        return self

    @property
    def data(self) -> bytes:
        return self._data

    @property
    def is_64(self) -> bool:
        return self._is_64bit

    @property
    def little_endian(self) -> bool:
        return self._endian == "<"

    @property
    def is_lib(self) -> bool:
        return self.header.filetype == MH_DYLIB

    @property
    def arch(self) -> str:
        return cpu_type_name(self.header.cputype)

    @property
    def filetype_name(self) -> str:
        ft = self.header.filetype
        return _FILETYPE_NAMES.get(ft, f"{ft:#x}")

    def get_binary_info(self) -> BinaryInfo:
        return BinaryInfo(
            format=BinaryFormat.MACHO,
            kind=self.filetype_name,
            arch=self.arch,
            bits=64 if self._is_64bit else 32,
            endian="little" if self.little_endian else "big",
            entry_point=self.entry,
            is_lib=self.is_lib,
        )

    def get_exports(self) -> list[ExportInfo]:
        """Defined external symbols (``N_EXT`` with ``N_SECT``)."""
        result: list[ExportInfo] = []
        for sym in self.symbols:
            if sym.is_external and sym.kind == N_SECT:
                result.append(ExportInfo(
                    name=self.strtab.name_at(sym.n_strx),
                    address=sym.n_value,
                ))
        return result

    def get_imports(self) -> list[ImportInfo]:
        """Undefined external symbols with the dylib expected to bind them."""
        result: list[ImportInfo] = []
        for sym in self.symbols:
            if not (sym.is_external and sym.kind == N_UNDF and sym.n_strx):
                continue
            result.append(ImportInfo(
                name=self.strtab.name_at(sym.n_strx),
                library=self._library_for_ordinal(sym.library_ordinal),
                address=sym.n_value,
                ordinal=sym.library_ordinal,
            ))
        return result

    # ------------------------------------------------------------------ #
    #  Header and load commands
    # ------------------------------------------------------------------ #

    def _parse_header(self) -> None:
        h = self.header
        fmt = f"{self._endian}IiiIIII" + ("I" if self._is_64bit else "")
        if struct.calcsize(fmt) > len(self._data):
            raise ParseError("file too short for the Mach-O header")
        fields = struct.unpack_from(fmt, self._data, 0)
        (
            h.magic, h.cputype, h.cpusubtype, h.filetype,
            h.ncmds, h.sizeofcmds, h.flags,
        ) = fields[:7]
        if self._is_64bit:
            h.reserved = fields[7]

    @property
    def header_size(self) -> int:
        return 32 if self._is_64bit else 28

    def _parse_load_commands(self) -> None:
        h = self.header
        start = self.header_size
        self._require("load commands", start, h.sizeofcmds)

        offset = start
        for index in range(h.ncmds):
            self._require(f"load command {index}", offset, 8)
            cmd, cmdsize = struct.unpack_from(f"{self._endian}II", self._data, offset)
            if cmdsize < 8:
                raise ParseError(
                    f"load command {index} at {offset:#x} has invalid size {cmdsize}"
                )
            self._require(f"load command {index}", offset, cmdsize)
            lc = LoadCommand(index, cmd, cmdsize, offset)
            self.load_commands.append(lc)

            if cmd in (LC_SEGMENT, LC_SEGMENT_64):
                self.segments.append(self._parse_segment(lc))
            elif cmd == LC_SYMTAB:
                self._parse_symtab(lc)
            elif cmd in _DYLIB_COMMANDS:
                self.libraries.append(self._lc_string(lc, 8))
            elif cmd == LC_ID_DYLIB:
                self.name = self._lc_string(lc, 8)
            elif cmd == LC_RPATH:
                self.rpaths.append(self._lc_string(lc, 8))
            elif cmd == LC_MAIN:
                self.entry = struct.unpack_from(f"{self._endian}Q", self._data, offset + 8)[0]

            offset += cmdsize

    def _parse_segment(self, lc: LoadCommand) -> Segment:
        seg = Segment(lc)
        pos = lc.offset + 8
        if lc.cmd == LC_SEGMENT_64:
            fmt = f"{self._endian}16sQQQQiiII"
            sect_fmt = f"{self._endian}16s16sQQIIIIIIII"
        else:
            fmt = f"{self._endian}16sIIIIiiII"
            sect_fmt = f"{self._endian}16s16sIIIIIIIII"
        (
            raw_name, seg.vmaddr, seg.vmsize, seg.fileoff, seg.filesize,
            seg.maxprot, seg.initprot, seg.nsects, seg.flags,
        ) = struct.unpack_from(fmt, self._data, pos)
        seg.segname = _fixed_name(raw_name)
        pos += struct.calcsize(fmt)

        sect_size = struct.calcsize(sect_fmt)
        if pos + seg.nsects * sect_size > lc.offset + lc.cmdsize:
            raise TruncatedTableError(
                f"sections of segment {seg.segname}",
                pos, seg.nsects * sect_size, lc.offset + lc.cmdsize,
            )
        for _ in range(seg.nsects):
            sect = Section()
            fields = struct.unpack_from(sect_fmt, self._data, pos)
            sect.sectname = _fixed_name(fields[0])
            sect.segname = _fixed_name(fields[1])
            (
                sect.addr, sect.size, sect.offset, sect.align,
                sect.reloff, sect.nreloc, sect.flags,
            ) = fields[2:9]
            seg.sections.append(sect)
            pos += sect_size
        return seg

    def _parse_symtab(self, lc: LoadCommand) -> None:
        symoff, nsyms, stroff, strsize = struct.unpack_from(
            f"{self._endian}IIII", self._data, lc.offset + 8,
        )
        fmt = f"{self._endian}IBBH" + ("Q" if self._is_64bit else "I")
        entsize = struct.calcsize(fmt)
        self._require("symbol table", symoff, nsyms * entsize)
        self._require("symbol string table", stroff, strsize)
        self.strtab = StringTable(self._data[stroff:stroff + strsize])
        for i in range(nsyms):
            sym = NList()
            (
                sym.n_strx, sym.n_type, sym.n_sect, sym.n_desc, sym.n_value,
            ) = struct.unpack_from(fmt, self._data, symoff + i * entsize)
            self.symbols.append(sym)

    def _lc_string(self, lc: LoadCommand, field_offset: int) -> str:
        """Read the ``lc_str`` whose offset is stored at *field_offset*."""
        str_offset = struct.unpack_from(
            f"{self._endian}I", self._data, lc.offset + field_offset,
        )[0]
        if str_offset >= lc.cmdsize:
            return UNREADABLE
        return StringTable(
            self._data[lc.offset:lc.offset + lc.cmdsize]
        ).name_at(str_offset)

    def _library_for_ordinal(self, ordinal: int) -> str:
        if ordinal == SELF_LIBRARY_ORDINAL:
            return "self"
        if ordinal == DYNAMIC_LOOKUP_ORDINAL:
            return "dynamic-lookup"
        if ordinal == EXECUTABLE_ORDINAL:
            return "executable"
        if 0 < ordinal <= len(self.libraries):
            return self.libraries[ordinal - 1]
        return f"BAD_IDX({ordinal})"

    def _require(self, table: str, offset: int, size: int) -> None:
        if offset + size > len(self._data):
            raise TruncatedTableError(table, offset, size, len(self._data))


# ---------------------------------------------------------------------------
# Fat (universal) Parser
# ---------------------------------------------------------------------------

class FatArch:
    """Parsed ``fat_arch`` entry."""
    __slots__ = ("cputype", "cpusubtype", "offset", "size", "align")

    def __init__(self) -> None:
        self.cputype: int = 0
        self.cpusubtype: int = 0
        self.offset: int = 0
        self.size: int = 0
        self.align: int = 0

    @property
    def name(self) -> str:
        return cpu_type_name(self.cputype)


class FatMachOParser:
    """Parser for fat (universal) Mach-O files.

    Each architecture slice is parsed with :class:`MachOParser`, keeping
    the slice's offset in the file as its ``base``.  A slice that fails to
    parse is recorded in ``slice_errors`` and the remaining slices are
    still parsed.
    """

    format: BinaryFormat = BinaryFormat.MACHO_FAT

    def __init__(self, data: bytes) -> None:
        self._data: bytes = data
        self.arches: list[FatArch] = []
        self.slices: list[MachOParser] = []
        self.slice_errors: list[tuple[FatArch, str]] = []
        self._slice_arches: list[FatArch] = []

    def parse(self) -> FatMachOParser:
        if len(self._data) < 8:
            raise ParseError("file too short for a fat header")
        magic, nfat_arch = struct.unpack_from(">II", self._data, 0)
        if magic != FAT_MAGIC:
            raise ParseError(f"bad fat magic {magic:#010x}")
        table_size = nfat_arch * 20
        if 8 + table_size > len(self._data):
            raise TruncatedTableError("fat arch table", 8, table_size, len(self._data))

        for i in range(nfat_arch):
            arch = FatArch()
            (
                arch.cputype, arch.cpusubtype, arch.offset, arch.size, arch.align,
            ) = struct.unpack_from(">iiIII", self._data, 8 + i * 20)
            self.arches.append(arch)
            try:
                if arch.offset + arch.size > len(self._data):
                    raise TruncatedTableError(
                        f"fat slice {arch.name}", arch.offset, arch.size, len(self._data),
                    )
                macho = MachOParser(
                    self._data[arch.offset:arch.offset + arch.size], base=arch.offset,
                ).parse()
            except (ParseError, TruncatedTableError) as exc:
                self.slice_errors.append((arch, str(exc)))
                continue
            self.slices.append(macho)
            self._slice_arches.append(arch)
        return self

    def iter_slices(self) -> Iterator[tuple[FatArch, MachOParser]]:
        """Parsed slices paired with their ``fat_arch`` entries."""
        return zip(self._slice_arches, self.slices)

    @property
    def data(self) -> bytes:
        return self._data

    def get_binary_info(self) -> BinaryInfo:
        return BinaryInfo(
            format=BinaryFormat.MACHO_FAT,
            kind="FAT",
            arch=",".join(a.name for a in self.arches),
            endian="big",
        )
