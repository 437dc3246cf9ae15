"""
PE/COFF Binary Format Parser
===============================

Manual struct-based parser for the Portable Executable (PE) format used
by Microsoft Windows for executables (.exe), dynamic link libraries (.dll),
and other binary images.

All parsing is performed using :mod:`struct`.  Both PE32 (32-bit) and
PE32+ (64-bit) optional headers are supported.

The parser extracts:
    - DOS header and PE signature
    - COFF file header (machine, section count, timestamp, characteristics)
    - Optional header (entry point, image base, subsystem, data directories)
    - Section table
    - Import directory (imported DLLs and their functions)
    - Export directory (exported functions)

PE files are listed but not correlated: no file-offset ranges are built
for them.

References:
    - Microsoft. (2024). PE Format. Microsoft Learn.
      https://learn.microsoft.com/en-us/windows/win32/debug/pe-format
    - Pietrek, M. (1994). Peering Inside the PE: A Tour of the Win32
      Portable Executable File Format. Microsoft Systems Journal.
"""

from __future__ import annotations

import struct
from datetime import datetime, timezone
from typing import Optional

from bingrep.core.errors import ParseError, TruncatedTableError
from bingrep.core.models import (
    UNREADABLE,
    BinaryFormat,
    BinaryInfo,
    ExportInfo,
    ImportInfo,
)


# ---------------------------------------------------------------------------
# PE Constants
# ---------------------------------------------------------------------------

# Magic numbers
MZ_MAGIC: bytes = b"MZ"
PE_MAGIC: bytes = b"PE\x00\x00"

# Optional header magic
PE32_MAGIC: int = 0x10B
PE32PLUS_MAGIC: int = 0x20B

# Machine types
IMAGE_FILE_MACHINE_UNKNOWN: int = 0x0
IMAGE_FILE_MACHINE_I386: int = 0x14C
IMAGE_FILE_MACHINE_ARM: int = 0x1C0
IMAGE_FILE_MACHINE_ARMNT: int = 0x1C4
IMAGE_FILE_MACHINE_AMD64: int = 0x8664
IMAGE_FILE_MACHINE_ARM64: int = 0xAA64
IMAGE_FILE_MACHINE_IA64: int = 0x200
IMAGE_FILE_MACHINE_RISCV64: int = 0x5064

_MACHINE_NAMES: dict[int, str] = {
    IMAGE_FILE_MACHINE_UNKNOWN: "Unknown",
    IMAGE_FILE_MACHINE_I386: "x86",
    IMAGE_FILE_MACHINE_ARM: "ARM",
    IMAGE_FILE_MACHINE_ARMNT: "ARM Thumb-2",
    IMAGE_FILE_MACHINE_AMD64: "x86_64",
    IMAGE_FILE_MACHINE_ARM64: "AArch64",
    IMAGE_FILE_MACHINE_IA64: "IA-64",
    IMAGE_FILE_MACHINE_RISCV64: "RISC-V 64",
}

IMAGE_FILE_DLL: int = 0x2000

_SUBSYSTEM_NAMES: dict[int, str] = {
    0: "Unknown",
    1: "Native",
    2: "Windows GUI",
    3: "Windows Console",
    7: "POSIX Console",
    9: "Windows CE GUI",
    10: "EFI Application",
    11: "EFI Boot Service Driver",
    12: "EFI Runtime Driver",
    13: "EFI ROM",
    14: "Xbox",
}

# Section characteristics
IMAGE_SCN_CNT_CODE: int = 0x00000020
IMAGE_SCN_CNT_INITIALIZED_DATA: int = 0x00000040
IMAGE_SCN_CNT_UNINITIALIZED_DATA: int = 0x00000080
IMAGE_SCN_MEM_EXECUTE: int = 0x20000000
IMAGE_SCN_MEM_READ: int = 0x40000000
IMAGE_SCN_MEM_WRITE: int = 0x80000000

# Data directory indices
IMAGE_DIRECTORY_ENTRY_EXPORT: int = 0
IMAGE_DIRECTORY_ENTRY_IMPORT: int = 1

# Upper bounds on walked tables
_MAX_IMPORT_DESCRIPTORS: int = 1000
_MAX_THUNKS: int = 10000
_MAX_EXPORTS: int = 10000


# ---------------------------------------------------------------------------
# Parsed structures
# ---------------------------------------------------------------------------

class COFFHeader:
    """Parsed COFF file header."""
    __slots__ = (
        "machine", "number_of_sections", "time_date_stamp",
        "pointer_to_symbol_table", "number_of_symbols",
        "size_of_optional_header", "characteristics",
    )

    def __init__(self) -> None:
        self.machine: int = 0
        self.number_of_sections: int = 0
        self.time_date_stamp: int = 0
        self.pointer_to_symbol_table: int = 0
        self.number_of_symbols: int = 0
        self.size_of_optional_header: int = 0
        self.characteristics: int = 0


class OptionalHeader:
    """Fields of the PE optional header that bingrep displays."""
    __slots__ = (
        "magic", "address_of_entry_point", "image_base",
        "section_alignment", "file_alignment", "size_of_image",
        "size_of_headers", "subsystem", "dll_characteristics",
        "number_of_rva_and_sizes", "data_directories",
    )

    def __init__(self) -> None:
        self.magic: int = 0
        self.address_of_entry_point: int = 0
        self.image_base: int = 0
        self.section_alignment: int = 0
        self.file_alignment: int = 0
        self.size_of_image: int = 0
        self.size_of_headers: int = 0
        self.subsystem: int = 0
        self.dll_characteristics: int = 0
        self.number_of_rva_and_sizes: int = 0
        self.data_directories: list[tuple[int, int]] = []  # (rva, size) pairs


class PESection:
    """Parsed PE section header."""
    __slots__ = (
        "name", "virtual_size", "virtual_address",
        "size_of_raw_data", "pointer_to_raw_data",
        "pointer_to_relocations", "pointer_to_linenumbers",
        "number_of_relocations", "number_of_linenumbers",
        "characteristics",
    )

    def __init__(self) -> None:
        self.name: str = ""
        self.virtual_size: int = 0
        self.virtual_address: int = 0
        self.size_of_raw_data: int = 0
        self.pointer_to_raw_data: int = 0
        self.pointer_to_relocations: int = 0
        self.pointer_to_linenumbers: int = 0
        self.number_of_relocations: int = 0
        self.number_of_linenumbers: int = 0
        self.characteristics: int = 0

    @property
    def flags(self) -> str:
        """Readable characteristics such as ``"R X CODE"``."""
        parts: list[str] = []
        c = self.characteristics
        if c & IMAGE_SCN_MEM_READ:
            parts.append("R")
        if c & IMAGE_SCN_MEM_WRITE:
            parts.append("W")
        if c & IMAGE_SCN_MEM_EXECUTE:
            parts.append("X")
        if c & IMAGE_SCN_CNT_CODE:
            parts.append("CODE")
        if c & IMAGE_SCN_CNT_INITIALIZED_DATA:
            parts.append("IDATA")
        if c & IMAGE_SCN_CNT_UNINITIALIZED_DATA:
            parts.append("UDATA")
        return " ".join(parts)


# ---------------------------------------------------------------------------
# PE Parser
# ---------------------------------------------------------------------------

class PEParser:
    """Manual struct-based PE/COFF binary parser.

    Usage::

        pe = PEParser(raw_bytes).parse()
        for imp in pe.imports:
            print(imp.library, imp.name)
    """

    format: BinaryFormat = BinaryFormat.PE

    def __init__(self, data: bytes) -> None:
        """Initialise the parser with raw binary data.

        Args:
            data: Complete PE file contents as bytes.
        """
        self._data: bytes = data
        self.e_lfanew: int = 0
        self.coff_header: COFFHeader = COFFHeader()
        self.optional_header: OptionalHeader = OptionalHeader()
        self.sections: list[PESection] = []
        self.imports: list[ImportInfo] = []
        self.exports: list[ExportInfo] = []
        self.libraries: list[str] = []
        self.name: Optional[str] = None
        self._is_pe32plus: bool = False

    # ------------------------------------------------------------------ #
    #  Public interface
    # ------------------------------------------------------------------ #

    def parse(self) -> PEParser:
        """Parse the PE binary.

        Raises:
            ParseError: On a bad DOS/PE signature or truncated headers.
            TruncatedTableError: When the section table exceeds the file.
        """
        if len(self._data) < 64:
            raise ParseError("file too short for a DOS header")
        if self._data[:2] != MZ_MAGIC:
            raise ParseError("bad DOS magic")

        try:
            self.e_lfanew = struct.unpack_from("<I", self._data, 60)[0]
            if self._data[self.e_lfanew:self.e_lfanew + 4] != PE_MAGIC:
                raise ParseError(f"no PE signature at {self.e_lfanew:#x}")
            self._parse_coff_header()
            self._parse_optional_header()
            self._parse_section_table()
            self._parse_import_directory()
            self._parse_export_directory()
        except struct.error as exc:
            raise ParseError(f"malformed PE structure: {exc}") from exc
        return self

    @property
    def data(self) -> bytes:
        return self._data

    @property
    def is_64(self) -> bool:
        return self._is_pe32plus

    @property
    def is_lib(self) -> bool:
        return bool(self.coff_header.characteristics & IMAGE_FILE_DLL)

    @property
    def machine_name(self) -> str:
        machine = self.coff_header.machine
        return _MACHINE_NAMES.get(machine, f"unknown({machine:#x})")

    @property
    def subsystem_name(self) -> str:
        sub = self.optional_header.subsystem
        return _SUBSYSTEM_NAMES.get(sub, f"Unknown({sub:#x})")

    @property
    def entry(self) -> int:
        return self.optional_header.address_of_entry_point

    def get_binary_info(self) -> BinaryInfo:
        return BinaryInfo(
            format=BinaryFormat.PE,
            kind="DLL" if self.is_lib else "EXE",
            arch=self.machine_name,
            bits=64 if self._is_pe32plus else 32,
            endian="little",
            entry_point=self.entry,
            is_lib=self.is_lib,
        )

    def get_timestamp(self) -> Optional[datetime]:
        """Link timestamp from the COFF header, or ``None`` if zero."""
        ts = self.coff_header.time_date_stamp
        if ts == 0:
            return None
        try:
            return datetime.fromtimestamp(ts, tz=timezone.utc)
        except (OSError, ValueError, OverflowError):
            return None

    # ------------------------------------------------------------------ #
    #  Headers
    # ------------------------------------------------------------------ #

    def _parse_coff_header(self) -> None:
        """Parse the COFF file header (20 bytes after PE signature)."""
        offset = self.e_lfanew + 4
        fmt = "<HHIIIHH"
        if offset + struct.calcsize(fmt) > len(self._data):
            raise ParseError("file too short for the COFF header")
        coff = self.coff_header
        (
            coff.machine,
            coff.number_of_sections,
            coff.time_date_stamp,
            coff.pointer_to_symbol_table,
            coff.number_of_symbols,
            coff.size_of_optional_header,
            coff.characteristics,
        ) = struct.unpack_from(fmt, self._data, offset)

    def _parse_optional_header(self) -> None:
        """Parse the PE optional header (PE32 or PE32+)."""
        if self.coff_header.size_of_optional_header == 0:
            return
        offset = self.e_lfanew + 4 + 20
        oh = self.optional_header
        oh.magic = struct.unpack_from("<H", self._data, offset)[0]
        self._is_pe32plus = oh.magic == PE32PLUS_MAGIC

        oh.address_of_entry_point = struct.unpack_from("<I", self._data, offset + 16)[0]
        if self._is_pe32plus:
            # PE32+ has no BaseOfData; ImageBase widens to 8 bytes
            win_offset = offset + 24
            fmt_win = "<QIIHHHHHHIIIIHHQQQQII"
        else:
            win_offset = offset + 28
            fmt_win = "<IIIHHHHHHIIIIHHIIIIII"
        if win_offset + struct.calcsize(fmt_win) > len(self._data):
            raise ParseError("file too short for the optional header")
        fields = struct.unpack_from(fmt_win, self._data, win_offset)
        oh.image_base, oh.section_alignment, oh.file_alignment = fields[0:3]
        oh.size_of_image, oh.size_of_headers = fields[10:12]
        oh.subsystem, oh.dll_characteristics = fields[13:15]
        oh.number_of_rva_and_sizes = fields[20]

        dd_offset = win_offset + struct.calcsize(fmt_win)
        oh.data_directories = []
        for i in range(min(oh.number_of_rva_and_sizes, 16)):
            off = dd_offset + i * 8
            if off + 8 > len(self._data):
                oh.data_directories.append((0, 0))
                continue
            oh.data_directories.append(struct.unpack_from("<II", self._data, off))

    def _parse_section_table(self) -> None:
        """Parse the section table immediately following the optional header."""
        offset = self.e_lfanew + 4 + 20 + self.coff_header.size_of_optional_header
        count = self.coff_header.number_of_sections
        if offset + count * 40 > len(self._data):
            raise TruncatedTableError("section table", offset, count * 40, len(self._data))

        for i in range(count):
            sec_offset = offset + i * 40
            sec = PESection()
            raw_name = self._data[sec_offset:sec_offset + 8].split(b"\x00", 1)[0]
            try:
                sec.name = raw_name.decode("utf-8")
            except UnicodeDecodeError:
                sec.name = UNREADABLE
            (
                sec.virtual_size,
                sec.virtual_address,
                sec.size_of_raw_data,
                sec.pointer_to_raw_data,
                sec.pointer_to_relocations,
                sec.pointer_to_linenumbers,
                sec.number_of_relocations,
                sec.number_of_linenumbers,
                sec.characteristics,
            ) = struct.unpack_from("<IIIIIIHHI", self._data, sec_offset + 8)
            self.sections.append(sec)

    # ------------------------------------------------------------------ #
    #  Import directory
    # ------------------------------------------------------------------ #

    def _directory(self, index: int) -> Optional[tuple[int, int]]:
        dirs = self.optional_header.data_directories
        if len(dirs) <= index:
            return None
        rva, size = dirs[index]
        if rva == 0 or size == 0:
            return None
        return rva, size

    def _parse_import_directory(self) -> None:
        """Walk the import descriptors and each DLL's lookup table."""
        directory = self._directory(IMAGE_DIRECTORY_ENTRY_IMPORT)
        if directory is None:
            return
        import_offset = self._rva_to_offset(directory[0])
        if import_offset is None:
            return

        for idx in range(_MAX_IMPORT_DESCRIPTORS):
            entry_offset = import_offset + idx * 20
            if entry_offset + 20 > len(self._data):
                break
            original_first_thunk, _, _, name_rva, first_thunk = struct.unpack_from(
                "<IIIII", self._data, entry_offset,
            )
            if name_rva == 0 and original_first_thunk == 0:
                break
            dll_name = self._read_rva_string(name_rva)
            if not dll_name:
                continue
            self.libraries.append(dll_name)
            ilt_rva = original_first_thunk or first_thunk
            if ilt_rva:
                self._parse_ilt(dll_name, ilt_rva)

    def _parse_ilt(self, dll_name: str, ilt_rva: int) -> None:
        """Parse the Import Lookup Table for a single DLL."""
        ilt_offset = self._rva_to_offset(ilt_rva)
        if ilt_offset is None:
            return

        thunk_size = 8 if self._is_pe32plus else 4
        ordinal_flag = 1 << 63 if self._is_pe32plus else 1 << 31
        fmt = "<Q" if self._is_pe32plus else "<I"

        for entry_idx in range(_MAX_THUNKS):
            thunk_offset = ilt_offset + entry_idx * thunk_size
            if thunk_offset + thunk_size > len(self._data):
                break
            thunk_value = struct.unpack_from(fmt, self._data, thunk_offset)[0]
            if thunk_value == 0:
                break

            imp = ImportInfo(library=dll_name, address=ilt_rva + entry_idx * thunk_size)
            if thunk_value & ordinal_flag:
                ordinal = thunk_value & 0xFFFF
                imp = imp.model_copy(update={"ordinal": ordinal, "name": f"Ordinal_{ordinal}"})
            else:
                # IMAGE_IMPORT_BY_NAME: 2-byte hint, then the name
                hint_offset = self._rva_to_offset(thunk_value & 0x7FFFFFFF)
                if hint_offset is not None:
                    imp = imp.model_copy(update={"name": self._read_offset_string(hint_offset + 2)})
            self.imports.append(imp)

    # ------------------------------------------------------------------ #
    #  Export directory
    # ------------------------------------------------------------------ #

    def _parse_export_directory(self) -> None:
        """Parse the export directory table."""
        directory = self._directory(IMAGE_DIRECTORY_ENTRY_EXPORT)
        if directory is None:
            return
        export_offset = self._rva_to_offset(directory[0])
        if export_offset is None or export_offset + 40 > len(self._data):
            return

        fields = struct.unpack_from("<IIHHIIIIIII", self._data, export_offset)
        name_rva = fields[4]
        ordinal_base = fields[5]
        number_of_functions = min(fields[6], _MAX_EXPORTS)
        number_of_names = min(fields[7], _MAX_EXPORTS)
        functions_offset = self._rva_to_offset(fields[8])
        names_offset = self._rva_to_offset(fields[9])
        ordinals_offset = self._rva_to_offset(fields[10])
        self.name = self._read_rva_string(name_rva) or None

        if functions_offset is None:
            return

        func_rvas: list[int] = []
        for i in range(number_of_functions):
            off = functions_offset + i * 4
            if off + 4 > len(self._data):
                break
            func_rvas.append(struct.unpack_from("<I", self._data, off)[0])

        if names_offset is None or ordinals_offset is None:
            return
        for i in range(number_of_names):
            name_ptr_off = names_offset + i * 4
            ordinal_off = ordinals_offset + i * 2
            if name_ptr_off + 4 > len(self._data) or ordinal_off + 2 > len(self._data):
                break
            name_rva_val = struct.unpack_from("<I", self._data, name_ptr_off)[0]
            ordinal_idx = struct.unpack_from("<H", self._data, ordinal_off)[0]
            self.exports.append(ExportInfo(
                name=self._read_rva_string(name_rva_val),
                ordinal=ordinal_idx + ordinal_base,
                address=func_rvas[ordinal_idx] if ordinal_idx < len(func_rvas) else 0,
            ))

    # ------------------------------------------------------------------ #
    #  Utility methods
    # ------------------------------------------------------------------ #

    def _rva_to_offset(self, rva: int) -> Optional[int]:
        """Convert a Relative Virtual Address to a file offset.

        Returns:
            File offset, or ``None`` if the RVA is not in any section.
        """
        for sec in self.sections:
            sec_start = sec.virtual_address
            sec_end = sec_start + max(sec.virtual_size, sec.size_of_raw_data)
            if sec_start <= rva < sec_end:
                offset = sec.pointer_to_raw_data + (rva - sec_start)
                if offset < len(self._data):
                    return offset
        # Addresses inside the headers map one-to-one
        if rva < (self.sections[0].virtual_address if self.sections else 0x1000):
            return rva if rva < len(self._data) else None
        return None

    def _read_rva_string(self, rva: int) -> str:
        offset = self._rva_to_offset(rva)
        if offset is None:
            return ""
        return self._read_offset_string(offset)

    def _read_offset_string(self, offset: int) -> str:
        """Read a NUL-terminated string; undecodable bytes yield ``<unreadable>``."""
        if offset < 0 or offset >= len(self._data):
            return ""
        end = self._data.find(b"\x00", offset)
        if end == -1:
            end = min(offset + 256, len(self._data))
        try:
            return self._data[offset:end].decode("utf-8")
        except UnicodeDecodeError:
            return UNREADABLE
