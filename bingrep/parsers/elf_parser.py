"""
ELF Binary Format Parser
==========================

Manual struct-based parser for the Executable and Linkable Format (ELF),
the standard binary format for Unix-like operating systems including Linux,
FreeBSD, and Solaris.

All parsing is performed using :mod:`struct` without any external libraries
such as ``pyelftools``.  Both 32-bit (ELF32) and 64-bit (ELF64) variants
in either byte order are supported.

The parser extracts:
    - ELF header (class, endianness, type, machine, entry point)
    - Program headers and section headers, in table order
    - Symbol tables (``.symtab`` and ``.dynsym``) with their string tables
    - Section relocation tables (``SHT_REL`` / ``SHT_RELA``)
    - Dynamic entries, libraries, soname, rpath / runpath
    - Dynamic relocations reached through ``DT_RELA``, ``DT_REL`` and
      ``DT_JMPREL``

Names are left unresolved on symbols and relocations; the correlation
core resolves them so that out-of-range indices and undecodable names
surface as sentinels rather than parse failures.

References:
    - TIS Committee. (1995). Tool Interface Standard (TIS) Executable and
      Linkable Format (ELF) Specification, Version 1.2.
    - System V Application Binary Interface, Edition 4.1.
    - System V ABI AMD64 / i386 / AArch64 supplements (relocation types).
    - Linux man page: elf(5).
"""

from __future__ import annotations

import struct
from typing import Optional

from bingrep.core.errors import ParseError, TruncatedTableError
from bingrep.core.models import (
    BinaryFormat,
    BinaryInfo,
    SymbolBinding,
    SymbolType,
)
from bingrep.core.strtab import StringTable
from bingrep.core.xref import FormatConventions


# ---------------------------------------------------------------------------
# ELF Constants
# ---------------------------------------------------------------------------

# Magic number
ELF_MAGIC: bytes = b"\x7fELF"

# ELF Class (32-bit vs 64-bit)
ELFCLASS32: int = 1
ELFCLASS64: int = 2

# Data encoding (endianness)
ELFDATA2LSB: int = 1  # Little-endian
ELFDATA2MSB: int = 2  # Big-endian

# ELF type
ET_NONE: int = 0
ET_REL: int = 1
ET_EXEC: int = 2
ET_DYN: int = 3
ET_CORE: int = 4

_ET_NAMES: dict[int, str] = {
    ET_NONE: "NONE",
    ET_REL: "REL",
    ET_EXEC: "EXEC",
    ET_DYN: "DYN",
    ET_CORE: "CORE",
}

# Machine architectures
EM_NONE: int = 0
EM_SPARC: int = 2
EM_386: int = 3
EM_MIPS: int = 8
EM_PPC: int = 20
EM_PPC64: int = 21
EM_ARM: int = 40
EM_X86_64: int = 62
EM_AARCH64: int = 183
EM_RISCV: int = 243

_EM_NAMES: dict[int, str] = {
    EM_NONE: "None",
    EM_SPARC: "SPARC",
    EM_386: "x86",
    EM_MIPS: "MIPS",
    EM_PPC: "PowerPC",
    EM_PPC64: "PowerPC64",
    EM_ARM: "ARM",
    EM_X86_64: "x86_64",
    EM_AARCH64: "AArch64",
    EM_RISCV: "RISC-V",
}

# Section header types
SHT_NULL: int = 0
SHT_PROGBITS: int = 1
SHT_SYMTAB: int = 2
SHT_STRTAB: int = 3
SHT_RELA: int = 4
SHT_HASH: int = 5
SHT_DYNAMIC: int = 6
SHT_NOTE: int = 7
SHT_NOBITS: int = 8
SHT_REL: int = 9
SHT_DYNSYM: int = 11
SHT_INIT_ARRAY: int = 14
SHT_FINI_ARRAY: int = 15
SHT_GNU_HASH: int = 0x6FFFFFF6
SHT_GNU_VERSYM: int = 0x6FFFFFFF
SHT_GNU_VERNEED: int = 0x6FFFFFFE
SHT_GNU_VERDEF: int = 0x6FFFFFFD

_SHT_NAMES: dict[int, str] = {
    SHT_NULL: "NULL",
    SHT_PROGBITS: "PROGBITS",
    SHT_SYMTAB: "SYMTAB",
    SHT_STRTAB: "STRTAB",
    SHT_RELA: "RELA",
    SHT_HASH: "HASH",
    SHT_DYNAMIC: "DYNAMIC",
    SHT_NOTE: "NOTE",
    SHT_NOBITS: "NOBITS",
    SHT_REL: "REL",
    SHT_DYNSYM: "DYNSYM",
    SHT_INIT_ARRAY: "INIT_ARRAY",
    SHT_FINI_ARRAY: "FINI_ARRAY",
    SHT_GNU_HASH: "GNU_HASH",
    SHT_GNU_VERSYM: "GNU_VERSYM",
    SHT_GNU_VERNEED: "GNU_VERNEED",
    SHT_GNU_VERDEF: "GNU_VERDEF",
}

# Section header flags
SHF_WRITE: int = 0x1
SHF_ALLOC: int = 0x2
SHF_EXECINSTR: int = 0x4
SHF_MERGE: int = 0x10
SHF_STRINGS: int = 0x20
SHF_INFO_LINK: int = 0x40
SHF_LINK_ORDER: int = 0x80
SHF_OS_NONCONFORMING: int = 0x100
SHF_GROUP: int = 0x200
SHF_TLS: int = 0x400
SHF_COMPRESSED: int = 0x800

_SHF_NAMES: tuple[tuple[int, str], ...] = (
    (SHF_WRITE, "WRITE"),
    (SHF_ALLOC, "ALLOC"),
    (SHF_EXECINSTR, "EXECINSTR"),
    (SHF_MERGE, "MERGE"),
    (SHF_STRINGS, "STRINGS"),
    (SHF_INFO_LINK, "INFO_LINK"),
    (SHF_LINK_ORDER, "LINK_ORDER"),
    (SHF_OS_NONCONFORMING, "OS_NONCONFORMING"),
    (SHF_GROUP, "GROUP"),
    (SHF_TLS, "TLS"),
    (SHF_COMPRESSED, "COMPRESSED"),
)

# Program header types
PT_NULL: int = 0
PT_LOAD: int = 1
PT_DYNAMIC: int = 2
PT_INTERP: int = 3
PT_NOTE: int = 4
PT_SHLIB: int = 5
PT_PHDR: int = 6
PT_TLS: int = 7
PT_GNU_EH_FRAME: int = 0x6474E550
PT_GNU_STACK: int = 0x6474E551
PT_GNU_RELRO: int = 0x6474E552
PT_GNU_PROPERTY: int = 0x6474E553

_PT_NAMES: dict[int, str] = {
    PT_NULL: "PT_NULL",
    PT_LOAD: "PT_LOAD",
    PT_DYNAMIC: "PT_DYNAMIC",
    PT_INTERP: "PT_INTERP",
    PT_NOTE: "PT_NOTE",
    PT_SHLIB: "PT_SHLIB",
    PT_PHDR: "PT_PHDR",
    PT_TLS: "PT_TLS",
    PT_GNU_EH_FRAME: "PT_GNU_EH_FRAME",
    PT_GNU_STACK: "PT_GNU_STACK",
    PT_GNU_RELRO: "PT_GNU_RELRO",
    PT_GNU_PROPERTY: "PT_GNU_PROPERTY",
}

# Program header flags
PF_X: int = 0x1  # Execute
PF_W: int = 0x2  # Write
PF_R: int = 0x4  # Read

# Symbol binding
STB_LOCAL: int = 0
STB_GLOBAL: int = 1
STB_WEAK: int = 2
STB_GNU_UNIQUE: int = 10

_STB_NAMES: dict[int, str] = {
    STB_LOCAL: "LOCAL",
    STB_GLOBAL: "GLOBAL",
    STB_WEAK: "WEAK",
    STB_GNU_UNIQUE: "GNU_UNIQUE",
}

# Symbol types
STT_NOTYPE: int = 0
STT_OBJECT: int = 1
STT_FUNC: int = 2
STT_SECTION: int = 3
STT_FILE: int = 4
STT_COMMON: int = 5
STT_TLS: int = 6
STT_GNU_IFUNC: int = 10

_STT_NAMES: dict[int, str] = {
    STT_NOTYPE: "NOTYPE",
    STT_OBJECT: "OBJECT",
    STT_FUNC: "FUNC",
    STT_SECTION: "SECTION",
    STT_FILE: "FILE",
    STT_COMMON: "COMMON",
    STT_TLS: "TLS",
    STT_GNU_IFUNC: "GNU_IFUNC",
}

# Dynamic tags
DT_NULL: int = 0
DT_NEEDED: int = 1
DT_PLTRELSZ: int = 2
DT_PLTGOT: int = 3
DT_HASH: int = 4
DT_STRTAB: int = 5
DT_SYMTAB: int = 6
DT_RELA: int = 7
DT_RELASZ: int = 8
DT_RELAENT: int = 9
DT_STRSZ: int = 10
DT_SYMENT: int = 11
DT_INIT: int = 12
DT_FINI: int = 13
DT_SONAME: int = 14
DT_RPATH: int = 15
DT_SYMBOLIC: int = 16
DT_REL: int = 17
DT_RELSZ: int = 18
DT_RELENT: int = 19
DT_PLTREL: int = 20
DT_DEBUG: int = 21
DT_TEXTREL: int = 22
DT_JMPREL: int = 23
DT_BIND_NOW: int = 24
DT_INIT_ARRAY: int = 25
DT_FINI_ARRAY: int = 26
DT_INIT_ARRAYSZ: int = 27
DT_FINI_ARRAYSZ: int = 28
DT_RUNPATH: int = 29
DT_FLAGS: int = 30
DT_GNU_HASH: int = 0x6FFFFEF5
DT_VERSYM: int = 0x6FFFFFF0
DT_RELACOUNT: int = 0x6FFFFFF9
DT_RELCOUNT: int = 0x6FFFFFFA
DT_FLAGS_1: int = 0x6FFFFFFB
DT_VERNEED: int = 0x6FFFFFFE
DT_VERNEEDNUM: int = 0x6FFFFFFF

_DT_NAMES: dict[int, str] = {
    DT_NULL: "DT_NULL",
    DT_NEEDED: "DT_NEEDED",
    DT_PLTRELSZ: "DT_PLTRELSZ",
    DT_PLTGOT: "DT_PLTGOT",
    DT_HASH: "DT_HASH",
    DT_STRTAB: "DT_STRTAB",
    DT_SYMTAB: "DT_SYMTAB",
    DT_RELA: "DT_RELA",
    DT_RELASZ: "DT_RELASZ",
    DT_RELAENT: "DT_RELAENT",
    DT_STRSZ: "DT_STRSZ",
    DT_SYMENT: "DT_SYMENT",
    DT_INIT: "DT_INIT",
    DT_FINI: "DT_FINI",
    DT_SONAME: "DT_SONAME",
    DT_RPATH: "DT_RPATH",
    DT_SYMBOLIC: "DT_SYMBOLIC",
    DT_REL: "DT_REL",
    DT_RELSZ: "DT_RELSZ",
    DT_RELENT: "DT_RELENT",
    DT_PLTREL: "DT_PLTREL",
    DT_DEBUG: "DT_DEBUG",
    DT_TEXTREL: "DT_TEXTREL",
    DT_JMPREL: "DT_JMPREL",
    DT_BIND_NOW: "DT_BIND_NOW",
    DT_INIT_ARRAY: "DT_INIT_ARRAY",
    DT_FINI_ARRAY: "DT_FINI_ARRAY",
    DT_INIT_ARRAYSZ: "DT_INIT_ARRAYSZ",
    DT_FINI_ARRAYSZ: "DT_FINI_ARRAYSZ",
    DT_RUNPATH: "DT_RUNPATH",
    DT_FLAGS: "DT_FLAGS",
    DT_GNU_HASH: "DT_GNU_HASH",
    DT_VERSYM: "DT_VERSYM",
    DT_RELACOUNT: "DT_RELACOUNT",
    DT_RELCOUNT: "DT_RELCOUNT",
    DT_FLAGS_1: "DT_FLAGS_1",
    DT_VERNEED: "DT_VERNEED",
    DT_VERNEEDNUM: "DT_VERNEEDNUM",
}

#: Tags whose value is a string-table offset.
DT_STRING_TAGS: frozenset[int] = frozenset({DT_NEEDED, DT_SONAME, DT_RPATH, DT_RUNPATH})

#: Tags whose value is a virtual address.
DT_ADDRESS_TAGS: frozenset[int] = frozenset({
    DT_PLTGOT, DT_HASH, DT_STRTAB, DT_SYMTAB, DT_RELA, DT_INIT, DT_FINI,
    DT_REL, DT_JMPREL, DT_INIT_ARRAY, DT_FINI_ARRAY, DT_GNU_HASH,
    DT_VERSYM, DT_VERNEED,
})

#: Tags whose value is a byte count.
DT_SIZE_TAGS: frozenset[int] = frozenset({
    DT_PLTRELSZ, DT_RELASZ, DT_STRSZ, DT_RELSZ, DT_INIT_ARRAYSZ, DT_FINI_ARRAYSZ,
})

# Special section indices
SHN_UNDEF: int = 0
SHN_ABS: int = 0xFFF1

# Relocation type names for the architectures bingrep names explicitly.
_R_X86_64: dict[int, str] = {
    0: "R_X86_64_NONE", 1: "R_X86_64_64", 2: "R_X86_64_PC32",
    3: "R_X86_64_GOT32", 4: "R_X86_64_PLT32", 5: "R_X86_64_COPY",
    6: "R_X86_64_GLOB_DAT", 7: "R_X86_64_JUMP_SLOT", 8: "R_X86_64_RELATIVE",
    9: "R_X86_64_GOTPCREL", 10: "R_X86_64_32", 11: "R_X86_64_32S",
    12: "R_X86_64_16", 13: "R_X86_64_PC16", 14: "R_X86_64_8",
    15: "R_X86_64_PC8", 16: "R_X86_64_DTPMOD64", 17: "R_X86_64_DTPOFF64",
    18: "R_X86_64_TPOFF64", 19: "R_X86_64_TLSGD", 20: "R_X86_64_TLSLD",
    21: "R_X86_64_DTPOFF32", 22: "R_X86_64_GOTTPOFF", 23: "R_X86_64_TPOFF32",
    24: "R_X86_64_PC64", 25: "R_X86_64_GOTOFF64", 26: "R_X86_64_GOTPC32",
    37: "R_X86_64_IRELATIVE", 41: "R_X86_64_GOTPCRELX",
    42: "R_X86_64_REX_GOTPCRELX",
}

_R_386: dict[int, str] = {
    0: "R_386_NONE", 1: "R_386_32", 2: "R_386_PC32", 3: "R_386_GOT32",
    4: "R_386_PLT32", 5: "R_386_COPY", 6: "R_386_GLOB_DAT",
    7: "R_386_JMP_SLOT", 8: "R_386_RELATIVE", 9: "R_386_GOTOFF",
    10: "R_386_GOTPC", 14: "R_386_TLS_TPOFF", 35: "R_386_TLS_DTPMOD32",
    36: "R_386_TLS_DTPOFF32", 42: "R_386_IRELATIVE", 43: "R_386_GOT32X",
}

_R_AARCH64: dict[int, str] = {
    0: "R_AARCH64_NONE", 257: "R_AARCH64_ABS64", 258: "R_AARCH64_ABS32",
    261: "R_AARCH64_PREL32", 275: "R_AARCH64_ADR_PREL_PG_HI21",
    277: "R_AARCH64_ADD_ABS_LO12_NC", 282: "R_AARCH64_JUMP26",
    283: "R_AARCH64_CALL26", 286: "R_AARCH64_LDST64_ABS_LO12_NC",
    311: "R_AARCH64_ADR_GOT_PAGE", 312: "R_AARCH64_LD64_GOT_LO12_NC",
    1024: "R_AARCH64_COPY", 1025: "R_AARCH64_GLOB_DAT",
    1026: "R_AARCH64_JUMP_SLOT", 1027: "R_AARCH64_RELATIVE",
    1030: "R_AARCH64_TLS_TPREL64", 1031: "R_AARCH64_TLSDESC",
    1032: "R_AARCH64_IRELATIVE",
}

_R_NAMES_BY_MACHINE: dict[int, dict[int, str]] = {
    EM_X86_64: _R_X86_64,
    EM_386: _R_386,
    EM_AARCH64: _R_AARCH64,
}

_SYMBOL_BINDINGS: dict[int, SymbolBinding] = {
    STB_LOCAL: SymbolBinding.LOCAL,
    STB_GLOBAL: SymbolBinding.GLOBAL,
    STB_WEAK: SymbolBinding.WEAK,
}

_SYMBOL_TYPES: dict[int, SymbolType] = {
    STT_OBJECT: SymbolType.OBJECT,
    STT_FUNC: SymbolType.FUNCTION,
    STT_GNU_IFUNC: SymbolType.INDIRECT_FUNCTION,
    STT_SECTION: SymbolType.SECTION,
}


def relocation_type_name(r_type: int, machine: int) -> str:
    """Name of relocation type *r_type* for *machine* (hex when unknown)."""
    return _R_NAMES_BY_MACHINE.get(machine, {}).get(r_type, f"{r_type:#x}")


def section_type_name(sh_type: int) -> str:
    return _SHT_NAMES.get(sh_type, f"{sh_type:#x}")


def program_type_name(p_type: int) -> str:
    return _PT_NAMES.get(p_type, f"{p_type:#x}")


def dynamic_tag_name(d_tag: int) -> str:
    return _DT_NAMES.get(d_tag, f"{d_tag:#x}")


# ---------------------------------------------------------------------------
# Parsed structures
# ---------------------------------------------------------------------------

class ELFHeader:
    """Parsed ELF header fields."""
    __slots__ = (
        "ei_class", "ei_data", "ei_version", "ei_osabi",
        "e_type", "e_machine", "e_version", "e_entry",
        "e_phoff", "e_shoff", "e_flags", "e_ehsize",
        "e_phentsize", "e_phnum", "e_shentsize", "e_shnum",
        "e_shstrndx",
    )

    def __init__(self) -> None:
        self.ei_class: int = 0
        self.ei_data: int = 0
        self.ei_version: int = 0
        self.ei_osabi: int = 0
        self.e_type: int = 0
        self.e_machine: int = 0
        self.e_version: int = 0
        self.e_entry: int = 0
        self.e_phoff: int = 0
        self.e_shoff: int = 0
        self.e_flags: int = 0
        self.e_ehsize: int = 0
        self.e_phentsize: int = 0
        self.e_phnum: int = 0
        self.e_shentsize: int = 0
        self.e_shnum: int = 0
        self.e_shstrndx: int = 0


class SectionHeader:
    """Parsed section header entry.

    ``name`` is resolved from the section-header string table and is
    ``"<unreadable>"`` when the name bytes cannot be decoded.
    """
    __slots__ = (
        "sh_name", "sh_type", "sh_flags", "sh_addr",
        "sh_offset", "sh_size", "sh_link", "sh_info",
        "sh_addralign", "sh_entsize", "name",
    )

    def __init__(self) -> None:
        self.sh_name: int = 0
        self.sh_type: int = 0
        self.sh_flags: int = 0
        self.sh_addr: int = 0
        self.sh_offset: int = 0
        self.sh_size: int = 0
        self.sh_link: int = 0
        self.sh_info: int = 0
        self.sh_addralign: int = 0
        self.sh_entsize: int = 0
        self.name: str = ""

    @property
    def file_size(self) -> int:
        """Bytes the section occupies in the file (zero for ``NOBITS``)."""
        return 0 if self.sh_type == SHT_NOBITS else self.sh_size

    @property
    def is_alloc(self) -> bool:
        """Whether the section occupies memory at run time."""
        return bool(self.sh_flags & SHF_ALLOC)

    @property
    def type_name(self) -> str:
        return section_type_name(self.sh_type)


class ProgramHeader:
    """Parsed program header (segment) entry."""
    __slots__ = (
        "p_type", "p_flags", "p_offset", "p_vaddr",
        "p_paddr", "p_filesz", "p_memsz", "p_align",
    )

    def __init__(self) -> None:
        self.p_type: int = 0
        self.p_flags: int = 0
        self.p_offset: int = 0
        self.p_vaddr: int = 0
        self.p_paddr: int = 0
        self.p_filesz: int = 0
        self.p_memsz: int = 0
        self.p_align: int = 0

    @property
    def type_name(self) -> str:
        return program_type_name(self.p_type)


class DynamicEntry:
    """Parsed dynamic section entry."""
    __slots__ = ("d_tag", "d_val")

    def __init__(self, d_tag: int = 0, d_val: int = 0) -> None:
        self.d_tag = d_tag
        self.d_val = d_val


class Symbol:
    """Parsed symbol table entry (name left as a string-table offset)."""
    __slots__ = (
        "st_name", "st_value", "st_size", "st_info",
        "st_other", "st_shndx",
    )

    def __init__(self) -> None:
        self.st_name: int = 0
        self.st_value: int = 0
        self.st_size: int = 0
        self.st_info: int = 0
        self.st_other: int = 0
        self.st_shndx: int = 0

    @property
    def st_bind(self) -> int:
        return (self.st_info >> 4) & 0xF

    @property
    def st_type(self) -> int:
        return self.st_info & 0xF


class Relocation:
    """Parsed ``Elf_Rel`` / ``Elf_Rela`` entry.

    ``r_addend`` is ``None`` for REL entries, which carry no explicit addend.
    """
    __slots__ = ("r_offset", "r_type", "r_sym", "r_addend")

    def __init__(
        self,
        r_offset: int = 0,
        r_type: int = 0,
        r_sym: int = 0,
        r_addend: Optional[int] = None,
    ) -> None:
        self.r_offset = r_offset
        self.r_type = r_type
        self.r_sym = r_sym
        self.r_addend = r_addend


# ---------------------------------------------------------------------------
# ELF Parser
# ---------------------------------------------------------------------------

class ELFParser:
    """Manual struct-based ELF binary parser.

    Parses both ELF32 and ELF64 binaries using only the Python standard
    library :mod:`struct` module.

    A bad magic or a header shorter than its class requires raises
    :class:`ParseError`.  A table the header declares (program headers,
    section headers, a symbol or relocation table) that runs past the
    end of the file raises :class:`TruncatedTableError`.

    Reference:
        TIS Committee. (1995). Tool Interface Standard (TIS) Executable and
        Linkable Format (ELF) Specification, Version 1.2.

    Usage::

        elf = ELFParser(raw_bytes).parse()
        for shdr in elf.section_headers:
            print(shdr.name, hex(shdr.sh_offset))
    """

    format: BinaryFormat = BinaryFormat.ELF

    def __init__(self, data: bytes) -> None:
        """Initialise the parser with raw binary data.

        Args:
            data: Complete ELF file contents as bytes.
        """
        self._data: bytes = data
        self.header: ELFHeader = ELFHeader()
        self.section_headers: list[SectionHeader] = []
        self.program_headers: list[ProgramHeader] = []
        self.shdr_strtab: StringTable = StringTable()
        self.syms: list[Symbol] = []
        self.strtab: StringTable = StringTable()
        self.dynsyms: list[Symbol] = []
        self.dynstrtab: StringTable = StringTable()
        self.dynamic: Optional[list[DynamicEntry]] = None
        self.dynrelas: list[Relocation] = []
        self.dynrels: list[Relocation] = []
        self.pltrelocs: list[Relocation] = []
        self.shdr_relocs: list[tuple[int, list[Relocation]]] = []
        self.libraries: list[str] = []
        self.soname: Optional[str] = None
        self.rpaths: list[str] = []
        self.runpaths: list[str] = []
        self.interpreter: Optional[str] = None
        self._endian: str = "<"
        self._is_64bit: bool = False

    # ------------------------------------------------------------------ #
    #  Public interface
    # ------------------------------------------------------------------ #

    def parse(self) -> ELFParser:
        """Parse the ELF binary.

        Returns:
            ``self``, for chaining.

        Raises:
            ParseError: On a bad magic or truncated header.
            TruncatedTableError: When a declared table exceeds the file.
        """
        if len(self._data) < 16:
            raise ParseError("file too short for an ELF identification block")
        if self._data[:4] != ELF_MAGIC:
            raise ParseError("bad ELF magic")

        try:
            self._parse_elf_header()
            self._parse_program_headers()
            self._parse_section_headers()
            self._resolve_section_names()
            self._parse_symbol_tables()
            self._parse_section_relocations()
            self._parse_dynamic()
            self._parse_interpreter()
        except struct.error as exc:
            raise ParseError(f"malformed ELF structure: {exc}") from exc
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
        return self.header.e_type == ET_DYN

    @property
    def entry(self) -> int:
        return self.header.e_entry

    @property
    def machine_name(self) -> str:
        m = self.header.e_machine
        return _EM_NAMES.get(m, f"unknown({m})")

    @property
    def type_name(self) -> str:
        t = self.header.e_type
        return _ET_NAMES.get(t, f"{t:#x}")

    @property
    def conventions(self) -> FormatConventions:
        """Section-index sentinels and name tables for cross-referencing."""
        machine = self.header.e_machine
        return FormatConventions(
            absolute=SHN_ABS,
            section_type=STT_SECTION,
            bindings=_SYMBOL_BINDINGS,
            types=_SYMBOL_TYPES,
            binding_names=_STB_NAMES,
            type_names=_STT_NAMES,
            relocation_name=lambda r_type: relocation_type_name(r_type, machine),
            address_bits=64 if self._is_64bit else 32,
        )

    def get_binary_info(self) -> BinaryInfo:
        """Build a :class:`BinaryInfo` from the parsed ELF header."""
        return BinaryInfo(
            format=BinaryFormat.ELF,
            kind=self.type_name,
            arch=self.machine_name,
            bits=64 if self._is_64bit else 32,
            endian="little" if self.little_endian else "big",
            entry_point=self.header.e_entry,
            is_lib=self.is_lib,
        )

    def vaddr_to_offset(self, vaddr: int) -> Optional[int]:
        """Map a virtual address to a file offset through the ``PT_LOAD`` segments."""
        for ph in self.program_headers:
            if ph.p_type != PT_LOAD:
                continue
            if ph.p_vaddr <= vaddr < ph.p_vaddr + ph.p_filesz:
                return ph.p_offset + (vaddr - ph.p_vaddr)
        return None

    @staticmethod
    def section_flags_str(flags: int) -> str:
        """Space-separated ``SHF_*`` names (without prefix) set in *flags*."""
        return " ".join(name for bit, name in _SHF_NAMES if flags & bit)

    @staticmethod
    def segment_flags_str(flags: int) -> str:
        """Convert program header flags to a string like ``"R+X"``."""
        parts: list[str] = []
        if flags & PF_R:
            parts.append("R")
        if flags & PF_W:
            parts.append("W")
        if flags & PF_X:
            parts.append("X")
        return "+".join(parts)

    # ------------------------------------------------------------------ #
    #  ELF header parsing
    # ------------------------------------------------------------------ #

    def _parse_elf_header(self) -> None:
        """Parse the ELF identification and file header."""
        h = self.header
        h.ei_class = self._data[4]
        h.ei_data = self._data[5]
        h.ei_version = self._data[6]
        h.ei_osabi = self._data[7]

        if h.ei_class not in (ELFCLASS32, ELFCLASS64):
            raise ParseError(f"invalid ELF class {h.ei_class}")
        if h.ei_data not in (ELFDATA2LSB, ELFDATA2MSB):
            raise ParseError(f"invalid ELF data encoding {h.ei_data}")

        self._is_64bit = h.ei_class == ELFCLASS64
        self._endian = "<" if h.ei_data == ELFDATA2LSB else ">"

        if self._is_64bit:
            # ELF64 header: offsets 16..63
            fmt = f"{self._endian}HHIQQQIHHHHHH"
        else:
            # ELF32 header: offsets 16..51
            fmt = f"{self._endian}HHIIIIIHHHHHH"
        if 16 + struct.calcsize(fmt) > len(self._data):
            raise ParseError("file too short for the ELF header")
        (
            h.e_type, h.e_machine, h.e_version, h.e_entry,
            h.e_phoff, h.e_shoff, h.e_flags, h.e_ehsize,
            h.e_phentsize, h.e_phnum, h.e_shentsize, h.e_shnum,
            h.e_shstrndx,
        ) = struct.unpack_from(fmt, self._data, 16)

    # ------------------------------------------------------------------ #
    #  Program header parsing
    # ------------------------------------------------------------------ #

    def _parse_program_headers(self) -> None:
        """Parse all program headers (segments)."""
        h = self.header
        if h.e_phoff == 0 or h.e_phnum == 0:
            return

        if self._is_64bit:
            # Elf64_Phdr: 56 bytes
            fmt = f"{self._endian}IIQQQQQQ"
        else:
            # Elf32_Phdr: 32 bytes
            fmt = f"{self._endian}IIIIIIII"
        entsize = max(h.e_phentsize, struct.calcsize(fmt))
        self._require("program headers", h.e_phoff, entsize * h.e_phnum)

        for i in range(h.e_phnum):
            offset = h.e_phoff + i * entsize
            ph = ProgramHeader()
            fields = struct.unpack_from(fmt, self._data, offset)
            if self._is_64bit:
                (
                    ph.p_type, ph.p_flags, ph.p_offset, ph.p_vaddr,
                    ph.p_paddr, ph.p_filesz, ph.p_memsz, ph.p_align,
                ) = fields
            else:
                (
                    ph.p_type, ph.p_offset, ph.p_vaddr, ph.p_paddr,
                    ph.p_filesz, ph.p_memsz, ph.p_flags, ph.p_align,
                ) = fields
            self.program_headers.append(ph)

    # ------------------------------------------------------------------ #
    #  Section header parsing
    # ------------------------------------------------------------------ #

    def _parse_section_headers(self) -> None:
        """Parse all section headers from the section header table."""
        h = self.header
        if h.e_shoff == 0 or h.e_shnum == 0:
            return

        if self._is_64bit:
            # Elf64_Shdr: 64 bytes
            fmt = f"{self._endian}IIQQQQIIQQ"
        else:
            # Elf32_Shdr: 40 bytes
            fmt = f"{self._endian}IIIIIIIIII"
        entsize = max(h.e_shentsize, struct.calcsize(fmt))
        self._require("section headers", h.e_shoff, entsize * h.e_shnum)

        for i in range(h.e_shnum):
            offset = h.e_shoff + i * entsize
            sh = SectionHeader()
            (
                sh.sh_name, sh.sh_type, sh.sh_flags, sh.sh_addr,
                sh.sh_offset, sh.sh_size, sh.sh_link, sh.sh_info,
                sh.sh_addralign, sh.sh_entsize,
            ) = struct.unpack_from(fmt, self._data, offset)
            self.section_headers.append(sh)

    def _resolve_section_names(self) -> None:
        """Resolve section names from the section header string table."""
        h = self.header
        if 0 < h.e_shstrndx < len(self.section_headers):
            self.shdr_strtab = self._section_strtab(h.e_shstrndx)
        for sh in self.section_headers:
            sh.name = self.shdr_strtab.name_at(sh.sh_name)

    def _section_strtab(self, index: int) -> StringTable:
        """String table held by section *index* (empty if out of range)."""
        if not 0 < index < len(self.section_headers):
            return StringTable()
        sh = self.section_headers[index]
        self._require(f"string table {sh.name or index}", sh.sh_offset, sh.sh_size)
        return StringTable(self._data[sh.sh_offset:sh.sh_offset + sh.sh_size])

    # ------------------------------------------------------------------ #
    #  Symbol table parsing
    # ------------------------------------------------------------------ #

    def _parse_symbol_tables(self) -> None:
        """Parse both .symtab and .dynsym symbol tables."""
        for sh in self.section_headers:
            if sh.sh_type == SHT_SYMTAB and not self.syms:
                self.syms = self._parse_symbol_table(sh)
                self.strtab = self._section_strtab(sh.sh_link)
            elif sh.sh_type == SHT_DYNSYM and not self.dynsyms:
                self.dynsyms = self._parse_symbol_table(sh)
                self.dynstrtab = self._section_strtab(sh.sh_link)

    def _parse_symbol_table(self, sh: SectionHeader) -> list[Symbol]:
        """Parse a single symbol table section."""
        if self._is_64bit:
            # Elf64_Sym: 24 bytes
            fmt = f"{self._endian}IBBHQQ"
        else:
            # Elf32_Sym: 16 bytes
            fmt = f"{self._endian}IIIBBH"
        entsize = max(sh.sh_entsize, struct.calcsize(fmt))
        self._require(f"symbol table {sh.name}", sh.sh_offset, sh.sh_size)

        symbols: list[Symbol] = []
        for i in range(sh.sh_size // entsize):
            offset = sh.sh_offset + i * entsize
            sym = Symbol()
            fields = struct.unpack_from(fmt, self._data, offset)
            if self._is_64bit:
                (
                    sym.st_name, sym.st_info, sym.st_other,
                    sym.st_shndx, sym.st_value, sym.st_size,
                ) = fields
            else:
                (
                    sym.st_name, sym.st_value, sym.st_size,
                    sym.st_info, sym.st_other, sym.st_shndx,
                ) = fields
            symbols.append(sym)
        return symbols

    # ------------------------------------------------------------------ #
    #  Relocation parsing
    # ------------------------------------------------------------------ #

    def _parse_section_relocations(self) -> None:
        """Parse every ``SHT_REL`` / ``SHT_RELA`` section in table order."""
        for idx, sh in enumerate(self.section_headers):
            if sh.sh_type not in (SHT_REL, SHT_RELA):
                continue
            self._require(f"relocation table {sh.name}", sh.sh_offset, sh.sh_size)
            relocs = self._parse_relocations(
                sh.sh_offset, sh.sh_size, sh.sh_type == SHT_RELA, sh.sh_entsize,
            )
            self.shdr_relocs.append((idx, relocs))

    def _parse_relocations(
        self,
        offset: int,
        size: int,
        is_rela: bool,
        entsize: int = 0,
    ) -> list[Relocation]:
        """Decode ``size // entsize`` relocation entries at *offset*."""
        if self._is_64bit:
            fmt = f"{self._endian}QQq" if is_rela else f"{self._endian}QQ"
        else:
            fmt = f"{self._endian}IIi" if is_rela else f"{self._endian}II"
        entsize = max(entsize, struct.calcsize(fmt))

        relocs: list[Relocation] = []
        for i in range(size // entsize):
            fields = struct.unpack_from(fmt, self._data, offset + i * entsize)
            r_offset, r_info = fields[0], fields[1]
            if self._is_64bit:
                r_sym, r_type = r_info >> 32, r_info & 0xFFFFFFFF
            else:
                r_sym, r_type = r_info >> 8, r_info & 0xFF
            relocs.append(Relocation(
                r_offset=r_offset,
                r_type=r_type,
                r_sym=r_sym,
                r_addend=fields[2] if is_rela else None,
            ))
        return relocs

    # ------------------------------------------------------------------ #
    #  Dynamic section parsing
    # ------------------------------------------------------------------ #

    def _dynamic_extent(self) -> Optional[tuple[int, int]]:
        """File extent of the dynamic array: ``PT_DYNAMIC`` first, then ``SHT_DYNAMIC``."""
        for ph in self.program_headers:
            if ph.p_type == PT_DYNAMIC:
                return ph.p_offset, ph.p_filesz
        for sh in self.section_headers:
            if sh.sh_type == SHT_DYNAMIC:
                return sh.sh_offset, sh.sh_size
        return None

    def _parse_dynamic(self) -> None:
        """Parse the dynamic array, libraries and dynamic relocations."""
        extent = self._dynamic_extent()
        if extent is None:
            return
        start, size = extent
        self._require("dynamic section", start, size)

        if self._is_64bit:
            entry_size = 16  # Elf64_Dyn: d_tag (int64) + d_val (uint64)
            fmt = f"{self._endian}qQ"
        else:
            entry_size = 8   # Elf32_Dyn: d_tag (int32) + d_val (uint32)
            fmt = f"{self._endian}iI"

        entries: list[DynamicEntry] = []
        offset = start
        while offset + entry_size <= start + size:
            d_tag, d_val = struct.unpack_from(fmt, self._data, offset)
            entries.append(DynamicEntry(d_tag, d_val))
            if d_tag == DT_NULL:
                break
            offset += entry_size
        self.dynamic = entries

        tags: dict[int, int] = {}
        for entry in entries:
            tags.setdefault(entry.d_tag, entry.d_val)

        dynstr = self._dynamic_strtab(tags)
        if dynstr:
            self.dynstrtab = dynstr
        for entry in entries:
            if entry.d_tag == DT_NEEDED:
                self.libraries.append(self.dynstrtab.name_at(entry.d_val))
            elif entry.d_tag == DT_SONAME:
                self.soname = self.dynstrtab.name_at(entry.d_val)
            elif entry.d_tag == DT_RPATH:
                self.rpaths.append(self.dynstrtab.name_at(entry.d_val))
            elif entry.d_tag == DT_RUNPATH:
                self.runpaths.append(self.dynstrtab.name_at(entry.d_val))

        self.dynrelas = self._dynamic_relocations(tags, DT_RELA, DT_RELASZ, DT_RELAENT, True)
        self.dynrels = self._dynamic_relocations(tags, DT_REL, DT_RELSZ, DT_RELENT, False)
        self.pltrelocs = self._dynamic_relocations(
            tags, DT_JMPREL, DT_PLTRELSZ, None, tags.get(DT_PLTREL) == DT_RELA,
        )

    def _dynamic_strtab(self, tags: dict[int, int]) -> Optional[StringTable]:
        """String table addressed by ``DT_STRTAB`` / ``DT_STRSZ``, if mapped."""
        if DT_STRTAB not in tags:
            return None
        offset = self.vaddr_to_offset(tags[DT_STRTAB])
        if offset is None:
            return None
        size = tags.get(DT_STRSZ, 0)
        self._require("dynamic string table", offset, size)
        return StringTable(self._data[offset:offset + size])

    def _dynamic_relocations(
        self,
        tags: dict[int, int],
        addr_tag: int,
        size_tag: int,
        ent_tag: Optional[int],
        is_rela: bool,
    ) -> list[Relocation]:
        if addr_tag not in tags or not tags.get(size_tag):
            return []
        offset = self.vaddr_to_offset(tags[addr_tag])
        if offset is None:
            return []
        size = tags[size_tag]
        self._require(f"{dynamic_tag_name(addr_tag)} relocations", offset, size)
        entsize = tags.get(ent_tag, 0) if ent_tag is not None else 0
        return self._parse_relocations(offset, size, is_rela, entsize)

    def _parse_interpreter(self) -> None:
        """Read the ``PT_INTERP`` path (dynamic linker), if present."""
        for ph in self.program_headers:
            if ph.p_type == PT_INTERP:
                start = ph.p_offset
                end = start + ph.p_filesz
                if end <= len(self._data):
                    raw = self._data[start:end]
                    self.interpreter = raw.rstrip(b"\x00").decode("utf-8", errors="replace")
                return

    # ------------------------------------------------------------------ #
    #  Utility methods
    # ------------------------------------------------------------------ #

    def _require(self, table: str, offset: int, size: int) -> None:
        """Raise :class:`TruncatedTableError` unless ``[offset, offset+size)`` fits."""
        if offset + size > len(self._data):
            raise TruncatedTableError(table, offset, size, len(self._data))
