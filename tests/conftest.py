from __future__ import annotations

import struct
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from shared.config import BingrepConfig
from shared.logger import ToolLogger


TEXT_VADDR = 0x400000
DATA_VADDR = 0x600000
MACHO_TEXT_VMADDR = 0x100000000
MACHO_DATA_VMADDR = 0x100001000


@dataclass
class Sample:
    """A synthetic binary plus the offsets its builder chose."""

    data: bytes
    layout: dict[str, Any] = field(default_factory=dict)

    def write(self, directory: Path, name: str) -> Path:
        path = directory / name
        path.write_bytes(self.data)
        return path


def _strtab(names: list[str]) -> tuple[bytes, dict[str, int]]:
    blob = bytearray(b"\x00")
    offsets: dict[str, int] = {}
    for name in names:
        offsets[name] = len(blob)
        blob += name.encode() + b"\x00"
    return bytes(blob), offsets


def _align(value: int, alignment: int = 8) -> int:
    return (value + alignment - 1) & ~(alignment - 1)


def _place(buf: bytearray, offset: int, chunk: bytes) -> None:
    buf[offset:offset + len(chunk)] = chunk


# ---------------------------------------------------------------------------
# ELF
# ---------------------------------------------------------------------------

_EHDR64 = "<HHIQQQIHHHHHH"
_PHDR64 = "<IIQQQQQQ"
_SHDR64 = "<IIQQQQIIQQ"
_SYM64 = "<IBBHQQ"
_RELA64 = "<QQq"


def _elf_ident() -> bytes:
    return b"\x7fELF" + bytes([2, 1, 1, 0]) + b"\x00" * 8


def build_elf64() -> Sample:
    """Two PT_LOAD segments, .text/.data/.bss, a symbol table and .rela.text.

    "HELLO" occurs once in .text and once in .data.
    """
    text_off = 0x100
    text = (b"\x90" * 0x10 + b"HELLO\x00").ljust(0x40, b"\xcc")
    data_off = text_off + len(text)
    data = b"HELLO world\x00".ljust(0x20, b"\x00")
    bss_size = 0x20

    strtab, names = _strtab(["main", "counter", "abs_sym", "broken"])
    symbols = [
        (0, 0, 0, 0, 0, 0),
        # nameless STT_SECTION symbol for .text
        (0, 0x03, 0, 1, TEXT_VADDR + text_off, 0),
        (names["main"], 0x12, 0, 1, TEXT_VADDR + text_off, 0x10),
        (names["counter"], 0x11, 0, 2, DATA_VADDR + data_off, 4),
        (names["abs_sym"], 0x10, 0, 0xFFF1, 0x1234, 0),
        (names["broken"], 0x12, 0, 42, 0, 0),
        # nameless STT_NOTYPE symbol
        (0, 0x00, 0, 0, 0, 0),
    ]
    symtab = b"".join(struct.pack(_SYM64, *s) for s in symbols)
    sym_off = data_off + len(data)
    str_off = sym_off + len(symtab)

    rela_off = _align(str_off + len(strtab))
    relocs = [
        (TEXT_VADDR + text_off + 4, (2 << 32) | 2, -4),    # main, R_X86_64_PC32
        (TEXT_VADDR + text_off + 8, (1 << 32) | 1, 0x10),  # section symbol
        (TEXT_VADDR + text_off + 12, (6 << 32) | 1, 0),    # nameless, not a section
        (TEXT_VADDR + text_off + 16, (99 << 32) | 1, 0),   # past the symbol table
    ]
    rela = b"".join(struct.pack(_RELA64, *r) for r in relocs)

    shstrtab, sh_names = _strtab([
        ".text", ".data", ".bss", ".symtab", ".strtab", ".rela.text", ".shstrtab",
    ])
    shstr_off = rela_off + len(rela)
    shoff = _align(shstr_off + len(shstrtab))

    sections = [
        (0, 0, 0, 0, 0, 0, 0, 0, 0, 0),
        (sh_names[".text"], 1, 0x6, TEXT_VADDR + text_off, text_off, len(text), 0, 0, 16, 0),
        (sh_names[".data"], 1, 0x3, DATA_VADDR + data_off, data_off, len(data), 0, 0, 8, 0),
        (sh_names[".bss"], 8, 0x3, DATA_VADDR + data_off + len(data),
         data_off + len(data), bss_size, 0, 0, 8, 0),
        (sh_names[".symtab"], 2, 0, 0, sym_off, len(symtab), 5, 2, 8, 24),
        (sh_names[".strtab"], 3, 0, 0, str_off, len(strtab), 0, 0, 1, 0),
        (sh_names[".rela.text"], 4, 0x40, 0, rela_off, len(rela), 4, 1, 8, 24),
        (sh_names[".shstrtab"], 3, 0, 0, shstr_off, len(shstrtab), 0, 0, 1, 0),
    ]
    shdrs = b"".join(struct.pack(_SHDR64, *s) for s in sections)

    text_end = text_off + len(text)
    phdrs = (
        struct.pack(_PHDR64, 1, 5, 0, TEXT_VADDR, TEXT_VADDR, text_end, text_end, 0x1000)
        + struct.pack(
            _PHDR64, 1, 6, data_off, DATA_VADDR + data_off, DATA_VADDR + data_off,
            len(data), len(data) + bss_size, 0x1000,
        )
    )
    entry = TEXT_VADDR + text_off
    ehdr = _elf_ident() + struct.pack(
        _EHDR64, 2, 62, 1, entry, 64, shoff, 0, 64, 56, 2, 64, len(sections), 7,
    )

    buf = bytearray(shoff + len(shdrs))
    _place(buf, 0, ehdr)
    _place(buf, 64, phdrs)
    _place(buf, text_off, text)
    _place(buf, data_off, data)
    _place(buf, sym_off, symtab)
    _place(buf, str_off, strtab)
    _place(buf, rela_off, rela)
    _place(buf, shstr_off, shstrtab)
    _place(buf, shoff, shdrs)

    return Sample(bytes(buf), {
        "text_off": text_off,
        "data_off": data_off,
        "text_end": text_end,
        "sym_off": sym_off,
        "str_off": str_off,
        "rela_off": rela_off,
        "shoff": shoff,
        "entry": entry,
        "hello_text": text_off + 0x10,
        "hello_data": data_off,
        "section_count": len(sections),
    })


def build_elf64_dyn() -> Sample:
    """A shared object with PT_INTERP, PT_DYNAMIC, .dynsym and RELA/PLT tables.

    The single PT_LOAD maps the file at virtual address 0, so dynamic
    tags hold plain file offsets.
    """
    phnum = 3
    interp_off = _align(64 + phnum * 56, 16)
    interp = b"/lib64/ld-linux-x86-64.so.2\x00"

    dynstr, ds = _strtab(["libc.so.6", "libfoo.so", "puts", "$ORIGIN/lib"])
    dynsym_off = _align(interp_off + len(interp))
    dynsym = struct.pack(_SYM64, 0, 0, 0, 0, 0, 0) + struct.pack(
        _SYM64, ds["puts"], 0x12, 0, 0, 0, 0,
    )
    dynstr_off = dynsym_off + len(dynsym)

    rela_dyn_off = _align(dynstr_off + len(dynstr))
    rela_dyn = struct.pack(_RELA64, 0x3000, (1 << 32) | 6, 0)    # R_X86_64_GLOB_DAT
    rela_plt_off = rela_dyn_off + len(rela_dyn)
    rela_plt = struct.pack(_RELA64, 0x3008, (1 << 32) | 7, 0)    # R_X86_64_JUMP_SLOT

    dynamic_off = rela_plt_off + len(rela_plt)
    dyn_entries = [
        (1, ds["libc.so.6"]),      # DT_NEEDED
        (14, ds["libfoo.so"]),     # DT_SONAME
        (29, ds["$ORIGIN/lib"]),   # DT_RUNPATH
        (5, dynstr_off),           # DT_STRTAB
        (10, len(dynstr)),         # DT_STRSZ
        (6, dynsym_off),           # DT_SYMTAB
        (7, rela_dyn_off),         # DT_RELA
        (8, len(rela_dyn)),        # DT_RELASZ
        (9, 24),                   # DT_RELAENT
        (23, rela_plt_off),        # DT_JMPREL
        (2, len(rela_plt)),        # DT_PLTRELSZ
        (20, 7),                   # DT_PLTREL = DT_RELA
        (0, 0),                    # DT_NULL
    ]
    dynamic = b"".join(struct.pack("<qQ", t, v) for t, v in dyn_entries)

    shstrtab, sh_names = _strtab([
        ".interp", ".dynsym", ".dynstr", ".rela.dyn", ".rela.plt", ".dynamic", ".shstrtab",
    ])
    shstr_off = dynamic_off + len(dynamic)
    shoff = _align(shstr_off + len(shstrtab))

    sections = [
        (0, 0, 0, 0, 0, 0, 0, 0, 0, 0),
        (sh_names[".interp"], 1, 0x2, interp_off, interp_off, len(interp), 0, 0, 1, 0),
        (sh_names[".dynsym"], 11, 0x2, dynsym_off, dynsym_off, len(dynsym), 3, 1, 8, 24),
        (sh_names[".dynstr"], 3, 0x2, dynstr_off, dynstr_off, len(dynstr), 0, 0, 1, 0),
        (sh_names[".rela.dyn"], 4, 0x2, rela_dyn_off, rela_dyn_off, len(rela_dyn), 2, 0, 8, 24),
        (sh_names[".rela.plt"], 4, 0x42, rela_plt_off, rela_plt_off, len(rela_plt), 2, 0, 8, 24),
        (sh_names[".dynamic"], 6, 0x3, dynamic_off, dynamic_off, len(dynamic), 3, 0, 8, 16),
        (sh_names[".shstrtab"], 3, 0, 0, shstr_off, len(shstrtab), 0, 0, 1, 0),
    ]
    shdrs = b"".join(struct.pack(_SHDR64, *s) for s in sections)

    phdrs = (
        struct.pack(_PHDR64, 1, 5, 0, 0, 0, shoff, shoff, 0x1000)
        + struct.pack(_PHDR64, 3, 4, interp_off, interp_off, interp_off,
                      len(interp), len(interp), 1)
        + struct.pack(_PHDR64, 2, 6, dynamic_off, dynamic_off, dynamic_off,
                      len(dynamic), len(dynamic), 8)
    )
    ehdr = _elf_ident() + struct.pack(
        _EHDR64, 3, 62, 1, 0, 64, shoff, 0, 64, 56, phnum, 64, len(sections), 7,
    )

    buf = bytearray(shoff + len(shdrs))
    _place(buf, 0, ehdr)
    _place(buf, 64, phdrs)
    _place(buf, interp_off, interp)
    _place(buf, dynsym_off, dynsym)
    _place(buf, dynstr_off, dynstr)
    _place(buf, rela_dyn_off, rela_dyn)
    _place(buf, rela_plt_off, rela_plt)
    _place(buf, dynamic_off, dynamic)
    _place(buf, shstr_off, shstrtab)
    _place(buf, shoff, shdrs)

    return Sample(bytes(buf), {
        "interp_off": interp_off,
        "dynamic_off": dynamic_off,
        "dynamic_entries": len(dyn_entries),
        "shoff": shoff,
    })


# ---------------------------------------------------------------------------
# Mach-O
# ---------------------------------------------------------------------------

_SEGMENT_64 = "<II16sQQQQiiII"
_SECTION_64 = "<16s16sQQIIIIIIII"


def _segment(name: str, vmaddr: int, vmsize: int, fileoff: int, filesize: int,
             sections: list[tuple[str, str, int, int, int, int]]) -> bytes:
    cmdsize = 72 + 80 * len(sections)
    out = struct.pack(
        _SEGMENT_64, 0x19, cmdsize, name.encode(), vmaddr, vmsize,
        fileoff, filesize, 7, 5, len(sections), 0,
    )
    for sectname, segname, addr, size, offset, flags in sections:
        out += struct.pack(
            _SECTION_64, sectname.encode(), segname.encode(),
            addr, size, offset, 4, 0, 0, flags, 0, 0, 0,
        )
    return out


def build_macho64(export_name: str = "_main", import_name: str = "_printf") -> Sample:
    """A thin x86_64 MH_EXECUTE with __TEXT, __DATA, a symtab and one dylib.

    "MACHO!" occurs once in __text and once in __data.
    """
    text_off = 0x300
    text = (b"\x55\x48\x89\xe5" + b"MACHO!").ljust(0x20, b"\xc3")
    data_off = 0x400
    data = b"MACHO! data".ljust(0x20, b"\x00")

    dylib = b"/usr/lib/libSystem.B.dylib\x00"
    dylib_cmdsize = _align(24 + len(dylib))

    commands = [
        _segment("__PAGEZERO", 0, MACHO_TEXT_VMADDR, 0, 0, []),
        _segment("__TEXT", MACHO_TEXT_VMADDR, 0x1000, 0, data_off, [
            ("__text", "__TEXT", MACHO_TEXT_VMADDR + text_off, len(text), text_off, 0x80000400),
        ]),
        _segment("__DATA", MACHO_DATA_VMADDR, 0x1000, data_off, len(data), [
            ("__data", "__DATA", MACHO_DATA_VMADDR, len(data), data_off, 0),
            ("__bss", "__DATA", MACHO_DATA_VMADDR + len(data), 0x40, 0, 0x1),
        ]),
    ]

    sym_off = data_off + len(data)
    strtab, names = _strtab([export_name, import_name, "_local"])
    nlists = [
        (names[export_name], 0x0F, 1, 0, MACHO_TEXT_VMADDR + text_off),
        (names[import_name], 0x01, 0, 1 << 8, 0),
        (names["_local"], 0x0E, 2, 0, MACHO_DATA_VMADDR),
    ]
    symtab = b"".join(struct.pack("<IBBHQ", *n) for n in nlists)
    str_off = sym_off + len(symtab)

    commands.append(struct.pack("<IIIIII", 0x2, 24, sym_off, len(nlists), str_off, len(strtab)))
    commands.append(
        struct.pack("<IIIIII", 0xC, dylib_cmdsize, 24, 2, 0x10000, 0x10000)
        + dylib.ljust(dylib_cmdsize - 24, b"\x00")
    )
    commands.append(struct.pack("<IIQQ", 0x80000028, 24, text_off, 0))

    cmds = b"".join(commands)
    header = struct.pack(
        "<IiiIIIII", 0xFEEDFACF, 0x01000007, 3, 0x2, len(commands), len(cmds), 0, 0,
    )

    buf = bytearray(str_off + len(strtab))
    _place(buf, 0, header)
    _place(buf, 32, cmds)
    _place(buf, text_off, text)
    _place(buf, data_off, data)
    _place(buf, sym_off, symtab)
    _place(buf, str_off, strtab)

    offsets = []
    pos = 32
    for cmd in commands:
        offsets.append(pos)
        pos += len(cmd)

    return Sample(bytes(buf), {
        "text_off": text_off,
        "data_off": data_off,
        "marker_text": text_off + 4,
        "marker_data": data_off,
        "command_offsets": offsets,
        "ncmds": len(commands),
        "entry": MACHO_TEXT_VMADDR + text_off,
    })


def build_fat_macho(thin: Sample, slice_offset: int = 0x1000) -> Sample:
    """Wrap a thin x86_64 Mach-O as the single slice of a fat file."""
    header = struct.pack(">II", 0xCAFEBABE, 1) + struct.pack(
        ">iiIII", 0x01000007, 3, slice_offset, len(thin.data), 12,
    )
    buf = bytearray(slice_offset + len(thin.data))
    _place(buf, 0, header)
    _place(buf, slice_offset, thin.data)
    return Sample(bytes(buf), {**thin.layout, "slice_offset": slice_offset})


def build_fat_macho_with_bad_slice(thin: Sample, slice_offset: int = 0x1000) -> Sample:
    """A fat file whose first (arm64) slice lies past the end of the file.

    The second slice is the intact x86_64 *thin* binary.
    """
    header = struct.pack(">II", 0xCAFEBABE, 2)
    header += struct.pack(">iiIII", 0x0100000C, 0, slice_offset + len(thin.data), 0x100, 12)
    header += struct.pack(">iiIII", 0x01000007, 3, slice_offset, len(thin.data), 12)
    buf = bytearray(slice_offset + len(thin.data))
    _place(buf, 0, header)
    _place(buf, slice_offset, thin.data)
    return Sample(bytes(buf), {**thin.layout, "slice_offset": slice_offset})


# ---------------------------------------------------------------------------
# PE
# ---------------------------------------------------------------------------

def build_pe64() -> Sample:
    """A PE32+ DLL with .text and .rdata, one import DLL and one export."""
    e_lfanew = 0x80
    opt_size = 112 + 16 * 8
    sect_table = e_lfanew + 4 + 20 + opt_size
    size = 0x600

    buf = bytearray(size)
    _place(buf, 0, b"MZ")
    _place(buf, 0x3C, struct.pack("<I", e_lfanew))
    _place(buf, e_lfanew, b"PE\x00\x00")
    _place(buf, e_lfanew + 4, struct.pack(
        "<HHIIIHH", 0x8664, 2, 0x5F000000, 0, 0, opt_size, 0x2022,
    ))

    opt = e_lfanew + 24
    _place(buf, opt, struct.pack("<HBBIIIII", 0x20B, 14, 0, 0x200, 0x200, 0, 0x1000, 0x1000))
    _place(buf, opt + 24, struct.pack(
        "<QIIHHHHHHIIIIHHQQQQII",
        0x180000000, 0x1000, 0x200, 6, 0, 0, 0, 6, 0, 0,
        0x3000, 0x200, 0, 3, 0x160, 0x100000, 0x1000, 0x100000, 0x1000, 0, 16,
    ))
    directories = [(0x2100, 0x70), (0x2000, 0x28)] + [(0, 0)] * 14
    _place(buf, opt + 112, b"".join(struct.pack("<II", *d) for d in directories))

    _place(buf, sect_table, b".text\x00\x00\x00" + struct.pack(
        "<IIIIIIHHI", 0x100, 0x1000, 0x200, 0x200, 0, 0, 0, 0, 0x60000020,
    ))
    _place(buf, sect_table + 40, b".rdata\x00\x00" + struct.pack(
        "<IIIIIIHHI", 0x200, 0x2000, 0x200, 0x400, 0, 0, 0, 0, 0x40000040,
    ))

    def rva(value: int) -> int:
        return value - 0x2000 + 0x400

    # Import descriptor, then the terminating null descriptor
    _place(buf, rva(0x2000), struct.pack("<IIIII", 0x2040, 0, 0, 0x2080, 0x2040))
    _place(buf, rva(0x2040), struct.pack("<QQQ", 0x2090, (1 << 63) | 5, 0))
    _place(buf, rva(0x2080), b"KERNEL32.dll\x00")
    _place(buf, rva(0x2090), struct.pack("<H", 0) + b"ExitProcess\x00")

    _place(buf, rva(0x2100), struct.pack(
        "<IIHHIIIIIII", 0, 0, 0, 0, 0x2140, 1, 1, 1, 0x2150, 0x2154, 0x2158,
    ))
    _place(buf, rva(0x2140), b"sample.dll\x00")
    _place(buf, rva(0x2150), struct.pack("<I", 0x1000))
    _place(buf, rva(0x2154), struct.pack("<I", 0x2160))
    _place(buf, rva(0x2158), struct.pack("<H", 0))
    _place(buf, rva(0x2160), b"DoThing\x00")

    return Sample(bytes(buf), {"e_lfanew": e_lfanew, "sect_table": sect_table})


# ---------------------------------------------------------------------------
# ar
# ---------------------------------------------------------------------------

def _ar_header(name: str, size: int) -> bytes:
    return (
        f"{name:<16}{0:<12}{0:<6}{0:<6}{644:<8}{size:<10}".encode("ascii") + b"`\n"
    )


def build_archive() -> Sample:
    """GNU archive: symbol index, long-name table, one short and one long member."""
    long_name = "very_long_object_name.o"
    long_names = f"{long_name}/\n".encode()
    symbol_names = b"foo\x00bar\x00"
    index_size = 4 + 4 * 2 + len(symbol_names)

    pos = 8
    index_header = pos
    pos += 60 + index_size + (index_size & 1)
    names_header = pos
    pos += 60 + len(long_names) + (len(long_names) & 1)
    short_header = pos
    short_body = b"SHORTDATA"
    pos += 60 + len(short_body) + (len(short_body) & 1)
    long_header = pos
    long_body = b"LONG"

    index_body = struct.pack(">III", 2, short_header, long_header) + symbol_names

    def member(name: str, body: bytes) -> bytes:
        pad = b"\n" if len(body) & 1 else b""
        return _ar_header(name, len(body)) + body + pad

    data = (
        b"!<arch>\n"
        + member("/", index_body)
        + member("//", long_names)
        + member("short.o/", short_body)
        + member("/0", long_body)
    )
    assert data.index(b"SHORTDATA") == short_header + 60
    return Sample(data, {
        "index_header": index_header,
        "names_header": names_header,
        "short_header": short_header,
        "long_header": long_header,
        "long_name": long_name,
    })


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def elf64() -> Sample:
    return build_elf64()


@pytest.fixture
def elf64_dyn() -> Sample:
    return build_elf64_dyn()


@pytest.fixture
def macho64() -> Sample:
    return build_macho64()


@pytest.fixture
def fat_macho() -> Sample:
    return build_fat_macho(build_macho64())


@pytest.fixture
def pe64() -> Sample:
    return build_pe64()


@pytest.fixture
def archive() -> Sample:
    return build_archive()


@pytest.fixture
def config() -> BingrepConfig:
    return BingrepConfig()


@pytest.fixture
def quiet_logger() -> ToolLogger:
    return ToolLogger("test", log_level="CRITICAL", console_output=False)
