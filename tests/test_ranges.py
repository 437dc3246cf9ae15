from __future__ import annotations

from bingrep.core.models import RangeKind
from bingrep.core.ranges import build_ranges
from bingrep.parsers.archive_parser import ArchiveParser
from bingrep.parsers.elf_parser import ELFParser
from bingrep.parsers.macho_parser import FatMachOParser, MachOParser
from bingrep.parsers.pe_parser import PEParser

from conftest import DATA_VADDR, MACHO_DATA_VMADDR, MACHO_TEXT_VMADDR, TEXT_VADDR, Sample


def test_elf_program_headers_then_sections(elf64: Sample) -> None:
    ranges = build_ranges(ELFParser(elf64.data).parse())
    assert len(ranges) == 2 + elf64.layout["section_count"]
    assert [r.kind for r in ranges[:2]] == [RangeKind.PROGRAM_HEADER] * 2
    assert all(r.kind is RangeKind.SECTION for r in ranges[2:])
    assert [r.label for r in ranges[:2]] == ["PT_LOAD(0)", "PT_LOAD(1)"]
    assert [r.index for r in ranges[2:]] == list(range(8))


def test_elf_section_extents_and_addresses(elf64: Sample) -> None:
    ranges = {r.name: r for r in build_ranges(ELFParser(elf64.data).parse())}
    text = ranges[".text"]
    assert (text.file_offset, text.file_size) == (0x100, 0x40)
    assert text.virtual_address == TEXT_VADDR + 0x100

    assert ranges[".data"].virtual_address == DATA_VADDR + 0x140
    # NOBITS occupies no file bytes but keeps its address
    assert ranges[".bss"].file_size == 0
    assert ranges[".bss"].virtual_address is not None
    # Non-allocated sections at address zero are unmapped
    assert ranges[".strtab"].virtual_address is None
    assert ranges[".symtab"].virtual_address is None


def test_build_ranges_is_deterministic(elf64: Sample) -> None:
    elf = ELFParser(elf64.data).parse()
    assert build_ranges(elf) == build_ranges(elf)


def test_macho_segments_commands_and_sections(macho64: Sample) -> None:
    ranges = build_ranges(MachOParser(macho64.data).parse())
    kinds = [(r.kind, r.label) for r in ranges]
    assert kinds == [
        (RangeKind.SEGMENT, "__PAGEZERO(0)"),
        (RangeKind.SEGMENT, "__TEXT(1)"),
        (RangeKind.SEGMENT, "__DATA(2)"),
        (RangeKind.LOAD_COMMAND, "LC_SYMTAB(3)"),
        (RangeKind.LOAD_COMMAND, "LC_LOAD_DYLIB(4)"),
        (RangeKind.LOAD_COMMAND, "LC_MAIN(5)"),
        (RangeKind.SECTION, "__TEXT,__text(0)"),
        (RangeKind.SECTION, "__DATA,__data(1)"),
        (RangeKind.SECTION, "__DATA,__bss(2)"),
    ]
    text_seg = ranges[1]
    assert (text_seg.file_offset, text_seg.file_size) == (0, 0x400)
    assert text_seg.virtual_address == MACHO_TEXT_VMADDR

    symtab_cmd = ranges[3]
    assert symtab_cmd.file_offset == macho64.layout["command_offsets"][3]
    assert symtab_cmd.file_size == 24
    assert symtab_cmd.virtual_address is None

    assert ranges[7].virtual_address == MACHO_DATA_VMADDR
    assert ranges[8].file_size == 0


def test_fat_ranges_are_shifted_and_labelled(fat_macho: Sample) -> None:
    base = fat_macho.layout["slice_offset"]
    ranges = build_ranges(FatMachOParser(fat_macho.data).parse())
    assert len(ranges) == 9
    assert all(r.container == "x86_64" for r in ranges)
    assert ranges[1].label == "x86_64:__TEXT(1)"
    assert ranges[1].file_offset == base
    assert ranges[6].file_offset == base + 0x300


def test_pe_and_archive_have_no_ranges(pe64: Sample, archive: Sample) -> None:
    assert build_ranges(PEParser(pe64.data).parse()) == ()
    assert build_ranges(ArchiveParser(archive.data).parse()) == ()


def test_unknown_object_has_no_ranges() -> None:
    assert build_ranges(object()) == ()
