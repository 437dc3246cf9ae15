from __future__ import annotations

import pytest

from shared.console import BingrepConsole
from shared.logger import ToolLogger

from bingrep import BingrepEngine
from bingrep.core.models import BinaryReport, Range, RangeKind
from bingrep.output.console import BingrepConsoleOutput

from conftest import Sample, build_fat_macho_with_bad_slice, build_macho64


@pytest.fixture
def engine(quiet_logger: ToolLogger) -> BingrepEngine:
    return BingrepEngine(logger=quiet_logger)


def _render(report: BinaryReport, **kwargs) -> str:
    console = BingrepConsole(color=False, record=True, width=160)
    BingrepConsoleOutput(console, **kwargs).display(report)
    return console.export_text()


def test_elf_listing(engine: BingrepEngine, elf64: Sample) -> None:
    text = _render(engine.analyze_data(elf64.data, search="HELLO"))
    assert "ELF EXEC x86_64-little-endian @ 0x400100:" in text
    assert "ProgramHeaders(2):" in text
    assert "SectionHeaders(8):" in text
    assert "Syms(7):" in text
    assert ".rela.text(6) -> .text(4):" in text
    assert "main-0x4" in text
    assert ".text+0x10" in text
    assert "BAD_IDX(42)" in text
    assert "BAD_IDX(99)" in text
    assert "Libraries(0):" in text
    assert "Interpreter: None" in text


def test_match_tree(engine: BingrepEngine, elf64: Sample) -> None:
    text = _render(engine.analyze_data(elf64.data, search="HELLO"))
    assert "Matches for 'HELLO':" in text
    assert "├──ProgramHeader PT_LOAD(0) ∈ 0x400110" in text
    assert "└──Section .text(1) ∈ 0x400110" in text
    assert "└──Section .data(2) ∈ 0x600140" in text


def test_findings_are_rendered(engine: BingrepEngine, elf64: Sample) -> None:
    text = _render(engine.analyze_data(elf64.data))
    assert "Findings(2):" in text
    assert "Section index out of range" in text


def test_dynamic_listing(engine: BingrepEngine, elf64_dyn: Sample) -> None:
    text = _render(engine.analyze_data(elf64_dyn.data))
    assert "Dynamic(13):" in text
    assert "DT_NEEDED" in text
    assert "libc.so.6" in text
    assert "Soname: libfoo.so" in text
    assert "Interpreter: /lib64/ld-linux-x86-64.so.2" in text
    assert "Runpath: $ORIGIN/lib" in text
    assert "Findings" not in text


def test_located_offset(engine: BingrepEngine, elf64: Sample) -> None:
    text = _render(engine.analyze_data(elf64.data, offset=0x118))
    assert "Offset 0x118:" in text
    assert "Section .text(1) ∈ 0x400118" in text

    outside = _render(engine.analyze_data(elf64.data, offset=0xFFFFFF))
    assert "not contained in any range" in outside


def test_macho_listing(engine: BingrepEngine, macho64: Sample) -> None:
    text = _render(engine.analyze_data(macho64.data))
    assert "LoadCommands(6):" in text
    assert "LC_MAIN" in text
    assert "_printf" in text
    assert "/usr/lib/libSystem.B.dylib" in text


def test_pe_and_archive_listings(engine: BingrepEngine, pe64: Sample, archive: Sample) -> None:
    pe_text = _render(engine.analyze_data(pe64.data))
    assert "KERNEL32.dll" in pe_text
    assert "DoThing" in pe_text

    ar_text = _render(engine.analyze_data(archive.data))
    assert "Members(2):" in ar_text
    assert "very_long_object_name.o" in ar_text


def test_match_cap(engine: BingrepEngine, elf64: Sample) -> None:
    text = _render(engine.analyze_data(elf64.data, search="HELLO"), max_matches=1)
    assert "Showing 1 of 2 matches" in text


def test_ranges_without_parsed_model() -> None:
    report = BinaryReport(ranges=[
        Range(kind=RangeKind.SEGMENT, name="__TEXT", index=1, file_size=0x10),
    ])
    text = _render(report, pretty=True)
    assert "Ranges(1):" in text
    assert "__TEXT(1)" in text


def test_fat_slice_error_is_rendered(engine: BingrepEngine, macho64: Sample) -> None:
    text = _render(engine.analyze_data(build_fat_macho_with_bad_slice(macho64).data))
    assert "Multi-architecture binary (2 slices):" in text
    assert "arm64: file too short for fat slice arm64" in text
    assert "Unparseable architecture slice" in text


def test_demangled_macho_listing(engine: BingrepEngine) -> None:
    sample = build_macho64(export_name="__Z3fooi")
    text = _render(engine.analyze_data(sample.data, demangle=True))
    assert "foo(int)" in text
    assert "__Z3fooi" not in text
