"""
Structural Model Adapter
=========================

Normalises a parsed file into an ordered tuple of :class:`Range` values:
the single shape the offset locator and correlation reporter work on.

Per format:

* **ELF** -- one ``ProgramHeader`` range per program header, then one
  ``Section`` range per section header, each in table order.  ``NOBITS``
  sections occupy no file bytes and get a zero size.  Sections without
  ``SHF_ALLOC`` and a zero ``sh_addr`` have no virtual address.
* **Mach-O** -- one range per load command, in command order.  Segment
  commands are emitted as ``Segment`` ranges over the segment's file
  extent at its ``vmaddr``; every other command as a ``LoadCommand``
  range over its own record.  Sections follow, nested per segment and
  named ``SEGMENT,section``.
* **Fat Mach-O** -- each slice's ranges, shifted by the slice offset and
  labelled with the slice's architecture.
* **PE / archive** -- no ranges; these formats are listed, not correlated.

The adapter is a pure function of the parsed model: building twice
yields equal tuples.
"""

from __future__ import annotations

from typing import Any, Callable

from bingrep.core.models import BinaryFormat, Range, RangeKind


def _elf_ranges(elf: Any) -> list[Range]:
    ranges: list[Range] = []
    for i, ph in enumerate(elf.program_headers):
        ranges.append(Range(
            kind=RangeKind.PROGRAM_HEADER,
            name=ph.type_name,
            index=i,
            file_offset=ph.p_offset,
            file_size=ph.p_filesz,
            virtual_address=ph.p_vaddr,
        ))
    for i, sh in enumerate(elf.section_headers):
        mapped = sh.is_alloc or sh.sh_addr != 0
        ranges.append(Range(
            kind=RangeKind.SECTION,
            name=sh.name,
            index=i,
            file_offset=sh.sh_offset,
            file_size=sh.file_size,
            virtual_address=sh.sh_addr if mapped else None,
        ))
    return ranges


def _macho_ranges(macho: Any, container: str = "") -> list[Range]:
    base = macho.base
    ranges: list[Range] = []
    segments = {seg.command.index: seg for seg in macho.segments}

    for lc in macho.load_commands:
        seg = segments.get(lc.index)
        if seg is not None:
            ranges.append(Range(
                kind=RangeKind.SEGMENT,
                name=seg.segname,
                index=lc.index,
                file_offset=base + seg.fileoff,
                file_size=seg.filesize,
                virtual_address=seg.vmaddr,
                container=container,
            ))
        else:
            ranges.append(Range(
                kind=RangeKind.LOAD_COMMAND,
                name=lc.name,
                index=lc.index,
                file_offset=base + lc.offset,
                file_size=lc.cmdsize,
                container=container,
            ))

    index = 0
    for seg in macho.segments:
        for sect in seg.sections:
            ranges.append(Range(
                kind=RangeKind.SECTION,
                name=f"{sect.segname},{sect.sectname}",
                index=index,
                file_offset=base + sect.offset,
                file_size=sect.file_size,
                virtual_address=sect.addr,
                container=container,
            ))
            index += 1
    return ranges


def _fat_ranges(fat: Any) -> list[Range]:
    ranges: list[Range] = []
    for arch, macho in fat.iter_slices():
        ranges.extend(_macho_ranges(macho, container=arch.name))
    return ranges


def _no_ranges(parsed: Any) -> list[Range]:
    return []


_ADAPTERS: dict[BinaryFormat, Callable[[Any], list[Range]]] = {
    BinaryFormat.ELF: _elf_ranges,
    BinaryFormat.MACHO: _macho_ranges,
    BinaryFormat.MACHO_FAT: _fat_ranges,
    BinaryFormat.PE: _no_ranges,
    BinaryFormat.ARCHIVE: _no_ranges,
}


def build_ranges(parsed: Any) -> tuple[Range, ...]:
    """Build the ordered range table for a parsed file.

    Args:
        parsed: A parser instance exposing a ``format`` attribute.

    Returns:
        Ranges in structural order (never sorted by offset).
    """
    adapter = _ADAPTERS.get(getattr(parsed, "format", BinaryFormat.UNKNOWN), _no_ranges)
    return tuple(adapter(parsed))
