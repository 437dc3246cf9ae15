"""
bingrep Console Output
=======================

Rich-powered terminal display for :class:`BinaryReport` results.

Each container format has its own listing (ELF program and section
headers, symbol and relocation tables, dynamic entries; Mach-O load
commands and segments; PE sections, imports and exports; archive
members).  Pattern matches and located offsets are shown as a tree of
the ranges containing them, outermost first::

    Matches for 'GLIBC':
     0x3a8
      ├──ProgramHeader PT_LOAD(2) ∈ 0x3a8
      └──Section .dynstr(6) ∈ 0x3a8

Style selection is a lookup from enum value to Rich style; names taken
from the file are always wrapped in :class:`rich.text.Text` so bytes
that look like console markup are shown verbatim.

References:
    - Rich library: https://github.com/Textualize/rich
"""

from __future__ import annotations

from typing import Any, Iterable, Optional, Sequence

from rich.text import Text

from shared.console import BingrepConsole
from shared.models import Finding

from bingrep.core.models import (
    ABS,
    UNREADABLE,
    BinaryFormat,
    BinaryReport,
    IndexStatus,
    LocatedRange,
    MatchReport,
    RangeKind,
    RelocationGroup,
    SymbolBinding,
    SymbolTableRef,
    SymbolType,
)
from bingrep.core.demangle import demangle_name
from bingrep.core.xref import render_section_index
from bingrep.parsers.elf_parser import (
    DT_ADDRESS_TAGS,
    DT_SIZE_TAGS,
    DT_STRING_TAGS,
    ELFParser,
    dynamic_tag_name,
)


# ---------------------------------------------------------------------------
# Style lookup tables
# ---------------------------------------------------------------------------

_RANGE_KIND_STYLES: dict[RangeKind, str] = {
    RangeKind.SEGMENT: "bold bright_blue",
    RangeKind.PROGRAM_HEADER: "bold bright_blue",
    RangeKind.SECTION: "bold bright_yellow",
    RangeKind.LOAD_COMMAND: "bold bright_magenta",
}

_BINDING_STYLES: dict[SymbolBinding, str] = {
    SymbolBinding.LOCAL: "cyan",
    SymbolBinding.GLOBAL: "bright_red",
    SymbolBinding.WEAK: "bright_magenta",
    SymbolBinding.OTHER: "dim",
}

_SYMBOL_TYPE_STYLES: dict[SymbolType, str] = {
    SymbolType.FUNCTION: "bold bright_red",
    SymbolType.INDIRECT_FUNCTION: "bold bright_yellow",
    SymbolType.OBJECT: "bold bright_cyan",
    SymbolType.SECTION: "bold bright_blue",
    SymbolType.OTHER: "white",
}

_INDEX_STATUS_STYLES: dict[IndexStatus, str] = {
    IndexStatus.NONE: "bingrep.dim",
    IndexStatus.VALID: "bingrep.string",
    IndexStatus.ABSOLUTE: "bingrep.sentinel",
    IndexStatus.OUT_OF_RANGE: "bingrep.bad",
}


def _addr(value: Optional[int]) -> Text:
    if value is None:
        return Text("-", style="bingrep.dim")
    return Text(f"{value:#x}", style="bingrep.addr")


def _off(value: int) -> Text:
    return Text(f"{value:#x}", style="bingrep.offset")


def _size(value: int) -> Text:
    return Text(f"{value:#x}", style="bingrep.size")


def _name(value: Optional[str], style: str = "bingrep.string") -> Text:
    """A name from the file; sentinels get their own style."""
    if value is None or value == UNREADABLE:
        return Text(UNREADABLE, style="bingrep.bad")
    if value.startswith("BAD_IDX("):
        return Text(value, style="bingrep.bad")
    if value == ABS:
        return Text(value, style="bingrep.sentinel")
    return Text(value, style=style)


# ---------------------------------------------------------------------------
# BingrepConsoleOutput
# ---------------------------------------------------------------------------

class BingrepConsoleOutput:
    """Rich terminal display for bingrep reports.

    Usage::

        output = BingrepConsoleOutput(pretty=True)
        output.display(report)
    """

    def __init__(
        self,
        console: BingrepConsole | None = None,
        *,
        pretty: bool = False,
        max_matches: int = 1000,
    ) -> None:
        """Initialise the output renderer.

        Args:
            console: Optional console; a new one is created if not provided.
            pretty: Bordered tables with headers instead of compact rows.
            max_matches: Cap on the number of match trees printed.
        """
        self._console: BingrepConsole = console or BingrepConsole()
        self._pretty = pretty
        self._max_matches = max_matches

    @property
    def console(self) -> BingrepConsole:
        return self._console

    def display(self, report: BinaryReport) -> None:
        """Render the structural listing, then any matches, location and findings.

        Args:
            report: The report to render.  Its attached parsed model
                drives the format-specific tables.
        """
        parsed = report.parsed
        fmt = report.info.format
        if parsed is None:
            self.display_ranges(report.ranges)
        elif fmt is BinaryFormat.ELF:
            self.display_elf(parsed, report)
        elif fmt is BinaryFormat.MACHO:
            self.display_macho(parsed, report)
        elif fmt is BinaryFormat.MACHO_FAT:
            self.display_fat(parsed, report)
        elif fmt is BinaryFormat.PE:
            self.display_pe(parsed, report)
        elif fmt is BinaryFormat.ARCHIVE:
            self.display_archive(parsed, report)

        if report.pattern is not None:
            self.display_matches(report.pattern, report.matches)
        if report.located_offset is not None:
            self.display_located(report.located_offset, report.located)
        if report.findings:
            self.display_findings(report.findings)

    # ------------------------------------------------------------------ #
    #  Shared helpers
    # ------------------------------------------------------------------ #

    def _table(self, columns: Sequence[str], rows: Iterable[Sequence[Any]]) -> None:
        tbl = self._console.new_table(columns, pretty=self._pretty)
        for row in rows:
            tbl.add_row(*row)
        self._console.print(tbl)
        self._console.blank()

    def _kv(self, key: str, value: Any) -> None:
        line = Text(f"{key}: ")
        line.append(value if isinstance(value, Text) else Text(str(value)))
        self._console.print(line)

    def display_ranges(self, ranges: Sequence[Any]) -> None:
        """Generic range listing, used when no parsed model is attached."""
        self._console.header("Ranges", len(ranges))
        self._table(
            ("Kind", "Name", "Offset", "Size", "Address"),
            (
                (
                    Text(r.kind.value, style=_RANGE_KIND_STYLES[r.kind]),
                    _name(r.label),
                    _off(r.file_offset),
                    _size(r.file_size),
                    _addr(r.virtual_address),
                )
                for r in ranges
            ),
        )

    # ------------------------------------------------------------------ #
    #  ELF
    # ------------------------------------------------------------------ #

    def display_elf(self, elf: ELFParser, report: BinaryReport) -> None:
        """Full ELF listing in table order."""
        h = elf.header
        endian = "little-endian" if elf.little_endian else "big-endian"
        self._console.print(Text.assemble(
            ("ELF ", "bold"),
            (f"{elf.type_name} ", "bold bright_red"),
            (f"{elf.machine_name}-{endian} ", "bold"),
            "@ ",
            (f"{h.e_entry:#x}", "bingrep.addr"),
            ":",
        ))
        self._console.blank()
        self._kv("e_phoff", _off(h.e_phoff))
        self._kv("e_shoff", _off(h.e_shoff))
        self._kv("e_flags", f"{h.e_flags:#x}")
        self._kv("e_ehsize", h.e_ehsize)
        self._kv("e_phentsize", h.e_phentsize)
        self._kv("e_phnum", h.e_phnum)
        self._kv("e_shentsize", h.e_shentsize)
        self._kv("e_shnum", h.e_shnum)
        self._kv("e_shstrndx", h.e_shstrndx)
        self._console.blank()

        self._console.header("ProgramHeaders", len(elf.program_headers))
        self._table(
            ("#", "Type", "Flags", "Offset", "Vaddr", "Paddr", "Filesz", "Memsz", "Align"),
            (
                (
                    str(i),
                    Text(ph.type_name, style=_RANGE_KIND_STYLES[RangeKind.PROGRAM_HEADER]),
                    elf.segment_flags_str(ph.p_flags),
                    _off(ph.p_offset),
                    _addr(ph.p_vaddr),
                    _addr(ph.p_paddr),
                    _size(ph.p_filesz),
                    _size(ph.p_memsz),
                    f"{ph.p_align:#x}",
                )
                for i, ph in enumerate(elf.program_headers)
            ),
        )

        conventions = elf.conventions
        sections = elf.section_headers
        self._console.header("SectionHeaders", len(sections))
        self._table(
            ("#", "Name", "Type", "Flags", "Addr", "Offset", "Size", "Link", "Entsize", "Align"),
            (
                (
                    str(i),
                    _name(sh.name),
                    sh.type_name,
                    elf.section_flags_str(sh.sh_flags),
                    _addr(sh.sh_addr),
                    _off(sh.sh_offset),
                    _size(sh.sh_size),
                    _name(render_section_index(sh.sh_link, sections, conventions)),
                    f"{sh.sh_entsize:#x}",
                    f"{sh.sh_addralign:#x}",
                )
                for i, sh in enumerate(sections)
            ),
        )

        for table in report.symbol_tables:
            self.display_symbols(table)
        for group in report.relocation_groups:
            self.display_relocations(group)

        if elf.dynamic is not None:
            self._display_dynamic(elf)

        self._console.header("Libraries", len(elf.libraries))
        for lib in elf.libraries:
            self._console.print(Text.assemble("  ", (lib, "bingrep.library")))
        self._console.blank()

        self._kv("Soname", _name(elf.soname) if elf.soname else "None")
        self._kv("Interpreter", _name(elf.interpreter) if elf.interpreter else "None")
        if elf.rpaths:
            self._kv("Rpath", ":".join(elf.rpaths))
        if elf.runpaths:
            self._kv("Runpath", ":".join(elf.runpaths))
        self._kv("is_64", elf.is_64)
        self._kv("is_lib", elf.is_lib)
        self._kv("little_endian", elf.little_endian)
        self._kv("entry", _addr(elf.entry))
        self._console.blank()

    def _display_dynamic(self, elf: ELFParser) -> None:
        entries = elf.dynamic or []
        self._console.header("Dynamic", len(entries))
        rows = []
        for entry in entries:
            if entry.d_tag in DT_STRING_TAGS:
                value = _name(elf.dynstrtab.name_at(entry.d_val), "bingrep.library")
            elif entry.d_tag in DT_ADDRESS_TAGS:
                value = _addr(entry.d_val)
            elif entry.d_tag in DT_SIZE_TAGS:
                value = _size(entry.d_val)
            else:
                value = Text(f"{entry.d_val:#x}")
            rows.append((Text(dynamic_tag_name(entry.d_tag), style="bold"), value))
        self._table(("Tag", "Value"), rows)

    def display_symbols(self, table: SymbolTableRef) -> None:
        """One symbol table, in table order."""
        self._console.header(table.name, len(table.symbols))
        rows = []
        for sym in table.symbols:
            section_style = (
                _INDEX_STATUS_STYLES[sym.section.status]
                if sym.section is not None else "bingrep.dim"
            )
            rows.append((
                _addr(sym.value),
                Text(sym.binding_name, style=_BINDING_STYLES[sym.binding]),
                Text(sym.type_name, style=_SYMBOL_TYPE_STYLES[sym.type]),
                _name(sym.name),
                Text(sym.owning_section, style=section_style),
                _size(sym.size),
                f"{sym.other:#x}",
            ))
        self._table(("Addr", "Bind", "Type", "Symbol", "Section", "Size", "Other"), rows)

    def display_relocations(self, group: RelocationGroup) -> None:
        """One relocation group; section groups name their target section."""
        title = group.name if not group.target else f"{group.name} -> {group.target}"
        self._console.header(title, len(group.relocations))
        self._table(
            ("Offset", "Type", "Symbol"),
            (
                (
                    _addr(reloc.offset),
                    reloc.type_name,
                    Text.assemble(_name(reloc.symbol_name), reloc.addend_text),
                )
                for reloc in group.relocations
            ),
        )

    # ------------------------------------------------------------------ #
    #  Mach-O
    # ------------------------------------------------------------------ #

    def display_macho(self, macho: Any, report: BinaryReport, container: str = "") -> None:
        """Thin Mach-O listing; *container* labels a fat slice."""
        h = macho.header
        endian = "little-endian" if macho.little_endian else "big-endian"
        label = f"{container}: " if container else ""
        self._console.print(Text.assemble(
            label,
            ("Mach-o ", "bold"),
            (f"{macho.filetype_name} ", "bold bright_red"),
            (f"{macho.arch}-{endian} ", "bold"),
            "@ ",
            (f"{macho.entry:#x}", "bingrep.addr"),
            ":",
        ))
        self._console.blank()
        self._kv("ncmds", h.ncmds)
        self._kv("sizeofcmds", _size(h.sizeofcmds))
        self._kv("flags", f"{h.flags:#x}")
        self._console.blank()

        self._console.header("LoadCommands", len(macho.load_commands))
        self._table(
            ("#", "Command", "Offset", "Size"),
            (
                (
                    str(lc.index),
                    Text(lc.name, style=_RANGE_KIND_STYLES[RangeKind.LOAD_COMMAND]),
                    _off(macho.base + lc.offset),
                    _size(lc.cmdsize),
                )
                for lc in macho.load_commands
            ),
        )

        self._console.header("Segments", len(macho.segments))
        for seg in macho.segments:
            self._console.print(Text.assemble(
                (seg.segname, _RANGE_KIND_STYLES[RangeKind.SEGMENT]),
                " vmaddr ", _addr(seg.vmaddr),
                " vmsize ", _size(seg.vmsize),
                " fileoff ", _off(macho.base + seg.fileoff),
                " filesize ", _size(seg.filesize),
            ))
            self._table(
                ("Section", "Addr", "Size", "Offset", "Align", "Flags"),
                (
                    (
                        _name(f"{sect.segname},{sect.sectname}"),
                        _addr(sect.addr),
                        _size(sect.size),
                        _off(macho.base + sect.offset),
                        str(sect.align),
                        f"{sect.flags:#x}",
                    )
                    for sect in seg.sections
                ),
            )

        exports = macho.get_exports()
        imports = macho.get_imports()
        if report.demangled:
            exports = [e.model_copy(update={"name": demangle_name(e.name)}) for e in exports]
            imports = [i.model_copy(update={"name": demangle_name(i.name)}) for i in imports]
        self._console.header("Exports", len(exports))
        self._table(
            ("Addr", "Name"),
            ((_addr(e.address), _name(e.name)) for e in exports),
        )
        self._console.header("Imports", len(imports))
        self._table(
            ("Name", "Library"),
            ((_name(i.name), _name(i.library, "bingrep.library")) for i in imports),
        )

        self._console.header("Libraries", len(macho.libraries))
        for lib in macho.libraries:
            self._console.print(Text.assemble("  ", _name(lib, "bingrep.library")))
        self._console.blank()

        self._kv("Name", _name(macho.name) if macho.name else "None")
        self._kv("is_64", macho.is_64)
        self._kv("is_lib", macho.is_lib)
        self._kv("little_endian", macho.little_endian)
        self._kv("entry", _addr(macho.entry))
        self._console.blank()

    def display_fat(self, fat: Any, report: BinaryReport) -> None:
        """Each slice of a fat Mach-O in turn."""
        self._console.print(Text(f"Multi-architecture binary ({len(fat.arches)} slices):", style="bold"))
        self._console.blank()
        for arch, macho in fat.iter_slices():
            self.display_macho(macho, report, container=arch.name)
        for arch, error in fat.slice_errors:
            self._console.print(Text.assemble(
                (f"{arch.name}: ", "bold"), (error, "bingrep.bad"),
            ))
        if fat.slice_errors:
            self._console.blank()

    # ------------------------------------------------------------------ #
    #  PE and archives
    # ------------------------------------------------------------------ #

    def display_pe(self, pe: Any, report: BinaryReport) -> None:
        """PE header fields, sections, imports and exports."""
        self._console.print(Text.assemble(
            ("PE ", "bold"),
            (f"{report.info.kind} ", "bold bright_red"),
            (f"{pe.machine_name} ", "bold"),
            "@ ",
            (f"{pe.entry:#x}", "bingrep.addr"),
            ":",
        ))
        self._console.blank()
        self._kv("subsystem", pe.subsystem_name)
        self._kv("image_base", _addr(pe.optional_header.image_base))
        timestamp = pe.get_timestamp()
        if timestamp is not None:
            self._kv("timestamp", timestamp.isoformat())
        self._console.blank()

        self._console.header("Sections", len(pe.sections))
        self._table(
            ("#", "Name", "VirtAddr", "VirtSize", "RawOffset", "RawSize", "Flags"),
            (
                (
                    str(i),
                    _name(sec.name),
                    _addr(sec.virtual_address),
                    _size(sec.virtual_size),
                    _off(sec.pointer_to_raw_data),
                    _size(sec.size_of_raw_data),
                    sec.flags,
                )
                for i, sec in enumerate(pe.sections)
            ),
        )

        self._console.header("Exports", len(report.exports))
        self._table(
            ("Ordinal", "Addr", "Name"),
            ((str(e.ordinal), _addr(e.address), _name(e.name)) for e in report.exports),
        )
        self._console.header("Imports", len(report.imports))
        self._table(
            ("Library", "Name", "Ordinal"),
            (
                (_name(i.library, "bingrep.library"), _name(i.name), str(i.ordinal or ""))
                for i in report.imports
            ),
        )
        self._console.header("Libraries", len(report.libraries))
        for lib in report.libraries:
            self._console.print(Text.assemble("  ", _name(lib, "bingrep.library")))
        self._console.blank()
        self._kv("Name", _name(pe.name) if pe.name else "None")
        self._kv("is_64", pe.is_64)
        self._kv("is_lib", pe.is_lib)
        self._kv("entry", _addr(pe.entry))
        self._console.blank()

    def display_archive(self, archive: Any, report: BinaryReport) -> None:
        """Archive members and the symbol index."""
        self._console.header("Members", len(report.members))
        self._table(
            ("Name", "Offset", "Size"),
            (
                (_name(m.name), _off(m.offset), _size(m.size))
                for m in report.members
            ),
        )
        if archive.symbol_index:
            self._console.header("Symbols", len(archive.symbol_index))
            self._table(
                ("Symbol", "Member"),
                (
                    (_name(symbol), _name(member, "bingrep.library"))
                    for symbol, member in archive.symbol_index.items()
                ),
            )

    # ------------------------------------------------------------------ #
    #  Matches and location
    # ------------------------------------------------------------------ #

    def _range_tree(self, hits: Sequence[LocatedRange]) -> None:
        for i, hit in enumerate(hits):
            branch = "└──" if i == len(hits) - 1 else "├──"
            rng = hit.range
            line = Text(f"  {branch}")
            line.append(f"{rng.kind.value} ", style=_RANGE_KIND_STYLES[rng.kind])
            line.append_text(_name(rng.label))
            if hit.address is not None:
                line.append(" ∈ ")
                line.append_text(_addr(hit.address))
            self._console.print(line)

    def display_matches(self, pattern: str, matches: Sequence[MatchReport]) -> None:
        """``Matches for <pattern>:`` followed by one tree per match offset."""
        self._console.print(Text.assemble("Matches for ", (repr(pattern), "bold"), ":"))
        for match in matches[: self._max_matches]:
            self._console.print(Text.assemble(" ", _off(match.offset)))
            self._range_tree(match.ranges)
        if len(matches) > self._max_matches:
            self._console.info(
                f"Showing {self._max_matches} of {len(matches)} matches. "
                "Use --json to export all of them."
            )
        self._console.blank()

    def display_located(self, offset: int, hits: Sequence[LocatedRange]) -> None:
        """The containing-range tree for a single offset."""
        self._console.print(Text.assemble("Offset ", _off(offset), ":"))
        if not hits:
            self._console.print(Text("  not contained in any range", style="bingrep.dim"))
        self._range_tree(hits)
        self._console.blank()

    def display_findings(self, findings: Sequence[Finding]) -> None:
        """Data-integrity observations recorded while resolving tables."""
        self._console.header("Findings", len(findings))
        self._table(
            ("Severity", "Title", "Location", "Evidence"),
            (
                (
                    Text(f.severity.value, style=f.severity.style),
                    f.title,
                    Text(f.location),
                    Text(f.evidence),
                )
                for f in findings
            ),
        )
