"""
bingrep Analysis Engine
========================

Orchestrates the complete introspection pipeline: format detection,
structural parsing, range construction, symbol and relocation
cross-referencing, pattern correlation and offset location.

Every stage works on the immutable file bytes or on the output of an
earlier stage.  Results are aggregated into a :class:`BinaryReport`
which keeps a private handle on the parsed model for rendering.

Analysis Pipeline:
    1. Enforce the configured size limit and compute the SHA-256 digest
    2. Detect the container format via magic bytes (or honour an override)
    3. Parse format-specific headers and tables (ELF, Mach-O, PE, ar)
    4. Build the ordered range table
    5. Resolve symbol tables against their string and section tables
    6. Resolve relocation tables against their symbol tables
    7. Collect libraries, imports, exports and archive members, demangling
       symbol names on request
    8. Correlate pattern matches with the range table
    9. Locate a user-supplied offset
    10. Record data-integrity findings

References:
    - Levine, J. R. (1999). Linkers and Loaders. Morgan Kaufmann.
    - System V Application Binary Interface, Edition 4.1.
"""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Any, Optional

from shared.config import BingrepConfig
from shared.logger import ToolLogger
from shared.models import Finding, Severity

from bingrep.core.correlate import CorrelationReporter
from bingrep.core.demangle import demangle_name
from bingrep.core.errors import (
    FileTooLargeError,
    InvalidPatternError,
    UnsupportedFormatError,
)
from bingrep.core.models import (
    UNREADABLE,
    BinaryFormat,
    BinaryReport,
    IndexStatus,
    RelocationGroup,
    SymbolTableRef,
)
from bingrep.core.ranges import build_ranges
from bingrep.core.search import Pattern, encode_pattern, parse_hex_pattern
from bingrep.core.xref import resolve_relocations, resolve_symbols
from bingrep.parsers.archive_parser import ArchiveParser
from bingrep.parsers.elf_parser import SHT_DYNSYM, ELFParser
from bingrep.parsers.macho_parser import FatMachOParser, MachOParser
from bingrep.parsers.magic import MagicIdentifier
from bingrep.parsers.pe_parser import PEParser


_PARSERS: dict[BinaryFormat, type] = {
    BinaryFormat.ELF: ELFParser,
    BinaryFormat.MACHO: MachOParser,
    BinaryFormat.MACHO_FAT: FatMachOParser,
    BinaryFormat.PE: PEParser,
    BinaryFormat.ARCHIVE: ArchiveParser,
}


# ---------------------------------------------------------------------------
# BingrepEngine
# ---------------------------------------------------------------------------

class BingrepEngine:
    """Runs the bingrep pipeline over a file or an in-memory buffer.

    Usage::

        engine = BingrepEngine()
        report = engine.analyze("/bin/ls", search="GLIBC")
        for match in report.matches:
            print(hex(match.offset), [r.range.label for r in match.ranges])
    """

    def __init__(
        self,
        config: BingrepConfig | None = None,
        logger: ToolLogger | None = None,
    ) -> None:
        """Initialise the engine.

        Args:
            config: bingrep configuration.  Defaults are used if not provided.
            logger: Logger instance.  A new one is created if not provided.
        """
        self._config: BingrepConfig = config or BingrepConfig()
        self._logger: ToolLogger = logger or ToolLogger.from_config(
            "engine", self._config,
        )
        self._magic: MagicIdentifier = MagicIdentifier()

    # ------------------------------------------------------------------ #
    #  Entry points
    # ------------------------------------------------------------------ #

    def analyze(
        self,
        file_path: str | Path,
        search: Optional[Pattern] = None,
        hex_pattern: bool = False,
        offset: Optional[int] = None,
        format: str = "auto",
        demangle: bool = False,
    ) -> BinaryReport:
        """Run the pipeline on a file.

        Args:
            file_path: Path to the file to inspect.
            search: Pattern to correlate; ``None`` skips the search.
            hex_pattern: Interpret a text *search* as hex digits.
            offset: File offset to locate; ``None`` skips location.
            format: Force a format (``"elf"``, ``"macho"``, ...) or ``"auto"``.
            demangle: Demangle Rust and C++ symbol, import and export names.

        Returns:
            The populated :class:`BinaryReport`.

        Raises:
            FileNotFoundError: If *file_path* does not exist.
            FileTooLargeError: If the file exceeds ``search.max_file_size``.
            InputError: For an empty or malformed pattern or offset, or a
                table extending past the end of the file.
            ParseError: If the file cannot be decoded.
        """
        path = Path(file_path)
        self._logger.info("Starting analysis of %s", path)
        size = path.stat().st_size
        self._check_size(size)
        data = path.read_bytes()
        return self._run_pipeline(
            data, str(path.resolve()), search, hex_pattern, offset, format,
            demangle,
        )

    def analyze_data(
        self,
        data: bytes,
        file_path: str = "<memory>",
        search: Optional[Pattern] = None,
        hex_pattern: bool = False,
        offset: Optional[int] = None,
        format: str = "auto",
        demangle: bool = False,
    ) -> BinaryReport:
        """Run the pipeline on raw bytes already in memory.

        Takes the same arguments as :meth:`analyze`, with *file_path*
        used only as a display label.
        """
        self._check_size(len(data))
        return self._run_pipeline(
            data, file_path, search, hex_pattern, offset, format, demangle,
        )

    # ------------------------------------------------------------------ #
    #  Pipeline implementation
    # ------------------------------------------------------------------ #

    def _run_pipeline(
        self,
        data: bytes,
        file_path: str,
        search: Optional[Pattern],
        hex_pattern: bool,
        offset: Optional[int],
        format_hint: str,
        demangle: bool,
    ) -> BinaryReport:
        # Validate caller input before any parsing work
        needle = self._prepare_pattern(search, hex_pattern)
        if offset is not None and offset < 0:
            raise InvalidPatternError(f"offset must be non-negative, got {offset}")

        # Step 1: Compute digest
        sha256 = hashlib.sha256(data).hexdigest()

        # Step 2: Detect format
        detected = self._detect_format(data, format_hint)
        self._logger.info("Detected format: %s", detected.value)

        # Step 3: Parse format-specific headers
        with self._logger.timed(f"{detected.value} parse"):
            parsed = _PARSERS[detected](data).parse()

        report = BinaryReport(
            info=parsed.get_binary_info().model_copy(
                update={"path": file_path, "size": len(data), "sha256": sha256},
            ),
        )

        # Step 4: Build ranges
        report.ranges = list(build_ranges(parsed))
        self._logger.debug("Built %d ranges", len(report.ranges))

        # Steps 5-6: Symbols and relocations (ELF carries resolvable tables)
        if detected is BinaryFormat.ELF:
            report.symbol_tables = self._resolve_elf_symbols(parsed)
            report.relocation_groups = self._resolve_elf_relocations(parsed)

        # Step 7: Non-correlated listings
        self._collect_listings(parsed, detected, report)
        if demangle:
            self._demangle_names(report)

        # Step 8: Correlate matches
        if needle is not None:
            report.pattern = (
                needle if isinstance(needle, str) else needle.hex()
            )
            reporter = CorrelationReporter(
                report.ranges,
                chunk_size=self._config.search.chunk_size,
                encoding=self._config.search.encoding,
            )
            with self._logger.operation("correlate"):
                report.matches = reporter.correlate(data, needle)
                self._logger.info(
                    "Found %d matches for %r", len(report.matches), report.pattern,
                )

        # Step 9: Locate offset
        if offset is not None:
            reporter = CorrelationReporter(report.ranges)
            report.located_offset = offset
            report.located = list(reporter.locator.ranges_containing(offset))

        # Step 10: Findings
        report.findings = self._generate_findings(report, parsed)
        for finding in report.findings:
            self._logger.warning("%s: %s", finding.title, finding.location)

        return report.attach(parsed)

    # ------------------------------------------------------------------ #
    #  Stage helpers
    # ------------------------------------------------------------------ #

    def _check_size(self, size: int) -> None:
        max_size = self._config.search.max_file_size
        if size > max_size:
            raise FileTooLargeError(
                f"file too large: {size:,} bytes (max: {max_size:,} bytes)"
            )

    def _prepare_pattern(
        self,
        search: Optional[Pattern],
        hex_pattern: bool,
    ) -> Optional[bytes | str]:
        if search is None:
            return None
        if hex_pattern:
            text = search if isinstance(search, str) else bytes(search).decode("ascii")
            return parse_hex_pattern(text)
        # Encoding up front rejects empty or unencodable needles before parsing
        raw = encode_pattern(search, self._config.search.encoding)
        return search if isinstance(search, str) else raw

    def _detect_format(self, data: bytes, format_hint: str) -> BinaryFormat:
        if format_hint == "auto":
            detected = self._magic.identify_format(data)
        else:
            try:
                detected = BinaryFormat(format_hint.lower())
            except ValueError as exc:
                raise UnsupportedFormatError(
                    f"unknown format override {format_hint!r}"
                ) from exc
        if detected not in _PARSERS:
            raise UnsupportedFormatError(
                f"unrecognised file format ({self._magic.identify(data)})"
            )
        return detected

    def _resolve_elf_symbols(self, elf: ELFParser) -> list[SymbolTableRef]:
        conventions = elf.conventions
        sections = elf.section_headers
        tables: list[SymbolTableRef] = []
        if elf.syms:
            tables.append(SymbolTableRef(
                name="Syms",
                symbols=resolve_symbols(elf.syms, elf.strtab, sections, conventions),
            ))
        if elf.dynsyms:
            tables.append(SymbolTableRef(
                name="Dyn Syms",
                symbols=resolve_symbols(
                    elf.dynsyms, elf.dynstrtab, sections, conventions,
                ),
            ))
        return tables

    def _resolve_elf_relocations(self, elf: ELFParser) -> list[RelocationGroup]:
        conventions = elf.conventions
        sections = elf.section_headers
        groups: list[RelocationGroup] = []

        for name, entries in (
            ("Dynamic Relas", elf.dynrelas),
            ("Dynamic Rel", elf.dynrels),
            ("Plt Relocations", elf.pltrelocs),
        ):
            if entries:
                groups.append(RelocationGroup(
                    name=name,
                    relocations=resolve_relocations(
                        entries, elf.dynsyms, elf.dynstrtab, sections, conventions,
                    ),
                ))

        for index, entries in elf.shdr_relocs:
            sh = sections[index]
            symbols, strtab = self._linked_symbols(elf, sh.sh_link)
            target = (
                sections[sh.sh_info].name
                if 0 < sh.sh_info < len(sections) else ""
            )
            groups.append(RelocationGroup(
                name=f"{sh.name}({index})",
                target=target,
                relocations=resolve_relocations(
                    entries, symbols, strtab, sections, conventions,
                ),
            ))
        return groups

    @staticmethod
    def _linked_symbols(elf: ELFParser, link: int) -> tuple[list[Any], Any]:
        """Symbol and string table a relocation section links to."""
        sections = elf.section_headers
        if 0 < link < len(sections):
            if sections[link].sh_type == SHT_DYNSYM:
                return elf.dynsyms, elf.dynstrtab
        return elf.syms, elf.strtab

    @staticmethod
    def _collect_listings(
        parsed: Any,
        detected: BinaryFormat,
        report: BinaryReport,
    ) -> None:
        if detected is BinaryFormat.ELF:
            report.libraries = list(parsed.libraries)
        elif detected is BinaryFormat.MACHO:
            report.libraries = list(parsed.libraries)
            report.imports = parsed.get_imports()
            report.exports = parsed.get_exports()
        elif detected is BinaryFormat.MACHO_FAT:
            for macho in parsed.slices:
                report.libraries.extend(
                    lib for lib in macho.libraries if lib not in report.libraries
                )
                report.imports.extend(macho.get_imports())
                report.exports.extend(macho.get_exports())
        elif detected is BinaryFormat.PE:
            report.libraries = list(parsed.libraries)
            report.imports = list(parsed.imports)
            report.exports = list(parsed.exports)
        elif detected is BinaryFormat.ARCHIVE:
            report.members = list(parsed.members)

    @staticmethod
    def _demangle_names(report: BinaryReport) -> None:
        report.symbol_tables = [
            table.model_copy(update={"symbols": [
                sym.model_copy(update={"name": demangle_name(sym.name)})
                for sym in table.symbols
            ]})
            for table in report.symbol_tables
        ]
        report.relocation_groups = [
            group.model_copy(update={"relocations": [
                reloc.model_copy(update={"symbol_name": demangle_name(reloc.symbol_name)})
                for reloc in group.relocations
            ]})
            for group in report.relocation_groups
        ]
        report.imports = [
            imp.model_copy(update={"name": demangle_name(imp.name)})
            for imp in report.imports
        ]
        report.exports = [
            exp.model_copy(update={"name": demangle_name(exp.name)})
            for exp in report.exports
        ]
        report.demangled = True

    # ------------------------------------------------------------------ #
    #  Findings
    # ------------------------------------------------------------------ #

    @staticmethod
    def _generate_findings(report: BinaryReport, parsed: Any) -> list[Finding]:
        """Turn inline sentinels into findings.

        Nothing here stops processing: the offending value is already
        rendered as ``BAD_IDX(n)`` or ``<unreadable>``.
        """
        findings: list[Finding] = []

        for arch, error in getattr(parsed, "slice_errors", ()):
            findings.append(Finding(
                severity=Severity.LOW,
                title="Unparseable architecture slice",
                description=f"The {arch.name} slice could not be parsed: {error}",
                location=f"fat_arch[{arch.name}]",
                evidence=arch.offset,
            ))

        for rng in report.ranges:
            if UNREADABLE in rng.name:
                findings.append(Finding(
                    severity=Severity.LOW,
                    title="Unreadable range name",
                    description=(
                        f"The name of {rng.kind.value} {rng.index} is not "
                        "valid UTF-8 or lies outside its string table."
                    ),
                    location=f"{rng.kind.value}[{rng.index}]",
                    evidence=rng.file_offset,
                ))

        for table in report.symbol_tables:
            for sym in table.symbols:
                if sym.section is not None and sym.section.status is IndexStatus.OUT_OF_RANGE:
                    findings.append(Finding(
                        severity=Severity.LOW,
                        title="Section index out of range",
                        description=(
                            f"Symbol {sym.index} refers to section "
                            f"{sym.section.index}, past the end of the "
                            "section table."
                        ),
                        location=f"{table.name}[{sym.index}]",
                        evidence=sym.section.index,
                    ))
                if sym.name == UNREADABLE:
                    findings.append(Finding(
                        severity=Severity.LOW,
                        title="Unreadable symbol name",
                        description=(
                            f"The name of symbol {sym.index} is not valid "
                            "UTF-8 or lies outside its string table."
                        ),
                        location=f"{table.name}[{sym.index}]",
                    ))

        for group in report.relocation_groups:
            for i, reloc in enumerate(group.relocations):
                if reloc.symbol_out_of_range:
                    findings.append(Finding(
                        severity=Severity.LOW,
                        title="Relocation symbol index out of range",
                        description=(
                            f"Relocation {i} refers to symbol "
                            f"{reloc.symbol_index}, past the end of its "
                            "symbol table."
                        ),
                        location=f"{group.name}[{i}]",
                        evidence=reloc.symbol_index,
                    ))

        return findings
