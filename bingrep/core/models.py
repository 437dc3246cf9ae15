"""
bingrep Data Models
====================

Pydantic-based value objects produced by the correlation core and
consumed by the presentation layer.

Every model is frozen: ranges, symbol and relocation references and
match reports are derived once from the immutable parsed file and never
mutated afterwards.

References:
    - TIS Committee. (1995). Executable and Linkable Format (ELF) Specification.
    - Apple. (2024). Mach-O File Format Reference.
    - Microsoft. (2024). PE Format. Microsoft Learn.
"""

from __future__ import annotations

import enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from shared.models import Finding


#: Placeholder shown for a name whose bytes cannot be decoded.
UNREADABLE: str = "<unreadable>"

#: Label shown for a section index carrying the format's "absolute" sentinel.
ABS: str = "ABS"

#: Name given to a nameless section symbol whose section has no name either.
UNNAMED_SECTION: str = "<unnamed-section>"


def bad_index(index: int) -> str:
    """Sentinel label for an index past the end of its table."""
    return f"BAD_IDX({index})"


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class BinaryFormat(str, enum.Enum):
    """Supported binary container formats."""
    ELF = "elf"
    MACHO = "macho"
    MACHO_FAT = "macho-fat"
    PE = "pe"
    ARCHIVE = "archive"
    UNKNOWN = "unknown"


class RangeKind(str, enum.Enum):
    """Kind of structural entity a :class:`Range` describes."""
    SEGMENT = "Segment"
    SECTION = "Section"
    PROGRAM_HEADER = "ProgramHeader"
    LOAD_COMMAND = "LoadCommand"


class SymbolBinding(str, enum.Enum):
    """Symbol binding, folded to the values the renderer distinguishes."""
    LOCAL = "local"
    GLOBAL = "global"
    WEAK = "weak"
    OTHER = "other"


class SymbolType(str, enum.Enum):
    """Symbol type, folded to the values the renderer distinguishes."""
    OBJECT = "object"
    FUNCTION = "function"
    INDIRECT_FUNCTION = "indirect-function"
    SECTION = "section"
    OTHER = "other"


class IndexStatus(str, enum.Enum):
    """Outcome of resolving a section index against a section table."""
    NONE = "none"
    VALID = "valid"
    ABSOLUTE = "absolute"
    OUT_OF_RANGE = "out-of-range"


# ---------------------------------------------------------------------------
# Ranges and correlation
# ---------------------------------------------------------------------------

class Range(BaseModel):
    """A named, typed byte interval ``[file_offset, file_offset + file_size)``.

    Attributes:
        kind: Structural kind (segment, section, program header, load command).
        name: Display label; :data:`UNREADABLE` when the name bytes are bad.
        index: Position of the entity within its own table.
        file_offset: Start of the interval in the file.
        file_size: Length of the interval; zero-sized ranges match nothing.
        virtual_address: Base address the interval is mapped at, if any.
        container: Slice label for ranges inside a fat (universal) binary.
    """
    model_config = ConfigDict(frozen=True)

    kind: RangeKind
    name: str = ""
    index: int = 0
    file_offset: int = Field(default=0, ge=0)
    file_size: int = Field(default=0, ge=0)
    virtual_address: Optional[int] = Field(default=None, ge=0)
    container: str = ""

    @property
    def end(self) -> int:
        """First offset past the interval."""
        return self.file_offset + self.file_size

    @property
    def label(self) -> str:
        """``name(index)`` as shown in match trees."""
        prefix = f"{self.container}:" if self.container else ""
        return f"{prefix}{self.name}({self.index})"

    def contains(self, offset: int) -> bool:
        """Half-open containment test."""
        return self.file_offset <= offset < self.end

    def normalize(self, offset: int) -> Optional[int]:
        """Map a contained file offset to its virtual address."""
        if self.virtual_address is None:
            return None
        return self.virtual_address + (offset - self.file_offset)


class LocatedRange(BaseModel):
    """A range containing a queried offset, with the normalized address."""
    model_config = ConfigDict(frozen=True)

    range: Range
    address: Optional[int] = None


class MatchReport(BaseModel):
    """One match offset and every range that contains it, outermost first."""
    model_config = ConfigDict(frozen=True)

    offset: int
    ranges: tuple[LocatedRange, ...] = ()

    @property
    def innermost(self) -> Optional[LocatedRange]:
        """The last (most specific) containing range, or ``None``."""
        return self.ranges[-1] if self.ranges else None


# ---------------------------------------------------------------------------
# Symbols and relocations
# ---------------------------------------------------------------------------

class SectionIndexRef(BaseModel):
    """A section index resolved against a section table.

    ``rendered`` is the text shown in symbol and section-link columns:
    ``name(index)``, ``ABS``, ``BAD_IDX(index)`` or the empty string.
    ``label`` is the bare section name when the index is valid, else the
    same sentinel as ``rendered``.
    """
    model_config = ConfigDict(frozen=True)

    index: int
    status: IndexStatus
    rendered: str = ""
    label: str = ""


class SymbolRef(BaseModel):
    """A symbol table entry with its name and owning section resolved."""
    model_config = ConfigDict(frozen=True)

    index: int
    value: int = 0
    size: int = 0
    binding: SymbolBinding = SymbolBinding.OTHER
    type: SymbolType = SymbolType.OTHER
    binding_name: str = ""
    type_name: str = ""
    name: str = ""
    owning_section: str = ""
    section: Optional[SectionIndexRef] = None
    other: int = 0


class RelocationRef(BaseModel):
    """A relocation entry resolved against its symbol.

    Attributes:
        offset: Location the relocation patches.
        type: Raw relocation type number.
        type_name: Architecture-specific type name (e.g. ``R_X86_64_PC32``).
        symbol_index: Raw symbol table index.
        symbol_name: Resolved name, section name or sentinel.
        addend: Signed addend, ``None`` for REL-style entries.
        addend_text: ``+0x..`` / ``-0x..`` suffix, empty for a zero addend.
    """
    model_config = ConfigDict(frozen=True)

    offset: int
    type: int = 0
    type_name: str = ""
    symbol_index: int = 0
    symbol_name: str = ""
    addend: Optional[int] = None
    addend_text: str = ""
    symbol_out_of_range: bool = False

    @property
    def rendered(self) -> str:
        """Symbol name followed by the addend suffix."""
        return f"{self.symbol_name}{self.addend_text}"


class SymbolTableRef(BaseModel):
    """A named, fully resolved symbol table."""
    name: str
    symbols: list[SymbolRef] = Field(default_factory=list)


class RelocationGroup(BaseModel):
    """A named group of resolved relocations.

    ``target`` is the section the relocations apply to, when the group
    comes from a section-header relocation table.
    """
    name: str
    target: str = ""
    relocations: list[RelocationRef] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Non-correlated listings
# ---------------------------------------------------------------------------

class ImportInfo(BaseModel):
    """An imported symbol and the library expected to provide it."""
    name: str = ""
    library: str = ""
    address: int = 0
    ordinal: int = 0


class ExportInfo(BaseModel):
    """An exported symbol."""
    name: str = ""
    address: int = 0
    size: int = 0
    ordinal: int = 0


class ArchiveMember(BaseModel):
    """A member of a static (``ar``) archive."""
    name: str = ""
    offset: int = 0
    size: int = 0
    header_offset: int = 0


# ---------------------------------------------------------------------------
# Aggregate
# ---------------------------------------------------------------------------

class BinaryInfo(BaseModel):
    """Top-level metadata about an analysed file.

    Attributes:
        path: Filesystem path to the file.
        size: File size in bytes.
        format: Detected container format.
        kind: File type label (``EXEC``, ``DYN``, ``MH_DYLIB``, ...).
        arch: Architecture string.
        bits: Address width (32 or 64); 0 when not applicable.
        endian: ``"little"`` or ``"big"``.
        entry_point: Entry point virtual address.
        is_lib: Whether the file is a shared library.
        sha256: SHA-256 of the file contents.
    """
    path: str = ""
    size: int = 0
    format: BinaryFormat = BinaryFormat.UNKNOWN
    kind: str = ""
    arch: str = "unknown"
    bits: int = 0
    endian: str = "little"
    entry_point: int = 0
    is_lib: bool = False
    sha256: str = ""


class BinaryReport(BaseModel):
    """Everything bingrep derives from one file.

    The parsed format model is kept as a private attribute so the console
    renderer can show format-specific header tables; it is not part of
    the serialised report.
    """
    info: BinaryInfo = Field(default_factory=BinaryInfo)
    ranges: list[Range] = Field(default_factory=list)
    symbol_tables: list[SymbolTableRef] = Field(default_factory=list)
    relocation_groups: list[RelocationGroup] = Field(default_factory=list)
    libraries: list[str] = Field(default_factory=list)
    imports: list[ImportInfo] = Field(default_factory=list)
    exports: list[ExportInfo] = Field(default_factory=list)
    members: list[ArchiveMember] = Field(default_factory=list)
    pattern: Optional[str] = None
    matches: list[MatchReport] = Field(default_factory=list)
    located_offset: Optional[int] = None
    located: list[LocatedRange] = Field(default_factory=list)
    demangled: bool = False
    findings: list[Finding] = Field(default_factory=list)

    _parsed: Any = PrivateAttr(default=None)

    @property
    def parsed(self) -> Any:
        """The format parser the report was built from."""
        return self._parsed

    def attach(self, parsed: Any) -> BinaryReport:
        """Bind the parsed model; returns ``self`` for chaining."""
        self._parsed = parsed
        return self
