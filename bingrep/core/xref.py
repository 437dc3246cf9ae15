"""
Symbol / Relocation Cross-Referencer
=====================================

Resolves symbol-table and relocation entries against their string table
and section table, producing fully named :class:`SymbolRef` and
:class:`RelocationRef` records.

Tables are treated as immutable indexable sequences addressed by small
integers.  An index past the end of its table never raises: it resolves
to a ``BAD_IDX(n)`` sentinel and processing continues.

Section index policy (shared by symbols, relocations and section links):

    ==========================  =====================
    index                       rendered
    ==========================  =====================
    0                           "" (no section)
    0 < index < len(sections)   ``name(index)``
    format "absolute" value     ``ABS``
    anything else               ``BAD_IDX(index)``
    ==========================  =====================

The "absolute" value is supplied by the format through
:class:`FormatConventions`; ELF uses ``SHN_ABS = 0xfff1``.  Every other
reserved index (``SHN_COMMON`` included) is out of range.

References:
    - System V Application Binary Interface, Edition 4.1, ch. 4
      "Sections", "Symbol Table", "Relocation".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Protocol, Sequence

from bingrep.core.models import (
    ABS,
    UNNAMED_SECTION,
    IndexStatus,
    RelocationRef,
    SectionIndexRef,
    SymbolBinding,
    SymbolRef,
    SymbolType,
    bad_index,
)
from bingrep.core.strtab import StringTable


# ---------------------------------------------------------------------------
# Table entry shapes
# ---------------------------------------------------------------------------

class NamedEntry(Protocol):
    """Anything with a resolved display name (section headers)."""
    name: str


class RawSymbol(Protocol):
    """Raw symbol-table entry as produced by a format parser."""
    st_name: int
    st_value: int
    st_size: int
    st_shndx: int
    st_other: int

    @property
    def st_bind(self) -> int: ...

    @property
    def st_type(self) -> int: ...


class RawRelocation(Protocol):
    """Raw relocation entry as produced by a format parser."""
    r_offset: int
    r_type: int
    r_sym: int
    r_addend: Optional[int]


# ---------------------------------------------------------------------------
# Format conventions
# ---------------------------------------------------------------------------

def _no_relocation_names(r_type: int) -> str:
    return f"{r_type:#x}"


@dataclass(frozen=True, slots=True)
class FormatConventions:
    """Format-supplied constants used during cross-referencing.

    Attributes:
        absolute:      Section index meaning "absolute symbol", or ``None``
                       when the format has no such value.
        section_type:  Raw symbol type value denoting a section symbol.
        bindings:      Raw binding value to folded :class:`SymbolBinding`.
        types:         Raw type value to folded :class:`SymbolType`.
        binding_names: Raw binding value to display name.
        type_names:    Raw type value to display name.
        relocation_name: Maps a raw relocation type to its display name.
        address_bits:  Width of addends, for two's-complement rendering.
    """
    absolute: Optional[int] = None
    section_type: Optional[int] = None
    bindings: Mapping[int, SymbolBinding] = field(default_factory=dict)
    types: Mapping[int, SymbolType] = field(default_factory=dict)
    binding_names: Mapping[int, str] = field(default_factory=dict)
    type_names: Mapping[int, str] = field(default_factory=dict)
    relocation_name: Callable[[int], str] = _no_relocation_names
    address_bits: int = 64


# ---------------------------------------------------------------------------
# Section index resolution
# ---------------------------------------------------------------------------

def resolve_section_index(
    index: int,
    sections: Sequence[Any],
    conventions: FormatConventions,
) -> SectionIndexRef:
    """Resolve *index* against *sections* following the index policy.

    Args:
        index:       Raw section index from a symbol, relocation or link.
        sections:    The section table; entries expose ``.name``.
        conventions: Format constants (the absolute value).

    Returns:
        A :class:`SectionIndexRef` carrying status and rendered text.
    """
    if index == 0:
        return SectionIndexRef(index=0, status=IndexStatus.NONE)
    if 0 < index < len(sections):
        name = sections[index].name
        return SectionIndexRef(
            index=index,
            status=IndexStatus.VALID,
            rendered=f"{name}({index})",
            label=name,
        )
    if conventions.absolute is not None and index == conventions.absolute:
        return SectionIndexRef(
            index=index, status=IndexStatus.ABSOLUTE, rendered=ABS, label=ABS,
        )
    sentinel = bad_index(index)
    return SectionIndexRef(
        index=index, status=IndexStatus.OUT_OF_RANGE,
        rendered=sentinel, label=sentinel,
    )


def render_section_index(
    index: int,
    sections: Sequence[Any],
    conventions: FormatConventions,
) -> str:
    """Shorthand for ``resolve_section_index(...).rendered``."""
    return resolve_section_index(index, sections, conventions).rendered


# ---------------------------------------------------------------------------
# Addends
# ---------------------------------------------------------------------------

def signed_addend(addend: int, bits: int = 64) -> int:
    """Interpret *addend* as a two's-complement value of *bits* width.

    Parsers that unpack addends with a signed format already produce
    negative values; this also covers callers that hand in the raw
    unsigned word.
    """
    if addend >= 1 << (bits - 1):
        return addend - (1 << bits)
    return addend


def format_addend(addend: Optional[int], bits: int = 64) -> str:
    """Render an addend suffix: ``""`` for zero, else ``+0x..`` or ``-0x..``."""
    if not addend:
        return ""
    value = signed_addend(addend, bits)
    if value < 0:
        return f"-{-value:#x}"
    return f"+{value:#x}"


# ---------------------------------------------------------------------------
# Symbols
# ---------------------------------------------------------------------------

def _symbol_name(
    sym: RawSymbol,
    strtab: StringTable,
    section: SectionIndexRef,
    conventions: FormatConventions,
) -> str:
    """Name of *sym*, falling back to its section for section symbols."""
    name = strtab.name_at(sym.st_name)
    if not name and sym.st_type == conventions.section_type:
        return section.label or UNNAMED_SECTION
    return name


def resolve_symbol(
    index: int,
    symbols: Sequence[RawSymbol],
    strtab: StringTable,
    sections: Sequence[Any],
    conventions: FormatConventions,
) -> SymbolRef:
    """Resolve the symbol at *index* into a :class:`SymbolRef`.

    An empty name on a section-typed symbol is replaced with the name of
    the section it refers to, or ``<unnamed-section>`` when that is empty
    too.  An *index* outside the symbol table yields
    a record named ``BAD_IDX(index)``.

    Args:
        index:       Position in *symbols*.
        symbols:     The raw symbol table.
        strtab:      String table linked to the symbol table.
        sections:    The section table; entries expose ``.name``.
        conventions: Format constants.

    Returns:
        The resolved symbol.
    """
    if not 0 <= index < len(symbols):
        return SymbolRef(index=index, name=bad_index(index))

    sym = symbols[index]
    section = resolve_section_index(sym.st_shndx, sections, conventions)
    name = _symbol_name(sym, strtab, section, conventions)

    return SymbolRef(
        index=index,
        value=sym.st_value,
        size=sym.st_size,
        binding=conventions.bindings.get(sym.st_bind, SymbolBinding.OTHER),
        type=conventions.types.get(sym.st_type, SymbolType.OTHER),
        binding_name=conventions.binding_names.get(sym.st_bind, str(sym.st_bind)),
        type_name=conventions.type_names.get(sym.st_type, str(sym.st_type)),
        name=name,
        owning_section=section.rendered,
        section=section,
        other=sym.st_other,
    )


def resolve_symbols(
    symbols: Sequence[RawSymbol],
    strtab: StringTable,
    sections: Sequence[Any],
    conventions: FormatConventions,
) -> list[SymbolRef]:
    """Resolve every entry of a symbol table, in table order."""
    return [
        resolve_symbol(i, symbols, strtab, sections, conventions)
        for i in range(len(symbols))
    ]


# ---------------------------------------------------------------------------
# Relocations
# ---------------------------------------------------------------------------

def resolve_relocation(
    entry: RawRelocation,
    symbols: Sequence[RawSymbol],
    strtab: StringTable,
    sections: Sequence[Any],
    conventions: FormatConventions,
) -> RelocationRef:
    """Resolve a relocation entry against its symbol table.

    Naming follows the symbol: a named symbol keeps its name; a nameless
    section symbol takes its section's name; any other nameless symbol
    is shown as ``ABS``.  The addend suffix is empty for zero.
    """
    addend = entry.r_addend
    if addend is not None:
        addend = signed_addend(addend, conventions.address_bits)

    out_of_range = not 0 <= entry.r_sym < len(symbols)
    if out_of_range:
        name = bad_index(entry.r_sym)
    else:
        sym = symbols[entry.r_sym]
        section = resolve_section_index(sym.st_shndx, sections, conventions)
        name = _symbol_name(sym, strtab, section, conventions) or ABS

    return RelocationRef(
        offset=entry.r_offset,
        type=entry.r_type,
        type_name=conventions.relocation_name(entry.r_type),
        symbol_index=entry.r_sym,
        symbol_name=name,
        addend=addend,
        addend_text=format_addend(addend, conventions.address_bits),
        symbol_out_of_range=out_of_range,
    )


def resolve_relocations(
    entries: Sequence[RawRelocation],
    symbols: Sequence[RawSymbol],
    strtab: StringTable,
    sections: Sequence[Any],
    conventions: FormatConventions,
) -> list[RelocationRef]:
    """Resolve a relocation table, preserving entry order."""
    return [
        resolve_relocation(entry, symbols, strtab, sections, conventions)
        for entry in entries
    ]
