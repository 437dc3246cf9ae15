"""
bingrep Parsers
================

Struct-based decoders for the supported container formats.  Each parser
takes the raw file bytes, exposes a ``format`` attribute and a
``parse()`` method that returns the parser itself or raises
:class:`~bingrep.core.errors.ParseError`.
"""

from bingrep.parsers.archive_parser import ArchiveParser
from bingrep.parsers.elf_parser import ELFParser
from bingrep.parsers.macho_parser import FatMachOParser, MachOParser
from bingrep.parsers.magic import MagicIdentifier, identify_format
from bingrep.parsers.pe_parser import PEParser

__all__ = [
    "ArchiveParser",
    "ELFParser",
    "FatMachOParser",
    "MachOParser",
    "MagicIdentifier",
    "PEParser",
    "identify_format",
]
