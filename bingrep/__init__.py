"""
bingrep -- Binary Introspection and Pattern Correlation
========================================================

Parses ELF, Mach-O (thin and fat), PE and ``ar`` files, lays their
structure out as named byte ranges, and reports every occurrence of a
search pattern together with the segments and sections containing it.

Modules:
    - bingrep.core.engine: Central analysis orchestrator
    - bingrep.core.models: Pydantic data models
    - bingrep.core: Search, location, correlation and cross-referencing
    - bingrep.parsers: Struct-based format parsers
    - bingrep.output: Console and report output
    - bingrep.cli: Click-based command-line interface

References:
    - TIS Committee. (1995). Executable and Linkable Format (ELF) Specification.
    - Apple. (2024). Mach-O File Format Reference.
    - Microsoft. (2024). PE Format. Microsoft Learn.
"""

from bingrep.core.engine import BingrepEngine

__version__ = "0.4.0"
__tool_name__ = "bingrep"

__all__ = ["BingrepEngine"]
