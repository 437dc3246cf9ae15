"""
Symbol Demangling
==================

Turns Rust and C++ mangled names back into their source form.

Rust names (legacy ``_ZN...17h<hash>E`` and v0 ``_R...``) go through
``rust_demangler``; remaining Itanium C++ names (``_Z...``) go through
``cxxfilt``, which wraps the C++ runtime's ``__cxa_demangle``.  Mach-O
prefixes every C symbol with an extra underscore, which is stripped
before demangling.  Names that are not mangled, or that a demangler
rejects, are returned unchanged.

References:
    - Itanium C++ ABI, section 5.1 "External Names".
    - Rust RFC 2603, "Rust Symbol Name Mangling (v0)".
"""

from __future__ import annotations

import re
from typing import Optional

import cxxfilt
import rust_demangler


_LEGACY_RUST_HASH = re.compile(r"17h[0-9a-f]{16}E$")


def _strip_macho_underscore(name: str) -> str:
    if name.startswith(("__Z", "__R")):
        return name[1:]
    return name


def _demangle_rust(name: str) -> Optional[str]:
    if not (name.startswith("_R") or _LEGACY_RUST_HASH.search(name)):
        return None
    try:
        return rust_demangler.demangle(name)
    # rust_demangler signals malformed input with its own exception classes
    except Exception:
        return None


def _demangle_cxx(name: str) -> Optional[str]:
    if not name.startswith("_Z"):
        return None
    try:
        return cxxfilt.demangle(name)
    except cxxfilt.InvalidName:
        return None


def demangle_name(name: str) -> str:
    """Demangle a Rust or C++ symbol name; other names pass through.

    Usage::

        demangle_name("_Z3fooi")   # "foo(int)"
        demangle_name("main")      # "main"
    """
    candidate = _strip_macho_underscore(name)
    if not candidate.startswith(("_Z", "_R")):
        return name
    return _demangle_rust(candidate) or _demangle_cxx(candidate) or name
