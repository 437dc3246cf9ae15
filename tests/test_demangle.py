from __future__ import annotations

import pytest

from bingrep.core.demangle import demangle_name

RUST_LEGACY = "_ZN4core3fmt5write17h0123456789abcdefE"


@pytest.mark.parametrize("name", ["main", "_main", ".text", "<unreadable>", "BAD_IDX(3)", ""])
def test_plain_names_pass_through(name: str) -> None:
    assert demangle_name(name) == name


def test_cxx_name() -> None:
    assert demangle_name("_Z3fooi") == "foo(int)"


def test_macho_extra_underscore_is_stripped() -> None:
    assert demangle_name("__Z3fooi") == "foo(int)"


def test_rust_legacy_name() -> None:
    assert "core::fmt::write" in demangle_name(RUST_LEGACY)
    assert "core::fmt::write" in demangle_name("_" + RUST_LEGACY)


def test_malformed_mangled_name_is_kept() -> None:
    assert demangle_name("_Z!!") == "_Z!!"
