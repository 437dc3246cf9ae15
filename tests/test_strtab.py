from __future__ import annotations

from bingrep.core.models import UNREADABLE
from bingrep.core.strtab import StringTable


def test_lookup_by_offset() -> None:
    strtab = StringTable(b"\x00.text\x00.data\x00")
    assert strtab.get(0) == ""
    assert strtab.get(1) == ".text"
    assert strtab.get(7) == ".data"
    # Offsets into the middle of a string yield its suffix
    assert strtab.get(2) == "text"


def test_out_of_range_offset_is_unreadable() -> None:
    strtab = StringTable(b"\x00abc\x00")
    assert strtab.get(99) is None
    assert strtab.get(-1) is None
    assert strtab.name_at(99) == UNREADABLE


def test_invalid_utf8_is_unreadable() -> None:
    strtab = StringTable(b"\x00\xff\xfe\x00ok\x00")
    assert strtab.get(1) is None
    assert strtab.name_at(1) == UNREADABLE
    assert strtab.name_at(4) == "ok"


def test_unterminated_final_string() -> None:
    assert StringTable(b"\x00tail").get(1) == "tail"


def test_empty_table() -> None:
    strtab = StringTable()
    assert not strtab
    assert len(strtab) == 0
    assert strtab.get(0) == ""
    assert strtab.get(1) is None
