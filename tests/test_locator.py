from __future__ import annotations

import pytest

from bingrep.core.errors import InvalidPatternError
from bingrep.core.locator import OffsetLocator
from bingrep.core.models import Range, RangeKind


def _segment() -> Range:
    return Range(
        kind=RangeKind.SEGMENT, name="__TEXT", index=0,
        file_offset=0, file_size=0x100, virtual_address=0x1000,
    )


def _section() -> Range:
    return Range(
        kind=RangeKind.SECTION, name=".text", index=1,
        file_offset=0x10, file_size=0x10, virtual_address=0x1010,
    )


def test_containment_is_half_open() -> None:
    r = _section()
    assert not r.contains(0x0F)
    assert r.contains(0x10)
    assert r.contains(0x1F)
    assert not r.contains(0x20)
    assert r.end == 0x20


def test_zero_sized_range_contains_nothing() -> None:
    r = Range(kind=RangeKind.SECTION, name=".bss", file_offset=0x40, file_size=0)
    assert not r.contains(0x40)
    assert OffsetLocator([r]).ranges_containing(0x40) == ()


def test_normalize_maps_offset_to_address() -> None:
    assert _section().normalize(0x15) == 0x1015
    unmapped = Range(kind=RangeKind.SECTION, name=".comment", file_offset=0, file_size=8)
    assert unmapped.normalize(4) is None


def test_label_includes_index_and_container() -> None:
    assert _section().label == ".text(1)"
    fat = Range(kind=RangeKind.SEGMENT, name="__TEXT", index=1, container="arm64")
    assert fat.label == "arm64:__TEXT(1)"


def test_locator_returns_all_containing_ranges_in_build_order() -> None:
    locator = OffsetLocator([_segment(), _section()])
    hits = locator.ranges_containing(0x15)
    assert [h.range.name for h in hits] == ["__TEXT", ".text"]
    assert [h.address for h in hits] == [0x1015, 0x1015]
    assert locator.innermost(0x15).range.name == ".text"


def test_locator_outside_every_range() -> None:
    locator = OffsetLocator([_segment(), _section()])
    assert locator.ranges_containing(0x200) == ()
    assert locator.innermost(0x200) is None


def test_locator_with_no_ranges() -> None:
    locator = OffsetLocator([])
    assert len(locator) == 0
    assert locator.ranges_containing(0) == ()


def test_negative_offset_rejected() -> None:
    with pytest.raises(InvalidPatternError):
        OffsetLocator([_segment()]).ranges_containing(-1)
