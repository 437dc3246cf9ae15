from __future__ import annotations

import pytest

from bingrep.core.correlate import CorrelationReporter, correlate
from bingrep.core.errors import EmptyPatternError
from bingrep.core.models import Range, RangeKind


RANGES = [
    Range(
        kind=RangeKind.SEGMENT, name="LOAD", index=0,
        file_offset=0, file_size=0x100, virtual_address=0x1000,
    ),
    Range(
        kind=RangeKind.SECTION, name=".text", index=1,
        file_offset=0x10, file_size=0x10, virtual_address=0x1010,
    ),
]


def _haystack() -> bytes:
    data = bytearray(0x120)
    data[0x05] = ord("X")
    data[0x15] = ord("X")
    data[0x110] = ord("X")
    return bytes(data)


def test_correlate_pairs_each_match_with_its_ranges() -> None:
    reports = correlate(_haystack(), "X", RANGES)
    assert [r.offset for r in reports] == [0x05, 0x15, 0x110]

    first, second, third = reports
    assert [(h.range.name, h.address) for h in first.ranges] == [("LOAD", 0x1005)]
    assert [(h.range.name, h.address) for h in second.ranges] == [
        ("LOAD", 0x1015),
        (".text", 0x1015),
    ]
    assert second.innermost.range.name == ".text"
    assert third.ranges == ()
    assert third.innermost is None


def test_correlate_without_ranges_still_reports_matches() -> None:
    reports = correlate(b"abXabX", "X")
    assert [r.offset for r in reports] == [2, 5]
    assert all(r.ranges == () for r in reports)


def test_reporter_honours_chunking() -> None:
    data = _haystack()
    whole = CorrelationReporter(RANGES).correlate(data, "X")
    chunked = CorrelationReporter(RANGES, chunk_size=7).correlate(data, "X")
    assert chunked == whole


def test_reporter_rejects_empty_needle() -> None:
    with pytest.raises(EmptyPatternError):
        CorrelationReporter(RANGES).correlate(b"abc", "")


def test_reporter_exposes_locator() -> None:
    reporter = CorrelationReporter(RANGES)
    assert len(reporter.locator) == 2
