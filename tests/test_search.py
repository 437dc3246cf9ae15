from __future__ import annotations

import pytest

from bingrep.core.errors import EmptyPatternError, InputError, InvalidPatternError
from bingrep.core.search import encode_pattern, find_all, parse_hex_pattern


def test_find_all_reports_every_occurrence() -> None:
    assert find_all(b"abcabcabc", "abc") == [0, 3, 6]


def test_find_all_reports_overlapping_matches() -> None:
    assert find_all(b"aaaa", "aa") == [0, 1, 2]


def test_find_all_no_match_is_empty() -> None:
    assert find_all(b"hello", "xyz") == []
    assert find_all(b"ab", "abc") == []


def test_find_all_is_case_sensitive() -> None:
    assert find_all(b"Hello hello", "hello") == [6]


def test_find_all_accepts_bytes_needle() -> None:
    data = b"\x00\x7fELF\x00\x7fELF"
    assert find_all(data, b"\x7fELF") == [1, 6]


def test_empty_needle_raises() -> None:
    with pytest.raises(EmptyPatternError):
        find_all(b"abc", "")
    with pytest.raises(EmptyPatternError):
        find_all(b"abc", b"")


def test_empty_pattern_is_an_input_error() -> None:
    with pytest.raises(InputError):
        find_all(b"abc", "")
    with pytest.raises(ValueError):
        find_all(b"abc", "")


@pytest.mark.parametrize("chunk_size", [1, 2, 3, 5, 7, 16, 1024])
def test_chunked_scan_matches_single_pass(chunk_size: int) -> None:
    data = (b"xxabab" * 13) + b"abab"
    expected = find_all(data, "abab")
    assert find_all(data, "abab", chunk_size=chunk_size) == expected
    assert expected == sorted(set(expected))


def test_chunked_scan_finds_match_across_boundary() -> None:
    data = b"....NEEDLE...."
    # Boundary at 6 splits "NEEDLE" in two
    assert find_all(data, "NEEDLE", chunk_size=6) == [4]


def test_text_needle_uses_requested_encoding() -> None:
    data = "naïve".encode("latin-1")
    assert find_all(data, "ï", encoding="latin-1") == [2]
    assert find_all(data, "ï") == []


def test_encode_pattern_rejects_unencodable_text() -> None:
    with pytest.raises(InvalidPatternError):
        encode_pattern("ï", "ascii")


@pytest.mark.parametrize(
    "text",
    ["deadbeef", "de ad be ef", "0xdeadbeef", "de:ad:be:ef", "DE AD\tBE EF"],
)
def test_parse_hex_pattern_forms(text: str) -> None:
    assert parse_hex_pattern(text) == b"\xde\xad\xbe\xef"


def test_parse_hex_pattern_errors() -> None:
    with pytest.raises(EmptyPatternError):
        parse_hex_pattern("  ")
    with pytest.raises(EmptyPatternError):
        parse_hex_pattern("0x")
    with pytest.raises(InvalidPatternError):
        parse_hex_pattern("abc")
    with pytest.raises(InvalidPatternError):
        parse_hex_pattern("zz")
