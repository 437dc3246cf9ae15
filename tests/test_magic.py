from __future__ import annotations

import struct

import pytest

from bingrep.core.models import BinaryFormat
from bingrep.parsers.magic import MagicIdentifier, identify_format

from conftest import Sample


@pytest.mark.parametrize(
    ("fixture", "expected"),
    [
        ("elf64", BinaryFormat.ELF),
        ("elf64_dyn", BinaryFormat.ELF),
        ("macho64", BinaryFormat.MACHO),
        ("fat_macho", BinaryFormat.MACHO_FAT),
        ("pe64", BinaryFormat.PE),
        ("archive", BinaryFormat.ARCHIVE),
    ],
)
def test_identify_samples(fixture: str, expected: BinaryFormat, request: pytest.FixtureRequest) -> None:
    sample: Sample = request.getfixturevalue(fixture)
    assert identify_format(sample.data) is expected


def test_java_class_is_not_fat_macho() -> None:
    # Class-file version 0/52 reads as an arch count of 52
    data = struct.pack(">IHH", 0xCAFEBABE, 0, 52) + b"\x00" * 16
    assert identify_format(data) is BinaryFormat.UNKNOWN


def test_unknown_and_empty() -> None:
    identifier = MagicIdentifier()
    assert identifier.identify_format(b"hello world") is BinaryFormat.UNKNOWN
    assert identifier.identify(b"hello world") == "Unknown binary"
    assert identifier.identify(b"") == "Empty file"
    assert identifier.identify(b"\x7fELF\x02\x01") == "ELF executable"
