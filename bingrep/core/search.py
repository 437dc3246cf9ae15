"""
Pattern Search Engine
======================

Exact, case-sensitive byte search over the raw file contents.

Every occurrence is reported, including overlapping ones (the scan slides
one byte past each hit).  A text needle is matched against its encoded
bytes with no normalisation of any kind.

Large inputs can be scanned in chunks.  Consecutive chunks overlap by
``len(needle) - 1`` bytes so a match straddling a boundary is still
found; results are merged through a set and re-sorted so the output is
ascending and duplicate-free regardless of chunking.
"""

from __future__ import annotations

import binascii
from typing import Iterator, Union

from bingrep.core.errors import EmptyPatternError, InvalidPatternError

Pattern = Union[str, bytes, bytearray, memoryview]


def encode_pattern(needle: Pattern, encoding: str = "utf-8") -> bytes:
    """Return the raw bytes a needle is matched as.

    Raises:
        EmptyPatternError: If the needle is empty.
        InvalidPatternError: If a text needle cannot be encoded.
    """
    if isinstance(needle, str):
        try:
            raw = needle.encode(encoding)
        except (UnicodeEncodeError, LookupError) as exc:
            raise InvalidPatternError(
                f"cannot encode search pattern as {encoding}: {exc}"
            ) from exc
    else:
        raw = bytes(needle)
    if not raw:
        raise EmptyPatternError()
    return raw


def parse_hex_pattern(text: str) -> bytes:
    """Decode a hex pattern such as ``"de ad be ef"`` or ``"0xdeadbeef"``.

    Whitespace, ``:`` separators and a leading ``0x`` are ignored.

    Raises:
        EmptyPatternError: If nothing remains after stripping separators.
        InvalidPatternError: If the digits are not valid hex.
    """
    cleaned = "".join(text.split()).replace(":", "")
    if cleaned.lower().startswith("0x"):
        cleaned = cleaned[2:]
    if not cleaned:
        raise EmptyPatternError()
    try:
        return binascii.unhexlify(cleaned)
    except (binascii.Error, ValueError) as exc:
        raise InvalidPatternError(f"invalid hex pattern {text!r}: {exc}") from exc


def _scan(data: bytes | memoryview, needle: bytes) -> Iterator[int]:
    """Yield every (overlapping) occurrence of *needle* in *data*."""
    buf = bytes(data)
    pos = buf.find(needle)
    while pos != -1:
        yield pos
        pos = buf.find(needle, pos + 1)


def find_all(
    haystack: bytes | bytearray | memoryview,
    needle: Pattern,
    *,
    chunk_size: int = 0,
    encoding: str = "utf-8",
) -> list[int]:
    """Find every offset at which *needle* occurs in *haystack*.

    Args:
        haystack:   Raw file bytes.
        needle:     Text or bytes to look for; text is encoded first.
        chunk_size: Scan in windows of this many bytes; ``0`` scans the
                    whole buffer at once.
        encoding:   Encoding applied to a text needle.

    Returns:
        Strictly ascending list of match offsets; empty when nothing matches.

    Raises:
        EmptyPatternError: If *needle* is empty.
    """
    raw = encode_pattern(needle, encoding)
    size = len(haystack)
    if len(raw) > size:
        return []
    if chunk_size <= 0 or chunk_size >= size:
        return list(_scan(haystack, raw))

    # A window shorter than the needle could never hold a match.
    window = max(chunk_size, len(raw))
    overlap = len(raw) - 1
    view = memoryview(haystack)
    found: set[int] = set()
    pos = 0
    while pos < size:
        end = min(size, pos + window)
        found.update(pos + hit for hit in _scan(view[pos:end], raw))
        if end >= size:
            break
        pos = end - overlap
    return sorted(found)
