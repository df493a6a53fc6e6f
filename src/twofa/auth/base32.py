"""Unpadded RFC 4648 Base32, the text form authenticator apps expect for secrets.

Decoding accepts the spaced or hyphenated groupings users paste from
authenticator apps, in either case, with no ``=`` padding.
"""

from __future__ import annotations

import re

from twofa.errors import FormatError

ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"
_VALUES = {ch: i for i, ch in enumerate(ALPHABET)}
_SEPARATORS = re.compile(r"[\s\-]+")


def encode(data: bytes) -> str:
    """Encode bytes as Base32 without padding."""
    out: list[str] = []
    buffer = 0
    bits = 0
    for byte in data:
        buffer = ((buffer << 8) | byte) & 0xFFF
        bits += 8
        while bits >= 5:
            bits -= 5
            out.append(ALPHABET[(buffer >> bits) & 0x1F])
    if bits:
        # Left-align the leftover bits in a final zero-filled group
        out.append(ALPHABET[(buffer << (5 - bits)) & 0x1F])
    return "".join(out)


def normalize(text: str) -> str:
    """Drop whitespace and hyphens and uppercase."""
    return _SEPARATORS.sub("", text).upper()


def decode(text: str) -> bytes:
    """Decode Base32 text. Bits that do not fill a whole byte are discarded.

    Raises FormatError on any character outside the alphabet.
    """
    out = bytearray()
    buffer = 0
    bits = 0
    for ch in normalize(text):
        value = _VALUES.get(ch)
        if value is None:
            raise FormatError(f"Invalid Base32 character {ch!r}")
        buffer = ((buffer << 5) | value) & 0xFFF
        bits += 5
        if bits >= 8:
            bits -= 8
            out.append((buffer >> bits) & 0xFF)
    return bytes(out)
