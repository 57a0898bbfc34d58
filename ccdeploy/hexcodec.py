"""Hex text to bytes and back."""

import string

from .errors import MalformedHex, SchemaViolation

_HEX_DIGITS = frozenset(string.hexdigits)


def decode(text: str) -> bytes:
    """Decode hex text, with or without a ``0x`` prefix.

    Raises:
        MalformedHex: If the length is odd or a character is not a hex digit
        SchemaViolation: If ``text`` is not a string

    """
    if not isinstance(text, str):
        raise SchemaViolation(f"Expected hex string, got {type(text).__name__}")

    body = text.removeprefix("0x")
    if len(body) % 2 != 0:
        raise MalformedHex(f"Hex string has odd length {len(body)}")

    # bytes.fromhex skips whitespace, so check every digit first
    for position, char in enumerate(body):
        if char not in _HEX_DIGITS:
            raise MalformedHex(f"Invalid hex character {char!r} at position {position}")

    return bytes.fromhex(body)


def encode(data: bytes) -> str:
    """Encode bytes as lower-case hex without prefix."""
    return bytes(data).hex()
