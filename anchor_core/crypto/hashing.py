"""
Anchor Core - Hashing Utilities
Keccak-256 hashing and fixed-width hex encoding for on-chain payloads.

This module provides:
- keccak256 for raw bytes (the hash the bridge contracts use)
- Canonical hashing for objects (receipts and audit records)
- Hex encoding/decoding with 0x prefix, fixed-width big-endian words

Determinism Notes:
- Always hash raw bytes exactly as given; callers strip 0x markers
- Fixed-width helpers never truncate: a value wider than the requested
  width is an error, not a silent cut
"""
from __future__ import annotations

from typing import Any

from web3 import Web3

from anchor_core.schemas.canonical import dumps_canonical
from anchor_core.schemas.errors import SchemaValidationException


def keccak256(data: bytes) -> bytes:
    """
    Compute the Keccak-256 digest of raw bytes.

    Example:
        >>> keccak256(b"").hex()
        'c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470'
    """
    return bytes(Web3.keccak(primitive=data))


def hash_canonical(obj: Any) -> bytes:
    """
    Hash an object using canonical JSON serialization.

    Rule: keccak256(dumps_canonical(obj).encode("utf-8"))
    """
    canonical_json = dumps_canonical(obj)
    return keccak256(canonical_json.encode("utf-8"))


def to_hex(data: bytes) -> str:
    """
    Convert bytes to a hexadecimal string with 0x prefix.

    Example:
        >>> to_hex(bytes.fromhex("deadbeef"))
        '0xdeadbeef'
    """
    return "0x" + data.hex()


def from_hex(hex_string: str) -> bytes:
    """
    Convert a 0x-prefixed hexadecimal string to bytes.

    Raises:
        SchemaValidationException: If the string lacks the 0x prefix, has
            odd length, or contains invalid hex characters
    """
    if not hex_string.startswith("0x"):
        raise SchemaValidationException(
            f"Hex string must start with '0x' prefix, got: {hex_string[:10]}..."
        )

    hex_content = hex_string[2:]

    if len(hex_content) % 2 != 0:
        raise SchemaValidationException(
            f"Hex string must have even length after 0x prefix, "
            f"got length {len(hex_content)}"
        )

    try:
        return bytes.fromhex(hex_content)
    except ValueError as e:
        raise SchemaValidationException(f"Invalid hex characters in string: {e}") from e


def int_to_bytes(value: int, length: int = 32) -> bytes:
    """Big-endian, zero-padded to ``length`` bytes. Negative values are rejected."""
    if value < 0:
        raise SchemaValidationException(f"Cannot encode negative value {value} as unsigned bytes")
    try:
        return value.to_bytes(length, "big")
    except OverflowError as e:
        raise SchemaValidationException(
            f"Value {value} does not fit in {length} bytes"
        ) from e


def to_fixed_hex(value: int | bytes, length: int = 32) -> str:
    """
    0x-prefixed hex of ``value`` left-padded to ``length`` bytes.

    Negative ints keep their sign in front of the prefix ("-0x..."), the
    same way amounts are rendered in ext data records.
    """
    if isinstance(value, (bytes, bytearray)):
        if len(value) > length:
            raise SchemaValidationException(
                f"{len(value)} bytes do not fit in {length} bytes"
            )
        return "0x" + bytes(value).hex().zfill(length * 2)
    value = int(value)
    if value < 0:
        return "-0x" + format(-value, "x").zfill(length * 2)
    return "0x" + int_to_bytes(value, length).hex()


def address_to_bytes(address: str) -> bytes:
    """Decode a 20-byte hex address (0x optional)."""
    text = address[2:] if address.lower().startswith("0x") else address
    if len(text) != 40:
        raise SchemaValidationException(f"Address must be 20 bytes, got {address!r}")
    try:
        return bytes.fromhex(text)
    except ValueError as e:
        raise SchemaValidationException(f"Invalid address {address!r}") from e


__all__ = [
    "keccak256",
    "hash_canonical",
    "to_hex",
    "from_hex",
    "int_to_bytes",
    "to_fixed_hex",
    "address_to_bytes",
]
