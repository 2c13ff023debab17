"""
Anchor Core - Field Elements
BN254 scalar field arithmetic shared by the hash engine, the tree and the
circuit-facing codecs.

Every value that ends up in a tree, a commitment, a nullifier, a root or a
diff is a FieldElement. Arithmetic always reduces modulo FIELD_SIZE and
conversions to and from hex/decimal/bytes are explicit and total, so no
caller ever has to remember which representation a value is in.
"""
from __future__ import annotations

from typing import Any, Union

from anchor_core.schemas.errors import SchemaValidationException


FIELD_SIZE: int = int(
    "21888242871839275222246405745257275088548364400416034343698204186575808495617"
)

FieldLike = Union["FieldElement", int, str, bytes]


class FieldElement:
    """
    An integer modulo FIELD_SIZE.

    Instances are immutable and hashable. Equality holds against other
    FieldElements and against plain ints (compared after reduction).

    Example:
        >>> FieldElement(5) - FieldElement(7) == FIELD_SIZE - 2
        True
    """

    __slots__ = ("_value",)

    def __init__(self, value: int = 0) -> None:
        if isinstance(value, bool) or not isinstance(value, int):
            raise SchemaValidationException(
                f"FieldElement requires an int, got {type(value).__name__}; "
                "use FieldElement.coerce for other representations"
            )
        object.__setattr__(self, "_value", value % FIELD_SIZE)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("FieldElement is immutable")

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_int(cls, value: int) -> "FieldElement":
        return cls(value)

    @classmethod
    def from_hex(cls, hex_string: str) -> "FieldElement":
        """Parse a hex string, with or without 0x prefix (a leading '-' is allowed)."""
        text = hex_string.strip()
        negative = text.startswith("-")
        if negative:
            text = text[1:]
        if text.lower().startswith("0x"):
            text = text[2:]
        if not text:
            raise SchemaValidationException(f"Empty hex string: {hex_string!r}")
        try:
            value = int(text, 16)
        except ValueError as e:
            raise SchemaValidationException(
                f"Invalid hex field element: {hex_string!r}"
            ) from e
        return cls(-value if negative else value)

    @classmethod
    def from_decimal(cls, text: str) -> "FieldElement":
        stripped = text.strip()
        body = stripped[1:] if stripped.startswith("-") else stripped
        if not body.isdigit():
            raise SchemaValidationException(f"Invalid decimal field element: {text!r}")
        return cls(int(stripped))

    @classmethod
    def from_bytes(cls, data: bytes) -> "FieldElement":
        """Interpret bytes as a big-endian integer."""
        return cls(int.from_bytes(data, "big"))

    @classmethod
    def coerce(cls, value: FieldLike) -> "FieldElement":
        """
        Convert any accepted representation into a FieldElement.

        Strings starting with 0x (or -0x) are hex, any other string must be
        decimal. bytes are big-endian.
        """
        if isinstance(value, FieldElement):
            return value
        if isinstance(value, bool):
            raise SchemaValidationException("bool is not a field element")
        if isinstance(value, int):
            return cls(value)
        if isinstance(value, (bytes, bytearray)):
            return cls.from_bytes(bytes(value))
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered.startswith("0x") or lowered.startswith("-0x"):
                return cls.from_hex(value)
            return cls.from_decimal(value)
        raise SchemaValidationException(
            f"Cannot convert {type(value).__name__} to a field element"
        )

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    @property
    def value(self) -> int:
        return self._value

    def to_hex(self, length: int = 32) -> str:
        """0x-prefixed, zero-padded to ``length`` bytes."""
        return "0x" + format(self._value, "x").zfill(length * 2)

    def to_decimal(self) -> str:
        return str(self._value)

    def to_bytes(self, length: int = 32) -> bytes:
        return self._value.to_bytes(length, "big")

    def __int__(self) -> int:
        return self._value

    def __index__(self) -> int:
        return self._value

    # ------------------------------------------------------------------
    # Arithmetic
    # ------------------------------------------------------------------

    def __add__(self, other: FieldLike) -> "FieldElement":
        return FieldElement(self._value + FieldElement.coerce(other)._value)

    __radd__ = __add__

    def __sub__(self, other: FieldLike) -> "FieldElement":
        return FieldElement(self._value - FieldElement.coerce(other)._value)

    def __rsub__(self, other: FieldLike) -> "FieldElement":
        return FieldElement(FieldElement.coerce(other)._value - self._value)

    def __mul__(self, other: FieldLike) -> "FieldElement":
        return FieldElement(self._value * FieldElement.coerce(other)._value)

    __rmul__ = __mul__

    def __neg__(self) -> "FieldElement":
        return FieldElement(-self._value)

    def __pow__(self, exponent: int) -> "FieldElement":
        return FieldElement(pow(self._value, exponent, FIELD_SIZE))

    def inverse(self) -> "FieldElement":
        if self._value == 0:
            raise ZeroDivisionError("zero has no inverse in the field")
        return FieldElement(pow(self._value, FIELD_SIZE - 2, FIELD_SIZE))

    # ------------------------------------------------------------------
    # Comparison
    # ------------------------------------------------------------------

    def __eq__(self, other: object) -> bool:
        if isinstance(other, FieldElement):
            return self._value == other._value
        if isinstance(other, int) and not isinstance(other, bool):
            return self._value == other % FIELD_SIZE
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)

    def __bool__(self) -> bool:
        return self._value != 0

    def __repr__(self) -> str:
        return f"FieldElement({self.to_hex()})"

    def __str__(self) -> str:
        return self.to_decimal()


ZERO = FieldElement(0)


def field_sub(a: FieldLike, b: FieldLike) -> FieldElement:
    """(a - b) mod FIELD_SIZE."""
    return FieldElement.coerce(a) - FieldElement.coerce(b)


def field_add(a: FieldLike, b: FieldLike) -> FieldElement:
    """(a + b) mod FIELD_SIZE."""
    return FieldElement.coerce(a) + FieldElement.coerce(b)


__all__ = [
    "FIELD_SIZE",
    "FieldElement",
    "FieldLike",
    "ZERO",
    "field_add",
    "field_sub",
]
