"""
Anchor Core - On-chain Proof Encoding
Fixed-width byte layouts the verifier contracts consume.

This module provides:
- Groth16Proof: proof points as produced by the prover (snarkjs JSON shape)
- encode_proof_calldata: 8 x 32-byte words with swapped pi_b pairs
- roots_bytes: concatenated 32-byte roots in RootInfo order

Word Order (Hard Contract):
    [pi_a.x, pi_a.y, pi_b.x1, pi_b.x0, pi_b.y1, pi_b.y0, pi_c.x, pi_c.y]
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Sequence, Union

from anchor_core.crypto.field import FieldElement, FieldLike
from anchor_core.schemas.errors import StructuralError
from anchor_core.schemas.roots import RootInfo


WORD_SIZE = 32
PROOF_WORDS = 8


@dataclass(frozen=True)
class Groth16Proof:
    """
    Groth16 proof points.

    Attributes:
        pi_a: (x, y)
        pi_b: ((x0, x1), (y0, y1))
        pi_c: (x, y)
    """
    pi_a: tuple[int, int]
    pi_b: tuple[tuple[int, int], tuple[int, int]]
    pi_c: tuple[int, int]

    @classmethod
    def from_snarkjs(cls, proof: Mapping[str, Any]) -> "Groth16Proof":
        """
        Parse a snarkjs proof object. Projective coordinates (the trailing
        "1" / ["1", "0"] entries) are dropped.
        """
        try:
            a = proof["pi_a"]
            b = proof["pi_b"]
            c = proof["pi_c"]
            return cls(
                pi_a=(int(a[0]), int(a[1])),
                pi_b=((int(b[0][0]), int(b[0][1])), (int(b[1][0]), int(b[1][1]))),
                pi_c=(int(c[0]), int(c[1])),
            )
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise StructuralError(f"Malformed Groth16 proof: {e}") from e

    def calldata_words(self) -> list[int]:
        (bx0, bx1), (by0, by1) = self.pi_b
        return [
            self.pi_a[0], self.pi_a[1],
            bx1, bx0,
            by1, by0,
            self.pi_c[0], self.pi_c[1],
        ]


def _word(value: int) -> bytes:
    try:
        return int(value).to_bytes(WORD_SIZE, "big")
    except OverflowError as e:
        raise StructuralError(f"Value does not fit in a 32-byte word: {value}") from e


def encode_proof_calldata(proof: Union[Groth16Proof, Mapping[str, Any]]) -> bytes:
    """
    Encode a proof as the 256-byte call-data blob.

    Accepts a Groth16Proof or a raw snarkjs proof mapping.
    """
    if not isinstance(proof, Groth16Proof):
        proof = Groth16Proof.from_snarkjs(proof)
    return b"".join(_word(w) for w in proof.calldata_words())


def decode_proof_calldata(data: bytes) -> Groth16Proof:
    """Inverse of encode_proof_calldata."""
    if len(data) != WORD_SIZE * PROOF_WORDS:
        raise StructuralError(
            f"Proof call-data must be {WORD_SIZE * PROOF_WORDS} bytes, got {len(data)}"
        )
    w = [int.from_bytes(data[i:i + WORD_SIZE], "big") for i in range(0, len(data), WORD_SIZE)]
    return Groth16Proof(
        pi_a=(w[0], w[1]),
        pi_b=((w[3], w[2]), (w[5], w[4])),
        pi_c=(w[6], w[7]),
    )


def roots_bytes(roots: Sequence[Union[RootInfo, FieldLike]]) -> bytes:
    """Concatenate roots as 32-byte big-endian words, preserving order."""
    out = bytearray()
    for root in roots:
        value = root.merkle_root if isinstance(root, RootInfo) else FieldElement.coerce(root)
        out += value.to_bytes(WORD_SIZE)
    return bytes(out)


__all__ = [
    "Groth16Proof",
    "encode_proof_calldata",
    "decode_proof_calldata",
    "roots_bytes",
    "WORD_SIZE",
    "PROOF_WORDS",
]
