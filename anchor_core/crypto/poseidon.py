"""
Anchor Core - Hash Engines
Pluggable field hashes used by the Merkle tree and the UTXO codec.

This module provides:
- HashEngine: the interface every tree/codec receives at construction
- PoseidonParams: round constants and MDS matrix for one state width
- PoseidonHasher: the reference engine (Poseidon over the BN254 scalar field)
- KeccakHasher: keccak256-based engine for trees that never reach a circuit

Poseidon construction (per state width t = number of inputs + 1):
1. state = [0, *inputs]
2. For each of R_F + R_P rounds: add round constants, apply x^5 to every
   element (first and last R_F/2 rounds) or to state[0] only (partial
   rounds), multiply by the MDS matrix
3. Output state[0]

Parameters are derived from the Grain LFSR stream seeded with
(field=1, sbox=0, n=254, t, R_F, R_P). A published constants file can be
loaded instead with PoseidonParams.load_table.

The ``level`` argument of hash2 is accepted for callers that pass it and is
ignored: there is one hash domain for every tree level.
"""
from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional, Sequence

from anchor_core.crypto.field import FIELD_SIZE, FieldElement, FieldLike
from anchor_core.crypto.hashing import keccak256
from anchor_core.schemas.errors import (
    ArityError,
    CryptoPreconditionError,
    SchemaValidationException,
)


# Full rounds are fixed at 8 for every width
N_ROUNDS_F = 8

# Partial rounds indexed by t - 2 (t = 2 .. 17)
N_ROUNDS_P = [56, 57, 56, 60, 60, 63, 64, 63, 60, 66, 60, 65, 70, 60, 64, 68]

FIELD_BITS = 254


class HashEngine(ABC):
    """
    Field hash used by trees and codecs.

    Implementations must be deterministic and free of side effects.
    """

    @abstractmethod
    def hash(self, inputs: Sequence[FieldLike]) -> FieldElement:
        """Hash an arbitrary (supported) number of field elements."""

    def hash2(
        self,
        left: FieldLike,
        right: FieldLike,
        level: Optional[int] = None,
    ) -> FieldElement:
        """Order-sensitive 2-to-1 hash. ``level`` does not affect the result."""
        return self.hash([left, right])

    def hash3(self, inputs: Sequence[FieldLike]) -> FieldElement:
        if len(inputs) != 3:
            raise ArityError(expected=3, actual=len(inputs))
        return self.hash(inputs)


# =============================================================================
# Parameter generation
# =============================================================================

class _GrainLFSR:
    """80-bit self-shrinking Grain LFSR from the Poseidon reference scripts."""

    def __init__(self, field: int, sbox: int, n: int, t: int, r_f: int, r_p: int) -> None:
        bits = (
            format(field, "02b")
            + format(sbox, "04b")
            + format(n, "012b")
            + format(t, "012b")
            + format(r_f, "010b")
            + format(r_p, "010b")
            + "1" * 30
        )
        # bit i of the int holds sequence position i
        self._state = 0
        for i, bit in enumerate(bits):
            if bit == "1":
                self._state |= 1 << i
        for _ in range(160):
            self._step()

    def _step(self) -> int:
        s = self._state
        new_bit = ((s >> 62) ^ (s >> 51) ^ (s >> 38) ^ (s >> 23) ^ (s >> 13) ^ s) & 1
        self._state = (s >> 1) | (new_bit << 79)
        return new_bit

    def next_bit(self) -> int:
        bit = self._step()
        while bit == 0:
            self._step()
            bit = self._step()
        return self._step()

    def random_int(self, num_bits: int) -> int:
        value = 0
        for _ in range(num_bits):
            value = (value << 1) | self.next_bit()
        return value

    def field_element(self) -> int:
        value = self.random_int(FIELD_BITS)
        while value >= FIELD_SIZE:
            value = self.random_int(FIELD_BITS)
        return value


def _cauchy_mds(lfsr: _GrainLFSR, t: int) -> list[list[int]]:
    while True:
        samples = [lfsr.random_int(FIELD_BITS) % FIELD_SIZE for _ in range(2 * t)]
        if len(set(samples)) != len(samples):
            continue
        xs, ys = samples[:t], samples[t:]
        if any((x + y) % FIELD_SIZE == 0 for x in xs for y in ys):
            continue
        return [
            [pow(x + y, FIELD_SIZE - 2, FIELD_SIZE) for y in ys]
            for x in xs
        ]


@dataclass(frozen=True)
class PoseidonParams:
    """
    Poseidon parameters for one state width.

    Attributes:
        t: State width (inputs + 1)
        rounds_f: Number of full rounds
        rounds_p: Number of partial rounds
        round_constants: Flat list, (rounds_f + rounds_p) * t entries
        mds: t x t matrix
    """
    t: int
    rounds_f: int
    rounds_p: int
    round_constants: tuple[int, ...]
    mds: tuple[tuple[int, ...], ...]

    def __post_init__(self) -> None:
        expected = (self.rounds_f + self.rounds_p) * self.t
        if len(self.round_constants) != expected:
            raise SchemaValidationException(
                f"Poseidon t={self.t} needs {expected} round constants, "
                f"got {len(self.round_constants)}"
            )
        if len(self.mds) != self.t or any(len(row) != self.t for row in self.mds):
            raise SchemaValidationException(f"Poseidon t={self.t} needs a {self.t}x{self.t} MDS matrix")

    @classmethod
    def generate(cls, t: int) -> "PoseidonParams":
        """Derive parameters for width ``t`` from the Grain LFSR stream."""
        if not 2 <= t <= len(N_ROUNDS_P) + 1:
            raise CryptoPreconditionError(
                f"Poseidon supports 1..{len(N_ROUNDS_P)} inputs, got {t - 1}"
            )
        rounds_p = N_ROUNDS_P[t - 2]
        lfsr = _GrainLFSR(1, 0, FIELD_BITS, t, N_ROUNDS_F, rounds_p)
        constants = tuple(lfsr.field_element() for _ in range((N_ROUNDS_F + rounds_p) * t))
        mds = tuple(tuple(row) for row in _cauchy_mds(lfsr, t))
        return cls(t=t, rounds_f=N_ROUNDS_F, rounds_p=rounds_p, round_constants=constants, mds=mds)

    @classmethod
    def load_table(cls, path: str | Path) -> dict[int, "PoseidonParams"]:
        """
        Load a constants table of the form {"C": [[...], ...], "M": [[[...]]], ...}
        where entry k holds the parameters for t = k + 2. Values may be hex
        (0x-prefixed) or decimal strings.
        """
        with open(path) as f:
            data = json.load(f)
        table: dict[int, PoseidonParams] = {}
        for k, (constants, matrix) in enumerate(zip(data["C"], data["M"])):
            t = k + 2
            table[t] = cls(
                t=t,
                rounds_f=N_ROUNDS_F,
                rounds_p=N_ROUNDS_P[k],
                round_constants=tuple(FieldElement.coerce(c).value for c in constants),
                mds=tuple(tuple(FieldElement.coerce(v).value for v in row) for row in matrix),
            )
        return table


@lru_cache(maxsize=None)
def default_params(t: int) -> PoseidonParams:
    return PoseidonParams.generate(t)


def poseidon_permute(params: PoseidonParams, inputs: Sequence[int]) -> int:
    """Run the permutation on [0, *inputs] and return state[0]."""
    t = params.t
    state = [0, *(x % FIELD_SIZE for x in inputs)]
    half_f = params.rounds_f // 2
    constants = params.round_constants
    mds = params.mds

    for r in range(params.rounds_f + params.rounds_p):
        offset = r * t
        state = [(s + constants[offset + i]) % FIELD_SIZE for i, s in enumerate(state)]
        if r < half_f or r >= half_f + params.rounds_p:
            state = [pow(s, 5, FIELD_SIZE) for s in state]
        else:
            state[0] = pow(state[0], 5, FIELD_SIZE)
        state = [
            sum(m * s for m, s in zip(row, state)) % FIELD_SIZE
            for row in mds
        ]
    return state[0]


class PoseidonHasher(HashEngine):
    """
    Reference hash engine.

    Example:
        >>> hasher = PoseidonHasher()
        >>> hasher.hash2(1, 2) == hasher.hash([1, 2])
        True
    """

    def __init__(self, params: Optional[dict[int, PoseidonParams]] = None) -> None:
        self._params = dict(params or {})

    @classmethod
    def from_constants_file(cls, path: str | Path) -> "PoseidonHasher":
        return cls(PoseidonParams.load_table(path))

    def params_for(self, t: int) -> PoseidonParams:
        params = self._params.get(t)
        if params is None:
            params = default_params(t)
        return params

    def hash(self, inputs: Sequence[FieldLike]) -> FieldElement:
        if not inputs:
            raise ArityError(expected=1, actual=0)
        values = [FieldElement.coerce(x).value for x in inputs]
        return FieldElement(poseidon_permute(self.params_for(len(values) + 1), values))


class KeccakHasher(HashEngine):
    """keccak256 over 32-byte big-endian words, reduced into the field."""

    def hash(self, inputs: Sequence[FieldLike]) -> FieldElement:
        if not inputs:
            raise ArityError(expected=1, actual=0)
        payload = b"".join(FieldElement.coerce(x).to_bytes() for x in inputs)
        return FieldElement.from_bytes(keccak256(payload))


__all__ = [
    "HashEngine",
    "PoseidonParams",
    "PoseidonHasher",
    "KeccakHasher",
    "default_params",
    "poseidon_permute",
    "N_ROUNDS_F",
    "N_ROUNDS_P",
]
