"""
Anchor Core - UTXO Codec
Commitments, nullifiers, cross-chain root diffs and note encryption.

This module provides:
- Utxo: one shielded note with memoized commitment and nullifier
- UtxoCodec: hasher-bound factory (new notes, zero-amount padding, decryption,
  wallet scanning)
- get_ext_amount: external amount balancing a transaction

Hash Rules (Hard Contracts):
1. commitment = hash([chain_id, amount, pubkey, blinding])
2. nullifier  = hash3([commitment, index, privkey])
3. diffs[i]   = roots[i].merkle_root - target.merkle_root (mod FIELD_SIZE),
   where target is the root of the note's origin chain

Note plaintext (big-endian, fixed width):
    chain_id (16) || amount (31) || blinding (31)
"""
from __future__ import annotations

import logging
import secrets
from typing import Callable, Iterable, Optional, Sequence

from anchor_core.crypto.field import FieldElement, FieldLike, field_sub
from anchor_core.crypto.hashing import int_to_bytes
from anchor_core.crypto.keypair import Keypair
from anchor_core.crypto.poseidon import HashEngine
from anchor_core.schemas.errors import (
    CryptoPreconditionError,
    SchemaValidationException,
)
from anchor_core.schemas.roots import RootInfo


logger = logging.getLogger(__name__)


CHAIN_ID_BYTES = 16
AMOUNT_BYTES = 31
BLINDING_BYTES = 31
PLAINTEXT_LENGTH = CHAIN_ID_BYTES + AMOUNT_BYTES + BLINDING_BYTES


def random_blinding() -> FieldElement:
    return FieldElement(secrets.randbits(BLINDING_BYTES * 8))


class Utxo:
    """
    A shielded note.

    Attributes:
        chain_id: Chain the note can be spent on (bound into the commitment)
        origin_chain_id: Chain whose tree holds the commitment; selects the
            zero entry of the diffs
        amount: Note value
        keypair: Owner keys (public-only keypairs can receive, not spend)
        blinding: Random field element hiding the note contents
        index: Leaf index once the commitment is observed in a tree
    """

    def __init__(
        self,
        hasher: HashEngine,
        chain_id: int,
        amount: int = 0,
        keypair: Optional[Keypair] = None,
        blinding: Optional[FieldLike] = None,
        index: Optional[int] = None,
        origin_chain_id: Optional[int] = None,
    ) -> None:
        if amount < 0:
            raise SchemaValidationException(f"UTXO amount must be non-negative, got {amount}")
        if amount >= 2 ** (AMOUNT_BYTES * 8):
            raise SchemaValidationException(f"UTXO amount {amount} exceeds {AMOUNT_BYTES} bytes")
        self.hasher = hasher
        self.chain_id = int(chain_id)
        self.origin_chain_id = self.chain_id if origin_chain_id is None else int(origin_chain_id)
        self.amount = int(amount)
        self.keypair = keypair if keypair is not None else Keypair(hasher)
        self.blinding = random_blinding() if blinding is None else FieldElement.coerce(blinding)
        self.index = index
        self._commitment: Optional[FieldElement] = None
        self._nullifier: Optional[FieldElement] = None

    @property
    def commitment(self) -> FieldElement:
        if self._commitment is None:
            self._commitment = self.hasher.hash(
                [self.chain_id, self.amount, self.keypair.pubkey, self.blinding]
            )
        return self._commitment

    @property
    def nullifier(self) -> FieldElement:
        """
        Raises:
            CryptoPreconditionError: If the index or the private key is unknown
        """
        if self._nullifier is None:
            if self.index is None or self.keypair.privkey is None:
                raise CryptoPreconditionError(
                    "index or private key missing",
                    details={"commitment": self.commitment.to_hex()},
                )
            self._nullifier = self.hasher.hash3(
                [self.commitment, self.index, self.keypair.privkey]
            )
        return self._nullifier

    def with_index(self, index: int) -> "Utxo":
        """Copy of this note placed at leaf ``index``."""
        copy = Utxo(
            self.hasher,
            chain_id=self.chain_id,
            amount=self.amount,
            keypair=self.keypair,
            blinding=self.blinding,
            index=index,
            origin_chain_id=self.origin_chain_id,
        )
        copy._commitment = self._commitment
        return copy

    def get_diffs(self, roots: Sequence[RootInfo]) -> list[FieldElement]:
        """
        Field offsets of every root from the origin chain's root, in the
        order of ``roots``.

        Raises:
            CryptoPreconditionError: If the origin chain is not in ``roots``
        """
        target = next((r for r in roots if r.chain_id == self.origin_chain_id), None)
        if target is None:
            raise CryptoPreconditionError(
                f"Origin chain {self.origin_chain_id} is not among the proof roots",
                details={
                    "origin_chain_id": self.origin_chain_id,
                    "root_chain_ids": [r.chain_id for r in roots],
                },
            )
        return [field_sub(r.merkle_root, target.merkle_root) for r in roots]

    def to_plaintext(self) -> bytes:
        return (
            int_to_bytes(self.chain_id, CHAIN_ID_BYTES)
            + int_to_bytes(self.amount, AMOUNT_BYTES)
            + int_to_bytes(self.blinding.value, BLINDING_BYTES)
        )

    def encrypt(self) -> bytes:
        """Seal the note contents to the owner's encryption key."""
        return self.keypair.encrypt(self.to_plaintext())

    @classmethod
    def decrypt(
        cls,
        keypair: Keypair,
        data: bytes,
        index: Optional[int],
        hasher: Optional[HashEngine] = None,
    ) -> "Utxo":
        """
        Inverse of encrypt. ``index`` is the note's leaf position, recovered
        separately (event order or get_index_by_element).

        Raises:
            CryptoPreconditionError: If the note is not sealed to ``keypair``
                or the plaintext has the wrong length
        """
        plaintext = keypair.decrypt(data)
        if len(plaintext) != PLAINTEXT_LENGTH:
            raise CryptoPreconditionError(
                f"Note plaintext must be {PLAINTEXT_LENGTH} bytes, got {len(plaintext)}"
            )
        chain_id = int.from_bytes(plaintext[:CHAIN_ID_BYTES], "big")
        amount = int.from_bytes(plaintext[CHAIN_ID_BYTES:CHAIN_ID_BYTES + AMOUNT_BYTES], "big")
        blinding = FieldElement.from_bytes(plaintext[CHAIN_ID_BYTES + AMOUNT_BYTES:])
        return cls(
            hasher=hasher or keypair.hasher,
            chain_id=chain_id,
            amount=amount,
            keypair=keypair,
            blinding=blinding,
            index=index,
        )

    def __repr__(self) -> str:
        return (
            f"Utxo(chain_id={self.chain_id}, amount={self.amount}, "
            f"index={self.index}, commitment={self.commitment.to_hex()})"
        )


def get_ext_amount(inputs: Iterable[Utxo], outputs: Iterable[Utxo], fee: int) -> int:
    """
    Public amount entering (positive) or leaving (negative) the pool:
    fee + sum(outputs) - sum(inputs).
    """
    return fee + sum(u.amount for u in outputs) - sum(u.amount for u in inputs)


class UtxoCodec:
    """
    Hasher-bound entry point for note handling.

    Example:
        >>> codec = UtxoCodec(PoseidonHasher())
        >>> owner = codec.keypair()
        >>> note = codec.new_utxo(chain_id=5, amount=10, keypair=owner)
        >>> restored = codec.decrypt(owner, note.encrypt(), index=0)
        >>> restored.commitment == note.commitment
        True
    """

    def __init__(self, hasher: HashEngine) -> None:
        self.hasher = hasher

    def keypair(self, privkey: Optional[FieldLike] = None) -> Keypair:
        return Keypair(self.hasher, privkey)

    def new_utxo(
        self,
        chain_id: int,
        amount: int = 0,
        keypair: Optional[Keypair] = None,
        blinding: Optional[FieldLike] = None,
        index: Optional[int] = None,
        origin_chain_id: Optional[int] = None,
    ) -> Utxo:
        return Utxo(
            self.hasher,
            chain_id=chain_id,
            amount=amount,
            keypair=keypair,
            blinding=blinding,
            index=index,
            origin_chain_id=origin_chain_id,
        )

    def zero_utxo(self, chain_id: int) -> Utxo:
        """Zero-amount filler input: fresh keypair, index 0."""
        return self.new_utxo(chain_id=chain_id, amount=0, index=0)

    def pad_utxos(self, utxos: Sequence[Utxo], arity: int, chain_id: int) -> list[Utxo]:
        """Append zero-amount fillers until ``len(result) == arity``."""
        if len(utxos) > arity:
            raise CryptoPreconditionError(
                f"{len(utxos)} inputs exceed circuit arity {arity}",
                details={"inputs": len(utxos), "arity": arity},
            )
        padded = list(utxos)
        while len(padded) < arity:
            padded.append(self.zero_utxo(chain_id))
        return padded

    def decrypt(self, keypair: Keypair, data: bytes, index: Optional[int]) -> Utxo:
        return Utxo.decrypt(keypair, data, index, hasher=self.hasher)

    def scan_spendable_utxos(
        self,
        keypair: Keypair,
        encrypted_outputs: Iterable[tuple[int, bytes]],
        is_spent: Optional[Callable[[FieldElement], bool]] = None,
    ) -> list[Utxo]:
        """
        Recover the notes owned by ``keypair`` from (leaf index, sealed note)
        pairs, dropping zero-amount notes and notes whose nullifier is spent.
        """
        found: list[Utxo] = []
        for index, data in encrypted_outputs:
            try:
                utxo = self.decrypt(keypair, data, index)
            except CryptoPreconditionError:
                continue
            if utxo.amount == 0:
                continue
            if is_spent is not None and is_spent(utxo.nullifier):
                logger.debug("Note at index %d already spent", index)
                continue
            found.append(utxo)
        logger.info("Found %d spendable notes", len(found))
        return found


__all__ = [
    "Utxo",
    "UtxoCodec",
    "get_ext_amount",
    "random_blinding",
    "PLAINTEXT_LENGTH",
]
