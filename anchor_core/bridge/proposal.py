"""
Anchor Core - Bridge Proposal Codec
Fixed-width root-update payloads, their data hash, and resource ids.

This module provides:
- Proposal: (source chain, leaf index or height, root[, dest anchor, dest chain])
- encode_proposal / decode_proposal: 32-byte big-endian words
- proposal_data_hash: keccak256(handler || encoded payload)
- resource_id / parse_resource_id: routing id for proposals
- typed chain ids: chainType (2 bytes) || chainId (4 bytes)
- ProposalStatus: the bridge contract's proposal states

Encoding Rules (Hard Contracts):
1. Words in order: source_chain_id, leaf_index, merkle_root, and when
   targeted, dest_anchor_address (left-padded) and dest_chain_id
2. data_hash hashes the raw handler address bytes followed by the raw
   payload bytes (a hex payload's 0x marker is not hashed)
3. resource_id = 11 zero bytes || 20-byte address || 1-byte chain id
4. Encoding is pure: the same proposal always yields the same bytes and
   the same data hash, so re-voting a replayed proposal is safe
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Union

from web3 import Web3

from anchor_core.crypto.field import FieldElement, FieldLike
from anchor_core.crypto.hashing import address_to_bytes, from_hex, keccak256, to_hex
from anchor_core.schemas.errors import SchemaValidationException, StructuralError
from anchor_core.schemas.roots import EdgeUpdate


WORD = 32
BASE_PROPOSAL_LENGTH = 3 * WORD
TARGETED_PROPOSAL_LENGTH = 5 * WORD
RESOURCE_ID_LENGTH = 32
ADDRESS_LENGTH = 20


class ProposalStatus(IntEnum):
    """Proposal lifecycle as tracked by the bridge contract."""
    INACTIVE = 0
    ACTIVE = 1
    PASSED = 2
    EXECUTED = 3
    CANCELLED = 4


class ChainType(IntEnum):
    """Namespace of a chain id inside a typed chain id."""
    NONE = 0x0000
    EVM = 0x0100
    SUBSTRATE = 0x0200
    SUBSTRATE_DEVELOPMENT = 0x0250
    POLKADOT_RELAY_CHAIN = 0x0301
    KUSAMA_RELAY_CHAIN = 0x0302
    POLKADOT_PARACHAIN = 0x0310
    KUSAMA_PARACHAIN = 0x0311
    COSMOS = 0x0400
    SOLANA = 0x0500


def typed_chain_id(chain_type: ChainType, chain_id: int) -> int:
    """
    Example:
        >>> typed_chain_id(ChainType.SUBSTRATE, 31337)
        2199023286889
    """
    if not 0 <= chain_id < 2 ** 32:
        raise SchemaValidationException(f"Chain id {chain_id} does not fit in 4 bytes")
    return (int(chain_type) << 32) | chain_id


def parse_typed_chain_id(value: int) -> tuple[ChainType, int]:
    """Inverse of typed_chain_id. Unknown chain types map to ChainType.NONE."""
    raw_type = (value >> 32) & 0xFFFF
    try:
        chain_type = ChainType(raw_type)
    except ValueError:
        chain_type = ChainType.NONE
    return chain_type, value & 0xFFFFFFFF


@dataclass(frozen=True)
class Proposal:
    """
    Root-update payload.

    dest_anchor_address and dest_chain_id are set together or not at all.
    """
    source_chain_id: int
    leaf_index: int
    merkle_root: FieldElement
    dest_anchor_address: Optional[str] = None
    dest_chain_id: Optional[int] = None

    def __post_init__(self) -> None:
        if (self.dest_anchor_address is None) != (self.dest_chain_id is None):
            raise StructuralError(
                "dest_anchor_address and dest_chain_id must be given together"
            )
        if self.source_chain_id < 0 or self.leaf_index < 0:
            raise StructuralError(
                f"Proposal fields must be non-negative: chain {self.source_chain_id}, "
                f"index {self.leaf_index}"
            )

    @classmethod
    def of(
        cls,
        source_chain_id: int,
        leaf_index: int,
        merkle_root: FieldLike,
        dest_anchor_address: Optional[str] = None,
        dest_chain_id: Optional[int] = None,
    ) -> "Proposal":
        return cls(
            source_chain_id=int(source_chain_id),
            leaf_index=int(leaf_index),
            merkle_root=FieldElement.coerce(merkle_root),
            dest_anchor_address=dest_anchor_address,
            dest_chain_id=dest_chain_id,
        )

    @property
    def is_targeted(self) -> bool:
        return self.dest_anchor_address is not None

    def to_edge_update(self) -> EdgeUpdate:
        return EdgeUpdate(
            source_chain_id=self.source_chain_id,
            merkle_root=self.merkle_root,
            height=self.leaf_index,
        )


def _word(value: int) -> bytes:
    try:
        return value.to_bytes(WORD, "big")
    except OverflowError as e:
        raise StructuralError(f"Proposal field {value} does not fit in 32 bytes") from e


def encode_proposal(proposal: Proposal) -> bytes:
    """
    Example:
        >>> data = encode_proposal(Proposal.of(1, 5, 7))
        >>> len(data)
        96
    """
    out = _word(proposal.source_chain_id) + _word(proposal.leaf_index) + proposal.merkle_root.to_bytes(WORD)
    if proposal.is_targeted:
        out += address_to_bytes(proposal.dest_anchor_address).rjust(WORD, b"\x00")
        out += _word(proposal.dest_chain_id)
    return out


def _as_bytes(data: Union[bytes, str]) -> bytes:
    if isinstance(data, str):
        try:
            return from_hex(data)
        except SchemaValidationException as e:
            raise StructuralError(f"Malformed proposal hex: {e.message}") from e
    return bytes(data)


def decode_proposal(data: Union[bytes, str]) -> Proposal:
    """
    Parse an encoded proposal (raw bytes or 0x hex).

    Raises:
        StructuralError: On a length other than 3 or 5 words, or a dest
            anchor word that is not a left-padded address
    """
    raw = _as_bytes(data)
    if len(raw) not in (BASE_PROPOSAL_LENGTH, TARGETED_PROPOSAL_LENGTH):
        raise StructuralError(
            f"Proposal must be {BASE_PROPOSAL_LENGTH} or {TARGETED_PROPOSAL_LENGTH} bytes, got {len(raw)}"
        )
    words = [raw[i:i + WORD] for i in range(0, len(raw), WORD)]
    dest_anchor_address = None
    dest_chain_id = None
    if len(words) == 5:
        padding, address = words[3][:WORD - ADDRESS_LENGTH], words[3][WORD - ADDRESS_LENGTH:]
        if any(padding):
            raise StructuralError("Destination anchor word is not a left-padded address")
        dest_anchor_address = Web3.to_checksum_address(to_hex(address))
        dest_chain_id = int.from_bytes(words[4], "big")
    return Proposal(
        source_chain_id=int.from_bytes(words[0], "big"),
        leaf_index=int.from_bytes(words[1], "big"),
        merkle_root=FieldElement.from_bytes(words[2]),
        dest_anchor_address=dest_anchor_address,
        dest_chain_id=dest_chain_id,
    )


def proposal_data_hash(handler_address: str, encoded: Union[bytes, str]) -> bytes:
    """keccak256(handler address bytes || payload bytes)."""
    return keccak256(address_to_bytes(handler_address) + _as_bytes(encoded))


def resource_id(contract_address: str, chain_id: int) -> bytes:
    """
    32-byte routing id for an anchor.

    Raises:
        StructuralError: If chain_id does not fit in one byte
    """
    if not 0 <= chain_id <= 0xFF:
        raise StructuralError(
            f"Resource ids carry a 1-byte chain id, got {chain_id}",
            details={"chain_id": chain_id},
        )
    return (address_to_bytes(contract_address) + bytes([chain_id])).rjust(RESOURCE_ID_LENGTH, b"\x00")


def parse_resource_id(value: Union[bytes, str]) -> tuple[str, int]:
    """
    Split a resource id into (checksummed address, chain id).

    Raises:
        StructuralError: On a wrong length or non-zero padding
    """
    raw = _as_bytes(value)
    if len(raw) != RESOURCE_ID_LENGTH:
        raise StructuralError(f"Resource id must be {RESOURCE_ID_LENGTH} bytes, got {len(raw)}")
    padding_length = RESOURCE_ID_LENGTH - ADDRESS_LENGTH - 1
    if any(raw[:padding_length]):
        raise StructuralError("Resource id padding is not zero")
    address = raw[padding_length:padding_length + ADDRESS_LENGTH]
    return Web3.to_checksum_address(to_hex(address)), raw[-1]


__all__ = [
    "Proposal",
    "ProposalStatus",
    "ChainType",
    "typed_chain_id",
    "parse_typed_chain_id",
    "encode_proposal",
    "decode_proposal",
    "proposal_data_hash",
    "resource_id",
    "parse_resource_id",
]
