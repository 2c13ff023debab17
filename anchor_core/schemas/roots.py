"""
Anchor Core - Root and Edge Value Types

Frozen value objects exchanged between the tree, the edge state, the UTXO
codec and the witness builder. The order of a RootInfo list is a wire
contract with the circuit and the contracts: callers never reorder it.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from anchor_core.crypto.field import FieldElement, FieldLike


@dataclass(frozen=True)
class RootInfo:
    """One membership target: a chain id and the root known for it."""
    chain_id: int
    merkle_root: FieldElement

    @classmethod
    def of(cls, chain_id: int, merkle_root: FieldLike) -> "RootInfo":
        return cls(chain_id=int(chain_id), merkle_root=FieldElement.coerce(merkle_root))

    def to_dict(self) -> dict[str, Any]:
        return {"chain_id": self.chain_id, "merkle_root": self.merkle_root.to_hex()}


@dataclass(frozen=True)
class AnchorEdge:
    """Latest synchronized state of one linked chain."""
    dest_chain_id: int
    latest_root: FieldElement
    latest_height: int

    def to_root_info(self) -> RootInfo:
        return RootInfo(chain_id=self.dest_chain_id, merkle_root=self.latest_root)

    def to_dict(self) -> dict[str, Any]:
        return {
            "dest_chain_id": self.dest_chain_id,
            "latest_root": self.latest_root.to_hex(),
            "latest_height": self.latest_height,
        }


@dataclass(frozen=True)
class EdgeUpdate:
    """
    Payload of an executed root-update proposal, as applied to the
    destination anchor's edge table.
    """
    source_chain_id: int
    merkle_root: FieldElement
    height: int

    @classmethod
    def of(cls, source_chain_id: int, merkle_root: FieldLike, height: int) -> "EdgeUpdate":
        return cls(
            source_chain_id=int(source_chain_id),
            merkle_root=FieldElement.coerce(merkle_root),
            height=int(height),
        )


__all__ = ["RootInfo", "AnchorEdge", "EdgeUpdate"]
