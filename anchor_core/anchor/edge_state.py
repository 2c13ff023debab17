"""
Anchor Core - Anchor Edge State
Registry of linked-chain neighbor roots for one anchor instance.

This module provides:
- AnchorEdgeState: up to ``max_edges`` edges, updated by executed proposals,
  and the ordered RootInfo list a withdrawal proof certifies against

Ordering Rules (Hard Contracts):
1. root_infos()[0] is always the local chain with the local tree root
2. Neighbor entries follow in edge registration order
3. Updating an edge never moves it

Not thread-safe: callers serialize writes (see relayer.anchor_sync.Anchor).
"""
from __future__ import annotations

import logging
from typing import Optional

from anchor_core.crypto.field import FieldElement, FieldLike
from anchor_core.merkle.merkle_tree import IncrementalMerkleTree
from anchor_core.proof.calldata import roots_bytes
from anchor_core.schemas.errors import CapacityError, StaleUpdateError, StructuralError
from anchor_core.schemas.roots import AnchorEdge, EdgeUpdate, RootInfo


logger = logging.getLogger(__name__)


class AnchorEdgeState:
    """
    Edge table of one anchor.

    Attributes:
        chain_id: The chain this anchor lives on
        max_edges: Maximum number of linked chains
        tree: The local commitment tree, read for the local root
    """

    def __init__(self, chain_id: int, max_edges: int, tree: IncrementalMerkleTree) -> None:
        if max_edges < 0:
            raise StructuralError(f"max_edges must be non-negative, got {max_edges}")
        self.chain_id = chain_id
        self.max_edges = max_edges
        self.tree = tree
        self._edges: dict[int, AnchorEdge] = {}

    # ------------------------------------------------------------------
    # Linking
    # ------------------------------------------------------------------

    def has_capacity_for(self, chain_id: int) -> bool:
        """True if ``chain_id`` is already linked or there is room to link it."""
        return chain_id in self._edges or len(self._edges) < self.max_edges

    def _check_capacity(self, chain_id: int) -> None:
        if chain_id == self.chain_id:
            raise StructuralError(
                f"Chain {chain_id} is the local chain and cannot be an edge",
                details={"chain_id": chain_id},
            )
        if not self.has_capacity_for(chain_id):
            raise CapacityError(
                f"Edge table is full ({self.max_edges} edges); cannot link chain {chain_id}",
                capacity=self.max_edges,
                details={"chain_id": chain_id},
            )

    def add_edge(
        self,
        dest_chain_id: int,
        root: Optional[FieldLike] = None,
        height: int = 0,
    ) -> AnchorEdge:
        """
        Register a linked chain. With no root, the edge starts at the
        empty-tree root at height 0.

        Raises:
            StructuralError: If the chain is already linked or is the local chain
            CapacityError: If the table is full
        """
        if dest_chain_id in self._edges:
            raise StructuralError(
                f"Chain {dest_chain_id} is already linked",
                details={"chain_id": dest_chain_id},
            )
        self._check_capacity(dest_chain_id)
        latest_root = self.tree.zeros[-1] if root is None else FieldElement.coerce(root)
        edge = AnchorEdge(dest_chain_id=dest_chain_id, latest_root=latest_root, latest_height=height)
        self._edges[dest_chain_id] = edge
        logger.info("Linked chain %d to anchor on chain %d", dest_chain_id, self.chain_id)
        return edge

    def apply_proposal(self, update: EdgeUpdate) -> AnchorEdge:
        """
        Apply an executed root-update proposal.

        Unknown chains are linked if there is capacity.

        Raises:
            CapacityError: If the chain is unknown and the table is full
            StaleUpdateError: If update.height <= the edge's current height
        """
        chain_id = update.source_chain_id
        existing = self._edges.get(chain_id)
        if existing is None:
            self._check_capacity(chain_id)
        elif update.height <= existing.latest_height:
            raise StaleUpdateError(
                f"Update for chain {chain_id} at height {update.height} is not newer "
                f"than {existing.latest_height}",
                chain_id=chain_id,
                current_height=existing.latest_height,
                update_height=update.height,
            )

        edge = AnchorEdge(
            dest_chain_id=chain_id,
            latest_root=update.merkle_root,
            latest_height=update.height,
        )
        self._edges[chain_id] = edge
        logger.debug(
            "Edge %d -> root %s at height %d",
            chain_id, update.merkle_root.to_hex(), update.height,
        )
        return edge

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def edge(self, dest_chain_id: int) -> Optional[AnchorEdge]:
        return self._edges.get(dest_chain_id)

    @property
    def edges(self) -> tuple[AnchorEdge, ...]:
        return tuple(self._edges.values())

    def latest_neighbor_roots(self) -> list[FieldElement]:
        return [edge.latest_root for edge in self._edges.values()]

    def root_infos(self) -> list[RootInfo]:
        """Local root first, then every edge in registration order."""
        infos = [RootInfo(chain_id=self.chain_id, merkle_root=self.tree.root())]
        infos.extend(edge.to_root_info() for edge in self._edges.values())
        return infos

    def roots_bytes(self) -> bytes:
        return roots_bytes(self.root_infos())

    def __len__(self) -> int:
        return len(self._edges)


__all__ = ["AnchorEdgeState"]
