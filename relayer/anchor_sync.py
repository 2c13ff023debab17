"""
Anchor Instance and Synchronizer

Anchor owns one commitment tree and its edge table behind a single lock.
AnchorSynchronizer keeps an Anchor in step with its contract and relays
root updates to linked chains.

Key features:
- All writes (insert, update, apply_proposal, resync) are serialized
- Reads that must not race a write (path, root_infos, snapshot) take the
  same lock
- Proposals carry the tree's leaf count as their height, so each new
  deposit produces a strictly newer edge update
- Replayed proposals encode to the same bytes and data hash; applying one
  twice is reported as stale
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Union

from anchor_core.anchor.edge_state import AnchorEdgeState
from anchor_core.bridge.proposal import (
    Proposal,
    decode_proposal,
    encode_proposal,
    proposal_data_hash,
    resource_id,
)
from anchor_core.config.runtime import BridgeConfig, RuntimeConfig
from anchor_core.crypto.field import FieldElement, FieldLike
from anchor_core.crypto.hashing import to_hex
from anchor_core.crypto.poseidon import HashEngine
from anchor_core.merkle.merkle_proofs import MerklePath
from anchor_core.merkle.merkle_tree import IncrementalMerkleTree
from anchor_core.merkle.store import MerkleStore
from anchor_core.receipts import ProposalRecord, ReceiptRecorder
from anchor_core.schemas.errors import (
    AnchorException,
    CrossChainConsistencyError,
    CryptoPreconditionError,
    StaleUpdateError,
)
from anchor_core.schemas.roots import AnchorEdge, EdgeUpdate, RootInfo
from anchor_core.utxo.utxo import Utxo
from relayer.bridge_client import BridgeContractClient, TxResult
from relayer.event_sync import fetch_deposit_events, fetch_deposit_leaves, order_deposit_leaves


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnchorSnapshot:
    """Roots and input paths read atomically for one proof."""
    roots: tuple[RootInfo, ...]
    paths: tuple[MerklePath, ...]
    leaf_count: int


@dataclass(frozen=True)
class RelayedProposal:
    """What was sent to a destination bridge for one root update."""
    proposal: Proposal
    data: bytes
    data_hash: bytes
    resource_id: bytes
    vote_tx: Optional[TxResult] = None
    execute_tx: Optional[TxResult] = None


class Anchor:
    """
    One anchor instance: local tree plus edge table.

    Usage:
        anchor = Anchor.from_config(config)
        index = anchor.insert(utxo.commitment)
        roots = anchor.root_infos()
    """

    def __init__(
        self,
        chain_id: int,
        tree: IncrementalMerkleTree,
        max_edges: int = 1,
        linked_chain_ids: Iterable[int] = (),
    ) -> None:
        self.chain_id = chain_id
        self._lock = threading.RLock()
        self._tree = tree
        self.edge_state = AnchorEdgeState(chain_id, max_edges, tree)
        self._root_history: dict[int, FieldElement] = {tree.total_elements: tree.root()}
        for linked in linked_chain_ids:
            self.edge_state.add_edge(linked)

    @classmethod
    def from_config(
        cls,
        config: RuntimeConfig,
        hasher: Optional[HashEngine] = None,
        store: Optional[MerkleStore] = None,
    ) -> "Anchor":
        tree = IncrementalMerkleTree(
            config.tree.height,
            hasher or config.hasher.build(),
            store=store,
            enforce_capacity=config.tree.enforce_capacity,
        )
        return cls(
            chain_id=config.anchor.chain_id,
            tree=tree,
            max_edges=config.anchor.max_edges,
            linked_chain_ids=config.anchor.linked_chain_ids,
        )

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def tree(self) -> IncrementalMerkleTree:
        return self._tree

    @property
    def hasher(self) -> HashEngine:
        return self._tree.hasher

    @property
    def leaf_count(self) -> int:
        with self._lock:
            return self._tree.total_elements

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, commitment: FieldLike) -> int:
        with self._lock:
            index = self._tree.insert(commitment)
            self._root_history[self._tree.total_elements] = self._tree.root()
            return index

    def bulk_insert(self, commitments: Iterable[FieldLike]) -> int:
        """Insert in order; returns the index of the last leaf."""
        with self._lock:
            index = -1
            for commitment in commitments:
                index = self.insert(commitment)
            return index

    def update(self, index: int, element: FieldLike) -> None:
        with self._lock:
            self._tree.update(index, element)
            self._root_history[self._tree.total_elements] = self._tree.root()

    def add_edge(self, dest_chain_id: int, root: Optional[FieldLike] = None, height: int = 0) -> AnchorEdge:
        with self._lock:
            return self.edge_state.add_edge(dest_chain_id, root, height)

    def apply_proposal(self, update: Union[EdgeUpdate, Proposal]) -> AnchorEdge:
        """
        Raises:
            StaleUpdateError: If the update is not newer than the edge
            CapacityError: If the source chain is new and the table is full
        """
        if isinstance(update, Proposal):
            update = update.to_edge_update()
        with self._lock:
            return self.edge_state.apply_proposal(update)

    def apply_executed_proposal(self, data: Union[bytes, str]) -> AnchorEdge:
        """Decode an executed proposal payload and apply it."""
        return self.apply_proposal(decode_proposal(data))

    def resync(self, leaves: Sequence[FieldLike]) -> FieldElement:
        """
        Replace the tree with one rebuilt from the full ordered leaf list.
        Edges are kept.
        """
        with self._lock:
            old = self._tree
            tree = IncrementalMerkleTree.batch_build(
                leaves,
                height=old.height,
                hasher=old.hasher,
                enforce_capacity=old.enforce_capacity,
            )
            self._tree = tree
            self.edge_state.tree = tree
            self._root_history = {tree.total_elements: tree.root()}
            logger.info(
                "Anchor %d resynced: %d -> %d leaves, root %s",
                self.chain_id, old.total_elements, tree.total_elements, tree.root().to_hex(),
            )
            return tree.root()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def root(self) -> FieldElement:
        with self._lock:
            return self._tree.root()

    def path(self, index: int) -> MerklePath:
        with self._lock:
            return self._tree.path(index)

    def leaf(self, index: int) -> FieldElement:
        with self._lock:
            return self._tree.leaf(index)

    def index_of(self, commitment: FieldLike) -> Optional[int]:
        with self._lock:
            return self._tree.get_index_by_element(commitment)

    def root_infos(self) -> list[RootInfo]:
        with self._lock:
            return self.edge_state.root_infos()

    def roots_bytes(self) -> bytes:
        with self._lock:
            return self.edge_state.roots_bytes()

    def snapshot(self, inputs: Sequence[Utxo]) -> AnchorSnapshot:
        """
        Read the root list and one path per input under a single lock hold.
        Inputs without an index are located by commitment.

        Raises:
            CryptoPreconditionError: If an input is not in the local tree
        """
        with self._lock:
            paths = []
            for utxo in inputs:
                commitment = utxo.commitment
                index = utxo.index
                if index is None:
                    index = self._tree.get_index_by_element(commitment)
                if index is None or index >= self._tree.total_elements:
                    raise CryptoPreconditionError(
                        f"Commitment {commitment.to_hex()} is not in the tree of chain {self.chain_id}",
                        details={"commitment": commitment.to_hex(), "chain_id": self.chain_id},
                    )
                path = self._tree.path(index)
                if path.element != commitment:
                    raise CryptoPreconditionError(
                        f"Leaf {index} does not hold commitment {commitment.to_hex()}",
                        details={"index": index, "chain_id": self.chain_id},
                    )
                paths.append(path)
            return AnchorSnapshot(
                roots=tuple(self.edge_state.root_infos()),
                paths=tuple(paths),
                leaf_count=self._tree.total_elements,
            )

    def build_proposal(
        self,
        dest_anchor_address: Optional[str] = None,
        dest_chain_id: Optional[int] = None,
        height: Optional[int] = None,
    ) -> Proposal:
        """
        Root-update proposal for the tree at ``height`` leaves (default:
        current). Only heights reached since the last resync are known.
        """
        with self._lock:
            if height is None:
                height = self._tree.total_elements
            root = self._root_history.get(height)
            if root is None:
                raise AnchorException(
                    f"No root recorded for height {height} on chain {self.chain_id}",
                    code="UNKNOWN_HEIGHT",
                    details={"height": height},
                )
            return Proposal.of(self.chain_id, height, root, dest_anchor_address, dest_chain_id)

    def __repr__(self) -> str:
        return f"Anchor(chain_id={self.chain_id}, leaves={self.leaf_count}, edges={len(self.edge_state)})"


class AnchorSynchronizer:
    """
    Keeps an Anchor in step with its contract.

    Attributes:
        anchor: The local anchor instance
        client: Contract client for the anchor's own chain
        config: Log query and start block settings
        recorder: Where relayed proposals are recorded; defaults to the
            client's recorder
    """

    def __init__(
        self,
        anchor: Anchor,
        client: BridgeContractClient,
        config: Optional[BridgeConfig] = None,
        recorder: Optional[ReceiptRecorder] = None,
    ) -> None:
        self.anchor = anchor
        self.client = client
        self.config = config or client.config
        self.recorder = recorder if recorder is not None else client.recorder
        self.next_block = self.config.start_block

    def sync_deposits(self, to_block: Optional[int] = None) -> int:
        """
        Insert deposits observed since the last sync; returns how many.

        Deposits the anchor already holds (inserted locally before their
        event was seen) are skipped when their commitment matches.
        """
        latest = self.client.latest_block() if to_block is None else to_block
        if latest < self.next_block:
            return 0
        events = fetch_deposit_events(
            self.client,
            self.next_block,
            latest,
            chunk_size=self.config.log_chunk_size,
            min_chunk_size=self.config.min_log_chunk_size,
        )
        with self.anchor.lock:
            leaves = order_deposit_leaves(
                events,
                first_index=self.anchor.leaf_count,
                known_leaf=self.anchor.leaf,
            )
            self.anchor.bulk_insert(event.commitment for event in leaves)
        self.next_block = latest + 1
        if leaves:
            logger.info("Chain %d: synced %d deposits up to block %d", self.anchor.chain_id, len(leaves), latest)
        return len(leaves)

    def resync(self, to_block: Optional[int] = None) -> FieldElement:
        """Rebuild the local tree from the full deposit history."""
        latest = self.client.latest_block() if to_block is None else to_block
        leaves = fetch_deposit_leaves(
            self.client,
            self.config.start_block,
            latest,
            chunk_size=self.config.log_chunk_size,
            min_chunk_size=self.config.min_log_chunk_size,
        )
        root = self.anchor.resync([event.commitment for event in leaves])
        self.next_block = latest + 1
        return root

    def ensure_known_root(self) -> FieldElement:
        """
        Check that the contract recognizes the local root, resyncing once
        if it does not.

        Raises:
            CrossChainConsistencyError: If the root is still unknown after
                the resync
        """
        root = self.anchor.root()
        if self.client.is_known_root(root):
            return root
        logger.warning(
            "Chain %d does not know local root %s, resyncing",
            self.anchor.chain_id, root.to_hex(),
        )
        root = self.resync()
        if self.client.is_known_root(root):
            return root
        raise CrossChainConsistencyError(
            f"Root {root.to_hex()} unknown to chain {self.anchor.chain_id} after resync",
            root=root.to_hex(),
            details={"chain_id": self.anchor.chain_id},
            retryable=False,
        )

    def refresh_edges(self) -> int:
        """Pull neighbor edges from the contract; returns how many changed."""
        applied = 0
        for edge in self.client.get_latest_neighbor_edges():
            if edge.dest_chain_id == 0:
                continue
            try:
                self.anchor.apply_proposal(
                    EdgeUpdate(edge.dest_chain_id, edge.latest_root, edge.latest_height)
                )
                applied += 1
            except StaleUpdateError:
                logger.debug("Edge %d already at height %d", edge.dest_chain_id, edge.latest_height)
        return applied

    def relay_root(
        self,
        dest: BridgeContractClient,
        dest_anchor_address: str,
        dest_chain_id: int,
        execute: bool = True,
    ) -> RelayedProposal:
        """
        Vote (and optionally execute) the current root on a destination
        bridge. Safe to call again with the same state: the payload and
        data hash do not change.
        """
        handler = dest.config.handler_address
        if not handler:
            raise AnchorException("Destination handler_address is required", code="CONFIG_ERROR")
        proposal = self.anchor.build_proposal()
        data = encode_proposal(proposal)
        data_hash = proposal_data_hash(handler, data)
        rid = resource_id(dest_anchor_address, dest_chain_id)

        record = ProposalRecord(
            data_hash=to_hex(data_hash),
            origin_chain_id=self.anchor.chain_id,
            dest_chain_id=dest_chain_id,
            resource_id=to_hex(rid),
            leaf_index=proposal.leaf_index,
            merkle_root=proposal.merkle_root.to_hex(),
        )
        if self.recorder is not None:
            self.recorder.record_proposal(record)

        vote_tx = dest.vote_proposal(self.anchor.chain_id, proposal.leaf_index, rid, data_hash)
        record.vote_tx_hash = vote_tx.tx_hash
        execute_tx = None
        if execute:
            execute_tx = dest.execute_proposal(self.anchor.chain_id, proposal.leaf_index, data, rid)
            record.execute_tx_hash = execute_tx.tx_hash
        logger.info(
            "Relayed root %s (height %d) from chain %d to chain %d",
            proposal.merkle_root.to_hex(), proposal.leaf_index, self.anchor.chain_id, dest_chain_id,
        )
        return RelayedProposal(
            proposal=proposal,
            data=data,
            data_hash=data_hash,
            resource_id=rid,
            vote_tx=vote_tx,
            execute_tx=execute_tx,
        )


def handle_executed_proposal(anchor: Anchor, data: Union[bytes, str]) -> bool:
    """
    Apply an executed proposal to ``anchor``. Returns False (and leaves the
    edge untouched) when the proposal was already applied.
    """
    try:
        anchor.apply_executed_proposal(data)
    except StaleUpdateError as e:
        logger.info("Ignoring stale proposal: %s", e.message)
        return False
    return True


__all__ = [
    "Anchor",
    "AnchorSnapshot",
    "AnchorSynchronizer",
    "RelayedProposal",
    "handle_executed_proposal",
]
