"""
Deposit Event Sync

Rebuilds a local commitment tree from an anchor contract's Deposit logs.

Log queries are chunked; when the provider times out on a window, the
window is halved (down to ``min_chunk_size``) and the query retried.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Protocol, Sequence

from anchor_core.crypto.field import FieldElement
from anchor_core.crypto.poseidon import HashEngine
from anchor_core.merkle.merkle_tree import IncrementalMerkleTree
from anchor_core.merkle.store import MerkleStore
from anchor_core.schemas.errors import NetworkException, StructuralError
from relayer.bridge_client import DepositEvent


logger = logging.getLogger(__name__)


class DepositEventSource(Protocol):
    """Anything that can list Deposit events for a block range."""

    def get_deposit_events(self, from_block: int, to_block: int) -> list[DepositEvent]:
        ...


def fetch_deposit_events(
    source: DepositEventSource,
    from_block: int,
    to_block: int,
    chunk_size: int = 5000,
    min_chunk_size: int = 10,
) -> list[DepositEvent]:
    """
    Collect all Deposit events in ``[from_block, to_block]``.

    Raises:
        NetworkException: If a window of ``min_chunk_size`` blocks still
            times out, or the provider fails for another reason
    """
    if chunk_size < 1 or min_chunk_size < 1:
        raise StructuralError(f"Chunk sizes must be positive: {chunk_size}, {min_chunk_size}")

    events: list[DepositEvent] = []
    start = from_block
    window = chunk_size
    while start <= to_block:
        end = min(start + window - 1, to_block)
        try:
            chunk = source.get_deposit_events(start, end)
        except NetworkException as e:
            if not e.timed_out or window <= min_chunk_size:
                raise
            window = max(window // 2, min_chunk_size)
            logger.warning(
                "Log query [%d, %d] timed out, shrinking window to %d blocks",
                start, end, window,
            )
            continue
        logger.debug("Blocks [%d, %d]: %d deposits", start, end, len(chunk))
        events.extend(chunk)
        start = end + 1
    return events


def order_deposit_leaves(
    events: Sequence[DepositEvent],
    first_index: int = 0,
    known_leaf: Optional[Callable[[int], FieldElement]] = None,
) -> list[DepositEvent]:
    """
    Sort events by leaf index and check that they form the contiguous run
    ``first_index, first_index + 1, ...``. Exact duplicates are dropped.

    Events below ``first_index`` are leaves the caller already holds; they
    are dropped when ``known_leaf(index)`` returns the same commitment.

    Raises:
        StructuralError: On a gap, on two commitments for one index, or on
            an event below ``first_index`` that does not match the held leaf
    """
    by_index: dict[int, DepositEvent] = {}
    for event in events:
        if event.leaf_index < first_index:
            held = known_leaf(event.leaf_index) if known_leaf is not None else None
            if held is None or held != event.commitment:
                raise StructuralError(
                    f"Deposit for leaf {event.leaf_index} conflicts with the local tree",
                    index=event.leaf_index,
                )
            continue
        seen = by_index.get(event.leaf_index)
        if seen is not None and seen.commitment != event.commitment:
            raise StructuralError(
                f"Conflicting commitments for leaf {event.leaf_index}",
                index=event.leaf_index,
            )
        by_index[event.leaf_index] = event

    ordered = [by_index[i] for i in sorted(by_index)]
    for expected, event in enumerate(ordered, start=first_index):
        if event.leaf_index != expected:
            raise StructuralError(
                f"Missing deposit for leaf {expected} (next seen: {event.leaf_index})",
                index=expected,
            )
    return ordered


def fetch_deposit_leaves(
    source: DepositEventSource,
    from_block: int,
    to_block: int,
    chunk_size: int = 5000,
    min_chunk_size: int = 10,
    first_index: int = 0,
    known_leaf: Optional[Callable[[int], FieldElement]] = None,
) -> list[DepositEvent]:
    """Chunked fetch followed by order_deposit_leaves."""
    events = fetch_deposit_events(source, from_block, to_block, chunk_size, min_chunk_size)
    return order_deposit_leaves(events, first_index=first_index, known_leaf=known_leaf)


def resync_tree(
    source: DepositEventSource,
    height: int,
    hasher: HashEngine,
    from_block: int,
    to_block: int,
    chunk_size: int = 5000,
    min_chunk_size: int = 10,
    store: Optional[MerkleStore] = None,
    enforce_capacity: bool = False,
) -> IncrementalMerkleTree:
    """Build a fresh tree holding every deposit in ``[from_block, to_block]``."""
    leaves = fetch_deposit_leaves(source, from_block, to_block, chunk_size, min_chunk_size)
    tree = IncrementalMerkleTree.batch_build(
        [event.commitment for event in leaves],
        height=height,
        hasher=hasher,
        store=store,
        enforce_capacity=enforce_capacity,
    )
    logger.info("Resynced tree with %d leaves, root %s", len(leaves), tree.root().to_hex())
    return tree


__all__ = [
    "DepositEventSource",
    "fetch_deposit_events",
    "fetch_deposit_leaves",
    "order_deposit_leaves",
    "resync_tree",
]
