"""
Deposit Event Sync Unit Tests
Tests for relayer/event_sync.py
"""
import pytest

from anchor_core.crypto.field import FieldElement
from anchor_core.merkle.merkle_tree import IncrementalMerkleTree
from anchor_core.schemas.errors import NetworkException, StructuralError
from relayer.bridge_client import DepositEvent
from relayer.event_sync import (
    fetch_deposit_events,
    fetch_deposit_leaves,
    order_deposit_leaves,
    resync_tree,
)

from fixtures.anchor_fixtures import FakeDepositSource, make_commitments, make_deposit_events


class RefusingSource(FakeDepositSource):
    """Source whose provider refuses every query."""

    def get_deposit_events(self, from_block, to_block):
        self.queries.append((from_block, to_block))
        raise NetworkException("connection refused", rpc_method="eth_getLogs")


class TestChunking:
    """Tests for fetch_deposit_events."""

    def test_fixed_windows(self):
        """The range is walked in chunk_size windows."""
        source = FakeDepositSource(make_deposit_events(make_commitments(10)))
        events = fetch_deposit_events(source, 0, 99, chunk_size=25)
        assert source.queries == [(0, 24), (25, 49), (50, 74), (75, 99)]
        assert len(events) == 10

    def test_halves_on_timeout(self):
        """A timed-out window is halved and the same start retried."""
        source = FakeDepositSource(make_deposit_events(make_commitments(30)), timeout_above=10)
        events = fetch_deposit_events(source, 0, 29, chunk_size=40, min_chunk_size=5)
        assert source.queries[:4] == [(0, 29), (0, 19), (0, 9), (10, 19)]
        assert [e.leaf_index for e in events] == list(range(30))

    def test_minimum_window_reraises(self):
        """Timeouts at the minimum window surface as NetworkException."""
        source = FakeDepositSource([], timeout_above=3)
        with pytest.raises(NetworkException) as exc_info:
            fetch_deposit_events(source, 0, 20, chunk_size=8, min_chunk_size=5)
        assert exc_info.value.timed_out
        assert source.queries == [(0, 7), (0, 4)]

    def test_other_failures_not_halved(self):
        """Non-timeout failures are raised immediately."""
        source = RefusingSource([])
        with pytest.raises(NetworkException):
            fetch_deposit_events(source, 0, 100, chunk_size=50)
        assert source.queries == [(0, 49)]

    def test_empty_range(self):
        """from_block after to_block queries nothing."""
        source = FakeDepositSource([])
        assert fetch_deposit_events(source, 10, 5) == []
        assert source.queries == []

    def test_chunk_sizes_positive(self):
        """Zero chunk sizes are rejected."""
        with pytest.raises(StructuralError):
            fetch_deposit_events(FakeDepositSource([]), 0, 10, chunk_size=0)


class TestOrdering:
    """Tests for order_deposit_leaves."""

    def test_sorted_by_index(self):
        """Events come back in leaf order whatever order they arrived in."""
        events = make_deposit_events(make_commitments(4))
        ordered = order_deposit_leaves(list(reversed(events)))
        assert [e.leaf_index for e in ordered] == [0, 1, 2, 3]

    def test_exact_duplicates_dropped(self):
        """The same event seen twice counts once."""
        events = make_deposit_events(make_commitments(3))
        assert len(order_deposit_leaves(events + events[1:2])) == 3

    def test_conflict(self):
        """Two commitments for one index are rejected."""
        events = make_deposit_events(make_commitments(2))
        forged = DepositEvent(commitment=FieldElement(1), leaf_index=1, block_number=9)
        with pytest.raises(StructuralError) as exc_info:
            order_deposit_leaves(events + [forged])
        assert exc_info.value.details["index"] == 1

    def test_gap(self):
        """A missing index is rejected."""
        events = make_deposit_events(make_commitments(4))
        with pytest.raises(StructuralError) as exc_info:
            order_deposit_leaves(events[:2] + events[3:])
        assert exc_info.value.details["index"] == 2

    def test_first_index(self):
        """A run may start after index 0."""
        events = make_deposit_events(make_commitments(2), first_index=5)
        assert [e.leaf_index for e in order_deposit_leaves(events, first_index=5)] == [5, 6]
        with pytest.raises(StructuralError):
            order_deposit_leaves(events)

    def test_held_leaves_skipped(self):
        """Events below first_index that match the held leaves are dropped."""
        commitments = make_commitments(3)
        events = make_deposit_events(commitments)
        ordered = order_deposit_leaves(events, first_index=2, known_leaf=lambda i: commitments[i])
        assert [e.leaf_index for e in ordered] == [2]

    def test_held_leaf_conflict(self):
        """An event below first_index with another commitment is rejected."""
        events = make_deposit_events(make_commitments(2))
        with pytest.raises(StructuralError) as exc_info:
            order_deposit_leaves(events, first_index=1, known_leaf=lambda i: FieldElement(5))
        assert exc_info.value.details["index"] == 0

    def test_held_leaf_without_lookup(self):
        """Without known_leaf, events below first_index cannot be checked."""
        events = make_deposit_events(make_commitments(2))
        with pytest.raises(StructuralError):
            order_deposit_leaves(events, first_index=1)

    def test_fetch_leaves(self):
        """fetch_deposit_leaves chains fetch and ordering."""
        source = FakeDepositSource(make_deposit_events(make_commitments(5), blocks_apart=7))
        leaves = fetch_deposit_leaves(source, 0, 50, chunk_size=10)
        assert [e.commitment for e in leaves] == make_commitments(5)


class TestResync:
    """Tests for resync_tree."""

    def test_matches_sequential_tree(self, keccak_hasher):
        """The rebuilt tree has the root of sequential inserts."""
        commitments = make_commitments(9)
        source = FakeDepositSource(make_deposit_events(commitments, blocks_apart=3), timeout_above=8)
        tree = resync_tree(source, 4, keccak_hasher, 0, 40, chunk_size=16, min_chunk_size=2)

        expected = IncrementalMerkleTree(4, keccak_hasher)
        for c in commitments:
            expected.insert(c)
        assert tree.root() == expected.root()
        assert tree.total_elements == 9

    def test_no_deposits(self, keccak_hasher):
        """No logs give an empty tree."""
        tree = resync_tree(FakeDepositSource([]), 4, keccak_hasher, 0, 10)
        assert tree.root() == tree.zeros[4]
