"""
Anchor Core - Incremental Merkle Tree
Append-only commitment tree with deterministic roots and authentication paths.

This module provides:
- IncrementalMerkleTree: insert/update/root/path over a MerkleStore
- batch_build: rebuild a tree from an ordered leaf list (deposit history)
- create_tree_with_root: rebuild up to the prefix that yields a known root
- compute_zeros: default node values per level

Tree Rules (Hard Contracts):
1. zeros[0] = ZERO_VALUE, zeros[i + 1] = hash2(zeros[i], zeros[i])
2. A missing node at (level, index) reads as zeros[level]
3. Parent = hash2(left, right), the node with the even index is the left child
4. The root lives at (H, 0); an empty tree's root is zeros[H]
5. Leaf indices follow insertion order and are never reused

Determinism Notes:
- Sequential inserts and batch_build over the same leaves produce the same
  nodes, so paths read from either are identical
- update stages every write and flushes them with one put_batch after the
  traversal completes; a failure mid-traversal writes nothing
- Capacity (2**H leaves) is not enforced unless enforce_capacity=True;
  callers that track the on-chain leaf counter police it themselves
"""
from __future__ import annotations

import logging
from typing import Iterable, Iterator, Optional, Sequence

from anchor_core.crypto.field import FieldElement, FieldLike
from anchor_core.crypto.poseidon import HashEngine
from anchor_core.merkle.merkle_proofs import MerklePath
from anchor_core.merkle.store import InMemoryMerkleStore, MerkleStore, NodeKey
from anchor_core.schemas.errors import CapacityError, StructuralError


logger = logging.getLogger(__name__)


# keccak256("tornado") mod FIELD_SIZE
ZERO_VALUE = FieldElement(
    21663839004416932945382355908790599225266501822907911457504978515578255421292
)


def compute_zeros(hasher: HashEngine, height: int) -> tuple[FieldElement, ...]:
    """Return zeros[0..height] for the given hash engine."""
    zeros = [ZERO_VALUE]
    for level in range(height):
        zeros.append(hasher.hash2(zeros[level], zeros[level], level))
    return tuple(zeros)


class IncrementalMerkleTree:
    """
    Commitment tree of fixed height H.

    The hash engine and the store are injected; the tree owns every node it
    writes into the store.

    Example:
        >>> tree = IncrementalMerkleTree(height=4, hasher=PoseidonHasher())
        >>> tree.insert(commitment)
        0
        >>> path = tree.path(0)
        >>> path.compute_root(tree.hasher) == tree.root()
        True
    """

    def __init__(
        self,
        height: int,
        hasher: HashEngine,
        store: Optional[MerkleStore] = None,
        enforce_capacity: bool = False,
    ) -> None:
        if height < 1:
            raise StructuralError(f"Tree height must be at least 1, got {height}")
        self.height = height
        self.hasher = hasher
        self.store = store if store is not None else InMemoryMerkleStore()
        self.enforce_capacity = enforce_capacity
        self._zeros = compute_zeros(hasher, height)
        self.total_elements = 0

    # ------------------------------------------------------------------
    # Alternate constructors
    # ------------------------------------------------------------------

    @classmethod
    def batch_build(
        cls,
        leaves: Sequence[FieldLike],
        height: int,
        hasher: HashEngine,
        store: Optional[MerkleStore] = None,
        enforce_capacity: bool = False,
    ) -> "IncrementalMerkleTree":
        """
        Build a tree directly from an ordered leaf list.

        Level 0 is seeded from ``leaves``; each higher level folds pairs as
        hash2(left, right_or_zero) up to the root at (H, 0).
        """
        tree = cls(height, hasher, store=store, enforce_capacity=enforce_capacity)
        elements = [FieldElement.coerce(leaf) for leaf in leaves]
        if enforce_capacity and len(elements) > tree.capacity:
            raise CapacityError(
                f"{len(elements)} leaves exceed tree capacity {tree.capacity}",
                capacity=tree.capacity,
            )

        writes: list[tuple[NodeKey, FieldElement]] = [
            ((0, i), element) for i, element in enumerate(elements)
        ]
        current = elements
        for level in range(1, height + 1):
            zero = tree._zeros[level - 1]
            parents: list[FieldElement] = []
            for i in range(0, len(current), 2):
                right = current[i + 1] if i + 1 < len(current) else zero
                parents.append(hasher.hash2(current[i], right, level - 1))
            writes.extend(((level, i), parent) for i, parent in enumerate(parents))
            current = parents

        tree.store.put_batch(writes)
        tree.total_elements = len(elements)
        logger.debug("Built tree of height %d from %d leaves", height, len(elements))
        return tree

    @classmethod
    def create_tree_with_root(
        cls,
        height: int,
        leaves: Sequence[FieldLike],
        target_root: FieldLike,
        hasher: HashEngine,
    ) -> Optional["IncrementalMerkleTree"]:
        """
        Insert ``leaves`` one by one and return the tree as soon as its root
        equals ``target_root``. Returns None if no prefix matches.
        """
        target = FieldElement.coerce(target_root)
        tree = cls(height, hasher)
        if tree.root() == target:
            return tree
        for leaf in leaves:
            tree.insert(leaf)
            if tree.root() == target:
                return tree
        return None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def zeros(self) -> tuple[FieldElement, ...]:
        return self._zeros

    @property
    def capacity(self) -> int:
        return 2 ** self.height

    @property
    def is_full(self) -> bool:
        return self.total_elements >= self.capacity

    @property
    def number_of_elements(self) -> int:
        return self.total_elements

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def _traverse(self, index: int) -> Iterator[tuple[int, int, int]]:
        """Yield (level, element_index, sibling_index) from level 0 to H-1."""
        current = index
        for level in range(self.height):
            sibling = current + 1 if current % 2 == 0 else current - 1
            yield level, current, sibling
            current //= 2

    def _node(self, level: int, index: int) -> FieldElement:
        return self.store.get_or_default(level, index, self._zeros[level])

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def insert(self, element: FieldLike) -> int:
        """Append a leaf and return its index."""
        index = self.total_elements
        if self.enforce_capacity and index >= self.capacity:
            raise CapacityError(
                f"Tree of height {self.height} is full ({self.capacity} leaves)",
                capacity=self.capacity,
            )
        self.update(index, element, insert=True)
        self.total_elements += 1
        return index

    def bulk_insert(self, elements: Iterable[FieldLike]) -> int:
        """Insert ``elements`` in order; return the index of the first one."""
        first = self.total_elements
        for element in elements:
            self.insert(element)
        return first

    def update(self, index: int, element: FieldLike, insert: bool = False) -> None:
        """
        Set the leaf at ``index`` and recompute its path to the root.

        Raises:
            StructuralError: If insert=False for an index not yet in the tree,
                or insert=True for an index that already holds a leaf
        """
        if index < 0:
            raise StructuralError(f"Leaf index must be non-negative, got {index}", index=index)
        if not insert and index >= self.total_elements:
            raise StructuralError("Use insert for new elements", index=index)
        if insert and index < self.total_elements:
            raise StructuralError("Use update for existing elements", index=index)

        current = FieldElement.coerce(element)
        writes: list[tuple[NodeKey, FieldElement]] = []
        for level, element_index, sibling_index in self._traverse(index):
            sibling = self._node(level, sibling_index)
            if element_index % 2 == 0:
                left, right = current, sibling
            else:
                left, right = sibling, current
            writes.append(((level, element_index), current))
            current = self.hasher.hash2(left, right, level)
        writes.append(((self.height, 0), current))

        self.store.put_batch(writes)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def root(self) -> FieldElement:
        return self._node(self.height, 0)

    def path(self, index: int) -> MerklePath:
        """
        Authentication path for the leaf at ``index``.

        Raises:
            StructuralError: If no leaf has been inserted at ``index``
        """
        if index < 0 or index >= self.total_elements:
            raise StructuralError(
                f"Leaf index {index} out of range for {self.total_elements} elements",
                index=index,
            )
        elements: list[FieldElement] = []
        indices: list[int] = []
        for level, element_index, sibling_index in self._traverse(index):
            elements.append(self._node(level, sibling_index))
            indices.append(element_index % 2)
        return MerklePath(
            root=self.root(),
            path_elements=tuple(elements),
            path_indices=tuple(indices),
            element=self._node(0, index),
        )

    def leaf(self, index: int) -> FieldElement:
        """The leaf stored at ``index``."""
        if index < 0 or index >= self.total_elements:
            raise StructuralError(
                f"Leaf index {index} out of range for {self.total_elements} elements",
                index=index,
            )
        return self._node(0, index)

    def get_index_by_element(self, element: FieldLike) -> Optional[int]:
        """Highest index whose leaf equals ``element``, or None."""
        target = FieldElement.coerce(element)
        for index in range(self.total_elements - 1, -1, -1):
            if self.store.get(0, index) == target:
                return index
        return None

    def elements(self) -> list[FieldElement]:
        """Leaves in insertion order."""
        return [self._node(0, i) for i in range(self.total_elements)]

    def __len__(self) -> int:
        return self.total_elements

    def __repr__(self) -> str:
        return (
            f"IncrementalMerkleTree(height={self.height}, "
            f"elements={self.total_elements}, root={self.root().to_hex()})"
        )


__all__ = [
    "ZERO_VALUE",
    "IncrementalMerkleTree",
    "compute_zeros",
]
