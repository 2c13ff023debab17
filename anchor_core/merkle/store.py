"""
Anchor Core - Merkle Node Storage
Sparse backing store for tree nodes addressed by (level, index).

This module provides:
- MerkleStore: the storage interface a tree is constructed with
- InMemoryMerkleStore: dict-backed sparse implementation

A store never computes anything: it only holds values the tree wrote.
put_batch is the only write path the tree uses for structural changes, so
an implementation that applies the batch atomically gives readers an
all-or-nothing view of each insert/update.
"""
from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Iterable, Iterator, Optional

from anchor_core.crypto.field import FieldElement
from anchor_core.schemas.errors import StructuralError


NodeKey = tuple[int, int]


def _check_key(level: int, index: int) -> NodeKey:
    if level < 0 or index < 0:
        raise StructuralError(
            f"Node key must be non-negative, got ({level}, {index})",
            index=index,
            details={"level": level},
        )
    return (level, index)


class MerkleStore(ABC):
    """Node storage keyed by an explicit (level, index) pair."""

    @abstractmethod
    def get(self, level: int, index: int) -> Optional[FieldElement]:
        """Return the stored node, or None if it was never written."""

    @abstractmethod
    def put_batch(self, items: Iterable[tuple[NodeKey, FieldElement]]) -> None:
        """Write every (key, value) pair as one unit."""

    @abstractmethod
    def level_items(self, level: int) -> Iterator[tuple[int, FieldElement]]:
        """Iterate (index, value) pairs stored at ``level`` in index order."""

    def get_or_default(self, level: int, index: int, default: FieldElement) -> FieldElement:
        value = self.get(level, index)
        return default if value is None else value

    def put(self, level: int, index: int, value: FieldElement) -> None:
        self.put_batch([((level, index), value)])


class InMemoryMerkleStore(MerkleStore):
    """
    Sparse dict-backed store.

    Example:
        >>> store = InMemoryMerkleStore()
        >>> store.put(0, 3, FieldElement(7))
        >>> store.get(0, 3)
        FieldElement(0x0000000000000000000000000000000000000000000000000000000000000007)
        >>> store.get(0, 4) is None
        True
    """

    def __init__(self) -> None:
        self._nodes: dict[NodeKey, FieldElement] = {}
        self._lock = threading.Lock()

    def get(self, level: int, index: int) -> Optional[FieldElement]:
        return self._nodes.get((level, index))

    def put_batch(self, items: Iterable[tuple[NodeKey, FieldElement]]) -> None:
        staged: dict[NodeKey, FieldElement] = {}
        for (level, index), value in items:
            staged[_check_key(level, index)] = FieldElement.coerce(value)
        with self._lock:
            self._nodes.update(staged)

    def level_items(self, level: int) -> Iterator[tuple[int, FieldElement]]:
        with self._lock:
            entries = sorted(
                ((i, v) for (lvl, i), v in self._nodes.items() if lvl == level),
                key=lambda item: item[0],
            )
        return iter(entries)

    def clear(self) -> None:
        with self._lock:
            self._nodes.clear()

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, key: object) -> bool:
        return key in self._nodes


__all__ = ["MerkleStore", "InMemoryMerkleStore", "NodeKey"]
