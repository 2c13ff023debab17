"""
Anchor Core - Merkle Authentication Paths
Path value type returned by the tree, plus folding and verification.

This module provides:
- MerklePath: root, sibling elements and left/right indices for one leaf
- fold_path: recompute a root from a leaf and its path
- verify_merkle_path: check a path against the root it claims
- index_from_path_indices: recover the leaf index from its path bits

Folding rule (must match the tree's update traversal):
    at each level, if path_indices[level] == 0 the current value is the
    left child: parent = hash2(current, sibling); otherwise
    parent = hash2(sibling, current)
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

from anchor_core.crypto.field import FieldElement, FieldLike
from anchor_core.crypto.poseidon import HashEngine
from anchor_core.schemas.errors import StructuralError


@dataclass(frozen=True)
class MerklePath:
    """
    Authentication path for a single leaf.

    Attributes:
        root: Tree root at the time the path was read
        path_elements: Sibling values from level 0 up to level H-1
        path_indices: 0 if the node on the path is a left child, 1 if right
        element: The leaf value at the path's index
    """
    root: FieldElement
    path_elements: tuple[FieldElement, ...]
    path_indices: tuple[int, ...]
    element: FieldElement

    def __post_init__(self) -> None:
        if len(self.path_elements) != len(self.path_indices):
            raise StructuralError(
                f"Path has {len(self.path_elements)} elements but "
                f"{len(self.path_indices)} indices"
            )
        if any(bit not in (0, 1) for bit in self.path_indices):
            raise StructuralError(f"Path indices must be 0 or 1, got {list(self.path_indices)}")

    @classmethod
    def zero(cls, height: int) -> "MerklePath":
        """All-zero path used for zero-amount padding inputs."""
        zero = FieldElement(0)
        return cls(
            root=zero,
            path_elements=tuple(zero for _ in range(height)),
            path_indices=tuple(0 for _ in range(height)),
            element=zero,
        )

    @property
    def height(self) -> int:
        return len(self.path_elements)

    @property
    def index(self) -> int:
        return index_from_path_indices(self.path_indices)

    def compute_root(self, hasher: HashEngine, leaf: FieldLike | None = None) -> FieldElement:
        return fold_path(
            hasher,
            self.element if leaf is None else leaf,
            self.path_elements,
            self.path_indices,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "root": self.root.to_hex(),
            "path_elements": [e.to_hex() for e in self.path_elements],
            "path_indices": list(self.path_indices),
            "element": self.element.to_hex(),
        }


def fold_path(
    hasher: HashEngine,
    leaf: FieldLike,
    path_elements: Sequence[FieldLike],
    path_indices: Sequence[int],
) -> FieldElement:
    """
    Recompute the root reached by ``leaf`` along a path.

    Example:
        >>> hasher = KeccakHasher()
        >>> fold_path(hasher, 1, [2], [1]) == hasher.hash2(2, 1)
        True
    """
    current = FieldElement.coerce(leaf)
    for level, (sibling, bit) in enumerate(zip(path_elements, path_indices)):
        if bit == 0:
            current = hasher.hash2(current, sibling, level)
        else:
            current = hasher.hash2(sibling, current, level)
    return current


def verify_merkle_path(path: MerklePath, hasher: HashEngine) -> bool:
    """True when folding the path's element reproduces the path's root."""
    return path.compute_root(hasher) == path.root


def index_from_path_indices(path_indices: Sequence[int]) -> int:
    """path_indices are little-endian bits of the leaf index."""
    index = 0
    for level, bit in enumerate(path_indices):
        index |= (bit & 1) << level
    return index


__all__ = [
    "MerklePath",
    "fold_path",
    "verify_merkle_path",
    "index_from_path_indices",
]
