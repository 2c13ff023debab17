"""
Anchor Core - Merkle Commitment Tree
Incremental tree over an injected hash engine and node store.

This module provides:
- IncrementalMerkleTree: insert/update/root/path/batch_build
- MerklePath: authentication path for one leaf, with folding helpers
- MerkleStore / InMemoryMerkleStore: (level, index) node storage

Usage:
    from anchor_core.crypto import PoseidonHasher
    from anchor_core.merkle import IncrementalMerkleTree, verify_merkle_path

    hasher = PoseidonHasher()
    tree = IncrementalMerkleTree(height=20, hasher=hasher)
    index = tree.insert(commitment)

    path = tree.path(index)
    assert verify_merkle_path(path, hasher)

    # Rebuild from deposit history
    rebuilt = IncrementalMerkleTree.batch_build(leaves, 20, hasher)
"""
from .store import (
    InMemoryMerkleStore,
    MerkleStore,
)

from .merkle_proofs import (
    MerklePath,
    fold_path,
    index_from_path_indices,
    verify_merkle_path,
)

from .merkle_tree import (
    ZERO_VALUE,
    IncrementalMerkleTree,
    compute_zeros,
)


__all__ = [
    # Storage
    "MerkleStore",
    "InMemoryMerkleStore",
    # Paths
    "MerklePath",
    "fold_path",
    "index_from_path_indices",
    "verify_merkle_path",
    # Tree
    "ZERO_VALUE",
    "IncrementalMerkleTree",
    "compute_zeros",
]
