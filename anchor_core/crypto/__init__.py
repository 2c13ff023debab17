"""
Core cryptographic utilities.

Field arithmetic, keccak hashing, the pluggable field hash engines and the
shielded keypair used for commitments and note encryption.
"""
from .field import (
    FIELD_SIZE,
    ZERO,
    FieldElement,
    field_add,
    field_sub,
)
from .hashing import (
    keccak256,
    hash_canonical,
    to_hex,
    from_hex,
    to_fixed_hex,
    int_to_bytes,
)
from .poseidon import (
    HashEngine,
    KeccakHasher,
    PoseidonHasher,
    PoseidonParams,
)
from .keypair import Keypair

__all__ = [
    "FIELD_SIZE",
    "ZERO",
    "FieldElement",
    "field_add",
    "field_sub",
    "keccak256",
    "hash_canonical",
    "to_hex",
    "from_hex",
    "to_fixed_hex",
    "int_to_bytes",
    "HashEngine",
    "KeccakHasher",
    "PoseidonHasher",
    "PoseidonParams",
    "Keypair",
]
