"""
Anchor Core - UTXO Codec

Shielded notes: commitments, nullifiers, root diffs and note encryption.
"""
from .utxo import (
    PLAINTEXT_LENGTH,
    Utxo,
    UtxoCodec,
    get_ext_amount,
    random_blinding,
)

__all__ = [
    "Utxo",
    "UtxoCodec",
    "get_ext_amount",
    "random_blinding",
    "PLAINTEXT_LENGTH",
]
