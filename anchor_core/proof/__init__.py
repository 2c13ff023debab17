"""
Anchor Core - Proof Inputs and Encoding

This module provides:
- ProofInputBuilder: witness and public-input assembly
- encode_proof_calldata / roots_bytes: fixed-width contract encodings
- ProvingBackend / SnarkjsBackend: the external prover interface
"""
from .calldata import (
    Groth16Proof,
    decode_proof_calldata,
    encode_proof_calldata,
    roots_bytes,
)

from .witness import (
    ExtData,
    ProofInputBuilder,
    PublicInputs,
    Witness,
    WitnessBundle,
)

from .backend import (
    ProofResult,
    ProvingBackend,
    SnarkjsBackend,
    run_with_timeout,
)


__all__ = [
    # Encoding
    "Groth16Proof",
    "encode_proof_calldata",
    "decode_proof_calldata",
    "roots_bytes",
    # Witness
    "ExtData",
    "Witness",
    "PublicInputs",
    "WitnessBundle",
    "ProofInputBuilder",
    # Backend
    "ProvingBackend",
    "SnarkjsBackend",
    "ProofResult",
    "run_with_timeout",
]
