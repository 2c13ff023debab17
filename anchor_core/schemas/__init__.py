"""
Anchor Core - Schemas

Purpose: Export the error taxonomy and the canonical JSON helpers used across
the package. Root and edge value types live in anchor_core.schemas.roots and
are imported from there directly (they depend on anchor_core.crypto).
"""

# Canonical serialization API
from .canonical import (
    CANONICAL_JSON_SEPARATORS,
    canonicalize_value,
    dumps_canonical,
    write_canonical_json,
)

# Error models and exceptions
from .errors import (
    AnchorError,
    AnchorException,
    ArityError,
    CanonicalizationException,
    CapacityError,
    CrossChainConsistencyError,
    CryptoPreconditionError,
    ErrorCodes,
    NetworkError,
    NetworkException,
    ProofVerificationError,
    ProverTimeoutException,
    SchemaValidationException,
    StaleUpdateError,
    StructuralError,
)


__all__ = [
    # Canonical serialization
    "dumps_canonical",
    "canonicalize_value",
    "write_canonical_json",
    "CANONICAL_JSON_SEPARATORS",
    # Errors
    "AnchorError",
    "AnchorException",
    "ArityError",
    "CanonicalizationException",
    "CapacityError",
    "CrossChainConsistencyError",
    "CryptoPreconditionError",
    "ErrorCodes",
    "NetworkError",
    "NetworkException",
    "ProofVerificationError",
    "ProverTimeoutException",
    "SchemaValidationException",
    "StaleUpdateError",
    "StructuralError",
]
