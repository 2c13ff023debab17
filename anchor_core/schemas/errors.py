"""
Anchor Core - Error Taxonomy
File: errors.py

Purpose: Standard error taxonomy for the tree engine, UTXO codec, proposal
codec and the relayer flows. Defines Pydantic models for structured error
reporting and Python exceptions for control flow.

Retry policy is carried on every exception (``retryable``): structural and
cryptographic failures are caller bugs and never retried, network failures
are retried with backoff, cross-chain inconsistency is retried once after a
resync.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Error Codes (Machine-Readable Constants)
# =============================================================================

class ErrorCodes:
    """Stable machine-readable error codes."""

    # Schema & Encoding Errors
    SCHEMA_VALIDATION_ERROR = "SCHEMA_VALIDATION_ERROR"
    CANONICALIZATION_ERROR = "CANONICALIZATION_ERROR"

    # Tree & Codec Structure
    STRUCTURAL_ERROR = "STRUCTURAL_ERROR"

    # Cryptographic Preconditions
    CRYPTO_PRECONDITION = "CRYPTO_PRECONDITION"

    # Edge State
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    STALE_UPDATE = "STALE_UPDATE"

    # Cross-Chain
    CROSS_CHAIN_INCONSISTENT = "CROSS_CHAIN_INCONSISTENT"

    # Network / Collaborators
    NETWORK_ERROR = "NETWORK_ERROR"
    PROVER_TIMEOUT = "PROVER_TIMEOUT"
    PROOF_REJECTED = "PROOF_REJECTED"


# =============================================================================
# Pydantic Error Models (Structured Communication)
# =============================================================================

class AnchorError(BaseModel):
    """
    Base error model for structured error reporting.

    Kept on receipt records (calls, transactions, proofs) and exported
    with them instead of being raised.
    """

    model_config = ConfigDict(
        extra="forbid",
        frozen=False,
        validate_assignment=True,
    )

    code: str = Field(
        ...,
        description="Stable machine-readable error code",
        examples=[ErrorCodes.STRUCTURAL_ERROR],
    )
    message: str = Field(
        ...,
        description="Human-readable error message",
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional structured details about the error",
    )
    retryable: bool = Field(
        default=False,
        description="Whether the operation can be retried",
    )


class NetworkError(AnchorError):
    """Error model for RPC failures against a chain endpoint."""

    code: str = Field(default=ErrorCodes.NETWORK_ERROR)
    retryable: bool = Field(default=True)
    endpoint: str | None = Field(
        default=None,
        description="RPC endpoint that failed",
    )
    rpc_method: str | None = Field(
        default=None,
        description="Contract or RPC method that failed",
    )


# =============================================================================
# Python Exceptions (Control Flow)
# =============================================================================

class AnchorException(Exception):
    """
    Base exception for all anchor core errors.

    Carries structured error information and can be converted to an
    AnchorError model.
    """

    def __init__(
        self,
        message: str,
        code: str = "ANCHOR_ERROR",
        details: dict[str, Any] | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}
        self.retryable = retryable

    def to_error_model(self) -> AnchorError:
        """Convert this exception to an AnchorError model."""
        return AnchorError(
            code=self.code,
            message=self.message,
            details=self.details,
            retryable=self.retryable,
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


class CanonicalizationException(AnchorException):
    """Exception raised when canonical serialization fails."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            code=ErrorCodes.CANONICALIZATION_ERROR,
            details=details,
            retryable=False,
        )


class SchemaValidationException(AnchorException):
    """Exception raised when a value cannot be parsed into its schema type."""

    def __init__(
        self,
        message: str,
        field_path: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        full_details = details or {}
        if field_path:
            full_details["field_path"] = field_path
        super().__init__(
            message=message,
            code=ErrorCodes.SCHEMA_VALIDATION_ERROR,
            details=full_details,
            retryable=False,
        )


class StructuralError(AnchorException):
    """
    Raised on structural misuse: insert/update called for the wrong index,
    or a malformed resource id / proposal encoding.
    """

    def __init__(
        self,
        message: str,
        index: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        full_details = details or {}
        if index is not None:
            full_details["index"] = index
        super().__init__(
            message=message,
            code=ErrorCodes.STRUCTURAL_ERROR,
            details=full_details,
            retryable=False,
        )


class CryptoPreconditionError(AnchorException):
    """Raised when a cryptographic value cannot be derived from what is known."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            code=ErrorCodes.CRYPTO_PRECONDITION,
            details=details,
            retryable=False,
        )


class ArityError(CryptoPreconditionError):
    """Raised when a fixed-arity hash receives the wrong number of inputs."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            message=f"Hash expects exactly {expected} inputs, got {actual}",
            details={"expected": expected, "actual": actual},
        )


class CapacityError(AnchorException):
    """Raised when an edge table or a capped tree has no room left."""

    def __init__(
        self,
        message: str,
        capacity: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        full_details = details or {}
        if capacity is not None:
            full_details["capacity"] = capacity
        super().__init__(
            message=message,
            code=ErrorCodes.CAPACITY_EXCEEDED,
            details=full_details,
            retryable=False,
        )


class StaleUpdateError(AnchorException):
    """Raised when an edge update is not newer than the stored edge."""

    def __init__(
        self,
        message: str,
        chain_id: int | None = None,
        current_height: int | None = None,
        update_height: int | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if chain_id is not None:
            details["chain_id"] = chain_id
        if current_height is not None:
            details["current_height"] = current_height
        if update_height is not None:
            details["update_height"] = update_height
        super().__init__(
            message=message,
            code=ErrorCodes.STALE_UPDATE,
            details=details,
            retryable=False,
        )


class CrossChainConsistencyError(AnchorException):
    """
    Raised when a destination contract does not recognize a root that the
    local tree considers current.

    Retryable once: callers resync and try again before surfacing it.
    """

    def __init__(
        self,
        message: str,
        root: str | None = None,
        details: dict[str, Any] | None = None,
        retryable: bool = True,
    ) -> None:
        full_details = details or {}
        if root:
            full_details["root"] = root
        super().__init__(
            message=message,
            code=ErrorCodes.CROSS_CHAIN_INCONSISTENT,
            details=full_details,
            retryable=retryable,
        )


class NetworkException(AnchorException):
    """Raised when an RPC call or log query against a chain fails."""

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        rpc_method: str | None = None,
        timed_out: bool = False,
        details: dict[str, Any] | None = None,
    ) -> None:
        full_details = details or {}
        if endpoint:
            full_details["endpoint"] = endpoint
        if rpc_method:
            full_details["rpc_method"] = rpc_method
        full_details["timed_out"] = timed_out
        super().__init__(
            message=message,
            code=ErrorCodes.NETWORK_ERROR,
            details=full_details,
            retryable=True,
        )
        self.timed_out = timed_out

    def to_error_model(self) -> NetworkError:
        return NetworkError(
            message=self.message,
            details=self.details,
            endpoint=self.details.get("endpoint"),
            rpc_method=self.details.get("rpc_method"),
        )


class ProverTimeoutException(AnchorException):
    """Raised when witness generation or proving exceeds its deadline."""

    def __init__(
        self,
        message: str,
        stage: str | None = None,
        timeout_s: float | None = None,
    ) -> None:
        details: dict[str, Any] = {}
        if stage:
            details["stage"] = stage
        if timeout_s is not None:
            details["timeout_s"] = timeout_s
        super().__init__(
            message=message,
            code=ErrorCodes.PROVER_TIMEOUT,
            details=details,
            retryable=False,
        )


class ProofVerificationError(AnchorException):
    """Raised when a generated proof does not verify. Never retried."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            code=ErrorCodes.PROOF_REJECTED,
            details=details,
            retryable=False,
        )
