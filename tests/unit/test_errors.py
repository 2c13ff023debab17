"""
Error Taxonomy Unit Tests
Tests for anchor_core/schemas/errors.py
"""
import pytest

from anchor_core.schemas.errors import (
    AnchorError,
    AnchorException,
    ArityError,
    CapacityError,
    CrossChainConsistencyError,
    CryptoPreconditionError,
    ErrorCodes,
    NetworkError,
    NetworkException,
    ProofVerificationError,
    ProverTimeoutException,
    StaleUpdateError,
    StructuralError,
)


class TestCodesAndRetry:
    """Each exception carries a stable code and retry flag."""

    @pytest.mark.parametrize(
        "error, code, retryable",
        [
            (StructuralError("x"), ErrorCodes.STRUCTURAL_ERROR, False),
            (CryptoPreconditionError("x"), ErrorCodes.CRYPTO_PRECONDITION, False),
            (CapacityError("x", capacity=2), ErrorCodes.CAPACITY_EXCEEDED, False),
            (StaleUpdateError("x"), ErrorCodes.STALE_UPDATE, False),
            (CrossChainConsistencyError("x"), ErrorCodes.CROSS_CHAIN_INCONSISTENT, True),
            (NetworkException("x"), ErrorCodes.NETWORK_ERROR, True),
            (ProverTimeoutException("x"), ErrorCodes.PROVER_TIMEOUT, False),
            (ProofVerificationError("x"), ErrorCodes.PROOF_REJECTED, False),
        ],
    )
    def test_code_and_retryable(self, error, code, retryable):
        """Codes and retry flags match the taxonomy."""
        assert isinstance(error, AnchorException)
        assert error.code == code
        assert error.retryable is retryable

    def test_arity_error_is_precondition(self):
        """Wrong hash arity is a cryptographic precondition failure."""
        error = ArityError(expected=3, actual=2)
        assert isinstance(error, CryptoPreconditionError)
        assert error.details == {"expected": 3, "actual": 2}

    def test_consistency_error_after_resync(self):
        """The post-resync consistency error is final."""
        assert not CrossChainConsistencyError("x", retryable=False).retryable


class TestDetails:
    """Structured details travel with the exception."""

    def test_stale_details(self):
        """StaleUpdateError records both heights."""
        error = StaleUpdateError("old", chain_id=2, current_height=5, update_height=4)
        assert error.details == {"chain_id": 2, "current_height": 5, "update_height": 4}

    def test_structural_index(self):
        """StructuralError records the offending index."""
        assert StructuralError("bad", index=7).details["index"] == 7

    def test_network_details(self):
        """NetworkException records endpoint, method and timeout."""
        error = NetworkException("slow", endpoint="http://node", rpc_method="eth_getLogs", timed_out=True)
        assert error.timed_out
        assert error.details == {"endpoint": "http://node", "rpc_method": "eth_getLogs", "timed_out": True}

    def test_prover_timeout_details(self):
        """ProverTimeoutException records its stage and deadline."""
        error = ProverTimeoutException("slow", stage="prove", timeout_s=1.5)
        assert error.details == {"stage": "prove", "timeout_s": 1.5}


class TestErrorModels:
    """Conversion between exceptions and pydantic models."""

    def test_error_model(self):
        """to_error_model keeps code, message, details and retryability."""
        error = CapacityError("full", capacity=1)
        model = error.to_error_model()
        assert isinstance(model, AnchorError)
        assert model.code == ErrorCodes.CAPACITY_EXCEEDED
        assert model.message == "full"
        assert model.details == {"capacity": 1}
        assert model.retryable == error.retryable

    def test_network_model(self):
        """NetworkException converts to a NetworkError with endpoint fields."""
        model = NetworkException("down", endpoint="http://node", rpc_method="isKnownRoot").to_error_model()
        assert isinstance(model, NetworkError)
        assert model.retryable
        assert model.endpoint == "http://node"
        assert model.rpc_method == "isKnownRoot"

    def test_repr(self):
        """repr names the class and code."""
        assert repr(StructuralError("bad")) == "StructuralError(code='STRUCTURAL_ERROR', message='bad')"
