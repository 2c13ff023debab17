"""
Proof Calldata Unit Tests
Tests for anchor_core/proof/calldata.py
"""
import pytest

from anchor_core.crypto.field import FieldElement
from anchor_core.proof.calldata import (
    Groth16Proof,
    decode_proof_calldata,
    encode_proof_calldata,
    roots_bytes,
)
from anchor_core.schemas.errors import StructuralError
from anchor_core.schemas.roots import RootInfo

from fixtures.anchor_fixtures import SAMPLE_PROOF


def words(data):
    return [int.from_bytes(data[i:i + 32], "big") for i in range(0, len(data), 32)]


class TestProofCalldata:
    """Tests for encode_proof_calldata."""

    def test_word_order(self):
        """pi_b coordinate pairs are swapped; projective entries dropped."""
        data = encode_proof_calldata(SAMPLE_PROOF)
        assert len(data) == 256
        assert words(data) == [1, 2, 4, 3, 6, 5, 7, 8]

    def test_accepts_parsed_proof(self):
        """A Groth16Proof encodes like its snarkjs source."""
        proof = Groth16Proof.from_snarkjs(SAMPLE_PROOF)
        assert encode_proof_calldata(proof) == encode_proof_calldata(SAMPLE_PROOF)

    def test_decode_inverts(self):
        """decode_proof_calldata restores the original points."""
        proof = Groth16Proof.from_snarkjs(SAMPLE_PROOF)
        assert decode_proof_calldata(encode_proof_calldata(proof)) == proof

    def test_decode_bad_length(self):
        """Only 256-byte blobs decode."""
        with pytest.raises(StructuralError):
            decode_proof_calldata(b"\x00" * 255)

    def test_malformed_proof(self):
        """Missing points raise StructuralError."""
        with pytest.raises(StructuralError):
            encode_proof_calldata({"pi_a": ["1", "2"]})
        with pytest.raises(StructuralError):
            encode_proof_calldata({**SAMPLE_PROOF, "pi_c": ["x", "8"]})

    def test_oversized_word(self):
        """Coordinates over 32 bytes cannot be encoded."""
        proof = Groth16Proof(pi_a=(2 ** 256, 0), pi_b=((0, 0), (0, 0)), pi_c=(0, 0))
        with pytest.raises(StructuralError):
            encode_proof_calldata(proof)


class TestRootsBytes:
    """Tests for roots_bytes."""

    def test_order_preserved(self):
        """Roots are concatenated in the given order."""
        data = roots_bytes([RootInfo.of(1, 10), RootInfo.of(2, 20)])
        assert words(data) == [10, 20]

    def test_plain_values(self):
        """Field elements and ints are accepted directly."""
        assert roots_bytes([FieldElement(3), 4]) == roots_bytes([RootInfo.of(1, 3), RootInfo.of(2, 4)])

    def test_empty(self):
        """No roots encode to no bytes."""
        assert roots_bytes([]) == b""
