"""
Bridge Proposal Codec Unit Tests
Tests for anchor_core/bridge/proposal.py
"""
import pytest
from web3 import Web3

from anchor_core.bridge.proposal import (
    ChainType,
    Proposal,
    decode_proposal,
    encode_proposal,
    parse_resource_id,
    parse_typed_chain_id,
    proposal_data_hash,
    resource_id,
    typed_chain_id,
)
from anchor_core.crypto.field import FieldElement
from anchor_core.crypto.hashing import keccak256, to_hex
from anchor_core.schemas.errors import SchemaValidationException, StructuralError

from fixtures.anchor_fixtures import DEST_ANCHOR, HANDLER


ROOT = FieldElement(0xABCDEF)


class TestEncoding:
    """Tests for encode_proposal / decode_proposal."""

    def test_base_layout(self):
        """Three big-endian words: chain, index, root."""
        data = encode_proposal(Proposal.of(1, 5, ROOT))
        assert len(data) == 96
        assert int.from_bytes(data[:32], "big") == 1
        assert int.from_bytes(data[32:64], "big") == 5
        assert data[64:] == ROOT.to_bytes()

    def test_base_round_trip(self):
        """decode(encode(p)) == p."""
        proposal = Proposal.of(1, 5, ROOT)
        assert decode_proposal(encode_proposal(proposal)) == proposal

    def test_targeted_layout(self):
        """Targeted proposals append the padded dest anchor and dest chain."""
        proposal = Proposal.of(1, 5, ROOT, dest_anchor_address=DEST_ANCHOR, dest_chain_id=4)
        data = encode_proposal(proposal)
        assert len(data) == 160
        assert data[96:108] == b"\x00" * 12
        assert to_hex(data[108:128]).lower() == DEST_ANCHOR.lower()
        assert int.from_bytes(data[128:], "big") == 4

    def test_targeted_round_trip_from_hex(self):
        """Hex input decodes like raw bytes and addresses come back checksummed."""
        proposal = Proposal.of(1, 5, ROOT, dest_anchor_address=DEST_ANCHOR, dest_chain_id=4)
        decoded = decode_proposal(to_hex(encode_proposal(proposal)))
        assert decoded.dest_anchor_address == Web3.to_checksum_address(DEST_ANCHOR)
        assert decoded.dest_chain_id == 4
        assert decoded.merkle_root == ROOT

    def test_bad_length(self):
        """Only 96- and 160-byte payloads decode."""
        with pytest.raises(StructuralError):
            decode_proposal(b"\x00" * 64)
        with pytest.raises(StructuralError):
            decode_proposal(b"\x00" * 128)

    def test_dirty_address_padding(self):
        """A dest anchor word with non-zero padding is rejected."""
        data = bytearray(encode_proposal(Proposal.of(1, 5, ROOT, DEST_ANCHOR, 4)))
        data[96] = 1
        with pytest.raises(StructuralError):
            decode_proposal(bytes(data))

    def test_malformed_hex(self):
        """Non-hex strings raise StructuralError."""
        with pytest.raises(StructuralError):
            decode_proposal("0xzz")

    def test_encoding_is_pure(self):
        """The same proposal always encodes to the same bytes."""
        assert encode_proposal(Proposal.of(2, 9, ROOT)) == encode_proposal(Proposal.of(2, 9, ROOT))


class TestProposalValidation:
    """Tests for Proposal construction."""

    def test_dest_fields_together(self):
        """dest anchor without dest chain is rejected."""
        with pytest.raises(StructuralError):
            Proposal.of(1, 0, ROOT, dest_anchor_address=DEST_ANCHOR)

    def test_negative_fields(self):
        """Negative chain ids and indices are rejected."""
        with pytest.raises(StructuralError):
            Proposal.of(-1, 0, ROOT)
        with pytest.raises(StructuralError):
            Proposal.of(1, -1, ROOT)

    def test_edge_update(self):
        """leaf_index becomes the edge height."""
        update = Proposal.of(3, 7, ROOT).to_edge_update()
        assert update.source_chain_id == 3
        assert update.height == 7
        assert update.merkle_root == ROOT


class TestDataHash:
    """Tests for proposal_data_hash."""

    # keccak256 of 0x33 * 20 followed by the words (1, 5, 0xabcdef), computed outside this codebase
    PINNED = "0xea82c08f76475cfdcb70b4d43909507407122ca9dd2b4b1db851870573f43a0f"

    def test_pinned_reference(self):
        """A fixed proposal hashes to a precomputed reference value."""
        data = encode_proposal(Proposal.of(1, 5, ROOT))
        assert to_hex(proposal_data_hash(HANDLER, data)) == self.PINNED

    def test_pinned_reference_from_literal_bytes(self):
        """The reference is keccak over hand-laid handler and payload bytes."""
        literal = "0x" + "33" * 20 + f"{1:064x}" + f"{5:064x}" + f"{0xABCDEF:064x}"
        assert to_hex(bytes(Web3.keccak(hexstr=literal))) == self.PINNED
        assert encode_proposal(Proposal.of(1, 5, ROOT)) == bytes.fromhex(literal[2 + 40:])

    def test_hashes_handler_then_payload(self):
        """data_hash == keccak256(handler bytes || payload bytes)."""
        data = encode_proposal(Proposal.of(1, 5, ROOT))
        expected = keccak256(bytes.fromhex(HANDLER[2:]) + data)
        assert proposal_data_hash(HANDLER, data) == expected

    def test_hex_payload_marker_not_hashed(self):
        """A 0x payload hashes like its raw bytes."""
        data = encode_proposal(Proposal.of(1, 5, ROOT))
        assert proposal_data_hash(HANDLER, to_hex(data)) == proposal_data_hash(HANDLER, data)

    def test_handler_binds(self):
        """Another handler gives another hash."""
        data = encode_proposal(Proposal.of(1, 5, ROOT))
        assert proposal_data_hash(HANDLER, data) != proposal_data_hash(DEST_ANCHOR, data)


class TestResourceId:
    """Tests for resource ids."""

    def test_layout(self):
        """11 zero bytes, the address, then one chain id byte."""
        rid = resource_id(DEST_ANCHOR, 5)
        assert len(rid) == 32
        assert rid[:11] == b"\x00" * 11
        assert to_hex(rid[11:31]).lower() == DEST_ANCHOR.lower()
        assert rid[31] == 5

    def test_parse(self):
        """parse_resource_id inverts resource_id."""
        address, chain_id = parse_resource_id(resource_id(DEST_ANCHOR, 5))
        assert address == Web3.to_checksum_address(DEST_ANCHOR)
        assert chain_id == 5

    def test_chain_id_too_large(self):
        """Chain ids over one byte are rejected."""
        with pytest.raises(StructuralError):
            resource_id(DEST_ANCHOR, 256)

    def test_parse_bad_padding(self):
        """Non-zero padding is rejected."""
        with pytest.raises(StructuralError):
            parse_resource_id(b"\x01" + resource_id(DEST_ANCHOR, 5)[1:])


class TestTypedChainId:
    """Tests for typed chain ids."""

    def test_substrate(self):
        """chainType 0x0200 with chain id 31337."""
        assert typed_chain_id(ChainType.SUBSTRATE, 31337) == 2199023286889

    def test_parse(self):
        """parse_typed_chain_id inverts typed_chain_id."""
        assert parse_typed_chain_id(typed_chain_id(ChainType.EVM, 5)) == (ChainType.EVM, 5)

    def test_unknown_type(self):
        """Unknown chain types map to NONE."""
        assert parse_typed_chain_id((0x7777 << 32) | 3) == (ChainType.NONE, 3)

    def test_chain_id_range(self):
        """Chain ids must fit in 4 bytes."""
        with pytest.raises(SchemaValidationException):
            typed_chain_id(ChainType.EVM, 2 ** 32)
