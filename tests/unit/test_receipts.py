"""
Receipt Recorder Unit Tests
Tests for anchor_core/receipts
"""
import json
import threading

import pytest
from pydantic import ValidationError

from anchor_core.crypto.hashing import hash_canonical, to_hex
from anchor_core.receipts import (
    CallRecord,
    ProofRecord,
    ProposalRecord,
    ReceiptRecorder,
    TransactionRecord,
)
from anchor_core.schemas.errors import NetworkError, NetworkException


TX_HASH = "0x" + "ab" * 32
DATA_HASH = "0x" + "cd" * 32


def proof_record(nullifiers=("0x01", "0x02"), **overrides):
    public = {
        "roots": ["0x0a", "0x0b"],
        "input_nullifiers": list(nullifiers),
        "output_commitments": ["0x03", "0x04"],
        "public_amount": "0x05",
        "ext_data_hash": "0x06",
    }
    fields = dict(
        proof_id=ProofRecord.make_id(**public),
        chain_id=1,
        backend="SnarkjsBackend",
        arity=2,
        **public,
    )
    fields.update(overrides)
    return ProofRecord(**fields)


class TestModels:
    """Tests for the record models."""

    def test_transaction_pending_until_mined(self):
        """A transaction without a status is pending."""
        record = TransactionRecord(tx_hash=TX_HASH, rpc_method="transact", sender="0x" + "11" * 20, nonce=3)
        assert not record.mined
        assert not record.ok
        record.status = 1
        record.block_number = 9
        assert record.mined
        assert record.ok

    def test_assignment_validated(self):
        """Fields are validated on assignment."""
        record = TransactionRecord(tx_hash=TX_HASH, rpc_method="transact")
        with pytest.raises(ValidationError):
            record.block_number = "soon"

    def test_network_error_keeps_endpoint(self):
        """A NetworkError on a record dumps with its endpoint fields."""
        error = NetworkException("down", endpoint="http://node", rpc_method="eth_getLogs").to_error_model()
        record = CallRecord(endpoint="http://node", rpc_method="eth_getLogs", error=error)
        assert isinstance(record.error, NetworkError)
        assert record.model_dump(mode="json")["error"]["endpoint"] == "http://node"
        assert not record.ok

    def test_proof_id_from_public_signals(self):
        """Proof ids are the canonical keccak of the public signals."""
        record = proof_record()
        expected = to_hex(hash_canonical({
            "roots": record.roots,
            "input_nullifiers": record.input_nullifiers,
            "output_commitments": record.output_commitments,
            "public_amount": record.public_amount,
            "ext_data_hash": record.ext_data_hash,
        }))
        assert record.proof_id == expected
        assert proof_record(nullifiers=("0x01", "0x07")).proof_id != expected

    def test_proposal_executed(self):
        """A proposal counts as executed once it has an execute hash."""
        record = ProposalRecord(
            data_hash=DATA_HASH,
            origin_chain_id=1,
            dest_chain_id=2,
            resource_id="0x" + "00" * 32,
            leaf_index=3,
            merkle_root="0x01",
            vote_tx_hash=TX_HASH,
        )
        assert not record.executed
        record.execute_tx_hash = TX_HASH
        assert record.executed


class TestRecorder:
    """Tests for keyed storage and lookups."""

    def test_calls_filtered_by_method(self):
        """calls() returns every call, or those of one method."""
        recorder = ReceiptRecorder()
        recorder.record_call(CallRecord(endpoint="e", rpc_method="eth_getLogs"))
        recorder.record_call(CallRecord(endpoint="e", rpc_method="isKnownRoot"))
        assert len(recorder.calls()) == 2
        assert [c.rpc_method for c in recorder.calls("isKnownRoot")] == ["isKnownRoot"]

    def test_transaction_replaced_by_hash(self):
        """Recording the same hash again keeps one, latest record."""
        recorder = ReceiptRecorder()
        recorder.record_transaction(TransactionRecord(tx_hash=TX_HASH, rpc_method="transact"))
        mined = TransactionRecord(tx_hash=TX_HASH, rpc_method="transact", block_number=4, status=1)
        recorder.record_transaction(mined)
        assert recorder.transactions() == [mined]
        assert recorder.transaction(TX_HASH) is mined
        assert recorder.pending_transactions() == []

    def test_proposal_lookup_by_bytes(self):
        """Proposals can be looked up by the raw data hash."""
        recorder = ReceiptRecorder()
        record = recorder.record_proposal(ProposalRecord(
            data_hash=DATA_HASH,
            origin_chain_id=1,
            dest_chain_id=2,
            resource_id="0x00",
            leaf_index=1,
            merkle_root="0x01",
        ))
        assert recorder.proposal(bytes.fromhex("cd" * 32)) is record
        assert recorder.proposal(DATA_HASH) is record
        assert recorder.proposal("0x" + "ee" * 32) is None

    def test_proof_for_nullifier(self):
        """A spent nullifier leads back to its proving run."""
        recorder = ReceiptRecorder()
        record = recorder.record_proof(proof_record())
        assert recorder.proof(record.proof_id) is record
        assert recorder.proof_for_nullifier("0x02") is record
        assert recorder.proof_for_nullifier("0x09") is None

    def test_clear(self):
        """clear drops every kind of record."""
        recorder = ReceiptRecorder()
        recorder.record_call(CallRecord(endpoint="e", rpc_method="m"))
        recorder.record_transaction(TransactionRecord(tx_hash=TX_HASH, rpc_method="transact"))
        recorder.record_proof(proof_record())
        recorder.clear()
        assert recorder.to_dict() == {"calls": [], "transactions": [], "proposals": [], "proofs": []}

    def test_shared_between_threads(self):
        """Concurrent recording keeps every call."""
        recorder = ReceiptRecorder()

        def work(i):
            recorder.record_call(CallRecord(endpoint="e", rpc_method="m", params=[i]))

        threads = [threading.Thread(target=work, args=(i,)) for i in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert sorted(c.params[0] for c in recorder.calls()) == list(range(20))


class TestExport:
    """Tests for the audit export."""

    def test_to_dict_drops_unset(self):
        """Dumped records leave out fields that were never set."""
        recorder = ReceiptRecorder()
        recorder.record_transaction(TransactionRecord(tx_hash=TX_HASH, rpc_method="transact"))
        dumped = recorder.to_dict()["transactions"][0]
        assert dumped["tx_hash"] == TX_HASH
        assert "block_number" not in dumped
        assert "error" not in dumped

    def test_export_jsonl(self, tmp_path):
        """One canonical line per record, tagged with its kind."""
        recorder = ReceiptRecorder()
        recorder.record_call(CallRecord(endpoint="e", rpc_method="eth_blockNumber", result=7))
        recorder.record_transaction(TransactionRecord(tx_hash=TX_HASH, rpc_method="transact"))
        recorder.record_proof(proof_record())
        path = tmp_path / "audit.jsonl"
        assert recorder.export_jsonl(path) == 3

        lines = path.read_text(encoding="utf-8").splitlines()
        kinds = [json.loads(line)["kind"] for line in lines]
        assert kinds == ["call", "transaction", "proof"]
        assert lines[0] == json.dumps(json.loads(lines[0]), sort_keys=True, separators=(",", ":"))
        assert json.loads(lines[1])["record"]["tx_hash"] == TX_HASH
