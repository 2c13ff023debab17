"""
Receipt Recorder

Thread-safe store for the records in models.py. The bridge client logs
calls and transactions into it, the synchronizer logs relayed proposals
and the withdrawal pipeline logs proving runs.

Transactions, proposals and proofs are keyed (tx hash, data hash, proof
id); recording a key again replaces the earlier record, so a retried relay
or a transaction that was re-awaited shows up once with its latest state.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Optional, Union

from anchor_core.schemas.canonical import dumps_canonical

from .models import CallRecord, ProofRecord, ProposalRecord, TransactionRecord


class ReceiptRecorder:
    """
    Usage:
        recorder = ReceiptRecorder()
        client = BridgeContractClient(config.bridge, recorder=recorder)
        ...
        tx = recorder.transaction(result.tx_hash)
        recorder.export_jsonl("relayer-audit.jsonl")
    """

    def __init__(self) -> None:
        self._calls: list[CallRecord] = []
        self._transactions: dict[str, TransactionRecord] = {}
        self._proposals: dict[str, ProposalRecord] = {}
        self._proofs: dict[str, ProofRecord] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record_call(self, record: CallRecord) -> CallRecord:
        with self._lock:
            self._calls.append(record)
        return record

    def record_transaction(self, record: TransactionRecord) -> TransactionRecord:
        with self._lock:
            self._transactions[record.tx_hash] = record
        return record

    def record_proposal(self, record: ProposalRecord) -> ProposalRecord:
        with self._lock:
            self._proposals[record.data_hash] = record
        return record

    def record_proof(self, record: ProofRecord) -> ProofRecord:
        with self._lock:
            self._proofs[record.proof_id] = record
        return record

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def calls(self, rpc_method: Optional[str] = None) -> list[CallRecord]:
        with self._lock:
            if rpc_method is None:
                return list(self._calls)
            return [c for c in self._calls if c.rpc_method == rpc_method]

    def transaction(self, tx_hash: str) -> Optional[TransactionRecord]:
        with self._lock:
            return self._transactions.get(tx_hash)

    def transactions(self) -> list[TransactionRecord]:
        with self._lock:
            return list(self._transactions.values())

    def pending_transactions(self) -> list[TransactionRecord]:
        """Sent transactions whose receipt has not been seen."""
        return [t for t in self.transactions() if not t.mined]

    def proposal(self, data_hash: Union[str, bytes]) -> Optional[ProposalRecord]:
        if isinstance(data_hash, bytes):
            data_hash = "0x" + data_hash.hex()
        with self._lock:
            return self._proposals.get(data_hash)

    def proposals(self) -> list[ProposalRecord]:
        with self._lock:
            return list(self._proposals.values())

    def proof(self, proof_id: str) -> Optional[ProofRecord]:
        with self._lock:
            return self._proofs.get(proof_id)

    def proofs(self) -> list[ProofRecord]:
        with self._lock:
            return list(self._proofs.values())

    def proof_for_nullifier(self, nullifier: str) -> Optional[ProofRecord]:
        """The proving run that spent ``nullifier`` (0x hex), if any."""
        for record in self.proofs():
            if nullifier in record.input_nullifiers:
                return record
        return None

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def clear(self) -> None:
        with self._lock:
            self._calls.clear()
            self._transactions.clear()
            self._proposals.clear()
            self._proofs.clear()

    def to_dict(self) -> dict[str, list[dict[str, Any]]]:
        """All records as JSON-ready dicts, grouped by kind."""
        def dump(records):
            return [r.model_dump(mode="json", exclude_none=True) for r in records]

        return {
            "calls": dump(self.calls()),
            "transactions": dump(self.transactions()),
            "proposals": dump(self.proposals()),
            "proofs": dump(self.proofs()),
        }

    def export_jsonl(self, path: Union[str, Path]) -> int:
        """
        Write one canonical JSON line per record, tagged with its kind.
        Returns the number of lines written.
        """
        lines = [
            dumps_canonical({"kind": kind[:-1], "record": record})
            for kind, records in self.to_dict().items()
            for record in records
        ]
        Path(path).write_text("".join(line + "\n" for line in lines), encoding="utf-8")
        return len(lines)
