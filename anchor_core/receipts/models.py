"""
Receipt Models

Audit records for what a relayer did on chain and with the prover:

- CallRecord: one RPC read or log query, with its attempt count
- TransactionRecord: one signed transaction, keyed by its hash, from send
  to mined (or to the point where waiting gave up)
- ProposalRecord: one root update relayed to a bridge, keyed by the
  proposal data hash, with the vote and execute transactions
- ProofRecord: one proving run, keyed by the keccak of its public signals

Failures are kept as AnchorError models so they can be exported alongside
the records. Signing keys and private witness signals never enter a record.
"""

from __future__ import annotations

from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from anchor_core.crypto.hashing import hash_canonical, to_hex
from anchor_core.schemas.errors import AnchorError, NetworkError

# NetworkError first so its endpoint fields survive dumping
RecordedError = Union[NetworkError, AnchorError]


class CallRecord(BaseModel):
    """One RPC call against a chain endpoint."""

    model_config = ConfigDict(extra="forbid")

    chain_id: Optional[int] = None
    endpoint: str
    rpc_method: str
    params: list[Any] = Field(default_factory=list)
    attempts: int = 1
    duration_ms: float = 0.0
    result: Any = None
    error: Optional[RecordedError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class TransactionRecord(BaseModel):
    """
    A transaction from signing to its mined receipt.

    ``block_number`` and ``status`` stay unset while the transaction is
    pending; ``error`` records why waiting stopped.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    tx_hash: str = Field(..., description="0x-prefixed transaction hash")
    chain_id: Optional[int] = None
    rpc_method: str = Field(..., description="Contract function that was called")
    sender: Optional[str] = None
    nonce: Optional[int] = None
    send_attempts: int = 0
    wait_attempts: int = 0
    block_number: Optional[int] = None
    status: Optional[int] = None
    error: Optional[RecordedError] = None

    @property
    def mined(self) -> bool:
        return self.status is not None

    @property
    def ok(self) -> bool:
        return self.status == 1


class ProposalRecord(BaseModel):
    """A root update voted (and possibly executed) on a destination bridge."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    data_hash: str = Field(..., description="keccak(handler ++ payload), 0x-prefixed")
    origin_chain_id: int
    dest_chain_id: int
    resource_id: str
    leaf_index: int
    merkle_root: str
    vote_tx_hash: Optional[str] = None
    execute_tx_hash: Optional[str] = None

    @property
    def executed(self) -> bool:
        return self.execute_tx_hash is not None


class ProofRecord(BaseModel):
    """
    Public side of one proving run.

    The id is derived from the public signals, so the same witness always
    maps to the same record.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    proof_id: str
    chain_id: int
    backend: str
    arity: int
    roots: list[str]
    input_nullifiers: list[str]
    output_commitments: list[str]
    public_amount: str
    ext_data_hash: str
    duration_ms: Optional[float] = None
    verified: bool = False
    error: Optional[RecordedError] = None

    @staticmethod
    def make_id(
        roots: list[str],
        input_nullifiers: list[str],
        output_commitments: list[str],
        public_amount: str,
        ext_data_hash: str,
    ) -> str:
        digest = hash_canonical({
            "roots": roots,
            "input_nullifiers": input_nullifiers,
            "output_commitments": output_commitments,
            "public_amount": public_amount,
            "ext_data_hash": ext_data_hash,
        })
        return to_hex(digest)
