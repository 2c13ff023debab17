"""
Factories and in-memory fakes for anchor core tests.
"""

import threading
import time

from anchor_core.config.runtime import BridgeConfig, ProverConfig
from anchor_core.crypto.field import FieldElement
from anchor_core.proof.backend import ProofResult, ProvingBackend
from anchor_core.proof.calldata import Groth16Proof
from anchor_core.schemas.errors import NetworkException, ProverTimeoutException
from relayer.bridge_client import DepositEvent, TxResult


RECIPIENT = "0x1111111111111111111111111111111111111111"
RELAYER = "0x2222222222222222222222222222222222222222"
HANDLER = "0x3333333333333333333333333333333333333333"
DEST_ANCHOR = "0x4444444444444444444444444444444444444444"

SAMPLE_PROOF = {
    "pi_a": ["1", "2", "1"],
    "pi_b": [["3", "4"], ["5", "6"], ["1", "0"]],
    "pi_c": ["7", "8", "1"],
    "protocol": "groth16",
}


def make_commitments(n: int, offset: int = 0) -> list[FieldElement]:
    """Distinct stand-in commitments."""
    return [FieldElement(1000 + offset + i) for i in range(n)]


def make_deposit_events(commitments, start_block=1, blocks_apart=1, first_index=0):
    """DepositEvents for ``commitments`` at increasing blocks."""
    return [
        DepositEvent(
            commitment=FieldElement.coerce(c),
            leaf_index=first_index + i,
            block_number=start_block + i * blocks_apart,
        )
        for i, c in enumerate(commitments)
    ]


def make_prover_config() -> ProverConfig:
    return ProverConfig(
        circuit_wasm="circuits/transaction{arity}.wasm",
        proving_key="circuits/transaction{arity}.zkey",
        verifying_key="circuits/transaction{arity}.vkey.json",
        timeout_s=5.0,
    )


class FakeDepositSource:
    """
    In-memory deposit log.

    ``timeout_above`` makes any query spanning more blocks than that raise a
    timed-out NetworkException.
    """

    def __init__(self, events=None, timeout_above=None, latest=100):
        self.events = list(events or [])
        self.timeout_above = timeout_above
        self.latest = latest
        self.queries = []

    def get_deposit_events(self, from_block, to_block):
        self.queries.append((from_block, to_block))
        if self.timeout_above is not None and to_block - from_block + 1 > self.timeout_above:
            raise NetworkException("query timed out", rpc_method="eth_getLogs", timed_out=True)
        return [e for e in self.events if from_block <= e.block_number <= to_block]

    def latest_block(self):
        return self.latest


class FakeBridgeClient(FakeDepositSource):
    """Stand-in for BridgeContractClient backed by a list of deposits."""

    def __init__(self, events=None, known_roots=None, neighbor_edges=None, handler=HANDLER, recorder=None, **kwargs):
        super().__init__(events, **kwargs)
        self.recorder = recorder
        self.config = BridgeConfig(handler_address=handler, log_chunk_size=50, min_log_chunk_size=5)
        self.known_roots = set(known_roots or [])
        self.neighbor_edges = list(neighbor_edges or [])
        self.votes = []
        self.executions = []
        self.transactions = []

    def is_known_root(self, root):
        return FieldElement.coerce(root) in self.known_roots

    def get_latest_neighbor_edges(self):
        return list(self.neighbor_edges)

    def vote_proposal(self, origin_chain_id, nonce, resource_id, data_hash):
        self.votes.append((origin_chain_id, nonce, resource_id, data_hash))
        return TxResult(tx_hash="0x" + "aa" * 32, block_number=1, status=1)

    def execute_proposal(self, origin_chain_id, nonce, data, resource_id):
        self.executions.append((origin_chain_id, nonce, data, resource_id))
        return TxResult(tx_hash="0x" + "bb" * 32, block_number=2, status=1)

    def transact(self, public_inputs, ext_data):
        self.transactions.append((public_inputs, ext_data))
        return TxResult(tx_hash="0x" + "cc" * 32, block_number=3, status=1)


class FakeProvingBackend(ProvingBackend):
    """Backend returning a fixed proof; records the witness it was given."""

    def __init__(self, verifies=True, delay=0.0):
        self.verifies = verifies
        self.delay = delay
        self.witness_inputs = []
        self.cancelled = False
        self.stopped = threading.Event()

    def witness_calculate(self, circuit_wasm, witness_input, cancel=None):
        try:
            if self.delay:
                # stands in for a long-running child that watches the event
                if cancel is not None and cancel.wait(self.delay):
                    self.cancelled = True
                    raise ProverTimeoutException("witness cancelled", stage="witness")
                if cancel is None:
                    time.sleep(self.delay)
            self.witness_inputs.append((circuit_wasm, witness_input))
            return b"witness"
        finally:
            self.stopped.set()

    def groth16_prove(self, proving_key, witness, cancel=None):
        return ProofResult(
            proof=Groth16Proof.from_snarkjs(SAMPLE_PROOF),
            public_signals=("1", "2"),
            raw_proof=dict(SAMPLE_PROOF),
        )

    def groth16_verify(self, verifying_key, public_signals, proof, cancel=None):
        return self.verifies
