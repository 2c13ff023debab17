"""
Withdrawal Pipeline

Drives one shielded transaction from notes to a submitted contract call:

    ensure_known_root -> snapshot -> build_witness -> prove -> calldata -> submit

The snapshot is the only step that touches anchor state, and it only reads.
Proving runs on a worker thread with the configured timeout; a timeout or
a rejected proof leaves the anchor unchanged.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional, Sequence

from anchor_core.config.runtime import ProverConfig
from anchor_core.merkle.merkle_proofs import MerklePath, verify_merkle_path
from anchor_core.proof.backend import ProofResult, ProvingBackend, SnarkjsBackend, run_with_timeout
from anchor_core.proof.calldata import encode_proof_calldata
from anchor_core.proof.witness import ProofInputBuilder, PublicInputs, WitnessBundle
from anchor_core.receipts import ProofRecord, ReceiptRecorder
from anchor_core.schemas.errors import AnchorException, CryptoPreconditionError
from anchor_core.utxo.utxo import Utxo, get_ext_amount
from relayer.anchor_sync import Anchor, AnchorSnapshot, AnchorSynchronizer
from relayer.bridge_client import BridgeContractClient, TxResult


logger = logging.getLogger(__name__)


@dataclass
class TransactionRequest:
    """
    One shielded transaction.

    ``ext_amount`` defaults to fee + sum(outputs) - sum(inputs). Inputs whose
    commitment lives on another chain need an explicit path in
    ``merkle_proofs`` (one per input, in input order).
    """
    inputs: list[Utxo]
    outputs: list[Utxo]
    recipient: str
    relayer: str
    fee: int = 0
    ext_amount: Optional[int] = None
    flag: bool = False
    merkle_proofs: Optional[list[MerklePath]] = None

    def resolved_ext_amount(self) -> int:
        if self.ext_amount is not None:
            return self.ext_amount
        return get_ext_amount(self.inputs, self.outputs, self.fee)


@dataclass
class TransactionResult:
    """Everything produced for one transaction."""
    bundle: WitnessBundle
    proof: ProofResult
    calldata: bytes
    public_inputs: PublicInputs
    tx: Optional[TxResult] = None
    proof_id: Optional[str] = None

    @property
    def submitted(self) -> bool:
        return self.tx is not None


class WithdrawalPipeline:
    """
    Proof-and-submit runner for one anchor.

    Usage:
        pipeline = WithdrawalPipeline(anchor, builder, None, config.prover,
                                      synchronizer=sync, client=client)

    With no backend given, the snarkjs CLI named in ``prover_config`` is used.
        result = pipeline.run(TransactionRequest(inputs, outputs, recipient, relayer))
    """

    def __init__(
        self,
        anchor: Anchor,
        builder: ProofInputBuilder,
        backend: Optional[ProvingBackend],
        prover_config: ProverConfig,
        *,
        synchronizer: Optional[AnchorSynchronizer] = None,
        client: Optional[BridgeContractClient] = None,
        recorder: Optional[ReceiptRecorder] = None,
    ) -> None:
        self.anchor = anchor
        self.builder = builder
        self.backend = backend if backend is not None else SnarkjsBackend.from_config(prover_config)
        self.prover_config = prover_config
        self.synchronizer = synchronizer
        self.client = client if client is not None else (synchronizer.client if synchronizer else None)
        self.recorder = recorder

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _snapshot(self, request: TransactionRequest) -> tuple[AnchorSnapshot, list[MerklePath]]:
        if request.merkle_proofs is not None:
            if len(request.merkle_proofs) != len(request.inputs):
                raise CryptoPreconditionError(
                    f"Got {len(request.merkle_proofs)} Merkle paths for {len(request.inputs)} inputs"
                )
            snapshot = self.anchor.snapshot([])
            return snapshot, list(request.merkle_proofs)
        snapshot = self.anchor.snapshot(request.inputs)
        return snapshot, list(snapshot.paths)

    def _check_paths(self, snapshot: AnchorSnapshot, paths: Sequence[MerklePath]) -> None:
        """Every path must fold to its root, and that root must be one of the proof roots."""
        known = {info.merkle_root for info in snapshot.roots}
        hasher = self.anchor.hasher
        for i, path in enumerate(paths):
            if not verify_merkle_path(path, hasher):
                raise CryptoPreconditionError(
                    f"Merkle path of input {i} does not fold to its root",
                    details={"input": i, "index": path.index},
                )
            if path.root not in known:
                raise CryptoPreconditionError(
                    f"Merkle path of input {i} is against an unknown root {path.root.to_hex()}",
                    details={"input": i, "root": path.root.to_hex()},
                )

    def prepare(self, request: TransactionRequest) -> WitnessBundle:
        """Snapshot anchor state and build the witness."""
        snapshot, paths = self._snapshot(request)
        self._check_paths(snapshot, paths)
        return self.builder.build_witness(
            roots=snapshot.roots,
            chain_id=self.anchor.chain_id,
            inputs=request.inputs,
            outputs=request.outputs,
            ext_amount=request.resolved_ext_amount(),
            fee=request.fee,
            recipient=request.recipient,
            relayer=request.relayer,
            flag=request.flag,
            merkle_proofs=paths,
        )

    def _artifacts(self, arity: int) -> tuple[str, str, str]:
        cfg = self.prover_config
        missing = [
            name for name in ("circuit_wasm", "proving_key", "verifying_key")
            if not getattr(cfg, name)
        ]
        if missing:
            raise AnchorException(
                f"Prover config is missing {', '.join(missing)}",
                code="CONFIG_ERROR",
            )
        return (
            cfg.circuit_wasm.format(arity=arity),
            cfg.proving_key.format(arity=arity),
            cfg.verifying_key.format(arity=arity),
        )

    def _proof_record(self, bundle: WitnessBundle) -> ProofRecord:
        witness = bundle.witness
        public = {
            "roots": [r.to_hex() for r in witness.roots],
            "input_nullifiers": [n.to_hex() for n in witness.input_nullifier],
            "output_commitments": [c.to_hex() for c in witness.output_commitment],
            "public_amount": witness.public_amount.to_hex(),
            "ext_data_hash": witness.ext_data_hash.to_hex(),
        }
        return ProofRecord(
            proof_id=ProofRecord.make_id(**public),
            chain_id=self.anchor.chain_id,
            backend=type(self.backend).__name__,
            arity=len(bundle.inputs),
            **public,
        )

    def prove(self, bundle: WitnessBundle) -> tuple[ProofResult, str]:
        """
        Generate and verify the proof off-thread. Returns the proof and the
        id of its ProofRecord.

        On timeout the worker's cancel event is set, so the backend stops
        (and kills any prover process) instead of running on unobserved.

        Raises:
            ProverTimeoutException: If proving exceeds prover_config.timeout_s
            ProofVerificationError: If the proof does not verify
        """
        wasm, zkey, vkey = self._artifacts(len(bundle.inputs))
        witness_input = bundle.witness.to_circuit_input()
        record = self._proof_record(bundle)

        started = time.monotonic()
        try:
            result = run_with_timeout(
                lambda cancel: self.backend.prove_and_verify(wasm, zkey, vkey, witness_input, cancel=cancel),
                self.prover_config.timeout_s,
                stage="prove",
            )
        except AnchorException as e:
            record.error = e.to_error_model()
            raise
        else:
            record.verified = True
        finally:
            record.duration_ms = (time.monotonic() - started) * 1000
            if self.recorder is not None:
                self.recorder.record_proof(record)
        return result, record.proof_id

    def run(self, request: TransactionRequest, submit: bool = True) -> TransactionResult:
        """
        Full flow. With ``submit=False`` the result carries call-data and
        public inputs but nothing is sent.
        """
        if self.synchronizer is not None:
            self.synchronizer.ensure_known_root()

        try:
            bundle = self.prepare(request)
        except AnchorException:
            logger.exception("Witness construction failed")
            raise
        logger.info(
            "Proving transaction on chain %d: %d inputs, %d roots",
            self.anchor.chain_id, len(bundle.inputs), len(bundle.roots),
        )

        proof, proof_id = self.prove(bundle)
        calldata = encode_proof_calldata(proof.proof)
        public_inputs = self.builder.public_inputs(bundle, calldata)
        result = TransactionResult(
            bundle=bundle,
            proof=proof,
            calldata=calldata,
            public_inputs=public_inputs,
            proof_id=proof_id,
        )

        if submit:
            if self.client is None:
                raise AnchorException("No contract client configured for submission", code="CONFIG_ERROR")
            result.tx = self.client.transact(public_inputs, bundle.ext_data)
            logger.info("Submitted transaction %s", result.tx.tx_hash)
        return result


__all__ = [
    "TransactionRequest",
    "TransactionResult",
    "WithdrawalPipeline",
]
