"""
Anchor Core - Proving Backend
Interface to the external witness calculator / Groth16 prover, plus a
reference implementation that shells out to the snarkjs CLI.

This module provides:
- ProvingBackend: witness_calculate / groth16_prove / groth16_verify
- SnarkjsBackend: subprocess-based implementation with per-call timeouts
- ProofResult: proof points plus public signals
- run_with_timeout: run CPU-bound work on a worker thread with a deadline

Every stage takes an optional ``cancel`` event. run_with_timeout sets it
when the deadline passes, so a worker that outlives its caller stops at the
next stage boundary and SnarkjsBackend kills its child process. Proof
generation only reads its inputs; a timed-out or failed call leaves no tree
or edge state behind.
"""
from __future__ import annotations

import concurrent.futures
import json
import logging
import subprocess
import tempfile
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional, Sequence, TypeVar

from anchor_core.config.runtime import ProverConfig
from anchor_core.proof.calldata import Groth16Proof
from anchor_core.schemas.canonical import write_canonical_json
from anchor_core.schemas.errors import (
    AnchorException,
    ProofVerificationError,
    ProverTimeoutException,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")

# how often a running snarkjs child is checked against its deadline
_POLL_S = 0.1


@dataclass(frozen=True)
class ProofResult:
    """Output of groth16_prove."""
    proof: Groth16Proof
    public_signals: tuple[str, ...]
    raw_proof: dict[str, Any] = field(default_factory=dict, compare=False)


def check_cancelled(cancel: Optional[threading.Event], stage: str) -> None:
    """Raise ProverTimeoutException if ``cancel`` has been set."""
    if cancel is not None and cancel.is_set():
        raise ProverTimeoutException(f"{stage} cancelled after the caller's deadline", stage=stage)


class ProvingBackend(ABC):
    """External proving system."""

    @abstractmethod
    def witness_calculate(
        self,
        circuit_wasm: str | Path,
        witness_input: dict[str, Any],
        cancel: Optional[threading.Event] = None,
    ) -> bytes:
        """Compute the binary witness for a circuit input object."""

    @abstractmethod
    def groth16_prove(
        self,
        proving_key: str | Path,
        witness: bytes,
        cancel: Optional[threading.Event] = None,
    ) -> ProofResult:
        """Produce a proof and its public signals."""

    @abstractmethod
    def groth16_verify(
        self,
        verifying_key: str | Path,
        public_signals: Sequence[str],
        proof: dict[str, Any],
        cancel: Optional[threading.Event] = None,
    ) -> bool:
        """Check a proof against a verifying key."""

    def prove_and_verify(
        self,
        circuit_wasm: str | Path,
        proving_key: str | Path,
        verifying_key: str | Path,
        witness_input: dict[str, Any],
        cancel: Optional[threading.Event] = None,
    ) -> ProofResult:
        """
        Full proving round trip.

        Raises:
            ProofVerificationError: If the generated proof does not verify
            ProverTimeoutException: If ``cancel`` is set before a stage starts
        """
        check_cancelled(cancel, "witness")
        witness = self.witness_calculate(circuit_wasm, witness_input, cancel=cancel)
        check_cancelled(cancel, "prove")
        result = self.groth16_prove(proving_key, witness, cancel=cancel)
        check_cancelled(cancel, "verify")
        if not self.groth16_verify(verifying_key, result.public_signals, result.raw_proof, cancel=cancel):
            raise ProofVerificationError(
                "Generated proof failed verification",
                details={"public_signals": list(result.public_signals)},
            )
        return result


def run_with_timeout(
    fn: Callable[[threading.Event], T],
    timeout_s: float,
    stage: str = "prove",
    cancel: Optional[threading.Event] = None,
) -> T:
    """
    Run ``fn(cancel)`` on a worker thread and wait at most ``timeout_s``
    seconds. On timeout the event is set before raising, so ``fn`` can stop
    its own work.

    Raises:
        ProverTimeoutException: If the deadline passes first
    """
    if cancel is None:
        cancel = threading.Event()
    pool = concurrent.futures.ThreadPoolExecutor(max_workers=1)
    future = pool.submit(fn, cancel)
    try:
        return future.result(timeout=timeout_s)
    except concurrent.futures.TimeoutError as e:
        cancel.set()
        future.cancel()
        raise ProverTimeoutException(
            f"{stage} exceeded {timeout_s}s",
            stage=stage,
            timeout_s=timeout_s,
        ) from e
    finally:
        pool.shutdown(wait=False, cancel_futures=True)


class SnarkjsBackend(ProvingBackend):
    """
    Proving backend driving the ``snarkjs`` command line tool.

    Each call works in its own temporary directory; the child process is
    killed when its timeout expires or its cancel event is set.
    """

    def __init__(self, snarkjs_bin: str = "snarkjs", timeout_s: float = 300.0) -> None:
        self.snarkjs_bin = snarkjs_bin
        self.timeout_s = timeout_s

    @classmethod
    def from_config(cls, config: ProverConfig) -> "SnarkjsBackend":
        return cls(snarkjs_bin=config.snarkjs_bin, timeout_s=config.timeout_s)

    def _run(
        self,
        stage: str,
        args: list[str],
        cancel: Optional[threading.Event] = None,
    ) -> subprocess.CompletedProcess:
        cmd = [self.snarkjs_bin, *args]
        logger.debug("Running %s", " ".join(cmd))
        try:
            proc = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
        except FileNotFoundError as e:
            raise AnchorException(
                f"snarkjs binary not found at {self.snarkjs_bin}",
                code="PROVER_UNAVAILABLE",
            ) from e

        deadline = time.monotonic() + self.timeout_s
        with proc:
            while True:
                try:
                    stdout, stderr = proc.communicate(timeout=_POLL_S)
                    return subprocess.CompletedProcess(cmd, proc.returncode, stdout, stderr)
                except subprocess.TimeoutExpired:
                    cancelled = cancel is not None and cancel.is_set()
                    if not cancelled and time.monotonic() < deadline:
                        continue
                    proc.kill()
                    proc.communicate()
                    logger.warning("Killed snarkjs %s (pid %d)", stage, proc.pid)
                    if cancelled:
                        raise ProverTimeoutException(
                            f"snarkjs {stage} cancelled after the caller's deadline",
                            stage=stage,
                        )
                    raise ProverTimeoutException(
                        f"snarkjs {stage} timed out",
                        stage=stage,
                        timeout_s=self.timeout_s,
                    )

    def _check(self, stage: str, result: subprocess.CompletedProcess) -> None:
        if result.returncode != 0:
            error_msg = result.stderr.strip() or result.stdout.strip() or "Unknown error"
            raise AnchorException(
                f"snarkjs {stage} failed: {error_msg}",
                code="PROVER_FAILED",
                details={"stage": stage, "returncode": result.returncode},
            )

    def witness_calculate(
        self,
        circuit_wasm: str | Path,
        witness_input: dict[str, Any],
        cancel: Optional[threading.Event] = None,
    ) -> bytes:
        with tempfile.TemporaryDirectory() as tmp:
            input_path = Path(tmp) / "input.json"
            wtns_path = Path(tmp) / "witness.wtns"
            write_canonical_json(input_path, witness_input)
            result = self._run(
                "witness",
                ["wtns", "calculate", str(circuit_wasm), str(input_path), str(wtns_path)],
                cancel,
            )
            self._check("witness", result)
            return wtns_path.read_bytes()

    def groth16_prove(
        self,
        proving_key: str | Path,
        witness: bytes,
        cancel: Optional[threading.Event] = None,
    ) -> ProofResult:
        with tempfile.TemporaryDirectory() as tmp:
            wtns_path = Path(tmp) / "witness.wtns"
            proof_path = Path(tmp) / "proof.json"
            public_path = Path(tmp) / "public.json"
            wtns_path.write_bytes(witness)
            result = self._run(
                "prove",
                ["groth16", "prove", str(proving_key), str(wtns_path), str(proof_path), str(public_path)],
                cancel,
            )
            self._check("prove", result)
            raw_proof = json.loads(proof_path.read_text())
            public_signals = json.loads(public_path.read_text())
        return ProofResult(
            proof=Groth16Proof.from_snarkjs(raw_proof),
            public_signals=tuple(str(s) for s in public_signals),
            raw_proof=raw_proof,
        )

    def groth16_verify(
        self,
        verifying_key: str | Path,
        public_signals: Sequence[str],
        proof: dict[str, Any],
        cancel: Optional[threading.Event] = None,
    ) -> bool:
        with tempfile.TemporaryDirectory() as tmp:
            proof_path = Path(tmp) / "proof.json"
            public_path = Path(tmp) / "public.json"
            write_canonical_json(proof_path, proof)
            write_canonical_json(public_path, list(public_signals))
            result = self._run(
                "verify",
                ["groth16", "verify", str(verifying_key), str(public_path), str(proof_path)],
                cancel,
            )
        ok = result.returncode == 0 and "OK" in result.stdout
        if not ok:
            logger.warning("snarkjs rejected proof: %s", result.stdout.strip() or result.stderr.strip())
        return ok


__all__ = [
    "ProvingBackend",
    "SnarkjsBackend",
    "ProofResult",
    "run_with_timeout",
    "check_cancelled",
]
