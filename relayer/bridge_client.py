"""
Bridge Contract Client

web3 wrapper over the anchor and bridge contracts of one chain, with
retries and receipt recording for auditability.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar

import requests
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3RPCError

from anchor_core.config.runtime import BridgeConfig
from anchor_core.crypto.field import FieldElement, FieldLike
from anchor_core.crypto.hashing import to_hex
from anchor_core.proof.witness import ExtData, PublicInputs
from anchor_core.receipts import CallRecord, ReceiptRecorder, TransactionRecord
from anchor_core.schemas.errors import AnchorException, NetworkException
from anchor_core.schemas.roots import AnchorEdge


logger = logging.getLogger(__name__)

T = TypeVar("T")


DEPOSIT_EVENT_SIGNATURE = "Deposit(bytes32,uint32,uint256)"

_EXT_DATA_COMPONENTS = [
    {"name": "recipient", "type": "address"},
    {"name": "extAmount", "type": "int256"},
    {"name": "relayer", "type": "address"},
    {"name": "fee", "type": "uint256"},
    {"name": "encryptedOutput1", "type": "bytes"},
    {"name": "encryptedOutput2", "type": "bytes"},
    {"name": "isL1Withdrawal", "type": "bool"},
]

_PROOF_COMPONENTS = [
    {"name": "proof", "type": "bytes"},
    {"name": "roots", "type": "bytes"},
    {"name": "inputNullifiers", "type": "bytes32[]"},
    {"name": "outputCommitments", "type": "bytes32[2]"},
    {"name": "publicAmount", "type": "uint256"},
    {"name": "extDataHash", "type": "bytes32"},
]

ANCHOR_ABI: list[dict[str, Any]] = [
    {
        "type": "function",
        "name": "deposit",
        "stateMutability": "payable",
        "inputs": [{"name": "commitment", "type": "bytes32"}],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "withdraw",
        "stateMutability": "payable",
        "inputs": [
            {"name": "proof", "type": "bytes"},
            {"name": "roots", "type": "bytes"},
            {"name": "nullifierHash", "type": "bytes32"},
            {"name": "recipient", "type": "address"},
            {"name": "relayer", "type": "address"},
            {"name": "fee", "type": "uint256"},
            {"name": "refund", "type": "uint256"},
        ],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "transact",
        "stateMutability": "payable",
        "inputs": [
            {"name": "args", "type": "tuple", "components": _PROOF_COMPONENTS},
            {"name": "extData", "type": "tuple", "components": _EXT_DATA_COMPONENTS},
        ],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "getLastRoot",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "bytes32"}],
    },
    {
        "type": "function",
        "name": "isKnownRoot",
        "stateMutability": "view",
        "inputs": [{"name": "root", "type": "bytes32"}],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "type": "function",
        "name": "getLatestNeighborEdges",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [
            {
                "name": "",
                "type": "tuple[]",
                "components": [
                    {"name": "chainID", "type": "uint256"},
                    {"name": "root", "type": "bytes32"},
                    {"name": "latestLeafIndex", "type": "uint256"},
                ],
            }
        ],
    },
    {
        "type": "event",
        "name": "Deposit",
        "anonymous": False,
        "inputs": [
            {"name": "commitment", "type": "bytes32", "indexed": True},
            {"name": "leafIndex", "type": "uint32", "indexed": False},
            {"name": "timestamp", "type": "uint256", "indexed": False},
        ],
    },
]

BRIDGE_ABI: list[dict[str, Any]] = [
    {
        "type": "function",
        "name": "voteProposal",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "chainID", "type": "uint256"},
            {"name": "depositNonce", "type": "uint64"},
            {"name": "resourceID", "type": "bytes32"},
            {"name": "dataHash", "type": "bytes32"},
        ],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "executeProposal",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "chainID", "type": "uint256"},
            {"name": "depositNonce", "type": "uint64"},
            {"name": "data", "type": "bytes"},
            {"name": "resourceID", "type": "bytes32"},
        ],
        "outputs": [],
    },
]


@dataclass(frozen=True)
class DepositEvent:
    """One Deposit log of an anchor contract."""
    commitment: FieldElement
    leaf_index: int
    block_number: int


@dataclass(frozen=True)
class TxResult:
    """Mined transaction summary."""
    tx_hash: str
    block_number: int
    status: int

    @property
    def ok(self) -> bool:
        return self.status == 1


class ContractRevertError(AnchorException):
    """Raised when a contract call reverts. Not retried."""

    def __init__(self, message: str, rpc_method: str) -> None:
        super().__init__(
            message=message,
            code="CONTRACT_REVERTED",
            details={"rpc_method": rpc_method},
            retryable=False,
        )


_RETRYABLE = (requests.RequestException, TimeExhausted, ConnectionError, TimeoutError)

# node replies to a resend of a payload it already accepted
_ALREADY_SENT = ("already known", "known transaction", "nonce too low")


def _is_timeout(error: Exception) -> bool:
    return isinstance(error, (requests.Timeout, TimeExhausted, TimeoutError))


def _root_bytes(root: FieldLike) -> bytes:
    return FieldElement.coerce(root).to_bytes(32)


class BridgeContractClient:
    """
    Contract client for one chain.

    Usage:
        client = BridgeContractClient(config.bridge, recorder=recorder)
        root = client.get_last_root()
        events = client.get_deposit_events(0, client.latest_block())
    """

    def __init__(
        self,
        config: BridgeConfig,
        *,
        w3: Optional[Web3] = None,
        recorder: Optional[ReceiptRecorder] = None,
        chain_id: Optional[int] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            config: RPC endpoint, contract addresses, retry and timeout settings
            w3: Pre-built Web3 instance (tests inject one)
            recorder: Receipt recorder for audit logging
            chain_id: Chain id recorded on receipts; read from the node if omitted
        """
        if w3 is None:
            if not config.rpc_url:
                raise AnchorException("BridgeConfig.rpc_url is required", code="CONFIG_ERROR")
            w3 = Web3(Web3.HTTPProvider(config.rpc_url, request_kwargs={"timeout": config.timeout}))
        self.config = config
        self.w3 = w3
        self.recorder = recorder
        self._chain_id = chain_id
        self.endpoint = config.rpc_url or "injected"
        self._anchor = None
        self._bridge = None

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    @property
    def chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = self._call("eth_chainId", lambda: self.w3.eth.chain_id)
        return self._chain_id

    @property
    def anchor(self):
        if self._anchor is None:
            if not self.config.anchor_address:
                raise AnchorException("BridgeConfig.anchor_address is required", code="CONFIG_ERROR")
            self._anchor = self.w3.eth.contract(
                address=Web3.to_checksum_address(self.config.anchor_address),
                abi=ANCHOR_ABI,
            )
        return self._anchor

    @property
    def bridge(self):
        if self._bridge is None:
            if not self.config.bridge_address:
                raise AnchorException("BridgeConfig.bridge_address is required", code="CONFIG_ERROR")
            self._bridge = self.w3.eth.contract(
                address=Web3.to_checksum_address(self.config.bridge_address),
                abi=BRIDGE_ABI,
            )
        return self._bridge

    def _retry(self, rpc_method: str, fn: Callable[[], T]) -> tuple[T, int]:
        """
        Run ``fn`` with exponential backoff on transport failures.

        Returns the result and the number of attempts it took.

        Raises:
            NetworkException: Once ``max_retries`` retries are exhausted;
                ``details["attempts"]`` holds the attempt count
            ContractRevertError: If the contract reverts
        """
        attempts = 0
        delay = self.config.retry_delay
        while True:
            attempts += 1
            try:
                return fn(), attempts
            except ContractLogicError as e:
                raise ContractRevertError(f"{rpc_method} reverted: {e}", rpc_method=rpc_method) from e
            except _RETRYABLE as e:
                if attempts <= self.config.max_retries:
                    logger.warning(
                        "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                        rpc_method, attempts, self.config.max_retries + 1, delay, e,
                    )
                    time.sleep(delay)
                    delay *= 2
                    continue
                raise NetworkException(
                    f"{rpc_method} failed after {attempts} attempts: {e}",
                    endpoint=self.endpoint,
                    rpc_method=rpc_method,
                    timed_out=_is_timeout(e),
                    details={"attempts": attempts},
                ) from e

    def _call(
        self,
        rpc_method: str,
        fn: Callable[[], T],
        params: Optional[list[Any]] = None,
    ) -> T:
        """_retry plus a CallRecord for the recorder."""
        started = time.monotonic()
        try:
            result, attempts = self._retry(rpc_method, fn)
        except AnchorException as e:
            self._record_call(rpc_method, params, started, e.details.get("attempts", 1), error=e)
            raise
        self._record_call(rpc_method, params, started, attempts, result=_summarize(result))
        return result

    def _record_call(
        self,
        rpc_method: str,
        params: Optional[list[Any]],
        started: float,
        attempts: int,
        result: Any = None,
        error: Optional[AnchorException] = None,
    ) -> None:
        if self.recorder is None:
            return
        self.recorder.record_call(CallRecord(
            chain_id=self._chain_id,
            endpoint=self.endpoint,
            rpc_method=rpc_method,
            params=list(params or []),
            attempts=attempts,
            duration_ms=(time.monotonic() - started) * 1000,
            result=result,
            error=error.to_error_model() if error is not None else None,
        ))

    def _send_raw(self, signed: Any, resend: bool) -> None:
        try:
            self.w3.eth.send_raw_transaction(signed.raw_transaction)
        except Web3RPCError as e:
            # an earlier attempt reached the node even though its reply was lost
            if resend and any(marker in str(e).lower() for marker in _ALREADY_SENT):
                logger.info("Node already has %s: %s", to_hex(bytes(signed.hash)), e)
                return
            raise

    def _transact(self, rpc_method: str, contract_fn, value: int = 0) -> TxResult:
        """
        Build and sign one transaction, send it, and wait for it to be mined.

        The transaction is signed once. Retries resend the same signed bytes
        and poll the same hash, so a slow node never leads to a second
        transaction with a fresh nonce.

        Raises:
            NetworkException: If sending fails, or the receipt is still
                missing after the retries; ``details["tx_hash"]`` names the
                pending transaction, which wait_for_transaction can poll again
            ContractRevertError: If gas estimation fails or the mined
                transaction reverted
        """
        if not self.config.private_key:
            raise AnchorException(
                f"{rpc_method} needs a signing key (ANCHOR_PRIVATE_KEY)",
                code="CONFIG_ERROR",
            )
        account = self.w3.eth.account.from_key(self.config.private_key)
        chain_id = self.chain_id
        nonce = self._call(
            "eth_getTransactionCount",
            lambda: self.w3.eth.get_transaction_count(account.address, "pending"),
            params=[account.address],
        )
        tx = self._call(
            "eth_estimateGas",
            lambda: contract_fn.build_transaction({
                "from": account.address,
                "nonce": nonce,
                "chainId": chain_id,
                "value": value,
            }),
            params=[rpc_method],
        )
        signed = self.w3.eth.account.sign_transaction(tx, self.config.private_key)
        record = TransactionRecord(
            tx_hash=to_hex(bytes(signed.hash)),
            chain_id=chain_id,
            rpc_method=rpc_method,
            sender=account.address,
            nonce=nonce,
        )
        if self.recorder is not None:
            self.recorder.record_transaction(record)

        sends = [0]

        def send() -> None:
            sends[0] += 1
            self._send_raw(signed, resend=sends[0] > 1)

        try:
            _, record.send_attempts = self._retry("eth_sendRawTransaction", send)
        except AnchorException as e:
            record.send_attempts = e.details.get("attempts", sends[0])
            record.error = e.to_error_model()
            raise
        logger.info("%s sent as %s (nonce %d)", rpc_method, record.tx_hash, nonce)
        return self._await(record)

    def _await(self, record: TransactionRecord) -> TxResult:
        try:
            mined, record.wait_attempts = self._retry(
                "eth_getTransactionReceipt",
                lambda: self.w3.eth.wait_for_transaction_receipt(record.tx_hash, timeout=self.config.timeout),
            )
        except NetworkException as e:
            record.wait_attempts = e.details.get("attempts", 1)
            e.details["tx_hash"] = record.tx_hash
            record.error = e.to_error_model()
            logger.warning("%s %s still pending: %s", record.rpc_method, record.tx_hash, e.message)
            raise
        record.block_number = int(mined["blockNumber"])
        record.status = int(mined["status"])
        record.error = None
        result = TxResult(tx_hash=record.tx_hash, block_number=record.block_number, status=record.status)
        if not result.ok:
            raise ContractRevertError(f"{record.rpc_method} transaction {result.tx_hash} reverted", record.rpc_method)
        logger.info("%s mined in block %d: %s", record.rpc_method, result.block_number, result.tx_hash)
        return result

    def wait_for_transaction(self, tx_hash: str) -> TxResult:
        """
        Poll again for a transaction whose earlier wait gave up. Nothing is
        re-sent.
        """
        record = self.recorder.transaction(tx_hash) if self.recorder is not None else None
        if record is None:
            record = TransactionRecord(tx_hash=tx_hash, chain_id=self._chain_id, rpc_method="eth_getTransactionReceipt")
            if self.recorder is not None:
                self.recorder.record_transaction(record)
        return self._await(record)


    # ------------------------------------------------------------------
    # Anchor contract
    # ------------------------------------------------------------------

    def latest_block(self) -> int:
        return self._call("eth_blockNumber", lambda: self.w3.eth.block_number)

    def deposit(self, commitment: FieldLike, value: int = 0) -> TxResult:
        fn = self.anchor.functions.deposit(_root_bytes(commitment))
        return self._transact("deposit", fn, value=value)

    def withdraw(
        self,
        proof: bytes,
        roots: bytes,
        nullifier_hash: FieldLike,
        recipient: str,
        relayer: str,
        fee: int = 0,
        refund: int = 0,
    ) -> TxResult:
        """Fixed-denomination withdrawal."""
        fn = self.anchor.functions.withdraw(
            proof,
            roots,
            _root_bytes(nullifier_hash),
            Web3.to_checksum_address(recipient),
            Web3.to_checksum_address(relayer),
            fee,
            refund,
        )
        return self._transact("withdraw", fn, value=refund)

    def transact(self, public_inputs: PublicInputs, ext_data: ExtData) -> TxResult:
        """Variable-amount transaction (deposit, transfer or withdrawal)."""
        args = (
            bytes.fromhex(public_inputs.proof[2:]),
            bytes.fromhex(public_inputs.roots[2:]),
            [bytes.fromhex(n[2:]) for n in public_inputs.input_nullifiers],
            [bytes.fromhex(c[2:]) for c in public_inputs.output_commitments],
            int(public_inputs.public_amount, 16),
            bytes.fromhex(public_inputs.ext_data_hash[2:]),
        )
        ext = (
            ext_data.recipient,
            ext_data.ext_amount,
            ext_data.relayer,
            ext_data.fee,
            ext_data.encrypted_output1,
            ext_data.encrypted_output2,
            ext_data.flag,
        )
        value = ext_data.ext_amount if ext_data.ext_amount > 0 else 0
        return self._transact("transact", self.anchor.functions.transact(args, ext), value=value)

    def get_last_root(self) -> FieldElement:
        raw = self._call("getLastRoot", lambda: self.anchor.functions.getLastRoot().call())
        return FieldElement.from_bytes(bytes(raw))

    def is_known_root(self, root: FieldLike) -> bool:
        root_bytes = _root_bytes(root)
        return bool(self._call(
            "isKnownRoot",
            lambda: self.anchor.functions.isKnownRoot(root_bytes).call(),
            params=[to_hex(root_bytes)],
        ))

    def get_latest_neighbor_edges(self) -> list[AnchorEdge]:
        raw = self._call(
            "getLatestNeighborEdges",
            lambda: self.anchor.functions.getLatestNeighborEdges().call(),
        )
        return [
            AnchorEdge(
                dest_chain_id=int(chain_id),
                latest_root=FieldElement.from_bytes(bytes(root)),
                latest_height=int(height),
            )
            for chain_id, root, height in raw
        ]

    def get_deposit_events(self, from_block: int, to_block: int) -> list[DepositEvent]:
        """
        Deposit logs in ``[from_block, to_block]``, in log order.

        Raises:
            NetworkException: On provider failure; ``timed_out`` is set when
                the provider gave up on the range
        """
        params = {
            "address": self.anchor.address,
            "fromBlock": from_block,
            "toBlock": to_block,
            "topics": [to_hex(bytes(Web3.keccak(text=DEPOSIT_EVENT_SIGNATURE)))],
        }
        logs = self._call(
            "eth_getLogs",
            lambda: self.w3.eth.get_logs(params),
            params=[{"fromBlock": from_block, "toBlock": to_block}],
        )
        event = self.anchor.events.Deposit()
        events = []
        for log in logs:
            decoded = event.process_log(log)
            events.append(DepositEvent(
                commitment=FieldElement.from_bytes(bytes(decoded["args"]["commitment"])),
                leaf_index=int(decoded["args"]["leafIndex"]),
                block_number=int(decoded["blockNumber"]),
            ))
        logger.debug("Fetched %d deposits in blocks [%d, %d]", len(events), from_block, to_block)
        return events

    # ------------------------------------------------------------------
    # Bridge contract
    # ------------------------------------------------------------------

    def vote_proposal(
        self,
        origin_chain_id: int,
        nonce: int,
        resource_id: bytes,
        data_hash: bytes,
    ) -> TxResult:
        fn = self.bridge.functions.voteProposal(origin_chain_id, nonce, resource_id, data_hash)
        return self._transact("voteProposal", fn)

    def execute_proposal(
        self,
        origin_chain_id: int,
        nonce: int,
        data: bytes,
        resource_id: bytes,
    ) -> TxResult:
        fn = self.bridge.functions.executeProposal(origin_chain_id, nonce, data, resource_id)
        return self._transact("executeProposal", fn)


def _summarize(result: Any) -> Any:
    if isinstance(result, (bytes, bytearray)):
        return to_hex(bytes(result))
    if isinstance(result, (bool, int, str)) or result is None:
        return result
    if isinstance(result, (list, tuple, dict)):
        return {"count": len(result)}
    return str(result)


__all__ = [
    "BridgeContractClient",
    "ContractRevertError",
    "DepositEvent",
    "TxResult",
    "ANCHOR_ABI",
    "BRIDGE_ABI",
    "DEPOSIT_EVENT_SIGNATURE",
]
