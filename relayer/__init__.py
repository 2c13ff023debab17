"""
Relayer

Chain-facing side of the anchor core: contract access, deposit resync,
root relaying between linked anchors and the withdrawal pipeline.
"""

from relayer.bridge_client import (
    BridgeContractClient,
    ContractRevertError,
    DepositEvent,
    TxResult,
)
from relayer.event_sync import (
    DepositEventSource,
    fetch_deposit_events,
    fetch_deposit_leaves,
    order_deposit_leaves,
    resync_tree,
)
from relayer.anchor_sync import (
    Anchor,
    AnchorSnapshot,
    AnchorSynchronizer,
    RelayedProposal,
    handle_executed_proposal,
)
from relayer.pipeline import (
    TransactionRequest,
    TransactionResult,
    WithdrawalPipeline,
)

__all__ = [
    "BridgeContractClient",
    "ContractRevertError",
    "DepositEvent",
    "TxResult",
    "DepositEventSource",
    "fetch_deposit_events",
    "fetch_deposit_leaves",
    "order_deposit_leaves",
    "resync_tree",
    "Anchor",
    "AnchorSnapshot",
    "AnchorSynchronizer",
    "RelayedProposal",
    "handle_executed_proposal",
    "TransactionRequest",
    "TransactionResult",
    "WithdrawalPipeline",
]
