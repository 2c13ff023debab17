"""
Receipts

Audit records of a relayer's chain calls, transactions, relayed proposals
and proving runs.
"""

from .models import (
    CallRecord,
    ProofRecord,
    ProposalRecord,
    TransactionRecord,
)
from .recorder import ReceiptRecorder

__all__ = [
    "CallRecord",
    "TransactionRecord",
    "ProposalRecord",
    "ProofRecord",
    "ReceiptRecorder",
]
