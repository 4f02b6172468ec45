# src/core/ledger/__init__.py
"""
Баланс водителей и журнал операций.
"""

from src.core.ledger.chain import next_balance, reconcile_chain, replay_balances
from src.core.ledger.models import (
    DriverTransaction,
    LedgerEntryResult,
    ReconciliationReport,
    TransactionFilters,
    TransactionView,
)
from src.core.ledger.repository import LedgerRepository
from src.core.ledger.service import DriverLedgerService

__all__ = [
    "DriverLedgerService",
    "LedgerRepository",
    "DriverTransaction",
    "TransactionView",
    "LedgerEntryResult",
    "TransactionFilters",
    "ReconciliationReport",
    "next_balance",
    "replay_balances",
    "reconcile_chain",
]
