# src/core/settlement/__init__.py
"""
Завершение заказа вместе с удержанием комиссии и ручные операции по балансу.
"""

from src.core.settlement.service import OrderLedgerCoordinator, SettlementResult

__all__ = [
    "OrderLedgerCoordinator",
    "SettlementResult",
]
