# src/core/ledger/chain.py
"""
Чистые функции над цепочкой balance_after.

Для одного водителя записи, упорядоченные по времени создания,
образуют цепочку: balance_after[i] = balance_after[i-1] ± amount[i].
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Sequence
from uuid import UUID

from src.common.constants import TransactionType
from src.common.money import ZERO, to_money
from src.core.ledger.models import ChainMismatch, DriverTransaction, ReconciliationReport


def next_balance(balance: Decimal, operation: TransactionType, amount: Decimal) -> Decimal:
    """Баланс после операции, округлённый до копеек."""
    delta = amount if operation.is_credit else -amount
    return to_money(balance + delta)


def replay_balances(entries: Iterable[DriverTransaction], opening: Decimal = ZERO) -> list[Decimal]:
    """Пересчитывает баланс после каждой записи, начиная с opening."""
    running = opening
    balances: list[Decimal] = []
    for entry in entries:
        running = next_balance(running, entry.type, entry.amount)
        balances.append(running)
    return balances


def reconcile_chain(
    driver_id: UUID,
    entries: Sequence[DriverTransaction],
    current_balance: Decimal,
) -> ReconciliationReport:
    """
    Сверяет журнал водителя (от старых к новым).

    Каждая запись проверяется относительно сохранённого balance_after
    предыдущей: испорченная запись даёт расхождение у себя и у следующей,
    но не у всего хвоста журнала.
    Дрейф: текущий баланс минус баланс, пересчитанный с нуля.
    """
    mismatches: list[ChainMismatch] = []
    previous = ZERO
    for entry in entries:
        expected = next_balance(previous, entry.type, entry.amount)
        if expected != entry.balance_after:
            mismatches.append(ChainMismatch(
                transaction_id=entry.id,
                expected_balance_after=expected,
                stored_balance_after=entry.balance_after,
            ))
        previous = entry.balance_after

    replayed = replay_balances(entries)
    replayed_balance = replayed[-1] if replayed else ZERO
    current = to_money(current_balance)

    return ReconciliationReport(
        driver_id=driver_id,
        entries_checked=len(entries),
        mismatches=mismatches,
        replayed_balance=replayed_balance,
        current_balance=current,
        drift=current - replayed_balance,
    )
