# src/core/ledger/repository.py
"""
Репозиторий баланса водителей и журнала операций.

Методы записи принимают соединение открытой транзакции:
блокировка строки водителя живёт до её завершения.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from src.core.ledger.models import (
    DriverBalance,
    DriverTransaction,
    TransactionFilters,
    TransactionView,
)
from src.infra.database import DatabaseManager

_TX_COLUMNS = """
    t.id, t.seq, t.driver_id, t.order_id, t.amount, t.type,
    t.description, t.balance_after, t.created_at
"""


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class LedgerRepository:
    """Репозиторий журнала операций."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    # =========================================================================
    # ЗАПИСЬ (только внутри транзакции)
    # =========================================================================

    async def lock_driver(self, conn: Any, driver_id: UUID) -> Optional[DriverBalance]:
        """Блокирует строку водителя (FOR UPDATE) и возвращает его баланс."""
        row = await conn.fetchrow(
            "SELECT id, balance FROM drivers WHERE id = $1 FOR UPDATE",
            driver_id,
        )
        if row is None:
            return None
        return DriverBalance(driver_id=row["id"], balance=row["balance"])

    async def update_balance(self, conn: Any, driver_id: UUID, balance: Decimal) -> None:
        await conn.execute(
            "UPDATE drivers SET balance = $2, updated_at = NOW() WHERE id = $1",
            driver_id,
            balance,
        )

    async def insert_transaction(self, conn: Any, entry: DriverTransaction) -> DriverTransaction:
        """Добавляет запись в журнал. Возвращает её с id, seq и created_at."""
        row = await conn.fetchrow(
            """
            INSERT INTO driver_transactions (
                driver_id, order_id, amount, type, description, balance_after
            )
            VALUES ($1, $2, $3, $4, $5, $6)
            RETURNING id, seq, created_at
            """,
            entry.driver_id,
            entry.order_id,
            entry.amount,
            entry.type.value,
            entry.description,
            entry.balance_after,
        )
        return entry.model_copy(update={
            "id": row["id"],
            "seq": row["seq"],
            "created_at": row["created_at"],
        })

    # =========================================================================
    # ЧТЕНИЕ
    # =========================================================================

    async def count_for_driver(self, driver_id: UUID) -> int:
        return await self._db.fetchval(
            "SELECT COUNT(*) FROM driver_transactions WHERE driver_id = $1",
            driver_id,
        )

    async def list_for_driver(self, driver_id: UUID, limit: int, offset: int) -> list[DriverTransaction]:
        """Записи водителя, новые первыми."""
        rows = await self._db.fetch(
            f"""
            SELECT {_TX_COLUMNS}
            FROM driver_transactions t
            WHERE t.driver_id = $1
            ORDER BY t.created_at DESC, t.seq DESC
            LIMIT $2 OFFSET $3
            """,
            driver_id,
            limit,
            offset,
        )
        return [DriverTransaction.model_validate(dict(row)) for row in rows]

    async def list_chain(self, driver_id: UUID, conn: Any = None) -> list[DriverTransaction]:
        """Весь журнал водителя в порядке применения (старые первыми)."""
        executor = conn or self._db
        rows = await executor.fetch(
            f"""
            SELECT {_TX_COLUMNS}
            FROM driver_transactions t
            WHERE t.driver_id = $1
            ORDER BY t.created_at ASC, t.seq ASC
            """,
            driver_id,
        )
        return [DriverTransaction.model_validate(dict(row)) for row in rows]

    async def list_all(
        self,
        filters: TransactionFilters,
        limit: int,
        offset: int,
    ) -> tuple[list[TransactionView], int]:
        """
        Общий список операций с данными водителя и заказа.

        Returns:
            (записи страницы, общее количество)
        """
        clauses: list[str] = []
        params: list[Any] = []

        def add(clause: str, value: Any) -> None:
            params.append(value)
            clauses.append(clause.format(n=len(params)))

        if filters.type is not None:
            add("t.type = ${n}", filters.type.value)
        if filters.driver_id is not None:
            add("t.driver_id = ${n}", filters.driver_id)
        if filters.date_from is not None:
            add("t.created_at >= ${n}", datetime.combine(filters.date_from, time.min, tzinfo=timezone.utc))
        if filters.date_to is not None:
            end = datetime.combine(filters.date_to + timedelta(days=1), time.min, tzinfo=timezone.utc)
            add("t.created_at < ${n}", end)
        if filters.search:
            add("t.description ILIKE ${n}", f"%{_escape_like(filters.search)}%")

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        total = await self._db.fetchval(
            f"SELECT COUNT(*) FROM driver_transactions t {where}",
            *params,
        )

        rows = await self._db.fetch(
            f"""
            SELECT {_TX_COLUMNS},
                   d.first_name AS driver_first_name,
                   d.last_name AS driver_last_name,
                   d.phone AS driver_phone,
                   d.license_number AS driver_license_number,
                   o.public_number AS order_public_number
            FROM driver_transactions t
            JOIN drivers d ON d.id = t.driver_id
            LEFT JOIN orders o ON o.id = t.order_id
            {where}
            ORDER BY t.created_at DESC, t.seq DESC
            LIMIT ${len(params) + 1} OFFSET ${len(params) + 2}
            """,
            *params,
            limit,
            offset,
        )
        return [TransactionView.model_validate(dict(row)) for row in rows], total
