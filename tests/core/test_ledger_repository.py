# tests/core/test_ledger_repository.py
"""
Тесты для репозитория журнала операций.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from src.common.constants import TransactionType
from src.core.ledger import LedgerRepository, TransactionFilters
from src.core.ledger.models import DriverTransaction


@pytest.fixture
def repo(mock_db) -> LedgerRepository:
    return LedgerRepository(mock_db)


class TestWrites:
    @pytest.mark.asyncio
    async def test_lock_driver(self, repo: LedgerRepository, mock_db) -> None:
        driver_id = uuid4()
        mock_db.fetchrow.return_value = {"id": driver_id, "balance": Decimal("12.50")}

        locked = await repo.lock_driver(mock_db, driver_id)

        assert locked.balance == Decimal("12.50")
        assert "FOR UPDATE" in mock_db.fetchrow.call_args.args[0]

    @pytest.mark.asyncio
    async def test_lock_missing_driver(self, repo: LedgerRepository, mock_db) -> None:
        assert await repo.lock_driver(mock_db, uuid4()) is None

    @pytest.mark.asyncio
    async def test_insert_returns_generated_fields(self, repo: LedgerRepository, mock_db) -> None:
        tx_id, created_at = uuid4(), datetime.now(timezone.utc)
        mock_db.fetchrow.return_value = {"id": tx_id, "seq": 7, "created_at": created_at}
        entry = DriverTransaction(
            driver_id=uuid4(),
            amount=Decimal("5.00"),
            type=TransactionType.BONUS,
            balance_after=Decimal("5.00"),
        )

        saved = await repo.insert_transaction(mock_db, entry)

        assert (saved.id, saved.seq, saved.created_at) == (tx_id, 7, created_at)
        assert mock_db.fetchrow.call_args.args[4] == "bonus"
        assert entry.id is None


class TestListAll:
    """Фильтры общего списка операций."""

    @pytest.mark.asyncio
    async def test_all_filters(self, repo: LedgerRepository, mock_db) -> None:
        driver_id = uuid4()
        mock_db.fetchval.return_value = 0
        filters = TransactionFilters(
            type=TransactionType.PENALTY,
            driver_id=driver_id,
            date_from=date(2024, 3, 1),
            date_to=date(2024, 3, 31),
            search="100%_",
        )

        await repo.list_all(filters, limit=20, offset=0)

        query, *params = mock_db.fetchval.call_args.args
        assert "t.type = $1" in query
        assert "t.driver_id = $2" in query
        assert "t.created_at >= $3" in query
        assert "t.created_at < $4" in query
        assert "t.description ILIKE $5" in query
        assert params[0] == "penalty"
        assert params[3] == datetime(2024, 4, 1, tzinfo=timezone.utc)
        assert params[4] == "%100\\%\\_%"

        list_query, *list_params = mock_db.fetch.call_args.args
        assert "LIMIT $6 OFFSET $7" in list_query
        assert list_params[-2:] == [20, 0]

    def test_date_range_validated(self) -> None:
        with pytest.raises(ValueError):
            TransactionFilters(date_from=date(2024, 5, 2), date_to=date(2024, 5, 1))

    @pytest.mark.asyncio
    async def test_history_order(self, repo: LedgerRepository, mock_db) -> None:
        await repo.list_for_driver(uuid4(), 10, 0)
        assert "ORDER BY t.created_at DESC, t.seq DESC" in mock_db.fetch.call_args.args[0]

    @pytest.mark.asyncio
    async def test_chain_order(self, repo: LedgerRepository, mock_db) -> None:
        await repo.list_chain(uuid4())
        assert "ORDER BY t.created_at ASC, t.seq ASC" in mock_db.fetch.call_args.args[0]
