# src/core/tariffs/repository.py
"""
Репозиторий тарифов (только чтение).
"""

from __future__ import annotations

from typing import Any, Optional
from uuid import UUID

from src.core.tariffs.models import Tariff
from src.infra.database import DatabaseManager

_TARIFF_COLUMNS = """
    id, category, name, base_price, price_per_km, price_per_minute,
    waiting_price, is_active, created_at, updated_at
"""


class TariffRepository:
    """Репозиторий тарифов."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def get(
        self,
        tariff_id: UUID,
        conn: Any = None,
        *,
        active_only: bool = True,
    ) -> Optional[Tariff]:
        """
        Получает тариф по ID.

        Args:
            tariff_id: UUID тарифа
            conn: Соединение открытой транзакции (если есть)
            active_only: Возвращать только активный тариф
        """
        executor = conn or self._db
        query = f"SELECT {_TARIFF_COLUMNS} FROM tariffs WHERE id = $1"
        if active_only:
            query += " AND is_active = TRUE"

        row = await executor.fetchrow(query, tariff_id)
        if row is None:
            return None
        return Tariff.model_validate(dict(row))
