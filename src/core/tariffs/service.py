# src/core/tariffs/service.py
"""
Поиск тарифа по ID с кэшем активных тарифов в Redis.
"""

from __future__ import annotations

from typing import Any, Optional
from uuid import UUID

from src.common.constants import TypeMsg
from src.common.exceptions import TariffNotFound
from src.common.logger import log_info, log_warning
from src.core.tariffs.models import Tariff
from src.core.tariffs.repository import TariffRepository
from src.infra.database import DatabaseManager
from src.infra.redis_client import RedisClient


class TariffService:
    """
    Справочник тарифов.

    Активные тарифы читаются через кэш (TTL из redis_ttl.TARIFF_TTL).
    Недоступность Redis не ломает поиск: запрос уходит в БД.
    """

    def __init__(
        self,
        db: DatabaseManager,
        redis: Optional[RedisClient] = None,
        cache_ttl: Optional[int] = None,
    ) -> None:
        self._repo = TariffRepository(db)
        self._redis = redis
        if cache_ttl is None:
            from src.config import settings
            cache_ttl = settings.redis_ttl.TARIFF_TTL
        self._cache_ttl = cache_ttl

    @staticmethod
    def _cache_key(tariff_id: UUID) -> str:
        return f"tariff:{tariff_id}"

    async def _from_cache(self, tariff_id: UUID) -> Optional[Tariff]:
        if self._redis is None:
            return None
        try:
            return await self._redis.get_model(self._cache_key(tariff_id), Tariff)
        except Exception as e:
            await log_warning(f"Кэш тарифов недоступен: {e}")
            return None

    async def _to_cache(self, tariff: Tariff) -> None:
        if self._redis is None:
            return
        try:
            await self._redis.set_model(self._cache_key(tariff.id), tariff, ttl=self._cache_ttl)
        except Exception as e:
            await log_warning(f"Не удалось закэшировать тариф {tariff.id}: {e}")

    async def get_active(self, tariff_id: UUID) -> Tariff:
        """
        Возвращает активный тариф.

        Raises:
            TariffNotFound: тарифа нет или он выключен
        """
        cached = await self._from_cache(tariff_id)
        if cached is not None and cached.is_active:
            return cached

        tariff = await self._repo.get(tariff_id, active_only=True)
        if tariff is None:
            await log_info(f"Активный тариф {tariff_id} не найден", type_msg=TypeMsg.DEBUG)
            raise TariffNotFound(f"Активный тариф {tariff_id} не найден", tariff_id=str(tariff_id))

        await self._to_cache(tariff)
        return tariff

    async def get_current(self, tariff_id: UUID, conn: Any = None) -> Tariff:
        """
        Тариф в том виде, в каком он хранится сейчас, минуя кэш.
        Используется при завершении заказа, в том числе для выключенных тарифов.
        """
        tariff = await self._repo.get(tariff_id, conn, active_only=False)
        if tariff is None:
            raise TariffNotFound(f"Тариф {tariff_id} не найден", tariff_id=str(tariff_id))
        return tariff

