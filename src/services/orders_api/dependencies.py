# src/services/orders_api/dependencies.py
"""
Dependency Injection для Orders API.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from fastapi import Query

from src.shared.models.common import PaginationParams

if TYPE_CHECKING:
    from src.core.ledger import DriverLedgerService
    from src.core.orders import OrderService
    from src.core.settlement import OrderLedgerCoordinator
    from src.infra.database import DatabaseManager
    from src.infra.event_bus import EventBus
    from src.infra.redis_client import RedisClient


# Синглтоны для инфраструктуры
_db: "DatabaseManager | None" = None
_redis: "RedisClient | None" = None
_event_bus: "EventBus | None" = None

# Синглтоны для сервисов
_order_service: "OrderService | None" = None
_ledger_service: "DriverLedgerService | None" = None
_coordinator: "OrderLedgerCoordinator | None" = None


async def init_dependencies(
    db: "DatabaseManager",
    redis: "Optional[RedisClient]",
    event_bus: "EventBus",
) -> None:
    """Инициализировать зависимости при старте приложения. Redis необязателен."""
    global _db, _redis, _event_bus
    _db = db
    _redis = redis
    _event_bus = event_bus


def get_db() -> "DatabaseManager":
    if _db is None:
        raise RuntimeError("База данных не инициализирована. Вызовите init_dependencies()")
    return _db


def get_event_bus() -> "EventBus":
    if _event_bus is None:
        raise RuntimeError("EventBus не инициализирован. Вызовите init_dependencies()")
    return _event_bus


def get_order_service() -> "OrderService":
    """Получить сервис заказов."""
    global _order_service

    if _order_service is None:
        from src.core.orders import OrderService
        _order_service = OrderService(db=get_db(), redis=_redis, event_bus=get_event_bus())

    return _order_service


def get_ledger_service() -> "DriverLedgerService":
    """Получить сервис баланса водителей."""
    global _ledger_service

    if _ledger_service is None:
        from src.core.ledger import DriverLedgerService
        _ledger_service = DriverLedgerService(db=get_db(), event_bus=get_event_bus())

    return _ledger_service


def get_coordinator() -> "OrderLedgerCoordinator":
    """Получить координатор заказа и баланса."""
    global _coordinator

    if _coordinator is None:
        from src.core.settlement import OrderLedgerCoordinator
        _coordinator = OrderLedgerCoordinator(
            db=get_db(),
            orders=get_order_service(),
            ledger=get_ledger_service(),
        )

    return _coordinator


def get_pagination(
    page: int = Query(1, ge=1, description="Номер страницы"),
    limit: int = Query(20, ge=1, description="Размер страницы"),
) -> PaginationParams:
    """Пагинация из query-параметров; размер страницы ограничен MAX_PAGE_SIZE."""
    from src.config import settings
    return PaginationParams(page=page, limit=min(limit, settings.orders.MAX_PAGE_SIZE))


async def cleanup_dependencies() -> None:
    """Очистить ресурсы при остановке приложения."""
    global _db, _redis, _event_bus, _order_service, _ledger_service, _coordinator
    _order_service = None
    _ledger_service = None
    _coordinator = None
    _db = None
    _redis = None
    _event_bus = None
