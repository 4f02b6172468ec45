# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.

Кроме моков инфраструктуры здесь есть хранилище в памяти с транзакциями:
FakeDatabase.transaction() откатывает изменения по журналу при исключении
и снимает построчные блокировки в конце, как PostgreSQL.
"""

from __future__ import annotations

import asyncio
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, AsyncGenerator, Callable, Optional
from unittest.mock import AsyncMock
from uuid import UUID, uuid4

import pytest

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("DB_PASSWORD", "test_password")
os.environ.setdefault("REDIS_PASSWORD", "")
os.environ.setdefault("JWT_SECRET", "test_jwt_secret")

from src.common.constants import OrderStatus, UserRole  # noqa: E402
from src.core.ledger import DriverLedgerService  # noqa: E402
from src.core.ledger.models import DriverBalance, DriverTransaction, TransactionFilters, TransactionView  # noqa: E402
from src.core.orders import Actor, Order, OrderFilters, OrderListItem, OrderRoutePoint, OrderService  # noqa: E402
from src.core.settlement import OrderLedgerCoordinator  # noqa: E402
from src.core.tariffs import Tariff  # noqa: E402


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def config_path(project_root: Path) -> Path:
    """Путь к файлу конфигурации."""
    return project_root / "config" / "config.json"


@pytest.fixture
def mock_config() -> dict[str, Any]:
    """Мок конфигурации для тестов."""
    return {
        "PROJECT_NAME": "ride_ledger_test",
        "VERSION": "1.0.0-test",
        "DEBUG": True,
        "LOG_LEVEL": "DEBUG",
        "ENVIRONMENT": "test",
        "ORDERS_API_HOST": "127.0.0.1",
        "ORDERS_API_PORT": 9000,
        "LOG_TO_FILE": False,
        "LOG_FILE_PATH": "logs/test.log",
        "LOG_FORMAT": "json",
        "DB_HOST": "localhost",
        "DB_PORT": 5432,
        "DB_NAME": "ride_ledger_test",
        "DB_USER": "postgres",
        "DB_MIN_POOL_SIZE": 1,
        "DB_MAX_POOL_SIZE": 5,
        "REDIS_HOST": "localhost",
        "REDIS_PORT": 6379,
        "REDIS_DB": 1,
        "TARIFF_TTL": 60,
        "RABBITMQ_HOST": "localhost",
        "RABBITMQ_EXCHANGE": "ride_ledger.test",
        "JWT_ALGORITHM": "HS256",
        "DEFAULT_ESTIMATE_DISTANCE_KM": 5.0,
        "DEFAULT_ESTIMATE_DURATION_MIN": 10.0,
        "CURRENCY": "KGS",
        "CHARGE_COMMISSION_ON_FINISH": True,
        "COMMISSION_PERCENT": 10.0,
        "ALLOW_NEGATIVE_BALANCE": False,
        "PUBLIC_NUMBER_MIN": 100,
        "PUBLIC_NUMBER_MAX": 999,
        "OPERATION_TIMEOUT": 5.0,
        "MAX_ROUTE_POINTS": 3,
        "MAX_PAGE_SIZE": 50,
    }


# =============================================================================
# ФИКСТУРЫ ИНФРАСТРУКТУРЫ (МОКИ)
# =============================================================================

@pytest.fixture
def mock_db() -> AsyncMock:
    """Мок менеджера базы данных."""
    db = AsyncMock()
    db.fetchrow = AsyncMock(return_value=None)
    db.fetch = AsyncMock(return_value=[])
    db.execute = AsyncMock(return_value="UPDATE 1")
    db.executemany = AsyncMock(return_value=None)
    db.fetchval = AsyncMock(return_value=None)
    return db


@pytest.fixture
def mock_redis() -> AsyncMock:
    """Мок клиента Redis."""
    redis = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock(return_value=True)
    redis.delete = AsyncMock(return_value=1)
    redis.get_model = AsyncMock(return_value=None)
    redis.set_model = AsyncMock(return_value=True)
    return redis


@pytest.fixture
def mock_event_bus() -> AsyncMock:
    """Мок шины событий."""
    event_bus = AsyncMock()
    event_bus.publish = AsyncMock(return_value=True)
    event_bus.is_connected = True
    return event_bus


# =============================================================================
# ХРАНИЛИЩЕ В ПАМЯТИ
# =============================================================================

def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class InMemoryStore:
    """Таблицы tariffs, drivers, orders, order_route_points, driver_transactions."""
    tariffs: dict[UUID, Tariff] = field(default_factory=dict)
    drivers: dict[UUID, Decimal] = field(default_factory=dict)
    orders: dict[UUID, Order] = field(default_factory=dict)
    route_points: dict[UUID, list[OrderRoutePoint]] = field(default_factory=dict)
    transactions: list[DriverTransaction] = field(default_factory=list)
    row_locks: dict[tuple[str, UUID], asyncio.Lock] = field(default_factory=dict)
    seq: int = 0

    def add_tariff(self, **overrides: Any) -> Tariff:
        data = {
            "id": uuid4(),
            "name": "Эконом",
            "base_price": Decimal("60.00"),
            "price_per_km": Decimal("12.00"),
            "price_per_minute": Decimal("3.00"),
        }
        data.update(overrides)
        tariff = Tariff(**data)
        self.tariffs[tariff.id] = tariff
        return tariff

    def add_driver(self, balance: Decimal | str = "0.00") -> UUID:
        driver_id = uuid4()
        self.drivers[driver_id] = Decimal(balance)
        return driver_id

    def chain(self, driver_id: UUID) -> list[DriverTransaction]:
        return sorted((t for t in self.transactions if t.driver_id == driver_id), key=lambda t: t.seq)


class FakeConnection:
    """Соединение транзакции: журнал отката и взятые блокировки."""

    def __init__(self, store: InMemoryStore) -> None:
        self.store = store
        self.undo: list[Callable[[], None]] = []
        self.held: list[asyncio.Lock] = []

    async def lock_row(self, table: str, row_id: UUID) -> None:
        lock = self.store.row_locks.setdefault((table, row_id), asyncio.Lock())
        if lock in self.held:
            return
        await lock.acquire()
        self.held.append(lock)


class FakeDatabase:
    """Замена DatabaseManager поверх InMemoryStore."""

    def __init__(self, store: InMemoryStore) -> None:
        self.store = store
        self.transactions_started = 0

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[FakeConnection, None]:
        self.transactions_started += 1
        conn = FakeConnection(self.store)
        try:
            yield conn
        except BaseException:
            for undo in reversed(conn.undo):
                undo()
            raise
        finally:
            for lock in conn.held:
                lock.release()
            conn.held.clear()


class FakeTariffRepository:
    def __init__(self, store: InMemoryStore) -> None:
        self.store = store

    async def get(self, tariff_id: UUID, conn: Any = None, *, active_only: bool = True) -> Optional[Tariff]:
        tariff = self.store.tariffs.get(tariff_id)
        if tariff is None or (active_only and not tariff.is_active):
            return None
        return tariff


class FakeLedgerRepository:
    """LedgerRepository поверх InMemoryStore."""

    def __init__(self, store: InMemoryStore) -> None:
        self.store = store

    async def lock_driver(self, conn: FakeConnection, driver_id: UUID) -> Optional[DriverBalance]:
        if driver_id not in self.store.drivers:
            return None
        await conn.lock_row("drivers", driver_id)
        await asyncio.sleep(0)
        return DriverBalance(driver_id=driver_id, balance=self.store.drivers[driver_id])

    async def update_balance(self, conn: FakeConnection, driver_id: UUID, balance: Decimal) -> None:
        previous = self.store.drivers[driver_id]
        await asyncio.sleep(0)
        self.store.drivers[driver_id] = balance
        conn.undo.append(lambda: self.store.drivers.__setitem__(driver_id, previous))

    async def insert_transaction(self, conn: FakeConnection, entry: DriverTransaction) -> DriverTransaction:
        self.store.seq += 1
        saved = entry.model_copy(update={"id": uuid4(), "seq": self.store.seq, "created_at": _now()})
        self.store.transactions.append(saved)
        conn.undo.append(lambda: self.store.transactions.remove(saved))
        return saved

    async def count_for_driver(self, driver_id: UUID) -> int:
        return len(self.store.chain(driver_id))

    async def list_for_driver(self, driver_id: UUID, limit: int, offset: int) -> list[DriverTransaction]:
        return list(reversed(self.store.chain(driver_id)))[offset:offset + limit]

    async def list_chain(self, driver_id: UUID, conn: Any = None) -> list[DriverTransaction]:
        return self.store.chain(driver_id)

    async def list_all(
        self,
        filters: TransactionFilters,
        limit: int,
        offset: int,
    ) -> tuple[list[TransactionView], int]:
        rows = [
            t for t in sorted(self.store.transactions, key=lambda t: t.seq, reverse=True)
            if (filters.type is None or t.type == filters.type)
            and (filters.driver_id is None or t.driver_id == filters.driver_id)
        ]
        views = [TransactionView(**t.model_dump()) for t in rows[offset:offset + limit]]
        return views, len(rows)


class FakeOrderRepository:
    """OrderRepository поверх InMemoryStore с теми же условиями на статус."""

    def __init__(self, store: InMemoryStore) -> None:
        self.store = store

    def _replace(self, conn: FakeConnection, order_id: UUID, **changes: Any) -> Order:
        previous = self.store.orders[order_id]
        updated = previous.model_copy(update={**changes, "updated_at": _now()})
        self.store.orders[order_id] = updated
        conn.undo.append(lambda: self.store.orders.__setitem__(order_id, previous))
        return updated

    async def get(self, order_id: UUID, conn: Any = None, *, for_update: bool = False) -> Optional[Order]:
        if order_id not in self.store.orders:
            return None
        if for_update:
            await conn.lock_row("orders", order_id)
        return self.store.orders[order_id]

    async def get_route_points(self, order_id: UUID, conn: Any = None) -> list[OrderRoutePoint]:
        return sorted(self.store.route_points.get(order_id, []), key=lambda p: p.sequence)

    async def driver_exists(self, driver_id: UUID, conn: Any = None) -> bool:
        return driver_id in self.store.drivers

    async def find(self, filters: OrderFilters, limit: int, offset: int) -> tuple[list[OrderListItem], int]:
        rows = [
            o for o in self.store.orders.values()
            if (filters.status is None or o.status == filters.status)
            and (filters.driver_id is None or o.driver_id == filters.driver_id)
            and (filters.client_id is None or o.client_id == filters.client_id)
        ]
        rows.sort(key=lambda o: o.created_at, reverse=True)
        items = [
            OrderListItem(**o.model_dump(), tariff_name=self.store.tariffs[o.tariff_id].name)
            for o in rows[offset:offset + limit]
        ]
        return items, len(rows)

    async def insert(self, conn: FakeConnection, order: Order) -> Order:
        now = _now()
        saved = order.model_copy(update={"created_at": now, "updated_at": now})
        self.store.orders[saved.id] = saved
        conn.undo.append(lambda: self.store.orders.pop(saved.id, None))
        return saved

    async def insert_route_points(self, conn: FakeConnection, points: list[OrderRoutePoint]) -> None:
        for point in points:
            saved = point.model_copy(update={"id": uuid4()})
            self.store.route_points.setdefault(point.order_id, []).append(saved)
            conn.undo.append(lambda p=saved: self.store.route_points[p.order_id].remove(p))

    async def assign_driver(self, conn: FakeConnection, order_id: UUID, driver_id: UUID) -> Optional[Order]:
        order = self.store.orders.get(order_id)
        if order is None or order.status != OrderStatus.NEW or order.driver_id is not None:
            return None
        return self._replace(conn, order_id, driver_id=driver_id, status=OrderStatus.DRIVER_ASSIGNED)

    async def update_status(
        self,
        conn: FakeConnection,
        order_id: UUID,
        expected: OrderStatus,
        new: OrderStatus,
        *,
        started_at: Optional[datetime] = None,
        cancel_reason: Optional[str] = None,
    ) -> Optional[Order]:
        order = self.store.orders.get(order_id)
        if order is None or order.status != expected:
            return None
        return self._replace(
            conn,
            order_id,
            status=new,
            started_at=started_at or order.started_at,
            cancel_reason=cancel_reason or order.cancel_reason,
        )

    async def complete(
        self,
        conn: FakeConnection,
        order_id: UUID,
        *,
        final_price: Decimal,
        distance_km: float,
        duration_min: float,
        is_paid: bool,
        finished_at: datetime,
    ) -> Optional[Order]:
        order = self.store.orders.get(order_id)
        if order is None or order.status != OrderStatus.IN_PROGRESS or order.final_price is not None:
            return None
        return self._replace(
            conn,
            order_id,
            status=OrderStatus.COMPLETED,
            final_price=final_price,
            distance_km=distance_km,
            duration_min=duration_min,
            is_paid=is_paid,
            finished_at=finished_at,
        )


# =============================================================================
# ФИКСТУРЫ СЕРВИСОВ НА ХРАНИЛИЩЕ В ПАМЯТИ
# =============================================================================

@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def fake_db(store: InMemoryStore) -> FakeDatabase:
    return FakeDatabase(store)


@pytest.fixture
def tariff(store: InMemoryStore) -> Tariff:
    """Тариф base=60, per_km=12, per_min=3."""
    return store.add_tariff()


@pytest.fixture
def driver_id(store: InMemoryStore) -> UUID:
    """Водитель с нулевым балансом."""
    return store.add_driver()


@pytest.fixture
def client_actor() -> Actor:
    return Actor(id=uuid4(), role=UserRole.CLIENT)


@pytest.fixture
def ledger_service(fake_db: FakeDatabase, store: InMemoryStore, mock_event_bus: AsyncMock) -> DriverLedgerService:
    """Сервис баланса, отрицательный баланс разрешён."""
    service = DriverLedgerService(fake_db, mock_event_bus, allow_negative_balance=True)
    service._repo = FakeLedgerRepository(store)
    return service


@pytest.fixture
def order_service(fake_db: FakeDatabase, store: InMemoryStore, mock_event_bus: AsyncMock) -> OrderService:
    """Сервис заказов без Redis."""
    service = OrderService(fake_db, None, mock_event_bus)
    service._repo = FakeOrderRepository(store)
    service._tariffs._repo = FakeTariffRepository(store)
    return service


@pytest.fixture
def cached_order_service(
    fake_db: FakeDatabase, store: InMemoryStore, mock_redis: AsyncMock, mock_event_bus: AsyncMock,
) -> OrderService:
    """Сервис заказов с кэшем тарифов на mock_redis."""
    service = OrderService(fake_db, mock_redis, mock_event_bus)
    service._repo = FakeOrderRepository(store)
    service._tariffs._repo = FakeTariffRepository(store)
    return service


@pytest.fixture
def coordinator(
    fake_db: FakeDatabase,
    order_service: OrderService,
    ledger_service: DriverLedgerService,
) -> OrderLedgerCoordinator:
    """Координатор с комиссией 10%."""
    return OrderLedgerCoordinator(
        fake_db,
        order_service,
        ledger_service,
        charge_commission=True,
        commission_percent=Decimal("10"),
    )

