# src/core/orders/repository.py
"""
Репозиторий для работы с заказами в БД.

Изменения статуса защищены условием на текущий статус:
UPDATE ... WHERE id = $1 AND status = $2. Если строка не обновилась,
значит заказ успели изменить, и метод возвращает None.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from src.common.constants import OrderStatus
from src.core.orders.models import (
    Order,
    OrderFilters,
    OrderListItem,
    OrderRoutePoint,
)
from src.infra.database import DatabaseManager

_ORDER_COLUMNS = """
    id, public_number, status, client_id, driver_id, tariff_id, dispatcher_id,
    from_address, from_lat, from_lng, to_address, to_lat, to_lng,
    estimated_price, final_price, payment_method, is_paid,
    distance_km, duration_min, comment, cancel_reason,
    scheduled_at, started_at, finished_at, created_at, updated_at
"""


class OrderRepository:
    """Репозиторий заказов."""

    def __init__(self, db: DatabaseManager) -> None:
        """
        Args:
            db: Менеджер базы данных (Dependency Injection)
        """
        self._db = db

    # =========================================================================
    # ЧТЕНИЕ
    # =========================================================================

    async def get(self, order_id: UUID, conn: Any = None, *, for_update: bool = False) -> Optional[Order]:
        """
        Получает заказ по ID.

        Args:
            order_id: UUID заказа
            conn: Соединение открытой транзакции
            for_update: Заблокировать строку до конца транзакции
        """
        executor = conn or self._db
        query = f"SELECT {_ORDER_COLUMNS} FROM orders WHERE id = $1"
        if for_update:
            query += " FOR UPDATE"

        row = await executor.fetchrow(query, order_id)
        return None if row is None else Order.model_validate(dict(row))

    async def get_route_points(self, order_id: UUID, conn: Any = None) -> list[OrderRoutePoint]:
        executor = conn or self._db
        rows = await executor.fetch(
            """
            SELECT id, order_id, sequence, address, lat, lng, is_visited
            FROM order_route_points
            WHERE order_id = $1
            ORDER BY sequence
            """,
            order_id,
        )
        return [OrderRoutePoint.model_validate(dict(row)) for row in rows]

    async def driver_exists(self, driver_id: UUID, conn: Any = None) -> bool:
        executor = conn or self._db
        return bool(await executor.fetchval("SELECT EXISTS(SELECT 1 FROM drivers WHERE id = $1)", driver_id))

    async def find(self, filters: OrderFilters, limit: int, offset: int) -> tuple[list[OrderListItem], int]:
        """
        Список заказов, новые первыми, с названием тарифа и данными водителя.

        Returns:
            (заказы страницы, общее количество)
        """
        clauses: list[str] = []
        params: list[Any] = []

        if filters.status is not None:
            params.append(filters.status.value)
            clauses.append(f"o.status = ${len(params)}")
        if filters.driver_id is not None:
            params.append(filters.driver_id)
            clauses.append(f"o.driver_id = ${len(params)}")
        if filters.client_id is not None:
            params.append(filters.client_id)
            clauses.append(f"o.client_id = ${len(params)}")

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        total = await self._db.fetchval(f"SELECT COUNT(*) FROM orders o {where}", *params)

        columns = ", ".join(f"o.{c.strip()}" for c in _ORDER_COLUMNS.split(","))
        rows = await self._db.fetch(
            f"""
            SELECT {columns},
                   t.name AS tariff_name,
                   d.first_name AS driver_first_name,
                   d.last_name AS driver_last_name,
                   d.phone AS driver_phone
            FROM orders o
            JOIN tariffs t ON t.id = o.tariff_id
            LEFT JOIN drivers d ON d.id = o.driver_id
            {where}
            ORDER BY o.created_at DESC
            LIMIT ${len(params) + 1} OFFSET ${len(params) + 2}
            """,
            *params,
            limit,
            offset,
        )
        return [OrderListItem.model_validate(dict(row)) for row in rows], total

    # =========================================================================
    # ЗАПИСЬ (внутри транзакции)
    # =========================================================================

    async def insert(self, conn: Any, order: Order) -> Order:
        """Создаёт заказ. created_at/updated_at проставляет БД."""
        row = await conn.fetchrow(
            f"""
            INSERT INTO orders (
                id, public_number, status, client_id, driver_id, tariff_id, dispatcher_id,
                from_address, from_lat, from_lng, to_address, to_lat, to_lng,
                estimated_price, payment_method, is_paid, comment, scheduled_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16, $17, $18)
            RETURNING {_ORDER_COLUMNS}
            """,
            order.id,
            order.public_number,
            order.status.value,
            order.client_id,
            order.driver_id,
            order.tariff_id,
            order.dispatcher_id,
            order.from_address,
            order.from_lat,
            order.from_lng,
            order.to_address,
            order.to_lat,
            order.to_lng,
            order.estimated_price,
            order.payment_method.value,
            order.is_paid,
            order.comment,
            order.scheduled_at,
        )
        return Order.model_validate(dict(row))

    async def insert_route_points(self, conn: Any, points: list[OrderRoutePoint]) -> None:
        if not points:
            return
        await conn.executemany(
            """
            INSERT INTO order_route_points (order_id, sequence, address, lat, lng, is_visited)
            VALUES ($1, $2, $3, $4, $5, $6)
            """,
            [(p.order_id, p.sequence, p.address, p.lat, p.lng, p.is_visited) for p in points],
        )

    async def assign_driver(self, conn: Any, order_id: UUID, driver_id: UUID) -> Optional[Order]:
        """Назначает водителя, только если заказ ещё новый и без водителя."""
        row = await conn.fetchrow(
            f"""
            UPDATE orders
            SET driver_id = $2, status = $3, updated_at = NOW()
            WHERE id = $1 AND status = $4 AND driver_id IS NULL
            RETURNING {_ORDER_COLUMNS}
            """,
            order_id,
            driver_id,
            OrderStatus.DRIVER_ASSIGNED.value,
            OrderStatus.NEW.value,
        )
        return None if row is None else Order.model_validate(dict(row))

    async def update_status(
        self,
        conn: Any,
        order_id: UUID,
        expected: OrderStatus,
        new: OrderStatus,
        *,
        started_at: Optional[datetime] = None,
        cancel_reason: Optional[str] = None,
    ) -> Optional[Order]:
        """Меняет статус, если текущий равен expected."""
        row = await conn.fetchrow(
            f"""
            UPDATE orders
            SET status = $3,
                started_at = COALESCE($4, started_at),
                cancel_reason = COALESCE($5, cancel_reason),
                updated_at = NOW()
            WHERE id = $1 AND status = $2
            RETURNING {_ORDER_COLUMNS}
            """,
            order_id,
            expected.value,
            new.value,
            started_at,
            cancel_reason,
        )
        return None if row is None else Order.model_validate(dict(row))

    async def complete(
        self,
        conn: Any,
        order_id: UUID,
        *,
        final_price: Decimal,
        distance_km: float,
        duration_min: float,
        is_paid: bool,
        finished_at: datetime,
    ) -> Optional[Order]:
        """Завершает поездку. Итоговая цена и время завершения пишутся вместе и один раз."""
        row = await conn.fetchrow(
            f"""
            UPDATE orders
            SET status = $2,
                final_price = $3,
                distance_km = $4,
                duration_min = $5,
                is_paid = $6,
                finished_at = $7,
                updated_at = NOW()
            WHERE id = $1 AND status = $8 AND final_price IS NULL
            RETURNING {_ORDER_COLUMNS}
            """,
            order_id,
            OrderStatus.COMPLETED.value,
            final_price,
            distance_km,
            duration_min,
            is_paid,
            finished_at,
            OrderStatus.IN_PROGRESS.value,
        )
        return None if row is None else Order.model_validate(dict(row))
