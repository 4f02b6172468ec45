# src/core/orders/service.py
"""
Сервис для работы с заказами.
Управляет жизненным циклом заказа: создание, принятие водителем,
смена статуса, отмена и завершение с расчётом итоговой стоимости.
"""

from __future__ import annotations

import random
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID, uuid4

from src.common.constants import OrderStatus, PaymentMethod, TypeMsg, UserRole
from src.common.exceptions import (
    DriverNotFound,
    InvalidTransition,
    OrderNotFound,
    TariffNotFound,
    ValidationFailed,
)
from src.common.logger import log_error, log_info
from src.core.orders.models import (
    Actor,
    Order,
    OrderCreateDTO,
    OrderDetails,
    OrderFilters,
    OrderListItem,
    OrderRoutePoint,
)
from src.core.orders.repository import OrderRepository
from src.core.orders.state_machine import OrderStateMachine
from src.core.pricing import calculate_price
from src.core.tariffs import TariffService
from src.core.transactions import run_atomic, run_read
from src.infra.database import DatabaseManager
from src.infra.event_bus import DomainEvent, EventBus, EventTypes
from src.infra.redis_client import RedisClient
from src.shared.models.common import Page, PaginationParams


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class OrderService:
    """
    Сервис заказов.

    Каждая операция записи выполняется в отдельной транзакции
    с блокировкой строки заказа. События публикуются после фиксации.
    """

    def __init__(
        self,
        db: DatabaseManager,
        redis: Optional[RedisClient],
        event_bus: EventBus,
        tariffs: Optional[TariffService] = None,
    ) -> None:
        """
        Args:
            db: Менеджер базы данных
            redis: Клиент Redis (кэш тарифов)
            event_bus: Шина событий
            tariffs: Справочник тарифов
        """
        from src.config import settings

        self._db = db
        self._repo = OrderRepository(db)
        self._event_bus = event_bus
        self._tariffs = tariffs or TariffService(db, redis)
        self._pricing_settings = settings.pricing
        self._order_settings = settings.orders

    # =========================================================================
    # СОБЫТИЯ
    # =========================================================================

    async def _publish(self, event_type: str, order: Order, **extra: Any) -> None:
        try:
            await self._event_bus.publish(DomainEvent(
                event_type=event_type,
                payload={
                    "order_id": str(order.id),
                    "public_number": order.public_number,
                    "status": order.status.value,
                    "client_id": str(order.client_id),
                    "driver_id": str(order.driver_id) if order.driver_id else None,
                    **extra,
                },
            ))
        except Exception as e:
            await log_error(f"Не удалось опубликовать {event_type}: {e}")

    async def publish_completed(self, order: Order) -> None:
        await log_info(
            f"Заказ {order.id} завершён, стоимость {order.final_price} {self._pricing_settings.CURRENCY}",
            type_msg=TypeMsg.INFO,
        )
        await self._publish(
            EventTypes.ORDER_COMPLETED,
            order,
            final_price=str(order.final_price),
            is_paid=order.is_paid,
        )

    # =========================================================================
    # ЧТЕНИЕ
    # =========================================================================

    async def require_order(self, conn: Any, order_id: UUID, *, for_update: bool = False) -> Order:
        """
        Заказ по ID внутри открытой транзакции.

        Raises:
            OrderNotFound
        """
        order = await self._repo.get(order_id, conn, for_update=for_update)
        if order is None:
            raise OrderNotFound(f"Заказ {order_id} не найден", order_id=str(order_id))
        return order

    async def get_order(self, order_id: UUID) -> OrderDetails:
        """Заказ с точками маршрута по порядку."""
        async def _read(conn: Any) -> OrderDetails:
            order = await self.require_order(conn, order_id)
            points = await self._repo.get_route_points(order_id, conn)
            return OrderDetails(**order.model_dump(), route_points=points)

        return await run_atomic(self._db, _read, action=f"Чтение заказа {order_id}")

    async def list_orders(self, filters: OrderFilters, pagination: PaginationParams) -> Page[OrderListItem]:
        """Список заказов, новые первыми."""
        async def _read() -> Page[OrderListItem]:
            items, total = await self._repo.find(filters, pagination.limit, pagination.offset)
            return Page[OrderListItem].create(items, total, pagination)

        return await run_read(_read, action="Список заказов")

    # =========================================================================
    # СОЗДАНИЕ
    # =========================================================================

    def _resolve_participants(self, actor: Actor, dto: OrderCreateDTO) -> tuple[UUID, Optional[UUID]]:
        """(client_id, dispatcher_id) с учётом роли автора заказа."""
        if actor.role == UserRole.CLIENT:
            return actor.id, None

        if dto.client_id is None:
            raise ValidationFailed("Не указан клиент заказа", field="client_id")

        if actor.role in (UserRole.ADMIN, UserRole.DISPATCHER):
            return dto.client_id, actor.id
        return dto.client_id, None

    def _new_public_number(self) -> str:
        # Только для отображения, совпадения допустимы
        return str(random.randint(
            self._order_settings.PUBLIC_NUMBER_MIN,
            self._order_settings.PUBLIC_NUMBER_MAX,
        ))

    async def create_order(self, actor: Actor, dto: OrderCreateDTO) -> OrderDetails:
        """
        Создаёт заказ в статусе new вместе с точками маршрута.

        Оценка стоимости считается по тарифу на момент создания
        и дальше не меняется. Тариф перечитывается из БД внутри
        транзакции: кэш только отсекает заведомо неизвестные тарифы.

        Raises:
            ValidationFailed: некорректные данные
            TariffNotFound: нет активного тарифа
        """
        client_id, dispatcher_id = self._resolve_participants(actor, dto)

        if len(dto.route_points) > self._order_settings.MAX_ROUTE_POINTS:
            raise ValidationFailed(
                f"Не больше {self._order_settings.MAX_ROUTE_POINTS} точек маршрута",
                field="route_points",
            )

        await run_read(
            lambda: self._tariffs.get_active(dto.tariff_id),
            action=f"Поиск тарифа {dto.tariff_id}",
        )

        if dto.estimate is not None:
            distance_km, duration_min = dto.estimate.distance_km, dto.estimate.duration_min
        else:
            distance_km = self._pricing_settings.DEFAULT_ESTIMATE_DISTANCE_KM
            duration_min = self._pricing_settings.DEFAULT_ESTIMATE_DURATION_MIN

        order_id = uuid4()
        points = [
            OrderRoutePoint(order_id=order_id, sequence=p.sequence, address=p.address, lat=p.lat, lng=p.lng)
            for p in sorted(dto.route_points, key=lambda p: p.sequence)
        ]

        async def _create(conn: Any) -> Order:
            tariff = await self._tariffs.get_current(dto.tariff_id, conn)
            if not tariff.is_active:
                raise TariffNotFound(
                    f"Тариф {dto.tariff_id} выключен",
                    tariff_id=str(dto.tariff_id),
                )

            order = Order(
                id=order_id,
                public_number=self._new_public_number(),
                status=OrderStatus.NEW,
                client_id=client_id,
                tariff_id=tariff.id,
                dispatcher_id=dispatcher_id,
                from_address=dto.from_address,
                from_lat=dto.from_lat,
                from_lng=dto.from_lng,
                to_address=dto.to_address,
                to_lat=dto.to_lat,
                to_lng=dto.to_lng,
                estimated_price=calculate_price(tariff, distance_km, duration_min),
                payment_method=dto.payment_method,
                comment=dto.comment,
                scheduled_at=dto.scheduled_at,
            )
            created = await self._repo.insert(conn, order)
            await self._repo.insert_route_points(conn, points)
            return created

        created = await run_atomic(self._db, _create, action="Создание заказа")
        estimated_price = created.estimated_price

        await log_info(
            f"Заказ {created.id} (№{created.public_number}) создан, оценка {estimated_price} "
            f"{self._pricing_settings.CURRENCY}",
            type_msg=TypeMsg.INFO,
        )
        await self._publish(EventTypes.ORDER_CREATED, created, estimated_price=str(estimated_price))

        return OrderDetails(**created.model_dump(), route_points=points)

    # =========================================================================
    # ЖИЗНЕННЫЙ ЦИКЛ
    # =========================================================================

    async def accept_order(self, order_id: UUID, driver_id: UUID) -> Order:
        """
        Водитель принимает заказ.

        Raises:
            OrderNotFound, DriverNotFound
            InvalidTransition: заказ не в статусе new (уже принят или отменён)
        """
        async def _accept(conn: Any) -> Order:
            order = await self.require_order(conn, order_id, for_update=True)
            if order.status != OrderStatus.NEW:
                raise InvalidTransition(
                    f"Заказ {order_id} уже нельзя принять (статус: {order.status.value})",
                    order_id=str(order_id),
                    current_status=order.status.value,
                )
            if not await self._repo.driver_exists(driver_id, conn):
                raise DriverNotFound(f"Водитель {driver_id} не найден", driver_id=str(driver_id))

            accepted = await self._repo.assign_driver(conn, order_id, driver_id)
            if accepted is None:
                raise InvalidTransition(f"Заказ {order_id} уже принят", order_id=str(order_id))
            return accepted

        accepted = await run_atomic(self._db, _accept, action=f"Принятие заказа {order_id}")

        await log_info(f"Заказ {order_id} принят водителем {driver_id}", type_msg=TypeMsg.INFO)
        await self._publish(EventTypes.ORDER_ACCEPTED, accepted)
        return accepted

    async def advance_status(
        self,
        order_id: UUID,
        new_status: OrderStatus | str,
        cancel_reason: Optional[str] = None,
    ) -> Order:
        """
        Переводит заказ в следующий статус.

        driver_arrived только из driver_assigned, in_progress только из
        driver_arrived (проставляет started_at), cancelled из любого
        незавершённого статуса. completed выставляет только завершение заказа.

        Raises:
            ValidationFailed: неизвестный статус
            OrderNotFound
            InvalidTransition
        """
        target = OrderStateMachine.parse_status(new_status)

        async def _advance(conn: Any) -> Order:
            order = await self.require_order(conn, order_id, for_update=True)
            OrderStateMachine.ensure_generic_target(order_id, target)
            OrderStateMachine.ensure_transition(order_id, order.status, target)

            updated = await self._repo.update_status(
                conn,
                order_id,
                order.status,
                target,
                started_at=_utc_now() if target == OrderStatus.IN_PROGRESS else None,
                cancel_reason=cancel_reason if target == OrderStatus.CANCELLED else None,
            )
            if updated is None:
                raise InvalidTransition(f"Статус заказа {order_id} изменился", order_id=str(order_id))
            return updated

        updated = await run_atomic(self._db, _advance, action=f"Смена статуса заказа {order_id}")

        await log_info(f"Заказ {order_id}: статус {updated.status.value}", type_msg=TypeMsg.INFO)
        event_type = EventTypes.ORDER_CANCELLED if target == OrderStatus.CANCELLED else EventTypes.ORDER_STATUS_CHANGED
        await self._publish(event_type, updated)
        return updated

    async def cancel_order(self, order_id: UUID, reason: Optional[str] = None) -> Order:
        """Отменяет незавершённый заказ."""
        return await self.advance_status(order_id, OrderStatus.CANCELLED, cancel_reason=reason)

    async def finish_within(
        self,
        conn: Any,
        order_id: UUID,
        distance_km: float,
        duration_min: float,
    ) -> Order:
        """
        Завершает поездку внутри открытой транзакции.

        Итоговая цена считается по тарифу в его текущем виде.
        Повторное завершение не пересчитывает цену, а падает.

        Raises:
            OrderNotFound, ValidationFailed
            InvalidTransition: заказ не в статусе in_progress
        """
        order = await self.require_order(conn, order_id, for_update=True)
        if order.status != OrderStatus.IN_PROGRESS:
            raise InvalidTransition(
                f"Заказ {order_id} нельзя завершить (статус: {order.status.value})",
                order_id=str(order_id),
                current_status=order.status.value,
            )

        tariff = await self._tariffs.get_current(order.tariff_id, conn)
        final_price: Decimal = calculate_price(tariff, distance_km, duration_min)

        completed = await self._repo.complete(
            conn,
            order_id,
            final_price=final_price,
            distance_km=distance_km,
            duration_min=duration_min,
            # Бонусами оплачено сразу, остальное рассчитывается вне системы
            is_paid=order.is_paid or order.payment_method == PaymentMethod.BONUS,
            finished_at=_utc_now(),
        )
        if completed is None:
            raise InvalidTransition(f"Заказ {order_id} уже завершён", order_id=str(order_id))
        return completed

    async def finish_order(self, order_id: UUID, distance_km: float, duration_min: float) -> Order:
        """Завершает поездку без удержания комиссии."""
        async def _finish(conn: Any) -> Order:
            return await self.finish_within(conn, order_id, distance_km, duration_min)

        completed = await run_atomic(self._db, _finish, action=f"Завершение заказа {order_id}")
        await self.publish_completed(completed)
        return completed
