# src/core/orders/state_machine.py
"""
Допустимые переходы статусов заказа.

    new -> driver_assigned -> driver_arrived -> in_progress -> completed
    cancelled достижим из любого незавершённого статуса.
"""

from __future__ import annotations

from src.common.constants import OrderStatus, TERMINAL_ORDER_STATUSES
from src.common.exceptions import InvalidTransition, ValidationFailed


class OrderStateMachine:
    ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
        OrderStatus.NEW: frozenset({OrderStatus.DRIVER_ASSIGNED, OrderStatus.CANCELLED}),
        OrderStatus.DRIVER_ASSIGNED: frozenset({OrderStatus.DRIVER_ARRIVED, OrderStatus.CANCELLED}),
        OrderStatus.DRIVER_ARRIVED: frozenset({OrderStatus.IN_PROGRESS, OrderStatus.CANCELLED}),
        OrderStatus.IN_PROGRESS: frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
        OrderStatus.COMPLETED: frozenset(),
        OrderStatus.CANCELLED: frozenset(),
    }

    # Статусы, которые выставляют только свои операции: принятие и завершение
    DEDICATED_TARGETS: frozenset[OrderStatus] = frozenset({
        OrderStatus.DRIVER_ASSIGNED,
        OrderStatus.COMPLETED,
    })

    @staticmethod
    def parse_status(value: OrderStatus | str) -> OrderStatus:
        try:
            return OrderStatus(value)
        except ValueError as e:
            raise ValidationFailed(f"Неизвестный статус заказа: {value}", status=str(value)) from e

    @staticmethod
    def can_transition(current: OrderStatus, new: OrderStatus) -> bool:
        return new in OrderStateMachine.ALLOWED_TRANSITIONS.get(current, frozenset())

    @staticmethod
    def is_terminal(status: OrderStatus) -> bool:
        return status in TERMINAL_ORDER_STATUSES

    @classmethod
    def ensure_transition(cls, order_id: object, current: OrderStatus, new: OrderStatus) -> None:
        """
        Raises:
            InvalidTransition: переход не разрешён таблицей
        """
        if cls.is_terminal(current):
            raise InvalidTransition(
                f"Заказ {order_id} уже в конечном статусе {current.value}",
                order_id=str(order_id),
                current_status=current.value,
                requested_status=new.value,
            )
        if not cls.can_transition(current, new):
            raise InvalidTransition(
                f"Заказ {order_id}: переход {current.value} -> {new.value} невозможен",
                order_id=str(order_id),
                current_status=current.value,
                requested_status=new.value,
            )

    @classmethod
    def ensure_generic_target(cls, order_id: object, new: OrderStatus) -> None:
        """Проверяет, что статус можно выставить общим методом смены статуса."""
        if new in cls.DEDICATED_TARGETS or new == OrderStatus.NEW:
            raise InvalidTransition(
                f"Заказ {order_id}: статус {new.value} выставляется отдельной операцией",
                order_id=str(order_id),
                requested_status=new.value,
            )
