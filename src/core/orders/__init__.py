# src/core/orders/__init__.py
"""
Домен заказов.
Модели, машина состояний и сервис жизненного цикла заказа.
"""

from src.core.orders.models import (
    Actor,
    Order,
    OrderCreateDTO,
    OrderDetails,
    OrderFilters,
    OrderListItem,
    OrderRoutePoint,
    RoutePointDTO,
    TripEstimate,
)
from src.core.orders.repository import OrderRepository
from src.core.orders.service import OrderService
from src.core.orders.state_machine import OrderStateMachine

__all__ = [
    "Actor",
    "Order",
    "OrderCreateDTO",
    "OrderDetails",
    "OrderFilters",
    "OrderListItem",
    "OrderRoutePoint",
    "RoutePointDTO",
    "TripEstimate",
    "OrderRepository",
    "OrderService",
    "OrderStateMachine",
]
