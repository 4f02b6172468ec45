# src/common/constants.py
"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class UserRole(str, Enum):
    """Роли пользователей."""
    CLIENT = "client"
    DRIVER = "driver"
    DISPATCHER = "dispatcher"
    ADMIN = "admin"


class OrderStatus(str, Enum):
    """Статусы заказа."""
    NEW = "new"
    DRIVER_ASSIGNED = "driver_assigned"
    DRIVER_ARRIVED = "driver_arrived"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    """Способы оплаты."""
    CASH = "cash"
    CARD = "card"
    BONUS = "bonus"


class TariffCategory(str, Enum):
    """Категории тарифов."""
    TAXI = "taxi"
    DELIVERY = "delivery"
    CARGO = "cargo"


class TransactionType(str, Enum):
    """Типы операций по балансу водителя."""
    DEPOSIT = "deposit"
    BONUS = "bonus"
    ORDER_COMMISSION = "order_commission"
    WITHDRAWAL = "withdrawal"
    PENALTY = "penalty"
    SUBSCRIPTION = "subscription"

    @property
    def is_credit(self) -> bool:
        """Пополняет ли операция баланс."""
        return self in CREDIT_TRANSACTION_TYPES


# Операции, увеличивающие баланс. Все остальные списывают.
CREDIT_TRANSACTION_TYPES = frozenset({TransactionType.DEPOSIT, TransactionType.BONUS})

# Статусы, из которых заказ больше не меняется
TERMINAL_ORDER_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED})
