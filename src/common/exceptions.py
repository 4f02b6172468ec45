# src/common/exceptions.py
"""
Доменные исключения.

Иерархия повторяет классы ошибок ядра:
- ошибки валидации (вход нужно исправить, повтор бессмыслен);
- конфликты состояния (нужно перечитать состояние);
- отсутствующие сущности;
- ошибки хранилища (транзакция откатана, операцию можно повторить целиком).
"""

from __future__ import annotations

from typing import Any


class DomainError(Exception):
    """Базовая ошибка ядра заказов и баланса."""

    error_code: str = "domain_error"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        return self.message


# =============================================================================
# ВАЛИДАЦИЯ
# =============================================================================

class ValidationFailed(DomainError, ValueError):
    """Некорректные или неполные входные данные."""
    error_code = "validation_failed"


class InvalidAmount(ValidationFailed):
    """Сумма операции должна быть больше нуля."""
    error_code = "invalid_amount"


class UnknownOperationType(ValidationFailed):
    """Неизвестный тип операции по балансу."""
    error_code = "unknown_operation_type"


# =============================================================================
# КОНФЛИКТЫ СОСТОЯНИЯ
# =============================================================================

class InvalidTransition(DomainError):
    """Переход заказа из текущего статуса невозможен."""
    error_code = "invalid_transition"


class InsufficientFunds(DomainError):
    """Списание увело бы баланс в минус при запрете отрицательного баланса."""
    error_code = "insufficient_funds"


# =============================================================================
# НЕ НАЙДЕНО
# =============================================================================

class NotFoundError(DomainError, LookupError):
    """Сущность не найдена."""
    error_code = "not_found"


class TariffNotFound(NotFoundError):
    """Активный тариф не найден."""
    error_code = "tariff_not_found"


class OrderNotFound(NotFoundError):
    """Заказ не найден."""
    error_code = "order_not_found"


class DriverNotFound(NotFoundError):
    """Водитель не найден."""
    error_code = "driver_not_found"


# =============================================================================
# ХРАНИЛИЩЕ
# =============================================================================

class PersistenceError(DomainError):
    """Сбой БД, блокировки или таймаут. Транзакция откатана."""
    error_code = "persistence_error"
