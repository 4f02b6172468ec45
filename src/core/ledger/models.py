# src/core/ledger/models.py
"""
Модели журнала операций по балансу водителя.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from src.common.constants import TransactionType


class DriverBalance(BaseModel):
    """Строка водителя, заблокированная на время операции."""
    driver_id: UUID
    balance: Decimal


class DriverTransaction(BaseModel):
    """
    Запись журнала. Неизменяема после вставки.
    amount всегда положительный; знак определяется типом операции.
    """

    model_config = ConfigDict(from_attributes=True)

    id: Optional[UUID] = None
    seq: Optional[int] = None
    driver_id: UUID
    order_id: Optional[UUID] = None
    amount: Decimal = Field(..., gt=0)
    type: TransactionType
    description: Optional[str] = None
    balance_after: Decimal
    created_at: Optional[datetime] = None

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.type.is_credit else -self.amount


class TransactionView(DriverTransaction):
    """Запись журнала с данными водителя и заказа для админки."""
    driver_first_name: Optional[str] = None
    driver_last_name: Optional[str] = None
    driver_phone: Optional[str] = None
    driver_license_number: Optional[str] = None
    order_public_number: Optional[str] = None


class LedgerEntryResult(BaseModel):
    """Результат применения операции к балансу."""
    transaction_id: UUID
    driver_id: UUID
    order_id: Optional[UUID] = None
    operation: TransactionType
    amount: Decimal
    previous_balance: Decimal
    new_balance: Decimal


class TransactionFilters(BaseModel):
    """Фильтры общего списка операций."""
    type: Optional[TransactionType] = None
    driver_id: Optional[UUID] = None
    date_from: Optional[date] = None
    # Включительно, до конца дня
    date_to: Optional[date] = None
    search: Optional[str] = Field(None, max_length=200)

    @model_validator(mode="after")
    def check_range(self) -> "TransactionFilters":
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("date_from позже date_to")
        return self


class ChainMismatch(BaseModel):
    """Запись, у которой balance_after не сходится с предыдущей."""
    transaction_id: Optional[UUID]
    expected_balance_after: Decimal
    stored_balance_after: Decimal


class ReconciliationReport(BaseModel):
    """Итог сверки журнала водителя с его балансом."""
    driver_id: UUID
    entries_checked: int
    mismatches: list[ChainMismatch] = Field(default_factory=list)
    replayed_balance: Decimal
    current_balance: Decimal
    drift: Decimal

    @computed_field
    @property
    def is_consistent(self) -> bool:
        return not self.mismatches and self.drift == 0
