# src/core/tariffs/models.py
"""
Модели тарифов.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from src.common.constants import TariffCategory


class Tariff(BaseModel):
    """Тариф: базовая цена и ставки за километр и минуту."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    category: TariffCategory = TariffCategory.TAXI
    name: str
    base_price: Decimal = Field(Decimal("0.00"), ge=0, description="Минимальная стоимость поездки")
    price_per_km: Decimal = Field(Decimal("0.00"), ge=0, description="Цена за километр")
    price_per_minute: Decimal = Field(Decimal("0.00"), ge=0, description="Цена за минуту")
    waiting_price: Decimal = Field(Decimal("0.00"), ge=0, description="Цена минуты ожидания")
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
