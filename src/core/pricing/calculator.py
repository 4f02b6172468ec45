# src/core/pricing/calculator.py
"""
Калькулятор стоимости поездки.

    price = base + distance_km * per_km + duration_min * per_minute

Результат не меньше базовой цены и округлён до копеек.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Protocol

from pydantic import BaseModel

from src.common.exceptions import ValidationFailed
from src.common.money import Number, to_decimal, to_money


class PriceRates(Protocol):
    """Ставки тарифа, нужные для расчёта."""
    base_price: Decimal
    price_per_km: Decimal
    price_per_minute: Decimal


class PriceBreakdown(BaseModel):
    """Детализация расчёта стоимости."""
    base_price: Decimal
    distance_price: Decimal
    time_price: Decimal
    total: Decimal


def _non_negative(value: Number, field: str) -> Decimal:
    result = to_decimal(value, field)
    if result < 0:
        raise ValidationFailed(f"{field} не может быть отрицательным", field=field)
    return result


def calculate_breakdown(rates: PriceRates, distance_km: Number, duration_min: Number) -> PriceBreakdown:
    """
    Считает стоимость по ставкам тарифа и метрикам поездки.

    Raises:
        ValidationFailed: отрицательные или нечисловые метрики
    """
    distance = _non_negative(distance_km, "distance_km")
    duration = _non_negative(duration_min, "duration_min")

    base = to_decimal(rates.base_price, "base_price")
    distance_price = distance * to_decimal(rates.price_per_km, "price_per_km")
    time_price = duration * to_decimal(rates.price_per_minute, "price_per_minute")

    # Минимальная стоимость: не ниже базовой цены
    total = max(base + distance_price + time_price, base)

    return PriceBreakdown(
        base_price=to_money(base),
        distance_price=to_money(distance_price),
        time_price=to_money(time_price),
        total=to_money(total),
    )


def calculate_price(rates: PriceRates, distance_km: Number, duration_min: Number) -> Decimal:
    """Итоговая стоимость поездки, 2 знака после запятой."""
    return calculate_breakdown(rates, distance_km, duration_min).total
