# src/core/pricing/__init__.py
"""
Расчёт стоимости поездки по тарифу.
"""

from src.core.pricing.calculator import (
    PriceBreakdown,
    PriceRates,
    calculate_breakdown,
    calculate_price,
)

__all__ = [
    "PriceBreakdown",
    "PriceRates",
    "calculate_breakdown",
    "calculate_price",
]
