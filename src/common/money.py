# src/common/money.py
"""
Денежная арифметика: Decimal с округлением до копеек (ROUND_HALF_UP).
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

from src.common.exceptions import ValidationFailed

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

Number = Union[Decimal, int, float, str]


def to_decimal(value: Number, field: str = "value") -> Decimal:
    """
    Приводит число к Decimal без потери точности.
    float переводится через str, чтобы 0.1 не превращался в 0.1000000000000000055.
    """
    if isinstance(value, bool):
        raise ValidationFailed(f"{field}: ожидается число", field=field)
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError) as e:
            raise ValidationFailed(f"{field}: ожидается число, получено {value!r}", field=field) from e

    if not result.is_finite():
        raise ValidationFailed(f"{field}: ожидается конечное число", field=field)
    return result


def to_money(value: Number, field: str = "amount") -> Decimal:
    """Округляет сумму до 2 знаков по правилу half-up."""
    return to_decimal(value, field).quantize(CENT, rounding=ROUND_HALF_UP)
