# src/core/tariffs/__init__.py
"""
Справочник тарифов.
"""

from src.core.tariffs.models import Tariff
from src.core.tariffs.repository import TariffRepository
from src.core.tariffs.service import TariffService

__all__ = [
    "Tariff",
    "TariffRepository",
    "TariffService",
]
