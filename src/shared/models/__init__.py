# src/shared/models/__init__.py
"""
Общие Pydantic-модели HTTP API.
"""

from src.shared.models.common import (
    ErrorResponse,
    HealthStatus,
    Page,
    PaginationParams,
)

__all__ = [
    "PaginationParams",
    "Page",
    "ErrorResponse",
    "HealthStatus",
]
