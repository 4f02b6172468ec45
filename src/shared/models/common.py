# src/shared/models/common.py
"""
Общие модели ответов HTTP API.
"""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field


T = TypeVar("T")


class PaginationParams(BaseModel):
    """Параметры пагинации. Страницы нумеруются с 1."""

    page: int = Field(default=1, ge=1, description="Номер страницы")
    limit: int = Field(default=20, ge=1, description="Размер страницы")

    @property
    def offset(self) -> int:
        """Смещение для SQL-запроса."""
        return (self.page - 1) * self.limit


class Page(BaseModel, Generic[T]):
    """Страница результатов: общее число записей, число страниц и сами записи."""

    total: int
    pages: int
    page: int
    limit: int
    data: list[T]

    @classmethod
    def create(cls, data: list[T], total: int, pagination: PaginationParams) -> "Page[T]":
        pages = (total + pagination.limit - 1) // pagination.limit
        return cls(total=total, pages=pages, page=pagination.page, limit=pagination.limit, data=data)


class ErrorResponse(BaseModel):
    """Стандартный ответ с ошибкой."""

    error_code: str
    message: str
    details: dict[str, Any] | None = None


class HealthStatus(BaseModel):
    """Статус здоровья сервиса."""

    service: str
    status: str = "healthy"  # healthy, degraded
    version: str | None = None
    dependencies: dict[str, str] = Field(default_factory=dict)
