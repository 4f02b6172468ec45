# src/core/orders/models.py
"""
Модели данных заказов.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.common.constants import OrderStatus, PaymentMethod, UserRole


class Actor(BaseModel):
    """Пользователь, от имени которого выполняется операция."""
    id: UUID
    role: UserRole


class OrderRoutePoint(BaseModel):
    """Промежуточная точка маршрута. Принадлежит одному заказу."""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[UUID] = None
    order_id: UUID
    sequence: int = Field(..., ge=1)
    address: str
    lat: float
    lng: float
    is_visited: bool = False


class Order(BaseModel):
    """Модель заказа."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    public_number: Optional[str] = Field(None, description="Номер для отображения, не уникален")
    status: OrderStatus = OrderStatus.NEW

    client_id: UUID
    driver_id: Optional[UUID] = None
    tariff_id: UUID
    dispatcher_id: Optional[UUID] = None

    # Адреса
    from_address: str
    from_lat: Optional[float] = None
    from_lng: Optional[float] = None
    to_address: Optional[str] = None
    to_lat: Optional[float] = None
    to_lng: Optional[float] = None

    # Стоимость
    estimated_price: Decimal = Field(Decimal("0.00"), description="Оценка при создании, не меняется")
    final_price: Optional[Decimal] = Field(None, description="Итог, задаётся при завершении")
    payment_method: PaymentMethod = PaymentMethod.CASH
    is_paid: bool = False

    # Фактические метрики поездки
    distance_km: Optional[float] = None
    duration_min: Optional[float] = None

    comment: Optional[str] = None
    cancel_reason: Optional[str] = None

    scheduled_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class OrderDetails(Order):
    """Заказ с точками маршрута по порядку."""
    route_points: list[OrderRoutePoint] = Field(default_factory=list)


class OrderListItem(Order):
    """Строка списка заказов с данными тарифа и водителя."""
    tariff_name: Optional[str] = None
    driver_first_name: Optional[str] = None
    driver_last_name: Optional[str] = None
    driver_phone: Optional[str] = None


# =============================================================================
# DTO
# =============================================================================

class RoutePointDTO(BaseModel):
    """Точка маршрута во входных данных."""
    sequence: int = Field(..., ge=1)
    address: str = Field(..., min_length=1, max_length=255)
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class TripEstimate(BaseModel):
    """Оценка маршрута от клиента или сервиса маршрутов."""
    distance_km: float = Field(..., ge=0)
    duration_min: float = Field(..., ge=0)


class OrderCreateDTO(BaseModel):
    """DTO для создания заказа."""

    # Для клиента берётся из токена, диспетчер указывает явно
    client_id: Optional[UUID] = None
    tariff_id: UUID

    from_address: str = Field(..., min_length=1, max_length=255)
    from_lat: Optional[float] = Field(None, ge=-90, le=90)
    from_lng: Optional[float] = Field(None, ge=-180, le=180)
    to_address: Optional[str] = Field(None, max_length=255)
    to_lat: Optional[float] = Field(None, ge=-90, le=90)
    to_lng: Optional[float] = Field(None, ge=-180, le=180)

    route_points: list[RoutePointDTO] = Field(default_factory=list)
    payment_method: PaymentMethod = PaymentMethod.CASH
    comment: Optional[str] = Field(None, max_length=500)
    scheduled_at: Optional[datetime] = None
    estimate: Optional[TripEstimate] = None

    @model_validator(mode="after")
    def check_route_points(self) -> "OrderCreateDTO":
        sequences = [p.sequence for p in self.route_points]
        if len(sequences) != len(set(sequences)):
            raise ValueError("Номера точек маршрута должны быть уникальны")
        return self


class OrderFilters(BaseModel):
    """Фильтры списка заказов."""
    status: Optional[OrderStatus] = None
    driver_id: Optional[UUID] = None
    client_id: Optional[UUID] = None
