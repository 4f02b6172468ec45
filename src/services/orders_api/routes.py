# src/services/orders_api/routes.py
"""
HTTP-маршруты заказов и операций по балансу.

Бизнес-логики здесь нет: маршруты проверяют роль, собирают аргументы
и вызывают сервисы ядра. Доменные ошибки переводит в HTTP обработчик в app.py.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from src.common.constants import OrderStatus, TransactionType, UserRole
from src.core.ledger import (
    DriverLedgerService,
    DriverTransaction,
    LedgerEntryResult,
    ReconciliationReport,
    TransactionFilters,
    TransactionView,
)
from src.core.orders import (
    Actor,
    Order,
    OrderCreateDTO,
    OrderDetails,
    OrderFilters,
    OrderListItem,
    OrderService,
)
from src.core.settlement import OrderLedgerCoordinator, SettlementResult
from src.services.orders_api.auth import get_current_actor, require_roles
from src.services.orders_api.dependencies import (
    get_coordinator,
    get_ledger_service,
    get_order_service,
    get_pagination,
)
from src.shared.models.common import Page, PaginationParams


# === REQUEST MODELS ===

class AcceptOrderRequest(BaseModel):
    """Запрос водителя на принятие заказа."""
    order_id: UUID


class StatusUpdateRequest(BaseModel):
    """Смена статуса заказа."""
    status: str
    cancel_reason: Optional[str] = Field(None, max_length=255)


class CancelOrderRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=255)


class FinishOrderRequest(BaseModel):
    """Фактические метрики поездки."""
    distance_km: float = Field(..., ge=0)
    duration_min: float = Field(..., ge=0)


class TransactionCreateRequest(BaseModel):
    """Ручная операция по балансу водителя."""
    driver_id: UUID
    amount: Decimal
    type: str
    description: Optional[str] = Field(None, max_length=500)
    order_id: Optional[UUID] = None


OrderServiceDep = Annotated[OrderService, Depends(get_order_service)]
LedgerServiceDep = Annotated[DriverLedgerService, Depends(get_ledger_service)]
CoordinatorDep = Annotated[OrderLedgerCoordinator, Depends(get_coordinator)]
PaginationDep = Annotated[PaginationParams, Depends(get_pagination)]


# === ORDERS ===

orders_router = APIRouter(prefix="/api/v1/orders", tags=["Orders"])


@orders_router.post("", response_model=OrderDetails, status_code=status.HTTP_201_CREATED, summary="Создать заказ")
async def create_order(
    dto: OrderCreateDTO,
    service: OrderServiceDep,
    actor: Actor = Depends(require_roles(UserRole.CLIENT, UserRole.DISPATCHER, UserRole.ADMIN)),
) -> OrderDetails:
    return await service.create_order(actor, dto)


@orders_router.get("", response_model=Page[OrderListItem], summary="Список заказов")
async def list_orders(
    service: OrderServiceDep,
    pagination: PaginationDep,
    actor: Actor = Depends(get_current_actor),
    status_filter: Optional[OrderStatus] = Query(None, alias="status"),
    driver_id: Optional[UUID] = Query(None),
    client_id: Optional[UUID] = Query(None),
) -> Page[OrderListItem]:
    """Клиент видит только свои заказы."""
    if actor.role == UserRole.CLIENT:
        client_id = actor.id
    filters = OrderFilters(status=status_filter, driver_id=driver_id, client_id=client_id)
    return await service.list_orders(filters, pagination)


@orders_router.post("/accept", response_model=Order, summary="Принять заказ")
async def accept_order(
    request: AcceptOrderRequest,
    service: OrderServiceDep,
    actor: Actor = Depends(require_roles(UserRole.DRIVER)),
) -> Order:
    return await service.accept_order(request.order_id, actor.id)


def _ensure_participant(actor: Actor, order: Order) -> None:
    """Клиент работает только со своими заказами, водитель только с назначенными ему."""
    if actor.role == UserRole.CLIENT and order.client_id != actor.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Чужой заказ")
    if actor.role == UserRole.DRIVER and order.driver_id != actor.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Заказ назначен другому водителю")


@orders_router.get("/{order_id}", response_model=OrderDetails, summary="Заказ с маршрутом")
async def get_order(
    order_id: UUID,
    service: OrderServiceDep,
    actor: Actor = Depends(get_current_actor),
) -> OrderDetails:
    order = await service.get_order(order_id)
    if actor.role == UserRole.CLIENT:
        _ensure_participant(actor, order)
    return order


@orders_router.put("/{order_id}/status", response_model=Order, summary="Сменить статус")
async def update_order_status(
    order_id: UUID,
    request: StatusUpdateRequest,
    service: OrderServiceDep,
    actor: Actor = Depends(require_roles(UserRole.DRIVER, UserRole.ADMIN)),
) -> Order:
    _ensure_participant(actor, await service.get_order(order_id))
    return await service.advance_status(order_id, request.status, cancel_reason=request.cancel_reason)


@orders_router.post("/{order_id}/cancel", response_model=Order, summary="Отменить заказ")
async def cancel_order(
    order_id: UUID,
    request: CancelOrderRequest,
    service: OrderServiceDep,
    actor: Actor = Depends(require_roles(UserRole.CLIENT, UserRole.DISPATCHER, UserRole.ADMIN)),
) -> Order:
    _ensure_participant(actor, await service.get_order(order_id))
    return await service.cancel_order(order_id, request.reason)


@orders_router.post("/{order_id}/finish", response_model=SettlementResult, summary="Завершить заказ")
async def finish_order(
    order_id: UUID,
    request: FinishOrderRequest,
    service: OrderServiceDep,
    coordinator: CoordinatorDep,
    actor: Actor = Depends(require_roles(UserRole.DRIVER, UserRole.ADMIN)),
) -> SettlementResult:
    """Итоговая стоимость по тарифу и удержание комиссии в одной транзакции."""
    _ensure_participant(actor, await service.get_order(order_id))
    return await coordinator.finish_order(order_id, request.distance_km, request.duration_min)


# === TRANSACTIONS ===

transactions_router = APIRouter(prefix="/api/v1/transactions", tags=["Transactions"])


@transactions_router.post(
    "",
    response_model=LedgerEntryResult,
    status_code=status.HTTP_201_CREATED,
    summary="Операция по балансу водителя",
)
async def create_transaction(
    request: TransactionCreateRequest,
    coordinator: CoordinatorDep,
    actor: Actor = Depends(require_roles(UserRole.ADMIN)),
) -> LedgerEntryResult:
    return await coordinator.adjust_balance(
        request.driver_id,
        request.amount,
        request.type,
        description=request.description,
        order_id=request.order_id,
    )


@transactions_router.get("", response_model=Page[TransactionView], summary="Все операции")
async def list_transactions(
    service: LedgerServiceDep,
    pagination: PaginationDep,
    actor: Actor = Depends(require_roles(UserRole.ADMIN)),
    type_filter: Optional[TransactionType] = Query(None, alias="type"),
    driver_id: Optional[UUID] = Query(None),
    date_from: Optional[date] = Query(None, alias="startDate"),
    date_to: Optional[date] = Query(None, alias="endDate"),
    search: Optional[str] = Query(None, max_length=200),
) -> Page[TransactionView]:
    filters = TransactionFilters(
        type=type_filter,
        driver_id=driver_id,
        date_from=date_from,
        date_to=date_to,
        search=search,
    )
    return await service.list_transactions(filters, pagination)


@transactions_router.get(
    "/driver/{driver_id}",
    response_model=Page[DriverTransaction],
    summary="История операций водителя",
)
async def driver_history(
    driver_id: UUID,
    service: LedgerServiceDep,
    pagination: PaginationDep,
    actor: Actor = Depends(require_roles(UserRole.DRIVER, UserRole.ADMIN)),
) -> Page[DriverTransaction]:
    """Водитель видит только свою историю."""
    if actor.role == UserRole.DRIVER and actor.id != driver_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Чужая история операций")
    return await service.get_history(driver_id, pagination)


@transactions_router.get(
    "/driver/{driver_id}/reconcile",
    response_model=ReconciliationReport,
    summary="Сверка журнала водителя",
)
async def reconcile_driver(
    driver_id: UUID,
    service: LedgerServiceDep,
    actor: Actor = Depends(require_roles(UserRole.ADMIN)),
) -> ReconciliationReport:
    return await service.reconcile(driver_id)
