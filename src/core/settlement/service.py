# src/core/settlement/service.py
"""
Согласованные операции над заказом и балансом водителя.

Завершение заказа и удержание комиссии выполняются в одной транзакции:
либо заказ завершён и комиссия списана, либо не изменилось ничего.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel

from src.common.constants import TransactionType, TypeMsg
from src.common.logger import log_info
from src.common.money import Number, to_money
from src.core.ledger import DriverLedgerService, LedgerEntryResult
from src.core.orders import Order, OrderService
from src.core.transactions import run_atomic
from src.infra.database import DatabaseManager


class SettlementResult(BaseModel):
    """Завершённый заказ и удержанная комиссия (если была)."""
    order: Order
    commission: Optional[LedgerEntryResult] = None


class OrderLedgerCoordinator:
    """Координатор заказа и баланса водителя."""

    def __init__(
        self,
        db: DatabaseManager,
        orders: OrderService,
        ledger: DriverLedgerService,
        charge_commission: Optional[bool] = None,
        commission_percent: Optional[Decimal] = None,
    ) -> None:
        """
        Args:
            db: Менеджер базы данных
            orders: Сервис заказов
            ledger: Сервис баланса водителей
            charge_commission: Удерживать комиссию при завершении (по умолчанию из конфига)
            commission_percent: Процент комиссии от итоговой стоимости
        """
        from src.config import settings

        self._db = db
        self._orders = orders
        self._ledger = ledger
        self.charge_commission = (
            settings.ledger.CHARGE_COMMISSION_ON_FINISH if charge_commission is None else charge_commission
        )
        self.commission_percent = Decimal(str(
            settings.ledger.COMMISSION_PERCENT if commission_percent is None else commission_percent
        ))

    def commission_for(self, final_price: Decimal) -> Decimal:
        return to_money(final_price * self.commission_percent / Decimal(100))

    async def finish_order(self, order_id: UUID, distance_km: float, duration_min: float) -> SettlementResult:
        """
        Завершает заказ и списывает комиссию с водителя.

        Любая ошибка откатывает обе записи: заказ остаётся in_progress,
        баланс и журнал водителя не меняются.

        Raises:
            OrderNotFound, ValidationFailed, InvalidTransition,
            DriverNotFound, InsufficientFunds, PersistenceError
        """
        async def _settle(conn: Any) -> SettlementResult:
            order = await self._orders.finish_within(conn, order_id, distance_km, duration_min)

            commission = self.commission_for(order.final_price) if self.charge_commission else Decimal(0)
            if commission <= 0 or order.driver_id is None:
                return SettlementResult(order=order)

            entry = await self._ledger.apply_within(
                conn,
                driver_id=order.driver_id,
                amount=commission,
                operation_type=TransactionType.ORDER_COMMISSION,
                description=f"Комиссия {self.commission_percent}% за заказ №{order.public_number}",
                order_id=order.id,
            )
            return SettlementResult(order=order, commission=entry)

        result = await run_atomic(self._db, _settle, action=f"Завершение заказа {order_id} с комиссией")

        await self._orders.publish_completed(result.order)
        if result.commission is not None:
            await self._ledger.publish_applied(result.commission)
        return result

    async def adjust_balance(
        self,
        driver_id: UUID,
        amount: Number,
        operation_type: TransactionType | str,
        description: Optional[str] = None,
        order_id: Optional[UUID] = None,
    ) -> LedgerEntryResult:
        """
        Ручная операция по балансу водителя (администратор).
        Если указан заказ, он должен существовать; проверка и запись
        выполняются в одной транзакции.

        Raises:
            InvalidAmount, UnknownOperationType, DriverNotFound, OrderNotFound
        """
        operation = self._ledger.parse_operation(operation_type)
        value = self._ledger.parse_amount(amount)

        async def _adjust(conn: Any) -> LedgerEntryResult:
            if order_id is not None:
                await self._orders.require_order(conn, order_id)
            return await self._ledger.apply_within(
                conn,
                driver_id=driver_id,
                amount=value,
                operation_type=operation,
                description=description,
                order_id=order_id,
            )

        result = await run_atomic(self._db, _adjust, action=f"Корректировка баланса водителя {driver_id}")

        await log_info(f"Ручная операция {operation.value} по водителю {driver_id}", type_msg=TypeMsg.DEBUG)
        await self._ledger.publish_applied(result)
        return result
