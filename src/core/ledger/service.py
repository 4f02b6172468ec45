# src/core/ledger/service.py
"""
Баланс водителя и журнал операций.

Каждая операция в одной транзакции:
блокировка строки водителя -> новый баланс -> запись баланса -> запись в журнал.
Параллельные операции одного водителя выстраиваются в очередь на блокировке,
операции разных водителей идут параллельно.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from src.common.constants import TransactionType, TypeMsg
from src.common.exceptions import (
    DriverNotFound,
    InsufficientFunds,
    InvalidAmount,
    UnknownOperationType,
)
from src.common.logger import log_error, log_info
from src.common.money import Number, to_money
from src.core.ledger.chain import next_balance, reconcile_chain
from src.core.ledger.models import (
    DriverTransaction,
    LedgerEntryResult,
    ReconciliationReport,
    TransactionFilters,
    TransactionView,
)
from src.core.ledger.repository import LedgerRepository
from src.core.transactions import run_atomic, run_read
from src.infra.database import DatabaseManager
from src.infra.event_bus import DomainEvent, EventBus, EventTypes
from src.shared.models.common import Page, PaginationParams


class DriverLedgerService:
    """Сервис баланса водителей."""

    def __init__(
        self,
        db: DatabaseManager,
        event_bus: EventBus,
        allow_negative_balance: Optional[bool] = None,
    ) -> None:
        """
        Args:
            db: Менеджер базы данных
            event_bus: Шина событий
            allow_negative_balance: Разрешить уход в минус (по умолчанию из конфига)
        """
        self._db = db
        self._repo = LedgerRepository(db)
        self._event_bus = event_bus
        if allow_negative_balance is None:
            from src.config import settings
            allow_negative_balance = settings.ledger.ALLOW_NEGATIVE_BALANCE
        self.allow_negative_balance = allow_negative_balance

    # =========================================================================
    # ВАЛИДАЦИЯ
    # =========================================================================

    @staticmethod
    def parse_operation(operation_type: TransactionType | str) -> TransactionType:
        try:
            return TransactionType(operation_type)
        except ValueError as e:
            raise UnknownOperationType(
                f"Неизвестный тип операции: {operation_type}",
                operation_type=str(operation_type),
            ) from e

    @staticmethod
    def parse_amount(amount: Number) -> Decimal:
        """Сумма, округлённая до копеек. Должна быть больше нуля."""
        try:
            value = to_money(amount)
        except ValueError as e:
            raise InvalidAmount(f"Некорректная сумма: {amount!r}", amount=str(amount)) from e
        if value <= 0:
            raise InvalidAmount("Сумма должна быть больше нуля", amount=str(amount))
        return value

    # =========================================================================
    # ПРИМЕНЕНИЕ ОПЕРАЦИИ
    # =========================================================================

    async def apply_within(
        self,
        conn: Any,
        *,
        driver_id: UUID,
        amount: Number,
        operation_type: TransactionType | str,
        description: Optional[str] = None,
        order_id: Optional[UUID] = None,
    ) -> LedgerEntryResult:
        """
        Применяет операцию внутри уже открытой транзакции.
        Фиксацию и откат выполняет владелец транзакции.

        Raises:
            InvalidAmount, UnknownOperationType, DriverNotFound, InsufficientFunds
        """
        operation = self.parse_operation(operation_type)
        value = self.parse_amount(amount)

        locked = await self._repo.lock_driver(conn, driver_id)
        if locked is None:
            raise DriverNotFound(f"Водитель {driver_id} не найден", driver_id=str(driver_id))

        previous = to_money(locked.balance)
        new_balance = next_balance(previous, operation, value)

        if new_balance < 0 and not operation.is_credit and not self.allow_negative_balance:
            raise InsufficientFunds(
                f"Недостаточно средств: баланс {previous}, списание {value}",
                driver_id=str(driver_id),
                balance=str(previous),
                amount=str(value),
            )

        await self._repo.update_balance(conn, driver_id, new_balance)
        entry = await self._repo.insert_transaction(conn, DriverTransaction(
            driver_id=driver_id,
            order_id=order_id,
            amount=value,
            type=operation,
            description=description,
            balance_after=new_balance,
        ))

        return LedgerEntryResult(
            transaction_id=entry.id,
            driver_id=driver_id,
            order_id=order_id,
            operation=operation,
            amount=value,
            previous_balance=previous,
            new_balance=new_balance,
        )

    async def apply(
        self,
        driver_id: UUID,
        amount: Number,
        operation_type: TransactionType | str,
        description: Optional[str] = None,
        order_id: Optional[UUID] = None,
    ) -> LedgerEntryResult:
        """
        Применяет операцию в собственной транзакции.

        Args:
            driver_id: ID водителя
            amount: Положительная сумма
            operation_type: Тип операции (знак определяется типом)
            description: Описание
            order_id: Связанный заказ

        Returns:
            Предыдущий и новый баланс, ID записи журнала
        """
        # Проверки входа до открытия транзакции
        operation = self.parse_operation(operation_type)
        value = self.parse_amount(amount)

        async def _apply(conn: Any) -> LedgerEntryResult:
            return await self.apply_within(
                conn,
                driver_id=driver_id,
                amount=value,
                operation_type=operation,
                description=description,
                order_id=order_id,
            )

        result = await run_atomic(self._db, _apply, action=f"Операция {operation.value} водителя {driver_id}")
        await self.publish_applied(result)
        return result

    async def publish_applied(self, result: LedgerEntryResult) -> None:
        """Логирует операцию и публикует событие. Вызывается после фиксации."""
        await log_info(
            f"Баланс водителя {result.driver_id}: {result.operation.value} {result.amount}, "
            f"{result.previous_balance} -> {result.new_balance}",
            type_msg=TypeMsg.INFO,
        )
        try:
            await self._event_bus.publish(DomainEvent(
                event_type=EventTypes.LEDGER_TRANSACTION_APPLIED,
                payload=result.model_dump(mode="json"),
            ))
        except Exception as e:
            await log_error(f"Не удалось опубликовать {EventTypes.LEDGER_TRANSACTION_APPLIED}: {e}")

    # =========================================================================
    # ЧТЕНИЕ
    # =========================================================================

    async def get_history(self, driver_id: UUID, pagination: PaginationParams) -> Page[DriverTransaction]:
        """История операций водителя, новые первыми."""
        async def _read() -> Page[DriverTransaction]:
            total = await self._repo.count_for_driver(driver_id)
            items = await self._repo.list_for_driver(driver_id, pagination.limit, pagination.offset)
            return Page[DriverTransaction].create(items, total, pagination)

        return await run_read(_read, action=f"История водителя {driver_id}")

    async def list_transactions(
        self,
        filters: TransactionFilters,
        pagination: PaginationParams,
    ) -> Page[TransactionView]:
        """Все операции с фильтрами, новые первыми."""
        async def _read() -> Page[TransactionView]:
            items, total = await self._repo.list_all(filters, pagination.limit, pagination.offset)
            return Page[TransactionView].create(items, total, pagination)

        return await run_read(_read, action="Список операций")

    async def reconcile(self, driver_id: UUID) -> ReconciliationReport:
        """
        Сверка журнала водителя: пересчёт с нуля, проверка цепочки
        balance_after и дрейфа текущего баланса. Только чтение.
        """
        async def _read(conn: Any) -> ReconciliationReport:
            locked = await self._repo.lock_driver(conn, driver_id)
            if locked is None:
                raise DriverNotFound(f"Водитель {driver_id} не найден", driver_id=str(driver_id))
            entries = await self._repo.list_chain(driver_id, conn)
            return reconcile_chain(driver_id, entries, locked.balance)

        # Блокировка водителя не даёт операциям вклиниться между чтениями
        report = await run_atomic(self._db, _read, action=f"Сверка журнала водителя {driver_id}")
        if not report.is_consistent:
            await log_error(
                f"Журнал водителя {driver_id} не сходится: "
                f"{len(report.mismatches)} расхождений, дрейф {report.drift}"
            )
        return report
