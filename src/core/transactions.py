# src/core/transactions.py
"""
Выполнение операций ядра в транзакции с таймаутом.

Доменные ошибки пробрасываются как есть. Ошибки PostgreSQL, обрывы
соединения и таймауты превращаются в PersistenceError уже после отката.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Awaitable, Callable, TypeVar

import asyncpg

from src.common.exceptions import DomainError, PersistenceError
from src.common.logger import log_error
from src.infra.database import CONNECTION_ERRORS

T = TypeVar("T")

# Протокол исполнителя запросов: DatabaseManager или asyncpg.Connection
Executor = Any


def _operation_timeout() -> float:
    from src.config import settings
    return settings.orders.OPERATION_TIMEOUT


@asynccontextmanager
async def persistence_errors(action: str) -> AsyncGenerator[None, None]:
    """Переводит сбои хранилища в PersistenceError."""
    try:
        yield
    except DomainError:
        raise
    except asyncio.TimeoutError as e:
        await log_error(f"{action}: превышено время ожидания")
        raise PersistenceError(f"{action}: превышено время ожидания", action=action) from e
    except (asyncpg.PostgresError, *CONNECTION_ERRORS) as e:
        await log_error(f"{action}: ошибка хранилища: {e}", exc_info=True)
        raise PersistenceError(f"{action}: ошибка хранилища", action=action) from e


async def run_atomic(
    db: Any,
    operation: Callable[[Executor], Awaitable[T]],
    *,
    action: str,
    timeout: float | None = None,
) -> T:
    """
    Выполняет operation(conn) в одной транзакции.

    При исключении, отмене или таймауте транзакция откатывается целиком:
    asyncio.wait_for отменяет внутреннюю задачу, и CancelledError
    выходит из блока transaction().

    Args:
        db: DatabaseManager (или совместимый объект с transaction())
        operation: Корутина-функция, принимающая соединение
        action: Название операции для логов и ошибок
        timeout: Таймаут в секундах (по умолчанию OPERATION_TIMEOUT)
    """
    async def _in_transaction() -> T:
        async with db.transaction() as conn:
            return await operation(conn)

    limit = timeout if timeout is not None else _operation_timeout()
    async with persistence_errors(action):
        return await asyncio.wait_for(_in_transaction(), timeout=limit)


async def run_read(
    operation: Callable[[], Awaitable[T]],
    *,
    action: str,
    timeout: float | None = None,
) -> T:
    """Выполняет чтение вне транзакции с тем же переводом ошибок."""
    limit = timeout if timeout is not None else _operation_timeout()
    async with persistence_errors(action):
        return await asyncio.wait_for(operation(), timeout=limit)
