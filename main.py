#!/usr/bin/env python3
# main.py
"""
Точка входа приложения.

Режимы:
    api      Orders API (uvicorn), по умолчанию
    migrate  применить migrations/init.sql и выйти
"""

from __future__ import annotations

import asyncio
import sys

import uvicorn

from src.config import settings
from src.common.logger import setup_logging, log_info, log_error
from src.common.constants import TypeMsg
from src.infra.database import apply_schema, close_db, get_db


MODES = ("api", "migrate")


async def run_api() -> None:
    """Запуск Orders API."""
    await log_info(
        f"Запуск Orders API на {settings.deployment.ORDERS_API_HOST}:{settings.deployment.ORDERS_API_PORT}",
        type_msg=TypeMsg.INFO,
    )

    config = uvicorn.Config(
        "src.services.orders_api.app:app",
        host=settings.deployment.ORDERS_API_HOST,
        port=settings.deployment.ORDERS_API_PORT,
        reload=settings.system.DEBUG,
        log_level="debug" if settings.system.DEBUG else "info",
    )

    server = uvicorn.Server(config)
    await server.serve()


async def run_migrate() -> None:
    """Применяет схему БД и завершает работу."""
    db = get_db()
    try:
        await db.connect()
        await apply_schema(db)
    finally:
        await close_db()


async def main(mode: str = "api") -> None:
    """
    Главная функция запуска.

    Args:
        mode: api или migrate
    """
    setup_logging()
    await log_info(
        f"{settings.system.PROJECT_NAME} v{settings.system.VERSION} (режим '{mode}')",
        type_msg=TypeMsg.INFO,
    )

    try:
        if mode == "migrate":
            await run_migrate()
        else:
            await run_api()
    except asyncio.CancelledError:
        await log_info("Задача отменена, выполняется остановка", type_msg=TypeMsg.INFO)
    except Exception as e:
        await log_error(f"Критическая ошибка: {e}", exc_info=True)
        raise


def print_usage() -> None:
    """Выводит справку по использованию."""
    print("""
Использование:
    python main.py [mode]

    api        Orders API (по умолчанию)
    migrate    применить migrations/init.sql
    """)


if __name__ == "__main__":
    mode = "api"

    if len(sys.argv) > 1:
        arg = sys.argv[1].lower()
        if arg in ("--help", "-h"):
            print_usage()
            sys.exit(0)
        if arg not in MODES:
            print(f"Неизвестный режим: {arg}")
            print_usage()
            sys.exit(1)
        mode = arg

    try:
        asyncio.run(main(mode))
    except KeyboardInterrupt:
        pass
