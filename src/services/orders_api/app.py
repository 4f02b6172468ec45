# src/services/orders_api/app.py
"""
FastAPI приложение Orders API.

Endpoints:
- POST /api/v1/orders - создать заказ
- GET /api/v1/orders - список заказов
- GET /api/v1/orders/{id} - заказ с маршрутом
- POST /api/v1/orders/accept - водитель принимает заказ
- PUT /api/v1/orders/{id}/status - сменить статус
- POST /api/v1/orders/{id}/cancel - отменить заказ
- POST /api/v1/orders/{id}/finish - завершить заказ с удержанием комиссии
- POST /api/v1/transactions - ручная операция по балансу
- GET /api/v1/transactions - все операции (админ)
- GET /api/v1/transactions/driver/{id} - история водителя
- GET /api/v1/transactions/driver/{id}/reconcile - сверка журнала
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from src.common.constants import TypeMsg
from src.common.exceptions import (
    DomainError,
    InsufficientFunds,
    InvalidTransition,
    NotFoundError,
    PersistenceError,
    ValidationFailed,
)
from src.common.logger import log_error, log_info, log_warning, setup_logging
from src.services.orders_api.dependencies import cleanup_dependencies, init_dependencies
from src.services.orders_api.routes import orders_router, transactions_router
from src.shared.models.common import ErrorResponse, HealthStatus

SERVICE_NAME = "orders_api"


def status_for(exc: DomainError) -> int:
    """HTTP-статус для доменной ошибки."""
    if isinstance(exc, ValidationFailed):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, (InvalidTransition, InsufficientFunds)):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, PersistenceError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


# === LIFESPAN ===

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Жизненный цикл приложения."""
    from src.infra.database import close_db, get_db, init_db
    from src.infra.event_bus import close_event_bus, get_event_bus, init_event_bus
    from src.infra.redis_client import close_redis, get_redis, init_redis

    setup_logging()

    await init_db()

    # Redis и RabbitMQ необязательны: без них нет кэша тарифов и событий
    redis = None
    try:
        await init_redis()
        redis = get_redis()
    except Exception as e:
        await log_warning(f"Redis недоступен, кэш тарифов отключён: {e}")

    try:
        await init_event_bus()
    except Exception as e:
        await log_warning(f"RabbitMQ недоступен, события не публикуются: {e}")

    await init_dependencies(get_db(), redis, get_event_bus())
    await log_info(f"{SERVICE_NAME} запущен", type_msg=TypeMsg.INFO)

    yield

    await cleanup_dependencies()
    await close_event_bus()
    await close_redis()
    await close_db()
    await log_info(f"{SERVICE_NAME} остановлен", type_msg=TypeMsg.INFO)


# === APP ===

app = FastAPI(
    title="Orders API",
    description="Жизненный цикл заказов и баланс водителей.",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.include_router(orders_router)
app.include_router(transactions_router)


# === ERROR HANDLERS ===

@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    code = status_for(exc)
    if code >= 500:
        await log_error(f"{request.method} {request.url.path}: {exc.error_code}: {exc.message}")
    else:
        await log_warning(f"{request.method} {request.url.path}: {exc.error_code}: {exc.message}")

    body = ErrorResponse(error_code=exc.error_code, message=exc.message, details=exc.details or None)
    return JSONResponse(status_code=code, content=body.model_dump(mode="json"))


@app.exception_handler(RequestValidationError)
@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    errors = exc.errors() if hasattr(exc, "errors") else []
    body = ErrorResponse(
        error_code=ValidationFailed.error_code,
        message="Некорректные входные данные",
        details={"errors": [
            {"loc": [str(p) for p in err.get("loc", ())], "msg": err.get("msg", "")}
            for err in errors
        ]},
    )
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body.model_dump(mode="json"))


# === HEALTH CHECK ===

@app.get("/health", response_model=HealthStatus, tags=["Health"])
async def health_check() -> HealthStatus:
    """Проверка здоровья сервиса и его зависимостей."""
    from src.infra.database import get_db
    from src.infra.event_bus import get_event_bus
    from src.infra.redis_client import get_redis

    redis = get_redis()
    dependencies = {
        "postgres": "healthy" if await get_db().health_check() else "unhealthy",
        "redis": "healthy" if redis.is_connected and await redis.health_check() else "unavailable",
        "rabbitmq": "healthy" if await get_event_bus().health_check() else "unavailable",
    }
    return HealthStatus(
        service=SERVICE_NAME,
        status="healthy" if dependencies["postgres"] == "healthy" else "degraded",
        version=app.version,
        dependencies=dependencies,
    )
