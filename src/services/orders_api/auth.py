# src/services/orders_api/auth.py
"""
Проверка bearer-токена и ролей.

Токен подписан общим секретом (JWT_SECRET); пользователь берётся
из claim'ов sub и role.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from src.common.constants import UserRole
from src.common.logger import log_warning
from src.core.orders.models import Actor

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_actor(token: str, secret: str, algorithm: str) -> Actor:
    """
    Декодирует токен в пользователя.

    Raises:
        HTTPException(401): подпись неверна, токен просрочен или нет sub/role
    """
    if not secret:
        raise _unauthorized("Проверка токенов не настроена")

    try:
        payload = jwt.decode(token, secret, algorithms=[algorithm])
    except JWTError as e:
        raise _unauthorized("Недействительный токен") from e

    try:
        return Actor(id=UUID(str(payload.get("sub"))), role=UserRole(payload.get("role")))
    except ValueError as e:
        raise _unauthorized("В токене нет корректных sub и role") from e


async def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Actor:
    """Пользователь из заголовка Authorization: Bearer <token>."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise _unauthorized("Требуется авторизация")

    from src.config import settings
    return decode_actor(credentials.credentials, settings.auth.JWT_SECRET, settings.auth.JWT_ALGORITHM)


def require_roles(*roles: UserRole) -> Callable[..., Awaitable[Actor]]:
    """Зависимость FastAPI: пропускает только указанные роли."""
    allowed = frozenset(roles)

    async def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in allowed:
            await log_warning(f"Доступ запрещён: роль {actor.role.value}, нужна одна из {sorted(r.value for r in allowed)}")
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Недостаточно прав")
        return actor

    return dependency
