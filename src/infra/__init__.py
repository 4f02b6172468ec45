# src/infra/__init__.py
"""
Инфраструктура: пул PostgreSQL, кэш тарифов в Redis и шина событий RabbitMQ.
"""

from src.infra.database import DatabaseManager, get_db
from src.infra.event_bus import DomainEvent, EventBus, EventTypes, get_event_bus
from src.infra.redis_client import RedisClient, get_redis

__all__ = [
    "DatabaseManager",
    "get_db",
    "RedisClient",
    "get_redis",
    "DomainEvent",
    "EventBus",
    "EventTypes",
    "get_event_bus",
]
