# fulfillment/infra/__init__.py
"""
Инфраструктура: PostgreSQL, Redis, RabbitMQ.
"""

from fulfillment.infra.database import CasOutcome, DatabaseManager
from fulfillment.infra.event_bus import DomainEvent, EventBus
from fulfillment.infra.redis_client import RedisClient

__all__ = [
    "CasOutcome",
    "DatabaseManager",
    "DomainEvent",
    "EventBus",
    "RedisClient",
]
