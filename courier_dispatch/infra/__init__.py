# courier_dispatch/infra/__init__.py
"""
Инфраструктурный слой.
Работа с внешними сервисами: PostgreSQL, RabbitMQ.
"""

from courier_dispatch.infra.database import DatabaseManager, get_db
from courier_dispatch.infra.event_bus import DomainEvent, EventBus, EventTypes, LocalEventBus, get_event_bus

__all__ = [
    "DatabaseManager",
    "get_db",
    "DomainEvent",
    "EventBus",
    "EventTypes",
    "LocalEventBus",
    "get_event_bus",
]
