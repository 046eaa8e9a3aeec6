# courier_dispatch/core/dispatch/events.py
"""
Публикация событий движка назначения.
"""

from __future__ import annotations

from typing import Any, Protocol

from pydantic import BaseModel

from courier_dispatch.common.logger import log_error
from courier_dispatch.infra.event_bus import DomainEvent


class EventPublisher(Protocol):
    """То, что нужно движку от шины событий (EventBus или LocalEventBus)."""

    async def publish(self, event: DomainEvent) -> None:
        ...


def to_payload(entity: BaseModel | dict[str, Any]) -> dict[str, Any]:
    """Полное JSON-представление сущности."""
    if isinstance(entity, BaseModel):
        return entity.model_dump(mode="json")
    return entity


async def emit(event_bus: EventPublisher | None, event_type: str, entity: BaseModel | dict[str, Any]) -> None:
    """
    Публикует событие с представлением сущности.
    Сбой шины логируется и не влияет на уже выполненные изменения.
    """
    if event_bus is None:
        return
    try:
        await event_bus.publish(DomainEvent(event_type=event_type, payload=to_payload(entity)))
    except Exception as e:
        await log_error(f"Не удалось опубликовать событие {event_type}: {e}", exc_info=True)
