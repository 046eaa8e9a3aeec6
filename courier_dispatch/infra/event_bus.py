# courier_dispatch/infra/event_bus.py
"""
Шина событий.

EventBus работает поверх RabbitMQ (topic exchange) и связывает процессы
api / bot / worker. LocalEventBus рассылает события внутри одного процесса
и используется, когда брокер не настроен, а также в тестах.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable
from uuid import uuid4

import aio_pika
from aio_pika import ExchangeType, Message
from aio_pika.abc import AbstractChannel, AbstractConnection, AbstractExchange, AbstractQueue

from courier_dispatch.common.constants import TypeMsg
from courier_dispatch.common.logger import log_error, log_info


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


# =============================================================================
# ДОМЕННЫЕ СОБЫТИЯ
# =============================================================================

@dataclass
class DomainEvent:
    """Доменное событие: тип и полное представление сущности в payload."""
    event_id: str = field(default_factory=lambda: str(uuid4()))
    event_type: str = ""
    timestamp: str = field(default_factory=_utc_now_iso)
    payload: dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        """Сериализует событие в JSON."""
        return json.dumps({
            "event_id": self.event_id,
            "event_type": self.event_type,
            "timestamp": self.timestamp,
            "payload": self.payload,
        }, ensure_ascii=False, default=str)

    @classmethod
    def from_json(cls, data: str) -> DomainEvent:
        """Десериализует событие из JSON."""
        parsed = json.loads(data)
        return cls(
            event_id=parsed.get("event_id", str(uuid4())),
            event_type=parsed.get("event_type", ""),
            timestamp=parsed.get("timestamp", ""),
            payload=parsed.get("payload", {}),
        )

    def to_frame(self) -> dict[str, Any]:
        """Кадр для дашборда: {"type": ..., "data": ...}."""
        return {"type": self.event_type, "data": self.payload}


class EventTypes:
    """Константы типов событий."""
    NEW_ORDER = "new_order"
    ORDER_UPDATED = "order_updated"
    DRIVER_UPDATED = "driver_updated"
    NEW_ASSIGNMENT = "new_assignment"
    DRIVER_REGISTERED = "driver_registered"
    STATS_UPDATE = "stats_update"

    # События, которые транслируются на дашборд
    DASHBOARD: tuple[str, ...] = (
        NEW_ORDER,
        ORDER_UPDATED,
        DRIVER_UPDATED,
        NEW_ASSIGNMENT,
        DRIVER_REGISTERED,
        STATS_UPDATE,
    )


# Тип обработчика событий
EventHandler = Callable[[DomainEvent], Awaitable[None]]


async def _run_handlers(event: DomainEvent, handlers: list[EventHandler]) -> None:
    for handler in handlers:
        try:
            await handler(event)
        except Exception as e:
            await log_error(
                f"Ошибка в обработчике {getattr(handler, '__name__', handler)}: {e}",
                exc_info=True,
            )


# =============================================================================
# ЛОКАЛЬНАЯ ШИНА
# =============================================================================

class LocalEventBus:
    """Шина событий внутри процесса с тем же интерфейсом, что и EventBus."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}
        self.published: list[DomainEvent] = []

    @property
    def is_connected(self) -> bool:
        return True

    async def publish(self, event: DomainEvent) -> None:
        self.published.append(event)
        await _run_handlers(event, list(self._handlers.get(event.event_type, [])))

    async def subscribe(
        self,
        event_type: str,
        handler: EventHandler,
        queue_name: str | None = None,
        exclusive: bool = False,
    ) -> None:
        self._handlers.setdefault(event_type, []).append(handler)

    async def disconnect(self) -> None:
        self._handlers.clear()

    async def health_check(self) -> bool:
        return True


# =============================================================================
# ШИНА НА RABBITMQ
# =============================================================================

class EventBus:
    """
    Шина событий на базе RabbitMQ.

    Реализует:
    - Публикацию событий в exchange (routing_key = тип события)
    - Подписку на события через очереди
    - Автоматическое переподключение (connect_robust)
    """

    _instance: EventBus | None = None

    def __new__(cls) -> EventBus:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        if hasattr(self, "_initialized"):
            return
        self._initialized = True
        self._connection: AbstractConnection | None = None
        self._channel: AbstractChannel | None = None
        self._exchange: AbstractExchange | None = None
        self._handlers: dict[str, list[EventHandler]] = {}
        self._exchange_name = "dispatch.events"
        self._queues: dict[str, AbstractQueue] = {}

    @property
    def is_connected(self) -> bool:
        """Проверяет, активно ли соединение."""
        return self._connection is not None and not self._connection.is_closed

    async def connect(
        self,
        url: str,
        exchange_name: str | None = None,
        prefetch_count: int = 10,
    ) -> None:
        """
        Подключается к RabbitMQ.

        Args:
            url: URL RabbitMQ
            exchange_name: Имя exchange
            prefetch_count: Количество сообщений для prefetch
        """
        if self.is_connected:
            return

        if exchange_name:
            self._exchange_name = exchange_name

        await log_info("Подключение к RabbitMQ...", type_msg=TypeMsg.INFO)

        self._connection = await aio_pika.connect_robust(url)
        self._channel = await self._connection.channel()
        await self._channel.set_qos(prefetch_count=prefetch_count)

        self._exchange = await self._channel.declare_exchange(
            self._exchange_name,
            ExchangeType.TOPIC,
            durable=True,
        )

        await log_info("Подключение к RabbitMQ установлено", type_msg=TypeMsg.INFO)

    async def disconnect(self) -> None:
        """Закрывает соединение с RabbitMQ."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            self._channel = None
            self._exchange = None
            self._queues = {}
            self._handlers = {}
            await log_info("Соединение с RabbitMQ закрыто", type_msg=TypeMsg.INFO)

    async def publish(self, event: DomainEvent) -> None:
        """
        Публикует событие в exchange.
        Ошибки публикации логируются и не пробрасываются.

        Args:
            event: Доменное событие
        """
        if not self.is_connected or self._exchange is None:
            await log_error(f"Не удалось опубликовать {event.event_type}: нет соединения с RabbitMQ")
            return

        try:
            message = Message(
                body=event.to_json().encode(),
                content_type="application/json",
                message_id=event.event_id,
                timestamp=datetime.now(timezone.utc),
            )
            await self._exchange.publish(message, routing_key=event.event_type)
            await log_info(f"Событие опубликовано: {event.event_type}", type_msg=TypeMsg.DEBUG)
        except Exception as e:
            await log_error(f"Ошибка публикации события {event.event_type}: {e}")

    async def subscribe(
        self,
        event_type: str,
        handler: EventHandler,
        queue_name: str | None = None,
        exclusive: bool = False,
    ) -> None:
        """
        Подписывается на события определённого типа.

        Args:
            event_type: Тип события (routing_key pattern)
            handler: Асинхронный обработчик события
            queue_name: Имя очереди (если None, генерируется по типу события)
            exclusive: Отдельная временная очередь процесса (каждый экземпляр
                получает свою копию события, как нужно для WebSocket-трансляции)
        """
        if not self.is_connected or self._channel is None or self._exchange is None:
            await log_error("Не удалось подписаться: нет соединения с RabbitMQ")
            return

        self._handlers.setdefault(event_type, []).append(handler)

        if exclusive:
            queue_key = f"exclusive:{event_type}"
        else:
            queue_key = queue_name or f"dispatch.{event_type}"

        if queue_key not in self._queues:
            if exclusive:
                queue = await self._channel.declare_queue("", exclusive=True, auto_delete=True)
            else:
                queue = await self._channel.declare_queue(queue_key, durable=True)

            await queue.bind(self._exchange, routing_key=event_type)
            self._queues[queue_key] = queue
            await queue.consume(self._make_consumer(event_type))

        await log_info(f"Подписка на события: {event_type}", type_msg=TypeMsg.DEBUG)

    def _make_consumer(self, event_type: str) -> Callable:
        """Создаёт consumer для обработки сообщений."""
        async def consumer(message: aio_pika.abc.AbstractIncomingMessage) -> None:
            async with message.process():
                try:
                    event = DomainEvent.from_json(message.body.decode())
                except (ValueError, UnicodeDecodeError) as e:
                    await log_error(f"Некорректное сообщение в очереди {event_type}: {e}")
                    return
                await _run_handlers(event, list(self._handlers.get(event_type, [])))

        return consumer

    async def health_check(self) -> bool:
        return self.is_connected


# =============================================================================
# ГЛОБАЛЬНЫЙ ЭКЗЕМПЛЯР
# =============================================================================

_event_bus: EventBus | LocalEventBus | None = None


def get_event_bus() -> EventBus | LocalEventBus:
    """
    Возвращает глобальную шину событий.
    До вызова init_event_bus() это локальная шина процесса.
    """
    global _event_bus
    if _event_bus is None:
        _event_bus = LocalEventBus()
    return _event_bus


async def init_event_bus() -> EventBus | LocalEventBus:
    """
    Инициализирует шину событий согласно конфигурации.
    При выключенном RabbitMQ остаётся локальная шина.
    """
    from courier_dispatch.config import settings

    global _event_bus
    if not settings.rabbitmq.RABBITMQ_ENABLED:
        _event_bus = get_event_bus()
        await log_info("RabbitMQ выключен, используется локальная шина событий", type_msg=TypeMsg.INFO)
        return _event_bus

    bus = EventBus()
    await bus.connect(
        url=settings.rabbitmq.url,
        exchange_name=settings.rabbitmq.RABBITMQ_EXCHANGE,
        prefetch_count=settings.rabbitmq.RABBITMQ_PREFETCH_COUNT,
    )
    _event_bus = bus
    await log_info(
        f"RabbitMQ подключён: {settings.rabbitmq.RABBITMQ_HOST}:{settings.rabbitmq.RABBITMQ_PORT}",
        type_msg=TypeMsg.INFO,
    )
    return bus


async def close_event_bus() -> None:
    """Закрывает шину событий."""
    global _event_bus
    if _event_bus is not None:
        await _event_bus.disconnect()
        _event_bus = None
