# courier_dispatch/worker/dispatch.py
"""
Воркер назначения заказов.
"""

from __future__ import annotations

from courier_dispatch.common.constants import TypeMsg
from courier_dispatch.common.logger import log_error, log_info
from courier_dispatch.infra.event_bus import DomainEvent, EventTypes
from courier_dispatch.services.runtime import DispatchRuntime


class DispatchWorker:
    """
    Воркер назначения для отдельного процесса.

    Подписывается на NEW_ORDER и запускает проход планировщика,
    плюс выполняет периодический проход для заказов, оставшихся без курьера.
    Несколько воркеров делят одну очередь и получают события по очереди.
    """

    name = "DispatchWorker"
    subscriptions: tuple[str, ...] = (EventTypes.NEW_ORDER,)
    queue_prefix = "dispatch.worker"

    def __init__(self, runtime: DispatchRuntime) -> None:
        self.runtime = runtime
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Запускает воркер."""
        if self._running:
            return

        self._running = True
        await log_info(f"Воркер {self.name} запускается...", type_msg=TypeMsg.INFO)

        event_bus = self.runtime.event_bus
        if event_bus is not None and hasattr(event_bus, "subscribe"):
            for event_type in self.subscriptions:
                await event_bus.subscribe(
                    event_type,
                    self._on_event,
                    queue_name=f"{self.queue_prefix}.{event_type}",
                )
                await log_info(f"Воркер {self.name} подписан на {event_type}", type_msg=TypeMsg.DEBUG)

        self.runtime.start_background(periodic=self.runtime.owns_periodic("worker"), stats=False, demo=False)
        await log_info(f"Воркер {self.name} запущен", type_msg=TypeMsg.INFO)

    async def stop(self) -> None:
        """Останавливает воркер, дожидаясь текущего прохода."""
        if not self._running:
            return

        self._running = False
        await self.runtime.scheduler.stop()
        await log_info(f"Воркер {self.name} остановлен", type_msg=TypeMsg.INFO)

    async def _on_event(self, event: DomainEvent) -> None:
        if not self._running:
            return

        try:
            await log_info(
                f"Воркер {self.name} получил событие {event.event_type}",
                type_msg=TypeMsg.DEBUG,
            )
            await self.handle_event(event)
        except Exception as e:
            await log_error(
                f"Ошибка в воркере {self.name}: {e}",
                extra={"event_type": event.event_type, "payload": event.payload},
            )

    async def handle_event(self, event: DomainEvent) -> None:
        if event.event_type == EventTypes.NEW_ORDER:
            self.runtime.scheduler.trigger(self.runtime.options.TRIGGER_DELAY_SECONDS)
