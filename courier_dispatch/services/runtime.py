# courier_dispatch/services/runtime.py
"""
Сборка движка назначения для процессов API, бота и воркера.

DispatchRuntime связывает хранилище, шину событий и канал уведомлений
с координатором, планировщиком и жизненным циклом, а также владеет
фоновыми задачами (периодический проход, рассылка статистики, демо-заказы).
"""

from __future__ import annotations

import asyncio
import random
from typing import Optional

from courier_dispatch.common.constants import TypeMsg
from courier_dispatch.common.logger import log_error, log_info
from courier_dispatch.config.loader import DispatchSettings
from courier_dispatch.core.assignments.models import DispatchStats
from courier_dispatch.core.dispatch.coordinator import AssignmentCoordinator
from courier_dispatch.core.dispatch.demo import build_mock_order
from courier_dispatch.core.dispatch.events import EventPublisher, emit
from courier_dispatch.core.dispatch.lifecycle import LifecycleMutator
from courier_dispatch.core.dispatch.scheduler import BatchScheduler
from courier_dispatch.core.matching.service import DriverMatcher
from courier_dispatch.core.notifications.service import NotificationChannel
from courier_dispatch.core.orders.models import Order, OrderCreateDTO
from courier_dispatch.infra.event_bus import EventTypes
from courier_dispatch.storage.base import DispatchStorage


class DispatchRuntime:
    """
    Собранный движок назначения.

    Args:
        storage: Хранилище
        event_bus: Шина событий
        notifier: Канал уведомлений, выбранный при запуске
        options: Настройки движка (по умолчанию значения DispatchSettings)
    """

    def __init__(
        self,
        storage: DispatchStorage,
        event_bus: EventPublisher | None,
        notifier: NotificationChannel,
        options: DispatchSettings | None = None,
    ) -> None:
        self.options = options or DispatchSettings()
        self.storage = storage
        self.event_bus = event_bus
        self.notifier = notifier

        matcher = DriverMatcher(
            km_per_degree=self.options.DISTANCE_KM_PER_DEGREE,
            precision=self.options.DISTANCE_PRECISION,
        )
        self.coordinator = AssignmentCoordinator(storage, notifier, event_bus, matcher)
        self.lifecycle = LifecycleMutator(storage, event_bus, notifier)
        self.scheduler = BatchScheduler(
            storage,
            self.coordinator,
            pacing_seconds=self.options.ASSIGNMENT_PACING_SECONDS,
            max_orders_per_run=self.options.MAX_ORDERS_PER_RUN,
        )
        self._tasks: set[asyncio.Task] = set()

    # =========================================================================
    # СОЗДАНИЕ ЗАКАЗОВ
    # =========================================================================

    async def create_order(self, dto: OrderCreateDTO) -> Order:
        """Создаёт заказ и сразу запускает проход назначения в фоне."""
        order = await self.lifecycle.create_order(dto)
        self.scheduler.trigger()
        return order

    async def create_mock_order(self, rng: random.Random | None = None) -> Order:
        """Создаёт демо-заказ; проход назначения стартует с задержкой."""
        order = await self.lifecycle.create_order(build_mock_order(rng))
        await log_info(
            f"Демо-заказ {order.order_number}: {order.restaurant_name} -> {order.delivery_address}",
            type_msg=TypeMsg.DEBUG,
        )
        self.scheduler.trigger(self.options.TRIGGER_DELAY_SECONDS)
        return order

    # =========================================================================
    # ФОНОВЫЕ ЗАДАЧИ
    # =========================================================================

    async def publish_stats(self) -> DispatchStats:
        stats = await self.storage.get_stats()
        await emit(self.event_bus, EventTypes.STATS_UPDATE, stats)
        return stats

    async def demo_tick(self, rng: random.Random | None = None) -> Optional[Order]:
        """
        Один шаг демо-генератора.
        Заказ создаётся с вероятностью DEMO_ORDER_PROBABILITY и только
        если есть хотя бы один доступный курьер.
        """
        rng = rng or random.Random()
        eligible = await self.storage.get_eligible_drivers()
        if not eligible or rng.random() >= self.options.DEMO_ORDER_PROBABILITY:
            return None
        return await self.create_mock_order(rng)

    async def _every(self, interval: float, step, name: str) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await step()
            except Exception as e:
                await log_error(f"Фоновая задача {name} завершилась с ошибкой: {e}", exc_info=True)

    def owns_periodic(self, component: str) -> bool:
        """Запускает ли процесс данного типа периодический проход (PERIODIC_OWNER)."""
        return self.options.PERIODIC_OWNER == component

    def start_background(self, periodic: bool = True, stats: bool = True, demo: bool | None = None) -> None:
        """
        Запускает фоновые задачи.

        Args:
            periodic: Периодический проход планировщика
            stats: Рассылка статистики дашбордам
            demo: Генератор демо-заказов (по умолчанию из DEMO_MODE)
        """
        if demo is None:
            demo = self.options.DEMO_MODE

        if periodic:
            self.scheduler.start_periodic(self.options.PERIODIC_INTERVAL_SECONDS)
        if stats:
            self._spawn(self._every(self.options.STATS_INTERVAL_SECONDS, self.publish_stats, "stats"))
        if demo:
            self._spawn(self._every(self.options.PERIODIC_INTERVAL_SECONDS, self.demo_tick, "demo"))

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def stop(self) -> None:
        """Останавливает фоновые задачи и закрывает канал уведомлений."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self.scheduler.stop()
        await self.notifier.close()
        await self.storage.close()


# =============================================================================
# ИНИЦИАЛИЗАЦИЯ
# =============================================================================

async def init_runtime(bot=None) -> DispatchRuntime:
    """
    Поднимает инфраструктуру и собирает движок согласно конфигурации.

    Args:
        bot: Экземпляр aiogram Bot, если процесс уже держит бота
    """
    from courier_dispatch.config import settings
    from courier_dispatch.core.notifications.service import create_notification_channel
    from courier_dispatch.infra.event_bus import init_event_bus
    from courier_dispatch.storage import init_storage

    storage = await init_storage()
    event_bus = await init_event_bus()
    notifier = create_notification_channel(bot=bot)

    await log_info(
        f"Движок назначения собран: хранилище {type(storage).__name__}, уведомления {notifier.name}",
        type_msg=TypeMsg.INFO,
    )
    return DispatchRuntime(storage, event_bus, notifier, settings.dispatch)


async def close_runtime(runtime: DispatchRuntime) -> None:
    """Останавливает движок и закрывает инфраструктуру."""
    from courier_dispatch.infra.database import close_db
    from courier_dispatch.infra.event_bus import close_event_bus

    await runtime.stop()
    await close_event_bus()
    await close_db()
