# courier_dispatch/core/dispatch/scheduler.py
"""
Пакетная обработка заказов, ожидающих назначения.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from courier_dispatch.common.constants import TypeMsg
from courier_dispatch.common.logger import log_debug, log_error, log_info
from courier_dispatch.core.dispatch.coordinator import AssignmentCoordinator
from courier_dispatch.storage.base import DispatchStorage


@dataclass(frozen=True)
class DispatchRunResult:
    """Итог прохода планировщика."""
    skipped: bool = False
    processed: int = 0
    matched: int = 0


class BatchScheduler:
    """
    Проходит по заказам pending от старых к новым и назначает их по одному.

    Одновременно выполняется не больше одного прохода: вызов во время
    активного прохода сразу возвращает skipped, не ожидая и не вставая в очередь.
    """

    def __init__(
        self,
        storage: DispatchStorage,
        coordinator: AssignmentCoordinator,
        pacing_seconds: float = 0.1,
        max_orders_per_run: int = 0,
    ) -> None:
        """
        Args:
            storage: Хранилище
            coordinator: Координатор назначений
            pacing_seconds: Пауза между заказами внутри прохода
            max_orders_per_run: Ограничение числа заказов за проход (0 — без ограничения)
        """
        self._storage = storage
        self._coordinator = coordinator
        self._pacing_seconds = pacing_seconds
        self._max_orders_per_run = max_orders_per_run
        self._processing = False
        self._tasks: set[asyncio.Task] = set()
        self._runs: set[asyncio.Task] = set()

    @property
    def is_processing(self) -> bool:
        return self._processing

    async def process_pending_orders(self) -> DispatchRunResult:
        """
        Один проход по очереди ожидающих заказов.

        Ошибка по одному заказу не прерывает проход.
        """
        if self._processing:
            await log_debug("Проход планировщика уже выполняется, вызов пропущен")
            return DispatchRunResult(skipped=True)

        self._processing = True
        try:
            return await self._run()
        finally:
            self._processing = False

    async def _run(self) -> DispatchRunResult:
        try:
            pending = await self._storage.get_pending_orders()
        except Exception as e:
            await log_error(f"Не удалось получить ожидающие заказы: {e}", exc_info=True)
            return DispatchRunResult()

        pending = sorted(pending, key=lambda order: (order.created_at, order.id))
        if self._max_orders_per_run:
            pending = pending[: self._max_orders_per_run]

        if not pending:
            return DispatchRunResult()

        await log_info(f"Обработка {len(pending)} ожидающих заказов", type_msg=TypeMsg.DEBUG)

        matched = 0
        for index, order in enumerate(pending):
            if index and self._pacing_seconds > 0:
                await asyncio.sleep(self._pacing_seconds)
            try:
                if await self._coordinator.assign(order):
                    matched += 1
            except Exception as e:
                await log_error(
                    f"Заказ {order.order_number} пропущен из-за ошибки: {e}",
                    extra={"order_id": order.id},
                    exc_info=True,
                )

        await log_info(f"Проход завершён: назначено {matched} из {len(pending)}", type_msg=TypeMsg.INFO)
        return DispatchRunResult(processed=len(pending), matched=matched)

    # =========================================================================
    # ТРИГГЕРЫ
    # =========================================================================

    def _track(self, coro, bucket: set[asyncio.Task]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        bucket.add(task)
        task.add_done_callback(bucket.discard)
        return task

    async def _run_to_completion(self) -> None:
        # Отмена триггера не обрывает начатый проход
        run = self._track(self.process_pending_orders(), self._runs)
        await asyncio.shield(run)

    def trigger(self, delay: float = 0.0) -> asyncio.Task:
        """Запускает проход в фоне (например, после создания заказа)."""
        return self._track(self._delayed_run(delay), self._tasks)

    async def _delayed_run(self, delay: float) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        await self._run_to_completion()

    def start_periodic(self, interval: float) -> asyncio.Task:
        """Запускает периодические проходы с заданным интервалом."""
        return self._track(self.run_periodic(interval), self._tasks)

    async def run_periodic(self, interval: float) -> None:
        await log_info(f"Периодическое назначение каждые {interval} с", type_msg=TypeMsg.INFO)
        while True:
            await self._run_to_completion()
            await asyncio.sleep(interval)

    async def stop(self) -> None:
        """Отменяет триггеры и дожидается завершения начатого прохода."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await asyncio.gather(*list(self._runs), return_exceptions=True)
        self._tasks.clear()
