# tests/core/test_scheduler.py
"""
Тесты для BatchScheduler.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from courier_dispatch.common.constants import OrderStatus
from courier_dispatch.core.dispatch.coordinator import AssignmentCoordinator
from courier_dispatch.core.dispatch.lifecycle import LifecycleMutator
from courier_dispatch.core.dispatch.scheduler import BatchScheduler, DispatchRunResult


def _recording_coordinator(result: bool = True) -> MagicMock:
    """Координатор, запоминающий порядок заказов."""
    coordinator = MagicMock(spec=AssignmentCoordinator)
    coordinator.seen = []

    async def assign(order):
        coordinator.seen.append(order.id)
        return result

    coordinator.assign = AsyncMock(side_effect=assign)
    return coordinator


class TestProcessPendingOrders:
    """Тесты одного прохода планировщика."""

    @pytest.mark.asyncio
    async def test_oldest_first(self, storage, order_factory) -> None:
        storage.add_order(order_factory(1, minutes=10))
        storage.add_order(order_factory(2, minutes=0))
        storage.add_order(order_factory(3, minutes=5))
        coordinator = _recording_coordinator()
        scheduler = BatchScheduler(storage, coordinator, pacing_seconds=0)

        result = await scheduler.process_pending_orders()

        assert coordinator.seen == [2, 3, 1]
        assert result == DispatchRunResult(processed=3, matched=3)

    @pytest.mark.asyncio
    async def test_only_pending_orders(self, storage, order_factory) -> None:
        storage.add_order(order_factory(1))
        storage.add_order(order_factory(2, status=OrderStatus.DELIVERED))
        coordinator = _recording_coordinator()
        scheduler = BatchScheduler(storage, coordinator, pacing_seconds=0)

        await scheduler.process_pending_orders()

        assert coordinator.seen == [1]

    @pytest.mark.asyncio
    async def test_empty_queue(self, storage) -> None:
        coordinator = _recording_coordinator()
        scheduler = BatchScheduler(storage, coordinator, pacing_seconds=0)

        assert await scheduler.process_pending_orders() == DispatchRunResult()
        coordinator.assign.assert_not_called()

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_run(self, storage, order_factory) -> None:
        for order_id in (1, 2, 3):
            storage.add_order(order_factory(order_id, minutes=order_id))
        coordinator = MagicMock(spec=AssignmentCoordinator)
        coordinator.assign = AsyncMock(side_effect=[True, RuntimeError("boom"), True])
        scheduler = BatchScheduler(storage, coordinator, pacing_seconds=0)

        result = await scheduler.process_pending_orders()

        assert coordinator.assign.await_count == 3
        assert result == DispatchRunResult(processed=3, matched=2)

    @pytest.mark.asyncio
    async def test_cap_applies_after_sorting(self, storage, order_factory) -> None:
        storage.add_order(order_factory(1, minutes=3))
        storage.add_order(order_factory(2, minutes=1))
        storage.add_order(order_factory(3, minutes=2))
        coordinator = _recording_coordinator()
        scheduler = BatchScheduler(storage, coordinator, pacing_seconds=0, max_orders_per_run=2)

        await scheduler.process_pending_orders()

        assert coordinator.seen == [2, 3]

    @pytest.mark.asyncio
    async def test_pacing_between_orders_only(self, storage, order_factory) -> None:
        for order_id in (1, 2, 3):
            storage.add_order(order_factory(order_id, minutes=order_id))
        scheduler = BatchScheduler(storage, _recording_coordinator(), pacing_seconds=0.1)

        with patch("courier_dispatch.core.dispatch.scheduler.asyncio.sleep", new=AsyncMock()) as sleep:
            await scheduler.process_pending_orders()

        assert sleep.await_count == 2
        sleep.assert_awaited_with(0.1)

    @pytest.mark.asyncio
    async def test_storage_failure_returns_empty_result(self, storage) -> None:
        scheduler = BatchScheduler(storage, _recording_coordinator(), pacing_seconds=0)

        with patch.object(storage, "get_pending_orders", AsyncMock(side_effect=ConnectionError("db down"))):
            result = await scheduler.process_pending_orders()

        assert result == DispatchRunResult()
        assert scheduler.is_processing is False

    @pytest.mark.asyncio
    async def test_real_coordinator_one_driver_two_orders(
        self, storage, notifier, order_factory, driver_factory
    ) -> None:
        """Свободный курьер получает только старший заказ."""
        storage.add_driver(driver_factory(1))
        storage.add_order(order_factory(1, minutes=5))
        storage.add_order(order_factory(2, minutes=0))
        scheduler = BatchScheduler(storage, AssignmentCoordinator(storage, notifier), pacing_seconds=0)

        result = await scheduler.process_pending_orders()

        assert result.matched == 1
        assert (await storage.get_order(2)).status == OrderStatus.ASSIGNED
        assert (await storage.get_order(1)).status == OrderStatus.PENDING

    @pytest.mark.asyncio
    @pytest.mark.parametrize("closing_status", [OrderStatus.DELIVERED, OrderStatus.CANCELLED])
    async def test_freed_driver_takes_next_order_on_rerun(
        self, storage, notifier, order_factory, driver_factory, closing_status
    ) -> None:
        """Второй заказ ждёт, пока курьер не закроет первый; следующий проход отдаёт его тому же курьеру."""
        storage.add_driver(driver_factory(1))
        storage.add_order(order_factory(1, minutes=0))
        storage.add_order(order_factory(2, minutes=5))
        lifecycle = LifecycleMutator(storage)
        scheduler = BatchScheduler(storage, AssignmentCoordinator(storage, notifier), pacing_seconds=0)

        first = await scheduler.process_pending_orders()
        assert first == DispatchRunResult(processed=2, matched=1)
        assert (await storage.find_assignment_by_order(1)).driver_id == 1
        assert await storage.find_assignment_by_order(2) is None

        if closing_status == OrderStatus.DELIVERED:
            for status in (OrderStatus.PICKED_UP, OrderStatus.IN_TRANSIT, OrderStatus.DELIVERED):
                await lifecycle.transition(1, status)
        else:
            await lifecycle.transition(1, OrderStatus.CANCELLED)
        assert (await storage.get_driver(1)).is_available is True

        second = await scheduler.process_pending_orders()

        assert second == DispatchRunResult(processed=1, matched=1)
        assert (await storage.find_assignment_by_order(2)).driver_id == 1
        assert (await storage.get_order(2)).status == OrderStatus.ASSIGNED
        assert (await storage.get_driver(1)).is_available is False
        assert [message.order_id for message in notifier.messages] == [1, 2]

    @pytest.mark.asyncio
    async def test_equal_distance_choice_is_stable(self, storage, notifier, order_factory, driver_factory) -> None:
        """Курьер в (0,0), забор в (0,1) и (1,0): оба по 111.0 км, выбор одинаков при повторе."""
        storage.add_driver(driver_factory(1, latitude=0.0, longitude=0.0))
        storage.add_order(order_factory(1, minutes=0, pickup_latitude=0.0, pickup_longitude=1.0))
        storage.add_order(order_factory(2, minutes=1, pickup_latitude=1.0, pickup_longitude=0.0))
        lifecycle = LifecycleMutator(storage)
        scheduler = BatchScheduler(storage, AssignmentCoordinator(storage, notifier), pacing_seconds=0)

        await scheduler.process_pending_orders()

        first = await storage.find_assignment_by_order(1)
        assert first.driver_id == 1
        assert first.distance == 111.0
        assert await storage.find_assignment_by_order(2) is None

        await lifecycle.transition(1, OrderStatus.CANCELLED)
        await scheduler.process_pending_orders()

        second = await storage.find_assignment_by_order(2)
        assert second.driver_id == 1
        assert second.distance == 111.0


class TestSingleFlight:
    """Тесты защиты от параллельных проходов."""

    @pytest.mark.asyncio
    async def test_concurrent_call_skipped(self, storage, order_factory) -> None:
        storage.add_order(order_factory(1))
        gate = asyncio.Event()
        coordinator = MagicMock(spec=AssignmentCoordinator)

        async def slow_assign(order):
            await gate.wait()
            return True

        coordinator.assign = AsyncMock(side_effect=slow_assign)
        scheduler = BatchScheduler(storage, coordinator, pacing_seconds=0)

        first = asyncio.create_task(scheduler.process_pending_orders())
        await asyncio.sleep(0)
        assert scheduler.is_processing is True

        second = await scheduler.process_pending_orders()
        assert second == DispatchRunResult(skipped=True)

        gate.set()
        assert (await first).processed == 1
        assert coordinator.assign.await_count == 1
        assert scheduler.is_processing is False

    @pytest.mark.asyncio
    async def test_flag_cleared_after_run(self, storage) -> None:
        scheduler = BatchScheduler(storage, _recording_coordinator(), pacing_seconds=0)

        await scheduler.process_pending_orders()
        result = await scheduler.process_pending_orders()

        assert result.skipped is False


class TestTriggers:
    """Тесты фоновых запусков."""

    @pytest.mark.asyncio
    async def test_trigger_runs_in_background(self, storage, order_factory) -> None:
        storage.add_order(order_factory(1))
        coordinator = _recording_coordinator()
        scheduler = BatchScheduler(storage, coordinator, pacing_seconds=0)

        await scheduler.trigger()

        assert coordinator.seen == [1]

    @pytest.mark.asyncio
    async def test_stop_cancels_delayed_trigger(self, storage, order_factory) -> None:
        storage.add_order(order_factory(1))
        coordinator = _recording_coordinator()
        scheduler = BatchScheduler(storage, coordinator, pacing_seconds=0)

        task = scheduler.trigger(delay=60)
        await scheduler.stop()

        assert task.cancelled()
        coordinator.assign.assert_not_called()

    @pytest.mark.asyncio
    async def test_stop_waits_for_started_run(self, storage, order_factory) -> None:
        storage.add_order(order_factory(1))
        gate = asyncio.Event()
        coordinator = MagicMock(spec=AssignmentCoordinator)
        finished = []

        async def slow_assign(order):
            await gate.wait()
            finished.append(order.id)
            return True

        coordinator.assign = AsyncMock(side_effect=slow_assign)
        scheduler = BatchScheduler(storage, coordinator, pacing_seconds=0)

        scheduler.trigger()
        await asyncio.sleep(0.01)
        assert scheduler.is_processing is True

        stopper = asyncio.create_task(scheduler.stop())
        await asyncio.sleep(0.01)
        gate.set()
        await stopper

        assert finished == [1]
        assert scheduler.is_processing is False

    @pytest.mark.asyncio
    async def test_periodic_runs_until_stopped(self, storage, order_factory) -> None:
        storage.add_order(order_factory(1))
        coordinator = _recording_coordinator(result=False)
        scheduler = BatchScheduler(storage, coordinator, pacing_seconds=0)

        scheduler.start_periodic(0.01)
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert len(coordinator.seen) >= 2
