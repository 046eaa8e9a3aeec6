# tests/core/test_lifecycle.py
"""
Тесты для жизненного цикла заказа (OrderStateMachine, LifecycleMutator).
"""

from __future__ import annotations

import pytest
import pytest_asyncio

from courier_dispatch.common.constants import ApprovalStatus, OrderStatus
from courier_dispatch.common.exceptions import (
    AssignmentNotFoundError,
    DriverMismatchError,
    DriverNotFoundError,
    DuplicateEntityError,
    InvalidTransitionError,
    OrderNotFoundError,
)
from courier_dispatch.core.dispatch.coordinator import AssignmentCoordinator
from courier_dispatch.core.dispatch.lifecycle import LifecycleMutator, OrderStateMachine
from courier_dispatch.core.drivers.models import DriverCreateDTO
from courier_dispatch.core.orders.models import OrderCreateDTO
from courier_dispatch.infra.event_bus import EventTypes


@pytest.fixture
def lifecycle(seeded_storage, event_bus, notifier) -> LifecycleMutator:
    return LifecycleMutator(seeded_storage, event_bus, notifier)


@pytest_asyncio.fixture
async def assigned_storage(seeded_storage, notifier):
    """Заказ 1 назначен курьеру 1."""
    await AssignmentCoordinator(seeded_storage, notifier).assign(await seeded_storage.get_order(1))
    notifier.messages.clear()
    return seeded_storage


class TestOrderStateMachine:
    """Тесты таблицы переходов."""

    @pytest.mark.parametrize(
        ("current", "new"),
        [
            (OrderStatus.PENDING, OrderStatus.ASSIGNED),
            (OrderStatus.PENDING, OrderStatus.CANCELLED),
            (OrderStatus.ASSIGNED, OrderStatus.PICKED_UP),
            (OrderStatus.PICKED_UP, OrderStatus.IN_TRANSIT),
            (OrderStatus.IN_TRANSIT, OrderStatus.DELIVERED),
            (OrderStatus.IN_TRANSIT, OrderStatus.CANCELLED),
        ],
    )
    def test_allowed(self, current, new) -> None:
        assert OrderStateMachine.can_transition(current, new) is True

    @pytest.mark.parametrize(
        ("current", "new"),
        [
            (OrderStatus.PENDING, OrderStatus.DELIVERED),
            (OrderStatus.ASSIGNED, OrderStatus.PENDING),
            (OrderStatus.PICKED_UP, OrderStatus.ASSIGNED),
            (OrderStatus.DELIVERED, OrderStatus.CANCELLED),
            (OrderStatus.CANCELLED, OrderStatus.PENDING),
            (OrderStatus.ASSIGNED, OrderStatus.ASSIGNED),
        ],
    )
    def test_forbidden(self, current, new) -> None:
        assert OrderStateMachine.can_transition(current, new) is False

    def test_unknown_status(self) -> None:
        assert OrderStateMachine.can_transition("pending", "lost") is False

    def test_assignment_reserved_for_engine(self) -> None:
        assert OrderStateMachine.can_transition("pending", "assigned") is True
        assert OrderStateMachine.can_request("pending", "assigned") is False
        assert OrderStateMachine.can_request("pending", "cancelled") is True


class TestTransition:
    """Тесты LifecycleMutator.transition."""

    @pytest.mark.asyncio
    async def test_cancel_pending(self, lifecycle, seeded_storage, event_bus) -> None:
        order = await lifecycle.transition(1, OrderStatus.CANCELLED)

        assert order.status == OrderStatus.CANCELLED
        assert (await seeded_storage.get_order(1)).status == OrderStatus.CANCELLED
        assert [e.event_type for e in event_bus.published] == [EventTypes.ORDER_UPDATED]

    @pytest.mark.asyncio
    async def test_external_assign_rejected(self, lifecycle, seeded_storage) -> None:
        with pytest.raises(InvalidTransitionError):
            await lifecycle.transition(1, OrderStatus.ASSIGNED)

        assert (await seeded_storage.get_order(1)).status == OrderStatus.PENDING

    @pytest.mark.asyncio
    async def test_invalid_transition_leaves_order_unchanged(self, lifecycle, seeded_storage, event_bus) -> None:
        with pytest.raises(InvalidTransitionError) as exc_info:
            await lifecycle.transition(1, OrderStatus.DELIVERED)

        assert exc_info.value.current == "pending"
        assert exc_info.value.requested == "delivered"
        assert (await seeded_storage.get_order(1)).status == OrderStatus.PENDING
        assert event_bus.published == []

    @pytest.mark.asyncio
    async def test_missing_order(self, lifecycle) -> None:
        with pytest.raises(OrderNotFoundError):
            await lifecycle.transition(999, OrderStatus.CANCELLED)

    @pytest.mark.asyncio
    async def test_full_path_frees_driver(self, lifecycle, assigned_storage) -> None:
        assert (await assigned_storage.get_driver(1)).is_available is False

        await lifecycle.transition(1, OrderStatus.PICKED_UP)
        await lifecycle.transition(1, OrderStatus.IN_TRANSIT)
        assert (await assigned_storage.get_driver(1)).is_available is False

        await lifecycle.transition(1, OrderStatus.DELIVERED)
        assert (await assigned_storage.get_driver(1)).is_available is True

    @pytest.mark.asyncio
    async def test_cancel_assigned_frees_driver(self, lifecycle, assigned_storage, event_bus) -> None:
        await lifecycle.transition(1, OrderStatus.CANCELLED)

        assert (await assigned_storage.get_driver(1)).is_available is True
        assert [e.event_type for e in event_bus.published] == [
            EventTypes.ORDER_UPDATED,
            EventTypes.DRIVER_UPDATED,
        ]

    @pytest.mark.asyncio
    async def test_terminal_order_rejects_everything(self, lifecycle, assigned_storage) -> None:
        await lifecycle.transition(1, OrderStatus.CANCELLED)

        for status in OrderStatus:
            with pytest.raises(InvalidTransitionError):
                await lifecycle.transition(1, status)


class TestCreateOrder:
    """Тесты создания заказа."""

    @pytest.mark.asyncio
    async def test_created_pending(self, lifecycle, event_bus) -> None:
        dto = OrderCreateDTO(
            order_number="ORD-NEW",
            restaurant_name="Burger Hub",
            pickup_latitude=40.75,
            pickup_longitude=-73.99,
            delivery_address="456 Oak Ave",
            delivery_latitude=40.72,
            delivery_longitude=-73.79,
            amount="19.99",
        )

        order = await lifecycle.create_order(dto)

        assert order.status == OrderStatus.PENDING
        assert order.id == 2
        assert event_bus.published[-1].event_type == EventTypes.NEW_ORDER
        assert event_bus.published[-1].payload["order_number"] == "ORD-NEW"

    @pytest.mark.asyncio
    async def test_duplicate_number(self, lifecycle) -> None:
        dto = OrderCreateDTO(
            order_number="ORD-0001",
            restaurant_name="Burger Hub",
            pickup_latitude=0,
            pickup_longitude=0,
            delivery_address="x",
            delivery_latitude=0,
            delivery_longitude=0,
            amount="1.00",
        )

        with pytest.raises(DuplicateEntityError):
            await lifecycle.create_order(dto)


class TestDriverResponses:
    """Тесты ответа курьера на назначение."""

    @pytest.mark.asyncio
    async def test_accept_moves_to_picked_up(self, lifecycle, assigned_storage) -> None:
        order = await lifecycle.accept_assignment(1, "100001")

        assert order.status == OrderStatus.PICKED_UP
        assert (await assigned_storage.get_driver(1)).is_available is False

    @pytest.mark.asyncio
    async def test_accept_twice_rejected(self, lifecycle, assigned_storage) -> None:
        await lifecycle.accept_assignment(1, "100001")

        with pytest.raises(InvalidTransitionError):
            await lifecycle.accept_assignment(1, "100001")

    @pytest.mark.asyncio
    async def test_other_driver_cannot_accept(self, lifecycle, assigned_storage) -> None:
        with pytest.raises(DriverMismatchError):
            await lifecycle.accept_assignment(1, "100002")

    @pytest.mark.asyncio
    async def test_unknown_driver(self, lifecycle, assigned_storage) -> None:
        with pytest.raises(DriverNotFoundError):
            await lifecycle.accept_assignment(1, "nobody")

    @pytest.mark.asyncio
    async def test_no_assignment(self, lifecycle) -> None:
        with pytest.raises(AssignmentNotFoundError):
            await lifecycle.accept_assignment(1, "100001")

    @pytest.mark.asyncio
    async def test_decline_frees_driver_order_stays_assigned(self, lifecycle, assigned_storage) -> None:
        driver = await lifecycle.decline_assignment(1, "100001")

        assert driver.is_available is True
        assert (await assigned_storage.get_order(1)).status == OrderStatus.ASSIGNED

    @pytest.mark.asyncio
    async def test_decline_after_pickup_rejected(self, lifecycle, assigned_storage) -> None:
        await lifecycle.accept_assignment(1, "100001")

        with pytest.raises(InvalidTransitionError):
            await lifecycle.decline_assignment(1, "100001")
        assert (await assigned_storage.get_driver(1)).is_available is False

    @pytest.mark.asyncio
    async def test_decline_marks_assignment(self, lifecycle, assigned_storage) -> None:
        await lifecycle.decline_assignment(1, "100001")

        assignment = await assigned_storage.find_assignment_by_order(1)
        assert assignment.is_declined is True

    @pytest.mark.asyncio
    async def test_decline_twice_rejected(self, lifecycle, assigned_storage) -> None:
        await lifecycle.decline_assignment(1, "100001")

        with pytest.raises(InvalidTransitionError):
            await lifecycle.decline_assignment(1, "100001")

    @pytest.mark.asyncio
    async def test_accept_after_decline_rejected(self, lifecycle, assigned_storage) -> None:
        await lifecycle.decline_assignment(1, "100001")

        with pytest.raises(InvalidTransitionError):
            await lifecycle.accept_assignment(1, "100001")
        assert (await assigned_storage.get_order(1)).status == OrderStatus.ASSIGNED

    @pytest.mark.asyncio
    async def test_declined_order_closed_keeps_driver_on_next_order(
        self, lifecycle, assigned_storage, notifier, order_factory
    ) -> None:
        """Курьер отказался, взял следующий заказ; отмена первого его не освобождает."""
        await lifecycle.decline_assignment(1, "100001")
        await lifecycle.set_driver_presence(2, is_online=False)
        assigned_storage.add_order(order_factory(2, minutes=5))

        assert await AssignmentCoordinator(assigned_storage, notifier).assign(await assigned_storage.get_order(2))
        assert (await assigned_storage.find_assignment_by_order(2)).driver_id == 1

        await lifecycle.transition(1, OrderStatus.CANCELLED)

        driver = await assigned_storage.get_driver(1)
        assert driver.is_available is False
        assert await assigned_storage.get_eligible_drivers() == []

        await lifecycle.transition(2, OrderStatus.CANCELLED)
        assert (await assigned_storage.get_driver(1)).is_available is True


class TestDrivers:
    """Тесты изменений курьеров."""

    @pytest.mark.asyncio
    async def test_register_pending_approval(self, lifecycle, event_bus) -> None:
        driver = await lifecycle.register_driver(
            DriverCreateDTO(name="Новый", telegram_id="@new_driver", phone="+1555")
        )

        assert driver.telegram_id == "new_driver"
        assert driver.approval_status == ApprovalStatus.PENDING
        assert driver.is_dispatch_eligible is False
        assert event_bus.published[-1].event_type == EventTypes.DRIVER_REGISTERED

    @pytest.mark.asyncio
    async def test_presence_partial_update(self, lifecycle) -> None:
        driver = await lifecycle.set_driver_presence(1, is_available=False)

        assert driver.is_available is False
        assert driver.is_online is True

    @pytest.mark.asyncio
    async def test_presence_unknown_driver(self, lifecycle) -> None:
        with pytest.raises(DriverNotFoundError):
            await lifecycle.set_driver_presence(42, is_online=True)

    @pytest.mark.asyncio
    async def test_location_update(self, lifecycle) -> None:
        driver = await lifecycle.update_driver_location(2, 40.1, -73.5)

        assert (driver.latitude, driver.longitude) == (40.1, -73.5)

    @pytest.mark.asyncio
    async def test_telegram_update_conflict(self, lifecycle) -> None:
        with pytest.raises(DuplicateEntityError):
            await lifecycle.update_driver_telegram(2, "100001")

    @pytest.mark.asyncio
    async def test_approval_notifies_driver(self, lifecycle, notifier) -> None:
        driver = await lifecycle.set_driver_approval(2, approved=True, approved_by="admin")

        assert driver.is_approved
        assert driver.approved_by == "admin"
        assert driver.approved_at is not None
        assert "одобрена" in notifier.messages[-1].text

    @pytest.mark.asyncio
    async def test_rejection_reason_sent(self, lifecycle, notifier) -> None:
        driver = await lifecycle.set_driver_approval(2, approved=False, approved_by="admin", reason="нет документов")

        assert driver.approval_status == ApprovalStatus.REJECTED
        assert driver.is_dispatch_eligible is False
        assert "нет документов" in notifier.messages[-1].text
