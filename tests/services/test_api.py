# tests/services/test_api.py
"""
Тесты для HTTP API диспетчерской.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from courier_dispatch.common.constants import ApprovalStatus, OrderStatus
from courier_dispatch.config import settings
from courier_dispatch.services.api import create_app


ORDER_PAYLOAD = {
    "order_number": "ORD-API-1",
    "restaurant_name": "Burger Hub",
    "pickup_latitude": 40.7505,
    "pickup_longitude": -73.9934,
    "delivery_address": "456 Oak Ave, New York, NY",
    "delivery_latitude": 40.7282,
    "delivery_longitude": -73.7949,
    "amount": "18.40",
}


@pytest.fixture
def app(runtime):
    return create_app(runtime, start_background=False)


@pytest_asyncio.fixture
async def client(app, runtime):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    await runtime.scheduler.stop()


class TestHealth:
    """Тесты /health."""

    @pytest.mark.asyncio
    async def test_health(self, client) -> None:
        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["notifications"] == "recording"
        assert body["database"] == "disabled"
        assert body["websocket"]["active_connections"] == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("db_ok", "status"), [(True, "ok"), (False, "degraded")])
    async def test_health_reports_database(self, client, db_ok, status) -> None:
        db = MagicMock()
        db.health_check = AsyncMock(return_value=db_ok)

        with patch.object(settings.database, "DB_ENABLED", True):
            with patch("courier_dispatch.services.api.app.get_db", return_value=db):
                response = await client.get("/health")

        body = response.json()
        assert body["database"] is db_ok
        assert body["status"] == status
        db.health_check.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_runtime_missing(self) -> None:
        app = create_app(start_background=False)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            response = await ac.get("/api/stats")

        assert response.status_code == 503


class TestDashboard:
    """Тесты статистики и ручного запуска."""

    @pytest.mark.asyncio
    async def test_stats(self, client, seeded_storage) -> None:
        response = await client.get("/api/stats")

        assert response.status_code == 200
        assert response.json()["active_orders"] == 1
        assert response.json()["available_drivers"] == 2

    @pytest.mark.asyncio
    async def test_manual_run_assigns(self, client, seeded_storage) -> None:
        response = await client.post("/api/dispatch/run")

        assert response.json() == {"skipped": False, "processed": 1, "matched": 1}

        recent = (await client.get("/api/assignments/recent", params={"limit": 5})).json()
        assert len(recent) == 1
        assert recent[0]["order"]["status"] == "assigned"
        assert recent[0]["driver"]["id"] == 1

    @pytest.mark.asyncio
    async def test_recent_limit_validated(self, client) -> None:
        assert (await client.get("/api/assignments/recent", params={"limit": 0})).status_code == 422


class TestOrders:
    """Тесты заказов."""

    @pytest.mark.asyncio
    async def test_create_order(self, client, storage) -> None:
        response = await client.post("/api/orders", json=ORDER_PAYLOAD)

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "pending"
        assert body["order_number"] == "ORD-API-1"
        assert (await storage.get_order(body["id"])) is not None

    @pytest.mark.asyncio
    async def test_duplicate_order_number(self, client) -> None:
        await client.post("/api/orders", json=ORDER_PAYLOAD)

        response = await client.post("/api/orders", json=ORDER_PAYLOAD)

        assert response.status_code == 409
        assert response.json()["order_number"] == "ORD-API-1"

    @pytest.mark.asyncio
    async def test_invalid_payload(self, client) -> None:
        response = await client.post("/api/orders", json={**ORDER_PAYLOAD, "pickup_latitude": 120})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_mock_order(self, client) -> None:
        response = await client.post("/api/orders/mock")

        assert response.status_code == 200
        assert response.json()["order_number"].startswith("ORD-")

    @pytest.mark.asyncio
    async def test_get_order(self, client, seeded_storage) -> None:
        assert (await client.get("/api/orders/1")).json()["order_number"] == "ORD-0001"

        missing = await client.get("/api/orders/99")
        assert missing.status_code == 404
        assert missing.json()["order_id"] == 99

    @pytest.mark.asyncio
    async def test_lists(self, client, seeded_storage, order_factory) -> None:
        seeded_storage.add_order(order_factory(2, minutes=1, status=OrderStatus.DELIVERED))

        all_orders = (await client.get("/api/orders")).json()
        pending = (await client.get("/api/orders/pending")).json()

        assert [order["id"] for order in all_orders] == [2, 1]
        assert [order["id"] for order in pending] == [1]

    @pytest.mark.asyncio
    async def test_status_transition(self, client, seeded_storage) -> None:
        response = await client.patch("/api/orders/1/status", json={"status": "cancelled"})

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

    @pytest.mark.asyncio
    async def test_invalid_transition_conflict(self, client, seeded_storage) -> None:
        response = await client.patch("/api/orders/1/status", json={"status": "delivered"})

        assert response.status_code == 409
        assert response.json()["current"] == "pending"
        assert (await seeded_storage.get_order(1)).status == OrderStatus.PENDING

    @pytest.mark.asyncio
    async def test_assigned_not_requestable(self, client, seeded_storage) -> None:
        response = await client.patch("/api/orders/1/status", json={"status": "assigned"})

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_unknown_status_value(self, client, seeded_storage) -> None:
        response = await client.patch("/api/orders/1/status", json={"status": "lost"})

        assert response.status_code == 422


class TestDrivers:
    """Тесты курьеров."""

    @pytest.mark.asyncio
    async def test_register(self, client) -> None:
        response = await client.post(
            "/api/drivers/register",
            json={"name": "Mia", "telegram_id": "@mia", "phone": "+15550001"},
        )

        assert response.status_code == 200
        assert response.json()["telegram_id"] == "mia"
        assert response.json()["approval_status"] == "pending"

        pending = (await client.get("/api/admin/pending-drivers")).json()
        assert [driver["name"] for driver in pending] == ["Mia"]

    @pytest.mark.asyncio
    async def test_availability(self, client, seeded_storage) -> None:
        response = await client.patch("/api/drivers/1/availability", json={"is_available": False})

        assert response.status_code == 200
        assert response.json()["is_available"] is False
        assert response.json()["is_online"] is True

    @pytest.mark.asyncio
    async def test_availability_empty_body(self, client, seeded_storage) -> None:
        response = await client.patch("/api/drivers/1/availability", json={})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_availability_unknown_driver(self, client) -> None:
        response = await client.patch("/api/drivers/42/availability", json={"is_online": True})

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_location_and_telegram(self, client, seeded_storage) -> None:
        location = await client.patch("/api/drivers/2/location", json={"latitude": 40.1, "longitude": -73.1})
        telegram = await client.patch("/api/drivers/2/telegram", json={"telegram_id": "@new_handle"})

        assert location.json()["latitude"] == 40.1
        assert telegram.json()["telegram_id"] == "new_handle"

    @pytest.mark.asyncio
    async def test_approve_and_reject(self, client, storage, driver_factory, notifier) -> None:
        storage.add_driver(driver_factory(5, approval_status=ApprovalStatus.PENDING))

        response = await client.patch(
            "/api/admin/drivers/5/approve",
            json={"approved": False, "approved_by": "ops", "reason": "фото нечитаемо"},
        )

        assert response.json()["approval_status"] == "rejected"
        assert "фото нечитаемо" in notifier.messages[-1].text

    @pytest.mark.asyncio
    async def test_driver_orders(self, client, seeded_storage) -> None:
        await client.post("/api/dispatch/run")
        await client.patch("/api/orders/1/status", json={"status": "picked_up"})

        response = await client.get("/api/driver/orders", params={"telegram_id": "100001"})

        assert response.status_code == 200
        body = response.json()
        assert body["driver"]["id"] == 1
        assert [item["order_id"] for item in body["assignments"]] == [1]
        assert body["stats"]["active_orders"] == 1
        assert body["stats"]["completed_orders"] == 0

    @pytest.mark.asyncio
    async def test_driver_orders_access(self, client, storage, driver_factory) -> None:
        storage.add_driver(driver_factory(7, telegram_id="pending_one", approval_status=ApprovalStatus.PENDING))

        assert (await client.get("/api/driver/orders")).status_code == 400
        assert (await client.get("/api/driver/orders", params={"telegram_id": "ghost"})).status_code == 403
        assert (await client.get("/api/driver/orders", params={"telegram_id": "pending_one"})).status_code == 403


class TestWebSocket:
    """Тесты WebSocket дашборда."""

    def test_initial_data_and_ping(self, app, seeded_storage) -> None:
        client = TestClient(app)

        with client.websocket_connect("/ws") as websocket:
            initial = websocket.receive_json()
            assert initial["type"] == "initial_data"
            assert initial["data"]["stats"]["active_orders"] == 1
            assert len(initial["data"]["drivers"]) == 2
            assert initial["data"]["assignments"] == []

            websocket.send_json({"action": "ping"})
            assert websocket.receive_json() == {"type": "pong"}


class TestLifespan:
    """Тесты запуска фоновых задач из lifespan."""

    @pytest.mark.parametrize(("owner", "periodic"), [("api", True), ("worker", False)])
    def test_periodic_only_for_owner(self, runtime, owner, periodic) -> None:
        runtime.options.PERIODIC_OWNER = owner
        app = create_app(runtime, start_background=True)

        with patch.object(runtime, "start_background") as start_background:
            with patch.object(runtime, "stop", AsyncMock()):
                with TestClient(app):
                    pass

        start_background.assert_called_once_with(periodic=periodic)
