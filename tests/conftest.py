# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("BOT_TOKEN", "mock_token")
os.environ.setdefault("DB_ENABLED", "false")
os.environ.setdefault("RABBITMQ_ENABLED", "false")
os.environ.setdefault("DEMO_MODE", "false")
os.environ.setdefault("DB_PASSWORD", "test_password")

from courier_dispatch.common.constants import ApprovalStatus, OrderStatus  # noqa: E402
from courier_dispatch.config.loader import DispatchSettings  # noqa: E402
from courier_dispatch.core.drivers.models import Driver  # noqa: E402
from courier_dispatch.core.notifications.service import RecordingNotificationChannel  # noqa: E402
from courier_dispatch.core.orders.models import Order  # noqa: E402
from courier_dispatch.infra.event_bus import LocalEventBus  # noqa: E402
from courier_dispatch.services.runtime import DispatchRuntime  # noqa: E402
from courier_dispatch.storage.memory import InMemoryDispatchStorage  # noqa: E402


BASE_TIME = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def config_path(project_root: Path) -> Path:
    """Путь к файлу конфигурации."""
    return project_root / "config" / "config.json"


@pytest.fixture
def dispatch_options() -> DispatchSettings:
    """Настройки движка без пауз между заказами."""
    return DispatchSettings(
        ASSIGNMENT_PACING_SECONDS=0,
        TRIGGER_DELAY_SECONDS=0,
        PERIODIC_INTERVAL_SECONDS=3600,
        STATS_INTERVAL_SECONDS=3600,
    )


# =============================================================================
# ФАБРИКИ ТЕСТОВЫХ ДАННЫХ
# =============================================================================

def make_driver(driver_id: int = 1, **overrides) -> Driver:
    """Одобренный курьер в сети и свободный."""
    data = {
        "id": driver_id,
        "name": f"Курьер {driver_id}",
        "telegram_id": str(100000 + driver_id),
        "phone": f"+1555000{driver_id:04d}",
        "latitude": 40.7589,
        "longitude": -73.9851,
        "is_available": True,
        "is_online": True,
        "approval_status": ApprovalStatus.APPROVED,
        "created_at": BASE_TIME,
        "updated_at": BASE_TIME,
    }
    data.update(overrides)
    return Driver(**data)


def make_order(order_id: int = 1, minutes: int = 0, **overrides) -> Order:
    """Заказ pending, созданный через minutes минут после BASE_TIME."""
    data = {
        "id": order_id,
        "order_number": f"ORD-{order_id:04d}",
        "restaurant_name": "Pizza Palace",
        "pickup_latitude": 40.7589,
        "pickup_longitude": -73.9851,
        "delivery_address": "123 Main St, New York, NY",
        "delivery_latitude": 40.7505,
        "delivery_longitude": -73.9934,
        "amount": Decimal("25.50"),
        "status": OrderStatus.PENDING,
        "created_at": BASE_TIME + timedelta(minutes=minutes),
    }
    data.update(overrides)
    return Order(**data)


@pytest.fixture
def driver_factory():
    return make_driver


@pytest.fixture
def order_factory():
    return make_order


# =============================================================================
# ФИКСТУРЫ ДВИЖКА
# =============================================================================

@pytest.fixture
def storage() -> InMemoryDispatchStorage:
    """Пустое хранилище в памяти."""
    return InMemoryDispatchStorage()


@pytest.fixture
def event_bus() -> LocalEventBus:
    """Локальная шина, запоминающая опубликованные события."""
    return LocalEventBus()


@pytest.fixture
def notifier() -> RecordingNotificationChannel:
    """Канал-заглушка, сообщающий об успешной доставке."""
    return RecordingNotificationChannel()


@pytest.fixture
def runtime(storage, event_bus, notifier, dispatch_options) -> DispatchRuntime:
    """Собранный движок поверх хранилища в памяти."""
    return DispatchRuntime(storage, event_bus, notifier, dispatch_options)


@pytest.fixture
def seeded_storage(storage: InMemoryDispatchStorage) -> InMemoryDispatchStorage:
    """Хранилище с двумя курьерами и одним ожидающим заказом."""
    storage.add_driver(make_driver(1, latitude=40.7600, longitude=-73.9860))
    storage.add_driver(make_driver(2, latitude=40.7000, longitude=-74.0000))
    storage.add_order(make_order(1))
    return storage


@pytest.fixture
def mock_bot() -> AsyncMock:
    """Мок aiogram Bot."""
    bot = AsyncMock()
    bot.send_message = AsyncMock(return_value=None)
    bot.session = AsyncMock()
    bot.session.close = AsyncMock()
    return bot
