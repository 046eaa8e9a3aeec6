# courier_dispatch/bot/dependencies.py
"""
Dependency Injection для Telegram бота.
Движок назначения передаётся при создании диспетчера.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from aiogram.types import User

    from courier_dispatch.core.dispatch.lifecycle import LifecycleMutator
    from courier_dispatch.core.drivers.models import Driver
    from courier_dispatch.services.runtime import DispatchRuntime
    from courier_dispatch.storage.base import DispatchStorage


_runtime: "DispatchRuntime | None" = None


def init_dependencies(runtime: "DispatchRuntime") -> None:
    """Запомнить движок при старте бота."""
    global _runtime
    _runtime = runtime


def get_runtime() -> "DispatchRuntime":
    if _runtime is None:
        raise RuntimeError("Движок не инициализирован. Вызовите init_dependencies()")
    return _runtime


def get_storage() -> "DispatchStorage":
    return get_runtime().storage


def get_lifecycle() -> "LifecycleMutator":
    return get_runtime().lifecycle


async def find_driver(chat_id: int, user: "Optional[User]" = None) -> "Optional[Driver]":
    """
    Курьер по контакту Telegram.

    Сначала ищется числовой chat id, затем username отправителя.
    """
    storage = get_storage()
    driver = await storage.get_driver_by_telegram_id(str(chat_id))
    if driver is None and user is not None and user.username:
        driver = await storage.get_driver_by_telegram_id(user.username)
    return driver
