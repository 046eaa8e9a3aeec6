# courier_dispatch/bot/handlers/__init__.py
"""
Хендлеры Telegram бота курьеров.
"""

from aiogram import Dispatcher

from courier_dispatch.bot.handlers.common import router as common_router
from courier_dispatch.bot.handlers.driver import router as driver_router


def register_routers(dp: Dispatcher) -> None:
    """
    Регистрирует все роутеры в диспетчере.

    Args:
        dp: Диспетчер
    """
    dp.include_router(common_router)
    dp.include_router(driver_router)


__all__ = [
    "register_routers",
    "common_router",
    "driver_router",
]
