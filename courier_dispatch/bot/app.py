# courier_dispatch/bot/app.py
"""
Инициализация Telegram бота курьеров.
Создание Dispatcher и запуск polling.
"""

from __future__ import annotations

import asyncio

from aiogram import Bot, Dispatcher

from courier_dispatch.common.constants import TypeMsg
from courier_dispatch.common.logger import log_info
from courier_dispatch.services.runtime import DispatchRuntime


def create_dispatcher(runtime: DispatchRuntime) -> Dispatcher:
    """
    Создаёт диспетчер с хендлерами курьера.

    Args:
        runtime: Движок назначения, через который идут изменения

    Returns:
        Экземпляр Dispatcher
    """
    from courier_dispatch.bot.dependencies import init_dependencies
    from courier_dispatch.bot.handlers import register_routers

    init_dependencies(runtime)

    dp = Dispatcher()
    register_routers(dp)
    return dp


async def run_polling(bot: Bot, runtime: DispatchRuntime) -> None:
    """Запускает бота в режиме polling до отмены задачи."""
    dp = create_dispatcher(runtime)

    await bot.delete_webhook(drop_pending_updates=True)
    await log_info("Bot запущен в режиме polling", type_msg=TypeMsg.INFO)
    try:
        await dp.start_polling(bot, handle_signals=False)
    except asyncio.CancelledError:
        await log_info("Bot (polling): получен сигнал остановки", type_msg=TypeMsg.DEBUG)
        raise
