#!/usr/bin/env python3
# main.py
"""
Главная точка входа Courier Dispatch.
Запускает HTTP API, Telegram бота курьеров или воркер назначения.
"""

from __future__ import annotations

import asyncio
import signal
import sys

from courier_dispatch.common.constants import TypeMsg
from courier_dispatch.common.logger import log_error, log_info, setup_logging
from courier_dispatch.config import settings


VALID_MODES = ("api", "bot", "worker", "all")

# Глобальный флаг для graceful shutdown
_shutdown_event: asyncio.Event | None = None
_running_tasks: list[asyncio.Task] = []


def setup_signal_handlers() -> None:
    """Настраивает обработчики сигналов для graceful shutdown."""
    global _shutdown_event
    _shutdown_event = asyncio.Event()

    def signal_handler(sig: int) -> None:
        """Обработчик сигналов SIGINT и SIGTERM."""
        if _shutdown_event and not _shutdown_event.is_set():
            print(f"\nПолучен сигнал остановки (sig={sig}), завершаем работу...")
            _shutdown_event.set()
            for task in _running_tasks:
                if not task.done():
                    task.cancel()

    try:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))
    except NotImplementedError:
        # Windows не поддерживает add_signal_handler
        signal.signal(signal.SIGINT, lambda s, f: signal_handler(s))
        signal.signal(signal.SIGTERM, lambda s, f: signal_handler(s))


async def serve_api(runtime=None) -> None:
    """Запускает HTTP API (FastAPI + uvicorn)."""
    import uvicorn

    from courier_dispatch.services.api import create_app

    await log_info(
        f"Запуск HTTP API на {settings.api.API_HOST}:{settings.api.API_PORT}...",
        type_msg=TypeMsg.INFO,
    )

    config = uvicorn.Config(
        create_app(runtime),
        host=settings.api.API_HOST,
        port=settings.api.API_PORT,
        log_level="debug" if settings.system.DEBUG else "info",
    )
    server = uvicorn.Server(config)
    # Сигналы обрабатывает main.py
    server.install_signal_handlers = lambda: None
    try:
        await server.serve()
    except asyncio.CancelledError:
        await log_info("HTTP API: graceful shutdown", type_msg=TypeMsg.DEBUG)
        await server.shutdown()


async def run_bot(runtime=None, bot=None) -> None:
    """Запускает Telegram бота курьеров (bot передаётся, если он общий с каналом уведомлений)."""
    from courier_dispatch.bot.app import run_polling
    from courier_dispatch.core.notifications.service import create_bot
    from courier_dispatch.services.runtime import close_runtime, init_runtime

    if settings.telegram.is_mock:
        await log_error("BOT_TOKEN не задан, бот не может быть запущен")
        return

    await log_info("Запуск Telegram Bot...", type_msg=TypeMsg.INFO)
    if bot is None:
        bot = create_bot(settings.telegram.BOT_TOKEN, settings.telegram.PARSE_MODE)
    owns_runtime = runtime is None
    if runtime is None:
        runtime = await init_runtime(bot=bot)

    try:
        await run_polling(bot, runtime)
    finally:
        if owns_runtime:
            await close_runtime(runtime)
        await bot.session.close()
        await log_info("Bot остановлен", type_msg=TypeMsg.INFO)


async def run_worker() -> None:
    """Запускает воркер назначения."""
    from courier_dispatch.worker.runner import run_worker as _run_worker

    await _run_worker()


async def run_all() -> None:
    """API и бот в одном процессе с общим движком."""
    from courier_dispatch.core.notifications.service import create_bot
    from courier_dispatch.services.runtime import close_runtime, init_runtime

    global _running_tasks

    bot = None
    if not settings.telegram.is_mock:
        bot = create_bot(settings.telegram.BOT_TOKEN, settings.telegram.PARSE_MODE)

    runtime = await init_runtime(bot=bot)
    _running_tasks = [asyncio.create_task(serve_api(runtime))]
    if bot is not None:
        _running_tasks.append(asyncio.create_task(run_bot(runtime, bot)))
    else:
        await log_info("BOT_TOKEN не задан: бот не запускается, уведомления в режиме заглушки", type_msg=TypeMsg.WARNING)

    try:
        await asyncio.gather(*_running_tasks, return_exceptions=True)
    finally:
        await close_runtime(runtime)


async def main(mode: str | None = None) -> None:
    """
    Главная функция запуска.

    Args:
        mode: Режим запуска (api, bot, worker, all).
              Если None, берётся COMPONENT_MODE из настроек.
    """
    setup_logging()
    setup_signal_handlers()

    if mode is None:
        mode = settings.system.COMPONENT_MODE if settings.system.COMPONENT_MODE in VALID_MODES else "all"

    await log_info(
        f"Courier Dispatch v{settings.system.VERSION} — запуск в режиме '{mode}'",
        type_msg=TypeMsg.INFO,
    )

    try:
        if mode == "api":
            await serve_api()
        elif mode == "bot":
            await run_bot()
        elif mode == "worker":
            await run_worker()
        elif mode == "all":
            await run_all()
        else:
            await log_error(f"Неизвестный режим: {mode}")

    except asyncio.CancelledError:
        await log_info("Задача отменена, выполняется graceful shutdown", type_msg=TypeMsg.INFO)
    except Exception as e:
        await log_error(f"Критическая ошибка: {e}", exc_info=True)
        raise
    finally:
        if _running_tasks:
            for task in _running_tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*_running_tasks, return_exceptions=True)
            _running_tasks.clear()
        await log_info("Приложение остановлено", type_msg=TypeMsg.INFO)


def print_usage() -> None:
    """Выводит справку по использованию."""
    print("""
Courier Dispatch — назначение заказов доставки ближайшим курьерам

Использование:
    python main.py [mode]

Режимы:
    api       — HTTP API + WebSocket дашбордов, проходы назначения
    bot       — Telegram бот курьеров
    worker    — воркер назначения (события new_order + периодический проход)
    all       — API и бот в одном процессе (по умолчанию)

Без аргумента режим берётся из COMPONENT_MODE.
    """)


if __name__ == "__main__":
    mode = None

    if len(sys.argv) > 1:
        arg = sys.argv[1].lower()
        if arg in ("--help", "-h"):
            print_usage()
            sys.exit(0)
        elif arg in VALID_MODES:
            mode = arg
        else:
            print(f"Ошибка: неизвестный режим '{arg}'")
            print_usage()
            sys.exit(1)

    try:
        asyncio.run(main(mode))
    except KeyboardInterrupt:
        pass
