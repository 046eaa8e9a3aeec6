# courier_dispatch/worker/runner.py
"""
Запускалка воркера назначения.
"""

from __future__ import annotations

import asyncio

from courier_dispatch.common.constants import TypeMsg
from courier_dispatch.common.logger import log_error, log_info
from courier_dispatch.services.runtime import DispatchRuntime, close_runtime, init_runtime
from courier_dispatch.worker.dispatch import DispatchWorker


async def run_worker(runtime: DispatchRuntime | None = None) -> None:
    """
    Запускает DispatchWorker до отмены задачи.

    Args:
        runtime: Готовый движок. Если None, инфраструктура поднимается
            здесь же и закрывается при остановке.
    """
    owns_runtime = runtime is None
    if runtime is None:
        runtime = await init_runtime()

    worker = DispatchWorker(runtime)
    try:
        await worker.start()

        # Ждём завершения (Ctrl+C)
        while True:
            await asyncio.sleep(1)

    except asyncio.CancelledError:
        await log_info("Получен сигнал остановки", type_msg=TypeMsg.INFO)
    except Exception as e:
        await log_error(f"Критическая ошибка воркера: {e}", exc_info=True)
    finally:
        await worker.stop()
        if owns_runtime:
            await close_runtime(runtime)
        await log_info("Воркер остановлен", type_msg=TypeMsg.INFO)


def main() -> None:
    """Точка входа."""
    try:
        asyncio.run(run_worker())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
