# courier_dispatch/storage/__init__.py
"""
Слой хранения движка назначения.
"""

from __future__ import annotations

from courier_dispatch.common.constants import TypeMsg
from courier_dispatch.common.logger import log_info
from courier_dispatch.storage.base import DispatchStorage
from courier_dispatch.storage.memory import InMemoryDispatchStorage
from courier_dispatch.storage.postgres import PostgresDispatchStorage


async def init_storage() -> DispatchStorage:
    """
    Создаёт хранилище согласно конфигурации.
    При DB_ENABLED подключается к PostgreSQL и применяет схему.
    """
    from courier_dispatch.config import settings
    from courier_dispatch.infra.database import init_db

    if not settings.database.DB_ENABLED:
        await log_info("БД выключена, используется хранилище в памяти", type_msg=TypeMsg.WARNING)
        return InMemoryDispatchStorage()

    db = await init_db()
    return PostgresDispatchStorage(db)


__all__ = [
    "DispatchStorage",
    "InMemoryDispatchStorage",
    "PostgresDispatchStorage",
    "init_storage",
]
