# courier_dispatch/services/api/connection_manager.py
"""
Менеджер WebSocket соединений дашбордов.
Пересылает доменные события всем подключенным клиентам.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from fastapi import WebSocket

from courier_dispatch.common.constants import TypeMsg
from courier_dispatch.common.logger import log_info, log_warning
from courier_dispatch.core.dispatch.events import to_payload
from courier_dispatch.infra.event_bus import DomainEvent
from courier_dispatch.storage.base import DispatchStorage


@dataclass
class ConnectionInfo:
    """Информация о соединении."""
    websocket: WebSocket
    client_id: int
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ConnectionManager:
    """
    Менеджер WebSocket соединений.

    Поддерживает:
    - Подключение/отключение дашбордов
    - Начальный снимок состояния при подключении
    - Broadcast событий всем клиентам
    """

    def __init__(self) -> None:
        # client_id -> ConnectionInfo
        self._connections: dict[int, ConnectionInfo] = {}
        self._ids = itertools.count(1)

        # Для статистики
        self._total_connections: int = 0
        self._total_messages_sent: int = 0

    @property
    def active_connections(self) -> int:
        """Количество активных соединений."""
        return len(self._connections)

    async def connect(self, websocket: WebSocket) -> int:
        """Принять соединение и вернуть id клиента."""
        await websocket.accept()

        client_id = next(self._ids)
        self._connections[client_id] = ConnectionInfo(websocket=websocket, client_id=client_id)
        self._total_connections += 1

        await log_info(f"Дашборд {client_id} подключён", type_msg=TypeMsg.DEBUG)
        return client_id

    async def disconnect(self, client_id: int) -> None:
        """Отключить клиента."""
        if self._connections.pop(client_id, None) is not None:
            await log_info(f"Дашборд {client_id} отключён", type_msg=TypeMsg.DEBUG)

    async def send_personal(self, client_id: int, message: dict[str, Any]) -> bool:
        """
        Отправить сообщение конкретному клиенту.

        Returns:
            True если сообщение отправлено, False если клиент не подключен
        """
        conn = self._connections.get(client_id)
        if conn is None:
            return False

        try:
            await conn.websocket.send_json(message)
            self._total_messages_sent += 1
            return True
        except Exception:
            # Соединение разорвано
            await self.disconnect(client_id)
            return False

    async def broadcast_all(self, message: dict[str, Any]) -> int:
        """Отправить сообщение всем подключенным клиентам."""
        sent_count = 0
        failed_clients: list[int] = []

        for client_id, conn in list(self._connections.items()):
            try:
                await conn.websocket.send_json(message)
                sent_count += 1
                self._total_messages_sent += 1
            except Exception:
                failed_clients.append(client_id)

        for client_id in failed_clients:
            await self.disconnect(client_id)

        return sent_count

    async def handle_event(self, event: DomainEvent) -> None:
        """Обработчик шины событий: кадр {"type", "data"} всем дашбордам."""
        await self.broadcast_all(event.to_frame())

    async def send_initial_data(self, client_id: int, storage: DispatchStorage, recent_limit: int = 10) -> bool:
        """Снимок состояния для только что подключившегося дашборда."""
        try:
            stats = await storage.get_stats()
            orders = await storage.list_orders()
            drivers = await storage.list_drivers()
            assignments = await storage.get_recent_assignments(recent_limit)
        except Exception as e:
            await log_warning(f"Не удалось собрать начальные данные для дашборда {client_id}: {e}")
            return False

        return await self.send_personal(client_id, {
            "type": "initial_data",
            "data": {
                "stats": to_payload(stats),
                "orders": [to_payload(item) for item in orders],
                "drivers": [to_payload(item) for item in drivers],
                "assignments": [to_payload(item) for item in assignments],
            },
        })

    def get_stats(self) -> dict[str, Any]:
        """Получить статистику."""
        return {
            "active_connections": len(self._connections),
            "total_connections_ever": self._total_connections,
            "total_messages_sent": self._total_messages_sent,
        }
