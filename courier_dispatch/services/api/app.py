# courier_dispatch/services/api/app.py
"""
FastAPI приложение диспетчерской.

REST endpoints:
- /api/... — заказы, курьеры, статистика (см. routes.py)
- GET /health — проверка здоровья (шина событий, PostgreSQL)

WebSocket endpoints:
- /ws — поток событий для дашбордов; первым кадром приходит initial_data
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from courier_dispatch import __version__
from courier_dispatch.common.constants import TypeMsg
from courier_dispatch.common.exceptions import DispatchError
from courier_dispatch.common.logger import log_error, log_info
from courier_dispatch.infra.database import get_db
from courier_dispatch.infra.event_bus import EventTypes
from courier_dispatch.services.api.connection_manager import ConnectionManager
from courier_dispatch.services.api.routes import router
from courier_dispatch.services.runtime import DispatchRuntime, close_runtime, init_runtime


async def _subscribe_dashboards(runtime: DispatchRuntime, connections: ConnectionManager) -> None:
    """Подписывает WebSocket-трансляцию на события движка."""
    if runtime.event_bus is None or not hasattr(runtime.event_bus, "subscribe"):
        return
    for event_type in EventTypes.DASHBOARD:
        # Каждый экземпляр API получает свою копию события
        await runtime.event_bus.subscribe(event_type, connections.handle_event, exclusive=True)


def create_app(runtime: DispatchRuntime | None = None, start_background: bool = True) -> FastAPI:
    """
    Создаёт приложение.

    Args:
        runtime: Готовый движок (тесты, режим all). Если None, движок
            собирается в lifespan из конфигурации и закрывается при остановке.
        start_background: Запускать ли фоновые задачи движка
    """
    owns_runtime = runtime is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        nonlocal runtime
        if runtime is None:
            runtime = await init_runtime()
        app.state.runtime = runtime

        await _subscribe_dashboards(runtime, app.state.connections)
        if start_background:
            runtime.start_background(periodic=runtime.owns_periodic("api"))
        await log_info("HTTP API диспетчерской запущен", type_msg=TypeMsg.INFO)

        yield

        # Shutdown
        await log_info("Остановка HTTP API...", type_msg=TypeMsg.INFO)
        if owns_runtime:
            await close_runtime(runtime)
        elif start_background:
            await runtime.stop()

    from courier_dispatch.config import settings

    app = FastAPI(
        title="Courier Dispatch",
        description="Назначение заказов доставки ближайшим курьерам.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.runtime = runtime
    app.state.connections = ConnectionManager()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(DispatchError)
    async def dispatch_error_handler(request: Request, exc: DispatchError) -> JSONResponse:
        if exc.status_code >= 500:
            await log_error(f"{request.method} {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, **exc.details},
        )

    app.include_router(router)

    @app.get("/health", tags=["Health"])
    async def health_check() -> dict[str, Any]:
        current = app.state.runtime
        bus_ok = True
        if current is not None and hasattr(current.event_bus, "health_check"):
            bus_ok = await current.event_bus.health_check()

        database: bool | str = "disabled"
        if settings.database.DB_ENABLED:
            database = await get_db().health_check()

        return {
            "status": "ok" if current is not None and bus_ok and database is not False else "degraded",
            "service": "courier_dispatch",
            "version": __version__,
            "database": database,
            "notifications": current.notifier.name if current is not None else None,
            "websocket": app.state.connections.get_stats(),
        }

    @app.websocket("/ws")
    async def dashboard_socket(websocket: WebSocket) -> None:
        """
        WebSocket для дашбордов.

        Входящие сообщения:
        - {"action": "ping"}
        """
        connections: ConnectionManager = app.state.connections
        client_id = await connections.connect(websocket)

        current = app.state.runtime
        if current is not None:
            await connections.send_initial_data(
                client_id,
                current.storage,
                current.options.RECENT_ASSIGNMENTS_LIMIT,
            )

        try:
            while True:
                data = await websocket.receive_json()
                if isinstance(data, dict) and data.get("action") == "ping":
                    await connections.send_personal(client_id, {"type": "pong"})
        except WebSocketDisconnect:
            await connections.disconnect(client_id)
        except Exception:
            await connections.disconnect(client_id)

    return app
