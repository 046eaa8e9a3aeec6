# courier_dispatch/services/api/dependencies.py
"""
Dependency Injection для HTTP API.
Движок собирается в lifespan и хранится в app.state.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from courier_dispatch.core.dispatch.lifecycle import LifecycleMutator
from courier_dispatch.core.dispatch.scheduler import BatchScheduler
from courier_dispatch.services.runtime import DispatchRuntime
from courier_dispatch.storage.base import DispatchStorage


def get_runtime(request: Request) -> DispatchRuntime:
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(status_code=503, detail="Движок назначения не инициализирован")
    return runtime


def get_storage(request: Request) -> DispatchStorage:
    return get_runtime(request).storage


def get_lifecycle(request: Request) -> LifecycleMutator:
    return get_runtime(request).lifecycle


def get_scheduler(request: Request) -> BatchScheduler:
    return get_runtime(request).scheduler
