# courier_dispatch/services/api/routes.py
"""
REST API диспетчерской.

Изменения заказов и курьеров идут через LifecycleMutator, создание
заказов запускает проход назначения. Доменные ошибки переводятся
в коды ответа обработчиком в app.py.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Annotated, Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from courier_dispatch.common.constants import ApprovalStatus
from courier_dispatch.common.exceptions import OrderNotFoundError
from courier_dispatch.core.assignments.models import (
    AssignmentDetails,
    DispatchStats,
    DriverOrders,
    DriverOrdersSummary,
)
from courier_dispatch.core.dispatch.lifecycle import LifecycleMutator
from courier_dispatch.core.dispatch.scheduler import BatchScheduler
from courier_dispatch.core.drivers.models import (
    Driver,
    DriverApprovalDTO,
    DriverCreateDTO,
    DriverLocationDTO,
    DriverPresenceDTO,
    DriverTelegramDTO,
)
from courier_dispatch.core.orders.models import Order, OrderCreateDTO, OrderStatusDTO
from courier_dispatch.services.api.dependencies import (
    get_lifecycle,
    get_runtime,
    get_scheduler,
    get_storage,
)
from courier_dispatch.services.runtime import DispatchRuntime
from courier_dispatch.storage.base import DispatchStorage

router = APIRouter(prefix="/api")

StorageDep = Annotated[DispatchStorage, Depends(get_storage)]
LifecycleDep = Annotated[LifecycleMutator, Depends(get_lifecycle)]


# =============================================================================
# ДАШБОРД
# =============================================================================

@router.get("/stats", response_model=DispatchStats, tags=["Dashboard"])
async def get_stats(storage: StorageDep) -> DispatchStats:
    return await storage.get_stats()


@router.get("/assignments/recent", response_model=list[AssignmentDetails], tags=["Dashboard"])
async def get_recent_assignments(
    storage: StorageDep,
    limit: int = Query(10, ge=1, le=100),
) -> list[AssignmentDetails]:
    return await storage.get_recent_assignments(limit)


@router.post("/dispatch/run", tags=["Dashboard"])
async def run_dispatch(
    scheduler: Annotated[BatchScheduler, Depends(get_scheduler)],
) -> dict[str, Any]:
    """Ручной запуск прохода назначения. Если проход уже идёт, возвращает skipped."""
    result = await scheduler.process_pending_orders()
    return asdict(result)


# =============================================================================
# ЗАКАЗЫ
# =============================================================================

@router.get("/orders", response_model=list[Order], tags=["Orders"])
async def list_orders(storage: StorageDep) -> list[Order]:
    return await storage.list_orders()


@router.get("/orders/pending", response_model=list[Order], tags=["Orders"])
async def list_pending_orders(storage: StorageDep) -> list[Order]:
    return await storage.get_pending_orders()


@router.post("/orders", response_model=Order, tags=["Orders"])
async def create_order(
    request: OrderCreateDTO,
    runtime: Annotated[DispatchRuntime, Depends(get_runtime)],
) -> Order:
    return await runtime.create_order(request)


@router.post("/orders/mock", response_model=Order, tags=["Orders"])
async def create_mock_order(
    runtime: Annotated[DispatchRuntime, Depends(get_runtime)],
) -> Order:
    return await runtime.create_mock_order()


@router.get("/orders/{order_id}", response_model=Order, tags=["Orders"])
async def get_order(order_id: int, storage: StorageDep) -> Order:
    order = await storage.get_order(order_id)
    if order is None:
        raise OrderNotFoundError(order_id)
    return order


@router.patch("/orders/{order_id}/status", response_model=Order, tags=["Orders"])
async def update_order_status(
    order_id: int,
    request: OrderStatusDTO,
    lifecycle: LifecycleDep,
) -> Order:
    return await lifecycle.transition(order_id, request.status)


# =============================================================================
# КУРЬЕРЫ
# =============================================================================

@router.get("/drivers", response_model=list[Driver], tags=["Drivers"])
async def list_drivers(storage: StorageDep) -> list[Driver]:
    return await storage.list_drivers()


@router.post("/drivers/register", response_model=Driver, tags=["Drivers"])
async def register_driver(request: DriverCreateDTO, lifecycle: LifecycleDep) -> Driver:
    return await lifecycle.register_driver(request)


@router.patch("/drivers/{driver_id}/availability", response_model=Driver, tags=["Drivers"])
async def update_driver_presence(
    driver_id: int,
    request: DriverPresenceDTO,
    lifecycle: LifecycleDep,
) -> Driver:
    if request.is_available is None and request.is_online is None:
        raise HTTPException(status_code=400, detail="Нет данных для обновления")
    return await lifecycle.set_driver_presence(
        driver_id,
        is_online=request.is_online,
        is_available=request.is_available,
    )


@router.patch("/drivers/{driver_id}/location", response_model=Driver, tags=["Drivers"])
async def update_driver_location(
    driver_id: int,
    request: DriverLocationDTO,
    lifecycle: LifecycleDep,
) -> Driver:
    return await lifecycle.update_driver_location(driver_id, request.latitude, request.longitude)


@router.patch("/drivers/{driver_id}/telegram", response_model=Driver, tags=["Drivers"])
async def update_driver_telegram(
    driver_id: int,
    request: DriverTelegramDTO,
    lifecycle: LifecycleDep,
) -> Driver:
    return await lifecycle.update_driver_telegram(driver_id, request.telegram_id)


@router.get("/driver/orders", response_model=DriverOrders, tags=["Drivers"])
async def get_driver_orders(
    storage: StorageDep,
    telegram_id: Optional[str] = Query(None),
) -> DriverOrders:
    """Кабинет одобренного курьера: последние назначения и заработок."""
    if not telegram_id:
        raise HTTPException(status_code=400, detail="Требуется telegram_id")

    driver = await storage.get_driver_by_telegram_id(telegram_id)
    if driver is None or not driver.is_approved:
        raise HTTPException(status_code=403, detail="Курьер не одобрен")

    assignments = await storage.get_driver_assignments(driver.id)
    return DriverOrders(
        driver=driver,
        assignments=assignments,
        stats=DriverOrdersSummary.from_assignments(assignments),
    )


# =============================================================================
# АДМИНИСТРИРОВАНИЕ
# =============================================================================

@router.get("/admin/pending-drivers", response_model=list[Driver], tags=["Admin"])
async def list_pending_drivers(storage: StorageDep) -> list[Driver]:
    return await storage.list_drivers(approval_status=ApprovalStatus.PENDING)


@router.patch("/admin/drivers/{driver_id}/approve", response_model=Driver, tags=["Admin"])
async def approve_driver(
    driver_id: int,
    request: DriverApprovalDTO,
    lifecycle: LifecycleDep,
) -> Driver:
    return await lifecycle.set_driver_approval(
        driver_id,
        approved=request.approved,
        approved_by=request.approved_by,
        reason=request.reason,
    )
