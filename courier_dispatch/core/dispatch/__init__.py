# courier_dispatch/core/dispatch/__init__.py
"""
Движок назначения заказов: координатор, планировщик и жизненный цикл.
"""

from courier_dispatch.core.dispatch.coordinator import AssignmentCoordinator
from courier_dispatch.core.dispatch.demo import build_mock_order
from courier_dispatch.core.dispatch.lifecycle import LifecycleMutator, OrderStateMachine
from courier_dispatch.core.dispatch.scheduler import BatchScheduler, DispatchRunResult

__all__ = [
    "AssignmentCoordinator",
    "BatchScheduler",
    "DispatchRunResult",
    "LifecycleMutator",
    "OrderStateMachine",
    "build_mock_order",
]
