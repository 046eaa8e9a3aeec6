# courier_dispatch/core/assignments/__init__.py
"""
Домен назначений.
"""

from courier_dispatch.core.assignments.models import (
    Assignment,
    AssignmentDetails,
    DispatchStats,
    DriverOrders,
    DriverOrdersSummary,
)
from courier_dispatch.core.assignments.repository import AssignmentRepository

__all__ = [
    "Assignment",
    "AssignmentDetails",
    "DispatchStats",
    "DriverOrders",
    "DriverOrdersSummary",
    "AssignmentRepository",
]
