# courier_dispatch/core/__init__.py
"""
Доменный слой.
Заказы, курьеры, назначения и выбор ближайшего курьера.
"""

from courier_dispatch.core.assignments.models import Assignment, AssignmentDetails
from courier_dispatch.core.drivers.models import Driver
from courier_dispatch.core.matching.service import DriverMatch, DriverMatcher
from courier_dispatch.core.orders.models import Order

__all__ = [
    "Assignment",
    "AssignmentDetails",
    "Driver",
    "DriverMatch",
    "DriverMatcher",
    "Order",
]
