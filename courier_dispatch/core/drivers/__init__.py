# courier_dispatch/core/drivers/__init__.py
"""
Домен курьеров.
Модели и репозиторий курьеров.
"""

from courier_dispatch.core.drivers.models import Driver, DriverCreateDTO
from courier_dispatch.core.drivers.repository import DriverRepository

__all__ = [
    "Driver",
    "DriverCreateDTO",
    "DriverRepository",
]
