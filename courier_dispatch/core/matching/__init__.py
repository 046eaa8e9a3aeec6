# courier_dispatch/core/matching/__init__.py
"""
Домен поиска курьеров.
"""

from courier_dispatch.core.matching.service import DriverMatch, DriverMatcher

__all__ = [
    "DriverMatch",
    "DriverMatcher",
]
