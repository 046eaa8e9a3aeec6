# courier_dispatch/worker/__init__.py
"""
Фоновый воркер назначения: реагирует на новые заказы из шины событий.
"""

from courier_dispatch.worker.dispatch import DispatchWorker

__all__ = ["DispatchWorker"]
