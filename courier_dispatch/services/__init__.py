# courier_dispatch/services/__init__.py
"""
Сервисный слой: сборка движка и внешние поверхности.

- runtime: движок назначения с фоновыми задачами
- api: REST и WebSocket для дашбордов (FastAPI)
"""

__all__: list[str] = []
