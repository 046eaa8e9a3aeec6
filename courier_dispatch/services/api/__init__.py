# courier_dispatch/services/api/__init__.py
"""
HTTP API и WebSocket диспетчерской (FastAPI).
"""

from courier_dispatch.services.api.app import create_app

__all__ = ["create_app"]
