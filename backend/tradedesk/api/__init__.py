"""
API Package
HTTP and WebSocket routers
"""

from .health import health_router
from .ws import ws_router

__all__ = ["health_router", "ws_router"]
