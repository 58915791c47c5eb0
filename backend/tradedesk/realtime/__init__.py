"""
Realtime Package
Push-update wire frames, the client dispatcher and the server hub
"""

from .dispatcher import ConnectionState, UpdateDispatcher, build_dispatcher
from .hub import PushHub
from .backoff import LinearBackoff, ExponentialBackoff

__all__ = [
    "ConnectionState",
    "UpdateDispatcher",
    "build_dispatcher",
    "PushHub",
    "LinearBackoff",
    "ExponentialBackoff"
]
