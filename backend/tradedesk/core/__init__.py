"""
Core Package
Application configuration, logging, and middleware
"""

from .config import settings
from .logging import setup_logging, get_logger
from .middleware import setup_middleware

__all__ = [
    "settings",
    "setup_logging",
    "get_logger",
    "setup_middleware"
]
