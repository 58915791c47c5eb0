"""
Centralized Logging Configuration
Structured JSON logging for production and development
"""

import os
import sys
from typing import Any, Optional
from loguru import logger
from .config import Settings, settings


def setup_logging(config: Optional[Settings] = None) -> None:
    """Configure application logging"""
    config = config or settings

    # Remove default loguru handler
    logger.remove()

    # Development logging (human-readable)
    if config.DEBUG:
        logger.add(
            sys.stderr,
            level=config.LOG_LEVEL,
            format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
            colorize=True,
            backtrace=True,
            diagnose=True
        )
    else:
        # Production logging (JSON structured)
        logger.add(
            sys.stderr,
            level=config.LOG_LEVEL,
            serialize=True
        )

    # Critical errors
    logger.add(
        os.path.join(config.LOG_DIR, "error.log"),
        level="ERROR",
        rotation="100 MB",
        retention="30 days",
        compression="zip",
        backtrace=True,
        diagnose=True
    )

    # Connection lifecycle and frame routing
    logger.add(
        os.path.join(config.LOG_DIR, "realtime.log"),
        level="INFO",
        rotation="50 MB",
        retention="7 days",
        compression="zip",
        filter=lambda record: record["extra"].get("category") == "realtime"
    )


def get_logger(name: str):
    """Get logger instance with module name"""
    return logger.bind(module=name)


def log_connection_event(event: str, **context: Any) -> None:
    """Log a push-connection lifecycle event with structured data"""
    logger.bind(
        category="realtime",
        event=event,
        **context
    ).info(f"Realtime event: {event}")


__all__ = [
    "setup_logging",
    "get_logger",
    "log_connection_event",
]
