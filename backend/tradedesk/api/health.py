"""
Health Check API Endpoints
Service, push hub and host resource status
"""

import time
from datetime import datetime, timedelta
from typing import Any, Dict
import psutil
from fastapi import APIRouter, Request
from tradedesk.core.config import settings
from tradedesk.core.logging import get_logger
from tradedesk.realtime.messages import utcnow

logger = get_logger(__name__)

health_router = APIRouter(prefix="/health", tags=["Health"])

start_time = time.time()


@health_router.get("")
async def main_health_check(request: Request):
    """Overall health with hub and system components"""
    ws_health = get_websocket_health(request)
    system_health = get_system_health()

    overall_status = "healthy"
    if ws_health["status"] != "healthy" or system_health["status"] == "degraded":
        overall_status = "degraded"
    if system_health["status"] == "critical":
        overall_status = "critical"

    return {
        "status": overall_status,
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": utcnow().isoformat(),
        "environment": settings.ENVIRONMENT,
        "uptime": get_uptime(),
        "components": {
            "websocket": ws_health,
            "system": system_health
        }
    }


@health_router.get("/websocket")
async def websocket_health(request: Request):
    """Push hub connections health check"""
    return get_websocket_health(request)


def get_websocket_health(request: Request) -> Dict[str, Any]:
    hub = getattr(request.app.state, "hub", None)
    if hub is None:
        return {"status": "unhealthy", "error": "push hub not configured"}

    stats = hub.get_stats()
    return {
        "status": "healthy" if stats["running"] else "degraded",
        "connections": stats["active_connections"],
        "total_connections": stats["total_connections"],
        "messages_sent": stats["messages_sent"],
        "messages_received": stats["messages_received"],
        "errors": stats["errors"],
        "connection_details": stats["connection_details"]
    }


def get_system_health() -> Dict[str, Any]:
    """Get system resource health metrics"""
    try:
        cpu_percent = psutil.cpu_percent(interval=None)
        memory = psutil.virtual_memory()
        disk = psutil.disk_usage('/')
    except Exception as e:
        logger.error(f"System health check failed: {e}")
        return {"status": "unknown", "error": str(e)}

    status = "healthy"
    if cpu_percent > 90 or memory.percent > 95 or disk.percent > 95:
        status = "critical"
    elif cpu_percent > 80 or memory.percent > 85 or disk.percent > 85:
        status = "degraded"

    return {
        "status": status,
        "cpu": {
            "usage_percent": round(cpu_percent, 2),
            "count": psutil.cpu_count()
        },
        "memory": {
            "usage_percent": round(memory.percent, 2),
            "available_gb": round(memory.available / (1024**3), 2)
        },
        "disk": {
            "usage_percent": round(disk.percent, 2),
            "free_gb": round(disk.free / (1024**3), 2)
        }
    }


def get_uptime() -> Dict[str, Any]:
    """Calculate service uptime"""
    uptime_seconds = time.time() - start_time
    return {
        "seconds": round(uptime_seconds, 2),
        "human_readable": str(timedelta(seconds=uptime_seconds)).split('.')[0],
        "started_at": datetime.fromtimestamp(start_time).isoformat()
    }
