"""Health check utilities.

Provides uptime tracking and the relay status reported by /health.
"""
import time
from datetime import datetime, timezone
from typing import Dict, Any, TYPE_CHECKING

if TYPE_CHECKING:
    from core.database import Database
    from services.registry import ConnectionRegistry

# Module-level startup time tracking
_startup_time: float = 0.0


def set_startup_time() -> None:
    """Record the application startup time. Call once during lifespan startup."""
    global _startup_time
    _startup_time = time.time()


def get_uptime() -> float:
    """Get uptime in seconds since startup."""
    return time.time() - _startup_time if _startup_time else 0.0


async def get_health_status(
    database: "Database",
    registry: "ConnectionRegistry"
) -> Dict[str, Any]:
    """Get health status for the /health endpoint."""
    return {
        "status": "OK",
        "uptime": round(get_uptime(), 1),
        "storageConnected": await database.ping(),
        "deviceConnected": registry.device_connected,
        "observerCount": registry.observer_count,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
