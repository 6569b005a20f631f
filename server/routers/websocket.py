"""WebSocket router for the device and observer relay.

Both peer classes connect to the same endpoint and declare their role with
their first message. Frames are handled in arrival order per connection.
"""

import asyncio

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from core.container import container
from core.logging import get_logger, log_relay_event
from services.connection import Connection

logger = get_logger(__name__)

router = APIRouter(tags=["websocket"])


async def _serve(websocket: WebSocket) -> None:
    message_router = container.message_router()

    await websocket.accept()
    connection = Connection(websocket)
    log_relay_event(logger, "New WebSocket connection", connection.id, connection.role.value)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes")
            if raw is None:
                continue
            await message_router.dispatch(connection, raw)
    except WebSocketDisconnect:
        pass  # Normal disconnect
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.error(f"[WebSocket] Receive error: {e}", connection_id=connection.id)
    finally:
        await message_router.connection_closed(connection)


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """Relay endpoint for the device and web observers."""
    await _serve(websocket)


@router.websocket("/")
async def websocket_root_endpoint(websocket: WebSocket):
    """Relay endpoint on the root path, as existing device firmware expects."""
    await _serve(websocket)


@router.get("/ws/info")
async def websocket_info():
    """Get WebSocket connection info."""
    message_router = container.message_router()
    registry = container.registry()
    return {
        "endpoint": "/ws",
        "observer_count": registry.observer_count,
        "device_connected": registry.device_connected,
        "device": message_router.device_info(),
        "supported_message_types": message_router.supported_message_types,
    }
