"""A peer WebSocket and the role it registered as."""

import asyncio
import time
import uuid
from enum import Enum
from typing import Optional

from fastapi import WebSocket
from starlette.websockets import WebSocketState


class ConnectionRole(str, Enum):
    UNREGISTERED = "unregistered"
    DEVICE = "device"
    OBSERVER = "observer"


class Connection:
    """Wraps a transport with its role and a send lock.

    Sends are serialized per connection so broadcasts and direct replies
    never interleave frames on the same socket.
    """

    def __init__(self, websocket: WebSocket, connection_id: Optional[str] = None):
        self.websocket = websocket
        self.id = connection_id or uuid.uuid4().hex
        self.role = ConnectionRole.UNREGISTERED
        self.device_id: Optional[str] = None
        self.connected_at = time.time()
        self._send_lock = asyncio.Lock()
        self._closed = False

    @property
    def is_open(self) -> bool:
        if self._closed:
            return False
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    def mark_closed(self) -> None:
        self._closed = True

    async def send_text(self, payload: str) -> None:
        """Send a serialized frame. Raises if the transport is gone."""
        if not self.is_open:
            raise ConnectionError(f"Connection {self.id} is closed")
        async with self._send_lock:
            try:
                await self.websocket.send_text(payload)
            except Exception:
                self._closed = True
                raise

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        if not self.is_open:
            return
        self._closed = True
        await self.websocket.close(code=code, reason=reason)

    def __repr__(self) -> str:
        return f"<Connection {self.id} role={self.role.value}>"
