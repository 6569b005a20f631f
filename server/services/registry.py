"""Connection registry: one device slot and a set of observers."""

import asyncio
from typing import List, Optional, Set

from core.logging import get_logger
from services.connection import Connection, ConnectionRole

logger = get_logger(__name__)


class ConnectionRegistry:
    """Tracks which connections are routed to as device or observers.

    Mutations hold the registry lock. Readers get snapshot copies, so a
    broadcast in progress never sees a set that changes under it.
    """

    def __init__(self):
        self._device: Optional[Connection] = None
        self._observers: Set[Connection] = set()
        self._lock = asyncio.Lock()

    async def register(self, connection: Connection, role: ConnectionRole) -> Optional[Connection]:
        """Register a connection under a role.

        Returns:
            The device connection displaced by this registration, if any.
        """
        async with self._lock:
            displaced = None
            if role == ConnectionRole.DEVICE:
                if self._device is not None and self._device is not connection:
                    displaced = self._device
                self._device = connection
            elif role == ConnectionRole.OBSERVER:
                self._observers.add(connection)
            else:
                raise ValueError(f"Cannot register connection as {role}")
            connection.role = role

        if displaced is not None:
            logger.warning("[Registry] Device replaced",
                           old_connection=displaced.id, new_connection=connection.id)
        logger.info(f"[Registry] Registered {role.value}",
                    connection_id=connection.id, observers=len(self._observers))
        return displaced

    async def unregister(self, connection: Connection) -> bool:
        """Remove a connection from whichever role it held.

        Returns:
            True only if the connection was the active device.
        """
        async with self._lock:
            self._observers.discard(connection)
            if self._device is connection:
                self._device = None
                return True
        return False

    async def discard_observers(self, connections: Set[Connection]) -> None:
        """Drop observers whose transport failed."""
        if not connections:
            return
        async with self._lock:
            self._observers -= connections
        logger.info("[Registry] Dropped failed observers",
                    count=len(connections), remaining=len(self._observers))

    def current_device(self) -> Optional[Connection]:
        return self._device

    def is_current_device(self, connection: Connection) -> bool:
        return self._device is connection

    def observers(self) -> List[Connection]:
        """Snapshot of the observer set."""
        return list(self._observers)

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    @property
    def device_connected(self) -> bool:
        device = self._device
        return device is not None and device.is_open
