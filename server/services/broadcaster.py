"""Best-effort delivery to observers and the device.

Manages fan-out of relay messages: one serialization per message, concurrent
sends to every open observer, and a unicast path to the device slot.
"""

import asyncio
import orjson
from typing import Any, Dict, Set

from core.logging import get_logger
from services.connection import Connection
from services.registry import ConnectionRegistry

logger = get_logger(__name__)


def encode(message: Dict[str, Any]) -> str:
    return orjson.dumps(message).decode()


class Broadcaster:
    """Sends relay messages; never raises on a failed peer."""

    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry

    async def broadcast_to_observers(self, message: Dict[str, Any]) -> Set[Connection]:
        """Broadcast a message to all open observers using TaskGroup.

        Returns:
            Observers whose send failed or whose transport was already closed.
        """
        connections_list = self.registry.observers()
        if not connections_list:
            return set()

        payload = encode(message)
        failed: Set[Connection] = set()

        async def send_to_observer(connection: Connection):
            if not connection.is_open:
                failed.add(connection)
                return
            try:
                await connection.send_text(payload)
            except Exception as e:
                logger.warning(f"[Broadcaster] Send failed: {e}", connection_id=connection.id)
                failed.add(connection)

        try:
            async with asyncio.TaskGroup() as tg:
                for conn in connections_list:
                    tg.create_task(send_to_observer(conn))
        except* Exception as eg:
            for exc in eg.exceptions:
                logger.warning(f"[Broadcaster] TaskGroup exception: {exc}")

        logger.debug("[Broadcaster] Broadcast complete", msg_type=message.get("type"),
                     delivered=len(connections_list) - len(failed), failed=len(failed))
        return failed

    async def send_to_device(self, message: Dict[str, Any]) -> bool:
        """Unicast to the registered device. No-op when there is none."""
        device = self.registry.current_device()
        if device is None or not device.is_open:
            return False
        return await self.send(device, message)

    async def send(self, connection: Connection, message: Dict[str, Any]) -> bool:
        """Send to one connection; returns False instead of raising."""
        try:
            await connection.send_text(encode(message))
            return True
        except Exception as e:
            logger.warning(f"[Broadcaster] Direct send failed: {e}",
                           connection_id=connection.id, msg_type=message.get("type"))
            return False
