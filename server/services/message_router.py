"""Message router for the motor relay.

Classifies inbound frames by their declared ``type`` and dispatches them to a
handler, enforcing the per-connection role state machine:

- unregistered + device/observer register -> device / observer
- observer + motor_control               -> unicast motor_command to the device
- device + state_update                  -> persist and fan out to observers

Anything else (bad JSON, unknown type, wrong role, invalid fields) raises
ProtocolError inside dispatch, which logs and drops it without a reply.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type, TypeVar

import orjson
from pydantic import BaseModel, ValidationError

from core.config import Settings
from core.exceptions import ProtocolError, StorageError
from core.logging import get_logger, log_relay_event
from models.database import utcnow
from models.messages import (
    DEVICE_REGISTER_TYPES,
    OBSERVER_REGISTER_TYPES,
    MOTOR_CONTROL,
    STATE_UPDATE,
    INITIAL_STATE,
    DEVICE_STATUS,
    MOTOR_COMMAND,
    ERROR,
    RegisterMessage,
    MotorControlMessage,
    StateUpdateMessage,
)
from services.broadcaster import Broadcaster
from services.connection import Connection, ConnectionRole
from services.registry import ConnectionRegistry
from services.state_store import StateStore

logger = get_logger(__name__)

DEVICE_NOT_CONNECTED = "device not connected"
REPLACED_CLOSE_CODE = 4000

Handler = Callable[[Connection, Dict[str, Any]], Awaitable[None]]
M = TypeVar("M", bound=BaseModel)


def decode_frame(raw: str | bytes) -> Tuple[str, Dict[str, Any]]:
    """Parse a frame into (msg_type, data).

    Raises:
        ProtocolError: if the frame is not a JSON object with a string type
    """
    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError as e:
        raise ProtocolError(f"Malformed frame: {e}") from e

    if not isinstance(data, dict):
        raise ProtocolError("Frame is not a JSON object")

    msg_type = data.get("type")
    if not isinstance(msg_type, str):
        raise ProtocolError("Frame has no message type")
    return msg_type, data


def validate(model: Type[M], data: Dict[str, Any]) -> M:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ProtocolError(f"Invalid fields ({e.error_count()} errors)", data.get("type")) from e


class MessageRouter:
    """Routes relay messages between the device, observers and the state store."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        broadcaster: Broadcaster,
        state_store: StateStore,
        settings: Settings
    ):
        self.registry = registry
        self.broadcaster = broadcaster
        self.state_store = state_store
        self.settings = settings

        # Held by every observer fan-out and by observer registration, so a
        # new observer's snapshot always precedes the broadcasts it receives.
        self._fanout_lock = asyncio.Lock()

        # msg_type -> (role the sender must hold, handler)
        self._handlers: Dict[str, Tuple[ConnectionRole, Handler]] = {}
        for msg_type in DEVICE_REGISTER_TYPES:
            self._handlers[msg_type] = (ConnectionRole.UNREGISTERED, self._handle_device_register)
        for msg_type in OBSERVER_REGISTER_TYPES:
            self._handlers[msg_type] = (ConnectionRole.UNREGISTERED, self._handle_observer_register)
        self._handlers[MOTOR_CONTROL] = (ConnectionRole.OBSERVER, self._handle_motor_control)
        self._handlers[STATE_UPDATE] = (ConnectionRole.DEVICE, self._handle_state_update)

    @property
    def supported_message_types(self) -> list:
        return sorted(self._handlers)

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def dispatch(self, connection: Connection, raw: str | bytes) -> None:
        """Handle one inbound frame. Protocol errors are logged and dropped."""
        try:
            msg_type, data = decode_frame(raw)
            handler = self._resolve(connection, msg_type)
            await handler(connection, data)
        except ProtocolError as e:
            logger.warning("Dropping frame", reason=str(e), msg_type=e.msg_type,
                           role=connection.role.value, connection_id=connection.id)

    def _resolve(self, connection: Connection, msg_type: str) -> Handler:
        entry = self._handlers.get(msg_type)
        if entry is None:
            raise ProtocolError("Unknown message type", msg_type)

        required_role, handler = entry
        if connection.role != required_role:
            raise ProtocolError(f"Not allowed for role {connection.role.value}", msg_type)
        return handler

    async def connection_closed(self, connection: Connection) -> None:
        """Unregister a closed connection; announce device loss to observers."""
        connection.mark_closed()
        was_device = await self.registry.unregister(connection)
        log_relay_event(logger, "Connection closed", connection.id, connection.role.value,
                        was_active_device=was_device)
        if was_device:
            await self._broadcast({"type": DEVICE_STATUS, "connected": False})

    # =========================================================================
    # Registration
    # =========================================================================

    async def _handle_device_register(self, connection: Connection, data: Dict[str, Any]) -> None:
        message = validate(RegisterMessage, data)
        connection.device_id = message.id

        displaced = await self.registry.register(connection, ConnectionRole.DEVICE)
        log_relay_event(logger, "Device registered", connection.id, connection.role.value,
                        device_id=message.id)

        if displaced is not None and self.settings.close_replaced_device:
            try:
                await displaced.close(code=REPLACED_CLOSE_CODE, reason="replaced by newer device")
            except Exception as e:
                logger.warning("Failed to close replaced device", connection_id=displaced.id, error=str(e))

        try:
            state = await self.state_store.read()
            await self.broadcaster.send(connection, {
                "type": INITIAL_STATE,
                "motorA": state.motor_a,
                "motorB": state.motor_b,
            })
        except StorageError as e:
            logger.error("Could not load initial state for device", error=str(e))

        await self._broadcast({"type": DEVICE_STATUS, "connected": True})

    async def _handle_observer_register(self, connection: Connection, data: Dict[str, Any]) -> None:
        validate(RegisterMessage, data)

        async with self._fanout_lock:
            try:
                state = await self.state_store.read()
            except StorageError as e:
                logger.error("Could not load snapshot for observer", error=str(e))
                state = None

            await self.registry.register(connection, ConnectionRole.OBSERVER)
            if state is not None:
                await self.broadcaster.send(connection, {"type": STATE_UPDATE, **state.to_payload()})
            await self.broadcaster.send(connection, {
                "type": DEVICE_STATUS,
                "connected": self.registry.device_connected,
            })

        log_relay_event(logger, "Observer registered", connection.id, connection.role.value,
                        observers=self.registry.observer_count)

    # =========================================================================
    # Motor control
    # =========================================================================

    async def _handle_motor_control(self, connection: Connection, data: Dict[str, Any]) -> None:
        message = validate(MotorControlMessage, data)
        success, detail = await self.control_motor(message.motor, message.state)
        if not success:
            await self.broadcaster.send(connection, {"type": ERROR, "message": detail})

    async def control_motor(self, motor: str, state: bool) -> Tuple[bool, str]:
        """Forward a motor command to the device and record it.

        The store is only written once the command reached the device.

        Returns:
            Tuple of (success, message)
        """
        logger.info("Motor control", motor=motor, state="ON" if state else "OFF")

        device = self.registry.current_device()
        if device is None or not device.is_open:
            return False, DEVICE_NOT_CONNECTED

        delivered = await self.broadcaster.send(device, {
            "type": MOTOR_COMMAND,
            "motor": motor,
            "state": state,
        })
        if not delivered:
            return False, DEVICE_NOT_CONNECTED

        try:
            await self.state_store.upsert(**{f"motor_{motor.lower()}": state})
        except StorageError as e:
            logger.error("Command delivered but not persisted", motor=motor, error=str(e))

        return True, f"Motor {motor} turned {'ON' if state else 'OFF'}"

    # =========================================================================
    # Telemetry
    # =========================================================================

    async def _handle_state_update(self, connection: Connection, data: Dict[str, Any]) -> None:
        if not self.registry.is_current_device(connection):
            raise ProtocolError("Sender is a replaced device", STATE_UPDATE)

        message = validate(StateUpdateMessage, data)
        now = utcnow()
        fields = {
            "voltage": message.voltage,
            "current": message.current,
            "power": message.power,
        }
        # Motor flags the device left out keep their stored value
        if message.motor_a is not None:
            fields["motor_a"] = message.motor_a
        if message.motor_b is not None:
            fields["motor_b"] = message.motor_b

        try:
            snapshot = await self.state_store.upsert(updated_at=now, **fields)
            payload = snapshot.to_payload()
        except StorageError as e:
            # Live telemetry still goes out when persistence fails
            logger.error("Failed to persist state update", error=str(e))
            payload = {
                "motorA": message.motor_a,
                "motorB": message.motor_b,
                "voltage": message.voltage,
                "current": message.current,
                "power": message.power,
                "lastUpdated": now.isoformat(),
            }
            payload = {k: v for k, v in payload.items() if v is not None}

        await self._broadcast({"type": STATE_UPDATE, **payload})

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _broadcast(self, message: Dict[str, Any]) -> None:
        async with self._fanout_lock:
            failed = await self.broadcaster.broadcast_to_observers(message)
        await self.registry.discard_observers(failed)

    def device_info(self) -> Optional[Dict[str, Any]]:
        device = self.registry.current_device()
        if device is None:
            return None
        return {
            "connection_id": device.id,
            "device_id": device.device_id,
            "connected_at": device.connected_at,
            "open": device.is_open,
        }
