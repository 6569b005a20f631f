"""Pydantic models for inbound relay messages.

Outbound messages are plain dicts built by the router; only frames coming from
peers are validated here.
"""

from typing import Literal, Optional
from pydantic import BaseModel, Field, StrictBool, field_validator


# =============================================================================
# MESSAGE TYPES
# =============================================================================

DEVICE_REGISTER_TYPES = frozenset(["esp32_register", "device_register"])
OBSERVER_REGISTER_TYPES = frozenset(["web_register", "observer_register"])

MOTOR_CONTROL = "motor_control"
STATE_UPDATE = "state_update"

# Outbound
INITIAL_STATE = "initial_state"
DEVICE_STATUS = "device_status"
MOTOR_COMMAND = "motor_command"
ERROR = "error"

MOTORS = ("A", "B")


class BaseMessage(BaseModel):
    """Envelope shared by all inbound messages."""
    model_config = {"extra": "ignore", "populate_by_name": True}

    type: str


class RegisterMessage(BaseMessage):
    """Role registration from a device or observer."""
    id: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, v):
        return None if v is None else str(v)


class MotorControlMessage(BaseMessage):
    """Observer intent to switch one motor."""
    type: Literal["motor_control"]
    motor: Literal["A", "B"]
    state: StrictBool


class StateUpdateMessage(BaseMessage):
    """Telemetry push from the device."""
    type: Literal["state_update"]
    motor_a: Optional[StrictBool] = Field(default=None, alias="motorA")
    motor_b: Optional[StrictBool] = Field(default=None, alias="motorB")
    voltage: Optional[float] = 0.0
    current: Optional[float] = 0.0
    power: Optional[float] = 0.0

    @field_validator("voltage", "current", "power", mode="after")
    @classmethod
    def missing_reading_is_zero(cls, v):
        return 0.0 if v is None else v
