"""SQLModel database models and tables."""

from datetime import datetime, timezone
from typing import Dict, Any
from sqlmodel import SQLModel, Field, Column, DateTime

# The motor state lives in one explicitly keyed row.
MOTOR_STATE_ID = 1


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MotorState(SQLModel, table=True):
    """Last-known motor and telemetry snapshot."""

    __tablename__ = "motor_state"

    id: int = Field(default=MOTOR_STATE_ID, primary_key=True)
    motor_a: bool = Field(default=False)
    motor_b: bool = Field(default=False)
    voltage: float = Field(default=0.0)
    current: float = Field(default=0.0)
    power: float = Field(default=0.0)
    last_updated: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )

    def to_payload(self) -> Dict[str, Any]:
        """Snapshot in wire (camelCase) form."""
        last_updated = self.last_updated
        # SQLite drops tzinfo on the way back out
        if last_updated.tzinfo is None:
            last_updated = last_updated.replace(tzinfo=timezone.utc)
        return {
            "motorA": self.motor_a,
            "motorB": self.motor_b,
            "voltage": self.voltage,
            "current": self.current,
            "power": self.power,
            "lastUpdated": last_updated.isoformat(),
        }
