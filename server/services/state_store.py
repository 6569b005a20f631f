"""Last-known motor state, backed by the database's single motor_state row."""

from datetime import datetime
from typing import Optional

from core.database import Database
from core.logging import get_logger
from models.database import MotorState, MOTOR_STATE_ID, utcnow

logger = get_logger(__name__)

_FIELDS = frozenset(["motor_a", "motor_b", "voltage", "current", "power"])


class StateStore:
    """Read/upsert access to the motor state snapshot."""

    def __init__(self, database: Database):
        self.database = database

    async def ensure_initialized(self) -> MotorState:
        """Create the zero-valued row if it does not exist yet."""
        state = await self.database.get_motor_state()
        if state is None:
            state = await self.database.upsert_motor_state({})
            logger.info("Initial motor state created")
        return state

    async def read(self) -> MotorState:
        """Latest snapshot; a zero-valued one stamped now if nothing was stored."""
        state = await self.database.get_motor_state()
        if state is None:
            return MotorState(id=MOTOR_STATE_ID, last_updated=utcnow())
        return state

    async def upsert(self, updated_at: Optional[datetime] = None, **fields) -> MotorState:
        """Merge the given fields into the snapshot and stamp last_updated.

        Raises:
            ValueError: for fields that are not part of the snapshot
            StorageError: if the write fails
        """
        unknown = set(fields) - _FIELDS
        if unknown:
            raise ValueError(f"Unknown motor state fields: {sorted(unknown)}")
        return await self.database.upsert_motor_state(fields, updated_at=updated_at)
