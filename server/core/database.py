"""Async database service with SQLModel and SQLAlchemy 2.0."""

from datetime import datetime
from typing import Any, Dict, Optional
from sqlmodel import SQLModel, select
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.exc import IntegrityError
from contextlib import asynccontextmanager

from core.config import Settings
from core.exceptions import StorageError
from core.logging import get_logger
from models.database import MotorState, MOTOR_STATE_ID, utcnow

logger = get_logger(__name__)


class Database:
    """Async database service with SQLModel."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.engine = None
        self.async_session = None

    async def startup(self):
        """Initialize database connection and create tables."""
        try:
            engine_kwargs: Dict[str, Any] = {
                "echo": self.settings.database_echo,
                "future": True,
            }
            if not self.settings.is_sqlite:
                engine_kwargs["pool_size"] = self.settings.database_pool_size
                engine_kwargs["max_overflow"] = self.settings.database_max_overflow

            self.engine = create_async_engine(self.settings.database_url, **engine_kwargs)

            self.async_session = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False
            )

            async with self.engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)

            logger.info("Database initialized successfully", url=self.settings.database_url)

        except Exception as e:
            logger.error("Database startup failed", error=str(e))
            raise

    async def shutdown(self):
        """Close database connections."""
        if self.engine:
            await self.engine.dispose()
            self.engine = None
            self.async_session = None
            logger.info("Database connections closed")

    @asynccontextmanager
    async def get_session(self):
        """Get async database session."""
        if not self.async_session:
            raise RuntimeError("Database not initialized")

        async with self.async_session() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    async def ping(self) -> bool:
        """Check database connectivity."""
        try:
            async with self.get_session() as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning("Database ping failed", error=str(e))
            return False

    # ============================================================================
    # Motor State
    # ============================================================================

    async def get_motor_state(self) -> Optional[MotorState]:
        """Get the motor state row, or None if it was never written."""
        try:
            async with self.get_session() as session:
                return await session.get(MotorState, MOTOR_STATE_ID)

        except Exception as e:
            logger.error("Failed to get motor state", error=str(e))
            raise StorageError("read", str(e)) from e

    async def upsert_motor_state(self, fields: Dict[str, Any],
                                 updated_at: Optional[datetime] = None) -> MotorState:
        """Merge fields into the motor state row, creating it if absent."""
        stamp = updated_at or utcnow()
        try:
            return await self._upsert_motor_state(fields, stamp)

        except IntegrityError as e:
            # Lost a race with a concurrent first insert; the row exists now.
            logger.info("Motor state inserted concurrently, retrying as update", error=str(e))
            try:
                return await self._upsert_motor_state(fields, stamp)
            except Exception as retry_e:
                logger.error("Failed to update motor state", error=str(retry_e))
                raise StorageError("upsert", str(retry_e)) from retry_e

        except Exception as e:
            logger.error("Failed to upsert motor state", fields=list(fields), error=str(e))
            raise StorageError("upsert", str(e)) from e

    async def _upsert_motor_state(self, fields: Dict[str, Any], stamp: datetime) -> MotorState:
        async with self.get_session() as session:
            existing = await session.get(MotorState, MOTOR_STATE_ID)

            if existing is None:
                existing = MotorState(id=MOTOR_STATE_ID, **fields, last_updated=stamp)
                session.add(existing)
            else:
                for name, value in fields.items():
                    setattr(existing, name, value)
                existing.last_updated = stamp

            await session.commit()
            return existing
