"""Dependency injection container for the application."""

from dependency_injector import containers, providers

from core.config import Settings
from core.database import Database
from services.state_store import StateStore
from services.registry import ConnectionRegistry
from services.broadcaster import Broadcaster
from services.message_router import MessageRouter


class Container(containers.DeclarativeContainer):
    """Application dependency injection container."""

    settings = providers.Singleton(
        Settings,
    )

    database = providers.Singleton(
        Database,
        settings=settings
    )

    state_store = providers.Singleton(
        StateStore,
        database=database
    )

    # Relay state is process-wide: one registry, one router
    registry = providers.Singleton(
        ConnectionRegistry
    )

    broadcaster = providers.Singleton(
        Broadcaster,
        registry=registry
    )

    message_router = providers.Singleton(
        MessageRouter,
        registry=registry,
        broadcaster=broadcaster,
        state_store=state_store,
        settings=settings
    )


# Global container instance
container = Container()
