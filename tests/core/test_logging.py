"""Logging setup."""

import warnings

import structlog

from core.config import Settings
from core.logging import configure_logging, get_logger


def test_console_logging_configures_without_deprecations(tmp_path):
    settings = Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path}/relay.db",
        log_format="console",
    )

    with warnings.catch_warnings():
        warnings.simplefilter("error", DeprecationWarning)
        configure_logging(settings)

    renderer = structlog.get_config()["processors"][-1]
    assert isinstance(renderer, structlog.dev.ConsoleRenderer)
    get_logger(__name__).info("Logging ready", role="test")
