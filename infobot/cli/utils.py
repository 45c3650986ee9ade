"""Shared CLI utilities.

Provides common functionality for all CLI commands.
"""

import functools
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Callable, TypeVar

import structlog
import typer

from infobot.app import Application, build_application
from infobot.models.config import InfobotConfig
from infobot.observability.logging import configure_logging
from infobot.services.config_manager import ConfigManager
from infobot.storage.dedup_store import DedupStore
from infobot.utils.exceptions import ConfigurationError, PersistenceError

logger = structlog.get_logger()

DEFAULT_CONFIG_PATH = Path("config/infobot.yaml")

# Type variable for decorator
F = TypeVar("F", bound=Callable)


def load_config(config_path: Path) -> InfobotConfig:
    """Load and validate configuration, then configure logging from it.

    Raises:
        typer.Exit: If configuration is invalid.
    """
    config_manager = ConfigManager(config_path=config_path)
    try:
        config = config_manager.load_config()
    except ConfigurationError as e:
        typer.secho(f"Configuration Error: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    configure_logging(level=config.logging.level, json_output=config.logging.json_output)
    return config


def handle_errors(func: F) -> F:
    """Decorator for consistent error handling.

    Catches exceptions and displays user-friendly error messages.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except typer.Exit:
            raise
        except Exception as e:
            logger.exception("command_failed")
            typer.secho(f"Error: {e}", fg=typer.colors.RED)
            raise typer.Exit(code=1)

    return wrapper  # type: ignore[return-value]


@asynccontextmanager
async def open_store(config: InfobotConfig) -> AsyncIterator[DedupStore]:
    """Initialized Dedup Store, closed on exit.

    Raises:
        typer.Exit: If the database cannot be opened.
    """
    store = DedupStore(config.storage.database_path)
    try:
        await store.initialize()
    except PersistenceError as e:
        display_error(f"Database Error: {e}")
        raise typer.Exit(code=1)

    try:
        yield store
    finally:
        await store.close()


@asynccontextmanager
async def open_application(config: InfobotConfig) -> AsyncIterator[Application]:
    """Fully wired Application with an open store, shut down on exit.

    Raises:
        typer.Exit: If the channel is unconfigured or the database cannot be opened.
    """
    try:
        application = build_application(config)
    except ConfigurationError as e:
        display_error(f"Configuration Error: {e}")
        raise typer.Exit(code=1)

    try:
        await application.startup()
    except PersistenceError as e:
        display_error(f"Database Error: {e}")
        raise typer.Exit(code=1)

    try:
        yield application
    finally:
        await application.shutdown()


def display_success(message: str) -> None:
    typer.secho(message, fg=typer.colors.GREEN)


def display_warning(message: str) -> None:
    typer.secho(message, fg=typer.colors.YELLOW)


def display_error(message: str) -> None:
    typer.secho(message, fg=typer.colors.RED)


def display_info(message: str) -> None:
    typer.secho(message, fg=typer.colors.CYAN)
