"""Maintenance commands: retention sweep and cursor reset."""

import asyncio
from pathlib import Path
from typing import Optional

import typer

from infobot.cli.utils import (
    DEFAULT_CONFIG_PATH,
    display_success,
    handle_errors,
    load_config,
    open_store,
)
from infobot.models.config import InfobotConfig
from infobot.models.content import SourceKind


def _validate_source(value: Optional[str]) -> Optional[str]:
    """Accept only known source names."""
    if value is None:
        return None
    value = value.lower()
    if value not in {kind.value for kind in SourceKind}:
        choices = ", ".join(kind.value for kind in SourceKind)
        raise typer.BadParameter(f"Source must be one of: {choices}")
    return value


@handle_errors
def cleanup_command(
    config_path: Path = typer.Option(
        DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to infobot config YAML"
    ),
    days: Optional[int] = typer.Option(
        None, "--days", "-d", min=1, help="Retention in days (default from config)"
    ),
):
    """Delete sent-notification records older than the retention window."""
    config = load_config(config_path)
    retention = days or config.storage.retention_days
    removed = asyncio.run(_sweep(config, retention))
    display_success(f"Removed {removed} notification record(s) older than {retention} days.")


async def _sweep(config: InfobotConfig, days: int) -> int:
    async with open_store(config) as store:
        return await store.sweep_expired(days)


@handle_errors
def reset_sources_command(
    config_path: Path = typer.Option(
        DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to infobot config YAML"
    ),
    source: Optional[str] = typer.Option(
        None,
        "--source",
        "-s",
        help="Only reset this source (youtube, instagram, linkedin)",
        callback=_validate_source,
    ),
):
    """Forget check cursors so the next check starts from the lookback window.

    Sent-notification records are kept, so already announced items stay
    suppressed.
    """
    config = load_config(config_path)
    removed = asyncio.run(_reset(config, source))
    target = source or "all sources"
    display_success(f"Reset {removed} cursor(s) for {target}.")


async def _reset(config: InfobotConfig, source: Optional[str]) -> int:
    async with open_store(config) as store:
        return await store.reset_check_states(source)
