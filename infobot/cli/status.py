"""Status command: ledger statistics and per-source cursors."""

import asyncio
from pathlib import Path
from typing import Any, Dict

import typer

from infobot.cli.utils import (
    DEFAULT_CONFIG_PATH,
    display_info,
    handle_errors,
    load_config,
    open_store,
)
from infobot.models.config import InfobotConfig
from infobot.scheduling.scheduler import INTERVAL_SETTING_KEY
from infobot.services.config_manager import summarize_sources


@handle_errors
def status_command(
    config_path: Path = typer.Option(
        DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to infobot config YAML"
    ),
):
    """Show notification stats and when each source was last checked."""
    config = load_config(config_path)
    sources = summarize_sources(config)
    snapshot = asyncio.run(_collect(config))

    stats = snapshot["stats"]
    typer.secho("Infobot status", fg=typer.colors.CYAN, bold=True)
    typer.echo(f"  Check interval: {snapshot['interval']} minutes")
    typer.echo(f"  Notifications (total): {stats.total_notifications}")
    typer.echo(f"  Notifications (24h): {stats.notifications_24h}")
    typer.echo(f"  Notifications (7d): {stats.notifications_7d}")
    last = stats.last_global_check
    typer.echo(f"  Last check: {last.isoformat() if last else 'never'}")

    display_info("\nSources:")
    cursors = {state.source_id: state for state in snapshot["states"]}
    for name, flags in sources.items():
        if not flags["enabled"]:
            label = "disabled"
        elif not flags["configured"]:
            label = "not configured"
        else:
            label = "configured"

        state = cursors.get(name)
        checked = state.last_check_time.isoformat() if state else "never"
        latest = state.last_content_id if state and state.last_content_id else "-"
        typer.echo(f"  {name}: {label}, last checked {checked}, latest item {latest}")


async def _collect(config: InfobotConfig) -> Dict[str, Any]:
    async with open_store(config) as store:
        stored_interval = await store.get_setting(INTERVAL_SETTING_KEY)
        return {
            "stats": await store.get_stats(),
            "states": await store.list_check_states(),
            "interval": stored_interval or config.scheduler.check_interval_minutes,
        }
