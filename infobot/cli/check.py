"""Check command: run one check cycle now and exit."""

import asyncio
from pathlib import Path

import typer

from infobot.cli.utils import (
    DEFAULT_CONFIG_PATH,
    display_error,
    display_success,
    display_warning,
    handle_errors,
    load_config,
    open_application,
)
from infobot.models.config import InfobotConfig
from infobot.models.scheduler import ManualCheckResult


@handle_errors
def check_command(
    config_path: Path = typer.Option(
        DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to infobot config YAML"
    ),
):
    """Check every configured source once and send notifications."""
    config = load_config(config_path)
    result = asyncio.run(_check_once(config))
    _display_result(result)

    if not result.success:
        raise typer.Exit(code=1)


async def _check_once(config: InfobotConfig) -> ManualCheckResult:
    async with open_application(config) as application:
        return await application.scheduler.trigger_manual_check()


def _display_result(result: ManualCheckResult) -> None:
    if not result.success:
        display_error(f"Check failed: {result.message}")
        return

    display_success(f"Check completed: {result.message}")
    summary = result.summary
    if summary is None:
        return

    for outcome in summary.outcomes:
        name = outcome.source.display_name
        if outcome.success:
            typer.echo(
                f"  {name}: {outcome.total_checked} fetched, "
                f"{outcome.new_items} new, {outcome.sent} sent"
            )
            if outcome.send_failures:
                display_warning(f"    {outcome.send_failures} send(s) failed")
        else:
            display_warning(f"  {name}: failed ({outcome.error})")

    if summary.sources_checked == 0:
        display_warning("No sources are configured.")
