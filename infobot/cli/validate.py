"""Validate command for configuration files.

Validates configuration file syntax and semantics.
"""

from pathlib import Path

import typer

from infobot.cli.utils import display_error, display_success, display_warning, handle_errors
from infobot.services.config_manager import ConfigManager


@handle_errors
def validate_command(
    config_path: Path = typer.Argument(..., help="Config file to validate"),
):
    """Validate configuration file syntax and semantics."""
    try:
        manager = ConfigManager(config_path=config_path)
        config = manager.load_config()
    except Exception as e:
        display_error(f"Validation failed: {e}")
        raise typer.Exit(code=1)

    display_success("Configuration is valid! ✅")

    if config.discord.webhook_url is None:
        display_warning("  Discord webhook URL is not set; notifications cannot be sent.")

    for name, flags in manager.source_summary().items():
        if flags["enabled"] and not flags["configured"]:
            display_warning(f"  {name}: enabled but missing identifiers (will be skipped)")
        elif flags["enabled"]:
            typer.echo(f"  {name}: configured")
