"""Infobot CLI Package.

Usage:
    python -m infobot.cli run --config config/infobot.yaml
    python -m infobot.cli check
    python -m infobot.cli status
    python -m infobot.cli cleanup --days 30
    python -m infobot.cli reset-sources --source instagram
    python -m infobot.cli validate config/infobot.yaml
"""

import typer

from infobot.cli.check import check_command
from infobot.cli.maintenance import cleanup_command, reset_sources_command
from infobot.cli.run import run_command
from infobot.cli.status import status_command
from infobot.cli.validate import validate_command

app = typer.Typer(help="Infobot: announce new YouTube, Instagram and LinkedIn content on Discord")

app.command(name="run")(run_command)
app.command(name="check")(check_command)
app.command(name="status")(status_command)
app.command(name="cleanup")(cleanup_command)
app.command(name="reset-sources")(reset_sources_command)
app.command(name="validate")(validate_command)

__all__ = [
    "app",
    "run_command",
    "check_command",
    "status_command",
    "cleanup_command",
    "reset_sources_command",
    "validate_command",
]
