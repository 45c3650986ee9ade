"""Run command: the scheduler daemon.

Starts periodic checks, posts the lifecycle announcements and, unless
disabled, serves the health endpoints until interrupted.
"""

import asyncio
import signal
from pathlib import Path

import typer

from infobot.cli.utils import (
    DEFAULT_CONFIG_PATH,
    display_info,
    display_success,
    display_warning,
    handle_errors,
    load_config,
    logger,
    open_application,
)
from infobot.models.config import InfobotConfig


@handle_errors
def run_command(
    config_path: Path = typer.Option(
        DEFAULT_CONFIG_PATH, "--config", "-c", help="Path to infobot config YAML"
    ),
    health_port: int = typer.Option(
        8000, "--health-port", "-p", help="Port for health server"
    ),
    no_health: bool = typer.Option(
        False, "--no-health", help="Do not start the health server"
    ),
):
    """Start the notifier daemon. Press Ctrl+C to stop."""
    config = load_config(config_path)

    try:
        asyncio.run(_run_daemon(config, health_port, not no_health))
    except KeyboardInterrupt:
        display_warning("\nInfobot stopped.")


async def _wait_for_signal() -> None:
    """Block until SIGINT or SIGTERM."""
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:  # pragma: no cover (Windows)
            pass
    await stop.wait()
    logger.info("shutdown_signal_received")


async def _run_daemon(config: InfobotConfig, health_port: int, with_health: bool) -> None:
    async with open_application(config) as application:
        await application.scheduler.start()

        status = application.scheduler.status()
        typer.secho("Infobot running", fg=typer.colors.CYAN, bold=True)
        typer.echo(f"  Check interval: {status.check_interval_minutes} minutes")
        typer.echo(f"  Jobs: {', '.join(status.active_tasks)}")
        for poller in application.pollers.values():
            state = "configured" if poller.is_configured() else "not configured"
            typer.echo(f"  {poller.display_name}: {state}")

        await application.announce_startup()

        try:
            if with_health:
                from infobot.health.server import build_health_server

                display_info(f"  Health endpoint: http://localhost:{health_port}/health")
                display_success("\nPress Ctrl+C to stop.\n")
                server = build_health_server(application, port=health_port)
                # uvicorn handles SIGINT/SIGTERM and returns from serve()
                await server.serve()
            else:
                display_success("\nPress Ctrl+C to stop.\n")
                await _wait_for_signal()
        finally:
            await application.scheduler.stop()
            await application.scheduler.wait_for_cycle()
            await application.announce_shutdown()
