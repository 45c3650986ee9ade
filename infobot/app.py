"""Composition root.

build_application() wires every component exactly once from a validated
configuration. Nothing in the package keeps module-level instances; the CLI
and the health server receive the Application they act on.

Usage:
    config = ConfigManager("config/infobot.yaml").load_config()
    app = build_application(config)

    await app.startup()
    await app.scheduler.start()
    ...
    await app.shutdown()
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional

import structlog

from infobot.models.config import InfobotConfig
from infobot.models.content import DispatchResult, SourceKind
from infobot.notification.channel import DiscordWebhookChannel, NotificationChannel
from infobot.notification.dispatcher import NotificationDispatcher
from infobot.scheduling.jobs import CheckCycleJob, CleanupJob
from infobot.scheduling.scheduler import NotifierScheduler
from infobot.sources import build_pollers
from infobot.sources.base import SourcePoller
from infobot.storage.dedup_store import DedupStore

logger = structlog.get_logger()

STARTUP_COLOR = 0x00FF00
SHUTDOWN_COLOR = 0xFF0000


@dataclass
class Application:
    """All long-lived components of a running infobot."""

    config: InfobotConfig
    store: DedupStore
    pollers: Dict[SourceKind, SourcePoller]
    channel: NotificationChannel
    dispatcher: NotificationDispatcher
    check_job: CheckCycleJob
    cleanup_job: CleanupJob
    scheduler: NotifierScheduler

    async def startup(self) -> None:
        """Open the store and apply a persisted check interval.

        Raises:
            PersistenceError: The database cannot be opened
        """
        await self.store.initialize()
        await self.scheduler.load_persisted_interval()

    async def announce_startup(self) -> Optional[DispatchResult]:
        """Post the startup announcement if enabled; failures are only logged."""
        if not self.config.notification.announce_startup:
            return None

        configured = [
            poller.display_name
            for poller in self.pollers.values()
            if poller.is_configured()
        ]
        embed = {
            "title": "Infobot started",
            "description": "Monitoring for new content.",
            "color": STARTUP_COLOR,
            "fields": [
                {
                    "name": "Check interval",
                    "value": f"{self.config.scheduler.check_interval_minutes} minutes",
                    "inline": True,
                },
                {
                    "name": "Sources",
                    "value": ", ".join(configured) if configured else "none configured",
                    "inline": True,
                },
            ],
        }
        result = await self.dispatcher.send_raw("", embed=embed)
        if not result.success:
            logger.warning("startup_announcement_failed", error=result.error)
        return result

    async def announce_shutdown(self) -> Optional[DispatchResult]:
        """Post the shutdown announcement if enabled; failures are only logged."""
        if not self.config.notification.announce_shutdown:
            return None

        embed = {
            "title": "Infobot stopping",
            "description": "Monitoring paused until the next start.",
            "color": SHUTDOWN_COLOR,
        }
        result = await self.dispatcher.send_raw("", embed=embed)
        if not result.success:
            logger.warning("shutdown_announcement_failed", error=result.error)
        return result

    async def shutdown(self) -> None:
        """Stop ticking, let a running cycle finish and release every resource."""
        await self.scheduler.stop()
        await self.scheduler.wait_for_cycle()
        for poller in self.pollers.values():
            await poller.close()
        await self.channel.close()
        await self.store.close()
        logger.info("application_shutdown")


def build_application(
    config: InfobotConfig,
    channel: Optional[NotificationChannel] = None,
    now_fn: Optional[Callable[[], datetime]] = None,
) -> Application:
    """Construct all components from configuration.

    Args:
        config: Validated configuration
        channel: Notification channel override (defaults to the Discord webhook)
        now_fn: Clock shared by the store, pollers and scheduler

    Raises:
        ConfigurationError: No channel given and no webhook URL configured
    """
    store = DedupStore(config.storage.database_path, now_fn=now_fn)

    poller_kwargs = {"now_fn": now_fn} if now_fn else {}
    pollers = build_pollers(config.sources, store, **poller_kwargs)

    channel = channel or DiscordWebhookChannel(config.discord)
    dispatcher = NotificationDispatcher(
        channel, store, pollers, settings=config.notification
    )

    check_job = CheckCycleJob(pollers, dispatcher, settings=config.scheduler)
    cleanup_job = CleanupJob(store, retention_days=config.storage.retention_days)
    scheduler = NotifierScheduler(
        check_job, cleanup_job, store, config.scheduler, now_fn=now_fn
    )

    logger.info(
        "application_built",
        sources=[kind.value for kind in pollers],
        database=config.storage.database_path,
    )

    return Application(
        config=config,
        store=store,
        pollers=pollers,
        channel=channel,
        dispatcher=dispatcher,
        check_job=check_job,
        cleanup_job=cleanup_job,
        scheduler=scheduler,
    )
