"""Notification Dispatcher.

Renders items with their owning poller, sends them through the
Notification Channel one at a time, and records each successful send in the
Dedup Store. Dispatch is fail-safe: a failed send is reported in the
returned DispatchResult and never raised.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

import structlog

from infobot.models.config import NotificationSettings
from infobot.models.content import (
    ContentItem,
    DispatchResult,
    RenderedMessage,
    SourceKind,
)
from infobot.notification.channel import NotificationChannel
from infobot.observability.metrics import NOTIFICATIONS_SENT
from infobot.sources.base import SourcePoller
from infobot.storage.dedup_store import DedupStore
from infobot.utils.exceptions import DispatchError, PersistenceError

logger = structlog.get_logger()


class NotificationDispatcher:
    """Sequential sender with inter-message spacing."""

    def __init__(
        self,
        channel: NotificationChannel,
        store: DedupStore,
        pollers: Mapping[SourceKind, SourcePoller],
        settings: Optional[NotificationSettings] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        self.channel = channel
        self.store = store
        self.pollers = pollers
        self.settings = settings or NotificationSettings()
        self._sleep = sleep or asyncio.sleep

    def render(self, item: ContentItem) -> RenderedMessage:
        """Render an item with its poller, adding the mention if enabled."""
        poller = self.pollers.get(item.source)
        if poller is None:
            raise DispatchError(f"No poller registered for source {item.source.value}")

        message = poller.format_notification(item)
        if self.settings.mention_everyone:
            mention = "@everyone"
            content = f"{mention} {message.content}".strip()
            message = message.model_copy(update={"content": content})
        return message

    async def send_item(self, item: ContentItem, source_id: str) -> DispatchResult:
        """Send one item and record it as sent.

        Channel failures are reported, not raised, and leave the item
        unrecorded so a later cycle may retry it. A recording failure after a
        successful send is also reported as a failure.
        """
        try:
            message = self.render(item)
            message_id = await self.channel.send(message)
        except DispatchError as e:
            NOTIFICATIONS_SENT.labels(kind="item", status="failed").inc()
            logger.warning(
                "notification_failed",
                source=source_id,
                content_id=item.id,
                error=str(e),
                retry_after=e.retry_after,
            )
            return DispatchResult(success=False, content_id=item.id, error=str(e))

        try:
            await self.store.record_sent_notification(
                source_id, item.id, item.url, message_id
            )
        except PersistenceError as e:
            NOTIFICATIONS_SENT.labels(kind="item", status="unrecorded").inc()
            logger.error(
                "notification_record_failed",
                source=source_id,
                content_id=item.id,
                external_message_id=message_id,
                error=str(e),
            )
            return DispatchResult(
                success=False,
                external_message_id=message_id,
                content_id=item.id,
                error=f"Sent but not recorded: {e}",
            )

        NOTIFICATIONS_SENT.labels(kind="item", status="success").inc()
        logger.info(
            "notification_sent",
            source=source_id,
            content_id=item.id,
            external_message_id=message_id,
        )
        return DispatchResult(
            success=True, external_message_id=message_id, content_id=item.id
        )

    async def send_batch(
        self, items: List[ContentItem], source_id: str
    ) -> List[DispatchResult]:
        """Send items strictly in order, pausing between consecutive sends."""
        results: List[DispatchResult] = []
        delay = self.settings.inter_message_delay_seconds

        for index, item in enumerate(items):
            if index > 0 and delay > 0:
                await self._sleep(delay)
            results.append(await self.send_item(item, source_id))

        failed = sum(1 for r in results if not r.success)
        if items:
            logger.info(
                "notification_batch_completed",
                source=source_id,
                total=len(items),
                sent=len(items) - failed,
                failed=failed,
            )
        return results

    async def send_raw(
        self, message: str, embed: Optional[Dict[str, Any]] = None
    ) -> DispatchResult:
        """Send an operational message (no dedup recording)."""
        rendered = RenderedMessage(content=message, embeds=[embed] if embed else [])
        try:
            message_id = await self.channel.send(rendered)
        except DispatchError as e:
            NOTIFICATIONS_SENT.labels(kind="raw", status="failed").inc()
            logger.warning("raw_message_failed", error=str(e))
            return DispatchResult(success=False, error=str(e))

        NOTIFICATIONS_SENT.labels(kind="raw", status="success").inc()
        logger.info("raw_message_sent", external_message_id=message_id)
        return DispatchResult(success=True, external_message_id=message_id)
