"""Notification Channel: the downstream destination for rendered messages.

Provides:
- NotificationChannel: abstract interface (send a message, get its id)
- DiscordWebhookChannel: posts to a Discord channel webhook via aiohttp

Usage:
    channel = DiscordWebhookChannel(config.discord)
    message_id = await channel.send(RenderedMessage(content="hello"))
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import aiohttp
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from infobot.models.config import DiscordConfig
from infobot.models.content import RenderedMessage
from infobot.utils.exceptions import (
    ConfigurationError,
    DispatchError,
    TransientDispatchError,
)

logger = structlog.get_logger()


class NotificationChannel(ABC):
    """Destination that accepts rendered messages."""

    @abstractmethod
    async def send(self, message: RenderedMessage) -> str:
        """Deliver a message.

        Returns:
            Identifier of the created message

        Raises:
            DispatchError: The channel did not accept the message
        """

    async def close(self) -> None:
        """Release resources held by the channel."""
        return None


class DiscordWebhookChannel(NotificationChannel):
    """Discord channel reached through an incoming webhook.

    Posts with ``?wait=true`` so Discord answers with the created message,
    whose id is returned. Timeouts and 5xx answers are retried with
    exponential backoff; a 429 is surfaced at once with its retry_after.
    """

    def __init__(
        self,
        config: DiscordConfig,
        retry_wait: Optional[wait_base] = None,
    ) -> None:
        """Initialize the channel.

        Args:
            config: Webhook URL, identity overrides and timeout
            retry_wait: tenacity wait strategy between transient retries

        Raises:
            ConfigurationError: No webhook URL configured
        """
        if config.webhook_url is None:
            raise ConfigurationError("Discord webhook URL is not configured")

        self.config = config
        self.webhook_url = str(config.webhook_url)
        self._retry_wait = retry_wait or wait_exponential(multiplier=1, min=1, max=10)

    def build_payload(self, message: RenderedMessage) -> Dict[str, Any]:
        """Webhook JSON body for a rendered message."""
        payload: Dict[str, Any] = {}
        if message.content:
            payload["content"] = message.content
        if message.embeds:
            payload["embeds"] = message.embeds
        if self.config.username:
            payload["username"] = self.config.username
        if self.config.avatar_url:
            payload["avatar_url"] = str(self.config.avatar_url)
        if "@everyone" in message.content:
            payload["allowed_mentions"] = {"parse": ["everyone"]}
        return payload

    async def send(self, message: RenderedMessage) -> str:
        if message.is_empty():
            raise DispatchError("Refusing to send an empty message")

        payload = self.build_payload(message)
        message_id = ""

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.config.max_attempts),
            wait=self._retry_wait,
            retry=retry_if_exception_type(TransientDispatchError),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(
                        "discord_send_retry",
                        attempt=attempt.retry_state.attempt_number,
                        max_attempts=self.config.max_attempts,
                    )
                message_id = await self._post(payload)

        return message_id

    async def _post(self, payload: Dict[str, Any]) -> str:
        timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)

        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(
                    self.webhook_url,
                    params={"wait": "true"},
                    json=payload,
                    headers={"Content-Type": "application/json"},
                ) as response:
                    status = response.status

                    if status == 429:
                        retry_after = await self._retry_after(response)
                        logger.warning(
                            "discord_rate_limited", retry_after=retry_after
                        )
                        raise DispatchError(
                            "Discord rate limit exceeded (429)",
                            retry_after=retry_after,
                        )

                    if status >= 500:
                        raise TransientDispatchError(
                            f"Discord returned server error {status}"
                        )

                    if status not in (200, 201):
                        text = await response.text()
                        logger.warning(
                            "discord_send_rejected",
                            status_code=status,
                            response=text[:200],
                        )
                        raise DispatchError(f"HTTP {status}: {text[:100]}")

                    data = await response.json(content_type=None)

        except asyncio.TimeoutError as e:
            raise TransientDispatchError(
                f"Discord webhook timed out after {self.config.timeout_seconds}s"
            ) from e
        except aiohttp.ClientError as e:
            logger.error(
                "discord_send_error", error=str(e), error_type=type(e).__name__
            )
            raise TransientDispatchError(f"Discord request failed: {e}") from e
        except ValueError as e:
            raise DispatchError(f"Discord returned an unreadable response: {e}") from e

        message_id = data.get("id") if isinstance(data, dict) else None
        if not message_id:
            raise DispatchError("Discord response did not include a message id")
        return str(message_id)

    @staticmethod
    async def _retry_after(response: Any) -> Optional[float]:
        """Seconds to wait from the 429 body, falling back to the header."""
        try:
            body = await response.json(content_type=None)
        except (aiohttp.ContentTypeError, ValueError):
            body = None
        if isinstance(body, dict) and body.get("retry_after") is not None:
            return float(body["retry_after"])

        header = response.headers.get("Retry-After")
        try:
            return float(header) if header is not None else None
        except ValueError:
            return None
