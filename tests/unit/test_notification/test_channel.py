"""Tests for the Discord webhook channel."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest
from tenacity import wait_none

from infobot.models.config import DiscordConfig
from infobot.models.content import RenderedMessage
from infobot.notification.channel import DiscordWebhookChannel
from infobot.utils.exceptions import (
    ConfigurationError,
    DispatchError,
    TransientDispatchError,
)

WEBHOOK = "https://discord.com/api/webhooks/123/token"


def mock_response(status=200, json_data=None, text="", headers=None):
    response = AsyncMock()
    response.status = status
    response.headers = headers or {}
    response.json = AsyncMock(return_value=json_data)
    response.text = AsyncMock(return_value=text)
    response.__aenter__ = AsyncMock(return_value=response)
    response.__aexit__ = AsyncMock(return_value=None)
    return response


def mock_session(*responses):
    session = AsyncMock()
    session.post = MagicMock(side_effect=list(responses))
    session.__aenter__ = AsyncMock(return_value=session)
    session.__aexit__ = AsyncMock(return_value=None)
    return session


@pytest.fixture
def channel():
    return DiscordWebhookChannel(DiscordConfig(webhook_url=WEBHOOK), retry_wait=wait_none())


class TestConstruction:
    """Configuration handling."""

    def test_missing_webhook(self):
        with pytest.raises(ConfigurationError):
            DiscordWebhookChannel(DiscordConfig())

    def test_payload_identity_overrides(self):
        config = DiscordConfig(
            webhook_url=WEBHOOK,
            username="Infobot",
            avatar_url="https://example.com/a.png",
        )
        channel = DiscordWebhookChannel(config)

        payload = channel.build_payload(RenderedMessage(content="hi"))

        assert payload == {
            "content": "hi",
            "username": "Infobot",
            "avatar_url": "https://example.com/a.png",
        }

    def test_payload_allows_everyone_mention(self, channel):
        message = RenderedMessage(content="@everyone", embeds=[{"title": "x"}])
        payload = channel.build_payload(message)

        assert payload["allowed_mentions"] == {"parse": ["everyone"]}
        assert payload["embeds"] == [{"title": "x"}]


class TestSend:
    """Webhook POST behaviour."""

    @pytest.mark.asyncio
    async def test_returns_message_id(self, channel):
        session = mock_session(mock_response(200, {"id": "987"}))

        with patch("aiohttp.ClientSession", return_value=session):
            message_id = await channel.send(RenderedMessage(content="hello"))

        assert message_id == "987"
        kwargs = session.post.call_args.kwargs
        assert kwargs["params"] == {"wait": "true"}
        assert kwargs["json"] == {"content": "hello"}
        assert session.post.call_args.args[0] == WEBHOOK

    @pytest.mark.asyncio
    async def test_empty_message_rejected(self, channel):
        with patch("aiohttp.ClientSession") as session_cls:
            with pytest.raises(DispatchError, match="empty"):
                await channel.send(RenderedMessage())
        session_cls.assert_not_called()

    @pytest.mark.asyncio
    async def test_rate_limit_not_retried(self, channel):
        session = mock_session(mock_response(429, {"retry_after": 2.5}))

        with patch("aiohttp.ClientSession", return_value=session):
            with pytest.raises(DispatchError) as exc_info:
                await channel.send(RenderedMessage(content="hello"))

        assert exc_info.value.retry_after == 2.5
        assert session.post.call_count == 1

    @pytest.mark.asyncio
    async def test_rate_limit_retry_after_header(self, channel):
        session = mock_session(mock_response(429, None, headers={"Retry-After": "4"}))

        with patch("aiohttp.ClientSession", return_value=session):
            with pytest.raises(DispatchError) as exc_info:
                await channel.send(RenderedMessage(content="hello"))

        assert exc_info.value.retry_after == 4.0

    @pytest.mark.asyncio
    async def test_server_error_retried_then_succeeds(self, channel):
        session = mock_session(
            mock_response(502), mock_response(200, {"id": "42"})
        )

        with patch("aiohttp.ClientSession", return_value=session):
            message_id = await channel.send(RenderedMessage(content="hello"))

        assert message_id == "42"
        assert session.post.call_count == 2

    @pytest.mark.asyncio
    async def test_server_error_exhausts_attempts(self, channel):
        session = mock_session(*(mock_response(500) for _ in range(3)))

        with patch("aiohttp.ClientSession", return_value=session):
            with pytest.raises(TransientDispatchError):
                await channel.send(RenderedMessage(content="hello"))

        assert session.post.call_count == 3

    @pytest.mark.asyncio
    async def test_client_error_is_permanent(self, channel):
        session = mock_session(mock_response(400, text="Invalid Form Body"))

        with patch("aiohttp.ClientSession", return_value=session):
            with pytest.raises(DispatchError, match="HTTP 400") as exc_info:
                await channel.send(RenderedMessage(content="hello"))

        assert not isinstance(exc_info.value, TransientDispatchError)
        assert session.post.call_count == 1

    @pytest.mark.asyncio
    async def test_timeout_is_retried(self, channel):
        session = mock_session(
            asyncio.TimeoutError(), mock_response(200, {"id": "7"})
        )

        with patch("aiohttp.ClientSession", return_value=session):
            assert await channel.send(RenderedMessage(content="hello")) == "7"

    @pytest.mark.asyncio
    async def test_connection_error_exhausts(self, channel):
        session = mock_session(
            *(aiohttp.ClientConnectionError("refused") for _ in range(3))
        )

        with patch("aiohttp.ClientSession", return_value=session):
            with pytest.raises(TransientDispatchError, match="refused"):
                await channel.send(RenderedMessage(content="hello"))

    @pytest.mark.asyncio
    async def test_missing_id_is_error(self, channel):
        session = mock_session(mock_response(200, {"content": "hello"}))

        with patch("aiohttp.ClientSession", return_value=session):
            with pytest.raises(DispatchError, match="message id"):
                await channel.send(RenderedMessage(content="hello"))
