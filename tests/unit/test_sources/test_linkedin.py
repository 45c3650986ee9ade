"""Tests for the LinkedIn poller."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from infobot.models.config import LinkedInSourceConfig
from infobot.sources.linkedin import (
    LINKEDIN_BLUE,
    LinkedInPoller,
    parse_activity,
    profile_username,
)
from infobot.utils.backoff import BackoffController
from infobot.utils.exceptions import RateLimitError

PROFILE = "https://www.linkedin.com/in/jane-doe/"

ACTIVITY_HTML = """
<html><body>
  <div class="feed-shared-update-v2" data-urn="urn:li:activity:1">
    <time datetime="2025-01-14T09:00:00Z">1d</time>
    <div class="feed-shared-text">Older post</div>
  </div>
  <div class="feed-shared-update-v2" data-urn="urn:li:activity:2">
    <time datetime="2025-01-15T09:00:00Z">2h</time>
    <div class="feed-shared-text">Newer post</div>
  </div>
  <div class="feed-shared-update-v2" data-urn="urn:li:activity:3">
    <div class="feed-shared-text">No date</div>
  </div>
  <div class="feed-shared-update-v2">
    <time datetime="2025-01-15T10:00:00Z">1h</time>
    <div class="feed-shared-text">No urn</div>
  </div>
</body></html>
"""


class TestParsing:
    """Activity block extraction."""

    def test_profile_username(self):
        assert profile_username(PROFILE) == "jane-doe"
        assert profile_username("https://example.com") is None
        assert profile_username(None) is None

    def test_parse_activity(self):
        posts = parse_activity(ACTIVITY_HTML, PROFILE)

        assert [p.id for p in posts] == ["urn:li:activity:2", "urn:li:activity:1"]
        newest = posts[0]
        assert newest.text == "Newer post"
        assert newest.timestamp == datetime(2025, 1, 15, 9, tzinfo=timezone.utc)
        assert newest.url == "https://www.linkedin.com/feed/update/urn:li:activity:2/"
        assert newest.author == "jane-doe"

    def test_page_without_activity(self):
        assert parse_activity("<html><body>Sign in</body></html>", PROFILE) == []


class TestLinkedInPoller:
    """Poller behaviour."""

    def test_is_configured(self):
        assert LinkedInPoller(LinkedInSourceConfig(profile_url=PROFILE), MagicMock()).is_configured()
        assert not LinkedInPoller(LinkedInSourceConfig(), MagicMock()).is_configured()

    def test_status_999_is_rate_limit(self):
        poller = LinkedInPoller(LinkedInSourceConfig(profile_url=PROFILE), MagicMock())
        assert isinstance(poller._classify_status(999, ""), RateLimitError)

    @pytest.mark.asyncio
    async def test_fetch_latest(self):
        async def no_sleep(_seconds):
            return None

        poller = LinkedInPoller(
            LinkedInSourceConfig(profile_url=PROFILE),
            MagicMock(),
            backoff=BackoffController(base_delay=0.0, sleep=no_sleep),
        )

        with patch.object(poller, "_request", AsyncMock(return_value=ACTIVITY_HTML)):
            posts = await poller.fetch_latest(1)

        assert [p.id for p in posts] == ["urn:li:activity:2"]

    def test_format_notification(self):
        poller = LinkedInPoller(LinkedInSourceConfig(profile_url=PROFILE), MagicMock())
        post = parse_activity(ACTIVITY_HTML, PROFILE)[0]
        post.text = "x" * 400

        embed = poller.format_notification(post).embeds[0]

        assert embed["title"] == "New LinkedIn Post"
        assert embed["color"] == LINKEDIN_BLUE
        assert embed["description"] == "x" * 300 + "..."
        assert embed["fields"][0]["value"] == f"[jane-doe]({PROFILE})"
        assert embed["fields"][1]["value"] == f"<t:{int(post.timestamp.timestamp())}:R>"
