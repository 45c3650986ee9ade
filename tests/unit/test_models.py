"""Tests for Pydantic models."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from infobot.models.config import (
    DiscordConfig,
    InfobotConfig,
    InstagramSourceConfig,
    LoggingSettings,
    SchedulerSettings,
)
from infobot.models.content import (
    CheckResult,
    ContentItem,
    RenderedMessage,
    SourceKind,
)
from infobot.models.scheduler import CycleSummary, SourceCheckOutcome


class TestContentModels:
    """Content and result models."""

    def test_source_display_names(self):
        assert SourceKind.YOUTUBE.display_name == "YouTube"
        assert SourceKind.INSTAGRAM.display_name == "Instagram"
        assert SourceKind.LINKEDIN.display_name == "LinkedIn"
        assert SourceKind("linkedin") is SourceKind.LINKEDIN

    def test_naive_timestamp_is_utc(self):
        item = ContentItem(
            id="x",
            timestamp=datetime(2025, 1, 15, 12, 0),
            url="https://example.com",
            source=SourceKind.YOUTUBE,
        )
        assert item.timestamp.tzinfo == timezone.utc

    def test_aware_timestamp_converted(self):
        plus_two = timezone(timedelta(hours=2))
        item = ContentItem(
            id="x",
            timestamp=datetime(2025, 1, 15, 14, 0, tzinfo=plus_two),
            url="https://example.com",
            source=SourceKind.YOUTUBE,
        )
        assert item.timestamp == datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)

    def test_empty_id_rejected(self):
        with pytest.raises(ValidationError):
            ContentItem(
                id="",
                timestamp=datetime.now(timezone.utc),
                url="https://example.com",
                source=SourceKind.YOUTUBE,
            )

    def test_rendered_message_empty(self):
        assert RenderedMessage().is_empty() is True
        assert RenderedMessage(content="hi").is_empty() is False
        assert RenderedMessage(embeds=[{"title": "t"}]).is_empty() is False

    def test_check_result_new_count(self):
        result = CheckResult(source=SourceKind.YOUTUBE, success=True)
        assert result.new_count == 0


class TestCycleSummary:
    """Aggregates over per-source outcomes."""

    def test_aggregates(self):
        summary = CycleSummary(
            started_at=datetime(2025, 1, 15, tzinfo=timezone.utc),
            outcomes=[
                SourceCheckOutcome(
                    source=SourceKind.YOUTUBE, success=True, new_items=3, sent=2
                ),
                SourceCheckOutcome(
                    source=SourceKind.INSTAGRAM, success=False, error="429"
                ),
            ],
        )

        assert summary.sources_checked == 2
        assert summary.sources_succeeded == 1
        assert summary.total_new == 3
        assert summary.total_sent == 2
        assert [o.source for o in summary.failed] == [SourceKind.INSTAGRAM]
        data = summary.to_dict()
        assert data["outcomes"][1]["source"] == "instagram"


class TestConfigModels:
    """Configuration validation."""

    def test_defaults(self):
        config = InfobotConfig()
        assert config.scheduler.check_interval_minutes == 30
        assert config.scheduler.cleanup_hour == 2
        assert config.storage.retention_days == 30
        assert config.notification.mention_everyone is True
        assert config.notification.inter_message_delay_seconds == 1.0
        assert config.sources.default_lookback_hours == 24
        assert config.discord.webhook_url is None

    @pytest.mark.parametrize("minutes", [5, 30, 1440])
    def test_interval_bounds_accepted(self, minutes):
        assert SchedulerSettings(check_interval_minutes=minutes).check_interval_minutes == minutes

    @pytest.mark.parametrize("minutes", [4, 1441])
    def test_interval_bounds_rejected(self, minutes):
        with pytest.raises(ValidationError):
            SchedulerSettings(check_interval_minutes=minutes)

    def test_blank_interval_defaults(self):
        assert SchedulerSettings(check_interval_minutes="").check_interval_minutes == 30

    def test_placeholder_webhook_is_unset(self):
        assert DiscordConfig(webhook_url="${DISCORD_WEBHOOK_URL}").webhook_url is None

    def test_invalid_webhook_rejected(self):
        with pytest.raises(ValidationError):
            DiscordConfig(webhook_url="not a url")

    def test_instagram_username_normalised(self):
        assert InstagramSourceConfig(username=" @someone ").username == "someone"

    def test_log_level(self):
        assert LoggingSettings(level="debug").level == "DEBUG"
        with pytest.raises(ValidationError):
            LoggingSettings(level="verbose")

    def test_extra_keys_forbidden(self):
        with pytest.raises(ValidationError):
            InfobotConfig(unknown={})
