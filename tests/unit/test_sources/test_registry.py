"""Tests for the poller registry."""

from unittest.mock import MagicMock

from infobot.models.config import SourcesConfig
from infobot.models.content import SourceKind
from infobot.sources import SOURCE_POLLERS, build_pollers
from infobot.sources.instagram import InstagramPoller


class TestBuildPollers:
    """build_pollers()."""

    def test_every_kind_has_a_poller(self):
        assert set(SOURCE_POLLERS) == set(SourceKind)

    def test_disabled_sources_are_skipped(self):
        settings = SourcesConfig(linkedin={"enabled": False})
        pollers = build_pollers(settings, MagicMock())
        assert set(pollers) == {SourceKind.YOUTUBE, SourceKind.INSTAGRAM}

    def test_shared_settings_passed_through(self):
        settings = SourcesConfig(
            instagram={"username": "someone"},
            fetch_timeout_seconds=7,
            default_lookback_hours=48,
        )
        pollers = build_pollers(settings, MagicMock())

        instagram = pollers[SourceKind.INSTAGRAM]
        assert isinstance(instagram, InstagramPoller)
        assert instagram.fetch_timeout_seconds == 7
        assert instagram.default_lookback_hours == 48
        assert instagram.is_configured() is True
        assert pollers[SourceKind.YOUTUBE].is_configured() is False

    def test_pollers_do_not_share_backoff(self):
        settings = SourcesConfig(
            instagram={"username": "a"}, linkedin={"profile_url": "https://www.linkedin.com/in/a"}
        )
        pollers = build_pollers(settings, MagicMock())
        assert (
            pollers[SourceKind.INSTAGRAM].backoff is not pollers[SourceKind.LINKEDIN].backoff
        )
