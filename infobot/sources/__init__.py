"""Source Pollers and their registry.

Usage:
    from infobot.sources import build_pollers

    pollers = build_pollers(config.sources, store)
    for kind, poller in pollers.items():
        result = await poller.check_for_new()
"""

from typing import Any, Dict, Type

from infobot.models.config import SourcesConfig
from infobot.models.content import SourceKind
from infobot.sources.base import SourcePoller
from infobot.sources.instagram import InstagramPoller
from infobot.sources.linkedin import LinkedInPoller
from infobot.sources.youtube import YouTubePoller
from infobot.storage.dedup_store import DedupStore

SOURCE_POLLERS: Dict[SourceKind, Type[SourcePoller]] = {
    SourceKind.YOUTUBE: YouTubePoller,
    SourceKind.INSTAGRAM: InstagramPoller,
    SourceKind.LINKEDIN: LinkedInPoller,
}


def build_pollers(
    settings: SourcesConfig, store: DedupStore, **kwargs: Any
) -> Dict[SourceKind, SourcePoller]:
    """Instantiate one poller per enabled source kind.

    Unconfigured sources are still built (so they show up in status output);
    the check cycle skips them.
    """
    pollers: Dict[SourceKind, SourcePoller] = {}
    for kind, poller_cls in SOURCE_POLLERS.items():
        source_config = getattr(settings, kind.value)
        if not source_config.enabled:
            continue
        pollers[kind] = poller_cls(
            source_config,
            store,
            fetch_timeout_seconds=settings.fetch_timeout_seconds,
            default_lookback_hours=settings.default_lookback_hours,
            **kwargs,
        )
    return pollers


__all__ = [
    "SOURCE_POLLERS",
    "SourcePoller",
    "YouTubePoller",
    "InstagramPoller",
    "LinkedInPoller",
    "build_pollers",
]
