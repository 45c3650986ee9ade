"""Data models for infobot."""

from infobot.models.content import (
    CheckResult,
    ContentItem,
    DispatchResult,
    RenderedMessage,
    SourceKind,
)
from infobot.models.state import SentNotification, SourceCheckState, StoreStats

__all__ = [
    "CheckResult",
    "ContentItem",
    "DispatchResult",
    "RenderedMessage",
    "SourceKind",
    "SentNotification",
    "SourceCheckState",
    "StoreStats",
]
