"""Content models shared by Source Pollers and the Notification Dispatcher.

Provides:
- SourceKind: closed set of supported content sources
- ContentItem: one item fetched from a source (transient, never persisted)
- RenderedMessage: channel-ready rendering of an item or a raw message
- CheckResult: outcome of a poller's check_for_new()
- DispatchResult: outcome of sending one message
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class SourceKind(str, Enum):
    """Supported content sources.

    The enum value doubles as the source_id used in the Dedup Store.
    """

    YOUTUBE = "youtube"
    INSTAGRAM = "instagram"
    LINKEDIN = "linkedin"

    @property
    def display_name(self) -> str:
        """Human-friendly platform name."""
        return {
            SourceKind.YOUTUBE: "YouTube",
            SourceKind.INSTAGRAM: "Instagram",
            SourceKind.LINKEDIN: "LinkedIn",
        }[self]


class ContentItem(BaseModel):
    """A single content item fetched from a source.

    Only ``id`` and ``timestamp`` cross into persistent state; the rest is
    used for rendering.
    """

    id: str = Field(..., min_length=1)
    timestamp: datetime
    url: str
    source: SourceKind
    title: Optional[str] = None
    text: str = ""
    author: Optional[str] = None
    image_url: Optional[str] = None
    extra: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("timestamp")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        """Naive timestamps are taken to be UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)


class RenderedMessage(BaseModel):
    """Message ready to be handed to the Notification Channel.

    Attributes:
        content: Plain message text (may be empty when embeds are present).
        embeds: Discord embed dictionaries.
    """

    content: str = ""
    embeds: List[Dict[str, Any]] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.content and not self.embeds


class CheckResult(BaseModel):
    """Outcome of one source's check_for_new().

    Attributes:
        source: Source that was checked.
        success: False only for fetch-level errors.
        new_content: Unseen items, most-recent-first.
        error: Error message when success is False.
        total_checked: Number of items fetched.
        newest_item: Most recent fetched item; the cursor advances to it.
    """

    source: SourceKind
    success: bool
    new_content: List[ContentItem] = Field(default_factory=list)
    error: Optional[str] = None
    total_checked: int = 0
    newest_item: Optional[ContentItem] = None

    @property
    def new_count(self) -> int:
        return len(self.new_content)


class DispatchResult(BaseModel):
    """Outcome of sending one message to the Notification Channel."""

    success: bool
    external_message_id: Optional[str] = None
    content_id: Optional[str] = None
    error: Optional[str] = None
