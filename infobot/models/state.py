"""Persistent state models owned by the Dedup Store."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class SourceCheckState(BaseModel):
    """Per-source check cursor.

    Attributes:
        source_id: Unique source key (SourceKind value).
        last_check_time: When the source was last checked (non-decreasing).
        last_content_id: Most recent item observed, if any.
        last_content_timestamp: Timestamp of that item, if any.
    """

    source_id: str
    last_check_time: datetime
    last_content_id: Optional[str] = None
    last_content_timestamp: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SentNotification(BaseModel):
    """Record of one delivered item."""

    source_id: str
    content_id: str
    content_url: Optional[str] = None
    external_message_id: Optional[str] = None
    sent_at: datetime


class StoreStats(BaseModel):
    """Read-only aggregate over both ledger tables."""

    total_notifications: int = Field(default=0, ge=0)
    notifications_24h: int = Field(default=0, ge=0)
    notifications_7d: int = Field(default=0, ge=0)
    active_sources: int = Field(default=0, ge=0)
    last_global_check: Optional[datetime] = None
