"""Base class for Source Pollers.

A Source Poller fetches a bounded window of recent items from one external
source and decides which of them are new. The decision is centralised here
so every source applies the same cursor and dedup rules:

1. cursor = last content timestamp, or now - lookback when never seen
2. fetch the most recent items
3. keep items strictly newer than the cursor
4. drop items already recorded as sent

The cursor advance lives in advance_cursor() and is called by the check
cycle after the sends for this source have been attempted.
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, ClassVar, Dict, List, Optional

import aiohttp
import structlog

from infobot.models.content import CheckResult, ContentItem, RenderedMessage, SourceKind
from infobot.storage.dedup_store import DedupStore
from infobot.utils.exceptions import (
    ConfigurationError,
    FetchError,
    RateLimitError,
    TransientFetchError,
)

logger = structlog.get_logger()

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)

BROWSER_HEADERS = {
    "User-Agent": DEFAULT_USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Cache-Control": "no-cache",
}


def truncate(text: Optional[str], max_length: int, placeholder: str) -> str:
    """Cut text to max_length characters, marking the cut with '...'."""
    if not text:
        return placeholder
    if len(text) <= max_length:
        return text
    return text[:max_length].strip() + "..."


def format_footer_time(dt: datetime) -> str:
    """Short human date for embed footers, e.g. '1/15/2025, 3:04 PM'."""
    hour = dt.hour % 12 or 12
    suffix = "AM" if dt.hour < 12 else "PM"
    return f"{dt.month}/{dt.day}/{dt.year}, {hour}:{dt.minute:02d} {suffix}"


class SourcePoller(ABC):
    """Polls one content source for unseen items.

    Subclasses implement is_configured(), fetch_latest() and
    format_notification(); check_for_new() and advance_cursor() are shared.
    """

    kind: ClassVar[SourceKind]

    def __init__(
        self,
        store: DedupStore,
        max_results: int = 10,
        fetch_timeout_seconds: float = 15.0,
        default_lookback_hours: int = 24,
        now_fn: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.max_results = max_results
        self.fetch_timeout_seconds = fetch_timeout_seconds
        self.default_lookback_hours = default_lookback_hours
        self._now = now_fn or (lambda: datetime.now(timezone.utc))
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def source_id(self) -> str:
        """Key used for this source in the Dedup Store."""
        return self.kind.value

    @property
    def display_name(self) -> str:
        return self.kind.display_name

    @abstractmethod
    def is_configured(self) -> bool:
        """True iff the identifiers this source needs are present."""

    @abstractmethod
    async def fetch_latest(self, limit: int) -> List[ContentItem]:
        """Fetch up to ``limit`` recent items, most recent first.

        Returns an empty list when the source has no (visible) content.

        Raises:
            FetchError: Non-transient failure
            TransientFetchError: Timeout, connection failure, 5xx
            RateLimitError: Source signalled throttling
        """

    @abstractmethod
    def format_notification(self, item: ContentItem) -> RenderedMessage:
        """Render an item for the Notification Channel."""

    # ------------------------------------------------------------------
    # Check algorithm
    # ------------------------------------------------------------------

    async def _cursor(self) -> datetime:
        state = await self.store.get_check_state(self.source_id)
        if state is not None and state.last_content_timestamp is not None:
            return state.last_content_timestamp
        return self._now() - timedelta(hours=self.default_lookback_hours)

    async def check_for_new(self, limit: Optional[int] = None) -> CheckResult:
        """Find unseen items newer than this source's cursor.

        Fetch errors become ``success=False``; PersistenceError propagates.
        The cursor is not touched here, see advance_cursor().

        Raises:
            ConfigurationError: Source lacks required identifiers
            PersistenceError: Dedup Store failure
        """
        if not self.is_configured():
            raise ConfigurationError(f"{self.display_name} source is not configured")

        cursor = await self._cursor()

        try:
            items = await self.fetch_latest(limit or self.max_results)
        except FetchError as e:
            logger.warning(
                "source_fetch_failed",
                source=self.source_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            return CheckResult(source=self.kind, success=False, error=str(e))

        newest = max(items, key=lambda i: i.timestamp) if items else None
        fresh = [item for item in items if item.timestamp > cursor]

        unseen: List[ContentItem] = []
        for item in fresh:
            if not await self.store.is_notification_sent(self.source_id, item.id):
                unseen.append(item)

        logger.info(
            "source_check_completed",
            source=self.source_id,
            fetched=len(items),
            newer_than_cursor=len(fresh),
            unseen=len(unseen),
            cursor=cursor.isoformat(),
        )

        return CheckResult(
            source=self.kind,
            success=True,
            new_content=unseen,
            total_checked=len(items),
            newest_item=newest,
        )

    async def advance_cursor(self, result: Optional[CheckResult]) -> None:
        """Record that this source was checked.

        Moves the content cursor to the newest fetched item when there is
        one; otherwise only last_check_time is refreshed.
        """
        newest = result.newest_item if result is not None else None
        if newest is not None:
            await self.store.update_check_state(
                self.source_id, newest.id, newest.timestamp
            )
        else:
            await self.store.update_check_state(self.source_id)

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.fetch_timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def close(self) -> None:
        """Close the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    def _classify_status(self, status: int, body: str) -> FetchError:
        """Map a non-200 status to an error; subclasses add source quirks."""
        if status == 429:
            return RateLimitError(f"{self.display_name} rate limit exceeded (429)")
        if status >= 500:
            return TransientFetchError(
                f"{self.display_name} returned server error {status}"
            )
        return FetchError(f"{self.display_name} returned status {status}")

    async def _request(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        as_json: bool = False,
    ) -> Any:
        """GET url and return the body (text, or decoded JSON).

        Translates aiohttp failures into the fetch error taxonomy.
        """
        session = await self._get_session()
        try:
            async with session.get(url, params=params, headers=headers) as response:
                if response.status != 200:
                    body = await response.text()
                    error = self._classify_status(response.status, body)
                    if isinstance(error, RateLimitError):
                        retry_after = response.headers.get("Retry-After")
                        if retry_after and retry_after.isdigit():
                            error.retry_after = float(retry_after)
                    raise error
                if as_json:
                    return await response.json(content_type=None)
                return await response.text()
        except asyncio.TimeoutError as e:
            raise TransientFetchError(
                f"{self.display_name} request timed out after "
                f"{self.fetch_timeout_seconds}s"
            ) from e
        except (aiohttp.ContentTypeError, ValueError) as e:
            raise FetchError(f"{self.display_name} returned invalid JSON: {e}") from e
        except aiohttp.ClientError as e:
            logger.error("source_network_error", source=self.source_id, error=str(e))
            raise TransientFetchError(f"{self.display_name} request failed: {e}") from e
