"""YouTube source backed by the YouTube Data API v3.

Uploads of a channel live in a playlist whose id is the channel id with the
"UC" prefix replaced by "UU"; the poller reads that playlist so one quota
unit covers the whole fetch.

API Details:
- Endpoint: https://www.googleapis.com/youtube/v3
- search (handle -> channel id, resolved once and cached)
- playlistItems (latest uploads)
- Authentication: API key
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog

from infobot.models.config import YouTubeSourceConfig
from infobot.models.content import ContentItem, RenderedMessage, SourceKind
from infobot.sources.base import SourcePoller, format_footer_time, truncate
from infobot.utils.exceptions import FetchError, RateLimitError

logger = structlog.get_logger()

YOUTUBE_RED = 0xFF0000
YOUTUBE_ICON = "https://www.youtube.com/s/desktop/f506bd45/img/favicon_32.png"
QUOTA_REASONS = ("quotaExceeded", "rateLimitExceeded", "userRateLimitExceeded")


def uploads_playlist_id(channel_id: str) -> str:
    """Channel id "UC..." -> uploads playlist id "UU..."."""
    if channel_id.startswith("UC"):
        return "UU" + channel_id[2:]
    return channel_id


def parse_playlist_items(data: Dict[str, Any]) -> List[ContentItem]:
    """Map a playlistItems response to ContentItems, most recent first."""
    items: List[ContentItem] = []
    for entry in data.get("items", []):
        snippet = entry.get("snippet") or {}
        details = entry.get("contentDetails") or {}
        video_id = details.get("videoId") or (snippet.get("resourceId") or {}).get(
            "videoId"
        )
        published = details.get("videoPublishedAt") or snippet.get("publishedAt")
        if not video_id or not published:
            logger.debug("youtube_item_skipped", reason="missing id or date")
            continue

        thumbnails = snippet.get("thumbnails") or {}
        thumbnail = (thumbnails.get("high") or thumbnails.get("default") or {}).get(
            "url"
        )

        items.append(
            ContentItem(
                id=video_id,
                timestamp=datetime.fromisoformat(published.replace("Z", "+00:00")),
                url=f"https://www.youtube.com/watch?v={video_id}",
                source=SourceKind.YOUTUBE,
                title=snippet.get("title"),
                text=snippet.get("description") or "",
                author=snippet.get("channelTitle"),
                image_url=thumbnail,
            )
        )

    items.sort(key=lambda i: i.timestamp, reverse=True)
    return items


class YouTubePoller(SourcePoller):
    """Latest uploads of one YouTube channel."""

    kind = SourceKind.YOUTUBE
    BASE_URL = "https://www.googleapis.com/youtube/v3"

    def __init__(self, config: YouTubeSourceConfig, store, **kwargs: Any) -> None:
        super().__init__(store, max_results=config.max_results, **kwargs)
        self.config = config
        self._channel_id: Optional[str] = config.channel_id

    def is_configured(self) -> bool:
        return bool(
            self.config.api_key and (self.config.channel_id or self.config.channel_handle)
        )

    def _classify_status(self, status: int, body: str) -> FetchError:
        if status == 403 and any(reason in body for reason in QUOTA_REASONS):
            return RateLimitError("YouTube API quota exceeded (403)")
        return super()._classify_status(status, body)

    async def resolve_channel_id(self) -> str:
        """Channel id from config, or looked up from the handle once."""
        if self._channel_id:
            return self._channel_id

        handle = (self.config.channel_handle or "").lstrip("@")
        if not handle:
            raise FetchError("Neither YouTube channel id nor handle provided")

        data = await self._request(
            f"{self.BASE_URL}/search",
            params={
                "key": self.config.api_key,
                "q": handle,
                "type": "channel",
                "part": "snippet",
                "maxResults": 1,
            },
            as_json=True,
        )
        results = data.get("items") or []
        if not results:
            raise FetchError(f"YouTube channel not found for handle: @{handle}")

        try:
            self._channel_id = results[0]["snippet"]["channelId"]
        except (KeyError, TypeError) as e:
            raise FetchError(f"Unexpected YouTube search response: {e}") from e
        logger.info(
            "youtube_channel_resolved", handle=handle, channel_id=self._channel_id
        )
        return self._channel_id

    async def fetch_latest(self, limit: int) -> List[ContentItem]:
        channel_id = await self.resolve_channel_id()
        data = await self._request(
            f"{self.BASE_URL}/playlistItems",
            params={
                "key": self.config.api_key,
                "playlistId": uploads_playlist_id(channel_id),
                "part": "snippet,contentDetails",
                "maxResults": limit,
            },
            as_json=True,
        )
        try:
            videos = parse_playlist_items(data)[:limit]
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise FetchError(f"Unexpected YouTube playlist response: {e}") from e
        logger.info("youtube_videos_fetched", count=len(videos))
        return videos

    def format_notification(self, item: ContentItem) -> RenderedMessage:
        channel = item.author or "YouTube"
        embed: Dict[str, Any] = {
            "author": {"name": channel, "icon_url": YOUTUBE_ICON},
            "title": item.title or "New video",
            "description": (
                f"{channel} published a video on YouTube!\n\n**Description**\n"
                f"{truncate(item.text, 150, 'No description available')}"
            ),
            "url": item.url,
            "color": YOUTUBE_RED,
            "footer": {
                "text": f"YouTube • {format_footer_time(item.timestamp)}",
                "icon_url": YOUTUBE_ICON,
            },
            "timestamp": item.timestamp.isoformat(),
        }
        if item.image_url:
            embed["image"] = {"url": item.image_url}
        return RenderedMessage(embeds=[embed])
