"""Instagram source scraped from the public profile page.

Instagram embeds the profile payload as JSON in the page, either in a
``<script type="application/json">`` block mentioning ProfilePage or in the
legacy ``window._sharedData`` assignment. When neither is present the page
is treated as having no visible content (empty list, not an error).

The endpoint throttles aggressively, so every request goes through a
BackoffController (10s base spacing, 30/60/120s waits after a 429).
"""

import json
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from bs4 import BeautifulSoup

from infobot.models.config import InstagramSourceConfig
from infobot.models.content import ContentItem, RenderedMessage, SourceKind
from infobot.sources.base import (
    BROWSER_HEADERS,
    SourcePoller,
    format_footer_time,
    truncate,
)
from infobot.utils.backoff import BackoffController
from infobot.utils.exceptions import FetchError

logger = structlog.get_logger()

INSTAGRAM_PINK = 0xE4405F
INSTAGRAM_ICON = (
    "https://www.instagram.com/static/images/ico/favicon-192.png/68d99ba29cc8.png"
)
MAX_POSTS = 10

_SHARED_DATA_RE = re.compile(r"window\._sharedData\s*=\s*({.+?});", re.DOTALL)


def extract_profile_json(html: str) -> Optional[Dict[str, Any]]:
    """Pull the embedded profile JSON out of the page, if present."""
    soup = BeautifulSoup(html, "html.parser")

    for script in soup.find_all("script", attrs={"type": "application/json"}):
        content = script.string or script.get_text()
        if content and "ProfilePage" in content:
            try:
                return json.loads(content)
            except json.JSONDecodeError:
                continue

    for script in soup.find_all("script"):
        content = script.string or script.get_text()
        if content and "window._sharedData" in content:
            match = _SHARED_DATA_RE.search(content)
            if match:
                try:
                    return json.loads(match.group(1))
                except json.JSONDecodeError:
                    continue

    return None


def parse_profile_posts(data: Dict[str, Any], base_url: str) -> List[ContentItem]:
    """Map timeline edges of a ProfilePage payload to ContentItems."""
    entry_data = data.get("entry_data") or data
    pages = entry_data.get("ProfilePage") or []
    if not pages:
        return []

    page = pages[0]
    user = (page.get("graphql") or {}).get("user") or page.get("user")
    if not user:
        return []

    username = user.get("username")
    edges = (user.get("edge_owner_to_timeline_media") or {}).get("edges") or []

    posts: List[ContentItem] = []
    for edge in edges:
        node = edge.get("node") or {}
        if not node.get("id") or node.get("taken_at_timestamp") is None:
            continue

        caption_edges = (node.get("edge_media_to_caption") or {}).get("edges") or []
        caption = caption_edges[0]["node"].get("text", "") if caption_edges else ""
        shortcode = node.get("shortcode", "")

        posts.append(
            ContentItem(
                id=str(node["id"]),
                timestamp=datetime.fromtimestamp(
                    node["taken_at_timestamp"], tz=timezone.utc
                ),
                url=f"{base_url}/p/{shortcode}/",
                source=SourceKind.INSTAGRAM,
                text=caption,
                author=username,
                image_url=node.get("display_url"),
                extra={
                    "shortcode": shortcode,
                    "is_video": bool(node.get("is_video")),
                    "likes": (node.get("edge_liked_by") or {}).get("count", 0),
                    "comments": (node.get("edge_media_to_comment") or {}).get(
                        "count", 0
                    ),
                },
            )
        )

    posts.sort(key=lambda p: p.timestamp, reverse=True)
    return posts[:MAX_POSTS]


class InstagramPoller(SourcePoller):
    """Recent posts of one Instagram profile."""

    kind = SourceKind.INSTAGRAM
    BASE_URL = "https://www.instagram.com"

    def __init__(
        self,
        config: InstagramSourceConfig,
        store,
        backoff: Optional[BackoffController] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(store, max_results=config.max_results, **kwargs)
        self.config = config
        self.backoff = backoff or BackoffController(
            base_delay=config.request_delay_seconds,
            rate_limit_wait=config.rate_limit_wait_seconds,
            max_attempts=config.max_attempts,
            name=self.source_id,
        )

    def is_configured(self) -> bool:
        return bool(self.config.username)

    @property
    def profile_url(self) -> str:
        return f"{self.BASE_URL}/{self.config.username}/"

    async def _scrape(self) -> str:
        return await self._request(self.profile_url, headers=BROWSER_HEADERS)

    async def fetch_latest(self, limit: int) -> List[ContentItem]:
        html = await self.backoff.execute(self._scrape)

        data = extract_profile_json(html)
        if data is None:
            logger.warning(
                "instagram_limited_data",
                username=self.config.username,
                reason="no embedded profile JSON",
            )
            return []

        try:
            posts = parse_profile_posts(data, self.BASE_URL)[:limit]
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise FetchError(f"Unexpected Instagram profile payload: {e}") from e
        logger.info("instagram_posts_fetched", count=len(posts))
        return posts

    def format_notification(self, item: ContentItem) -> RenderedMessage:
        username = item.author or self.config.username
        post_type = "video" if item.extra.get("is_video") else "post"
        description = (
            f"@{username} posted a new {post_type} on Instagram!\n\n**Caption**\n"
            f"{truncate(item.text, 200, 'No caption')}"
        )
        likes = item.extra.get("likes", 0)
        comments = item.extra.get("comments", 0)

        embed: Dict[str, Any] = {
            "author": {"name": f"@{username}", "icon_url": INSTAGRAM_ICON},
            "title": f"New Instagram {post_type}!",
            "description": description,
            "url": item.url,
            "color": INSTAGRAM_PINK,
            "footer": {
                "text": f"Instagram • {format_footer_time(item.timestamp)}",
                "icon_url": INSTAGRAM_ICON,
            },
            "timestamp": item.timestamp.isoformat(),
        }
        if likes or comments:
            embed["fields"] = [
                {"name": "Likes", "value": str(likes), "inline": True},
                {"name": "Comments", "value": str(comments), "inline": True},
            ]
        if item.image_url:
            embed["image"] = {"url": item.image_url}
        return RenderedMessage(embeds=[embed])
