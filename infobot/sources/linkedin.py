"""LinkedIn source scraped from a public profile page.

LinkedIn serves very little to anonymous clients; the poller reads whatever
``.feed-shared-update-v2`` activity blocks the page contains. Status 999 is
LinkedIn's bot-throttle response and is treated like 429.
"""

import re
from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog
from bs4 import BeautifulSoup

from infobot.models.config import LinkedInSourceConfig
from infobot.models.content import ContentItem, RenderedMessage, SourceKind
from infobot.sources.base import BROWSER_HEADERS, SourcePoller, truncate
from infobot.utils.backoff import BackoffController
from infobot.utils.exceptions import FetchError, RateLimitError

logger = structlog.get_logger()

LINKEDIN_BLUE = 0x0077B5
LINKEDIN_ICON = (
    "https://content.linkedin.com/content/dam/me/business/en-us/amp/"
    "brand-site/v2/bg/LI-Bug.svg.original.svg"
)

_PROFILE_RE = re.compile(r"linkedin\.com/in/([^/?#]+)")


def profile_username(profile_url: Optional[str]) -> Optional[str]:
    if not profile_url:
        return None
    match = _PROFILE_RE.search(profile_url)
    return match.group(1) if match else None


def parse_activity(html: str, profile_url: str) -> List[ContentItem]:
    """Extract posts from profile activity blocks.

    Blocks without text, a ``time[datetime]`` or a ``data-urn`` are skipped:
    without a stable id and date an item cannot be deduplicated.
    """
    soup = BeautifulSoup(html, "html.parser")
    author = profile_username(profile_url)

    posts: List[ContentItem] = []
    for block in soup.select(".feed-shared-update-v2"):
        urn = block.get("data-urn")
        time_tag = block.find("time", attrs={"datetime": True})
        text_tag = block.select_one(".feed-shared-text")
        text = text_tag.get_text(" ", strip=True) if text_tag else ""

        if not (urn and time_tag and text):
            continue

        try:
            timestamp = datetime.fromisoformat(
                time_tag["datetime"].replace("Z", "+00:00")
            )
        except ValueError:
            logger.debug("linkedin_bad_timestamp", urn=urn, value=time_tag["datetime"])
            continue

        posts.append(
            ContentItem(
                id=urn,
                timestamp=timestamp,
                url=f"https://www.linkedin.com/feed/update/{urn}/",
                source=SourceKind.LINKEDIN,
                text=text,
                author=author,
            )
        )

    posts.sort(key=lambda p: p.timestamp, reverse=True)
    return posts


class LinkedInPoller(SourcePoller):
    """Recent activity of one LinkedIn profile."""

    kind = SourceKind.LINKEDIN

    def __init__(
        self,
        config: LinkedInSourceConfig,
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
        return bool(self.config.profile_url)

    def _classify_status(self, status: int, body: str) -> FetchError:
        if status == 999:
            return RateLimitError("LinkedIn request throttled (999)")
        return super()._classify_status(status, body)

    async def _scrape(self) -> str:
        return await self._request(self.config.profile_url, headers=BROWSER_HEADERS)

    async def fetch_latest(self, limit: int) -> List[ContentItem]:
        html = await self.backoff.execute(self._scrape)
        posts = parse_activity(html, self.config.profile_url)[:limit]
        logger.info("linkedin_posts_fetched", count=len(posts))
        return posts

    def format_notification(self, item: ContentItem) -> RenderedMessage:
        username = item.author or profile_username(self.config.profile_url)
        profile_url = self.config.profile_url
        embed: Dict[str, Any] = {
            "title": "New LinkedIn Post",
            "description": truncate(item.text, 300, "No content available"),
            "url": item.url,
            "color": LINKEDIN_BLUE,
            "fields": [
                {
                    "name": "Profile",
                    "value": f"[{username or 'LinkedIn User'}]({profile_url})",
                    "inline": True,
                },
                {
                    "name": "Posted",
                    "value": f"<t:{int(item.timestamp.timestamp())}:R>",
                    "inline": True,
                },
            ],
            "footer": {"text": "LinkedIn", "icon_url": LINKEDIN_ICON},
            "timestamp": item.timestamp.isoformat(),
        }
        return RenderedMessage(embeds=[embed])
