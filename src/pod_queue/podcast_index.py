import hashlib
import logging
import os
import time
from datetime import datetime, timezone
from typing import Any

import httpx

from .db import Database
from .models import Episode, Podcast

logger = logging.getLogger(__name__)


class PodcastIndexClient:
    """Async client for the Podcast Index API, used to fill the local library."""

    BASE_URL = "https://api.podcastindex.org/api/1.0"

    def __init__(self, api_key: str | None = None, api_secret: str | None = None):
        self.api_key = api_key or os.getenv("PODCAST_INDEX_KEY", "")
        self.api_secret = api_secret or os.getenv("PODCAST_INDEX_SECRET", "")
        if not self.api_key or not self.api_secret:
            raise ValueError("PODCAST_INDEX_KEY and PODCAST_INDEX_SECRET must be set")

    def _get_auth_headers(self) -> dict[str, str]:
        """Generate authentication headers with timestamp and hash."""
        unix_time = str(int(time.time()))
        data_to_hash = self.api_key + self.api_secret + unix_time
        hash_value = hashlib.sha1(data_to_hash.encode()).hexdigest()

        return {
            "User-Agent": "pod-queue/0.1.0",
            "X-Auth-Key": self.api_key,
            "X-Auth-Date": unix_time,
            "Authorization": hash_value,
        }

    async def _get(self, endpoint: str, params: dict[str, Any] | None = None) -> dict:
        url = f"{self.BASE_URL}/{endpoint}"
        headers = self._get_auth_headers()

        async with httpx.AsyncClient() as client:
            response = await client.get(url, headers=headers, params=params or {}, timeout=30.0)
            response.raise_for_status()
            return response.json()

    @staticmethod
    def _air_date(value: Any) -> datetime | None:
        """Podcast Index publishes unix timestamps."""
        if not value:
            return None
        return datetime.fromtimestamp(int(value), timezone.utc)

    def _parse_podcast(self, feed: dict) -> Podcast:
        return Podcast(
            id=str(feed.get("id", "")),
            title=feed.get("title", ""),
            author=feed.get("author", "") or feed.get("ownerName", "") or "",
            feed_url=feed.get("url", "") or feed.get("originalUrl", "") or "",
            image=feed.get("image") or feed.get("artwork"),
        )

    def _parse_episode(self, item: dict, podcast_id: str | None = None) -> Episode:
        feed_id = item.get("feedId")
        return Episode(
            id=str(item.get("guid") or item.get("id", "")),
            podcast_id=podcast_id or (str(feed_id) if feed_id else None),
            title=item.get("title", ""),
            description=item.get("description", "") or "",
            audio_url=item.get("enclosureUrl", "") or "",
            air_date=self._air_date(item.get("datePublished")),
            duration_seconds=float(item.get("duration") or 0),
        )

    async def get_podcast_by_feed_id(self, feed_id: str) -> Podcast | None:
        data = await self._get("podcasts/byfeedid", {"id": feed_id})
        feed = data.get("feed")
        return self._parse_podcast(feed) if feed else None

    async def get_episodes_by_feed(self, feed_id: str, max_results: int = 50) -> list[Episode]:
        """List recent episodes from a podcast feed."""
        data = await self._get("episodes/byfeedid", {"id": feed_id, "max": max_results})
        items = data.get("items", [])
        return [self._parse_episode(item, podcast_id=str(feed_id)) for item in items[:max_results]]


async def sync_feed(
    db: Database, client: PodcastIndexClient, feed_id: str, max_episodes: int = 50
) -> int:
    """Upsert a podcast and its recent episodes. Returns the number of episodes written.

    Existing playback state is never touched; only episode metadata changes.
    """
    podcast = await client.get_podcast_by_feed_id(feed_id)
    if podcast is None:
        raise LookupError(f"Feed not found on Podcast Index: {feed_id}")

    existing = db.get_podcast(podcast.id)
    if existing is not None:
        podcast.is_subscribed = existing.is_subscribed
    episodes = await client.get_episodes_by_feed(feed_id, max_episodes)

    with db.transaction():
        db.upsert_podcast(podcast)
        for episode in episodes:
            db.upsert_episode(episode)

    logger.info(f"Synced {podcast.title!r}: {len(episodes)} episodes")
    return len(episodes)
