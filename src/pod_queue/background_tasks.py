"""Background tasks for subscription refresh"""

import asyncio
import logging

from .config import REFRESH_INTERVAL, RETRY_DELAY
from .db import Database
from .maintenance import EpisodeMaintenance
from .podcast_index import PodcastIndexClient, sync_feed

logger = logging.getLogger(__name__)


async def refresh_subscriptions(db: Database, podcast_client: PodcastIndexClient) -> dict[str, int]:
    """Sync every subscribed podcast. A failing feed is logged and skipped."""
    logger.info("Refreshing subscriptions...")
    results: dict[str, int] = {}

    for podcast in db.list_podcasts(subscribed_only=True):
        try:
            results[podcast.id] = await sync_feed(db, podcast_client, podcast.id)
        except Exception as e:
            logger.warning(f"Could not refresh {podcast.title!r}: {e}")

    logger.info(f"Subscriptions refreshed: {len(results)} podcasts")
    return results


async def background_refresh_loop(db: Database, podcast_client: PodcastIndexClient):
    """Run maintenance once, then refresh subscriptions every REFRESH_INTERVAL seconds.

    A failed cycle is logged and retried after RETRY_DELAY; only cancellation ends the loop.
    """
    logger.info("Starting background refresh loop")
    maintenance_done = False

    try:
        while True:
            try:
                if not maintenance_done:
                    EpisodeMaintenance(db).perform_if_needed()
                    maintenance_done = True
                await refresh_subscriptions(db, podcast_client)
            except Exception as e:
                logger.error(f"Error in background refresh loop: {e}", exc_info=True)
                await asyncio.sleep(RETRY_DELAY)
                continue

            await asyncio.sleep(REFRESH_INTERVAL)

    except asyncio.CancelledError:
        logger.info("Background refresh loop cancelled")
        raise
