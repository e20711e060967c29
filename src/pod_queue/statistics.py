import logging

from .db import Database
from .models import LibraryStats

logger = logging.getLogger(__name__)


class LibraryStatistics:
    """Aggregate listening statistics for the library."""

    def __init__(self, db: Database):
        self.db = db

    def load(self) -> LibraryStats:
        conn = self.db.conn
        podcast_count = conn.execute("SELECT COUNT(*) FROM podcasts").fetchone()[0]
        subscribed_count = conn.execute(
            "SELECT COUNT(*) FROM podcasts WHERE is_subscribed = 1"
        ).fetchone()[0]
        play_count = conn.execute(
            "SELECT COALESCE(SUM(play_count), 0) FROM playback_state"
        ).fetchone()[0]
        # Finished episodes count in full, partially played ones up to their position
        played_seconds = conn.execute(
            """
            SELECT COALESCE(SUM(
                CASE WHEN s.is_played = 1 THEN e.duration_seconds
                     ELSE s.playback_position END
            ), 0)
            FROM playback_state s
            JOIN episodes e ON e.id = s.episode_id
            """
        ).fetchone()[0]

        stats = LibraryStats(
            podcast_count=podcast_count,
            subscribed_count=subscribed_count,
            play_count=play_count,
            total_played_seconds=float(played_seconds),
        )
        logger.debug(f"Loaded statistics: {stats.model_dump()}")
        return stats
