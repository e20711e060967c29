"""One-time purge of old episodes that carry no listening state."""

import logging
from datetime import datetime, timedelta, timezone

from .config import MAINTENANCE_KEY, LibrarySettings
from .db import Database, to_timestamp

logger = logging.getLogger(__name__)

PURGE_CANDIDATES = """
    FROM episodes e
    LEFT JOIN playback_state s ON s.episode_id = e.id
    WHERE e.air_date IS NOT NULL
      AND e.air_date < ?
      AND COALESCE(s.is_played, 0) = 0
      AND COALESCE(s.is_queued, 0) = 0
      AND COALESCE(s.is_fav, 0) = 0
      AND COALESCE(s.is_saved, 0) = 0
      AND COALESCE(s.playback_position, 0) = 0
"""


class EpisodeMaintenance:
    def __init__(self, db: Database):
        self.db = db

    def _cutoff(self, now: datetime | None) -> str:
        now = now or datetime.now(timezone.utc)
        return to_timestamp(now - timedelta(days=LibrarySettings.PURGE_AGE_DAYS))

    def preview_deletion_count(self, now: datetime | None = None) -> int:
        """Number of episodes a purge would delete."""
        row = self.db.conn.execute(
            "SELECT COUNT(*) " + PURGE_CANDIDATES, (self._cutoff(now),)
        ).fetchone()
        return row[0]

    def purge_old_unused_episodes(
        self, now: datetime | None = None, batch_size: int | None = None
    ) -> int:
        """Delete purge candidates oldest first, one batch per transaction."""
        batch_size = batch_size or LibrarySettings.PURGE_BATCH_SIZE
        cutoff = self._cutoff(now)
        total_deleted = 0

        while True:
            with self.db.transaction():
                rows = self.db.conn.execute(
                    "SELECT e.id " + PURGE_CANDIDATES + " ORDER BY e.air_date LIMIT ?",
                    (cutoff, batch_size),
                ).fetchall()
                if not rows:
                    break
                self.db.conn.executemany(
                    "DELETE FROM episodes WHERE id = ?", [(row[0],) for row in rows]
                )

            total_deleted += len(rows)
            logger.info(
                f"Deleted batch of {len(rows)} episodes. Total deleted: {total_deleted}"
            )
            if len(rows) < batch_size:
                break

        return total_deleted

    def has_completed(self) -> bool:
        return self.db.get_maintenance_flag(MAINTENANCE_KEY) is not None

    def reset(self):
        self.db.clear_maintenance_flag(MAINTENANCE_KEY)

    def perform_if_needed(self, force: bool = False, now: datetime | None = None) -> int | None:
        """Run the purge once. Returns the deleted count, or None if it was skipped."""
        if force:
            self.reset()

        if self.has_completed():
            logger.info("Episode maintenance already completed, skipping")
            return None

        logger.info("Starting episode maintenance - purging old unused episodes")
        try:
            deleted = self.purge_old_unused_episodes(now=now)
        except Exception as e:
            logger.error(f"Episode maintenance failed: {e}", exc_info=True)
            raise

        self.db.set_maintenance_flag(MAINTENANCE_KEY, str(deleted))
        logger.info(f"Episode maintenance completed successfully. Deleted {deleted} episodes")
        return deleted
