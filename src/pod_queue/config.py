# src/pod_queue/config.py
"""
Library Configuration

PLAYBACK:
- PLAYED_THRESHOLD: fraction of an episode's duration after which a
  position update marks the episode as played.

MAINTENANCE:
Old episodes nobody has touched are purged once. An episode is only a
candidate when it is older than PURGE_AGE_DAYS and carries no state at all
(not played, queued, favourited or saved, no playback progress).
"""

import os
from pathlib import Path


class LibrarySettings:
    PLAYED_THRESHOLD = 0.95
    PURGE_AGE_DAYS = 365
    PURGE_BATCH_SIZE = 100

    @classmethod
    def validate(cls):
        """Ensure thresholds are usable"""
        if not 0.0 < cls.PLAYED_THRESHOLD <= 1.0:
            raise AssertionError(
                f"PLAYED_THRESHOLD must be in (0, 1], got {cls.PLAYED_THRESHOLD}"
            )
        if cls.PURGE_AGE_DAYS <= 0:
            raise AssertionError(f"PURGE_AGE_DAYS must be positive, got {cls.PURGE_AGE_DAYS}")
        if cls.PURGE_BATCH_SIZE <= 0:
            raise AssertionError(
                f"PURGE_BATCH_SIZE must be positive, got {cls.PURGE_BATCH_SIZE}"
            )
        return True


# Validate on import
LibrarySettings.validate()


# Name of the singleton playlist record backing the playback queue
QUEUE_PLAYLIST = "Queue"

# Key recorded in the maintenance table once the purge has run
MAINTENANCE_KEY = "purge_v1"

# Subscription refresh interval (in seconds)
REFRESH_INTERVAL = 4 * 60 * 60  # 4 hours

# Delay before retrying after a failed refresh cycle (in seconds)
RETRY_DELAY = 60

DEFAULT_DB_DIR = Path.home() / ".pod-queue"


def default_db_path() -> str:
    """Database location: $POD_QUEUE_DB, else ~/.pod-queue/pod_queue.db."""
    env_path = os.getenv("POD_QUEUE_DB")
    if env_path:
        return env_path
    DEFAULT_DB_DIR.mkdir(parents=True, exist_ok=True)
    return str(DEFAULT_DB_DIR / "pod_queue.db")
