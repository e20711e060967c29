"""Playback queue backed by the playback_state table.

Every mutation runs as one read-modify-persist sequence under the
database lock and finishes with a reindex, so queued episodes always
carry positions 0..n-1 in queue order and everything else carries -1.
"""

import logging

from .db import Database
from .errors import EpisodeNotFoundError
from .models import Episode

logger = logging.getLogger(__name__)


class QueueManager:
    """Ordered playback queue with optimistic in-memory order."""

    def __init__(self, db: Database):
        self.db = db
        self.lock = db.lock
        self._order: list[str] = self.db.queued_episode_ids()

    # --- Reads ---

    @property
    def order(self) -> list[str]:
        """Episode ids in queue order, read from the store."""
        with self.lock:
            return self.db.queued_episode_ids()

    @property
    def pending_order(self) -> list[str]:
        """The order last applied by this manager, before or after persisting."""
        return list(self._order)

    def episodes(self) -> list[Episode]:
        with self.lock:
            return self.db.queued_episodes()

    @property
    def count(self) -> int:
        return len(self.order)

    @property
    def is_empty(self) -> bool:
        return not self.order

    @property
    def first(self) -> str | None:
        order = self.order
        return order[0] if order else None

    def contains(self, episode_id: str) -> bool:
        return episode_id in self.order

    def position(self, episode_id: str) -> int | None:
        order = self.order
        return order.index(episode_id) if episode_id in order else None

    # --- Mutations ---

    def add(self, episode_id: str):
        """Append an episode to the end of the queue."""
        with self.lock:
            current = self.db.queued_episode_ids()
            if episode_id in current:
                logger.debug(f"Episode {episode_id} already queued")
                return
            self._require(episode_id)
            self._apply(current + [episode_id])
            logger.info(f"Added episode {episode_id} to queue")

    def add_to_front(self, episode_id: str, pushing_back: str | None = None):
        """Queue an episode at position 0.

        When ``pushing_back`` is given (typically the episode that was
        playing) it is queued too and lands right behind at position 1.
        """
        with self.lock:
            current = self.db.queued_episode_ids()
            front = [episode_id]
            if pushing_back is not None and pushing_back != episode_id:
                front.append(pushing_back)
            for eid in front:
                self._require(eid)
            rest = [eid for eid in current if eid not in front]
            self._apply(front + rest)
            logger.info(f"Moved episode {episode_id} to front of queue")

    def remove(self, episode_id: str):
        with self.lock:
            current = self.db.queued_episode_ids()
            if episode_id not in current:
                self._require(episode_id)
                logger.warning(f"Episode {episode_id} not found in queue")
                return
            self._apply([eid for eid in current if eid != episode_id])
            logger.info(f"Removed episode {episode_id} from queue")

    def toggle(self, episode_id: str) -> bool:
        """Flip queue membership. Returns the new queued state."""
        with self.lock:
            if episode_id in self.db.queued_episode_ids():
                self.remove(episode_id)
                return False
            self.add(episode_id)
            return True

    def move(self, episode_id: str, position: int):
        """Move (or insert) an episode to ``position``, clamped to the queue bounds."""
        with self.lock:
            others = [eid for eid in self.db.queued_episode_ids() if eid != episode_id]
            self._require(episode_id)
            target = min(max(0, position), len(others))
            others.insert(target, episode_id)
            self._apply(others)
            logger.info(f"Moved episode {episode_id} to queue position {target}")

    def reorder(self, episode_ids: list[str]):
        """Make ``episode_ids`` the head of the queue in the given order.

        Queued episodes missing from the list keep their relative order
        behind the listed ones.
        """
        with self.lock:
            listed = list(dict.fromkeys(episode_ids))
            for eid in listed:
                self._require(eid)
            rest = [eid for eid in self.db.queued_episode_ids() if eid not in listed]
            self._apply(listed + rest)
            logger.info(f"Reordered queue ({len(listed)} listed, {len(rest)} trailing)")

    def refresh(self):
        """Reload the in-memory order from the store."""
        with self.lock:
            self._order = self.db.queued_episode_ids()

    def reindex(self):
        """Renumber queued episodes 0..n-1 in their current order."""
        with self.lock:
            self._apply(self.db.queued_episode_ids())

    # --- Internals ---

    def _require(self, episode_id: str):
        if self.db.get_episode(episode_id) is None:
            raise EpisodeNotFoundError(episode_id)

    def _apply(self, new_order: list[str]):
        """Apply ``new_order`` optimistically, then persist; revert on failure."""
        previous = self._order
        self._order = list(new_order)
        try:
            self._persist(new_order)
        except Exception:
            logger.error("Failed to persist queue, reverting", exc_info=True)
            self._order = previous
            raise

    def _persist(self, new_order: list[str]):
        with self.db.transaction():
            queued = set(new_order)
            for episode_id in self.db.queued_episode_ids():
                if episode_id not in queued:
                    state = self.db.get_playback_state(episode_id)
                    state.is_queued = False
                    state.queue_position = -1
                    self.db.save_playback_state(state)

            for index, episode_id in enumerate(new_order):
                state = self.db.get_playback_state(episode_id)
                if not state.is_queued:
                    state.is_queued = True
                    if state.is_saved:
                        # Queuing takes an episode out of the saved list
                        state.is_saved = False
                        state.saved_date = None
                        logger.info(f"Cleared saved state for queued episode {episode_id}")
                state.queue_position = index
                self.db.save_playback_state(state)
