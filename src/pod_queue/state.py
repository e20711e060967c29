"""Per-episode listening state: saved, favourite, played and playback position."""

import logging
from typing import Callable

from .config import LibrarySettings
from .db import Database, utcnow
from .models import PlaybackState
from .queue import QueueManager

logger = logging.getLogger(__name__)


class EpisodeStateManager:
    """Centralizes state changes so each one is a single locked transaction."""

    def __init__(self, db: Database, queue: QueueManager):
        self.db = db
        self.queue = queue

    def toggle_saved(self, episode_id: str) -> PlaybackState:
        """Save or unsave an episode. Saving takes it out of the queue."""

        def operation(state: PlaybackState):
            state.is_saved = not state.is_saved
            state.saved_date = utcnow() if state.is_saved else None

        return self._perform(episode_id, operation, dequeue_if=lambda s: s.is_saved)

    def toggle_fav(self, episode_id: str) -> PlaybackState:
        def operation(state: PlaybackState):
            state.is_fav = not state.is_fav
            state.fav_date = utcnow() if state.is_fav else None

        return self._perform(episode_id, operation)

    def mark_played(self, episode_id: str) -> PlaybackState:
        duration = self.db.require_episode(episode_id).duration_seconds

        def operation(state: PlaybackState):
            if not state.is_played:
                state.play_count += 1
            state.is_played = True
            state.played_date = utcnow()
            state.playback_position = duration

        return self._perform(episode_id, operation, dequeue_if=lambda s: True)

    def mark_unplayed(self, episode_id: str) -> PlaybackState:
        def operation(state: PlaybackState):
            state.is_played = False
            state.played_date = None
            state.playback_position = 0.0

        return self._perform(episode_id, operation)

    def update_playback_position(self, episode_id: str, position: float) -> PlaybackState:
        """Store the playback position; past the played threshold the episode counts as played."""
        duration = self.db.require_episode(episode_id).duration_seconds
        position = max(0.0, position)

        def operation(state: PlaybackState):
            state.playback_position = position
            if duration > 0 and position / duration > LibrarySettings.PLAYED_THRESHOLD:
                if not state.is_played:
                    state.play_count += 1
                state.is_played = True
                state.played_date = utcnow()

        return self._perform(episode_id, operation)

    def _perform(
        self,
        episode_id: str,
        operation: Callable[[PlaybackState], None],
        dequeue_if: Callable[[PlaybackState], bool] | None = None,
    ) -> PlaybackState:
        """Run ``operation`` on the episode's state and persist it atomically."""
        try:
            with self.db.transaction():
                state = self.db.get_or_create_playback_state(episode_id)
                operation(state)
                self.db.save_playback_state(state)
                if dequeue_if is not None and state.is_queued and dequeue_if(state):
                    self.queue.remove(episode_id)
                return self.db.get_playback_state(episode_id)
        except Exception:
            logger.error(f"Error performing state operation on episode {episode_id}", exc_info=True)
            # The queue may have applied an order that was rolled back
            self.queue.refresh()
            raise
