import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone

from .config import QUEUE_PLAYLIST, default_db_path
from .errors import EpisodeNotFoundError, PodcastNotFoundError
from .models import Episode, PlaybackState, Podcast

logger = logging.getLogger(__name__)

# Episodes joined with their playback state; missing state rows read as defaults.
EPISODE_SELECT = """
    SELECT e.id, e.podcast_id, e.title, e.description, e.audio_url, e.air_date,
           e.duration_seconds,
           COALESCE(s.is_queued, 0) AS is_queued,
           COALESCE(s.queue_position, -1) AS queue_position,
           COALESCE(s.is_played, 0) AS is_played,
           s.played_date,
           COALESCE(s.is_fav, 0) AS is_fav,
           s.fav_date,
           COALESCE(s.is_saved, 0) AS is_saved,
           s.saved_date,
           COALESCE(s.playback_position, 0) AS playback_position,
           COALESCE(s.play_count, 0) AS play_count
    FROM episodes e
    LEFT JOIN playback_state s ON s.episode_id = e.id
"""


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def to_timestamp(value: datetime | None) -> str | None:
    """ISO 8601 in UTC, so stored dates compare correctly as text. Naive values are UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


class Database:
    """SQLite store for podcasts, episodes and per-episode playback state."""

    def __init__(self, db_path: str | None = None):
        if db_path is None:
            db_path = default_db_path()

        self.db_path = db_path
        # Process-wide lock shared by every read-modify-persist sequence
        self.lock = threading.RLock()
        self._tx_depth = 0
        self._init_db()

    def _init_db(self):
        """Initialize database tables if they don't exist."""
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")

        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS podcasts (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                author TEXT NOT NULL DEFAULT '',
                feed_url TEXT NOT NULL DEFAULT '',
                image TEXT,
                is_subscribed INTEGER NOT NULL DEFAULT 1,
                created_at TEXT DEFAULT (datetime('now'))
            )
        """
        )
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS episodes (
                id TEXT PRIMARY KEY,
                podcast_id TEXT REFERENCES podcasts(id) ON DELETE CASCADE,
                title TEXT NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                audio_url TEXT NOT NULL DEFAULT '',
                air_date TEXT,
                duration_seconds REAL NOT NULL DEFAULT 0
            )
        """
        )
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS playlists (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE,
                created_at TEXT DEFAULT (datetime('now'))
            )
        """
        )
        self.conn.execute(
            """
            CREATE TABLE IF NOT EXISTS playback_state (
                episode_id TEXT PRIMARY KEY REFERENCES episodes(id) ON DELETE CASCADE,
                playlist_id INTEGER REFERENCES playlists(id) ON DELETE SET NULL,
                is_queued INTEGER NOT NULL DEFAULT 0,
                queue_position INTEGER NOT NULL DEFAULT -1,
                is_played INTEGER NOT NULL DEFAULT 0,
                played_date TEXT,
                is_fav INTEGER NOT NULL DEFAULT 0,
                fav_date TEXT,
                is_saved INTEGER NOT NULL DEFAULT 0,
                saved_date TEXT,
                playback_position REAL NOT NULL DEFAULT 0,
                play_count INTEGER NOT NULL DEFAULT 0
            )
        """
        )
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS maintenance (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)
        self.conn.execute(
            "CREATE INDEX IF NOT EXISTS ix_playback_queue ON playback_state (is_queued, queue_position)"
        )
        self.conn.execute("CREATE INDEX IF NOT EXISTS ix_episodes_podcast ON episodes (podcast_id)")
        self.conn.commit()

    def close(self):
        self.conn.close()

    @contextmanager
    def transaction(self):
        """Hold the lock and commit on success; roll back and re-raise on failure.

        Nested blocks join the outermost one, which alone commits or rolls back.
        """
        with self.lock:
            self._tx_depth += 1
            try:
                yield self.conn
            except Exception:
                if self._tx_depth == 1:
                    logger.error("Transaction failed, rolling back", exc_info=True)
                    self.conn.rollback()
                raise
            else:
                if self._tx_depth == 1:
                    self.conn.commit()
            finally:
                self._tx_depth -= 1

    # --- Podcasts ---

    def upsert_podcast(self, podcast: Podcast):
        """Insert a podcast or update its metadata, keeping subscription state."""
        with self.transaction():
            self.conn.execute(
                """
                INSERT INTO podcasts (id, title, author, feed_url, image, is_subscribed)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    title = excluded.title,
                    author = excluded.author,
                    feed_url = excluded.feed_url,
                    image = excluded.image
                """,
                (
                    podcast.id,
                    podcast.title,
                    podcast.author,
                    podcast.feed_url,
                    podcast.image,
                    int(podcast.is_subscribed),
                ),
            )

    def get_podcast(self, podcast_id: str) -> Podcast | None:
        row = self.conn.execute("SELECT * FROM podcasts WHERE id = ?", (podcast_id,)).fetchone()
        return Podcast(**dict(row)) if row else None

    def list_podcasts(self, subscribed_only: bool = False) -> list[Podcast]:
        """List podcasts alphabetically by title."""
        query = "SELECT * FROM podcasts"
        if subscribed_only:
            query += " WHERE is_subscribed = 1"
        query += " ORDER BY title COLLATE NOCASE"
        return [Podcast(**dict(row)) for row in self.conn.execute(query).fetchall()]

    def set_subscribed(self, podcast_id: str, subscribed: bool):
        with self.transaction():
            cursor = self.conn.execute(
                "UPDATE podcasts SET is_subscribed = ? WHERE id = ?",
                (int(subscribed), podcast_id),
            )
            if cursor.rowcount == 0:
                raise PodcastNotFoundError(podcast_id)

    def delete_podcast(self, podcast_id: str):
        """Delete a podcast along with its episodes and their state."""
        with self.transaction():
            cursor = self.conn.execute("DELETE FROM podcasts WHERE id = ?", (podcast_id,))
            if cursor.rowcount == 0:
                raise PodcastNotFoundError(podcast_id)
            self._compact_queue()

    # --- Episodes ---

    def upsert_episode(self, episode: Episode):
        """Insert or update episode metadata. Playback state is left untouched."""
        with self.transaction():
            self.conn.execute(
                """
                INSERT INTO episodes
                    (id, podcast_id, title, description, audio_url, air_date, duration_seconds)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    podcast_id = excluded.podcast_id,
                    title = excluded.title,
                    description = excluded.description,
                    audio_url = excluded.audio_url,
                    air_date = excluded.air_date,
                    duration_seconds = excluded.duration_seconds
                """,
                (
                    episode.id,
                    episode.podcast_id,
                    episode.title,
                    episode.description,
                    episode.audio_url,
                    to_timestamp(episode.air_date),
                    episode.duration_seconds,
                ),
            )

    def get_episode(self, episode_id: str) -> Episode | None:
        row = self.conn.execute(EPISODE_SELECT + " WHERE e.id = ?", (episode_id,)).fetchone()
        return Episode(**dict(row)) if row else None

    def require_episode(self, episode_id: str) -> Episode:
        episode = self.get_episode(episode_id)
        if episode is None:
            raise EpisodeNotFoundError(episode_id)
        return episode

    def list_episodes(self, podcast_id: str | None = None, limit: int = 50) -> list[Episode]:
        """Return episodes newest air date first."""
        params: tuple = ()
        query = EPISODE_SELECT
        if podcast_id is not None:
            query += " WHERE e.podcast_id = ?"
            params = (podcast_id,)
        query += " ORDER BY e.air_date IS NULL, e.air_date DESC LIMIT ?"
        rows = self.conn.execute(query, params + (limit,)).fetchall()
        return [Episode(**dict(row)) for row in rows]

    def delete_episode(self, episode_id: str):
        with self.transaction():
            cursor = self.conn.execute("DELETE FROM episodes WHERE id = ?", (episode_id,))
            if cursor.rowcount == 0:
                raise EpisodeNotFoundError(episode_id)
            self._compact_queue()

    def _compact_queue(self):
        """Renumber the remaining queued rows 0..n-1, e.g. after a cascade delete."""
        for index, episode_id in enumerate(self.queued_episode_ids()):
            self.conn.execute(
                "UPDATE playback_state SET queue_position = ? WHERE episode_id = ?",
                (index, episode_id),
            )

    # --- Playlists ---

    def get_or_create_playlist(self, name: str) -> int:
        """Fetch the named playlist record, creating it on first use."""
        with self.transaction():
            row = self.conn.execute("SELECT id FROM playlists WHERE name = ?", (name,)).fetchone()
            if row:
                return row[0]
            cursor = self.conn.execute("INSERT INTO playlists (name) VALUES (?)", (name,))
            logger.info(f"Created playlist {name!r}")
            return cursor.lastrowid or 0

    def playlist_size(self, name: str) -> int:
        row = self.conn.execute(
            """
            SELECT COUNT(*) FROM playback_state s
            JOIN playlists p ON p.id = s.playlist_id
            WHERE p.name = ?
            """,
            (name,),
        ).fetchone()
        return row[0]

    # --- Playback State ---

    def get_playback_state(self, episode_id: str) -> PlaybackState:
        """Return the stored state, or the default state if none was written yet."""
        self.require_episode(episode_id)
        row = self.conn.execute(
            "SELECT * FROM playback_state WHERE episode_id = ?", (episode_id,)
        ).fetchone()
        if row is None:
            return PlaybackState(episode_id=episode_id)
        data = dict(row)
        data.pop("playlist_id", None)
        return PlaybackState(**data)

    def get_or_create_playback_state(self, episode_id: str) -> PlaybackState:
        with self.transaction():
            self.require_episode(episode_id)
            self.conn.execute(
                "INSERT OR IGNORE INTO playback_state (episode_id) VALUES (?)", (episode_id,)
            )
            return self.get_playback_state(episode_id)

    def save_playback_state(self, state: PlaybackState):
        """Write a state record. Queued states join the queue playlist."""
        with self.transaction():
            self.require_episode(state.episode_id)
            playlist_id = self.get_or_create_playlist(QUEUE_PLAYLIST) if state.is_queued else None
            self.conn.execute(
                """
                INSERT INTO playback_state
                    (episode_id, playlist_id, is_queued, queue_position, is_played, played_date,
                     is_fav, fav_date, is_saved, saved_date, playback_position, play_count)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(episode_id) DO UPDATE SET
                    playlist_id = excluded.playlist_id,
                    is_queued = excluded.is_queued,
                    queue_position = excluded.queue_position,
                    is_played = excluded.is_played,
                    played_date = excluded.played_date,
                    is_fav = excluded.is_fav,
                    fav_date = excluded.fav_date,
                    is_saved = excluded.is_saved,
                    saved_date = excluded.saved_date,
                    playback_position = excluded.playback_position,
                    play_count = excluded.play_count
                """,
                (
                    state.episode_id,
                    playlist_id,
                    int(state.is_queued),
                    state.queue_position if state.is_queued else -1,
                    int(state.is_played),
                    state.played_date,
                    int(state.is_fav),
                    state.fav_date,
                    int(state.is_saved),
                    state.saved_date,
                    state.playback_position,
                    state.play_count,
                ),
            )

    # --- Fetch Helpers ---

    def queued_episode_ids(self) -> list[str]:
        """Queued episode ids in queue order (ties broken by id)."""
        rows = self.conn.execute(
            """
            SELECT episode_id FROM playback_state
            WHERE is_queued = 1
            ORDER BY queue_position, episode_id
            """
        ).fetchall()
        return [row[0] for row in rows]

    def queued_episodes(self) -> list[Episode]:
        rows = self.conn.execute(
            EPISODE_SELECT + " WHERE s.is_queued = 1 ORDER BY s.queue_position, e.id"
        ).fetchall()
        return [Episode(**dict(row)) for row in rows]

    def played_episodes(self, limit: int = 50) -> list[Episode]:
        return self._episodes_by_flag("is_played", "played_date", limit)

    def favorite_episodes(self, limit: int = 50) -> list[Episode]:
        return self._episodes_by_flag("is_fav", "fav_date", limit)

    def saved_episodes(self, limit: int = 50) -> list[Episode]:
        return self._episodes_by_flag("is_saved", "saved_date", limit)

    def _episodes_by_flag(self, flag: str, date_column: str, limit: int) -> list[Episode]:
        rows = self.conn.execute(
            EPISODE_SELECT + f" WHERE s.{flag} = 1 ORDER BY s.{date_column} DESC LIMIT ?",
            (limit,),
        ).fetchall()
        return [Episode(**dict(row)) for row in rows]

    def unplayed_episodes(self, limit: int = 50) -> list[Episode]:
        """Unplayed episodes of subscribed podcasts, newest first."""
        rows = self.conn.execute(
            EPISODE_SELECT
            + """
            JOIN podcasts p ON p.id = e.podcast_id
            WHERE p.is_subscribed = 1 AND COALESCE(s.is_played, 0) = 0
            ORDER BY e.air_date IS NULL, e.air_date DESC
            LIMIT ?
            """,
            (limit,),
        ).fetchall()
        return [Episode(**dict(row)) for row in rows]

    def filter_episodes(self, name: str, limit: int = 50) -> list[Episode]:
        """Episodes for a named list: queued, played, favorites, saved or unplayed."""
        if name == "queued":
            return self.queued_episodes()[:limit]
        if name == "played":
            return self.played_episodes(limit)
        if name == "favorites":
            return self.favorite_episodes(limit)
        if name == "saved":
            return self.saved_episodes(limit)
        if name == "unplayed":
            return self.unplayed_episodes(limit)
        raise ValueError(f"Unknown episode filter: {name}")

    # --- Maintenance Flags ---

    def get_maintenance_flag(self, key: str) -> str | None:
        row = self.conn.execute("SELECT value FROM maintenance WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    def set_maintenance_flag(self, key: str, value: str):
        with self.transaction():
            self.conn.execute(
                """INSERT OR REPLACE INTO maintenance (key, value, updated_at)
                   VALUES (?, ?, CURRENT_TIMESTAMP)""",
                (key, value),
            )

    def clear_maintenance_flag(self, key: str):
        with self.transaction():
            self.conn.execute("DELETE FROM maintenance WHERE key = ?", (key,))
