from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, computed_field


class Podcast(BaseModel):
    id: str
    title: str
    author: str = ""
    feed_url: str = ""
    image: str | None = None
    is_subscribed: bool = True
    created_at: str = ""


class PlaybackState(BaseModel):
    episode_id: str
    is_queued: bool = False
    queue_position: int = -1  # -1 when not queued
    is_played: bool = False
    played_date: str | None = None
    is_fav: bool = False
    fav_date: str | None = None
    is_saved: bool = False
    saved_date: str | None = None
    playback_position: float = Field(default=0.0, ge=0.0)
    play_count: int = Field(default=0, ge=0)


class Episode(BaseModel):
    id: str
    podcast_id: str | None = None
    title: str
    description: str = ""
    audio_url: str = ""
    air_date: datetime | None = None
    duration_seconds: float = 0.0

    # Projections of the episode's PlaybackState
    is_queued: bool = False
    queue_position: int = -1
    is_played: bool = False
    played_date: str | None = None
    is_fav: bool = False
    fav_date: str | None = None
    is_saved: bool = False
    saved_date: str | None = None
    playback_position: float = 0.0
    play_count: int = 0


class LibraryStats(BaseModel):
    podcast_count: int = 0
    subscribed_count: int = 0
    play_count: int = 0
    total_played_seconds: float = 0.0

    @computed_field
    @property
    def total_played_hours(self) -> int:
        return int(self.total_played_seconds) // 3600

    @computed_field
    @property
    def formatted_played_hours(self) -> str:
        hours = self.total_played_hours
        return "1 hour" if hours == 1 else f"{hours} hours"

    @computed_field
    @property
    def formatted_play_count(self) -> str:
        return "1 episode" if self.play_count == 1 else f"{self.play_count} episodes"
