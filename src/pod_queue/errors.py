"""Exceptions raised by the podcast library."""


class PodQueueError(Exception):
    """Base class for library errors."""


class EpisodeNotFoundError(PodQueueError, LookupError):
    def __init__(self, episode_id: str):
        super().__init__(f"Episode not found: {episode_id}")
        self.episode_id = episode_id


class PodcastNotFoundError(PodQueueError, LookupError):
    def __init__(self, podcast_id: str):
        super().__init__(f"Podcast not found: {podcast_id}")
        self.podcast_id = podcast_id
