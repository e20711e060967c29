import tempfile
from pathlib import Path

import pytest

from pod_queue.db import Database
from pod_queue.models import Episode, Podcast
from pod_queue.queue import QueueManager
from pod_queue.state import EpisodeStateManager


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = str(Path(tmpdir) / "test.db")
        db = Database(db_path)
        yield db
        db.close()


@pytest.fixture
def library(temp_db):
    """A podcast with five episodes ep1..ep5, one day apart."""
    temp_db.upsert_podcast(Podcast(id="pod1", title="Test Podcast", author="Host"))
    for i in range(1, 6):
        temp_db.upsert_episode(
            Episode(
                id=f"ep{i}",
                podcast_id="pod1",
                title=f"Episode {i}",
                audio_url=f"https://example.com/ep{i}.mp3",
                air_date=f"2025-01-0{i}T00:00:00+00:00",
                duration_seconds=1000.0,
            )
        )
    return temp_db


@pytest.fixture
def queue(library):
    return QueueManager(library)


@pytest.fixture
def states(library, queue):
    return EpisodeStateManager(library, queue)
