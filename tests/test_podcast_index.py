from datetime import datetime, timezone

import pytest
from unittest.mock import AsyncMock, patch

from pod_queue.models import Episode, Podcast
from pod_queue.podcast_index import PodcastIndexClient, sync_feed


@pytest.fixture
def mock_client():
    """Create a PodcastIndexClient with mock credentials."""
    with patch.dict("os.environ", {"PODCAST_INDEX_KEY": "test_key", "PODCAST_INDEX_SECRET": "test_secret"}):
        return PodcastIndexClient()


FEED_RESPONSE = {
    "feed": {
        "id": 456,
        "title": "Test Podcast",
        "author": "Test Host",
        "url": "https://example.com/feed.xml",
        "image": "https://example.com/image.jpg",
    }
}

EPISODES_RESPONSE = {
    "items": [
        {
            "id": 123,
            "guid": "guid-123",
            "title": "Test Episode",
            "description": "A test episode",
            "feedId": 456,
            "duration": 3600,
            "datePublished": 1735689600,
            "enclosureUrl": "https://example.com/episode.mp3",
        },
        {
            "id": 124,
            "title": "No Guid",
            "feedId": 456,
        },
    ]
}


def test_missing_credentials():
    with patch.dict("os.environ", {}, clear=True):
        with pytest.raises(ValueError, match="PODCAST_INDEX_KEY"):
            PodcastIndexClient()


def test_auth_headers(mock_client):
    headers = mock_client._get_auth_headers()
    assert headers["X-Auth-Key"] == "test_key"
    assert len(headers["Authorization"]) == 40
    assert headers["User-Agent"].startswith("pod-queue/")


@pytest.mark.asyncio
async def test_get_podcast_by_feed_id(mock_client):
    with patch.object(mock_client, "_get", new_callable=AsyncMock) as mock_get:
        mock_get.return_value = FEED_RESPONSE
        podcast = await mock_client.get_podcast_by_feed_id("456")

        assert isinstance(podcast, Podcast)
        assert podcast.id == "456"
        assert podcast.title == "Test Podcast"
        assert podcast.author == "Test Host"
        mock_get.assert_called_once_with("podcasts/byfeedid", {"id": "456"})


@pytest.mark.asyncio
async def test_get_podcast_not_found(mock_client):
    with patch.object(mock_client, "_get", new_callable=AsyncMock) as mock_get:
        mock_get.return_value = {"feed": []}
        assert await mock_client.get_podcast_by_feed_id("999") is None


@pytest.mark.asyncio
async def test_get_episodes_by_feed(mock_client):
    with patch.object(mock_client, "_get", new_callable=AsyncMock) as mock_get:
        mock_get.return_value = EPISODES_RESPONSE
        episodes = await mock_client.get_episodes_by_feed("456", max_results=10)

        assert len(episodes) == 2
        assert isinstance(episodes[0], Episode)
        assert episodes[0].id == "guid-123"
        assert episodes[0].podcast_id == "456"
        assert episodes[0].air_date == datetime(2025, 1, 1, tzinfo=timezone.utc)
        assert episodes[0].duration_seconds == 3600.0
        assert episodes[0].audio_url == "https://example.com/episode.mp3"

        # Falls back to the numeric id and unknown duration
        assert episodes[1].id == "124"
        assert episodes[1].air_date is None
        assert episodes[1].duration_seconds == 0.0
        mock_get.assert_called_once_with("episodes/byfeedid", {"id": "456", "max": 10})


@pytest.mark.asyncio
async def test_sync_feed_preserves_state(mock_client, temp_db):
    with patch.object(mock_client, "_get", new_callable=AsyncMock) as mock_get:
        mock_get.side_effect = [FEED_RESPONSE, EPISODES_RESPONSE]
        count = await sync_feed(temp_db, mock_client, "456")
    assert count == 2

    state = temp_db.get_or_create_playback_state("guid-123")
    state.is_fav = True
    temp_db.save_playback_state(state)
    temp_db.set_subscribed("456", False)

    with patch.object(mock_client, "_get", new_callable=AsyncMock) as mock_get:
        mock_get.side_effect = [FEED_RESPONSE, EPISODES_RESPONSE]
        await sync_feed(temp_db, mock_client, "456")

    assert temp_db.get_episode("guid-123").is_fav is True
    assert temp_db.get_podcast("456").is_subscribed is False


@pytest.mark.asyncio
async def test_sync_feed_unknown(mock_client, temp_db):
    with patch.object(mock_client, "_get", new_callable=AsyncMock) as mock_get:
        mock_get.return_value = {}
        with pytest.raises(LookupError):
            await sync_feed(temp_db, mock_client, "000")
