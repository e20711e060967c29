import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from pod_queue import background_tasks
from pod_queue.models import Podcast


@pytest.mark.asyncio
async def test_refresh_subscriptions_skips_failures(temp_db):
    temp_db.upsert_podcast(Podcast(id="1", title="Good"))
    temp_db.upsert_podcast(Podcast(id="2", title="Broken"))
    temp_db.upsert_podcast(Podcast(id="3", title="Unsubscribed"))
    temp_db.set_subscribed("3", False)

    async def fake_sync(db, client, feed_id):
        if feed_id == "2":
            raise RuntimeError("feed down")
        return 7

    with patch.object(background_tasks, "sync_feed", side_effect=fake_sync) as mock_sync:
        results = await background_tasks.refresh_subscriptions(temp_db, MagicMock())

    assert results == {"1": 7}
    assert mock_sync.call_count == 2


@pytest.mark.asyncio
async def test_background_loop_cancels(temp_db):
    with patch.object(
        background_tasks, "refresh_subscriptions", new_callable=AsyncMock
    ) as mock_refresh:
        task = asyncio.create_task(background_tasks.background_refresh_loop(temp_db, MagicMock()))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    mock_refresh.assert_awaited_once()


@pytest.mark.asyncio
async def test_background_loop_survives_failed_cycle(temp_db):
    """A failing refresh is retried instead of ending the loop."""
    with patch.object(background_tasks, "RETRY_DELAY", 0), patch.object(
        background_tasks, "REFRESH_INTERVAL", 0
    ), patch.object(
        background_tasks,
        "refresh_subscriptions",
        new_callable=AsyncMock,
        side_effect=[RuntimeError("feed index down"), {}, asyncio.CancelledError()],
    ) as mock_refresh:
        with pytest.raises(asyncio.CancelledError):
            await background_tasks.background_refresh_loop(temp_db, MagicMock())

    assert mock_refresh.await_count == 3


@pytest.mark.asyncio
async def test_background_loop_retries_failed_maintenance(temp_db):
    with patch.object(background_tasks, "RETRY_DELAY", 0), patch.object(
        background_tasks.EpisodeMaintenance,
        "perform_if_needed",
        side_effect=[RuntimeError("locked"), None],
    ) as mock_maintenance, patch.object(
        background_tasks,
        "refresh_subscriptions",
        new_callable=AsyncMock,
        side_effect=asyncio.CancelledError(),
    ):
        with pytest.raises(asyncio.CancelledError):
            await background_tasks.background_refresh_loop(temp_db, MagicMock())

    assert mock_maintenance.call_count == 2
