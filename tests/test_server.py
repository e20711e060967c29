import importlib
import json

import pytest

from pod_queue.models import Episode, Podcast


@pytest.fixture
def server(monkeypatch, tmp_path):
    monkeypatch.setenv("POD_QUEUE_DB", str(tmp_path / "mcp.db"))
    import pod_queue.server as server_module

    server_module = importlib.reload(server_module)
    server_module.db.upsert_podcast(Podcast(id="pod1", title="Show"))
    for i in range(1, 4):
        server_module.db.upsert_episode(
            Episode(id=f"ep{i}", podcast_id="pod1", title=f"Episode {i}", duration_seconds=100)
        )
    yield server_module
    server_module.db.close()


def payload(result):
    return json.loads(result[0].text)


@pytest.mark.asyncio
async def test_list_tools(server):
    tools = await server.list_tools()
    names = {tool.name for tool in tools}
    assert {"get_queue", "add_to_queue", "move_in_queue", "mark_played", "get_stats"} <= names


@pytest.mark.asyncio
async def test_queue_tools(server):
    await server.call_tool("add_to_queue", {"episode_id": "ep1"})
    await server.call_tool("add_to_queue", {"episode_id": "ep2"})
    result = await server.call_tool("add_to_queue", {"episode_id": "ep3", "front": True})
    assert [ep["id"] for ep in payload(result)] == ["ep3", "ep1", "ep2"]

    result = await server.call_tool("move_in_queue", {"episode_id": "ep3", "position": 5})
    assert [ep["id"] for ep in payload(result)] == ["ep1", "ep2", "ep3"]

    result = await server.call_tool("remove_from_queue", {"episode_id": "ep1"})
    assert [ep["queue_position"] for ep in payload(result)] == [0, 1]


@pytest.mark.asyncio
async def test_state_and_stats_tools(server):
    assert payload(await server.call_tool("toggle_fav", {"episode_id": "ep1"}))["is_fav"] is True
    assert payload(await server.call_tool("mark_played", {"episode_id": "ep2"}))["play_count"] == 1

    stats = payload(await server.call_tool("get_stats", {}))
    assert stats["play_count"] == 1
    assert stats["total_played_seconds"] == 100.0


@pytest.mark.asyncio
async def test_errors_are_reported(server):
    assert "error" in payload(await server.call_tool("add_to_queue", {"episode_id": "missing"}))
    assert "Unknown tool" in payload(await server.call_tool("nope", {}))["error"]


@pytest.mark.asyncio
async def test_list_episodes_tool(server):
    await server.call_tool("toggle_fav", {"episode_id": "ep1"})
    await server.call_tool("mark_played", {"episode_id": "ep2"})

    favorites = payload(await server.call_tool("list_episodes", {"filter": "favorites"}))
    assert [ep["id"] for ep in favorites] == ["ep1"]

    played = payload(await server.call_tool("list_episodes", {"filter": "played"}))
    assert [ep["id"] for ep in played] == ["ep2"]

    unplayed = payload(
        await server.call_tool("list_episodes", {"filter": "unplayed", "max_results": 1})
    )
    assert len(unplayed) == 1

    assert "error" in payload(await server.call_tool("list_episodes", {"filter": "everything"}))


@pytest.mark.asyncio
async def test_queue_payload_carries_iso_air_dates(server):
    server.db.upsert_episode(
        Episode(id="ep4", podcast_id="pod1", title="Dated", air_date="2025-01-01T00:00:00Z")
    )
    result = await server.call_tool("add_to_queue", {"episode_id": "ep4"})
    assert payload(result)[0]["air_date"].startswith("2025-01-01T00:00:00")
