#!/usr/bin/env python3
"""Pod-Queue MCP Server: manage the listening queue and episode state."""

import json

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import Tool, TextContent

from .db import Database
from .queue import QueueManager
from .state import EpisodeStateManager
from .statistics import LibraryStatistics

# Initialize global instances
db = Database()
queue = QueueManager(db)
states = EpisodeStateManager(db, queue)

# Create MCP server
app = Server("pod-queue")

EPISODE_ID_SCHEMA = {
    "type": "object",
    "properties": {
        "episode_id": {"type": "string", "description": "The episode ID"},
    },
    "required": ["episode_id"],
}


@app.list_tools()
async def list_tools() -> list[Tool]:
    """List all available tools."""
    return [
        Tool(
            name="get_queue",
            description="List the episodes in the playback queue, in play order",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="add_to_queue",
            description="Add an episode to the end of the queue, or to the front with front=true",
            inputSchema={
                "type": "object",
                "properties": {
                    "episode_id": {"type": "string", "description": "The episode ID"},
                    "front": {
                        "type": "boolean",
                        "description": "Put the episode at the front of the queue",
                        "default": False,
                    },
                },
                "required": ["episode_id"],
            },
        ),
        Tool(
            name="remove_from_queue",
            description="Remove an episode from the queue",
            inputSchema=EPISODE_ID_SCHEMA,
        ),
        Tool(
            name="move_in_queue",
            description="Move an episode to a zero-based position in the queue",
            inputSchema={
                "type": "object",
                "properties": {
                    "episode_id": {"type": "string", "description": "The episode ID"},
                    "position": {"type": "integer", "description": "Target position", "minimum": 0},
                },
                "required": ["episode_id", "position"],
            },
        ),
        Tool(
            name="list_episodes",
            description="List episodes in one of the library lists",
            inputSchema={
                "type": "object",
                "properties": {
                    "filter": {
                        "type": "string",
                        "enum": ["queued", "played", "favorites", "saved", "unplayed"],
                        "description": "Which list to return",
                    },
                    "max_results": {
                        "type": "integer",
                        "description": "Maximum number of episodes to return",
                        "default": 20,
                    },
                },
                "required": ["filter"],
            },
        ),
        Tool(
            name="toggle_fav",
            description="Favorite or unfavorite an episode",
            inputSchema=EPISODE_ID_SCHEMA,
        ),
        Tool(
            name="mark_played",
            description="Mark an episode as played; it also leaves the queue",
            inputSchema=EPISODE_ID_SCHEMA,
        ),
        Tool(
            name="get_stats",
            description="Get listening statistics for the library",
            inputSchema={"type": "object", "properties": {}},
        ),
    ]


def _queue_text() -> list[TextContent]:
    result = [ep.model_dump(mode="json") for ep in queue.episodes()]
    return [TextContent(type="text", text=json.dumps(result, indent=2))]


@app.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    """Handle tool calls."""
    try:
        if name == "get_queue":
            return _queue_text()

        elif name == "add_to_queue":
            if arguments.get("front"):
                queue.add_to_front(arguments["episode_id"])
            else:
                queue.add(arguments["episode_id"])
            return _queue_text()

        elif name == "remove_from_queue":
            queue.remove(arguments["episode_id"])
            return _queue_text()

        elif name == "move_in_queue":
            queue.move(arguments["episode_id"], int(arguments["position"]))
            return _queue_text()

        elif name == "list_episodes":
            episodes = db.filter_episodes(arguments["filter"], arguments.get("max_results", 20))
            result = [ep.model_dump(mode="json") for ep in episodes]
            return [TextContent(type="text", text=json.dumps(result, indent=2))]

        elif name == "toggle_fav":
            state = states.toggle_fav(arguments["episode_id"])
            return [TextContent(type="text", text=state.model_dump_json(indent=2))]

        elif name == "mark_played":
            state = states.mark_played(arguments["episode_id"])
            return [TextContent(type="text", text=state.model_dump_json(indent=2))]

        elif name == "get_stats":
            stats = LibraryStatistics(db).load()
            return [TextContent(type="text", text=stats.model_dump_json(indent=2))]

        else:
            return [TextContent(type="text", text=json.dumps({"error": f"Unknown tool: {name}"}))]

    except Exception as e:
        return [TextContent(type="text", text=json.dumps({"error": str(e)}))]


async def main():
    """Run the MCP server."""
    async with stdio_server() as (read_stream, write_stream):
        await app.run(read_stream, write_stream, app.create_initialization_options())


if __name__ == "__main__":
    import asyncio

    asyncio.run(main())
