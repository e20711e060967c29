"""Pod-Queue REST API: FastAPI wrapper around the library, queue and state managers."""

import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parents[2] / ".env")

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .background_tasks import background_refresh_loop
from .db import Database
from .errors import EpisodeNotFoundError, PodcastNotFoundError
from .models import Episode, Podcast
from .podcast_index import PodcastIndexClient, sync_feed
from .queue import QueueManager
from .state import EpisodeStateManager
from .statistics import LibraryStatistics

logger = logging.getLogger(__name__)

db: Database
queue: QueueManager
states: EpisodeStateManager
podcast_client: PodcastIndexClient | None


@asynccontextmanager
async def lifespan(app: FastAPI):
    global db, queue, states, podcast_client
    db = Database()
    queue = QueueManager(db)
    states = EpisodeStateManager(db, queue)
    try:
        podcast_client = PodcastIndexClient()
    except ValueError:
        logger.warning("Podcast Index credentials missing; feed sync disabled")
        podcast_client = None

    refresh_task = None
    if podcast_client is not None:
        refresh_task = asyncio.create_task(background_refresh_loop(db, podcast_client))
    yield
    if refresh_task is not None:
        refresh_task.cancel()
        with suppress(asyncio.CancelledError):
            await refresh_task
    db.close()


app = FastAPI(title="Pod Queue", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(EpisodeNotFoundError)
@app.exception_handler(PodcastNotFoundError)
async def not_found_handler(request: Request, exc: LookupError):
    return JSONResponse(status_code=404, content={"error": str(exc)})


# --- Queue ---


class MoveRequest(BaseModel):
    position: int


class FrontRequest(BaseModel):
    pushing_back: str | None = None


class ReorderRequest(BaseModel):
    episode_ids: list[str]


def _queue_response() -> dict:
    return {"episodes": [ep.model_dump() for ep in queue.episodes()]}


@app.get("/api/queue")
async def get_queue():
    return _queue_response()


@app.put("/api/queue")
async def reorder_queue(req: ReorderRequest):
    queue.reorder(req.episode_ids)
    return _queue_response()


@app.post("/api/queue/{episode_id}")
async def add_to_queue(episode_id: str):
    queue.add(episode_id)
    return _queue_response()


@app.post("/api/queue/{episode_id}/front")
async def add_to_front(episode_id: str, req: FrontRequest | None = None):
    queue.add_to_front(episode_id, pushing_back=req.pushing_back if req else None)
    return _queue_response()


@app.post("/api/queue/{episode_id}/toggle")
async def toggle_queued(episode_id: str):
    queued = queue.toggle(episode_id)
    return {"episode_id": episode_id, "is_queued": queued}


@app.post("/api/queue/{episode_id}/move")
async def move_in_queue(episode_id: str, req: MoveRequest):
    queue.move(episode_id, req.position)
    return _queue_response()


@app.delete("/api/queue/{episode_id}")
async def remove_from_queue(episode_id: str):
    queue.remove(episode_id)
    return _queue_response()


# --- Episodes & State ---


class PositionRequest(BaseModel):
    position: float


EpisodeFilter = Literal["all", "queued", "played", "favorites", "saved", "unplayed"]


@app.get("/api/episodes")
async def list_episodes(
    podcast_id: str | None = None,
    filter: EpisodeFilter = "all",
    limit: int = Query(default=50, le=500),
):
    if filter == "all":
        episodes = db.list_episodes(podcast_id, limit)
    else:
        episodes = db.filter_episodes(filter, limit)
        if podcast_id is not None:
            episodes = [ep for ep in episodes if ep.podcast_id == podcast_id]
    return {"episodes": [ep.model_dump() for ep in episodes]}


@app.put("/api/episodes/{episode_id}")
async def upsert_episode(episode_id: str, episode: Episode):
    if episode.id != episode_id:
        raise HTTPException(status_code=400, detail="Episode id mismatch")
    db.upsert_episode(episode)
    return db.require_episode(episode_id).model_dump()


@app.get("/api/episodes/{episode_id}")
async def get_episode(episode_id: str):
    return db.require_episode(episode_id).model_dump()


@app.post("/api/episodes/{episode_id}/saved")
async def toggle_saved(episode_id: str):
    return states.toggle_saved(episode_id).model_dump()


@app.post("/api/episodes/{episode_id}/fav")
async def toggle_fav(episode_id: str):
    return states.toggle_fav(episode_id).model_dump()


@app.post("/api/episodes/{episode_id}/played")
async def mark_played(episode_id: str):
    return states.mark_played(episode_id).model_dump()


@app.delete("/api/episodes/{episode_id}/played")
async def mark_unplayed(episode_id: str):
    return states.mark_unplayed(episode_id).model_dump()


@app.put("/api/episodes/{episode_id}/position")
async def update_position(episode_id: str, req: PositionRequest):
    return states.update_playback_position(episode_id, req.position).model_dump()


# --- Podcasts ---


class SubscribeRequest(BaseModel):
    subscribed: bool


@app.get("/api/podcasts")
async def list_podcasts(subscribed_only: bool = False):
    return {"podcasts": [p.model_dump() for p in db.list_podcasts(subscribed_only)]}


@app.put("/api/podcasts/{podcast_id}")
async def upsert_podcast(podcast_id: str, podcast: Podcast):
    if podcast.id != podcast_id:
        raise HTTPException(status_code=400, detail="Podcast id mismatch")
    db.upsert_podcast(podcast)
    return db.get_podcast(podcast_id).model_dump()


@app.post("/api/podcasts/{podcast_id}/subscription")
async def set_subscription(podcast_id: str, req: SubscribeRequest):
    db.set_subscribed(podcast_id, req.subscribed)
    return {"status": "success"}


@app.delete("/api/podcasts/{podcast_id}")
async def delete_podcast(podcast_id: str):
    db.delete_podcast(podcast_id)
    return {"status": "success"}


@app.post("/api/podcasts/{podcast_id}/sync")
async def sync_podcast(podcast_id: str):
    if podcast_client is None:
        raise HTTPException(status_code=503, detail="Podcast Index is not configured")
    try:
        count = await sync_feed(db, podcast_client, podcast_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"status": "success", "episodes": count}


# --- Statistics ---


@app.get("/api/stats")
async def get_stats():
    return LibraryStatistics(db).load().model_dump()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="127.0.0.1", port=8000)
