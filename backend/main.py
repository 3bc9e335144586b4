"""
Storecraft FastAPI backend.

Endpoints:
  GET  /api/generation-status?id=   - poll a generation: pending | processing | completed | failed
  GET  /api/generation-updates?id=  - progress messages, previews and partial code for a generation
  GET  /api/render-status?id=       - live Creatomate render lookup
  POST /api/videos                  - submit a slideshow video, get back a generationId immediately
"""

import asyncio
import logging
import os
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv

# Load .env before the modules below read their configuration
load_dotenv()

from fastapi import BackgroundTasks, Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cleanup import sweep_expired
from creatomate import CreatomateClient, RenderStatusResult
from generations import GenerationStatus, GenerationTracker, GenerationUpdates
from store import MemoryStore
from video import VideoRequest, process_video_job

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# App lifespan: build the store and its consumers, start the expiry sweep
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    store = MemoryStore()
    app.state.store = store
    app.state.tracker = GenerationTracker(store)
    app.state.creatomate = CreatomateClient()

    sweep_task = asyncio.create_task(sweep_expired(store))
    logger.info("Storecraft backend started")

    yield  # application runs

    sweep_task.cancel()
    try:
        await sweep_task
    except asyncio.CancelledError:
        pass


app = FastAPI(title="Storecraft API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_tracker(request: Request) -> GenerationTracker:
    return request.app.state.tracker


def get_creatomate(request: Request) -> CreatomateClient:
    return request.app.state.creatomate


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@app.get(
    "/api/generation-status",
    response_model=GenerationStatus,
    response_model_exclude_none=True,
)
async def generation_status(
    generation_id: Optional[str] = Query(None, alias="id"),
    tracker: GenerationTracker = Depends(get_tracker),
):
    """Poll the lifecycle status of a generation."""
    if not generation_id:
        return JSONResponse({"error": "Missing generation ID"}, status_code=400)
    return tracker.poll_status(generation_id)


@app.get(
    "/api/generation-updates",
    response_model=GenerationUpdates,
    response_model_exclude_none=True,
)
async def generation_updates(
    generation_id: Optional[str] = Query(None, alias="id"),
    tracker: GenerationTracker = Depends(get_tracker),
):
    """Poll everything a generation has produced so far."""
    if not generation_id:
        return JSONResponse({"error": "Missing generation ID"}, status_code=400)
    return tracker.poll_updates(generation_id)


@app.get(
    "/api/render-status",
    response_model=RenderStatusResult,
    response_model_exclude_none=True,
)
async def render_status(
    render_id: Optional[str] = Query(None, alias="id"),
    client: CreatomateClient = Depends(get_creatomate),
):
    """Proxy one status lookup for a Creatomate render."""
    return await client.get_render_status(render_id or "")


@app.post("/api/videos", status_code=202)
async def create_video_job(
    request: VideoRequest,
    background_tasks: BackgroundTasks,
    tracker: GenerationTracker = Depends(get_tracker),
    client: CreatomateClient = Depends(get_creatomate),
):
    """Accept a video generation and return its ID immediately."""
    job_id = str(uuid.uuid4())
    tracker.start(job_id)
    background_tasks.add_task(process_video_job, tracker, client, job_id, request)
    logger.info("Accepted %s video job %s", request.template, job_id)
    return {"generationId": job_id}
