"""Health check and engine settings endpoints."""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import ValidationError

from branching_tales.analytics import EventTracker
from branching_tales.config import EngineConfig, update_config
from branching_tales.engine import StoryEngine
from branching_tales.storage import Storage

from .deps import get_engine, get_storage, get_tracker
from .models import UpdateSettings

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/settings", response_model=EngineConfig)
async def get_settings(engine: StoryEngine = Depends(get_engine)):
    """Get engine settings (analytics and tension flags, tuning values)."""
    return engine.config


@router.patch("/settings", response_model=EngineConfig)
async def update_settings(
    body: UpdateSettings,
    engine: StoryEngine = Depends(get_engine),
    storage: Storage = Depends(get_storage),
    tracker: EventTracker = Depends(get_tracker),
):
    """Update engine settings (partial merge). Takes effect on the next request."""
    try:
        config = update_config(storage.config_path, body.model_dump(exclude_none=True))
    except ValidationError as e:
        raise HTTPException(400, f"Invalid settings: {e.error_count()} error(s)")
    engine.config = config
    tracker.max_events = config.analytics_max_events
    return config
