"""Request-scoped access to the collaborators created in create_app()."""

from fastapi import HTTPException, Request

from branching_tales.analytics import EventTracker
from branching_tales.engine import StoryEngine
from branching_tales.models import ErrorCode
from branching_tales.storage import Storage

ERROR_STATUS: dict[ErrorCode, int] = {
    "not_found": 404,
    "insufficient_funds": 402,
    "invalid_request": 400,
    "already_purchased": 409,
    "persistence_failure": 500,
    "navigation_failed": 500,
}


def get_engine(request: Request) -> StoryEngine:
    return request.app.state.engine


def get_storage(request: Request) -> Storage:
    return request.app.state.storage


def get_tracker(request: Request) -> EventTracker:
    return request.app.state.tracker


def raise_for_error(code: ErrorCode | None, message: str | None) -> None:
    """Map an engine error code onto an HTTPException."""
    status = ERROR_STATUS.get(code or "navigation_failed", 500)
    raise HTTPException(status, {"error": code, "message": message or "Navigation failed"})
