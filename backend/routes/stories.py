"""Story reading endpoints: navigate, restart, progress, balance."""

from fastapi import APIRouter, Depends, HTTPException

from branching_tales.engine import StoryEngine, build_request
from branching_tales.errors import EngineError
from branching_tales.models import NavigationResult, ProgressReport
from branching_tales.storage import Storage
from branching_tales.tension import tension_category, tension_level

from .deps import get_engine, get_storage, raise_for_error
from .models import BalanceResponse, NavigateBody, RestartBody, SessionResponse

router = APIRouter()


def _session_response(engine: StoryEngine, result: NavigationResult) -> SessionResponse:
    if not result.success or result.session is None:
        raise_for_error(result.error, result.message)
    metrics = engine.tension_metrics(result.session)
    if metrics is None:
        return SessionResponse(session=result.session)
    category, hint = tension_category(tension_level(metrics))
    return SessionResponse(
        session=result.session,
        tension_metrics=metrics,
        tension_category=category,
        tension_hint=hint,
    )


@router.post("/stories/{story_id}/navigate", response_model=SessionResponse)
async def navigate(story_id: str, body: NavigateBody, engine: StoryEngine = Depends(get_engine)):
    """Move a reader through a story: by choice, by page jump, or resume."""
    try:
        request = build_request(
            user_id=body.user_id,
            story_id=story_id,
            choice_id=body.choice_id,
            target_page_id=body.target_page_id,
        )
    except EngineError as e:
        raise_for_error(e.code, e.user_message)
    result = await engine.navigate(request)
    return _session_response(engine, result)


@router.post("/stories/{story_id}/restart", response_model=SessionResponse)
async def restart(story_id: str, body: RestartBody, engine: StoryEngine = Depends(get_engine)):
    """Reset a reader's progress and return the first page."""
    result = await engine.restart(body.user_id, story_id)
    return _session_response(engine, result)


@router.get("/stories/{story_id}/progress/{user_id}", response_model=ProgressReport)
async def get_progress(story_id: str, user_id: str, engine: StoryEngine = Depends(get_engine)):
    """Reading progress with stats and achievements."""
    try:
        return await engine.progress_report(user_id, story_id)
    except EngineError as e:
        if e.code == "not_found":
            raise HTTPException(404, "Progress not found")
        raise_for_error(e.code, e.user_message)


@router.get("/accounts/{user_id}/balance", response_model=BalanceResponse)
async def get_balance(user_id: str, storage: Storage = Depends(get_storage)):
    """Spendable balance and owned premium choices."""
    account = await storage.get_account(user_id)
    return BalanceResponse(
        user_id=account.user_id,
        balance=account.balance,
        purchases=[p.model_dump(mode="json") for p in account.purchases],
    )
