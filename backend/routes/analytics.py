"""Analytics endpoints backed by the in-memory event tracker."""

from fastapi import APIRouter, Depends, Query

from branching_tales.analytics import EventTracker
from branching_tales.models import EventType

from .deps import get_tracker
from .models import AnalyticsSummary

router = APIRouter()


@router.get("/analytics", response_model=AnalyticsSummary)
async def get_analytics(
    type: EventType | None = None,
    user_id: str | None = None,
    tracker: EventTracker = Depends(get_tracker),
):
    """Recent events, conversion metrics and choice popularity across all stories.

    `user_id` or `type` narrows the event list; the aggregates stay global.
    """
    if user_id is not None:
        events = tracker.user_events(user_id)
        if type is not None:
            events = [e for e in events if e.type == type]
    elif type is not None:
        events = tracker.events_by_type(type)
    else:
        events = tracker.recent_events(50)
    return AnalyticsSummary(
        events=events,
        conversion_metrics=tracker.conversion_metrics(),
        choice_popularity=tracker.choice_popularity(),
    )


@router.delete("/analytics")
async def clear_analytics(
    days_old: int = Query(7, ge=0),
    tracker: EventTracker = Depends(get_tracker),
):
    """Drop buffered events older than `days_old` days."""
    return {"removed": tracker.clear_old_events(days_old)}


@router.get("/analytics/{story_id}", response_model=AnalyticsSummary)
async def get_story_analytics(story_id: str, tracker: EventTracker = Depends(get_tracker)):
    """Same summary restricted to one story."""
    return AnalyticsSummary(
        events=tracker.story_events(story_id),
        conversion_metrics=tracker.conversion_metrics(story_id),
        choice_popularity=tracker.choice_popularity(story_id),
    )
