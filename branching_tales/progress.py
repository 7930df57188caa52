"""Progress tracking — pure transitions of a reader's UserProgress.

Nothing here touches balances or storage. Each transition returns a new
progress object plus the analytics event describing it; the caller decides
what to persist and where to send the event.

Set semantics: completed_pages and purchased_choices behave as sets that only
grow. Adding an existing member is a no-op, so replaying a transition is safe.
"""

from __future__ import annotations

from branching_tales.models import (
    AnalyticsEvent,
    Choice,
    Page,
    ReadingStats,
    UserProgress,
    utcnow,
)

ACHIEVEMENTS: list[tuple[str, str, int]] = [
    # (name, counter, threshold)
    ("dedicated_reader", "pages", 10),
    ("premium_supporter", "purchases", 3),
    ("content_enthusiast", "purchases", 5),
]


def _set_add(items: list[str], item: str) -> list[str]:
    if item in items:
        return list(items)
    return [*items, item]


def _set_union(left: list[str], right: list[str]) -> list[str]:
    merged = list(left)
    for item in right:
        if item not in merged:
            merged.append(item)
    return merged


def new_progress(user_id: str, story_id: str, current_page_id: str) -> UserProgress:
    return UserProgress(user_id=user_id, story_id=story_id, current_page_id=current_page_id)


def advance(
    progress: UserProgress, page: Page, choice_id: str | None = None
) -> tuple[UserProgress, AnalyticsEvent]:
    """Move the reader onto `page`."""
    now = utcnow()
    updated = progress.model_copy(update={
        "current_page_id": page.id,
        "completed_pages": _set_add(progress.completed_pages, page.id),
        "last_read_at": now,
    })
    event = AnalyticsEvent(
        type="story_completed" if page.is_ending else "page_view",
        user_id=progress.user_id,
        story_id=progress.story_id,
        page_id=page.id,
        choice_id=choice_id,
        timestamp=now,
        metadata={
            "page_number": page.page_number,
            "is_ending": page.is_ending,
            "total_pages_completed": len(updated.completed_pages),
        },
    )
    return updated, event


def record_purchase(
    progress: UserProgress, choice_id: str
) -> tuple[UserProgress, AnalyticsEvent]:
    """Mark a premium choice as owned. Only called after a confirmed purchase."""
    now = utcnow()
    updated = progress.model_copy(update={
        "purchased_choices": _set_add(progress.purchased_choices, choice_id),
        "last_read_at": now,
    })
    event = AnalyticsEvent(
        type="purchase_attempt",
        user_id=progress.user_id,
        story_id=progress.story_id,
        page_id=progress.current_page_id,
        choice_id=choice_id,
        timestamp=now,
        metadata={"total_purchases": len(updated.purchased_choices)},
    )
    return updated, event


def choice_event(progress: UserProgress, choice: Choice) -> AnalyticsEvent:
    """The reader followed `choice` out of their current page."""
    return AnalyticsEvent(
        type="choice_made",
        user_id=progress.user_id,
        story_id=progress.story_id,
        page_id=choice.from_page_id,
        choice_id=choice.id,
        metadata={"is_premium": choice.is_premium, "cost": choice.cost},
    )


def merge_progress(stored: UserProgress | None, incoming: UserProgress) -> UserProgress:
    """Combine a freshly computed record with whatever is on disk.

    The page pointer and timestamp are last-write-wins; the set fields are
    unioned so a concurrent save never drops another request's additions.
    """
    if stored is None:
        return incoming
    return incoming.model_copy(update={
        "completed_pages": _set_union(incoming.completed_pages, stored.completed_pages),
        "purchased_choices": _set_union(incoming.purchased_choices, stored.purchased_choices),
    })


def with_owned(progress: UserProgress, owned_choice_ids: list[str]) -> UserProgress:
    """Progress as seen by the evaluator: choices owned from an earlier
    playthrough count as purchased. Not meant to be persisted."""
    return progress.model_copy(update={
        "purchased_choices": _set_union(progress.purchased_choices, owned_choice_ids),
    })


def reset_progress(progress: UserProgress, first_page_id: str) -> UserProgress:
    """Explicit restart: back to the first page with nothing completed."""
    return progress.model_copy(update={
        "current_page_id": first_page_id,
        "completed_pages": [],
        "purchased_choices": [],
        "last_read_at": utcnow(),
    })


def reading_stats(progress: UserProgress, total_pages: int) -> ReadingStats:
    pages_read = len(progress.completed_pages)
    if total_pages > 0:
        completion = min(100.0, round(pages_read / total_pages * 100, 1))
    else:
        completion = 0.0
    return ReadingStats(
        total_pages_read=pages_read,
        premium_choices_purchased=len(progress.purchased_choices),
        completion_percentage=completion,
    )


def check_achievements(progress: UserProgress) -> list[str]:
    counters = {
        "pages": len(progress.completed_pages),
        "purchases": len(progress.purchased_choices),
    }
    return [name for name, counter, threshold in ACHIEVEMENTS if counters[counter] >= threshold]
