"""Tension metrics — advisory UX scores derived from a session.

Computed after navigation from the returned choice evaluations; nothing in
navigation reads them. All scores are clamped to 0–100. Regret grows with
the number of unaffordable premium choices and anticipation with the number
of accessible ones; the constants below are tuning knobs only.
"""

from __future__ import annotations

from typing import Literal

from branching_tales.models import ChoiceEvaluation, StorySession, TensionMetrics, UserProgress

ANTICIPATION_PER_CHOICE = 30
REGRET_PER_CHOICE = 25
SATISFACTION_WEIGHT = 60
URGENCY_WEIGHT = 80

TensionCategory = Literal["low", "building", "high", "climax"]

_CATEGORIES: list[tuple[float, TensionCategory, str]] = [
    (30, "low", "Perfect time for character development or world building"),
    (60, "building", "Tension is rising - consider introducing conflict"),
    (80, "high", "High tension - approaching a crucial moment"),
]


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, float(value)))


def calculate_tension_metrics(
    evaluations: list[ChoiceEvaluation],
    progress: UserProgress,
    expected_story_length: int = 10,
) -> TensionMetrics:
    premium = [e for e in evaluations if e.choice.is_premium]
    accessible = [e for e in premium if e.accessible]
    unaffordable = [e for e in premium if not e.accessible and e.requires_purchase]

    progress_ratio = len(progress.completed_pages) / max(expected_story_length, 1)
    urgency = (len(unaffordable) / len(premium) * URGENCY_WEIGHT) if premium else 0

    return TensionMetrics(
        anticipation_level=_clamp(len(accessible) * ANTICIPATION_PER_CHOICE),
        regret_factor=_clamp(len(unaffordable) * REGRET_PER_CHOICE),
        satisfaction_score=_clamp(progress_ratio * SATISFACTION_WEIGHT),
        purchase_urgency=_clamp(urgency),
    )


def session_tension(session: StorySession, expected_story_length: int = 10) -> TensionMetrics:
    return calculate_tension_metrics(
        session.available_choices, session.progress, expected_story_length
    )


def tension_level(metrics: TensionMetrics) -> float:
    """Single 0–100 level for display: the strongest pull toward a choice."""
    return max(metrics.anticipation_level, metrics.regret_factor, metrics.purchase_urgency)


def tension_category(level: float) -> tuple[TensionCategory, str]:
    """Bucket a 0–100 level for display, with a pacing hint."""
    for upper, category, hint in _CATEGORIES:
        if level < upper:
            return category, hint
    return "climax", "Climax moment - time for major revelations or choices"
