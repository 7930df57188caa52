"""Pydantic request/response models for API endpoints."""

from typing import Any

from pydantic import BaseModel

from branching_tales.analytics import ConversionMetrics
from branching_tales.models import AnalyticsEvent, StorySession, TensionMetrics
from branching_tales.tension import TensionCategory


class NavigateBody(BaseModel):
    user_id: str
    choice_id: str | None = None
    target_page_id: str | None = None


class RestartBody(BaseModel):
    user_id: str


class SessionResponse(BaseModel):
    session: StorySession
    tension_metrics: TensionMetrics | None = None
    tension_category: TensionCategory | None = None
    tension_hint: str | None = None


class UpdateSettings(BaseModel):
    enable_analytics: bool | None = None
    enable_tension_mechanics: bool | None = None
    expected_story_length: int | None = None
    analytics_max_events: int | None = None


class AnalyticsSummary(BaseModel):
    events: list[AnalyticsEvent]
    conversion_metrics: ConversionMetrics
    choice_popularity: dict[str, int]


class BalanceResponse(BaseModel):
    user_id: str
    balance: int
    purchases: list[dict[str, Any]]
