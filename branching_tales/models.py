"""Core domain models.

The engine, the stores and the HTTP layer all operate on these types.
Pydantic is used for validation and serialisation at every data boundary.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field

EventType = Literal[
    "page_view",
    "choice_made",
    "purchase_attempt",
    "story_completed",
]

ErrorCode = Literal[
    "not_found",
    "insufficient_funds",
    "already_purchased",
    "persistence_failure",
    "invalid_request",
    "navigation_failed",
]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Story graph (read-only to the engine)
# ---------------------------------------------------------------------------

class StoryMetadata(BaseModel):
    """Published story information shown alongside every session."""

    id: str
    title: str
    description: str = ""
    category: str = ""
    spice_level: int = Field(default=1, ge=1, le=3)
    total_pages: int = Field(default=0, ge=0)
    author_id: str = ""
    cover_image_url: str | None = None


class Page(BaseModel):
    """A node in the story graph."""

    id: str
    story_id: str
    page_number: int
    content: str
    is_ending: bool = False


class Choice(BaseModel):
    """A directed edge between two pages of the same story."""

    id: str
    from_page_id: str
    to_page_id: str
    text: str
    is_premium: bool = False
    cost: int = Field(default=0, ge=0)  # meaningful only when is_premium
    description: str | None = None


# ---------------------------------------------------------------------------
# Reader state
# ---------------------------------------------------------------------------

class UserProgress(BaseModel):
    """Per-(user, story) reading record.

    completed_pages and purchased_choices are kept as lists for stable JSON
    output but are treated as sets: membership matters, order does not, and
    neither ever shrinks outside an explicit restart.
    """

    user_id: str
    story_id: str
    current_page_id: str
    completed_pages: list[str] = Field(default_factory=list)
    purchased_choices: list[str] = Field(default_factory=list)
    last_read_at: datetime = Field(default_factory=utcnow)


class ChoiceEvaluation(BaseModel):
    """Accessibility of one choice for one reader at one moment."""

    choice: Choice
    accessible: bool
    requires_purchase: bool
    reason: str | None = None


class ReadingStats(BaseModel):
    total_pages_read: int
    premium_choices_purchased: int
    completion_percentage: float


# ---------------------------------------------------------------------------
# Account records (owned by the transaction layer)
# ---------------------------------------------------------------------------

class PurchaseRecord(BaseModel):
    """Durable fact: this user owns this premium choice."""

    choice_id: str
    story_id: str
    cost: int
    purchased_at: datetime = Field(default_factory=utcnow)


class ChoiceHistoryEntry(BaseModel):
    choice_id: str
    story_id: str
    made_at: datetime = Field(default_factory=utcnow)


class Account(BaseModel):
    """A user's spendable balance and everything bought with it."""

    user_id: str
    balance: int = Field(default=0, ge=0)
    purchases: list[PurchaseRecord] = Field(default_factory=list)
    choice_history: list[ChoiceHistoryEntry] = Field(default_factory=list)

    def owns(self, choice_id: str) -> bool:
        return any(p.choice_id == choice_id for p in self.purchases)

    def owned_in(self, story_id: str) -> list[str]:
        return [p.choice_id for p in self.purchases if p.story_id == story_id]


class PurchaseResult(BaseModel):
    success: bool
    new_balance: int | None = None
    error: ErrorCode | None = None
    message: str | None = None


# ---------------------------------------------------------------------------
# Derived signals
# ---------------------------------------------------------------------------

class AnalyticsEvent(BaseModel):
    type: EventType
    user_id: str
    story_id: str
    page_id: str
    choice_id: str | None = None
    timestamp: datetime = Field(default_factory=utcnow)
    metadata: dict[str, Any] = Field(default_factory=dict)


class TensionMetrics(BaseModel):
    """Advisory UX scores, each bounded to 0–100."""

    anticipation_level: float = Field(ge=0, le=100)
    regret_factor: float = Field(ge=0, le=100)
    satisfaction_score: float = Field(ge=0, le=100)
    purchase_urgency: float = Field(ge=0, le=100)


# ---------------------------------------------------------------------------
# Navigation requests: closed set of variants
# ---------------------------------------------------------------------------

class ByChoice(BaseModel):
    """Follow an outgoing edge of the reader's current page."""

    kind: Literal["choice"] = "choice"
    user_id: str = Field(min_length=1)
    story_id: str = Field(min_length=1)
    choice_id: str = Field(min_length=1)


class ByTargetPage(BaseModel):
    """Jump straight to a page, e.g. when resuming from a bookmark."""

    kind: Literal["page"] = "page"
    user_id: str = Field(min_length=1)
    story_id: str = Field(min_length=1)
    target_page_id: str = Field(min_length=1)


class Resume(BaseModel):
    """Open the story where the reader left off, or at its first page."""

    kind: Literal["resume"] = "resume"
    user_id: str = Field(min_length=1)
    story_id: str = Field(min_length=1)


NavigationRequest = Annotated[
    Union[ByChoice, ByTargetPage, Resume],
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Engine output
# ---------------------------------------------------------------------------

class StorySession(BaseModel):
    """Everything a reader UI needs to render one step of a story."""

    story_id: str
    current_page: Page
    available_choices: list[ChoiceEvaluation]
    progress: UserProgress
    metadata: StoryMetadata
    balance: int


class NavigationResult(BaseModel):
    success: bool
    session: StorySession | None = None
    error: ErrorCode | None = None
    message: str | None = None


class ProgressReport(BaseModel):
    progress: UserProgress
    stats: ReadingStats
    achievements: list[str] = Field(default_factory=list)
