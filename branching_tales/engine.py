"""Story engine — resolves one navigation request end-to-end.

Navigation flow:
  1. Resolve the target page id from the request variant:
       ByChoice     → the choice's destination (missing choice → NotFound)
       ByTargetPage → the given page id
       Resume       → stored current page, else the story's first page
  2. Fetch the target page and story metadata. Nothing has been written yet,
     so a missing page or story fails cleanly.
  3. Gate premium choices: unaffordable → InsufficientFunds with no writes;
     affordable and unowned → TransactionManager; owned → free.
  4. Advance progress onto the target page and persist it.
  5. Evaluate the new page's choices against the post-purchase progress and
     balance.
  6. Emit analytics events (fire-and-forget) and return the session:
     purchase_attempt, choice_made, then page_view or story_completed.

The engine is constructed explicitly with its collaborators; it holds no
state of its own between calls.
"""

from __future__ import annotations

import logging
from typing import Protocol

from pydantic import TypeAdapter, ValidationError

from branching_tales.analytics import AnalyticsSink
from branching_tales.config import EngineConfig
from branching_tales.errors import (
    AlreadyPurchasedError,
    EngineError,
    InsufficientFundsError,
    InvalidRequestError,
    NotFoundError,
    PersistenceError,
)
from branching_tales.evaluator import evaluate_choice, evaluate_choices
from branching_tales.models import (
    AnalyticsEvent,
    ByChoice,
    ByTargetPage,
    Choice,
    NavigationRequest,
    NavigationResult,
    Page,
    ProgressReport,
    Resume,
    StoryMetadata,
    StorySession,
    TensionMetrics,
    UserProgress,
)
from branching_tales.progress import (
    advance,
    check_achievements,
    choice_event,
    new_progress,
    reading_stats,
    record_purchase,
    reset_progress,
    with_owned,
)
from branching_tales.tension import session_tension
from branching_tales.transactions import AccountStore, TransactionManager

logger = logging.getLogger(__name__)

_PURCHASE_ERRORS: dict[str, type[EngineError]] = {
    cls.code: cls
    for cls in (InsufficientFundsError, AlreadyPurchasedError, PersistenceError, NotFoundError)
}

_request_adapter: TypeAdapter[NavigationRequest] = TypeAdapter(NavigationRequest)


# ---------------------------------------------------------------------------
# Protocols: the stores the engine reads and writes through
# ---------------------------------------------------------------------------

class GraphStore(Protocol):
    async def get_page(self, page_id: str) -> Page: ...

    async def get_choice(self, choice_id: str) -> Choice | None: ...

    async def get_choices_from_page(self, page_id: str) -> list[Choice]: ...

    async def get_first_page_id(self, story_id: str) -> str: ...

    async def get_story_metadata(self, story_id: str) -> StoryMetadata: ...


class ProgressStore(Protocol):
    async def get_progress(self, user_id: str, story_id: str) -> UserProgress | None: ...

    async def save_progress(self, progress: UserProgress) -> UserProgress: ...

    async def replace_progress(self, progress: UserProgress) -> UserProgress: ...


# ---------------------------------------------------------------------------
# Request construction
# ---------------------------------------------------------------------------

def build_request(
    user_id: str,
    story_id: str,
    choice_id: str | None = None,
    target_page_id: str | None = None,
) -> NavigationRequest:
    """Turn loose request fields into one of the closed request variants.

    A choice id wins over a target page id; with neither, the reader resumes.
    """
    if choice_id:
        data = {"kind": "choice", "choice_id": choice_id}
    elif target_page_id:
        data = {"kind": "page", "target_page_id": target_page_id}
    else:
        data = {"kind": "resume"}
    try:
        return _request_adapter.validate_python(
            {**data, "user_id": user_id, "story_id": story_id}
        )
    except ValidationError as e:
        raise InvalidRequestError(f"Malformed navigation request: {e.error_count()} error(s)") from e


# ---------------------------------------------------------------------------
# StoryEngine
# ---------------------------------------------------------------------------

class StoryEngine:
    """Navigation orchestrator.

    Args:
        graph:        Story graph lookups.
        progress:     Reader progress persistence.
        accounts:     Balance reads; spending goes through `transactions`.
        transactions: Purchase unit. Defaults to a TransactionManager over
                      `accounts`.
        analytics:    Event sink, or None to drop events.
        config:       Feature flags and tuning values.
    """

    def __init__(
        self,
        graph: GraphStore,
        progress: ProgressStore,
        accounts: AccountStore,
        transactions: TransactionManager | None = None,
        analytics: AnalyticsSink | None = None,
        config: EngineConfig | None = None,
    ) -> None:
        self._graph = graph
        self._progress = progress
        self._accounts = accounts
        self._transactions = transactions or TransactionManager(accounts)
        self._analytics = analytics
        self._config = config or EngineConfig()

    @property
    def config(self) -> EngineConfig:
        return self._config

    @config.setter
    def config(self, config: EngineConfig) -> None:
        self._config = config

    async def navigate(self, request: NavigationRequest) -> NavigationResult:
        try:
            session, events = await self._navigate(request)
        except EngineError as e:
            logger.warning(
                "navigation rejected user=%s story=%s code=%s: %s",
                request.user_id, request.story_id, e.code, e,
            )
            return NavigationResult(success=False, error=e.code, message=e.user_message)
        except Exception:
            logger.exception(
                "navigation failed user=%s story=%s", request.user_id, request.story_id
            )
            return NavigationResult(
                success=False, error="navigation_failed", message=EngineError.user_message
            )

        for event in events:
            await self._emit(event)
        return NavigationResult(success=True, session=session)

    async def restart(self, user_id: str, story_id: str) -> NavigationResult:
        """Reset the reader to the first page and return the fresh session.

        Owned premium choices stay owned in the account store, so choosing
        one again after a restart is never charged twice.
        """
        try:
            request = build_request(user_id, story_id)
            first_page_id = await self._graph.get_first_page_id(story_id)
            stored = await self._progress.get_progress(user_id, story_id)
            base = stored or new_progress(user_id, story_id, first_page_id)
            await self._progress.replace_progress(reset_progress(base, first_page_id))
        except EngineError as e:
            logger.warning("restart rejected user=%s story=%s code=%s", user_id, story_id, e.code)
            return NavigationResult(success=False, error=e.code, message=e.user_message)
        logger.info("progress reset user=%s story=%s", user_id, story_id)
        return await self.navigate(request)

    async def progress_report(self, user_id: str, story_id: str) -> ProgressReport:
        progress = await self._progress.get_progress(user_id, story_id)
        if progress is None:
            raise NotFoundError(f"No progress for user {user_id!r} in story {story_id!r}")
        metadata = await self._graph.get_story_metadata(story_id)
        return ProgressReport(
            progress=progress,
            stats=reading_stats(progress, metadata.total_pages),
            achievements=check_achievements(progress),
        )

    def tension_metrics(self, session: StorySession) -> TensionMetrics | None:
        if not self._config.enable_tension_mechanics:
            return None
        return session_tension(session, self._config.expected_story_length)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _navigate(
        self, request: NavigationRequest
    ) -> tuple[StorySession, list[AnalyticsEvent]]:
        user_id, story_id = request.user_id, request.story_id
        stored = await self._progress.get_progress(user_id, story_id)
        account = await self._accounts.get_account(user_id)
        balance = account.balance
        owned = account.owned_in(story_id)

        choice: Choice | None = None
        if isinstance(request, ByChoice):
            choice = await self._graph.get_choice(request.choice_id)
            if choice is None:
                raise NotFoundError(f"Choice {request.choice_id!r} not found")
            source = await self._graph.get_page(choice.from_page_id)
            if source.story_id != story_id:
                raise InvalidRequestError(
                    f"Choice {choice.id!r} does not belong to story {story_id!r}"
                )
            target_page_id = choice.to_page_id
        elif isinstance(request, ByTargetPage):
            target_page_id = request.target_page_id
        elif isinstance(request, Resume):
            if stored is not None:
                target_page_id = stored.current_page_id
            else:
                target_page_id = await self._graph.get_first_page_id(story_id)
        else:
            raise InvalidRequestError(f"Unsupported request {type(request).__name__}")

        page = await self._graph.get_page(target_page_id)
        if page.story_id != story_id:
            raise InvalidRequestError(f"Page {page.id!r} does not belong to story {story_id!r}")
        metadata = await self._graph.get_story_metadata(story_id)

        events: list[AnalyticsEvent] = []
        progress = stored or new_progress(user_id, story_id, page.id)

        if choice is not None and choice.is_premium:
            progress, balance, purchase_event = await self._unlock(progress, choice, balance, owned)
            if purchase_event is not None:
                events.append(purchase_event)

        progress, page_event = advance(progress, page, choice.id if choice else None)
        progress = await self._progress.save_progress(progress)
        if choice is not None:
            events.append(choice_event(progress, choice))
        events.append(page_event)

        choices = await self._graph.get_choices_from_page(page.id)
        session = StorySession(
            story_id=story_id,
            current_page=page,
            available_choices=evaluate_choices(choices, with_owned(progress, owned), balance),
            progress=progress,
            metadata=metadata,
            balance=balance,
        )
        logger.debug(
            "navigated user=%s story=%s page=%s choices=%d",
            user_id, story_id, page.id, len(session.available_choices),
        )
        return session, events

    async def _unlock(
        self, progress: UserProgress, choice: Choice, balance: int, owned: list[str]
    ) -> tuple[UserProgress, int, AnalyticsEvent | None]:
        """Make sure the reader owns `choice`. Returns (progress, balance, event).

        `owned` lists the choices in this story the account already holds, so
        an edge bought before a restart is carried over without a charge.
        """
        evaluation = evaluate_choice(choice, with_owned(progress, owned), balance)
        if not evaluation.requires_purchase:
            progress, _ = record_purchase(progress, choice.id)
            return progress, balance, None
        if not evaluation.accessible:
            raise InsufficientFundsError(
                f"balance {balance} is below cost {choice.cost} for choice {choice.id!r}"
            )

        result = await self._transactions.purchase_premium_choice(
            progress.user_id, progress.story_id, choice.id, choice.cost
        )
        if result.success:
            if result.new_balance is None:
                raise PersistenceError(f"purchase of {choice.id!r} reported no balance")
            progress, event = record_purchase(progress, choice.id)
            return progress, result.new_balance, event

        if result.error == "already_purchased":
            # Bought by a concurrent request: owned, not charged.
            progress, _ = record_purchase(progress, choice.id)
            return progress, await self._accounts.get_balance(progress.user_id), None

        error_cls = _PURCHASE_ERRORS.get(result.error or "", EngineError)
        raise error_cls(result.message or "purchase failed")

    async def _emit(self, event: AnalyticsEvent) -> None:
        if self._analytics is None or not self._config.enable_analytics:
            return
        try:
            await self._analytics.track(event)
        except Exception:
            logger.exception("analytics delivery failed for %s event", event.type)
