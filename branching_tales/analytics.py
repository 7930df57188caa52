"""Analytics sinks — where navigation and purchase events are delivered.

The engine hands every event to a sink matching the protocol:

    async def track(self, event: AnalyticsEvent) -> None: ...

Delivery is fire-and-forget from the engine's point of view: a sink may raise,
and the engine logs and drops the error without affecting the navigation.

Two implementations are provided:

    EventTracker:      bounded in-memory buffer with the queries behind the
                       /api/analytics endpoints (conversion, popularity).
    HttpAnalyticsSink: POSTs each event as JSON to an external collector.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import timedelta
from typing import Protocol

import httpx
from pydantic import BaseModel

from branching_tales.errors import AnalyticsError
from branching_tales.models import AnalyticsEvent, EventType, utcnow

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol: every sink must match this signature
# ---------------------------------------------------------------------------

class AnalyticsSink(Protocol):
    async def track(self, event: AnalyticsEvent) -> None: ...


class ConversionMetrics(BaseModel):
    total_page_views: int
    unique_users: int
    purchase_attempts: int
    completions: int
    conversion_rate: float  # purchases per 100 page views


# ---------------------------------------------------------------------------
# EventTracker: in-process buffer
# ---------------------------------------------------------------------------

class EventTracker:
    """Keeps the most recent events in memory.

    When the buffer reaches `max_events` it is trimmed to the newest half.

    Args:
        max_events: Buffer size that triggers a trim. Defaults to 1000.
    """

    def __init__(self, max_events: int = 1000) -> None:
        self._max_events = max_events
        self._events: list[AnalyticsEvent] = []

    @property
    def max_events(self) -> int:
        return self._max_events

    @max_events.setter
    def max_events(self, value: int) -> None:
        self._max_events = value
        if len(self._events) >= value:
            self._flush()

    async def track(self, event: AnalyticsEvent) -> None:
        self._events.append(event)
        if event.type in ("purchase_attempt", "story_completed"):
            logger.info(
                "analytics %s user=%s story=%s page=%s choice=%s",
                event.type, event.user_id, event.story_id, event.page_id, event.choice_id,
            )
        if len(self._events) >= self._max_events:
            self._flush()

    def _flush(self) -> None:
        keep = self._max_events // 2
        logger.debug("analytics buffer full, keeping newest %d of %d", keep, len(self._events))
        self._events = self._events[-keep:] if keep else []

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def recent_events(self, limit: int = 100) -> list[AnalyticsEvent]:
        return self._events[-limit:]

    def events_by_type(self, type: EventType, limit: int = 50) -> list[AnalyticsEvent]:
        return [e for e in self._events if e.type == type][-limit:]

    def user_events(self, user_id: str, limit: int = 50) -> list[AnalyticsEvent]:
        return [e for e in self._events if e.user_id == user_id][-limit:]

    def story_events(self, story_id: str, limit: int = 50) -> list[AnalyticsEvent]:
        return [e for e in self._events if e.story_id == story_id][-limit:]

    def conversion_metrics(self, story_id: str | None = None) -> ConversionMetrics:
        events = self._events
        if story_id is not None:
            events = [e for e in events if e.story_id == story_id]

        page_views = sum(1 for e in events if e.type == "page_view")
        purchases = sum(1 for e in events if e.type == "purchase_attempt")
        return ConversionMetrics(
            total_page_views=page_views,
            unique_users=len({e.user_id for e in events}),
            purchase_attempts=purchases,
            completions=sum(1 for e in events if e.type == "story_completed"),
            conversion_rate=(purchases / page_views * 100) if page_views else 0.0,
        )

    def choice_popularity(self, story_id: str | None = None) -> dict[str, int]:
        """How often each choice was followed, counted from choice_made events."""
        counts: Counter[str] = Counter()
        for e in self._events:
            if e.type != "choice_made" or e.choice_id is None:
                continue
            if story_id is not None and e.story_id != story_id:
                continue
            counts[e.choice_id] += 1
        return dict(counts)

    def clear_old_events(self, days_old: int = 7) -> int:
        """Drop events older than `days_old` days. Returns how many were dropped."""
        cutoff = utcnow() - timedelta(days=days_old)
        before = len(self._events)
        self._events = [e for e in self._events if e.timestamp > cutoff]
        return before - len(self._events)


# ---------------------------------------------------------------------------
# HttpAnalyticsSink: forwards to an external collector
# ---------------------------------------------------------------------------

class HttpAnalyticsSink:
    """Async HTTP client posting one JSON document per event.

    Args:
        collector_url: Endpoint receiving POSTed events.
        api_key:       Bearer token, or empty string if not required.
        timeout:       HTTP timeout in seconds. Defaults to 5.
    """

    def __init__(self, collector_url: str, api_key: str = "", timeout: float = 5.0) -> None:
        self._url = collector_url
        self._api_key = api_key
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def track(self, event: AnalyticsEvent) -> None:
        body = event.model_dump(mode="json")
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(self._url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise AnalyticsError(f"Cannot connect to analytics collector at {self._url}") from e
        except httpx.HTTPStatusError as e:
            raise AnalyticsError(
                f"Analytics collector returned HTTP {e.response.status_code}"
            ) from e
        except httpx.TimeoutException as e:
            raise AnalyticsError(f"Analytics collector timed out after {self._timeout}s") from e
        logger.debug("analytics event %s delivered to %s", event.type, self._url)


class FanOutSink:
    """Delivers each event to several sinks; one failing does not stop the rest."""

    def __init__(self, *sinks: AnalyticsSink) -> None:
        self._sinks = sinks

    async def track(self, event: AnalyticsEvent) -> None:
        failures: list[str] = []
        for sink in self._sinks:
            try:
                await sink.track(event)
            except AnalyticsError as e:
                failures.append(str(e))
        if failures:
            raise AnalyticsError("; ".join(failures))
