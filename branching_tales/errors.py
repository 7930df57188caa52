"""Engine error taxonomy.

Every failure the engine can report is an EngineError subclass with a stable
`code`. The engine turns these into failed NavigationResults; the HTTP layer
maps the codes onto status codes. Only `user_message` is ever shown to a
reader, so storage details stay in the logs.
"""

from __future__ import annotations

from branching_tales.models import ErrorCode


class EngineError(RuntimeError):
    """Base class for all engine failures."""

    code: ErrorCode = "navigation_failed"
    user_message = "Navigation failed"


class NotFoundError(EngineError):
    """A referenced story, page or choice does not exist."""

    code: ErrorCode = "not_found"
    user_message = "The requested story content could not be found"


class InsufficientFundsError(EngineError):
    """The reader cannot afford a premium choice."""

    code: ErrorCode = "insufficient_funds"
    user_message = "Not enough currency to unlock this choice"


class AlreadyPurchasedError(EngineError):
    """The purchase already exists. Benign: the choice is accessible."""

    code: ErrorCode = "already_purchased"
    user_message = "You already own this choice"


class PersistenceError(EngineError):
    """The underlying store failed; nothing was written."""

    code: ErrorCode = "persistence_failure"


class InvalidRequestError(EngineError):
    """The navigation request cannot be resolved to a page."""

    code: ErrorCode = "invalid_request"
    user_message = "Invalid navigation request"


class AnalyticsError(RuntimeError):
    """Raised by analytics sinks. Never propagated past the engine."""
