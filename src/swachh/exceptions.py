"""Domain error taxonomy.

Each error carries the HTTP status the API layer answers with, so the
global handler can translate without knowing the individual types.
"""

from __future__ import annotations


class SwachhError(Exception):
    """Base class for expected, user-facing domain errors."""

    status_code: int = 400
    default_detail: str = "Request could not be processed"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationError(SwachhError):
    """Malformed input, e.g. a negative activity count."""

    status_code = 400
    default_detail = "Invalid input"


class NotFoundError(SwachhError):
    status_code = 404
    default_detail = "Not found"


class PermissionDeniedError(SwachhError):
    status_code = 403
    default_detail = "Not authorized"


class IssueLockedError(SwachhError):
    """The issue has left Pending and can no longer be changed by its creator."""

    status_code = 400
    default_detail = "Only pending issues can be changed"


class ConflictError(SwachhError):
    """Duplicate vote attempt."""

    status_code = 409
    default_detail = "You have already voted on this issue"


class RateLimitExceeded(SwachhError):
    """Issue-creation quota for the current window is used up."""

    status_code = 429
    default_detail = "Issue creation limit exceeded. Please try again later."

    def __init__(self, detail: str | None = None, retry_after: int | None = None) -> None:
        super().__init__(detail)
        self.retry_after = retry_after


class StoreUnavailable(SwachhError):
    """A backing store (database or counter store) could not be reached."""

    status_code = 503
    default_detail = "Service temporarily unavailable"


class RateLimitUnavailable(StoreUnavailable):
    """The counter store behind the issue quota could not be reached."""

    default_detail = "Issue quota service unavailable"
