"""Shared FastAPI dependencies."""

from fastapi import Depends

from swachh.config import get_settings
from swachh.counters import CounterStore, get_counter_store
from swachh.gamification.issue_limiter import IssueRateLimiter


def get_issue_limiter(store: CounterStore = Depends(get_counter_store)) -> IssueRateLimiter:  # noqa: B008
    """Issue-creation quota configured from settings."""
    settings = get_settings()
    return IssueRateLimiter(store, max_issues=settings.issue_limit_max, hours=settings.issue_limit_hours)
