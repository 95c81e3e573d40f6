"""Per-user issue-creation quota.

Fixed window: the first creation after the counter is absent or expired
starts a ``hours``-long window; at most ``max_issues`` creations fit inside
it. Deleting an issue gives one slot back. Counter keys look like
``issue_limit:<user_id>``.
"""

from __future__ import annotations

import logging

from swachh.counters import CounterStore

logger = logging.getLogger(__name__)


def build_issue_limit_key(user_id: int) -> str:
    return f"issue_limit:{user_id}"


class IssueRateLimiter:
    """Owns both sides of the quota: consuming a slot and giving it back."""

    def __init__(self, store: CounterStore, max_issues: int = 2, hours: int = 24) -> None:
        self.store = store
        self.max_issues = max_issues
        self.hours = hours

    @property
    def window_seconds(self) -> int:
        return self.hours * 3600

    async def check_and_increment(self, user_id: int) -> bool:
        """Consume one slot. Returns True if allowed, False if blocked.

        Increment, window arming and the undo of a blocked attempt happen in
        one atomic store call, so concurrent callers each see a distinct
        count and a counter never survives without its expiry. Blocked
        attempts do not occupy a slot, so a later release() frees exactly
        one creation. Raises RateLimitUnavailable if the store is down.
        """
        key = build_issue_limit_key(user_id)
        if not await self.store.incr_if_below(key, self.max_issues, self.window_seconds):
            logger.info("Issue quota exceeded for user %d (max %d)", user_id, self.max_issues)
            return False
        return True

    async def release(self, user_id: int) -> None:
        """Give one slot back (issue deleted). Clamped at zero; expiry untouched."""
        await self.store.decr_if_positive(build_issue_limit_key(user_id))

    async def remaining(self, user_id: int) -> int:
        """Slots left in the current window."""
        count = await self.store.get(build_issue_limit_key(user_id)) or 0
        return max(0, self.max_issues - count)
