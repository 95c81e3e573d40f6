"""Deterministic leaderboard ranking.

Users ranked by points DESC; equal points keep their input order (the
query supplies sign-up order). Every position gets its own rank, so ties
do not share a number.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any


def rank_users(users: Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
    """Rank users by points.

    Input: dicts with at least ``points``.
    Output: new dicts in ranked order, each augmented with ``rank`` (1-indexed).
    """
    # sorted() is stable, so equal points preserve input order.
    ordered = sorted(users, key=lambda u: -u.get("points", 0))
    return [{**u, "rank": idx + 1} for idx, u in enumerate(ordered)]
