"""Leaderboard assembly: capped candidate set, batch reconcile, rank."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from swachh.gamification.ledger import ActivityLedger
from swachh.gamification.ranking import rank_users
from swachh.gamification.score_engine import reconcile_many
from swachh.users.store import UserStore

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


async def get_leaderboard(db: AsyncSession, limit: int = 50) -> list[dict[str, Any]]:
    """Top ``limit`` users by points, each with a freshly reconciled score.

    Reconciliation can move a user's points, so ranking happens after it.
    The stored-points order of the candidates may be stale, so entries are
    fed to the ranker in sign-up order and equal reconciled points keep it.
    """
    ledger = ActivityLedger(db)
    users = UserStore(db)

    candidates = {u.id: u for u in await users.list_users_by_points_descending(limit)}
    user_ids = list(candidates)
    scores = await reconcile_many(ledger, users, user_ids)
    issue_counts = await ledger.count_issues_for_users(user_ids)
    vote_counts = await ledger.count_votes_for_users(user_ids)

    entries = [
        {
            "id": user_id,
            "name": candidates[user_id].name,
            "points": scores[user_id].points,
            "badges": list(scores[user_id].badges),
            "total_issues": issue_counts.get(user_id, 0),
            "total_votes": vote_counts.get(user_id, 0),
        }
        for user_id in await users.signup_order(user_ids)
        if user_id in scores
    ]
    return rank_users(entries)
