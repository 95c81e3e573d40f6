"""User profile, stats and score refresh logic."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import func, select

from swachh.database import store_errors
from swachh.db.models import STATUS_RESOLVED, Issue, User, Vote
from swachh.gamification.ledger import ActivityLedger
from swachh.gamification.score_engine import POINTS_PER_ISSUE, POINTS_PER_VOTE, Score, reconcile_user_score
from swachh.users.store import UserStore

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()

RECENT_ACTIVITY_LIMIT = 5


async def get_score(db: AsyncSession, user: User) -> Score:
    """The user's authoritative score (stored copy repaired if it drifted)."""
    return await reconcile_user_score(ActivityLedger(db), UserStore(db), user.id)


async def rescore(db: AsyncSession, user: User) -> dict[str, Any]:
    """Recompute the user's score from scratch and report the counts behind it."""
    ledger = ActivityLedger(db)
    score = await reconcile_user_score(ledger, UserStore(db), user.id)
    return {
        "points": score.points,
        "badges": list(score.badges),
        "issues_count": await ledger.count_issues_created_by(user.id),
        "votes_count": await ledger.count_votes_cast_by(user.id),
    }


async def _recent_activity(db: AsyncSession, user_id: int) -> list[dict[str, Any]]:
    async with store_errors(db):
        issue_rows = await db.execute(
            select(Issue.title, Issue.created_at)
            .where(Issue.created_by == user_id)
            .order_by(Issue.created_at.desc())
            .limit(RECENT_ACTIVITY_LIMIT)
        )
        vote_rows = await db.execute(
            select(Issue.title, Vote.created_at)
            .join(Issue, Vote.issue_id == Issue.id)
            .where(Vote.user_id == user_id)
            .order_by(Vote.created_at.desc())
            .limit(RECENT_ACTIVITY_LIMIT)
        )

    items = [
        {
            "type": "issue_reported",
            "description": f"Reported: {row.title}",
            "points": POINTS_PER_ISSUE,
            "date": row.created_at,
        }
        for row in issue_rows
    ] + [
        {
            "type": "vote_cast",
            "description": f"Voted on: {row.title}",
            "points": POINTS_PER_VOTE,
            "date": row.created_at,
        }
        for row in vote_rows
    ]
    items.sort(key=lambda item: item["date"], reverse=True)
    return items[:RECENT_ACTIVITY_LIMIT]


async def get_user_stats(db: AsyncSession, user: User) -> dict[str, Any]:
    """Profile stats: reconciled score, activity totals, rank, recent activity."""
    ledger = ActivityLedger(db)
    users = UserStore(db)
    score = await reconcile_user_score(ledger, users, user.id)

    async with store_errors(db):
        resolved = await db.execute(
            select(func.count())
            .select_from(Issue)
            .where(Issue.created_by == user.id, Issue.status == STATUS_RESOLVED)
        )
        issues_resolved = int(resolved.scalar_one())

    return {
        "total_issues": await ledger.count_issues_created_by(user.id),
        "total_votes": await ledger.count_votes_cast_by(user.id),
        "points": score.points,
        "badges": list(score.badges),
        "rank": await users.position_of(user, score.points),
        "issues_resolved": issues_resolved,
        "recent_activity": await _recent_activity(db, user.id),
    }
