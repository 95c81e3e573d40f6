"""Issue and vote business logic.

Every mutation that changes a user's activity counts is followed by a
score reconciliation for that user, so the stored points/badges catch up
immediately instead of waiting for the next read.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import func, or_, select

from swachh.database import store_errors
from swachh.db.models import STATUS_PENDING, Issue, User, Vote
from swachh.exceptions import (
    IssueLockedError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitExceeded,
    RateLimitUnavailable,
    ValidationError,
)
from swachh.gamification.ledger import ActivityLedger
from swachh.gamification.score_engine import reconcile_many, reconcile_user_score
from swachh.users.store import UserStore

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from swachh.gamification.issue_limiter import IssueRateLimiter
    from swachh.issues.schemas import IssueCreateRequest, IssueUpdateRequest

logger = structlog.get_logger()

# Nullable columns an update may set back to null.
_CLEARABLE_FIELDS = frozenset({"image_url", "latitude", "longitude"})


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def issue_to_dict(issue: Issue, author: User, votes: int = 0, user_has_voted: bool = False) -> dict[str, Any]:
    """Flatten an issue for IssueResponse."""
    return {
        "id": issue.id,
        "title": issue.title,
        "description": issue.description,
        "category": issue.category,
        "location": issue.location,
        "image_url": issue.image_url,
        "status": issue.status,
        "created_by": {"id": author.id, "name": author.name},
        "created_at": issue.created_at,
        "latitude": issue.latitude,
        "longitude": issue.longitude,
        "votes": votes,
        "user_has_voted": user_has_voted,
    }


async def _with_votes(db: AsyncSession, issues: list[Issue], viewer_id: int | None) -> list[dict[str, Any]]:
    ledger = ActivityLedger(db)
    issue_ids = [i.id for i in issues]
    vote_counts = await ledger.count_votes_for_issues(issue_ids)
    voted = await ledger.voted_issue_ids(viewer_id, issue_ids) if viewer_id is not None else set()
    return [
        issue_to_dict(i, i.creator, vote_counts.get(i.id, 0), i.id in voted)
        for i in issues
    ]


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def list_issues(
    db: AsyncSession,
    *,
    category: str | None = None,
    status: str | None = None,
    search: str | None = None,
    sort: str = "newest",
    page: int = 1,
    limit: int = 10,
    viewer_id: int | None = None,
) -> dict[str, Any]:
    """Filtered, paginated issue list with vote counts."""
    conditions = []
    if category and category != "all":
        conditions.append(Issue.category == category)
    if status and status != "all":
        conditions.append(Issue.status == status)
    if search:
        pattern = f"%{_escape_like(search)}%"
        conditions.append(
            or_(
                Issue.title.ilike(pattern, escape="\\"),
                Issue.description.ilike(pattern, escape="\\"),
            )
        )

    order = Issue.created_at.asc() if sort == "oldest" else Issue.created_at.desc()

    async with store_errors(db):
        total_result = await db.execute(select(func.count()).select_from(Issue).where(*conditions))
        total = int(total_result.scalar_one())

        result = await db.execute(
            select(Issue)
            .where(*conditions)
            .order_by(order, Issue.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        issues = list(result.scalars().unique())

    return {
        "issues": await _with_votes(db, issues, viewer_id),
        "total_issues": total,
        "total_pages": math.ceil(total / limit) if limit else 0,
        "current_page": page,
    }


async def get_issue(db: AsyncSession, issue_id: int) -> Issue:
    """Fetch an issue or raise NotFoundError."""
    async with store_errors(db):
        issue = await db.get(Issue, issue_id)
    if issue is None:
        raise NotFoundError("Issue not found")
    return issue


async def get_issue_detail(db: AsyncSession, issue_id: int, viewer_id: int | None = None) -> dict[str, Any]:
    issue = await get_issue(db, issue_id)
    return (await _with_votes(db, [issue], viewer_id))[0]


async def list_user_issues(db: AsyncSession, user: User) -> list[dict[str, Any]]:
    """The user's own issues, newest first."""
    async with store_errors(db):
        result = await db.execute(
            select(Issue)
            .where(Issue.created_by == user.id)
            .order_by(Issue.created_at.desc(), Issue.id.desc())
        )
        issues = list(result.scalars().unique())
    return await _with_votes(db, issues, user.id)


async def list_map_issues(db: AsyncSession) -> list[Issue]:
    """Issues that carry both coordinates, newest first."""
    async with store_errors(db):
        result = await db.execute(
            select(Issue)
            .where(Issue.latitude.is_not(None), Issue.longitude.is_not(None))
            .order_by(Issue.created_at.desc(), Issue.id.desc())
        )
        return list(result.scalars().unique())


# ---------------------------------------------------------------------------
# Issue mutations
# ---------------------------------------------------------------------------


async def create_issue(
    db: AsyncSession,
    limiter: IssueRateLimiter,
    user: User,
    body: IssueCreateRequest,
) -> Issue:
    """Create a Pending issue within the user's quota.

    Raises:
        RateLimitExceeded: quota for the current window is used up.
        RateLimitUnavailable: the quota cannot be checked.
    """
    user_id = user.id
    if not await limiter.check_and_increment(user_id):
        raise RateLimitExceeded(retry_after=limiter.window_seconds)

    try:
        async with store_errors(db):
            issue = Issue(
                title=body.title,
                description=body.description,
                category=body.category,
                location=body.location,
                image_url=body.image_url,
                latitude=body.latitude,
                longitude=body.longitude,
                status=STATUS_PENDING,
                created_by=user_id,
            )
            db.add(issue)
            await db.commit()
    except Exception:
        # The slot was consumed for an issue that never got stored.
        await limiter.release(user_id)
        raise

    logger.info("issue_created", issue_id=issue.id, user_id=user_id, category=issue.category)
    await reconcile_user_score(ActivityLedger(db), UserStore(db), user_id)
    return issue


async def _get_editable_issue(db: AsyncSession, user: User, issue_id: int, action: str) -> Issue:
    issue = await get_issue(db, issue_id)
    if issue.created_by != user.id:
        raise PermissionDeniedError(f"Not authorized to {action} this issue")
    if issue.status != STATUS_PENDING:
        raise IssueLockedError(f"Only pending issues can be {action}d")
    return issue


async def update_issue(db: AsyncSession, user: User, issue_id: int, body: IssueUpdateRequest) -> Issue:
    """Creator-only edit of a Pending issue."""
    issue = await _get_editable_issue(db, user, issue_id, "update")

    changes = {
        k: v for k, v in body.model_dump(exclude_unset=True).items() if v is not None or k in _CLEARABLE_FIELDS
    }
    async with store_errors(db):
        for field, value in changes.items():
            setattr(issue, field, value)
        await db.commit()

    logger.info("issue_updated", issue_id=issue.id, user_id=user.id, fields=sorted(changes))
    return issue


async def delete_issue(db: AsyncSession, limiter: IssueRateLimiter, user: User, issue_id: int) -> None:
    """Creator-only delete of a Pending issue, its votes, and one quota slot."""
    issue = await _get_editable_issue(db, user, issue_id, "delete")
    ledger = ActivityLedger(db)

    async with store_errors(db):
        voter_result = await db.execute(
            select(func.distinct(Vote.user_id)).where(Vote.issue_id == issue.id)
        )
        voter_ids = list(voter_result.scalars())
        deleted_votes = await ledger.delete_all_votes_for_issue(issue.id)
        await db.delete(issue)
        await db.commit()

    logger.info("issue_deleted", issue_id=issue_id, user_id=user.id, votes_removed=deleted_votes)

    try:
        await limiter.release(user.id)
    except RateLimitUnavailable:
        logger.warning("issue_quota_release_failed", user_id=user.id, issue_id=issue_id)

    users = UserStore(db)
    await reconcile_user_score(ledger, users, user.id)
    await reconcile_many(ledger, users, [v for v in voter_ids if v != user.id])


# ---------------------------------------------------------------------------
# Votes
# ---------------------------------------------------------------------------


async def cast_vote(db: AsyncSession, user: User, issue_id: int) -> int:
    """Record the user's vote. Returns the issue's new vote total.

    Raises ConflictError if the user already voted on this issue.
    """
    issue = await get_issue(db, issue_id)
    ledger = ActivityLedger(db)
    await ledger.insert_vote(issue.id, user.id)
    logger.info("vote_cast", issue_id=issue.id, user_id=user.id)

    await reconcile_user_score(ledger, UserStore(db), user.id)
    return (await ledger.count_votes_for_issues([issue.id])).get(issue.id, 0)


async def retract_vote(db: AsyncSession, user: User, issue_id: int) -> int:
    """Remove the user's vote. Returns the issue's new vote total."""
    issue = await get_issue(db, issue_id)
    ledger = ActivityLedger(db)
    if await ledger.delete_vote(issue.id, user.id) == 0:
        raise ValidationError("You have not voted on this issue")
    logger.info("vote_retracted", issue_id=issue.id, user_id=user.id)

    await reconcile_user_score(ledger, UserStore(db), user.id)
    return (await ledger.count_votes_for_issues([issue.id])).get(issue.id, 0)
