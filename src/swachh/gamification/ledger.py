"""Activity ledger: who created which issues and cast which votes.

Owns no state of its own: every answer is a fresh query over the issues and
votes tables.
"""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from swachh.database import store_errors
from swachh.db.models import Issue, Vote
from swachh.exceptions import ConflictError


class ActivityLedger:
    """Counts and vote membership facts over one database session."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def count_issues_created_by(self, user_id: int) -> int:
        async with store_errors(self.db):
            result = await self.db.execute(
                select(func.count()).select_from(Issue).where(Issue.created_by == user_id)
            )
            return int(result.scalar_one())

    async def count_votes_cast_by(self, user_id: int) -> int:
        async with store_errors(self.db):
            result = await self.db.execute(
                select(func.count()).select_from(Vote).where(Vote.user_id == user_id)
            )
            return int(result.scalar_one())

    async def count_issues_for_users(self, user_ids: Sequence[int]) -> dict[int, int]:
        """Issue counts keyed by creator; users with none are absent."""
        async with store_errors(self.db):
            result = await self.db.execute(
                select(Issue.created_by, func.count(Issue.id))
                .where(Issue.created_by.in_(user_ids))
                .group_by(Issue.created_by)
            )
            return {uid: int(cnt) for uid, cnt in result}

    async def count_votes_for_users(self, user_ids: Sequence[int]) -> dict[int, int]:
        """Vote counts keyed by voter; users with none are absent."""
        async with store_errors(self.db):
            result = await self.db.execute(
                select(Vote.user_id, func.count(Vote.id))
                .where(Vote.user_id.in_(user_ids))
                .group_by(Vote.user_id)
            )
            return {uid: int(cnt) for uid, cnt in result}

    async def count_votes_for_issues(self, issue_ids: Sequence[int]) -> dict[int, int]:
        """Vote totals keyed by issue; issues without votes are absent."""
        if not issue_ids:
            return {}
        async with store_errors(self.db):
            result = await self.db.execute(
                select(Vote.issue_id, func.count(Vote.id))
                .where(Vote.issue_id.in_(issue_ids))
                .group_by(Vote.issue_id)
            )
            return {iid: int(cnt) for iid, cnt in result}

    async def voted_issue_ids(self, user_id: int, issue_ids: Sequence[int]) -> set[int]:
        """Subset of ``issue_ids`` the user has voted on."""
        if not issue_ids:
            return set()
        async with store_errors(self.db):
            result = await self.db.execute(
                select(Vote.issue_id).where(Vote.user_id == user_id, Vote.issue_id.in_(issue_ids))
            )
            return set(result.scalars())

    async def vote_exists(self, issue_id: int, user_id: int) -> bool:
        async with store_errors(self.db):
            result = await self.db.execute(
                select(Vote.id).where(Vote.issue_id == issue_id, Vote.user_id == user_id)
            )
            return result.scalar_one_or_none() is not None

    async def insert_vote(self, issue_id: int, user_id: int) -> Vote:
        """Insert a vote and commit.

        The (issue_id, user_id) unique constraint is the arbiter: a concurrent
        or repeated attempt fails with ConflictError and stores nothing.
        """
        async with store_errors(self.db):
            vote = Vote(issue_id=issue_id, user_id=user_id)
            self.db.add(vote)
            try:
                await self.db.commit()
            except IntegrityError as exc:
                await self.db.rollback()
                raise ConflictError from exc
            return vote

    async def delete_vote(self, issue_id: int, user_id: int) -> int:
        """Delete the user's vote on the issue and commit. Returns rows deleted (0 or 1)."""
        async with store_errors(self.db):
            result = await self.db.execute(
                delete(Vote).where(Vote.issue_id == issue_id, Vote.user_id == user_id)
            )
            await self.db.commit()
            return int(result.rowcount or 0)

    async def delete_all_votes_for_issue(self, issue_id: int) -> int:
        """Delete every vote on the issue (not committed; part of issue deletion)."""
        async with store_errors(self.db):
            result = await self.db.execute(delete(Vote).where(Vote.issue_id == issue_id))
            return int(result.rowcount or 0)
