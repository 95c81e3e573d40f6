"""User store: profile rows and the denormalized score fields."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from swachh.database import store_errors
from swachh.db.models import User
from swachh.exceptions import NotFoundError
from swachh.gamification.score_engine import Score, canonical_badges


class UserStore:
    """Reads and writes ``users`` over one database session."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def find_by_subject(self, auth_subject: str) -> User | None:
        async with store_errors(self.db):
            result = await self.db.execute(select(User).where(User.auth_subject == auth_subject))
            return result.scalar_one_or_none()

    async def get_or_create(self, auth_subject: str, name: str | None = None, email: str | None = None) -> User:
        """Look up a user by identity-provider subject, provisioning on first sight.

        Two first requests for the same subject can race; the loser's insert
        hits the unique constraint and it returns the winner's row instead.
        """
        user = await self.find_by_subject(auth_subject)
        if user is not None:
            return user

        async with store_errors(self.db):
            user = User(auth_subject=auth_subject, name=name or "Citizen", email=email, points=0, badges=[])
            self.db.add(user)
            try:
                await self.db.commit()
            except IntegrityError:
                await self.db.rollback()
                result = await self.db.execute(select(User).where(User.auth_subject == auth_subject))
                return result.scalar_one()
            return user

    async def get_score_fields(self, user_id: int) -> Score:
        async with store_errors(self.db):
            result = await self.db.execute(select(User.points, User.badges).where(User.id == user_id))
            row = result.one_or_none()
        if row is None:
            raise NotFoundError("User not found")
        return Score(points=row.points or 0, badges=tuple(row.badges or ()))

    async def get_score_fields_many(self, user_ids: Sequence[int]) -> dict[int, Score]:
        async with store_errors(self.db):
            result = await self.db.execute(
                select(User.id, User.points, User.badges).where(User.id.in_(user_ids))
            )
            return {
                row.id: Score(points=row.points or 0, badges=tuple(row.badges or ()))
                for row in result
            }

    async def set_score_fields(self, user_id: int, points: int, badges: Sequence[str]) -> None:
        """Overwrite points and badges in a single statement and commit."""
        async with store_errors(self.db):
            await self.db.execute(
                update(User)
                .where(User.id == user_id)
                .values(points=points, badges=list(canonical_badges(badges)))
            )
            await self.db.commit()

    async def set_score_fields_many(self, scores: Mapping[int, tuple[int, Sequence[str]]]) -> None:
        """Overwrite several users' score fields in one transaction."""
        async with store_errors(self.db):
            for user_id, (points, badges) in scores.items():
                await self.db.execute(
                    update(User)
                    .where(User.id == user_id)
                    .values(points=points, badges=list(canonical_badges(badges)))
                )
            await self.db.commit()

    async def list_users_by_points_descending(self, limit: int) -> list[User]:
        """Top users by stored points; ties in sign-up order."""
        async with store_errors(self.db):
            result = await self.db.execute(
                select(User)
                .order_by(User.points.desc(), User.created_at.asc(), User.id.asc())
                .limit(limit)
            )
            return list(result.scalars())

    async def signup_order(self, user_ids: Sequence[int]) -> list[int]:
        """``user_ids`` sorted by sign-up time, then id."""
        async with store_errors(self.db):
            result = await self.db.execute(
                select(User.id).where(User.id.in_(user_ids)).order_by(User.created_at.asc(), User.id.asc())
            )
            return list(result.scalars())

    async def position_of(self, user: User, points: int) -> int:
        """1-based position of ``user`` in the full points ordering."""
        ahead = or_(
            User.points > points,
            and_(
                User.points == points,
                or_(
                    User.created_at < user.created_at,
                    and_(User.created_at == user.created_at, User.id < user.id),
                ),
            ),
        )
        async with store_errors(self.db):
            result = await self.db.execute(select(func.count()).select_from(User).where(ahead))
            return int(result.scalar_one()) + 1

    async def list_ids_after(self, after_id: int, limit: int) -> list[int]:
        """Keyset page of user ids in ascending order."""
        async with store_errors(self.db):
            result = await self.db.execute(
                select(User.id).where(User.id > after_id).order_by(User.id.asc()).limit(limit)
            )
            return list(result.scalars())
