"""Current-user endpoints: /api/v1/users/me/*."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from swachh.auth.dependencies import get_current_user
from swachh.database import get_session
from swachh.db.models import User
from swachh.users import service
from swachh.users.schemas import RescoreResponse, ScoreResponse, UserStatsResponse

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


@router.get("/me/stats", response_model=UserStatsResponse)
async def get_my_stats(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Points, badges, rank and recent activity of the caller."""
    return await service.get_user_stats(db, user)


@router.get("/me/score", response_model=ScoreResponse)
async def get_my_score(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Fresh points and badges (used to refresh the client session)."""
    score = await service.get_score(db, user)
    return ScoreResponse(points=score.points, badges=list(score.badges))


@router.post("/me/rescore", response_model=RescoreResponse)
async def rescore_me(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Recompute the caller's score from their issues and votes."""
    return await service.rescore(db, user)
