"""Gamification endpoints: leaderboard and badge rules."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from swachh.auth.dependencies import get_current_user
from swachh.config import get_settings
from swachh.database import get_session
from swachh.db.models import User
from swachh.gamification.schemas import BadgeRuleResponse, BadgeRulesResponse, LeaderboardEntry
from swachh.gamification.score_engine import BADGE_RULES, POINTS_PER_ISSUE, POINTS_PER_VOTE
from swachh.gamification.service import get_leaderboard

router = APIRouter(prefix="/api/v1", tags=["Gamification"])


@router.get("/leaderboard", response_model=list[LeaderboardEntry])
async def leaderboard(
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Top citizens by points."""
    return await get_leaderboard(db, limit=get_settings().leaderboard_size)


@router.get("/badges", response_model=BadgeRulesResponse)
async def list_badges():
    """Badge thresholds and point values, in display order."""
    return BadgeRulesResponse(
        badges=[
            BadgeRuleResponse(name=r.name, metric=r.metric, threshold=r.threshold)
            for r in BADGE_RULES
        ],
        points_per_issue=POINTS_PER_ISSUE,
        points_per_vote=POINTS_PER_VOTE,
    )
