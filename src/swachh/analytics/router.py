"""Analytics endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from swachh.analytics.schemas import AnalyticsResponse
from swachh.analytics.service import get_analytics
from swachh.auth.dependencies import get_current_user
from swachh.database import get_session
from swachh.db.models import User

router = APIRouter(prefix="/api/v1", tags=["Analytics"])


@router.get("/analytics", response_model=AnalyticsResponse)
async def analytics(
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Issue and vote analytics for the dashboard."""
    return await get_analytics(db)
