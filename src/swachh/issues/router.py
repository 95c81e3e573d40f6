"""Issue, vote and map endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from swachh.auth.dependencies import get_current_user, get_optional_user
from swachh.database import get_session
from swachh.db.models import User
from swachh.dependencies import get_issue_limiter
from swachh.gamification.issue_limiter import IssueRateLimiter
from swachh.issues import service
from swachh.issues.schemas import (
    IssueCreateRequest,
    IssueListResponse,
    IssueResponse,
    IssueUpdateRequest,
    MapIssueResponse,
    MessageResponse,
    VoteResponse,
)

router = APIRouter(prefix="/api/v1", tags=["Issues"])


@router.get("/issues", response_model=IssueListResponse)
async def list_issues(
    category: str | None = Query(None),
    status: str | None = Query(None),
    search: str | None = Query(None, max_length=100),
    sort: str = Query("newest", pattern="^(newest|oldest)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_session),
):
    """Browse issues with filters and pagination."""
    return await service.list_issues(
        db,
        category=category,
        status=status,
        search=search,
        sort=sort,
        page=page,
        limit=limit,
        viewer_id=viewer.id if viewer else None,
    )


@router.post("/issues", response_model=IssueResponse, status_code=201)
async def create_issue(
    body: IssueCreateRequest,
    response: Response,
    user: User = Depends(get_current_user),
    limiter: IssueRateLimiter = Depends(get_issue_limiter),
    db: AsyncSession = Depends(get_session),
):
    """Report a new issue (counts against the daily quota)."""
    issue = await service.create_issue(db, limiter, user, body)
    response.headers["X-IssueLimit-Limit"] = str(limiter.max_issues)
    response.headers["X-IssueLimit-Remaining"] = str(await limiter.remaining(user.id))
    return service.issue_to_dict(issue, user)


@router.get("/issues/mine", response_model=list[IssueResponse])
async def list_my_issues(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Issues reported by the caller."""
    return await service.list_user_issues(db, user)


@router.get("/issues/{issue_id}", response_model=IssueResponse)
async def get_issue(
    issue_id: int,
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_session),
):
    """Single issue with vote count."""
    return await service.get_issue_detail(db, issue_id, viewer.id if viewer else None)


@router.patch("/issues/{issue_id}", response_model=IssueResponse)
async def update_issue(
    issue_id: int,
    body: IssueUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Edit a pending issue (creator only)."""
    await service.update_issue(db, user, issue_id, body)
    return await service.get_issue_detail(db, issue_id, user.id)


@router.delete("/issues/{issue_id}", response_model=MessageResponse)
async def delete_issue(
    issue_id: int,
    user: User = Depends(get_current_user),
    limiter: IssueRateLimiter = Depends(get_issue_limiter),
    db: AsyncSession = Depends(get_session),
):
    """Delete a pending issue and its votes (creator only)."""
    await service.delete_issue(db, limiter, user, issue_id)
    return MessageResponse(message="Issue deleted successfully")


@router.post("/issues/{issue_id}/vote", response_model=VoteResponse)
async def cast_vote(
    issue_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Vote on an issue. 409 if already voted."""
    votes = await service.cast_vote(db, user, issue_id)
    return VoteResponse(votes=votes, user_has_voted=True)


@router.delete("/issues/{issue_id}/vote", response_model=VoteResponse)
async def retract_vote(
    issue_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Withdraw the caller's vote."""
    votes = await service.retract_vote(db, user, issue_id)
    return VoteResponse(votes=votes, user_has_voted=False)


@router.get("/map", response_model=list[MapIssueResponse])
async def map_issues(db: AsyncSession = Depends(get_session)):
    """Geo-tagged issues for the map view."""
    return await service.list_map_issues(db)
