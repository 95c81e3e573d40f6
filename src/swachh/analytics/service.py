"""Aggregated issue and vote analytics.

Time bucketing happens in Python over narrow row sets so the same code runs
on PostgreSQL and SQLite. All windows are UTC.
"""

from __future__ import annotations

import math
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select

from swachh.config import get_settings
from swachh.database import store_errors
from swachh.db.models import STATUS_IN_PROGRESS, STATUS_PENDING, STATUS_RESOLVED, Issue, Vote
from swachh.gamification.ledger import ActivityLedger

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; they were written as UTC.
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value.astimezone(timezone.utc)


def percent_change(current: int, previous: int) -> int:
    """Whole-percent change; 100 when growing from zero, 0 when both are zero."""
    if previous > 0:
        return math.floor((current - previous) / previous * 100 + 0.5)
    return 100 if current > 0 else 0


async def _count(db: AsyncSession, model: type, *conditions: Any) -> int:
    result = await db.execute(select(func.count()).select_from(model).where(*conditions))
    return int(result.scalar_one())


async def _issues_by_category(db: AsyncSession) -> list[dict[str, Any]]:
    result = await db.execute(
        select(Issue.category, func.count(Issue.id)).group_by(Issue.category).order_by(Issue.category)
    )
    return [{"name": category, "value": int(count)} for category, count in result]


async def _last_7_days(db: AsyncSession, now: datetime) -> list[dict[str, Any]]:
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    start = today - timedelta(days=6)
    result = await db.execute(select(Issue.created_at).where(Issue.created_at >= start))

    buckets: dict[str, int] = defaultdict(int)
    for (created_at,) in result:
        buckets[_as_utc(created_at).date().isoformat()] += 1

    days = [(start + timedelta(days=i)).date().isoformat() for i in range(7)]
    return [{"date": day, "count": buckets.get(day, 0)} for day in days]


async def _top_voted(db: AsyncSession) -> list[dict[str, Any]]:
    settings = get_settings()
    result = await db.execute(
        select(Issue.id, Issue.title, Issue.category)
        .order_by(Issue.created_at.desc(), Issue.id.desc())
        .limit(settings.analytics_top_voted_pool)
    )
    rows = list(result)
    votes = await ActivityLedger(db).count_votes_for_issues([r.id for r in rows])
    ranked = sorted(
        ({"id": r.id, "title": r.title, "category": r.category, "votes": votes.get(r.id, 0)} for r in rows),
        key=lambda item: -item["votes"],
    )
    return ranked[: settings.analytics_top_voted_count]


async def _response_times(db: AsyncSession) -> dict[str, float]:
    """Average days from report to resolution, per category."""
    result = await db.execute(
        select(Issue.category, Issue.created_at, Issue.updated_at).where(Issue.status == STATUS_RESOLVED)
    )
    totals: dict[str, list[float]] = defaultdict(list)
    for category, created_at, updated_at in result:
        hours = (_as_utc(updated_at) - _as_utc(created_at)).total_seconds() / 3600
        totals[category].append(hours)
    return {
        category: round(sum(hours) / len(hours) / 24, 1)
        for category, hours in sorted(totals.items())
    }


async def get_analytics(db: AsyncSession, now: datetime | None = None) -> dict[str, Any]:
    """Dashboard analytics: distributions, recent volume, top issues and trends."""
    now = _as_utc(now or datetime.now(timezone.utc))
    month_ago = now - timedelta(days=30)
    two_months_ago = now - timedelta(days=60)
    week_ago = now - timedelta(days=7)
    two_weeks_ago = now - timedelta(days=14)

    async with store_errors(db):
        issues_last_month = await _count(db, Issue, Issue.created_at >= month_ago)
        issues_previous_month = await _count(
            db, Issue, Issue.created_at >= two_months_ago, Issue.created_at < month_ago
        )
        votes_last_week = await _count(db, Vote, Vote.created_at >= week_ago)
        votes_previous_week = await _count(
            db, Vote, Vote.created_at >= two_weeks_ago, Vote.created_at < week_ago
        )
        resolved_last_week = await _count(
            db, Issue, Issue.status == STATUS_RESOLVED, Issue.updated_at >= week_ago
        )
        resolved_previous_week = await _count(
            db,
            Issue,
            Issue.status == STATUS_RESOLVED,
            Issue.updated_at >= two_weeks_ago,
            Issue.updated_at < week_ago,
        )

        return {
            "issues_by_category": await _issues_by_category(db),
            "last_7_days": await _last_7_days(db, now),
            "top_voted_issues": await _top_voted(db),
            "total_issues": await _count(db, Issue),
            "total_votes": await _count(db, Vote),
            "open_issues": await _count(db, Issue, Issue.status.in_([STATUS_PENDING, STATUS_IN_PROGRESS])),
            "trends": {
                "issues_trend": percent_change(issues_last_month, issues_previous_month),
                "votes_trend": percent_change(votes_last_week, votes_previous_week),
                "resolution_trend": percent_change(resolved_last_week, resolved_previous_week),
                "response_times": await _response_times(db),
            },
        }
