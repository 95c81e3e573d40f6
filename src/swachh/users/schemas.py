"""Pydantic response models for user endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel


class ScoreResponse(BaseModel):
    points: int
    badges: list[str]


class RescoreResponse(ScoreResponse):
    issues_count: int
    votes_count: int


class ActivityItem(BaseModel):
    type: Literal["issue_reported", "vote_cast"]
    description: str
    points: int
    date: datetime


class UserStatsResponse(BaseModel):
    total_issues: int
    total_votes: int
    points: int
    badges: list[str]
    rank: int
    issues_resolved: int
    recent_activity: list[ActivityItem]
