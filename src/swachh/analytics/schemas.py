"""Pydantic response models for analytics."""

from __future__ import annotations

from pydantic import BaseModel


class CategoryCount(BaseModel):
    name: str
    value: int


class DayCount(BaseModel):
    date: str
    count: int


class TopVotedIssue(BaseModel):
    id: int
    title: str
    category: str
    votes: int


class Trends(BaseModel):
    issues_trend: int
    votes_trend: int
    resolution_trend: int
    response_times: dict[str, float]


class AnalyticsResponse(BaseModel):
    issues_by_category: list[CategoryCount]
    last_7_days: list[DayCount]
    top_voted_issues: list[TopVotedIssue]
    total_issues: int
    total_votes: int
    open_issues: int
    trends: Trends
