"""Pydantic response models for gamification endpoints."""

from __future__ import annotations

from pydantic import BaseModel


class LeaderboardEntry(BaseModel):
    id: int
    name: str
    points: int
    badges: list[str]
    total_issues: int
    total_votes: int
    rank: int


class BadgeRuleResponse(BaseModel):
    name: str
    metric: str
    threshold: int


class BadgeRulesResponse(BaseModel):
    badges: list[BadgeRuleResponse]
    points_per_issue: int
    points_per_vote: int
