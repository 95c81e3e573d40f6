"""Pydantic request/response models for issue endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

IssueCategory = Literal["Road", "Water", "Sanitation", "Electricity", "Other"]
IssueStatus = Literal["Pending", "In Progress", "Resolved"]


class _Coordinates(BaseModel):
    latitude: float | None = Field(None, ge=-90, le=90)
    longitude: float | None = Field(None, ge=-180, le=180)

    @model_validator(mode="after")
    def _both_or_neither(self):
        if (self.latitude is None) != (self.longitude is None):
            msg = "latitude and longitude must be provided together"
            raise ValueError(msg)
        return self


# --- Requests ---


class IssueCreateRequest(_Coordinates):
    title: str = Field(min_length=1, max_length=100)
    description: str = Field(min_length=1, max_length=1000)
    category: IssueCategory
    location: str = Field(min_length=1, max_length=100)
    image_url: str | None = None


class IssueUpdateRequest(_Coordinates):
    """Partial update; omitted fields keep their current value.

    ``null`` clears ``image_url`` and the coordinates; on the required text
    fields it is ignored. Coordinates are sent or cleared as a pair.
    """

    title: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = Field(None, min_length=1, max_length=1000)
    category: IssueCategory | None = None
    location: str | None = Field(None, min_length=1, max_length=100)
    image_url: str | None = None

    @model_validator(mode="after")
    def _coordinates_as_pair(self):
        if len({"latitude", "longitude"} & self.model_fields_set) == 1:
            msg = "latitude and longitude must be provided together"
            raise ValueError(msg)
        return self


# --- Responses ---


class IssueAuthor(BaseModel):
    id: int
    name: str


class IssueResponse(BaseModel):
    id: int
    title: str
    description: str
    category: str
    location: str
    image_url: str | None = None
    status: str
    created_by: IssueAuthor
    created_at: datetime
    latitude: float | None = None
    longitude: float | None = None
    votes: int = 0
    user_has_voted: bool = False


class IssueListResponse(BaseModel):
    issues: list[IssueResponse]
    total_issues: int
    total_pages: int
    current_page: int


class VoteResponse(BaseModel):
    votes: int
    user_has_voted: bool


class MapIssueResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    category: str
    status: str
    location: str
    latitude: float
    longitude: float
    created_at: datetime


class MessageResponse(BaseModel):
    message: str
