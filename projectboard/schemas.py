"""Pydantic request/response models for the HTTP API."""
from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field

from .tagsets import TagSet

PROJECT_DETAIL_FIELDS = {"title", "description", "status", "duration", "size", "postal"}
STUDENT_PROFILE_FIELDS = {
    "first_name",
    "last_name",
    "email",
    "dob",
    "school",
    "degree",
    "major1",
    "major2",
    "resume",
    "linkedin",
    "website",
    "postal",
    "photo_url",
}


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str


class ErrorResponse(BaseModel):
    """Error response."""
    error: str
    detail: str | None = None


class CreatedResponse(BaseModel):
    id: int


class AccountCreate(BaseModel):
    username: str = Field(min_length=1, max_length=255)
    email: str | None = None


# --- tag lists ---------------------------------------------------------------

class TagListsIn(BaseModel):
    """Tag lists on a write. ``null`` or omitted leaves the set unchanged, ``[]`` clears it."""
    skills: list[str] | None = None
    roles: list[str] | None = None
    interests: list[str] | None = None
    fields: list[str] | None = None

    def tag_lists(self) -> dict[TagSet, list[str] | None]:
        return {tag_set: getattr(self, tag_set.plural) for tag_set in TagSet}


class TagListsOut(BaseModel):
    skills: list[str] = Field(default_factory=list)
    roles: list[str] = Field(default_factory=list)
    interests: list[str] = Field(default_factory=list)
    fields: list[str] = Field(default_factory=list)


# --- projects ----------------------------------------------------------------

class ProjectCreate(TagListsIn):
    """Create project request."""
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    status: str | None = Field(default=None, description="Defaults to Active")
    duration: str | None = None
    size: str | None = None
    postal: str | None = Field(default=None, max_length=20)
    exercises: dict[str, str] | None = Field(default=None, description="Role name -> exercise text")

    def details(self) -> dict[str, Any]:
        return self.model_dump(include=PROJECT_DETAIL_FIELDS, exclude_unset=True)


class ProjectUpdate(TagListsIn):
    """Partial project update; only fields present in the body change."""
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    status: str | None = None
    duration: str | None = None
    size: str | None = None
    postal: str | None = Field(default=None, max_length=20)
    exercises: dict[str, str] | None = None

    def details(self) -> dict[str, Any]:
        return self.model_dump(include=PROJECT_DETAIL_FIELDS, exclude_unset=True)


class ProjectOut(TagListsOut):
    id: int
    owner: str
    title: str
    description: str | None = None
    status: str
    duration: str | None = None
    size: str | None = None
    postal: str | None = None
    created_at: datetime
    updated_at: datetime
    exercises: dict[str, str] = Field(default_factory=dict)


# --- students ----------------------------------------------------------------

class StudentCreate(TagListsIn):
    first_name: str = Field(min_length=1, max_length=255)
    last_name: str = Field(min_length=1, max_length=255)
    email: str | None = None
    dob: date | None = None
    school: str | None = None
    degree: str | None = None
    major1: str | None = None
    major2: str | None = None
    resume: str | None = None
    linkedin: str | None = None
    website: str | None = None
    postal: str | None = Field(default=None, max_length=20)
    photo_url: str | None = None

    def profile(self) -> dict[str, Any]:
        return self.model_dump(include=STUDENT_PROFILE_FIELDS, exclude_unset=True)


class StudentUpdate(TagListsIn):
    """Partial profile update; lookup fields take option names."""
    first_name: str | None = Field(default=None, min_length=1, max_length=255)
    last_name: str | None = Field(default=None, min_length=1, max_length=255)
    email: str | None = None
    dob: date | None = None
    school: str | None = None
    degree: str | None = None
    major1: str | None = None
    major2: str | None = None
    resume: str | None = None
    linkedin: str | None = None
    website: str | None = None
    postal: str | None = Field(default=None, max_length=20)
    photo_url: str | None = None

    def profile(self) -> dict[str, Any]:
        return self.model_dump(include=STUDENT_PROFILE_FIELDS, exclude_unset=True)


class StudentOut(TagListsOut):
    id: int
    username: str
    first_name: str
    last_name: str
    email: str | None = None
    dob: date | None = None
    school: str | None = None
    degree: str | None = None
    major1: str | None = None
    major2: str | None = None
    resume: str | None = None
    linkedin: str | None = None
    website: str | None = None
    postal: str | None = None
    photo_url: str | None = None
    joined_at: datetime


# --- contracts ---------------------------------------------------------------

class ContractCreate(BaseModel):
    project_id: int
    student: str = Field(min_length=1, description="Username of the contracted student")
    start_date: date | None = None
    end_date: date | None = None


class ContractStatusUpdate(BaseModel):
    status: str


class ContractOut(BaseModel):
    id: int
    project_id: int
    project_title: str
    student: str
    first_name: str
    last_name: str
    status: str
    start_date: date | None = None
    end_date: date | None = None
    created_at: datetime
    updated_at: datetime


# --- saved lists -------------------------------------------------------------

class SavedProjectOut(BaseModel):
    id: int
    title: str
    status: str


class SavedStudentOut(BaseModel):
    username: str
    first_name: str
    last_name: str


class SavedOut(BaseModel):
    projects: list[SavedProjectOut]
    students: list[SavedStudentOut]


# --- search ------------------------------------------------------------------

class SearchRequest(BaseModel):
    """Shared search body: tag lists, cursor and page size.

    Scalar filters are optional; ``null`` or omitted means unconstrained,
    an empty string is a real filter value.
    """
    skills: list[str] | None = None
    roles: list[str] | None = None
    interests: list[str] | None = None
    cursor: str | None = Field(default=None, description="Token from a previous page's next_cursor")
    page_size: int | None = Field(default=None, ge=1, le=200)

    def tag_sets(self) -> dict[TagSet, list[str] | None]:
        return {TagSet.INTEREST: self.interests, TagSet.SKILL: self.skills, TagSet.ROLE: self.roles}


class ProjectSearchRequest(SearchRequest):
    title: str | None = None
    status: str | None = None
    duration: str | None = None
    size: str | None = None

    def scalars(self) -> dict[str, str | None]:
        return {"title": self.title, "status": self.status, "duration": self.duration, "size": self.size}


class StudentSearchRequest(SearchRequest):
    name: str | None = None
    degree: str | None = None
    major: str | None = None

    def scalars(self) -> dict[str, str | None]:
        return {"name": self.name, "degree": self.degree, "major": self.major}


class SearchHitOut(BaseModel):
    id: int
    score: int
    attributes: dict[str, Any]
    tags: dict[str, list[str]]


class SearchResponse(BaseModel):
    items: list[SearchHitOut]
    next_cursor: str | None
    has_more: bool


class OptionsResponse(BaseModel):
    """Option names keyed by list (skills, durations, degrees, ...)."""
    options: dict[str, list[str]]
