"""
Tuition Post Schemas

Pydantic schemas for request validation and response serialization.
Document sub-objects are validated here and stored as their JSON dump.
"""

from datetime import UTC, date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from tuitionhub.modules.tuition_posts.models import (
    ApplicationStatus,
    PostStatus,
    PreferredGender,
    Priority,
    SubjectLevel,
    TeachingMode,
)
from tuitionhub.modules.users.schemas import UserSummary


class SubjectItem(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    level: SubjectLevel


class StudentInfo(BaseModel):
    """Who the tuition is for."""

    name: str | None = Field(None, max_length=200)
    age: int | None = Field(None, ge=1, le=100)
    grade: str | None = Field(None, max_length=50)
    current_level: str | None = Field(None, max_length=200)
    learning_goals: str | None = Field(None, max_length=2000)


class Requirements(BaseModel):
    """What the guardian expects from a tutor."""

    experience: float = Field(0, ge=0)
    qualifications: list[str] = Field(default_factory=list)
    teaching_mode: TeachingMode = TeachingMode.BOTH
    preferred_gender: PreferredGender = PreferredGender.ANY


class Schedule(BaseModel):
    days_per_week: int | None = Field(None, ge=1, le=7)
    hours_per_session: float | None = Field(None, gt=0, le=24)
    preferred_times: list[str] = Field(default_factory=list)
    start_date: date | None = None
    duration: str | None = Field(None, max_length=100)


class Budget(BaseModel):
    min: float | None = Field(None, ge=0)
    max: float | None = Field(None, ge=0)
    currency: str = Field("USD", min_length=3, max_length=3)

    @model_validator(mode="after")
    def validate_range(self) -> "Budget":
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError("budget.min cannot be greater than budget.max")
        return self


class Coordinates(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class Location(BaseModel):
    address: str | None = Field(None, max_length=500)
    city: str | None = Field(None, max_length=100)
    state: str | None = Field(None, max_length=100)
    zip_code: str | None = Field(None, max_length=20)
    coordinates: Coordinates | None = None


class TuitionPostCreate(BaseModel):
    """Request body for POST /tuition-posts."""

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=10000)
    subjects: list[SubjectItem] = Field(..., min_length=1)
    student_info: StudentInfo = Field(default_factory=StudentInfo)
    requirements: Requirements = Field(default_factory=Requirements)
    schedule: Schedule = Field(default_factory=Schedule)
    budget: Budget = Field(default_factory=Budget)
    location: Location = Field(default_factory=Location)
    priority: Priority = Priority.MEDIUM
    tags: list[str] = Field(default_factory=list)
    expires_at: datetime | None = None

    @model_validator(mode="after")
    def validate_post(self) -> "TuitionPostCreate":
        self.title = self.title.strip()
        if not self.title:
            raise ValueError("title cannot be blank")

        if self.expires_at is not None:
            if self.expires_at.tzinfo is None:
                self.expires_at = self.expires_at.replace(tzinfo=UTC)
            if self.expires_at <= datetime.now(UTC):
                raise ValueError("expires_at must be in the future")

        return self


class TuitionPostUpdate(BaseModel):
    """
    Request body for PUT /tuition-posts/{id}.

    Only the fields present in the request are changed. Ownership,
    applications and the selected tutor are not part of this schema.
    The only status a client may set is ``cancelled``.
    """

    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = Field(None, min_length=1, max_length=10000)
    subjects: list[SubjectItem] | None = Field(None, min_length=1)
    student_info: StudentInfo | None = None
    requirements: Requirements | None = None
    schedule: Schedule | None = None
    budget: Budget | None = None
    location: Location | None = None
    priority: Priority | None = None
    tags: list[str] | None = None
    expires_at: datetime | None = None
    status: PostStatus | None = None

    @model_validator(mode="after")
    def validate_update(self) -> "TuitionPostUpdate":
        if self.title is not None:
            self.title = self.title.strip()
            if not self.title:
                raise ValueError("title cannot be blank")
        if self.status is not None and self.status != PostStatus.CANCELLED:
            raise ValueError("status can only be set to 'cancelled'")
        if self.expires_at is not None and self.expires_at.tzinfo is None:
            self.expires_at = self.expires_at.replace(tzinfo=UTC)
        return self


class CVInfo(BaseModel):
    filename: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., min_length=1, max_length=1000)
    uploaded_at: datetime | None = None


class ApplyRequest(BaseModel):
    """Request body for POST /tuition-posts/{id}/apply."""

    cover_letter: str = Field("", max_length=5000)
    proposed_rate: float | None = Field(None, ge=0)
    cv: CVInfo | None = None


class ApplicationStatusUpdate(BaseModel):
    """Request body for PUT /tuition-posts/{post_id}/applications/{application_id}."""

    status: ApplicationStatus

    @model_validator(mode="after")
    def validate_decision(self) -> "ApplicationStatusUpdate":
        if self.status not in (ApplicationStatus.ACCEPTED, ApplicationStatus.REJECTED):
            raise ValueError("status must be 'accepted' or 'rejected'")
        return self


class ApplicationResponse(BaseModel):
    """An embedded application with its tutor resolved for display."""

    id: UUID
    tutor_id: UUID
    tutor: UserSummary | None = None
    applied_at: datetime
    status: ApplicationStatus
    cover_letter: str = ""
    proposed_rate: float | None = None
    cv: CVInfo | None = None


class TuitionPostResponse(BaseModel):
    """A tuition post with guardian, applicants and selected tutor resolved."""

    id: UUID
    guardian_id: UUID
    guardian: UserSummary | None = None
    title: str
    description: str
    subjects: list[SubjectItem]
    student_info: StudentInfo
    requirements: Requirements
    schedule: Schedule
    budget: Budget
    location: Location
    status: PostStatus
    priority: Priority
    tags: list[str]
    expires_at: datetime
    applications: list[ApplicationResponse]
    application_count: int
    selected_tutor_id: UUID | None = None
    selected_tutor: UserSummary | None = None
    created_at: datetime
    updated_at: datetime


class TuitionPostListResponse(BaseModel):
    """Paginated response for GET /tuition-posts."""

    posts: list[TuitionPostResponse]
    total: int
    total_pages: int
    current_page: int


class MyApplicationItem(TuitionPostResponse):
    """A post the tutor applied to, annotated with the tutor's own application."""

    my_application: ApplicationResponse
