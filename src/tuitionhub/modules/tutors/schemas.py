"""
Tutor Profile Schemas

Pydantic schemas for request validation and response serialization.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from tuitionhub.modules.tuition_posts.models import TeachingMode
from tuitionhub.modules.users.schemas import UserSummary


class TutorSubject(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    level: str | None = Field(None, max_length=50)
    price: float | None = Field(None, ge=0)


class Education(BaseModel):
    degree: str | None = Field(None, max_length=200)
    institution: str | None = Field(None, max_length=200)
    year: int | None = Field(None, ge=1900, le=2100)


class AvailabilitySlot(BaseModel):
    day: str = Field(..., min_length=1, max_length=20)
    start_time: str = Field(..., min_length=1, max_length=10)
    end_time: str = Field(..., min_length=1, max_length=10)


class TutorProfileCreate(BaseModel):
    """Request body for POST /tutors."""

    subjects: list[TutorSubject] = Field(default_factory=list)
    experience: float = Field(..., ge=0, description="Years of teaching experience")
    education: Education = Field(default_factory=Education)
    availability: list[AvailabilitySlot] = Field(default_factory=list)
    teaching_modes: list[TeachingMode] = Field(
        default_factory=lambda: [TeachingMode.BOTH], min_length=1
    )
    is_active: bool = True


class TutorProfileUpdate(BaseModel):
    """
    Request body for PUT /tutors/{id}.

    Reviews, rating and owner are managed by the service and cannot be set.
    """

    model_config = ConfigDict(extra="forbid")

    subjects: list[TutorSubject] | None = None
    experience: float | None = Field(None, ge=0)
    education: Education | None = None
    availability: list[AvailabilitySlot] | None = None
    teaching_modes: list[TeachingMode] | None = Field(None, min_length=1)
    is_active: bool | None = None


class ReviewCreate(BaseModel):
    """Request body for POST /tutors/{id}/reviews."""

    rating: int = Field(..., ge=1, le=5)
    comment: str = Field("", max_length=2000)


class ReviewResponse(BaseModel):
    id: UUID
    student_id: UUID
    student: UserSummary | None = None
    rating: int
    comment: str = ""
    created_at: datetime


class TutorProfileResponse(BaseModel):
    id: UUID
    user_id: UUID
    user: UserSummary | None = None
    subjects: list[TutorSubject]
    experience: float
    education: Education
    availability: list[AvailabilitySlot]
    teaching_modes: list[TeachingMode]
    reviews: list[ReviewResponse]
    rating: float
    review_count: int
    is_active: bool
    created_at: datetime
    updated_at: datetime
