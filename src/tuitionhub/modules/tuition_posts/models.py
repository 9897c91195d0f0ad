"""
Tuition Post Models

A tuition post is a guardian's job listing. Its applications are embedded
in the post row as a JSONB array so that the post and its applications are
always read and written together.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from tuitionhub.modules.shared import BaseModel, enum_type


class PostStatus(str, enum.Enum):
    """Status of a tuition post."""

    ACTIVE = "active"
    FILLED = "filled"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class ApplicationStatus(str, enum.Enum):
    """Status of a tutor's application to a post."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class Priority(str, enum.Enum):
    """Listing priority. Higher priority posts sort first."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


PRIORITY_RANK: dict[Priority, int] = {
    Priority.LOW: 0,
    Priority.MEDIUM: 1,
    Priority.HIGH: 2,
    Priority.URGENT: 3,
}


class TeachingMode(str, enum.Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    BOTH = "both"


class PreferredGender(str, enum.Enum):
    MALE = "male"
    FEMALE = "female"
    ANY = "any"


class SubjectLevel(str, enum.Enum):
    ELEMENTARY = "elementary"
    MIDDLE = "middle"
    HIGH = "high"
    COLLEGE = "college"
    PROFESSIONAL = "professional"


class TuitionPost(BaseModel):
    """
    Guardian's tuition job listing with its embedded applications.

    Document fields (subjects, student_info, requirements, schedule, budget,
    location) are stored as JSONB. The columns under "Search columns" are
    derived from them by ``refresh_search_columns`` and exist only so the
    listing filters can use plain SQL predicates.

    ``version`` is the optimistic concurrency counter: SQLAlchemy adds it to
    the WHERE clause of every UPDATE and raises StaleDataError on mismatch.
    """

    __tablename__ = "tuition_posts"

    guardian_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    # Document fields
    # [{name, level}, ...]
    subjects: Mapped[list] = mapped_column(JSONB, nullable=False)
    # {name, age, grade, current_level, learning_goals}
    student_info: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    # {experience, qualifications, teaching_mode, preferred_gender}
    requirements: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    # {days_per_week, hours_per_session, preferred_times, start_date, duration}
    schedule: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    # {min, max, currency}
    budget: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    # {address, city, state, zip_code, coordinates: {lat, lng}}
    location: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    tags: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)

    status: Mapped[PostStatus] = mapped_column(
        enum_type(PostStatus, "post_status"),
        nullable=False,
        default=PostStatus.ACTIVE,
        index=True,
    )
    priority: Mapped[Priority] = mapped_column(
        enum_type(Priority, "post_priority"),
        nullable=False,
        default=Priority.MEDIUM,
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Stored as JSON array in insertion order:
    # [{id, tutor_id, applied_at, status, cover_letter, proposed_rate, cv}, ...]
    applications: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)

    selected_tutor_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Search columns
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    budget_min: Mapped[float | None] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=True)
    budget_max: Mapped[float | None] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=True)
    teaching_mode: Mapped[TeachingMode] = mapped_column(
        enum_type(TeachingMode, "teaching_mode"),
        nullable=False,
        default=TeachingMode.BOTH,
    )
    subject_names: Mapped[list[str]] = mapped_column(ARRAY(String), nullable=False, default=list)
    levels: Mapped[list[str]] = mapped_column(ARRAY(String), nullable=False, default=list)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_tuition_posts_status_expires_at", "status", "expires_at"),
        Index("ix_tuition_posts_created_at", "created_at"),
        Index("ix_tuition_posts_applications", "applications", postgresql_using="gin"),
    )

    def refresh_search_columns(self) -> None:
        """Re-derive the search columns from the document fields."""
        location = self.location or {}
        budget = self.budget or {}
        requirements = self.requirements or {}
        subjects = self.subjects or []

        self.city = location.get("city") or None
        self.budget_min = budget.get("min")
        self.budget_max = budget.get("max")
        self.teaching_mode = TeachingMode(requirements.get("teaching_mode") or TeachingMode.BOTH)
        self.subject_names = [s["name"] for s in subjects]
        self.levels = sorted({s["level"] for s in subjects})

    def __repr__(self) -> str:
        return f"<TuitionPost(id={self.id}, status={self.status.value}, guardian={self.guardian_id})>"
