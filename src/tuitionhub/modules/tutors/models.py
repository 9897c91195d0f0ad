"""
Tutor Profile Models

One profile per tutor user. Reviews are embedded as a JSONB array and the
rating is the mean of their scores, recomputed on every new review.
"""

import uuid

from sqlalchemy import Boolean, Float, ForeignKey, Integer, Numeric, String
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from tuitionhub.modules.shared import BaseModel


class TutorProfile(BaseModel):
    """Teaching profile of a tutor user."""

    __tablename__ = "tutor_profiles"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )

    # [{name, level, price}, ...]
    subjects: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    experience: Mapped[float] = mapped_column(Float, nullable=False)
    # {degree, institution, year}
    education: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    # [{day, start_time, end_time}, ...]
    availability: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    teaching_modes: Mapped[list] = mapped_column(JSONB, nullable=False, default=lambda: ["both"])

    # Stored as JSON array: [{id, student_id, rating, comment, created_at}, ...]
    reviews: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    rating: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, index=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Search columns
    subject_names: Mapped[list[str]] = mapped_column(ARRAY(String), nullable=False, default=list)
    min_price: Mapped[float | None] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=True)
    max_price: Mapped[float | None] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=True)

    __mapper_args__ = {"version_id_col": version}

    def refresh_search_columns(self) -> None:
        """Re-derive the search columns from ``subjects``."""
        subjects = self.subjects or []
        prices = [s["price"] for s in subjects if s.get("price") is not None]

        self.subject_names = [s["name"] for s in subjects]
        self.min_price = min(prices) if prices else None
        self.max_price = max(prices) if prices else None

    def __repr__(self) -> str:
        return f"<TutorProfile(id={self.id}, user={self.user_id}, rating={self.rating})>"
