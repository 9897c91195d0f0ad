"""
Tutor Profiles Repository

Database operations for tutor profiles and their embedded reviews.
"""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tuitionhub.modules.shared.filters import contains_pattern
from tuitionhub.modules.tutors.models import TutorProfile
from tuitionhub.modules.tutors.schemas import TutorProfileCreate

MAX_LISTED_PROFILES = 50


async def create(db: AsyncSession, *, user_id: UUID, data: TutorProfileCreate) -> TutorProfile:
    """Create the tutor profile of ``user_id``."""
    profile = TutorProfile(
        user_id=user_id,
        subjects=[s.model_dump(mode="json") for s in data.subjects],
        experience=data.experience,
        education=data.education.model_dump(mode="json"),
        availability=[a.model_dump(mode="json") for a in data.availability],
        teaching_modes=[m.value for m in data.teaching_modes],
        reviews=[],
        rating=0.0,
        is_active=data.is_active,
    )
    profile.refresh_search_columns()

    db.add(profile)
    await db.commit()
    await db.refresh(profile)

    return profile


async def get_by_id(db: AsyncSession, id: UUID) -> TutorProfile | None:
    """Get a profile by ID, always re-reading the row."""
    result = await db.execute(
        select(TutorProfile)
        .where(TutorProfile.id == id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_by_user_id(db: AsyncSession, user_id: UUID) -> TutorProfile | None:
    result = await db.execute(select(TutorProfile).where(TutorProfile.user_id == user_id))
    return result.scalar_one_or_none()


async def save(db: AsyncSession, profile: TutorProfile) -> TutorProfile:
    """
    Persist pending changes on ``profile`` in one commit.

    Raises:
        sqlalchemy.orm.exc.StaleDataError: If another writer updated the
            profile since it was read
    """
    profile.refresh_search_columns()
    await db.commit()
    await db.refresh(profile)
    return profile


async def list_profiles(
    db: AsyncSession,
    *,
    subject: str | None = None,
    min_price: float | None = None,
    max_price: float | None = None,
    min_rating: float | None = None,
    limit: int = MAX_LISTED_PROFILES,
) -> list[TutorProfile]:
    """
    Active profiles matching the filters, best rated first, then newest.

    Args:
        subject: Case-insensitive substring of any subject name
        min_price: Some subject is priced at or above this
        max_price: Some subject is priced at or below this
        min_rating: Rating at least this
        limit: Maximum records to return (capped at 50)
    """
    query = select(TutorProfile).where(TutorProfile.is_active.is_(True))

    if subject:
        query = query.where(
            func.array_to_string(TutorProfile.subject_names, "|").ilike(
                contains_pattern(subject)
            )
        )

    if min_price is not None:
        query = query.where(TutorProfile.max_price >= min_price)

    if max_price is not None:
        query = query.where(TutorProfile.min_price <= max_price)

    if min_rating is not None:
        query = query.where(TutorProfile.rating >= min_rating)

    query = query.order_by(TutorProfile.rating.desc(), TutorProfile.created_at.desc()).limit(
        min(limit, MAX_LISTED_PROFILES)
    )

    result = await db.execute(query)
    return list(result.scalars().all())
