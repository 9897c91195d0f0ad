"""
Tuition Posts Repository

Database operations for tuition posts and their embedded applications.

Design Principles:
- Single responsibility - only database operations, no business rules
- Every write goes through save(), which re-derives the search columns
  and commits once
- Writes are guarded by the post's version column; a concurrent write
  surfaces as StaleDataError from save()
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tuitionhub.modules.shared.filters import contains_pattern
from tuitionhub.modules.tuition_posts.models import (
    PRIORITY_RANK,
    PostStatus,
    TeachingMode,
    TuitionPost,
)
from tuitionhub.modules.tuition_posts.schemas import TuitionPostCreate

_priority_order = case(
    {priority: rank for priority, rank in PRIORITY_RANK.items()},
    value=TuitionPost.priority,
    else_=0,
)


async def create(
    db: AsyncSession,
    *,
    guardian_id: UUID,
    data: TuitionPostCreate,
    expires_at: datetime,
) -> TuitionPost:
    """Create a new active tuition post owned by ``guardian_id``."""
    post = TuitionPost(
        guardian_id=guardian_id,
        title=data.title,
        description=data.description,
        subjects=[s.model_dump(mode="json") for s in data.subjects],
        student_info=data.student_info.model_dump(mode="json"),
        requirements=data.requirements.model_dump(mode="json"),
        schedule=data.schedule.model_dump(mode="json"),
        budget=data.budget.model_dump(mode="json"),
        location=data.location.model_dump(mode="json"),
        priority=data.priority,
        tags=list(data.tags),
        status=PostStatus.ACTIVE,
        expires_at=expires_at,
        applications=[],
    )
    post.refresh_search_columns()

    db.add(post)
    await db.commit()
    await db.refresh(post)

    return post


async def get_by_id(db: AsyncSession, id: UUID) -> TuitionPost | None:
    """
    Get a post by ID, always re-reading the row.

    populate_existing makes a retry after a stale write see the
    current row instead of the session's cached copy.
    """
    result = await db.execute(
        select(TuitionPost)
        .where(TuitionPost.id == id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def save(db: AsyncSession, post: TuitionPost) -> TuitionPost:
    """
    Persist every pending change on ``post`` in one commit.

    Raises:
        sqlalchemy.orm.exc.StaleDataError: If another writer updated the
            post since it was read
    """
    post.refresh_search_columns()
    await db.commit()
    await db.refresh(post)
    return post


async def list_posts(
    db: AsyncSession,
    *,
    subject: str | None = None,
    city: str | None = None,
    min_budget: float | None = None,
    max_budget: float | None = None,
    teaching_mode: TeachingMode | None = None,
    level: str | None = None,
    status: PostStatus | None = PostStatus.ACTIVE,
    skip: int = 0,
    limit: int = 10,
) -> tuple[list[TuitionPost], int]:
    """
    Get posts with filters, priority ordering and pagination.

    Args:
        db: Database session
        subject: Case-insensitive substring of any subject name
        city: Case-insensitive substring of the location city
        min_budget: Lower bound on budget.min (inclusive)
        max_budget: Upper bound on budget.max (inclusive)
        teaching_mode: Exact teaching mode required by the post
        level: Level of any subject
        status: Post status, None for any status
        skip: Number of records to skip for pagination
        limit: Maximum records to return

    Returns:
        Tuple of (list of posts, total count matching filters)
    """
    query = select(TuitionPost)

    if status is not None:
        query = query.where(TuitionPost.status == status)

    if subject:
        query = query.where(
            func.array_to_string(TuitionPost.subject_names, "|").ilike(
                contains_pattern(subject)
            )
        )

    if city:
        query = query.where(TuitionPost.city.ilike(contains_pattern(city)))

    if min_budget is not None:
        query = query.where(TuitionPost.budget_min >= min_budget)

    if max_budget is not None:
        query = query.where(TuitionPost.budget_max <= max_budget)

    if teaching_mode is not None:
        query = query.where(TuitionPost.teaching_mode == teaching_mode)

    if level:
        query = query.where(TuitionPost.levels.contains([level]))

    # Get total count before pagination
    count_query = select(func.count()).select_from(query.subquery())
    total_result = await db.execute(count_query)
    total = total_result.scalar() or 0

    query = (
        query.order_by(_priority_order.desc(), TuitionPost.created_at.desc())
        .offset(skip)
        .limit(limit)
    )

    result = await db.execute(query)
    return list(result.scalars().all()), total


async def list_by_guardian(db: AsyncSession, guardian_id: UUID) -> list[TuitionPost]:
    """Posts owned by ``guardian_id``, newest first."""
    result = await db.execute(
        select(TuitionPost)
        .where(TuitionPost.guardian_id == guardian_id)
        .order_by(TuitionPost.created_at.desc())
    )
    return list(result.scalars().all())


async def list_all(db: AsyncSession) -> list[TuitionPost]:
    """Every post, newest first."""
    result = await db.execute(select(TuitionPost).order_by(TuitionPost.created_at.desc()))
    return list(result.scalars().all())


async def list_by_tutor_application(db: AsyncSession, tutor_id: UUID) -> list[TuitionPost]:
    """Posts holding an application from ``tutor_id``, in any status."""
    result = await db.execute(
        select(TuitionPost).where(
            TuitionPost.applications.contains([{"tutor_id": str(tutor_id)}])
        )
    )
    return list(result.scalars().all())


async def get_expired_active(db: AsyncSession, now: datetime) -> list[TuitionPost]:
    """Active posts whose expires_at is before ``now``."""
    result = await db.execute(
        select(TuitionPost).where(
            TuitionPost.status == PostStatus.ACTIVE,
            TuitionPost.expires_at < now,
        )
    )
    return list(result.scalars().all())
