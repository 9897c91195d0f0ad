"""
Tutor Profiles Service Layer

Business logic for tutor profiles and reviews.

- A tutor has at most one profile
- Only the owning tutor or an admin may edit a profile
- Each user may review a tutor once; tutors cannot review themselves
- ``rating`` is always the exact mean of the review scores
"""

import logging
import uuid
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tuitionhub.core.auth import AuthenticatedUser
from tuitionhub.modules.shared import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    run_with_version_retry,
)
from tuitionhub.modules.tutors import repository
from tuitionhub.modules.tutors.models import TutorProfile
from tuitionhub.modules.tutors.schemas import (
    ReviewCreate,
    ReviewResponse,
    TutorProfileCreate,
    TutorProfileResponse,
    TutorProfileUpdate,
)
from tuitionhub.modules.users.permissions import Capability, has_capability
from tuitionhub.modules.users.repository import UserRepository
from tuitionhub.modules.users.schemas import UserSummary

logger = logging.getLogger(__name__)


class TutorProfileNotFoundError(NotFoundError):
    def __init__(self, message: str = "Tutor profile not found"):
        super().__init__(message=message, error_code="TUTOR_PROFILE_NOT_FOUND")


class ProfileAlreadyExistsError(ConflictError):
    def __init__(self):
        super().__init__(
            message="Tutor profile already exists",
            error_code="PROFILE_ALREADY_EXISTS",
        )


class AlreadyReviewedError(ConflictError):
    def __init__(self):
        super().__init__(
            message="You have already reviewed this tutor",
            error_code="ALREADY_REVIEWED",
        )


def compute_rating(reviews: Iterable[dict[str, Any]]) -> float:
    """Arithmetic mean of the review scores, 0 when there are none."""
    scores = [review["rating"] for review in reviews]
    return sum(scores) / len(scores) if scores else 0.0


def _user_ids(profiles: Iterable[TutorProfile]) -> set[UUID]:
    ids: set[UUID] = set()
    for profile in profiles:
        ids.add(profile.user_id)
        ids.update(UUID(r["student_id"]) for r in profile.reviews or [])
    return ids


def _summary(users: dict, user_id: UUID | str) -> UserSummary | None:
    user = users.get(UUID(str(user_id)))
    return UserSummary.model_validate(user) if user else None


def build_profile_response(profile: TutorProfile, users: dict) -> TutorProfileResponse:
    reviews = profile.reviews or []
    return TutorProfileResponse(
        id=profile.id,
        user_id=profile.user_id,
        user=_summary(users, profile.user_id),
        subjects=profile.subjects or [],
        experience=profile.experience,
        education=profile.education or {},
        availability=profile.availability or [],
        teaching_modes=profile.teaching_modes or [],
        reviews=[
            ReviewResponse(**review, student=_summary(users, review["student_id"]))
            for review in reviews
        ],
        rating=profile.rating,
        review_count=len(reviews),
        is_active=profile.is_active,
        created_at=profile.created_at,
        updated_at=profile.updated_at,
    )


async def _to_responses(
    db: AsyncSession, profiles: list[TutorProfile]
) -> list[TutorProfileResponse]:
    users = await UserRepository.get_many_by_ids(db, _user_ids(profiles))
    return [build_profile_response(profile, users) for profile in profiles]


async def _to_response(db: AsyncSession, profile: TutorProfile) -> TutorProfileResponse:
    return (await _to_responses(db, [profile]))[0]


def _require_tutor(user: AuthenticatedUser) -> None:
    if not has_capability(user.role, Capability.CREATE_TUTOR_PROFILE):
        logger.warning(f"User {user.id} ({user.role.value}) is not a tutor")
        raise ForbiddenError("Only tutors have tutor profiles")


async def list_profiles(
    db: AsyncSession,
    *,
    subject: str | None = None,
    min_price: float | None = None,
    max_price: float | None = None,
    min_rating: float | None = None,
) -> list[TutorProfileResponse]:
    profiles = await repository.list_profiles(
        db,
        subject=subject,
        min_price=min_price,
        max_price=max_price,
        min_rating=min_rating,
    )
    return await _to_responses(db, profiles)


async def get_profile(db: AsyncSession, profile_id: UUID) -> TutorProfileResponse:
    profile = await repository.get_by_id(db, profile_id)
    if profile is None:
        raise TutorProfileNotFoundError()
    return await _to_response(db, profile)


async def get_my_profile(db: AsyncSession, user: AuthenticatedUser) -> TutorProfileResponse:
    """
    The calling tutor's own profile.

    Raises:
        ForbiddenError: If the caller is not a tutor
        TutorProfileNotFoundError: If the tutor has not created a profile yet
    """
    _require_tutor(user)

    profile = await repository.get_by_user_id(db, user.id)
    if profile is None:
        raise TutorProfileNotFoundError("You have not created a tutor profile yet")
    return await _to_response(db, profile)


async def create_profile(
    db: AsyncSession, user: AuthenticatedUser, data: TutorProfileCreate
) -> TutorProfileResponse:
    """
    Create the calling tutor's profile.

    Raises:
        ForbiddenError: If the caller is not a tutor
        ProfileAlreadyExistsError: If the tutor already has a profile
    """
    _require_tutor(user)

    if await repository.get_by_user_id(db, user.id) is not None:
        logger.warning(f"Tutor {user.id} already has a profile")
        raise ProfileAlreadyExistsError()

    try:
        profile = await repository.create(db, user_id=user.id, data=data)
    except IntegrityError as e:
        # Lost a race with a concurrent create for the same user
        await db.rollback()
        raise ProfileAlreadyExistsError() from e

    logger.info(f"Tutor profile {profile.id} created for user {user.id}")
    return await _to_response(db, profile)


async def update_profile(
    db: AsyncSession,
    user: AuthenticatedUser,
    profile_id: UUID,
    data: TutorProfileUpdate,
) -> TutorProfileResponse:
    """
    Partially update a profile.

    Raises:
        TutorProfileNotFoundError: If the profile does not exist
        ForbiddenError: If the caller is neither the owner nor an admin
    """
    changes = {
        key: value
        for key, value in data.model_dump(exclude_unset=True, mode="json").items()
        if value is not None
    }

    async def attempt() -> TutorProfile:
        profile = await repository.get_by_id(db, profile_id)
        if profile is None:
            raise TutorProfileNotFoundError()

        if profile.user_id != user.id and not has_capability(
            user.role, Capability.MANAGE_ANY_TUTOR_PROFILE
        ):
            logger.warning(f"User {user.id} is not allowed to edit tutor profile {profile_id}")
            raise ForbiddenError("Not authorized to update this profile")

        for key, value in changes.items():
            setattr(profile, key, value)

        return await repository.save(db, profile)

    profile = await run_with_version_retry(db, attempt, resource=f"tutor profile {profile_id}")

    logger.info(f"Tutor profile {profile_id} updated by {user.id}: {sorted(changes)}")
    return await _to_response(db, profile)


async def add_review(
    db: AsyncSession,
    user: AuthenticatedUser,
    profile_id: UUID,
    data: ReviewCreate,
) -> TutorProfileResponse:
    """
    Add the caller's review and recompute the rating.

    Raises:
        ForbiddenError: If the caller may not review, or owns the profile
        TutorProfileNotFoundError: If the profile does not exist
        AlreadyReviewedError: If the caller already reviewed this tutor
    """
    if not has_capability(user.role, Capability.REVIEW_TUTOR):
        raise ForbiddenError("Not authorized to review tutors")

    async def attempt() -> TutorProfile:
        profile = await repository.get_by_id(db, profile_id)
        if profile is None:
            raise TutorProfileNotFoundError()

        if profile.user_id == user.id:
            logger.warning(f"Tutor {user.id} tried to review their own profile")
            raise ForbiddenError("You cannot review your own profile")

        if any(r["student_id"] == str(user.id) for r in profile.reviews or []):
            logger.warning(f"User {user.id} already reviewed tutor profile {profile_id}")
            raise AlreadyReviewedError()

        review = {
            "id": str(uuid.uuid4()),
            "student_id": str(user.id),
            "rating": data.rating,
            "comment": data.comment,
            "created_at": datetime.now(UTC).isoformat(),
        }
        profile.reviews = [*(profile.reviews or []), review]
        profile.rating = compute_rating(profile.reviews)

        return await repository.save(db, profile)

    profile = await run_with_version_retry(db, attempt, resource=f"tutor profile {profile_id}")

    logger.info(
        f"Review by {user.id} added to tutor profile {profile_id}; "
        f"rating now {profile.rating:.2f} over {len(profile.reviews)} review(s)"
    )
    return await _to_response(db, profile)
