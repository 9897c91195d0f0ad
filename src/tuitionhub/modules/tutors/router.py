"""
Tutor Profiles Router

Endpoints:
- GET /tutors - Search active tutor profiles (public)
- POST /tutors - Create the caller's profile (tutor)
- GET /tutors/my/profile - The caller's own profile (tutor)
- GET /tutors/{id} - Single profile (public)
- PUT /tutors/{id} - Update a profile (owner/admin)
- POST /tutors/{id}/reviews - Review a tutor (authenticated, once per reviewer)
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tuitionhub.core.auth import AuthenticatedUser, get_current_user
from tuitionhub.core.database import get_db
from tuitionhub.modules.shared import (
    STORAGE_ERRORS,
    ServiceError,
    internal_error_exception,
    storage_unavailable_exception,
    to_http_exception,
)
from tuitionhub.modules.tutors import service
from tuitionhub.modules.tutors.schemas import (
    ReviewCreate,
    TutorProfileCreate,
    TutorProfileResponse,
    TutorProfileUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _service_error(e: ServiceError, action: str) -> HTTPException:
    logger.warning(f"{action} rejected: {e.error_code} - {e.message}")
    return to_http_exception(e)


@router.get(
    "",
    response_model=list[TutorProfileResponse],
    summary="Search Tutors",
    description="Active tutor profiles, best rated first. At most 50 results.",
)
async def list_tutors(
    subject: str | None = Query(None, max_length=100),
    min_price: float | None = Query(None, ge=0),
    max_price: float | None = Query(None, ge=0),
    min_rating: float | None = Query(None, ge=0, le=5),
    db: AsyncSession = Depends(get_db),
) -> list[TutorProfileResponse]:
    try:
        return await service.list_profiles(
            db,
            subject=subject,
            min_price=min_price,
            max_price=max_price,
            min_rating=min_rating,
        )
    except STORAGE_ERRORS as e:
        logger.error(f"Storage unavailable listing tutors: {e}")
        raise storage_unavailable_exception() from e
    except Exception as e:
        logger.exception(f"Unexpected error listing tutors: {e}")
        raise internal_error_exception() from e


@router.post(
    "",
    response_model=TutorProfileResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Tutor Profile",
)
async def create_tutor_profile(
    data: TutorProfileCreate,
    db: AsyncSession = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> TutorProfileResponse:
    try:
        return await service.create_profile(db, user, data)
    except ServiceError as e:
        raise _service_error(e, f"Create tutor profile by {user.id}") from e
    except STORAGE_ERRORS as e:
        logger.error(f"Storage unavailable creating tutor profile: {e}")
        raise storage_unavailable_exception() from e
    except Exception as e:
        logger.exception(f"Unexpected error creating tutor profile: {e}")
        raise internal_error_exception() from e


@router.get(
    "/my/profile",
    response_model=TutorProfileResponse,
    summary="My Tutor Profile",
)
async def my_tutor_profile(
    db: AsyncSession = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> TutorProfileResponse:
    try:
        return await service.get_my_profile(db, user)
    except ServiceError as e:
        raise _service_error(e, f"My tutor profile for {user.id}") from e
    except STORAGE_ERRORS as e:
        logger.error(f"Storage unavailable reading tutor profile: {e}")
        raise storage_unavailable_exception() from e
    except Exception as e:
        logger.exception(f"Unexpected error reading tutor profile: {e}")
        raise internal_error_exception() from e


@router.get(
    "/{profile_id}",
    response_model=TutorProfileResponse,
    summary="Get Tutor Profile",
)
async def get_tutor_profile(
    profile_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> TutorProfileResponse:
    try:
        return await service.get_profile(db, profile_id)
    except ServiceError as e:
        raise _service_error(e, f"Get tutor profile {profile_id}") from e
    except STORAGE_ERRORS as e:
        logger.error(f"Storage unavailable reading tutor profile: {e}")
        raise storage_unavailable_exception() from e
    except Exception as e:
        logger.exception(f"Unexpected error reading tutor profile {profile_id}: {e}")
        raise internal_error_exception() from e


@router.put(
    "/{profile_id}",
    response_model=TutorProfileResponse,
    summary="Update Tutor Profile",
)
async def update_tutor_profile(
    profile_id: UUID,
    data: TutorProfileUpdate,
    db: AsyncSession = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> TutorProfileResponse:
    try:
        return await service.update_profile(db, user, profile_id, data)
    except ServiceError as e:
        raise _service_error(e, f"Update tutor profile {profile_id} by {user.id}") from e
    except STORAGE_ERRORS as e:
        logger.error(f"Storage unavailable updating tutor profile: {e}")
        raise storage_unavailable_exception() from e
    except Exception as e:
        logger.exception(f"Unexpected error updating tutor profile {profile_id}: {e}")
        raise internal_error_exception() from e


@router.post(
    "/{profile_id}/reviews",
    response_model=TutorProfileResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Review Tutor",
)
async def review_tutor(
    profile_id: UUID,
    data: ReviewCreate,
    db: AsyncSession = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> TutorProfileResponse:
    """Add a 1-5 review. Each user may review a tutor once."""
    try:
        return await service.add_review(db, user, profile_id, data)
    except ServiceError as e:
        raise _service_error(e, f"Review of tutor profile {profile_id} by {user.id}") from e
    except STORAGE_ERRORS as e:
        logger.error(f"Storage unavailable adding review: {e}")
        raise storage_unavailable_exception() from e
    except Exception as e:
        logger.exception(f"Unexpected error adding review to {profile_id}: {e}")
        raise internal_error_exception() from e
