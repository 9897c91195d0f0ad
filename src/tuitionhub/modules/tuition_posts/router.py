"""
Tuition Posts Router

API endpoints for tuition posts and the application lifecycle.

Endpoints:
- GET /tuition-posts - Filtered, paginated listing (public)
- POST /tuition-posts - Create a post (guardian/admin)
- GET /tuition-posts/my/posts - Caller's posts (guardian) or all posts (admin)
- GET /tuition-posts/my/applications - Posts the caller applied to (tutor)
- GET /tuition-posts/{id} - Single post (public)
- PUT /tuition-posts/{id} - Update a post (owner/admin)
- POST /tuition-posts/{id}/apply - Apply to a post (tutor)
- PUT /tuition-posts/{post_id}/applications/{application_id} - Accept/reject (owner/admin)
- POST /tuition-posts/{post_id}/applications/{application_id}/withdraw - Withdraw (applicant)

Security:
- Bearer JWT on every write and dashboard endpoint
- Role capabilities checked in the service layer before any mutation
- Rate limiting on applications
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tuitionhub.core.auth import AuthenticatedUser, get_current_user
from tuitionhub.core.config import settings
from tuitionhub.core.database import get_db
from tuitionhub.core.rate_limit import enforce_rate_limit
from tuitionhub.modules.realtime.relay import RealtimeRelay, get_relay
from tuitionhub.modules.shared import (
    STORAGE_ERRORS,
    ServiceError,
    internal_error_exception,
    storage_unavailable_exception,
    to_http_exception,
)
from tuitionhub.modules.tuition_posts import service
from tuitionhub.modules.tuition_posts.models import PostStatus, SubjectLevel, TeachingMode
from tuitionhub.modules.tuition_posts.schemas import (
    ApplicationStatusUpdate,
    ApplyRequest,
    MyApplicationItem,
    TuitionPostCreate,
    TuitionPostListResponse,
    TuitionPostResponse,
    TuitionPostUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter()

_ERROR_RESPONSES = {
    401: {"description": "Missing, invalid or expired token"},
    403: {"description": "Caller's role or ownership does not allow this"},
    404: {"description": "Post or application not found"},
    409: {"description": "Conflicts with the current state of the post"},
    503: {"description": "Database temporarily unavailable"},
}


def _service_error(e: ServiceError, action: str) -> HTTPException:
    """Log a rejected request and convert the service error."""
    logger.warning(f"{action} rejected: {e.error_code} - {e.message}")
    return to_http_exception(e)


def _storage_error(e: Exception, action: str) -> HTTPException:
    logger.error(f"Storage unavailable during {action}: {e}")
    return storage_unavailable_exception()


@router.get(
    "",
    response_model=TuitionPostListResponse,
    summary="List Tuition Posts",
    description="""
List tuition posts with optional filters.

Results are ordered by priority (urgent, high, medium, low) and then by
creation date, newest first. Only active posts are returned unless
`status` says otherwise.
""",
)
async def list_posts(
    subject: str | None = Query(None, max_length=100, description="Subject name contains"),
    city: str | None = Query(None, max_length=100, description="City contains"),
    min_budget: float | None = Query(None, ge=0, description="Minimum budget.min"),
    max_budget: float | None = Query(None, ge=0, description="Maximum budget.max"),
    teaching_mode: TeachingMode | None = Query(None),
    level: SubjectLevel | None = Query(None),
    post_status: PostStatus = Query(PostStatus.ACTIVE, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
) -> TuitionPostListResponse:
    try:
        return await service.list_posts(
            db,
            subject=subject,
            city=city,
            min_budget=min_budget,
            max_budget=max_budget,
            teaching_mode=teaching_mode,
            level=level.value if level else None,
            status=post_status,
            page=page,
            limit=limit,
        )
    except STORAGE_ERRORS as e:
        raise _storage_error(e, "list posts") from e
    except Exception as e:
        logger.exception(f"Unexpected error listing tuition posts: {e}")
        raise internal_error_exception() from e


@router.post(
    "",
    response_model=TuitionPostResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Tuition Post",
    responses=_ERROR_RESPONSES,
)
async def create_post(
    data: TuitionPostCreate,
    db: AsyncSession = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
    relay: RealtimeRelay | None = Depends(get_relay),
) -> TuitionPostResponse:
    """
    Create a tuition post owned by the caller.

    The post starts active and expires after the configured number of days
    unless `expires_at` is given. Connected clients receive a
    `tuition_post_created` event.
    """
    try:
        return await service.create_post(db, user, data, relay=relay)
    except ServiceError as e:
        raise _service_error(e, f"Create post by {user.id}") from e
    except STORAGE_ERRORS as e:
        raise _storage_error(e, "create post") from e
    except Exception as e:
        logger.exception(f"Unexpected error creating tuition post: {e}")
        raise internal_error_exception() from e


@router.get(
    "/my/posts",
    response_model=list[TuitionPostResponse],
    summary="My Tuition Posts",
    responses=_ERROR_RESPONSES,
)
async def my_posts(
    db: AsyncSession = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> list[TuitionPostResponse]:
    """Guardians get their own posts; admins get every post. Newest first."""
    try:
        return await service.list_my_posts(db, user)
    except ServiceError as e:
        raise _service_error(e, f"My posts for {user.id}") from e
    except STORAGE_ERRORS as e:
        raise _storage_error(e, "my posts") from e
    except Exception as e:
        logger.exception(f"Unexpected error listing posts for {user.id}: {e}")
        raise internal_error_exception() from e


@router.get(
    "/my/applications",
    response_model=list[MyApplicationItem],
    summary="My Applications",
    responses=_ERROR_RESPONSES,
)
async def my_applications(
    db: AsyncSession = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> list[MyApplicationItem]:
    """
    Every post the calling tutor applied to, each annotated with the tutor's
    own application as `my_application`, most recent application first.
    """
    try:
        return await service.list_my_applications(db, user)
    except ServiceError as e:
        raise _service_error(e, f"My applications for {user.id}") from e
    except STORAGE_ERRORS as e:
        raise _storage_error(e, "my applications") from e
    except Exception as e:
        logger.exception(f"Unexpected error listing applications for {user.id}: {e}")
        raise internal_error_exception() from e


@router.get(
    "/{post_id}",
    response_model=TuitionPostResponse,
    summary="Get Tuition Post",
    responses={404: _ERROR_RESPONSES[404], 503: _ERROR_RESPONSES[503]},
)
async def get_post(
    post_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> TuitionPostResponse:
    try:
        return await service.get_post(db, post_id)
    except ServiceError as e:
        raise _service_error(e, f"Get post {post_id}") from e
    except STORAGE_ERRORS as e:
        raise _storage_error(e, "get post") from e
    except Exception as e:
        logger.exception(f"Unexpected error getting tuition post {post_id}: {e}")
        raise internal_error_exception() from e


@router.put(
    "/{post_id}",
    response_model=TuitionPostResponse,
    summary="Update Tuition Post",
    responses=_ERROR_RESPONSES,
)
async def update_post(
    post_id: UUID,
    data: TuitionPostUpdate,
    db: AsyncSession = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> TuitionPostResponse:
    """
    Partially update a post. Owner or admin only.

    `status` may only be set to `cancelled`, and only while the post is
    active. A post becomes `filled` only by accepting an application.
    """
    try:
        return await service.update_post(db, user, post_id, data)
    except ServiceError as e:
        raise _service_error(e, f"Update post {post_id} by {user.id}") from e
    except STORAGE_ERRORS as e:
        raise _storage_error(e, "update post") from e
    except Exception as e:
        logger.exception(f"Unexpected error updating tuition post {post_id}: {e}")
        raise internal_error_exception() from e


@router.post(
    "/{post_id}/apply",
    response_model=TuitionPostResponse,
    summary="Apply to Tuition Post",
    responses={**_ERROR_RESPONSES, 429: {"description": "Too many applications"}},
)
async def apply_to_post(
    post_id: UUID,
    data: ApplyRequest,
    db: AsyncSession = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
    relay: RealtimeRelay | None = Depends(get_relay),
) -> TuitionPostResponse:
    """
    Apply to an active post as a tutor. One application per tutor per post.

    The owning guardian receives an `application_received` event.
    Callers without the apply capability get 403 before the rate limit counts them.
    """
    try:
        service.require_can_apply(user)
        await enforce_rate_limit(
            "apply", str(user.id), settings.apply_rate_limit, settings.apply_rate_window_seconds
        )
        return await service.submit_application(db, user, post_id, data, relay=relay)
    except HTTPException:
        raise
    except ServiceError as e:
        raise _service_error(e, f"Apply to post {post_id} by {user.id}") from e
    except STORAGE_ERRORS as e:
        raise _storage_error(e, "apply") from e
    except Exception as e:
        logger.exception(f"Unexpected error applying to tuition post {post_id}: {e}")
        raise internal_error_exception() from e


@router.put(
    "/{post_id}/applications/{application_id}",
    response_model=TuitionPostResponse,
    summary="Accept or Reject Application",
    responses=_ERROR_RESPONSES,
)
async def update_application_status(
    post_id: UUID,
    application_id: UUID,
    data: ApplicationStatusUpdate,
    db: AsyncSession = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
    relay: RealtimeRelay | None = Depends(get_relay),
) -> TuitionPostResponse:
    """
    Accept or reject a pending application. Owner or admin only.

    **Accepting** selects the application's tutor, marks the post `filled`
    and rejects every other pending application.

    **Rejecting** changes only the target application.

    Every tutor whose application changed receives an `application_updated` event.
    """
    try:
        return await service.update_application_status(
            db, user, post_id, application_id, data.status, relay=relay
        )
    except ServiceError as e:
        raise _service_error(e, f"Application {application_id} -> {data.status.value}") from e
    except STORAGE_ERRORS as e:
        raise _storage_error(e, "update application status") from e
    except Exception as e:
        logger.exception(f"Unexpected error updating application {application_id}: {e}")
        raise internal_error_exception() from e


@router.post(
    "/{post_id}/applications/{application_id}/withdraw",
    response_model=TuitionPostResponse,
    summary="Withdraw Application",
    responses=_ERROR_RESPONSES,
)
async def withdraw_application(
    post_id: UUID,
    application_id: UUID,
    db: AsyncSession = Depends(get_db),
    user: AuthenticatedUser = Depends(get_current_user),
) -> TuitionPostResponse:
    """Withdraw the caller's own pending application."""
    try:
        return await service.withdraw_application(db, user, post_id, application_id)
    except ServiceError as e:
        raise _service_error(e, f"Withdraw application {application_id} by {user.id}") from e
    except STORAGE_ERRORS as e:
        raise _storage_error(e, "withdraw application") from e
    except Exception as e:
        logger.exception(f"Unexpected error withdrawing application {application_id}: {e}")
        raise internal_error_exception() from e
