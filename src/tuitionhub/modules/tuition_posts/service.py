"""
Tuition Posts Service Layer

Business logic for tuition posts and the application lifecycle.
Orchestrates authorization, the lifecycle engine, persistence and
real-time notifications.

This module implements:
1. Post management:
   - Create (guardian/admin), read (public), update (owner/admin)
   - Filtered, paginated listing

2. Application lifecycle:
   - Submit (tutor only, once per post, active posts only)
   - Accept / reject (owning guardian or admin); accepting fills the post
     and rejects every other pending application
   - Withdraw (the applying tutor, while pending)

3. Dashboards:
   - My posts (guardian: own posts, admin: all posts)
   - My applications (tutor: posts applied to, annotated with own application)

Every write reads the post, validates, mutates in memory and saves once.
A concurrent write to the same post makes the save fail on the version
check; the whole cycle is then re-run on a fresh read, up to
MAX_WRITE_ATTEMPTS times.
"""

import logging
import math
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from tuitionhub.core.auth import AuthenticatedUser
from tuitionhub.core.config import settings
from tuitionhub.modules.realtime.events import (
    APPLICATION_RECEIVED,
    APPLICATION_UPDATED,
    TUITION_POST_CREATED,
    guardian_room,
    tutor_room,
)
from tuitionhub.modules.realtime.relay import RealtimeRelay
from tuitionhub.modules.shared import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
    run_with_version_retry,
)
from tuitionhub.modules.tuition_posts import lifecycle, repository
from tuitionhub.modules.tuition_posts.helpers import (
    build_application_response,
    build_my_application_item,
    build_post_response,
    referenced_user_ids,
)
from tuitionhub.modules.tuition_posts.models import (
    ApplicationStatus,
    PostStatus,
    TeachingMode,
    TuitionPost,
)
from tuitionhub.modules.tuition_posts.schemas import (
    ApplyRequest,
    MyApplicationItem,
    TuitionPostCreate,
    TuitionPostListResponse,
    TuitionPostResponse,
    TuitionPostUpdate,
)
from tuitionhub.modules.users.permissions import Capability, has_capability
from tuitionhub.modules.users.repository import UserRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_PAGE_SIZE = 100


class PostNotFoundError(NotFoundError):
    def __init__(self, post_id: UUID | None = None):
        message = f"Tuition post {post_id} not found" if post_id else "Tuition post not found"
        super().__init__(message=message, error_code="POST_NOT_FOUND")


class ApplicationNotFoundError(NotFoundError):
    def __init__(self, application_id: UUID | None = None):
        message = (
            f"Application {application_id} not found" if application_id else "Application not found"
        )
        super().__init__(message=message, error_code="APPLICATION_NOT_FOUND")


class PostNotActiveError(ConflictError):
    """Raised when a post can no longer take applications or decisions."""

    def __init__(self, current_status: PostStatus):
        super().__init__(
            message=f"This tuition post is no longer active (status: {current_status.value})",
            error_code="POST_NOT_ACTIVE",
        )


class AlreadyAppliedError(ConflictError):
    def __init__(self):
        super().__init__(
            message="You have already applied to this tuition post",
            error_code="ALREADY_APPLIED",
        )


class InvalidTransitionError(ConflictError):
    """Raised when a requested status change is not allowed by the state machine."""

    def __init__(self, current_status: str, new_status: str):
        super().__init__(
            message=f"Cannot change status from '{current_status}' to '{new_status}'",
            error_code="INVALID_STATUS_TRANSITION",
        )


# ============================================
# Helpers
# ============================================


def _require_capability(user: AuthenticatedUser, capability: Capability, message: str) -> None:
    if not has_capability(user.role, capability):
        logger.warning(f"User {user.id} ({user.role.value}) lacks capability {capability.value}")
        raise ForbiddenError(message)


def require_can_apply(user: AuthenticatedUser) -> None:
    """Raise ForbiddenError unless the caller may apply to posts."""
    _require_capability(user, Capability.APPLY_TO_POST, "Only tutors can apply to tuition posts")


def _require_post_manager(user: AuthenticatedUser, post: TuitionPost) -> None:
    """The owning guardian or anyone holding MANAGE_ANY_POST."""
    if post.guardian_id == user.id or has_capability(user.role, Capability.MANAGE_ANY_POST):
        return
    logger.warning(f"User {user.id} is not allowed to manage post {post.id}")
    raise ForbiddenError("Not authorized to manage this tuition post")


async def _resolve(db: AsyncSession, posts: list[TuitionPost]) -> dict:
    return await UserRepository.get_many_by_ids(db, referenced_user_ids(posts))


async def _to_response(db: AsyncSession, post: TuitionPost) -> TuitionPostResponse:
    users = await _resolve(db, [post])
    return build_post_response(post, users)


async def _write_with_retry(
    db: AsyncSession,
    post_id: UUID,
    mutate: Callable[[TuitionPost], T],
) -> tuple[TuitionPost, T]:
    """
    Run one read-validate-mutate-save cycle on a post.

    ``mutate`` validates and changes the freshly loaded post in memory and
    may raise a ServiceError to abort without writing. On a version
    conflict the session is rolled back and the cycle starts over.

    Raises:
        PostNotFoundError: If the post does not exist
        ConcurrentModificationError: If every attempt lost a version race
    """

    async def attempt() -> tuple[TuitionPost, T]:
        post = await repository.get_by_id(db, post_id)
        if post is None:
            raise PostNotFoundError(post_id)

        outcome = mutate(post)
        await repository.save(db, post)
        return post, outcome

    return await run_with_version_retry(db, attempt, resource=f"tuition post {post_id}")


# ============================================
# Post management
# ============================================


async def create_post(
    db: AsyncSession,
    user: AuthenticatedUser,
    data: TuitionPostCreate,
    relay: RealtimeRelay | None = None,
) -> TuitionPostResponse:
    """
    Create a new active post owned by the caller.

    Raises:
        ForbiddenError: If the caller's role cannot create posts
    """
    _require_capability(user, Capability.CREATE_POST, "Only guardians can create tuition posts")

    expires_at = data.expires_at or datetime.now(UTC) + timedelta(days=settings.post_expiry_days)
    post = await repository.create(db, guardian_id=user.id, data=data, expires_at=expires_at)

    logger.info(f"Tuition post {post.id} created by {user.id}, expires {expires_at.isoformat()}")

    response = await _to_response(db, post)

    if relay is not None:
        await relay.publish(TUITION_POST_CREATED, response.model_dump(mode="json"))

    return response


async def get_post(db: AsyncSession, post_id: UUID) -> TuitionPostResponse:
    """
    Get a single post with its references resolved.

    Raises:
        PostNotFoundError: If the post does not exist
    """
    post = await repository.get_by_id(db, post_id)
    if post is None:
        raise PostNotFoundError(post_id)
    return await _to_response(db, post)


async def update_post(
    db: AsyncSession,
    user: AuthenticatedUser,
    post_id: UUID,
    data: TuitionPostUpdate,
) -> TuitionPostResponse:
    """
    Apply a partial update to a post.

    Only fields present in the request change. ``status`` may only move
    along the post state machine, and never to ``filled``.

    Raises:
        PostNotFoundError: If the post does not exist
        ForbiddenError: If the caller is neither the owner nor an admin
        InvalidTransitionError: If the requested status change is not allowed
    """
    changes = data.model_dump(exclude_unset=True, mode="json")
    new_status = data.status if "status" in changes else None
    changes.pop("status", None)

    # Column-typed fields keep their Python values, document fields are stored as JSON
    for key in ("expires_at", "priority", "title"):
        if key in changes:
            changes[key] = getattr(data, key)

    def mutate(post: TuitionPost) -> None:
        _require_post_manager(user, post)

        if new_status is not None:
            try:
                lifecycle.set_post_status(post, new_status)
            except lifecycle.InvalidStatusTransitionError as e:
                raise InvalidTransitionError(
                    e.current_status.value, e.new_status.value
                ) from e

        for key, value in changes.items():
            if value is None:
                continue
            setattr(post, key, value)

    post, _ = await _write_with_retry(db, post_id, mutate)

    logger.info(
        f"Tuition post {post_id} updated by {user.id}: {sorted(changes)}"
        + (f", status -> {new_status.value}" if new_status else "")
    )

    return await _to_response(db, post)


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
    page: int = 1,
    limit: int = 10,
) -> TuitionPostListResponse:
    """
    Filtered, paginated listing ordered by priority then newest first.

    Returns:
        Posts for the requested page with total count and page numbers
    """
    page = max(1, page)
    limit = min(max(1, limit), MAX_PAGE_SIZE)

    posts, total = await repository.list_posts(
        db,
        subject=subject,
        city=city,
        min_budget=min_budget,
        max_budget=max_budget,
        teaching_mode=teaching_mode,
        level=level,
        status=status,
        skip=(page - 1) * limit,
        limit=limit,
    )

    users = await _resolve(db, posts)

    return TuitionPostListResponse(
        posts=[build_post_response(post, users) for post in posts],
        total=total,
        total_pages=math.ceil(total / limit),
        current_page=page,
    )


# ============================================
# Application lifecycle
# ============================================


async def submit_application(
    db: AsyncSession,
    user: AuthenticatedUser,
    post_id: UUID,
    data: ApplyRequest,
    relay: RealtimeRelay | None = None,
) -> TuitionPostResponse:
    """
    Apply to a post as a tutor.

    An active post whose expiry has passed is marked expired here and the
    application is refused.

    Raises:
        ForbiddenError: If the caller is not a tutor (checked before any read)
        PostNotFoundError: If the post does not exist
        PostNotActiveError: If the post is not active or has expired
        AlreadyAppliedError: If the caller already has an application on the post
    """
    require_can_apply(user)

    cv = data.cv.model_dump(mode="json") if data.cv else None
    if cv is not None and cv.get("uploaded_at") is None:
        cv["uploaded_at"] = datetime.now(UTC).isoformat()

    def mutate(post: TuitionPost) -> dict[str, Any] | None:
        if lifecycle.is_past_expiry(post):
            lifecycle.set_post_status(post, PostStatus.EXPIRED)
            return None

        if post.status != PostStatus.ACTIVE:
            raise PostNotActiveError(post.status)

        if lifecycle.find_application_by_tutor(post, user.id) is not None:
            logger.warning(f"Tutor {user.id} already applied to post {post.id}")
            raise AlreadyAppliedError()

        application = lifecycle.build_application(
            user.id,
            cover_letter=data.cover_letter,
            proposed_rate=data.proposed_rate,
            cv=cv,
        )
        lifecycle.add_application(post, application)
        return application

    post, application = await _write_with_retry(db, post_id, mutate)

    if application is None:
        logger.info(f"Tuition post {post_id} expired on application attempt by {user.id}")
        raise PostNotActiveError(PostStatus.EXPIRED)

    logger.info(f"Tutor {user.id} applied to post {post_id} (application {application['id']})")

    users = await _resolve(db, [post])

    if relay is not None:
        await relay.publish(
            APPLICATION_RECEIVED,
            {
                "post_id": str(post.id),
                "post_title": post.title,
                "application": build_application_response(application, users).model_dump(
                    mode="json"
                ),
            },
            room=guardian_room(post.guardian_id),
        )

    return build_post_response(post, users)


async def update_application_status(
    db: AsyncSession,
    user: AuthenticatedUser,
    post_id: UUID,
    application_id: UUID,
    new_status: ApplicationStatus,
    relay: RealtimeRelay | None = None,
) -> TuitionPostResponse:
    """
    Accept or reject an application.

    Accepting selects the application's tutor, fills the post and rejects
    every other pending application in the same write. Accepting the
    application that is already accepted changes nothing.

    Raises:
        PostNotFoundError: If the post does not exist
        ForbiddenError: If the caller is neither the owner nor an admin
        ApplicationNotFoundError: If the application is not on the post
        PostNotActiveError: If accepting on a post that is no longer active
        InvalidTransitionError: If the application is not pending
        ConcurrentModificationError: If concurrent writes kept winning
    """
    if new_status not in (ApplicationStatus.ACCEPTED, ApplicationStatus.REJECTED):
        raise ValidationError("status must be 'accepted' or 'rejected'")

    def mutate(post: TuitionPost) -> list[dict[str, Any]]:
        _require_post_manager(user, post)

        if lifecycle.find_application(post, application_id) is None:
            raise ApplicationNotFoundError(application_id)

        try:
            if new_status == ApplicationStatus.ACCEPTED:
                return lifecycle.accept_application(post, str(application_id))

            changed = lifecycle.reject_application(post, str(application_id))
            return [changed] if changed else []
        except lifecycle.PostNotActiveError as e:
            raise PostNotActiveError(post.status) from e
        except lifecycle.InvalidStatusTransitionError as e:
            raise InvalidTransitionError(e.current_status.value, e.new_status.value) from e

    post, changed = await _write_with_retry(db, post_id, mutate)

    if not changed:
        logger.info(f"Application {application_id} already {new_status.value}, nothing to do")
    else:
        logger.info(
            f"Application {application_id} on post {post_id} -> {new_status.value} by {user.id}"
            f" ({len(changed) - 1} sibling(s) auto-rejected)"
        )

    if relay is not None:
        for application in changed:
            await relay.publish(
                APPLICATION_UPDATED,
                {
                    "post_id": str(post.id),
                    "post_title": post.title,
                    "application_id": application["id"],
                    "status": application["status"],
                },
                room=tutor_room(application["tutor_id"]),
            )

    return await _to_response(db, post)


async def withdraw_application(
    db: AsyncSession,
    user: AuthenticatedUser,
    post_id: UUID,
    application_id: UUID,
) -> TuitionPostResponse:
    """
    Withdraw the caller's own pending application.

    Raises:
        PostNotFoundError: If the post does not exist
        ApplicationNotFoundError: If the application is not on the post
        ForbiddenError: If the application belongs to another tutor
        InvalidTransitionError: If the application is no longer pending
    """

    def mutate(post: TuitionPost) -> dict[str, Any] | None:
        application = lifecycle.find_application(post, application_id)
        if application is None:
            raise ApplicationNotFoundError(application_id)

        if application["tutor_id"] != str(user.id):
            logger.warning(f"User {user.id} tried to withdraw application {application_id}")
            raise ForbiddenError("You can only withdraw your own application")

        try:
            return lifecycle.withdraw_application(post, str(application_id))
        except lifecycle.InvalidStatusTransitionError as e:
            raise InvalidTransitionError(e.current_status.value, e.new_status.value) from e

    post, _ = await _write_with_retry(db, post_id, mutate)

    logger.info(f"Tutor {user.id} withdrew application {application_id} on post {post_id}")

    return await _to_response(db, post)


# ============================================
# Dashboards
# ============================================


async def list_my_posts(db: AsyncSession, user: AuthenticatedUser) -> list[TuitionPostResponse]:
    """
    Guardian: own posts. Admin: every post. Newest first.

    Raises:
        ForbiddenError: If the caller can see neither
    """
    if has_capability(user.role, Capability.VIEW_ALL_POSTS):
        posts = await repository.list_all(db)
    else:
        _require_capability(user, Capability.VIEW_OWN_POSTS, "Only guardians have tuition posts")
        posts = await repository.list_by_guardian(db, user.id)

    users = await _resolve(db, posts)
    return [build_post_response(post, users) for post in posts]


async def list_my_applications(
    db: AsyncSession, user: AuthenticatedUser
) -> list[MyApplicationItem]:
    """
    Every post the tutor applied to, annotated with the tutor's application,
    most recent application first.

    Raises:
        ForbiddenError: If the caller is not a tutor
    """
    _require_capability(
        user, Capability.VIEW_OWN_APPLICATIONS, "Only tutors can view their applications"
    )

    posts = await repository.list_by_tutor_application(db, user.id)
    users = await _resolve(db, posts)

    items = []
    for post in posts:
        application = lifecycle.find_application_by_tutor(post, user.id)
        if application is not None:
            items.append(build_my_application_item(post, application, users))

    items.sort(key=lambda item: item.my_application.applied_at, reverse=True)
    return items
