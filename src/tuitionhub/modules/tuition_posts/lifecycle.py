"""
Application Lifecycle Engine

Pure state-machine rules for tuition posts and their embedded applications.
Nothing here touches the database: functions take a TuitionPost, mutate it
in memory and report what changed. The service layer loads, calls these,
and persists the post once.

Embedded applications are JSONB values, so every mutation assigns a new
list to ``post.applications`` to make SQLAlchemy see the change.
"""

import uuid
from datetime import UTC, datetime
from typing import Any

from tuitionhub.modules.tuition_posts.models import ApplicationStatus, PostStatus, TuitionPost

# Valid post status transitions.
# FILLED is only reachable through accept_application.
POST_STATUS_TRANSITIONS: dict[PostStatus, set[PostStatus]] = {
    PostStatus.ACTIVE: {
        PostStatus.FILLED,  # An application was accepted
        PostStatus.EXPIRED,  # expires_at passed
        PostStatus.CANCELLED,  # Guardian/admin withdrew the post
    },
    # Terminal states - no transitions allowed
    PostStatus.FILLED: set(),
    PostStatus.EXPIRED: set(),
    PostStatus.CANCELLED: set(),
}

# Valid application status transitions
APPLICATION_STATUS_TRANSITIONS: dict[ApplicationStatus, set[ApplicationStatus]] = {
    ApplicationStatus.PENDING: {
        ApplicationStatus.ACCEPTED,  # Guardian/admin accepted
        ApplicationStatus.REJECTED,  # Guardian/admin rejected, or a sibling was accepted
        ApplicationStatus.WITHDRAWN,  # Tutor withdrew
    },
    # Terminal states
    ApplicationStatus.ACCEPTED: set(),
    ApplicationStatus.REJECTED: set(),
    ApplicationStatus.WITHDRAWN: set(),
}


class InvalidStatusTransitionError(ValueError):
    """Raised when an invalid status transition is attempted."""

    def __init__(
        self,
        current_status: PostStatus | ApplicationStatus,
        new_status: PostStatus | ApplicationStatus,
    ):
        self.current_status = current_status
        self.new_status = new_status
        super().__init__(
            f"Invalid status transition: {current_status.value} -> {new_status.value}"
        )


class PostNotActiveError(InvalidStatusTransitionError):
    """The post is no longer accepting applications or decisions."""


def can_transition_post(current: PostStatus, new: PostStatus) -> bool:
    return new in POST_STATUS_TRANSITIONS.get(current, set())


def can_transition_application(current: ApplicationStatus, new: ApplicationStatus) -> bool:
    return new in APPLICATION_STATUS_TRANSITIONS.get(current, set())


def _now() -> datetime:
    return datetime.now(UTC)


def is_past_expiry(post: TuitionPost, now: datetime | None = None) -> bool:
    """True if the post is still active but its expires_at has passed."""
    return post.status == PostStatus.ACTIVE and post.expires_at < (now or _now())


def set_post_status(post: TuitionPost, new_status: PostStatus) -> bool:
    """
    Move a post to ``new_status``.

    Returns:
        False if the post already had that status (no-op), True otherwise

    Raises:
        InvalidStatusTransitionError: If the transition is not allowed
    """
    if post.status == new_status:
        return False
    if not can_transition_post(post.status, new_status):
        raise InvalidStatusTransitionError(post.status, new_status)

    post.status = new_status
    return True


def find_application(post: TuitionPost, application_id: str | uuid.UUID) -> dict[str, Any] | None:
    """Return the embedded application with the given id, or None."""
    wanted = str(application_id)
    return next((a for a in post.applications or [] if a["id"] == wanted), None)


def find_application_by_tutor(
    post: TuitionPost, tutor_id: str | uuid.UUID
) -> dict[str, Any] | None:
    """Return the application submitted by ``tutor_id``, whatever its status."""
    wanted = str(tutor_id)
    return next((a for a in post.applications or [] if a["tutor_id"] == wanted), None)


def build_application(
    tutor_id: uuid.UUID,
    *,
    cover_letter: str = "",
    proposed_rate: float | None = None,
    cv: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Build a new pending application document."""
    return {
        "id": str(uuid.uuid4()),
        "tutor_id": str(tutor_id),
        "applied_at": (now or _now()).isoformat(),
        "status": ApplicationStatus.PENDING.value,
        "cover_letter": cover_letter,
        "proposed_rate": proposed_rate,
        "cv": cv,
    }


def add_application(post: TuitionPost, application: dict[str, Any]) -> None:
    """
    Append a pending application to an active post.

    The caller checks for a duplicate tutor first; this only enforces
    that the post can still take applications.

    Raises:
        PostNotActiveError: If the post is not active
    """
    if post.status != PostStatus.ACTIVE:
        raise PostNotActiveError(post.status, PostStatus.ACTIVE)

    post.applications = [*(post.applications or []), application]


def _replace_statuses(post: TuitionPost, updates: dict[str, ApplicationStatus]) -> list[dict]:
    """Write new statuses for the given application ids; return the changed documents."""
    changed = []
    applications = []
    for application in post.applications or []:
        new_status = updates.get(application["id"])
        if new_status is not None:
            application = {**application, "status": new_status.value}
            changed.append(application)
        applications.append(application)

    post.applications = applications
    return changed


def accept_application(post: TuitionPost, application_id: str) -> list[dict[str, Any]]:
    """
    Accept one application and settle the post.

    The target becomes accepted, the post becomes filled with the target's
    tutor selected, and every other pending application is rejected.
    Already rejected or withdrawn siblings are left alone.

    Accepting the application that is already the accepted one is a no-op.

    Returns:
        The application documents whose status changed (target first),
        empty for a no-op

    Raises:
        ValueError: If the application is not on the post
        PostNotActiveError: If the post is not active
        InvalidStatusTransitionError: If the application is not pending
    """
    target = find_application(post, application_id)
    if target is None:
        raise ValueError(f"Application {application_id} not found on post {post.id}")

    current = ApplicationStatus(target["status"])

    if (
        current == ApplicationStatus.ACCEPTED
        and post.status == PostStatus.FILLED
        and str(post.selected_tutor_id) == target["tutor_id"]
    ):
        return []

    if post.status != PostStatus.ACTIVE:
        raise PostNotActiveError(post.status, PostStatus.FILLED)

    if not can_transition_application(current, ApplicationStatus.ACCEPTED):
        raise InvalidStatusTransitionError(current, ApplicationStatus.ACCEPTED)

    updates = {target["id"]: ApplicationStatus.ACCEPTED}
    for sibling in post.applications:
        if sibling["id"] != target["id"] and sibling["status"] == ApplicationStatus.PENDING.value:
            updates[sibling["id"]] = ApplicationStatus.REJECTED

    changed = _replace_statuses(post, updates)

    set_post_status(post, PostStatus.FILLED)
    post.selected_tutor_id = uuid.UUID(target["tutor_id"])

    # Target first, then the auto-rejected siblings in post order
    changed.sort(key=lambda a: a["id"] != target["id"])
    return changed


def _set_single_status(
    post: TuitionPost, application_id: str, new_status: ApplicationStatus
) -> dict[str, Any] | None:
    target = find_application(post, application_id)
    if target is None:
        raise ValueError(f"Application {application_id} not found on post {post.id}")

    current = ApplicationStatus(target["status"])
    if current == new_status:
        return None
    if not can_transition_application(current, new_status):
        raise InvalidStatusTransitionError(current, new_status)

    return _replace_statuses(post, {target["id"]: new_status})[0]


def reject_application(post: TuitionPost, application_id: str) -> dict[str, Any] | None:
    """
    Reject one pending application. Siblings and the post are untouched.

    Returns:
        The changed application, or None if it was already rejected

    Raises:
        ValueError: If the application is not on the post
        InvalidStatusTransitionError: If the application is not pending
    """
    return _set_single_status(post, application_id, ApplicationStatus.REJECTED)


def withdraw_application(post: TuitionPost, application_id: str) -> dict[str, Any] | None:
    """
    Withdraw one pending application on behalf of its tutor.

    Returns:
        The changed application, or None if it was already withdrawn

    Raises:
        ValueError: If the application is not on the post
        InvalidStatusTransitionError: If the application is not pending
    """
    return _set_single_status(post, application_id, ApplicationStatus.WITHDRAWN)
