"""
Helpers for turning TuitionPost rows into API responses.
"""

from collections.abc import Iterable, Mapping
from typing import Any
from uuid import UUID

from tuitionhub.modules.tuition_posts.models import TuitionPost
from tuitionhub.modules.tuition_posts.schemas import (
    ApplicationResponse,
    MyApplicationItem,
    TuitionPostResponse,
)
from tuitionhub.modules.users.models import User
from tuitionhub.modules.users.schemas import UserSummary


def referenced_user_ids(posts: Iterable[TuitionPost]) -> set[UUID]:
    """Every user id a batch of posts refers to: guardians, applicants, selected tutors."""
    ids: set[UUID] = set()
    for post in posts:
        ids.add(post.guardian_id)
        if post.selected_tutor_id:
            ids.add(post.selected_tutor_id)
        ids.update(UUID(a["tutor_id"]) for a in post.applications or [])
    return ids


def _summary(users: Mapping[UUID, User], user_id: UUID | str | None) -> UserSummary | None:
    if user_id is None:
        return None
    user = users.get(UUID(str(user_id)))
    return UserSummary.model_validate(user) if user else None


def build_application_response(
    application: dict[str, Any], users: Mapping[UUID, User]
) -> ApplicationResponse:
    return ApplicationResponse(
        **application,
        tutor=_summary(users, application["tutor_id"]),
    )


def build_post_response(post: TuitionPost, users: Mapping[UUID, User]) -> TuitionPostResponse:
    """
    Serialize a post with its references resolved.

    A reference to a user that no longer resolves is rendered as None
    rather than failing the whole response.
    """
    applications = post.applications or []
    return TuitionPostResponse(
        id=post.id,
        guardian_id=post.guardian_id,
        guardian=_summary(users, post.guardian_id),
        title=post.title,
        description=post.description,
        subjects=post.subjects,
        student_info=post.student_info or {},
        requirements=post.requirements or {},
        schedule=post.schedule or {},
        budget=post.budget or {},
        location=post.location or {},
        status=post.status,
        priority=post.priority,
        tags=post.tags or [],
        expires_at=post.expires_at,
        applications=[build_application_response(a, users) for a in applications],
        application_count=len(applications),
        selected_tutor_id=post.selected_tutor_id,
        selected_tutor=_summary(users, post.selected_tutor_id),
        created_at=post.created_at,
        updated_at=post.updated_at,
    )


def build_my_application_item(
    post: TuitionPost, application: dict[str, Any], users: Mapping[UUID, User]
) -> MyApplicationItem:
    base = build_post_response(post, users)
    return MyApplicationItem(
        **base.model_dump(),
        my_application=build_application_response(application, users),
    )
