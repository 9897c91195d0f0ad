"""
Role capabilities.

Authorization is expressed as "does this role hold capability X", never as
role string comparisons scattered across handlers.
"""

from enum import Enum

from tuitionhub.modules.users.models import UserRole


class Capability(str, Enum):
    """Actions a role may be allowed to perform."""

    CREATE_POST = "create_post"
    MANAGE_ANY_POST = "manage_any_post"
    VIEW_OWN_POSTS = "view_own_posts"
    VIEW_ALL_POSTS = "view_all_posts"
    APPLY_TO_POST = "apply_to_post"
    VIEW_OWN_APPLICATIONS = "view_own_applications"
    CREATE_TUTOR_PROFILE = "create_tutor_profile"
    MANAGE_ANY_TUTOR_PROFILE = "manage_any_tutor_profile"
    REVIEW_TUTOR = "review_tutor"


ROLE_CAPABILITIES: dict[UserRole, frozenset[Capability]] = {
    UserRole.STUDENT: frozenset(
        {
            Capability.REVIEW_TUTOR,
        }
    ),
    UserRole.GUARDIAN: frozenset(
        {
            Capability.CREATE_POST,
            Capability.VIEW_OWN_POSTS,
            Capability.REVIEW_TUTOR,
        }
    ),
    UserRole.TUTOR: frozenset(
        {
            Capability.APPLY_TO_POST,
            Capability.VIEW_OWN_APPLICATIONS,
            Capability.CREATE_TUTOR_PROFILE,
            Capability.REVIEW_TUTOR,
        }
    ),
    UserRole.ADMIN: frozenset(
        {
            Capability.CREATE_POST,
            Capability.MANAGE_ANY_POST,
            Capability.VIEW_OWN_POSTS,
            Capability.VIEW_ALL_POSTS,
            Capability.MANAGE_ANY_TUTOR_PROFILE,
            Capability.REVIEW_TUTOR,
        }
    ),
}


def has_capability(role: UserRole, capability: Capability) -> bool:
    """Return True if the role holds the capability."""
    return capability in ROLE_CAPABILITIES.get(role, frozenset())
