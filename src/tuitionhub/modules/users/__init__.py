"""
Users module - User identity, roles and capabilities.
"""

from tuitionhub.modules.users.models import AdminPermission, User, UserRole
from tuitionhub.modules.users.permissions import ROLE_CAPABILITIES, Capability, has_capability
from tuitionhub.modules.users.repository import UserRepository

__all__ = [
    "User",
    "UserRole",
    "AdminPermission",
    "UserRepository",
    "Capability",
    "ROLE_CAPABILITIES",
    "has_capability",
]
