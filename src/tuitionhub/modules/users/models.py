"""
User Models

Database model for user identity and authentication.
"""

from enum import Enum

from sqlalchemy import Boolean, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from tuitionhub.modules.shared import BaseModel, enum_type


class UserRole(str, Enum):
    """User roles in the system. Assigned at registration, never changed by the user."""

    STUDENT = "student"
    TUTOR = "tutor"
    GUARDIAN = "guardian"
    ADMIN = "admin"


class AdminPermission(str, Enum):
    """Fine-grained permissions carried by admin accounts."""

    MANAGE_USERS = "manage_users"
    MANAGE_POSTS = "manage_posts"
    MANAGE_APPLICATIONS = "manage_applications"
    VIEW_ANALYTICS = "view_analytics"


class User(BaseModel):
    """
    User model for authentication and authorization.

    Role-specific data lives elsewhere: tutors get a TutorProfile,
    guardians carry a ``children`` list, admins a ``permissions`` list.
    """

    __tablename__ = "users"

    # Authentication fields
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    password_hash: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )

    # Role
    role: Mapped[UserRole] = mapped_column(
        enum_type(UserRole, "user_role"),
        nullable=False,
    )

    # Profile fields
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    bio: Mapped[str] = mapped_column(Text, nullable=False, default="")
    location: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    phone: Mapped[str] = mapped_column(String(30), nullable=False, default="")
    avatar: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    # Guardian only: [{name, age, grade}, ...]
    children: Mapped[list | None] = mapped_column(JSONB, nullable=True)

    # Admin only: list of AdminPermission values
    permissions: Mapped[list | None] = mapped_column(JSONB, nullable=True)

    is_verified: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role.value})>"
