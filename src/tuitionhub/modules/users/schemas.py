"""
User Schemas

Display shapes for users embedded in other responses, and the full
profile returned to the user themself.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from tuitionhub.modules.users.models import UserRole


class ChildInfo(BaseModel):
    """A guardian's child."""

    name: str = Field(..., min_length=1, max_length=200)
    age: int | None = Field(None, ge=1, le=100)
    grade: str | None = Field(None, max_length=50)


class UserSummary(BaseModel):
    """Public display fields used wherever another record references a user."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    role: UserRole
    avatar: str = ""
    location: str = ""


class UserResponse(BaseModel):
    """Full profile of the authenticated user. Never includes the password hash."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    name: str
    role: UserRole
    bio: str = ""
    location: str = ""
    phone: str = ""
    avatar: str = ""
    children: list[ChildInfo] | None = None
    permissions: list[str] | None = None
    is_verified: bool
    created_at: datetime
    updated_at: datetime
