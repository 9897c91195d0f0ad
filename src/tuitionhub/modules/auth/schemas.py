"""Authentication schemas."""

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from tuitionhub.modules.users.models import UserRole
from tuitionhub.modules.users.schemas import ChildInfo, UserResponse

# Admin accounts are provisioned out of band, never self-registered
SELF_REGISTRATION_ROLES = {UserRole.STUDENT, UserRole.TUTOR, UserRole.GUARDIAN}


class RegisterRequest(BaseModel):
    """Registration request schema."""

    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    role: UserRole
    phone: str = Field("", max_length=30)
    location: str = Field("", max_length=200)
    bio: str = Field("", max_length=2000)
    children: list[ChildInfo] | None = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name cannot be blank")
        return value

    @field_validator("role")
    @classmethod
    def validate_role(cls, value: UserRole) -> UserRole:
        if value not in SELF_REGISTRATION_ROLES:
            raise ValueError("role must be one of: student, tutor, guardian")
        return value


class LoginRequest(BaseModel):
    """Login request schema."""

    email: EmailStr
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class TokenResponse(BaseModel):
    """Token response schema."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class AuthResponse(TokenResponse):
    """Tokens plus the authenticated user's profile."""

    user: UserResponse


class ProfileUpdateRequest(BaseModel):
    """
    Profile update schema.

    Email and role are not updatable. The password is re-hashed only when
    a new one is given.
    """

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(None, min_length=1, max_length=200)
    bio: str | None = Field(None, max_length=2000)
    location: str | None = Field(None, max_length=200)
    phone: str | None = Field(None, max_length=30)
    avatar: str | None = Field(None, max_length=500)
    children: list[ChildInfo] | None = None
    password: str | None = Field(None, min_length=6, max_length=128)
