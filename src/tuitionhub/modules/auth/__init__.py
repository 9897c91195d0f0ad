"""Authentication module."""

from tuitionhub.modules.auth.router import router
from tuitionhub.modules.auth.schemas import (
    AuthResponse,
    LoginRequest,
    RegisterRequest,
    TokenResponse,
)

__all__ = ["router", "AuthResponse", "LoginRequest", "RegisterRequest", "TokenResponse"]
