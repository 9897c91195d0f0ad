"""
Core module - Configuration, database, security, and utilities.
"""

from tuitionhub.core.config import get_settings, settings
from tuitionhub.core.database import Base, DatabaseManager, get_db
from tuitionhub.core.redis import close_redis, init_redis
from tuitionhub.core.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    hash_password,
    verify_password,
)

__all__ = [
    # Config
    "settings",
    "get_settings",
    # Database
    "Base",
    "DatabaseManager",
    "get_db",
    # Redis
    "init_redis",
    "close_redis",
    # Security
    "hash_password",
    "verify_password",
    "create_access_token",
    "create_refresh_token",
    "decode_token",
]
