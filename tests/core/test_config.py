"""
Tests for application settings.
"""

import pytest
from pydantic import ValidationError

from tuitionhub.core.config import DEFAULT_JWT_SECRET_KEY, Settings


class TestSettings:
    def test_production_refuses_default_jwt_secret(self):
        with pytest.raises(ValidationError, match="JWT_SECRET_KEY"):
            Settings(_env_file=None, python_env="production", jwt_secret_key=DEFAULT_JWT_SECRET_KEY)

    def test_production_with_real_secret(self):
        config = Settings(
            _env_file=None, python_env="production", jwt_secret_key="s3cr3t-from-vault"
        )

        assert config.is_production

    def test_development_keeps_default_secret(self):
        config = Settings(
            _env_file=None, python_env="development", jwt_secret_key=DEFAULT_JWT_SECRET_KEY
        )

        assert config.is_development

    def test_database_url_gets_asyncpg_driver(self):
        config = Settings(_env_file=None, database_url="postgres://u:p@db:5432/tuitionhub")

        assert config.async_database_url == "postgresql+asyncpg://u:p@db:5432/tuitionhub"
