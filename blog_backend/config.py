"""
Configuration and settings for the blog backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEV_JWT_SECRET = "dev_secret_change_me"


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")

    # Database (SQLite file by default, any SQLAlchemy URL works)
    database_url: str = Field(default="sqlite:///blog.db")

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    # Token signing
    jwt_secret: Optional[str] = Field(default=None)
    jwt_issuer: str = Field(default="blog-backend")
    token_ttl_hours: int = Field(default=24, ge=1)
    require_jwt_secret: bool = Field(default=False)

    # Static front end
    web_dir: str = Field(default="web")

    # Listener
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080)
    log_level: str = Field(default="INFO")

    @property
    def signing_secret(self) -> str:
        """Configured secret, or the fixed development secret when unset."""
        return self.jwt_secret or DEV_JWT_SECRET

    @property
    def uses_dev_secret(self) -> bool:
        return not self.jwt_secret


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
