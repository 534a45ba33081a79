"""
BizIntel Backend Configuration

Uses pydantic-settings for type-safe environment variable loading.
"""

from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings

DEFAULT_JWT_SECRET = "dev-secret-change-in-production"

# Find .env file: check CWD first, then parent (project root)
_env_file = Path(".env")
if not _env_file.exists():
    _parent_env = Path(__file__).resolve().parent.parent.parent / ".env"
    if _parent_env.exists():
        _env_file = _parent_env


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App
    app_name: str = "BizIntel"
    app_version: str = "1.0.0"
    app_env: str = "local"
    debug: bool = False

    # Database
    database_url: str = "sqlite+aiosqlite:///./business_data.db"
    database_echo: bool = False

    # Auth
    jwt_secret: str = DEFAULT_JWT_SECRET
    jwt_algorithm: str = "HS256"
    jwt_expiration_hours: int = 24

    # Rate limiting (fixed window per caller)
    rate_limit_window_seconds: int = 15 * 60
    rate_limit_max_requests: int = 100

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]

    model_config = {
        "env_file": str(_env_file),
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }


@lru_cache
def get_settings() -> Settings:
    """Cached settings instance."""
    settings = Settings()
    _enforce_security_guardrails(settings)
    return settings


def is_local_env(settings: Settings) -> bool:
    env = settings.app_env.strip().lower()
    return env in {"", "local", "dev", "development", "test"}


def _enforce_security_guardrails(settings: Settings) -> None:
    if is_local_env(settings):
        return

    if settings.debug:
        raise ValueError("Refusing to start with debug=true outside local/dev/test")
    if settings.jwt_secret == DEFAULT_JWT_SECRET:
        raise ValueError("Refusing to start with default JWT secret outside local/dev/test")
