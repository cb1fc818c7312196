"""
Application configuration from environment variables.
Loads .env from the backend directory so secrets are found regardless of cwd.
"""
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# .env next to backend/ (parent of qbank/); load explicitly so values are set even when run from repo root
_BACKEND_DIR = Path(__file__).resolve().parent.parent
_ENV_FILE = _BACKEND_DIR / ".env"

if _ENV_FILE.exists():
    from dotenv import load_dotenv
    load_dotenv(_ENV_FILE, override=False)

_DEFAULT_SECRET_KEY = "change-me-in-production"


class Settings(BaseSettings):
    """Load and validate config from env."""

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE if _ENV_FILE.exists() else None,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Identity store (users + roles): sqlite for local runs, postgresql for production
    database_url: str = "sqlite:///./qbank_dev.db"

    # Environment: set ENV=production in production; used to enforce SECRET_KEY.
    env: str = ""

    secret_key: str = _DEFAULT_SECRET_KEY
    jwt_algorithm: str = "HS256"
    jwt_expire_hours: int = 24

    # Blob store for questions and exam books (one file per key)
    data_dir: Path = Path("./data")
    # Total bytes the blob store may hold; writes beyond it raise QuotaExceeded. 0 disables the check.
    storage_quota_bytes: int = 5 * 1024 * 1024

    # CORS: comma-separated origins
    cors_origins: str = "http://localhost:5173"

    @field_validator("storage_quota_bytes")
    @classmethod
    def _non_negative_quota(cls, v: int) -> int:
        if v < 0:
            raise ValueError("storage_quota_bytes must be >= 0")
        return v

    @property
    def is_production(self) -> bool:
        return (self.env or "").strip().lower() == "production"

    @property
    def uses_default_secret(self) -> bool:
        return (self.secret_key or "").strip() == _DEFAULT_SECRET_KEY


settings = Settings()
