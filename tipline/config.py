"""Runtime configuration, read from environment variables."""
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional


def _database_url() -> str:
    url = os.getenv("DATABASE_URL", "sqlite:///./tipline.db")
    # Render/Heroku hand out postgres:// but SQLAlchemy needs postgresql://
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


def _int_env(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


@dataclass
class Settings:
    database_url: str = field(default_factory=_database_url)

    # Case ids look like LAG-2026-00001-482
    case_prefix: str = field(default_factory=lambda: os.getenv("TIPLINE_CASE_PREFIX", "LAG"))

    # 3 bytes -> 6 hex characters -> 2^24 possible case passwords
    secret_bytes: int = field(default_factory=lambda: _int_env("TIPLINE_SECRET_BYTES", 3))
    secret_max_attempts: int = field(default_factory=lambda: _int_env("TIPLINE_SECRET_MAX_ATTEMPTS", 5))
    bcrypt_rounds: int = field(default_factory=lambda: _int_env("TIPLINE_BCRYPT_ROUNDS", 10))
    lookup_pepper: Optional[str] = field(default_factory=lambda: os.getenv("TIPLINE_LOOKUP_PEPPER") or None)

    evidence_dir: str = field(default_factory=lambda: os.getenv("TIPLINE_EVIDENCE_DIR", "./evidence"))
    max_upload_bytes: int = field(default_factory=lambda: _int_env("TIPLINE_MAX_UPLOAD_BYTES", 10 * 1024 * 1024))
    max_upload_files: int = field(default_factory=lambda: _int_env("TIPLINE_MAX_UPLOAD_FILES", 5))

    # Ignored for SQLite
    db_pool_size: int = field(default_factory=lambda: _int_env("TIPLINE_DB_POOL_SIZE", 5))
    db_max_overflow: int = field(default_factory=lambda: _int_env("TIPLINE_DB_MAX_OVERFLOW", 10))

    log_level: str = field(default_factory=lambda: os.getenv("TIPLINE_LOG_LEVEL", "INFO"))

    def __post_init__(self):
        if self.secret_bytes < 3:
            raise ValueError("TIPLINE_SECRET_BYTES must be at least 3 (2^24 case passwords)")
        if self.secret_max_attempts < 1:
            raise ValueError("TIPLINE_SECRET_MAX_ATTEMPTS must be at least 1")
        if not 4 <= self.bcrypt_rounds <= 31:
            raise ValueError("TIPLINE_BCRYPT_ROUNDS must be between 4 and 31")
        if self.max_upload_files < 1:
            raise ValueError("TIPLINE_MAX_UPLOAD_FILES must be at least 1")
        if self.db_pool_size < 1 or self.db_max_overflow < 0:
            raise ValueError("TIPLINE_DB_POOL_SIZE must be positive and TIPLINE_DB_MAX_OVERFLOW non-negative")


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings, read once."""
    return Settings()
