# app/config.py
from __future__ import annotations

from pathlib import Path
from typing import List, Literal, Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Backend/app/config.py → parents[1] = Backend, parents[2] = repo root
BACKEND_DIR = Path(__file__).resolve().parents[1]
REPO_ROOT = BACKEND_DIR.parent
ENV_FILE = BACKEND_DIR / ".env"
load_dotenv(ENV_FILE, override=False)

DEFAULT_SUBJECTS_CONFIG = REPO_ROOT / "configs" / "subjects.yml"


class Settings(BaseSettings):
    # ---- App ----
    APP_VERSION: str = "0.1.0"
    ALLOWED_ORIGINS: List[str] = Field(
        default_factory=lambda: [
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ]
    )

    # ---- Write API ----
    # No default: without a configured secret every push is rejected.
    WEBHOOK_TOKEN: Optional[str] = None

    # ---- Article store ----
    ARTICLE_STORE_BACKEND: Literal["memory", "postgres"] = "memory"
    DATABASE_URL: Optional[str] = None
    ARTICLES_KEY_PREFIX: str = "articles:"
    ARTICLES_TTL_SECONDS: int = 60 * 60 * 24 * 7
    DB_POOL_MIN_SIZE: int = 1
    DB_POOL_MAX_SIZE: int = 4
    DB_STATEMENT_TIMEOUT_MS: int = 30_000
    DB_QUERY_TIMEOUT_S: float = 30.0

    # ---- Feed ingestion ----
    FEED_FETCH_TIMEOUT_S: float = 15.0
    FEED_FETCH_MAX_CONCURRENCY: int = 5
    FEED_USER_AGENT: str = "latest10-bot/1.0"
    SUBJECTS_CONFIG_PATH: Path = DEFAULT_SUBJECTS_CONFIG

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

settings = Settings()


def require_database_url() -> str:
    """
    Runtime check with a clear error when the postgres store lacks a DSN.
    """
    dsn = (settings.DATABASE_URL or "").strip()
    if not dsn:
        raise RuntimeError(
            "DATABASE_URL is required when ARTICLE_STORE_BACKEND=postgres. "
            f"Set it in the environment or in {ENV_FILE}."
        )
    return dsn
