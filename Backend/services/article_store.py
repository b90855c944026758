"""
Subject store adapters.

A subject's ranked set lives under ``ARTICLES_KEY_PREFIX + sanitize(subject)``
as a JSON array of article records and expires after a fixed TTL that is
reset on every write. A missing or expired entry reads as an empty set.
"""

from __future__ import annotations

import json
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from app.config import settings
from app.core.logging import get_logger
from app.models.articles import ArticleItem
from services import db_service
from services.subject_sanitizer import store_key

logger = get_logger()


def encode_ranked_set(items: Sequence[ArticleItem]) -> str:
    return json.dumps([item.to_record() for item in items], ensure_ascii=False)


def decode_ranked_set(raw: Any, *, key: str = "") -> List[ArticleItem]:
    """
    Tolerant read: bad JSON or bad records are logged and skipped, never
    raised. A corrupt entry reads as the records that still validate.
    """
    if raw is None or raw == "":
        return []
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except ValueError as exc:
            logger.warning("article_store_payload_invalid_json", key=key, error=str(exc))
            return []
    else:
        data = raw

    if not isinstance(data, list):
        logger.warning("article_store_payload_not_a_list", key=key, payload_type=type(data).__name__)
        return []

    items: List[ArticleItem] = []
    for record in data:
        try:
            items.append(ArticleItem.model_validate(record))
        except ValidationError as exc:
            logger.warning(
                "article_store_record_invalid",
                key=key,
                error_count=exc.error_count(),
            )
    return items


class ArticleStore(ABC):
    def __init__(self, *, key_prefix: Optional[str] = None) -> None:
        self.key_prefix = settings.ARTICLES_KEY_PREFIX if key_prefix is None else key_prefix

    def key_for(self, subject: str) -> str:
        return store_key(subject, prefix=self.key_prefix)

    @abstractmethod
    async def load(self, subject: str) -> List[ArticleItem]:
        ...

    @abstractmethod
    async def save(
        self,
        subject: str,
        items: Sequence[ArticleItem],
        ttl_seconds: Optional[int] = None,
    ) -> None:
        ...

    @abstractmethod
    async def purge_expired(self) -> int:
        ...

    async def ensure_schema(self) -> None:
        return None

    @staticmethod
    def _ttl(ttl_seconds: Optional[int]) -> int:
        return settings.ARTICLES_TTL_SECONDS if ttl_seconds is None else int(ttl_seconds)


class MemoryArticleStore(ArticleStore):
    """In-process key/value store with TTL; for development and tests."""

    def __init__(
        self,
        *,
        key_prefix: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(key_prefix=key_prefix)
        self._clock = clock
        self._entries: Dict[str, Tuple[str, float]] = {}

    def _get_live(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        payload, expires_at = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return None
        return payload

    async def load(self, subject: str) -> List[ArticleItem]:
        key = self.key_for(subject)
        return decode_ranked_set(self._get_live(key), key=key)

    async def save(
        self,
        subject: str,
        items: Sequence[ArticleItem],
        ttl_seconds: Optional[int] = None,
    ) -> None:
        key = self.key_for(subject)
        self._entries[key] = (encode_ranked_set(items), self._clock() + self._ttl(ttl_seconds))

    async def purge_expired(self) -> int:
        now = self._clock()
        expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def raw(self, subject: str) -> Optional[str]:
        return self._get_live(self.key_for(subject))


class PostgresArticleStore(ArticleStore):
    """Ranked sets in a ``subject_articles`` table, one row per store key."""

    TABLE = "subject_articles"

    async def ensure_schema(self) -> None:
        await db_service.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {self.TABLE} (
                store_key TEXT PRIMARY KEY,
                items JSONB NOT NULL DEFAULT '[]'::jsonb,
                expires_at TIMESTAMPTZ NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
            """
        )
        await db_service.execute(
            f"CREATE INDEX IF NOT EXISTS {self.TABLE}_expires_at_idx ON {self.TABLE} (expires_at)"
        )

    async def load(self, subject: str) -> List[ArticleItem]:
        key = self.key_for(subject)
        row = await db_service.fetchrow(
            f"""
            SELECT items
            FROM {self.TABLE}
            WHERE store_key = $1
              AND expires_at > NOW()
            """,
            key,
        )
        if not row:
            return []
        return decode_ranked_set(row["items"], key=key)

    async def save(
        self,
        subject: str,
        items: Sequence[ArticleItem],
        ttl_seconds: Optional[int] = None,
    ) -> None:
        key = self.key_for(subject)
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=self._ttl(ttl_seconds))
        await db_service.execute(
            f"""
            INSERT INTO {self.TABLE} (store_key, items, expires_at, updated_at)
            VALUES ($1, CAST($2 AS JSONB), $3, NOW())
            ON CONFLICT (store_key) DO UPDATE
            SET items = EXCLUDED.items,
                expires_at = EXCLUDED.expires_at,
                updated_at = NOW()
            """,
            key,
            encode_ranked_set(items),
            expires_at,
        )

    async def purge_expired(self) -> int:
        result = await db_service.execute(
            f"DELETE FROM {self.TABLE} WHERE expires_at <= NOW()"
        )
        # asyncpg status string, e.g. "DELETE 3"
        try:
            return int(str(result).rsplit(" ", 1)[-1])
        except ValueError:
            return 0


@lru_cache(maxsize=1)
def get_article_store() -> ArticleStore:
    backend = settings.ARTICLE_STORE_BACKEND
    if backend == "postgres":
        return PostgresArticleStore()
    return MemoryArticleStore()
