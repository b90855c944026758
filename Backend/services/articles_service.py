from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from app.core.logging import get_logger
from app.models.articles import ArticleItem
from services.article_normalization import normalize_items
from services.article_store import ArticleStore
from services.ranked_merge import merge_ranked
from services.subject_sanitizer import sanitize

logger = get_logger()


def parse_subjects_param(value: Optional[str]) -> List[str]:
    """Comma-separated subjects → trimmed, non-empty identifiers."""
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


async def get_ranked_sets(
    store: ArticleStore,
    subjects: Sequence[str],
) -> Dict[str, List[ArticleItem]]:
    out: Dict[str, List[ArticleItem]] = {}
    for subject in subjects:
        out[subject] = await store.load(subject)
    return out


async def merge_into_subject(
    store: ArticleStore,
    subject: str,
    batch: Sequence[ArticleItem],
    ttl_seconds: Optional[int] = None,
) -> List[ArticleItem]:
    """Read-merge-write one subject's ranked set and refresh its TTL."""
    existing = await store.load(subject)
    merged = merge_ranked(batch, existing)
    await store.save(subject, merged, ttl_seconds=ttl_seconds)
    return merged


async def push_items(
    store: ArticleStore,
    subject: str,
    raw_items: Sequence[Any],
    now: Optional[datetime] = None,
) -> List[ArticleItem]:
    subject_key = sanitize(subject)
    items = normalize_items(raw_items, now=now)
    merged = await merge_into_subject(store, subject_key, items)
    logger.info(
        "articles_push_merged",
        subject=subject_key,
        received=len(raw_items),
        accepted=len(items),
        stored=len(merged),
    )
    return merged
