from __future__ import annotations

from datetime import timezone
from typing import Iterable, List, Optional, Set

from dateutil import parser as date_parser

from app.models.articles import RANKED_SET_CAPACITY, ArticleItem


def identity_key(item: ArticleItem) -> str:
    # url is non-empty for every normalized item; title only covers
    # hand-built records.
    return item.url or item.title


def published_sort_key(item: ArticleItem) -> float:
    """Epoch seconds of ``published_at``; unparsable values rank as epoch 0."""
    value = item.published_at
    if not value:
        return 0.0
    try:
        parsed = date_parser.isoparse(value)
    except (ValueError, OverflowError, TypeError):
        return 0.0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.timestamp()
    except (ValueError, OverflowError):
        return 0.0


def dedupe(items: Iterable[ArticleItem]) -> List[ArticleItem]:
    """Keep the first occurrence of every identity key, in input order."""
    seen: Set[str] = set()
    unique: List[ArticleItem] = []
    for item in items:
        key = identity_key(item)
        if key in seen:
            continue
        seen.add(key)
        unique.append(item)
    return unique


def merge_ranked(
    new_items: Iterable[ArticleItem],
    existing_items: Iterable[ArticleItem],
    capacity: Optional[int] = None,
) -> List[ArticleItem]:
    """
    Merge a fresh batch into a subject's ranked set.

    New items come first, so on a shared URL the fresh copy wins. The result
    is de-duplicated, sorted newest first (stable, so ties keep the dedupe
    order) and cut to ``capacity`` items.
    """
    limit = RANKED_SET_CAPACITY if capacity is None else max(0, capacity)
    combined = [*new_items, *existing_items]
    unique = dedupe(combined)
    ranked = sorted(unique, key=published_sort_key, reverse=True)
    return ranked[:limit]
