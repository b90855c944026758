from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Pattern, Tuple

from app.models.articles import ArticleItem
from services.article_normalization import normalize_items

# Fragment patterns stay case-sensitive; field patterns are not.
_RSS_ITEM_RE = re.compile(r"<item\b[\s\S]*?</item>")
_ATOM_ENTRY_RE = re.compile(r"<entry\b[\s\S]*?</entry>")

_RSS_TITLE_RE = re.compile(r"<title>([\s\S]*?)</title>", re.IGNORECASE)
_RSS_LINK_RE = re.compile(r"<link>([\s\S]*?)</link>", re.IGNORECASE)
_RSS_PUBDATE_RE = re.compile(r"<pubDate>([\s\S]*?)</pubDate>", re.IGNORECASE)
_RSS_DC_DATE_RE = re.compile(r"<dc:date>([\s\S]*?)</dc:date>", re.IGNORECASE)

_ATOM_TITLE_RE = re.compile(r"<title[^>]*>([\s\S]*?)</title>", re.IGNORECASE)
_ATOM_LINK_HREF_RE = re.compile(r"<link[^>]*href=\"([^\"]+)\"[^>]*/>", re.IGNORECASE)
_ATOM_ID_RE = re.compile(r"<id>([\s\S]*?)</id>", re.IGNORECASE)
_ATOM_UPDATED_RE = re.compile(r"<updated>([\s\S]*?)</updated>", re.IGNORECASE)
_ATOM_PUBLISHED_RE = re.compile(r"<published>([\s\S]*?)</published>", re.IGNORECASE)

# Applied in order; "&amp;lt;" therefore ends up as "<".
_XML_ENTITIES = (
    ("&amp;", "&"),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
)


class FeedKind(str, Enum):
    RSS = "rss"
    ATOM = "atom"
    EMPTY = "empty"


@dataclass(frozen=True)
class ParsedFeed:
    kind: FeedKind
    items: List[ArticleItem] = field(default_factory=list)


def decode_entities(value: str) -> str:
    """Replace the five predefined XML references, one after another."""
    for entity, char in _XML_ENTITIES:
        value = value.replace(entity, char)
    return value


def _pick(fragment: str, pattern: Pattern[str]) -> str:
    match = pattern.search(fragment)
    if not match:
        return ""
    return decode_entities(match.group(1).strip())


def detect_fragments(document: Any) -> Tuple[FeedKind, List[str]]:
    """
    Priority-ordered detection: RSS items win over Atom entries, a document
    with neither is EMPTY.
    """
    if not isinstance(document, str) or not document:
        return FeedKind.EMPTY, []
    items = _RSS_ITEM_RE.findall(document)
    if items:
        return FeedKind.RSS, items
    entries = _ATOM_ENTRY_RE.findall(document)
    if entries:
        return FeedKind.ATOM, entries
    return FeedKind.EMPTY, []


def _rss_fields(fragment: str, source_label: str) -> Dict[str, str]:
    return {
        "title": _pick(fragment, _RSS_TITLE_RE),
        "url": _pick(fragment, _RSS_LINK_RE),
        "source": source_label,
        "publishedAt": _pick(fragment, _RSS_PUBDATE_RE) or _pick(fragment, _RSS_DC_DATE_RE),
    }


def _atom_fields(fragment: str, source_label: str) -> Dict[str, str]:
    return {
        "title": _pick(fragment, _ATOM_TITLE_RE),
        "url": _pick(fragment, _ATOM_LINK_HREF_RE) or _pick(fragment, _ATOM_ID_RE),
        "source": source_label,
        "publishedAt": _pick(fragment, _ATOM_UPDATED_RE) or _pick(fragment, _ATOM_PUBLISHED_RE),
    }


def parse_feed_document(
    document: Any,
    source_label: str,
    now: Optional[datetime] = None,
) -> ParsedFeed:
    """
    Best-effort RSS/Atom extraction by pattern scan.

    No XML tree is built, so a malformed document degrades to fewer items
    instead of an error. Extracted fields go through the normal item
    validation, so the result only holds valid articles.
    """
    kind, fragments = detect_fragments(document)
    if kind is FeedKind.EMPTY:
        return ParsedFeed(kind=kind)

    to_fields = _rss_fields if kind is FeedKind.RSS else _atom_fields
    label = source_label or ""
    raw_items = [to_fields(fragment, label) for fragment in fragments]
    return ParsedFeed(kind=kind, items=normalize_items(raw_items, now=now))


def parse_feed(document: Any, source_label: str, now: Optional[datetime] = None) -> List[ArticleItem]:
    return parse_feed_document(document, source_label, now=now).items
