from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, List, Mapping, Optional
from urllib.parse import urlparse

from dateutil import parser as date_parser
from dateutil import tz

from app.models.articles import TITLE_MAX_LENGTH, ArticleItem
from services.subject_sanitizer import sanitize

_URL_FIELDS = ("url", "link")
_SOURCE_FIELDS = ("source", "site")
_DATE_FIELDS = ("publishedAt", "pubDate", "date")
_SUBJECT_FIELDS = ("subject", "topic")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
# Free-form values are parsed against both defaults; a value whose calendar
# date depends on the default ("Monday", "12:30", "May") is not a date.
_PARSE_DEFAULTS = (datetime(2000, 1, 1), datetime(2001, 2, 2))

# Zone abbreviations that show up in RFC 822 pubDate values.
_TZINFOS = {
    "UT": tz.UTC,
    "UTC": tz.UTC,
    "GMT": tz.UTC,
    "Z": tz.UTC,
    "EST": tz.tzoffset("EST", -5 * 3600),
    "EDT": tz.tzoffset("EDT", -4 * 3600),
    "CST": tz.tzoffset("CST", -6 * 3600),
    "CDT": tz.tzoffset("CDT", -5 * 3600),
    "MST": tz.tzoffset("MST", -7 * 3600),
    "MDT": tz.tzoffset("MDT", -6 * 3600),
    "PST": tz.tzoffset("PST", -8 * 3600),
    "PDT": tz.tzoffset("PDT", -7 * 3600),
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_iso(value: datetime) -> str:
    """UTC ISO-8601 with millisecond precision and a ``Z`` suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return ""
    if isinstance(value, (int, float)):
        return str(value)
    return ""


def _first_present(raw: Mapping[str, Any], names: Iterable[str]) -> Any:
    for name in names:
        value = raw.get(name)
        if value:
            return value
    return None


def _parse_text(text: str) -> Optional[datetime]:
    try:
        return date_parser.isoparse(text)
    except (ValueError, OverflowError, TypeError):
        pass
    try:
        first, second = (
            date_parser.parse(text, default=default, tzinfos=_TZINFOS) for default in _PARSE_DEFAULTS
        )
    except (ValueError, OverflowError, TypeError):
        return None
    if first != second:
        return None
    return first


def _parse_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        # numeric dates are epoch milliseconds
        try:
            return _EPOCH + timedelta(milliseconds=value)
        except (OverflowError, ValueError):
            return None
    elif isinstance(value, str) and value.strip():
        parsed = _parse_text(value.strip())
        if parsed is None:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.astimezone(timezone.utc)
    except (ValueError, OverflowError):
        return None


def coerce_published_at(value: Any, now: Optional[datetime] = None) -> str:
    """
    Turn a loosely-typed date into an ISO-8601 instant.

    Absent or unparsable values fall back to ``now`` (the current instant
    when not given); this never raises.
    """
    parsed = _parse_datetime(value) if value else None
    if parsed is None:
        parsed = now or _utc_now()
    return format_iso(parsed)


def is_http_url(value: str) -> bool:
    """Absolute http(s) URL. Whitespace is tolerated after the host, not in the scheme or host."""
    if not value:
        return False
    try:
        parsed = urlparse(value)
        # .port raises ValueError on a malformed port
        parsed.port
    except ValueError:
        return False
    if any(ch.isspace() for ch in parsed.scheme + parsed.netloc):
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.hostname)


def truncate_title(title: str, limit: int = TITLE_MAX_LENGTH) -> str:
    """
    Cut to ``limit`` UTF-16 code units. A surrogate pair split by the cut is
    dropped whole.
    """
    encoded = title.encode("utf-16-le")
    if len(encoded) <= limit * 2:
        return title
    return encoded[: limit * 2].decode("utf-16-le", errors="ignore")


def normalize_item(raw: Any, now: Optional[datetime] = None) -> Optional[ArticleItem]:
    """Normalize one raw field bag; ``None`` when the item is not usable."""
    if not isinstance(raw, Mapping):
        return None

    title = truncate_title(_as_text(raw.get("title")).strip())
    url = _as_text(_first_present(raw, _URL_FIELDS)).strip()
    if not title or not is_http_url(url):
        return None

    return ArticleItem(
        title=title,
        url=url,
        source=_as_text(_first_present(raw, _SOURCE_FIELDS)).strip(),
        published_at=coerce_published_at(_first_present(raw, _DATE_FIELDS), now=now),
        subject=sanitize(_as_text(_first_present(raw, _SUBJECT_FIELDS))),
    )


def normalize_items(
    raw_items: Optional[Iterable[Any]],
    now: Optional[datetime] = None,
) -> List[ArticleItem]:
    """
    Normalize raw field bags into validated articles.

    Items without a title or without an absolute http(s) URL are dropped;
    survivors keep their input order. All items of one call share the same
    fallback instant.
    """
    if not raw_items:
        return []
    instant = now or _utc_now()
    items: List[ArticleItem] = []
    for raw in raw_items:
        item = normalize_item(raw, now=instant)
        if item is not None:
            items.append(item)
    return items

