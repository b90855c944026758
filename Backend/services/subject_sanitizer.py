from __future__ import annotations

import re
from typing import Optional

from app.config import settings

_DISALLOWED_KEY_CHARS_RE = re.compile(r"[^a-z0-9_-]")


def sanitize(value: object) -> str:
    """
    Lower-case ``value`` and replace every character outside ``[a-z0-9_-]``
    with ``-``. ``None`` and empty input give an empty key.
    """
    if value is None:
        return ""
    text = value if isinstance(value, str) else str(value)
    return _DISALLOWED_KEY_CHARS_RE.sub("-", text.lower())


def store_key(subject: object, prefix: Optional[str] = None) -> str:
    """Store entry key for a subject: namespace prefix + sanitized subject."""
    namespace = settings.ARTICLES_KEY_PREFIX if prefix is None else prefix
    return f"{namespace}{sanitize(subject)}"
