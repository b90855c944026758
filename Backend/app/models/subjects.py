"""
Subject configuration loader.

Parses configs/subjects.yml into an immutable SubjectsConfig value that the
ingestion worker builds once at startup and hands to the orchestrator.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import yaml

from app.config import settings
from app.core.logging import get_logger
from services.subject_sanitizer import sanitize

logger = get_logger()


@dataclass(frozen=True)
class SubjectsConfig:
    """Subject key → ordered, de-duplicated feed URLs."""

    feeds: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)

    @property
    def subjects(self) -> List[str]:
        return list(self.feeds.keys())

    def feeds_for(self, subject: str) -> Tuple[str, ...]:
        return self.feeds.get(subject, ())

    def select(self, names: Optional[Iterable[str]]) -> "SubjectsConfig":
        """Restrict to ``names``; ``None`` keeps everything."""
        if names is None:
            return self
        wanted = [n.strip() for n in names if n and n.strip()]
        unknown = [n for n in wanted if n not in self.feeds]
        if unknown:
            logger.warning("subjects_config_unknown_subjects", unknown=unknown)
        return SubjectsConfig(
            feeds={n: self.feeds[n] for n in self.feeds if n in wanted}
        )

    def __len__(self) -> int:
        return len(self.feeds)


def _is_feed_url(value: object) -> bool:
    return isinstance(value, str) and value.strip().startswith(("http://", "https://"))


def _validate_feeds(subject: str, raw_feeds: object) -> Tuple[str, ...]:
    if isinstance(raw_feeds, str):
        raw_feeds = [raw_feeds]
    if not isinstance(raw_feeds, list):
        logger.warning(
            "subjects_config_invalid_feed_list",
            subject=subject,
            feeds_type=type(raw_feeds).__name__,
        )
        return ()

    feeds: List[str] = []
    for raw in raw_feeds:
        if not _is_feed_url(raw):
            logger.warning("subjects_config_invalid_feed_url", subject=subject, url=raw)
            continue
        url = raw.strip()
        if url in feeds:
            logger.warning("subjects_config_duplicate_feed_url", subject=subject, url=url)
            continue
        feeds.append(url)
    return tuple(feeds)


def parse_subjects_config(data: object) -> SubjectsConfig:
    """Validate an already-parsed YAML document."""
    if not isinstance(data, dict):
        logger.error("subjects_config_invalid_root", root_type=type(data).__name__)
        return SubjectsConfig()

    subjects = data.get("subjects")
    if not isinstance(subjects, dict):
        logger.error(
            "subjects_config_missing_subjects",
            subjects_type=type(subjects).__name__,
        )
        return SubjectsConfig()

    feeds: Dict[str, Tuple[str, ...]] = {}
    claimed_keys: Dict[str, str] = {}
    for raw_subject, raw_feeds in subjects.items():
        subject = str(raw_subject).strip() if raw_subject is not None else ""
        if not subject:
            logger.warning("subjects_config_empty_subject")
            continue
        valid = _validate_feeds(subject, raw_feeds)
        if not valid:
            logger.warning("subjects_config_subject_without_feeds", subject=subject)
            continue
        # one store key per subject; the first spelling wins
        key = sanitize(subject)
        if key in claimed_keys:
            logger.warning(
                "subjects_config_store_key_collision",
                subject=subject,
                kept=claimed_keys[key],
                store_key=key,
            )
            continue
        claimed_keys[key] = subject
        feeds[subject] = valid

    return SubjectsConfig(feeds=feeds)


def load_subjects_config(path: Optional[Path] = None) -> SubjectsConfig:
    """
    Load and validate the subject configuration.

    A missing or unparsable file yields an empty config; the worker then
    runs a no-op cycle.
    """
    cfg_path = Path(path) if path else Path(settings.SUBJECTS_CONFIG_PATH)
    try:
        text = cfg_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.error("subjects_config_not_found", path=str(cfg_path))
        return SubjectsConfig()
    except OSError as exc:
        logger.error("subjects_config_read_error", path=str(cfg_path), error=str(exc))
        return SubjectsConfig()

    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        logger.error("subjects_config_parse_error", path=str(cfg_path), error=str(exc))
        return SubjectsConfig()

    config = parse_subjects_config(data)
    logger.info(
        "subjects_config_loaded",
        path=str(cfg_path),
        subjects=config.subjects,
        total_feeds=sum(len(f) for f in config.feeds.values()),
    )
    return config
