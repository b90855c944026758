from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import List, Optional

from app.config import settings
from app.core.logging import configure_logging, get_logger, with_run_id
from app.models.subjects import load_subjects_config
from services.article_store import ArticleStore, get_article_store
from services.db_service import close_db_pool
from services.subject_ingest_service import ingest_all_subjects

configure_logging(service_name="worker")
logger = get_logger().bind(worker="subject_ingest_bot")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="SubjectIngestBot: pull configured feeds and refresh each subject's latest-10 list."
    )
    parser.add_argument(
        "--subject",
        action="append",
        dest="subjects",
        default=None,
        help="Only ingest this subject (repeatable). Defaults to every configured subject.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to the subjects YAML (defaults to SUBJECTS_CONFIG_PATH).",
    )
    parser.add_argument(
        "--no-purge",
        action="store_true",
        help="Skip deleting expired store entries after the cycle.",
    )
    return parser.parse_args(argv)


async def run_ingest(
    subjects: Optional[List[str]],
    config_path: Optional[Path],
    *,
    purge: bool = True,
    store: Optional[ArticleStore] = None,
) -> int:
    store = store or get_article_store()
    config = load_subjects_config(config_path).select(subjects)
    try:
        await store.ensure_schema()
        result = await ingest_all_subjects(config, store)
        purged = await store.purge_expired() if purge else 0
    except Exception as exc:
        logger.error("subject_ingest_bot_failed", error=str(exc))
        return 1

    logger.info(
        "subject_ingest_bot_finished",
        total_subjects=result.get("total_subjects"),
        skipped_feeds=result.get("skipped_feeds"),
        total_items=result.get("total_items"),
        degraded=result.get("degraded"),
        purged=purged,
    )
    return 0


async def main_async(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    with with_run_id():
        try:
            return await run_ingest(args.subjects, args.config, purge=not args.no_purge)
        finally:
            if settings.ARTICLE_STORE_BACKEND == "postgres":
                await close_db_pool()


def main() -> None:
    exit_code = asyncio.run(main_async())
    raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
