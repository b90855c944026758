from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import httpx

from app.config import settings
from app.core.logging import get_logger
from app.models.articles import ArticleItem
from app.models.subjects import SubjectsConfig
from services.article_store import ArticleStore
from services.articles_service import merge_into_subject
from services.feed_parser import FeedKind, parse_feed_document

logger = get_logger()

SKIP_NO_ITEMS = "no_items"


@dataclass(frozen=True)
class FeedOutcome:
    """Result of one feed: parsed items, or the reason it was skipped."""

    feed_url: str
    items: List[ArticleItem] = field(default_factory=list)
    kind: FeedKind = FeedKind.EMPTY
    skipped_reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.skipped_reason is None


@dataclass(frozen=True)
class SubjectIngestResult:
    subject: str
    feeds: List[FeedOutcome]
    merged_count: int

    @property
    def batch_size(self) -> int:
        return sum(len(outcome.items) for outcome in self.feeds)

    @property
    def skipped_feeds(self) -> List[FeedOutcome]:
        return [outcome for outcome in self.feeds if not outcome.ok]


class SubjectIngestService:
    def __init__(
        self,
        store: ArticleStore,
        *,
        timeout_s: Optional[float] = None,
        max_concurrency: Optional[int] = None,
        user_agent: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.store = store
        self.timeout_s = settings.FEED_FETCH_TIMEOUT_S if timeout_s is None else timeout_s
        self.max_concurrency = (
            settings.FEED_FETCH_MAX_CONCURRENCY if max_concurrency is None else max_concurrency
        )
        self.user_agent = user_agent or settings.FEED_USER_AGENT
        self._client = client
        self._owns_client = client is None
        self._sem = asyncio.Semaphore(max(1, self.max_concurrency))

    async def __aenter__(self) -> "SubjectIngestService":
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout_s,
                headers={"User-Agent": self.user_agent},
                follow_redirects=True,
            )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _fetch_document(self, feed_url: str) -> str:
        if not self._client:
            raise RuntimeError("SubjectIngestService client not initialized")
        async with self._sem:
            response = await self._client.get(feed_url)
        response.raise_for_status()
        return response.text

    async def fetch_feed(self, feed_url: str) -> FeedOutcome:
        """Fetch and parse one feed; every fault becomes a skip."""
        try:
            document = await self._fetch_document(feed_url)
            parsed = parse_feed_document(document, feed_url)
        except Exception as exc:
            reason = f"fetch_failed:{exc.__class__.__name__}"
            logger.warning(
                "subject_ingest_feed_skipped",
                url=feed_url,
                reason=reason,
                error=str(exc),
            )
            return FeedOutcome(feed_url=feed_url, skipped_reason=reason)

        if not parsed.items:
            logger.warning(
                "subject_ingest_feed_skipped",
                url=feed_url,
                reason=SKIP_NO_ITEMS,
                kind=parsed.kind.value,
            )
            return FeedOutcome(feed_url=feed_url, kind=parsed.kind, skipped_reason=SKIP_NO_ITEMS)

        return FeedOutcome(feed_url=feed_url, items=parsed.items, kind=parsed.kind)

    async def ingest_subject(self, subject: str, feed_urls: Sequence[str]) -> SubjectIngestResult:
        outcomes = list(await asyncio.gather(*(self.fetch_feed(url) for url in feed_urls)))

        batch: List[ArticleItem] = []
        for outcome in outcomes:
            batch.extend(outcome.items)

        merged = await merge_into_subject(self.store, subject, batch)
        result = SubjectIngestResult(subject=subject, feeds=outcomes, merged_count=len(merged))
        logger.info(
            "subject_ingest_subject_merged",
            subject=subject,
            feeds=len(outcomes),
            skipped_feeds=len(result.skipped_feeds),
            batch_size=result.batch_size,
            stored=result.merged_count,
        )
        return result


async def ingest_all_subjects(
    config: SubjectsConfig,
    store: ArticleStore,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> Dict[str, Any]:
    """
    One ingestion cycle over every configured subject.

    Subjects own disjoint store keys and run concurrently. A skipped feed
    never aborts the cycle; a store fault does.
    """
    if not len(config):
        logger.info("subject_ingest_no_subjects_configured")
        return {
            "total_subjects": 0,
            "total_feeds": 0,
            "skipped_feeds": 0,
            "total_items": 0,
            "degraded": False,
            "subjects": {},
        }

    async with SubjectIngestService(store, client=client) as service:
        results: List[SubjectIngestResult] = list(
            await asyncio.gather(
                *(service.ingest_subject(subject, config.feeds_for(subject)) for subject in config.subjects)
            )
        )

    total_feeds = sum(len(r.feeds) for r in results)
    skipped_feeds = sum(len(r.skipped_feeds) for r in results)
    total_items = sum(r.batch_size for r in results)
    degraded = bool(total_feeds) and skipped_feeds / total_feeds > 0.5

    logger.info(
        "subject_ingest_summary",
        total_subjects=len(results),
        total_feeds=total_feeds,
        skipped_feeds=skipped_feeds,
        total_items=total_items,
        degraded=degraded,
    )

    return {
        "total_subjects": len(results),
        "total_feeds": total_feeds,
        "skipped_feeds": skipped_feeds,
        "total_items": total_items,
        "degraded": degraded,
        "subjects": {r.subject: r.merged_count for r in results},
    }
