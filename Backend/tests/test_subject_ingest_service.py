from __future__ import annotations

from typing import Dict

import httpx
import pytest

from app.models.articles import ArticleItem
from app.models.subjects import SubjectsConfig
from services.article_store import MemoryArticleStore
from services.subject_ingest_service import SubjectIngestService, ingest_all_subjects


def _rss(*entries: tuple[str, str, str]) -> str:
    items = "".join(
        f"<item><title>{title}</title><link>{link}</link><pubDate>{date}</pubDate></item>"
        for title, link, date in entries
    )
    return f"<rss version=\"2.0\"><channel>{items}</channel></rss>"


GOOD_RSS = _rss(
    ("Good one", "https://news.example/1", "Mon, 01 Jan 2024 10:00:00 GMT"),
    ("Good two", "https://news.example/2", "Tue, 02 Jan 2024 10:00:00 GMT"),
)

ATOM = """
<feed xmlns="http://www.w3.org/2005/Atom">
  <entry>
    <title>Atom news</title>
    <link rel="alternate" href="https://atom.example/a"/>
    <updated>2024-01-03T10:00:00Z</updated>
  </entry>
</feed>
"""


def _transport(routes: Dict[str, object]) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        action = routes.get(str(request.url))
        if isinstance(action, Exception):
            raise action
        if isinstance(action, int):
            return httpx.Response(action, text="error")
        if isinstance(action, str):
            return httpx.Response(200, text=action)
        return httpx.Response(404, text="not found")

    return httpx.MockTransport(handler)


def _make_store() -> MemoryArticleStore:
    return MemoryArticleStore(key_prefix="articles:")


@pytest.mark.asyncio
async def test_failing_feed_does_not_affect_other_feeds():
    routes = {
        "https://down.example/rss": httpx.ConnectError("connection refused"),
        "https://news.example/rss": GOOD_RSS,
    }
    store = _make_store()

    async with httpx.AsyncClient(transport=_transport(routes)) as client:
        async with SubjectIngestService(store, client=client) as service:
            result = await service.ingest_subject(
                "tech", ["https://down.example/rss", "https://news.example/rss"]
            )

    assert [o.ok for o in result.feeds] == [False, True]
    assert result.feeds[0].skipped_reason == "fetch_failed:ConnectError"
    assert result.batch_size == 2

    stored = await store.load("tech")
    assert [i.title for i in stored] == ["Good two", "Good one"]
    assert all(i.source == "https://news.example/rss" for i in stored)


@pytest.mark.asyncio
async def test_non_2xx_and_empty_documents_are_skipped():
    routes = {
        "https://error.example/rss": 503,
        "https://html.example/": "<html><body>moved</body></html>",
        "https://atom.example/feed": ATOM,
    }
    store = _make_store()

    async with httpx.AsyncClient(transport=_transport(routes)) as client:
        async with SubjectIngestService(store, client=client) as service:
            result = await service.ingest_subject("mixed", list(routes))

    reasons = [o.skipped_reason for o in result.feeds]
    assert reasons == ["fetch_failed:HTTPStatusError", "no_items", None]
    assert [i.url for i in await store.load("mixed")] == ["https://atom.example/a"]


@pytest.mark.asyncio
async def test_batch_is_merged_against_existing_set():
    store = _make_store()
    existing = ArticleItem(
        title="Old copy",
        url="https://news.example/1",
        source="push",
        published_at="2023-12-31T00:00:00.000Z",
    )
    kept = ArticleItem(
        title="Pushed earlier",
        url="https://push.example/x",
        source="push",
        published_at="2024-01-01T12:00:00.000Z",
    )
    await store.save("tech", [kept, existing])

    async with httpx.AsyncClient(transport=_transport({"https://news.example/rss": GOOD_RSS})) as client:
        async with SubjectIngestService(store, client=client) as service:
            result = await service.ingest_subject("tech", ["https://news.example/rss"])

    stored = await store.load("tech")
    assert [i.title for i in stored] == ["Good two", "Pushed earlier", "Good one"]
    assert result.merged_count == 3


@pytest.mark.asyncio
async def test_subject_is_rewritten_even_when_every_feed_fails():
    store = _make_store()
    kept = ArticleItem(title="Kept", url="https://keep.example/1", published_at="2024-01-01T00:00:00.000Z")
    await store.save("tech", [kept], ttl_seconds=5)

    routes = {"https://down.example/rss": httpx.ReadTimeout("too slow")}
    async with httpx.AsyncClient(transport=_transport(routes)) as client:
        async with SubjectIngestService(store, client=client) as service:
            result = await service.ingest_subject("tech", ["https://down.example/rss"])

    assert result.feeds[0].skipped_reason == "fetch_failed:ReadTimeout"
    assert await store.load("tech") == [kept]


@pytest.mark.asyncio
async def test_ingest_all_subjects_summarizes_cycle():
    config = SubjectsConfig(
        feeds={
            "ai": ("https://news.example/rss", "https://down.example/rss"),
            "php": ("https://atom.example/feed",),
        }
    )
    routes = {
        "https://news.example/rss": GOOD_RSS,
        "https://down.example/rss": httpx.ConnectError("boom"),
        "https://atom.example/feed": ATOM,
    }
    store = _make_store()

    async with httpx.AsyncClient(transport=_transport(routes)) as client:
        summary = await ingest_all_subjects(config, store, client=client)

    assert summary["total_subjects"] == 2
    assert summary["total_feeds"] == 3
    assert summary["skipped_feeds"] == 1
    assert summary["total_items"] == 3
    assert summary["degraded"] is False
    assert summary["subjects"] == {"ai": 2, "php": 1}
    assert len(await store.load("php")) == 1


@pytest.mark.asyncio
async def test_ingest_all_subjects_flags_degraded_cycle():
    config = SubjectsConfig(feeds={"ai": ("https://down.example/a", "https://down.example/b")})
    routes = {
        "https://down.example/a": httpx.ConnectError("boom"),
        "https://down.example/b": 500,
    }

    async with httpx.AsyncClient(transport=_transport(routes)) as client:
        summary = await ingest_all_subjects(config, _make_store(), client=client)

    assert summary["skipped_feeds"] == 2
    assert summary["degraded"] is True


@pytest.mark.asyncio
async def test_ingest_all_subjects_without_subjects_is_a_no_op():
    summary = await ingest_all_subjects(SubjectsConfig(), _make_store())

    assert summary["total_subjects"] == 0
    assert summary["degraded"] is False


@pytest.mark.asyncio
async def test_service_owns_client_with_user_agent_when_none_injected():
    service = SubjectIngestService(_make_store(), user_agent="latest10-test/1.0", timeout_s=3)

    async with service:
        assert service._client is not None
        assert service._client.headers["User-Agent"] == "latest10-test/1.0"
        assert service._client.timeout.read == 3

    assert service._client is None
