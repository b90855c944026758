from __future__ import annotations

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.deps.auth import verify_webhook_token
from app.models.articles import ArticleItem, ArticlesPushRequest, ArticlesPushResponse
from services.article_store import ArticleStore, get_article_store
from services.articles_service import get_ranked_sets, parse_subjects_param, push_items

router = APIRouter(
    prefix="/api/articles",
    tags=["articles"],
)


@router.get("", response_model=Dict[str, List[ArticleItem]])
async def read_articles(
    subject: Optional[str] = Query(
        None,
        description="Comma-separated subject identifiers, e.g. ai,php.",
    ),
    store: ArticleStore = Depends(get_article_store),
) -> Dict[str, List[ArticleItem]]:
    subjects = parse_subjects_param(subject)
    if not subjects:
        raise HTTPException(
            status_code=400,
            detail="subject query param required, comma-separated",
        )
    return await get_ranked_sets(store, subjects)


@router.post(
    "",
    response_model=ArticlesPushResponse,
    dependencies=[Depends(verify_webhook_token)],
)
async def push_articles(
    body: ArticlesPushRequest,
    store: ArticleStore = Depends(get_article_store),
) -> ArticlesPushResponse:
    if not body.subject.strip():
        raise HTTPException(
            status_code=400,
            detail="Body must include { subject, items: [...] }",
        )
    merged = await push_items(store, body.subject, body.items)
    return ArticlesPushResponse(ok=True, count=len(merged))
