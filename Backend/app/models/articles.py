from __future__ import annotations

from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field

TITLE_MAX_LENGTH = 240
RANKED_SET_CAPACITY = 10


class ArticleItem(BaseModel):
    """
    One validated article, as kept in a subject's ranked set.

    ``url`` is the identity of the article. ``published_at`` is always an
    ISO-8601 UTC instant (``YYYY-MM-DDTHH:MM:SS.mmmZ``) and is exchanged
    under the ``publishedAt`` field name. ``subject`` is metadata taken from
    the item itself; it does not decide which ranked set the item lands in.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    title: str
    url: str
    source: str = ""
    published_at: str = Field(alias="publishedAt")
    subject: str = ""

    def to_record(self) -> Dict[str, str]:
        return self.model_dump(by_alias=True)


class ArticlesPushRequest(BaseModel):
    subject: str
    # Elements are validated one by one downstream; junk entries are dropped.
    items: List[Any]


class ArticlesPushResponse(BaseModel):
    ok: bool = True
    count: int
