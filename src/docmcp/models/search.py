"""Search result models with score breakdowns."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel

SearchMode = Literal["hybrid", "fulltext", "semantic"]
SEARCH_MODES: tuple[str, ...] = ("hybrid", "fulltext", "semantic")


class SearchResultItem(BaseModel):
    """A single ranked search result.

    ``kind`` records whether the hit came from document-level lexical
    matching or chunk-level semantic matching; only chunk hits carry
    ``chunk_id`` and ``chunk_index``.
    """

    key: str  # "doc:<id>" or "chunk:<id>"
    kind: Literal["document", "chunk"]
    document_id: str
    chunk_id: str | None = None
    chunk_index: int | None = None
    title: str
    path: str
    content: str
    score: float
    lexical_score: float = 0.0
    semantic_score: float = 0.0
    updated_at: datetime | None = None
