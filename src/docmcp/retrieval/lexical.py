"""Document-level lexical retrieval using rank_bm25."""

import re
from typing import Protocol

from rank_bm25 import BM25Okapi
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docmcp.storage.database import DocumentORM


class LexicalIndex(Protocol):
    """``text_search(query, scope, limit) -> [(document_id, score in [0, 1])]``."""

    async def text_search(
        self, query: str, version_id: str | None, limit: int
    ) -> list[tuple[str, float]]:
        ...


def tokenize(text: str) -> list[str]:
    """Lowercase alphanumeric tokens; single characters dropped unless digits."""
    tokens = re.findall(r"[a-z0-9]+", text.lower())
    return [t for t in tokens if len(t) > 1 or t.isdigit()]


class BM25LexicalIndex:
    """
    BM25 over the documents of one version.

    The per-version index is rebuilt only when the document set changes,
    detected through a cheap (count, max updated_at) fingerprint. Scores
    are divided by the best score so they land in [0, 1] and can be mixed
    with cosine similarities.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        k1: float = 1.5,
        b: float = 0.75,
    ):
        self.session_factory = session_factory
        self.k1 = k1
        self.b = b
        self._indexes: dict[str | None, tuple[tuple, BM25Okapi, list[str]]] = {}

    async def _fingerprint(self, session: AsyncSession, version_id: str | None) -> tuple:
        stmt = select(func.count(DocumentORM.id), func.max(DocumentORM.updated_at))
        if version_id:
            stmt = stmt.where(DocumentORM.version_id == version_id)
        count, latest = (await session.execute(stmt)).one()
        return (count or 0, str(latest))

    async def _get_index(self, version_id: str | None) -> tuple[BM25Okapi | None, list[str]]:
        async with self.session_factory() as session:
            fingerprint = await self._fingerprint(session, version_id)
            cached = self._indexes.get(version_id)
            if cached and cached[0] == fingerprint:
                return cached[1], cached[2]

            stmt = select(DocumentORM.id, DocumentORM.title, DocumentORM.content).order_by(DocumentORM.id)
            if version_id:
                stmt = stmt.where(DocumentORM.version_id == version_id)
            rows = (await session.execute(stmt)).all()

        doc_ids = [row.id for row in rows]
        corpus = [tokenize(f"{row.title}\n{row.content}") for row in rows]
        if not corpus or not any(corpus):
            self._indexes.pop(version_id, None)
            return None, []

        index = BM25Okapi(corpus, k1=self.k1, b=self.b)
        self._indexes[version_id] = (fingerprint, index, doc_ids)
        return index, doc_ids

    async def text_search(
        self, query: str, version_id: str | None, limit: int
    ) -> list[tuple[str, float]]:
        """
        Score documents in scope against the query.

        Args:
            query: Search query string
            version_id: Version scope (None = all documents)
            limit: Maximum number of results

        Returns:
            List of (document_id, normalized_score), best first, scores > 0 only
        """
        query_tokens = tokenize(query)
        if not query_tokens or limit <= 0:
            return []

        index, doc_ids = await self._get_index(version_id)
        if index is None:
            return []

        scores = index.get_scores(query_tokens)
        scored = [(doc_id, float(score)) for doc_id, score in zip(doc_ids, scores) if score > 0]
        if not scored:
            return []

        best = max(score for _, score in scored)
        scored.sort(key=lambda item: (-item[1], item[0]))
        return [(doc_id, score / best) for doc_id, score in scored[:limit]]
