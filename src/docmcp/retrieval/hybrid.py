"""Hybrid retrieval blending lexical and semantic scores."""

import asyncio
import math
import time
from dataclasses import dataclass

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docmcp.catalog import LibraryCatalog
from docmcp.config import Settings, get_settings
from docmcp.errors import InvalidSearchRequestError
from docmcp.models.document import Document, DocumentChunk
from docmcp.models.search import SEARCH_MODES, SearchMode, SearchResultItem
from docmcp.observability.metrics import SEARCH_LATENCY, SEARCH_REQUESTS
from docmcp.retrieval.filters import FilterExpression
from docmcp.retrieval.lexical import LexicalIndex
from docmcp.retrieval.vector import VectorIndex, VectorMatch
from docmcp.storage.repositories import DocumentRepository

logger = structlog.get_logger()


def combine_scores(lexical: float, semantic: float, alpha: float) -> float:
    """Weighted blend: alpha=1 is pure lexical, alpha=0 is pure semantic."""
    return alpha * lexical + (1.0 - alpha) * semantic


@dataclass
class _Candidate:
    key: str
    document_id: str
    lexical: float = 0.0
    semantic: float = 0.0
    chunk: DocumentChunk | None = None


class HybridSearchEngine:
    """
    Merge document-level lexical hits and chunk-level semantic hits.

    Lexical results are keyed ``doc:<id>`` and semantic results
    ``chunk:<id>``. The two spaces are kept apart, so a document and one of
    its chunks can both appear; each item reports which one it is.
    The "fulltext" and "semantic" modes run only one side.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        lexical: LexicalIndex,
        vector: VectorIndex,
        settings: Settings | None = None,
    ):
        self.session_factory = session_factory
        self.lexical = lexical
        self.vector = vector
        self.settings = settings or get_settings()

    async def search(
        self,
        query: str,
        version_id: str | None,
        alpha: float | None = None,
        min_similarity: float | None = None,
        limit: int | None = None,
        filter: FilterExpression | None = None,
        mode: SearchMode | None = None,
    ) -> list[SearchResultItem]:
        """
        Run a search in one version scope.

        Args:
            query: Search text
            version_id: Version scope (None = all versions)
            alpha: Lexical weight in [0, 1] (default: settings.search_default_alpha)
            min_similarity: Drop results whose combined score is below this.
                Also bounds the semantic side: chunks less similar than this
                are never retrieved.
            limit: Result count, clamped to settings.search_max_limit
            filter: Extra metadata filter for the semantic side
            mode: "hybrid" blends both sides, "fulltext" uses lexical scores
                only, "semantic" uses chunk similarity only

        Returns:
            Items ordered by combined score, then most recently updated
            document, then key

        Raises:
            InvalidSearchRequestError: limit <= 0, alpha outside [0, 1] or
                an unknown mode
            EmbeddingError: The query could not be embedded
        """
        alpha = self.settings.search_default_alpha if alpha is None else alpha
        min_similarity = self.settings.search_min_similarity if min_similarity is None else min_similarity
        limit = self.settings.search_default_limit if limit is None else limit
        mode = mode or self.settings.search_default_mode

        if limit <= 0:
            raise InvalidSearchRequestError(f"limit must be positive, got {limit}")
        if not 0.0 <= alpha <= 1.0:
            raise InvalidSearchRequestError(f"alpha must be within [0, 1], got {alpha}")
        if mode not in SEARCH_MODES:
            raise InvalidSearchRequestError(
                f"mode must be one of {', '.join(SEARCH_MODES)}, got {mode!r}"
            )
        limit = min(limit, self.settings.search_max_limit)

        if not query or not query.strip():
            return []

        # Single-sided modes score on that side alone
        if mode == "fulltext":
            alpha = 1.0
        elif mode == "semantic":
            alpha = 0.0

        start_time = time.time()
        try:
            results = await self._search(query, version_id, mode, alpha, min_similarity, limit, filter)
        except Exception:
            SEARCH_REQUESTS.labels(status="error").inc()
            raise

        SEARCH_REQUESTS.labels(status="success").inc()
        SEARCH_LATENCY.observe(time.time() - start_time)
        logger.info(
            "search_complete",
            version_id=version_id,
            mode=mode,
            alpha=alpha,
            results=len(results),
            latency_ms=round((time.time() - start_time) * 1000, 2),
        )
        return results

    def _semantic_cutoff(self, min_similarity: float) -> float:
        # Distances up to and including 1 - min_similarity can still reach the floor
        return min(
            self.settings.semantic_max_distance,
            math.nextafter(1.0 - min_similarity, math.inf),
        )

    async def _search(
        self,
        query: str,
        version_id: str | None,
        mode: str,
        alpha: float,
        min_similarity: float,
        limit: int,
        filter: FilterExpression | None,
    ) -> list[SearchResultItem]:
        fetch_limit = limit * 2

        lexical_hits: list[tuple[str, float]] = []
        semantic_hits: list[VectorMatch] = []
        if mode == "fulltext":
            lexical_hits = await self.lexical.text_search(query, version_id, fetch_limit)
        elif mode == "semantic":
            semantic_hits = await self.vector.search_text(
                version_id,
                query,
                top_k=fetch_limit,
                max_distance=self._semantic_cutoff(min_similarity),
                filter=filter,
            )
        else:
            lexical_hits, semantic_hits = await asyncio.gather(
                self.lexical.text_search(query, version_id, fetch_limit),
                self.vector.search_text(
                    version_id,
                    query,
                    top_k=fetch_limit,
                    max_distance=self._semantic_cutoff(min_similarity),
                    filter=filter,
                ),
            )

        candidates: dict[str, _Candidate] = {}
        for doc_id, score in lexical_hits:
            key = f"doc:{doc_id}"
            candidates[key] = _Candidate(key=key, document_id=doc_id, lexical=score)
        for match in semantic_hits:
            key = f"chunk:{match.chunk.id}"
            candidates[key] = _Candidate(
                key=key,
                document_id=match.chunk.document_id,
                semantic=match.similarity,
                chunk=match.chunk,
            )

        if not candidates:
            return []

        async with self.session_factory() as session:
            documents = await DocumentRepository(session).get_by_ids(
                sorted({c.document_id for c in candidates.values()})
            )

        items = []
        for candidate in candidates.values():
            score = combine_scores(candidate.lexical, candidate.semantic, alpha)
            if score < min_similarity:
                continue
            document = documents.get(candidate.document_id)
            if document is None:
                # Deleted between retrieval and enrichment
                continue
            items.append(self._to_item(candidate, document, score))

        items.sort(
            key=lambda item: (
                -item.score,
                -(item.updated_at.timestamp() if item.updated_at else 0.0),
                item.key,
            )
        )
        return items[:limit]

    def _to_item(self, candidate: _Candidate, document: Document, score: float) -> SearchResultItem:
        if candidate.chunk is not None:
            return SearchResultItem(
                key=candidate.key,
                kind="chunk",
                document_id=document.id,
                chunk_id=candidate.chunk.id,
                chunk_index=candidate.chunk.chunk_index,
                title=document.title,
                path=document.path,
                content=candidate.chunk.content,
                score=score,
                lexical_score=candidate.lexical,
                semantic_score=candidate.semantic,
                updated_at=document.updated_at,
            )
        return SearchResultItem(
            key=candidate.key,
            kind="document",
            document_id=document.id,
            title=document.title,
            path=document.path,
            content=document.content[: self.settings.snippet_length],
            score=score,
            lexical_score=candidate.lexical,
            semantic_score=candidate.semantic,
            updated_at=document.updated_at,
        )

    async def resolve_version_id(self, library_id: str, version: str | None = None) -> str:
        """
        Resolve a library id or name plus optional version string to a version id.

        Without a version string the library's latest version is used.

        Raises:
            NotFoundError: Unknown library, unknown version, or no latest version
        """
        resolved = await LibraryCatalog(self.session_factory).resolve_version(library_id, version)
        return resolved.id
