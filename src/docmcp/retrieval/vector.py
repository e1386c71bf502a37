"""Vector retrieval over stored chunk embeddings by cosine distance."""

from dataclasses import dataclass

import numpy as np
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docmcp.config import get_settings
from docmcp.errors import EmbeddingError
from docmcp.models.document import DocumentChunk
from docmcp.retrieval.embeddings import Embedder, embed_with_timeout
from docmcp.retrieval.filters import FilterExpression, compile_filter
from docmcp.storage.database import DocumentChunkORM
from docmcp.storage.repositories import chunk_to_model, decode_embedding

logger = structlog.get_logger()


@dataclass
class VectorMatch:
    """A chunk and its cosine distance to the query."""

    chunk: DocumentChunk
    distance: float

    @property
    def similarity(self) -> float:
        return 1.0 - self.distance


class VectorIndex:
    """
    Nearest-neighbour queries over ``document_chunks.embedding``.

    Read-only: chunks are written by the synchronizer. Every query opens
    its own session and holds no in-process locks, so any number of
    queries can run concurrently with each other and with sync writes.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        embedder: Embedder | None = None,
        dimension: int | None = None,
        embed_timeout: float | None = None,
    ):
        """
        Args:
            session_factory: Async session factory for the chunk store
            embedder: Embedding service used by ``search_text``
            dimension: Embedding length (default: settings.embedding_dimension)
            embed_timeout: Seconds to wait for a query embedding
        """
        settings = get_settings()
        self.session_factory = session_factory
        self.embedder = embedder
        self.dimension = dimension or (embedder.dimension if embedder else settings.embedding_dimension)
        self.embed_timeout = embed_timeout or settings.embed_timeout_seconds

    def _normalize_query(self, query_vector: list[float] | np.ndarray) -> np.ndarray:
        vector = np.asarray(query_vector, dtype=np.float32)
        if vector.ndim != 1 or vector.shape[0] != self.dimension:
            raise EmbeddingError(
                f"Query vector has shape {vector.shape}, expected ({self.dimension},)"
            )
        norm = float(np.linalg.norm(vector))
        if norm == 0.0 or not np.isfinite(norm):
            raise EmbeddingError("Query vector has zero or non-finite norm")
        return vector / norm

    async def query(
        self,
        version_id: str | None,
        query_vector: list[float] | np.ndarray,
        top_k: int,
        max_distance: float | None = None,
        filter: FilterExpression | None = None,
    ) -> list[VectorMatch]:
        """
        Find the chunks closest to a query vector.

        Args:
            version_id: Restrict to one library version (None = all versions)
            query_vector: Query embedding of the configured dimension
            top_k: Maximum number of matches
            max_distance: Hard cutoff; matches with distance >= this are dropped
            filter: Optional metadata filter expression

        Returns:
            Matches ordered by ascending distance, ties broken by chunk id
        """
        query = self._normalize_query(query_vector)
        if top_k <= 0:
            return []

        stmt = select(DocumentChunkORM).where(DocumentChunkORM.embedding.is_not(None))
        if version_id:
            stmt = stmt.where(DocumentChunkORM.version_id == version_id)
        if filter is not None:
            stmt = stmt.where(compile_filter(filter))

        async with self.session_factory() as session:
            result = await session.execute(stmt)
            rows = list(result.scalars())

        candidates: list[DocumentChunkORM] = []
        vectors: list[np.ndarray] = []
        for orm in rows:
            vector = decode_embedding(orm.embedding)
            if vector is None or vector.shape[0] != self.dimension:
                logger.warning("chunk_embedding_dimension_mismatch", chunk_id=orm.id)
                continue
            candidates.append(orm)
            vectors.append(vector)

        if not candidates:
            return []

        matrix = np.vstack(vectors)
        norms = np.linalg.norm(matrix, axis=1)
        usable = norms > 0
        safe_norms = np.where(usable, norms, 1.0)
        similarities = (matrix @ query) / safe_norms
        distances = np.clip(1.0 - similarities, 0.0, 2.0)

        scored = [
            (float(distance), orm)
            for distance, orm, ok in zip(distances, candidates, usable)
            if ok and (max_distance is None or distance < max_distance)
        ]
        scored.sort(key=lambda item: (item[0], item[1].id))

        return [VectorMatch(chunk=chunk_to_model(orm), distance=distance) for distance, orm in scored[:top_k]]

    async def search_text(
        self,
        version_id: str | None,
        text: str,
        top_k: int,
        max_distance: float | None = None,
        filter: FilterExpression | None = None,
    ) -> list[VectorMatch]:
        """Embed ``text`` and query. Embedding failures raise EmbeddingError."""
        if self.embedder is None:
            raise EmbeddingError("No embedder configured for text queries")
        vectors = await embed_with_timeout(self.embedder, [text], self.embed_timeout)
        return await self.query(version_id, vectors[0], top_k, max_distance, filter)
