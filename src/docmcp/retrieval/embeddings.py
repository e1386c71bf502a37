"""Embedding service boundary and the sentence-transformers implementation."""

import asyncio
from typing import Protocol

import numpy as np
import structlog
from sentence_transformers import SentenceTransformer

from docmcp.config import get_settings
from docmcp.errors import EmbeddingError

logger = structlog.get_logger()


class Embedder(Protocol):
    """Opaque ``text -> vector`` service with a fixed dimension."""

    dimension: int

    async def embed(self, text: str) -> list[float]:
        ...

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        ...


class SentenceTransformerEmbedder:
    """
    Embeddings from a sentence-transformers model.

    Vectors are L2-normalized so cosine distance is 1 - dot product. The
    model loads lazily and encodes on a worker thread so the event loop
    stays responsive.
    """

    def __init__(
        self,
        model_name: str | None = None,
        dimension: int | None = None,
        batch_size: int | None = None,
    ):
        """
        Args:
            model_name: Sentence transformer model name
            dimension: Expected vector length; checked against the model on load
            batch_size: Encode batch size
        """
        settings = get_settings()
        self.model_name = model_name or settings.embedding_model
        self.dimension = dimension or settings.embedding_dimension
        self.batch_size = batch_size or settings.embedding_batch_size
        self._model: SentenceTransformer | None = None

    def _get_model(self) -> SentenceTransformer:
        """Lazy load the embedding model."""
        if self._model is None:
            model = SentenceTransformer(self.model_name)
            model_dim = model.get_sentence_embedding_dimension()
            if model_dim != self.dimension:
                raise EmbeddingError(
                    f"Model {self.model_name} produces {model_dim}-dim vectors, "
                    f"configured dimension is {self.dimension}"
                )
            self._model = model
        return self._model

    def _encode(self, texts: list[str]) -> np.ndarray:
        model = self._get_model()
        embeddings = model.encode(
            texts,
            batch_size=self.batch_size,
            normalize_embeddings=True,
            show_progress_bar=len(texts) > 100,
        )
        return np.asarray(embeddings, dtype=np.float32)

    async def embed(self, text: str) -> list[float]:
        vectors = await self.embed_many([text])
        return vectors[0]

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        try:
            embeddings = await asyncio.to_thread(self._encode, texts)
        except EmbeddingError:
            raise
        except Exception as e:
            logger.error("embedding_failed", model=self.model_name, count=len(texts), error=str(e))
            raise EmbeddingError(f"Embedding failed: {e}") from e
        return [vector.tolist() for vector in embeddings]


async def embed_with_timeout(embedder: Embedder, texts: list[str], timeout: float) -> list[list[float]]:
    """
    Embed texts, bounding the call by ``timeout`` seconds.

    Raises:
        EmbeddingError: On timeout, service failure, or a result of the wrong shape
    """
    try:
        vectors = await asyncio.wait_for(embedder.embed_many(texts), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise EmbeddingError(f"Embedding timed out after {timeout:g}s") from e
    except EmbeddingError:
        raise
    except Exception as e:
        raise EmbeddingError(f"Embedding failed: {e}") from e

    if len(vectors) != len(texts):
        raise EmbeddingError(f"Expected {len(texts)} embeddings, got {len(vectors)}")
    for vector in vectors:
        if len(vector) != embedder.dimension:
            raise EmbeddingError(
                f"Embedding has {len(vector)} values, expected {embedder.dimension}"
            )
    return vectors


# Singleton instance
_embedder: SentenceTransformerEmbedder | None = None


def get_embedder() -> SentenceTransformerEmbedder:
    """Get the singleton embedder instance."""
    global _embedder
    if _embedder is None:
        _embedder = SentenceTransformerEmbedder()
    return _embedder
