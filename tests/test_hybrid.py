"""Tests for lexical and hybrid retrieval."""

from datetime import timedelta

import pytest
from sqlalchemy import update

from conftest import DIMENSION, FakeEmbedder, seed_library
from docmcp.config import Settings
from docmcp.errors import EmbeddingError, InvalidSearchRequestError, NotFoundError
from docmcp.models.document import Document, DocumentChunk
from docmcp.retrieval.hybrid import HybridSearchEngine, combine_scores
from docmcp.retrieval.lexical import BM25LexicalIndex, tokenize
from docmcp.retrieval.vector import VectorIndex
from docmcp.storage.database import DocumentORM
from docmcp.storage.repositories import DocumentRepository, compute_content_hash
from docmcp.utils import utcnow

DOCS = {
    "install": ("Install guide", ["Install the widget with pip install widgets.", "Run pip to finish."]),
    "configure": ("Configure", ["Configure the database connection."]),
    "deploy": ("Deploy", ["Deploy to production servers."]),
    "cache": ("Cache", ["Cache settings and tuning."]),
}


async def store_doc(session_factory, embedder, version_id, doc_id, title, paragraphs):
    content = "\n\n".join(paragraphs)
    document = Document(
        id=doc_id,
        version_id=version_id,
        title=title,
        path=f"{doc_id}.md",
        content=content,
        content_hash=compute_content_hash(content),
    )
    chunks = [
        DocumentChunk(
            id=f"{doc_id}-{i}",
            document_id=doc_id,
            version_id=version_id,
            chunk_index=i,
            content=text,
            embedding=embedder.vector(text),
            token_count=len(text.split()),
        )
        for i, text in enumerate(paragraphs)
    ]
    async with session_factory() as session:
        await DocumentRepository(session).replace_with_chunks(document, chunks, DIMENSION)


def make_engine(session_factory, embedder, **overrides):
    settings = Settings(**overrides)
    vector = VectorIndex(session_factory, embedder=embedder, dimension=DIMENSION)
    return HybridSearchEngine(session_factory, BM25LexicalIndex(session_factory), vector, settings)


@pytest.fixture
async def corpus(session_factory, embedder):
    await seed_library(session_factory, versions=("1.0", "2.0"))
    for doc_id, (title, paragraphs) in DOCS.items():
        await store_doc(session_factory, embedder, "lib-1-v1.0", doc_id, title, paragraphs)
    return session_factory


def test_tokenize():
    assert tokenize("Install v2 of the API, a 3-step guide") == [
        "install", "v2", "of", "the", "api", "3", "step", "guide"
    ]


@pytest.mark.parametrize("alpha", [0.0, 0.25, 0.5, 1.0])
def test_combine_scores_monotonic(alpha):
    base = combine_scores(0.4, 0.4, alpha)
    assert combine_scores(0.6, 0.4, alpha) >= base
    assert combine_scores(0.4, 0.6, alpha) >= base


def test_combine_scores_extremes():
    assert combine_scores(0.8, 0.1, 1.0) == 0.8
    assert combine_scores(0.8, 0.1, 0.0) == 0.1


async def test_lexical_scores_normalized(corpus):
    index = BM25LexicalIndex(corpus)

    hits = await index.text_search("install", "lib-1-v1.0", limit=10)

    assert hits == [("install", 1.0)]


async def test_lexical_scope_and_no_match(corpus):
    index = BM25LexicalIndex(corpus)

    assert await index.text_search("install", "lib-1-v2.0", limit=10) == []
    assert await index.text_search("kubernetes", "lib-1-v1.0", limit=10) == []


async def test_lexical_index_picks_up_new_documents(corpus, embedder):
    index = BM25LexicalIndex(corpus)
    assert await index.text_search("servers", "lib-1-v1.0", limit=10) == [("deploy", 1.0)]

    await store_doc(corpus, embedder, "lib-1-v1.0", "scaling", "Scaling", ["Add more servers to scale."])

    hits = await index.text_search("servers", "lib-1-v1.0", limit=10)
    assert {doc_id for doc_id, _ in hits} == {"deploy", "scaling"}


async def test_alpha_one_ranks_by_lexical_score(corpus, embedder):
    engine = make_engine(corpus, embedder)

    results = await engine.search("install", "lib-1-v1.0", alpha=1.0)

    assert results
    assert all(r.score == pytest.approx(r.lexical_score) for r in results)
    assert results[0].key == "doc:install"


async def test_alpha_zero_ranks_by_semantic_score(corpus, embedder):
    engine = make_engine(corpus, embedder)

    results = await engine.search("install", "lib-1-v1.0", alpha=0.0)

    assert all(r.score == pytest.approx(r.semantic_score) for r in results)
    assert results[0].key == "chunk:install-0"


async def test_results_carry_provenance(corpus, embedder):
    engine = make_engine(corpus, embedder)

    results = await engine.search("install", "lib-1-v1.0", alpha=0.5)
    by_key = {r.key: r for r in results}

    document = by_key["doc:install"]
    assert document.kind == "document"
    assert document.chunk_id is None
    assert document.title == "Install guide"

    chunk = by_key["chunk:install-0"]
    assert chunk.kind == "chunk"
    assert chunk.chunk_id == "install-0"
    assert chunk.chunk_index == 0
    assert chunk.document_id == "install"
    assert chunk.content == "Install the widget with pip install widgets."

    # Orthogonal chunks sit at distance 1.0 and are cut off
    assert "chunk:install-1" not in by_key


async def test_equal_scores_ordered_by_key(corpus, embedder):
    engine = make_engine(corpus, embedder)

    results = await engine.search("install", "lib-1-v1.0", alpha=0.5)

    assert [r.key for r in results] == ["chunk:install-0", "doc:install"]
    assert results[0].score == pytest.approx(results[1].score)


async def test_equal_scores_prefer_recently_updated_document(corpus, embedder):
    for doc_id in ("alpha", "zeta"):
        await store_doc(corpus, embedder, "lib-1-v1.0", doc_id, "Keys", ["Rotate the keys."])
    now = utcnow()
    async with corpus() as session:
        await session.execute(
            update(DocumentORM).where(DocumentORM.id == "alpha").values(updated_at=now - timedelta(days=1))
        )
        await session.execute(update(DocumentORM).where(DocumentORM.id == "zeta").values(updated_at=now))
        await session.commit()
    engine = make_engine(corpus, embedder)

    results = await engine.search("rotate", "lib-1-v1.0", alpha=1.0)

    assert [r.key for r in results] == ["doc:zeta", "doc:alpha"]
    assert results[0].score == pytest.approx(results[1].score)


async def test_default_settings_keep_lexical_document_hits(corpus, embedder):
    vector = VectorIndex(corpus, embedder=embedder, dimension=DIMENSION)
    engine = HybridSearchEngine(corpus, BM25LexicalIndex(corpus), vector, Settings())

    results = await engine.search("install", "lib-1-v1.0")

    assert [r.key for r in results] == ["chunk:install-0", "doc:install"]
    document = results[1]
    assert document.kind == "document"
    assert document.score == pytest.approx(Settings().search_default_alpha)


async def test_explicit_min_similarity_drops_weak_results(corpus, embedder):
    engine = make_engine(corpus, embedder)

    results = await engine.search("install", "lib-1-v1.0", alpha=0.3, min_similarity=0.5)

    assert [r.key for r in results] == ["chunk:install-0"]
    assert all(r.score >= 0.5 for r in results)


class RecordingVectorIndex(VectorIndex):
    """Remembers the max_distance each query was run with."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.max_distances = []

    async def query(self, version_id, query_vector, top_k, max_distance=None, filter=None):
        self.max_distances.append(max_distance)
        return await super().query(version_id, query_vector, top_k, max_distance, filter)


async def test_min_similarity_bounds_semantic_candidates(corpus, embedder):
    vector = RecordingVectorIndex(corpus, embedder=embedder, dimension=DIMENSION)
    engine = HybridSearchEngine(corpus, BM25LexicalIndex(corpus), vector, Settings())

    await engine.search("install", "lib-1-v1.0", min_similarity=0.6)
    await engine.search("install", "lib-1-v1.0", min_similarity=0.0)

    assert vector.max_distances[0] == pytest.approx(0.4)
    # Never looser than semantic_max_distance
    assert vector.max_distances[1] == Settings().semantic_max_distance


async def test_fulltext_mode_skips_embedding(corpus):
    embedder = FakeEmbedder()
    engine = make_engine(corpus, embedder)

    results = await engine.search("install", "lib-1-v1.0", mode="fulltext")

    assert [r.key for r in results] == ["doc:install"]
    assert results[0].score == pytest.approx(1.0)
    assert embedder.calls == 0


async def test_semantic_mode_returns_only_chunks(corpus, embedder):
    engine = make_engine(corpus, embedder)

    results = await engine.search("install", "lib-1-v1.0", mode="semantic")

    assert [r.key for r in results] == ["chunk:install-0"]
    assert results[0].score == pytest.approx(results[0].semantic_score)


async def test_unknown_mode_rejected(corpus, embedder):
    engine = make_engine(corpus, embedder)

    with pytest.raises(InvalidSearchRequestError):
        await engine.search("install", "lib-1-v1.0", mode="fuzzy")


async def test_embedding_failure_is_an_error_not_empty_results(corpus):
    embedder = FakeEmbedder(fail_on="install")
    vector = VectorIndex(corpus, embedder=embedder, dimension=DIMENSION)
    engine = HybridSearchEngine(corpus, BM25LexicalIndex(corpus), vector, Settings())

    with pytest.raises(EmbeddingError):
        await vector.search_text("lib-1-v1.0", "install", top_k=5)
    with pytest.raises(EmbeddingError):
        await engine.search("install", "lib-1-v1.0")
    # Lexical-only search does not need the embedder
    assert await engine.search("install", "lib-1-v1.0", mode="fulltext")


async def test_limit_applied_after_merge(corpus, embedder):
    engine = make_engine(corpus, embedder)

    results = await engine.search("install", "lib-1-v1.0", alpha=0.5, limit=1)

    assert len(results) == 1


async def test_limit_clamped_to_maximum(corpus, embedder):
    engine = make_engine(corpus, embedder, search_max_limit=1)

    results = await engine.search("install", "lib-1-v1.0", alpha=0.5, limit=50)

    assert len(results) == 1


async def test_document_content_truncated_to_snippet(corpus, embedder):
    engine = make_engine(corpus, embedder, snippet_length=10)

    results = await engine.search("install", "lib-1-v1.0", alpha=1.0)

    document = next(r for r in results if r.kind == "document")
    assert document.content == "Install th"


@pytest.mark.parametrize("limit", [0, -3])
async def test_non_positive_limit_rejected(corpus, embedder, limit):
    engine = make_engine(corpus, embedder)

    with pytest.raises(InvalidSearchRequestError):
        await engine.search("install", "lib-1-v1.0", limit=limit)


@pytest.mark.parametrize("alpha", [-0.1, 1.5])
async def test_alpha_out_of_range_rejected(corpus, embedder, alpha):
    engine = make_engine(corpus, embedder)

    with pytest.raises(InvalidSearchRequestError):
        await engine.search("install", "lib-1-v1.0", alpha=alpha)


async def test_blank_query_returns_nothing(corpus):
    embedder = FakeEmbedder()
    engine = make_engine(corpus, embedder)

    assert await engine.search("   ", "lib-1-v1.0") == []
    assert embedder.calls == 0


async def test_empty_version_returns_nothing(corpus, embedder):
    engine = make_engine(corpus, embedder)

    assert await engine.search("install", "lib-1-v2.0", alpha=0.5) == []


async def test_resolve_version_id(corpus, embedder):
    engine = make_engine(corpus, embedder)

    assert await engine.resolve_version_id("widgets") == "lib-1-v2.0"
    assert await engine.resolve_version_id("lib-1", "1.0") == "lib-1-v1.0"

    with pytest.raises(NotFoundError):
        await engine.resolve_version_id("widgets", "9.9")
    with pytest.raises(NotFoundError):
        await engine.resolve_version_id("gadgets")
