"""Tests for vector retrieval and metadata filters."""

import pytest

from conftest import DIMENSION, FakeEmbedder, seed_library
from docmcp.errors import EmbeddingError, FilterExpressionError
from docmcp.models.document import Document, DocumentChunk
from docmcp.retrieval.filters import And, Eq, In, Not, Or, parse_filter
from docmcp.retrieval.vector import VectorIndex
from docmcp.storage.repositories import DocumentRepository, compute_content_hash


def axis(*weights: float) -> list[float]:
    vector = list(weights) + [0.0] * (DIMENSION - len(weights))
    return vector


async def store(session_factory, version_id: str, doc_id: str, path: str, embeddings):
    content = f"{path} body"
    chunks = [
        DocumentChunk(
            id=f"{doc_id}-{i}",
            document_id=doc_id,
            version_id=version_id,
            chunk_index=i,
            content=f"{path} part {i}",
            embedding=embedding,
            token_count=3,
        )
        for i, embedding in enumerate(embeddings)
    ]
    document = Document(
        id=doc_id,
        version_id=version_id,
        title=path,
        path=path,
        content=content,
        content_hash=compute_content_hash(content),
    )
    async with session_factory() as session:
        await DocumentRepository(session).replace_with_chunks(document, chunks, DIMENSION)


@pytest.fixture
async def index(session_factory):
    await seed_library(session_factory, versions=("1.0", "2.0"))
    await store(
        session_factory,
        "lib-1-v1.0",
        "guide",
        "guide.md",
        [axis(1.0), axis(1.0, 1.0), axis(1.0, 2.0), axis(0.0, 1.0), None],
    )
    await store(session_factory, "lib-1-v2.0", "other", "other.md", [axis(1.0)])
    return VectorIndex(session_factory, embedder=FakeEmbedder(), dimension=DIMENSION)


async def test_results_ordered_by_distance(index):
    matches = await index.query("lib-1-v1.0", axis(1.0), top_k=10)

    assert [m.chunk.id for m in matches] == ["guide-0", "guide-1", "guide-2", "guide-3"]
    distances = [m.distance for m in matches]
    assert distances == sorted(distances)
    assert distances[0] == pytest.approx(0.0, abs=1e-6)
    assert distances[-1] == pytest.approx(1.0, abs=1e-6)


async def test_max_distance_is_a_hard_cutoff(index):
    matches = await index.query("lib-1-v1.0", axis(1.0), top_k=10, max_distance=0.3)

    assert [m.chunk.id for m in matches] == ["guide-0", "guide-1"]
    assert all(m.distance < 0.3 for m in matches)


async def test_raising_max_distance_only_appends(index):
    tight = await index.query("lib-1-v1.0", axis(1.0), top_k=10, max_distance=0.3)
    loose = await index.query("lib-1-v1.0", axis(1.0), top_k=10, max_distance=0.6)

    tight_ids = [m.chunk.id for m in tight]
    loose_ids = [m.chunk.id for m in loose]
    assert loose_ids[: len(tight_ids)] == tight_ids
    assert len(loose_ids) > len(tight_ids)


async def test_chunks_without_embedding_are_never_returned(index):
    matches = await index.query("lib-1-v1.0", axis(0.0, 0.0, 1.0), top_k=10)

    assert "guide-4" not in {m.chunk.id for m in matches}


async def test_top_k_limits_results(index):
    matches = await index.query("lib-1-v1.0", axis(1.0), top_k=2)

    assert len(matches) == 2


async def test_version_scope(index):
    scoped = await index.query("lib-1-v2.0", axis(1.0), top_k=10)
    unscoped = await index.query(None, axis(1.0), top_k=10)

    assert [m.chunk.id for m in scoped] == ["other-0"]
    assert {m.chunk.version_id for m in unscoped} == {"lib-1-v1.0", "lib-1-v2.0"}


async def test_equal_distance_ties_broken_by_chunk_id(index):
    matches = await index.query(None, axis(1.0), top_k=2)

    # guide-0 and other-0 are both at distance 0
    assert [m.chunk.id for m in matches] == ["guide-0", "other-0"]


async def test_zero_query_vector_rejected(index):
    with pytest.raises(EmbeddingError):
        await index.query("lib-1-v1.0", axis(), top_k=5)


async def test_wrong_dimension_query_rejected(index):
    with pytest.raises(EmbeddingError):
        await index.query("lib-1-v1.0", [1.0, 0.0], top_k=5)


async def test_filter_on_chunk_column(index):
    matches = await index.query(
        None, axis(1.0), top_k=10, filter=Or(Eq("chunkIndex", 1), Eq("chunkIndex", 2))
    )

    assert [m.chunk.id for m in matches] == ["guide-1", "guide-2"]


async def test_filter_on_document_column(index):
    matches = await index.query(None, axis(1.0), top_k=10, filter=Eq("documentPath", "other.md"))

    assert [m.chunk.id for m in matches] == ["other-0"]


async def test_filter_negation(index):
    expression = And(Eq("versionId", "lib-1-v1.0"), Not(In("chunkIndex", [0, 1])))
    matches = await index.query(None, axis(1.0), top_k=10, filter=expression)

    assert [m.chunk.id for m in matches] == ["guide-2", "guide-3"]


async def test_unknown_filter_key_rejected(index):
    with pytest.raises(FilterExpressionError):
        await index.query(None, axis(1.0), top_k=10, filter=Eq("colour", "red"))


async def test_search_text_embeds_query(index):
    matches = await index.search_text("lib-1-v1.0", "install", top_k=1)

    assert [m.chunk.id for m in matches] == ["guide-0"]
    assert matches[0].similarity == pytest.approx(1.0, abs=1e-6)


def test_parse_filter_builds_tree():
    expression = parse_filter(
        {"and": [{"eq": ["versionId", "v1"]}, {"not": {"in": ["chunkIndex", [0, 1]]}}]}
    )

    assert isinstance(expression, And)
    assert expression.operands[0] == Eq("versionId", "v1")
    assert isinstance(expression.operands[1], Not)


@pytest.mark.parametrize(
    "data",
    [
        {},
        {"eq": ["versionId"]},
        {"between": ["chunkIndex", [0, 2]]},
        {"and": {"eq": ["versionId", "v1"]}},
    ],
)
def test_parse_filter_rejects_malformed(data):
    with pytest.raises(FilterExpressionError):
        parse_filter(data)
