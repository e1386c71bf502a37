"""Test fixtures for DocMCP."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker

from docmcp.config import get_settings
from docmcp.ingestion.connectors.base import SourceFetcher
from docmcp.models.document import ChunkDraft, FetchedFile
from docmcp.models.library import Library, LibraryVersion, SourceType
from docmcp.retrieval.lexical import tokenize
from docmcp.storage import init_database
from docmcp.storage.database import create_engine_for_url
from docmcp.storage.repositories import LibraryRepository, LibraryVersionRepository

# One axis per keyword plus a catch-all axis, so no text embeds to zero
VOCABULARY = ["install", "configure", "database", "search", "auth", "deploy", "cache"]
DIMENSION = len(VOCABULARY) + 1


class FakeEmbedder:
    """Deterministic bag-of-keywords embeddings."""

    dimension = DIMENSION

    def __init__(self, fail_on: str | None = None, delay: float = 0.0):
        self.fail_on = fail_on
        self.delay = delay
        self.calls = 0

    def vector(self, text: str) -> list[float]:
        tokens = tokenize(text)
        vector = [float(tokens.count(word)) for word in VOCABULARY]
        vector.append(0.0 if any(vector) else 1.0)
        return vector

    async def embed(self, text: str) -> list[float]:
        return (await self.embed_many([text]))[0]

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_on and any(self.fail_on in text for text in texts):
            raise RuntimeError("embedding backend unavailable")
        return [self.vector(text) for text in texts]


class ParagraphChunker:
    """One chunk per blank-line separated paragraph."""

    def chunk(self, text: str) -> list[ChunkDraft]:
        return [
            ChunkDraft(content=part.strip(), token_count=len(part.split()))
            for part in text.split("\n\n")
            if part.strip()
        ]


class StaticFetcher(SourceFetcher):
    """Serves a fixed {path: content} tree, optionally slowly."""

    def __init__(self, files: dict[str, str] | None = None, delay: float = 0.0):
        self.files = dict(files or {})
        self.delay = delay
        self.calls = 0

    async def list_files(self, base: str, pattern: str = "**/*") -> list[FetchedFile]:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return [
            FetchedFile(path=path, content=content, size=len(content))
            for path, content in sorted(self.files.items())
        ]


def static_resolver(fetcher: SourceFetcher):
    """Fetcher resolver that sends every source to ``fetcher``."""

    def resolve(source):
        return fetcher, "docs", "**/*"

    return resolve


async def seed_library(
    session_factory,
    library_id: str = "lib-1",
    name: str = "widgets",
    source_type: SourceType = SourceType.MANUAL,
    source_url: str | None = None,
    versions: tuple[str, ...] = ("1.0",),
    category: str | None = None,
) -> list[LibraryVersion]:
    """Create a library and its versions; the last version is flagged latest."""
    async with session_factory() as session:
        await LibraryRepository(session).create(
            Library(
                id=library_id,
                name=name,
                source_type=source_type,
                source_url=source_url,
                category=category,
            )
        )
        created = []
        for i, version in enumerate(versions):
            created.append(
                await LibraryVersionRepository(session).create(
                    LibraryVersion(
                        id=f"{library_id}-v{version}",
                        library_id=library_id,
                        version=version,
                        is_latest=i == len(versions) - 1,
                    )
                )
            )
    return created


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Point settings at a temporary database for every test."""
    monkeypatch.setenv("DOCMCP_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("DOCMCP_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'docmcp.db'}")
    monkeypatch.setenv("DOCMCP_SYNC_SCHEDULING_ENABLED", "false")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
async def session_factory():
    engine = create_engine_for_url(get_settings().database_url)
    await init_database(engine)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def chunker() -> ParagraphChunker:
    return ParagraphChunker()
