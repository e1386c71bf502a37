"""Service container wiring the core components together for the API and CLI."""

from dataclasses import dataclass

from fastapi import HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docmcp.catalog import LibraryCatalog
from docmcp.config import Settings, get_settings
from docmcp.ingestion.chunker import Chunker, get_chunker
from docmcp.ingestion.scheduler import SyncScheduler
from docmcp.ingestion.synchronizer import Synchronizer
from docmcp.retrieval.embeddings import Embedder, get_embedder
from docmcp.retrieval.hybrid import HybridSearchEngine
from docmcp.retrieval.lexical import BM25LexicalIndex
from docmcp.retrieval.vector import VectorIndex
from docmcp.security.api_keys import ApiKeyGate, ApiKeyService
from docmcp.security.rate_limit import KeyRateLimiter
from docmcp.storage.database import get_session_factory, init_database


@dataclass
class Services:
    """Everything a request handler or CLI command needs."""

    settings: Settings
    session_factory: async_sessionmaker[AsyncSession]
    catalog: LibraryCatalog
    embedder: Embedder
    vector_index: VectorIndex
    lexical_index: BM25LexicalIndex
    search_engine: HybridSearchEngine
    gate: ApiKeyGate
    key_service: ApiKeyService
    synchronizer: Synchronizer
    scheduler: SyncScheduler


def assemble_services(
    session_factory: async_sessionmaker[AsyncSession],
    embedder: Embedder,
    chunker: Chunker | None = None,
    settings: Settings | None = None,
    rate_limiter: KeyRateLimiter | None = None,
) -> Services:
    """Build the component graph on top of a session factory."""
    settings = settings or get_settings()
    vector_index = VectorIndex(
        session_factory,
        embedder=embedder,
        dimension=embedder.dimension,
        embed_timeout=settings.embed_timeout_seconds,
    )
    lexical_index = BM25LexicalIndex(session_factory)
    synchronizer = Synchronizer(
        session_factory,
        embedder,
        chunker=chunker or get_chunker(),
        settings=settings,
    )
    return Services(
        settings=settings,
        session_factory=session_factory,
        catalog=LibraryCatalog(session_factory),
        embedder=embedder,
        vector_index=vector_index,
        lexical_index=lexical_index,
        search_engine=HybridSearchEngine(session_factory, lexical_index, vector_index, settings),
        gate=ApiKeyGate(session_factory, rate_limiter or KeyRateLimiter(settings.rate_limit_storage_uri)),
        key_service=ApiKeyService(session_factory),
        synchronizer=synchronizer,
        scheduler=SyncScheduler(session_factory, synchronizer, settings_provider=lambda: settings),
    )


async def build_services() -> Services:
    """Default wiring: shared engine, sentence-transformers, token chunker."""
    await init_database()
    session_factory = await get_session_factory()
    return assemble_services(session_factory, get_embedder())


def get_services(request: Request) -> Services:
    """Dependency to get the service container."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Services not initialized")
    return services
