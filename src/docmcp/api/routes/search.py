"""Search API routes."""

import time

from fastapi import APIRouter, Depends

from docmcp.api.auth import require_api_key
from docmcp.api.schemas import SearchRequestSchema, SearchResponseSchema, SearchResultSchema
from docmcp.api.service import Services, get_services
from docmcp.errors import NotFoundError
from docmcp.retrieval.filters import parse_filter
from docmcp.storage.repositories import LibraryVersionRepository

router = APIRouter(prefix="/api", tags=["search"], dependencies=[Depends(require_api_key)])


async def _resolve_scope(request: SearchRequestSchema, services: Services) -> str | None:
    if request.version_id:
        async with services.session_factory() as session:
            version = await LibraryVersionRepository(session).get(request.version_id)
        if version is None:
            raise NotFoundError("Version", request.version_id)
        return version.id
    if request.library_id:
        return await services.search_engine.resolve_version_id(request.library_id, request.version)
    return None


@router.post("/search", response_model=SearchResponseSchema)
async def search(
    request: SearchRequestSchema,
    services: Services = Depends(get_services),
):
    """
    Search within a library version (hybrid, fulltext or semantic).

    Returns ranked document-level and chunk-level results.
    """
    start_time = time.time()
    version_id = await _resolve_scope(request, services)
    mode = request.mode or services.settings.search_default_mode

    results = await services.search_engine.search(
        request.query,
        version_id,
        alpha=request.alpha,
        min_similarity=request.min_similarity,
        limit=request.limit,
        filter=parse_filter(request.filter) if request.filter else None,
        mode=mode,
    )

    return SearchResponseSchema(
        query=request.query,
        mode=mode,
        version_id=version_id,
        results=[
            SearchResultSchema(
                kind=r.kind,
                document_id=r.document_id,
                chunk_id=r.chunk_id,
                chunk_index=r.chunk_index,
                title=r.title,
                path=r.path,
                content=r.content,
                score=r.score,
                lexical_score=r.lexical_score,
                semantic_score=r.semantic_score,
                updated_at=r.updated_at,
            )
            for r in results
        ],
        total_results=len(results),
        latency_ms=(time.time() - start_time) * 1000,
    )
