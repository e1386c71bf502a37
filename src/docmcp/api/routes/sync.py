"""Sync trigger and sync history routes."""

from fastapi import APIRouter, Depends, Query

from docmcp.api.auth import require_api_key
from docmcp.api.schemas import SyncHistoryListSchema, SyncHistorySchema, SyncResponseSchema
from docmcp.api.service import Services, get_services
from docmcp.errors import NotFoundError
from docmcp.models.sync import SyncHistory
from docmcp.storage.repositories import LibraryVersionRepository

router = APIRouter(prefix="/api/versions", tags=["sync"], dependencies=[Depends(require_api_key)])


def _to_schema(history: SyncHistory) -> SyncHistorySchema:
    return SyncHistorySchema(
        id=history.id,
        version_id=history.version_id,
        status=history.status.value,
        started_at=history.started_at,
        finished_at=history.finished_at,
        documents_processed=history.documents_processed,
        chunks_created=history.chunks_created,
        error_message=history.error_message,
        metadata=history.metadata,
    )


@router.post("/{version_id}/sync", response_model=SyncResponseSchema)
async def trigger_sync(
    version_id: str,
    services: Services = Depends(get_services),
):
    """
    Sync a version from its library's source and wait for the result.

    409 if a sync for the version is already running.
    """
    history = await services.synchronizer.sync_version(version_id)
    return SyncResponseSchema(
        version_id=version_id,
        skipped=history is None,
        history=_to_schema(history) if history else None,
    )


@router.get("/{version_id}/sync-history", response_model=SyncHistoryListSchema)
async def sync_history(
    version_id: str,
    limit: int = Query(default=20, ge=1, le=100),
    services: Services = Depends(get_services),
):
    """Sync attempts for a version, newest first."""
    async with services.session_factory() as session:
        if await LibraryVersionRepository(session).get(version_id) is None:
            raise NotFoundError("Version", version_id)

    items = await services.synchronizer.history(version_id, limit)
    return SyncHistoryListSchema(version_id=version_id, items=[_to_schema(h) for h in items])
