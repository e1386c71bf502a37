"""Version synchronizer: fetch a source tree, detect changes, record history."""

import asyncio
import time
import uuid
from datetime import timedelta
from typing import Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docmcp.config import Settings, get_settings
from docmcp.errors import (
    InvalidSourceError,
    NotFoundError,
    SyncAlreadyRunningError,
    TransientFetchError,
)
from docmcp.ingestion.chunker import Chunker, get_chunker
from docmcp.ingestion.connectors.base import SourceFetcher, is_supported
from docmcp.ingestion.parser import doc_type_for, extract_code_blocks, extract_title
from docmcp.ingestion.sources import SourceRef, fetcher_for, source_ref_for
from docmcp.models.document import Document, DocumentChunk, FetchedFile
from docmcp.models.sync import SyncHistory, SyncStats, SyncStatus
from docmcp.observability.metrics import SYNC_DOCUMENTS, SYNC_LATENCY, SYNC_RUNS
from docmcp.retrieval.embeddings import Embedder, embed_with_timeout
from docmcp.storage.repositories import (
    DocumentRepository,
    LibraryRepository,
    LibraryVersionRepository,
    SyncHistoryRepository,
    compute_content_hash,
)
from docmcp.utils import utcnow

logger = structlog.get_logger()

FetcherResolver = Callable[[SourceRef], tuple[SourceFetcher, str, str] | None]

# Stop listing individual document errors in the summary after this many
MAX_REPORTED_ERRORS = 10


class Synchronizer:
    """
    Syncs one library version from its source.

    Flow:
    1. Fail RUNNING records older than sync_timeout_seconds, then reject if
       a RUNNING record still exists for the version
    2. Record PENDING, then claim the RUNNING slot (conditional write)
    3. Fetch the source tree (bounded by fetch_timeout_seconds)
    4. Per file: skip on unchanged hash, else chunk, embed, and replace the
       document, its chunks and its code examples in one transaction
    5. Finish as SUCCESS only if every document went through, else FAILED

    Per-document failures are collected, not raised. The whole run is
    bounded by sync_timeout_seconds.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        embedder: Embedder,
        chunker: Chunker | None = None,
        resolve_fetcher: FetcherResolver = fetcher_for,
        settings: Settings | None = None,
    ):
        self.session_factory = session_factory
        self.embedder = embedder
        self.chunker = chunker or get_chunker()
        self.resolve_fetcher = resolve_fetcher
        self.settings = settings or get_settings()

    async def sync_version(self, version_id: str) -> SyncHistory | None:
        """Sync a version using the source recorded on its library."""
        async with self.session_factory() as session:
            version = await LibraryVersionRepository(session).get(version_id)
            if version is None:
                raise NotFoundError("Version", version_id)
            library = await LibraryRepository(session).get(version.library_id)
            if library is None:
                raise NotFoundError("Library", version.library_id)

        return await self.sync(version_id, source_ref_for(library, version))

    async def sync(self, version_id: str, source: SourceRef | None) -> SyncHistory | None:
        """
        Sync a version from a source.

        Args:
            version_id: Version to sync
            source: Where to read from; None or a source with nothing to
                fetch is a skip

        Returns:
            The terminal SyncHistory, or None when the sync was skipped
            (no record is written for a skip)

        Raises:
            NotFoundError: Unknown version
            SyncAlreadyRunningError: Another sync holds the RUNNING slot
        """
        async with self.session_factory() as session:
            version = await LibraryVersionRepository(session).get(version_id)
        if version is None:
            raise NotFoundError("Version", version_id)

        resolved = self.resolve_fetcher(source) if source is not None else None
        if resolved is None:
            logger.info("sync_skipped_no_source", version_id=version_id)
            return None
        fetcher, base, pattern = resolved

        history = await self._claim(version_id)
        log = logger.bind(version_id=version_id, sync_id=history.id, source=source.describe())
        log.info("sync_started")

        stats = SyncStats()
        start_time = time.time()
        error: str | None = None
        try:
            await asyncio.wait_for(
                self._run(version_id, fetcher, base, pattern, stats),
                timeout=self.settings.sync_timeout_seconds,
            )
        except asyncio.TimeoutError:
            error = f"Sync timed out after {self.settings.sync_timeout_seconds:g}s"
        except (InvalidSourceError, TransientFetchError) as e:
            error = f"Fetch failed: {e}"
        except asyncio.CancelledError:
            await self._finish(history, stats, "Sync cancelled")
            raise
        except Exception as e:
            log.exception("sync_unexpected_error")
            error = f"{type(e).__name__}: {e}"

        history = await self._finish(history, stats, error)
        SYNC_LATENCY.observe(time.time() - start_time)
        log.info(
            "sync_complete",
            status=history.status.value,
            processed=stats.documents_processed,
            skipped=stats.documents_skipped,
            failed=stats.documents_failed,
            chunks=stats.chunks_created,
            duration=f"{time.time() - start_time:.2f}s",
        )
        return history

    async def _claim(self, version_id: str) -> SyncHistory:
        """Create the PENDING record and take the RUNNING slot."""
        async with self.session_factory() as session:
            repo = SyncHistoryRepository(session)

            # A RUNNING row older than the run timeout belongs to a dead process
            cutoff = utcnow() - timedelta(seconds=self.settings.sync_timeout_seconds)
            reclaimed = await repo.fail_stale_running(
                version_id,
                cutoff,
                f"Abandoned: still RUNNING after {self.settings.sync_timeout_seconds:g}s",
            )
            if reclaimed:
                logger.warning("sync_reclaimed_stale_run", version_id=version_id, count=reclaimed)

            if await repo.has_running(version_id):
                logger.warning("sync_rejected_already_running", version_id=version_id)
                raise SyncAlreadyRunningError(version_id)

            history = await repo.create_pending(version_id)
            try:
                return await repo.mark_running(history)
            except SyncAlreadyRunningError:
                await repo.complete(
                    history.id,
                    SyncStatus.FAILED,
                    error_message="Another sync for this version started first",
                )
                SYNC_RUNS.labels(status="rejected").inc()
                logger.warning("sync_lost_race", version_id=version_id, sync_id=history.id)
                raise

    async def _finish(self, history: SyncHistory, stats: SyncStats, error: str | None) -> SyncHistory:
        if error is None and not stats.errors:
            status, message = SyncStatus.SUCCESS, None
        else:
            status, message = SyncStatus.FAILED, self._summarize(error, stats)

        async with self.session_factory() as session:
            finished = await SyncHistoryRepository(session).complete(
                history.id,
                status,
                documents_processed=stats.documents_processed,
                chunks_created=stats.chunks_created,
                error_message=message,
                metadata={
                    "filesSeen": stats.files_seen,
                    "documentsSkipped": stats.documents_skipped,
                    "documentsFailed": stats.documents_failed,
                },
            )
        SYNC_RUNS.labels(status=status.value.lower()).inc()
        return finished

    def _summarize(self, error: str | None, stats: SyncStats) -> str:
        parts = []
        if error:
            parts.append(error)
        if stats.errors:
            shown = "; ".join(stats.errors[:MAX_REPORTED_ERRORS])
            more = len(stats.errors) - MAX_REPORTED_ERRORS
            suffix = f"; and {more} more" if more > 0 else ""
            parts.append(f"{len(stats.errors)} document(s) failed: {shown}{suffix}")
        return " | ".join(parts)

    async def _run(
        self,
        version_id: str,
        fetcher: SourceFetcher,
        base: str,
        pattern: str,
        stats: SyncStats,
    ) -> None:
        try:
            files = await asyncio.wait_for(
                fetcher.list_files(base, pattern),
                timeout=self.settings.fetch_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise TransientFetchError(
                f"Fetching {base} timed out after {self.settings.fetch_timeout_seconds:g}s"
            ) from e

        stats.files_seen = len(files)
        for file in files:
            if not is_supported(file.path):
                continue
            try:
                await self._process_file(version_id, file, stats)
            except Exception as e:
                stats.documents_failed += 1
                stats.errors.append(f"{file.path}: {e}")
                SYNC_DOCUMENTS.labels(result="failed").inc()
                logger.error(
                    "document_sync_failed",
                    version_id=version_id,
                    path=file.path,
                    error=str(e),
                )

    async def _process_file(self, version_id: str, file: FetchedFile, stats: SyncStats) -> None:
        content_hash = compute_content_hash(file.content)

        async with self.session_factory() as session:
            existing = await DocumentRepository(session).get_by_version_and_path(version_id, file.path)

        if existing and existing.content_hash == content_hash:
            stats.documents_skipped += 1
            SYNC_DOCUMENTS.labels(result="skipped").inc()
            return

        doc_id = existing.id if existing else uuid.uuid4().hex
        title = extract_title(file.content, file.path)
        code_blocks = extract_code_blocks(file.content, file.path)

        # Embed before opening the write transaction
        drafts = self.chunker.chunk(file.content)
        vectors = (
            await embed_with_timeout(
                self.embedder,
                [draft.content for draft in drafts],
                self.settings.embed_timeout_seconds,
            )
            if drafts
            else []
        )

        document = Document(
            id=doc_id,
            version_id=version_id,
            title=title,
            path=file.path,
            content=file.content,
            content_hash=content_hash,
            doc_type=doc_type_for(file.path),
            metadata={
                "size": file.size,
                "modifiedTime": file.modified_time.isoformat() if file.modified_time else None,
                "codeBlockCount": len(code_blocks),
            },
        )
        chunks = [
            DocumentChunk(
                id=f"{doc_id}-{index}",
                document_id=doc_id,
                version_id=version_id,
                chunk_index=index,
                content=draft.content,
                embedding=vector,
                token_count=draft.token_count,
                metadata={
                    "versionId": version_id,
                    "documentId": doc_id,
                    "chunkIndex": index,
                    "tokenCount": draft.token_count,
                    "documentTitle": title,
                    "documentPath": file.path,
                },
            )
            for index, (draft, vector) in enumerate(zip(drafts, vectors))
        ]

        async with self.session_factory() as session:
            await DocumentRepository(session).replace_with_chunks(
                document, chunks, self.embedder.dimension, code_blocks
            )

        stats.documents_processed += 1
        stats.chunks_created += len(chunks)
        SYNC_DOCUMENTS.labels(result="processed").inc()
        logger.debug(
            "document_synced",
            version_id=version_id,
            path=file.path,
            updated=existing is not None,
            chunks=len(chunks),
            code_examples=len(code_blocks),
        )

    async def latest_history(self, version_id: str) -> SyncHistory | None:
        async with self.session_factory() as session:
            return await SyncHistoryRepository(session).latest(version_id)

    async def history(self, version_id: str, limit: int = 20) -> list[SyncHistory]:
        async with self.session_factory() as session:
            return await SyncHistoryRepository(session).list_by_version(version_id, limit)
