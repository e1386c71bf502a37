"""Repository pattern for database operations."""

import hashlib
import uuid
from datetime import datetime

import numpy as np
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from docmcp.errors import EmbeddingError, SyncAlreadyRunningError
from docmcp.models.api_key import ApiKey, ApiKeyStatus
from docmcp.models.document import CodeBlock, CodeExample, Document, DocumentChunk
from docmcp.models.library import Library, LibraryVersion, SourceType, VersionStatus
from docmcp.models.sync import SyncHistory, SyncStatus
from docmcp.storage.database import (
    ApiKeyORM,
    CodeExampleORM,
    DocumentChunkORM,
    DocumentORM,
    LibraryORM,
    LibraryVersionORM,
    SyncHistoryORM,
)
from docmcp.utils import as_utc, utcnow


class LibraryRepository:
    """Repository for library reads and seeding."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, library_id: str) -> Library | None:
        """Get a library by ID."""
        result = await self.session.execute(
            select(LibraryORM).where(LibraryORM.id == library_id)
        )
        orm = result.scalar_one_or_none()
        return self._to_model(orm) if orm else None

    async def get_by_name(self, name: str) -> Library | None:
        result = await self.session.execute(
            select(LibraryORM).where(LibraryORM.name == name)
        )
        orm = result.scalar_one_or_none()
        return self._to_model(orm) if orm else None

    async def get_all(self, category: str | None = None) -> list[Library]:
        """Get all libraries, ordered by name, optionally in one category."""
        query = select(LibraryORM).order_by(LibraryORM.name)
        if category:
            query = query.where(LibraryORM.category == category)
        result = await self.session.execute(query)
        return [self._to_model(orm) for orm in result.scalars()]

    async def create(self, library: Library) -> Library:
        """Create a new library."""
        orm = LibraryORM(
            id=library.id,
            name=library.name,
            display_name=library.display_name,
            description=library.description,
            source_type=library.source_type.value,
            source_url=library.source_url,
            category=library.category,
            tags=library.tags,
        )
        self.session.add(orm)
        await self.session.commit()
        return library

    def _to_model(self, orm: LibraryORM) -> Library:
        return Library(
            id=orm.id,
            name=orm.name,
            display_name=orm.display_name,
            description=orm.description,
            source_type=SourceType(orm.source_type),
            source_url=orm.source_url,
            category=orm.category,
            tags=orm.tags or [],
            created_at=as_utc(orm.created_at),
            updated_at=as_utc(orm.updated_at),
        )


class LibraryVersionRepository:
    """Repository for library version reads and seeding."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, version_id: str) -> LibraryVersion | None:
        """Get a version by ID."""
        result = await self.session.execute(
            select(LibraryVersionORM).where(LibraryVersionORM.id == version_id)
        )
        orm = result.scalar_one_or_none()
        return self._to_model(orm) if orm else None

    async def get_by_library(self, library_id: str) -> list[LibraryVersion]:
        """Get all versions of a library."""
        result = await self.session.execute(
            select(LibraryVersionORM)
            .where(LibraryVersionORM.library_id == library_id)
            .order_by(LibraryVersionORM.version)
        )
        return [self._to_model(orm) for orm in result.scalars()]

    async def get_by_library_and_version(
        self, library_id: str, version: str
    ) -> LibraryVersion | None:
        result = await self.session.execute(
            select(LibraryVersionORM).where(
                LibraryVersionORM.library_id == library_id,
                LibraryVersionORM.version == version,
            )
        )
        orm = result.scalar_one_or_none()
        return self._to_model(orm) if orm else None

    async def get_latest(self, library_id: str) -> LibraryVersion | None:
        """Get the version flagged as latest for a library."""
        result = await self.session.execute(
            select(LibraryVersionORM).where(
                LibraryVersionORM.library_id == library_id,
                LibraryVersionORM.is_latest.is_(True),
            )
        )
        orm = result.scalars().first()
        return self._to_model(orm) if orm else None

    async def create(self, version: LibraryVersion) -> LibraryVersion:
        """Create a new version."""
        orm = LibraryVersionORM(
            id=version.id,
            library_id=version.library_id,
            version=version.version,
            is_latest=version.is_latest,
            is_lts=version.is_lts,
            status=version.status.value,
            docs_path=version.docs_path,
            release_date=version.release_date,
        )
        self.session.add(orm)
        await self.session.commit()
        return version

    def _to_model(self, orm: LibraryVersionORM) -> LibraryVersion:
        return LibraryVersion(
            id=orm.id,
            library_id=orm.library_id,
            version=orm.version,
            is_latest=orm.is_latest,
            is_lts=orm.is_lts,
            status=VersionStatus(orm.status),
            docs_path=orm.docs_path,
            release_date=orm.release_date,
            created_at=as_utc(orm.created_at),
            updated_at=as_utc(orm.updated_at),
        )


class DocumentRepository:
    """Repository for document and chunk writes done by the synchronizer."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, doc_id: str) -> Document | None:
        """Get a document by ID."""
        result = await self.session.execute(
            select(DocumentORM).where(DocumentORM.id == doc_id)
        )
        orm = result.scalar_one_or_none()
        return self._to_model(orm) if orm else None

    async def get_by_version_and_path(self, version_id: str, path: str) -> Document | None:
        """Get a document by its natural key."""
        result = await self.session.execute(
            select(DocumentORM).where(
                DocumentORM.version_id == version_id,
                DocumentORM.path == path,
            )
        )
        orm = result.scalar_one_or_none()
        return self._to_model(orm) if orm else None

    async def get_by_version(self, version_id: str | None) -> list[Document]:
        """Get all documents, optionally scoped to one version."""
        query = select(DocumentORM).order_by(DocumentORM.id)
        if version_id:
            query = query.where(DocumentORM.version_id == version_id)
        result = await self.session.execute(query)
        return [self._to_model(orm) for orm in result.scalars()]

    async def list_by_version(self, version_id: str) -> list[Document]:
        """Documents of one version, ordered by path."""
        result = await self.session.execute(
            select(DocumentORM)
            .where(DocumentORM.version_id == version_id)
            .order_by(DocumentORM.path)
        )
        return [self._to_model(orm) for orm in result.scalars()]

    async def get_by_ids(self, doc_ids: list[str]) -> dict[str, Document]:
        """Get documents keyed by ID."""
        if not doc_ids:
            return {}
        result = await self.session.execute(
            select(DocumentORM).where(DocumentORM.id.in_(doc_ids))
        )
        return {orm.id: self._to_model(orm) for orm in result.scalars()}

    async def replace_with_chunks(
        self,
        document: Document,
        chunks: list[DocumentChunk],
        dimension: int,
        code_blocks: list[CodeBlock] | None = None,
    ) -> Document:
        """
        Upsert a document and fully replace its chunks and code examples in
        one transaction.

        Args:
            document: Document to insert or update (matched by version and path)
            chunks: New chunk set with dense indices 0..n-1
            dimension: Required embedding length for every non-null embedding
            code_blocks: Code blocks to store as the document's code examples

        Returns:
            The stored document (keeps the existing ID on update)
        """
        encoded = [encode_embedding(chunk.embedding, dimension) for chunk in chunks]

        try:
            result = await self.session.execute(
                select(DocumentORM).where(
                    DocumentORM.version_id == document.version_id,
                    DocumentORM.path == document.path,
                )
            )
            orm = result.scalar_one_or_none()
            now = utcnow()

            if orm is not None:
                document = document.model_copy(update={"id": orm.id, "updated_at": now})
                await self.session.execute(
                    delete(DocumentChunkORM).where(DocumentChunkORM.document_id == orm.id)
                )
                await self.session.execute(
                    delete(CodeExampleORM).where(CodeExampleORM.document_id == orm.id)
                )
                orm.title = document.title
                orm.content = document.content
                orm.content_hash = document.content_hash
                orm.doc_type = document.doc_type
                orm.doc_metadata = document.metadata
                orm.updated_at = now
            else:
                document = document.model_copy(update={"updated_at": now})
                self.session.add(
                    DocumentORM(
                        id=document.id,
                        version_id=document.version_id,
                        title=document.title,
                        path=document.path,
                        content=document.content,
                        content_hash=document.content_hash,
                        doc_type=document.doc_type,
                        doc_metadata=document.metadata,
                        created_at=now,
                        updated_at=now,
                    )
                )
            await self.session.flush()

            for chunk, blob in zip(chunks, encoded):
                self.session.add(
                    DocumentChunkORM(
                        id=f"{document.id}-{chunk.chunk_index}",
                        document_id=document.id,
                        version_id=document.version_id,
                        chunk_index=chunk.chunk_index,
                        content=chunk.content,
                        embedding=blob,
                        token_count=chunk.token_count,
                        chunk_metadata={
                            **chunk.metadata,
                            "documentId": document.id,
                        },
                    )
                )
            for index, block in enumerate(code_blocks or []):
                self.session.add(
                    CodeExampleORM(
                        id=f"{document.id}-code-{index}",
                        document_id=document.id,
                        version_id=document.version_id,
                        language=block.language,
                        code=block.code,
                        description=block.description,
                        start_line=block.start_line,
                        end_line=block.end_line,
                    )
                )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        return document

    def _to_model(self, orm: DocumentORM) -> Document:
        return Document(
            id=orm.id,
            version_id=orm.version_id,
            title=orm.title,
            path=orm.path,
            content=orm.content,
            content_hash=orm.content_hash,
            doc_type=orm.doc_type,
            metadata=orm.doc_metadata or {},
            created_at=as_utc(orm.created_at),
            updated_at=as_utc(orm.updated_at),
        )


class ChunkRepository:
    """Repository for chunk reads."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_document(self, document_id: str) -> list[DocumentChunk]:
        """Get all chunks for a document, in index order."""
        result = await self.session.execute(
            select(DocumentChunkORM)
            .where(DocumentChunkORM.document_id == document_id)
            .order_by(DocumentChunkORM.chunk_index)
        )
        return [chunk_to_model(orm) for orm in result.scalars()]


class CodeExampleRepository:
    """Repository for code examples extracted during sync."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_document(self, document_id: str) -> list[CodeExample]:
        """Code examples of a document, in source order."""
        result = await self.session.execute(
            select(CodeExampleORM)
            .where(CodeExampleORM.document_id == document_id)
            .order_by(CodeExampleORM.start_line, CodeExampleORM.id)
        )
        return [self._to_model(orm) for orm in result.scalars()]

    def _to_model(self, orm: CodeExampleORM) -> CodeExample:
        return CodeExample(
            id=orm.id,
            document_id=orm.document_id,
            version_id=orm.version_id,
            language=orm.language,
            code=orm.code,
            description=orm.description,
            start_line=orm.start_line,
            end_line=orm.end_line,
            created_at=as_utc(orm.created_at),
        )


class SyncHistoryRepository:
    """Repository for the sync audit trail."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, history_id: str) -> SyncHistory | None:
        result = await self.session.execute(
            select(SyncHistoryORM).where(SyncHistoryORM.id == history_id)
        )
        orm = result.scalar_one_or_none()
        return self._to_model(orm) if orm else None

    async def has_running(self, version_id: str) -> bool:
        """Check whether a RUNNING row exists for the version."""
        result = await self.session.execute(
            select(func.count(SyncHistoryORM.id)).where(
                SyncHistoryORM.version_id == version_id,
                SyncHistoryORM.status == SyncStatus.RUNNING.value,
            )
        )
        return (result.scalar() or 0) > 0

    async def count_running(self, version_id: str) -> int:
        result = await self.session.execute(
            select(func.count(SyncHistoryORM.id)).where(
                SyncHistoryORM.version_id == version_id,
                SyncHistoryORM.status == SyncStatus.RUNNING.value,
            )
        )
        return result.scalar() or 0

    async def fail_stale_running(
        self, version_id: str, started_before: datetime, error_message: str
    ) -> int:
        """Mark RUNNING rows that started before a cutoff as FAILED."""
        result = await self.session.execute(
            update(SyncHistoryORM)
            .where(
                SyncHistoryORM.version_id == version_id,
                SyncHistoryORM.status == SyncStatus.RUNNING.value,
                SyncHistoryORM.started_at < started_before,
            )
            .values(
                status=SyncStatus.FAILED.value,
                finished_at=utcnow(),
                error_message=error_message,
            )
        )
        await self.session.commit()
        return result.rowcount

    async def create_pending(self, version_id: str) -> SyncHistory:
        """Insert a PENDING record for a new sync attempt."""
        history = SyncHistory(
            id=uuid.uuid4().hex,
            version_id=version_id,
            status=SyncStatus.PENDING,
            started_at=utcnow(),
        )
        self.session.add(
            SyncHistoryORM(
                id=history.id,
                version_id=history.version_id,
                status=history.status.value,
                started_at=history.started_at,
                sync_metadata={},
            )
        )
        await self.session.commit()
        return history

    async def mark_running(self, history: SyncHistory) -> SyncHistory:
        """
        Transition PENDING -> RUNNING.

        The partial unique index on (version_id) WHERE status='RUNNING'
        makes this a conditional write: if another attempt already holds
        the RUNNING slot the update violates the index and the caller gets
        SyncAlreadyRunningError.
        """
        now = utcnow()
        try:
            await self.session.execute(
                update(SyncHistoryORM)
                .where(
                    SyncHistoryORM.id == history.id,
                    SyncHistoryORM.status == SyncStatus.PENDING.value,
                )
                .values(status=SyncStatus.RUNNING.value, started_at=now)
            )
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            raise SyncAlreadyRunningError(history.version_id) from e
        return history.model_copy(update={"status": SyncStatus.RUNNING, "started_at": now})

    async def complete(
        self,
        history_id: str,
        status: SyncStatus,
        documents_processed: int = 0,
        chunks_created: int = 0,
        error_message: str | None = None,
        metadata: dict | None = None,
    ) -> SyncHistory:
        """Move a record to a terminal state and store its counters."""
        await self.session.execute(
            update(SyncHistoryORM)
            .where(SyncHistoryORM.id == history_id)
            .values(
                status=status.value,
                finished_at=utcnow(),
                documents_processed=documents_processed,
                chunks_created=chunks_created,
                error_message=error_message,
                sync_metadata=metadata or {},
            )
        )
        await self.session.commit()
        history = await self.get(history_id)
        assert history is not None
        return history

    async def latest(self, version_id: str) -> SyncHistory | None:
        """Most recent attempt for a version."""
        records = await self.list_by_version(version_id, limit=1)
        return records[0] if records else None

    async def list_by_version(self, version_id: str, limit: int = 20) -> list[SyncHistory]:
        """Attempts for a version, newest first."""
        result = await self.session.execute(
            select(SyncHistoryORM)
            .where(SyncHistoryORM.version_id == version_id)
            .order_by(SyncHistoryORM.started_at.desc(), SyncHistoryORM.id)
            .limit(limit)
        )
        return [self._to_model(orm) for orm in result.scalars()]

    def _to_model(self, orm: SyncHistoryORM) -> SyncHistory:
        return SyncHistory(
            id=orm.id,
            version_id=orm.version_id,
            status=SyncStatus(orm.status),
            started_at=as_utc(orm.started_at),
            finished_at=as_utc(orm.finished_at),
            documents_processed=orm.documents_processed or 0,
            chunks_created=orm.chunks_created or 0,
            error_message=orm.error_message,
            metadata=orm.sync_metadata or {},
        )


class ApiKeyRepository:
    """Repository for API key records."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, key_id: str) -> ApiKey | None:
        result = await self.session.execute(select(ApiKeyORM).where(ApiKeyORM.id == key_id))
        orm = result.scalar_one_or_none()
        return self._to_model(orm) if orm else None

    async def get_by_prefix(self, key_prefix: str) -> ApiKey | None:
        """Indexed lookup; the prefix column is unique so at most one row matches."""
        result = await self.session.execute(
            select(ApiKeyORM).where(ApiKeyORM.key_prefix == key_prefix)
        )
        orm = result.scalar_one_or_none()
        return self._to_model(orm) if orm else None

    async def exists_by_name(self, name: str) -> bool:
        result = await self.session.execute(
            select(func.count(ApiKeyORM.id)).where(ApiKeyORM.name == name)
        )
        return (result.scalar() or 0) > 0

    async def create(self, api_key: ApiKey) -> ApiKey:
        orm = ApiKeyORM(
            id=api_key.id,
            name=api_key.name,
            key_hash=api_key.key_hash,
            key_prefix=api_key.key_prefix,
            status=api_key.status.value,
            rate_limit=api_key.rate_limit,
            expires_at=api_key.expires_at,
            created_by=api_key.created_by,
        )
        self.session.add(orm)
        await self.session.commit()
        return api_key

    async def update_status(self, key_id: str, status: ApiKeyStatus) -> bool:
        result = await self.session.execute(
            update(ApiKeyORM)
            .where(ApiKeyORM.id == key_id)
            .values(status=status.value, updated_at=utcnow())
        )
        await self.session.commit()
        return result.rowcount > 0

    async def update_last_used(self, key_id: str, used_at: datetime) -> None:
        await self.session.execute(
            update(ApiKeyORM).where(ApiKeyORM.id == key_id).values(last_used_at=used_at)
        )
        await self.session.commit()

    def _to_model(self, orm: ApiKeyORM) -> ApiKey:
        return ApiKey(
            id=orm.id,
            name=orm.name,
            key_hash=orm.key_hash,
            key_prefix=orm.key_prefix,
            status=ApiKeyStatus(orm.status),
            rate_limit=orm.rate_limit,
            expires_at=as_utc(orm.expires_at),
            last_used_at=as_utc(orm.last_used_at),
            created_by=orm.created_by,
            created_at=as_utc(orm.created_at),
            updated_at=as_utc(orm.updated_at),
        )


def encode_embedding(embedding: list[float] | None, dimension: int) -> bytes | None:
    """Pack an embedding as float32 bytes; reject partial vectors."""
    if embedding is None:
        return None
    vector = np.asarray(embedding, dtype=np.float32)
    if vector.ndim != 1 or vector.shape[0] != dimension:
        raise EmbeddingError(
            f"Embedding has {vector.size} values, expected {dimension}"
        )
    return vector.tobytes()


def decode_embedding(blob: bytes | None) -> np.ndarray | None:
    if blob is None:
        return None
    return np.frombuffer(blob, dtype=np.float32)


def chunk_to_model(orm: DocumentChunkORM) -> DocumentChunk:
    vector = decode_embedding(orm.embedding)
    return DocumentChunk(
        id=orm.id,
        document_id=orm.document_id,
        version_id=orm.version_id,
        chunk_index=orm.chunk_index,
        content=orm.content,
        embedding=vector.tolist() if vector is not None else None,
        token_count=orm.token_count,
        metadata=orm.chunk_metadata or {},
        created_at=as_utc(orm.created_at),
    )


def compute_content_hash(content: str) -> str:
    """Compute SHA256 hash of content."""
    return hashlib.sha256(content.encode()).hexdigest()
