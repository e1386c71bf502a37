"""Storage package."""

from docmcp.storage.database import (
    ApiKeyORM,
    Base,
    CodeExampleORM,
    DocumentChunkORM,
    DocumentORM,
    LibraryORM,
    LibraryVersionORM,
    SyncHistoryORM,
    create_engine_for_url,
    dispose_database,
    get_async_engine,
    get_session_factory,
    init_database,
    init_database_sync,
)
from docmcp.storage.repositories import (
    ApiKeyRepository,
    ChunkRepository,
    CodeExampleRepository,
    DocumentRepository,
    LibraryRepository,
    LibraryVersionRepository,
    SyncHistoryRepository,
    chunk_to_model,
    compute_content_hash,
    decode_embedding,
    encode_embedding,
)

__all__ = [
    "ApiKeyORM",
    "ApiKeyRepository",
    "Base",
    "CodeExampleORM",
    "CodeExampleRepository",
    "ChunkRepository",
    "DocumentChunkORM",
    "DocumentORM",
    "DocumentRepository",
    "LibraryORM",
    "LibraryRepository",
    "LibraryVersionORM",
    "LibraryVersionRepository",
    "SyncHistoryORM",
    "SyncHistoryRepository",
    "chunk_to_model",
    "compute_content_hash",
    "create_engine_for_url",
    "decode_embedding",
    "dispose_database",
    "encode_embedding",
    "get_async_engine",
    "get_session_factory",
    "init_database",
    "init_database_sync",
]
