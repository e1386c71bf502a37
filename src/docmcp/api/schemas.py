"""API Pydantic schemas for request/response validation."""

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field


# ===== Search =====

class SearchRequestSchema(BaseModel):
    """Search request schema.

    Scope is either an explicit ``version_id`` or a ``library_id`` plus an
    optional ``version`` string (latest version when omitted). With
    neither, all versions are searched.
    """

    query: str = Field(..., min_length=1, max_length=500)
    version_id: str | None = None
    library_id: str | None = None
    version: str | None = None
    alpha: float | None = Field(default=None, ge=0.0, le=1.0)
    min_similarity: float | None = None
    limit: int | None = None
    filter: dict | None = None
    mode: Literal["hybrid", "fulltext", "semantic"] | None = None


class SearchResultSchema(BaseModel):
    """A single search result."""

    kind: Literal["document", "chunk"]
    document_id: str
    chunk_id: str | None = None
    chunk_index: int | None = None
    title: str
    path: str
    content: str
    score: float
    lexical_score: float
    semantic_score: float
    updated_at: datetime | None = None


class SearchResponseSchema(BaseModel):
    """Search response schema."""

    query: str
    mode: str
    version_id: str | None = None
    results: list[SearchResultSchema]
    total_results: int
    latency_ms: float


# ===== Sync =====

class SyncHistorySchema(BaseModel):
    """One sync attempt."""

    id: str
    version_id: str
    status: Literal["PENDING", "RUNNING", "SUCCESS", "FAILED"]
    started_at: datetime
    finished_at: datetime | None = None
    documents_processed: int = 0
    chunks_created: int = 0
    error_message: str | None = None
    metadata: dict = Field(default_factory=dict)


class SyncResponseSchema(BaseModel):
    """Result of a sync trigger; ``history`` is absent when skipped."""

    version_id: str
    skipped: bool
    history: SyncHistorySchema | None = None


class SyncHistoryListSchema(BaseModel):
    version_id: str
    items: list[SyncHistorySchema]


# ===== Libraries and documents =====

class LibrarySchema(BaseModel):
    id: str
    name: str
    display_name: str | None = None
    description: str | None = None
    source_type: Literal["GITHUB", "LOCAL", "MANUAL"]
    source_url: str | None = None
    category: str | None = None
    tags: list[str] = Field(default_factory=list)


class LibraryListSchema(BaseModel):
    items: list[LibrarySchema]


class LibraryVersionSchema(BaseModel):
    id: str
    version: str
    is_latest: bool
    is_lts: bool
    status: Literal["ACTIVE", "DEPRECATED", "EOL"]
    docs_path: str | None = None
    release_date: date | None = None


class LibraryVersionListSchema(BaseModel):
    library_id: str
    items: list[LibraryVersionSchema]


class DocumentSummarySchema(BaseModel):
    """A document listing entry, without content."""

    id: str
    title: str
    path: str
    doc_type: str | None = None
    updated_at: datetime


class DocumentListSchema(BaseModel):
    library_id: str
    version_id: str
    version: str
    items: list[DocumentSummarySchema]


class CodeExampleSchema(BaseModel):
    language: str | None = None
    code: str
    description: str | None = None
    start_line: int | None = None
    end_line: int | None = None


class DocumentDetailSchema(BaseModel):
    """A full document with its code examples."""

    id: str
    version_id: str
    title: str
    path: str
    doc_type: str | None = None
    content: str
    updated_at: datetime
    code_examples: list[CodeExampleSchema]


# ===== Health =====

class ComponentStatusSchema(BaseModel):
    """Status of a system component."""

    database: str = "unknown"
    scheduler: str = "unknown"


class HealthResponseSchema(BaseModel):
    """Health check response schema."""

    status: str
    components: ComponentStatusSchema
    version: str
