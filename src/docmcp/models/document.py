"""Data models for documents, chunks, code examples, and fetched source files."""

from datetime import datetime

from pydantic import BaseModel, Field

from docmcp.utils import utcnow


class Document(BaseModel):
    """A synced source file belonging to one library version."""

    id: str
    version_id: str
    title: str
    path: str
    content: str
    content_hash: str
    doc_type: str | None = None
    metadata: dict = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class DocumentChunk(BaseModel):
    """A contiguous slice of a document, the unit of embedding and retrieval."""

    id: str  # "{document_id}-{chunk_index}"
    document_id: str
    version_id: str
    chunk_index: int
    content: str
    embedding: list[float] | None = None
    token_count: int = 0
    # versionId, documentId, chunkIndex, tokenCount, documentTitle, documentPath
    metadata: dict = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)


class FetchedFile(BaseModel):
    """A file returned by a source fetcher before processing."""

    path: str  # relative to the source base
    content: str
    size: int
    modified_time: datetime | None = None


class ChunkDraft(BaseModel):
    """Chunker output: text plus token count, before ids and embeddings exist."""

    content: str
    token_count: int


class CodeBlock(BaseModel):
    """A fenced or delimited code block found while parsing a document."""

    language: str | None = None
    code: str
    description: str | None = None  # text just before the block
    start_line: int  # 1-based, opening fence
    end_line: int  # 1-based, closing fence


class CodeExample(BaseModel):
    """A stored code block, replaced together with its document."""

    id: str  # "{document_id}-code-{index}"
    document_id: str
    version_id: str
    language: str | None = None
    code: str
    description: str | None = None
    start_line: int | None = None
    end_line: int | None = None
    created_at: datetime = Field(default_factory=utcnow)
