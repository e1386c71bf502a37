"""Models package."""

from docmcp.models.api_key import ApiKey, ApiKeyStatus, GeneratedApiKey
from docmcp.models.document import (
    ChunkDraft,
    CodeBlock,
    CodeExample,
    Document,
    DocumentChunk,
    FetchedFile,
)
from docmcp.models.library import Library, LibraryVersion, SourceType, VersionStatus
from docmcp.models.search import SEARCH_MODES, SearchMode, SearchResultItem
from docmcp.models.sync import SyncHistory, SyncStats, SyncStatus

__all__ = [
    "ApiKey",
    "ApiKeyStatus",
    "ChunkDraft",
    "CodeBlock",
    "CodeExample",
    "Document",
    "DocumentChunk",
    "FetchedFile",
    "GeneratedApiKey",
    "Library",
    "LibraryVersion",
    "SEARCH_MODES",
    "SearchMode",
    "SearchResultItem",
    "SourceType",
    "SyncHistory",
    "SyncStats",
    "SyncStatus",
    "VersionStatus",
]
