"""Ingestion package."""

from docmcp.ingestion.chunker import Chunker, TokenWindowChunker, get_chunker
from docmcp.ingestion.connectors import (
    GitHubTreeFetcher,
    LocalFileFetcher,
    SourceFetcher,
)
from docmcp.ingestion.scheduler import ScheduledRunReport, SyncScheduler
from docmcp.ingestion.sources import (
    GitHubSource,
    LocalSource,
    ManualSource,
    SourceRef,
    fetcher_for,
    parse_github_url,
    source_ref_for,
)
from docmcp.ingestion.synchronizer import Synchronizer

__all__ = [
    "Chunker",
    "GitHubSource",
    "GitHubTreeFetcher",
    "LocalFileFetcher",
    "LocalSource",
    "ManualSource",
    "ScheduledRunReport",
    "SourceFetcher",
    "SourceRef",
    "SyncScheduler",
    "Synchronizer",
    "TokenWindowChunker",
    "fetcher_for",
    "get_chunker",
    "parse_github_url",
    "source_ref_for",
]
