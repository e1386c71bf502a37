"""Source fetchers package."""

from docmcp.ingestion.connectors.base import (
    SUPPORTED_EXTENSIONS,
    SourceFetcher,
    is_supported,
    matches_pattern,
)
from docmcp.ingestion.connectors.github import GitHubTreeFetcher
from docmcp.ingestion.connectors.local import LocalFileFetcher

__all__ = [
    "SUPPORTED_EXTENSIONS",
    "GitHubTreeFetcher",
    "LocalFileFetcher",
    "SourceFetcher",
    "is_supported",
    "matches_pattern",
]
