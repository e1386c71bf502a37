"""Source references: where a library version's documentation lives.

A source is one of a fixed set of variants. ``fetcher_for`` is the only
place that maps a variant to the fetcher that reads it.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from docmcp.ingestion.connectors.base import SourceFetcher
from docmcp.ingestion.connectors.github import GitHubTreeFetcher
from docmcp.ingestion.connectors.local import LocalFileFetcher
from docmcp.models.library import Library, LibraryVersion, SourceType

GITHUB_URL_PATTERN = re.compile(r"^https://github\.com/([^/\s]+)/([^/\s]+?)(?:\.git)?/?$")

DEFAULT_DOCS_PATH = "docs"
DEFAULT_PATTERN = "**/*"


@dataclass(frozen=True)
class GitHubSource:
    owner: str
    repo: str
    docs_path: str = DEFAULT_DOCS_PATH
    ref: str = "main"

    def describe(self) -> str:
        return f"github:{self.owner}/{self.repo}@{self.ref}/{self.docs_path}"


@dataclass(frozen=True)
class LocalSource:
    path: str
    pattern: str = DEFAULT_PATTERN

    def describe(self) -> str:
        return f"local:{self.path}"


@dataclass(frozen=True)
class ManualSource:
    """Documents are managed by hand; there is nothing to fetch."""

    def describe(self) -> str:
        return "manual"


SourceRef = Union[GitHubSource, LocalSource, ManualSource]


def parse_github_url(url: str | None) -> tuple[str, str] | None:
    """
    Split a GitHub repository URL into (owner, repo).

    >>> parse_github_url("https://github.com/acme/widgets")
    ('acme', 'widgets')
    >>> parse_github_url("not-a-url") is None
    True
    """
    if not url:
        return None
    match = GITHUB_URL_PATTERN.match(url.strip())
    if not match:
        return None
    return match.group(1), match.group(2)


def source_ref_for(library: Library, version: LibraryVersion) -> SourceRef | None:
    """Resolve the source of a version from its library row; None if unresolvable."""
    if library.source_type == SourceType.GITHUB:
        parsed = parse_github_url(library.source_url)
        if parsed is None:
            return None
        owner, repo = parsed
        return GitHubSource(
            owner=owner,
            repo=repo,
            docs_path=version.docs_path or DEFAULT_DOCS_PATH,
            ref=version.version,
        )
    if library.source_type == SourceType.LOCAL:
        if not library.source_url:
            return None
        path = Path(library.source_url)
        if version.docs_path:
            path = path / version.docs_path
        return LocalSource(path=str(path))
    return ManualSource()


def fetcher_for(source: SourceRef) -> tuple[SourceFetcher, str, str] | None:
    """
    Pick the fetcher for a source variant.

    Returns:
        (fetcher, base location, path pattern), or None when the variant
        has nothing to fetch
    """
    if isinstance(source, GitHubSource):
        return GitHubTreeFetcher(source.owner, source.repo, source.ref), source.docs_path, DEFAULT_PATTERN
    if isinstance(source, LocalSource):
        return LocalFileFetcher(), source.path, source.pattern
    return None
