"""Abstract source fetcher interface and shared path helpers."""

from abc import ABC, abstractmethod
from fnmatch import fnmatch
from pathlib import PurePosixPath

from docmcp.models.document import FetchedFile

SUPPORTED_EXTENSIONS = frozenset({
    ".md",
    ".markdown",
    ".adoc",
    ".asciidoc",
    ".html",
    ".htm",
    ".txt",
    ".rst",
})


def is_supported(path: str) -> bool:
    """Whether a file extension is one the synchronizer processes."""
    return PurePosixPath(path).suffix.lower() in SUPPORTED_EXTENSIONS


def matches_pattern(relative_path: str, pattern: str) -> bool:
    """
    Glob match on a POSIX relative path.

    ``**/`` at the start also matches files at the top level, so
    ``**/*.md`` matches both ``index.md`` and ``guide/intro.md``.
    """
    if fnmatch(relative_path, pattern):
        return True
    return pattern.startswith("**/") and fnmatch(relative_path, pattern[3:])


class SourceFetcher(ABC):
    """Lists the files under a base location of one source."""

    @abstractmethod
    async def list_files(self, base: str, pattern: str) -> list[FetchedFile]:
        """
        Fetch every supported file under ``base`` whose relative path matches ``pattern``.

        Raises:
            InvalidSourceError: The base location does not exist
            TransientFetchError: Network failure or timeout
        """
        pass
