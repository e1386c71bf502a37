"""Local filesystem fetcher for documentation directories."""

import asyncio
from datetime import datetime, timezone
from pathlib import Path

import structlog

from docmcp.errors import InvalidSourceError, TransientFetchError
from docmcp.ingestion.connectors.base import SourceFetcher, is_supported, matches_pattern
from docmcp.models.document import FetchedFile

logger = structlog.get_logger()


class LocalFileFetcher(SourceFetcher):
    """
    Fetcher for documentation files on local disk.

    A missing base directory is an error rather than an empty result, so
    a mistyped path never looks like a source with no documents.
    """

    async def list_files(self, base: str, pattern: str = "**/*") -> list[FetchedFile]:
        """Read all supported files under ``base`` matching ``pattern``."""
        return await asyncio.to_thread(self._list_files, Path(base), pattern)

    def _list_files(self, base_path: Path, pattern: str) -> list[FetchedFile]:
        if not base_path.exists():
            raise InvalidSourceError(f"Docs path not found: {base_path}")
        if not base_path.is_dir():
            raise InvalidSourceError(f"Docs path is not a directory: {base_path}")

        files = []
        for file_path in sorted(base_path.rglob("*")):
            if not file_path.is_file():
                continue

            relative_path = file_path.relative_to(base_path).as_posix()
            if not matches_pattern(relative_path, pattern) or not is_supported(relative_path):
                continue

            try:
                content = file_path.read_text(encoding="utf-8")
                stat = file_path.stat()
            except UnicodeDecodeError:
                logger.warning("skipping_binary_file", path=relative_path)
                continue
            except OSError as e:
                raise TransientFetchError(f"Failed to read {file_path}: {e}") from e

            files.append(
                FetchedFile(
                    path=relative_path,
                    content=content,
                    size=stat.st_size,
                    modified_time=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                )
            )

        return files
