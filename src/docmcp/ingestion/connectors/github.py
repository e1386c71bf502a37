"""GitHub repository fetcher using the Git Trees API and raw content URLs."""

import httpx
import structlog

from docmcp.config import get_settings
from docmcp.errors import InvalidSourceError, TransientFetchError
from docmcp.ingestion.connectors.base import SourceFetcher, is_supported, matches_pattern
from docmcp.models.document import FetchedFile

logger = structlog.get_logger()


class GitHubTreeFetcher(SourceFetcher):
    """
    Fetcher for documentation stored in a GitHub repository.

    Lists the whole tree at ``ref`` in one recursive Git Trees call, keeps
    blobs under the docs path, then downloads each file's raw content.
    """

    def __init__(
        self,
        owner: str,
        repo: str,
        ref: str = "main",
        client: httpx.AsyncClient | None = None,
    ):
        """
        Args:
            owner: Repository owner
            repo: Repository name
            ref: Branch, tag or commit to read
            client: Optional preconfigured client (tests use a mock transport)
        """
        settings = get_settings()
        self.owner = owner
        self.repo = repo
        self.ref = ref
        self.api_base = settings.github_api_base.rstrip("/")
        self.raw_base = settings.github_raw_base.rstrip("/")
        self._client = client

    def _get_headers(self) -> dict:
        """Get HTTP headers for GitHub API."""
        settings = get_settings()
        headers = {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": "DocMCP/0.1.0",
        }
        if settings.github_token:
            headers["Authorization"] = f"token {settings.github_token}"
        return headers

    async def list_files(self, base: str, pattern: str = "**/*") -> list[FetchedFile]:
        """Fetch supported files under ``base`` (the docs path) at ``ref``."""
        try:
            if self._client is not None:
                return await self._list_files(self._client, base, pattern)
            async with httpx.AsyncClient(timeout=30.0) as client:
                return await self._list_files(client, base, pattern)
        except httpx.HTTPError as e:
            raise TransientFetchError(
                f"GitHub request failed for {self.owner}/{self.repo}@{self.ref}: {e}"
            ) from e

    async def _list_files(
        self, client: httpx.AsyncClient, base: str, pattern: str
    ) -> list[FetchedFile]:
        tree = await self._get_tree(client)
        base = base.strip("/")
        base_prefix = f"{base}/" if base else ""

        if base and not any(
            entry["path"] == base and entry["type"] == "tree" for entry in tree
        ):
            raise InvalidSourceError(
                f"Docs path '{base}' not found in {self.owner}/{self.repo}@{self.ref}"
            )

        files = []
        for entry in tree:
            if entry.get("type") != "blob" or not entry["path"].startswith(base_prefix):
                continue
            relative_path = entry["path"][len(base_prefix):]
            if not matches_pattern(relative_path, pattern) or not is_supported(relative_path):
                continue

            content = await self._get_raw(client, entry["path"])
            files.append(
                FetchedFile(
                    path=relative_path,
                    content=content,
                    size=entry.get("size", len(content.encode())),
                )
            )

        logger.info(
            "github_tree_fetched",
            repo=f"{self.owner}/{self.repo}",
            ref=self.ref,
            base=base,
            files=len(files),
        )
        return files

    async def _get_tree(self, client: httpx.AsyncClient) -> list[dict]:
        url = f"{self.api_base}/repos/{self.owner}/{self.repo}/git/trees/{self.ref}"
        response = await client.get(url, headers=self._get_headers(), params={"recursive": "1"})

        if response.status_code == 404:
            raise InvalidSourceError(f"Repository or ref not found: {self.owner}/{self.repo}@{self.ref}")
        if response.status_code == 403:
            raise TransientFetchError(
                "GitHub API rate limit exceeded. Set DOCMCP_GITHUB_TOKEN."
            )
        response.raise_for_status()

        data = response.json()
        if data.get("truncated"):
            logger.warning("github_tree_truncated", repo=f"{self.owner}/{self.repo}", ref=self.ref)
        return data.get("tree", [])

    async def _get_raw(self, client: httpx.AsyncClient, path: str) -> str:
        url = f"{self.raw_base}/{self.owner}/{self.repo}/{self.ref}/{path}"
        response = await client.get(url, headers=self._get_headers())
        response.raise_for_status()
        return response.text
