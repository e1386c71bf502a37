"""Domain error types.

Every error raised by the sync, search and auth paths derives from
:class:`DocMCPError`, so callers at the edges (API, CLI, scheduler) can
map them to responses or log lines in one place.
"""


class DocMCPError(Exception):
    """Base class for all DocMCP errors."""


class NotFoundError(DocMCPError):
    """A library, version or document does not exist."""

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")


class InvalidSourceError(DocMCPError):
    """A source location (URL or path) cannot be used."""


class TransientFetchError(DocMCPError):
    """A network failure or timeout while fetching a source tree."""


class EmbeddingError(DocMCPError):
    """The embedding service failed or returned an unusable vector."""


class AuthenticationError(DocMCPError):
    """Generic authentication failure.

    The message is always the same so the caller learns nothing about
    whether the key was unknown, revoked, expired or wrong.
    """

    def __init__(self):
        super().__init__("Invalid API key")


class RateLimitExceededError(DocMCPError):
    """The key has used up its hourly request budget."""

    def __init__(self, key_prefix: str, retry_after: int):
        self.key_prefix = key_prefix
        self.retry_after = retry_after
        super().__init__(f"Rate limit exceeded for key {key_prefix}, retry after {retry_after}s")


class SyncAlreadyRunningError(DocMCPError):
    """Another sync for the same version is in flight."""

    def __init__(self, version_id: str):
        self.version_id = version_id
        super().__init__(f"Sync already running for version: {version_id}")


class InvalidSearchRequestError(DocMCPError):
    """A search parameter is out of range."""


class FilterExpressionError(DocMCPError):
    """A metadata filter expression cannot be compiled."""
