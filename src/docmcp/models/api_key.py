"""API key models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from docmcp.utils import as_utc, utcnow


class ApiKeyStatus(str, Enum):
    ACTIVE = "ACTIVE"
    REVOKED = "REVOKED"
    EXPIRED = "EXPIRED"


class ApiKey(BaseModel):
    """A stored API credential. The raw key itself is never kept."""

    id: str
    name: str
    key_hash: str
    key_prefix: str
    status: ApiKeyStatus = ApiKeyStatus.ACTIVE
    rate_limit: int = 1000  # requests per hour
    expires_at: datetime | None = None
    last_used_at: datetime | None = None
    created_by: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def is_valid(self, now: datetime | None = None) -> bool:
        """ACTIVE and not past its expiry."""
        if self.status != ApiKeyStatus.ACTIVE:
            return False
        if self.expires_at is None:
            return True
        return (now or utcnow()) < as_utc(self.expires_at)


class GeneratedApiKey(BaseModel):
    """Returned once at creation time; the only place the raw key appears."""

    raw_key: str
    api_key: ApiKey
