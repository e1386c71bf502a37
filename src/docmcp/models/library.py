"""Data models for libraries and their versions."""

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, Field

from docmcp.utils import utcnow


class SourceType(str, Enum):
    """Where a library's documentation comes from."""

    GITHUB = "GITHUB"
    LOCAL = "LOCAL"
    MANUAL = "MANUAL"


class VersionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    DEPRECATED = "DEPRECATED"
    EOL = "EOL"


class Library(BaseModel):
    """A named source of documentation (e.g., spring-boot, fastapi)."""

    id: str
    name: str
    display_name: str | None = None
    description: str | None = None
    source_type: SourceType = SourceType.MANUAL
    source_url: str | None = None
    category: str | None = None
    tags: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class LibraryVersion(BaseModel):
    """One version of a library."""

    id: str
    library_id: str
    version: str
    is_latest: bool = False
    is_lts: bool = False
    status: VersionStatus = VersionStatus.ACTIVE
    docs_path: str | None = None
    release_date: date | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
