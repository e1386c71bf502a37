"""Sync history models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class SyncStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (SyncStatus.SUCCESS, SyncStatus.FAILED)


class SyncHistory(BaseModel):
    """One record per synchronization attempt for a version."""

    id: str
    version_id: str
    status: SyncStatus
    started_at: datetime
    finished_at: datetime | None = None
    documents_processed: int = 0
    chunks_created: int = 0
    error_message: str | None = None
    metadata: dict = Field(default_factory=dict)


class SyncStats(BaseModel):
    """Counters accumulated while a sync runs."""

    files_seen: int = 0
    documents_processed: int = 0
    documents_skipped: int = 0
    documents_failed: int = 0
    chunks_created: int = 0
    errors: list[str] = Field(default_factory=list)
