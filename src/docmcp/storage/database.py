"""Database setup with SQLAlchemy async support (SQLite for local, Postgres for prod)."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    text,
)
from sqlalchemy import JSON as SA_JSON
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, relationship
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB

from docmcp.config import get_settings
from docmcp.utils import utcnow


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


def _json_type():
    """Use JSONB on Postgres, plain JSON everywhere else."""
    return SA_JSON().with_variant(PG_JSONB, "postgresql")


class LibraryORM(Base):
    """Libraries table - named documentation sources."""

    __tablename__ = "libraries"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False, unique=True)
    display_name = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    source_type = Column(String, nullable=False, default="MANUAL")  # GITHUB | LOCAL | MANUAL
    source_url = Column(String, nullable=True)
    category = Column(String, nullable=True)
    tags = Column(_json_type(), default=list)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    versions = relationship(
        "LibraryVersionORM",
        back_populates="library",
        cascade="all, delete-orphan",
    )


class LibraryVersionORM(Base):
    """Library versions table."""

    __tablename__ = "library_versions"

    id = Column(String, primary_key=True)
    library_id = Column(String, ForeignKey("libraries.id", ondelete="CASCADE"), nullable=False)
    version = Column(String, nullable=False)
    is_latest = Column(Boolean, default=False, nullable=False)
    is_lts = Column(Boolean, default=False, nullable=False)
    status = Column(String, default="ACTIVE", nullable=False)  # ACTIVE | DEPRECATED | EOL
    docs_path = Column(String, nullable=True)
    release_date = Column(Date, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    library = relationship("LibraryORM", back_populates="versions")

    __table_args__ = (
        UniqueConstraint("library_id", "version", name="uq_library_versions_library_version"),
        Index("idx_library_versions_library", "library_id"),
    )


class DocumentORM(Base):
    """Documents table - one row per synced source file."""

    __tablename__ = "documents"

    id = Column(String, primary_key=True)
    version_id = Column(String, ForeignKey("library_versions.id", ondelete="CASCADE"), nullable=False)
    title = Column(String, nullable=False)
    path = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    content_hash = Column(String, nullable=False)
    doc_type = Column(String, nullable=True)

    # Named doc_metadata to avoid clashing with SQLAlchemy's "metadata"
    doc_metadata = Column(_json_type(), default=dict)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    chunks = relationship("DocumentChunkORM", back_populates="document", cascade="all, delete-orphan")
    code_examples = relationship(
        "CodeExampleORM", back_populates="document", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("version_id", "path", name="uq_documents_version_path"),
        Index("idx_documents_version", "version_id"),
        Index("idx_documents_hash", "content_hash"),
    )


class DocumentChunkORM(Base):
    """Document chunks table - embedded, searchable units."""

    __tablename__ = "document_chunks"

    id = Column(String, primary_key=True)  # "{document_id}-{chunk_index}"
    document_id = Column(String, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    # Denormalized so vector queries can filter on version without a join
    version_id = Column(String, nullable=False)
    chunk_index = Column(Integer, nullable=False)
    content = Column(Text, nullable=False)

    # float32 bytes of exactly embedding_dimension floats, or NULL
    embedding = Column(LargeBinary, nullable=True)
    token_count = Column(Integer, default=0, nullable=False)
    chunk_metadata = Column(_json_type(), default=dict)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    document = relationship("DocumentORM", back_populates="chunks")

    __table_args__ = (
        UniqueConstraint("document_id", "chunk_index", name="uq_document_chunks_doc_index"),
        Index("idx_document_chunks_document", "document_id"),
        Index("idx_document_chunks_version", "version_id"),
    )


class CodeExampleORM(Base):
    """Code examples table - code blocks extracted from documents."""

    __tablename__ = "code_examples"

    id = Column(String, primary_key=True)  # "{document_id}-code-{index}"
    document_id = Column(String, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    version_id = Column(String, nullable=False)
    language = Column(String(50), nullable=True)
    code = Column(Text, nullable=False)
    description = Column(String(1000), nullable=True)
    start_line = Column(Integer, nullable=True)
    end_line = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    document = relationship("DocumentORM", back_populates="code_examples")

    __table_args__ = (
        Index("idx_code_examples_document", "document_id"),
        Index("idx_code_examples_version_language", "version_id", "language"),
    )


class SyncHistoryORM(Base):
    """Sync history table - durable audit trail of sync attempts."""

    __tablename__ = "sync_history"

    id = Column(String, primary_key=True)
    version_id = Column(String, ForeignKey("library_versions.id", ondelete="CASCADE"), nullable=False)
    status = Column(String, nullable=False)  # PENDING | RUNNING | SUCCESS | FAILED
    started_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    finished_at = Column(DateTime(timezone=True), nullable=True)
    documents_processed = Column(Integer, default=0, nullable=False)
    chunks_created = Column(Integer, default=0, nullable=False)
    error_message = Column(Text, nullable=True)
    sync_metadata = Column(_json_type(), default=dict)

    __table_args__ = (
        Index("idx_sync_history_version", "version_id"),
        # In-flight marker: at most one RUNNING row per version
        Index(
            "uq_sync_history_running",
            "version_id",
            unique=True,
            sqlite_where=text("status = 'RUNNING'"),
            postgresql_where=text("status = 'RUNNING'"),
        ),
    )


class ApiKeyORM(Base):
    """API keys table. Stores only the hash and the lookup prefix."""

    __tablename__ = "api_keys"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False, unique=True)
    key_hash = Column(String, nullable=False)
    key_prefix = Column(String(12), nullable=False)
    status = Column(String, default="ACTIVE", nullable=False)  # ACTIVE | REVOKED | EXPIRED
    rate_limit = Column(Integer, default=1000, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    last_used_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_api_keys_prefix", "key_prefix", unique=True),
    )


_async_engine: Optional[AsyncEngine] = None
_async_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def create_engine_for_url(db_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine with pooling options suited to the backend."""
    engine_kwargs = {
        "echo": echo,
    }

    # Pooling options should NOT be forced on SQLite.
    if not _is_sqlite(db_url):
        engine_kwargs.update(
            {
                "pool_pre_ping": True,
                "pool_size": 5,
                "max_overflow": 5,
            }
        )

    return create_async_engine(db_url, **engine_kwargs)


async def get_async_engine() -> AsyncEngine:
    """Get or create the async database engine."""
    global _async_engine
    if _async_engine is None:
        settings = get_settings()
        _async_engine = create_engine_for_url(settings.database_url, echo=settings.debug)
    return _async_engine


async def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the shared session factory."""
    global _async_session_factory
    if _async_session_factory is None:
        engine = await get_async_engine()
        _async_session_factory = async_sessionmaker(engine, expire_on_commit=False)
    return _async_session_factory


async def init_database(engine: AsyncEngine | None = None):
    """Create tables if they don't exist."""
    engine = engine or await get_async_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_database():
    """Close pooled connections and forget the shared engine."""
    global _async_engine, _async_session_factory
    if _async_engine is not None:
        await _async_engine.dispose()
    _async_engine = None
    _async_session_factory = None


def init_database_sync():
    """
    Synchronously initialize DB (for CLI scripts / one-off seeding).
    Converts async DB URLs to sync driver equivalents.
    """
    settings = get_settings()
    url = make_url(settings.database_url)

    if url.drivername.endswith("+aiosqlite"):
        url = url.set(drivername="sqlite")
    elif url.drivername.endswith("+asyncpg"):
        url = url.set(drivername="postgresql+psycopg")

    engine = create_engine(url, echo=settings.debug, pool_pre_ping=True)
    Base.metadata.create_all(engine)
    return engine
