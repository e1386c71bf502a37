"""Read-only lookups over libraries, versions, documents and code examples."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docmcp.errors import NotFoundError
from docmcp.models.document import CodeExample, Document
from docmcp.models.library import Library, LibraryVersion
from docmcp.storage.repositories import (
    CodeExampleRepository,
    DocumentRepository,
    LibraryRepository,
    LibraryVersionRepository,
)


class LibraryCatalog:
    """
    Resolves library references and serves document reads.

    A library reference is its id or its unique name. A version reference is
    a version string within the library; None means the version flagged
    latest.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def list_libraries(self, category: str | None = None) -> list[Library]:
        async with self.session_factory() as session:
            return await LibraryRepository(session).get_all(category)

    async def get_library(self, library: str) -> Library:
        """
        Raises:
            NotFoundError: No library with that id or name
        """
        async with self.session_factory() as session:
            repo = LibraryRepository(session)
            found = await repo.get(library) or await repo.get_by_name(library)
        if found is None:
            raise NotFoundError("Library", library)
        return found

    async def list_versions(self, library: str) -> list[LibraryVersion]:
        found = await self.get_library(library)
        async with self.session_factory() as session:
            return await LibraryVersionRepository(session).get_by_library(found.id)

    async def resolve_version(self, library: str, version: str | None = None) -> LibraryVersion:
        """
        Resolve a library plus optional version string.

        Raises:
            NotFoundError: Unknown library, unknown version, or no latest version
        """
        found = await self.get_library(library)
        async with self.session_factory() as session:
            versions = LibraryVersionRepository(session)
            if version:
                resolved = await versions.get_by_library_and_version(found.id, version)
                if resolved is None:
                    raise NotFoundError("Version", f"{found.name}@{version}")
            else:
                resolved = await versions.get_latest(found.id)
                if resolved is None:
                    raise NotFoundError("Version", f"{found.name}@latest")
        return resolved

    async def list_documents(self, library: str, version: str | None = None) -> list[Document]:
        """Documents of a library version, ordered by path."""
        resolved = await self.resolve_version(library, version)
        async with self.session_factory() as session:
            return await DocumentRepository(session).list_by_version(resolved.id)

    async def get_document(
        self, library: str, version: str | None, path: str
    ) -> tuple[Document, list[CodeExample]]:
        """
        Fetch one document by path, with its code examples.

        Raises:
            NotFoundError: Unknown library, version, or path
        """
        resolved = await self.resolve_version(library, version)
        async with self.session_factory() as session:
            document = await DocumentRepository(session).get_by_version_and_path(resolved.id, path)
            if document is None:
                raise NotFoundError("Document", f"{resolved.id}:{path}")
            examples = await CodeExampleRepository(session).get_by_document(document.id)
        return document, examples
