"""Library, version and document read routes."""

from fastapi import APIRouter, Depends, Query

from docmcp.api.auth import require_api_key
from docmcp.api.schemas import (
    CodeExampleSchema,
    DocumentDetailSchema,
    DocumentListSchema,
    DocumentSummarySchema,
    LibraryListSchema,
    LibrarySchema,
    LibraryVersionListSchema,
    LibraryVersionSchema,
)
from docmcp.api.service import Services, get_services

router = APIRouter(prefix="/api/libraries", tags=["libraries"], dependencies=[Depends(require_api_key)])


@router.get("", response_model=LibraryListSchema)
async def list_libraries(
    category: str | None = Query(default=None),
    services: Services = Depends(get_services),
):
    """All libraries by name, optionally in one category."""
    libraries = await services.catalog.list_libraries(category)
    return LibraryListSchema(
        items=[
            LibrarySchema(
                id=library.id,
                name=library.name,
                display_name=library.display_name,
                description=library.description,
                source_type=library.source_type.value,
                source_url=library.source_url,
                category=library.category,
                tags=library.tags,
            )
            for library in libraries
        ]
    )


@router.get("/{library}/versions", response_model=LibraryVersionListSchema)
async def list_library_versions(
    library: str,
    services: Services = Depends(get_services),
):
    """Versions of a library (by id or name)."""
    found = await services.catalog.get_library(library)
    versions = await services.catalog.list_versions(found.id)
    return LibraryVersionListSchema(
        library_id=found.id,
        items=[
            LibraryVersionSchema(
                id=v.id,
                version=v.version,
                is_latest=v.is_latest,
                is_lts=v.is_lts,
                status=v.status.value,
                docs_path=v.docs_path,
                release_date=v.release_date,
            )
            for v in versions
        ],
    )


@router.get("/{library}/documents", response_model=DocumentListSchema)
async def list_documents(
    library: str,
    version: str | None = Query(default=None, description="Version string; latest when omitted"),
    services: Services = Depends(get_services),
):
    """Documents of a library version, ordered by path."""
    resolved = await services.catalog.resolve_version(library, version)
    documents = await services.catalog.list_documents(resolved.library_id, resolved.version)
    return DocumentListSchema(
        library_id=resolved.library_id,
        version_id=resolved.id,
        version=resolved.version,
        items=[
            DocumentSummarySchema(
                id=doc.id,
                title=doc.title,
                path=doc.path,
                doc_type=doc.doc_type,
                updated_at=doc.updated_at,
            )
            for doc in documents
        ],
    )


@router.get("/{library}/documents/{path:path}", response_model=DocumentDetailSchema)
async def get_document(
    library: str,
    path: str,
    version: str | None = Query(default=None, description="Version string; latest when omitted"),
    services: Services = Depends(get_services),
):
    """One document by path, with the code examples extracted from it."""
    document, examples = await services.catalog.get_document(library, version, path)
    return DocumentDetailSchema(
        id=document.id,
        version_id=document.version_id,
        title=document.title,
        path=document.path,
        doc_type=document.doc_type,
        content=document.content,
        updated_at=document.updated_at,
        code_examples=[
            CodeExampleSchema(
                language=e.language,
                code=e.code,
                description=e.description,
                start_line=e.start_line,
                end_line=e.end_line,
            )
            for e in examples
        ],
    )
