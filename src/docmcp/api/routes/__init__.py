"""Routes package."""

from docmcp.api.routes.health import router as health_router
from docmcp.api.routes.libraries import router as libraries_router
from docmcp.api.routes.search import router as search_router
from docmcp.api.routes.sync import router as sync_router

__all__ = [
    "health_router",
    "libraries_router",
    "search_router",
    "sync_router",
]
