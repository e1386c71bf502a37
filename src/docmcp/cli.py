"""Command-line interface for DocMCP."""

import argparse
import asyncio
import sys
from datetime import timedelta

import structlog
import uvicorn

from docmcp.config import get_settings
from docmcp.errors import DocMCPError
from docmcp.ingestion.sources import GitHubSource, LocalSource
from docmcp.models.search import SEARCH_MODES
from docmcp.observability import configure_logging
from docmcp.security.api_keys import ApiKeyService
from docmcp.storage import dispose_database, get_session_factory, init_database, init_database_sync
from docmcp.utils import utcnow

logger = structlog.get_logger()


def cmd_serve(args):
    """Start the API server."""
    settings = get_settings()
    host = args.host or settings.host
    port = args.port or settings.port

    logger.info("starting_server", host=host, port=port)

    uvicorn.run(
        "docmcp.api.app:app",
        host=host,
        port=port,
        reload=args.reload,
    )


def cmd_init_db(args):
    """Create database tables."""
    init_database_sync()
    logger.info("database_initialized", url=get_settings().database_url)


async def _sync(args) -> int:
    from docmcp.api.service import build_services

    services = await build_services()
    try:
        if args.local:
            source = LocalSource(path=args.local, pattern=args.pattern)
            history = await services.synchronizer.sync(args.version_id, source)
        elif args.github:
            owner, _, repo = args.github.partition("/")
            if not owner or not repo:
                logger.error("invalid_github_repo", value=args.github, hint="Use OWNER/REPO")
                return 1
            source = GitHubSource(owner=owner, repo=repo, docs_path=args.path, ref=args.ref)
            history = await services.synchronizer.sync(args.version_id, source)
        else:
            history = await services.synchronizer.sync_version(args.version_id)
    finally:
        await dispose_database()

    if history is None:
        logger.info("sync_skipped", version_id=args.version_id, reason="no resolvable source")
        return 0

    logger.info(
        "sync_finished",
        version_id=history.version_id,
        status=history.status.value,
        documents=history.documents_processed,
        chunks=history.chunks_created,
        error=history.error_message,
    )
    return 0 if history.status.value == "SUCCESS" else 1


def cmd_sync(args):
    """Sync one version from a local path, a GitHub repo, or its library's source."""
    try:
        code = asyncio.run(_sync(args))
    except DocMCPError as e:
        logger.error("sync_error", error=str(e))
        code = 1
    sys.exit(code)


async def _run_scheduled_sync() -> None:
    from docmcp.api.service import build_services

    services = await build_services()
    try:
        report = await services.scheduler.run_once()
    finally:
        await dispose_database()
    print(report)


def cmd_run_scheduled_sync(args):
    """Run one scheduled pass now (still honours the feature flag)."""
    asyncio.run(_run_scheduled_sync())


async def _create_key(args):
    await init_database()
    service = ApiKeyService(await get_session_factory())
    expires_at = utcnow() + timedelta(days=args.expires_in_days) if args.expires_in_days else None
    try:
        return await service.generate_key(
            args.name,
            created_by=args.created_by,
            expires_at=expires_at,
            rate_limit=args.rate_limit,
        )
    finally:
        await dispose_database()


def cmd_create_key(args):
    """Create an API key and print the raw key once."""
    try:
        generated = asyncio.run(_create_key(args))
    except ValueError as e:
        logger.error("create_key_failed", error=str(e))
        sys.exit(1)

    print(f"\n API key created: {generated.api_key.name} (id {generated.api_key.id})")
    print(f" Rate limit: {generated.api_key.rate_limit} requests/hour")
    if generated.api_key.expires_at:
        print(f" Expires: {generated.api_key.expires_at.isoformat()}")
    print(f"\n   {generated.raw_key}\n")
    print(" Store it now; it cannot be shown again.\n")


async def _revoke_key(key_id: str) -> bool:
    await init_database()
    try:
        return await ApiKeyService(await get_session_factory()).revoke_key(key_id)
    finally:
        await dispose_database()


def cmd_revoke_key(args):
    """Revoke an API key by id."""
    if not asyncio.run(_revoke_key(args.key_id)):
        logger.error("api_key_not_found", key_id=args.key_id)
        sys.exit(1)


async def _search(args):
    from docmcp.api.service import build_services

    services = await build_services()
    try:
        version_id = args.version_id
        if version_id is None and args.library:
            version_id = await services.search_engine.resolve_version_id(args.library, args.version)
        return await services.search_engine.search(
            args.query,
            version_id,
            alpha=args.alpha,
            limit=args.limit,
            mode=args.mode,
        )
    finally:
        await dispose_database()


def cmd_search(args):
    """Test search from command line."""
    try:
        results = asyncio.run(_search(args))
    except DocMCPError as e:
        logger.error("search_failed", error=str(e))
        sys.exit(1)

    print(f"\n Query: {args.query} | {len(results)} result(s)\n")
    for i, result in enumerate(results, 1):
        where = f"chunk {result.chunk_index}" if result.kind == "chunk" else "document"
        print(f"{i}. {result.title}  [{where}]")
        print(f"    {result.path}")
        print(
            f"    Score: {result.score:.4f} "
            f"(lexical {result.lexical_score:.4f}, semantic {result.semantic_score:.4f})"
        )
        print(f"   {result.content[:200].strip()}...")
        print()


def main():
    """Main CLI entrypoint."""
    settings = get_settings()
    configure_logging(settings.log_level, json=settings.log_json)

    parser = argparse.ArgumentParser(
        prog="docmcp",
        description="Versioned documentation sync with hybrid search",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument("--host", type=str, help="Host to bind to")
    serve_parser.add_argument("--port", type=int, help="Port to bind to")
    serve_parser.add_argument("--reload", action="store_true", help="Enable auto-reload")
    serve_parser.set_defaults(func=cmd_serve)

    # init-db command
    init_parser = subparsers.add_parser("init-db", help="Create database tables")
    init_parser.set_defaults(func=cmd_init_db)

    # sync command
    sync_parser = subparsers.add_parser("sync", help="Sync one library version")
    sync_parser.add_argument("--version-id", required=True, help="Version to sync")
    source_group = sync_parser.add_mutually_exclusive_group()
    source_group.add_argument("--local", help="Local docs directory")
    source_group.add_argument("--github", help="GitHub repository as OWNER/REPO")
    sync_parser.add_argument("--pattern", default="**/*", help="Glob for --local")
    sync_parser.add_argument("--path", default="docs", help="Docs path inside the repo")
    sync_parser.add_argument("--ref", default="main", help="Branch, tag or commit")
    sync_parser.set_defaults(func=cmd_sync)

    # run-scheduled-sync command
    scheduled_parser = subparsers.add_parser(
        "run-scheduled-sync", help="Run one scheduled sync pass now"
    )
    scheduled_parser.set_defaults(func=cmd_run_scheduled_sync)

    # create-key command
    key_parser = subparsers.add_parser("create-key", help="Create an API key")
    key_parser.add_argument("--name", required=True, help="Unique key name")
    key_parser.add_argument("--created-by", help="Owner of the key")
    key_parser.add_argument("--expires-in-days", type=int, help="Expiry in days")
    key_parser.add_argument("--rate-limit", type=int, help="Requests per hour")
    key_parser.set_defaults(func=cmd_create_key)

    # revoke-key command
    revoke_parser = subparsers.add_parser("revoke-key", help="Revoke an API key")
    revoke_parser.add_argument("key_id", help="API key id")
    revoke_parser.set_defaults(func=cmd_revoke_key)

    # search command
    search_parser = subparsers.add_parser("search", help="Test search from CLI")
    search_parser.add_argument("query", help="Search query")
    search_parser.add_argument("--version-id", help="Version scope")
    search_parser.add_argument("--library", help="Library id or name (latest version unless --version)")
    search_parser.add_argument("--version", help="Version string within --library")
    search_parser.add_argument("--alpha", type=float, help="Lexical weight in [0, 1]")
    search_parser.add_argument(
        "--mode", choices=SEARCH_MODES, help="hybrid (default), fulltext or semantic"
    )
    search_parser.add_argument("--limit", "-k", type=int, default=5, help="Number of results")
    search_parser.set_defaults(func=cmd_search)

    args = parser.parse_args()
    args.func(args)


if __name__ == "__main__":
    main()
