"""Cron-driven sync of every GitHub-sourced library version."""

from dataclasses import asdict, dataclass
from typing import Callable

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docmcp.config import Settings, get_settings
from docmcp.ingestion.sources import DEFAULT_DOCS_PATH, GitHubSource, parse_github_url
from docmcp.ingestion.synchronizer import Synchronizer
from docmcp.models.library import SourceType
from docmcp.models.sync import SyncStatus
from docmcp.storage.repositories import LibraryRepository, LibraryVersionRepository

logger = structlog.get_logger()

JOB_ID = "scheduled_library_sync"


@dataclass
class ScheduledRunReport:
    """Counts from one scheduled pass."""

    enabled: bool = True
    libraries_seen: int = 0
    libraries_skipped: int = 0
    versions_synced: int = 0
    versions_failed: int = 0
    versions_skipped: int = 0


class SyncScheduler:
    """
    Runs the synchronizer for all GitHub libraries on a cron schedule.

    Libraries and versions are processed one at a time. A failing version
    is logged and the pass moves on; nothing a single pass does can stop
    later passes.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        synchronizer: Synchronizer,
        settings_provider: Callable[[], Settings] = get_settings,
    ):
        self.session_factory = session_factory
        self.synchronizer = synchronizer
        self.settings_provider = settings_provider
        self.scheduler: AsyncIOScheduler | None = None

    def start(self) -> None:
        """Register the cron job and start the scheduler on the running loop."""
        if self.scheduler is not None:
            return
        cron = self.settings_provider().sync_cron
        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            self.run_once,
            CronTrigger.from_crontab(cron),
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info("sync_scheduler_started", cron=cron)

    def shutdown(self) -> None:
        if self.scheduler is not None:
            self.scheduler.shutdown(wait=False)
            self.scheduler = None
            logger.info("sync_scheduler_stopped")

    async def run_once(self) -> ScheduledRunReport:
        """
        One scheduled pass over all libraries.

        The feature flag is read at the start of every pass. When it is off
        the pass returns immediately without touching the database.
        """
        if not self.settings_provider().sync_scheduling_enabled:
            logger.debug("scheduled_sync_disabled")
            return ScheduledRunReport(enabled=False)

        report = ScheduledRunReport()
        logger.info("scheduled_sync_started")
        try:
            async with self.session_factory() as session:
                libraries = await LibraryRepository(session).get_all()

            for library in libraries:
                report.libraries_seen += 1

                if library.source_type != SourceType.GITHUB:
                    report.libraries_skipped += 1
                    continue
                if not library.source_url or not library.source_url.strip():
                    report.libraries_skipped += 1
                    logger.warning("scheduled_sync_missing_source_url", library=library.name)
                    continue

                parsed = parse_github_url(library.source_url)
                if parsed is None:
                    report.libraries_skipped += 1
                    logger.warning(
                        "scheduled_sync_invalid_github_url",
                        library=library.name,
                        url=library.source_url,
                    )
                    continue
                owner, repo = parsed

                async with self.session_factory() as session:
                    versions = await LibraryVersionRepository(session).get_by_library(library.id)

                for version in versions:
                    source = GitHubSource(
                        owner=owner,
                        repo=repo,
                        docs_path=version.docs_path or DEFAULT_DOCS_PATH,
                        ref=version.version,
                    )
                    try:
                        history = await self.synchronizer.sync(version.id, source)
                    except Exception as e:
                        report.versions_failed += 1
                        logger.error(
                            "scheduled_sync_version_failed",
                            library=library.name,
                            version=version.version,
                            error=str(e),
                        )
                        continue

                    if history is None:
                        report.versions_skipped += 1
                    elif history.status == SyncStatus.SUCCESS:
                        report.versions_synced += 1
                    else:
                        report.versions_failed += 1
                        logger.warning(
                            "scheduled_sync_version_unsuccessful",
                            library=library.name,
                            version=version.version,
                            error=history.error_message,
                        )
        except Exception as e:
            logger.exception("scheduled_sync_aborted", error=str(e))

        logger.info("scheduled_sync_complete", **asdict(report))
        return report
