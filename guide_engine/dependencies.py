"""
Dependency wiring

Builds the engine once at application start and exposes its services to the
request handlers through FastAPI dependencies. Nothing here is a module-level
singleton: the engine lives on app.state for the lifetime of the app.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta, tzinfo
from zoneinfo import ZoneInfoNotFoundError

from fastapi import HTTPException, Query, Request

from guide_engine.config import CustomSettings
from guide_engine.database import Database
from guide_engine.services.blob_store import BlobStore, create_blob_store
from guide_engine.services.schedule_cache import ScheduleCache
from guide_engine.services.schedule_service import ScheduleService
from guide_engine.services.scheduler_service import GuideRefreshScheduler
from guide_engine.services.subtitle_service import SubtitleSession
from guide_engine.utils.http_fetch import FetchText, make_document_fetcher, make_fetcher
from guide_engine.utils.timestamps import resolve_timezone


logger = logging.getLogger(__name__)


@dataclass
class GuideEngine:
    """Process-wide set of engine services"""
    config: CustomSettings
    schedule_service: ScheduleService
    subtitle_session: SubtitleSession
    database: Database | None = None
    scheduler: GuideRefreshScheduler | None = None

    async def start(self) -> None:
        if self.database is not None:
            await self.database.init()

        # Serve persisted schedules until the first refresh completes
        await self.schedule_service.restore()

        if self.scheduler is not None:
            self.scheduler.start(run_now=self.config.refresh_on_startup and bool(self.schedule_service.sources))

    async def stop(self) -> None:
        if self.scheduler is not None:
            try:
                self.scheduler.shutdown()
            except Exception as e:
                logger.error(f"Error during scheduler shutdown: {e}", exc_info=True)

        if self.database is not None:
            await self.database.close()


def build_engine(
    config: CustomSettings,
    *,
    fetch_text: FetchText | None = None,
    blob_store: BlobStore | None = None,
    enable_scheduler: bool = True
) -> GuideEngine:
    """
    Construct the engine services from configuration.

    Args:
        config: Engine settings
        fetch_text: Fetch collaborator override for guide sources and subtitle
            tracks (defaults to the HTTP fetchers)
        blob_store: Blob store override (defaults to the configured backend)
        enable_scheduler: Whether to run periodic refreshes

    Returns:
        GuideEngine, not yet started
    """
    fetch_options = {
        "timeout": config.fetch_timeout_sec,
        "max_retries": config.fetch_max_retries,
        "backoff_factor": config.fetch_backoff_factor,
    }
    # Guide sources stay bytes so lxml honors their encoding declaration
    fetch_document = fetch_text or make_document_fetcher(**fetch_options)
    if fetch_text is None:
        fetch_text = make_fetcher(**fetch_options)

    database = None
    if blob_store is None:
        if config.blob_store_backend == "database":
            database = Database(config.database_path)
        blob_store = create_blob_store(config, database)

    schedule_service = ScheduleService(
        ScheduleCache(retention=timedelta(seconds=config.schedule_retention_sec)),
        fetch_document,
        blob_store,
        sources=config.guide_sources,
        honor_offset=config.honor_timezone_offset,
        default_tz=resolve_timezone(config.guide_timezone),
        parse_timeout_seconds=config.parse_timeout_sec,
        snapshot_key_prefix=config.snapshot_key_prefix,
        default_count=config.next_programs_default_count,
        max_concurrency=config.refresh_max_concurrency,
    )

    scheduler = None
    if enable_scheduler:
        scheduler = GuideRefreshScheduler(
            schedule_service,
            config.guide_refresh_cron,
            config.guide_refresh_misfire_grace_sec,
        )

    return GuideEngine(
        config=config,
        schedule_service=schedule_service,
        subtitle_session=SubtitleSession(fetch_text),
        database=database,
        scheduler=scheduler,
    )


def get_engine(request: Request) -> GuideEngine:
    return request.app.state.engine


def get_schedule_service(request: Request) -> ScheduleService:
    return get_engine(request).schedule_service


def get_subtitle_session(request: Request) -> SubtitleSession:
    return get_engine(request).subtitle_session


def get_response_timezone(
    tz: str = Query("UTC", alias="timezone", description="Timezone for response timestamps (e.g., 'UTC', 'Europe/London')")
) -> tzinfo:
    """Resolve the requested response timezone"""
    try:
        return resolve_timezone(tz)
    except (ZoneInfoNotFoundError, ValueError):
        raise HTTPException(
            status_code=422,
            detail=f"Invalid timezone: {tz}. Must be a valid IANA timezone (e.g., 'Europe/London') or 'UTC'",
        )
