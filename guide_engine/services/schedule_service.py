"""
Schedule Service

Coordinates fetching, parsing, caching and persistence of guide data, and
answers channel queries against the cache. Failures never reach callers:
a source that cannot be fetched or parsed falls back to its persisted
snapshot, and when that is stale or missing the result is simply empty.
"""
from __future__ import annotations

import asyncio
import hashlib
import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from typing import Callable, Literal, Sequence

from guide_engine.errors import MalformedSource, TransportFailure
from guide_engine.schemas import ScheduleSnapshot
from guide_engine.services.blob_store import BlobStore
from guide_engine.services.guide_types import Channel, Program
from guide_engine.services.schedule_cache import ScheduleCache
from guide_engine.services.schedule_query_service import current_program, next_programs, programs_in_range
from guide_engine.services.xmltv_parser_service import parse_xmltv_async
from guide_engine.utils.http_fetch import FetchDocument, sanitize_url_for_logging
from guide_engine.utils.logging_helpers import (
    log_refresh_end,
    log_refresh_start,
    log_refresh_summary,
    log_source_processing,
)
from guide_engine.utils.timestamps import ensure_utc, utc_now


logger = logging.getLogger(__name__)

RefreshStatus = Literal["fetched", "fallback", "empty", "superseded"]


@dataclass(slots=True)
class RefreshOutcome:
    source_url: str
    status: RefreshStatus
    channels: list[Channel] = field(default_factory=list)


class ScheduleService:
    """Guide data access for one process, built once at startup and injected."""

    def __init__(
        self,
        cache: ScheduleCache,
        fetch_document: FetchDocument,
        blob_store: BlobStore,
        *,
        sources: Sequence[str] = (),
        honor_offset: bool = True,
        default_tz: tzinfo = timezone.utc,
        parse_timeout_seconds: int | None = None,
        snapshot_key_prefix: str = "playcast_epg",
        default_count: int = 5,
        max_concurrency: int = 4,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.cache = cache
        self.blob_store = blob_store
        self.sources = [source for source in sources if source]
        self.default_count = default_count
        self._fetch_document = fetch_document
        self._honor_offset = honor_offset
        self._default_tz = default_tz
        self._parse_timeout = parse_timeout_seconds
        self._snapshot_key_prefix = snapshot_key_prefix
        self._concurrency = max(1, max_concurrency)
        self._clock = clock
        self._tokens = itertools.count(1)
        self._latest_token: dict[str, int] = {}
        self._persist_locks: dict[str, asyncio.Lock] = {}
        self._known_sources: set[str] = set(self.sources)

    # Queries

    def get_channel(self, channel_id: str, now: datetime | None = None) -> Channel | None:
        return self.cache.get(channel_id, self._now(now))

    def list_channels(self, now: datetime | None = None) -> list[Channel]:
        return self.cache.channels(self._now(now))

    def current_program(self, channel_id: str, now: datetime | None = None) -> Program | None:
        now = self._now(now)
        channel = self.cache.get(channel_id, now)
        if channel is None:
            return None
        return current_program(channel, now)

    def next_programs(self, channel_id: str, now: datetime | None = None, count: int | None = None) -> list[Program]:
        now = self._now(now)
        channel = self.cache.get(channel_id, now)
        if channel is None:
            return []
        return next_programs(channel, now, self.default_count if count is None else count)

    def programs_in_range(
        self,
        channel_id: str,
        start: datetime,
        end: datetime,
        *,
        now: datetime | None = None
    ) -> list[Program]:
        channel = self.cache.get(channel_id, self._now(now))
        if channel is None:
            return []
        return programs_in_range(channel, start, end)

    # Refresh

    async def refresh(self, url: str, now: datetime | None = None) -> RefreshOutcome:
        """
        Fetch and parse a guide source, then cache and persist the result.

        A newer refresh of the same URL started while this one was in flight
        supersedes it; the superseded result is dropped on arrival.

        Args:
            url: Guide source URL
            now: Fetch instant to record (defaults to the clock after fetching)

        Returns:
            RefreshOutcome describing where the channels came from
        """
        token = next(self._tokens)
        self._latest_token[url] = token
        self._known_sources.add(url)
        safe_url = sanitize_url_for_logging(url)

        try:
            document = await self._fetch_document(url)
            channels = await parse_xmltv_async(
                document,
                honor_offset=self._honor_offset,
                default_tz=self._default_tz,
                parse_timeout_seconds=self._parse_timeout,
            )
            if not channels:
                raise MalformedSource("Source declares no valid channels")
        except (TransportFailure, MalformedSource) as exc:
            logger.warning("Guide source %s unavailable: %s", safe_url, exc)
            return await self._fallback_or_superseded(url, token, now)
        except Exception as exc:
            logger.error("Unexpected error refreshing %s: %s", safe_url, exc, exc_info=True)
            return await self._fallback_or_superseded(url, token, now)

        if self._is_superseded(url, token):
            logger.info("Discarding superseded refresh result for %s", safe_url)
            return RefreshOutcome(source_url=url, status="superseded")

        fetched_at = self._now(now)
        self.cache.put(channels, fetched_at)
        await self._persist(url, token, channels, fetched_at)

        logger.info("Refreshed %s: %s channels cached", safe_url, len(channels))
        return RefreshOutcome(source_url=url, status="fetched", channels=channels)

    async def refresh_all(self, now: datetime | None = None) -> list[RefreshOutcome]:
        """Refresh every configured source with bounded concurrency."""
        if not self.sources:
            logger.warning("No guide sources configured - skipping refresh cycle")
            return []

        log_refresh_start(logger)
        semaphore = asyncio.Semaphore(self._concurrency)
        total = len(self.sources)

        async def run(index: int, url: str) -> RefreshOutcome:
            async with semaphore:
                log_source_processing(logger, index, total, sanitize_url_for_logging(url))
                return await self.refresh(url, now)

        outcomes = await asyncio.gather(
            *(run(index, url) for index, url in enumerate(self.sources, start=1))
        )

        log_refresh_summary(
            logger,
            len(outcomes),
            sum(1 for outcome in outcomes if outcome.status == "fallback"),
            len(self.cache),
        )
        log_refresh_end(logger)
        return list(outcomes)

    async def restore(self, now: datetime | None = None) -> int:
        """
        Seed the cache from persisted snapshots of the configured sources.

        Returns:
            Number of channels restored
        """
        restored = 0
        for url in self.sources:
            outcome = await self._fallback(url, now)
            restored += len(outcome.channels)
        logger.info("Restored %s channels from persisted snapshots", restored)
        return restored

    async def clear(self) -> None:
        """Drop cached channels and every persisted snapshot this service knows."""
        self.cache.clear()
        for url in sorted(self._known_sources):
            key = self.snapshot_key(url)
            try:
                await self.blob_store.remove(key)
            except Exception as exc:
                logger.error("Failed to remove snapshot %s: %s", key, exc, exc_info=True)

    def snapshot_key(self, url: str) -> str:
        digest = hashlib.sha1(url.encode("utf-8")).hexdigest()[:16]
        return f"{self._snapshot_key_prefix}:{digest}"

    # Internals

    def _now(self, now: datetime | None) -> datetime:
        return ensure_utc(now) if now is not None else self._clock()

    def _is_superseded(self, url: str, token: int) -> bool:
        return self._latest_token.get(url) != token

    async def _fallback_or_superseded(self, url: str, token: int, now: datetime | None) -> RefreshOutcome:
        if self._is_superseded(url, token):
            return RefreshOutcome(source_url=url, status="superseded")
        return await self._fallback(url, now, token)

    async def _fallback(self, url: str, now: datetime | None, token: int | None = None) -> RefreshOutcome:
        """
        Serve a source from its persisted snapshot when it is still within retention.

        With a token, the snapshot is dropped if a newer refresh of the URL
        started while the store was being read.
        """
        snapshot = await self._load_snapshot(url)
        if token is not None and self._is_superseded(url, token):
            logger.info("Discarding superseded snapshot fallback for %s", sanitize_url_for_logging(url))
            return RefreshOutcome(source_url=url, status="superseded")

        if snapshot is None:
            return RefreshOutcome(source_url=url, status="empty")

        now = self._now(now)
        fetched_at = snapshot.fetched_at
        if now - fetched_at > self.cache.retention:
            logger.info(
                "Persisted snapshot for %s is stale (fetched at %s)",
                sanitize_url_for_logging(url),
                fetched_at.isoformat(),
            )
            return RefreshOutcome(source_url=url, status="empty")

        channels = snapshot.to_channels()
        # Keep the original fetch instant so the entry ages out on schedule
        self.cache.put(channels, fetched_at)
        logger.info(
            "Serving %s channels for %s from persisted snapshot",
            len(channels),
            sanitize_url_for_logging(url),
        )
        return RefreshOutcome(source_url=url, status="fallback", channels=channels)

    async def _load_snapshot(self, url: str) -> ScheduleSnapshot | None:
        key = self.snapshot_key(url)
        try:
            raw = await self.blob_store.get(key)
        except Exception as exc:
            logger.error("Failed to read snapshot %s: %s", key, exc, exc_info=True)
            return None

        if raw is None:
            return None

        try:
            return ScheduleSnapshot.from_bytes(raw)
        except ValueError as exc:
            logger.warning("Ignoring unreadable snapshot %s: %s", key, exc)
            return None

    async def _persist(self, url: str, token: int, channels: list[Channel], fetched_at: datetime) -> None:
        """Write the snapshot of a URL unless a newer refresh of it has started."""
        key = self.snapshot_key(url)
        # Writes for one URL are serialized so the newest refresh writes last
        async with self._persist_locks.setdefault(url, asyncio.Lock()):
            if self._is_superseded(url, token):
                logger.debug("Skipping snapshot write of superseded refresh for %s", sanitize_url_for_logging(url))
                return
            try:
                await self.blob_store.set(key, ScheduleSnapshot.from_channels(channels, fetched_at).to_bytes())
            except Exception as exc:
                logger.error("Failed to persist snapshot %s: %s", key, exc, exc_info=True)
