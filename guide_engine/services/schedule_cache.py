"""
Schedule Cache

In-memory channel cache with a retention window. Entries are replaced
wholesale on refresh and evicted lazily when read after they went stale.
"""
from collections.abc import Iterable
from datetime import datetime, timedelta
import logging
import threading

from guide_engine.services.guide_types import CacheEntry, Channel
from guide_engine.utils.timestamps import ensure_utc

logger = logging.getLogger(__name__)

DEFAULT_RETENTION = timedelta(hours=1)


class ScheduleCache:
    """
    Channel cache keyed by channel id.

    A single lock guards mutation of the mapping, so concurrent puts for
    different channels never interfere and readers never observe a partially
    written entry.
    """

    def __init__(self, retention: timedelta = DEFAULT_RETENTION):
        if retention <= timedelta(0):
            raise ValueError("retention must be positive")
        self.retention = retention
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def put(self, channels: Iterable[Channel], now: datetime) -> int:
        """
        Replace the entry of every given channel.

        Args:
            channels: Freshly parsed channels
            now: Fetch instant recorded on the new entries

        Returns:
            Number of entries written
        """
        fetched_at = ensure_utc(now)
        entries = {channel.id: CacheEntry(channel=channel, fetched_at=fetched_at) for channel in channels}

        with self._lock:
            self._entries.update(entries)

        logger.debug("Cached %s channels (fetched at %s)", len(entries), fetched_at.isoformat())
        return len(entries)

    def get(self, channel_id: str, now: datetime) -> Channel | None:
        """Return the cached channel unless its entry is stale; stale entries are evicted."""
        now = ensure_utc(now)
        with self._lock:
            entry = self._entries.get(channel_id)
            if entry is None:
                return None
            if self._is_stale(entry, now):
                self._evict(channel_id, entry)
                return None
            return entry.channel

    def channels(self, now: datetime) -> list[Channel]:
        """Return every live channel, evicting stale entries on the way."""
        now = ensure_utc(now)
        live: list[Channel] = []
        with self._lock:
            for channel_id, entry in list(self._entries.items()):
                if self._is_stale(entry, now):
                    self._evict(channel_id, entry)
                else:
                    live.append(entry.channel)
        return live

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.info("Schedule cache cleared")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _is_stale(self, entry: CacheEntry, now: datetime) -> bool:
        return now - entry.fetched_at > self.retention

    def _evict(self, channel_id: str, entry: CacheEntry) -> None:
        # Caller holds the lock
        del self._entries[channel_id]
        logger.debug("Evicted stale channel %s (fetched at %s)", channel_id, entry.fetched_at.isoformat())
