"""
Shared dataclasses used across the schedule and cue pipelines.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from guide_engine.utils.timestamps import epoch_millis


@dataclass(slots=True, frozen=True)
class Program:
    """Single broadcast on a channel, half-open interval [start, end)."""
    id: str
    channel_id: str
    title: str
    description: str
    start: datetime
    end: datetime
    category: str | None = None

    @classmethod
    def create(
        cls,
        channel_id: str,
        start: datetime,
        end: datetime,
        title: str = "Unknown",
        description: str = "",
        category: str | None = None,
    ) -> Program:
        """Build a program whose id is derived from its channel and start."""
        return cls(
            id=make_program_id(channel_id, start),
            channel_id=channel_id,
            title=title,
            description=description,
            start=start,
            end=end,
            category=category,
        )


@dataclass(slots=True, frozen=True)
class Channel:
    """Channel with its programs sorted ascending by start."""
    id: str
    name: str
    programs: tuple[Program, ...] = ()


@dataclass(slots=True, frozen=True)
class CacheEntry:
    channel: Channel
    fetched_at: datetime


@dataclass(slots=True, frozen=True)
class Cue:
    """Subtitle cue, times in seconds from the start of playback."""
    start: float
    end: float
    text: str


@dataclass(slots=True, frozen=True)
class SubtitleTrack:
    """Descriptor of a selectable subtitle track."""
    id: str
    url: str
    format: str
    language: str = ""
    label: str = ""


def make_program_id(channel_id: str, start: datetime) -> str:
    return f"{channel_id}-{epoch_millis(start)}"


__all__ = ["Program", "Channel", "CacheEntry", "Cue", "SubtitleTrack", "make_program_id"]
