"""
Schedule Query Service

Read-only queries over a channel's sorted program sequence. All intervals
are half-open: a program covers [start, end).
"""
from datetime import datetime
from itertools import islice

from guide_engine.services.guide_types import Channel, Program
from guide_engine.utils.timestamps import ensure_utc


def current_program(channel: Channel, now: datetime) -> Program | None:
    """
    Get the program airing at an instant

    When overlapping programs both cover the instant, the earliest-starting
    one wins since programs are sorted by start.

    Args:
        channel: Channel with sorted programs
        now: Instant to look up

    Returns:
        The airing program or None when the instant falls in a gap
    """
    now = ensure_utc(now)
    for program in channel.programs:
        if program.start > now:
            break
        if now < program.end:
            return program
    return None


def next_programs(channel: Channel, now: datetime, count: int) -> list[Program]:
    """
    Get up to count programs starting strictly after an instant

    Args:
        channel: Channel with sorted programs
        now: Reference instant
        count: Maximum number of programs

    Returns:
        Programs in ascending start order
    """
    if count <= 0:
        return []

    now = ensure_utc(now)
    upcoming = (program for program in channel.programs if program.start > now)
    return list(islice(upcoming, count))


def programs_in_range(channel: Channel, start: datetime, end: datetime) -> list[Program]:
    """Get every program intersecting [start, end), in sorted order"""
    start = ensure_utc(start)
    end = ensure_utc(end)

    matches = []
    for program in channel.programs:
        if program.start >= end:
            break
        if program.end > start:
            matches.append(program)
    return matches
