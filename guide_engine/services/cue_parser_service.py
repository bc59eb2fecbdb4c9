"""
Cue Parser Service

Line scanners for subtitle tracks. Each scanner consumes one block at a time
and resumes on the line after it, so a corrupt cue is dropped on its own
without shifting the cues that follow.
"""
from typing import Callable, Iterator, Optional
import logging

from guide_engine.errors import MalformedTimestamp, UnsupportedFormat
from guide_engine.services.guide_types import Cue
from guide_engine.utils.timestamps import parse_media_time

logger = logging.getLogger(__name__)

ARROW = '-->'

CueParser = Callable[[str], list[Cue]]


def parse_srt(text: str) -> list[Cue]:
    """
    Parse a sequential-block (SubRip) track

    Blocks are separated by blank lines and need an index line, a time range
    line with comma decimal marks and at least one text line.

    Returns:
        Cues sorted by start time
    """
    cues = []
    skipped = 0

    for block in _iter_blank_separated(_split_lines(text)):
        cue = _parse_srt_block(block)
        if cue is None:
            skipped += 1
        else:
            cues.append(cue)

    logger.debug(f"SRT parsing complete: {len(cues)} cues, {skipped} blocks skipped")
    return _sorted(cues)


def _parse_srt_block(lines: list[str]) -> Optional[Cue]:
    if len(lines) < 3:
        return None

    times = _parse_time_range(lines[1], decimal_marks=',')
    if times is None:
        return None

    return _make_cue(times, lines[2:])


def parse_vtt(text: str) -> list[Cue]:
    """
    Parse a cue-marker (WebVTT) track

    Anything before the first marker line is header. Each marker line is
    followed by text lines up to the next blank line. Cue settings after the
    end time are ignored.

    Returns:
        Cues sorted by start time
    """
    lines = _split_lines(text)
    cues = []
    skipped = 0

    index = 0
    while index < len(lines) and ARROW not in lines[index]:
        index += 1

    while index < len(lines):
        marker = lines[index]
        index += 1
        if ARROW not in marker:
            continue

        text_lines = []
        while index < len(lines) and lines[index].strip() and ARROW not in lines[index]:
            text_lines.append(lines[index])
            index += 1

        times = _parse_time_range(marker, decimal_marks='.')
        cue = _make_cue(times, text_lines) if times is not None else None
        if cue is None:
            skipped += 1
        else:
            cues.append(cue)

    logger.debug(f"VTT parsing complete: {len(cues)} cues, {skipped} blocks skipped")
    return _sorted(cues)


_PARSERS: dict[str, CueParser] = {
    'srt': parse_srt,
    'vtt': parse_vtt,
    'webvtt': parse_vtt,
}


def get_cue_parser(track_format: str) -> CueParser:
    """
    Look up the parser for a track format

    Raises:
        UnsupportedFormat: If no parser handles the format
    """
    try:
        return _PARSERS[track_format.strip().lower()]
    except KeyError:
        raise UnsupportedFormat(f"Unsupported subtitle format: '{track_format}'") from None


def parse_cues(text: str, track_format: str) -> list[Cue]:
    """Parse a track, yielding an empty list for unsupported formats"""
    try:
        parser = get_cue_parser(track_format)
    except UnsupportedFormat as e:
        logger.warning(str(e))
        return []
    return parser(text)


def _split_lines(text: str) -> list[str]:
    return text.lstrip('\ufeff').replace('\r\n', '\n').replace('\r', '\n').split('\n')


def _iter_blank_separated(lines: list[str]) -> Iterator[list[str]]:
    block: list[str] = []
    for line in lines:
        if line.strip():
            block.append(line)
        elif block:
            yield block
            block = []
    if block:
        yield block


def _parse_time_range(line: str, decimal_marks: str) -> Optional[tuple[float, float]]:
    """Parse 'start --> end [settings]' into seconds, None when malformed"""
    left, arrow, right = line.partition(ARROW)
    end_tokens = right.split()
    if not arrow or not end_tokens:
        return None

    try:
        return (
            parse_media_time(left.strip(), decimal_marks),
            parse_media_time(end_tokens[0], decimal_marks),
        )
    except MalformedTimestamp as e:
        logger.debug(f"Skipping cue: {e}")
        return None


def _make_cue(times: tuple[float, float], text_lines: list[str]) -> Optional[Cue]:
    start, end = times
    if not text_lines or start >= end:
        return None
    return Cue(start=start, end=end, text='\n'.join(text_lines))


def _sorted(cues: list[Cue]) -> list[Cue]:
    return sorted(cues, key=lambda cue: cue.start)
