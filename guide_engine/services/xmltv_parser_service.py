from datetime import timezone, tzinfo
from functools import partial
from typing import Iterator, Optional
import asyncio
import logging

from lxml import etree # type: ignore

from guide_engine.errors import MalformedSource, MalformedTimestamp
from guide_engine.services.guide_types import Channel, Program
from guide_engine.utils.timestamps import parse_broadcast_time

logger = logging.getLogger(__name__)

_BLOCK_TAGS = ('channel', 'programme')


def parse_xmltv_text(text: str | bytes, *, honor_offset: bool = True, default_tz: tzinfo = timezone.utc) -> list[Channel]:
    """
    Parse XMLTV text into channels with sorted program lists

    Each <channel> and <programme> element is handled as an independent block.
    Blocks with missing or malformed fields are skipped and scanning resumes
    after them.

    Args:
        text: Raw XMLTV document. Bytes are decoded per the document's own
            encoding declaration; str input is already decoded
        honor_offset: Apply the offset token of broadcast timestamps
        default_tz: Zone for timestamps without (or with ignored) offset

    Returns:
        Channels in declaration order, each with programs sorted by start

    Raises:
        MalformedSource: If no channel or programme block is present at all
    """
    logger.debug(f"Scanning XMLTV document ({len(text)} {'bytes' if isinstance(text, bytes) else 'characters'})")

    channel_names: dict[str, str] = {}
    programs: list[Program] = []
    blocks_seen = 0
    skipped = 0

    for element in _iter_blocks(text):
        blocks_seen += 1
        if element.tag == 'channel':
            declared = _parse_channel(element)
            if declared is None:
                skipped += 1
            elif declared[0] not in channel_names:
                channel_names[declared[0]] = declared[1]
        else:
            program = _parse_single_program(element, honor_offset, default_tz)
            if program is None:
                skipped += 1
            else:
                programs.append(program)
        element.clear(keep_tail=True)

    if blocks_seen == 0:
        raise MalformedSource("No channel or programme blocks found in XMLTV text")

    channels = _assign_programs(channel_names, programs)

    logger.info(
        f"XMLTV parsing complete: {len(channels)} channels, "
        f"{sum(len(channel.programs) for channel in channels)} programs, {skipped} blocks skipped"
    )

    return channels


def _iter_blocks(text: str | bytes) -> Iterator[etree._Element]:
    """Yield completed channel/programme elements from a recovering pull parser"""
    if isinstance(text, bytes):
        data = text
        encoding = None
    else:
        # Decoded text is re-encoded, so any declared encoding no longer applies
        data = text.lstrip('\ufeff').encode('utf-8')
        encoding = 'utf-8'

    parser = etree.XMLPullParser(
        events=('end',),
        tag=_BLOCK_TAGS,
        recover=True,
        resolve_entities=False,
        no_network=True,
        remove_comments=True,
        encoding=encoding,
    )

    try:
        parser.feed(data)
        yield from _drain(parser)
        parser.close()
    except etree.XMLSyntaxError as e:
        logger.warning(f"XMLTV scan stopped early: {e}")

    yield from _drain(parser)


def _drain(parser: etree.XMLPullParser) -> Iterator[etree._Element]:
    for _, element in parser.read_events():
        yield element


def _parse_channel(channel: etree._Element) -> Optional[tuple[str, str]]:
    """Extract (id, display name) from a channel element"""
    channel_id = channel.get('id')
    if not channel_id:
        logger.debug("Skipping channel with missing ID attribute")
        return None

    # Get display name (first one or fallback to ID)
    display_name = _get_text(channel, 'display-name', default=channel_id)
    return channel_id, display_name or channel_id


def _parse_single_program(programme: etree._Element, honor_offset: bool, default_tz: tzinfo) -> Optional[Program]:
    """Parse single programme element"""
    # Required fields
    channel_id = programme.get('channel')
    start_str = programme.get('start')
    stop_str = programme.get('stop')

    if not channel_id or not start_str or not stop_str:
        logger.debug("Skipping programme with missing channel/start/stop attribute")
        return None

    # Parse times (skip invalid formats)
    try:
        start_time = parse_broadcast_time(start_str, honor_offset=honor_offset, default_tz=default_tz)
        stop_time = parse_broadcast_time(stop_str, honor_offset=honor_offset, default_tz=default_tz)
    except MalformedTimestamp as e:
        logger.debug(f"Skipping programme on {channel_id}: {e}")
        return None

    if start_time >= stop_time:
        logger.debug(f"Skipping programme on {channel_id} with empty interval at {start_str}")
        return None

    return Program.create(
        channel_id=channel_id,
        start=start_time,
        end=stop_time,
        title=_get_text(programme, 'title', default='Unknown'),
        description=_get_text(programme, 'desc', default=''),
        category=_get_text(programme, 'category'),
    )


def _assign_programs(channel_names: dict[str, str], programs: list[Program]) -> list[Channel]:
    """Group programs under their declared channel and sort them by start"""
    grouped: dict[str, list[Program]] = {channel_id: [] for channel_id in channel_names}
    orphaned = 0

    for program in programs:
        bucket = grouped.get(program.channel_id)
        if bucket is None:
            orphaned += 1
            continue
        bucket.append(program)

    if orphaned:
        logger.debug(f"Discarded {orphaned} programmes referencing undeclared channels")

    return [
        Channel(
            id=channel_id,
            name=name,
            programs=tuple(sorted(grouped[channel_id], key=lambda p: p.start)),
        )
        for channel_id, name in channel_names.items()
    ]


def _get_text(element: etree._Element, tag: str, default: Optional[str] = None) -> Optional[str]:
    """Safely extract text from XML element"""
    child = element.find(tag)
    if child is None or not child.text or not child.text.strip():
        return default
    return child.text.strip()


async def parse_xmltv_async(
    text: str | bytes,
    *,
    honor_offset: bool = True,
    default_tz: tzinfo = timezone.utc,
    parse_timeout_seconds: int | None = None
) -> list[Channel]:
    """
    Parse XMLTV text asynchronously with timeout protection.

    Parsing is offloaded to the thread pool to avoid blocking the event loop.

    Keyword Args:
        parse_timeout_seconds: Timeout in seconds for parsing (0/None disables timeout)

    Raises:
        MalformedSource: If the text has no recognizable blocks or parsing times out
    """
    effective_timeout = parse_timeout_seconds if parse_timeout_seconds and parse_timeout_seconds > 0 else None

    loop = asyncio.get_running_loop()
    parse_task = loop.run_in_executor(
        None,
        partial(parse_xmltv_text, text, honor_offset=honor_offset, default_tz=default_tz)
    )

    try:
        if effective_timeout:
            return await asyncio.wait_for(parse_task, timeout=effective_timeout)
        return await parse_task
    except asyncio.TimeoutError:
        logger.error("XMLTV parsing timed out after %ss", effective_timeout)
        raise MalformedSource("XMLTV parsing timed out - source may be too large or malformed")
