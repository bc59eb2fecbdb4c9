"""
Builders and fakes shared by the test modules.
"""
import asyncio
from datetime import datetime, timezone

from guide_engine.errors import TransportFailure
from guide_engine.services.blob_store import MemoryBlobStore
from guide_engine.services.guide_types import Channel, Program


GUIDE_URL = "http://guide.example.com/epg.xml"

SAMPLE_XMLTV = """<?xml version="1.0" encoding="UTF-8"?>
<tv generator-info-name="test">
  <channel id="5">
    <display-name>Channel Five</display-name>
  </channel>
  <channel id="7"></channel>
  <programme start="20240101190000" stop="20240101200000" channel="5">
    <title>Movie</title>
    <category>Film</category>
  </programme>
  <programme start="20240101180000" stop="20240101190000" channel="5">
    <title>News</title>
    <desc>Evening news</desc>
  </programme>
  <programme start="20240101180000" stop="20240101190000" channel="99">
    <title>Ghost</title>
  </programme>
  <programme start="2024010118" stop="20240101190000" channel="7">
    <title>Bad time</title>
  </programme>
  <programme stop="20240101190000" channel="7">
    <title>No start</title>
  </programme>
  <programme start="20240101200000" stop="20240101200000" channel="7">
    <title>Zero length</title>
  </programme>
  <programme start="20240101210000" stop="20240101220000" channel="7"></programme>
</tv>
"""

SAMPLE_SRT = "1\n00:00:01,000 --> 00:00:03,500\nHello\n\n2\n00:00:04,000 --> 00:00:05,000\nWorld"


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def make_channel(channel_id: str, spans: list[tuple[datetime, datetime, str]], name: str | None = None) -> Channel:
    """Build a channel from (start, end, title) tuples, sorted by start"""
    programs = [Program.create(channel_id, start, end, title=title) for start, end, title in spans]
    programs.sort(key=lambda p: p.start)
    return Channel(id=channel_id, name=name or channel_id, programs=tuple(programs))


class FakeFetcher:
    """Fetch collaborator serving canned responses per URL"""

    def __init__(self, responses: dict[str, str | bytes | Exception] | None = None):
        self.responses = dict(responses or {})
        self.calls: list[str] = []

    async def __call__(self, url: str) -> str:
        self.calls.append(url)
        response = self.responses.get(url)
        if response is None:
            raise TransportFailure(f"No route to {url}")
        if isinstance(response, Exception):
            raise response
        return response


class GatedFetcher:
    """Holds the first request until released, answers later ones at once"""

    def __init__(self, first: str, later: str):
        self.first = first
        self.later = later
        self.release = asyncio.Event()
        self.calls = 0

    async def __call__(self, url: str) -> str:
        self.calls += 1
        if self.calls == 1:
            await self.release.wait()
            return self.first
        return self.later


class PausingBlobStore(MemoryBlobStore):
    """Memory store that can hold the next get (after reading) or set (before writing)"""

    def __init__(self):
        super().__init__()
        self.hold_get = False
        self.hold_set = False
        self.paused = asyncio.Event()
        self.release = asyncio.Event()

    async def get(self, key: str) -> bytes | None:
        value = await super().get(key)
        if self.hold_get:
            self.hold_get = False
            await self._pause()
        return value

    async def set(self, key: str, value: bytes) -> None:
        if self.hold_set:
            self.hold_set = False
            await self._pause()
        await super().set(key, value)

    async def _pause(self) -> None:
        self.paused.set()
        await self.release.wait()
