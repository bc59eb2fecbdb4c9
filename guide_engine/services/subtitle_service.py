"""
Subtitle Service

Holds the cues of the currently selected subtitle track and answers the
per-tick active-cue lookup for the player.
"""
import logging

from guide_engine.errors import TransportFailure, UnsupportedFormat
from guide_engine.services.cue_parser_service import get_cue_parser
from guide_engine.services.cue_query_service import CueCursor
from guide_engine.services.guide_types import Cue, SubtitleTrack
from guide_engine.utils.http_fetch import FetchText, sanitize_url_for_logging


logger = logging.getLogger(__name__)


class SubtitleSession:
    """
    Active subtitle selection of one player.

    Each selection change bumps a generation number. A track that finishes
    loading after the selection moved on is discarded instead of replacing
    the newer cues.
    """

    def __init__(self, fetch_text: FetchText):
        self._fetch_text = fetch_text
        self._generation = 0
        self._track: SubtitleTrack | None = None
        self._cursor = CueCursor()

    @property
    def track(self) -> SubtitleTrack | None:
        return self._track

    @property
    def cues(self) -> tuple[Cue, ...]:
        return self._cursor.cues

    async def select(self, track: SubtitleTrack) -> bool:
        """
        Select a track and load its cues.

        Failures leave the selection with an empty cue list.

        Args:
            track: Track descriptor

        Returns:
            False if a newer selection superseded this one while loading
        """
        self._generation += 1
        generation = self._generation
        self._track = track
        self._cursor = CueCursor()

        cues = await self._load(track)

        if generation != self._generation:
            logger.info(f"Discarding cues of superseded subtitle track {track.id}")
            return False

        self._cursor = CueCursor(cues)
        logger.info(f"Subtitle track {track.id} ({track.format}) active with {len(cues)} cues")
        return True

    def clear(self) -> None:
        """Drop the current selection and its cues."""
        self._generation += 1
        self._track = None
        self._cursor = CueCursor()
        logger.debug("Subtitle selection cleared")

    def on_time_update(self, t: float) -> Cue | None:
        """Active cue at playback time t (seconds)."""
        return self._cursor.lookup(t)

    async def _load(self, track: SubtitleTrack) -> list[Cue]:
        try:
            parser = get_cue_parser(track.format)
        except UnsupportedFormat as e:
            logger.warning(f"Track {track.id}: {e}")
            return []

        safe_url = sanitize_url_for_logging(track.url)
        try:
            text = await self._fetch_text(track.url)
        except TransportFailure as e:
            logger.warning(f"Failed to load subtitle track {track.id} from {safe_url}: {e}")
            return []
        except Exception as e:
            logger.error(f"Unexpected error loading subtitle track {track.id}: {e}", exc_info=True)
            return []

        return parser(text)
