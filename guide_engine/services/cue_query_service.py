"""
Cue Query Service

Active-cue lookups run on every playback time update, so both paths are
linear and allocation-free.
"""
from collections.abc import Iterable, Sequence

from guide_engine.services.guide_types import Cue


def active_cue(cues: Sequence[Cue], t: float) -> Cue | None:
    """Return the first cue with start <= t < end; cues must be sorted by start"""
    for cue in cues:
        if cue.start > t:
            break
        if t < cue.end:
            return cue
    return None


class CueCursor:
    """
    Active-cue lookup that remembers where the previous scan could start.

    Every cue before the floor ended at or before the last queried time, so
    while time moves forward those cues can be skipped. A backward seek
    resets the floor. Results always match active_cue over the sorted cues.
    """

    def __init__(self, cues: Iterable[Cue] = ()):
        self._cues = tuple(sorted(cues, key=lambda cue: cue.start))
        self._floor = 0
        self._last_t: float | None = None

    @property
    def cues(self) -> tuple[Cue, ...]:
        return self._cues

    def lookup(self, t: float) -> Cue | None:
        if self._last_t is None or t < self._last_t:
            self._floor = 0
        self._last_t = t

        cues = self._cues
        count = len(cues)
        while self._floor < count and cues[self._floor].end <= t:
            self._floor += 1

        for index in range(self._floor, count):
            cue = cues[index]
            if cue.start > t:
                break
            if t < cue.end:
                return cue
        return None
