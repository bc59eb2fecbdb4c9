"""
Error kinds raised inside the engine.

Per-record errors are recovered by the parsers; whole-source errors are
turned into empty results by the services before reaching callers.
"""


class GuideEngineError(Exception):
    """Base class for all engine errors"""
    pass


class MalformedTimestamp(GuideEngineError, ValueError):
    """Raised when a broadcast or media time token cannot be parsed"""
    pass


class MalformedSource(GuideEngineError):
    """Raised when a source contains no recognizable structure at all"""
    pass


class TransportFailure(GuideEngineError):
    """Raised when the fetch collaborator could not deliver the source text"""
    pass


class UnsupportedFormat(GuideEngineError):
    """Raised for subtitle track formats without a parser"""
    pass
