"""
Structured logging helpers for consistent log formatting.
"""
import logging
from datetime import datetime, timezone


def log_source_processing(logger: logging.Logger, idx: int, total: int, url: str) -> None:
    """
    Log source processing header.

    Args:
        logger: Logger instance
        idx: Current source index (1-based)
        total: Total number of sources
        url: Sanitized source URL being processed
    """
    logger.info(f"Processing source {idx}/{total}: {url}")


def log_refresh_start(logger: logging.Logger) -> None:
    """Log guide refresh start."""
    logger.info(f"Guide refresh started at {datetime.now(timezone.utc).isoformat()}")


def log_refresh_end(logger: logging.Logger) -> None:
    """Log guide refresh end."""
    logger.info(f"Guide refresh completed at {datetime.now(timezone.utc).isoformat()}")


def log_refresh_summary(
    logger: logging.Logger,
    sources_count: int,
    fallback_count: int,
    channels_count: int
) -> None:
    """
    Log refresh summary.

    Args:
        logger: Logger instance
        sources_count: Number of sources processed
        fallback_count: Sources served from a persisted snapshot
        channels_count: Channels cached after the refresh
    """
    logger.info(
        f"Refresh summary - Sources: {sources_count}, From snapshot: {fallback_count}, Channels: {channels_count}"
    )
