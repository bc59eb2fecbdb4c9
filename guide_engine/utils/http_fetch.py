"""
HTTP fetch utilities

This module fetches guide documents and subtitle text with retry logic.
"""
import asyncio
import logging
from typing import Awaitable, Callable

import httpx

from guide_engine.errors import TransportFailure


logger = logging.getLogger(__name__)

FetchText = Callable[[str], Awaitable[str]]
FetchDocument = Callable[[str], Awaitable[str | bytes]]


async def fetch_text(
    url: str,
    timeout: float = 30.0,
    max_retries: int = 3,
    backoff_factor: float = 2.0,
    client: httpx.AsyncClient | None = None
) -> str:
    """Fetch a document and decode it per the response charset"""
    response = await _fetch_response(url, timeout, max_retries, backoff_factor, client)
    return response.text


async def fetch_content(
    url: str,
    timeout: float = 30.0,
    max_retries: int = 3,
    backoff_factor: float = 2.0,
    client: httpx.AsyncClient | None = None
) -> bytes:
    """Fetch a document as raw bytes, leaving decoding to its own declaration"""
    response = await _fetch_response(url, timeout, max_retries, backoff_factor, client)
    return response.content


async def _fetch_response(
    url: str,
    timeout: float,
    max_retries: int,
    backoff_factor: float,
    client: httpx.AsyncClient | None
) -> httpx.Response:
    """
    Fetch a URL with exponential backoff retry logic

    Retries on transient network errors (timeouts, connection errors) and
    5xx responses. Does NOT retry on 4xx HTTP errors (client errors).

    Args:
        url: URL to fetch
        timeout: HTTP timeout in seconds
        max_retries: Maximum number of attempts
        backoff_factor: Exponential backoff multiplier (wait = backoff_factor ^ attempt)
        client: Optional shared client; a short-lived one is created otherwise

    Returns:
        Successful response

    Raises:
        TransportFailure: If the document could not be fetched
    """
    safe_url = sanitize_url_for_logging(url)
    logger.info(f"Fetching {safe_url}...")

    last_error: Exception | None = None

    for attempt in range(max_retries):
        try:
            if client is None:
                async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as own_client:
                    response = await own_client.get(url)
            else:
                response = await client.get(url, timeout=timeout)
            response.raise_for_status()

            logger.info(f"Fetched {len(response.content) / 1024:.1f} KB from {safe_url}")
            return response

        except (httpx.TimeoutException, httpx.TransportError) as e:
            # Transient network errors - retry
            last_error = e
            if attempt < max_retries - 1:
                wait_time = backoff_factor ** attempt
                logger.warning(
                    f"Fetch attempt {attempt + 1}/{max_retries} failed (transient error): {type(e).__name__}. "
                    f"Retrying in {wait_time:.1f}s..."
                )
                await asyncio.sleep(wait_time)
            else:
                logger.error(f"Fetch failed after {max_retries} attempts (transient error)")

        except httpx.HTTPStatusError as e:
            # HTTP errors - don't retry on 4xx (client error), retry on 5xx (server error)
            if 400 <= e.response.status_code < 500:
                logger.error(f"HTTP {e.response.status_code} (client error) for {safe_url}")
                raise TransportFailure(f"HTTP {e.response.status_code} for {safe_url}") from e

            last_error = e
            if attempt < max_retries - 1:
                wait_time = backoff_factor ** attempt
                logger.warning(
                    f"Fetch attempt {attempt + 1}/{max_retries} failed "
                    f"(HTTP {e.response.status_code} server error). "
                    f"Retrying in {wait_time:.1f}s..."
                )
                await asyncio.sleep(wait_time)
            else:
                logger.error(f"Fetch failed after {max_retries} attempts (HTTP {e.response.status_code})")

        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise TransportFailure(f"Failed to fetch {safe_url}: {e}") from e

    raise TransportFailure(f"Failed to fetch {safe_url} after {max_retries} attempts") from last_error


def make_fetcher(
    timeout: float = 30.0,
    max_retries: int = 3,
    backoff_factor: float = 2.0
) -> FetchText:
    """Bind retry settings into a fetch collaborator taking only a URL"""
    async def fetch(url: str) -> str:
        return await fetch_text(url, timeout=timeout, max_retries=max_retries, backoff_factor=backoff_factor)

    return fetch


def make_document_fetcher(
    timeout: float = 30.0,
    max_retries: int = 3,
    backoff_factor: float = 2.0
) -> FetchDocument:
    """Like make_fetcher, but returns undecoded bytes for XML sources"""
    async def fetch(url: str) -> bytes:
        return await fetch_content(url, timeout=timeout, max_retries=max_retries, backoff_factor=backoff_factor)

    return fetch


def sanitize_url_for_logging(url: str) -> str:
    """Remove credentials from URL for safe logging."""
    if "://" not in url:
        return url
    try:
        protocol, rest = url.split("://", 1)
        if "@" in rest.split("/", 1)[0]:
            rest = rest.split("@", 1)[1]
            return f"{protocol}://***:***@{rest}"
        return url
    except (ValueError, IndexError):
        return url
