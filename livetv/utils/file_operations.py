"""
File operation utilities

This module handles feed downloads with retry logic and local feed file reads.
"""
import logging
from pathlib import Path
import asyncio

import aiofiles
import httpx


logger = logging.getLogger(__name__)

FEED_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
                  "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Accept": "*/*",
}


async def download_bytes(
    url: str,
    timeout: float = 20.0,
    max_retries: int = 2,
    backoff_factor: float = 2.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> bytes:
    """
    Download a document from URL with exponential backoff retry logic

    Retries on transient network errors (timeouts, connection errors) and 5xx responses.
    Does NOT retry on 4xx HTTP errors (client errors).

    Args:
        url: URL to download from
        timeout: HTTP timeout in seconds
        max_retries: Maximum number of attempts
        backoff_factor: Exponential backoff multiplier (wait = backoff_factor ^ attempt)
        transport: Optional httpx transport (used by tests)

    Returns:
        Response body

    Raises:
        httpx.HTTPError: If download fails after all retries
    """
    logger.debug(f"Downloading {url}...")

    last_error: Exception | None = None

    for attempt in range(max_retries):
        try:
            async with httpx.AsyncClient(
                timeout=timeout,
                follow_redirects=True,
                headers=FEED_HEADERS,
                transport=transport,
            ) as client:
                response = await client.get(url)
                response.raise_for_status()

                size_mb = len(response.content) / (1024 * 1024)
                logger.debug(f"Downloaded {size_mb:.2f} MB")
                return response.content

        except (httpx.TimeoutException, httpx.TransportError) as e:
            # Transient network errors - retry
            last_error = e
            if attempt < max_retries - 1:
                wait_time = backoff_factor ** attempt
                logger.warning(
                    f"Download attempt {attempt + 1}/{max_retries} failed (transient error): {type(e).__name__}. "
                    f"Retrying in {wait_time:.1f}s..."
                )
                await asyncio.sleep(wait_time)
            else:
                logger.error(f"Download failed after {max_retries} attempts (transient error)")

        except httpx.HTTPStatusError as e:
            if 400 <= e.response.status_code < 500:
                logger.error(f"HTTP {e.response.status_code} (client error) for {e.request.url}")
                raise

            # 5xx server error - retry
            last_error = e
            if attempt < max_retries - 1:
                wait_time = backoff_factor ** attempt
                logger.warning(
                    f"Download attempt {attempt + 1}/{max_retries} failed "
                    f"(HTTP {e.response.status_code} server error). "
                    f"Retrying in {wait_time:.1f}s..."
                )
                await asyncio.sleep(wait_time)
            else:
                logger.error(f"Download failed after {max_retries} attempts (HTTP {e.response.status_code})")

    if last_error:
        raise last_error

    raise RuntimeError(f"Failed to download {url} after {max_retries} attempts")


async def read_local_file(path: str | Path) -> bytes:
    """
    Read a feed document from the local filesystem

    Raises:
        OSError: If the file is missing or unreadable
    """
    file_path = Path(path[len("file://"):] if isinstance(path, str) and path.startswith("file://") else path)
    async with aiofiles.open(file_path, 'rb') as f:
        content = await f.read()
    logger.debug(f"Read {len(content) / 1024:.1f} KB from {file_path}")
    return content
