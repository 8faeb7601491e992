"""
Feed Downloader Service

Handles fetching and parsing the playlist and guide feeds.
Separated from snapshot publishing for better testability.
"""
import asyncio
import logging
from typing import Literal

import httpx

from livetv.errors import SourceFetchFailure, SourceParseFailure
from livetv.services.catalog_types import Channel, Programme
from livetv.services.playlist_parser_service import parse_m3u
from livetv.services.xmltv_parser_service import parse_xmltv
from livetv.utils.file_operations import download_bytes, read_local_file
from livetv.utils.url_helpers import is_remote_url, sanitize_url_for_logging


logger = logging.getLogger(__name__)


async def fetch_feed(
    source: str,
    feed_name: str,
    *,
    timeout: float,
    max_retries: int = 2,
    transport: httpx.AsyncBaseTransport | None = None,
) -> bytes:
    """
    Fetch a feed document from an HTTP(S) URL or a local path

    Raises:
        SourceFetchFailure: If the document cannot be retrieved
    """
    sanitized = sanitize_url_for_logging(source)
    logger.info(f"[{feed_name}] Fetching {sanitized}")

    try:
        if is_remote_url(source):
            payload = await download_bytes(source, timeout=timeout, max_retries=max_retries, transport=transport)
        else:
            payload = await read_local_file(source)
    except httpx.HTTPStatusError as exc:
        raise SourceFetchFailure(feed_name, f"HTTP {exc.response.status_code}") from exc
    except httpx.HTTPError as exc:
        raise SourceFetchFailure(feed_name, f"{type(exc).__name__}: {exc}") from exc
    except OSError as exc:
        raise SourceFetchFailure(feed_name, str(exc)) from exc

    logger.info(f"[{feed_name}] Fetched {len(payload) / 1024:.1f} KB")
    return payload


def decode_playlist(payload: bytes) -> str:
    """
    Decode playlist bytes as UTF-8 (with or without BOM), falling back to Latin-1

    Raises:
        SourceParseFailure: If the payload looks binary rather than text
    """
    if b"\x00" in payload[:4096]:
        raise SourceParseFailure("playlist", "document is not text")
    try:
        return payload.decode("utf-8-sig")
    except UnicodeDecodeError:
        logger.warning("Playlist is not valid UTF-8, decoding as Latin-1")
        return payload.decode("latin-1")


async def load_playlist(
    source: str,
    *,
    timeout: float,
    max_retries: int = 2,
    default_category: str = "Other",
    id_mode: Literal["position", "url"] = "position",
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[Channel]:
    """Fetch and parse the playlist feed."""
    payload = await fetch_feed(source, "playlist", timeout=timeout, max_retries=max_retries, transport=transport)
    text = decode_playlist(payload)
    return parse_m3u(text, default_category=default_category, id_mode=id_mode)


async def load_guide(
    source: str,
    *,
    timeout: float,
    max_retries: int = 2,
    parse_timeout_seconds: int | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, tuple[Programme, ...]]:
    """Fetch the guide feed and parse it off the event loop."""
    payload = await fetch_feed(source, "guide", timeout=timeout, max_retries=max_retries, transport=transport)
    return await parse_xmltv_async(payload, parse_timeout_seconds=parse_timeout_seconds)


async def parse_xmltv_async(
    payload: bytes,
    *,
    parse_timeout_seconds: int | None = None
) -> dict[str, tuple[Programme, ...]]:
    """
    Parse an XMLTV document asynchronously with timeout protection.

    Parsing is offloaded to the thread pool to avoid blocking the event loop.

    Raises:
        SourceParseFailure: If the document is malformed or parsing times out
    """
    effective_timeout = parse_timeout_seconds if parse_timeout_seconds and parse_timeout_seconds > 0 else None
    timeout_display = f"{effective_timeout}s" if effective_timeout else "disabled"

    loop = asyncio.get_running_loop()
    logger.debug("Offloading XML parsing to thread pool executor (timeout: %s)...", timeout_display)
    parse_task = loop.run_in_executor(None, parse_xmltv, payload)

    try:
        if effective_timeout:
            guide = await asyncio.wait_for(parse_task, timeout=effective_timeout)
        else:
            guide = await parse_task
    except asyncio.TimeoutError as exc:
        logger.error("XML parsing timed out after %s", timeout_display)
        raise SourceParseFailure("guide", "XML parsing timed out - document may be too large") from exc

    if not guide:
        logger.warning("No programmes found in guide document")

    return guide
