"""
Stream Relay Service

Pass-through proxy between the playback client and the live stream origin.
Each relay is an independent request/response cycle; the only thing shared
between relays is the httpx connection pool.
"""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import AsyncIterator, Mapping

import httpx

from livetv.config import settings
from livetv.errors import RelayUpstreamFailure
from livetv.utils.url_helpers import (
    guess_stream_content_type,
    is_remote_url,
    origin_of,
    sanitize_url_for_logging,
)


logger = logging.getLogger(__name__)

RELAY_CHUNK_SIZE = 64 * 1024
RELAY_METHODS = ("GET", "HEAD")

# Forwarded from the client as-is
FORWARDED_REQUEST_HEADERS = ("range", "accept", "if-range")

# Passed back to the client as-is
PASSTHROUGH_RESPONSE_HEADERS = (
    "content-type",
    "content-length",
    "content-range",
    "accept-ranges",
    "content-encoding",
)

USER_AGENTS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:120.0) Gecko/20100101 Firefox/120.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:120.0) Gecko/20100101 Firefox/120.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/16.1 Safari/605.1.15",
    "Mozilla/5.0 (iPhone; CPU iPhone OS 16_6 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/16.6 Mobile/15E148 Safari/604.1",
    "Mozilla/5.0 (Linux; Android 13) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.6099.210 Mobile Safari/537.36",
    "Mozilla/5.0 (Web0S; Linux/SmartTV) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/79.0.3945.79 Safari/537.36",
    "VLC/3.0.18 LibVLC/3.0.18",
)


@dataclass
class RelayResponse:
    """Origin response headers plus a body that is read only while it is streamed."""
    status_code: int
    headers: dict[str, str]
    upstream: httpx.Response = field(repr=False)

    async def iter_body(self, chunk_size: int = RELAY_CHUNK_SIZE) -> AsyncIterator[bytes]:
        """Yield the origin body chunk by chunk; closes the origin connection when done or cancelled."""
        try:
            async for chunk in self.upstream.aiter_raw(chunk_size):
                if chunk:
                    yield chunk
        except httpx.HTTPError as exc:
            logger.warning("Upstream read error during relay: %s", exc)
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if not self.upstream.is_closed:
            await self.upstream.aclose()


class StreamRelay:
    """Relays playback requests to stream origins with a shared connection pool."""

    def __init__(
        self,
        *,
        timeout: float = 20.0,
        max_redirects: int = 5,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout = timeout
        self.max_redirects = max_redirects
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                limits=httpx.Limits(max_connections=200, max_keepalive_connections=20),
                follow_redirects=True,
                max_redirects=self.max_redirects,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    def build_upstream_headers(self, origin_url: str, inbound_headers: Mapping[str, str] | None) -> dict[str, str]:
        """Constrained header set sent to the origin."""
        headers = {
            "User-Agent": random.choice(USER_AGENTS),
            "Accept": "*/*",
            "Accept-Language": "en-US,en;q=0.9",
            "Accept-Encoding": "identity",
            "Cache-Control": "no-cache",
        }

        site = origin_of(origin_url)
        if site:
            headers["Referer"] = f"{site}/"
            headers["Origin"] = site

        for name, value in (inbound_headers or {}).items():
            if name.lower() in FORWARDED_REQUEST_HEADERS:
                headers[name.title()] = value

        return headers

    async def relay(
        self,
        origin_url: str,
        method: str = "GET",
        inbound_headers: Mapping[str, str] | None = None,
    ) -> RelayResponse:
        """
        Forward a playback request to the origin and return its streaming response

        Args:
            origin_url: Absolute http(s) URL of the live stream
            method: GET or HEAD
            inbound_headers: Headers of the client request; only Range/Accept/If-Range are forwarded

        Returns:
            RelayResponse whose body has not been read yet

        Raises:
            ValueError: If the URL or method is not relayable
            RelayUpstreamFailure: On timeout, connection failure, redirect overflow or origin error status
        """
        method = method.upper()
        if method not in RELAY_METHODS:
            raise ValueError(f"Method {method} cannot be relayed")
        if not is_remote_url(origin_url):
            raise ValueError("Relay target must be an absolute http(s) URL")

        sanitized = sanitize_url_for_logging(origin_url)
        headers = self.build_upstream_headers(origin_url, inbound_headers)
        logger.info("Relaying %s %s (range=%s)", method, sanitized, headers.get("Range", "-"))

        request = self.client.build_request(method, origin_url, headers=headers)
        try:
            upstream = await self.client.send(request, stream=True)
        except httpx.TooManyRedirects as exc:
            logger.error("Relay redirect limit (%s) exceeded for %s", self.max_redirects, sanitized)
            raise RelayUpstreamFailure(f"Too many redirects (> {self.max_redirects})") from exc
        except httpx.TimeoutException as exc:
            logger.error("Relay timeout connecting to %s", sanitized)
            raise RelayUpstreamFailure("Upstream timeout", status_code=504) from exc
        except httpx.HTTPError as exc:
            logger.error("Relay connection error for %s: %s", sanitized, exc)
            raise RelayUpstreamFailure(f"Upstream connection error: {type(exc).__name__}") from exc

        if upstream.status_code >= 400:
            await upstream.aclose()
            logger.warning("Origin answered HTTP %s for %s", upstream.status_code, sanitized)
            raise RelayUpstreamFailure(
                f"Origin returned HTTP {upstream.status_code}",
                origin_status=upstream.status_code,
            )

        response_headers = {
            name: upstream.headers[name]
            for name in PASSTHROUGH_RESPONSE_HEADERS
            if name in upstream.headers
        }
        if "content-type" not in response_headers:
            response_headers["content-type"] = guess_stream_content_type(str(upstream.url))
        response_headers["cache-control"] = "no-cache, no-store, must-revalidate"

        if upstream.history:
            logger.debug("Relay followed %s redirect(s) to %s", len(upstream.history), sanitize_url_for_logging(str(upstream.url)))

        return RelayResponse(status_code=upstream.status_code, headers=response_headers, upstream=upstream)


stream_relay = StreamRelay(timeout=settings.relay_timeout_sec, max_redirects=settings.relay_max_redirects)
