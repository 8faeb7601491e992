"""Shared fixtures: sample feeds, a built snapshot and fake HTTP servers."""
from datetime import datetime, timezone

import httpx
import pytest

from livetv.config import CustomSettings
from livetv.services.catalog_store import CatalogStore
from livetv.services.catalog_types import CatalogSnapshot
from livetv.services.playlist_parser_service import parse_m3u
from livetv.services.xmltv_parser_service import parse_xmltv


PLAYLIST_URL = "http://feeds.test/playlist.m3u"
GUIDE_URL = "http://feeds.test/guide.xml"

SAMPLE_PLAYLIST = """#EXTM3U
#EXTINF:-1 tvg-id="bbc.news" tvg-logo="http://logo.test/bbc.png" group-title="News",BBC News
http://streams.test/bbc/index.m3u8
#EXTINF:-1 tvg-id="sky.sports" tvg-logo="http://logo.test/sky.png" group-title="Sports",Sky Sports
http://streams.test/sky/index.m3u8
#EXTINF:-1 group-title="News" tvg-id="cnn.us" tvg-country="US" tvg-language="English",CNN International
http://streams.test/cnn/index.m3u8
"""

SAMPLE_GUIDE = """<?xml version="1.0" encoding="UTF-8"?>
<tv generator-info-name="test">
  <channel id="bbc.news"><display-name>BBC News</display-name></channel>
  <programme channel="bbc.news" start="20250101100000 +0000" stop="20250101103000 +0000">
    <title lang="en">Morning</title>
    <desc lang="en">Morning bulletin</desc>
  </programme>
  <programme channel="bbc.news" start="20250101103000 +0000" stop="20250101110000 +0000">
    <title lang="en">Noon</title>
  </programme>
  <programme channel="cnn.us" start="20250101120000 +0100" stop="20250101130000 +0100">
    <title>World Report</title>
    <category>News</category>
  </programme>
  <programme channel="cnn.us" start="not-a-time" stop="20250101130000 +0100">
    <title>Broken</title>
  </programme>
</tv>
"""


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def playlist_text() -> str:
    return SAMPLE_PLAYLIST


@pytest.fixture
def guide_text() -> str:
    return SAMPLE_GUIDE


@pytest.fixture
def snapshot() -> CatalogSnapshot:
    return CatalogSnapshot.build(
        parse_m3u(SAMPLE_PLAYLIST),
        parse_xmltv(SAMPLE_GUIDE),
        playlist_loaded_at=utc(2025, 1, 1, 9, 0),
        guide_loaded_at=utc(2025, 1, 1, 9, 0),
    )


@pytest.fixture
def store(snapshot) -> CatalogStore:
    catalog_store = CatalogStore()
    catalog_store.publish_channels(snapshot.channels, snapshot.playlist_loaded_at)
    catalog_store.publish_guide(snapshot.guide, snapshot.guide_loaded_at)
    return catalog_store


@pytest.fixture
def feed_settings() -> CustomSettings:
    return CustomSettings(
        playlist_url=PLAYLIST_URL,
        guide_url=GUIDE_URL,
        feed_fetch_max_retries=1,
        guide_parse_timeout_sec=0,
    )


class FeedServer:
    """Fake feed origin: serves whatever the test puts in `documents`, counts hits."""

    def __init__(self):
        self.documents: dict[str, httpx.Response] = {}
        self.hits: dict[str, int] = {}

    def serve(self, url: str, body: str, status_code: int = 200) -> None:
        self.documents[url] = httpx.Response(status_code, content=body.encode("utf-8"))

    def fail(self, url: str, exc: Exception) -> None:
        self.documents[url] = exc

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.hits[url] = self.hits.get(url, 0) + 1
        document = self.documents.get(url)
        if document is None:
            return httpx.Response(404)
        if isinstance(document, Exception):
            raise document
        return httpx.Response(document.status_code, content=document.content)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def feed_server() -> FeedServer:
    server = FeedServer()
    server.serve(PLAYLIST_URL, SAMPLE_PLAYLIST)
    server.serve(GUIDE_URL, SAMPLE_GUIDE)
    return server
