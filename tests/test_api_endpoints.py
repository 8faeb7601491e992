"""
Tests for the HTTP surface, with every service swapped through dependency overrides.
"""
import httpx
import pytest
from fastapi.testclient import TestClient

from livetv.config import CustomSettings, settings
from livetv.dependencies import (
    get_catalog_store,
    get_favorites,
    get_refresher,
    get_scheduler,
    get_stream_relay,
)
from livetv.main import app
from livetv.services.addon_protocol_service import FavoritesStore
from livetv.services.catalog_types import Channel
from livetv.services.refresh_service import CatalogRefresher
from livetv.services.scheduler_service import CatalogScheduler
from livetv.services.stream_relay_service import StreamRelay

from tests.conftest import PLAYLIST_URL
from tests.test_stream_relay import BODY, ORIGIN, FakeOrigin


@pytest.fixture
def client(store, feed_server, feed_settings):
    refresher = CatalogRefresher(store, feed_settings, transport=feed_server.transport)
    idle_config = CustomSettings(playlist_url=None, guide_url=None)
    scheduler = CatalogScheduler(CatalogRefresher(store, idle_config), idle_config)
    origin = FakeOrigin()
    favorites = FavoritesStore()

    app.dependency_overrides[get_catalog_store] = lambda: store
    app.dependency_overrides[get_refresher] = lambda: refresher
    app.dependency_overrides[get_scheduler] = lambda: scheduler
    app.dependency_overrides[get_favorites] = lambda: favorites
    app.dependency_overrides[get_stream_relay] = lambda: StreamRelay(
        timeout=5.0, max_redirects=5, transport=httpx.MockTransport(origin.handler)
    )

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def proxy_client(client, store):
    """Client whose catalog carries one channel streaming from the fake origin."""
    relayed = Channel(id="iptv:3", name="Relay Test", url=f"{ORIGIN}/live/stream.ts", tvg_id="", group="Test")
    store.publish_channels((*store.snapshot().channels, relayed))
    return client


class RecordingScheduler:
    def __init__(self):
        self.guide_requests = 0

    def ensure_guide_loaded(self) -> bool:
        self.guide_requests += 1
        return True


class TestServiceEndpoints:
    """Test root, health, status and manual refresh."""

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["service"] == "Live TV Catalog"

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert response.json()["scheduler_running"] is False

    def test_status(self, client):
        body = client.get("/status").json()

        assert body["state"] == "loaded"
        assert body["channels"] == 3
        assert body["categories"] == ["News", "Sports"]
        assert body["refreshing"] == []

    def test_manual_refresh(self, client):
        response = client.post("/refresh/playlist")

        assert response.status_code == 200
        assert response.json()["status"] == "success"

    def test_manual_refresh_failure_keeps_catalog(self, client, feed_server):
        feed_server.fail(PLAYLIST_URL, httpx.ConnectError("connection refused"))

        response = client.post("/refresh/playlist")

        assert response.status_code == 502
        assert client.get("/status").json()["channels"] == 3

    def test_unknown_feed(self, client):
        assert client.post("/refresh/weather").status_code == 422


class TestProtocolEndpoints:
    """Test manifest, catalog, meta and stream routes."""

    def test_manifest(self, client):
        body = client.get("/manifest.json").json()

        assert [catalog["id"] for catalog in body["catalogs"]][:2] == ["iptv_group_News", "iptv_group_Sports"]

    def test_group_catalog(self, client):
        body = client.get("/catalog/tv/iptv_group_News.json").json()

        assert [meta["name"] for meta in body["metas"]] == ["BBC News", "CNN International"]

    def test_catalog_query_filters(self, client):
        body = client.get("/catalog/tv/iptv_all.json", params={"genre": "Sports"}).json()

        assert [meta["id"] for meta in body["metas"]] == ["iptv:1"]

    def test_catalog_path_extra(self, client):
        body = client.get("/catalog/tv/iptv_all/search=cnn.json").json()

        assert [meta["name"] for meta in body["metas"]] == ["CNN International"]

    def test_catalog_invalid_skip(self, client):
        assert client.get("/catalog/tv/iptv_all/skip=abc.json").status_code == 422

    def test_unknown_catalog(self, client):
        response = client.get("/catalog/tv/movies.json")

        assert response.status_code == 404
        assert "error" in response.json()

    def test_meta_at_moment(self, client):
        response = client.get("/meta/tv/iptv:0.json", params={"at": "2025-01-01T10:15:00Z"})

        assert response.status_code == 200
        assert response.json()["meta"]["description"] == "Now: Morning\nNext: Noon\nMorning bulletin"

    def test_meta_invalid_moment(self, client):
        assert client.get("/meta/tv/iptv:0.json", params={"at": "yesterday"}).status_code == 422

    def test_meta_unknown_channel(self, client):
        assert client.get("/meta/tv/iptv:99.json").status_code == 404

    def test_meta_unsupported_type(self, client):
        assert client.get("/meta/movie/iptv:0.json").status_code == 404

    def test_stream_is_relayed_through_this_service(self, client):
        streams = client.get("/stream/tv/iptv:0.json").json()["streams"]

        assert streams[0]["url"] == "http://testserver/proxy?url=http%3A%2F%2Fstreams.test%2Fbbc%2Findex.m3u8"

    def test_stream_ignores_forwarded_host_by_default(self, client, monkeypatch):
        monkeypatch.setattr(settings, "public_base_url", None)
        monkeypatch.setattr(settings, "trust_forwarded_headers", False)

        streams = client.get(
            "/stream/tv/iptv:0.json",
            headers={"X-Forwarded-Proto": "https", "X-Forwarded-Host": "attacker.test"},
        ).json()["streams"]

        assert streams[0]["url"].startswith("http://testserver/proxy?url=")

    def test_stream_honours_forwarded_host_when_trusted(self, client, monkeypatch):
        monkeypatch.setattr(settings, "public_base_url", None)
        monkeypatch.setattr(settings, "trust_forwarded_headers", True)

        streams = client.get(
            "/stream/tv/iptv:0.json",
            headers={"X-Forwarded-Proto": "https", "X-Forwarded-Host": "tv.example.org"},
        ).json()["streams"]

        assert streams[0]["url"].startswith("https://tv.example.org/proxy?url=")

    def test_public_base_url_wins_over_headers(self, client, monkeypatch):
        monkeypatch.setattr(settings, "public_base_url", "https://tv.example.org")
        monkeypatch.setattr(settings, "trust_forwarded_headers", True)

        streams = client.get(
            "/stream/tv/iptv:0.json",
            headers={"Host": "attacker.test", "X-Forwarded-Host": "attacker.test"},
        ).json()["streams"]

        assert streams[0]["url"].startswith("https://tv.example.org/proxy?url=")

    @pytest.mark.parametrize("path", ["/catalog/tv/iptv_all.json", "/catalog/tv/iptv_all/search=bbc.json"])
    def test_catalog_requests_start_deferred_guide_load(self, client, path):
        scheduler = RecordingScheduler()
        app.dependency_overrides[get_scheduler] = lambda: scheduler

        assert client.get(path).status_code == 200
        assert scheduler.guide_requests == 1

    def test_favorites(self, client):
        response = client.get("/favorites/add/iptv:1")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "favorites": ["iptv:1"]}

    def test_favorites_unknown_action(self, client):
        assert client.get("/favorites/toggle/iptv:1").status_code == 422


class TestProxyEndpoint:
    """Test the stream relay route."""

    def test_range_request(self, proxy_client):
        response = proxy_client.get("/proxy", params={"url": f"{ORIGIN}/live/stream.ts"}, headers={"Range": "bytes=100-"})

        assert response.status_code == 206
        assert response.headers["content-range"] == "bytes 100-199/200"
        assert response.content == BODY[100:]

    def test_full_request(self, proxy_client):
        response = proxy_client.get("/proxy", params={"url": f"{ORIGIN}/live/stream.ts"})

        assert response.status_code == 200
        assert response.headers["content-type"] == "video/mp2t"
        assert response.content == BODY

    def test_head_request(self, proxy_client):
        response = proxy_client.head("/proxy", params={"url": f"{ORIGIN}/live/stream.ts"})

        assert response.status_code == 200
        assert response.content == b""

    def test_redirect_overflow(self, proxy_client):
        response = proxy_client.get("/proxy", params={"url": f"{ORIGIN}/hop/6"})

        assert response.status_code == 502
        assert response.json()["error"] == "Stream unavailable"

    def test_origin_error(self, proxy_client):
        response = proxy_client.get("/proxy", params={"url": f"{ORIGIN}/missing.ts"})

        assert response.status_code == 502
        assert response.json()["origin_status"] == 404

    def test_origin_timeout(self, proxy_client):
        assert proxy_client.get("/proxy", params={"url": f"{ORIGIN}/slow.ts"}).status_code == 504

    def test_non_http_url(self, proxy_client):
        assert proxy_client.get("/proxy", params={"url": "file:///etc/passwd"}).status_code == 400

    def test_missing_url(self, proxy_client):
        assert proxy_client.get("/proxy").status_code == 422

    def test_origin_outside_catalog_is_refused(self, proxy_client, monkeypatch):
        monkeypatch.setattr(settings, "relay_allow_any_origin", False)

        response = proxy_client.get("/proxy", params={"url": "http://169.254.169.254/latest/meta-data/"})

        assert response.status_code == 403
        assert response.json()["error"] == "Origin not in catalog"

    def test_origin_match_ignores_path_and_host_case(self, proxy_client, monkeypatch):
        monkeypatch.setattr(settings, "relay_allow_any_origin", False)

        response = proxy_client.get("/proxy", params={"url": "http://CDN.test/other/segment.ts"})

        assert response.status_code == 200

    def test_same_host_on_other_port_is_refused(self, proxy_client, monkeypatch):
        monkeypatch.setattr(settings, "relay_allow_any_origin", False)

        assert proxy_client.get("/proxy", params={"url": "http://cdn.test:8080/live/stream.ts"}).status_code == 403

    def test_any_origin_when_allowed(self, client, monkeypatch):
        monkeypatch.setattr(settings, "relay_allow_any_origin", True)

        response = client.get("/proxy", params={"url": f"{ORIGIN}/live/stream.ts"})

        assert response.status_code == 200
        assert response.content == BODY
