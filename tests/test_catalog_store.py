"""
Tests for the catalog store and snapshot state transitions.
"""
import pytest

from livetv.services.catalog_store import CatalogStore
from livetv.services.catalog_types import EMPTY_SNAPSHOT, CatalogSnapshot, Loaded, Stale, Unloaded

from tests.conftest import utc


class TestCatalogStore:
    """Test snapshot publishing and state."""

    def test_starts_unloaded_with_empty_snapshot(self):
        store = CatalogStore()

        assert isinstance(store.state, Unloaded)
        assert store.snapshot() is EMPTY_SNAPSHOT
        assert store.snapshot().channels == ()

    def test_publish_channels_loads(self, snapshot):
        store = CatalogStore()

        published = store.publish_channels(snapshot.channels, utc(2025, 1, 1, 9))

        assert isinstance(store.state, Loaded)
        assert store.snapshot() is published
        assert published.categories == ("News", "Sports")
        assert published.playlist_loaded_at == utc(2025, 1, 1, 9)
        assert not published.guide_loaded

    def test_refresh_marks_state_stale(self, store):
        store.begin_refresh("playlist")

        assert isinstance(store.state, Stale)
        assert store.state.refreshing == frozenset({"playlist"})
        assert store.is_refreshing("playlist")
        assert not store.is_refreshing("guide")
        assert len(store.snapshot().channels) == 3

        store.end_refresh("playlist")

        assert isinstance(store.state, Loaded)

    def test_refresh_before_first_load_stays_unloaded(self):
        store = CatalogStore()

        store.begin_refresh("guide")

        assert isinstance(store.state, Unloaded)
        assert store.is_refreshing("guide")

    def test_publish_during_other_refresh_keeps_marker(self, store, snapshot):
        store.begin_refresh("guide")

        store.publish_channels(snapshot.channels[:1])

        assert isinstance(store.state, Stale)
        assert store.state.refreshing == frozenset({"guide"})

    def test_publishing_guide_keeps_channels(self, store, snapshot):
        before = store.snapshot()

        after = store.publish_guide({}, utc(2025, 1, 2))

        assert after.channels == before.channels
        assert after.categories == before.categories
        assert dict(after.guide) == {}

    def test_published_snapshot_is_not_mutated(self, store, snapshot):
        captured = store.snapshot()

        store.publish_channels(snapshot.channels[:1])

        assert len(captured.channels) == 3
        assert captured.categories == ("News", "Sports")
        assert len(store.snapshot().channels) == 1

    def test_categories_follow_playlist_order(self, snapshot):
        reversed_channels = tuple(reversed(snapshot.channels))

        assert CatalogStore().publish_channels(reversed_channels).categories == ("News", "Sports")

    def test_channel_lookup(self, store):
        current = store.snapshot()

        assert current.get_channel("iptv:1").name == "Sky Sports"
        assert current.get_channel("iptv:99") is None

    def test_reset(self, store):
        store.reset()

        assert isinstance(store.state, Unloaded)


class TestCatalogSnapshot:
    """Test snapshot construction and derived lookups."""

    def test_default_snapshots_are_independent_and_empty(self):
        first, second = CatalogSnapshot(), CatalogSnapshot()

        assert first == second
        assert first.guide == {} and first.channels_by_id == {}
        assert first.stream_origins == frozenset()
        assert first.get_channel("iptv:0") is None
        assert first.programmes_for("bbc.news") == ()

    def test_default_guide_is_read_only(self):
        with pytest.raises(TypeError):
            CatalogSnapshot().guide["bbc.news"] = ()

    def test_stream_origins_follow_the_playlist(self, snapshot):
        assert snapshot.stream_origins == frozenset({"http://streams.test"})

    @pytest.mark.parametrize("url, served", [
        ("http://streams.test/bbc/index.m3u8", True),
        ("http://STREAMS.test/other/segment.ts", True),
        ("https://streams.test/bbc/index.m3u8", False),
        ("http://streams.test:8080/bbc/index.m3u8", False),
        ("http://127.0.0.1/admin", False),
        ("not a url", False),
    ])
    def test_serves_origin(self, snapshot, url, served):
        assert snapshot.serves_origin(url) is served

    def test_stream_origins_change_with_channels(self, snapshot):
        updated = snapshot.with_channels(snapshot.channels[:0], utc(2025, 1, 1, 11))

        assert not updated.serves_origin("http://streams.test/bbc/index.m3u8")
        assert snapshot.serves_origin("http://streams.test/bbc/index.m3u8")
