"""
Tests for now/next programme resolution.
"""
from datetime import datetime

from livetv.services.catalog_types import CatalogSnapshot, Programme
from livetv.services.now_next_service import resolve, resolve_in_timeline

from tests.conftest import utc


def programme(title: str, start: datetime, stop: datetime, channel: str = "bbc.news") -> Programme:
    return Programme(channel=channel, title=title, start=start, stop=stop)


class TestResolve:
    """Test resolution against a snapshot's guide."""

    def test_current_and_next(self, snapshot):
        result = resolve(snapshot, "bbc.news", utc(2025, 1, 1, 10, 15))

        assert result.current.title == "Morning"
        assert result.next.title == "Noon"

    def test_boundary_belongs_to_later_programme(self, snapshot):
        result = resolve(snapshot, "bbc.news", utc(2025, 1, 1, 10, 30))

        assert result.current.title == "Noon"
        assert result.next is None

    def test_after_last_programme(self, snapshot):
        result = resolve(snapshot, "bbc.news", utc(2025, 1, 1, 11, 0))

        assert result.current is None
        assert result.next is None

    def test_before_first_programme(self, snapshot):
        result = resolve(snapshot, "bbc.news", utc(2025, 1, 1, 9, 0))

        assert result.current is None
        assert result.next.title == "Morning"

    def test_unknown_guide_id(self, snapshot):
        result = resolve(snapshot, "missing.channel", utc(2025, 1, 1, 10, 15))

        assert result.current is None
        assert result.next is None

    def test_empty_guide_id(self, snapshot):
        assert resolve(snapshot, "", utc(2025, 1, 1, 10, 15)).current is None

    def test_naive_moment_is_read_as_utc(self, snapshot):
        result = resolve(snapshot, "bbc.news", datetime(2025, 1, 1, 10, 15))

        assert result.current.title == "Morning"

    def test_snapshot_without_guide(self, snapshot):
        bare = CatalogSnapshot.build(snapshot.channels)

        assert resolve(bare, "bbc.news", utc(2025, 1, 1, 10, 15)).current is None


class TestResolveInTimeline:
    """Test gaps and overlaps in a single channel timeline."""

    def test_gap_returns_first_upcoming(self):
        timeline = (
            programme("A", utc(2025, 1, 1, 10), utc(2025, 1, 1, 11)),
            programme("B", utc(2025, 1, 1, 12), utc(2025, 1, 1, 13)),
            programme("C", utc(2025, 1, 1, 13), utc(2025, 1, 1, 14)),
        )

        result = resolve_in_timeline(timeline, utc(2025, 1, 1, 11, 30))

        assert result.current is None
        assert result.next.title == "B"

    def test_overlap_first_match_wins(self):
        timeline = (
            programme("Long", utc(2025, 1, 1, 10), utc(2025, 1, 1, 12)),
            programme("Short", utc(2025, 1, 1, 11), utc(2025, 1, 1, 11, 30)),
            programme("After", utc(2025, 1, 1, 12), utc(2025, 1, 1, 13)),
        )

        result = resolve_in_timeline(timeline, utc(2025, 1, 1, 11, 15))

        assert result.current.title == "Long"
        assert result.next.title == "Short"

    def test_current_is_last_programme(self):
        timeline = (programme("Only", utc(2025, 1, 1, 10), utc(2025, 1, 1, 11)),)

        result = resolve_in_timeline(timeline, utc(2025, 1, 1, 10, 59))

        assert result.current.title == "Only"
        assert result.next is None

    def test_empty_timeline(self):
        result = resolve_in_timeline((), utc(2025, 1, 1, 10))

        assert result.current is None
        assert result.next is None
