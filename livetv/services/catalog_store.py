"""
Catalog Store

Holds the one published catalog state. Readers take snapshot() without any
locking; writers build a new snapshot and swap the state reference in a
single assignment, serialized among themselves by a writer lock.
"""
from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Mapping, Sequence

from livetv.services.catalog_types import (
    EMPTY_SNAPSHOT,
    CatalogSnapshot,
    Channel,
    Feed,
    Loaded,
    Programme,
    SnapshotState,
    Stale,
    Unloaded,
)
from livetv.utils.timezone import utc_now


logger = logging.getLogger(__name__)


class CatalogStore:
    """Single-writer, multi-reader holder of the published catalog snapshot."""

    def __init__(self) -> None:
        self._state: SnapshotState = Unloaded()
        self._write_lock = threading.Lock()

    @property
    def state(self) -> SnapshotState:
        return self._state

    def snapshot(self) -> CatalogSnapshot:
        """The currently published snapshot; an empty one before the first publish."""
        match self._state:
            case Unloaded():
                return EMPTY_SNAPSHOT
            case Loaded(snapshot=snapshot) | Stale(snapshot=snapshot):
                return snapshot

    def is_refreshing(self, feed: Feed) -> bool:
        return feed in _refreshing(self._state)

    def begin_refresh(self, feed: Feed) -> None:
        """Mark a feed as being refreshed; the published snapshot stays readable."""
        with self._write_lock:
            refreshing = _refreshing(self._state) | {feed}
            self._state = _with_refreshing(self._state, refreshing)

    def end_refresh(self, feed: Feed) -> None:
        """Clear the refreshing mark, whether or not the refresh published anything."""
        with self._write_lock:
            refreshing = _refreshing(self._state) - {feed}
            self._state = _with_refreshing(self._state, refreshing)

    def publish_channels(self, channels: Sequence[Channel], loaded_at: datetime | None = None) -> CatalogSnapshot:
        """Publish a new snapshot with these channels and the current guide."""
        loaded_at = loaded_at or utc_now()
        with self._write_lock:
            snapshot = self.snapshot().with_channels(channels, loaded_at)
            self._state = _with_refreshing(Loaded(snapshot), _refreshing(self._state))
        logger.info(
            "Published snapshot: %s channels, %s categories",
            len(snapshot.channels),
            len(snapshot.categories),
        )
        return snapshot

    def publish_guide(
        self,
        guide: Mapping[str, Sequence[Programme]],
        loaded_at: datetime | None = None,
    ) -> CatalogSnapshot:
        """Publish a new snapshot with this guide and the current channels."""
        loaded_at = loaded_at or utc_now()
        with self._write_lock:
            snapshot = self.snapshot().with_guide(guide, loaded_at)
            self._state = _with_refreshing(Loaded(snapshot), _refreshing(self._state))
        logger.info("Published snapshot: guide for %s channels", len(snapshot.guide))
        return snapshot

    def reset(self) -> None:
        """Drop everything (mainly for testing)."""
        with self._write_lock:
            self._state = Unloaded()


def _refreshing(state: SnapshotState) -> frozenset[Feed]:
    match state:
        case Unloaded(refreshing=refreshing) | Stale(refreshing=refreshing):
            return refreshing
        case Loaded():
            return frozenset()


def _with_refreshing(state: SnapshotState, refreshing: frozenset[Feed]) -> SnapshotState:
    match state:
        case Unloaded():
            return Unloaded(refreshing)
        case Loaded(snapshot=snapshot) | Stale(snapshot=snapshot):
            return Stale(snapshot, refreshing) if refreshing else Loaded(snapshot)


catalog_store = CatalogStore()
