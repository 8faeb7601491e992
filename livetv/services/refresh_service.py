"""
Catalog Refresh Service

Coordinates fetching, parsing and publishing of the playlist and guide feeds.
Each feed refreshes independently; a failed refresh keeps the published snapshot.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Literal

import httpx

from livetv.config import CustomSettings, settings
from livetv.errors import SourceFetchFailure, SourceParseFailure
from livetv.services.catalog_store import CatalogStore, catalog_store
from livetv.services.catalog_types import Feed
from livetv.services.feed_downloader_service import load_guide, load_playlist
from livetv.services.fetch_coordinator import FetchCoordinator
from livetv.utils.timezone import utc_now
from livetv.utils.url_helpers import sanitize_url_for_logging


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RefreshSummary:
    feed: Feed
    source: str | None
    started_at: datetime
    completed_at: datetime
    status: Literal["success", "failed", "unconfigured"]
    channels: int = 0
    categories: int = 0
    guide_channels: int = 0
    programmes: int = 0
    error: str | None = None

    @property
    def duration_seconds(self) -> float:
        return max(0.0, (self.completed_at - self.started_at).total_seconds())

    @property
    def succeeded(self) -> bool:
        return self.status != "failed"

    def to_dict(self) -> dict:
        payload = {
            "status": self.status,
            "feed": self.feed,
            "source": sanitize_url_for_logging(self.source) if self.source else None,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat(),
            "duration_seconds": self.duration_seconds,
        }
        if self.feed == "playlist":
            payload["channels"] = self.channels
            payload["categories"] = self.categories
        else:
            payload["guide_channels"] = self.guide_channels
            payload["programmes"] = self.programmes
        if self.error:
            payload["error"] = self.error
        return payload


class CatalogRefresher:
    """Refreshes the playlist and guide feeds into a CatalogStore."""

    def __init__(
        self,
        store: CatalogStore,
        config: CustomSettings = settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.store = store
        self.config = config
        self._transport = transport
        self._coordinators: dict[Feed, FetchCoordinator] = {
            "playlist": FetchCoordinator("playlist"),
            "guide": FetchCoordinator("guide"),
        }

    def is_refreshing(self, feed: Feed) -> bool:
        return self._coordinators[feed].is_fetching()

    async def refresh(self, feed: Feed) -> dict:
        """Single-flight refresh of one feed. Returns a result dict (success, failed, skipped, unconfigured)."""
        match feed:
            case "playlist":
                return await self._coordinators[feed].execute(self._refresh_playlist)
            case "guide":
                return await self._coordinators[feed].execute(self._refresh_guide)
        raise ValueError(f"Unknown feed: {feed}")

    async def refresh_playlist(self) -> dict:
        return await self.refresh("playlist")

    async def refresh_guide(self) -> dict:
        return await self.refresh("guide")

    async def _refresh_playlist(self) -> dict:
        source = self.config.playlist_url
        started_at = utc_now()

        if not source:
            # Absent playlist: publish an empty catalog once so the state leaves Unloaded
            if self.store.snapshot().playlist_loaded_at is None:
                self.store.publish_channels([], started_at)
            logger.warning("PLAYLIST_URL not configured - catalog is empty")
            return RefreshSummary("playlist", None, started_at, utc_now(), "unconfigured").to_dict()

        logger.info("Playlist refresh started at %s", started_at.isoformat())
        self.store.begin_refresh("playlist")
        try:
            channels = await load_playlist(
                source,
                timeout=self.config.playlist_fetch_timeout_sec,
                max_retries=self.config.feed_fetch_max_retries,
                default_category=self.config.default_category,
                id_mode=self.config.channel_id_mode,
                transport=self._transport,
            )
        except (SourceFetchFailure, SourceParseFailure) as exc:
            logger.error("Playlist refresh failed, keeping previous snapshot: %s", exc)
            return RefreshSummary("playlist", source, started_at, utc_now(), "failed", error=str(exc)).to_dict()
        finally:
            self.store.end_refresh("playlist")

        snapshot = self.store.publish_channels(channels)
        logger.info("Playlist refresh completed: %s channels", len(snapshot.channels))
        return RefreshSummary(
            "playlist",
            source,
            started_at,
            utc_now(),
            "success",
            channels=len(snapshot.channels),
            categories=len(snapshot.categories),
        ).to_dict()

    async def _refresh_guide(self) -> dict:
        source = self.config.guide_url
        started_at = utc_now()

        if not source:
            logger.warning("GUIDE_URL not configured - catalog has no programme data")
            return RefreshSummary("guide", None, started_at, utc_now(), "unconfigured").to_dict()

        logger.info("Guide refresh started at %s", started_at.isoformat())
        self.store.begin_refresh("guide")
        try:
            guide = await load_guide(
                source,
                timeout=self.config.guide_fetch_timeout_sec,
                max_retries=self.config.feed_fetch_max_retries,
                parse_timeout_seconds=self.config.guide_parse_timeout_sec,
                transport=self._transport,
            )
        except (SourceFetchFailure, SourceParseFailure) as exc:
            # Best effort: playback stays available without programme data
            logger.error("Guide refresh failed, keeping previous guide: %s", exc)
            return RefreshSummary("guide", source, started_at, utc_now(), "failed", error=str(exc)).to_dict()
        finally:
            self.store.end_refresh("guide")

        snapshot = self.store.publish_guide(guide)
        programmes = sum(len(entries) for entries in snapshot.guide.values())
        logger.info("Guide refresh completed: %s channels, %s programmes", len(snapshot.guide), programmes)
        return RefreshSummary(
            "guide",
            source,
            started_at,
            utc_now(),
            "success",
            guide_channels=len(snapshot.guide),
            programmes=programmes,
        ).to_dict()


catalog_refresher = CatalogRefresher(catalog_store)
