"""
Shared dataclasses used across the catalog pipeline.

Everything here is immutable: a refresh builds new values and publishes them,
readers never see a value change under them.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from types import MappingProxyType
from typing import Literal, Mapping, Sequence

from livetv.utils.url_helpers import origin_of


Feed = Literal["playlist", "guide"]

_EMPTY_GUIDE: Mapping[str, tuple["Programme", ...]] = MappingProxyType({})
_EMPTY_INDEX: Mapping[str, "Channel"] = MappingProxyType({})


@dataclass(frozen=True, slots=True)
class Channel:
    """One playlist entry, as parsed from an #EXTINF block."""
    id: str
    name: str
    url: str
    tvg_id: str
    logo: str = ""
    group: str = "Other"
    tvg_name: str = ""
    country: str = "Unknown"
    language: str = "Unknown"


@dataclass(frozen=True, slots=True)
class Programme:
    """One guide entry. start/stop are tz-aware UTC datetimes."""
    channel: str
    title: str
    start: datetime
    stop: datetime
    description: str | None = None
    category: str | None = None

    def airs_at(self, moment: datetime) -> bool:
        return self.start <= moment < self.stop


@dataclass(frozen=True, slots=True)
class NowNext:
    current: Programme | None = None
    next: Programme | None = None


@dataclass(frozen=True, slots=True)
class CatalogSnapshot:
    """
    One complete, internally consistent view of the catalog.

    Built by CatalogSnapshot.build() or derived from a previous snapshot via
    with_channels()/with_guide(); never mutated after construction.
    """
    channels: tuple[Channel, ...] = ()
    guide: Mapping[str, tuple[Programme, ...]] = field(default_factory=lambda: _EMPTY_GUIDE)
    categories: tuple[str, ...] = ()
    playlist_loaded_at: datetime | None = None
    guide_loaded_at: datetime | None = None
    channels_by_id: Mapping[str, Channel] = field(default_factory=lambda: _EMPTY_INDEX, repr=False)
    stream_origins: frozenset[str] = field(default=frozenset(), repr=False)

    @classmethod
    def build(
        cls,
        channels: Sequence[Channel],
        guide: Mapping[str, Sequence[Programme]] | None = None,
        *,
        playlist_loaded_at: datetime | None = None,
        guide_loaded_at: datetime | None = None,
    ) -> CatalogSnapshot:
        channel_tuple = tuple(channels)
        frozen_guide = MappingProxyType({
            channel_id: tuple(programmes)
            for channel_id, programmes in (guide or {}).items()
        })
        return cls(
            channels=channel_tuple,
            guide=frozen_guide,
            categories=derive_categories(channel_tuple),
            playlist_loaded_at=playlist_loaded_at,
            guide_loaded_at=guide_loaded_at,
            channels_by_id=MappingProxyType({channel.id: channel for channel in channel_tuple}),
            stream_origins=derive_stream_origins(channel_tuple),
        )

    def with_channels(self, channels: Sequence[Channel], loaded_at: datetime) -> CatalogSnapshot:
        channel_tuple = tuple(channels)
        return replace(
            self,
            channels=channel_tuple,
            categories=derive_categories(channel_tuple),
            playlist_loaded_at=loaded_at,
            channels_by_id=MappingProxyType({channel.id: channel for channel in channel_tuple}),
            stream_origins=derive_stream_origins(channel_tuple),
        )

    def with_guide(self, guide: Mapping[str, Sequence[Programme]], loaded_at: datetime) -> CatalogSnapshot:
        frozen_guide = MappingProxyType({
            channel_id: tuple(programmes) for channel_id, programmes in guide.items()
        })
        return replace(self, guide=frozen_guide, guide_loaded_at=loaded_at)

    def get_channel(self, channel_id: str) -> Channel | None:
        return self.channels_by_id.get(channel_id)

    def programmes_for(self, guide_id: str) -> tuple[Programme, ...]:
        return self.guide.get(guide_id, ())

    @property
    def guide_loaded(self) -> bool:
        return self.guide_loaded_at is not None

    def serves_origin(self, url: str) -> bool:
        """True when some channel streams from the same scheme://host[:port] as url."""
        site = origin_of(url)
        return site is not None and site.lower() in self.stream_origins


def derive_categories(channels: Sequence[Channel]) -> tuple[str, ...]:
    """Distinct group labels in playlist order."""
    return tuple(dict.fromkeys(channel.group for channel in channels))


def derive_stream_origins(channels: Sequence[Channel]) -> frozenset[str]:
    origins = (origin_of(channel.url) for channel in channels)
    return frozenset(site.lower() for site in origins if site)


EMPTY_SNAPSHOT = CatalogSnapshot()


@dataclass(frozen=True, slots=True)
class Unloaded:
    """Nothing published yet."""
    refreshing: frozenset[Feed] = frozenset()


@dataclass(frozen=True, slots=True)
class Loaded:
    snapshot: CatalogSnapshot


@dataclass(frozen=True, slots=True)
class Stale:
    """A snapshot is published and at least one feed is being refreshed."""
    snapshot: CatalogSnapshot
    refreshing: frozenset[Feed]


SnapshotState = Unloaded | Loaded | Stale


__all__ = [
    "Channel",
    "Programme",
    "NowNext",
    "CatalogSnapshot",
    "EMPTY_SNAPSHOT",
    "Feed",
    "Unloaded",
    "Loaded",
    "Stale",
    "SnapshotState",
    "derive_categories",
    "derive_stream_origins",
]
