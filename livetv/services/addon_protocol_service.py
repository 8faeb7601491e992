"""
Addon Protocol Service

Maps the fixed resource protocol (manifest, catalog, meta, stream) onto the
catalog query operations. Requests are a closed set of kinds and are
dispatched with an exhaustive match.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import assert_never
from urllib.parse import parse_qsl, quote

from livetv.config import settings
from livetv.errors import ResourceNotFound
from livetv.schemas import CatalogFilter
from livetv.services.catalog_query_service import (
    describe,
    filter_channels,
    get_detail,
    get_playback_target,
)
from livetv.services.catalog_types import CatalogSnapshot, Channel
from livetv.services.now_next_service import resolve


logger = logging.getLogger(__name__)

ADDON_ID = "com.livetv.catalog"
ADDON_VERSION = "0.1.0"
CONTENT_TYPE = "tv"
ID_PREFIX = "iptv:"
ALL_CATALOG_ID = "iptv_all"
FAVORITES_CATALOG_ID = "iptv_favorites"
GROUP_CATALOG_PREFIX = "iptv_group_"


@dataclass(frozen=True, slots=True)
class CatalogRequest:
    type: str
    catalog_id: str
    extra: CatalogFilter


@dataclass(frozen=True, slots=True)
class MetaRequest:
    type: str
    id: str


@dataclass(frozen=True, slots=True)
class StreamRequest:
    type: str
    id: str
    relay_base_url: str | None = None


ResourceRequest = CatalogRequest | MetaRequest | StreamRequest


class FavoritesStore:
    """In-process set of favourite channel ids, not persisted."""

    def __init__(self) -> None:
        self._ids: set[str] = set()

    def apply(self, action: str, channel_id: str) -> list[str]:
        if action == "add":
            self._ids.add(channel_id)
        elif action == "remove":
            self._ids.discard(channel_id)
        else:
            raise ValueError(f"Unknown favorites action: {action}")
        return self.list()

    def list(self) -> list[str]:
        return sorted(self._ids)

    def __contains__(self, channel_id: str) -> bool:
        return channel_id in self._ids


favorites_store = FavoritesStore()


def group_catalog_id(group: str) -> str:
    """Catalog id of a category; percent-encoding keeps distinct labels distinct."""
    return GROUP_CATALOG_PREFIX + quote(group, safe="")


def build_manifest(snapshot: CatalogSnapshot) -> dict:
    """Manifest with one catalog per category plus the 'all' and 'favorites' catalogs"""
    catalogs = [
        {"type": CONTENT_TYPE, "id": group_catalog_id(group), "name": f"IPTV - {group}"}
        for group in snapshot.categories
    ]
    catalogs.append({
        "type": CONTENT_TYPE,
        "id": ALL_CATALOG_ID,
        "name": "IPTV - All Channels",
        "extra": [
            {"name": "search", "isRequired": False},
            {"name": "genre", "options": list(snapshot.categories), "isRequired": False},
            {"name": "skip", "isRequired": False},
        ],
    })
    catalogs.append({"type": CONTENT_TYPE, "id": FAVORITES_CATALOG_ID, "name": "IPTV - Favorites"})

    return {
        "id": ADDON_ID,
        "version": ADDON_VERSION,
        "name": "Live TV Catalog",
        "description": "Live TV channels with now/next programme guide",
        "logo": settings.default_poster,
        "resources": ["catalog", "meta", "stream"],
        "types": [CONTENT_TYPE],
        "idPrefixes": [ID_PREFIX],
        "catalogs": catalogs,
    }


def dispatch(
    request: ResourceRequest,
    snapshot: CatalogSnapshot,
    as_of: datetime,
    favorites: FavoritesStore = favorites_store,
) -> dict:
    """
    Answer one protocol request against a captured snapshot

    Raises:
        ResourceNotFound: For unknown types, catalogs and ids
    """
    if request.type != CONTENT_TYPE:
        raise ResourceNotFound(f"Unsupported type: {request.type}")

    match request:
        case CatalogRequest(catalog_id=catalog_id, extra=extra):
            channels = _catalog_channels(snapshot, catalog_id, extra, favorites)
            page = channels[extra.skip:extra.skip + settings.catalog_page_size]
            return {"metas": [_meta_preview(snapshot, channel, as_of) for channel in page]}

        case MetaRequest(id=channel_id):
            detail = get_detail(snapshot, channel_id, as_of)
            if detail is None:
                raise ResourceNotFound(f"Channel not found: {channel_id}")
            return {"meta": {
                "id": detail.id,
                "type": CONTENT_TYPE,
                "name": detail.name,
                "poster": detail.artwork_url or settings.default_poster,
                "logo": detail.artwork_url or None,
                "posterShape": "square",
                "description": detail.description,
                "genres": [detail.category],
                "releaseInfo": _release_info(detail.country, detail.language),
            }}

        case StreamRequest(id=channel_id, relay_base_url=relay_base_url):
            target = get_playback_target(snapshot, channel_id, relay_base_url)
            if target is None:
                raise ResourceNotFound(f"Channel not found: {channel_id}")
            return {"streams": [{
                "title": target.name,
                "url": target.url,
                "behaviorHints": {
                    "notWebReady": True,
                    "proxyHeaders": {"request": target.request_headers},
                },
            }]}

        case _:
            assert_never(request)


def _catalog_channels(
    snapshot: CatalogSnapshot,
    catalog_id: str,
    extra: CatalogFilter,
    favorites: FavoritesStore,
) -> list[Channel]:
    if catalog_id == ALL_CATALOG_ID:
        return filter_channels(snapshot, extra)

    if catalog_id == FAVORITES_CATALOG_ID:
        channels = filter_channels(snapshot, extra)
        return [channel for channel in channels if channel.id in favorites]

    groups = {group_catalog_id(group): group for group in snapshot.categories}
    group = groups.get(catalog_id)
    if group is None and catalog_id.startswith(GROUP_CATALOG_PREFIX):
        # The HTTP layer already percent-decoded a single-encoded path segment
        label = catalog_id[len(GROUP_CATALOG_PREFIX):]
        group = label if label in snapshot.categories else None
    if group is None:
        if catalog_id.startswith(GROUP_CATALOG_PREFIX):
            # Category vanished in a refresh; an empty listing rather than an error
            logger.debug(f"Catalog {catalog_id} has no channels in current snapshot")
            return []
        raise ResourceNotFound(f"Unknown catalog: {catalog_id}")

    return filter_channels(snapshot, extra.model_copy(update={"category": group}))


def _meta_preview(snapshot: CatalogSnapshot, channel: Channel, as_of: datetime) -> dict:
    now_next = resolve(snapshot, channel.tvg_id, as_of)
    return {
        "id": channel.id,
        "type": CONTENT_TYPE,
        "name": channel.name,
        "poster": channel.logo or settings.default_poster,
        "posterShape": "square",
        "description": describe(channel, now_next),
        "genres": [channel.group],
        "releaseInfo": _release_info(channel.country, channel.language),
    }


def _release_info(country: str, language: str) -> str:
    return f"{country} ({language})" if language else country


def parse_extra(extra: str | None) -> dict[str, str]:
    """Decode a 'search=foo&genre=News&skip=100' path segment"""
    if not extra:
        return {}
    return dict(parse_qsl(extra, keep_blank_values=False))
