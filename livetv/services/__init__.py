"""
Services package for the Live TV catalog

This package contains all business logic and service layer components.
"""
from livetv.services.addon_protocol_service import (
    CatalogRequest,
    FavoritesStore,
    MetaRequest,
    ResourceRequest,
    StreamRequest,
    build_manifest,
    dispatch,
    parse_extra,
)
from livetv.services.catalog_query_service import get_detail, get_playback_target, list_catalog
from livetv.services.catalog_store import CatalogStore, catalog_store
from livetv.services.catalog_types import CatalogSnapshot, Channel, NowNext, Programme
from livetv.services.now_next_service import resolve
from livetv.services.playlist_parser_service import parse_m3u
from livetv.services.refresh_service import CatalogRefresher, catalog_refresher
from livetv.services.scheduler_service import CatalogScheduler, catalog_scheduler
from livetv.services.stream_relay_service import StreamRelay, stream_relay
from livetv.services.xmltv_parser_service import parse_xmltv

__all__ = [
    'CatalogRequest',
    'MetaRequest',
    'StreamRequest',
    'ResourceRequest',
    'FavoritesStore',
    'build_manifest',
    'dispatch',
    'parse_extra',
    'list_catalog',
    'get_detail',
    'get_playback_target',
    'CatalogStore',
    'catalog_store',
    'CatalogSnapshot',
    'Channel',
    'Programme',
    'NowNext',
    'resolve',
    'parse_m3u',
    'parse_xmltv',
    'CatalogRefresher',
    'catalog_refresher',
    'CatalogScheduler',
    'catalog_scheduler',
    'StreamRelay',
    'stream_relay',
]
