"""
FastAPI dependencies

Every route reaches the catalog services through these getters, so tests can
swap any of them with app.dependency_overrides.
"""
import logging

from fastapi import Depends, Request

from livetv.config import settings
from livetv.services.addon_protocol_service import FavoritesStore, favorites_store
from livetv.services.catalog_store import CatalogStore, catalog_store
from livetv.services.catalog_types import CatalogSnapshot
from livetv.services.refresh_service import CatalogRefresher, catalog_refresher
from livetv.services.scheduler_service import CatalogScheduler, catalog_scheduler
from livetv.services.stream_relay_service import StreamRelay, stream_relay


logger = logging.getLogger(__name__)


def get_catalog_store() -> CatalogStore:
    return catalog_store


def get_snapshot(store: CatalogStore = Depends(get_catalog_store)) -> CatalogSnapshot:
    """Capture the published snapshot once per request"""
    return store.snapshot()


def get_refresher() -> CatalogRefresher:
    return catalog_refresher


def get_scheduler() -> CatalogScheduler:
    return catalog_scheduler


def get_stream_relay() -> StreamRelay:
    return stream_relay


def get_favorites() -> FavoritesStore:
    return favorites_store


def get_relay_base_url(request: Request) -> str | None:
    """
    Base URL used to build /proxy playback URLs, None when playback goes to the origin directly.

    PUBLIC_BASE_URL wins; otherwise the URL is rebuilt from the request.
    X-Forwarded-Proto / X-Forwarded-Host are only honoured with TRUST_FORWARDED_HEADERS.
    """
    if not settings.relay_playback:
        return None
    if settings.public_base_url:
        return settings.public_base_url

    scheme = request.url.scheme
    host = request.headers.get("host") or request.url.netloc
    if settings.trust_forwarded_headers:
        scheme = request.headers.get("x-forwarded-proto", scheme).split(",")[0].strip()
        host = request.headers.get("x-forwarded-host") or host
    return f"{scheme}://{host.split(',')[0].strip()}"
