from datetime import datetime
from typing import Annotated, Literal
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse
from starlette.background import BackgroundTask

from livetv.config import settings
from livetv.dependencies import (
    get_catalog_store,
    get_favorites,
    get_refresher,
    get_relay_base_url,
    get_scheduler,
    get_snapshot,
    get_stream_relay,
)
from livetv.errors import RelayUpstreamFailure
from livetv.schemas import CatalogFilter, FavoritesResponse
from livetv.services import (
    CatalogRefresher,
    CatalogRequest,
    CatalogScheduler,
    CatalogSnapshot,
    CatalogStore,
    FavoritesStore,
    MetaRequest,
    StreamRelay,
    StreamRequest,
    build_manifest,
    dispatch,
    parse_extra,
)
from livetv.utils.timezone import DateFormatError, parse_iso8601_to_utc, utc_now
from livetv.utils.url_helpers import is_remote_url, sanitize_url_for_logging


logger = logging.getLogger(__name__)

main_router = APIRouter()


def _as_of(at: str | None) -> datetime:
    if not at:
        return utc_now()
    try:
        return parse_iso8601_to_utc(at)
    except DateFormatError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


def _isoformat(moment: datetime | None) -> str | None:
    return moment.isoformat() if moment else None


@main_router.get("/")
async def root(scheduler: Annotated[CatalogScheduler, Depends(get_scheduler)]) -> dict:
    """Root endpoint with service information"""
    return {
        "service": "Live TV Catalog",
        "version": "0.1.0",
        "next_playlist_refresh": _isoformat(scheduler.get_next_run_time("playlist")),
        "next_guide_refresh": _isoformat(scheduler.get_next_run_time("guide")),
        "endpoints": {
            "manifest": "/manifest.json - Addon manifest",
            "catalog": "/catalog/tv/{catalog_id}.json - Channel listing (query params: search, genre, skip)",
            "meta": "/meta/tv/{id}.json - Channel detail with now/next programme",
            "stream": "/stream/tv/{id}.json - Playback target",
            "proxy": "/proxy?url= - Stream relay",
            "refresh": "/refresh/{playlist|guide} - Manually trigger a feed refresh (POST)",
            "status": "/status - Catalog status",
            "health": "/health - Health check",
        }
    }


@main_router.get("/health")
async def health_check(scheduler: Annotated[CatalogScheduler, Depends(get_scheduler)]) -> dict:
    """Health check endpoint"""
    return {
        "status": "ok",
        "scheduler_running": scheduler.scheduler.running if scheduler.scheduler else False,
        "next_playlist_refresh": _isoformat(scheduler.get_next_run_time("playlist")),
        "next_guide_refresh": _isoformat(scheduler.get_next_run_time("guide")),
    }


@main_router.get("/status")
async def status(store: Annotated[CatalogStore, Depends(get_catalog_store)]) -> dict:
    """Catalog status: what is published and what is being refreshed"""
    state = store.state
    snapshot = store.snapshot()
    return {
        "status": "running",
        "state": type(state).__name__.lower(),
        "refreshing": sorted(getattr(state, "refreshing", ())),
        "channels": len(snapshot.channels),
        "categories": list(snapshot.categories),
        "guide_channels": len(snapshot.guide),
        "playlist_loaded_at": _isoformat(snapshot.playlist_loaded_at),
        "guide_loaded_at": _isoformat(snapshot.guide_loaded_at),
    }


@main_router.post("/refresh/{feed}")
async def trigger_refresh(
    feed: Literal["playlist", "guide"],
    refresher: Annotated[CatalogRefresher, Depends(get_refresher)],
) -> dict:
    """
    Manually trigger a feed refresh

    The published snapshot is kept when the refresh fails.
    """
    logger.info("Manual %s refresh triggered via API", feed)
    result = await refresher.refresh(feed)

    if result.get("status") == "failed":
        raise HTTPException(status_code=502, detail=result.get("error"))

    return result


@main_router.get("/manifest.json")
async def manifest(snapshot: Annotated[CatalogSnapshot, Depends(get_snapshot)]) -> dict:
    return build_manifest(snapshot)


@main_router.get("/catalog/{type}/{catalog_id}.json")
async def catalog(
    type: str,
    catalog_id: str,
    snapshot: Annotated[CatalogSnapshot, Depends(get_snapshot)],
    favorites: Annotated[FavoritesStore, Depends(get_favorites)],
    scheduler: Annotated[CatalogScheduler, Depends(get_scheduler)],
    search: Annotated[str | None, Query()] = None,
    genre: Annotated[str | None, Query()] = None,
    skip: Annotated[int, Query(ge=0)] = 0,
    at: Annotated[str | None, Query(description="ISO8601 moment for now/next, defaults to now")] = None,
) -> dict:
    """Channel listing of one catalog; previews carry now/next, so it may start a deferred guide load"""
    scheduler.ensure_guide_loaded()
    extra = CatalogFilter(category=genre, search=search, skip=skip)
    return dispatch(CatalogRequest(type, catalog_id, extra), snapshot, _as_of(at), favorites)


@main_router.get("/catalog/{type}/{catalog_id}/{extra}.json")
async def catalog_with_extra(
    type: str,
    catalog_id: str,
    extra: str,
    snapshot: Annotated[CatalogSnapshot, Depends(get_snapshot)],
    favorites: Annotated[FavoritesStore, Depends(get_favorites)],
    scheduler: Annotated[CatalogScheduler, Depends(get_scheduler)],
) -> dict:
    """Channel listing with extras encoded in the path ('search=news&skip=100')"""
    scheduler.ensure_guide_loaded()
    values = parse_extra(extra)
    try:
        catalog_filter = CatalogFilter(
            category=values.get("genre"),
            search=values.get("search"),
            skip=int(values.get("skip", 0)),
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=f"Invalid catalog extra: {extra}") from exc
    return dispatch(CatalogRequest(type, catalog_id, catalog_filter), snapshot, utc_now(), favorites)


@main_router.get("/meta/{type}/{id}.json")
async def meta(
    type: str,
    id: str,
    snapshot: Annotated[CatalogSnapshot, Depends(get_snapshot)],
    scheduler: Annotated[CatalogScheduler, Depends(get_scheduler)],
    at: Annotated[str | None, Query(description="ISO8601 moment for now/next, defaults to now")] = None,
) -> dict:
    """Channel detail; the first one may kick off a deferred guide load"""
    scheduler.ensure_guide_loaded()
    return dispatch(MetaRequest(type, id), snapshot, _as_of(at))


@main_router.get("/stream/{type}/{id}.json")
async def stream(
    type: str,
    id: str,
    snapshot: Annotated[CatalogSnapshot, Depends(get_snapshot)],
    relay_base_url: Annotated[str | None, Depends(get_relay_base_url)],
) -> dict:
    """Playback target of a channel"""
    return dispatch(StreamRequest(type, id, relay_base_url), snapshot, utc_now())


@main_router.api_route("/proxy", methods=["GET", "HEAD"])
async def proxy(
    request: Request,
    url: Annotated[str, Query(min_length=1, description="Origin stream URL")],
    relay: Annotated[StreamRelay, Depends(get_stream_relay)],
    snapshot: Annotated[CatalogSnapshot, Depends(get_snapshot)],
) -> Response:
    """Relay a playback request to the stream origin of a catalog channel"""
    if is_remote_url(url) and not settings.relay_allow_any_origin and not snapshot.serves_origin(url):
        logger.warning("Refusing relay to origin outside the catalog: %s", sanitize_url_for_logging(url))
        return JSONResponse(status_code=403, content={"error": "Origin not in catalog"})

    try:
        relayed = await relay.relay(url, request.method, request.headers)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except RelayUpstreamFailure as exc:
        content = {"error": "Stream unavailable", "details": str(exc)}
        if exc.origin_status is not None:
            content["origin_status"] = exc.origin_status
        return JSONResponse(status_code=exc.status_code, content=content)

    if request.method == "HEAD":
        await relayed.aclose()
        return Response(status_code=relayed.status_code, headers=relayed.headers)

    return StreamingResponse(
        relayed.iter_body(),
        status_code=relayed.status_code,
        headers=relayed.headers,
        background=BackgroundTask(relayed.aclose),
    )


@main_router.get("/favorites/{action}/{id}", response_model=FavoritesResponse)
async def update_favorites(
    action: Literal["add", "remove"],
    id: str,
    favorites: Annotated[FavoritesStore, Depends(get_favorites)],
) -> FavoritesResponse:
    return FavoritesResponse(favorites=favorites.apply(action, id))
