"""
Catalog Query Service

Read-side operations over a captured catalog snapshot: listing, detail with
now/next programme, and playback target resolution.
"""
from datetime import datetime
import logging

from livetv.config import settings
from livetv.schemas import CatalogFilter, CatalogItem, ChannelDetail, PlaybackTarget, ProgrammeResponse
from livetv.services.catalog_types import CatalogSnapshot, Channel, NowNext, Programme
from livetv.services.now_next_service import resolve
from livetv.utils.url_helpers import build_relay_url, origin_of

logger = logging.getLogger(__name__)


def filter_channels(snapshot: CatalogSnapshot, catalog_filter: CatalogFilter) -> list[Channel]:
    """Channels matching the filter, in playlist order"""
    channels: list[Channel] = list(snapshot.channels)

    if catalog_filter.category:
        channels = [channel for channel in channels if channel.group == catalog_filter.category]

    if catalog_filter.search:
        needle = catalog_filter.search.lower()
        channels = [
            channel for channel in channels
            if needle in channel.name.lower() or needle in channel.tvg_id.lower()
        ]

    return channels


def list_catalog(snapshot: CatalogSnapshot, catalog_filter: CatalogFilter | None = None) -> list[CatalogItem]:
    """
    List catalog entries

    Args:
        snapshot: Catalog snapshot to read
        catalog_filter: Optional category/search filter

    Returns:
        Matching channels in playlist-document order
    """
    channels = filter_channels(snapshot, catalog_filter or CatalogFilter())
    logger.debug(f"Catalog listing: {len(channels)} of {len(snapshot.channels)} channels")
    return [to_catalog_item(channel) for channel in channels]


def to_catalog_item(channel: Channel) -> CatalogItem:
    return CatalogItem(
        id=channel.id,
        name=channel.name,
        artwork_url=channel.logo,
        category=channel.group,
    )


def get_detail(snapshot: CatalogSnapshot, channel_id: str, as_of: datetime) -> ChannelDetail | None:
    """
    Channel detail with programme-derived description

    Returns:
        ChannelDetail, or None when the id is not in this snapshot
    """
    channel = snapshot.get_channel(channel_id)
    if channel is None:
        logger.debug(f"Channel {channel_id} not found in current snapshot")
        return None

    now_next = resolve(snapshot, channel.tvg_id, as_of)

    return ChannelDetail(
        id=channel.id,
        name=channel.name,
        artwork_url=channel.logo,
        category=channel.group,
        description=describe(channel, now_next),
        country=channel.country,
        language=channel.language,
        guide_id=channel.tvg_id,
        now=_programme_response(now_next.current),
        next=_programme_response(now_next.next),
    )


def describe(channel: Channel, now_next: NowNext) -> str:
    """'Now/Next' text when something is airing, else the channel's default description"""
    current = now_next.current
    if current is None:
        return channel.tvg_name or settings.default_description

    next_title = now_next.next.title if now_next.next else "N/A"
    return f"Now: {current.title}\nNext: {next_title}\n{current.description or ''}".rstrip("\n")


def get_playback_target(
    snapshot: CatalogSnapshot,
    channel_id: str,
    relay_base_url: str | None = None,
) -> PlaybackTarget | None:
    """
    Resolve where the player should fetch a channel's stream

    Args:
        snapshot: Catalog snapshot to read
        channel_id: Catalog id of the channel
        relay_base_url: Base URL of this service; when given the origin is wrapped in a /proxy URL

    Returns:
        PlaybackTarget, or None when the id is not in this snapshot
    """
    channel = snapshot.get_channel(channel_id)
    if channel is None:
        return None

    site = origin_of(channel.url)
    request_headers = {"Accept": "*/*", "User-Agent": "Mozilla/5.0"}
    if site:
        request_headers["Referer"] = site
        request_headers["Origin"] = site

    url = build_relay_url(relay_base_url, channel.url) if relay_base_url else channel.url

    return PlaybackTarget(
        id=channel.id,
        name=channel.name,
        origin_url=channel.url,
        url=url,
        relayed=relay_base_url is not None,
        request_headers=request_headers,
    )


def _programme_response(programme: Programme | None) -> ProgrammeResponse | None:
    if programme is None:
        return None
    return ProgrammeResponse(
        title=programme.title,
        start=programme.start.isoformat(),
        stop=programme.stop.isoformat(),
        description=programme.description,
        category=programme.category,
    )
