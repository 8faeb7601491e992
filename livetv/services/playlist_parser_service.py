from hashlib import sha1
from typing import Literal
import logging
import re

from livetv.services.catalog_types import Channel


logger = logging.getLogger(__name__)

ATTRIBUTE_PATTERN = re.compile(r'([A-Za-z0-9_-]+)\s*=\s*"([^"]*)"')

EXTINF_PREFIX = "#EXTINF:"
EXTGRP_PREFIX = "#EXTGRP:"
ID_PREFIX = "iptv:"


def parse_m3u(
    text: str,
    *,
    default_category: str = "Other",
    id_mode: Literal["position", "url"] = "position",
) -> list[Channel]:
    """
    Parse an extended-M3U playlist into channels

    Args:
        text: Full playlist document
        default_category: Group used when an entry carries none
        id_mode: 'position' derives ids from the entry index, 'url' from the origin URL

    Returns:
        Channels in playlist order. Entries without a playback URL are dropped.
    """
    lines = text.splitlines()
    if not lines or not lines[0].lstrip("\ufeff").strip().upper().startswith("#EXTM3U"):
        logger.warning("Playlist has no #EXTM3U header, parsing anyway")

    channels: list[Channel] = []
    seen_ids: set[str] = set()
    pending: str | None = None
    pending_group: str | None = None
    skipped = 0

    for raw_line in lines:
        line = raw_line.strip()
        if not line:
            continue

        if line.upper().startswith(EXTINF_PREFIX):
            if pending is not None:
                logger.warning("Dropping playlist entry without URL: %s", _entry_name(pending))
                skipped += 1
            pending = line
            pending_group = None
            continue

        if line.upper().startswith(EXTGRP_PREFIX):
            pending_group = line[len(EXTGRP_PREFIX):].strip() or None
            continue

        if line.startswith("#"):
            continue

        if pending is None:
            logger.debug("Ignoring URL line outside an entry: %s", line[:80])
            continue

        if "://" not in line:
            logger.warning("Dropping playlist entry with invalid URL %r: %s", line[:80], _entry_name(pending))
            skipped += 1
            pending = None
            continue

        index = len(channels)
        channel_id = _make_channel_id(index, line, id_mode, seen_ids)
        seen_ids.add(channel_id)
        channels.append(_build_channel(channel_id, index, pending, line, pending_group, default_category))
        pending = None
        pending_group = None

    if pending is not None:
        logger.warning("Dropping trailing playlist entry without URL: %s", _entry_name(pending))
        skipped += 1

    logger.info(f"Playlist parsing complete: {len(channels)} channels, {skipped} entries skipped")
    return channels


def _build_channel(
    channel_id: str,
    index: int,
    metadata: str,
    url: str,
    extgrp: str | None,
    default_category: str,
) -> Channel:
    attributes, name = split_extinf(metadata)
    name = name or f"Channel {index}"
    group = attributes.get("group-title") or extgrp or default_category

    return Channel(
        id=channel_id,
        name=name,
        url=url,
        tvg_id=attributes.get("tvg-id") or name,
        logo=attributes.get("tvg-logo", ""),
        group=group,
        tvg_name=attributes.get("tvg-name", ""),
        country=attributes.get("tvg-country") or "Unknown",
        language=attributes.get("tvg-language") or "Unknown",
    )


def split_extinf(line: str) -> tuple[dict[str, str], str]:
    """
    Split an #EXTINF line into its key="value" attributes and the channel name.

    The name starts after the first comma outside double quotes, so commas
    inside attribute values and inside the name itself are both kept.
    """
    body = line[len(EXTINF_PREFIX):] if line.upper().startswith(EXTINF_PREFIX) else line

    separator = -1
    in_quotes = False
    for position, char in enumerate(body):
        if char == '"':
            in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            separator = position
            break

    if separator == -1:
        head, name = body, ""
    else:
        head, name = body[:separator], body[separator + 1:]

    attributes = {key.lower(): value.strip() for key, value in ATTRIBUTE_PATTERN.findall(head)}
    return attributes, name.strip()


def _make_channel_id(index: int, url: str, id_mode: str, seen_ids: set[str]) -> str:
    if id_mode == "position":
        return f"{ID_PREFIX}{index}"

    base = f"{ID_PREFIX}{sha1(url.encode('utf-8')).hexdigest()[:12]}"
    candidate = base
    duplicate = 1
    while candidate in seen_ids:
        duplicate += 1
        candidate = f"{base}-{duplicate}"
    return candidate


def _entry_name(metadata: str) -> str:
    return split_extinf(metadata)[1] or metadata[:80]
