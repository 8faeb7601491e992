from bisect import bisect_right
from datetime import datetime
from typing import Sequence

from livetv.services.catalog_types import CatalogSnapshot, NowNext, Programme
from livetv.utils.timezone import ensure_utc


def resolve(snapshot: CatalogSnapshot, guide_id: str | None, as_of: datetime) -> NowNext:
    """
    Resolve the programme airing at as_of and the one after it

    Works on the snapshot the caller captured, so a refresh landing mid-call
    does not change the answer.

    Args:
        snapshot: Catalog snapshot to read the guide from
        guide_id: Guide channel id (the channel's tvg-id)
        as_of: Moment to resolve; naive values are read as UTC

    Returns:
        NowNext with current and next programme, either of which may be None
    """
    if not guide_id:
        return NowNext()
    return resolve_in_timeline(snapshot.programmes_for(guide_id), as_of)


def resolve_in_timeline(programmes: Sequence[Programme], as_of: datetime) -> NowNext:
    """
    Now/next over a start-ordered programme sequence

    Current is the first programme whose [start, stop) contains as_of; next is its
    successor in sequence order. Without a current programme, next is the first
    programme starting after as_of.
    """
    if not programmes:
        return NowNext()

    moment = ensure_utc(as_of)
    started = bisect_right([programme.start for programme in programmes], moment)

    # Only programmes that already started can contain the moment
    for index in range(started):
        if programmes[index].airs_at(moment):
            successor = programmes[index + 1] if index + 1 < len(programmes) else None
            return NowNext(current=programmes[index], next=successor)

    upcoming = programmes[started] if started < len(programmes) else None
    return NowNext(current=None, next=upcoming)
