from collections import defaultdict
from typing import Optional
import logging

from lxml import etree # type: ignore

from livetv.errors import SourceParseFailure
from livetv.services.catalog_types import Programme
from livetv.utils.timezone import DateFormatError, parse_xmltv_time

logger = logging.getLogger(__name__)


def parse_xmltv(document: str | bytes, source: str = "guide") -> dict[str, tuple[Programme, ...]]:
    """
    Parse XMLTV document and return programmes grouped by guide channel id

    Args:
        document: XMLTV document. Bytes keep the encoding declared in the XML prolog,
            text is read as UTF-8.
        source: Name used in log and error messages

    Returns:
        Mapping of channel id -> programmes ordered by start time. Programmes sharing
        a start time keep their document order.

    Raises:
        SourceParseFailure: If the document is not well-formed XML or not an XMLTV <tv> tree
    """
    logger.debug(f"Parsing XMLTV document from {source}")

    if isinstance(document, str):
        payload = document.encode("utf-8")
        parser = etree.XMLParser(huge_tree=True, resolve_entities=False, no_network=True, encoding="utf-8")
    else:
        payload = document
        parser = etree.XMLParser(huge_tree=True, resolve_entities=False, no_network=True)

    try:
        root = etree.fromstring(payload, parser)
    except etree.XMLSyntaxError as e:
        logger.error(f"  XML parsing error: {e}")
        raise SourceParseFailure(source, f"malformed XML: {e}") from e

    if root is None or root.tag != 'tv':
        raise SourceParseFailure(source, f"unexpected root element {getattr(root, 'tag', None)!r}")

    grouped: dict[str, list[Programme]] = defaultdict(list)
    skipped = 0

    for programme in root.iter('programme'):
        parsed = _parse_single_programme(programme)
        if parsed is None:
            skipped += 1
            continue
        grouped[parsed.channel].append(parsed)

    guide = {
        channel_id: tuple(sorted(programmes, key=lambda p: p.start))
        for channel_id, programmes in grouped.items()
    }

    total = sum(len(programmes) for programmes in guide.values())
    if skipped:
        logger.warning(f"Skipped {skipped} malformed programme(s) in {source}")
    logger.info(f"XMLTV parsing complete: {len(guide)} channels, {total} programmes")

    return guide


def _parse_single_programme(programme: etree._Element) -> Optional[Programme]:
    """Parse single programme element, None when it has to be skipped"""
    channel_id = programme.get('channel')
    start_str = programme.get('start')
    stop_str = programme.get('stop')

    if not channel_id or not start_str or not stop_str:
        logger.debug("Skipping programme with missing channel/start/stop attribute")
        return None

    try:
        start_time = parse_xmltv_time(start_str)
        stop_time = parse_xmltv_time(stop_str)
    except DateFormatError as e:
        logger.warning(f"Skipping programme on {channel_id}: {e}")
        return None

    return Programme(
        channel=channel_id,
        title=_get_text(programme, 'title', default=''),
        start=start_time,
        stop=stop_time,
        description=_get_text(programme, 'desc'),
        category=_get_text(programme, 'category'),
    )


def _get_text(element: etree._Element, tag: str, default: Optional[str] = None) -> Optional[str]:
    """Safely extract text from the first child with the given tag"""
    child = element.find(tag)
    if child is None or not child.text:
        return default
    return child.text.strip()
