"""
URL helpers shared by the feed downloader and the stream relay.
"""
from urllib.parse import quote, urlsplit


def sanitize_url_for_logging(url: str) -> str:
    """Remove credentials from URL for safe logging."""
    if "://" not in url:
        return url
    try:
        protocol, rest = url.split("://", 1)
        if "@" in rest.split("/", 1)[0]:
            rest = rest.split("@", 1)[1]
            return f"{protocol}://***:***@{rest}"
        return url
    except (ValueError, IndexError):
        return url


def is_remote_url(source: str) -> bool:
    return source.lower().startswith(("http://", "https://"))


def origin_of(url: str) -> str | None:
    """scheme://host[:port] of an absolute URL, None when it has no host."""
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        return None
    return f"{parts.scheme}://{parts.netloc}"


def build_relay_url(base_url: str, origin_url: str) -> str:
    """Wrap an origin URL into a /proxy URL on this service."""
    return f"{base_url.rstrip('/')}/proxy?url={quote(origin_url, safe='')}"


def guess_stream_content_type(url: str) -> str:
    """Content type for origins that do not send one, inferred from the path."""
    path = urlsplit(url).path.lower()
    if path.endswith(".m3u8"):
        return "application/vnd.apple.mpegurl"
    if path.endswith(".mpd"):
        return "application/dash+xml"
    if path.endswith(".ts"):
        return "video/mp2t"
    return "video/mp4"
