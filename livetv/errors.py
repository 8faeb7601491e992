"""
Error taxonomy for the catalog service.

Feed-level failures are recoverable and never clear published data.
Relay failures are reported per request.
"""


class CatalogServiceError(Exception):
    """Base class for all catalog service errors"""
    pass


class SourceFetchFailure(CatalogServiceError):
    """Raised when a playlist or guide feed cannot be fetched"""

    def __init__(self, source: str, message: str):
        super().__init__(f"Failed to fetch {source}: {message}")
        self.source = source


class SourceParseFailure(CatalogServiceError):
    """Raised when a feed document is malformed at the top level"""

    def __init__(self, source: str, message: str):
        super().__init__(f"Failed to parse {source}: {message}")
        self.source = source


class RelayUpstreamFailure(CatalogServiceError):
    """
    Raised when the stream origin cannot serve a relay request.

    status_code is the HTTP status the relay answers with (502 or 504).
    origin_status is set when the origin itself replied with an error.
    """

    def __init__(self, message: str, status_code: int = 502, origin_status: int | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.origin_status = origin_status


class ResourceNotFound(CatalogServiceError):
    """Raised when a protocol request names an unknown type, catalog or item"""
    pass
