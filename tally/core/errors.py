"""
Error types for ingestion and queries

Caller-input errors also subclass ValueError so request handlers can map
them to 400 responses alongside validation errors.
"""


class TallyError(Exception):
    """Base class for all tally errors"""


class IngestError(TallyError):
    """Pageview could not be ingested"""


class MissingURLError(IngestError, ValueError):
    """Beacon arrived without a visited URL"""

    def __init__(self, message: str = "Missing 'url' parameter"):
        super().__init__(message)


class MalformedURLError(IngestError, ValueError):
    """Visited URL could not be parsed into a domain and path"""

    def __init__(self, url: str, reason: str = "could not be parsed"):
        self.url = url
        super().__init__(f"Invalid URL {url!r}: {reason}")


class StorageError(TallyError):
    """Aggregation store failed or is unreachable"""


class QueryError(TallyError):
    """Statistics could not be read back from the store"""


class BotSignatureError(TallyError):
    """User-agent signature database failed to load"""
