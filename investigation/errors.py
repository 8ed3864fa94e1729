"""Exception types for the investigation service."""


class InvestigationError(Exception):
    """Base class for investigation errors."""


class TransportError(InvestigationError):
    """An aggregation call to the remote executor failed.

    Raised by executors for network errors, timeouts, HTTP error statuses
    and unparsable payloads. Facet analyzers recover from it per dimension.
    """

    def __init__(self, message: str, sql: str = "") -> None:
        super().__init__(message)
        self.sql = sql


class CacheCorruptionError(InvestigationError):
    """A durable cache entry could not be decoded.

    Always handled inside the cache layer and treated as a miss.
    """

    def __init__(self, message: str, key: str = "") -> None:
        super().__init__(message)
        self.key = key
