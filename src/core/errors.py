from __future__ import annotations


class LicenseWatchError(Exception):
    """Base class for errors raised by this service."""


class QueryError(LicenseWatchError):
    """A registry lookup could not be resolved; the outcome is unknown."""


class TokenNotFoundError(QueryError):
    """The landing page no longer carries an expireKey (markup drift)."""


class CodecError(QueryError):
    """Text cannot be represented in the registry's legacy encoding."""


class NetworkError(QueryError):
    """Timeout, connection failure or non-success HTTP status."""


class ParseError(QueryError):
    """The search response did not have the expected shape."""


class DispatchError(LicenseWatchError):
    """A notification could not be delivered."""


class StoreError(LicenseWatchError):
    """The persisted tracking document could not be read or written."""
