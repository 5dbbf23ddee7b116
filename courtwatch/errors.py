"""Exception types raised by CourtWatch."""


class CourtWatchError(Exception):
    """Base class for CourtWatch errors."""


class FeedError(CourtWatchError):
    """Raised when the streaming board cannot be fetched or decoded."""


class RowParseError(CourtWatchError):
    """Raised when a single feed row cannot be normalized."""
