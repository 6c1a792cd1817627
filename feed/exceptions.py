"""
Exception types for the feed ranking system.
"""


class FeedError(Exception):
    """Base class for feed pipeline errors."""


class OracleError(FeedError):
    """The ranking oracle failed, timed out or returned an invalid payload."""


class StoreError(FeedError):
    """A document store read or write failed."""
