"""Exception hierarchy for newsreader."""

from __future__ import annotations

from typing import Optional


class NewsReaderError(Exception):
    """Base class for all newsreader failures."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.cause = cause


class StoreError(NewsReaderError):
    """Persistence layer unavailable or rejected the operation."""


class FetchError(NewsReaderError):
    """A feed or full story could not be retrieved."""


class ParseError(FetchError):
    """A retrieved feed document could not be parsed."""


class UnknownAdapterError(FetchError):
    """No adapter is registered for a definition's adapter kind."""


class AuthorizationError(NewsReaderError):
    """The acting user may not perform the requested change."""


class SanitizationError(NewsReaderError):
    """Raised internally by the sanitizer; never leaves it."""


class NotFoundError(NewsReaderError, LookupError):
    """A referenced news set, configuration or definition does not exist."""


class RenderCancelled(NewsReaderError):
    """A render was cancelled before all feeds completed."""
