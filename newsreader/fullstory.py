"""Lazily retrieved full-story content for feed entries."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from . import fetching

logger = logging.getLogger(__name__)


class FullStoryResolver:
    """Retrieves the remote page behind an entry link.

    Each call issues exactly one GET; nothing is retried or cached.
    """

    def __init__(
        self,
        timeout: float = fetching.DEFAULT_TIMEOUT,
        fetch: Optional[Callable[[str, float], str]] = None,
    ) -> None:
        self.timeout = timeout
        self._fetch = fetch or fetching.get_text

    def resolve(self, url: str) -> str:
        logger.debug("Fetching full story from %s", url)
        return self._fetch(url, self.timeout)

    def handle(self, url: str) -> "FullStoryHandle":
        return FullStoryHandle(remote_http_url=url, resolver=self)


@dataclass(frozen=True)
class FullStoryHandle:
    """Reference to a story's remote page; construction performs no I/O."""

    remote_http_url: str
    resolver: FullStoryResolver = field(repr=False, compare=False)

    def resolve(self) -> str:
        """Fetch the full story text, raising ``FetchError`` on failure."""
        return self.resolver.resolve(self.remote_http_url)

    def to_dict(self) -> Dict[str, str]:
        return {"remote_http_url": self.remote_http_url}
