"""Feed adapters and the registry that selects them by adapter kind."""

from __future__ import annotations

import calendar
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, Dict, List, Mapping, Optional

import feedparser

from . import fetching
from .errors import FetchError, ParseError, UnknownAdapterError
from .models import RawEntry
from .sanitizer import DESCRIPTION_POLICY, TITLE_POLICY

logger = logging.getLogger(__name__)

SYNDICATION = "syndication"
SYNDICATION_FULL_STORY = "syndication-full-story"


def to_datetime(value: Optional[time.struct_time]) -> Optional[datetime]:
    """Convert feedparser's UTC struct_time values to aware datetimes."""
    if value is None:
        return None
    return datetime.fromtimestamp(calendar.timegm(value), tz=timezone.utc)


class FeedAdapter(ABC):
    """Produces raw entries from a definition's parameters."""

    title_policy: str = TITLE_POLICY
    description_policy: str = DESCRIPTION_POLICY
    full_story: bool = False

    @abstractmethod
    def fetch_entries(self, parameters: Mapping[str, str]) -> List[RawEntry]:
        """Return the feed's current entries or raise ``FetchError``."""


class SyndicationAdapter(FeedAdapter):
    """RSS/Atom feeds retrieved from ``parameters["url"]``."""

    def __init__(
        self,
        timeout: float = fetching.DEFAULT_TIMEOUT,
        fetch: Optional[Callable[[str, float], bytes]] = None,
    ) -> None:
        self.timeout = timeout
        self._fetch = fetch or fetching.get_content

    def fetch_entries(self, parameters: Mapping[str, str]) -> List[RawEntry]:
        url = parameters.get("url")
        if not url:
            raise FetchError("Feed definition has no 'url' parameter")

        logger.info("Fetching feed %s", url)
        content = self._fetch(url, self.timeout)
        parsed = feedparser.parse(content)

        if getattr(parsed, "bozo", False) and not parsed.entries:
            raise ParseError(
                f"Malformed feed document at {url}",
                getattr(parsed, "bozo_exception", None),
            )

        entries = [self._to_raw_entry(entry) for entry in parsed.entries]
        logger.info("Collected %d entries from feed %s", len(entries), url)
        return entries

    def _to_raw_entry(self, entry) -> RawEntry:
        published = None
        for attr in ("published_parsed", "updated_parsed", "created_parsed"):
            published = getattr(entry, attr, None)
            if published:
                break

        return RawEntry(
            title=getattr(entry, "title", None),
            link=getattr(entry, "link", None),
            published_at=to_datetime(published),
            description=_description(entry),
        )


class FullStorySyndicationAdapter(SyndicationAdapter):
    """Syndication feed whose entries link to a lazily fetched full story."""

    full_story = True


def _description(entry) -> Optional[str]:
    summary = getattr(entry, "summary", None)
    if not summary:
        summary_detail = getattr(entry, "summary_detail", None)
        if summary_detail:
            summary = summary_detail.get("value")
    if not summary:
        content = getattr(entry, "content", None)
        if content:
            try:
                summary = content[0].get("value")
            except (TypeError, KeyError, IndexError, AttributeError):
                summary = None
    return summary


AdapterFactory = Callable[[], FeedAdapter]


class AdapterRegistry:
    """Maps adapter kinds to factories; new kinds register without touching callers."""

    def __init__(self) -> None:
        self._factories: Dict[str, AdapterFactory] = {}

    def register(self, kind: str, factory: AdapterFactory) -> None:
        if kind in self._factories:
            logger.debug("Replacing adapter registration for '%s'", kind)
        self._factories[kind] = factory

    def create(self, kind: str) -> FeedAdapter:
        try:
            factory = self._factories[kind]
        except KeyError:
            raise UnknownAdapterError(f"No feed adapter registered for '{kind}'") from None
        return factory()

    def kinds(self) -> List[str]:
        return sorted(self._factories)


def default_registry(timeout: float = fetching.DEFAULT_TIMEOUT) -> AdapterRegistry:
    """Registry with the built-in syndication adapters."""
    registry = AdapterRegistry()
    registry.register(SYNDICATION, lambda: SyndicationAdapter(timeout=timeout))
    registry.register(
        SYNDICATION_FULL_STORY, lambda: FullStorySyndicationAdapter(timeout=timeout)
    )
    return registry
