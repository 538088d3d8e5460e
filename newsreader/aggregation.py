"""Rendering of a news set: concurrent per-feed retrieval and sanitization."""

from __future__ import annotations

import concurrent.futures
import logging
import threading
import time
from typing import Callable, Dict, Iterable, List, Optional

from .adapters import AdapterRegistry, FeedAdapter
from .errors import FetchError, RenderCancelled
from .fullstory import FullStoryResolver
from .models import (
    FeedConfiguration,
    FeedResult,
    NormalizedEntry,
    RawEntry,
    RenderedNewsSet,
    RequestContext,
)
from .resolver import ConfigurationResolver
from .sanitizer import sanitize

logger = logging.getLogger(__name__)

WhitelistPredicate = Callable[[FeedConfiguration, RequestContext], bool]

DEFAULT_MAX_WORKERS = 10
DEFAULT_TASK_TIMEOUT = 15.0
DEFAULT_RENDER_TIMEOUT = 30.0
_POLL_INTERVAL = 0.1


def allow_all(configuration: FeedConfiguration, context: RequestContext) -> bool:
    return True


class AggregationService:
    """Resolves a user's news set and fetches every displayed feed in it."""

    def __init__(
        self,
        resolver: ConfigurationResolver,
        registry: AdapterRegistry,
        full_story_resolver: Optional[FullStoryResolver] = None,
        is_whitelisted: WhitelistPredicate = allow_all,
        max_workers: int = DEFAULT_MAX_WORKERS,
        task_timeout: float = DEFAULT_TASK_TIMEOUT,
        render_timeout: float = DEFAULT_RENDER_TIMEOUT,
    ) -> None:
        self.resolver = resolver
        self.registry = registry
        self.full_story_resolver = full_story_resolver or FullStoryResolver()
        self.is_whitelisted = is_whitelisted
        self.max_workers = max_workers
        self.task_timeout = task_timeout
        self.render_timeout = render_timeout

    def render(
        self,
        user_id: str,
        roles: Iterable[str],
        news_set_name: str,
        context: Optional[RequestContext] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> RenderedNewsSet:
        roles = frozenset(roles)
        context = context or RequestContext(user_id=user_id, roles=roles)
        news_set = self.resolver.resolve(user_id, roles, news_set_name)

        configurations = [
            cfg
            for cfg in news_set.configurations
            if cfg.displayed and self.is_whitelisted(cfg, context)
        ]
        logger.info(
            "Rendering %d of %d configurations in news set '%s' for %s",
            len(configurations),
            len(news_set.configurations),
            news_set_name,
            user_id,
        )

        results = self._collect(configurations, cancel_event)
        return RenderedNewsSet(news_set=news_set, results=results)

    def _collect(
        self,
        configurations: List[FeedConfiguration],
        cancel_event: Optional[threading.Event],
    ) -> List[FeedResult]:
        results: List[Optional[FeedResult]] = [None] * len(configurations)
        if not configurations:
            return []

        # Index of a configuration -> monotonic time its task began running.
        started: Dict[int, float] = {}
        executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=max(1, min(self.max_workers, len(configurations)))
        )
        try:
            future_to_index = {}
            for index, configuration in enumerate(configurations):
                try:
                    adapter = self.registry.create(configuration.definition.adapter_kind)
                except FetchError as exc:
                    results[index] = self._failure(configuration, exc)
                    continue
                future = executor.submit(
                    self._run_task, started, index, configuration, adapter
                )
                future_to_index[future] = index

            pending = set(future_to_index)
            render_deadline = time.monotonic() + self.render_timeout
            while pending:
                if cancel_event is not None and cancel_event.is_set():
                    logger.info("Render cancelled with %d feeds in flight", len(pending))
                    raise RenderCancelled("Render cancelled")
                now = time.monotonic()
                if now >= render_deadline:
                    break

                for future in list(pending):
                    index = future_to_index[future]
                    began = started.get(index)
                    if began is not None and now - began >= self.task_timeout:
                        pending.discard(future)
                        results[index] = self._failure(
                            configurations[index],
                            FetchError(f"Timed out after {self.task_timeout:.1f}s"),
                        )
                if not pending:
                    break

                done, pending = concurrent.futures.wait(
                    pending,
                    timeout=min(_POLL_INTERVAL, render_deadline - now),
                    return_when=concurrent.futures.FIRST_COMPLETED,
                )
                for future in done:
                    results[future_to_index[future]] = future.result()

            for future in pending:
                future.cancel()
                index = future_to_index[future]
                results[index] = self._failure(
                    configurations[index],
                    FetchError(
                        f"Timed out waiting for the {self.render_timeout:.1f}s render deadline"
                    ),
                )
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        return results

    def _run_task(
        self,
        started: Dict[int, float],
        index: int,
        configuration: FeedConfiguration,
        adapter: FeedAdapter,
    ) -> FeedResult:
        started[index] = time.monotonic()
        return self._process(configuration, adapter)

    def _process(self, configuration: FeedConfiguration, adapter: FeedAdapter) -> FeedResult:
        definition = configuration.definition
        try:
            raw_entries = adapter.fetch_entries(definition.parameters)
        except FetchError as exc:
            return self._failure(configuration, exc)

        entries = [self._normalize(raw, adapter) for raw in raw_entries]
        return FeedResult(configuration=configuration, entries=entries)

    def _normalize(self, raw: RawEntry, adapter: FeedAdapter) -> NormalizedEntry:
        entry = NormalizedEntry(
            title=sanitize(raw.title, adapter.title_policy),
            link=raw.link,
            published_at=raw.published_at,
            summary=sanitize(raw.description, adapter.description_policy),
        )
        if adapter.full_story and raw.link:
            entry.full_story = self.full_story_resolver.handle(raw.link)
            entry.link = None
        return entry

    @staticmethod
    def _failure(configuration: FeedConfiguration, exc: FetchError) -> FeedResult:
        logger.warning(
            "Feed '%s' (configuration %s) unavailable: %s",
            configuration.definition.display_name,
            configuration.id,
            exc,
        )
        return FeedResult(configuration=configuration, error=str(exc))
