"""Resolution of a user's effective feed set from predefined and own feeds."""

from __future__ import annotations

import logging
from typing import Iterable, List, Protocol, Set

from .db import NewsStore
from .models import FeedDefinition, NewsSet, RequestContext

logger = logging.getLogger(__name__)


class RolesService(Protocol):
    def get_user_roles(self, context: RequestContext) -> Set[str]:
        ...


class ContextRolesService:
    """Roles taken from the request context itself."""

    def get_user_roles(self, context: RequestContext) -> Set[str]:
        return set(context.roles)


class ConfigurationResolver:
    """Merges role-granted predefined feeds into a user's news set."""

    def __init__(self, store: NewsStore) -> None:
        self.store = store

    def resolve(self, user_id: str, roles: Iterable[str], news_set_name: str) -> NewsSet:
        """Return the user's news set, materializing newly granted predefined feeds.

        Configurations are never removed here: once a predefined feed has been
        added for a user it stays until the user hides or deletes it, even if
        the granting role goes away. A deleted predefined feed is not added
        back. Running this twice with the same roles adds nothing the second
        time.
        """
        roles = set(roles)
        news_set = self.store.get_news_set_by_name(user_id, news_set_name)
        if news_set is None:
            news_set = self.store.create_news_set(user_id, news_set_name)

        skipped = news_set.configured_definition_ids() | news_set.dismissed_definition_ids
        missing = [
            definition
            for definition in self.store.get_predefined_definitions(roles)
            if definition.id not in skipped
        ]
        if not missing:
            return news_set

        added = 0
        for definition in missing:
            created = self.store.add_predefined_configuration(news_set.id, definition.id)
            if created is not None:
                added += 1
                logger.debug(
                    "Added predefined feed '%s' to news set %s",
                    definition.display_name,
                    news_set.id,
                )

        logger.info(
            "Materialized %d predefined feeds for %s in news set '%s'",
            added,
            user_id,
            news_set_name,
        )
        return self.store.get_news_set(news_set.id)

    def hidden_predefined_definitions(
        self, news_set_id: int, roles: Iterable[str]
    ) -> List[FeedDefinition]:
        """Predefined feeds available to ``roles`` that the set does not contain."""
        definitions = self.store.get_hidden_predefined_definitions(news_set_id, roles)
        return sorted(definitions, key=FeedDefinition.sort_key)
