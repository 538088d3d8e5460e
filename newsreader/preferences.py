"""Authorized mutations of a user's feed configurations."""

from __future__ import annotations

import logging
from typing import Optional

from .adapters import SYNDICATION
from .db import NewsStore
from .errors import AuthorizationError, NotFoundError
from .models import FeedConfiguration, FeedDefinition, RequestContext
from .resolver import ConfigurationResolver, ContextRolesService, RolesService

logger = logging.getLogger(__name__)

NEWS_ADMIN_ROLE = "newsAdmin"


class PreferencesService:
    """Add, remove, show/hide and edit feeds on behalf of a user."""

    def __init__(
        self,
        store: NewsStore,
        resolver: ConfigurationResolver,
        roles_service: Optional[RolesService] = None,
        admin_role: str = NEWS_ADMIN_ROLE,
    ) -> None:
        self.store = store
        self.resolver = resolver
        self.roles_service = roles_service or ContextRolesService()
        self.admin_role = admin_role

    def is_admin(self, context: RequestContext) -> bool:
        return self.admin_role in self.roles_service.get_user_roles(context)

    def can_modify(self, context: RequestContext, configuration: FeedConfiguration) -> bool:
        """Whether the user may show, hide or remove the configuration."""
        if self.is_admin(context):
            return True
        news_set = self.store.get_news_set(configuration.news_set_id)
        return news_set is not None and news_set.user_id == context.user_id

    def can_edit(self, context: RequestContext, configuration: FeedConfiguration) -> bool:
        """Whether the user may edit the configuration's definition."""
        if configuration.is_predefined:
            return self.is_admin(context)
        return self.can_modify(context, configuration)

    def add_user_feed(
        self,
        context: RequestContext,
        news_set_name: str,
        display_name: str,
        url: str,
        displayed: bool = True,
        adapter_kind: str = SYNDICATION,
    ) -> FeedConfiguration:
        """Create a user-defined feed and place it at the end of the set."""
        roles = self.roles_service.get_user_roles(context)
        news_set = self.resolver.resolve(context.user_id, roles, news_set_name)
        definition = FeedDefinition.user_defined(
            adapter_kind, display_name, url, owner_id=context.user_id
        )
        configuration = FeedConfiguration(
            definition=definition,
            news_set_id=news_set.id,
            displayed=displayed,
            owner_id=context.user_id,
        )
        configuration = self.store.store_configuration(configuration)
        logger.info(
            "User %s added feed '%s' (%s) as configuration %s",
            context.user_id,
            display_name,
            url,
            configuration.id,
        )
        return configuration

    def add_predefined(
        self, context: RequestContext, news_set_id: int, definition_id: int
    ) -> FeedConfiguration:
        """Add one of the hidden predefined feeds to the user's set."""
        news_set = self.store.get_news_set(news_set_id)
        if news_set is None:
            raise NotFoundError(f"News set {news_set_id} does not exist")
        definition = self.store.get_definition(definition_id)
        if definition is None or not definition.is_predefined:
            raise NotFoundError(f"Predefined definition {definition_id} does not exist")

        roles = self.roles_service.get_user_roles(context)
        is_admin = self.admin_role in roles
        if news_set.user_id != context.user_id and not is_admin:
            self._reject(context, "add a feed to news set", news_set_id)
        if not (definition.default_roles & roles) and not is_admin:
            self._reject(context, "add predefined definition", definition_id)

        configuration = self.store.add_predefined_configuration(
            news_set_id, definition_id, restore=True
        )
        if configuration is None:
            existing = self.store.get_news_set(news_set_id)
            configuration = next(
                cfg
                for cfg in existing.configurations
                if cfg.definition.id == definition_id
            )
        return configuration

    def remove(self, context: RequestContext, configuration_id: int) -> None:
        configuration = self._get(configuration_id)
        if not self.can_modify(context, configuration):
            self._reject(context, "delete news configuration", configuration_id)
        self.store.delete_configuration(configuration)
        logger.info("User %s removed configuration %s", context.user_id, configuration_id)

    def set_displayed(
        self, context: RequestContext, configuration_id: int, displayed: bool
    ) -> FeedConfiguration:
        configuration = self._get(configuration_id)
        if not self.can_modify(context, configuration):
            self._reject(context, "change visibility of news configuration", configuration_id)
        configuration.displayed = displayed
        return self.store.store_configuration(configuration)

    def edit_user_definition(
        self,
        context: RequestContext,
        configuration_id: int,
        display_name: str,
        url: str,
    ) -> FeedDefinition:
        configuration = self._get(configuration_id)
        if not self.can_edit(context, configuration):
            self._reject(context, "edit news configuration", configuration_id)
        definition = configuration.definition
        definition.display_name = display_name
        definition.parameters["url"] = url
        logger.debug("User %s is updating feed %s", context.user_id, definition.id)
        return self.store.store_definition(definition)

    def _get(self, configuration_id: int) -> FeedConfiguration:
        configuration = self.store.get_configuration(configuration_id)
        if configuration is None:
            raise NotFoundError(f"News configuration {configuration_id} does not exist")
        return configuration

    def _reject(self, context: RequestContext, action: str, target_id) -> None:
        logger.warning(
            "User [ %s ] with IP [ %s ] tried to %s [ %s ] without permission!",
            context.user_id,
            context.remote_addr,
            action,
            target_id,
        )
        raise AuthorizationError(
            f"User {context.user_id} may not {action} {target_id}"
        )
