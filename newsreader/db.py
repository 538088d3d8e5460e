"""SQLAlchemy-backed store for news sets, configurations and definitions."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterable, Iterator, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
    exists,
    func,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, relationship, sessionmaker

from .errors import StoreError
from .models import DefinitionKind, FeedConfiguration, FeedDefinition, NewsSet

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class NewsSetModel(Base):
    """Named news set owned by a user."""

    __tablename__ = "news_sets"
    __table_args__ = (UniqueConstraint("user_id", "name"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False)
    name = Column(String, nullable=False)


class DefinitionModel(Base):
    """Predefined or user-defined feed definition."""

    __tablename__ = "feed_definitions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    kind = Column(String, nullable=False)
    adapter_kind = Column(String, nullable=False)
    name = Column(String, nullable=False)
    fname = Column(String, nullable=True, unique=True)
    owner_id = Column(String, nullable=True)
    parameters = Column(JSON, nullable=False, default=dict)

    roles = relationship(
        "DefinitionRoleModel", cascade="all, delete-orphan", lazy="selectin"
    )


class DefinitionRoleModel(Base):
    """Role that receives a predefined definition by default."""

    __tablename__ = "feed_definition_roles"

    definition_id = Column(
        Integer, ForeignKey("feed_definitions.id", ondelete="CASCADE"), primary_key=True
    )
    role = Column(String, primary_key=True)


class ConfigurationModel(Base):
    """Placement of a definition in a news set."""

    __tablename__ = "feed_configurations"
    __table_args__ = (UniqueConstraint("news_set_id", "definition_id"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    news_set_id = Column(Integer, ForeignKey("news_sets.id"), nullable=False)
    definition_id = Column(Integer, ForeignKey("feed_definitions.id"), nullable=False)
    displayed = Column(Boolean, nullable=False, default=True)
    position = Column(Integer, nullable=False, default=0)
    owner_id = Column(String, nullable=True)

    definition = relationship("DefinitionModel", lazy="joined")


class DismissedDefinitionModel(Base):
    """Predefined definition the user removed from a news set."""

    __tablename__ = "dismissed_definitions"

    news_set_id = Column(Integer, ForeignKey("news_sets.id"), primary_key=True)
    definition_id = Column(
        Integer, ForeignKey("feed_definitions.id", ondelete="CASCADE"), primary_key=True
    )


def init_engine(connection_string: Optional[str]) -> Optional[Engine]:
    """Initialize the database engine."""
    if not connection_string:
        return None

    logger.info("Initializing database connection: %s", connection_string)
    engine = create_engine(connection_string)
    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Return a session factory for the given engine."""
    return sessionmaker(bind=engine, expire_on_commit=False)


def _definition_from_row(row: DefinitionModel) -> FeedDefinition:
    return FeedDefinition(
        id=row.id,
        kind=DefinitionKind(row.kind),
        adapter_kind=row.adapter_kind,
        display_name=row.name,
        parameters=dict(row.parameters or {}),
        default_roles={role.role for role in row.roles},
        fname=row.fname,
        owner_id=row.owner_id,
    )


def _configuration_from_row(row: ConfigurationModel) -> FeedConfiguration:
    return FeedConfiguration(
        id=row.id,
        news_set_id=row.news_set_id,
        definition=_definition_from_row(row.definition),
        displayed=bool(row.displayed),
        position=row.position,
        owner_id=row.owner_id,
    )


class NewsStore:
    """Synchronous persistence for the reader's durable records.

    Every public method runs in its own session. Database failures are
    rolled back and re-raised as ``StoreError``.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    @classmethod
    def from_connection_string(cls, connection_string: str) -> "NewsStore":
        engine = init_engine(connection_string)
        if engine is None:
            raise StoreError("No database connection string configured")
        return cls(get_session_factory(engine))

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as exc:
            session.rollback()
            raise StoreError("Database operation failed", exc) from exc
        finally:
            session.close()

    # News sets

    def get_news_set(self, news_set_id: int) -> Optional[NewsSet]:
        with self._session() as session:
            row = session.get(NewsSetModel, news_set_id)
            if row is None:
                return None
            return self._load_news_set(session, row)

    def get_news_set_by_name(self, user_id: str, name: str) -> Optional[NewsSet]:
        with self._session() as session:
            stmt = select(NewsSetModel).where(
                NewsSetModel.user_id == user_id, NewsSetModel.name == name
            )
            row = session.execute(stmt).scalar_one_or_none()
            if row is None:
                return None
            return self._load_news_set(session, row)

    def create_news_set(self, user_id: str, name: str) -> NewsSet:
        """Create the set, or return the existing one if another writer won."""
        with self._session() as session:
            row = NewsSetModel(user_id=user_id, name=name)
            session.add(row)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                logger.debug("News set '%s' for %s already exists", name, user_id)
            else:
                logger.info("Created news set '%s' for user %s", name, user_id)
                return NewsSet(id=row.id, user_id=user_id, name=name)

        existing = self.get_news_set_by_name(user_id, name)
        if existing is None:
            raise StoreError(f"News set '{name}' for {user_id} could not be created")
        return existing

    def _load_news_set(self, session: Session, row: NewsSetModel) -> NewsSet:
        stmt = (
            select(ConfigurationModel)
            .where(ConfigurationModel.news_set_id == row.id)
            .order_by(ConfigurationModel.position, ConfigurationModel.id)
        )
        configurations = [
            _configuration_from_row(cfg) for cfg in session.execute(stmt).scalars()
        ]
        dismissed = session.execute(
            select(DismissedDefinitionModel.definition_id).where(
                DismissedDefinitionModel.news_set_id == row.id
            )
        ).scalars()
        return NewsSet(
            id=row.id,
            user_id=row.user_id,
            name=row.name,
            configurations=configurations,
            dismissed_definition_ids=set(dismissed),
        )

    # Configurations

    def get_configuration(self, configuration_id: int) -> Optional[FeedConfiguration]:
        with self._session() as session:
            row = session.get(ConfigurationModel, configuration_id)
            return _configuration_from_row(row) if row is not None else None

    def store_configuration(self, configuration: FeedConfiguration) -> FeedConfiguration:
        """Insert or update a configuration; new definitions are stored first."""
        if configuration.definition.id is None:
            configuration.definition = self.store_definition(configuration.definition)

        with self._session() as session:
            if configuration.id is None:
                row = ConfigurationModel(
                    news_set_id=configuration.news_set_id,
                    definition_id=configuration.definition.id,
                    displayed=configuration.displayed,
                    position=self._next_position(session, configuration.news_set_id),
                    owner_id=configuration.owner_id,
                )
                session.add(row)
            else:
                row = session.get(ConfigurationModel, configuration.id)
                if row is None:
                    raise StoreError(f"Configuration {configuration.id} does not exist")
                row.displayed = configuration.displayed
                row.position = configuration.position
                row.definition_id = configuration.definition.id
            session.commit()
            configuration.id = row.id
            configuration.position = row.position
            return configuration

    def add_predefined_configuration(
        self, news_set_id: int, definition_id: int, restore: bool = False
    ) -> Optional[FeedConfiguration]:
        """Insert a displayed predefined configuration unless one already exists.

        Returns ``None`` when the (news set, definition) pair is already taken,
        or when the user dismissed the definition from the set. ``restore``
        lifts such a dismissal in the same transaction.
        """
        with self._session() as session:
            dismissal = session.get(DismissedDefinitionModel, (news_set_id, definition_id))
            if dismissal is not None:
                if not restore:
                    logger.debug(
                        "Definition %s was dismissed from news set %s",
                        definition_id,
                        news_set_id,
                    )
                    return None
                session.delete(dismissal)

            row = ConfigurationModel(
                news_set_id=news_set_id,
                definition_id=definition_id,
                displayed=True,
                position=self._next_position(session, news_set_id),
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                logger.debug(
                    "Definition %s already configured in news set %s",
                    definition_id,
                    news_set_id,
                )
                return None
            session.refresh(row)
            return _configuration_from_row(row)

    def delete_configuration(self, configuration: FeedConfiguration) -> None:
        """Delete a configuration and any user-defined definition it orphans.

        Removing a predefined configuration records a dismissal so the
        definition is not materialized into the set again.
        """
        with self._session() as session:
            row = session.get(ConfigurationModel, configuration.id)
            if row is None:
                return
            definition = row.definition
            news_set_id = row.news_set_id
            session.delete(row)
            session.flush()

            if definition.kind == DefinitionKind.PREDEFINED.value:
                session.merge(
                    DismissedDefinitionModel(
                        news_set_id=news_set_id, definition_id=definition.id
                    )
                )
            elif definition.kind == DefinitionKind.USER_DEFINED.value:
                remaining = session.execute(
                    select(func.count(ConfigurationModel.id)).where(
                        ConfigurationModel.definition_id == definition.id
                    )
                ).scalar_one()
                if not remaining:
                    logger.debug("Deleting orphaned definition %s", definition.id)
                    session.delete(definition)
            session.commit()

    @staticmethod
    def _next_position(session: Session, news_set_id: int) -> int:
        current = session.execute(
            select(func.max(ConfigurationModel.position)).where(
                ConfigurationModel.news_set_id == news_set_id
            )
        ).scalar_one()
        return 0 if current is None else current + 1

    # Definitions

    def get_definition(self, definition_id: int) -> Optional[FeedDefinition]:
        with self._session() as session:
            row = session.get(DefinitionModel, definition_id)
            return _definition_from_row(row) if row is not None else None

    def get_predefined_definition_by_fname(self, fname: str) -> Optional[FeedDefinition]:
        with self._session() as session:
            stmt = select(DefinitionModel).where(
                DefinitionModel.kind == DefinitionKind.PREDEFINED.value,
                DefinitionModel.fname == fname,
            )
            row = session.execute(stmt).scalar_one_or_none()
            return _definition_from_row(row) if row is not None else None

    def store_definition(self, definition: FeedDefinition) -> FeedDefinition:
        with self._session() as session:
            if definition.id is None:
                row = DefinitionModel(kind=definition.kind.value)
                session.add(row)
            else:
                row = session.get(DefinitionModel, definition.id)
                if row is None:
                    raise StoreError(f"Definition {definition.id} does not exist")

            row.adapter_kind = definition.adapter_kind
            row.name = definition.display_name
            row.parameters = dict(definition.parameters)
            row.fname = definition.fname
            row.owner_id = definition.owner_id
            wanted = set(definition.default_roles)
            for role_row in list(row.roles):
                if role_row.role not in wanted:
                    row.roles.remove(role_row)
            present = {role_row.role for role_row in row.roles}
            for role in sorted(wanted - present):
                row.roles.append(DefinitionRoleModel(role=role))
            session.commit()
            definition.id = row.id
            return definition

    def get_predefined_definitions(self, roles: Iterable[str]) -> List[FeedDefinition]:
        """Predefined definitions granted by default to any of ``roles``."""
        roles = set(roles)
        if not roles:
            return []
        with self._session() as session:
            stmt = self._predefined_for_roles(roles)
            return [_definition_from_row(row) for row in session.execute(stmt).scalars()]

    def get_hidden_predefined_definitions(
        self, news_set_id: int, roles: Iterable[str]
    ) -> List[FeedDefinition]:
        """Predefined definitions visible to ``roles`` but absent from the set."""
        roles = set(roles)
        if not roles:
            return []
        with self._session() as session:
            configured = exists().where(
                ConfigurationModel.news_set_id == news_set_id,
                ConfigurationModel.definition_id == DefinitionModel.id,
            )
            stmt = self._predefined_for_roles(roles).where(~configured)
            return [_definition_from_row(row) for row in session.execute(stmt).scalars()]

    @staticmethod
    def _predefined_for_roles(roles: set):
        granted = exists().where(
            DefinitionRoleModel.definition_id == DefinitionModel.id,
            DefinitionRoleModel.role.in_(roles),
        )
        return (
            select(DefinitionModel)
            .where(DefinitionModel.kind == DefinitionKind.PREDEFINED.value, granted)
            .order_by(DefinitionModel.id)
        )
