import pytest

from newsreader import db
from newsreader.adapters import SYNDICATION
from newsreader.models import FeedDefinition
from newsreader.resolver import ConfigurationResolver


@pytest.fixture
def store():
    """In-memory SQLite store for a single test."""
    engine = db.init_engine("sqlite:///:memory:")
    yield db.NewsStore(db.get_session_factory(engine))
    engine.dispose()


@pytest.fixture
def resolver(store):
    return ConfigurationResolver(store)


@pytest.fixture
def add_predefined(store):
    """Store a predefined definition granted to the given roles."""

    def _add(name, roles, adapter_kind=SYNDICATION, url=None):
        definition = FeedDefinition.predefined(
            adapter_kind,
            name,
            url=url or f"https://{name.lower().replace(' ', '-')}.example.com/rss",
            default_roles=roles,
            fname=name.lower().replace(" ", "-"),
        )
        return store.store_definition(definition)

    return _add
