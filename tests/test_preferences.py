import logging

import pytest

from newsreader.errors import AuthorizationError, NotFoundError
from newsreader.models import RequestContext
from newsreader.preferences import PreferencesService

ALICE = RequestContext(user_id="alice", roles={"student"}, remote_addr="10.0.0.1")
MALLORY = RequestContext(user_id="mallory", roles={"student"}, remote_addr="10.0.0.66")
ADMIN = RequestContext(user_id="root", roles={"newsAdmin"})


@pytest.fixture
def preferences(store, resolver):
    return PreferencesService(store, resolver)


def test_add_user_feed_creates_owned_configuration(store, preferences):
    configuration = preferences.add_user_feed(
        ALICE, "default", "Mine", "https://mine.example.com/rss", displayed=False
    )

    loaded = store.get_configuration(configuration.id)
    assert loaded.owner_id == "alice"
    assert loaded.displayed is False
    assert loaded.definition.owner_id == "alice"
    assert loaded.definition.url == "https://mine.example.com/rss"
    assert not loaded.is_predefined


def test_set_displayed_by_owner(store, preferences, resolver, add_predefined):
    add_predefined("Student Life", {"student"})
    news_set = resolver.resolve("alice", {"student"}, "default")
    configuration_id = news_set.configurations[0].id

    preferences.set_displayed(ALICE, configuration_id, False)
    assert store.get_configuration(configuration_id).displayed is False

    preferences.set_displayed(ALICE, configuration_id, True)
    assert store.get_configuration(configuration_id).displayed is True


def test_other_user_cannot_hide_or_remove(store, preferences, caplog):
    configuration = preferences.add_user_feed(
        ALICE, "default", "Mine", "https://mine.example.com/rss"
    )

    with caplog.at_level(logging.WARNING, logger="newsreader.preferences"):
        with pytest.raises(AuthorizationError):
            preferences.set_displayed(MALLORY, configuration.id, False)
        with pytest.raises(AuthorizationError):
            preferences.remove(MALLORY, configuration.id)

    assert store.get_configuration(configuration.id).displayed is True
    messages = [record.getMessage() for record in caplog.records]
    assert any(
        "mallory" in m and "10.0.0.66" in m and f"[ {configuration.id} ]" in m
        for m in messages
    )


def test_remove_user_feed(store, preferences):
    configuration = preferences.add_user_feed(
        ALICE, "default", "Mine", "https://mine.example.com/rss"
    )

    preferences.remove(ALICE, configuration.id)

    assert store.get_configuration(configuration.id) is None
    assert store.get_definition(configuration.definition.id) is None


def test_removed_predefined_feed_becomes_hidden_candidate(
    preferences, resolver, add_predefined
):
    feed = add_predefined("Student Life", {"student"})
    news_set = resolver.resolve("alice", {"student"}, "default")

    preferences.remove(ALICE, news_set.configurations[0].id)

    hidden = resolver.hidden_predefined_definitions(news_set.id, {"student"})
    assert [d.id for d in hidden] == [feed.id]


def test_removed_predefined_feed_stays_removed_after_resolve(
    preferences, resolver, add_predefined
):
    feed = add_predefined("Student Life", {"student"})
    news_set = resolver.resolve("alice", {"student"}, "default")

    preferences.remove(ALICE, news_set.configurations[0].id)
    again = resolver.resolve("alice", {"student"}, "default")

    assert again.configurations == []
    assert again.dismissed_definition_ids == {feed.id}


def test_add_predefined_restores_removed_feed(store, preferences, resolver, add_predefined):
    feed = add_predefined("Student Life", {"student"})
    news_set = resolver.resolve("alice", {"student"}, "default")
    preferences.remove(ALICE, news_set.configurations[0].id)

    configuration = preferences.add_predefined(ALICE, news_set.id, feed.id)
    again = resolver.resolve("alice", {"student"}, "default")

    assert [cfg.id for cfg in again.configurations] == [configuration.id]
    assert again.configurations[0].displayed is True
    assert again.dismissed_definition_ids == set()
    assert resolver.hidden_predefined_definitions(news_set.id, {"student"}) == []


def test_edit_user_definition_by_owner(store, preferences):
    configuration = preferences.add_user_feed(
        ALICE, "default", "Mine", "https://mine.example.com/rss"
    )

    preferences.edit_user_definition(
        ALICE, configuration.id, "Renamed", "https://new.example.com/rss"
    )

    definition = store.get_configuration(configuration.id).definition
    assert definition.display_name == "Renamed"
    assert definition.url == "https://new.example.com/rss"


def test_edit_predefined_requires_admin(store, preferences, resolver, add_predefined):
    add_predefined("Student Life", {"student"})
    news_set = resolver.resolve("alice", {"student"}, "default")
    configuration_id = news_set.configurations[0].id

    with pytest.raises(AuthorizationError):
        preferences.edit_user_definition(
            ALICE, configuration_id, "Hacked", "https://evil.example.com/rss"
        )
    assert store.get_configuration(configuration_id).definition.display_name == (
        "Student Life"
    )

    preferences.edit_user_definition(
        ADMIN, configuration_id, "Student Life (new)", "https://campus.example.edu/rss"
    )
    assert store.get_configuration(configuration_id).definition.display_name == (
        "Student Life (new)"
    )


def test_add_predefined_for_eligible_user(store, preferences, add_predefined):
    feed = add_predefined("Weather", {"student"})
    news_set = store.create_news_set("alice", "default")

    configuration = preferences.add_predefined(ALICE, news_set.id, feed.id)
    again = preferences.add_predefined(ALICE, news_set.id, feed.id)

    assert configuration.definition.id == feed.id
    assert again.id == configuration.id
    assert len(store.get_news_set(news_set.id).configurations) == 1


def test_add_predefined_rejects_ineligible_role(store, preferences, add_predefined):
    feed = add_predefined("Faculty Senate", {"faculty"})
    news_set = store.create_news_set("alice", "default")

    with pytest.raises(AuthorizationError):
        preferences.add_predefined(ALICE, news_set.id, feed.id)
    assert store.get_news_set(news_set.id).configurations == []


def test_unknown_ids_raise_not_found(store, preferences):
    news_set = store.create_news_set("alice", "default")

    with pytest.raises(NotFoundError):
        preferences.set_displayed(ALICE, 999, False)
    with pytest.raises(NotFoundError):
        preferences.add_predefined(ALICE, news_set.id, 999)
    with pytest.raises(LookupError):
        preferences.remove(ALICE, 999)
