"""Tests for the karma feature."""

import pytest

from core.registry import PatternRegistry
from features.karma import KarmaFeature, karma_key
from storage.file_store import StorageError


@pytest.fixture
def karma(client, directory, store):
    feature = KarmaFeature(client, directory, store)
    feature.bind(PatternRegistry())
    return feature


class TestKarmaChange:
    @pytest.mark.anyio
    async def test_increment_thing(self, karma, client, store, make_event):
        for _ in range(3):
            await karma.respond(make_event("tacos++", direct=False), "tacos++")

        assert client.texts[-1] == "tacos has karma of 3"
        assert await store.load(karma_key("default")) == {"tacos": 3}

    @pytest.mark.anyio
    async def test_decrement_thing(self, karma, client, make_event):
        await karma.respond(make_event("Mondays--"), "Mondays--")

        assert client.texts == ["Mondays has karma of -1"]

    @pytest.mark.anyio
    async def test_things_are_case_insensitive(self, karma, client, store, make_event):
        await karma.respond(make_event("Tacos++"), "Tacos++")
        await karma.respond(make_event("TACOS++"), "TACOS++")

        assert await store.load(karma_key("default")) == {"tacos": 2}

    @pytest.mark.anyio
    async def test_user_karma_is_stored_by_id(self, karma, client, store, make_event):
        await karma.respond(make_event("@**Bob Jones**++"), "@**Bob Jones**++")

        assert client.texts == ["Bob Jones has karma of 1"]
        assert await store.load(karma_key("default")) == {"2": 1}

    @pytest.mark.anyio
    async def test_self_karma_is_refused(self, karma, client, store, make_event):
        await karma.respond(make_event("@**Alice Smith**++"), "@**Alice Smith**++")

        assert client.texts == ["Nice try @**Alice Smith**, but no..."]
        assert await store.load(karma_key("default")) == {}

    @pytest.mark.anyio
    async def test_overlong_subject_is_ignored(self, karma, client, store, make_event):
        text = "x" * 35 + "++"
        await karma.respond(make_event(text), text)

        assert client.replies == []
        assert await store.load(karma_key("default")) == {}

    @pytest.mark.anyio
    async def test_teams_are_isolated(self, karma, store, make_event):
        await karma.respond(make_event("tacos++", team_id="acme"), "tacos++")

        assert await store.load(karma_key("acme")) == {"tacos": 1}
        assert await store.load(karma_key("default")) == {}

    @pytest.mark.anyio
    async def test_storage_failure_is_reported(self, karma, client, store, make_event):
        async def broken_save(key, data):
            raise StorageError("disk full")

        store.save = broken_save
        await karma.respond(make_event("tacos++"), "tacos++")

        assert client.texts == ["Failed to update karma for tacos"]


class TestKarmaQuery:
    @pytest.mark.anyio
    async def test_unknown_thing_has_zero(self, karma, client, make_event):
        await karma.respond(make_event("karma tacos"), "karma tacos")

        assert client.texts == ["tacos has karma 0"]

    @pytest.mark.anyio
    async def test_query_after_change(self, karma, client, make_event):
        await karma.respond(make_event("tacos++"), "tacos++")
        await karma.respond(make_event("karma Tacos?"), "karma Tacos?")

        assert client.texts[-1] == "Tacos has karma 1"

    @pytest.mark.anyio
    async def test_query_user_by_mention(self, karma, client, make_event):
        await karma.respond(make_event("@**Bob Jones**++"), "@**Bob Jones**++")
        await karma.respond(make_event("karma @**Bob Jones**"), "karma @**Bob Jones**")

        assert client.texts[-1] == "Bob Jones has karma 1"

    @pytest.mark.anyio
    async def test_leading_at_sign_is_dropped(self, karma, client, make_event):
        await karma.respond(make_event("karma @tacos"), "karma @tacos")

        assert client.texts == ["tacos has karma 0"]

    @pytest.mark.anyio
    async def test_bare_karma_shows_usage(self, karma, client, make_event):
        await karma.respond(make_event("karma"), "karma")

        assert client.texts[0].startswith("Usage:")

    @pytest.mark.anyio
    async def test_storage_failure_is_reported(self, karma, client, store, make_event):
        async def broken_load(key):
            raise StorageError("unreadable")

        store.load = broken_load
        await karma.respond(make_event("karma tacos"), "karma tacos")

        assert client.texts == ["Failed to get karma for tacos"]


def test_patterns_claim_commands_not_chatter(karma):
    assert karma.matches("tacos++")
    assert karma.matches("c--")
    assert karma.matches("karma tacos")
    assert not karma.matches("tacos")
    assert not karma.matches("i love tacos")


@pytest.mark.anyio
async def test_repeated_changes_add_up(karma, client, store, make_event):
    await store.save(karma_key("default"), {"tacos": 7})
    for _ in range(4):
        await karma.respond(make_event("tacos++"), "tacos++")
    await karma.respond(make_event("karma tacos"), "karma tacos")

    assert client.texts[-1] == "tacos has karma 11"


@pytest.mark.anyio
async def test_self_karma_leaves_score_unchanged(karma, client, make_event):
    await karma.respond(
        make_event("@**Alice Smith**++", user_id="2", user_name="Bob Jones"), "@**Alice Smith**++"
    )
    await karma.respond(make_event("@**Alice Smith**++"), "@**Alice Smith**++")
    await karma.respond(make_event("karma @**Alice Smith**"), "karma @**Alice Smith**")

    assert client.texts == [
        "Alice Smith has karma of 1",
        "Nice try @**Alice Smith**, but no...",
        "Alice Smith has karma 1",
    ]
