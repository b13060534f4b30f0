"""Tests for PatternRegistry."""

import re

import pytest

from core.registry import (
    Literal,
    PatternRegistry,
    Predicate,
    Regex,
    RegistryFrozenError,
)


class TestPatternKinds:
    """Tests for Regex, Literal and Predicate matchers."""

    def test_regex_uses_search_semantics(self):
        matcher = Regex.of(r"\+\+$")
        assert matcher.matches("tacos++")
        assert not matcher.matches("tacos")

    def test_regex_flags(self):
        assert Regex.of(r"^hello$", re.IGNORECASE).matches("HELLO")

    @pytest.mark.parametrize(
        "text,expected",
        [("uptime", True), ("UPTIME", True), ("uptime please", False), ("", False)],
    )
    def test_literal_matches_whole_text(self, text, expected):
        assert Literal("uptime").matches(text) is expected

    def test_literal_case_sensitive(self):
        matcher = Literal("YES", case_sensitive=True)
        assert matcher.matches("YES")
        assert not matcher.matches("yes")

    def test_predicate(self):
        matcher = Predicate(lambda t: t.endswith("?"), "question")
        assert matcher.matches("pizza?")
        assert not matcher.matches("pizza")
        assert str(matcher) == "<question>"


class TestPatternRegistry:
    """Tests for registration order and ownership."""

    def test_find_owner_none_when_nothing_matches(self):
        registry = PatternRegistry()
        registry.register("greeting", Literal("hello"), 10)

        assert registry.find_owner("goodbye") is None
        assert not registry.matches_any("goodbye")

    def test_empty_text_never_matches(self):
        registry = PatternRegistry()
        registry.register("everything", Predicate(lambda t: True), 1)

        assert registry.find_owner("") is None

    def test_higher_priority_wins_regardless_of_order(self):
        registry = PatternRegistry()
        registry.register("factoids", Regex.of(r"^.+[!?]$"), 1)
        registry.register("greeting", Regex.of(r"^hello!?$", re.IGNORECASE), 10)

        assert registry.find_owner("hello!") == "greeting"
        assert registry.find_owner("pizza!") == "factoids"

    def test_equal_priority_earlier_registration_wins(self):
        registry = PatternRegistry()
        registry.register("first", Literal("same"), 5)
        registry.register("second", Literal("same"), 5)

        assert registry.find_owner("same") == "first"

    def test_sort_is_stable_across_later_registrations(self):
        registry = PatternRegistry()
        registry.register("a", Literal("x"), 3)
        registry.register("b", Literal("y"), 3)
        registry.register("c", Literal("z"), 7)
        registry.register("d", Literal("w"), 3)

        assert [r.owner for r in registry.rules()] == ["c", "a", "b", "d"]

    def test_find_owner_short_circuits(self):
        calls = []

        def spy(text):
            calls.append(text)
            return True

        registry = PatternRegistry()
        registry.register("high", Literal("hit"), 10)
        registry.register("low", Predicate(spy), 1)

        assert registry.find_owner("hit") == "high"
        assert calls == []

    def test_owner_always_has_matching_rule(self):
        registry = PatternRegistry()
        registry.register("karma", Regex.of(r"\+\+$"), 5)
        registry.register("help", Literal("help"), 10)
        registry.register("factoids", Regex.of(r"[?!]$"), 1)

        for text in ["help", "c++", "pizza?", "nothing here", "help?"]:
            owner = registry.find_owner(text)
            if owner is not None:
                assert any(r.owner == owner and r.matches(text) for r in registry.rules())

    def test_duplicate_patterns_from_different_owners_coexist(self):
        registry = PatternRegistry()
        registry.register("a", Literal("ping"), 1)
        registry.register("b", Literal("ping"), 2)

        assert len(registry.rules()) == 2
        assert registry.find_owner("ping") == "b"

    def test_register_after_freeze_raises(self):
        registry = PatternRegistry()
        registry.register("a", Literal("x"), 1)
        registry.freeze()

        assert registry.frozen
        with pytest.raises(RegistryFrozenError):
            registry.register("b", Literal("y"), 1)
        assert registry.find_owner("x") == "a"
