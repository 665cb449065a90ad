"""Tests for the user message filter."""

from chatrelay.services.filter import MessageFilter


class TestFilterText:

    def test_links_removed(self):
        f = MessageFilter()
        assert f.filter_text("see https://evil.example.com/x now") == (
            "see [link removed]/x now"
        )

    def test_profanity_censored_case_insensitively(self):
        f = MessageFilter(profanities=["darn"])
        assert f.filter_text("DARN it") == "[censored] it"

    def test_aggression_adds_notice(self):
        f = MessageFilter(aggression_patterns=["stupid"])
        assert f.filter_text("you are stupid") == (
            "you are stupid [Please use respectful language.]"
        )

    def test_clean_message_untouched(self):
        f = MessageFilter(profanities=["darn"], aggression_patterns=["stupid"])
        assert f.filter_text("hello there") == "hello there"


class TestApply:

    def test_instructions_become_system_instructions(self):
        f = MessageFilter(instructions=["Be kind.", "No links."])
        result = f.apply("hi", {"sessionId": "s1"})
        assert result.message == "hi"
        assert result.context == {"sessionId": "s1", "system_instructions": "Be kind. No links."}

    def test_input_context_not_mutated(self):
        context = {"sessionId": "s1"}
        MessageFilter(instructions=["x"]).apply("hi", context)
        assert context == {"sessionId": "s1"}

    def test_no_instructions(self):
        assert MessageFilter().apply("hi").context == {}
