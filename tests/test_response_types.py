"""Tests for normalized response value types."""

import pytest

from chatrelay.services.response import ChatResponse, ResponseMetadata, TokenUsage


class TestTokenUsage:

    def test_from_anthropic_sums_total(self):
        usage = TokenUsage.from_anthropic({"input_tokens": 7, "output_tokens": 3})
        assert usage == TokenUsage(7, 3, 10)

    def test_from_gemini(self):
        usage = TokenUsage.from_gemini(
            {"promptTokenCount": 4, "candidatesTokenCount": 6, "totalTokenCount": 10}
        )
        assert usage.to_dict() == {"prompt_tokens": 4, "completion_tokens": 6, "total_tokens": 10}

    def test_budget_helpers(self):
        usage = TokenUsage(60, 40, 100)
        assert usage.exceeds_threshold(99)
        assert not usage.exceeds_threshold(100)
        assert usage.usage_percentage(400) == 25.0
        assert usage.usage_percentage(0) == 0.0
        assert usage.remaining_tokens(150) == 50
        assert usage.remaining_tokens(50) == 0

    def test_summary(self):
        assert TokenUsage(1, 2, 3).summary() == "Tokens: 1 prompt + 2 completion = 3 total"


class TestMetadata:

    @pytest.mark.parametrize(
        "reason, truncated, filtered, normal",
        [
            ("stop", False, False, True),
            ("length", True, False, False),
            ("max_tokens", True, False, False),
            ("content_filter", False, True, False),
            ("safety", False, True, False),
            (None, False, False, False),
        ],
    )
    def test_finish_reason_predicates(self, reason, truncated, filtered, normal):
        metadata = ResponseMetadata(model="m", finish_reason=reason)
        assert metadata.was_truncated is truncated
        assert metadata.was_filtered is filtered
        assert metadata.was_completed_normally is normal

    def test_summary(self):
        metadata = ResponseMetadata(
            model="gpt-4o", token_usage=TokenUsage(1, 2, 3), finish_reason="stop"
        )
        assert metadata.summary() == (
            "Model: gpt-4o | Tokens: 1 prompt + 2 completion = 3 total | Finish: stop"
        )


class TestChatResponse:

    def test_dict_round_trip_preserves_everything(self):
        response = ChatResponse(
            content="hi",
            metadata=ResponseMetadata(
                model="m",
                token_usage=TokenUsage(1, 1, 2),
                finish_reason="stop",
                id="x",
                created=5,
                extra={"k": "v"},
            ),
        )
        assert ChatResponse.from_dict(response.to_dict()) == response

    @pytest.mark.parametrize(
        "data",
        [None, {}, {"content": "x"}, {"content": 1, "metadata": {}}, {"content": "x", "metadata": []}],
    )
    def test_from_dict_rejects_garbage(self, data):
        with pytest.raises(ValueError):
            ChatResponse.from_dict(data)

    def test_str_is_content(self):
        assert str(ChatResponse.from_string("hello", "m")) == "hello"

    def test_summary_truncates_preview(self):
        summary = ChatResponse.from_string("x" * 60, "m").summary()
        assert summary == f'Model: m | Length: 60 chars | Preview: "{"x" * 50}..."'

    def test_from_openai(self):
        response = ChatResponse.from_openai(
            "hey",
            {
                "id": "c1",
                "model": "gpt-4o",
                "created": 1,
                "choices": [{"finish_reason": "length"}],
                "usage": {"prompt_tokens": 2, "completion_tokens": 3, "total_tokens": 5},
            },
        )
        assert response.model == "gpt-4o"
        assert response.was_truncated
        assert response.token_usage.total_tokens == 5

    def test_from_gemini_lowercases_finish_reason(self):
        response = ChatResponse.from_gemini(
            "hey", {"candidates": [{"finishReason": "STOP"}]}, "gemini-1.5-flash"
        )
        assert response.was_completed_normally
        assert response.token_usage is None
