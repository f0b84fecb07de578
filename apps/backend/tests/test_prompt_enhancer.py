"""Tests for prompt validation and enhancement."""

import pytest

from agents.generation.exceptions import AIGenerationError
from agents.preprocessing.prompt_enhancer import (
    PROMPT_TOO_LONG,
    PROMPT_TOO_SHORT,
    PromptEnhancer,
    check_prompt_length,
    parse_sentinel_response,
)
from models.stage import EnhancementResponse
from tests.helpers import FakeCompletionService


@pytest.mark.unit
class TestSentinelParsing:
    def test_accepted_text_is_not_a_rejection(self):
        assert parse_sentinel_response("A talk on growth metrics for SaaS founders") == (None, [])

    def test_reason_and_two_suggestions(self):
        reason, suggestions = parse_sentinel_response(
            "INVALID: Too vague. Suggestions: (1) 'Cloud cost control' (2) 'Serverless trade-offs'"
        )
        assert reason == "Too vague."
        assert suggestions == ["Cloud cost control", "Serverless trade-offs"]

    def test_more_than_two_suggestions_are_capped(self):
        _, suggestions = parse_sentinel_response("INVALID: no. Suggestions: (1) 'a' (2) 'b' (3) 'c'")
        assert suggestions == ["a", "b"]

    def test_missing_marker_keeps_whole_reason(self):
        assert parse_sentinel_response("INVALID: Not a topic at all") == ("Not a topic at all", [])

    def test_empty_reason_gets_default(self):
        reason, _ = parse_sentinel_response("INVALID:")
        assert reason == "Prompt was rejected"

    @pytest.mark.parametrize("text", [
        "",
        "INVALID",
        "INVALID: Suggestions:",
        "INVALID: x Suggestions: no numbering here",
        "INVALID: x Suggestions: (1) (2) ''",
        "invalid: lower case is accepted text",
        "INVALID: (1) 'a' Suggestions: Suggestions: (2)",
    ])
    def test_malformed_input_never_raises(self, text):
        reason, suggestions = parse_sentinel_response(text)
        assert reason is None or isinstance(reason, str)
        assert len(suggestions) <= 2
        assert all(suggestions)

    def test_double_quotes_are_stripped(self):
        _, suggestions = parse_sentinel_response('INVALID: vague Suggestions: (1) "Edge AI chips"')
        assert suggestions == ["Edge AI chips"]


@pytest.mark.unit
class TestLengthGuard:
    def test_short_prompt(self):
        assert check_prompt_length("  ab  ") == PROMPT_TOO_SHORT

    def test_long_prompt(self):
        assert check_prompt_length("x" * 1001) == PROMPT_TOO_LONG

    def test_boundaries_pass(self):
        assert check_prompt_length("abc") is None
        assert check_prompt_length("x" * 1000) is None

    def test_none_is_too_short(self):
        assert check_prompt_length(None) == PROMPT_TOO_SHORT


@pytest.mark.unit
class TestPromptEnhancer:
    @pytest.mark.asyncio
    async def test_guard_rejects_without_calling_model(self):
        """Test the local guard short-circuits before any completion call."""
        completion = FakeCompletionService()
        result = await PromptEnhancer(completion).enhance("hi")

        assert not result.success
        assert result.error == PROMPT_TOO_SHORT
        assert result.data.is_valid is False
        assert completion.calls == []

    @pytest.mark.asyncio
    async def test_structured_verdict_accepted(self):
        completion = FakeCompletionService(structured=[
            EnhancementResponse(valid=True, text="Enhanced: quarterly growth review"),
        ])
        result = await PromptEnhancer(completion).enhance("quarterly growth")

        assert result.success
        assert result.data.enhanced_text == "Enhanced: quarterly growth review"
        assert result.token_usage == 10
        assert completion.kinds() == ["structured"]

    @pytest.mark.asyncio
    async def test_structured_verdict_rejected(self):
        completion = FakeCompletionService(structured=[
            EnhancementResponse(valid=False, reason="Harmful topic", suggestions=["Safer A", "Safer B", "Safer C"]),
        ])
        result = await PromptEnhancer(completion).enhance("how to break into servers")

        assert not result.success
        assert result.error == "Invalid prompt: Harmful topic"
        assert result.data.is_valid is False
        assert result.data.warnings == ["Safer A", "Safer B"]

    @pytest.mark.asyncio
    async def test_falls_back_to_text_verdict(self):
        """Test an unusable structured reply falls back to sentinel parsing."""
        completion = FakeCompletionService(
            responses=["INVALID: Too broad. Suggestions: (1) 'AI in radiology' (2) 'AI for triage'"]
        )
        result = await PromptEnhancer(completion).enhance("AI ethics")

        assert completion.kinds() == ["structured", "complete"]
        assert not result.success
        assert result.data.warnings == ["AI in radiology", "AI for triage"]

    @pytest.mark.asyncio
    async def test_text_mode_accepts(self):
        completion = FakeCompletionService(responses=["  A detailed brief about urban cycling.  "])
        result = await PromptEnhancer(completion, use_structured=False).enhance("urban cycling")

        assert result.success
        assert result.data.enhanced_text == "A detailed brief about urban cycling."
        assert completion.kinds() == ["complete"]

    @pytest.mark.asyncio
    async def test_upstream_failure_is_distinct_from_rejection(self):
        completion = FakeCompletionService(responses=[AIGenerationError("provider down")])
        result = await PromptEnhancer(completion, use_structured=False).enhance("urban cycling")

        assert not result.success
        assert result.error.startswith("Preprocessing failed:")
        assert result.data is None

    @pytest.mark.asyncio
    async def test_empty_model_reply_fails(self):
        completion = FakeCompletionService(responses=["   "])
        result = await PromptEnhancer(completion, use_structured=False).enhance("urban cycling")

        assert not result.success
        assert result.data is None
