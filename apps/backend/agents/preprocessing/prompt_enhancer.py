"""
Prompt enhancement stage.

Validates a raw topic and rewrites it into a research-friendly brief. The
model is first asked for a typed verdict (``EnhancementResponse``); if the
provider cannot produce one, the older free-text convention is parsed:

    INVALID: <reason> Suggestions: (1) '<topic>' (2) '<topic>'
"""

import re
from typing import List, Optional, Tuple

from agents import config
from agents.ai.clients import CompletionService
from agents.generation.exceptions import AIInvalidResponseError, GenerationError
from agents.prompts.generation.outline_prompts import (
    INVALID_SENTINEL,
    SUGGESTIONS_MARKER,
    get_enhancement_system_prompt,
    get_enhancement_user_prompt,
)
from models.stage import EnhancementResponse, EnhancementResult, StageResult
from setup_logging_optimized import get_logger

logger = get_logger(__name__)

PROMPT_TOO_SHORT = f"Prompt too short. Please provide more detail (at least {config.PROMPT_MIN_CHARS} characters)."
PROMPT_TOO_LONG = f"Prompt too long. Please keep it under {config.PROMPT_MAX_CHARS} characters."

_SUGGESTION_SPLIT = re.compile(r"\(\d+\)")
_QUOTES = "'\"“”‘’"


def check_prompt_length(raw_prompt: Optional[str]) -> Optional[str]:
    """Return an error message when the prompt fails the local length guard."""
    text = (raw_prompt or "").strip()
    if len(text) < config.PROMPT_MIN_CHARS:
        return PROMPT_TOO_SHORT
    if len(text) > config.PROMPT_MAX_CHARS:
        return PROMPT_TOO_LONG
    return None


def parse_sentinel_response(content: str) -> Tuple[Optional[str], List[str]]:
    """Parse the free-text verdict.

    Returns ``(None, [])`` for an accepted prompt, otherwise the rejection
    reason and at most two suggestions. Never raises on malformed text.
    """
    text = (content or "").strip()
    if not text.startswith(INVALID_SENTINEL):
        return None, []

    body = text[len(INVALID_SENTINEL):]
    reason_part, marker, suggestions_part = body.partition(SUGGESTIONS_MARKER)
    reason = reason_part.strip() or "Prompt was rejected"

    suggestions: List[str] = []
    if marker:
        for piece in _SUGGESTION_SPLIT.split(suggestions_part)[1:]:
            cleaned = piece.strip().strip(_QUOTES).strip()
            if cleaned:
                suggestions.append(cleaned)
    return reason, suggestions[:2]


class PromptEnhancer:
    """First pipeline stage: guard, validate and enrich the user's topic."""

    def __init__(self, completion: CompletionService, use_structured: bool = config.USE_STRUCTURED_ENHANCEMENT):
        self.completion = completion
        self.use_structured = use_structured

    async def enhance(self, raw_prompt: str) -> StageResult[EnhancementResult]:
        guard_error = check_prompt_length(raw_prompt)
        if guard_error:
            return StageResult.fail(guard_error, data=EnhancementResult(is_valid=False))

        prompt = raw_prompt.strip()
        try:
            if self.use_structured:
                try:
                    return await self._enhance_structured(prompt)
                except AIInvalidResponseError as e:
                    logger.warning(f"Structured enhancement unusable, falling back to text verdict: {e.message}")
            return await self._enhance_text(prompt)
        except GenerationError as e:
            logger.error(f"Prompt enhancement failed: {e}")
            return StageResult.fail(f"Preprocessing failed: {e.message}")

    async def _enhance_structured(self, prompt: str) -> StageResult[EnhancementResult]:
        verdict, tokens = await self.completion.complete_structured(
            get_enhancement_system_prompt(structured=True),
            get_enhancement_user_prompt(prompt),
            EnhancementResponse,
            max_tokens=config.PREPROCESS_MAX_TOKENS,
            temperature=config.PREPROCESS_TEMPERATURE,
        )
        if not verdict.valid:
            return self._rejected(verdict.reason.strip(), verdict.suggestions, tokens)
        return self._accepted(verdict.text, tokens)

    async def _enhance_text(self, prompt: str) -> StageResult[EnhancementResult]:
        completion = await self.completion.complete(
            get_enhancement_system_prompt(structured=False),
            get_enhancement_user_prompt(prompt),
            max_tokens=config.PREPROCESS_MAX_TOKENS,
            temperature=config.PREPROCESS_TEMPERATURE,
            retries=1,
        )
        reason, suggestions = parse_sentinel_response(completion.text)
        if reason is not None:
            return self._rejected(reason, suggestions, completion.tokens)
        return self._accepted(completion.text, completion.tokens)

    @staticmethod
    def _accepted(text: str, tokens: int) -> StageResult[EnhancementResult]:
        enhanced = text.strip()
        if not enhanced:
            return StageResult.fail("Preprocessing failed: empty response from model", token_usage=tokens)
        logger.info(f"Prompt enhanced ({len(enhanced)} chars)")
        return StageResult.ok(EnhancementResult(is_valid=True, enhanced_text=enhanced), token_usage=tokens)

    @staticmethod
    def _rejected(reason: str, suggestions: List[str], tokens: int) -> StageResult[EnhancementResult]:
        logger.info(f"Prompt rejected: {reason}")
        return StageResult.fail(
            f"Invalid prompt: {reason}",
            data=EnhancementResult(is_valid=False, enhanced_text="", warnings=suggestions),
            token_usage=tokens,
        )
