"""
Slide expansion: turns an approved outline into full slides in one
completion call.
"""

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

from agents import config
from agents.ai.clients import CompletionService
from agents.generation.exceptions import SlideExpansionError
from agents.prompts.generation.outline_prompts import SLIDE_SYSTEM_PROMPT, get_slide_user_prompt
from agents.research.tools import extract_json_object
from models.draft import Outline, OutlineSlide
from models.presentation import CitationStyle, Slide
from models.research import ResearchBundle
from models.stage import StageResult
from setup_logging_optimized import get_logger

logger = get_logger(__name__)


class SlideExpander:
    """Expands outline slides into body text, speaker notes and citations."""

    def __init__(self, completion: CompletionService):
        self.completion = completion

    async def expand(
        self,
        outline: Outline,
        citation_style: CitationStyle = CitationStyle.INLINE,
        prompt: str = "",
        enhanced_prompt: str = "",
        research: Optional[ResearchBundle] = None,
    ) -> StageResult[List[Slide]]:
        """Expand every outline slide.

        Raises:
            SlideExpansionError: the reply is not ``{"slides": [...]}`` or a slide is malformed
            AIGenerationError: the completion call itself failed
        """
        start = datetime.now()
        logger.info(f"Expanding {len(outline.slides)} slides ({citation_style.value} citations)")

        outline_json = json.dumps(
            {"title": outline.title, "slides": [s.model_dump(mode="json") for s in outline.slides]},
            indent=2,
        )
        research_json = research.model_dump_json(exclude={"queries"}) if research else None

        completion = await self.completion.complete(
            SLIDE_SYSTEM_PROMPT,
            get_slide_user_prompt(outline_json, citation_style.value, enhanced_prompt or prompt, research_json),
            max_tokens=config.SLIDE_MAX_TOKENS,
            temperature=config.SLIDE_TEMPERATURE,
        )

        try:
            payload = extract_json_object(completion.text)
        except ValueError as e:
            raise SlideExpansionError(f"invalid JSON in response: {e}", cause=e) from e

        slides = self.slides_from_payload(payload, outline.slides)
        elapsed = (datetime.now() - start).total_seconds()
        logger.info(f"Expanded {len(slides)} slides in {elapsed:.1f}s ({completion.tokens} tokens)")
        return StageResult.ok(slides, token_usage=completion.tokens)

    @staticmethod
    def slides_from_payload(payload: Dict[str, Any], outline_slides: List[OutlineSlide]) -> List[Slide]:
        raw_slides = payload.get("slides")
        if not isinstance(raw_slides, list) or not raw_slides:
            raise SlideExpansionError("response has no slides list")

        slides = []
        for position, item in enumerate(raw_slides):
            if not isinstance(item, dict) or not item.get("title"):
                raise SlideExpansionError(f"slide {position} has no title")
            if not isinstance(item.get("body"), list):
                raise SlideExpansionError(f"slide {position} body must be a list")

            data = dict(item)
            # Fall back to the outline for fields the model left out
            source = outline_slides[position] if position < len(outline_slides) else None
            if data.get("index") is None:
                data["index"] = source.index if source else position
            if not data.get("type"):
                data["type"] = source.type.value if source else "content"
            notes = data.get("speaker_notes") or []
            data["speaker_notes"] = [notes] if isinstance(notes, str) else notes
            data["citations"] = data.get("citations") or []

            try:
                slides.append(Slide.model_validate(data))
            except ValueError as e:
                raise SlideExpansionError(f"slide {position} is malformed: {e}", cause=e) from e
        return slides
