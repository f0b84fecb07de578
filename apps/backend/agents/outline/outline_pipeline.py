"""
Outline pipeline: prompt enhancement -> optional research -> outline stream.

``stream`` yields the generation events consumed by the outline UI::

    preprocessing(start) -> preprocessing(complete)
      [-> research_query -> research_source* ... -> research_complete]
      -> content_chunk / slide_complete ... -> draft_created -> complete

Any stage failure yields one ``error`` event and ends the stream. ``run``
is the non-streaming variant and returns a ``PipelineResult`` that keeps
whatever earlier stages produced.
"""

import asyncio
import uuid
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from agents import config
from agents.ai.clients import CompletionService, CompletionStream
from agents.generation.exceptions import GenerationError, OutlineError
from agents.outline.stream_parser import IncrementalSlideParser
from agents.persistence.draft_store import DraftStore
from agents.preprocessing.prompt_enhancer import PromptEnhancer
from agents.prompts.generation.outline_prompts import (
    OUTLINE_SYSTEM_PROMPT,
    OUTLINE_WITH_RESEARCH_SYSTEM_PROMPT,
    get_outline_user_prompt,
)
from agents.research import OutlineResearchAgent, extract_domain, favicon_url, prioritize_results
from models.draft import Draft, Outline, OutlineSlide, assign_slide_types
from models.research import ResearchBundle, SearchResult
from models.stage import PipelineResult, PipelineTokenUsage
from setup_logging_optimized import get_logger

logger = get_logger(__name__)

NO_SLIDES_MESSAGE = "no slides were produced"

Event = Dict[str, Any]


def research_context_from_results(results: List[SearchResult]) -> str:
    top = prioritize_results(results)[:config.RESEARCH_TOP_RESULTS]
    return "\n\n".join(f"[{extract_domain(r.url)}] {r.title}\n{r.description}" for r in top)


def research_context_from_bundle(bundle: ResearchBundle) -> str:
    lines = [f"- {f.stat} ({f.context}) [{f.source.domain}]" for f in bundle.findings]
    lines += [f"- Framework: {fw.name}: {fw.description}" for fw in bundle.frameworks]
    return "\n".join(lines)


def outline_from_slides(slides: List[Dict[str, Any]]) -> Outline:
    typed = assign_slide_types([OutlineSlide(**s) for s in slides])
    title = typed[0].title if typed else config.UNTITLED_PRESENTATION
    return Outline(title=title, slides=typed)


class OutlinePipeline:
    def __init__(
        self,
        enhancer: PromptEnhancer,
        research_agent: OutlineResearchAgent,
        completion: CompletionService,
        drafts: DraftStore,
    ):
        self.enhancer = enhancer
        self.research_agent = research_agent
        self.completion = completion
        self.drafts = drafts

    async def stream(self, prompt: str, mode: str = "fast",
                     cancel_event: Optional[asyncio.Event] = None) -> AsyncIterator[Event]:
        def cancelled() -> bool:
            return cancel_event is not None and cancel_event.is_set()

        if cancelled():
            return
        yield {"type": "preprocessing", "status": "start"}

        enhancement = await self.enhancer.enhance(prompt)
        if cancelled():
            return
        if not enhancement.success:
            yield {"type": "error", "message": enhancement.error}
            return
        enhanced = enhancement.data.enhanced_text
        yield {"type": "preprocessing", "status": "complete", "enhancedPrompt": enhanced, "originalPrompt": prompt}

        research_context = None
        if mode == "research":
            if cancelled():
                return
            results: List[SearchResult] = []
            queries = await self.research_agent.planner.plan(enhanced)
            searcher = self.research_agent.searcher
            for i, query in enumerate(queries):
                if i and searcher.delay:
                    await asyncio.sleep(searcher.delay)
                if cancelled():
                    return
                yield {"type": "research_query", "query": query}
                outcome = await searcher.search_one(query)
                for result in outcome.results:
                    domain = extract_domain(result.url)
                    yield {
                        "type": "research_source",
                        "source": {"domain": domain, "favicon": favicon_url(domain),
                                   "title": result.title, "url": result.url},
                    }
                results.extend(outcome.results)
            if cancelled():
                return
            yield {"type": "research_complete", "sourceCount": len(results)}
            if results:
                research_context = research_context_from_results(results)
            else:
                logger.warning("Research found no sources, generating the outline without research context")

        if cancelled():
            return
        parser = IncrementalSlideParser()
        try:
            stream = self._open_outline_stream(enhanced, research_context)
            async for event in self._outline_events(stream, parser, cancelled):
                yield event
        except GenerationError as e:
            logger.error(f"Outline stream failed: {e}")
            yield {"type": "error", "message": OutlineError(e.message).message}
            return
        if cancelled():
            return

        if not parser.slides:
            yield {"type": "error", "message": OutlineError(NO_SLIDES_MESSAGE).message}
            return

        draft_id = await self._create_draft(prompt, enhanced, outline_from_slides(parser.slides))
        if cancelled():
            return
        yield {"type": "draft_created", "draftId": draft_id}
        yield {"type": "complete", "slideCount": len(parser.slides)}

    async def run(self, prompt: str, mode: str = "fast") -> PipelineResult:
        usage = PipelineTokenUsage()

        enhancement = await self.enhancer.enhance(prompt)
        usage.preprocessor = enhancement.token_usage
        if not enhancement.success:
            rejection = enhancement.data
            return PipelineResult(
                success=False,
                original_prompt=prompt,
                error=enhancement.error,
                failed_stage="preprocessing",
                rejected=rejection is not None and not rejection.is_valid,
                suggestions=rejection.warnings if rejection else [],
                token_usage=self._total(usage),
            )
        enhanced = enhancement.data.enhanced_text

        research = None
        research_context = None
        if mode == "research":
            research_result = await self.research_agent.run(enhanced)
            usage.research = research_result.token_usage
            if not research_result.success:
                return PipelineResult(
                    success=False,
                    original_prompt=prompt,
                    enhanced_prompt=enhanced,
                    error=research_result.error,
                    failed_stage="research",
                    token_usage=self._total(usage),
                )
            research = research_result.data
            research_context = research_context_from_bundle(research)

        try:
            outline, outline_tokens = await self._collect_outline(enhanced, research_context)
        except GenerationError as e:
            logger.error(f"Outline generation failed: {e}")
            return PipelineResult(
                success=False,
                original_prompt=prompt,
                enhanced_prompt=enhanced,
                research=research,
                error=OutlineError(e.message).message,
                failed_stage="outline",
                token_usage=self._total(usage),
            )
        usage.outline = outline_tokens

        draft_id = await self._create_draft(prompt, enhanced, outline)
        return PipelineResult(
            success=True,
            original_prompt=prompt,
            enhanced_prompt=enhanced,
            research=research,
            outline=outline,
            draft_id=draft_id,
            token_usage=self._total(usage),
        )

    def _open_outline_stream(self, enhanced: str, research_context: Optional[str]) -> CompletionStream:
        system = OUTLINE_WITH_RESEARCH_SYSTEM_PROMPT if research_context else OUTLINE_SYSTEM_PROMPT
        return self.completion.stream(
            system,
            get_outline_user_prompt(enhanced, research_context),
            max_tokens=config.OUTLINE_MAX_TOKENS,
            temperature=config.OUTLINE_TEMPERATURE,
        )

    @staticmethod
    async def _outline_events(stream: CompletionStream, parser: IncrementalSlideParser,
                              cancelled=lambda: False) -> AsyncIterator[Event]:
        try:
            async for chunk in stream:
                if cancelled():
                    return
                for event in parser.feed(chunk):
                    yield event
        finally:
            await stream.aclose()
        for event in parser.finish():
            yield event
        logger.info(f"Outline stream produced {len(parser.slides)} slides ({stream.tokens} tokens)")

    async def _collect_outline(self, enhanced: str, research_context: Optional[str]) -> Tuple[Outline, int]:
        parser = IncrementalSlideParser()
        stream = self._open_outline_stream(enhanced, research_context)
        async for _ in self._outline_events(stream, parser):
            pass
        if not parser.slides:
            raise OutlineError(NO_SLIDES_MESSAGE)
        return outline_from_slides(parser.slides), stream.tokens

    async def _create_draft(self, prompt: str, enhanced: str, outline: Outline) -> str:
        draft = Draft(
            id=str(uuid.uuid4()),
            title=outline.title,
            prompt=prompt,
            enhanced_prompt=enhanced,
            outline=outline,
        )
        try:
            await self.drafts.save(draft)
        except GenerationError as e:
            logger.error(f"Failed to save draft {draft.id}: {e}")
        return draft.id

    @staticmethod
    def _total(usage: PipelineTokenUsage) -> PipelineTokenUsage:
        usage.total = usage.preprocessor + usage.research + usage.outline
        return usage
