from typing import Any, Dict, List, Tuple

from agents import config
from agents.ai.clients import CompletionService
from agents.generation.exceptions import GenerationError
from agents.prompts.generation.outline_prompts import RESEARCH_SYSTEM_PROMPT, get_research_extraction_prompt
from models.research import Framework, ResearchBundle, ResearchFinding, SearchResult, Source, today_iso
from models.stage import StageResult
from services.web_search_service import SearchService
from setup_logging_optimized import get_logger

from .tools import QueryPlanner, WebSearcher, extract_domain, extract_json_object, prioritize_results

logger = get_logger(__name__)

NO_RESULTS_MESSAGE = "No search results found. Please try a different prompt."


def format_results(results: List[SearchResult]) -> str:
    return "\n\n".join(
        f"[{i + 1}] {r.title}\nSource: {r.url}\n{r.description}"
        for i, r in enumerate(results)
    )


def source_for(results: List[SearchResult], index: int, dated: bool) -> Source:
    """Positional attribution: item ``index`` cites result ``index``, else the first result."""
    result = results[index] if index < len(results) else results[0]
    return Source(
        title=result.title or "Web Research",
        url=result.url,
        domain=extract_domain(result.url),
        date=today_iso() if dated else None,
    )


class OutlineResearchAgent:
    """Research stage: plan queries, search, then extract findings and frameworks.

    Usage:
        result = await agent.run(enhanced_prompt)
        if result.success:
            bundle = result.data
    """

    def __init__(self, completion: CompletionService, search_service: SearchService,
                 planner: QueryPlanner = None, searcher: WebSearcher = None) -> None:
        self.completion = completion
        self.planner = planner or QueryPlanner(completion)
        self.searcher = searcher or WebSearcher(search_service)

    async def run(self, prompt: str) -> StageResult[ResearchBundle]:
        try:
            queries = await self.planner.plan(prompt)
            logger.info(f"Conducting {len(queries)} search(es): {queries}")

            outcomes = await self.searcher.search_many(queries)
            results: List[SearchResult] = []
            for outcome in outcomes:
                results.extend(outcome.results)
            search_errors = sum(1 for o in outcomes if o.error is not None)

            if not results:
                return StageResult.fail(NO_RESULTS_MESSAGE)
            if search_errors:
                logger.warning(f"{search_errors} search(es) failed, continuing with partial results")

            bundle, tokens = await self.extract(prompt, results)
            bundle.queries = queries
            bundle.sources_consulted = len(results)
            bundle.search_errors = search_errors
            return StageResult.ok(bundle, token_usage=tokens)
        except GenerationError as e:
            logger.error(f"Research failed: {e}")
            return StageResult.fail(f"Research failed: {e.message}")
        except ValueError as e:
            logger.error(f"Research extraction returned unusable JSON: {e}")
            return StageResult.fail(f"Research failed: {e}")

    async def extract(self, prompt: str, results: List[SearchResult]) -> Tuple[ResearchBundle, int]:
        prioritized = prioritize_results(results)
        top = prioritized[:config.RESEARCH_TOP_RESULTS]

        completion = await self.completion.complete(
            RESEARCH_SYSTEM_PROMPT,
            get_research_extraction_prompt(prompt, format_results(top)),
            max_tokens=config.RESEARCH_EXTRACTION_MAX_TOKENS,
            temperature=config.RESEARCH_EXTRACTION_TEMPERATURE,
            retries=1,
        )
        payload = extract_json_object(completion.text)
        return self._bundle_from_payload(prompt, payload, prioritized), completion.tokens

    @staticmethod
    def _bundle_from_payload(prompt: str, payload: Dict[str, Any], prioritized: List[SearchResult]) -> ResearchBundle:
        findings = []
        for i, item in enumerate(payload.get("findings") or []):
            if not isinstance(item, dict) or not item.get("stat"):
                continue
            findings.append(ResearchFinding(
                stat=str(item["stat"]),
                context=str(item.get("context") or ""),
                source=source_for(prioritized, i, dated=True),
            ))

        frameworks = []
        for i, item in enumerate(payload.get("frameworks") or []):
            if not isinstance(item, dict) or not item.get("name"):
                continue
            frameworks.append(Framework(
                name=str(item["name"]),
                description=str(item.get("description") or ""),
                source=source_for(prioritized, i, dated=False),
            ))

        return ResearchBundle(
            topic=str(payload.get("topic") or prompt),
            findings=findings,
            frameworks=frameworks,
        )
