import asyncio
import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from agents import config
from agents.ai.clients import CompletionService
from agents.generation.exceptions import GenerationError
from agents.prompts.generation.outline_prompts import QUERY_PLANNER_SYSTEM_PROMPT, get_query_planner_prompt
from models.research import SearchResult
from services.web_search_service import SearchService
from setup_logging_optimized import get_logger

logger = get_logger(__name__)

REPUTABLE_DOMAINS = [
    ".edu", ".gov", ".org",
    "nature.com", "science.org", "nih.gov",
    "harvard.edu", "mit.edu", "stanford.edu",
    "forbes.com", "wsj.com", "bloomberg.com",
    "mckinsey.com", "bcg.com", "deloitte.com",
]

_CODE_FENCE = re.compile(r"```(?:json)?\s*|\s*```")
_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def extract_domain(url: str) -> str:
    """Host component of ``url`` without a leading ``www.``; ``unknown`` if unparsable."""
    try:
        host = (urlparse(url or "").hostname or "").lower()
    except ValueError:
        return "unknown"
    if not host:
        return "unknown"
    if host.startswith("www."):
        host = host[4:]
    return host


def favicon_url(domain: str) -> str:
    return f"https://www.google.com/s2/favicons?domain={domain}&sz=32"


def is_reputable(url: str) -> bool:
    host = extract_domain(url)
    for dom in REPUTABLE_DOMAINS:
        if dom.startswith("."):
            if host.endswith(dom):
                return True
        elif host == dom or host.endswith("." + dom):
            return True
    return False


def prioritize_results(results: List[SearchResult]) -> List[SearchResult]:
    """Allow-listed domains first; relative order kept within each group."""
    return sorted(results, key=lambda r: 0 if is_reputable(r.url) else 1)


def strip_code_fences(text: str) -> str:
    return _CODE_FENCE.sub("", text or "").strip()


def extract_json_object(text: str) -> Dict[str, Any]:
    """Parse the first ``{...}`` span of a model reply. Raises ValueError."""
    match = _JSON_OBJECT.search(strip_code_fences(text))
    if not match:
        raise ValueError("No JSON object found in response")
    payload = json.loads(match.group(0))
    if not isinstance(payload, dict):
        raise ValueError("Expected a JSON object")
    return payload


def is_complex_prompt(prompt: str) -> bool:
    return len(prompt.split()) > config.RESEARCH_SIMPLE_PROMPT_MAX_WORDS or "," in prompt


class QueryPlanner:
    """Decides how many searches a topic needs and writes them."""

    def __init__(self, completion: CompletionService, max_queries: int = config.RESEARCH_MAX_QUERIES) -> None:
        self.completion = completion
        self.max_queries = max_queries

    async def plan(self, prompt: str) -> List[str]:
        if not is_complex_prompt(prompt):
            return [prompt]

        try:
            completion = await self.completion.complete(
                QUERY_PLANNER_SYSTEM_PROMPT,
                get_query_planner_prompt(prompt, self.max_queries),
                max_tokens=config.QUERY_PLANNING_MAX_TOKENS,
                temperature=config.QUERY_PLANNING_TEMPERATURE,
            )
        except GenerationError as e:
            logger.warning(f"Query planning failed, using the prompt as the only query: {e.message}")
            return [prompt]

        try:
            parsed = json.loads(strip_code_fences(completion.text))
        except ValueError:
            logger.warning("Query planner returned invalid JSON, using the prompt as the only query")
            return [prompt]

        if not isinstance(parsed, list):
            return [prompt]
        queries = [q.strip() for q in parsed if isinstance(q, str) and q.strip()]
        return queries[:self.max_queries] or [prompt]


@dataclass
class SearchOutcome:
    query: str
    results: List[SearchResult] = field(default_factory=list)
    error: Optional[str] = None


class WebSearcher:
    """Runs the planned queries against the search service.

    A failed query is logged and reported in its outcome; it never aborts
    the others. Outcomes always come back in query order.
    """

    def __init__(
        self,
        search_service: SearchService,
        per_query: int = config.RESEARCH_RESULTS_PER_QUERY,
        delay: float = config.RESEARCH_QUERY_DELAY,
        max_parallel: int = config.RESEARCH_MAX_PARALLEL_QUERIES,
    ) -> None:
        self.search_service = search_service
        self.per_query = per_query
        self.delay = delay
        self.max_parallel = max(1, max_parallel)

    async def search_one(self, query: str) -> SearchOutcome:
        try:
            results = await self.search_service.search(query, self.per_query)
            return SearchOutcome(query=query, results=list(results))
        except Exception as e:
            logger.warning(f"Search failed for query '{query}': {e}")
            return SearchOutcome(query=query, error=str(e))

    async def search_many(self, queries: List[str]) -> List[SearchOutcome]:
        if self.max_parallel > 1:
            semaphore = asyncio.Semaphore(self.max_parallel)

            async def run_one(q: str) -> SearchOutcome:
                async with semaphore:
                    return await self.search_one(q)

            return list(await asyncio.gather(*(run_one(q) for q in queries)))

        outcomes = []
        for i, query in enumerate(queries):
            if i and self.delay:
                await asyncio.sleep(self.delay)
            outcomes.append(await self.search_one(query))
        return outcomes
