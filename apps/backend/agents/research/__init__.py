"""Research stage for outline generation.

- plan one or three web queries for a topic
- search each query independently, tolerating per-query failures
- extract findings and frameworks with positional source attribution
"""

from .tools import (
    QueryPlanner, WebSearcher, SearchOutcome,
    extract_domain, favicon_url, prioritize_results,
)
from .outline_research_agent import OutlineResearchAgent, NO_RESULTS_MESSAGE

__all__ = [
    "QueryPlanner",
    "WebSearcher",
    "SearchOutcome",
    "extract_domain",
    "favicon_url",
    "prioritize_results",
    "OutlineResearchAgent",
    "NO_RESULTS_MESSAGE",
]
