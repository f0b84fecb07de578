"""Brave Search client used by the research stage.

Each call is independent; failures raise ``SearchError`` so the caller can
count them and carry on with the other queries.
"""

from typing import List, Optional, Protocol

import httpx

from agents import config
from agents.generation.exceptions import MissingConfigError, SearchError
from models.research import SearchResult
from setup_logging_optimized import get_logger

logger = get_logger(__name__)


class SearchService(Protocol):
    async def search(self, query: str, count: int = 5) -> List[SearchResult]: ...


class BraveSearchService:
    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = config.BRAVE_SEARCH_URL,
        timeout: float = config.SEARCH_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else config.BRAVE_SEARCH_API_KEY
        self.base_url = base_url
        self.timeout = timeout
        self._transport = transport

    async def search(self, query: str, count: int = 5) -> List[SearchResult]:
        if not self.api_key:
            raise MissingConfigError("BRAVE_SEARCH_API_KEY is not set")

        params = {
            "q": query,
            "count": count,
            "search_lang": "en",
            "country": "us",
            "safesearch": "moderate",
            "freshness": "py",
        }
        headers = {
            "Accept": "application/json",
            "X-Subscription-Token": self.api_key,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(self.base_url, params=params, headers=headers)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as e:
            raise SearchError(
                f"Brave search returned HTTP {e.response.status_code}",
                cause=e,
                context={"query": query},
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise SearchError(f"Brave search request failed: {e}", cause=e, context={"query": query}) from e

        results = []
        for item in (payload.get("web") or {}).get("results") or []:
            url = item.get("url")
            if not url:
                continue
            results.append(SearchResult(
                title=item.get("title") or "",
                url=url,
                description=item.get("description") or "",
            ))
        logger.info(f"Brave search '{query[:60]}' returned {len(results)} results")
        return results[:count]
