"""Fakes for the external collaborators (completion and search services)."""

import asyncio
import json
from typing import Any, Dict, Iterable, List, Optional, Union

from agents.ai.clients import Completion, CompletionStream
from agents.generation.exceptions import AIInvalidResponseError, SearchError
from models.draft import Outline
from models.research import SearchResult

Scripted = Union[str, Exception]


class FakeCompletionService:
    """Plays back scripted replies in call order.

    ``responses`` feed ``complete``, ``streams`` feed ``stream`` (each entry a
    list of chunks or an exception), ``structured`` feeds ``complete_structured``.
    With no structured replies scripted, structured calls fail as unparsable so
    callers fall back to their free-text path.
    """

    def __init__(self, responses: Iterable[Scripted] = (), streams: Iterable[Any] = (),
                 structured: Iterable[Any] = (), tokens: int = 10, delay: float = 0):
        self.responses = list(responses)
        self.streams = list(streams)
        self.structured = list(structured)
        self.tokens = tokens
        self.delay = delay
        self.calls: List[Dict[str, Any]] = []

    async def complete(self, system, user, max_tokens, temperature, retries=None):
        self.calls.append({"kind": "complete", "system": system, "user": user})
        if self.delay:
            await asyncio.sleep(self.delay)
        if not self.responses:
            raise AssertionError("unexpected complete() call")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return Completion(text=item, tokens=self.tokens)

    def stream(self, system, user, max_tokens, temperature):
        self.calls.append({"kind": "stream", "system": system, "user": user})
        item = self.streams.pop(0) if self.streams else AssertionError("unexpected stream() call")
        holder: Optional[CompletionStream] = None

        async def chunks():
            if isinstance(item, Exception):
                raise item
            for chunk in item:
                await asyncio.sleep(0)
                yield chunk
            holder.tokens = self.tokens * 2

        holder = CompletionStream(chunks())
        return holder

    async def complete_structured(self, system, user, response_model, max_tokens, temperature):
        self.calls.append({"kind": "structured", "system": system, "user": user})
        if not self.structured:
            raise AIInvalidResponseError("no structured reply scripted")
        item = self.structured.pop(0)
        if isinstance(item, Exception):
            raise item
        return item, self.tokens

    def kinds(self) -> List[str]:
        return [c["kind"] for c in self.calls]


class FakeSearchService:
    """Returns canned results per query; queries listed in ``failing`` raise."""

    def __init__(self, results: Optional[Dict[str, List[SearchResult]]] = None,
                 failing: Iterable[str] = (), default: Optional[List[SearchResult]] = None):
        self.results = results or {}
        self.failing = set(failing)
        self.default = default or []
        self.queries: List[str] = []

    async def search(self, query: str, count: int = 5) -> List[SearchResult]:
        self.queries.append(query)
        if query in self.failing:
            raise SearchError(f"search failed for {query}")
        return list(self.results.get(query, self.default))[:count]


def search_results(*urls: str) -> List[SearchResult]:
    return [
        SearchResult(title=f"Result {i}", url=url, description=f"Description {i}")
        for i, url in enumerate(urls)
    ]


def slides_reply(outline: Outline) -> str:
    """A well-formed slide expansion reply for ``outline``."""
    return json.dumps({
        "slides": [
            {
                "index": s.index,
                "title": s.title,
                "body": [f"Expanded {b}" for b in s.bullets] or ["Expanded"],
                "speaker_notes": ["Talk about it"],
                "citations": [],
            }
            for s in outline.slides
        ]
    })


OUTLINE_TEXT = "## Growth\n- Revenue up\n- Churn down\n---\n## Risks\n- Market shift"

EXPECTED_SLIDES = [
    {"index": 0, "title": "Growth", "bullets": ["Revenue up", "Churn down"]},
    {"index": 1, "title": "Risks", "bullets": ["Market shift"]},
]


async def wait_for(predicate, timeout: float = 2.0, step: float = 0.01):
    """Poll ``predicate`` (sync or async) until it is truthy."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        value = predicate()
        if asyncio.iscoroutine(value):
            value = await value
        if value:
            return value
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(step)
