"""Tests for the Brave search client and provider error mapping."""

import httpx
import pytest

from agents.ai.clients import map_provider_error
from agents.generation.exceptions import (
    AIGenerationError,
    AIOverloadedError,
    AIRateLimitError,
    AITimeoutError,
    MissingConfigError,
    SearchError,
    is_retryable,
)
from services.web_search_service import BraveSearchService

BRAVE_PAYLOAD = {
    "web": {
        "results": [
            {"title": "E-bike boom", "url": "https://www.nature.com/x", "description": "Sales doubled"},
            {"title": "No url here"},
            {"url": "https://city.gov/bikes"},
        ]
    }
}


def brave(handler, api_key="test-key"):
    return BraveSearchService(api_key=api_key, base_url="https://search.test/web", transport=httpx.MockTransport(handler))


@pytest.mark.unit
class TestBraveSearchService:
    @pytest.mark.asyncio
    async def test_parses_results_and_sends_token(self):
        seen = {}

        def handler(request):
            seen["token"] = request.headers["X-Subscription-Token"]
            seen["q"] = request.url.params["q"]
            return httpx.Response(200, json=BRAVE_PAYLOAD)

        results = await brave(handler).search("e-bikes", count=5)

        assert seen == {"token": "test-key", "q": "e-bikes"}
        assert [r.url for r in results] == ["https://www.nature.com/x", "https://city.gov/bikes"]
        assert results[1].title == ""

    @pytest.mark.asyncio
    async def test_http_error_raises_search_error(self):
        with pytest.raises(SearchError, match="HTTP 429"):
            await brave(lambda request: httpx.Response(429)).search("e-bikes")

    @pytest.mark.asyncio
    async def test_invalid_json_raises_search_error(self):
        with pytest.raises(SearchError):
            await brave(lambda request: httpx.Response(200, content=b"<html>")).search("e-bikes")

    @pytest.mark.asyncio
    async def test_missing_key(self):
        with pytest.raises(MissingConfigError):
            await brave(lambda request: httpx.Response(200, json={}), api_key="").search("e-bikes")

    @pytest.mark.asyncio
    async def test_empty_payload(self):
        assert await brave(lambda request: httpx.Response(200, json={})).search("e-bikes") == []


class StatusError(Exception):
    def __init__(self, status_code):
        super().__init__(f"status {status_code}")
        self.status_code = status_code


class APIConnectionError(Exception):
    pass


@pytest.mark.unit
class TestProviderErrorMapping:
    @pytest.mark.parametrize("error,expected", [
        (StatusError(529), AIOverloadedError),
        (StatusError(429), AIRateLimitError),
        (StatusError(504), AITimeoutError),
        (APIConnectionError("reset"), AITimeoutError),
        (StatusError(400), AIGenerationError),
    ])
    def test_maps_status_codes(self, error, expected):
        mapped = map_provider_error(error, "claude-sonnet-4-5")
        assert type(mapped) is expected
        assert mapped.cause is error

    def test_generation_errors_pass_through(self):
        error = AITimeoutError("slow")
        assert map_provider_error(error, "gpt-4.1") is error

    def test_only_transient_errors_are_retryable(self):
        assert is_retryable(AIOverloadedError("x"))
        assert is_retryable(AITimeoutError("x"))
        assert not is_retryable(AIGenerationError("x"))
