import asyncio
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Optional, Protocol, Tuple, Type, TypeVar

import instructor
import langsmith as ls
from instructor.exceptions import InstructorRetryException
from anthropic import AsyncAnthropic
from openai import AsyncOpenAI
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from agents import config
from agents.generation.exceptions import (
    AIGenerationError,
    AIInvalidResponseError,
    AIOverloadedError,
    AIRateLimitError,
    AITimeoutError,
    GenerationError,
    get_retry_delay,
    is_retryable,
)
from setup_logging_optimized import get_logger

logger = get_logger(__name__)

M = TypeVar("M", bound=BaseModel)

# Clients and their configuration
CLIENTS = {
    "anthropic": {
        "instructor_fn": instructor.from_anthropic,
        "client_class": AsyncAnthropic,
        "instructor_kwargs": {"mode": instructor.Mode.ANTHROPIC_JSON},
    },
    "openai": {
        "instructor_fn": instructor.from_openai,
        "client_class": AsyncOpenAI,
        "instructor_kwargs": {"mode": instructor.Mode.TOOLS},
    },
}

# Models, their client type, and their model_name
MODELS = {
    "claude-sonnet-4-5": ("anthropic", "claude-sonnet-4-5-20250929"),
    "claude-sonnet-4": ("anthropic", "claude-sonnet-4-20250514"),
    "claude-3-7-sonnet": ("anthropic", "claude-3-7-sonnet-20250219"),
    "claude-3-5-haiku": ("anthropic", "claude-3-5-haiku-20241022"),
    "gpt-4o-mini": ("openai", "gpt-4o-mini"),
    "gpt-4.1-mini": ("openai", "gpt-4.1-mini-2025-04-14"),
    "gpt-4.1": ("openai", "gpt-4.1-2025-04-14"),
}


def get_client(model_name: str, api_key: str = None, wrap_with_instructor: bool = True):
    """
    Get an async client for a given model. Accepts either a model alias (key in MODELS)
    or the provider's actual model name (value in MODELS mapping).

    If wrap_with_instructor is False, returns the raw provider client, which is
    what free-form and streaming calls need.
    """
    if model_name in MODELS:
        client_type, actual_model_name = MODELS[model_name]
    else:
        client_type = None
        actual_model_name = model_name
        for alias, (ct, actual_name) in MODELS.items():
            if actual_name == model_name:
                client_type = ct
                break
        if client_type is None:
            raise ValueError(f"Model {model_name} not supported")

    client_config = CLIENTS[client_type]
    client_kwargs = {}
    if api_key is not None:
        client_kwargs["api_key"] = api_key

    raw_client = client_config["client_class"](**client_kwargs)
    if not wrap_with_instructor:
        return raw_client, actual_model_name

    return client_config["instructor_fn"](
        raw_client,
        **client_config["instructor_kwargs"]
    ), actual_model_name


def provider_of(model_name: str) -> str:
    if model_name in MODELS:
        return MODELS[model_name][0]
    for ct, actual_name in MODELS.values():
        if actual_name == model_name:
            return ct
    raise ValueError(f"Model {model_name} not supported")


def map_provider_error(error: Exception, model: str) -> GenerationError:
    """Translate an SDK exception into the generation error hierarchy."""
    if isinstance(error, GenerationError):
        return error

    error_code = getattr(error, "status_code", None)
    if error_code is None and hasattr(error, "response") and hasattr(error.response, "status_code"):
        error_code = error.response.status_code
    error_name = type(error).__name__
    context = {"model": model}

    if error_code == 529:
        logger.warning(f"AI provider overloaded (529): {error}")
        return AIOverloadedError("AI service is temporarily overloaded", cause=error, context=context)
    if error_code == 429:
        logger.warning(f"Rate limit exceeded (429): {error}")
        return AIRateLimitError("Rate limit exceeded", cause=error, context=context)
    if error_code in (502, 504) or "Timeout" in error_name or "Connection" in error_name:
        logger.warning(f"AI service timeout ({error_code or error_name}): {error}")
        return AITimeoutError(f"AI service timeout ({error_code or error_name})", cause=error, context=context)
    return AIGenerationError(str(error), cause=error, context=context)


@dataclass
class Completion:
    text: str
    tokens: int = 0


class CompletionStream:
    """Async iterator over text chunks; ``tokens`` is known once exhausted."""

    def __init__(self, chunks: AsyncIterator[str]):
        self._chunks = chunks
        self.tokens = 0

    def __aiter__(self):
        return self._chunks.__aiter__()

    async def aclose(self) -> None:
        aclose = getattr(self._chunks, "aclose", None)
        if aclose is not None:
            await aclose()


class CompletionService(Protocol):
    async def complete(self, system: str, user: str, max_tokens: int, temperature: float,
                       retries: Optional[int] = None) -> Completion: ...

    def stream(self, system: str, user: str, max_tokens: int, temperature: float) -> CompletionStream: ...

    async def complete_structured(self, system: str, user: str, response_model: Type[M],
                                  max_tokens: int, temperature: float) -> Tuple[M, int]: ...


@dataclass
class LLMCompletionService:
    """Completion service backed by the Anthropic/OpenAI SDKs.

    Free-form and streaming calls go to the raw async client; typed calls go
    through instructor so the response is validated against a pydantic model.
    """
    model: str = config.OUTLINE_MODEL
    retries: int = config.COMPLETION_RETRIES
    api_key: Optional[str] = None
    _clients: Dict[bool, Any] = field(default_factory=dict, repr=False)

    def _client(self, wrapped: bool):
        if wrapped not in self._clients:
            self._clients[wrapped] = get_client(self.model, api_key=self.api_key, wrap_with_instructor=wrapped)
        return self._clients[wrapped]

    async def complete(self, system: str, user: str, max_tokens: int, temperature: float,
                       retries: Optional[int] = None) -> Completion:
        retries = self.retries if retries is None else retries
        attempts = retries + 1
        last_error: Optional[GenerationError] = None

        for attempt in range(attempts):
            try:
                return await self._complete_once(system, user, max_tokens, temperature)
            except Exception as e:
                last_error = map_provider_error(e, self.model)
                if not is_retryable(last_error) or attempt == attempts - 1:
                    break
                delay = get_retry_delay(last_error, attempt)
                logger.warning(f"Completion attempt {attempt + 1}/{attempts} failed, retrying in {delay:.1f}s: {last_error.message}")
                await asyncio.sleep(delay)

        # Keep the concrete error class so callers can still judge retryability
        error_class = type(last_error) if isinstance(last_error, AIGenerationError) else AIGenerationError
        raise error_class(
            f"Completion call failed after {attempt + 1} attempts: {last_error.message}",
            cause=last_error,
            context={"model": self.model},
        )

    async def _complete_once(self, system: str, user: str, max_tokens: int, temperature: float) -> Completion:
        client, model = self._client(False)
        with ls.trace(name="llm-complete", run_type="llm",
                      inputs={"system": system, "user": user},
                      metadata={"model": model, "max_tokens": max_tokens}) as rt:
            if provider_of(self.model) == "anthropic":
                result = await client.messages.create(
                    model=model,
                    system=system,
                    messages=[{"role": "user", "content": user}],
                    max_tokens=max_tokens,
                    temperature=temperature,
                )
                text = "".join(block.text for block in result.content if getattr(block, "type", "") == "text")
                tokens = result.usage.input_tokens + result.usage.output_tokens
            else:
                result = await client.chat.completions.create(
                    model=model,
                    messages=[{"role": "system", "content": system}, {"role": "user", "content": user}],
                    max_tokens=max_tokens,
                    temperature=temperature,
                )
                text = result.choices[0].message.content or ""
                tokens = result.usage.total_tokens if result.usage else 0
            rt.end(outputs={"output": text})
        return Completion(text=text, tokens=tokens)

    def stream(self, system: str, user: str, max_tokens: int, temperature: float) -> CompletionStream:
        holder: CompletionStream

        async def chunks() -> AsyncIterator[str]:
            client, model = self._client(False)
            try:
                if provider_of(self.model) == "anthropic":
                    async with client.messages.stream(
                        model=model,
                        system=system,
                        messages=[{"role": "user", "content": user}],
                        max_tokens=max_tokens,
                        temperature=temperature,
                    ) as stream:
                        async for text in stream.text_stream:
                            yield text
                        final = await stream.get_final_message()
                        holder.tokens = final.usage.input_tokens + final.usage.output_tokens
                else:
                    response = await client.chat.completions.create(
                        model=model,
                        messages=[{"role": "system", "content": system}, {"role": "user", "content": user}],
                        max_tokens=max_tokens,
                        temperature=temperature,
                        stream=True,
                        stream_options={"include_usage": True},
                    )
                    async for chunk in response:
                        if chunk.usage:
                            holder.tokens = chunk.usage.total_tokens
                        if chunk.choices and chunk.choices[0].delta.content:
                            yield chunk.choices[0].delta.content
            except Exception as e:
                raise map_provider_error(e, self.model) from e

        holder = CompletionStream(chunks())
        return holder

    async def complete_structured(self, system: str, user: str, response_model: Type[M],
                                  max_tokens: int, temperature: float) -> Tuple[M, int]:
        client, model = self._client(True)
        with ls.trace(name="llm-structured", run_type="llm",
                      inputs={"system": system, "user": user,
                              "response_model": response_model.model_json_schema()},
                      metadata={"model": model, "max_tokens": max_tokens}) as rt:
            try:
                obj, raw = await client.chat.completions.create_with_completion(
                    model=model,
                    messages=[{"role": "system", "content": system}, {"role": "user", "content": user}],
                    response_model=response_model,
                    max_tokens=max_tokens,
                    temperature=temperature,
                    max_retries=1,
                )
            except (InstructorRetryException, PydanticValidationError) as e:
                raise AIInvalidResponseError(
                    f"Structured response did not match {response_model.__name__}",
                    cause=e,
                    context={"model": self.model},
                ) from e
            except Exception as e:
                raise map_provider_error(e, self.model) from e
            rt.end(outputs={"output": obj.model_dump_json()})

        usage = getattr(raw, "usage", None)
        tokens = 0
        if usage is not None:
            tokens = getattr(usage, "total_tokens", None) or (
                getattr(usage, "input_tokens", 0) + getattr(usage, "output_tokens", 0)
            )
        return obj, tokens


def get_completion_service(model: str = None) -> LLMCompletionService:
    return LLMCompletionService(model=model or config.OUTLINE_MODEL)
