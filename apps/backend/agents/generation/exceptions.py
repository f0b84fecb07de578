"""
Errors raised by the Dossier stages, stores and clients.

Each failure kind has its own class so the stages, the job controller
and the HTTP layer can branch on type instead of message text.
"""

import random
from typing import Any, Dict, Optional


class GenerationError(Exception):
    """Root of every error raised by the pipeline, stores and clients"""

    def __init__(
        self,
        message: str,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.context = context or {}

    def __str__(self):
        parts = [super().__str__()]
        if self.cause:
            parts.append(f" (caused by: {type(self.cause).__name__}: {str(self.cause)})")
        if self.context:
            parts.append(f" Context: {self.context}")
        return "".join(parts)


class AIGenerationError(GenerationError):
    """Completion call failed or produced nothing usable"""
    pass


class AITimeoutError(AIGenerationError):
    """Completion call timed out, or the gateway did (502/504)"""
    pass


class AIRateLimitError(AIGenerationError):
    """Provider answered 429"""
    pass


class AIOverloadedError(AIGenerationError):
    """Provider answered 529"""
    pass


class AIInvalidResponseError(AIGenerationError):
    """Reply could not be parsed into the expected shape"""
    pass


class SearchError(GenerationError):
    """A single web search call failed"""
    pass


class ValidationError(GenerationError):
    """Input validation failed before any external call"""

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.field = field


class StatusMutationError(ValidationError):
    """Attempt to change a controller-owned field through the general update path"""
    pass


class StageError(GenerationError):
    """A pipeline stage failed; ``message`` is already user-facing"""

    stage = "stage"
    prefix = "Stage failed"

    def __init__(self, message: str, **kwargs):
        if not message.startswith(self.prefix):
            message = f"{self.prefix}: {message}"
        super().__init__(message, **kwargs)


class PreprocessingError(StageError):
    stage = "preprocessing"
    prefix = "Preprocessing failed"


class ResearchError(StageError):
    stage = "research"
    prefix = "Research failed"


class OutlineError(StageError):
    stage = "outline"
    prefix = "Outline generation failed"


class SlideExpansionError(StageError):
    stage = "slides"
    prefix = "Slide generation failed"


class PersistenceError(GenerationError):
    """Record store failure"""
    pass


class SaveError(PersistenceError):
    """Create or update did not reach the store"""
    pass


class LoadError(PersistenceError):
    """Read from the store failed"""
    pass


class NotFoundError(PersistenceError):
    """Record does not exist or is not visible to the caller"""
    pass


class ConcurrencyConflictError(PersistenceError):
    """Optimistic-concurrency precondition did not hold"""

    def __init__(self, record_id: str, expected: Dict[str, Any], actual: Optional[Dict[str, Any]] = None, **kwargs):
        super().__init__(
            f"Precondition failed for record {record_id}",
            context={'expected': expected, 'actual': actual or {}},
            **kwargs
        )
        self.record_id = record_id
        self.expected = expected
        self.actual = actual or {}


class ConfigurationError(GenerationError):
    """Service is misconfigured"""
    pass


class MissingConfigError(ConfigurationError):
    """A required setting (API key, URL) is unset"""
    pass


def is_retryable(error: Exception) -> bool:
    """Transient upstream and store failures are worth another attempt."""
    retryable_types = (
        AITimeoutError,
        AIRateLimitError,
        AIOverloadedError,
        SaveError,
    )
    return isinstance(error, retryable_types)


def get_retry_delay(error: Exception, attempt: int) -> float:
    """Seconds to wait before retry number ``attempt``."""
    if isinstance(error, AIOverloadedError):
        delay = min(120.0, 10.0 * (2 ** attempt))
        # Jitter to prevent thundering herd
        return delay + random.uniform(0, delay * 0.2)
    elif isinstance(error, AIRateLimitError):
        return min(60.0, 10.0 * (2 ** attempt))
    else:
        # Exponential backoff: 1s, 2s, 4s ...
        return min(30.0, float(2 ** attempt))
