import logging
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Callable, TypeVar

from supabase import create_client, Client

from agents import config

logger = logging.getLogger(__name__)

T = TypeVar("T")

_client = None

# Transport-level failures worth a fresh connection pool and another try
RETRYABLE_TRANSPORT_ERRORS = (
    "StreamReset",
    "RemoteProtocolError",
    "ConnectionResetError",
    "ReadError",
    "UNEXPECTED_EOF_WHILE_READING",
    "EOF occurred in violation of protocol",
)


def supabase_configured() -> bool:
    """True when records should live in Supabase rather than process memory."""
    if config.USE_MEMORY_STORE:
        return False
    return bool(config.SUPABASE_URL and config.SUPABASE_SERVICE_KEY)


def get_supabase_client() -> Client:
    """Shared service-role client for the presentation, draft and job tables."""
    global _client

    if not (config.SUPABASE_URL and config.SUPABASE_SERVICE_KEY):
        raise ValueError("Supabase is not configured: set SUPABASE_URL and SUPABASE_SERVICE_KEY")

    if _client is None:
        _client = create_client(config.SUPABASE_URL, config.SUPABASE_SERVICE_KEY)
    return _client


def reset_supabase_client() -> None:
    global _client
    _client = None
    logger.info("Dropped cached Supabase client; next call reconnects")


def _is_transport_error(error: Exception) -> bool:
    text = f"{type(error).__name__}: {error}"
    return any(marker in text for marker in RETRYABLE_TRANSPORT_ERRORS)


def perform_supabase_operation_with_retry(
    operation: Callable[[], T],
    description: str = "operation",
    max_attempts: int = 3,
    timeout_seconds: float = 8.0,
) -> T:
    """
    Run a blocking Supabase call with a per-attempt timeout.

    Timeouts and transport resets reconnect and try again with a short
    backoff. Anything else (bad filter, permission denied) is raised on
    the first attempt.
    """
    failure: Exception = None
    attempt = 0
    while attempt < max_attempts:
        attempt += 1
        executor = ThreadPoolExecutor(max_workers=1)
        try:
            return executor.submit(operation).result(timeout=timeout_seconds)
        except FutureTimeoutError as e:
            failure = e
            logger.warning(f"Supabase {description}: no response after {timeout_seconds}s (attempt {attempt}/{max_attempts})")
        except Exception as e:
            if not _is_transport_error(e):
                raise
            failure = e
            logger.warning(f"Supabase {description}: transport error on attempt {attempt}/{max_attempts}: {e}")
        finally:
            executor.shutdown(wait=False)

        reset_supabase_client()
        if attempt < max_attempts:
            time.sleep(0.2 * 2 ** (attempt - 1))

    raise failure
