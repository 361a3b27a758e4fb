import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Optional, TypeVar

from services.errors import GeminiAPIError, RetriesExhaustedError, What2WearError

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_RETRIES = 5
BASE_DELAY_MS = 2000
MAX_JITTER_MS = 1000

RETRYABLE_STATUSES = frozenset({"UNAVAILABLE", "RESOURCE_EXHAUSTED", "TOO_MANY_REQUESTS"})
RETRYABLE_CODES = frozenset({429, 503})
RETRYABLE_MARKERS = ("UNAVAILABLE", "overloaded", "429", "TOO_MANY_REQUESTS")


def is_retryable_error(error: BaseException) -> bool:
    """
    True when the failure means "service busy, try again later".

    Structured fields are checked first. API errors without a recognized
    code, and errors outside our own taxonomy (transport errors, unexpected
    exceptions), fall through to a substring scan over their text. Our
    terminal generation errors never do.
    """
    if isinstance(error, GeminiAPIError):
        if error.status and error.status.upper() in RETRYABLE_STATUSES:
            return True
        if error.code in RETRYABLE_CODES:
            return True
    elif isinstance(error, What2WearError):
        return False

    code = getattr(error, "code", None)
    status = getattr(error, "status", None)
    if code in RETRYABLE_CODES or (isinstance(status, str) and status.upper() in RETRYABLE_STATUSES):
        return True

    text = f"{error!r} {error}"
    return any(marker in text for marker in RETRYABLE_MARKERS)


def backoff_delay_ms(attempt: int, rng: Callable[[], float] = random.random) -> float:
    """Delay after failed attempt `attempt` (1-based): exponential plus up to 1s of jitter."""
    return BASE_DELAY_MS * (2 ** (attempt - 1)) + rng() * MAX_JITTER_MS


async def _delay(seconds: float) -> None:
    """
    Thin wrapper around asyncio.sleep so tests can skip real waits (can be monkeypatched).
    """
    await asyncio.sleep(seconds)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    operation_name: str,
    *,
    max_retries: int = MAX_RETRIES,
    rng: Optional[Callable[[], float]] = None,
) -> T:
    """
    Run `operation` until it succeeds, a non-retryable error occurs, or
    `max_retries` attempts have failed with retryable errors.

    Non-retryable errors are re-raised as-is. Exhaustion raises
    RetriesExhaustedError chained from the last failure.
    """
    rng = rng or random.random
    attempts: list[dict[str, Any]] = []

    for attempt in range(1, max_retries + 1):
        try:
            logger.info(f"[{operation_name}] Attempt {attempt}/{max_retries}")
            return await operation()
        except Exception as error:
            attempts.append({"attempt": attempt, "error": error})
            logger.error(f"[{operation_name}] Error on attempt {attempt}: {type(error).__name__}: {error}")

            if not is_retryable_error(error):
                logger.error(f"[{operation_name}] Non-retryable error, giving up")
                raise

            if attempt < max_retries:
                wait_ms = backoff_delay_ms(attempt, rng)
                logger.warning(
                    f"{operation_name} failed (attempt {attempt}/{max_retries}). "
                    f"Retrying in {round(wait_ms)}ms... (the Gemini service is overloaded)"
                )
                await _delay(wait_ms / 1000.0)

    last_error = attempts[-1]["error"] if attempts else None
    raise RetriesExhaustedError(operation_name, len(attempts)) from last_error
