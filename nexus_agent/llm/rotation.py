# nexus_agent/llm/rotation.py

"""
Credential rotation for Gemini calls.

Given the stored key pool and a unit of work parameterized by one key:

1. Try keys in a fresh random order (load spreading)
2. Rate-limit (429) and auth (401/403) failures → try the next key
3. Any other failure → propagate immediately
4. Every key failed → AllKeysExhaustedError

An empty pool falls back to the GEMINI_API_KEY environment key, tried once.
"""

import logging
import random

from typing import Callable, Optional, Sequence, TypeVar

from nexus_agent.config import AUTH_FAILURE_STATUS_CODES, RATE_LIMIT_STATUS_CODES
from nexus_agent.models import ApiKeyEntry
from nexus_agent.observability.metrics import metrics_tracker


logger = logging.getLogger(__name__)

T = TypeVar("T")

RATE_LIMITED = "rate_limited"
AUTH_FAILED = "auth_failed"


class NoApiKeysError(RuntimeError):
    """No stored keys and no fallback key configured."""


class AllKeysExhaustedError(RuntimeError):
    """Every key in the pool was rate limited or rejected."""

    def __init__(self, attempts: int, last_error: Optional[BaseException] = None):

        self.attempts = attempts
        self.last_error = last_error

        detail = f": {type(last_error).__name__}: {last_error}" if last_error else ""

        super().__init__(
            f"All {attempts} API keys failed or were rate limited{detail}"
        )


def _status_code(error: BaseException) -> Optional[int]:

    # google.api_core errors expose .code; HTTP-style errors use the others
    for attr in ("code", "status_code", "status"):

        value = getattr(error, attr, None)

        if isinstance(value, int):
            return value

    response = getattr(error, "response", None)

    value = getattr(response, "status_code", None)

    return value if isinstance(value, int) else None


def classify_error(error: BaseException) -> Optional[str]:
    """
    Decide whether an error should move rotation to the next key.

    Returns RATE_LIMITED, AUTH_FAILED, or None for errors that must propagate.
    """

    status = _status_code(error)

    if status in RATE_LIMIT_STATUS_CODES or "429" in str(error):
        return RATE_LIMITED

    if status in AUTH_FAILURE_STATUS_CODES:
        return AUTH_FAILED

    return None


def call_with_rotation(
    keys: Sequence[ApiKeyEntry],
    task: Callable[[str], T],
    fallback_key: Optional[str] = None,
    rng: Optional[random.Random] = None,
) -> T:
    """
    Run task(api_key) against the key pool until one attempt succeeds.

    Args:
        keys: stored key entries; never mutated
        task: unit of work taking a raw API key
        fallback_key: key used once when the pool is empty
        rng: source of randomness for the shuffle

    Raises:
        NoApiKeysError: empty pool and no fallback key
        AllKeysExhaustedError: every key hit a rate-limit or auth failure
        Exception: any other error raised by task, unchanged
    """

    if not keys:

        if not fallback_key:
            raise NoApiKeysError(
                "No API keys configured. Add a Gemini API key in Settings."
            )

        logger.info("No stored API keys, using environment key")

        return task(fallback_key)

    candidates = list(keys)

    (rng or random).shuffle(candidates)

    last_error: Optional[BaseException] = None

    for attempt, entry in enumerate(candidates, start=1):

        try:

            result = task(entry.key)

        except Exception as e:

            reason = classify_error(e)

            if reason is None:

                logger.error(
                    "API call failed with non-retryable error",
                    extra={
                        "key_label": entry.label,
                        "attempt": attempt,
                        "error": str(e),
                        "error_type": type(e).__name__,
                    },
                )

                raise

            last_error = e

            metrics_tracker.record_rotation(reason)

            logger.warning(
                "API key rotated",
                extra={
                    "key_label": entry.label,
                    "reason": reason,
                    "attempt": attempt,
                    "pool_size": len(candidates),
                },
            )

            continue

        metrics_tracker.record_rotation("succeeded")

        if attempt > 1:
            logger.info(
                "API call succeeded after rotation",
                extra={"key_label": entry.label, "attempt": attempt},
            )

        return result

    metrics_tracker.record_rotation("exhausted")

    logger.error(
        "All API keys exhausted",
        extra={"pool_size": len(candidates)},
    )

    raise AllKeysExhaustedError(len(candidates), last_error) from last_error
