"""Retry helper for Discord API calls.

Discord calls fail transiently (gateway hiccups, 5xx, rate limits the library
gave up on). Those are retried with exponential backoff plus jitter. Errors
that describe a permanent condition are raised on the first attempt.
"""

from __future__ import annotations

import asyncio
import random
from typing import Awaitable, Callable, TypeVar

import discord

from replacecord.util.logger import get_logger

logger = get_logger("discord_retry")

T = TypeVar("T")

# Discord JSON error codes that never succeed on a retry
NON_RETRYABLE_CODES: frozenset[int] = frozenset({
    10003,  # Unknown Channel
    10008,  # Unknown Message
    10013,  # Unknown User
    40005,  # Request entity too large
    50001,  # Missing Access
    50007,  # Cannot send messages to this user
    50013,  # Missing Permissions
})

UNKNOWN_MESSAGE_CODE = 10008
ENTITY_TOO_LARGE_CODE = 40005


def is_retryable(error: BaseException) -> bool:
    """Return True if ``error`` may succeed when the call is repeated."""
    if isinstance(error, (discord.Forbidden, discord.NotFound)):
        return False
    if isinstance(error, discord.HTTPException):
        return getattr(error, "code", 0) not in NON_RETRYABLE_CODES
    return isinstance(error, (asyncio.TimeoutError, OSError))


async def retry_discord_call(
    call: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 1.0,
) -> T:
    """
    Await ``call()`` and retry transient failures with exponential backoff.

    Args:
        call: Zero-argument factory producing a fresh awaitable per attempt.
        max_retries: Number of retries after the first attempt.
        base_delay: Delay in seconds before the first retry; doubles each time.

    Returns:
        Whatever the awaited call returns.

    Raises:
        The last error raised by ``call`` once retries are exhausted, or the
        first non-retryable error.
    """
    attempt = 0
    while True:
        try:
            return await call()
        except Exception as exc:
            if not is_retryable(exc) or attempt >= max_retries:
                raise
            delay = base_delay * (2 ** attempt) + random.uniform(0, base_delay)
            logger.warning(
                "[RETRY] Discord call failed (attempt %d/%d): %s; retrying in %.1fs",
                attempt + 1,
                max_retries + 1,
                exc,
                delay,
            )
            attempt += 1
            await asyncio.sleep(delay)
