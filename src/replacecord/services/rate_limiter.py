"""
Per-requester cooldowns for replacement requests.

Cooldowns live in memory for fast checks and are written through to the
``rate_limits`` table so they survive restarts. Expired entries are pruned
when loading and by :meth:`RateLimiter.cleanup_expired`, which the
maintenance scheduler calls periodically.

The limiter only throttles users; it plays no part in request locking.
"""

from __future__ import annotations

import math
import time
from typing import Callable, Dict

from replacecord.database.db_connection import ConnectionManager
from replacecord.repositories.rate_limit_repo import RateLimitRepo
from replacecord.util.logger import get_logger

logger = get_logger("rate_limiter")

DEFAULT_COOLDOWN_SECONDS = 600.0


class RateLimiter:
    """
    Tracks when each requester may file their next request.

    Args:
        connection: Connection manager used for persistence.
        clock: Returns the current unix time; injectable for tests.
    """

    def __init__(self, connection: ConnectionManager, clock: Callable[[], float] = time.time) -> None:
        self._connection = connection
        self._clock = clock
        self._expiries: Dict[str, float] = {}
        self._initialized = False

    async def initialize(self) -> None:
        """Load active cooldowns from disk and drop expired rows."""
        if self._initialized:
            return
        now = self._clock()
        async with self._connection.transaction() as conn:
            pruned = await RateLimitRepo.delete_expired(conn, now)
            self._expiries = await RateLimitRepo.load_active(conn, now)
        self._initialized = True
        logger.info(
            "[RATE LIMIT] Loaded %d active cooldown(s), pruned %d expired",
            len(self._expiries),
            pruned,
        )

    def is_rate_limited(self, user_id: str | int) -> bool:
        """Return True while ``user_id`` is cooling down; forgets expired entries."""
        key = str(user_id)
        expiry = self._expiries.get(key)
        if expiry is None:
            return False
        if expiry <= self._clock():
            self._expiries.pop(key, None)
            return False
        return True

    def remaining_seconds(self, user_id: str | int) -> float:
        expiry = self._expiries.get(str(user_id))
        if expiry is None:
            return 0.0
        return max(0.0, expiry - self._clock())

    def format_remaining(self, user_id: str | int) -> str | None:
        """Human-readable remaining cooldown, rounded up to whole minutes."""
        remaining = self.remaining_seconds(user_id)
        if remaining <= 0:
            return None
        minutes = math.ceil(remaining / 60)
        return "1 minute" if minutes == 1 else f"{minutes} minutes"

    async def set_rate_limit(self, user_id: str | int, duration_seconds: float = DEFAULT_COOLDOWN_SECONDS) -> None:
        """Start a cooldown of ``duration_seconds`` for ``user_id``."""
        key = str(user_id)
        expiry = self._clock() + duration_seconds
        self._expiries[key] = expiry
        async with self._connection.transaction() as conn:
            await RateLimitRepo.upsert(conn, key, expiry)
        logger.debug("[RATE LIMIT] Cooldown set for %s (%.0fs)", key, duration_seconds)

    async def remove_rate_limit(self, user_id: str | int) -> bool:
        """Lift a cooldown early. Returns True if one existed."""
        key = str(user_id)
        removed = self._expiries.pop(key, None) is not None
        if removed:
            async with self._connection.transaction() as conn:
                await RateLimitRepo.delete(conn, key)
        return removed

    async def cleanup_expired(self) -> int:
        """Forget every expired cooldown, in memory and on disk."""
        now = self._clock()
        expired = [user_id for user_id, expiry in self._expiries.items() if expiry <= now]
        for user_id in expired:
            del self._expiries[user_id]
        async with self._connection.transaction() as conn:
            await RateLimitRepo.delete_expired(conn, now)
        if expired:
            logger.info("[RATE LIMIT] Cleaned up %d expired cooldown(s)", len(expired))
        return len(expired)

    async def shutdown(self) -> None:
        """Persist the current state one last time."""
        if not self._connection.is_open:
            return
        now = self._clock()
        async with self._connection.transaction() as conn:
            for user_id, expiry in self._expiries.items():
                if expiry > now:
                    await RateLimitRepo.upsert(conn, user_id, expiry)
        logger.info("[RATE LIMIT] Rate limiter shut down")
