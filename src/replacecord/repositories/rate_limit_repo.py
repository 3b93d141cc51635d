"""
Persistent storage for requester cooldowns.

Expiry timestamps are stored as REAL unix seconds so comparisons need no
parsing or timezone conversion.
"""

from __future__ import annotations

from typing import Dict

import aiosqlite


class RateLimitRepo:
    """Low-level CRUD for the ``rate_limits`` table."""

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @staticmethod
    async def upsert(conn: aiosqlite.Connection, user_id: str, expires_at: float) -> None:
        """Insert or replace the cooldown for ``user_id``."""
        await conn.execute(
            """
            INSERT INTO rate_limits (user_id, expires_at)
            VALUES (?, ?)
            ON CONFLICT(user_id) DO UPDATE SET expires_at = excluded.expires_at
            """,
            (str(user_id), float(expires_at)),
        )

    @staticmethod
    async def delete(conn: aiosqlite.Connection, user_id: str) -> None:
        await conn.execute("DELETE FROM rate_limits WHERE user_id = ?", (str(user_id),))

    @staticmethod
    async def delete_expired(conn: aiosqlite.Connection, now: float) -> int:
        """Remove every row with ``expires_at <= now`` and return how many went."""
        cursor = await conn.execute("DELETE FROM rate_limits WHERE expires_at <= ?", (now,))
        return cursor.rowcount or 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    async def load_active(conn: aiosqlite.Connection, now: float) -> Dict[str, float]:
        """Return ``{user_id: expires_at}`` for every cooldown still running."""
        cursor = await conn.execute(
            "SELECT user_id, expires_at FROM rate_limits WHERE expires_at > ?",
            (now,),
        )
        rows = await cursor.fetchall()
        return {str(row[0]): float(row[1]) for row in rows}
