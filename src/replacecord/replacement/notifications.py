"""Best-effort side effects.

Direct messages, channel notices and message cleanup must never abort a
resolution. Each attempt is wrapped by :func:`try_notify`, which returns a
:class:`DeliveryResult` instead of raising; the results are folded into the
single confirmation shown to the moderator.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable

from replacecord.util.logger import get_logger

logger = get_logger("notifications")


class DeliveryStatus(Enum):
    DELIVERED = "delivered"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class DeliveryResult:
    label: str
    status: DeliveryStatus
    reason: str | None = None

    @property
    def delivered(self) -> bool:
        return self.status is DeliveryStatus.DELIVERED

    @classmethod
    def ok(cls, label: str) -> "DeliveryResult":
        return cls(label, DeliveryStatus.DELIVERED)

    @classmethod
    def skipped(cls, label: str, reason: str) -> "DeliveryResult":
        return cls(label, DeliveryStatus.SKIPPED, reason)


async def try_notify(label: str, action: Callable[[], Awaitable[Any]]) -> DeliveryResult:
    """Run ``action``; log and report a failure instead of raising it."""
    try:
        await action()
    except Exception as exc:
        logger.warning("[NOTIFY] %s failed: %s", label, exc)
        return DeliveryResult.skipped(label, str(exc))
    return DeliveryResult.ok(label)


# Text appended to the confirmation for each kind of skipped delivery
SKIP_NOTES = {
    "requester_dm": "⚠️ Failed to send a DM to the requester (they may have DMs disabled).",
    "channel_notice": "⚠️ Failed to post the notice in the moderation channel.",
}


def build_confirmation(headline: str, results: Iterable[DeliveryResult]) -> str:
    """Append one warning line per skipped notification to ``headline``.

    Cleanup results (labels starting with ``delete_``) are only logged.
    """
    lines = [headline]
    for result in results:
        if result.delivered or result.label.startswith("delete_"):
            continue
        lines.append(SKIP_NOTES.get(result.label, f"⚠️ {result.label} was skipped: {result.reason}"))
    return "\n".join(lines)
