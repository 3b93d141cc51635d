"""
Request registry and per-post lock table.

:class:`RequestCoordinator` owns the two pieces of process-wide state the
replacement workflow coordinates through:

* the registry, mapping :class:`RequestKey` to the in-memory
  :class:`ReplacementRequest` record;
* the lock table, the set of post ids a workflow step is currently mutating.

Every method is synchronous. On a single asyncio loop this makes each
test-then-insert atomic with respect to other callbacks, which is what keeps
two near-simultaneous steps on the same post from both proceeding. Locks are
advisory and non-blocking: a held lock means "reject and retry later".

Nothing here is persisted. After a restart the workflow re-derives request
state from the moderation channel.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, Dict

from replacecord.datatypes.replacement_datatypes import (
    ReplacementRequest,
    RequestKey,
    RequestStatus,
    WorkflowState,
)
from replacecord.util.logger import get_logger

logger = get_logger("request_coordinator")

# states in which a workflow step holds the post lock
IN_STEP_STATES = frozenset({WorkflowState.ACCEPTING, WorkflowState.DECLINING})


@dataclass
class SweepReport:
    """What a stale sweep reclaimed."""

    removed_requests: list[RequestKey] = field(default_factory=list)
    released_locks: list[str] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.removed_requests and not self.released_locks


class RequestCoordinator:
    """
    Registry of active replacement requests plus the per-post lock set.

    Args:
        clock: Returns the current unix time; injectable for tests.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._requests: Dict[RequestKey, ReplacementRequest] = {}
        # post id -> time the lock was taken
        self._locks: Dict[str, float] = {}

    # ------------------------------------------------------------------
    # Locks
    # ------------------------------------------------------------------

    def try_acquire_lock(self, post_id: str) -> bool:
        """Take the lock for ``post_id`` if it is free. Never waits."""
        post_id = str(post_id)
        if post_id in self._locks:
            logger.debug("[LOCKS] Lock for post %s already held", post_id)
            return False
        self._locks[post_id] = self._clock()
        logger.debug("[LOCKS] Acquired lock for post %s", post_id)
        return True

    def release_lock(self, post_id: str) -> None:
        """Release the lock for ``post_id``; releasing a free lock is a no-op."""
        if self._locks.pop(str(post_id), None) is not None:
            logger.debug("[LOCKS] Released lock for post %s", post_id)

    def is_locked(self, post_id: str) -> bool:
        return str(post_id) in self._locks

    @property
    def locked_posts(self) -> frozenset[str]:
        return frozenset(self._locks)

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def register_request(self, record: ReplacementRequest) -> None:
        """Insert or overwrite the record stored under its request key."""
        self._requests[record.request_key] = record
        logger.debug("[REGISTRY] Registered request %s (%s)", record.request_key, record.state.value)

    def lookup_active(self, key: RequestKey) -> ReplacementRequest | None:
        return self._requests.get(key)

    def is_active_recently(self, key: RequestKey, window_seconds: float) -> bool:
        """
        Return True if a record for ``key`` is pending OR younger than the window.

        A resolved record that is still inside the window blocks a re-request
        as well.
        """
        record = self._requests.get(key)
        if record is None:
            return False
        return record.status is RequestStatus.PENDING or self._clock() - record.timestamp < window_seconds

    def remove_request(self, key: RequestKey) -> None:
        """Remove the record for ``key``; removing an absent key is a no-op."""
        if self._requests.pop(key, None) is not None:
            logger.debug("[REGISTRY] Removed request %s", key)

    def advance(self, key: RequestKey, target: WorkflowState) -> ReplacementRequest:
        """
        Move the request stored under ``key`` to ``target``.

        Raises:
            KeyError: If no request is registered under ``key``.
            InvalidTransitionError: If the transition is not allowed.
        """
        record = self._requests[key]
        record.transition(target)
        return record

    def claim_decision(self, key: RequestKey, target: WorkflowState) -> bool:
        """
        Start a moderator decision step (accept or decline) for ``key``.

        Takes the post lock and, when the registry still knows the request,
        moves it from ``AWAITING_MODERATOR_DECISION`` to ``target``. A request
        parked in ``AWAITING_UNDELETE`` already holds the lock and may still be
        declined; the lock passes to the decline step. Returns False, leaving
        everything untouched, when the lock is held or the request is in the
        middle of another step.
        """
        record = self._requests.get(key)
        if record is not None:
            if record.state is WorkflowState.AWAITING_UNDELETE and target is WorkflowState.DECLINING:
                record.transition(target)
                self._locks.setdefault(key.post_id, self._clock())
                return True
            if record.state is not WorkflowState.AWAITING_MODERATOR_DECISION:
                return False
        if not self.try_acquire_lock(key.post_id):
            return False
        if record is not None:
            record.transition(target)
        return True

    def claim_undelete(self, key: RequestKey) -> bool:
        """
        Start the undelete step for ``key``.

        An accept on a deleted post leaves the request in ``AWAITING_UNDELETE``
        with the post lock still held; this hands that lock to the undelete step
        by moving the request to ``ACCEPTING``. A request returned to the
        moderators by a failed undelete is claimed like an accept. If the
        registry no longer knows the request (restart or sweep), the lock is
        acquired normally instead.
        """
        record = self._requests.get(key)
        if record is None:
            return self.try_acquire_lock(key.post_id)
        if record.state is WorkflowState.AWAITING_UNDELETE:
            self._locks.setdefault(key.post_id, self._clock())
            record.transition(WorkflowState.ACCEPTING)
            return True
        if record.state is WorkflowState.AWAITING_MODERATOR_DECISION:
            return self.claim_decision(key, WorkflowState.ACCEPTING)
        return False

    def return_to_moderators(self, key: RequestKey) -> None:
        """After a failed decision step, make the request decidable again."""
        record = self._requests.get(key)
        if record is not None and record.state in (WorkflowState.ACCEPTING, WorkflowState.DECLINING):
            record.transition(WorkflowState.AWAITING_MODERATOR_DECISION)

    def finish(self, key: RequestKey) -> None:
        """Resolve ``key``: drop its record and release its post lock."""
        record = self._requests.get(key)
        if record is not None and record.state is not WorkflowState.RESOLVED:
            record.transition(WorkflowState.RESOLVED)
        self.remove_request(key)
        self.release_lock(key.post_id)

    @property
    def active_requests(self) -> list[ReplacementRequest]:
        return list(self._requests.values())

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def sweep_stale(self, threshold_seconds: float, orphan_grace_seconds: float = 0.0) -> SweepReport:
        """
        Reclaim leaked state.

        * Every lock whose post has no registry entry is released once it has
          been held longer than ``orphan_grace_seconds``.
        * Every registry entry older than ``threshold_seconds`` is removed and
          its post's lock released, unless an accept or decline step is running
          on it. A running step is only reclaimed once its own lock is older
          than ``threshold_seconds``.
        """
        now = self._clock()
        report = SweepReport()

        registered_posts = {key.post_id for key in self._requests}
        for post_id, acquired_at in list(self._locks.items()):
            if post_id not in registered_posts and now - acquired_at >= orphan_grace_seconds:
                del self._locks[post_id]
                report.released_locks.append(post_id)

        running_posts = {
            key.post_id for key, record in self._requests.items() if self._step_running(record, now, threshold_seconds)
        }
        for key, record in list(self._requests.items()):
            if now - record.timestamp <= threshold_seconds:
                continue
            if self._step_running(record, now, threshold_seconds):
                logger.debug("[SWEEP] Skipping request %s, its %s step is still running", key, record.state.value)
                continue
            del self._requests[key]
            report.removed_requests.append(key)
            if key.post_id not in running_posts and self._locks.pop(key.post_id, None) is not None:
                report.released_locks.append(key.post_id)

        if not report.empty:
            logger.info(
                "[SWEEP] Removed %d stale request(s), released %d lock(s)",
                len(report.removed_requests),
                len(report.released_locks),
            )
        return report

    def _step_running(self, record: ReplacementRequest, now: float, threshold_seconds: float) -> bool:
        locked_at = self._locks.get(record.post_id)
        return record.state in IN_STEP_STATES and locked_at is not None and now - locked_at <= threshold_seconds
