"""
Core datatypes for replacement requests.

Defines the request identity (:class:`RequestKey`), the in-memory record
(:class:`ReplacementRequest`), the explicit workflow state machine
(:class:`WorkflowState` plus its transition table) and the structured
control identifiers carried by buttons and modals.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from enum import Enum

from replacecord.errors import InvalidTransitionError

POST_ID_PATTERN = re.compile(r"^\d+$")


def is_valid_post_id(post_id: str | None) -> bool:
    """Return True if ``post_id`` is a non-empty string of digits."""
    return bool(post_id) and POST_ID_PATTERN.match(post_id) is not None


class RequestStatus(Enum):
    PENDING = "pending"
    RESOLVED = "resolved"


class WorkflowState(Enum):
    """Lifecycle states of a replacement request."""

    VALIDATING = "validating"
    LOCK_ACQUIRED = "lock_acquired"
    AWAITING_SUBMISSION = "awaiting_submission"
    AWAITING_MODERATOR_DECISION = "awaiting_moderator_decision"
    ACCEPTING = "accepting"
    DECLINING = "declining"
    AWAITING_UNDELETE = "awaiting_undelete"
    RESOLVED = "resolved"


# A failed accept or decline step returns the request to the moderators.
ALLOWED_TRANSITIONS: dict[WorkflowState, frozenset[WorkflowState]] = {
    WorkflowState.VALIDATING: frozenset({WorkflowState.LOCK_ACQUIRED}),
    WorkflowState.LOCK_ACQUIRED: frozenset({WorkflowState.AWAITING_SUBMISSION}),
    WorkflowState.AWAITING_SUBMISSION: frozenset({WorkflowState.AWAITING_MODERATOR_DECISION}),
    WorkflowState.AWAITING_MODERATOR_DECISION: frozenset({
        WorkflowState.ACCEPTING,
        WorkflowState.DECLINING,
    }),
    WorkflowState.ACCEPTING: frozenset({
        WorkflowState.AWAITING_UNDELETE,
        WorkflowState.RESOLVED,
        WorkflowState.AWAITING_MODERATOR_DECISION,
    }),
    WorkflowState.DECLINING: frozenset({
        WorkflowState.RESOLVED,
        WorkflowState.AWAITING_MODERATOR_DECISION,
    }),
    WorkflowState.AWAITING_UNDELETE: frozenset({
        WorkflowState.ACCEPTING,
        WorkflowState.DECLINING,
    }),
    WorkflowState.RESOLVED: frozenset(),
}


def next_state(current: WorkflowState, target: WorkflowState) -> WorkflowState:
    """Validate a transition against :data:`ALLOWED_TRANSITIONS`.

    Raises:
        InvalidTransitionError: If ``current -> target`` is not allowed.
    """
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(current, target)
    return target


@dataclass(frozen=True)
class RequestKey:
    """Identity of an in-flight request: one requester asking about one post."""

    post_id: str
    requester_id: str

    def __str__(self) -> str:
        return f"{self.post_id}:{self.requester_id}"

    @classmethod
    def of(cls, post_id: str | int, requester_id: str | int) -> "RequestKey":
        return cls(str(post_id), str(requester_id))


@dataclass
class ReplacementRequest:
    """In-memory record of a replacement request.

    The message ids are hints: the moderation channel is the durable record,
    and the messages are always re-located before being acted upon.
    """

    post_id: str
    requester_id: str
    channel_id: int | None = None
    main_message_id: int | None = None
    replacement_image_message_id: int | None = None
    original_image_message_id: int | None = None
    timestamp: float = field(default_factory=time.time)
    status: RequestStatus = RequestStatus.PENDING
    state: WorkflowState = WorkflowState.VALIDATING

    @property
    def request_key(self) -> RequestKey:
        return RequestKey.of(self.post_id, self.requester_id)

    def transition(self, target: WorkflowState) -> None:
        """Move to ``target``, marking the request resolved when it gets there."""
        self.state = next_state(self.state, target)
        if target is WorkflowState.RESOLVED:
            self.status = RequestStatus.RESOLVED


class ControlAction(Enum):
    """Prefixes of the custom ids carried by buttons and modals."""

    DECLINE = "decline_request"
    ACCEPT = "accept_request"
    UNDELETE = "undelete_post"
    DECLINE_REASON = "decline_reason"


@dataclass(frozen=True)
class ControlID:
    """A parsed ``action:postId:requesterId`` control identifier."""

    action: ControlAction
    post_id: str
    requester_id: str

    def __str__(self) -> str:
        return f"{self.action.value}:{self.post_id}:{self.requester_id}"

    @property
    def request_key(self) -> RequestKey:
        return RequestKey(self.post_id, self.requester_id)

    @classmethod
    def parse(cls, custom_id: str | None) -> "ControlID | None":
        """Parse a custom id, returning None for ids this bot does not own."""
        if not custom_id:
            return None
        parts = custom_id.split(":")
        if len(parts) != 3:
            return None
        prefix, post_id, requester_id = parts
        try:
            action = ControlAction(prefix)
        except ValueError:
            return None
        if not is_valid_post_id(post_id) or not requester_id.isdigit():
            return None
        return cls(action, post_id, requester_id)


@dataclass(frozen=True)
class ReplacementMedia:
    """Reference to replacement media: where to download it and how to name it."""

    url: str
    filename: str
    content_type: str | None = None
    size: int | None = None


@dataclass(frozen=True)
class Requester:
    """The user filing a request, as shown in the moderation channel."""

    user_id: str
    display_name: str
    avatar_url: str | None = None
