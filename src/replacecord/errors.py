"""
Error taxonomy for the replacement workflow.

Every error raised on purpose by the workflow derives from
:class:`ReplacementError` and is caught at the command/interaction boundary,
where :func:`describe_error` turns it into the ephemeral text shown to the
requester or moderator.

Validation and conflict errors are raised before any lock is taken. Every
other error raised after a lock was acquired is raised only after that lock
has been released.
"""

from __future__ import annotations


class ReplacementError(Exception):
    """Base class for all expected workflow failures."""


class ConfigurationError(ReplacementError):
    """A required setting (channel, credentials) is missing or unusable."""


class ValidationError(ReplacementError):
    """Bad input shape; reported immediately with no side effects."""


class ConflictError(ReplacementError):
    """The post is locked or the requester already has an active request."""


class InvalidTransitionError(ReplacementError):
    """A workflow state change that the transition table does not allow."""

    def __init__(self, current: object, target: object) -> None:
        super().__init__(f"Cannot move a request from {current} to {target}")
        self.current = current
        self.target = target


class StaleStateError(ReplacementError):
    """An expected request message could not be found in the channel."""


class PlatformDeliveryFailure(ReplacementError):
    """Sending, editing or deleting a Discord message failed."""

    def __init__(self, message: str, *, too_large: bool = False) -> None:
        super().__init__(message)
        self.too_large = too_large


# ---------------------------------------------------------------------------
# Upstream (content API) failures
# ---------------------------------------------------------------------------

class UpstreamError(ReplacementError):
    """Base class for content API failures."""

    def __init__(self, message: str, *, status: int | None = None, detail: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.detail = detail


class UpstreamNotFound(UpstreamError):
    """HTTP 404."""


class UpstreamAccessDenied(UpstreamError):
    """HTTP 403."""


class UpstreamPrecondition(UpstreamError):
    """HTTP 412; ``detail`` carries the server-supplied explanation."""


class UpstreamInvalidParameters(UpstreamError):
    """HTTP 422."""


class UpstreamFileTooLarge(UpstreamError):
    """HTTP 413, or a media download above the configured size limit."""


class UpstreamTransport(UpstreamError):
    """Network failures and unexpected status codes."""


class UpstreamTimeout(UpstreamTransport):
    """The content API did not answer in time."""


def describe_error(error: BaseException) -> str:
    """Return the user-facing text for ``error``."""
    if isinstance(error, ValidationError):
        return f"❌ {error}"
    if isinstance(error, ConflictError):
        return f"❌ {error}"
    if isinstance(error, StaleStateError):
        return f"❌ {error} It may have been deleted or is too old."
    if isinstance(error, ConfigurationError):
        return f"❌ {error} Please contact a bot administrator."
    if isinstance(error, UpstreamNotFound):
        return f"❌ {error}"
    if isinstance(error, UpstreamAccessDenied):
        return "❌ Access denied by the imageboard. Check the bot's API credentials."
    if isinstance(error, UpstreamTimeout):
        return "❌ The imageboard did not respond in time. Please try again shortly."
    if isinstance(error, UpstreamFileTooLarge):
        return f"❌ The file is too large. {error}"
    if isinstance(error, PlatformDeliveryFailure) and error.too_large:
        return "❌ The file is too large to post in the moderation channel."
    if isinstance(error, UpstreamPrecondition):
        return f"❌ The imageboard rejected the request: {error.detail or error}"
    if isinstance(error, UpstreamInvalidParameters):
        return f"❌ Invalid parameters for replacement: {error.detail or error}"
    if isinstance(error, ReplacementError):
        return f"❌ {error}"
    return "❌ An unexpected error occurred while processing this request."
