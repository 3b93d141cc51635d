import pytest

from replacecord.errors import (
    ConfigurationError,
    ConflictError,
    InvalidTransitionError,
    PlatformDeliveryFailure,
    StaleStateError,
    UpstreamAccessDenied,
    UpstreamInvalidParameters,
    UpstreamPrecondition,
    UpstreamTimeout,
    UpstreamTransport,
    ValidationError,
    describe_error,
)


@pytest.mark.parametrize("error,expected", [
    (ValidationError("Reason is too short."), "❌ Reason is too short."),
    (ConflictError("Post is busy."), "❌ Post is busy."),
    (StaleStateError("Could not find the request message for post 5."),
     "❌ Could not find the request message for post 5. It may have been deleted or is too old."),
    (UpstreamPrecondition("Precondition failed", status=412, detail="duplicate md5"),
     "❌ The imageboard rejected the request: duplicate md5"),
    (UpstreamInvalidParameters("Invalid", status=422, detail="bad file"),
     "❌ Invalid parameters for replacement: bad file"),
    (PlatformDeliveryFailure("send failed", too_large=True),
     "❌ The file is too large to post in the moderation channel."),
])
def test_describe_error_messages(error, expected) -> None:
    assert describe_error(error) == expected


def test_describe_error_generic_cases() -> None:
    assert "contact a bot administrator" in describe_error(ConfigurationError("Channel missing."))
    assert "credentials" in describe_error(UpstreamAccessDenied("denied", status=403))
    assert "did not respond in time" in describe_error(UpstreamTimeout("slow"))
    assert describe_error(UpstreamTransport("HTTP 502")) == "❌ HTTP 502"
    assert describe_error(RuntimeError("secret internals")) == (
        "❌ An unexpected error occurred while processing this request."
    )


def test_timeout_is_a_transport_error() -> None:
    assert isinstance(UpstreamTimeout("slow"), UpstreamTransport)


def test_invalid_transition_keeps_states() -> None:
    error = InvalidTransitionError("DECLINING", "ACCEPTING")
    assert error.current == "DECLINING"
    assert error.target == "ACCEPTING"
    assert "DECLINING" in str(error)
