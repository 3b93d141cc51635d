"""
Pytest configuration and fixtures for Replacecord tests.
"""

import itertools
import mimetypes
import sys
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from replacecord.api.content_api import ContentAPIClient  # noqa: E402
from replacecord.configuration.replacement_settings import ContentAPISettings, ReplacementSettings  # noqa: E402
from replacecord.datatypes.post_datatypes import Post, PostFlags  # noqa: E402
from replacecord.replacement.coordinator import RequestCoordinator  # noqa: E402
from replacecord.replacement.locator import ChannelHistoryLocator  # noqa: E402
from replacecord.replacement.workflow import ReplacementWorkflow  # noqa: E402
from replacecord.services.rate_limiter import RateLimiter  # noqa: E402

BOT_USER_ID = 999
MODERATOR_ID = 777


class FakeClock:
    """Manually advanced replacement for ``time.time``."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeMessage:
    """Stand-in for :class:`discord.Message` carrying real embeds."""

    def __init__(self, **attrs) -> None:
        self.__dict__.update(attrs)


_message_ids = itertools.count(10_000)


def make_message(*, embeds=None, attachments=None, author_id=BOT_USER_ID, view=None, content=None) -> FakeMessage:
    return FakeMessage(
        id=next(_message_ids),
        embeds=list(embeds or []),
        attachments=list(attachments or []),
        author=SimpleNamespace(id=author_id),
        view=view,
        content=content,
    )


def make_attachment(filename: str = "replacement.png", *, content_type: str | None = None, size: int = 1024):
    return SimpleNamespace(
        url=f"https://cdn.discordapp.test/attachments/1/2/{filename}",
        filename=filename,
        content_type=content_type or mimetypes.guess_type(filename)[0],
        size=size,
    )


class FakeMessenger:
    """In-memory moderation channel with the :class:`DiscordMessenger` surface.

    ``history`` is kept newest first, like Discord's channel history.
    """

    def __init__(self, channel_id: int = 4242) -> None:
        self.channel_id = channel_id
        self.bot_user_id = BOT_USER_ID
        self.history: list[FakeMessage] = []
        self.sent: list[FakeMessage] = []
        self.edits: list[tuple[FakeMessage, dict]] = []
        self.deleted: list[FakeMessage] = []
        self.direct_messages: list[tuple[str, dict]] = []
        self.fail_send_after: int | None = None
        self.fail_direct_messages = False
        self.fail_channel_sends = False

    async def send(self, **kwargs):
        if self.fail_channel_sends:
            raise RuntimeError("channel unavailable")
        if self.fail_send_after is not None and len(self.sent) >= self.fail_send_after:
            raise RuntimeError("send failed")
        attachments = []
        file = kwargs.get("file")
        if file is not None:
            attachments.append(make_attachment(file.filename))
        embed = kwargs.get("embed")
        message = make_message(
            embeds=[embed] if embed is not None else [],
            attachments=attachments,
            view=kwargs.get("view"),
            content=kwargs.get("content"),
        )
        self.sent.append(message)
        self.history.insert(0, message)
        return message

    async def edit(self, message, **kwargs):
        self.edits.append((message, kwargs))
        if "view" in kwargs:
            message.view = kwargs["view"]
        return message

    async def delete(self, message):
        self.deleted.append(message)
        if message in self.history:
            self.history.remove(message)

    async def recent_messages(self, limit: int):
        return list(self.history[:limit])

    async def direct_message(self, user_id, **kwargs):
        if self.fail_direct_messages:
            raise RuntimeError("Cannot send messages to this user")
        self.direct_messages.append((str(user_id), kwargs))
        return make_message(embeds=[kwargs.get("embed")])


def make_post(post_id: str = "500", *, deleted: bool = False, tags=None, file_url: str | None = "https://static.test/original.png") -> Post:
    return Post(
        post_id=post_id,
        file_url=file_url,
        file_ext="png",
        rating="s",
        flags=PostFlags(deleted=deleted),
        tags=tags or {"general": ["solo"]},
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def messenger() -> FakeMessenger:
    return FakeMessenger()


@pytest.fixture()
def settings() -> ReplacementSettings:
    return ReplacementSettings({
        "channel_id": 4242,
        "moderator_ids": [MODERATOR_ID],
        "tags_to_filter": ["gore"],
        "undelete_settle_seconds": 0,
    })


@pytest.fixture()
def api_settings() -> ContentAPISettings:
    return ContentAPISettings({"base_url": "https://board.test"})


@pytest.fixture()
def content_api() -> MagicMock:
    api = MagicMock(spec=ContentAPIClient)
    api.fetch_post.return_value = make_post()
    api.download_media.return_value = b"\x89PNG fake image"
    api.submit_replacement.return_value = {"success": True}
    api.undelete_post.return_value = {}
    return api


@pytest.fixture()
def rate_limiter() -> MagicMock:
    limiter = MagicMock(spec=RateLimiter)
    limiter.is_rate_limited.return_value = False
    limiter.format_remaining.return_value = None
    return limiter


@pytest.fixture()
def coordinator(clock) -> RequestCoordinator:
    return RequestCoordinator(clock=clock)


@pytest.fixture()
def sleeps() -> list:
    return []


@pytest.fixture()
def workflow(coordinator, rate_limiter, content_api, messenger, settings, api_settings, clock, sleeps) -> ReplacementWorkflow:
    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return ReplacementWorkflow(
        coordinator=coordinator,
        rate_limiter=rate_limiter,
        content_api=content_api,
        messenger=messenger,
        locator=ChannelHistoryLocator(messenger, scan_limit=50, fallback_window=5),
        settings=settings,
        api_settings=api_settings,
        clock=clock,
        sleep=fake_sleep,
    )
