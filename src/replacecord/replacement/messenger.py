"""
Messaging platform adapter for the moderation channel.

The workflow only needs a small capability set: send a message, edit one,
delete one, read recent channel history, and direct-message a user.
:class:`DiscordMessenger` implements that set on top of a py-cord bot,
retrying transient failures and translating Discord errors into
:class:`PlatformDeliveryFailure`.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, TypeVar

import discord

from replacecord.errors import ConfigurationError, PlatformDeliveryFailure
from replacecord.util.discord_retry import ENTITY_TOO_LARGE_CODE, UNKNOWN_MESSAGE_CODE, retry_discord_call
from replacecord.util.logger import get_logger

logger = get_logger("messenger")

T = TypeVar("T")


class DiscordMessenger:
    """
    Moderation-channel operations for the replacement workflow.

    Args:
        bot: Connected py-cord bot.
        channel_id: Moderation channel receiving replacement requests.
    """

    def __init__(self, bot: discord.Bot, channel_id: int | None) -> None:
        self.bot = bot
        self.channel_id = channel_id
        self._channel: discord.abc.Messageable | None = None

    @property
    def bot_user_id(self) -> int | None:
        return self.bot.user.id if self.bot.user else None

    async def _call(self, description: str, call: Callable[[], Awaitable[T]]) -> T:
        try:
            return await retry_discord_call(call)
        except discord.HTTPException as exc:
            too_large = getattr(exc, "code", 0) == ENTITY_TOO_LARGE_CODE or getattr(exc, "status", 0) == 413
            raise PlatformDeliveryFailure(f"Failed to {description}: {exc}", too_large=too_large) from exc

    async def resolve_channel(self) -> discord.abc.Messageable:
        """Return the moderation channel, fetching it on first use.

        Raises:
            ConfigurationError: If no channel is configured or it cannot be found.
        """
        if self._channel is not None:
            return self._channel
        if not self.channel_id:
            raise ConfigurationError("The replacement request channel is not configured.")
        channel = self.bot.get_channel(self.channel_id)
        if channel is None:
            try:
                channel = await self._call("fetch the moderation channel", lambda: self.bot.fetch_channel(self.channel_id))
            except PlatformDeliveryFailure as exc:
                raise ConfigurationError("Could not find the replacement request channel.") from exc
        if not isinstance(channel, discord.abc.Messageable):
            raise ConfigurationError("The replacement request channel cannot receive messages.")
        self._channel = channel
        return channel

    async def send(self, **kwargs: Any) -> discord.Message:
        """Send a message to the moderation channel.

        An upload is rewound before every attempt; a failed attempt leaves the
        file read to its end.
        """
        channel = await self.resolve_channel()
        file: discord.File | None = kwargs.get("file")

        async def attempt() -> discord.Message:
            if file is not None:
                file.reset()
            return await channel.send(**kwargs)

        return await self._call("send a message", attempt)

    async def edit(self, message: discord.Message, **kwargs: Any) -> discord.Message:
        return await self._call(f"edit message {message.id}", lambda: message.edit(**kwargs))

    async def delete(self, message: discord.Message) -> None:
        """Delete ``message``; a message that is already gone counts as deleted."""
        try:
            await self._call(f"delete message {message.id}", message.delete)
        except PlatformDeliveryFailure as exc:
            cause = exc.__cause__
            if isinstance(cause, discord.NotFound) and getattr(cause, "code", 0) == UNKNOWN_MESSAGE_CODE:
                logger.debug("Message %s was already deleted", message.id)
                return
            raise

    async def recent_messages(self, limit: int) -> list[discord.Message]:
        """Return the latest ``limit`` messages in the channel, newest first."""
        channel = await self.resolve_channel()

        async def collect() -> list[discord.Message]:
            return [message async for message in channel.history(limit=limit)]

        return await self._call("read channel history", collect)

    async def direct_message(self, user_id: int | str, **kwargs: Any) -> discord.Message:
        """Direct-message a user. Fails when the user has DMs disabled."""
        user = self.bot.get_user(int(user_id))
        if user is None:
            user = await self._call(f"fetch user {user_id}", lambda: self.bot.fetch_user(int(user_id)))
        return await self._call(f"direct-message user {user_id}", lambda: user.send(**kwargs))
