"""
Re-locate a request's messages in the moderation channel.

Stored message ids are only hints. Before a moderator step acts on a
request, the three messages belonging to it (request, replacement file and
original image) are found again by scanning recent channel history for the
embed markers written when the request was submitted:

* request message: title :data:`REQUEST_TITLE`, a matching ``Post ID`` field
  and a ``Requested by`` field naming the requester;
* replacement message: title :data:`REPLACEMENT_TITLE` with a footer naming
  the post; failing that, the nearest bot-authored image attachment posted
  just before the request message;
* original image message: title :data:`ORIGINAL_TITLE` with a footer naming
  the post. It is optional; filtered and deleted posts never get one.

Several requesters may ask for the same post, so a message naming another
requester never matches. Messages without a requester marker are only taken
when nothing names the requester.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

import discord

from replacecord.datatypes.replacement_datatypes import ReplacementMedia, RequestKey
from replacecord.errors import StaleStateError
from replacecord.replacement.messenger import DiscordMessenger
from replacecord.ui.replacement_embeds import (
    ORIGINAL_TITLE,
    POST_ID_FIELD,
    REPLACEMENT_TITLE,
    REQUEST_TITLE,
    field_value,
    parse_footer,
    requester_from_request_embed,
)
from replacecord.util.logger import get_logger

logger = get_logger("request_locator")

IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".gif", ".webp")


@dataclass
class LocatedRequest:
    """The messages currently representing one request in the channel."""

    request_message: discord.Message
    replacement_message: Optional[discord.Message] = None
    original_message: Optional[discord.Message] = None

    @property
    def messages(self) -> list[discord.Message]:
        """Every located message, request message first."""
        found = [self.request_message, self.replacement_message, self.original_message]
        return [message for message in found if message is not None]

    @property
    def replacement_media(self) -> Optional[ReplacementMedia]:
        if self.replacement_message is None:
            return None
        return extract_media(self.replacement_message)


class RequestLocator(Protocol):
    async def locate(self, key: RequestKey) -> LocatedRequest:
        ...


def _first_embed(message: discord.Message) -> Optional[discord.Embed]:
    return message.embeds[0] if message.embeds else None


def _is_image_attachment(attachment: discord.Attachment) -> bool:
    content_type = getattr(attachment, "content_type", None)
    if content_type:
        return content_type.lower().startswith("image/")
    return attachment.filename.lower().endswith(IMAGE_EXTENSIONS)


def extract_media(message: discord.Message) -> Optional[ReplacementMedia]:
    """Media reference carried by a replacement message.

    The attachment wins; an embed image URL is used for messages that only
    render the file.
    """
    for attachment in message.attachments:
        return ReplacementMedia(
            url=attachment.url,
            filename=attachment.filename,
            content_type=getattr(attachment, "content_type", None),
            size=getattr(attachment, "size", None),
        )
    embed = _first_embed(message)
    image_url = embed.image.url if embed is not None and embed.image else None
    if image_url and not image_url.startswith("attachment://"):
        filename = image_url.split("?", 1)[0].rsplit("/", 1)[-1] or "replacement"
        return ReplacementMedia(url=image_url, filename=filename)
    return None


def _owned_by(owner: Optional[str], key: RequestKey) -> Optional[bool]:
    """
    True when ``owner`` is the requester of ``key``, False for an unmarked
    message, None when the message names another requester.
    """
    if owner is None:
        return False
    if owner == key.requester_id:
        return True
    return None


def _footer_owner(message: discord.Message, title: str, key: RequestKey) -> Optional[bool]:
    """:func:`_owned_by` for a ``title`` message of the post, None for any other message."""
    embed = _first_embed(message)
    if embed is None or embed.title != title:
        return None
    parsed = parse_footer(embed.footer.text if embed.footer else None)
    if parsed is None or parsed[0] != key.post_id:
        return None
    return _owned_by(parsed[1], key)


def _belongs_elsewhere(message: discord.Message, key: RequestKey) -> bool:
    """True if ``message`` carries a footer marker for another post or requester."""
    embed = _first_embed(message)
    parsed = parse_footer(embed.footer.text if embed is not None and embed.footer else None)
    if parsed is None:
        return False
    post_id, requester_id = parsed
    return post_id != key.post_id or (requester_id is not None and requester_id != key.requester_id)


def _pick(candidates: list[tuple[discord.Message, bool]]) -> Optional[discord.Message]:
    """Prefer the newest message naming the requester, else the newest unmarked one."""
    for message, named in candidates:
        if named:
            return message
    return candidates[0][0] if candidates else None


class ChannelHistoryLocator:
    """
    :class:`RequestLocator` scanning the moderation channel's recent history.

    Args:
        messenger: Adapter over the moderation channel.
        scan_limit: How many recent messages to scan.
        fallback_window: How many messages before the request message the
            attachment fallback looks at.
    """

    def __init__(self, messenger: DiscordMessenger, *, scan_limit: int = 50, fallback_window: int = 5) -> None:
        self.messenger = messenger
        self.scan_limit = scan_limit
        self.fallback_window = fallback_window

    async def locate(self, key: RequestKey) -> LocatedRequest:
        """
        Find the messages of the request identified by ``key``.

        Raises:
            StaleStateError: If the request message is no longer in recent history.
        """
        history = await self.messenger.recent_messages(self.scan_limit)
        located = self.locate_in(history, key)
        if located is None:
            raise StaleStateError(f"Could not find the request message for post {key.post_id}.")
        return located

    def locate_in(self, history: Sequence[discord.Message], key: RequestKey) -> Optional[LocatedRequest]:
        """Match ``key`` against ``history`` (newest first)."""
        requests: list[tuple[int, discord.Message, bool]] = []
        replacements: list[tuple[discord.Message, bool]] = []
        originals: list[tuple[discord.Message, bool]] = []

        for index, message in enumerate(history):
            embed = _first_embed(message)
            if embed is None:
                continue
            if embed.title == REQUEST_TITLE and field_value(embed, POST_ID_FIELD) == key.post_id:
                named = _owned_by(requester_from_request_embed(embed), key)
                if named is not None:
                    requests.append((index, message, named))
                continue
            replacement = _footer_owner(message, REPLACEMENT_TITLE, key)
            if replacement is not None:
                replacements.append((message, replacement))
                continue
            original = _footer_owner(message, ORIGINAL_TITLE, key)
            if original is not None:
                originals.append((message, original))

        if not requests:
            logger.debug("[LOCATOR] No request message for %s in %d messages", key, len(history))
            return None

        request_index, request_message, _ = next(
            (entry for entry in requests if entry[2]),
            requests[0],
        )
        replacement_message = _pick(replacements)
        if replacement_message is None:
            replacement_message = self._fallback_replacement(history, request_index, key)
        return LocatedRequest(
            request_message=request_message,
            replacement_message=replacement_message,
            original_message=_pick(originals),
        )

    def _fallback_replacement(
        self, history: Sequence[discord.Message], request_index: int, key: RequestKey,
    ) -> Optional[discord.Message]:
        """Nearest bot-authored image attachment sent shortly before the request message."""
        bot_user_id = self.messenger.bot_user_id
        window = history[request_index + 1:request_index + 1 + self.fallback_window]
        for message in window:
            if bot_user_id is not None and message.author.id != bot_user_id:
                continue
            if _belongs_elsewhere(message, key):
                continue
            if any(_is_image_attachment(attachment) for attachment in message.attachments):
                return message
        return None
