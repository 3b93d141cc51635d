"""
Embed builders for replacement requests.

Functions here are pure presentation: they build :class:`discord.Embed`
objects from workflow data and contain no business logic. The titles, field
names and footer format are also the markers the channel-history locator
uses to find a request's messages again, so they are module constants.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone

import discord

from replacecord.datatypes.post_datatypes import Post
from replacecord.datatypes.replacement_datatypes import Requester

REQUEST_TITLE = "🔄 Replacement Request"
REPLACEMENT_TITLE = "📎 Replacement File"
ORIGINAL_TITLE = "🖼️ Original Image"

POST_ID_FIELD = "Post ID"
REQUESTED_BY_FIELD = "Requested by"
REASON_FIELD = "Reason"
FILTERED_URL_FIELD = "Image URL (Filtered Content)"

FOOTER_PATTERN = re.compile(r"Post #(?P<post_id>\d+)(?: • Requester (?P<requester_id>\d+))?")
REQUESTED_BY_PATTERN = re.compile(r"\((?P<requester_id>\d+)\)\s*$")

BOT_FOOTER = "Replacecord"
MAX_DESCRIPTION_LENGTH = 2000


def build_footer(post_id: str, requester_id: str | None = None) -> str:
    """Footer identifying which request a media message belongs to."""
    if requester_id:
        return f"Post #{post_id} • Requester {requester_id}"
    return f"Post #{post_id}"


def parse_footer(text: str | None) -> tuple[str, str | None] | None:
    """Return ``(post_id, requester_id)`` from a media message footer."""
    if not text:
        return None
    match = FOOTER_PATTERN.search(text)
    if not match:
        return None
    return match.group("post_id"), match.group("requester_id")


def field_value(embed: discord.Embed, name: str) -> str | None:
    for embed_field in embed.fields:
        if embed_field.name == name:
            return embed_field.value
    return None


def requester_from_request_embed(embed: discord.Embed) -> str | None:
    """Extract the requester id from the ``Requested by`` field."""
    value = field_value(embed, REQUESTED_BY_FIELD)
    if not value:
        return None
    match = REQUESTED_BY_PATTERN.search(value)
    return match.group("requester_id") if match else None


def _is_image(filename: str, content_type: str | None) -> bool:
    if content_type:
        return content_type.lower().startswith("image/")
    return filename.lower().endswith((".png", ".jpg", ".jpeg", ".gif", ".webp"))


# ---------------------------------------------------------------------------
# Request messages
# ---------------------------------------------------------------------------

def build_replacement_file_embed(
    post_id: str,
    requester_id: str,
    filename: str,
    content_type: str | None = None,
) -> discord.Embed:
    """Embed attached to the message carrying the proposed replacement file."""
    embed = discord.Embed(
        title=REPLACEMENT_TITLE,
        description=f"Proposed replacement for post #{post_id}: `{filename}`",
        color=discord.Color.blue(),
    )
    if _is_image(filename, content_type):
        embed.set_image(url=f"attachment://{filename}")
    embed.set_footer(text=build_footer(post_id, requester_id))
    return embed


def build_original_image_embed(post: Post, requester_id: str) -> discord.Embed:
    """Embed rendering the post's current media for comparison."""
    embed = discord.Embed(
        title=ORIGINAL_TITLE,
        description=f"Current media of post #{post.post_id}",
        color=discord.Color.light_grey(),
    )
    if post.file_url:
        embed.set_image(url=post.file_url)
    embed.set_footer(text=build_footer(post.post_id, requester_id))
    return embed


def build_request_embed(
    post: Post,
    requester: Requester,
    reason: str,
    *,
    spoiler_url: str | None = None,
    uploader: str | None = None,
    approver: str | None = None,
) -> discord.Embed:
    """The main request message moderators act upon."""
    embed = discord.Embed(
        title=REQUEST_TITLE,
        description=f"A replacement has been requested for post #{post.post_id}",
        color=discord.Color.orange(),
        timestamp=datetime.now(timezone.utc),
    )
    embed.add_field(name=POST_ID_FIELD, value=post.post_id, inline=True)
    embed.add_field(
        name=REQUESTED_BY_FIELD,
        value=f"{requester.display_name} ({requester.user_id})",
        inline=True,
    )
    embed.add_field(name=REASON_FIELD, value=reason[:1024], inline=False)
    embed.add_field(name="Current Rating", value=post.rating_label, inline=True)
    embed.add_field(name="Current Status", value=post.status_label, inline=True)
    embed.add_field(name="Uploader", value=uploader or "Unknown", inline=True)
    embed.add_field(name="Approver", value=approver or "None", inline=True)
    if spoiler_url:
        embed.add_field(name=FILTERED_URL_FIELD, value=f"|| {spoiler_url} ||", inline=False)
    if requester.avatar_url:
        embed.set_thumbnail(url=requester.avatar_url)
    return embed


def build_post_embed(
    post: Post,
    post_url: str,
    *,
    uploader: str | None = None,
    approver: str | None = None,
    spoiler: bool = False,
) -> discord.Embed:
    """Summary of a post for ``/viewpost``.

    A spoilered post links its media behind ``|| ||`` instead of rendering it.
    """
    description = post.description.strip()[:MAX_DESCRIPTION_LENGTH] or "No description"
    if post.file_url and not post.flags.deleted and spoiler:
        description += f"\n\n|| {post.file_url} ||"
    if post.flags.deleted:
        color = discord.Color.red()
    elif post.flags.pending:
        color = discord.Color.gold()
    else:
        color = discord.Color.green()

    embed = discord.Embed(title=f"Post #{post.post_id}", url=post_url, description=description, color=color)
    embed.add_field(name="Rating", value=post.rating_label, inline=True)
    embed.add_field(name="Status", value=post.status_label, inline=True)
    embed.add_field(name="Approver", value=approver or "None", inline=True)
    embed.add_field(name="Uploader", value=uploader or "Unknown", inline=True)
    embed.add_field(name="Favorites", value=str(post.fav_count), inline=True)
    embed.add_field(
        name="Score",
        value=f"Up: {post.score.up} | Down: {post.score.down} | Total: {post.score.total}",
        inline=True,
    )
    if post.file_url and not post.flags.deleted and not spoiler:
        embed.set_image(url=post.file_url)
    return embed


# ---------------------------------------------------------------------------
# Outcome notices
# ---------------------------------------------------------------------------

def build_decline_dm_embed(post_id: str, reason: str) -> discord.Embed:
    embed = discord.Embed(
        title="❌ Replacement Request Declined",
        description=f"Your replacement request for post #{post_id} has been declined.",
        color=discord.Color.red(),
        timestamp=datetime.now(timezone.utc),
    )
    embed.add_field(name=POST_ID_FIELD, value=post_id, inline=True)
    embed.add_field(name=REASON_FIELD, value=reason[:1024], inline=False)
    embed.set_footer(text=BOT_FOOTER)
    return embed


def build_decline_notice_embed(post_id: str, requester_id: str, moderator_id: str, reason: str) -> discord.Embed:
    embed = discord.Embed(
        title="⚠️ Request Declined",
        description=f"Replacement request for post #{post_id} has been declined.",
        color=discord.Color.orange(),
        timestamp=datetime.now(timezone.utc),
    )
    embed.add_field(name="Requester", value=f"<@{requester_id}>", inline=True)
    embed.add_field(name="Declined by", value=f"<@{moderator_id}>", inline=True)
    embed.add_field(name=REASON_FIELD, value=reason[:1024], inline=False)
    embed.set_footer(text=BOT_FOOTER)
    return embed


def build_accept_dm_embed(post_id: str) -> discord.Embed:
    embed = discord.Embed(
        title="✅ Replacement Request Accepted",
        description=f"Your replacement request for post #{post_id} has been accepted and processed successfully.",
        color=discord.Color.green(),
        timestamp=datetime.now(timezone.utc),
    )
    embed.add_field(name=POST_ID_FIELD, value=post_id, inline=True)
    embed.add_field(name="Status", value="Replacement Complete", inline=True)
    embed.set_footer(text=BOT_FOOTER)
    return embed


def build_accept_notice_embed(
    post_id: str,
    requester_id: str,
    moderator_id: str,
    *,
    undeleted: bool = False,
) -> discord.Embed:
    embed = discord.Embed(
        title="✅ Request Accepted",
        description=f"Replacement request for post #{post_id} has been accepted and processed successfully.",
        color=discord.Color.green(),
        timestamp=datetime.now(timezone.utc),
    )
    embed.add_field(name="Requester", value=f"<@{requester_id}>", inline=True)
    embed.add_field(name="Accepted by", value=f"<@{moderator_id}>", inline=True)
    status = "Post undeleted, replacement complete" if undeleted else "Replacement Complete"
    embed.add_field(name="Status", value=status, inline=False)
    embed.set_footer(text=BOT_FOOTER)
    return embed


def build_replaced_embed(post_id: str, post_url: str, *, undeleted: bool = False) -> discord.Embed:
    """Confirmation for the moderator-only direct replacement."""
    description = f"Post {post_id} has been successfully replaced."
    if undeleted:
        description = f"Post {post_id} was undeleted and successfully replaced."
    embed = discord.Embed(
        title="Post Successfully Replaced",
        description=description,
        color=discord.Color.green(),
        url=post_url,
    )
    embed.set_footer(text=BOT_FOOTER)
    return embed


def build_undelete_confirmation_embed(post_id: str) -> discord.Embed:
    embed = discord.Embed(
        title="Post is Deleted",
        description=f"Post {post_id} is currently deleted. Undelete it before replacing the file?",
        color=discord.Color.orange(),
    )
    embed.add_field(name=POST_ID_FIELD, value=post_id, inline=True)
    embed.add_field(name="Status", value="Deleted", inline=True)
    embed.set_footer(text="Confirm or cancel below")
    return embed
