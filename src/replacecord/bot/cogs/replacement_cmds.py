"""
Replacement cog: slash commands and moderator controls.

Commands
- ``/requestreplace``: any user files a replacement request with a file
  attachment or a direct URL.
- ``/replace``: moderators replace a post's file immediately.
- ``/viewpost``: anyone looks up a post by id or URL.

Moderator controls
- The Accept, Decline and Undelete buttons on request messages carry
  structured custom ids and are dispatched by the persistent
  ``on_interaction`` listener below, so they survive restarts.

Every workflow error is caught here and reported ephemerally through
:func:`replacecord.errors.describe_error`; unexpected errors are logged with
their traceback.
"""

from __future__ import annotations

import mimetypes
import re
from typing import Awaitable, Callable
from urllib.parse import urlparse

import discord
from discord import Option
from discord.ext import commands

from replacecord.configuration.replacement_settings import ReplacementSettings
from replacecord.datatypes.post_datatypes import Post
from replacecord.datatypes.replacement_datatypes import (
    ControlAction,
    ControlID,
    ReplacementMedia,
    Requester,
    is_valid_post_id,
)
from replacecord.errors import ReplacementError, ValidationError, describe_error
from replacecord.replacement.workflow import ReplacementWorkflow
from replacecord.ui.replacement_embeds import build_replaced_embed, build_undelete_confirmation_embed
from replacecord.ui.replacement_views import ConfirmUndeleteView, DeclineReasonModal
from replacecord.util.logger import get_logger

logger = get_logger("replacement_cog")

NO_PERMISSION_MESSAGE = "❌ You do not have permission to use this command."
POST_URL_PATTERN = re.compile(r"/posts/(?P<post_id>\d+)")


def media_from_attachment(attachment: discord.Attachment) -> ReplacementMedia:
    return ReplacementMedia(
        url=attachment.url,
        filename=attachment.filename,
        content_type=attachment.content_type,
        size=attachment.size,
    )


def media_from_url(url: str) -> ReplacementMedia:
    """Build a media reference from a direct link.

    Raises:
        ValidationError: If ``url`` is not an http(s) link to a file.
    """
    parsed = urlparse(url.strip())
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError("Please provide a valid http(s) URL.")
    filename = parsed.path.rsplit("/", 1)[-1]
    if not filename:
        raise ValidationError("The URL must point directly to a file.")
    content_type, _ = mimetypes.guess_type(filename)
    return ReplacementMedia(url=url.strip(), filename=filename, content_type=content_type)


def post_id_from_input(text: str) -> str:
    """Post id from a bare id or a post URL.

    Raises:
        ValidationError: If no numeric post id can be read from ``text``.
    """
    text = (text or "").strip()
    if text.startswith("http"):
        match = POST_URL_PATTERN.search(urlparse(text).path)
        if match is None:
            raise ValidationError("Invalid post URL format.")
        return match.group("post_id")
    if not is_valid_post_id(text):
        raise ValidationError("Post ID must be a number.")
    return text


def requester_from_user(user: discord.abc.User) -> Requester:
    avatar = getattr(user, "display_avatar", None)
    return Requester(
        user_id=str(user.id),
        display_name=getattr(user, "display_name", None) or user.name,
        avatar_url=avatar.url if avatar is not None else None,
    )


class ReplacementCog(commands.Cog):
    """Cog exposing the replacement workflow to Discord users and moderators.

    Parameters
    ----------
    discord_bot_instance:
        Active :class:`discord.Bot` instance.
    workflow:
        Coordinator handling every request step.
    settings:
        Replacement settings (moderator ids, prompt timeouts).
    """

    def __init__(self, discord_bot_instance, workflow: ReplacementWorkflow, settings: ReplacementSettings):
        self.discord_bot_instance = discord_bot_instance
        self.workflow = workflow
        self.settings = settings
        logger.info("Replacement cog loaded")

    def is_moderator(self, user: discord.abc.Snowflake | None) -> bool:
        return user is not None and user.id in self.settings.moderator_ids

    async def _report(self, send: Callable[[str], Awaitable[object]], error: Exception) -> None:
        """Send the user-facing text for ``error``, logging unexpected ones."""
        if not isinstance(error, ReplacementError):
            logger.exception("Unexpected error in replacement workflow: %s", error, exc_info=error)
        else:
            logger.info("[WORKFLOW] Step rejected: %s", error)
        try:
            await send(describe_error(error))
        except discord.HTTPException as exc:
            logger.error("Failed to send error response to user: %s", exc)

    # ------------------------------------------------------------------
    # Slash commands
    # ------------------------------------------------------------------

    @commands.slash_command(name="requestreplace", description="Request a file replacement for a post.")
    async def requestreplace(
        self,
        ctx: discord.ApplicationContext,
        post_id: Option(str, "ID of the post to replace.", required=True),  # type: ignore
        reason: Option(str, "Why the post should be replaced.", required=True),  # type: ignore
        file: Option(discord.Attachment, "The replacement file.", required=False, default=None),  # type: ignore
        url: Option(str, "Direct URL to the replacement file.", required=False, default=None),  # type: ignore
    ) -> None:
        """File a replacement request for moderators to review."""
        await ctx.defer(ephemeral=True)

        if (file is None) == (not url):
            await ctx.send_followup("❌ Please provide either a file or a URL, but not both.", ephemeral=True)
            return

        try:
            media = media_from_attachment(file) if file is not None else media_from_url(url)
            message = await self.workflow.submit(requester_from_user(ctx.author), post_id, reason, media)
        except Exception as exc:
            await self._report(lambda text: ctx.send_followup(text, ephemeral=True), exc)
            return

        await ctx.send_followup(message, ephemeral=True)

    @commands.slash_command(name="replace", description="Replace a post's file immediately (moderators only).")
    async def replace(
        self,
        ctx: discord.ApplicationContext,
        post_id: Option(str, "ID of the post to replace.", required=True),  # type: ignore
        file: Option(discord.Attachment, "The replacement file.", required=True),  # type: ignore
        reason: Option(str, "Reason for the replacement.", required=True),  # type: ignore
        source: Option(str, "Source of the replacement file.", required=False, default=None),  # type: ignore
        as_pending: Option(bool, "Submit the replacement as pending.", required=False, default=False),  # type: ignore
    ) -> None:
        """Replace a post's file without going through the request queue."""
        await ctx.defer(ephemeral=True)

        if not self.is_moderator(ctx.author):
            await ctx.send_followup(NO_PERMISSION_MESSAGE, ephemeral=True)
            return

        async def confirm_undelete(post: Post) -> bool:
            view = ConfirmUndeleteView(ctx.author.id, timeout_seconds=self.settings.confirmation_timeout_seconds)
            view.message = await ctx.send_followup(
                embed=build_undelete_confirmation_embed(post.post_id),
                view=view,
                ephemeral=True,
            )
            await view.wait()
            return view.result

        try:
            replaced, undeleted = await self.workflow.direct_replace(
                post_id,
                media_from_attachment(file),
                reason,
                str(ctx.author.id),
                confirm_undelete,
                source=source,
                as_pending=as_pending,
            )
        except Exception as exc:
            await self._report(lambda text: ctx.send_followup(text, ephemeral=True), exc)
            return

        if not replaced:
            await ctx.send_followup("Replacement cancelled.", ephemeral=True)
            return
        post_url = self.workflow.api_settings.post_url(post_id.strip())
        await ctx.send_followup(embed=build_replaced_embed(post_id.strip(), post_url, undeleted=undeleted), ephemeral=True)

    @commands.slash_command(name="viewpost", description="View a post by ID or URL.")
    async def viewpost(
        self,
        ctx: discord.ApplicationContext,
        post: Option(str, "The post ID or URL.", required=True),  # type: ignore
    ) -> None:
        """Show a post's summary with a link to it."""
        try:
            post_id = post_id_from_input(post)
        except ValidationError as exc:
            await self._report(lambda text: ctx.respond(text, ephemeral=True), exc)
            return

        await ctx.defer()
        try:
            embed, view = await self.workflow.describe_post(post_id)
        except Exception as exc:
            await self._report(lambda text: ctx.send_followup(text), exc)
            return

        await ctx.send_followup(embed=embed, view=view)

    # ------------------------------------------------------------------
    # Moderator controls
    # ------------------------------------------------------------------

    @commands.Cog.listener(name="on_interaction")
    async def on_interaction(self, interaction: discord.Interaction) -> None:
        """Dispatch clicks on request controls by their custom id."""
        if interaction.type is not discord.InteractionType.component:
            return
        control = ControlID.parse(interaction.custom_id)
        if control is None or control.action is ControlAction.DECLINE_REASON:
            return

        if not self.is_moderator(interaction.user):
            await interaction.response.send_message(NO_PERMISSION_MESSAGE, ephemeral=True)
            return

        logger.debug("[CONTROLS] %s clicked by %s", control, interaction.user.id)
        if control.action is ControlAction.DECLINE:
            await self._start_decline(interaction, control)
        elif control.action is ControlAction.ACCEPT:
            await self._run_step(interaction, self.workflow.accept(
                control.post_id, control.requester_id, str(interaction.user.id),
            ))
        elif control.action is ControlAction.UNDELETE:
            await self._run_step(interaction, self.workflow.undelete_and_accept(
                control.post_id, control.requester_id, str(interaction.user.id),
            ))

    async def _run_step(self, interaction: discord.Interaction, step: Awaitable[str]) -> None:
        await interaction.response.defer(ephemeral=True)
        try:
            message = await step
        except Exception as exc:
            await self._report(lambda text: interaction.followup.send(text, ephemeral=True), exc)
            return
        await interaction.followup.send(message, ephemeral=True)

    async def _start_decline(self, interaction: discord.Interaction, control: ControlID) -> None:
        """Take the post lock, then ask the moderator for a reason."""
        try:
            self.workflow.begin_decline(control.post_id, control.requester_id)
        except ReplacementError as exc:
            await self._report(lambda text: interaction.response.send_message(text, ephemeral=True), exc)
            return

        moderator_id = str(interaction.user.id)

        async def on_reason(modal_interaction: discord.Interaction, reason: str) -> None:
            await self._run_step(modal_interaction, self.workflow.decline(
                control.post_id, control.requester_id, moderator_id, reason,
            ))

        async def on_expire() -> None:
            self.workflow.cancel_decline(control.post_id, control.requester_id)

        modal = DeclineReasonModal(
            control.post_id,
            control.requester_id,
            on_reason,
            on_expire,
            timeout_seconds=self.settings.prompt_timeout_seconds,
        )
        try:
            await interaction.response.send_modal(modal)
        except discord.HTTPException as exc:
            self.workflow.cancel_decline(control.post_id, control.requester_id)
            logger.error("[CONTROLS] Could not open the decline prompt for post %s: %s", control.post_id, exc)


def setup(discord_bot_instance, workflow: ReplacementWorkflow, settings: ReplacementSettings):
    """Cog setup entry point.

    Registers the replacement cog with the running bot instance.
    """
    discord_bot_instance.add_cog(ReplacementCog(discord_bot_instance, workflow, settings))
