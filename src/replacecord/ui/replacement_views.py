"""
Interactive controls for replacement requests.

The moderation-channel views carry structured custom ids
(``action:postId:requesterId``) and are stateless: a persistent
``on_interaction`` listener in the replacement cog dispatches the clicks, so
the buttons keep working across restarts. Views here only build components.

The decline-reason modal and the undelete confirmation are short-lived
prompts with a timeout; their timeout hooks give the held post lock back.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Optional

import discord

from replacecord.datatypes.replacement_datatypes import ControlAction, ControlID
from replacecord.util.logger import get_logger

logger = get_logger("replacement_views")

ReasonHandler = Callable[[discord.Interaction, str], Awaitable[None]]
TimeoutHandler = Callable[[], Awaitable[None]]


def _link_button(post_url: str) -> discord.ui.Button:
    return discord.ui.Button(label="View Post", style=discord.ButtonStyle.link, url=post_url, row=0)


def build_request_view(post_url: str, post_id: str, requester_id: str, *, with_controls: bool = True) -> discord.ui.View:
    """Link to the post plus Decline/Accept buttons for moderators."""
    view = discord.ui.View(timeout=None)
    view.add_item(_link_button(post_url))
    if with_controls:
        view.add_item(discord.ui.Button(
            label="Decline",
            emoji="❌",
            style=discord.ButtonStyle.danger,
            custom_id=str(ControlID(ControlAction.DECLINE, post_id, requester_id)),
            row=0,
        ))
        view.add_item(discord.ui.Button(
            label="Accept",
            emoji="✅",
            style=discord.ButtonStyle.success,
            custom_id=str(ControlID(ControlAction.ACCEPT, post_id, requester_id)),
            row=0,
        ))
    return view


def build_undelete_view(post_url: str, post_id: str, requester_id: str) -> discord.ui.View:
    """Controls shown once an accept found the post deleted."""
    view = discord.ui.View(timeout=None)
    view.add_item(_link_button(post_url))
    view.add_item(discord.ui.Button(
        label="Decline",
        emoji="❌",
        style=discord.ButtonStyle.danger,
        custom_id=str(ControlID(ControlAction.DECLINE, post_id, requester_id)),
        row=0,
    ))
    view.add_item(discord.ui.Button(
        label="Undelete & Accept",
        emoji="♻️",
        style=discord.ButtonStyle.primary,
        custom_id=str(ControlID(ControlAction.UNDELETE, post_id, requester_id)),
        row=0,
    ))
    return view


def build_processing_view(post_url: str) -> discord.ui.View:
    """Replace the decision controls while a step is running."""
    view = discord.ui.View(timeout=None)
    view.add_item(_link_button(post_url))
    view.add_item(discord.ui.Button(
        label="Processing...",
        emoji="⏳",
        style=discord.ButtonStyle.secondary,
        disabled=True,
        row=0,
    ))
    return view


def build_link_view(post_url: str) -> discord.ui.View:
    view = discord.ui.View(timeout=None)
    view.add_item(_link_button(post_url))
    return view


class DeclineReasonModal(discord.ui.Modal):
    """
    Prompt a moderator for the decline reason.

    Args:
        post_id: Post the request targets.
        requester_id: Requester of the request being declined.
        on_reason: Coroutine receiving the submit interaction and the reason.
        on_expire: Coroutine run when the modal times out unanswered.
        timeout_seconds: How long the prompt stays open.
    """

    def __init__(
        self,
        post_id: str,
        requester_id: str,
        on_reason: ReasonHandler,
        on_expire: TimeoutHandler,
        *,
        timeout_seconds: float = 60.0,
    ) -> None:
        super().__init__(
            discord.ui.InputText(
                label="Reason for declining",
                style=discord.InputTextStyle.long,
                placeholder="Explain why this replacement request is being declined.",
                min_length=1,
                max_length=1000,
                required=True,
            ),
            title=f"Decline request for post #{post_id}",
            custom_id=str(ControlID(ControlAction.DECLINE_REASON, post_id, requester_id)),
            timeout=timeout_seconds,
        )
        self.post_id = post_id
        self.requester_id = requester_id
        self._on_reason = on_reason
        self._on_expire = on_expire
        self._answered = False

    async def callback(self, interaction: discord.Interaction) -> None:
        self._answered = True
        self.stop()
        reason = (self.children[0].value or "").strip()
        await self._on_reason(interaction, reason)

    async def on_timeout(self) -> None:
        if self._answered:
            return
        logger.info("[DECLINE] Reason prompt for post %s timed out", self.post_id)
        await self._on_expire()


class ConfirmUndeleteView(discord.ui.View):
    """
    Ask the invoking moderator whether a deleted post should be undeleted.

    ``result`` is True only when the invoker pressed Confirm before the
    timeout; cancel and timeout both leave it False.
    """

    def __init__(self, invoker_id: int, *, timeout_seconds: float = 30.0):
        super().__init__(timeout=timeout_seconds)
        self.invoker_id = invoker_id
        self.result = False
        self.message: Optional[discord.Message] = None

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        if interaction.user is None or interaction.user.id != self.invoker_id:
            await interaction.response.send_message("❌ This confirmation is not for you.", ephemeral=True)
            return False
        return True

    def _disable_all(self) -> None:
        for child in self.children:
            if isinstance(child, discord.ui.Button):
                child.disabled = True

    @discord.ui.button(label="Undelete & Replace", style=discord.ButtonStyle.success, emoji="✅")
    async def confirm_button(self, button: discord.ui.Button, interaction: discord.Interaction):
        self.result = True
        self._disable_all()
        await interaction.response.edit_message(content="Undeleting post...", view=self)
        self.stop()

    @discord.ui.button(label="Cancel", style=discord.ButtonStyle.secondary, emoji="✖️")
    async def cancel_button(self, button: discord.ui.Button, interaction: discord.Interaction):
        self.result = False
        self._disable_all()
        await interaction.response.edit_message(content="Replacement cancelled.", embed=None, view=self)
        self.stop()

    async def on_timeout(self) -> None:  # pragma: no cover - relies on Discord timers
        self._disable_all()
        if self.message is not None:
            try:
                await self.message.edit(content="Confirmation timed out. Replacement cancelled.", embed=None, view=self)
            except discord.HTTPException as exc:
                logger.debug("[REPLACE] Could not update timed-out confirmation: %s", exc)
