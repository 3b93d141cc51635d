from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from conftest import MODERATOR_ID
from replacecord.bot.cogs import replacement_cmds
from replacecord.bot.cogs.replacement_cmds import (
    NO_PERMISSION_MESSAGE,
    ReplacementCog,
    media_from_url,
    post_id_from_input,
)
from replacecord.configuration.replacement_settings import ReplacementSettings
from replacecord.errors import ConflictError, StaleStateError, UpstreamNotFound, ValidationError
from replacecord.replacement.workflow import ReplacementWorkflow
from replacecord.ui.replacement_views import DeclineReasonModal


@pytest.fixture()
def workflow_mock(api_settings) -> MagicMock:
    workflow = MagicMock(spec=ReplacementWorkflow)
    workflow.api_settings = api_settings
    return workflow


@pytest.fixture()
def cog(workflow_mock, settings) -> ReplacementCog:
    return ReplacementCog(SimpleNamespace(), workflow_mock, settings)


def make_interaction(custom_id: str, user_id: int = MODERATOR_ID, kind=discord.InteractionType.component):
    return SimpleNamespace(
        type=kind,
        custom_id=custom_id,
        user=SimpleNamespace(id=user_id),
        response=SimpleNamespace(send_message=AsyncMock(), defer=AsyncMock(), send_modal=AsyncMock()),
        followup=SimpleNamespace(send=AsyncMock()),
    )


def make_ctx(user_id: int = 123):
    author = SimpleNamespace(id=user_id, name="alice", display_name="Alice", display_avatar=None)
    return SimpleNamespace(author=author, defer=AsyncMock(), send_followup=AsyncMock(), respond=AsyncMock())


def test_setup_registers_cog(workflow_mock, settings) -> None:
    captured = {}
    fake_bot = SimpleNamespace(add_cog=lambda cog: captured.setdefault("cog", cog))

    replacement_cmds.setup(fake_bot, workflow_mock, settings)

    assert isinstance(captured["cog"], ReplacementCog)


def test_media_from_url() -> None:
    media = media_from_url(" https://files.test/art/hq.png ")
    assert media.url == "https://files.test/art/hq.png"
    assert media.filename == "hq.png"
    assert media.content_type == "image/png"

    with pytest.raises(ValidationError):
        media_from_url("ftp://files.test/hq.png")
    with pytest.raises(ValidationError):
        media_from_url("https://files.test/")


@pytest.mark.parametrize("text,expected", [
    ("500", "500"),
    (" 500 ", "500"),
    ("https://board.test/posts/500", "500"),
    ("https://board.test/posts/500?q=fox", "500"),
])
def test_post_id_from_input(text, expected) -> None:
    assert post_id_from_input(text) == expected


@pytest.mark.parametrize("text", ["abc", "", "https://board.test/users/5"])
def test_post_id_from_input_rejects(text) -> None:
    with pytest.raises(ValidationError):
        post_id_from_input(text)


def test_empty_moderator_list_denies_everyone(workflow_mock) -> None:
    cog = ReplacementCog(SimpleNamespace(), workflow_mock, ReplacementSettings({}))
    assert not cog.is_moderator(SimpleNamespace(id=MODERATOR_ID))
    assert not cog.is_moderator(None)


@pytest.mark.asyncio
async def test_foreign_interactions_are_ignored(cog, workflow_mock) -> None:
    slash = make_interaction("accept_request:500:123", kind=discord.InteractionType.application_command)
    foreign = make_interaction("some_other_button")

    await cog.on_interaction(slash)
    await cog.on_interaction(foreign)

    foreign.response.send_message.assert_not_awaited()
    workflow_mock.accept.assert_not_called()


@pytest.mark.asyncio
async def test_non_moderator_click_is_rejected(cog, workflow_mock) -> None:
    interaction = make_interaction("accept_request:500:123", user_id=1)

    await cog.on_interaction(interaction)

    interaction.response.send_message.assert_awaited_once_with(NO_PERMISSION_MESSAGE, ephemeral=True)
    workflow_mock.accept.assert_not_called()


@pytest.mark.asyncio
async def test_accept_click_runs_workflow(cog, workflow_mock) -> None:
    workflow_mock.accept.return_value = "✅ Replacement for post #500 accepted."
    interaction = make_interaction("accept_request:500:123")

    await cog.on_interaction(interaction)

    workflow_mock.accept.assert_awaited_once_with("500", "123", str(MODERATOR_ID))
    interaction.response.defer.assert_awaited_once_with(ephemeral=True)
    interaction.followup.send.assert_awaited_once_with("✅ Replacement for post #500 accepted.", ephemeral=True)


@pytest.mark.asyncio
async def test_undelete_click_runs_workflow(cog, workflow_mock) -> None:
    workflow_mock.undelete_and_accept.return_value = "✅ done"

    await cog.on_interaction(make_interaction("undelete_post:500:123"))

    workflow_mock.undelete_and_accept.assert_awaited_once_with("500", "123", str(MODERATOR_ID))


@pytest.mark.asyncio
async def test_step_errors_are_reported(cog, workflow_mock) -> None:
    workflow_mock.accept.side_effect = StaleStateError("Could not find the request message for post 500.")
    interaction = make_interaction("accept_request:500:123")

    await cog.on_interaction(interaction)

    text = interaction.followup.send.call_args.args[0]
    assert text.startswith("❌ Could not find the request message for post 500.")


@pytest.mark.asyncio
async def test_decline_click_opens_reason_prompt(cog, workflow_mock) -> None:
    interaction = make_interaction("decline_request:500:123")

    await cog.on_interaction(interaction)

    workflow_mock.begin_decline.assert_called_once_with("500", "123")
    modal = interaction.response.send_modal.call_args.args[0]
    assert isinstance(modal, DeclineReasonModal)
    assert modal.custom_id == "decline_reason:500:123"


@pytest.mark.asyncio
async def test_decline_click_on_busy_post(cog, workflow_mock) -> None:
    workflow_mock.begin_decline.side_effect = ConflictError("This request is already being handled.")
    interaction = make_interaction("decline_request:500:123")

    await cog.on_interaction(interaction)

    interaction.response.send_modal.assert_not_awaited()
    interaction.response.send_message.assert_awaited_once_with(
        "❌ This request is already being handled.", ephemeral=True,
    )


@pytest.mark.asyncio
async def test_requestreplace_needs_exactly_one_source(cog, workflow_mock) -> None:
    ctx = make_ctx()
    callback = ReplacementCog.requestreplace.callback

    await callback(cog, ctx, "500", "Higher resolution", None, None)
    await callback(cog, ctx, "500", "Higher resolution", MagicMock(), "https://files.test/hq.png")

    assert ctx.send_followup.await_count == 2
    for call in ctx.send_followup.await_args_list:
        assert call.args[0] == "❌ Please provide either a file or a URL, but not both."
    workflow_mock.submit.assert_not_called()


@pytest.mark.asyncio
async def test_requestreplace_with_url(cog, workflow_mock) -> None:
    workflow_mock.submit.return_value = "✅ submitted"
    ctx = make_ctx()

    await ReplacementCog.requestreplace.callback(cog, ctx, "500", "Higher resolution", None, "https://files.test/hq.png")

    requester, post_id, reason, media = workflow_mock.submit.call_args.args
    assert requester.user_id == "123"
    assert requester.display_name == "Alice"
    assert (post_id, reason, media.filename) == ("500", "Higher resolution", "hq.png")
    ctx.send_followup.assert_awaited_once_with("✅ submitted", ephemeral=True)


@pytest.mark.asyncio
async def test_replace_requires_moderator(cog, workflow_mock) -> None:
    ctx = make_ctx(user_id=1)

    await ReplacementCog.replace.callback(cog, ctx, "500", MagicMock(), "Better file", None, False)

    ctx.send_followup.assert_awaited_once_with(NO_PERMISSION_MESSAGE, ephemeral=True)
    workflow_mock.direct_replace.assert_not_called()


@pytest.mark.asyncio
async def test_replace_cancelled_by_moderator(cog, workflow_mock) -> None:
    workflow_mock.direct_replace.return_value = (False, False)
    ctx = make_ctx(user_id=MODERATOR_ID)
    attachment = SimpleNamespace(url="https://cdn.test/hq.png", filename="hq.png", content_type="image/png", size=10)

    await ReplacementCog.replace.callback(cog, ctx, "500", attachment, "Better file", None, False)

    ctx.send_followup.assert_awaited_once_with("Replacement cancelled.", ephemeral=True)


@pytest.mark.asyncio
async def test_replace_success_reports_embed(cog, workflow_mock) -> None:
    workflow_mock.direct_replace.return_value = (True, True)
    ctx = make_ctx(user_id=MODERATOR_ID)
    attachment = SimpleNamespace(url="https://cdn.test/hq.png", filename="hq.png", content_type="image/png", size=10)

    await ReplacementCog.replace.callback(cog, ctx, "500", attachment, "Better file", "https://src.test", True)

    kwargs = workflow_mock.direct_replace.call_args.kwargs
    assert kwargs == {"source": "https://src.test", "as_pending": True}
    embed = ctx.send_followup.call_args.kwargs["embed"]
    assert isinstance(embed, discord.Embed)


@pytest.mark.asyncio
async def test_viewpost_sends_post_summary(cog, workflow_mock) -> None:
    embed, view = discord.Embed(title="Post #500"), MagicMock()
    workflow_mock.describe_post.return_value = (embed, view)
    ctx = make_ctx()

    await ReplacementCog.viewpost.callback(cog, ctx, "https://board.test/posts/500")

    workflow_mock.describe_post.assert_awaited_once_with("500")
    ctx.defer.assert_awaited_once()
    ctx.send_followup.assert_awaited_once_with(embed=embed, view=view)


@pytest.mark.asyncio
async def test_viewpost_rejects_bad_input(cog, workflow_mock) -> None:
    ctx = make_ctx()

    await ReplacementCog.viewpost.callback(cog, ctx, "not-a-post")

    ctx.respond.assert_awaited_once()
    assert ctx.respond.call_args.kwargs == {"ephemeral": True}
    workflow_mock.describe_post.assert_not_called()


@pytest.mark.asyncio
async def test_viewpost_reports_lookup_errors(cog, workflow_mock) -> None:
    workflow_mock.describe_post.side_effect = UpstreamNotFound("Post 500 not found.")
    ctx = make_ctx()

    await ReplacementCog.viewpost.callback(cog, ctx, "500")

    assert ctx.send_followup.call_args.args[0].startswith("❌ Post 500 not found.")
