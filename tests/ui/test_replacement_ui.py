from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from conftest import make_post
from replacecord.datatypes.replacement_datatypes import Requester
from replacecord.ui.replacement_embeds import (
    FILTERED_URL_FIELD,
    POST_ID_FIELD,
    REQUEST_TITLE,
    build_accept_notice_embed,
    build_decline_dm_embed,
    build_footer,
    build_replacement_file_embed,
    build_request_embed,
    field_value,
    parse_footer,
    requester_from_request_embed,
)
from replacecord.ui.replacement_views import (
    ConfirmUndeleteView,
    DeclineReasonModal,
    build_request_view,
    build_undelete_view,
)


def test_footer_round_trip() -> None:
    assert parse_footer(build_footer("500", "123")) == ("500", "123")
    assert parse_footer(build_footer("500")) == ("500", None)
    assert parse_footer("Replacecord") is None
    assert parse_footer(None) is None


def test_request_embed_carries_locator_markers() -> None:
    requester = Requester(user_id="123", display_name="Alice (the artist)")
    embed = build_request_embed(make_post(), requester, "Higher resolution")

    assert embed.title == REQUEST_TITLE
    assert field_value(embed, POST_ID_FIELD) == "500"
    assert requester_from_request_embed(embed) == "123"
    assert field_value(embed, FILTERED_URL_FIELD) is None


def test_request_embed_spoilers_filtered_url() -> None:
    requester = Requester(user_id="123", display_name="Alice")
    embed = build_request_embed(make_post(), requester, "Higher resolution", spoiler_url="https://static.test/a.png")
    assert field_value(embed, FILTERED_URL_FIELD) == "|| https://static.test/a.png ||"


def test_replacement_embed_only_previews_images() -> None:
    image = build_replacement_file_embed("500", "123", "a.png", "image/png")
    video = build_replacement_file_embed("500", "123", "a.webm", "video/webm")

    assert image.image.url == "attachment://a.png"
    assert not video.image


def test_notice_embeds() -> None:
    dm = build_decline_dm_embed("500", "Not an improvement")
    notice = build_accept_notice_embed("500", "123", "777", undeleted=True)

    assert field_value(dm, "Reason") == "Not an improvement"
    assert field_value(notice, "Accepted by") == "<@777>"
    assert "undeleted" in field_value(notice, "Status")


@pytest.mark.asyncio
async def test_request_view_controls() -> None:
    view = build_request_view("https://board.test/posts/500", "500", "123")
    ids = [item.custom_id for item in view.children if not item.url]
    assert ids == ["decline_request:500:123", "accept_request:500:123"]
    assert view.timeout is None

    link_only = build_request_view("https://board.test/posts/500", "500", "123", with_controls=False)
    assert [item.url for item in link_only.children] == ["https://board.test/posts/500"]


@pytest.mark.asyncio
async def test_undelete_view_controls() -> None:
    view = build_undelete_view("https://board.test/posts/500", "500", "123")
    ids = [item.custom_id for item in view.children if not item.url]
    assert ids == ["decline_request:500:123", "undelete_post:500:123"]


@pytest.mark.asyncio
async def test_decline_modal_submits_reason() -> None:
    on_reason = AsyncMock()
    on_expire = AsyncMock()
    modal = DeclineReasonModal("500", "123", on_reason, on_expire, timeout_seconds=60)
    modal.children[0].value = "  Not an improvement  "
    interaction = MagicMock(spec=discord.Interaction)

    await modal.callback(interaction)
    await modal.on_timeout()

    on_reason.assert_awaited_once_with(interaction, "Not an improvement")
    on_expire.assert_not_awaited()
    assert modal.custom_id == "decline_reason:500:123"


@pytest.mark.asyncio
async def test_decline_modal_timeout_gives_lock_back() -> None:
    on_expire = AsyncMock()
    modal = DeclineReasonModal("500", "123", AsyncMock(), on_expire, timeout_seconds=60)

    await modal.on_timeout()

    on_expire.assert_awaited_once()


@pytest.mark.asyncio
async def test_confirm_view_rejects_other_users() -> None:
    view = ConfirmUndeleteView(invoker_id=777, timeout_seconds=30)
    interaction = MagicMock()
    interaction.user.id = 1
    interaction.response.send_message = AsyncMock()

    assert await view.interaction_check(interaction) is False
    interaction.response.send_message.assert_awaited_once()
    assert view.result is False
