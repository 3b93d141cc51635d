"""
Replacement workflow coordinator.

:class:`ReplacementWorkflow` drives a request from submission to resolution:

* ``submit`` validates a request, posts its three messages in the moderation
  channel and registers it;
* ``begin_decline`` / ``decline`` / ``cancel_decline`` reject it with a reason;
* ``accept`` submits the replacement to the imageboard, or parks the request
  in ``AWAITING_UNDELETE`` when the post is deleted;
* ``undelete_and_accept`` restores a deleted post and then accepts;
* ``direct_replace`` is the moderator-only immediate replacement;
* ``describe_post`` presents a post for lookups.

Each step holds the post lock for its own duration only. Every error raised
after a lock was taken is raised after the lock is released. Notifications
and message cleanup are best-effort and never abort a resolution.
"""

from __future__ import annotations

import asyncio
import io
import mimetypes
import time
from typing import Awaitable, Callable, Iterable

import discord

from replacecord.api.content_api import ContentAPIClient
from replacecord.configuration.replacement_settings import ContentAPISettings, ReplacementSettings
from replacecord.datatypes.post_datatypes import Post
from replacecord.datatypes.replacement_datatypes import (
    ReplacementMedia,
    ReplacementRequest,
    Requester,
    RequestKey,
    WorkflowState,
    is_valid_post_id,
)
from replacecord.errors import (
    ConflictError,
    ReplacementError,
    StaleStateError,
    UpstreamNotFound,
    UpstreamPrecondition,
    ValidationError,
)
from replacecord.replacement.coordinator import RequestCoordinator, SweepReport
from replacecord.replacement.locator import LocatedRequest, RequestLocator
from replacecord.replacement.messenger import DiscordMessenger
from replacecord.replacement.notifications import DeliveryResult, build_confirmation, try_notify
from replacecord.services.rate_limiter import RateLimiter
from replacecord.ui.replacement_embeds import (
    build_accept_dm_embed,
    build_accept_notice_embed,
    build_decline_dm_embed,
    build_decline_notice_embed,
    build_original_image_embed,
    build_post_embed,
    build_replacement_file_embed,
    build_request_embed,
)
from replacecord.ui.replacement_views import (
    build_link_view,
    build_processing_view,
    build_request_view,
    build_undelete_view,
)
from replacecord.util.logger import get_logger

logger = get_logger("replacement_workflow")

ACCEPT_REASON = "bot replacement"
DEFAULT_CONTENT_TYPE = "application/octet-stream"

BUSY_MESSAGE = "This post is currently being processed. Please try again in a moment."
ALREADY_HANDLED_MESSAGE = "This request is already being handled by another moderator."

UndeleteConfirmation = Callable[[Post], Awaitable[bool]]


class ReplacementWorkflow:
    """
    Orchestrates the replacement request lifecycle.

    Args:
        coordinator: Request registry and post lock table.
        rate_limiter: Per-requester submission cooldowns.
        content_api: Imageboard client.
        messenger: Moderation channel adapter.
        locator: Finds a request's messages in the channel.
        settings: Replacement section of the app config.
        api_settings: Content API section of the app config.
        sleep: Awaitable delay, replaced in tests.
    """

    def __init__(
        self,
        coordinator: RequestCoordinator,
        rate_limiter: RateLimiter,
        content_api: ContentAPIClient,
        messenger: DiscordMessenger,
        locator: RequestLocator,
        settings: ReplacementSettings,
        api_settings: ContentAPISettings,
        *,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.coordinator = coordinator
        self.rate_limiter = rate_limiter
        self.content_api = content_api
        self.messenger = messenger
        self.locator = locator
        self.settings = settings
        self.api_settings = api_settings
        self._clock = clock
        self._sleep = sleep
        # requests whose decline-reason prompt holds the post lock
        self._open_declines: set[RequestKey] = set()

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_submission(self, post_id: str, reason: str, media: ReplacementMedia | None) -> ReplacementMedia:
        """
        Check the shape of a submission.

        Raises:
            ValidationError: On a non-numeric post id, a short reason, or
                missing, oversized or unsupported media.
        """
        if not is_valid_post_id(post_id):
            raise ValidationError("Invalid post ID. Please provide a numeric post ID.")
        if len((reason or "").strip()) < self.settings.min_reason_length:
            raise ValidationError(
                f"Please provide a reason of at least {self.settings.min_reason_length} characters."
            )
        if media is None:
            raise ValidationError("Please provide a replacement file or a direct URL.")
        if media.size is not None and media.size > self.settings.max_file_bytes:
            limit_mb = self.settings.max_file_bytes / (1024 * 1024)
            raise ValidationError(f"The replacement file is too large. Maximum size is {limit_mb:g} MB.")
        allowed = self.settings.allowed_content_types
        if media.content_type and allowed and media.content_type.split(";")[0].strip().lower() not in allowed:
            raise ValidationError(f"Unsupported file type `{media.content_type}`.")
        return media

    def _guess_content_type(self, media: ReplacementMedia) -> str:
        if media.content_type:
            return media.content_type
        guessed, _ = mimetypes.guess_type(media.filename)
        return guessed or DEFAULT_CONTENT_TYPE

    # ------------------------------------------------------------------
    # Submit
    # ------------------------------------------------------------------

    async def submit(self, requester: Requester, post_id: str, reason: str, media: ReplacementMedia | None) -> str:
        """
        File a replacement request for moderators.

        Returns:
            The confirmation shown to the requester.

        Raises:
            ValidationError: Bad input; nothing was changed.
            ConflictError: Rate limited, already requested, or the post is locked.
            ReplacementError: Any later failure, raised after cleanup and unlock.
        """
        post_id = (post_id or "").strip()
        reason = (reason or "").strip()
        media = self.validate_submission(post_id, reason, media)

        if self.rate_limiter.is_rate_limited(requester.user_id):
            remaining = self.rate_limiter.format_remaining(requester.user_id)
            raise ConflictError(f"You are rate limited. Please wait {remaining} before submitting another request.")

        key = RequestKey.of(post_id, requester.user_id)
        if self.coordinator.is_active_recently(key, self.settings.active_window_seconds):
            raise ConflictError("You already have an active replacement request for this post.")

        if not self.coordinator.try_acquire_lock(post_id):
            raise ConflictError(BUSY_MESSAGE)

        record = ReplacementRequest(post_id=post_id, requester_id=requester.user_id, timestamp=self._clock())
        record.transition(WorkflowState.LOCK_ACQUIRED)
        sent: list[discord.Message] = []
        try:
            post = await self.content_api.fetch_post(post_id)
            data = await self.content_api.download_media(media.url, self.settings.max_file_bytes)
            record.transition(WorkflowState.AWAITING_SUBMISSION)

            replacement_message = await self.messenger.send(
                embed=build_replacement_file_embed(post_id, requester.user_id, media.filename, media.content_type),
                file=discord.File(io.BytesIO(data), filename=media.filename),
            )
            sent.append(replacement_message)

            filtered = post.matches_any_tag(self.settings.tags_to_filter)
            original_message = None
            if post.file_url and not post.flags.deleted and not filtered:
                original_message = await self.messenger.send(
                    embed=build_original_image_embed(post, requester.user_id),
                )
                sent.append(original_message)

            spoiler_url = post.file_url if filtered and not post.flags.deleted else None
            uploader, approver = await self.user_names(post)
            request_message = await self.messenger.send(
                embed=build_request_embed(
                    post, requester, reason, spoiler_url=spoiler_url, uploader=uploader, approver=approver,
                ),
                view=build_request_view(
                    self.api_settings.post_url(post_id),
                    post_id,
                    requester.user_id,
                    with_controls=bool(self.settings.moderator_ids),
                ),
            )
            sent.append(request_message)

            record.channel_id = self.messenger.channel_id
            record.main_message_id = request_message.id
            record.replacement_image_message_id = replacement_message.id
            record.original_image_message_id = original_message.id if original_message else None
            record.transition(WorkflowState.AWAITING_MODERATOR_DECISION)
            self.coordinator.register_request(record)
        except Exception:
            logger.warning("[WORKFLOW] Submission for post %s by %s failed, cleaning up", post_id, requester.user_id)
            await self._cleanup(sent)
            raise
        finally:
            self.coordinator.release_lock(post_id)

        try:
            await self.rate_limiter.set_rate_limit(requester.user_id, self.settings.rate_limit_seconds)
        except Exception:
            logger.exception("[WORKFLOW] Could not persist cooldown for requester %s", requester.user_id)

        logger.info("[WORKFLOW] Request %s submitted", key)
        return (
            f"✅ Your replacement request for post #{post_id} has been submitted successfully. "
            "Moderators will review it shortly."
        )

    # ------------------------------------------------------------------
    # Decline
    # ------------------------------------------------------------------

    def begin_decline(self, post_id: str, requester_id: str) -> None:
        """
        Take the post lock before the decline-reason prompt is shown.

        Raises:
            ConflictError: Another step holds the lock for this post.
        """
        key = RequestKey.of(post_id, requester_id)
        if not self.coordinator.claim_decision(key, WorkflowState.DECLINING):
            raise ConflictError(ALREADY_HANDLED_MESSAGE)
        self._open_declines.add(key)
        logger.debug("[WORKFLOW] Decline of %s started", key)

    def cancel_decline(self, post_id: str, requester_id: str) -> None:
        """The reason prompt was abandoned: give the lock back."""
        key = RequestKey.of(post_id, requester_id)
        if key not in self._open_declines:
            return
        self._open_declines.discard(key)
        self._give_back(key)
        logger.info("[WORKFLOW] Decline of %s abandoned, lock released", key)

    async def decline(self, post_id: str, requester_id: str, moderator_id: str, reason: str) -> str:
        """
        Resolve a request as declined.

        Normally runs while the step opened by :meth:`begin_decline` holds the
        lock. A reason submitted after its prompt expired claims the step again.

        Raises:
            ValidationError: Empty reason; the request stays decidable.
            ConflictError: The prompt expired and another step now holds the lock.
            StaleStateError: The request message is gone; the request is dropped.
        """
        key = RequestKey.of(post_id, requester_id)
        reason = (reason or "").strip()
        if not reason:
            self.cancel_decline(post_id, requester_id)
            raise ValidationError("A reason is required to decline a request.")

        if key in self._open_declines:
            self._open_declines.discard(key)
        elif self.coordinator.claim_decision(key, WorkflowState.DECLINING):
            logger.info("[WORKFLOW] Late decline reason for %s, step claimed again", key)
        else:
            raise ConflictError(ALREADY_HANDLED_MESSAGE)

        try:
            located = await self.locator.locate(key)
        except StaleStateError:
            self.coordinator.finish(key)
            raise
        except Exception:
            self._give_back(key)
            raise

        post_url = self.api_settings.post_url(post_id)
        results = [
            await try_notify("requester_dm", lambda: self.messenger.direct_message(
                requester_id,
                embed=build_decline_dm_embed(post_id, reason),
                view=build_link_view(post_url),
            )),
            await try_notify("channel_notice", lambda: self.messenger.send(
                embed=build_decline_notice_embed(post_id, requester_id, moderator_id, reason),
            )),
        ]
        results.extend(await self._cleanup(located.messages))
        self.coordinator.finish(key)

        logger.info("[WORKFLOW] Request %s declined by %s", key, moderator_id)
        return build_confirmation(f"✅ Replacement request for post #{post_id} has been declined.", results)

    # ------------------------------------------------------------------
    # Accept
    # ------------------------------------------------------------------

    async def accept(self, post_id: str, requester_id: str, moderator_id: str) -> str:
        """
        Accept a request and submit its replacement to the imageboard.

        If the post is deleted, the request message gets an undelete control,
        and the request stays registered in ``AWAITING_UNDELETE`` with the
        post lock held until :meth:`undelete_and_accept` claims it.

        Raises:
            ConflictError: Another step holds the lock for this post.
            StaleStateError: The request or replacement message is gone.
            ReplacementError: Imageboard or Discord failures, after unlock.
        """
        key = RequestKey.of(post_id, requester_id)
        if not self.coordinator.claim_decision(key, WorkflowState.ACCEPTING):
            raise ConflictError(ALREADY_HANDLED_MESSAGE)

        post_url = self.api_settings.post_url(post_id)
        located: LocatedRequest | None = None
        try:
            located = await self.locator.locate(key)
            self._adopt(key, located, WorkflowState.ACCEPTING)
            media = self._require_media(located, post_id)

            await try_notify("processing_controls", lambda: self.messenger.edit(
                located.request_message, view=build_processing_view(post_url),
            ))
            post = await self.content_api.fetch_post(post_id)

            if post.flags.deleted:
                await self.messenger.edit(
                    located.request_message,
                    view=build_undelete_view(post_url, post_id, requester_id),
                )
                self.coordinator.advance(key, WorkflowState.AWAITING_UNDELETE)
                logger.info("[WORKFLOW] Post %s is deleted; request %s awaits undelete", post_id, key)
                return (
                    f"⚠️ Post #{post_id} is deleted. Use **Undelete & Accept** on the request "
                    "to restore it and apply the replacement."
                )

            results = await self._apply_replacement(post_id, requester_id, moderator_id, media, located)
        except Exception:
            await self._return_request(key, located, post_url)
            raise

        self.coordinator.finish(key)
        logger.info("[WORKFLOW] Request %s accepted by %s", key, moderator_id)
        return build_confirmation(f"✅ Replacement for post #{post_id} has been accepted and applied.", results)

    async def undelete_and_accept(self, post_id: str, requester_id: str, moderator_id: str) -> str:
        """
        Undelete a post parked by :meth:`accept`, then accept the request.

        A 404 from the undelete call is only a warning if a re-read shows the
        post is no longer deleted (it was restored by someone else).
        """
        key = RequestKey.of(post_id, requester_id)
        if not self.coordinator.claim_undelete(key):
            raise ConflictError(ALREADY_HANDLED_MESSAGE)

        post_url = self.api_settings.post_url(post_id)
        located: LocatedRequest | None = None
        notes: list[str] = []
        try:
            located = await self.locator.locate(key)
            self._adopt(key, located, WorkflowState.ACCEPTING)
            media = self._require_media(located, post_id)

            await try_notify("processing_controls", lambda: self.messenger.edit(
                located.request_message, view=build_processing_view(post_url),
            ))
            notes.extend(await self._undelete(post_id))
            results = await self._apply_replacement(
                post_id, requester_id, moderator_id, media, located, undeleted=True,
            )
        except Exception:
            await self._return_request(key, located, post_url)
            raise

        self.coordinator.finish(key)
        logger.info("[WORKFLOW] Post %s undeleted and request %s accepted by %s", post_id, key, moderator_id)
        headline = f"✅ Post #{post_id} has been undeleted and the replacement applied."
        return build_confirmation("\n".join([headline, *notes]), results)

    # ------------------------------------------------------------------
    # Direct replacement
    # ------------------------------------------------------------------

    async def direct_replace(
        self,
        post_id: str,
        media: ReplacementMedia | None,
        reason: str,
        moderator_id: str,
        confirm_undelete: UndeleteConfirmation,
        *,
        source: str | None = None,
        as_pending: bool = False,
    ) -> tuple[bool, bool]:
        """
        Replace a post's file immediately, bypassing the request queue.

        ``confirm_undelete`` is awaited while the post lock is held when the
        post turns out to be deleted; it returns False on cancel or timeout.

        Returns:
            ``(replaced, undeleted)``.
        """
        post_id = (post_id or "").strip()
        reason = (reason or "").strip()
        media = self.validate_submission(post_id, reason, media)

        if not self.coordinator.try_acquire_lock(post_id):
            raise ConflictError(BUSY_MESSAGE)
        try:
            post = await self.content_api.fetch_post(post_id)
            undeleted = False
            if post.flags.deleted:
                if not await confirm_undelete(post):
                    logger.info("[WORKFLOW] Direct replacement of post %s cancelled by %s", post_id, moderator_id)
                    return False, False
                await self._undelete(post_id)
                undeleted = True

            data = await self.content_api.download_media(media.url, self.settings.max_file_bytes)
            await self.content_api.submit_replacement(
                post_id,
                data,
                media.filename,
                self._guess_content_type(media),
                reason,
                source=source,
                as_pending=as_pending,
            )
        finally:
            self.coordinator.release_lock(post_id)

        logger.info("[WORKFLOW] Post %s replaced directly by %s", post_id, moderator_id)
        return True, undeleted

    # ------------------------------------------------------------------
    # Post lookup
    # ------------------------------------------------------------------

    async def user_names(self, post: Post) -> tuple[str | None, str | None]:
        """
        Display names of the post's uploader and approver.

        Either is None when the post has no such user. A failed lookup falls
        back to the raw user id.
        """
        names: list[str | None] = []
        for user_id in (post.uploader_id, post.approver_id):
            if user_id is None:
                names.append(None)
                continue
            try:
                names.append(await self.content_api.fetch_display_name(user_id))
            except ReplacementError as exc:
                logger.warning("[WORKFLOW] Could not resolve user %s: %s", user_id, exc)
                names.append(str(user_id))
        return names[0], names[1]

    async def describe_post(self, post_id: str) -> tuple[discord.Embed, discord.ui.View]:
        """Embed and link button presenting ``post_id``; filtered posts are spoilered."""
        if not is_valid_post_id(post_id):
            raise ValidationError("Post ID must be a number.")
        post = await self.content_api.fetch_post(post_id)
        uploader, approver = await self.user_names(post)
        post_url = self.api_settings.post_url(post_id)
        embed = build_post_embed(
            post,
            post_url,
            uploader=uploader,
            approver=approver,
            spoiler=post.matches_any_tag(self.settings.tags_to_filter),
        )
        return embed, build_link_view(post_url)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def sweep(self) -> SweepReport:
        """Reclaim stale requests and orphaned locks."""
        return self.coordinator.sweep_stale(
            self.settings.stale_request_seconds,
            self.settings.orphan_lock_grace_seconds,
        )

    async def run_maintenance(self) -> None:
        self.sweep()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _adopt(self, key: RequestKey, located: LocatedRequest, state: WorkflowState) -> None:
        """Re-register a request the registry forgot, from its channel messages."""
        if self.coordinator.lookup_active(key) is not None:
            return
        record = ReplacementRequest(
            post_id=key.post_id,
            requester_id=key.requester_id,
            channel_id=self.messenger.channel_id,
            main_message_id=located.request_message.id,
            replacement_image_message_id=located.replacement_message.id if located.replacement_message else None,
            original_image_message_id=located.original_message.id if located.original_message else None,
            timestamp=self._clock(),
            state=WorkflowState.AWAITING_MODERATOR_DECISION,
        )
        record.transition(state)
        self.coordinator.register_request(record)
        logger.info("[WORKFLOW] Re-registered request %s from channel history", key)

    @staticmethod
    def _require_media(located: LocatedRequest, post_id: str) -> ReplacementMedia:
        media = located.replacement_media
        if media is None:
            raise StaleStateError(f"Could not find the replacement file for post {post_id}.")
        return media

    async def _undelete(self, post_id: str) -> list[str]:
        """Undelete ``post_id`` and wait until the imageboard reports it restored."""
        notes: list[str] = []
        try:
            await self.content_api.undelete_post(post_id)
        except UpstreamNotFound as exc:
            logger.warning("[WORKFLOW] Undelete of post %s returned not found: %s", post_id, exc)
            notes.append(f"⚠️ The undelete call for post #{post_id} reported not found; the post was already restored.")

        await self._sleep(self.settings.undelete_settle_seconds)
        post = await self.content_api.fetch_post(post_id)
        if post.flags.deleted:
            raise UpstreamPrecondition(f"Post {post_id} is still deleted after the undelete request.")
        if notes:
            logger.info("[WORKFLOW] Post %s was already undeleted", post_id)
        return notes

    async def _apply_replacement(
        self,
        post_id: str,
        requester_id: str,
        moderator_id: str,
        media: ReplacementMedia,
        located: LocatedRequest,
        *,
        undeleted: bool = False,
    ) -> list[DeliveryResult]:
        data = await self.content_api.download_media(media.url, self.settings.max_file_bytes)
        await self.content_api.submit_replacement(
            post_id,
            data,
            media.filename,
            self._guess_content_type(media),
            ACCEPT_REASON,
            as_pending=True,
        )

        post_url = self.api_settings.post_url(post_id)
        results = [
            await try_notify("requester_dm", lambda: self.messenger.direct_message(
                requester_id,
                embed=build_accept_dm_embed(post_id),
                view=build_link_view(post_url),
            )),
            await try_notify("channel_notice", lambda: self.messenger.send(
                embed=build_accept_notice_embed(post_id, requester_id, moderator_id, undeleted=undeleted),
            )),
        ]
        results.extend(await self._cleanup(located.messages))
        return results

    def _give_back(self, key: RequestKey) -> None:
        self.coordinator.return_to_moderators(key)
        self.coordinator.release_lock(key.post_id)

    async def _return_request(self, key: RequestKey, located: LocatedRequest | None, post_url: str) -> None:
        """A decision step failed: restore the controls and release the lock."""
        self._give_back(key)
        if located is not None:
            await try_notify("restore_controls", lambda: self.messenger.edit(
                located.request_message,
                view=build_request_view(post_url, key.post_id, key.requester_id),
            ))

    async def _cleanup(self, messages: Iterable[discord.Message]) -> list[DeliveryResult]:
        """Delete each message independently."""
        results = []
        for message in messages:
            results.append(await try_notify(f"delete_{message.id}", lambda m=message: self.messenger.delete(m)))
        return results
