"""
Content API client for the imageboard.

Pure request/response wrapper around the imageboard's JSON API: fetch a post,
fetch a user's display name, submit a replacement file, undelete a post, and
download replacement media. Holds no workflow state.

Blocking ``requests`` calls run in a worker thread via :func:`asyncio.to_thread`
so they never stall the Discord event loop. HTTP failures are translated into
the :mod:`replacecord.errors` upstream hierarchy.
"""

from __future__ import annotations

import asyncio
from typing import Any

import requests

from replacecord.configuration.replacement_settings import ContentAPISettings
from replacecord.datatypes.post_datatypes import Post
from replacecord.errors import (
    UpstreamAccessDenied,
    UpstreamError,
    UpstreamFileTooLarge,
    UpstreamInvalidParameters,
    UpstreamNotFound,
    UpstreamPrecondition,
    UpstreamTimeout,
    UpstreamTransport,
)
from replacecord.util.logger import get_logger

logger = get_logger("content_api")

DOWNLOAD_CHUNK_BYTES = 64 * 1024


def extract_error_detail(response: requests.Response) -> str | None:
    """Pull the server-supplied explanation out of an error response body."""
    try:
        payload = response.json()
    except ValueError:
        text = (response.text or "").strip()
        return text[:500] or None
    if not isinstance(payload, dict):
        return None
    for key in ("reason", "message"):
        if payload.get(key):
            return str(payload[key])
    if payload.get("errors"):
        return str(payload["errors"])
    return None


class ContentAPIClient:
    """Stateless client for the imageboard API.

    Args:
        settings: Base URL, user agent and timeout.
        username: API login, taken from the environment by the caller.
        api_key: API key paired with ``username``.
        session: Optional preconfigured :class:`requests.Session` (tests inject one).
        download_session: Session for media downloads. It carries the user
            agent but never the API credentials, since media lives on other hosts.
    """

    def __init__(
        self,
        settings: ContentAPISettings,
        username: str | None = None,
        api_key: str | None = None,
        session: requests.Session | None = None,
        download_session: requests.Session | None = None,
    ) -> None:
        self.settings = settings
        self.username = username
        self.api_key = api_key
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": settings.user_agent})
        if username and api_key:
            self.session.auth = (username, api_key)
        self.download_session = download_session or requests.Session()
        self.download_session.headers.update({"User-Agent": settings.user_agent})

    @property
    def has_credentials(self) -> bool:
        return bool(self.username and self.api_key)

    def close(self) -> None:
        self.session.close()
        self.download_session.close()

    # --------------------------
    # Blocking helpers
    # --------------------------
    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        url = f"{self.settings.base_url}{path}"
        kwargs.setdefault("timeout", self.settings.timeout_seconds)
        try:
            response = self.session.request(method, url, **kwargs)
        except requests.Timeout as exc:
            raise UpstreamTimeout(f"Timed out calling {path}") from exc
        except requests.RequestException as exc:
            raise UpstreamTransport(f"Request to {path} failed: {exc}") from exc
        logger.debug("[CONTENT API] %s %s -> %s", method, path, response.status_code)
        return response

    @staticmethod
    def _raise_for_status(response: requests.Response, *, not_found: str, action: str) -> None:
        status = response.status_code
        if status < 400:
            return
        detail = extract_error_detail(response)
        if status == 404:
            raise UpstreamNotFound(not_found, status=status, detail=detail)
        if status == 403:
            raise UpstreamAccessDenied(f"Access denied while trying to {action}", status=status, detail=detail)
        if status == 412:
            raise UpstreamPrecondition(f"Precondition failed while trying to {action}", status=status, detail=detail)
        if status == 413:
            raise UpstreamFileTooLarge("The imageboard rejected the file size.", status=status, detail=detail)
        if status == 422:
            raise UpstreamInvalidParameters(f"Invalid parameters while trying to {action}", status=status, detail=detail)
        raise UpstreamTransport(f"Failed to {action}: HTTP {status}", status=status, detail=detail)

    def _fetch_post_sync(self, post_id: str) -> Post:
        response = self._request("GET", f"/posts/{post_id}.json")
        self._raise_for_status(response, not_found=f"Post {post_id} not found.", action=f"fetch post {post_id}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamTransport(f"Post {post_id} returned an unreadable response") from exc
        post = Post.from_api(payload)
        if not post.post_id:
            raise UpstreamNotFound(f"Post {post_id} not found.")
        return post

    def _fetch_display_name_sync(self, user_id: str) -> str:
        response = self._request("GET", f"/users/{user_id}.json")
        if response.status_code == 404:
            return str(user_id)
        self._raise_for_status(response, not_found=f"User {user_id} not found.", action=f"fetch user {user_id}")
        try:
            name = (response.json() or {}).get("name")
        except ValueError:
            name = None
        return str(name).strip() if name else str(user_id)

    def _submit_replacement_sync(
        self,
        post_id: str,
        media: bytes,
        filename: str,
        content_type: str,
        reason: str,
        source: str | None,
        as_pending: bool,
    ) -> dict[str, Any]:
        data = {
            "post_replacement[reason]": reason,
            "post_replacement[as_pending]": "true" if as_pending else "false",
        }
        if source:
            data["post_replacement[source]"] = source
        files = {"post_replacement[replacement_file]": (filename, media, content_type)}
        logger.info("[CONTENT API] Submitting replacement for post %s (%s, %d bytes)", post_id, filename, len(media))
        response = self._request(
            "POST",
            "/post_replacements.json",
            params={"post_id": post_id},
            data=data,
            files=files,
        )
        self._raise_for_status(response, not_found=f"Post {post_id} not found.", action=f"replace post {post_id}")
        try:
            return response.json() or {}
        except ValueError:
            return {}

    def _undelete_post_sync(self, post_id: str) -> dict[str, Any]:
        response = self._request("POST", f"/moderator/post/posts/{post_id}/undelete.json")
        self._raise_for_status(
            response,
            not_found=f"Post {post_id} not found or already undeleted.",
            action=f"undelete post {post_id}",
        )
        try:
            return response.json() or {}
        except ValueError:
            return {}

    def _download_media_sync(self, url: str, max_bytes: int) -> bytes:
        try:
            with self.download_session.get(url, stream=True, timeout=self.settings.timeout_seconds) as response:
                self._raise_for_status(response, not_found="The replacement file is no longer available.", action="download the replacement file")
                chunks: list[bytes] = []
                total = 0
                for chunk in response.iter_content(DOWNLOAD_CHUNK_BYTES):
                    total += len(chunk)
                    if total > max_bytes:
                        raise UpstreamFileTooLarge(
                            f"The file exceeds the {max_bytes // (1024 * 1024)}MB limit."
                        )
                    chunks.append(chunk)
                return b"".join(chunks)
        except requests.Timeout as exc:
            raise UpstreamTimeout("Timed out downloading the replacement file") from exc
        except requests.RequestException as exc:
            raise UpstreamTransport(f"Could not download the replacement file: {exc}") from exc

    # --------------------------
    # Public async API
    # --------------------------
    async def fetch_post(self, post_id: str) -> Post:
        """Fetch a post's metadata.

        Raises:
            UpstreamNotFound: HTTP 404 or an empty payload.
            UpstreamAccessDenied: HTTP 403.
            UpstreamTransport: Network errors and other statuses.
        """
        return await asyncio.to_thread(self._fetch_post_sync, str(post_id))

    async def fetch_display_name(self, user_id: str | int) -> str:
        """Return a user's display name, or the raw id if the user is unknown."""
        return await asyncio.to_thread(self._fetch_display_name_sync, str(user_id))

    async def submit_replacement(
        self,
        post_id: str,
        media: bytes,
        filename: str,
        content_type: str,
        reason: str,
        *,
        source: str | None = None,
        as_pending: bool = False,
    ) -> dict[str, Any]:
        """Submit a replacement file for ``post_id``.

        Raises:
            UpstreamInvalidParameters: HTTP 422.
            UpstreamAccessDenied: HTTP 403.
            UpstreamNotFound: HTTP 404.
            UpstreamPrecondition: HTTP 412, with the server's detail attached.
        """
        return await asyncio.to_thread(
            self._submit_replacement_sync,
            str(post_id),
            media,
            filename,
            content_type,
            reason,
            source,
            as_pending,
        )

    async def undelete_post(self, post_id: str) -> dict[str, Any]:
        """Undelete ``post_id`` (moderator endpoint)."""
        return await asyncio.to_thread(self._undelete_post_sync, str(post_id))

    async def download_media(self, url: str, max_bytes: int) -> bytes:
        """Download replacement media, refusing anything above ``max_bytes``."""
        return await asyncio.to_thread(self._download_media_sync, url, max_bytes)


__all__ = ["ContentAPIClient", "UpstreamError", "extract_error_detail"]
