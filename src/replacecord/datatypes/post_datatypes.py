"""Typed view of an imageboard post as returned by ``/posts/<id>.json``."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

RATING_LABELS = {
    "e": "🔞 Explicit",
    "q": "⚠️ Questionable",
    "s": "✅ Safe",
}


@dataclass(frozen=True)
class PostFlags:
    deleted: bool = False
    pending: bool = False


@dataclass(frozen=True)
class PostScore:
    up: int = 0
    down: int = 0
    total: int = 0


@dataclass(frozen=True)
class Post:
    """
    A post on the imageboard.

    Attributes:
        post_id: Numeric id as a string.
        file_url: Direct media URL, None when hidden or deleted.
        rating: Single-letter rating (``s``, ``q``, ``e``).
        flags: Deleted/pending flags.
        tags: Tag lists keyed by category (``general``, ``artist``...).
    """

    post_id: str
    file_url: str | None = None
    file_ext: str | None = None
    rating: str | None = None
    flags: PostFlags = field(default_factory=PostFlags)
    tags: dict[str, list[str]] = field(default_factory=dict)
    uploader_id: int | None = None
    approver_id: int | None = None
    description: str = ""
    fav_count: int = 0
    score: PostScore = field(default_factory=PostScore)

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> "Post":
        """Build a Post from the API payload (with or without the ``post`` envelope)."""
        data = payload.get("post", payload) if isinstance(payload, dict) else {}
        file_info = data.get("file") or {}
        flags = data.get("flags") or {}
        tags = data.get("tags") or {}
        score = data.get("score") or {}
        return cls(
            post_id=str(data.get("id", "")),
            file_url=file_info.get("url"),
            file_ext=file_info.get("ext"),
            rating=data.get("rating"),
            flags=PostFlags(
                deleted=bool(flags.get("deleted", False)),
                pending=bool(flags.get("pending", False)),
            ),
            tags={str(category): list(values or []) for category, values in tags.items()} if isinstance(tags, dict) else {},
            uploader_id=data.get("uploader_id"),
            approver_id=data.get("approver_id"),
            description=data.get("description") or "",
            fav_count=int(data.get("fav_count") or 0),
            score=PostScore(
                up=int(score.get("up") or 0),
                down=abs(int(score.get("down") or 0)),
                total=int(score.get("total") or 0),
            ),
        )

    @property
    def all_tags(self) -> set[str]:
        return {tag for values in self.tags.values() for tag in values}

    @property
    def rating_label(self) -> str:
        return RATING_LABELS.get((self.rating or "").lower(), "Unknown")

    @property
    def status_label(self) -> str:
        if self.flags.deleted:
            return "🗑️ Deleted"
        if self.flags.pending:
            return "⏳ Pending"
        return "✅ Approved"

    def matches_any_tag(self, filter_tags: list[str]) -> bool:
        """Return True if the post carries any of ``filter_tags``."""
        return bool(filter_tags) and not self.all_tags.isdisjoint(filter_tags)
