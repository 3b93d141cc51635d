from typing import Any, Dict, List


class ReplacementSettings:
    """Typed accessors for the ``replacement`` section of the app config.

    Durations are expressed in seconds. Missing or malformed values fall back
    to the defaults the workflow was designed around (10 minute cooldown,
    5 minute duplicate window, 15 minute staleness, 5 minute sweep).
    """

    def __init__(self, data: Dict[str, Any] | None = None) -> None:
        self.data: Dict[str, Any] = data if isinstance(data, dict) else {}

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value for `key` or `default` if missing."""
        return self.data.get(key, default)

    def as_dict(self) -> Dict[str, Any]:
        return self.data

    def _float(self, key: str, default: float) -> float:
        try:
            return float(self.data.get(key, default))
        except (TypeError, ValueError):
            return default

    def _int(self, key: str, default: int) -> int:
        try:
            return int(self.data.get(key, default))
        except (TypeError, ValueError):
            return default

    @property
    def channel_id(self) -> int | None:
        value = self.data.get("channel_id")
        try:
            return int(value) if value else None
        except (TypeError, ValueError):
            return None

    @property
    def moderator_ids(self) -> List[int]:
        raw = self.data.get("moderator_ids") or []
        if not isinstance(raw, list):
            raw = [raw]
        ids: List[int] = []
        for value in raw:
            try:
                ids.append(int(value))
            except (TypeError, ValueError):
                continue
        return ids

    @property
    def tags_to_filter(self) -> List[str]:
        """Filter tags; entries may themselves be comma-separated lists."""
        raw = self.data.get("tags_to_filter") or []
        if isinstance(raw, str):
            raw = [raw]
        tags: List[str] = []
        for entry in raw:
            tags.extend(tag.strip() for tag in str(entry).split(",") if tag.strip())
        return tags

    @property
    def rate_limit_seconds(self) -> float:
        return self._float("rate_limit_seconds", 600.0)

    @property
    def active_window_seconds(self) -> float:
        return self._float("active_window_seconds", 300.0)

    @property
    def stale_request_seconds(self) -> float:
        return self._float("stale_request_seconds", 900.0)

    @property
    def sweep_interval_seconds(self) -> float:
        return self._float("sweep_interval_seconds", 300.0)

    @property
    def orphan_lock_grace_seconds(self) -> float:
        return self._float("orphan_lock_grace_seconds", 60.0)

    @property
    def history_scan_limit(self) -> int:
        return self._int("history_scan_limit", 50)

    @property
    def replacement_fallback_window(self) -> int:
        return self._int("replacement_fallback_window", 5)

    @property
    def undelete_settle_seconds(self) -> float:
        return self._float("undelete_settle_seconds", 2.0)

    @property
    def prompt_timeout_seconds(self) -> float:
        return self._float("prompt_timeout_seconds", 60.0)

    @property
    def confirmation_timeout_seconds(self) -> float:
        return self._float("confirmation_timeout_seconds", 30.0)

    @property
    def max_file_bytes(self) -> int:
        return self._int("max_file_bytes", 8 * 1024 * 1024)

    @property
    def min_reason_length(self) -> int:
        return self._int("min_reason_length", 5)

    @property
    def allowed_content_types(self) -> List[str]:
        raw = self.data.get("allowed_content_types")
        if isinstance(raw, list) and raw:
            return [str(value).lower() for value in raw]
        return ["image/png", "image/jpeg", "image/gif", "image/webp", "video/mp4", "video/webm"]


class ContentAPISettings:
    """Typed accessors for the ``content_api`` section of the app config."""

    def __init__(self, data: Dict[str, Any] | None = None) -> None:
        self.data: Dict[str, Any] = data if isinstance(data, dict) else {}

    @property
    def base_url(self) -> str:
        return str(self.data.get("base_url") or "https://e6ai.net").rstrip("/")

    @property
    def user_agent(self) -> str:
        return str(self.data.get("user_agent") or "Replacecord/0.1 (replacement moderation bot)")

    @property
    def timeout_seconds(self) -> float:
        try:
            return float(self.data.get("timeout_seconds", 15.0))
        except (TypeError, ValueError):
            return 15.0

    def post_url(self, post_id: str) -> str:
        return f"{self.base_url}/posts/{post_id}"
