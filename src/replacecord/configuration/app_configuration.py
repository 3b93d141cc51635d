from __future__ import annotations
from pathlib import Path
import fcntl
import os
from typing import Any, Dict
import yaml

from replacecord.configuration.replacement_settings import ContentAPISettings, ReplacementSettings
from replacecord.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path("./config/app_config.yml").resolve()


class AppConfig:
    """File-lock based accessor around the YAML-based application configuration.

    The class caches contents of ``./config/app_config.yml``, exposes dictionary-like
    access helpers, and resolves the replacement workflow and content API sections
    through :class:`ReplacementSettings` and :class:`ContentAPISettings`.
    Uses fcntl file locks for safe concurrent access across processes.
    """

    def __init__(self, config_path: Path) -> None:
        self.config_path = config_path
        self._data: Dict[str, Any] = {}
        self.reload()

    # --------------------------
    # Private helpers
    # --------------------------
    def load_from_disk(self) -> Dict[str, Any]:
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                data = yaml.safe_load(f)
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)
                return data if isinstance(data, dict) else {}
        except FileNotFoundError:
            logger.error("[APP CONFIGURATION] Config file %s not found.", self.config_path)
        except Exception as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
        return {}

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Reload configuration from disk and return the loaded mapping.

        Returns the raw mapping that was loaded (an empty dict on error).
        """
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        """Return the current cached configuration mapping.

        The returned dict is the internal cache. Callers should not mutate it.
        """
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Safe lookup for top-level configuration keys."""
        return self._data.get(key, default)

    # --------------------------
    # High-level shortcuts
    # --------------------------
    @property
    def replacement(self) -> ReplacementSettings:
        """Return the replacement workflow settings."""
        return ReplacementSettings(self._data.get("replacement", {}))

    @property
    def content_api(self) -> ContentAPISettings:
        """Return the content API settings."""
        return ContentAPISettings(self._data.get("content_api", {}))

    @property
    def database_path(self) -> Path:
        """Return the SQLite path holding persisted rate limits."""
        value = self._data.get("database_path") or "./data/replacecord.db"
        return Path(str(value)).resolve()

    @staticmethod
    def content_api_credentials() -> tuple[str | None, str | None]:
        """Return ``(username, api_key)`` for the content API from the environment."""
        return os.getenv("CONTENT_API_USERNAME"), os.getenv("CONTENT_API_KEY")


# Shared application-wide configuration instance
app_config = AppConfig(CONFIG_PATH)
