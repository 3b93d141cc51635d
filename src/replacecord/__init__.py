"""Replacecord: routes imageboard replacement requests through Discord moderator review."""

__version__ = "0.1.0"
