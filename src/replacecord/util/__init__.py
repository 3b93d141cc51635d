"""
Utility functions and helpers for Replacecord.

This package provides reusable utilities:

- **logger.py**: Centralized logging configuration with colored console output,
  rotating file handlers, and per-session log aggregation. Suppresses noise from
  Discord internals and HTTP layers. Uses prompt_toolkit for console output.

- **discord_retry.py**: Retry with exponential backoff and jitter for Discord
  API calls, skipping error codes that can never succeed on a retry.
"""
