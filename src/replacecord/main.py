"""
Replacecord
===========

A Discord bot that routes imageboard file-replacement requests through a
moderation channel: users file requests, moderators accept or decline them,
and accepted replacements are submitted to the imageboard.
"""

import os
import sys
from pathlib import Path


def resolve_base_dir() -> Path:
    """Determine the base directory of the project.

    Resolution order:
    1. REPLACECORD_HOME environment variable, if set.
    2. If running in a frozen/compiled context (e.g., PyInstaller, Nuitka), use the executable's directory.
    3. Otherwise, assume running from source and use the grandparent of this file's directory.
    """
    if env_home := os.getenv("REPLACECORD_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]


BASE_DIR = resolve_base_dir()
os.chdir(BASE_DIR)

import asyncio
import discord
from dotenv import load_dotenv

from replacecord.api.content_api import ContentAPIClient
from replacecord.configuration.app_configuration import AppConfig
from replacecord.database import db_connection, init_database
from replacecord.replacement.coordinator import RequestCoordinator
from replacecord.replacement.locator import ChannelHistoryLocator
from replacecord.replacement.messenger import DiscordMessenger
from replacecord.replacement.workflow import ReplacementWorkflow
from replacecord.scheduler.periodic_task import PeriodicTask
from replacecord.services.rate_limiter import RateLimiter
from replacecord.util.logger import get_logger, handle_exception

logger = get_logger("main")


def load_environment() -> str:
    """Load environment variables and return the Discord bot token.

    Raises
    ------
    SystemExit
        If the required ``DISCORD_BOT_TOKEN`` variable is missing.
    """
    load_dotenv(dotenv_path=BASE_DIR / ".env")
    token = os.getenv("DISCORD_BOT_TOKEN")
    if not token:
        logger.critical("'DISCORD_BOT_TOKEN' environment variable not set. Bot cannot start.")
        sys.exit(1)
    return token


def build_intents() -> discord.Intents:
    """Intents for slash commands, component interactions and channel history."""
    intents = discord.Intents.default()
    intents.guilds = True
    intents.messages = True
    return intents


def build_workflow(bot: discord.Bot, config: AppConfig, rate_limiter: RateLimiter) -> ReplacementWorkflow:
    """Wire the workflow to the bot, the content API and the shared state."""
    settings = config.replacement
    username, api_key = config.content_api_credentials()
    if not username or not api_key:
        logger.warning("Content API credentials are not set; replacements will be rejected by the imageboard.")
    if not settings.channel_id:
        logger.warning("No replacement channel configured; requests cannot be posted.")

    messenger = DiscordMessenger(bot, settings.channel_id)
    return ReplacementWorkflow(
        coordinator=RequestCoordinator(),
        rate_limiter=rate_limiter,
        content_api=ContentAPIClient(config.content_api, username=username, api_key=api_key),
        messenger=messenger,
        locator=ChannelHistoryLocator(
            messenger,
            scan_limit=settings.history_scan_limit,
            fallback_window=settings.replacement_fallback_window,
        ),
        settings=settings,
        api_settings=config.content_api,
    )


def load_cogs(discord_bot_instance: discord.Bot, workflow: ReplacementWorkflow) -> None:
    """Register all operational cogs with the provided Discord bot instance."""
    from replacecord.bot.cogs import replacement_cmds

    replacement_cmds.setup(discord_bot_instance, workflow, workflow.settings)

    logger.info("All cogs loaded successfully.")


def create_bot(config: AppConfig, rate_limiter: RateLimiter) -> tuple[discord.Bot, ReplacementWorkflow]:
    """Instantiate the Discord bot, its workflow, and register all cogs."""
    bot = discord.Bot(intents=build_intents())
    workflow = build_workflow(bot, config, rate_limiter)
    load_cogs(bot, workflow)
    return bot, workflow


def build_maintenance_tasks(workflow: ReplacementWorkflow, rate_limiter: RateLimiter) -> list[PeriodicTask]:
    """Stale-request sweep and rate-limit cleanup loops."""
    settings = workflow.settings
    return [
        PeriodicTask("STALE_SWEEP", workflow.run_maintenance, lambda: settings.sweep_interval_seconds),
        PeriodicTask("RATE_LIMIT_CLEANUP", rate_limiter.cleanup_expired, lambda: settings.sweep_interval_seconds),
    ]


async def start_bot(bot: discord.Bot, token: str) -> None:
    """Start the Discord bot and handle lifecycle logging around the connection."""
    logger.info("Attempting to connect to Discord…")
    try:
        await bot.start(token)
    except asyncio.CancelledError:
        logger.info("Discord bot start cancelled; shutting down")
    finally:
        logger.info("Discord bot start routine finished.")


async def shutdown_runtime(
    bot: discord.Bot | None,
    workflow: ReplacementWorkflow | None,
    tasks: list[PeriodicTask],
    rate_limiter: RateLimiter | None,
) -> None:
    """Gracefully stop maintenance loops, the bot, the content API client and the database."""
    for task in tasks:
        await task.shutdown()

    if bot is not None and not bot.is_closed():
        try:
            await bot.close()
        except Exception as exc:
            logger.exception("Error while closing the Discord bot: %s", exc)

    if workflow is not None:
        workflow.content_api.close()

    if rate_limiter is not None:
        await rate_limiter.shutdown()

    try:
        await db_connection.close()
    except Exception as exc:
        logger.exception("Error during database shutdown: %s", exc)

    logger.info("Shutdown complete.")


async def async_main() -> int:
    """Bootstrap the database, bot and maintenance loops, returning an exit code."""
    token = load_environment()

    from replacecord.configuration.app_configuration import app_config

    try:
        logger.info("Initializing database and loading rate limits...")
        await init_database(app_config.database_path)
        rate_limiter = RateLimiter(db_connection)
        await rate_limiter.initialize()
    except Exception as exc:
        logger.critical("Failed to initialize database: %s", exc)
        return 1

    try:
        bot, workflow = create_bot(app_config, rate_limiter)
    except Exception as exc:
        logger.critical("Failed to initialize Discord bot: %s", exc)
        await shutdown_runtime(None, None, [], rate_limiter)
        return 1

    tasks = build_maintenance_tasks(workflow, rate_limiter)
    for task in tasks:
        task.start()

    exit_code = 0
    try:
        await start_bot(bot, token)
    except Exception as exc:
        logger.critical("Discord bot runtime error: %s", exc)
        exit_code = 1
    finally:
        await shutdown_runtime(bot, workflow, tasks, rate_limiter)

    return exit_code


def main() -> int:
    """Synchronous entry point for the console script."""
    sys.excepthook = handle_exception
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0
    except Exception as exc:
        logger.critical("An unexpected error occurred while running the bot: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
