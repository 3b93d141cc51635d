import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

from prompt_toolkit import print_formatted_text
from prompt_toolkit.formatted_text import ANSI

# -------------------- Configuration --------------------
def resolve_logs_dir() -> Path:
    """Log directory: ``REPLACECORD_LOG_DIR`` if set, else ``<project>/logs``."""
    if env_dir := os.getenv("REPLACECORD_LOG_DIR"):
        return Path(env_dir).resolve()
    return (Path(__file__).parents[3] / "logs").resolve()


LOGS_DIR: Path = resolve_logs_dir()
LOGS_DIR.mkdir(parents=True, exist_ok=True)

LOG_FORMAT: str = "[%(asctime)s] [%(levelname)s] [%(name)s:%(funcName)s:%(lineno)d] %(message)s"
DATE_FORMAT: str = "%Y-%m-%d %H-%M-%S"

LEVEL_COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[38;5;88m",
}
RESET_COLOR = "\033[0m"

# One file per session, resolved on first use
LOG_FILEPATH: Path | None = None
RESTART_REUSE_SECONDS = 60

MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 3


def console_level() -> int:
    """Console threshold from ``REPLACECORD_LOG_LEVEL`` (default INFO)."""
    name = (os.getenv("REPLACECORD_LOG_LEVEL") or "INFO").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


# -------------------- Formatters and handlers --------------------
class ColorFormatter(logging.Formatter):
    """Log formatter that wraps each record in the ANSI colour of its level."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = LEVEL_COLORS.get(record.levelname)
        if not color:
            return message
        return f"{color}{message}{RESET_COLOR}"


class PromptToolkitHandler(logging.Handler):
    """
    Logging handler that prints through prompt_toolkit.

    print_formatted_text keeps log output from tearing through an active
    prompt, and renders the ANSI colour codes on every platform.
    """

    def __init__(self, formatter: logging.Formatter | None = None):
        super().__init__()
        if formatter:
            self.setFormatter(formatter)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            print_formatted_text(ANSI(self.format(record)))
        except Exception:
            self.handleError(record)


def should_use_color() -> bool:
    """Return True when stderr is a TTY and can render ANSI colours."""
    try:
        return sys.stderr.isatty()
    except Exception:
        return False


plain_formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
console_formatter = ColorFormatter(LOG_FORMAT, datefmt=DATE_FORMAT) if should_use_color() else plain_formatter


# -------------------- Logger setup --------------------
def get_log_filepath() -> Path:
    """
    Return the log file shared by every logger of this session.

    A log file from today that was written to in the last
    ``RESTART_REUSE_SECONDS`` is reused, so a quick restart keeps appending to
    the same file. Otherwise a new timestamped file is used.
    """
    global LOG_FILEPATH

    if LOG_FILEPATH is not None:
        return LOG_FILEPATH

    now = datetime.now()
    todays_logs = sorted(
        LOGS_DIR.glob(f"{now:%Y-%m-%d}*.log"),
        key=lambda path: path.stat().st_mtime,
        reverse=True,
    )
    if todays_logs and now.timestamp() - todays_logs[0].stat().st_mtime < RESTART_REUSE_SECONDS:
        LOG_FILEPATH = todays_logs[0]
    else:
        LOG_FILEPATH = LOGS_DIR / f"{now.strftime(DATE_FORMAT)}.log"
    return LOG_FILEPATH


def setup_logger(logger_name: str) -> logging.Logger:
    """Attach the console and rotating file handlers to ``logger_name`` once.

    Parameters
    ----------
    logger_name:
        Name of the logger to configure.

    Returns
    -------
    logging.Logger
        Configured logger instance.
    """
    logger = logging.getLogger(logger_name)
    if logger.handlers:
        return logger

    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    console_handler = PromptToolkitHandler(formatter=console_formatter)
    console_handler.setLevel(console_level())
    logger.addHandler(console_handler)

    file_handler = RotatingFileHandler(
        get_log_filepath(),
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(plain_formatter)
    logger.addHandler(file_handler)

    return logger


def get_logger(logger_name: str) -> logging.Logger:
    """Return the Replacecord logger named ``logger_name``."""
    return setup_logger(logger_name)


# -------------------- Uncaught exceptions --------------------
def handle_exception(exception_type, exception_instance, exception_traceback) -> None:
    """
    ``sys.excepthook`` that logs uncaught exceptions.

    KeyboardInterrupt goes to the default hook so Ctrl+C still terminates
    the process normally.
    """
    if issubclass(exception_type, KeyboardInterrupt):
        sys.__excepthook__(exception_type, exception_instance, exception_traceback)
        return
    logging.error("Uncaught exception", exc_info=(exception_type, exception_instance, exception_traceback))


# -------------------- Library noise --------------------
# HTTP clients, the SQLite driver and the Discord gateway log every request at INFO
QUIET_LIBRARIES = (
    "urllib3",
    "requests",
    "aiosqlite",
    "discord",
    "discord.gateway",
    "discord.client",
    "discord.http",
    "websockets",
    "aiohttp",
)

for library_name in QUIET_LIBRARIES:
    library_logger = logging.getLogger(library_name)
    library_logger.setLevel(logging.ERROR)
    library_logger.propagate = False
    library_logger.handlers = []


sys.excepthook = handle_exception
