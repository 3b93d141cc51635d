import logging
from logging.handlers import RotatingFileHandler

from replacecord.util.logger import (
    LOG_BACKUP_COUNT,
    MAX_LOG_BYTES,
    ColorFormatter,
    console_level,
    PromptToolkitHandler,
    get_log_filepath,
    get_logger,
    handle_exception,
    setup_logger,
    should_use_color,
)


class DummyStream:
    def __init__(self):
        self.written = []

    def write(self, msg):
        self.written.append(msg)

    def isatty(self):
        return True


def test_get_logger_returns_logger():
    logger = get_logger("test_logger")
    assert isinstance(logger, logging.Logger)
    assert any(isinstance(h, PromptToolkitHandler) for h in logger.handlers)


def test_setup_logger_idempotent():
    logger1 = setup_logger("test_logger_idem")
    logger2 = setup_logger("test_logger_idem")
    assert logger1 is logger2
    assert len(logger1.handlers) == 2


def test_file_handler_rotates():
    logger = setup_logger("test_logger_rotation")
    file_handlers = [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]
    assert len(file_handlers) == 1
    assert file_handlers[0].maxBytes == MAX_LOG_BYTES
    assert file_handlers[0].backupCount == LOG_BACKUP_COUNT


def test_color_formatter_applies_color():
    formatter = ColorFormatter("%(levelname)s %(message)s")
    record = logging.LogRecord("test", logging.ERROR, "", 0, "error occurred", None, None)
    formatted = formatter.format(record)
    assert "\033[31m" in formatted and "error occurred" in formatted


def test_should_use_color_true(monkeypatch):
    monkeypatch.setattr("sys.stderr", DummyStream())
    assert should_use_color() is True


def test_get_log_filepath_is_shared():
    path = get_log_filepath()
    assert path.parent.exists()
    assert get_log_filepath() == path


def test_handle_exception_logs_error(caplog):
    class DummyException(Exception):
        pass
    with caplog.at_level(logging.ERROR):
        try:
            raise DummyException("fail")
        except DummyException as exc:
            handle_exception(DummyException, exc, exc.__traceback__)
    assert any("Uncaught exception" in r.message for r in caplog.records)


def test_console_level_from_environment(monkeypatch):
    monkeypatch.setenv("REPLACECORD_LOG_LEVEL", "debug")
    assert console_level() == logging.DEBUG

    monkeypatch.setenv("REPLACECORD_LOG_LEVEL", "chatty")
    assert console_level() == logging.INFO

    monkeypatch.delenv("REPLACECORD_LOG_LEVEL")
    assert console_level() == logging.INFO
