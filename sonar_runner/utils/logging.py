# sonar_runner/utils/logging.py
"""
This module provides centralized logging configuration for the sonar_runner
package, plus the process-wide log listener slot used to route the output of
forked analysis processes.
"""

import enum
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional
from rich.logging import RichHandler

ROOT_LOGGER = "sonar_runner"
# Lines written by the forked engine are logged here, apart from the runner's own messages
ANALYSIS_LOGGER = f"{ROOT_LOGGER}.analysis"


def setup_logger(logfile: Optional[Path] = None, verbose: bool = False) -> logging.Logger:
    """
    Configures the 'sonar_runner' logger and returns it.

    - Console output goes through a RichHandler. Engine lines are printed
      verbatim: markup is off, so bracketed text such as `[status=143]` is kept.
    - A logfile, when given, receives the same records as UTF-8 text, since
      the engine may report file names and messages in any language.
    - Log level is DEBUG if verbose is True, otherwise INFO.

    Args:
        logfile: Optional path to a file for log output.
        verbose: If True, sets the log level to DEBUG.

    Returns:
        The configured 'sonar_runner' logger instance.
    """
    level = logging.DEBUG if verbose else logging.INFO

    log = logging.getLogger(ROOT_LOGGER)
    log.setLevel(level)

    # Records stop here; the host application's root logger is left alone
    log.propagate = False

    # Calling setup twice (CLI callback, tests) must not duplicate output
    if log.hasHandlers():
        for handler in list(log.handlers):
            handler.close()
        log.handlers.clear()

    # --- Console Handler ---
    console_handler = RichHandler(
        rich_tracebacks=True,
        show_path=False,
        markup=False,
        log_time_format="[%X]"
    )
    console_handler.setLevel(level)
    log.addHandler(console_handler)

    # --- File Handler ---
    if logfile:
        logfile = Path(logfile)
        logfile.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(logfile, encoding="utf-8")
        file_handler.setLevel(level)

        # The logger name tells runner messages apart from engine output
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        file_handler.setFormatter(formatter)
        log.addHandler(file_handler)
        log.debug("File logging enabled at: %s", logfile)

    log.debug("Logger configured with level=%s", logging.getLevelName(level))
    return log


def get_logger(name: str) -> logging.Logger:
    """
    Returns a logger under the 'sonar_runner' logger.

    Names outside the package (a script's `__main__`, an embedding
    application) are nested under it, otherwise their records would never
    reach the handlers installed by setup_logger.

    Args:
        name: The name for the logger, typically __name__.
    """
    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)


class Level(str, enum.Enum):
    """Severity attached to a line handed to a LogListener."""

    ERROR = "ERROR"
    WARN = "WARN"
    INFO = "INFO"
    DEBUG = "DEBUG"
    TRACE = "TRACE"


class LogListener(ABC):
    """Receives log lines on behalf of an embedding application."""

    @abstractmethod
    def log(self, message: str, level: Level) -> None:
        raise NotImplementedError


_PY_LEVELS = {
    Level.ERROR: logging.ERROR,
    Level.WARN: logging.WARNING,
    Level.INFO: logging.INFO,
    Level.DEBUG: logging.DEBUG,
    Level.TRACE: logging.DEBUG,
}


class LoggerLogListener(LogListener):
    """
    Forwards listener lines to a standard library logger, so that child
    output ends up in the same rich console and log file as everything else.
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def log(self, message: str, level: Level) -> None:
        self.logger.log(_PY_LEVELS[Level(level)], "%s", message)


class Logs:
    """
    Single process-wide listener slot.

    Unset at import time. `set_listener` replaces any previous listener and
    `set_listener(None)` clears it. Readers fetch the listener each time a
    line is delivered, so a change is visible to running consumers.
    """

    _lock = threading.Lock()
    _listener: Optional[LogListener] = None

    @classmethod
    def set_listener(cls, listener: Optional[LogListener]) -> None:
        with cls._lock:
            cls._listener = listener

    @classmethod
    def get_listener(cls) -> Optional[LogListener]:
        with cls._lock:
            return cls._listener
