"""
Logging for the ``toolbridge`` logger tree.

Everything the bridge logs, including the MCP server's stderr (re-emitted under
``toolbridge.tools.server``), goes to a colored console handler and, when
``log_file`` is set, to a plain-text file with call-site detail.
"""

import copy
import logging
import sys
from pathlib import Path

from toolbridge.config.settings import Settings

ROOT_LOGGER = "toolbridge"
SERVER_LOGGER = "toolbridge.tools.server"

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"

# Third-party loggers that flood INFO with per-request chatter
NOISY_LOGGERS = ("LiteLLM", "httpx", "discord.gateway")


class ColoredFormatter(logging.Formatter):
    """Console formatter that wraps the level name in an ANSI color."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname)
        if color:
            # The same record also reaches the file handler
            record = copy.copy(record)
            record.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(record)


def _attach(logger: logging.Logger, handler: logging.Handler, formatter: logging.Formatter, level: int) -> None:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def setup_logging(settings: Settings) -> None:
    """
    Install handlers on the ``toolbridge`` logger.

    Safe to call more than once; earlier handlers are replaced. The tree does
    not propagate, so discord.py and the root logger keep their own setup.
    """
    level = getattr(logging, settings.log_level)
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    logger.handlers.clear()
    logger.propagate = False

    _attach(logger, logging.StreamHandler(sys.stdout), ColoredFormatter(CONSOLE_FORMAT, DATE_FORMAT), level)

    if settings.log_file:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        _attach(
            logger,
            logging.FileHandler(log_path, encoding="utf-8"),
            logging.Formatter(FILE_FORMAT, DATE_FORMAT),
            level,
        )

    if level > logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    destination = f"console + {settings.log_file}" if settings.log_file else "console"
    logger.info(f"Logging initialized ({settings.log_level}, {destination})")


def get_logger(name: str) -> logging.Logger:
    """
    Return a logger inside the ``toolbridge`` tree.

    Module ``__name__`` values are already in the tree and are used as-is;
    any other name is nested under it.
    """
    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
