import logging
import sys
from pathlib import Path

from .config import LogConfig

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(threadName)s - %(message)s"

# Third-party loggers that are only interesting when something goes wrong
NOISY_LOGGERS = ("paramiko", "asyncio")


def _level_of(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def _build_handlers(config: LogConfig) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []
    if config.file:
        log_path = Path(config.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, mode="a", encoding="utf-8"))
    if config.console:
        handlers.append(logging.StreamHandler(sys.stderr))
    return handlers


def setup_logging(config: LogConfig) -> None:
    """
    Route all picker logging to the configured file and/or stderr.

    Replaces whatever handlers the root logger already has, so hosts and
    the CLI can call it more than once. Unknown level names fall back to INFO.
    """
    level = _level_of(config.level)

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()
    root_logger.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in _build_handlers(config):
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
