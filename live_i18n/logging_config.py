import logging
import os
import sys
from typing import List, Optional

from tqdm import tqdm

LOGGER_NAME = "live_i18n"
LOG_FORMAT = '%(asctime)s - %(levelname)s - [%(component)s] %(message)s'


class ComponentFilter(logging.Filter):
    """Adds ``record.component``: the logger name below ``live_i18n`` (``store``, ``sync``, ...)."""

    def filter(self, record):
        prefix = LOGGER_NAME + "."
        if record.name.startswith(prefix):
            record.component = record.name[len(prefix):]
        else:
            record.component = record.name
        return True


class TqdmLoggingHandler(logging.Handler):
    """
    Console handler that writes through tqdm.write, so log lines emitted
    while a backfill progress bar is running do not tear the bar apart.
    """

    def emit(self, record):
        try:
            tqdm.write(self.format(record), file=sys.stderr)
            self.flush()
        except (KeyboardInterrupt, SystemExit):
            raise
        except Exception:
            self.handleError(record)


def get_logger(component: str) -> logging.Logger:
    """Return the child logger for one component, e.g. ``get_logger("store")``."""
    return logging.getLogger(f"{LOGGER_NAME}.{component}")


def _file_handler(log_file_path: str) -> logging.Handler:
    log_dir = os.path.dirname(log_file_path)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
    return logging.FileHandler(log_file_path, encoding='utf-8')


def setup_logger(log_level_str: str, log_file_path: Optional[str], log_to_console: bool) -> logging.Logger:
    """
    Configure the package logger once at startup.

    Every component logs through a child of ``live_i18n`` and propagates
    here; the component name is rendered in brackets on each line.

    Args:
        log_level_str: Level name such as 'INFO' or 'DEBUG'. Unknown names mean INFO.
        log_file_path: UTF-8 log file, or None to skip file logging.
        log_to_console: Whether to also log to stderr through tqdm.

    Returns:
        The ``live_i18n`` logger.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, log_level_str.upper(), logging.INFO))
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = False

    handlers: List[logging.Handler] = []
    if log_file_path:
        handlers.append(_file_handler(log_file_path))
    if log_to_console:
        handlers.append(TqdmLoggingHandler())

    formatter = logging.Formatter(LOG_FORMAT)
    component_filter = ComponentFilter()
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(component_filter)
        logger.addHandler(handler)
    return logger
