"""
Logging configuration for smarttodo.

SDK and HTTP client loggers are quiet by default. Debug mode sends
everything to stderr; the operations log keeps a rotating record of
every AI call attempt.
"""

import logging
import sys
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path

APP_LOGGER = "smarttodo"
OPS_LOG_FILENAME = "smarttodo-ops.log"
OPS_LOG_MAX_BYTES = 1_000_000
OPS_LOG_BACKUPS = 3

# HTTP client and SDK loggers that are noisy at INFO
_LIBRARY_LOGGERS = ("openai", "anthropic", "httpx", "httpcore", "urllib3")


def _set_library_level(level: int) -> None:
    for name in _LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(level)


def configure_quiet_mode(quiet: bool = True):
    """
    Silence SDK request logging and Python warnings.

    Args:
        quiet: If False, leave logging untouched.
    """
    if quiet:
        warnings.filterwarnings("ignore")
        _set_library_level(logging.ERROR)


def _stderr_handler(root: logging.Logger) -> logging.Handler | None:
    for handler in root.handlers:
        if isinstance(handler, logging.StreamHandler) and handler.stream is sys.stderr:
            return handler
    return None


def enable_debug_mode():
    """Enable debug-level logging to stderr."""
    warnings.filterwarnings("default")

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    if _stderr_handler(root) is None:
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)-7s %(name)s: %(message)s", datefmt="%H:%M:%S",
        ))
        root.addHandler(console)

    logging.getLogger(APP_LOGGER).setLevel(logging.DEBUG)
    _set_library_level(logging.INFO)


def configure_ops_log(log_dir) -> logging.Handler:
    """
    Append AI call attempts (INFO and above) to ``{log_dir}/smarttodo-ops.log``.

    The file rotates at 1MB with 3 backups. The handler is returned so
    callers can detach it.
    """
    directory = Path(log_dir)
    directory.mkdir(parents=True, exist_ok=True)

    ops = RotatingFileHandler(
        directory / OPS_LOG_FILENAME, maxBytes=OPS_LOG_MAX_BYTES, backupCount=OPS_LOG_BACKUPS,
    )
    ops.setLevel(logging.INFO)
    ops.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))

    app_logger = logging.getLogger(APP_LOGGER)
    app_logger.addHandler(ops)
    if not app_logger.isEnabledFor(logging.INFO):
        app_logger.setLevel(logging.INFO)
    return ops
