"""Logging setup for applications embedding the editing pipeline."""

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:  # pragma: no cover
    from ..services.settings import Settings

__all__ = ["setup_logging", "setup_logging_from_settings", "get_log_path"]

LOG_FILE_NAME = "inkpilot.log"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
# Chatty third-party loggers, held at WARNING or above.
THIRD_PARTY_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore", "openai")

_CONFIGURED = False
_LOG_PATH: Path | None = None


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """Route the root logger to a rotating ``inkpilot.log`` and, optionally, stderr.

    The log directory is ``log_dir``, else ``$INKPILOT_LOG_DIR``, else
    ``~/.inkpilot/logs``. Repeated calls return the first path unless
    ``force`` is set.
    """

    global _CONFIGURED, _LOG_PATH
    if _CONFIGURED and _LOG_PATH is not None and not force:
        return _LOG_PATH

    directory = Path(log_dir or os.environ.get("INKPILOT_LOG_DIR") or Path.home() / ".inkpilot" / "logs")
    directory = directory.expanduser()
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / LOG_FILE_NAME

    handlers = _handlers_for(path, console=console, max_bytes=max_bytes, backup_count=backup_count)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(level)
    logging.basicConfig(level=level, handlers=handlers, force=True)
    logging.captureWarnings(True)

    for name in THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    _CONFIGURED, _LOG_PATH = True, path
    logging.getLogger(__name__).debug("Logging to %s", path)
    return path


def setup_logging_from_settings(settings: "Settings", **kwargs: Any) -> Path:
    return setup_logging(logging.DEBUG if settings.debug_logging else logging.INFO, **kwargs)


def get_log_path() -> Path | None:
    """Return the active log file, or ``None`` before :func:`setup_logging`."""

    return _LOG_PATH


def _handlers_for(path: Path, *, console: bool, max_bytes: int, backup_count: int) -> list[logging.Handler]:
    handlers: list[logging.Handler] = [
        logging.handlers.RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    ]
    if console:
        handlers.append(logging.StreamHandler())
    return handlers
