"""Logging setup for actionwire applications.

Records carry the visitor and session identifiers of the process so that log
lines from one run can be correlated with the errors it dispatched.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from ..services.context import LoggerContext

__all__ = ["ContextFilter", "setup_logging", "get_log_path"]

_DEFAULT_LOG_DIR = Path.home() / ".actionwire" / "logs"
_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(visitor_id)s/%(session_id)s | %(name)s | %(message)s"
_NOISY_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore")
_CONFIGURED = False
_LOG_PATH: Path | None = None


class ContextFilter(logging.Filter):
    """Stamps ``visitor_id`` and ``session_id`` on every record."""

    def __init__(self, context: LoggerContext | None = None) -> None:
        super().__init__()
        self.context = context

    def filter(self, record: logging.LogRecord) -> bool:
        context = self.context
        record.visitor_id = context.visitor_id if context is not None else "-"
        record.session_id = context.session_id if context is not None else "-"
        return True


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    context: LoggerContext | None = None,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """Configure root logging with a rotating file and an optional console handler.

    Args:
        level: Root logging level.
        log_dir: Directory of ``actionwire.log``; ``ACTIONWIRE_LOG_DIR`` or
            ``~/.actionwire/logs`` when omitted.
        console: Also log to stderr.
        context: Identity context stamped on every record.
        max_bytes: Rotation threshold of the log file.
        backup_count: Number of rotated files to keep.
        force: Reconfigure even if logging was already set up.

    Returns:
        Path of the active log file.
    """

    global _CONFIGURED, _LOG_PATH
    if _CONFIGURED and not force and _LOG_PATH is not None:
        return _LOG_PATH

    target_dir = Path(log_dir or os.environ.get("ACTIONWIRE_LOG_DIR") or _DEFAULT_LOG_DIR).expanduser()
    target_dir.mkdir(parents=True, exist_ok=True)
    log_path = target_dir / "actionwire.log"

    formatter = logging.Formatter(fmt=_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    context_filter = ContextFilter(context)

    handlers: list[logging.Handler] = [
        logging.handlers.RotatingFileHandler(
            log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
    ]
    if console:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler.addFilter(context_filter)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    logging.captureWarnings(True)

    quiet_level = max(level, logging.WARNING)
    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(quiet_level)

    _CONFIGURED = True
    _LOG_PATH = log_path
    return log_path


def get_log_path() -> Path | None:
    """Return the currently configured log file if available."""

    return _LOG_PATH
