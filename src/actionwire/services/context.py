"""Process identity attached to logs and outgoing requests."""

from __future__ import annotations

import logging
import os
import random
import time
from dataclasses import dataclass
from pathlib import Path

from .settings import Settings

__all__ = ["LoggerContext", "generate_unique_id", "get_logger_context", "reset_logger_context"]

LOGGER = logging.getLogger(__name__)

_VISITOR_FILE = "visitor_id"
_SESSION_ENV = "ACTIONWIRE_SESSION_ID"
_CONTEXT: LoggerContext | None = None


def generate_unique_id() -> str:
    """Return ``<hex milliseconds>-<hex random>``."""

    millis = int(time.time() * 1000)
    return f"{millis:x}-{random.randrange(1000, 10_000_900):x}"


@dataclass(frozen=True, slots=True)
class LoggerContext:
    """Identifiers shared by every log line and error report of one process.

    Attributes:
        visitor_id: Stable identifier of this installation.
        session_id: Identifier of the running process.
        request_url: Base URL the transport talks to.
    """

    visitor_id: str
    session_id: str
    request_url: str

    def as_headers(self) -> dict[str, str]:
        return {"X-Visitor-Id": self.visitor_id, "X-Session-Id": self.session_id}


def get_logger_context(settings: Settings | None = None, *, refresh: bool = False) -> LoggerContext:
    """Return the process context, computing it on first use."""

    global _CONTEXT
    if _CONTEXT is not None and not refresh:
        return _CONTEXT
    settings = settings or Settings()
    _CONTEXT = LoggerContext(
        visitor_id=_load_visitor_id(settings.resolved_state_dir()),
        session_id=os.environ.get(_SESSION_ENV) or generate_unique_id(),
        request_url=settings.base_url,
    )
    LOGGER.debug("Logger context visitor=%s session=%s", _CONTEXT.visitor_id, _CONTEXT.session_id)
    return _CONTEXT


def reset_logger_context() -> None:
    global _CONTEXT
    _CONTEXT = None


def _load_visitor_id(state_dir: Path) -> str:
    path = state_dir / _VISITOR_FILE
    try:
        existing = path.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        existing = ""
    except OSError as exc:
        LOGGER.warning("Unable to read visitor id from %s: %s", path, exc)
        return generate_unique_id()
    if existing:
        return existing

    visitor_id = generate_unique_id()
    try:
        state_dir.mkdir(parents=True, exist_ok=True)
        path.write_text(visitor_id, encoding="utf-8")
    except OSError as exc:
        # Storage unavailable: the id only lives for this process.
        LOGGER.warning("Unable to persist visitor id to %s: %s", path, exc)
    return visitor_id
