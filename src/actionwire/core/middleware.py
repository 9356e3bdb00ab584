"""Error interception around the dispatch pipeline.

The interceptor turns failures into ``@@ERROR`` actions and feeds them back
into dispatch. It covers three channels:

- failures returned by, or escaping from, one synchronous dispatch step;
- failures of effect tasks, reported by the scheduler;
- process-wide uncaught errors (``sys.excepthook``, ``threading.excepthook``
  and the asyncio loop exception handler), once :meth:`install` is called.

A failure that happens while an ``@@ERROR`` action is itself being processed
is logged and dropped, so a broken error handler cannot loop forever.
"""

from __future__ import annotations

import asyncio
import logging
import sys
import threading
from typing import Any, Callable, Sequence

from .actions import ERROR_ACTION_TYPE, Action, error_action

LOGGER = logging.getLogger(__name__)

Dispatch = Callable[[Action], Any]
Step = Callable[[Action], Sequence[BaseException]]


class ErrorInterceptor:
    """Converts captured failures into dispatched ``@@ERROR`` actions."""

    def __init__(self, dispatch: Dispatch | None = None) -> None:
        self._dispatch = dispatch
        self._installed = False
        self._previous_excepthook: Callable[..., Any] | None = None
        self._previous_threading_hook: Callable[..., Any] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._previous_loop_handler: Callable[..., Any] | None = None

    def set_dispatcher(self, dispatch: Dispatch | None) -> None:
        self._dispatch = dispatch

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def intercept(self, step: Step) -> Callable[[Action], Action]:
        """Wrap a dispatch step so that it never raises.

        ``step`` returns the failures it collected; each one becomes an
        ``@@ERROR`` action. An exception escaping ``step`` is treated the
        same way.
        """

        def dispatch(action: Action) -> Action:
            try:
                failures = step(action)
            except Exception as exc:
                failures = (exc,)
            for failure in failures:
                self.report(failure, action)
            return action

        return dispatch

    def report(self, error: BaseException, action: Action | None = None) -> None:
        """Log ``error`` and dispatch it as an ``@@ERROR`` action.

        Args:
            error: The captured failure.
            action: The action being processed, if any.
        """
        originating_type = getattr(action, "type", None)
        if originating_type == ERROR_ACTION_TYPE:
            LOGGER.error(
                "Failure while handling %s; not re-dispatching", ERROR_ACTION_TYPE, exc_info=error
            )
            return
        LOGGER.error(
            "Captured %s while processing %s: %s",
            type(error).__name__,
            originating_type or "<no action>",
            error,
            exc_info=error,
        )
        if self._dispatch is None:
            return
        self._dispatch(error_action(error, originating_type))

    # ------------------------------------------------------------------
    # Process-wide hooks
    # ------------------------------------------------------------------

    @property
    def installed(self) -> bool:
        return self._installed

    def install(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Route uncaught errors of the process into dispatch.

        Args:
            loop: Event loop whose exception handler should be replaced.
        """
        if self._installed:
            return
        self._previous_excepthook = sys.excepthook
        sys.excepthook = self._handle_uncaught
        self._previous_threading_hook = threading.excepthook
        threading.excepthook = self._handle_thread_exception
        if loop is not None:
            self._loop = loop
            self._previous_loop_handler = loop.get_exception_handler()
            loop.set_exception_handler(self._handle_loop_exception)
        self._installed = True
        LOGGER.debug("Installed uncaught error hooks")

    def uninstall(self) -> None:
        """Restore the hooks replaced by :meth:`install`."""
        if not self._installed:
            return
        if self._previous_excepthook is not None:
            sys.excepthook = self._previous_excepthook
        if self._previous_threading_hook is not None:
            threading.excepthook = self._previous_threading_hook
        if self._loop is not None and not self._loop.is_closed():
            self._loop.set_exception_handler(self._previous_loop_handler)
        self._loop = None
        self._previous_loop_handler = None
        self._installed = False
        LOGGER.debug("Uninstalled uncaught error hooks")

    def _handle_uncaught(self, exc_type: type[BaseException], exc: BaseException, tb: Any) -> None:
        if issubclass(exc_type, (KeyboardInterrupt, SystemExit)):
            previous = self._previous_excepthook or sys.__excepthook__
            previous(exc_type, exc, tb)
            return
        self.report(exc)

    def _handle_thread_exception(self, args: threading.ExceptHookArgs) -> None:
        exc = args.exc_value
        if exc is None or issubclass(args.exc_type, SystemExit):
            previous = self._previous_threading_hook or threading.__excepthook__
            previous(args)
            return
        self.report(exc)

    def _handle_loop_exception(self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        exc = context.get("exception")
        if not isinstance(exc, Exception):
            exc = RuntimeError(str(context.get("message") or "Unhandled event loop error"))
        self.report(exc)


__all__ = ["ErrorInterceptor"]
