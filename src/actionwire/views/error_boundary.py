"""Render guard that turns view failures into ``@@ERROR`` actions."""

from __future__ import annotations

import logging
import traceback
from typing import Any, Callable

from ..core.actions import Action, error_action
from ..core.errors import ViewLifecycleException

LOGGER = logging.getLogger(__name__)

Fallback = Callable[[ViewLifecycleException], Any]


def default_fallback(exception: ViewLifecycleException) -> str:
    return f"Render fail: {exception.message}"


class ErrorBoundary:
    """Wraps render callables of one view subtree.

    The first failing render is dispatched as ``@@ERROR`` and the boundary
    switches to the fallback until :meth:`reset` is called.

    Example::

        boundary = ErrorBoundary(app.dispatch)
        text = boundary.render(render_cart, cart_state, component_stack="CartPage > CartList")
    """

    def __init__(self, dispatch: Callable[[Action], Any], *, fallback: Fallback | None = None) -> None:
        self._dispatch = dispatch
        self._fallback = fallback or default_fallback
        self.exception: ViewLifecycleException | None = None

    @property
    def failed(self) -> bool:
        return self.exception is not None

    def render(self, component: Callable[..., Any], *args: Any, component_stack: str | None = None, **kwargs: Any) -> Any:
        """Return ``component(*args, **kwargs)``, or the fallback once a render failed."""
        if self.exception is not None:
            return self._fallback(self.exception)
        try:
            return component(*args, **kwargs)
        except Exception as exc:
            exception = ViewLifecycleException(
                message=str(exc) or type(exc).__name__,
                stack="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
                component_stack=component_stack or _component_name(component),
            )
            exception.__cause__ = exc
            LOGGER.debug("Render of %s failed", exception.component_stack, exc_info=exc)
            self.exception = exception
            self._dispatch(error_action(exception))
            return self._fallback(exception)

    def reset(self) -> None:
        """Leave the fallback and render the wrapped views again."""
        self.exception = None


def _component_name(component: Callable[..., Any]) -> str:
    return getattr(component, "__qualname__", None) or repr(component)


__all__ = ["ErrorBoundary", "default_fallback"]
