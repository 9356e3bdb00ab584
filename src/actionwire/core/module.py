"""Self-registration surface for feature modules.

A feature module declares its handlers with decorators and registers itself
once at import time; no central list of handlers exists anywhere.

Example::

    cart = Module("cart", initial_state={"items": ()})

    @cart.reducer
    def set_items(items):
        return {"items": tuple(items)}

    @cart.effect(loading="cart")
    async def fetch_items(user_id):
        items = await api.call("GET", "/users/:id/cart", {"id": user_id}, None)
        put(set_items(items))

    register(cart)

Each decorated function becomes an :class:`ActionCreator`: calling it builds
the :class:`~actionwire.core.actions.Action` that triggers the handler.
"""

from __future__ import annotations

import functools
import inspect
import logging
from typing import Any, Callable, TypeVar, overload

from .actions import Action
from .errors import InvalidHandlerError
from .registry import HandlerDescriptor, HandlerKind

LOGGER = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


class ActionCreator:
    """Callable that builds actions of one type for one handler.

    Arguments are checked against the handler signature when the action is
    created, so every action of a type carries the same payload shape.
    """

    def __init__(self, action_type: str, handler: Callable[..., Any], kind: HandlerKind) -> None:
        functools.update_wrapper(self, handler)
        self.action_type = action_type
        self.handler = handler
        self.kind = kind
        self._signature = _safe_signature(handler)

    @property
    def arity(self) -> int | None:
        """Number of positional parameters, or None for variadic handlers."""
        if self._signature is None:
            return None
        count = 0
        for parameter in self._signature.parameters.values():
            if parameter.kind is inspect.Parameter.VAR_POSITIONAL:
                return None
            if parameter.kind in (
                inspect.Parameter.POSITIONAL_ONLY,
                inspect.Parameter.POSITIONAL_OR_KEYWORD,
            ):
                count += 1
        return count

    def __call__(self, *args: Any) -> Action:
        if self._signature is not None:
            try:
                self._signature.bind(*args)
            except TypeError as exc:
                raise TypeError(f"{self.action_type}: {exc}") from exc
        return Action(self.action_type, args)

    def __repr__(self) -> str:
        return f"<ActionCreator {self.action_type} ({self.kind.name.lower()})>"


def _safe_signature(handler: Callable[..., Any]) -> inspect.Signature | None:
    try:
        return inspect.signature(handler)
    except (TypeError, ValueError):
        return None


class Module:
    """A named set of handlers owning at most one state namespace.

    The namespace is the module name. It is claimed when the module has at
    least one reducer or an initial state; effect-only modules claim nothing.
    """

    def __init__(self, name: str, *, initial_state: Any = None) -> None:
        if not name or "/" in name:
            raise InvalidHandlerError(message=f"Invalid module name {name!r}")
        self.name = name
        self.initial_state = initial_state
        self._descriptors: list[HandlerDescriptor] = []
        self._creators: dict[str, ActionCreator] = {}

    @property
    def namespace(self) -> str | None:
        if self.initial_state is not None:
            return self.name
        if any(d.kind is HandlerKind.SYNC for d in self._descriptors):
            return self.name
        return None

    @property
    def actions(self) -> dict[str, ActionCreator]:
        """Action creators declared so far, keyed by function name."""
        return dict(self._creators)

    def action_type_for(self, name: str) -> str:
        return f"{self.name}/{name}"

    def descriptors(self) -> tuple[HandlerDescriptor, ...]:
        return tuple(self._descriptors)

    @overload
    def reducer(self, action_type: F) -> ActionCreator: ...

    @overload
    def reducer(self, action_type: str | None = None) -> Callable[[F], ActionCreator]: ...

    def reducer(self, action_type: Any = None) -> Any:
        """Declare a state transition for this module's namespace.

        The handler receives the action payload and returns the new slice.
        Usable bare (``@module.reducer``) or with an explicit action type.
        """
        if callable(action_type):
            return self._declare(action_type, None, HandlerKind.SYNC, None)

        def decorator(function: F) -> ActionCreator:
            return self._declare(function, action_type, HandlerKind.SYNC, None)

        return decorator

    @overload
    def effect(self, action_type: F) -> ActionCreator: ...

    @overload
    def effect(
        self, action_type: str | None = None, *, loading: str | None = None
    ) -> Callable[[F], ActionCreator]: ...

    def effect(self, action_type: Any = None, *, loading: str | None = None) -> Any:
        """Declare an async effect.

        Args:
            action_type: Explicit action type; defaults to ``"<module>/<function>"``.
            loading: Operation-group key to track the effect under.
        """
        if callable(action_type):
            return self._declare(action_type, None, HandlerKind.ASYNC, loading)

        def decorator(function: F) -> ActionCreator:
            return self._declare(function, action_type, HandlerKind.ASYNC, loading)

        return decorator

    def _declare(
        self,
        function: Callable[..., Any],
        action_type: str | None,
        kind: HandlerKind,
        loading: str | None,
    ) -> ActionCreator:
        resolved_type = action_type or self.action_type_for(function.__name__)
        descriptor = HandlerDescriptor(
            action_type=resolved_type,
            kind=kind,
            function=function,
            namespace=self.name if kind is HandlerKind.SYNC else None,
            owner=self,
            loading=loading,
        )
        self._descriptors.append(descriptor)
        creator = ActionCreator(resolved_type, function, kind)
        self._creators[function.__name__] = creator
        LOGGER.debug("Declared %s handler %s on module %s", kind.name.lower(), resolved_type, self.name)
        return creator

    def __repr__(self) -> str:
        return f"Module({self.name!r}, handlers={len(self._descriptors)})"


__all__ = ["ActionCreator", "Module"]
