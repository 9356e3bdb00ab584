"""Dispatch-bound callbacks for the view layer.

Views never build actions by hand. They ask a :class:`CallbackFactory` for a
callback that, when invoked, creates the action and dispatches it. For the same
action creator and the same bound arguments the factory returns the very same
callback object, so a view comparing callbacks by identity does not see a
change where there is none. The cache keeps the most recently used
``max_entries`` callbacks; an evicted callback still works, but asking again
returns a new object.

Bound arguments must be primitives (``str``, ``int``, ``float``, ``bool`` or
``None``) so that they can be compared by value. Pass objects by decomposing
them into primitives, or use :meth:`CallbackFactory.object_key_action`.

Example::

    callbacks = CallbackFactory(store.dispatch, store.get_state)
    on_quantity = callbacks.unary_action(set_quantity, "sku-42")
    on_quantity(3)  # dispatches set_quantity("sku-42", 3)
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from typing import Any, Callable, Hashable, Union

from .core.actions import Action
from .core.errors import InvalidBoundArgumentError
from .core.state import GLOBAL_LOADING_KEY, State

LOGGER = logging.getLogger(__name__)

BoundArgument = Union[str, int, float, bool, None]
Creator = Callable[..., Action]

_PRIMITIVE_TYPES: tuple[type, ...] = (str, int, float, bool, type(None))

DEFAULT_MAX_ENTRIES = 1024


class CallbackFactory:
    """Produces memoized callbacks that build and dispatch actions."""

    def __init__(
        self,
        dispatch: Callable[[Action], Any],
        get_state: Callable[[], State],
        *,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ) -> None:
        """Initialize the factory.

        Args:
            dispatch: Store dispatch entry point.
            get_state: Reader of the current state snapshot.
            max_entries: Memoized callbacks kept before the least recently used is evicted.
        """
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._dispatch = dispatch
        self._get_state = get_state
        self._max_entries = max_entries
        self._cache: OrderedDict[Hashable, Callable[..., None]] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._cache)

    def clear(self) -> None:
        """Forget every memoized callback."""
        with self._lock:
            self._cache.clear()

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def action(self, creator: Creator, *bound: BoundArgument) -> Callable[[], None]:
        """Return ``f()`` dispatching ``creator(*bound)``."""
        _check_arity(creator, bound, remaining=0)

        def build() -> Callable[[], None]:
            def callback() -> None:
                self._dispatch(creator(*bound))

            return callback

        return self._memoize(creator, "action", bound, build)

    def unary_action(self, creator: Creator, *bound: BoundArgument) -> Callable[[Any], None]:
        """Return ``f(arg)`` dispatching ``creator(*bound, arg)``.

        For ``foo(a, b, c)``, ``unary_action(foo, 100, "")`` returns ``f(c)``.
        """
        _check_arity(creator, bound, remaining=1)

        def build() -> Callable[[Any], None]:
            def callback(arg: Any) -> None:
                self._dispatch(creator(*bound, arg))

            return callback

        return self._memoize(creator, "unary", bound, build)

    def binary_action(self, creator: Creator, *bound: BoundArgument) -> Callable[[Any, Any], None]:
        """Return ``f(arg1, arg2)`` dispatching ``creator(*bound, arg1, arg2)``."""
        _check_arity(creator, bound, remaining=2)

        def build() -> Callable[[Any, Any], None]:
            def callback(arg1: Any, arg2: Any) -> None:
                self._dispatch(creator(*bound, arg1, arg2))

            return callback

        return self._memoize(creator, "binary", bound, build)

    def object_key_action(self, creator: Creator, key: str) -> Callable[[Any], None]:
        """Return ``f(value)`` dispatching ``creator({key: value})``.

        For handlers taking a single mapping argument.
        """
        if not isinstance(key, str):
            raise InvalidBoundArgumentError(message=f"Object key must be a string, got {type(key).__name__}")
        arity = getattr(creator, "arity", None)
        if arity is not None and arity != 1:
            raise InvalidBoundArgumentError(
                message=f"{_creator_name(creator)} takes {arity} argument(s); object_key_action needs exactly one"
            )

        def build() -> Callable[[Any], None]:
            def callback(value: Any) -> None:
                self._dispatch(creator({key: value}))

            return callback

        return self._memoize(creator, "object_key", (key,), build)

    def loading_status(self, key: str = GLOBAL_LOADING_KEY) -> bool:
        """Return whether any tracked effect under ``key`` is in flight."""
        return self._get_state().is_loading(key)

    # ------------------------------------------------------------------
    # Memoization
    # ------------------------------------------------------------------

    def _memoize(
        self,
        creator: Creator,
        variant: str,
        bound: tuple[BoundArgument, ...],
        build: Callable[[], Callable[..., None]],
    ) -> Any:
        key = (creator, variant, _typed_key(bound))
        with self._lock:
            callback = self._cache.get(key)
            if callback is not None:
                self._cache.move_to_end(key)
                return callback
            while len(self._cache) >= self._max_entries:
                evicted, _ = self._cache.popitem(last=False)
                LOGGER.debug("Evicted callback %r", evicted)
            callback = build()
            self._cache[key] = callback
            LOGGER.debug("Created %s callback for %s %r", variant, _creator_name(creator), bound)
            return callback


def _typed_key(bound: tuple[BoundArgument, ...]) -> tuple[tuple[type, Hashable], ...]:
    # The type is part of the key: 1 == True in Python, but they are different arguments.
    # Floats key by their hex form so -0.0 and 0.0 differ and nan matches itself.
    key: list[tuple[type, Hashable]] = []
    for value in bound:
        if not isinstance(value, _PRIMITIVE_TYPES):
            raise InvalidBoundArgumentError(
                message=(
                    f"Bound argument {value!r} of type {type(value).__name__} is not a primitive; "
                    "pass str, int, float, bool or None"
                )
            )
        key.append((float, value.hex()) if isinstance(value, float) else (type(value), value))
    return tuple(key)


def _check_arity(creator: Creator, bound: tuple[BoundArgument, ...], *, remaining: int) -> None:
    arity = getattr(creator, "arity", None)
    if arity is None:
        return
    expected = arity - remaining
    if expected < 0 or len(bound) != expected:
        raise InvalidBoundArgumentError(
            message=(
                f"{_creator_name(creator)} takes {arity} argument(s); "
                f"expected {max(expected, 0)} bound and {remaining} at call time, got {len(bound)} bound"
            )
        )


def _creator_name(creator: Creator) -> str:
    return getattr(creator, "action_type", None) or getattr(creator, "__qualname__", None) or repr(creator)


__all__ = ["DEFAULT_MAX_ENTRIES", "BoundArgument", "CallbackFactory"]
