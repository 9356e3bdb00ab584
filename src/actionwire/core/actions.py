"""Action values and the reserved system action types.

An :class:`Action` is the unit of dispatch: an immutable type tag plus an
ordered payload. Three action types are reserved by the runtime and form the
wire contract between the store, the scheduler and the error interceptor.

Example::

    action = Action("cart/add_item", ("sku-42", 2))
    store.dispatch(action)
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from typing import Any, Iterable

LOADING_ACTION_TYPE = "@@LOADING"
INIT_STATE_ACTION_TYPE = "@@INIT_STATE"
ERROR_ACTION_TYPE = "@@ERROR"

# Handled by the reducer before any registered handler is consulted.
SYSTEM_ACTION_TYPES: frozenset[str] = frozenset({LOADING_ACTION_TYPE, INIT_STATE_ACTION_TYPE})


@dataclass(frozen=True, slots=True)
class Action:
    """An immutable named event with an ordered payload.

    Attributes:
        type: Non-empty action type tag.
        payload: Positional arguments passed to every matching handler.
    """

    type: str
    payload: tuple[Any, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.type, str) or not self.type:
            raise ValueError("Action type must be a non-empty string")
        if not isinstance(self.payload, tuple):
            object.__setattr__(self, "payload", tuple(self.payload))

    @classmethod
    def of(cls, action_type: str, *payload: Any) -> "Action":
        """Build an action from positional payload values."""
        return cls(action_type, payload)


# =============================================================================
# Reserved Payloads
# =============================================================================


@dataclass(frozen=True, slots=True)
class LoadingPayload:
    """Payload of ``@@LOADING``.

    Attributes:
        key: Tracked operation-group key.
        delta: ``+1`` when a tracked task starts, ``-1`` when it ends.
    """

    key: str
    delta: int

    def __post_init__(self) -> None:
        if self.delta not in (1, -1):
            raise ValueError(f"Loading delta must be +1 or -1, got {self.delta!r}")


@dataclass(frozen=True, slots=True)
class ErrorPayload:
    """Payload of ``@@ERROR``.

    Attributes:
        message: Human-readable message of the captured error.
        stack: Formatted traceback, when one was available.
        originating_type: Type of the action being processed when the error
            occurred, or None for errors raised outside any dispatch.
        exception: The captured exception itself.
    """

    message: str
    stack: str | None = None
    originating_type: str | None = None
    exception: BaseException | None = field(default=None, compare=False, repr=False)


# =============================================================================
# Reserved Action Creators
# =============================================================================


def loading_action(key: str, delta: int) -> Action:
    """Return a ``@@LOADING`` action for ``key``."""
    return Action(LOADING_ACTION_TYPE, (LoadingPayload(key, delta),))


def init_state_action(system_state: Any) -> Action:
    """Return a ``@@INIT_STATE`` action replacing the system slice."""
    return Action(INIT_STATE_ACTION_TYPE, (system_state,))


def error_action(error: BaseException, originating_type: str | None = None) -> Action:
    """Return an ``@@ERROR`` action describing ``error``."""
    return Action(
        ERROR_ACTION_TYPE,
        (
            ErrorPayload(
                message=_error_message(error),
                stack=_format_stack(error),
                originating_type=originating_type,
                exception=error,
            ),
        ),
    )


def payload_of(action: Action, expected: type) -> Any:
    """Return the single typed payload value of a reserved action."""
    if len(action.payload) != 1 or not isinstance(action.payload[0], expected):
        raise TypeError(
            f"{action.type} expects a single {expected.__name__} payload, got {action.payload!r}"
        )
    return action.payload[0]


def _error_message(error: BaseException) -> str:
    message = getattr(error, "message", None)
    if isinstance(message, str) and message:
        return message
    return str(error) or type(error).__name__


def _format_stack(error: BaseException) -> str | None:
    if error.__traceback__ is None:
        return None
    lines: Iterable[str] = traceback.format_exception(type(error), error, error.__traceback__)
    return "".join(lines)


__all__ = [
    "Action",
    "LoadingPayload",
    "ErrorPayload",
    "LOADING_ACTION_TYPE",
    "INIT_STATE_ACTION_TYPE",
    "ERROR_ACTION_TYPE",
    "SYSTEM_ACTION_TYPES",
    "loading_action",
    "init_state_action",
    "error_action",
    "payload_of",
]
