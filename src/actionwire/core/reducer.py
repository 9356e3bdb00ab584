"""Composes registered state transitions into one root reducer.

The root reducer evaluates categories in a fixed order and stops at the first
match: loading transitions, system-state initialization, then registered
handlers. It never lets an exception escape; failures are returned in a
:class:`ReduceOutcome` for the caller to convert.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Mapping

from .actions import (
    INIT_STATE_ACTION_TYPE,
    LOADING_ACTION_TYPE,
    Action,
    LoadingPayload,
    payload_of,
)
from .errors import LoadingUnderflowError
from .registry import HandlerDescriptor, HandlerRegistry
from .state import State

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class HandlerFailure:
    """An error raised while reducing one action.

    Attributes:
        action: The action being reduced.
        error: The raised exception.
        descriptor: The failing handler, or None for runtime-owned steps.
    """

    action: Action
    error: Exception
    descriptor: HandlerDescriptor | None = None


@dataclass(slots=True, frozen=True)
class ReduceOutcome:
    """Result of one reducer pass: the next state plus any failures."""

    state: State
    failures: tuple[HandlerFailure, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.failures


def reduce_loading(loading: Mapping[str, int], payload: LoadingPayload) -> dict[str, int]:
    """Apply one loading transition.

    Raises:
        LoadingUnderflowError: If the counter would drop below zero.
    """
    current = loading.get(payload.key, 0)
    updated = current + payload.delta
    if updated < 0:
        raise LoadingUnderflowError(
            message=f"Loading counter '{payload.key}' would drop below zero",
            key=payload.key,
            current=current,
        )
    result = dict(loading)
    result[payload.key] = updated
    return result


class RootReducer:
    """``(state, action) -> ReduceOutcome`` derived from a registry.

    The per-type handler table is rebuilt lazily whenever the registry's
    version moves, so modules may register after the reducer was created.
    """

    def __init__(self, registry: HandlerRegistry) -> None:
        self._registry = registry
        self._table: dict[str, tuple[HandlerDescriptor, ...]] = {}
        self._table_version = -1

    def __call__(self, state: State, action: Action) -> ReduceOutcome:
        if action.type == LOADING_ACTION_TYPE:
            return self._reduce_loading(state, action)
        if action.type == INIT_STATE_ACTION_TYPE:
            return self._reduce_init_state(state, action)

        handlers = self._handlers_for(action.type)
        if not handlers:
            return ReduceOutcome(state)

        # Shallow copy: untouched namespaces keep their slice objects.
        app = dict(state.app)
        failures: list[HandlerFailure] = []
        for descriptor in handlers:
            try:
                app[descriptor.namespace] = descriptor.function(*action.payload)  # type: ignore[index]
            except Exception as exc:
                LOGGER.debug(
                    "Handler %s failed for %s", descriptor.name, action.type, exc_info=True
                )
                failures.append(HandlerFailure(action, exc, descriptor))
        return ReduceOutcome(replace(state, app=app), tuple(failures))

    def _reduce_loading(self, state: State, action: Action) -> ReduceOutcome:
        try:
            payload = payload_of(action, LoadingPayload)
            loading = reduce_loading(state.loading, payload)
        except Exception as exc:
            return ReduceOutcome(state, (HandlerFailure(action, exc),))
        return ReduceOutcome(replace(state, loading=loading))

    def _reduce_init_state(self, state: State, action: Action) -> ReduceOutcome:
        if len(action.payload) != 1:
            error = TypeError(f"{action.type} expects exactly one payload value")
            return ReduceOutcome(state, (HandlerFailure(action, error),))
        return ReduceOutcome(replace(state, system=action.payload[0]))

    def _handlers_for(self, action_type: str) -> tuple[HandlerDescriptor, ...]:
        version = self._registry.version
        if version != self._table_version:
            table: dict[str, tuple[HandlerDescriptor, ...]] = {}
            for known_type in self._registry.action_types():
                handlers = self._registry.sync_descriptors(known_type)
                if handlers:
                    table[known_type] = handlers
            self._table = table
            self._table_version = version
            LOGGER.debug("Rebuilt reducer table (version=%d, types=%d)", version, len(table))
        return self._table.get(action_type, ())


def compose_reducer(registry: HandlerRegistry) -> RootReducer:
    """Return the root reducer for ``registry``."""
    return RootReducer(registry)


__all__ = [
    "HandlerFailure",
    "ReduceOutcome",
    "RootReducer",
    "compose_reducer",
    "reduce_loading",
]
