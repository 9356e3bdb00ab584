"""Handler registry and namespace allocator.

The registry is the one deliberately shared, append-only table of the runtime:
feature modules contribute handlers to it at load time, and the reducer and
effect scheduler derive their dispatch tables from it. Handlers for one action
type are kept in registration order because every one of them runs, in that
order, on each dispatch.

Example:
    registry = HandlerRegistry()
    registry.register(HandlerDescriptor("cart/add", HandlerKind.SYNC, add, namespace="cart"))
    registry.sync_descriptors("cart/add")
"""

from __future__ import annotations

import inspect
import logging
import threading
from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING, Any, Callable, Iterator, Mapping

from .actions import SYSTEM_ACTION_TYPES
from .errors import (
    DuplicateNamespaceError,
    ErrorCode,
    InvalidHandlerError,
    RegistrationError,
    ReservedActionTypeError,
)

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from .module import Module

LOGGER = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Handler Descriptors
# -----------------------------------------------------------------------------


class HandlerKind(Enum):
    """How a handler takes part in dispatch."""

    SYNC = auto()  # Pure state transition run by the reducer
    ASYNC = auto()  # Effect run as a task by the scheduler


@dataclass(slots=True, frozen=True)
class HandlerDescriptor:
    """A registered handler.

    Attributes:
        action_type: Action type the handler reacts to.
        kind: Whether the handler is a state transition or an effect.
        function: The handler callable, invoked as ``function(*payload)``.
        namespace: State slice owned by a SYNC handler; None for effects.
        owner: Handler set the descriptor belongs to. Defaults to the
            defining Python module of ``function``.
        loading: Operation-group key an ASYNC handler is tracked under.
    """

    action_type: str
    kind: HandlerKind
    function: Callable[..., Any]
    namespace: str | None = None
    owner: Any = None
    loading: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.action_type, str) or not self.action_type:
            raise InvalidHandlerError(message="Handler action type must be a non-empty string")
        if not callable(self.function):
            raise InvalidHandlerError(message=f"Handler for {self.action_type} is not callable")
        if self.kind is HandlerKind.SYNC:
            if not self.namespace:
                raise InvalidHandlerError(
                    message=f"Sync handler {self.name} for {self.action_type} needs a namespace"
                )
            if self.loading is not None:
                raise InvalidHandlerError(
                    message=f"Sync handler {self.name} cannot be tracked under a loading key"
                )
        else:
            if self.namespace is not None:
                raise InvalidHandlerError(
                    message=f"Effect {self.name} for {self.action_type} cannot own a namespace"
                )
            if not _is_coroutine_function(self.function):
                raise InvalidHandlerError(
                    message=f"Effect {self.name} for {self.action_type} must be an async function"
                )

    @property
    def name(self) -> str:
        """Human-readable handler name for logging."""
        return getattr(self.function, "__qualname__", None) or repr(self.function)

    @property
    def resolved_owner(self) -> Any:
        if self.owner is not None:
            return self.owner
        return getattr(self.function, "__module__", None)


def _is_coroutine_function(function: Callable[..., Any]) -> bool:
    if inspect.iscoroutinefunction(function):
        return True
    wrapped = getattr(function, "__wrapped__", None)
    if wrapped is not None and inspect.iscoroutinefunction(wrapped):
        return True
    return inspect.iscoroutinefunction(getattr(function, "__call__", None))


# -----------------------------------------------------------------------------
# Handler Registry
# -----------------------------------------------------------------------------


class HandlerRegistry:
    """Process-wide table of action handlers.

    The registry only ever grows. Every append bumps :attr:`version` so that
    derived dispatch tables know when to rebuild.
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._handlers: dict[str, list[HandlerDescriptor]] = {}
        self._namespaces: dict[str, Any] = {}
        self._modules: set[int] = set()
        self._version = 0
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, descriptor: HandlerDescriptor) -> None:
        """Append a handler for its action type.

        Args:
            descriptor: The handler to add.

        Raises:
            ReservedActionTypeError: If the action type is handled by the
                runtime itself.
            DuplicateNamespaceError: If the descriptor's namespace is already
                claimed by a different handler set.
        """
        with self._lock:
            self._check_action_type(descriptor.action_type)
            if descriptor.namespace is not None:
                self.allocate_namespace(descriptor.namespace, descriptor.resolved_owner)
            self._append(descriptor)
            self._version += 1
        LOGGER.debug(
            "Registered %s handler %s for %s",
            descriptor.kind.name.lower(),
            descriptor.name,
            descriptor.action_type,
        )

    def register_module(self, module: Module) -> None:
        """Register every handler of ``module`` as one unit.

        All checks run before the first descriptor is appended, so a rejected
        module leaves the registry untouched.

        Args:
            module: The handler set to register.

        Raises:
            RegistrationError: If the module was already registered.
            ReservedActionTypeError: If any handler targets a runtime type.
            DuplicateNamespaceError: If the module's namespace is taken.
        """
        descriptors = module.descriptors()
        with self._lock:
            if id(module) in self._modules:
                raise RegistrationError(
                    code=ErrorCode.MODULE_ALREADY_REGISTERED,
                    message=f"Module '{module.name}' is already registered",
                )
            for descriptor in descriptors:
                self._check_action_type(descriptor.action_type)
            if module.namespace is not None:
                self.allocate_namespace(module.namespace, module)
            for descriptor in descriptors:
                self._append(descriptor)
            self._modules.add(id(module))
            self._version += 1
        LOGGER.debug(
            "Registered module %s (namespace=%s, handlers=%d)",
            module.name,
            module.namespace,
            len(descriptors),
        )

    def allocate_namespace(self, namespace: str, owner: Any) -> None:
        """Claim ``namespace`` for ``owner``.

        Claiming a namespace again for the same owner is a no-op.

        Raises:
            DuplicateNamespaceError: If a different owner holds the namespace.
        """
        with self._lock:
            claimed_by = self._namespaces.get(namespace)
            if claimed_by is not None and claimed_by != owner:
                raise DuplicateNamespaceError(
                    message=f"Namespace '{namespace}' is already claimed by {_owner_label(claimed_by)}",
                    namespace=namespace,
                    owner=_owner_label(owner),
                    claimed_by=_owner_label(claimed_by),
                )
            if claimed_by is None:
                self._namespaces[namespace] = owner
                LOGGER.debug("Allocated namespace %s to %s", namespace, _owner_label(owner))

    def _append(self, descriptor: HandlerDescriptor) -> None:
        self._handlers.setdefault(descriptor.action_type, []).append(descriptor)

    @staticmethod
    def _check_action_type(action_type: str) -> None:
        if action_type in SYSTEM_ACTION_TYPES:
            raise ReservedActionTypeError(
                message=f"Action type '{action_type}' is handled by the runtime",
                action_type=action_type,
            )

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    @property
    def version(self) -> int:
        """Number of successful registrations so far."""
        return self._version

    def descriptors(self, action_type: str) -> tuple[HandlerDescriptor, ...]:
        """Return all handlers for ``action_type`` in registration order."""
        with self._lock:
            return tuple(self._handlers.get(action_type, ()))

    def sync_descriptors(self, action_type: str) -> tuple[HandlerDescriptor, ...]:
        """Return the state-transition handlers for ``action_type``."""
        return tuple(d for d in self.descriptors(action_type) if d.kind is HandlerKind.SYNC)

    def async_descriptors(self, action_type: str) -> tuple[HandlerDescriptor, ...]:
        """Return the effect handlers for ``action_type``."""
        return tuple(d for d in self.descriptors(action_type) if d.kind is HandlerKind.ASYNC)

    def action_types(self) -> list[str]:
        """List action types with at least one handler."""
        with self._lock:
            return list(self._handlers)

    def namespaces(self) -> Mapping[str, str]:
        """Return allocated namespaces mapped to a label of their owner."""
        with self._lock:
            return {name: _owner_label(owner) for name, owner in self._namespaces.items()}

    def owner_of(self, namespace: str) -> Any | None:
        with self._lock:
            return self._namespaces.get(namespace)

    def __contains__(self, action_type: object) -> bool:
        with self._lock:
            return action_type in self._handlers

    def __len__(self) -> int:
        with self._lock:
            return sum(len(handlers) for handlers in self._handlers.values())

    def __iter__(self) -> Iterator[HandlerDescriptor]:
        with self._lock:
            snapshot = [d for handlers in self._handlers.values() for d in handlers]
        return iter(snapshot)


def _owner_label(owner: Any) -> str:
    name = getattr(owner, "name", None)
    if isinstance(name, str):
        return f"module '{name}'"
    return str(owner)


__all__ = [
    "HandlerKind",
    "HandlerDescriptor",
    "HandlerRegistry",
]
