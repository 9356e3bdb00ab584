"""Single logical store running the dispatch pipeline.

One dispatch goes through the error interceptor, the root reducer and the
effect scheduler, in that order. The state snapshot is replaced, never
mutated, so subscribers and effects always read a fully formed value.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import TYPE_CHECKING, Any, Callable, TypeVar

from .actions import Action
from .middleware import ErrorInterceptor
from .reducer import RootReducer, compose_reducer
from .registry import HandlerRegistry
from .scheduler import EffectScheduler
from .state import State

if TYPE_CHECKING:  # pragma: no cover
    from .module import Module

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

Listener = Callable[[State], None]


class Store:
    """Holds the current state and dispatches actions through the pipeline.

    Example::

        store = Store(registry)
        store.register(cart)
        store.dispatch(cart.actions["set_items"](["a", "b"]))
        store.select(lambda state: state.slice("cart"))
    """

    def __init__(
        self,
        registry: HandlerRegistry,
        *,
        initial_state: State | None = None,
        reducer: RootReducer | None = None,
        scheduler: EffectScheduler | None = None,
        interceptor: ErrorInterceptor | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            registry: Registry the reducer and scheduler derive from.
            initial_state: Starting snapshot; defaults to an empty state.
            reducer: Root reducer; composed from ``registry`` when omitted.
            scheduler: Effect scheduler; created for ``registry`` when omitted.
            interceptor: Error interceptor; created when omitted.
        """
        self._registry = registry
        self._reducer = reducer or compose_reducer(registry)
        self._scheduler = scheduler or EffectScheduler(registry)
        self._interceptor = interceptor or ErrorInterceptor()
        self._state = initial_state or State()
        self._lock = threading.RLock()
        self._listeners: list[Listener] = []

        self._interceptor.set_dispatcher(self.dispatch)
        self._scheduler.bind(
            dispatch=self.dispatch,
            get_state=self.get_state,
            on_error=self._interceptor.report,
        )
        self._pipeline = self._interceptor.intercept(self._process)

    # ------------------------------------------------------------------
    # Public State
    # ------------------------------------------------------------------

    @property
    def registry(self) -> HandlerRegistry:
        return self._registry

    @property
    def scheduler(self) -> EffectScheduler:
        return self._scheduler

    @property
    def interceptor(self) -> ErrorInterceptor:
        return self._interceptor

    @property
    def state(self) -> State:
        return self.get_state()

    def get_state(self) -> State:
        with self._lock:
            return self._state

    def select(self, selector: Callable[[State], T]) -> T:
        """Apply a read-only selector to the current state."""
        return selector(self.get_state())

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, module: Module) -> None:
        """Register ``module`` and seed its namespace with its initial state.

        Raises:
            RegistrationError: If the registry rejects the module.
        """
        self._registry.register_module(module)
        if module.initial_state is None or module.namespace is None:
            return
        with self._lock:
            app = dict(self._state.app)
            app.setdefault(module.namespace, module.initial_state)
            self._state = replace(self._state, app=app)
            state = self._state
        LOGGER.debug("Seeded initial state for namespace %s", module.namespace)
        for failure in self._notify(state):
            self._interceptor.report(failure)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def dispatch(self, action: Action) -> Action:
        """Run ``action`` through the pipeline.

        Never raises: every failure surfaces as an ``@@ERROR`` action.

        Returns:
            The dispatched action.
        """
        return self._pipeline(action)

    def _process(self, action: Action) -> list[BaseException]:
        failures: list[BaseException] = []
        with self._lock:
            outcome = self._reducer(self._state, action)
            changed = outcome.state is not self._state
            self._state = outcome.state
        failures.extend(failure.error for failure in outcome.failures)
        if changed:
            failures.extend(self._notify(outcome.state))
        try:
            self._scheduler.dispatch_async(action)
        except Exception as exc:
            failures.append(exc)
        return failures

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` with every new state snapshot.

        Returns:
            A function removing the listener.
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                try:
                    self._listeners.remove(listener)
                except ValueError:
                    pass

        return unsubscribe

    def _notify(self, state: State) -> list[BaseException]:
        with self._lock:
            listeners = list(self._listeners)
        failures: list[BaseException] = []
        for listener in listeners:
            try:
                listener(state)
            except Exception as exc:
                failures.append(exc)
        return failures


__all__ = ["Store", "Listener"]
