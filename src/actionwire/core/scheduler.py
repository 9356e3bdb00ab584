"""Effect scheduler running async handlers as asyncio tasks.

For every dispatched action the scheduler launches one task per matching
async handler. Tasks run concurrently and cooperatively; a failing task is
reported to the error handler and never disturbs its siblings or the caller.
Handlers tracked under a loading key are bracketed by ``@@LOADING`` +1/-1
actions, the decrement being released whatever way the task ends.

Inside a running effect, :func:`put` dispatches follow-up actions and
:func:`select` reads the current state::

    @catalog.effect(loading="item")
    async def fetch_item(item_id):
        item = await transport.call("GET", "/items/:id", {"id": item_id}, None)
        put(item_loaded(item))
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar

from .actions import Action, loading_action
from .errors import SchedulerUnavailableError
from .registry import HandlerDescriptor, HandlerRegistry
from .state import State

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

Dispatch = Callable[[Action], Any]
ErrorHandler = Callable[[BaseException, Action], None]


# -----------------------------------------------------------------------------
# Effect Context
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class EffectContext:
    """What a running effect can reach: the store it belongs to."""

    dispatch: Dispatch
    get_state: Callable[[], State]
    action: Action


_EFFECT_CONTEXT: ContextVar[EffectContext | None] = ContextVar("actionwire_effect", default=None)


def _current_context() -> EffectContext:
    context = _EFFECT_CONTEXT.get()
    if context is None:
        raise RuntimeError("put()/select() can only be used inside a running effect")
    return context


def put(action: Action) -> None:
    """Dispatch ``action`` from inside an effect."""
    _current_context().dispatch(action)


def select(selector: Callable[[State], T] | None = None) -> Any:
    """Return the current state, or ``selector(state)``, from inside an effect."""
    state = _current_context().get_state()
    return selector(state) if selector is not None else state


def current_action() -> Action:
    """Return the action that launched the running effect."""
    return _current_context().action


# -----------------------------------------------------------------------------
# Effect Group
# -----------------------------------------------------------------------------


def _awaitable(future: asyncio.Future[Any] | concurrent.futures.Future[Any]) -> asyncio.Future[Any]:
    return future if isinstance(future, asyncio.Future) else asyncio.wrap_future(future)


@dataclass(slots=True)
class EffectGroup:
    """Tasks launched by one dispatch.

    Attributes:
        action: The dispatched action.
        futures: One task (or thread-safe future) per matched handler.
    """

    action: Action
    futures: list[asyncio.Future[Any] | concurrent.futures.Future[Any]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.futures)

    async def wait(self) -> None:
        """Wait until every task of the group has finished.

        Cancelling the wait leaves the tasks running.
        """
        if self.futures:
            await asyncio.wait([_awaitable(future) for future in self.futures])


@dataclass(slots=True, eq=False)
class _EffectRun:
    """Bookkeeping for one launched effect, from spawn until release."""

    descriptor: HandlerDescriptor
    action: Action
    future: asyncio.Future[Any] | concurrent.futures.Future[Any] | None = None
    task: asyncio.Task[Any] | None = None
    started: bool = False
    released: bool = False


# -----------------------------------------------------------------------------
# Effect Scheduler
# -----------------------------------------------------------------------------


class EffectScheduler:
    """Launches async handlers for dispatched actions.

    The scheduler is bound to a store through :meth:`bind`, which supplies the
    dispatch entry point, the state reader and the error handler.
    """

    def __init__(self, registry: HandlerRegistry, *, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Initialize the scheduler.

        Args:
            registry: Registry providing the async handlers.
            loop: Loop used when dispatch happens outside a running loop.
        """
        self._registry = registry
        self._loop = loop
        self._dispatch: Dispatch | None = None
        self._get_state: Callable[[], State] | None = None
        self._on_error: ErrorHandler | None = None
        self._runs: set[_EffectRun] = set()
        self._count_lock = threading.Lock()

    def bind(
        self,
        *,
        dispatch: Dispatch,
        get_state: Callable[[], State],
        on_error: ErrorHandler,
    ) -> None:
        self._dispatch = dispatch
        self._get_state = get_state
        self._on_error = on_error

    def bind_loop(self, loop: asyncio.AbstractEventLoop | None) -> None:
        """Set the loop used for dispatches made outside a running loop."""
        self._loop = loop

    @property
    def pending(self) -> int:
        """Number of effects scheduled or running."""
        with self._count_lock:
            return len(self._runs)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def dispatch_async(self, action: Action) -> EffectGroup | None:
        """Launch one task per async handler registered for ``action``.

        Args:
            action: The action flowing through the pipeline.

        Returns:
            The launched group, or None when no async handler matched.

        Raises:
            SchedulerUnavailableError: If handlers matched but no event loop
                is running or bound.
        """
        descriptors = self._registry.async_descriptors(action.type)
        if not descriptors:
            return None
        if self._dispatch is None or self._get_state is None:
            raise SchedulerUnavailableError(
                message="Effect scheduler is not bound to a store",
                action_type=action.type,
            )
        loop, in_loop = self._resolve_loop(action)

        group = EffectGroup(action)
        for descriptor in descriptors:
            if descriptor.loading is not None:
                self._dispatch(loading_action(descriptor.loading, 1))
            group.futures.append(self._spawn(loop, in_loop, descriptor, action))
        LOGGER.debug("Launched %d effect(s) for %s", len(group), action.type)
        return group

    def _resolve_loop(self, action: Action) -> tuple[asyncio.AbstractEventLoop, bool]:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is not None and (self._loop is None or self._loop is running):
            return running, True
        loop = self._loop
        if loop is None or loop.is_closed():
            raise SchedulerUnavailableError(
                message=f"No event loop available to run effects for {action.type}",
                action_type=action.type,
            )
        return loop, False

    def _spawn(
        self,
        loop: asyncio.AbstractEventLoop,
        in_loop: bool,
        descriptor: HandlerDescriptor,
        action: Action,
    ) -> asyncio.Future[Any] | concurrent.futures.Future[Any]:
        run = _EffectRun(descriptor, action)
        with self._count_lock:
            self._runs.add(run)
        coroutine = self._run(run)
        if in_loop:
            future: asyncio.Future[Any] | concurrent.futures.Future[Any] = loop.create_task(
                coroutine, name=f"effect:{action.type}:{descriptor.name}"
            )
        else:
            try:
                future = asyncio.run_coroutine_threadsafe(coroutine, loop)
            except RuntimeError:
                coroutine.close()
                self._release(run)
                raise
        run.future = future
        future.add_done_callback(lambda _: self._on_future_done(run))
        return future

    def _on_future_done(self, run: _EffectRun) -> None:
        # A started run releases itself from _run; this covers cancellation before the first step.
        if self._release(run, unstarted_only=True):
            LOGGER.debug("Effect %s for %s was cancelled before starting", run.descriptor.name, run.action.type)

    def _release(self, run: _EffectRun, *, unstarted_only: bool = False) -> bool:
        with self._count_lock:
            if run.released or (unstarted_only and run.started):
                return False
            run.released = True
            self._runs.discard(run)
        if run.descriptor.loading is not None:
            self._dispatch(loading_action(run.descriptor.loading, -1))  # type: ignore[misc]
        return True

    async def _run(self, run: _EffectRun) -> None:
        descriptor, action = run.descriptor, run.action
        with self._count_lock:
            if run.released:
                return
            run.started = True
            run.task = asyncio.current_task()
        token = _EFFECT_CONTEXT.set(
            EffectContext(dispatch=self._dispatch, get_state=self._get_state, action=action)  # type: ignore[arg-type]
        )
        try:
            await descriptor.function(*action.payload)
        except asyncio.CancelledError:
            LOGGER.debug("Effect %s for %s was cancelled", descriptor.name, action.type)
            raise
        except Exception as exc:
            LOGGER.debug("Effect %s failed for %s", descriptor.name, action.type, exc_info=True)
            self._report(exc, action)
        finally:
            _EFFECT_CONTEXT.reset(token)
            self._release(run)

    def _report(self, exc: BaseException, action: Action) -> None:
        if self._on_error is None:
            LOGGER.error("Unhandled effect failure for %s", action.type, exc_info=exc)
            return
        self._on_error(exc, action)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def join(self) -> None:
        """Wait until no effect is scheduled or running.

        Effects launched while joining are waited for as well. Cancelling the
        join (for instance through ``asyncio.wait_for``) leaves the effects
        running. Must not be awaited from inside an effect.
        """
        current = asyncio.current_task()
        while True:
            with self._count_lock:
                runs = [run for run in self._runs if run.task is None or run.task is not current]
            if not runs:
                return
            waiting = [
                run.task if run.task is not None else _awaitable(run.future)
                for run in runs
                if run.task is not None or run.future is not None
            ]
            if waiting:
                await asyncio.wait(waiting)
            else:
                await asyncio.sleep(0)

    def cancel_all(self) -> int:
        """Cancel every scheduled or running effect; loading counters are still released.

        Returns:
            Number of effects that were asked to cancel.
        """
        with self._count_lock:
            runs = list(self._runs)
        cancelled = 0
        for run in runs:
            target = run.task if run.task is not None else run.future
            if target is not None and target.cancel():
                cancelled += 1
        if cancelled:
            LOGGER.info("Cancelled %d effect(s)", cancelled)
        return cancelled


__all__ = [
    "EffectContext",
    "EffectGroup",
    "EffectScheduler",
    "current_action",
    "put",
    "select",
]
