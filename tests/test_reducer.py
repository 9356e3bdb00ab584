"""Tests for the composed root reducer."""

from __future__ import annotations

import pytest

from actionwire.core import Action, Module
from actionwire.core.actions import LoadingPayload, init_state_action, loading_action
from actionwire.core.errors import LoadingUnderflowError
from actionwire.core.reducer import RootReducer, compose_reducer, reduce_loading
from actionwire.core.registry import HandlerRegistry
from actionwire.core.state import State


@pytest.fixture
def reducer(registry: HandlerRegistry) -> RootReducer:
    return compose_reducer(registry)


class TestRegisteredHandlers:
    """Dispatch of actions matched by registered state transitions."""

    def test_handlers_run_in_registration_order(self, registry: HandlerRegistry, reducer: RootReducer) -> None:
        calls: list[str] = []
        first = Module("first")
        second = Module("second")

        @first.reducer("session/logout")
        def reset_first():
            calls.append("first")
            return "first-reset"

        @second.reducer("session/logout")
        def reset_second():
            calls.append("second")
            return "second-reset"

        registry.register_module(first)
        registry.register_module(second)

        outcome = reducer(State(), Action("session/logout"))

        assert calls == ["first", "second"]
        assert outcome.ok
        assert outcome.state.app == {"first": "first-reset", "second": "second-reset"}

    def test_untouched_namespaces_keep_their_slices(self, registry: HandlerRegistry, reducer: RootReducer) -> None:
        cart = Module("cart")

        @cart.reducer
        def set_items(items):
            return tuple(items)

        registry.register_module(cart)
        profile = {"name": "ada"}
        state = State(app={"profile": profile, "cart": ()})

        outcome = reducer(state, set_items(["a"]))

        assert outcome.state is not state
        assert outcome.state.app is not state.app
        assert outcome.state.app["cart"] == ("a",)
        assert outcome.state.app["profile"] is profile
        assert state.app["cart"] == ()

    def test_unmatched_action_returns_same_state(self, reducer: RootReducer) -> None:
        state = State(app={"cart": ()})
        outcome = reducer(state, Action("nobody/listens"))
        assert outcome.state is state
        assert outcome.ok

    def test_effect_only_match_returns_same_state(self, registry: HandlerRegistry, reducer: RootReducer) -> None:
        catalog = Module("catalog")

        @catalog.effect
        async def fetch_item(item_id):
            return None

        registry.register_module(catalog)
        state = State()

        assert reducer(state, fetch_item("42")).state is state

    def test_failing_handler_does_not_stop_siblings(self, registry: HandlerRegistry, reducer: RootReducer) -> None:
        broken = Module("broken")
        healthy = Module("healthy")

        @broken.reducer("shared/update")
        def explode(value):
            raise ValueError("bad value")

        @healthy.reducer("shared/update")
        def keep(value):
            return value

        registry.register_module(broken)
        registry.register_module(healthy)

        outcome = reducer(State(app={"broken": "old"}), Action.of("shared/update", 7))

        assert outcome.state.app == {"broken": "old", "healthy": 7}
        (failure,) = outcome.failures
        assert isinstance(failure.error, ValueError)
        assert failure.descriptor is not None and failure.descriptor.namespace == "broken"

    def test_modules_registered_later_are_picked_up(self, registry: HandlerRegistry, reducer: RootReducer) -> None:
        late = Module("late")

        @late.reducer
        def mark():
            return True

        assert reducer(State(), mark()).state.app == {}
        registry.register_module(late)
        assert reducer(State(), mark()).state.app == {"late": True}


class TestLoading:
    """The @@LOADING category."""

    def test_increment_and_decrement(self, reducer: RootReducer) -> None:
        state = reducer(State(), loading_action("item", 1)).state
        assert state.loading == {"item": 1}
        assert state.is_loading("item")

        state = reducer(state, loading_action("item", -1)).state
        assert state.loading == {"item": 0}
        assert not state.is_loading("item")

    def test_underflow_is_reported_not_clamped(self, reducer: RootReducer) -> None:
        state = State(loading={"item": 0})

        outcome = reducer(state, loading_action("item", -1))

        assert outcome.state is state
        (failure,) = outcome.failures
        assert isinstance(failure.error, LoadingUnderflowError)
        assert failure.error.key == "item"

    def test_loading_bypasses_registered_handlers(self, registry: HandlerRegistry, reducer: RootReducer) -> None:
        state = State(app={"cart": ()})
        outcome = reducer(state, loading_action("global", 1))
        assert outcome.state.app is state.app

    def test_malformed_loading_payload_fails(self, reducer: RootReducer) -> None:
        outcome = reducer(State(), Action("@@LOADING", ("item", 1)))
        assert isinstance(outcome.failures[0].error, TypeError)


def test_reduce_loading_keeps_other_keys() -> None:
    assert reduce_loading({"a": 2, "b": 1}, LoadingPayload("a", -1)) == {"a": 1, "b": 1}


class TestInitState:
    """The @@INIT_STATE category."""

    def test_replaces_system_slice(self, reducer: RootReducer) -> None:
        state = State(app={"cart": ()}, system={"route": "/"})
        outcome = reducer(state, init_state_action({"route": "/cart"}))
        assert outcome.state.system == {"route": "/cart"}
        assert outcome.state.app is state.app

    def test_requires_single_payload_value(self, reducer: RootReducer) -> None:
        state = State()
        outcome = reducer(state, Action("@@INIT_STATE", ("a", "b")))
        assert outcome.state is state
        assert isinstance(outcome.failures[0].error, TypeError)
