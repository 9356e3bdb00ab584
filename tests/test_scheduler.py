"""Tests for the effect scheduler."""

from __future__ import annotations

import asyncio

import pytest

from actionwire.core import ERROR_ACTION_TYPE, LOADING_ACTION_TYPE, Action, Module
from actionwire.core.scheduler import current_action, put, select


def _catalog(events: list[str], *, fail: bool = False) -> Module:
    catalog = Module("catalog", initial_state={"item": None})

    @catalog.reducer
    def item_loaded(item):
        return {"item": item}

    @catalog.effect(loading="item")
    async def fetch_item(item_id):
        events.append(f"loading={select(lambda state: state.loading.get('item'))}")
        await asyncio.sleep(0)
        if fail:
            raise ConnectionError(f"cannot fetch {item_id}")
        put(item_loaded({"id": item_id}))
        events.append("done")

    return catalog


class TestLoadingTracking:
    """Loading counters around tracked effects."""

    @pytest.mark.asyncio
    async def test_fetch_item_brackets_effect_with_loading(self, store) -> None:
        events: list[str] = []
        catalog = _catalog(events)
        store.register(catalog)

        store.dispatch(catalog.actions["fetch_item"]("42"))
        assert store.state.is_loading("item")
        await store.scheduler.join()

        assert events == ["loading=1", "done"]
        assert store.loading_deltas("item") == [1, -1]
        assert store.types() == [
            "catalog/fetch_item",
            LOADING_ACTION_TYPE,
            "catalog/item_loaded",
            LOADING_ACTION_TYPE,
        ]
        assert store.state.slice("catalog") == {"item": {"id": "42"}}
        assert store.state.loading == {"item": 0}
        assert store.scheduler.pending == 0

    @pytest.mark.asyncio
    async def test_failed_effect_releases_loading_and_reports_once(self, store) -> None:
        events: list[str] = []
        catalog = _catalog(events, fail=True)
        store.register(catalog)

        store.dispatch(catalog.actions["fetch_item"]("42"))
        await store.scheduler.join()

        assert store.loading_deltas("item") == [1, -1]
        assert not store.state.is_loading("item")
        (error,) = store.errors
        assert error.message == "cannot fetch 42"
        assert error.originating_type == "catalog/fetch_item"
        assert isinstance(error.exception, ConnectionError)

    @pytest.mark.asyncio
    async def test_untracked_effect_dispatches_no_loading(self, store) -> None:
        audit = Module("audit")
        seen: list[str] = []

        @audit.effect
        async def record(entry):
            seen.append(entry)

        store.register(audit)
        store.dispatch(record("login"))
        await store.scheduler.join()

        assert seen == ["login"]
        assert LOADING_ACTION_TYPE not in store.types()

    @pytest.mark.asyncio
    async def test_concurrent_effects_share_one_counter(self, store) -> None:
        search = Module("search")
        release = asyncio.Event()

        @search.effect(loading="search")
        async def query(text):
            await release.wait()

        store.register(search)
        store.dispatch(query("a"))
        store.dispatch(query("b"))
        await asyncio.sleep(0)

        assert store.state.loading == {"search": 2}
        release.set()
        await store.scheduler.join()
        assert store.state.loading == {"search": 0}

    @pytest.mark.asyncio
    async def test_keys_finishing_in_opposite_order_stay_independent(self, store) -> None:
        dashboard = Module("dashboard")
        release_orders = asyncio.Event()
        release_stock = asyncio.Event()
        stock_done = asyncio.Event()

        @dashboard.effect(loading="orders")
        async def load_orders():
            await release_orders.wait()

        @dashboard.effect(loading="stock")
        async def load_stock():
            await release_stock.wait()
            stock_done.set()

        store.register(dashboard)
        store.dispatch(load_orders())
        store.dispatch(load_stock())
        await asyncio.sleep(0)
        assert store.state.loading == {"orders": 1, "stock": 1}

        release_stock.set()
        await stock_done.wait()
        assert store.state.loading == {"orders": 1, "stock": 0}

        release_orders.set()
        await store.scheduler.join()
        assert store.state.loading == {"orders": 0, "stock": 0}
        assert store.loading_deltas("orders") == [1, -1]
        assert store.loading_deltas("stock") == [1, -1]


class TestIsolation:
    """Effects run independently of each other and of the caller."""

    @pytest.mark.asyncio
    async def test_failing_sibling_does_not_cancel_others(self, store) -> None:
        broken = Module("broken")
        healthy = Module("healthy", initial_state=None)
        finished: list[str] = []

        @broken.effect("order/placed")
        async def notify(order_id):
            raise RuntimeError("mailer down")

        @healthy.effect("order/placed")
        async def invoice(order_id):
            await asyncio.sleep(0)
            finished.append(order_id)

        store.register(broken)
        store.register(healthy)
        store.dispatch(Action.of("order/placed", "o-1"))
        await store.scheduler.join()

        assert finished == ["o-1"]
        assert [error.message for error in store.errors] == ["mailer down"]

    @pytest.mark.asyncio
    async def test_effects_start_in_registration_order(self, store) -> None:
        started: list[str] = []
        first = Module("first")
        second = Module("second")

        @first.effect("app/start")
        async def boot_first():
            started.append("first")

        @second.effect("app/start")
        async def boot_second():
            started.append("second")

        store.register(first)
        store.register(second)
        store.dispatch(Action("app/start"))
        await store.scheduler.join()

        assert started == ["first", "second"]

    @pytest.mark.asyncio
    async def test_reducer_runs_before_effect_of_same_action(self, store) -> None:
        form = Module("form", initial_state="")
        observed: list[str] = []

        @form.reducer("form/submit")
        def remember(value):
            return value

        @form.effect("form/submit")
        async def send(value):
            observed.append(select(lambda state: state.slice("form")))

        store.register(form)
        store.dispatch(Action.of("form/submit", "hello"))
        await store.scheduler.join()

        assert observed == ["hello"]

    @pytest.mark.asyncio
    async def test_current_action_is_the_launching_action(self, store) -> None:
        recorder = Module("recorder")
        captured: list[Action] = []

        @recorder.effect
        async def inspect(value):
            captured.append(current_action())

        store.register(recorder)
        action = inspect(3)
        store.dispatch(action)
        await store.scheduler.join()

        assert captured == [action]


class TestLifecycle:
    """Cancellation and cross-thread dispatch."""

    @pytest.mark.asyncio
    async def test_cancel_all_still_releases_loading(self, store) -> None:
        poller = Module("poller")

        @poller.effect(loading="poll")
        async def poll():
            await asyncio.Event().wait()

        store.register(poller)
        store.dispatch(poll())
        await asyncio.sleep(0)

        assert store.scheduler.cancel_all() == 1
        await store.scheduler.join()

        assert store.state.loading == {"poll": 0}
        assert store.errors == []

    @pytest.mark.asyncio
    async def test_dispatch_from_worker_thread_uses_bound_loop(self, store) -> None:
        events: list[str] = []
        catalog = _catalog(events)
        store.register(catalog)
        store.scheduler.bind_loop(asyncio.get_running_loop())

        await asyncio.to_thread(store.dispatch, catalog.actions["fetch_item"]("7"))
        await store.scheduler.join()

        assert events == ["loading=1", "done"]
        assert store.state.loading == {"item": 0}
        assert store.errors == []


def test_put_outside_effect_raises() -> None:
    with pytest.raises(RuntimeError):
        put(Action("anything"))


def test_select_outside_effect_raises() -> None:
    with pytest.raises(RuntimeError):
        select()


class TestCancellation:
    """Cancelled effects release their loading counter however early they stop."""

    @staticmethod
    def _poller() -> Module:
        poller = Module("poller")

        @poller.effect(loading="poll")
        async def poll():
            await asyncio.Event().wait()

        return poller

    @pytest.mark.asyncio
    async def test_effect_cancelled_before_first_step_releases_loading(self, store) -> None:
        poller = self._poller()
        store.register(poller)

        group = store.scheduler.dispatch_async(poller.actions["poll"]())
        assert store.state.loading == {"poll": 1}
        group.futures[0].cancel()
        await asyncio.wait_for(store.scheduler.join(), 1)

        assert store.state.loading == {"poll": 0}
        assert store.loading_deltas("poll") == [1, -1]
        assert store.scheduler.pending == 0
        assert store.errors == []

    @pytest.mark.asyncio
    async def test_cancel_all_right_after_dispatch(self, store) -> None:
        poller = self._poller()
        store.register(poller)

        store.dispatch(poller.actions["poll"]())
        assert store.scheduler.pending == 1
        assert store.scheduler.cancel_all() == 1
        await asyncio.wait_for(store.scheduler.join(), 1)

        assert store.state.loading == {"poll": 0}
        assert store.loading_deltas("poll") == [1, -1]

    @pytest.mark.asyncio
    async def test_timed_out_join_leaves_effects_running(self, store) -> None:
        uploads = Module("uploads")
        release = asyncio.Event()
        finished: list[str] = []

        @uploads.effect(loading="upload")
        async def upload(name):
            await release.wait()
            finished.append(name)

        store.register(uploads)
        store.dispatch(upload("report.pdf"))

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(store.scheduler.join(), 0.05)
        assert store.state.loading == {"upload": 1}

        release.set()
        await store.scheduler.join()
        assert finished == ["report.pdf"]
        assert store.state.loading == {"upload": 0}

    @pytest.mark.asyncio
    async def test_timed_out_group_wait_leaves_effects_running(self, store) -> None:
        uploads = Module("uploads")
        release = asyncio.Event()

        @uploads.effect(loading="upload")
        async def upload():
            await release.wait()

        store.register(uploads)
        group = store.scheduler.dispatch_async(upload())

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(group.wait(), 0.05)
        assert not group.futures[0].done()

        release.set()
        await group.wait()
        assert store.state.loading == {"upload": 0}
