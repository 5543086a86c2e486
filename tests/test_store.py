from __future__ import annotations

import asyncio

import pytest

from errors import FetchError
from series import Series
from sources import SourceDescriptor
from store import LoadState, LoaderLoop, SeriesStore

A = SourceDescriptor("a", "A", "a.csv")
B = SourceDescriptor("b", "B", "b.csv")


def _series(key: str, xs, ys) -> Series:
    return Series.from_columns(key, xs, ys)


DATA = {
    "a": _series("a", [0, 1, 2, 3, 4], [1.0, 0.8, 0.6, 0.5, 0.4]),
    "b": _series("b", [2, 4, 6, 8, 10], [0.9, 0.7, 0.3, 0.2, 0.1]),
}


async def table_loader(descriptor: SourceDescriptor, base=None) -> Series:
    await asyncio.sleep(0)
    return DATA[descriptor.key]


class TestRequest:
    def test_request_marks_pending_then_loaded(self) -> None:
        async def scenario():
            store = SeriesStore(loader=table_loader)
            task = store.request(A)
            assert store.state("a") is LoadState.PENDING
            assert store.get("a") is None
            await task
            return store

        store = asyncio.run(scenario())
        assert store.state("a") is LoadState.LOADED
        assert store.get("a") is DATA["a"]
        assert store.version("a") == 1

    def test_repeated_request_is_ignored(self) -> None:
        calls = []

        async def counting_loader(descriptor, base=None):
            calls.append(descriptor.key)
            return DATA[descriptor.key]

        async def scenario():
            store = SeriesStore(loader=counting_loader)
            first = store.request(A)
            assert store.request(A) is None
            await first
            assert store.request(A) is None

        asyncio.run(scenario())
        assert calls == ["a"]

    def test_unrequested_key_is_missing(self) -> None:
        store = SeriesStore(loader=table_loader)
        assert store.state("zzz") is LoadState.MISSING
        assert store.series(["zzz"]) is None

    def test_listeners_see_each_completed_load(self) -> None:
        seen = []

        async def scenario():
            store = SeriesStore(loader=table_loader)
            store.on_update("a", lambda key, series: seen.append((key, len(series))))
            unsubscribe = store.on_update("b", lambda key, series: seen.append((key, "b-listener")))
            unsubscribe()
            store.request_all([A, B])
            await store.wait()

        asyncio.run(scenario())
        assert seen == [("a", 5)]

    def test_loader_receives_base(self) -> None:
        bases = []

        async def loader(descriptor, base=None):
            bases.append(base)
            return DATA[descriptor.key]

        async def scenario():
            store = SeriesStore(loader=loader, base="https://example.org/data")
            store.request(A)
            await store.wait(["a"])

        asyncio.run(scenario())
        assert bases == ["https://example.org/data"]


class TestFailures:
    def test_fetch_error_marks_error_and_notifies_absence(self) -> None:
        seen = []

        async def failing(descriptor, base=None):
            raise FetchError(descriptor.locator, status=404)

        async def scenario():
            store = SeriesStore(loader=failing)
            store.on_update("a", lambda key, series: seen.append(series))
            store.request(A)
            await store.wait()
            return store

        store = asyncio.run(scenario())
        assert store.state("a") is LoadState.ERROR
        assert store.get("a") is None
        assert "HTTP 404" in store.error("a")
        assert seen == [None]
        assert store.settled(["a"])
        assert not store.ready(["a"])

    def test_unexpected_error_is_contained(self) -> None:
        async def broken(descriptor, base=None):
            raise RuntimeError("boom")

        async def scenario():
            store = SeriesStore(loader=broken)
            store.request(A)
            await store.wait()
            return store

        store = asyncio.run(scenario())
        assert store.state("a") is LoadState.ERROR
        assert store.error("a") == "RuntimeError: boom"

    def test_failed_key_can_be_requested_again(self) -> None:
        attempts = []

        async def flaky(descriptor, base=None):
            attempts.append(1)
            if len(attempts) == 1:
                raise FetchError(descriptor.locator, reason="timed out")
            return DATA[descriptor.key]

        async def scenario():
            store = SeriesStore(loader=flaky)
            store.request(A)
            await store.wait()
            assert store.state("a") is LoadState.ERROR
            store.request(A)
            await store.wait()
            return store

        store = asyncio.run(scenario())
        assert store.state("a") is LoadState.LOADED
        assert store.error("a") is None


class TestReload:
    def test_reload_supersedes_in_flight_load(self) -> None:
        calls = []

        async def scenario():
            gate = asyncio.Event()

            async def slow_then_fast(descriptor, base=None):
                calls.append(len(calls))
                if len(calls) == 1:
                    await gate.wait()
                    return _series("a", [0], [99.0])
                return DATA["a"]

            store = SeriesStore(loader=slow_then_fast)
            first = store.request(A)
            await asyncio.sleep(0)
            second = store.reload(A)
            gate.set()
            await asyncio.gather(first, second, return_exceptions=True)
            return store, first

        store, first = asyncio.run(scenario())
        assert first.cancelled()
        assert store.get("a") is DATA["a"]
        assert store.version("a") == 1

    def test_reload_keeps_previous_series_visible(self) -> None:
        async def scenario():
            store = SeriesStore(loader=table_loader)
            store.request(A)
            await store.wait()
            store.reload(A)
            assert store.state("a") is LoadState.PENDING
            assert store.get("a") is DATA["a"]
            await store.wait()
            return store

        store = asyncio.run(scenario())
        assert store.version("a") == 2


class TestDomains:
    def test_shared_x_domain_is_union_of_required_series(self) -> None:
        async def scenario():
            store = SeriesStore(loader=table_loader)
            store.request_all([A, B])
            await store.wait()
            return store

        store = asyncio.run(scenario())
        assert tuple(store.x_domain(["a", "b"])) == (0.0, 10.0)
        assert tuple(store.x_domain(["a"])) == (0.0, 4.0)

        y = store.y_domain(["a", "b"])
        assert y.min == pytest.approx(0.1 * 0.95)
        assert y.max == pytest.approx(1.0 * 1.05)

    def test_domains_wait_for_every_key(self) -> None:
        async def scenario():
            store = SeriesStore(loader=table_loader)
            store.request(A)
            await store.wait()
            return store

        store = asyncio.run(scenario())
        assert store.x_domain(["a", "b"]) is None
        assert store.y_domain(["a", "b"]) is None

    def test_out_of_order_completion_sets_both_keys(self) -> None:
        finished = []

        async def scenario():
            gate = asyncio.Event()

            async def a_waits_for_gate(descriptor, base=None):
                if descriptor.key == "a":
                    await gate.wait()
                finished.append(descriptor.key)
                return DATA[descriptor.key]

            store = SeriesStore(loader=a_waits_for_gate)
            task_a, task_b = store.request_all([A, B])
            await task_b
            assert store.state("a") is LoadState.PENDING
            assert store.state("b") is LoadState.LOADED
            assert store.x_domain(["a", "b"]) is None
            gate.set()
            await task_a
            return store

        store = asyncio.run(scenario())
        assert finished == ["b", "a"]
        assert store.state("a") is LoadState.LOADED
        assert store.get("a") is DATA["a"]
        assert store.get("b") is DATA["b"]
        assert tuple(store.x_domain(["a", "b"])) == (0.0, 10.0)
        y = store.y_domain(["a", "b"])
        assert y.min == pytest.approx(0.1 * 0.95)
        assert y.max == pytest.approx(1.0 * 1.05)


def test_loader_loop_runs_store_on_background_thread() -> None:
    loop = LoaderLoop().start()
    try:
        store = SeriesStore(loader=table_loader)

        async def load():
            store.request_all([A, B])
            await store.wait()

        loop.run(load(), timeout=5)
        assert store.ready(["a", "b"])
    finally:
        loop.stop()
