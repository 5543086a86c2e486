"""
Series store: per-key load state, asyncio-scheduled loads and update callbacks.

All writes happen on one event loop. In the Dash app that loop lives on the
LoaderLoop thread; request handlers only read through ``get``/``state``.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from enum import Enum
from typing import Awaitable, Callable, Iterable, Optional

from errors import MetricsViewerError
from series import Y_PADDING, AxisDomain, Series, pad_domain, union_domain
from sources import Location, SourceDescriptor, load_series

logger = logging.getLogger(__name__)

Loader = Callable[[SourceDescriptor, Optional[Location]], Awaitable[Series]]
UpdateCallback = Callable[[str, Optional[Series]], None]


class LoadState(str, Enum):
    MISSING = "missing"
    PENDING = "pending"
    LOADED = "loaded"
    ERROR = "error"


class SeriesStore:
    def __init__(self, loader: Loader = load_series, base: Optional[Location] = None) -> None:
        self._loader = loader
        self._base = base
        self._entries: dict[str, object] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._generation: dict[str, int] = {}
        self._version: dict[str, int] = {}
        self._errors: dict[str, str] = {}
        self._listeners: dict[str, list[UpdateCallback]] = {}

    def request(self, descriptor: SourceDescriptor) -> Optional[asyncio.Task]:
        """Start loading unless the key is already pending or loaded.

        Must be called from the loop that owns this store.
        """
        if self.state(descriptor.key) in (LoadState.PENDING, LoadState.LOADED):
            return None
        return self._start(descriptor)

    def reload(self, descriptor: SourceDescriptor) -> asyncio.Task:
        task = self._tasks.get(descriptor.key)
        if task is not None and not task.done():
            task.cancel()
        return self._start(descriptor)

    def request_all(self, descriptors: Iterable[SourceDescriptor]) -> list[asyncio.Task]:
        tasks = [self.request(d) for d in descriptors]
        return [t for t in tasks if t is not None]

    def _start(self, descriptor: SourceDescriptor) -> asyncio.Task:
        key = descriptor.key
        generation = self._generation.get(key, 0) + 1
        self._generation[key] = generation
        if not isinstance(self._entries.get(key), Series):
            self._entries[key] = LoadState.PENDING
        self._errors.pop(key, None)
        task = asyncio.get_running_loop().create_task(self._run(descriptor, generation))
        self._tasks[key] = task
        return task

    async def _run(self, descriptor: SourceDescriptor, generation: int) -> None:
        key = descriptor.key
        try:
            series = await self._loader(descriptor, self._base)
        except MetricsViewerError as exc:
            if self._generation.get(key) == generation:
                logger.warning("Source %s failed to load: %s", key, exc)
                self._fail(key, str(exc))
            return
        except Exception as exc:
            if self._generation.get(key) == generation:
                logger.exception("Unexpected error loading %s", key)
                self._fail(key, f"{type(exc).__name__}: {exc}")
            return
        if self._generation.get(key) != generation:
            logger.debug("Ignoring superseded load for %s", key)
            return
        self._entries[key] = series
        self._version[key] = self._version.get(key, 0) + 1
        self._notify(key, series)

    def _fail(self, key: str, message: str) -> None:
        self._entries[key] = LoadState.ERROR
        self._errors[key] = message
        self._notify(key, None)

    def _notify(self, key: str, series: Optional[Series]) -> None:
        for callback in list(self._listeners.get(key, ())):
            callback(key, series)

    def on_update(self, key: str, callback: UpdateCallback) -> Callable[[], None]:
        self._listeners.setdefault(key, []).append(callback)

        def unsubscribe():
            listeners = self._listeners.get(key, [])
            if callback in listeners:
                listeners.remove(callback)

        return unsubscribe

    def get(self, key: str) -> Optional[Series]:
        entry = self._entries.get(key)
        return entry if isinstance(entry, Series) else None

    def state(self, key: str) -> LoadState:
        task = self._tasks.get(key)
        entry = self._entries.get(key)
        if task is not None and not task.done():
            return LoadState.PENDING
        if isinstance(entry, Series):
            return LoadState.LOADED
        if entry is None:
            return LoadState.MISSING
        return entry

    def error(self, key: str) -> Optional[str]:
        return self._errors.get(key)

    def version(self, key: str) -> int:
        return self._version.get(key, 0)

    def ready(self, keys: Iterable[str]) -> bool:
        return all(self.get(k) is not None for k in keys)

    def settled(self, keys: Iterable[str]) -> bool:
        return all(self.state(k) in (LoadState.LOADED, LoadState.ERROR) for k in keys)

    def series(self, keys: Iterable[str]) -> Optional[list[Series]]:
        found = [self.get(k) for k in keys]
        if any(s is None for s in found):
            return None
        return found

    def x_domain(self, keys: Iterable[str]) -> Optional[AxisDomain]:
        found = self.series(keys)
        if found is None:
            return None
        return union_domain(s.x_extent() for s in found)

    def y_domain(self, keys: Iterable[str], padding: float = Y_PADDING) -> Optional[AxisDomain]:
        found = self.series(keys)
        if found is None:
            return None
        return pad_domain(union_domain(s.y_extent() for s in found), padding)

    async def wait(self, keys: Optional[Iterable[str]] = None) -> None:
        wanted = set(keys) if keys is not None else set(self._tasks)
        pending = [t for k, t in self._tasks.items() if k in wanted and not t.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)


class LoaderLoop:
    """Background thread running the event loop that owns a SeriesStore."""

    def __init__(self, name: str = "series-loader") -> None:
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def _run(self):
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    def start(self) -> "LoaderLoop":
        self._thread.start()
        return self

    def call(self, fn, *args) -> None:
        self.loop.call_soon_threadsafe(fn, *args)

    def run(self, coro, timeout: Optional[float] = None):
        return asyncio.run_coroutine_threadsafe(coro, self.loop).result(timeout)

    def stop(self) -> None:
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join(timeout=5)
