from __future__ import annotations

import asyncio

import pytest

from charts import ChartSpec, Choice
from errors import FetchError
from overlay import InteractionOverlay
from render import ANIMATED, STATIC, RenderDriver
from selection import SelectionController
from series import Series
from sources import SourceDescriptor
from store import SeriesStore

from test_render import RecordingSurface

CHART = ChartSpec(
    id="loss",
    title="Loss – {label}",
    x_title="Step",
    y_title="Loss",
    sources=(
        SourceDescriptor("train", "Train Loss", "train.csv", "steelblue"),
        SourceDescriptor("val", "Val Loss", "val.csv", "green"),
        SourceDescriptor("broken", "Broken", "broken.csv"),
    ),
    choices=(
        Choice("both", "Train vs Val", ("train", "val")),
        Choice("train", "Train only", ("train",)),
        Choice("broken", "Broken", ("broken",)),
    ),
    interactive=True,
)

DATA = {
    "train": Series.from_columns("train", [0, 1, 2, 3], [1.0, 0.8, 0.6, 0.5]),
    "val": Series.from_columns("val", [0, 2], [0.9, 0.7]),
}


async def loader(descriptor, base=None):
    await asyncio.sleep(0)
    if descriptor.key not in DATA:
        raise FetchError(descriptor.locator, status=404)
    return DATA[descriptor.key]


def _loaded_store(keys=("train", "val", "broken")) -> SeriesStore:
    async def scenario():
        store = SeriesStore(loader=loader)
        store.request_all([CHART.source(k) for k in keys])
        await store.wait()
        return store

    return asyncio.run(scenario())


def _controller(store, overlay: bool = False, auto_render: bool = False):
    surface = RecordingSurface()
    driver = RenderDriver(surface)
    ov = InteractionOverlay(driver, 720, 370) if overlay else None
    return SelectionController(CHART, store, driver, ov, auto_render=auto_render), surface


def test_refresh_renders_current_choice_once() -> None:
    controller, surface = _controller(_loaded_store())

    assert controller.refresh()
    assert not controller.refresh()

    frames, layout = surface.draws[0]
    assert [f.style.name for f in frames] == ["Train Loss", "Val Loss"]
    assert layout.title == "Loss – Train vs Val"
    assert len(surface.draws) == 1


def test_select_switches_series_and_rerenders() -> None:
    controller, surface = _controller(_loaded_store())
    controller.refresh()

    assert controller.select("train")
    assert not controller.select("train")

    frames, layout = surface.draws[-1]
    assert [f.style.name for f in frames] == ["Train Loss"]
    assert layout.title == "Loss – Train only"
    assert layout.x_range == [0.0, 3.0]


def test_unknown_choice_and_mode_are_rejected() -> None:
    controller, _ = _controller(_loaded_store())
    with pytest.raises(ValueError):
        controller.select("accuracy")
    with pytest.raises(ValueError):
        controller.set_mode("slideshow")


def test_mode_change_replays_as_animation() -> None:
    controller, surface = _controller(_loaded_store())
    controller.refresh()

    assert controller.set_mode(ANIMATED)

    assert len(surface.played) == 1
    assert len(surface.played[0]) == 4


def test_nothing_renders_until_every_required_series_is_loaded() -> None:
    controller, surface = _controller(_loaded_store(keys=("train",)))

    assert not controller.refresh()
    assert surface.draws == []
    assert controller.status() == "Loading Val Loss…"


def test_store_updates_trigger_render_for_required_keys_only() -> None:
    surface_holder = {}

    async def scenario():
        store = SeriesStore(loader=loader)
        controller, surface = _controller(store, auto_render=True)
        surface_holder["surface"] = surface
        store.request(CHART.source("broken"))
        await store.wait()
        assert surface.draws == []
        store.request_all([CHART.source("train"), CHART.source("val")])
        await store.wait()
        controller.close()
        return controller

    asyncio.run(scenario())
    assert len(surface_holder["surface"].draws) == 1


def test_status_reports_failures_and_counts() -> None:
    controller, _ = _controller(_loaded_store())

    assert controller.status() == "Train Loss: 4 samples · Val Loss: 2 samples"
    controller.select("broken")
    assert controller.status() == "Broken: failed to load (Failed to fetch broken.csv: HTTP 404)"


class TestInteraction:
    def test_hover_and_zoom_only_in_static_mode(self) -> None:
        controller, surface = _controller(_loaded_store(), overlay=True)
        assert controller.hover(1.0) is None

        controller.refresh()
        assert controller.interactive
        assert controller.hover(1.0) == 1
        assert surface.focus[-1][0] == 1.0

        controller.set_mode(ANIMATED)
        assert not controller.interactive
        assert controller.hover(1.0) is None
        assert controller.zoom_window(0, 1) is None

        controller.set_mode(STATIC)
        assert controller.zoom_window(1, 2) is not None
        assert controller.reset_zoom() is not None

    def test_rerender_resets_zoom(self) -> None:
        controller, _ = _controller(_loaded_store(), overlay=True)
        controller.refresh()
        controller.zoom_window(1, 2)

        controller.select("train")

        assert tuple(controller.overlay.visible_x) == (0.0, 3.0)
