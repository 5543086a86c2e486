"""
Selection controller: which metric choice and render mode a chart shows.
"""

from __future__ import annotations

import logging
from typing import Optional

from charts import ChartSpec
from overlay import InteractionOverlay
from render import RENDER_MODES, STATIC, RenderDriver
from series import Series
from store import LoadState, SeriesStore

logger = logging.getLogger(__name__)


class SelectionController:
    """Holds ``selected_key`` and ``mode`` and re-renders when either changes.

    With ``auto_render`` the controller also re-renders as soon as a store
    update lands for one of the series the current choice needs. Updates for
    other keys are ignored.
    """

    def __init__(
        self,
        chart: ChartSpec,
        store: SeriesStore,
        driver: RenderDriver,
        overlay: Optional[InteractionOverlay] = None,
        auto_render: bool = True,
    ) -> None:
        self.chart = chart
        self.store = store
        self.driver = driver
        self.overlay = overlay
        self.selected_key = chart.initial_choice
        self.mode = chart.default_mode
        self._rendered = None
        driver.layout = chart.layout(self.selected_key)
        driver.playback_options = chart.playback
        self._unsubscribe = []
        if auto_render:
            for descriptor in chart.sources:
                self._unsubscribe.append(store.on_update(descriptor.key, self._on_update))

    def close(self) -> None:
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe = []

    def required_keys(self) -> tuple[str, ...]:
        return self.chart.choice(self.selected_key).metrics

    @property
    def interactive(self) -> bool:
        return self.overlay is not None and self.mode == STATIC and self._rendered is not None

    def select(self, key: str) -> bool:
        if key not in self.chart.choice_keys:
            raise ValueError(f"Unknown metric {key!r} for chart {self.chart.id!r}; expected one of {self.chart.choice_keys}")
        if key == self.selected_key:
            return False
        self.selected_key = key
        return self.refresh()

    def set_mode(self, mode: str) -> bool:
        if mode not in RENDER_MODES:
            raise ValueError(f"Unknown render mode {mode!r}; expected one of {RENDER_MODES}")
        if mode == self.mode:
            return False
        self.mode = mode
        return self.refresh()

    def _signature(self):
        versions = tuple(self.store.version(k) for k in self.required_keys())
        return self.selected_key, self.mode, versions

    def refresh(self, force: bool = False) -> bool:
        """Render the current selection if its data is ready and something changed."""
        series = self.store.series(self.required_keys())
        if series is None:
            return False
        signature = self._signature()
        if not force and signature == self._rendered:
            return False
        self.driver.layout = self.chart.layout(self.selected_key)
        drawn = self.driver.render(series, self.mode, self.chart.styles(self.selected_key))
        if not drawn:
            return False
        self._rendered = signature
        logger.debug("Chart %s: rendered %s (%s)", self.chart.id, self.selected_key, self.mode)
        if self.overlay is not None:
            self.overlay.reset()
        return True

    def _on_update(self, key: str, series: Optional[Series]) -> None:
        if key in self.required_keys():
            self.refresh()

    def hover(self, x_value: float) -> Optional[int]:
        if not self.interactive:
            return None
        return self.overlay.focus_value(x_value)

    def leave(self) -> None:
        if self.interactive:
            self.overlay.on_pointer_leave()

    def zoom_window(self, x0, x1, y0=None, y1=None):
        if not self.interactive:
            return None
        return self.overlay.zoom_to_window(x0, x1, y0, y1)

    def reset_zoom(self):
        if not self.interactive:
            return None
        return self.overlay.reset_zoom()

    def status(self) -> str:
        messages = []
        for key in self.required_keys():
            label = self.chart.source(key).display_label
            state = self.store.state(key)
            if state is LoadState.ERROR:
                messages.append(f"{label}: failed to load ({self.store.error(key)})")
            elif state in (LoadState.PENDING, LoadState.MISSING):
                messages.append(f"Loading {label}…")
            else:
                series = self.store.get(key)
                if series is not None and len(series) == 0:
                    messages.append(f"{label}: no numeric rows")
        if messages:
            return " · ".join(messages)
        found = self.store.series(self.required_keys()) or []
        return " · ".join(f"{self.chart.source(s.key).display_label}: {len(s)} samples" for s in found)
