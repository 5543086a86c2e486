"""
Hover and zoom over an already-rendered chart.

Scales map data space to plot-area pixels (x grows right, y grows down).
Zoom follows d3-zoom conventions: a transform ``(k, tx, ty)`` maps a base
pixel ``p`` to ``k * p + t``; the visible data window is the base scale
evaluated at the inverse-transformed plot edges. Transforms are clamped so
that window never leaves the full-data extent.
"""

from __future__ import annotations

import bisect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from series import Y_PADDING, AxisDomain, Sample

logger = logging.getLogger(__name__)

MIN_ZOOM = 1.0
MAX_ZOOM = 10.0


class LinearScale:
    def __init__(self, domain, range_) -> None:
        self.domain = (float(domain[0]), float(domain[1]))
        self.range = (float(range_[0]), float(range_[1]))

    def __call__(self, value: float) -> float:
        d0, d1 = self.domain
        r0, r1 = self.range
        span = (d1 - d0) or 1.0
        return r0 + (value - d0) / span * (r1 - r0)

    def invert(self, pixel: float) -> float:
        d0, d1 = self.domain
        r0, r1 = self.range
        span = (r1 - r0) or 1.0
        return d0 + (pixel - r0) / span * (d1 - d0)

    def copy(self) -> "LinearScale":
        return LinearScale(self.domain, self.range)

    def as_domain(self) -> AxisDomain:
        return AxisDomain(min(self.domain), max(self.domain))

    def __repr__(self) -> str:
        return f"LinearScale(domain={self.domain}, range={self.range})"


def _clamp_translate(t: float, k: float, extent: Sequence[float]) -> float:
    lo, hi = min(extent), max(extent)
    # keep the inverse-transformed window [(lo - t) / k, (hi - t) / k] inside [lo, hi]
    return min(max(t, hi * (1 - k)), lo * (1 - k))


@dataclass(frozen=True)
class ZoomTransform:
    k: float = 1.0
    tx: float = 0.0
    ty: float = 0.0

    def invert_x(self, pixel: float) -> float:
        return (pixel - self.tx) / self.k

    def invert_y(self, pixel: float) -> float:
        return (pixel - self.ty) / self.k

    def rescale_x(self, scale: LinearScale) -> LinearScale:
        domain = [scale.invert(self.invert_x(r)) for r in scale.range]
        return LinearScale(domain, scale.range)

    def rescale_y(self, scale: LinearScale) -> LinearScale:
        domain = [scale.invert(self.invert_y(r)) for r in scale.range]
        return LinearScale(domain, scale.range)

    def clamped(self, x_extent: Sequence[float], y_extent: Sequence[float]) -> "ZoomTransform":
        k = min(max(self.k, MIN_ZOOM), MAX_ZOOM)
        return ZoomTransform(
            k,
            _clamp_translate(self.tx, k, x_extent),
            _clamp_translate(self.ty, k, y_extent),
        )


IDENTITY = ZoomTransform()


def nearest_index(xs: Sequence[float], value: float) -> int:
    """Left bisection: index of the first x at or after ``value``."""
    return bisect.bisect_left(xs, value)


class HoverState(str, Enum):
    IDLE = "idle"
    HOVERING = "hovering"


class ZoomState(str, Enum):
    IDLE = "idle"
    ZOOMED = "zoomed"


class InteractionOverlay:
    def __init__(self, driver, plot_width: float, plot_height: float, decimals: int = 2) -> None:
        self.driver = driver
        self.plot_width = float(plot_width)
        self.plot_height = float(plot_height)
        self.decimals = decimals
        self.transform = IDENTITY
        self.hover_state = HoverState.IDLE
        self.zoom_state = ZoomState.IDLE
        self.focus: Optional[Sample] = None
        self._base_x: Optional[LinearScale] = None
        self._base_y: Optional[LinearScale] = None
        self.x_scale: Optional[LinearScale] = None
        self.y_scale: Optional[LinearScale] = None

    @property
    def active(self) -> bool:
        return self._base_x is not None

    def reset(self, x_domain: Optional[AxisDomain] = None, y_domain: Optional[AxisDomain] = None) -> None:
        """Re-initialize scales from the driver's full domain; clears zoom and focus."""
        x_domain = x_domain or self.driver.x_domain
        y_domain = y_domain or self.driver.y_domain
        self.transform = IDENTITY
        self.zoom_state = ZoomState.IDLE
        self.hover_state = HoverState.IDLE
        self.focus = None
        if x_domain is None or y_domain is None:
            self._base_x = self._base_y = self.x_scale = self.y_scale = None
            return
        self._base_x = LinearScale(x_domain, (0.0, self.plot_width))
        self._base_y = LinearScale(y_domain, (self.plot_height, 0.0))
        self.x_scale = self._base_x.copy()
        self.y_scale = self._base_y.copy()

    def tooltip_text(self, index: int) -> str:
        series = self.driver.series or []
        styles = self.driver.styles or [None] * len(series)
        d = self.decimals
        x_label = self.driver.layout.x_title or "x"
        primary = series[0][index]
        lines = [f"{x_label}: {primary.x:.{d}f}"]
        for s, style in zip(series, styles):
            i = nearest_index(s.xs, primary.x)
            if i < len(s):
                label = style.name if style is not None and style.name else s.key
                lines.append(f"{label}: {s[i].y:.{d}f}")
        return "<br>".join(lines)

    def on_pointer_move(self, pixel_x: float) -> Optional[int]:
        if self.x_scale is None:
            return None
        return self.focus_value(self.x_scale.invert(pixel_x))

    def focus_value(self, x_value: float) -> Optional[int]:
        series = self.driver.series
        if not series:
            return None
        primary = series[0]
        index = nearest_index(primary.xs, x_value)
        if index < 0 or index >= len(primary):
            return None
        sample = primary[index]
        if self.hover_state is HoverState.HOVERING and sample == self.focus:
            return index
        self.driver.show_focus(sample.x, self.tooltip_text(index), sample.y)
        self.focus = sample
        self.hover_state = HoverState.HOVERING
        return index

    def on_pointer_leave(self) -> None:
        if self.hover_state is HoverState.HOVERING:
            self.driver.clear_focus()
        self.focus = None
        self.hover_state = HoverState.IDLE

    def on_zoom(self, transform: ZoomTransform) -> Optional[ZoomTransform]:
        if self._base_x is None or self._base_y is None:
            return None
        t = transform.clamped(self._base_x.range, self._base_y.range)
        self.transform = t
        self.x_scale = t.rescale_x(self._base_x)
        self.y_scale = t.rescale_y(self._base_y)
        self.zoom_state = ZoomState.IDLE if t == IDENTITY else ZoomState.ZOOMED
        logger.debug("zoom k=%.3f tx=%.1f ty=%.1f", t.k, t.tx, t.ty)
        self.driver.redraw(list(self.x_scale.as_domain()), list(self.y_scale.as_domain()))
        if self.focus is not None:
            # redraw dropped the focus marker
            focused, self.focus = self.focus, None
            self.focus_value(focused.x)
        return t

    def _ys_between(self, x0: float, x1: float) -> list[float]:
        ys: list[float] = []
        for s in self.driver.series or []:
            xs = s.xs
            ys.extend(s.ys[nearest_index(xs, x0):bisect.bisect_right(xs, x1)])
        return ys

    def zoom_to_window(self, x0: float, x1: float, y0: Optional[float] = None, y1: Optional[float] = None):
        """Zoom so the x window and its y band are both in view, centred.

        Without ``y0``/``y1`` the band is the padded y extent of the samples
        inside ``[x0, x1]``. One ``k`` serves both axes, so whichever axis
        needs less magnification decides it and the other shows a wider window.
        """
        if self._base_x is None or self._base_y is None:
            return None
        x0, x1 = sorted((x0, x1))
        x_px = (self._base_x(x0), self._base_x(x1))
        k = self.plot_width / ((x_px[1] - x_px[0]) or 1e-12)
        if y0 is None or y1 is None:
            ys = self._ys_between(x0, x1)
            if ys:
                pad = (max(ys) - min(ys)) * Y_PADDING
                y0, y1 = min(ys) - pad, max(ys) + pad
        if y0 is not None and y1 is not None:
            y_px = sorted((self._base_y(y0), self._base_y(y1)))
            band = y_px[1] - y_px[0]
            if band > 0:
                k = min(k, self.plot_height / band)
            y_centre = (y_px[0] + y_px[1]) / 2
        else:
            y_centre = self.transform.invert_y(self.plot_height / 2)
        k = min(max(k, MIN_ZOOM), MAX_ZOOM)
        x_centre = (x_px[0] + x_px[1]) / 2
        tx = self.plot_width / 2 - k * x_centre
        ty = self.plot_height / 2 - k * y_centre
        return self.on_zoom(ZoomTransform(k, tx, ty))

    def reset_zoom(self):
        return self.on_zoom(IDENTITY)

    @property
    def visible_x(self) -> Optional[AxisDomain]:
        return self.x_scale.as_domain() if self.x_scale is not None else None

    @property
    def visible_y(self) -> Optional[AxisDomain]:
        return self.y_scale.as_domain() if self.y_scale is not None else None
