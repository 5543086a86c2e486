"""
Render driver: turns selected series into frames and hands them to a drawing surface.

Static mode draws every series in full in one call. Animated mode first draws
empty traces, then plays a lock-step prefix-growth sequence in which frame i
holds the first i+1 points of each series. Axis ranges are fixed up front from
the complete series so the window does not move while points accumulate.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Iterable, Iterator, Optional, Protocol, Sequence, Union

import plotly.graph_objects as go

from errors import PreconditionNotMet
from series import Y_PADDING, AxisDomain, Sample, Series, x_domain, y_domain
from theme import GROK_COLORWAY, GROK_MUTED, GROK_PANEL, GROK_TEXT, FONT_FAMILY, apply_grok_layout

logger = logging.getLogger(__name__)

STATIC = "static"
ANIMATED = "animated"
RENDER_MODES = (STATIC, ANIMATED)

FOCUS_NAME = "focus"


@dataclass(frozen=True)
class Style:
    color: str
    name: str = ""
    width: float = 1.5
    marker_size: int = 3


@dataclass(frozen=True)
class RenderFrame:
    points: tuple[Sample, ...]
    style: Style

    @property
    def xs(self) -> list[float]:
        return [p.x for p in self.points]

    @property
    def ys(self) -> list[float]:
        return [p.y for p in self.points]


@dataclass(frozen=True)
class PlaybackOptions:
    frame_duration_ms: int = 100
    transition_ms: int = 0
    redraw: bool = True


@dataclass(frozen=True)
class ChartLayout:
    title: str = ""
    x_title: str = ""
    y_title: str = ""
    width: int = 800
    height: int = 500
    showlegend: bool = True
    x_range: Optional[list[float]] = None
    y_range: Optional[list[float]] = None

    def with_ranges(self, x_range, y_range) -> "ChartLayout":
        return replace(self, x_range=list(x_range), y_range=list(y_range))


def static_frames(series: Sequence[Series], styles: Sequence[Style]) -> list[RenderFrame]:
    return [RenderFrame(s.samples, style) for s, style in zip(series, styles)]


def empty_frames(styles: Sequence[Style]) -> list[RenderFrame]:
    return [RenderFrame((), style) for style in styles]


def animated_frames(series: Sequence[Series], styles: Sequence[Style]) -> Iterator[list[RenderFrame]]:
    """Lazily yield lock-step prefix frames; shorter series stay at full length."""
    total = max((len(s) for s in series), default=0)
    for i in range(total):
        yield [RenderFrame(s.prefix(i + 1), style) for s, style in zip(series, styles)]


class Playback:
    """Ordered, cancellable sequence of animation steps."""

    def __init__(self, steps: Iterable[list[RenderFrame]], total: int) -> None:
        self._steps = iter(steps)
        self.total = total
        self.position = 0
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def done(self) -> bool:
        return self.cancelled or self.position >= self.total

    def __len__(self) -> int:
        return self.total

    def __iter__(self) -> Iterator[list[RenderFrame]]:
        return self

    def __next__(self) -> list[RenderFrame]:
        if self.cancelled:
            raise StopIteration
        step = next(self._steps)
        self.position += 1
        return step


class DrawingSurface(Protocol):
    def draw(self, frames: Sequence[RenderFrame], layout: ChartLayout) -> None: ...

    def play_frames(self, playback: Playback, options: PlaybackOptions) -> None: ...

    def show_focus(self, x: float, text: str, y: Optional[float] = None) -> None: ...

    def clear_focus(self) -> None: ...


def _trace(frame: RenderFrame) -> go.Scatter:
    return go.Scatter(
        x=frame.xs,
        y=frame.ys,
        mode="lines+markers",
        name=frame.style.name,
        line=dict(color=frame.style.color, width=frame.style.width),
        marker=dict(size=frame.style.marker_size),
    )


class FigureSurface:
    """Plotly drawing surface. ``figure`` holds whatever was drawn last."""

    def __init__(self) -> None:
        self.figure: Optional[go.Figure] = None
        self.animation: Optional[dict] = None
        self.revision = 0

    def draw(self, frames, layout):
        fig = go.Figure(data=[_trace(f) for f in frames])
        apply_grok_layout(fig, height=layout.height, width=layout.width, showlegend=layout.showlegend)
        fig.update_layout(
            title=dict(text=layout.title, x=0.0, xanchor="left"),
            hovermode="x",
        )
        fig.update_xaxes(title_text=layout.x_title, range=layout.x_range)
        fig.update_yaxes(title_text=layout.y_title, range=layout.y_range)
        self.figure = fig
        self.animation = None
        self.revision += 1

    def play_frames(self, playback, options):
        if self.figure is None:
            return
        frames = [
            go.Frame(name=f"f{i}", data=[_trace(f) for f in step])
            for i, step in enumerate(playback)
        ]
        if playback.cancelled:
            return
        play_args = dict(
            frame=dict(duration=options.frame_duration_ms, redraw=options.redraw),
            transition=dict(duration=options.transition_ms),
            fromcurrent=True,
            mode="immediate",
        )
        pause_args = dict(
            frame=dict(duration=0, redraw=False),
            transition=dict(duration=0),
            mode="immediate",
        )
        self.figure.frames = frames
        self.figure.update_layout(
            updatemenus=[
                dict(
                    type="buttons",
                    direction="left",
                    showactive=False,
                    x=0.0,
                    xanchor="left",
                    y=-0.12,
                    yanchor="top",
                    bgcolor=GROK_PANEL,
                    font=dict(color=GROK_TEXT, family=FONT_FAMILY, size=11),
                    buttons=[
                        dict(label="Play", method="animate", args=[None, play_args]),
                        dict(label="Pause", method="animate", args=[[None], pause_args]),
                    ],
                )
            ]
        )
        self.animation = play_args
        self.revision += 1

    def show_focus(self, x, text, y=None):
        if self.figure is None:
            return
        self.clear_focus()
        self.figure.add_shape(
            type="line",
            name=FOCUS_NAME,
            x0=x,
            x1=x,
            xref="x",
            y0=0,
            y1=1,
            yref="paper",
            line=dict(color=GROK_MUTED, width=1, dash="dash"),
        )
        self.figure.add_annotation(
            name=FOCUS_NAME,
            x=x,
            y=y if y is not None else 1.0,
            xref="x",
            yref="y" if y is not None else "paper",
            text=text,
            showarrow=y is not None,
            arrowcolor=GROK_MUTED,
            ax=40,
            ay=-30,
            align="left",
            bgcolor=GROK_PANEL,
            bordercolor=GROK_MUTED,
            font=dict(color=GROK_TEXT, family=FONT_FAMILY, size=12),
        )
        self.revision += 1

    def clear_focus(self):
        if self.figure is None:
            return
        layout = self.figure.layout
        layout.shapes = [s for s in layout.shapes if s.name != FOCUS_NAME]
        layout.annotations = [a for a in layout.annotations if a.name != FOCUS_NAME]
        self.revision += 1


def default_styles(series: Sequence[Series]) -> list[Style]:
    return [
        Style(color=GROK_COLORWAY[i % len(GROK_COLORWAY)], name=s.key)
        for i, s in enumerate(series)
    ]


class RenderDriver:
    def __init__(
        self,
        surface: DrawingSurface,
        layout: ChartLayout = ChartLayout(),
        playback: PlaybackOptions = PlaybackOptions(),
        padding: float = Y_PADDING,
    ) -> None:
        self.surface = surface
        self.layout = layout
        self.playback_options = playback
        self.padding = padding
        self.x_domain: Optional[AxisDomain] = None
        self.y_domain: Optional[AxisDomain] = None
        self._playback: Optional[Playback] = None
        self._series: Optional[list[Series]] = None
        self._styles: Optional[list[Style]] = None

    @property
    def series(self) -> Optional[list[Series]]:
        return self._series

    @property
    def styles(self) -> Optional[list[Style]]:
        return self._styles

    @property
    def playback(self) -> Optional[Playback]:
        return self._playback

    def cancel_playback(self) -> None:
        if self._playback is not None and not self._playback.done:
            logger.debug("Cancelling playback at frame %d/%d", self._playback.position, self._playback.total)
        if self._playback is not None:
            self._playback.cancel()
        self._playback = None

    @staticmethod
    def _check_ready(series) -> list[Series]:
        if series is None:
            raise PreconditionNotMet("no series selected")
        items = [series] if isinstance(series, Series) else list(series)
        if not items or any(s is None for s in items):
            raise PreconditionNotMet("series not loaded yet")
        if any(len(s) == 0 for s in items):
            raise PreconditionNotMet("series is empty")
        return items

    def render(
        self,
        series: Union[Series, Sequence[Optional[Series]], None],
        mode: str = STATIC,
        styles: Optional[Sequence[Style]] = None,
        x_range=None,
        y_range=None,
    ) -> bool:
        if mode not in RENDER_MODES:
            raise ValueError(f"Unknown render mode {mode!r}; expected one of {RENDER_MODES}")
        self.cancel_playback()
        try:
            items = self._check_ready(series)
        except PreconditionNotMet as exc:
            logger.debug("Render skipped: %s", exc)
            return False
        styles = list(styles) if styles is not None else default_styles(items)
        if len(styles) != len(items):
            raise ValueError(f"Got {len(styles)} styles for {len(items)} series")

        self._series = items
        self._styles = styles
        self.x_domain = x_domain(items)
        self.y_domain = y_domain(items, self.padding)
        layout = self.layout.with_ranges(
            x_range if x_range is not None else self.x_domain.as_range(),
            y_range if y_range is not None else self.y_domain.as_range(),
        )

        if mode == STATIC:
            self.surface.draw(static_frames(items, styles), layout)
            return True

        self.surface.draw(empty_frames(styles), layout)
        total = max(len(s) for s in items)
        self._playback = Playback(animated_frames(items, styles), total)
        self.surface.play_frames(self._playback, self.playback_options)
        return True

    def redraw(self, x_range, y_range) -> bool:
        """Static draw of the already-rendered series over a new window."""
        if self._series is None:
            return False
        self.cancel_playback()
        layout = self.layout.with_ranges(x_range, y_range)
        self.surface.draw(static_frames(self._series, self._styles), layout)
        return True

    def show_focus(self, x: float, text: str, y: Optional[float] = None) -> None:
        self.surface.show_focus(x, text, y)

    def clear_focus(self) -> None:
        self.surface.clear_focus()
