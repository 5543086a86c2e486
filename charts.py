"""
Chart configuration: which sources feed which chart, labels, colors and playback timing.

The built-in charts mirror the climate-model training dashboard. A JSON file
with the same structure can replace them (see ``load_chart_config``).
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from errors import ConfigError
from render import RENDER_MODES, STATIC, ChartLayout, PlaybackOptions, Style
from sources import Aggregator, ColumnSelector, SourceDescriptor


@dataclass(frozen=True)
class Choice:
    """One entry of a chart's metric selector; ``metrics`` are drawn together."""

    key: str
    label: str
    metrics: tuple[str, ...]
    y_title: Optional[str] = None


@dataclass(frozen=True)
class ChartSpec:
    id: str
    title: str
    x_title: str
    y_title: str
    sources: tuple[SourceDescriptor, ...]
    choices: tuple[Choice, ...]
    width: int = 800
    height: int = 500
    showlegend: bool = True
    interactive: bool = False
    tooltip_decimals: int = 2
    line_width: float = 1.5
    marker_size: int = 3
    playback: PlaybackOptions = field(default_factory=PlaybackOptions)
    default_choice: Optional[str] = None
    default_mode: str = STATIC
    heading: Optional[str] = None

    def __post_init__(self):
        keys = {s.key for s in self.sources}
        for choice in self.choices:
            missing = [m for m in choice.metrics if m not in keys]
            if missing:
                raise ConfigError(f"Chart {self.id!r}: choice {choice.key!r} uses unknown sources {missing}")
        if not self.choices:
            raise ConfigError(f"Chart {self.id!r} has no choices")
        if self.default_choice is not None and self.default_choice not in self.choice_keys:
            raise ConfigError(f"Chart {self.id!r}: default choice {self.default_choice!r} is not a choice")
        if self.default_mode not in RENDER_MODES:
            raise ConfigError(f"Chart {self.id!r}: unknown mode {self.default_mode!r}")

    @property
    def choice_keys(self) -> list[str]:
        return [c.key for c in self.choices]

    @property
    def initial_choice(self) -> str:
        return self.default_choice or self.choices[0].key

    def source(self, key: str) -> SourceDescriptor:
        for descriptor in self.sources:
            if descriptor.key == key:
                return descriptor
        raise KeyError(key)

    def choice(self, key: str) -> Choice:
        for choice in self.choices:
            if choice.key == key:
                return choice
        raise KeyError(key)

    def styles(self, choice_key: str) -> list[Style]:
        return [
            Style(
                color=self.source(m).color,
                name=self.source(m).display_label,
                width=self.line_width,
                marker_size=self.marker_size,
            )
            for m in self.choice(choice_key).metrics
        ]

    def layout(self, choice_key: str) -> ChartLayout:
        choice = self.choice(choice_key)
        return ChartLayout(
            title=self.title.format(label=choice.label),
            x_title=self.x_title,
            y_title=choice.y_title or self.y_title,
            width=self.width,
            height=self.height,
            showlegend=self.showlegend,
        )


def _lwrmse_chart(chart_id, heading, variables):
    sources = []
    for key, label, filename in variables:
        color = "green" if "val" in key else "steelblue"
        sources.append(SourceDescriptor(key, label, filename, color))
    return ChartSpec(
        id=chart_id,
        heading=heading,
        title="LWRMSE – {label}",
        x_title="Step",
        y_title="LWRMSE (Lat. Weight. RMSE)",
        sources=tuple(sources),
        choices=tuple(Choice(s.key, s.display_label, (s.key,)) for s in sources),
        showlegend=False,
        marker_size=4,
        playback=PlaybackOptions(frame_duration_ms=5, transition_ms=100, redraw=True),
    )


GPU_MEM_PERCENT = r"gpu\.\d+\.memoryAllocated$"
GPU_MEM_BYTES = r"gpu\.\d+\.memoryAllocatedBytes$"

DEFAULT_CHARTS = (
    ChartSpec(
        id="loss",
        heading="Training and Validation Loss",
        title="Train vs Validation Loss",
        x_title="Step",
        y_title="Loss",
        sources=(
            SourceDescriptor("train_loss", "Train Loss", "train_loss.csv", "steelblue"),
            SourceDescriptor("val_loss", "Val Loss", "val_loss.csv", "green"),
        ),
        choices=(Choice("loss", "Train vs Validation", ("train_loss", "val_loss")),),
        interactive=True,
        tooltip_decimals=4,
        playback=PlaybackOptions(frame_duration_ms=100, transition_ms=1000, redraw=True),
    ),
    ChartSpec(
        id="gpu",
        heading="GPU System Metrics - Utilization and Memory Allocation",
        title="GPU Metric: {label}",
        x_title="Relative Time (s)",
        y_title="Value",
        sources=(
            SourceDescriptor("util", "GPU Utilization (%)", "gpu_util_percent.csv", "orange"),
            SourceDescriptor(
                "memPercent",
                "Memory Allocation (%)",
                "gpu_mem_alloc_percent.csv",
                "green",
                aggregator=Aggregator(time=0, match=GPU_MEM_PERCENT),
            ),
            SourceDescriptor(
                "memBytes",
                "Memory Allocation (Bytes)",
                "gpu_mem_alloc_bytes.csv",
                "steelblue",
                aggregator=Aggregator(time=0, match=GPU_MEM_BYTES),
            ),
        ),
        choices=(
            Choice("util", "GPU Utilization (%)", ("util",), "GPU Utilization (%)"),
            Choice("memPercent", "Memory Allocation (%)", ("memPercent",), "Memory Allocation (%)"),
            Choice("memBytes", "Memory Allocation (Bytes)", ("memBytes",), "Memory Allocation (Bytes)"),
        ),
        default_choice="memBytes",
        width=900,
        showlegend=False,
        interactive=True,
        marker_size=4,
        playback=PlaybackOptions(frame_duration_ms=1, transition_ms=0, redraw=False),
    ),
    _lwrmse_chart(
        "surface_lwrmse",
        "LWRMSE - Surface Variables (Temp & Wind)",
        [
            ("2m_train_temp", "Train_2m_Temp", "2m_train_temp.csv"),
            ("2m_val_temp", "Val_2m_temp", "2m_val_temp.csv"),
            ("10m_u_train_wind", "Train_10mU_Wind", "10m_u_train_wind.csv"),
            ("10m_u_val_wind", "Val_10m_U_Wind", "10m_u_val_wind.csv"),
        ],
    ),
    _lwrmse_chart(
        "atmos_lwrmse",
        "LWRMSE - Atmospheric Variables (Humidity & Geopotential)",
        [
            ("q700_train_humidity", "Train_q700_Humidity", "q700_train_humidity.csv"),
            ("q700_val_humidity", "Val_q700_Humidity", "q700_val_humidity.csv"),
            ("z500_train_geopotential", "Train_z500_Geopotential", "z500_train_geopotential.csv"),
            ("z500_val_geopotential", "Val_z500_Geopotential", "z500_val_geopotential.csv"),
        ],
    ),
)


def all_sources(charts) -> list[SourceDescriptor]:
    seen = {}
    for chart in charts:
        for descriptor in chart.sources:
            seen.setdefault(descriptor.key, descriptor)
    return list(seen.values())


def _source_from_dict(data: dict) -> SourceDescriptor:
    selector = data.get("column_selector")
    aggregator = data.get("aggregator")
    return SourceDescriptor(
        key=data["key"],
        display_label=data.get("display_label", data["key"]),
        locator=data["locator"],
        color=data.get("color", "steelblue"),
        column_selector=ColumnSelector(**selector) if selector else None,
        aggregator=Aggregator(**aggregator) if aggregator else None,
    )


def _chart_from_dict(data: dict) -> ChartSpec:
    sources = tuple(_source_from_dict(s) for s in data["sources"])
    if "choices" in data:
        choices = tuple(
            Choice(
                key=c["key"],
                label=c.get("label", c["key"]),
                metrics=tuple(c.get("metrics", [c["key"]])),
                y_title=c.get("y_title"),
            )
            for c in data["choices"]
        )
    else:
        choices = tuple(Choice(s.key, s.display_label, (s.key,)) for s in sources)
    options = {
        name: data[name]
        for name in (
            "width",
            "height",
            "showlegend",
            "interactive",
            "tooltip_decimals",
            "line_width",
            "marker_size",
            "default_choice",
            "default_mode",
            "heading",
        )
        if name in data
    }
    if "playback" in data:
        options["playback"] = PlaybackOptions(**data["playback"])
    return ChartSpec(
        id=data["id"],
        title=data.get("title", data["id"]),
        x_title=data.get("x_title", ""),
        y_title=data.get("y_title", ""),
        sources=sources,
        choices=choices,
        **options,
    )


def parse_chart_config(payload: dict) -> tuple[ChartSpec, ...]:
    try:
        charts = tuple(_chart_from_dict(c) for c in payload["charts"])
    except ConfigError:
        raise
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid chart configuration: {exc!r}") from exc
    ids = [c.id for c in charts]
    if len(set(ids)) != len(ids):
        raise ConfigError(f"Duplicate chart ids in {ids}")
    return charts


def load_chart_config(path) -> tuple[ChartSpec, ...]:
    path = Path(path)
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Cannot read chart configuration {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigError(f"{path}: top level must be an object with a 'charts' list")
    return parse_chart_config(payload)
