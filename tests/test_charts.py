from __future__ import annotations

import json
from pathlib import Path

import pytest

from charts import DEFAULT_CHARTS, ChartSpec, Choice, all_sources, load_chart_config, parse_chart_config
from errors import ConfigError
from render import ANIMATED
from sources import Aggregator, ColumnSelector, SourceDescriptor

CONFIG = {
    "charts": [
        {
            "id": "loss",
            "title": "Loss – {label}",
            "x_title": "Step",
            "y_title": "Loss",
            "interactive": True,
            "tooltip_decimals": 4,
            "default_mode": "animated",
            "playback": {"frame_duration_ms": 20, "transition_ms": 0, "redraw": False},
            "sources": [
                {"key": "train", "display_label": "Train", "locator": "train.csv"},
                {
                    "key": "mem",
                    "locator": "mem.csv",
                    "color": "orange",
                    "aggregator": {"time": 0, "columns": [1, 2, 3, 4]},
                },
                {
                    "key": "named",
                    "locator": "named.csv",
                    "column_selector": {"x": "Step", "y": "Loss"},
                },
            ],
            "choices": [
                {"key": "train", "label": "Train", "metrics": ["train"]},
                {"key": "mem", "label": "Memory", "metrics": ["mem"], "y_title": "Bytes"},
            ],
        },
        {
            "id": "plain",
            "sources": [{"key": "a", "locator": "a.csv"}, {"key": "b", "locator": "b.csv"}],
        },
    ]
}


class TestDefaultCharts:
    def test_four_dashboard_charts(self) -> None:
        assert [c.id for c in DEFAULT_CHARTS] == ["loss", "gpu", "surface_lwrmse", "atmos_lwrmse"]

    def test_loss_chart_pairs_train_and_val(self) -> None:
        loss = DEFAULT_CHARTS[0]
        assert loss.choice(loss.initial_choice).metrics == ("train_loss", "val_loss")
        assert loss.interactive
        assert loss.tooltip_decimals == 4

    def test_gpu_memory_sources_average_devices(self) -> None:
        gpu = DEFAULT_CHARTS[1]
        assert gpu.initial_choice == "memBytes"
        assert gpu.source("memBytes").aggregator is not None
        assert gpu.source("util").column_selector == ColumnSelector()
        assert gpu.playback.redraw is False

    def test_source_keys_are_unique_across_charts(self) -> None:
        keys = [s.key for s in all_sources(DEFAULT_CHARTS)]
        assert len(keys) == len(set(keys)) == 13

    def test_layout_formats_title_and_uses_choice_axis_title(self) -> None:
        gpu = DEFAULT_CHARTS[1]
        layout = gpu.layout("util")
        assert layout.title == "GPU Metric: GPU Utilization (%)"
        assert layout.y_title == "GPU Utilization (%)"
        assert layout.width == 900

    def test_styles_follow_source_colors(self) -> None:
        loss = DEFAULT_CHARTS[0]
        styles = loss.styles("loss")
        assert [(s.color, s.name) for s in styles] == [("steelblue", "Train Loss"), ("green", "Val Loss")]


class TestChartValidation:
    def test_choice_with_unknown_source(self) -> None:
        with pytest.raises(ConfigError):
            ChartSpec(
                id="x",
                title="x",
                x_title="",
                y_title="",
                sources=(SourceDescriptor("a", "A", "a.csv"),),
                choices=(Choice("b", "B", ("b",)),),
            )

    def test_bad_default_choice(self) -> None:
        with pytest.raises(ConfigError):
            ChartSpec(
                id="x",
                title="x",
                x_title="",
                y_title="",
                sources=(SourceDescriptor("a", "A", "a.csv"),),
                choices=(Choice("a", "A", ("a",)),),
                default_choice="zzz",
            )


class TestConfigFile:
    def test_parse_full_document(self) -> None:
        loss, plain = parse_chart_config(CONFIG)

        assert loss.default_mode == ANIMATED
        assert loss.playback.frame_duration_ms == 20
        assert loss.source("mem").aggregator == Aggregator(time=0, columns=(1, 2, 3, 4))
        assert loss.source("named").column_selector == ColumnSelector(x="Step", y="Loss")
        assert loss.source("named").display_label == "named"
        assert loss.layout("mem").y_title == "Bytes"

        # no explicit choices: one per source
        assert plain.choice_keys == ["a", "b"]
        assert plain.title == "plain"

    def test_load_from_file(self, tmp_path: Path) -> None:
        path = tmp_path / "charts.json"
        path.write_text(json.dumps(CONFIG), encoding="utf-8")

        charts = load_chart_config(path)

        assert [c.id for c in charts] == ["loss", "plain"]

    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"charts": [{"id": "x"}]},
            {"charts": [{"id": "x", "sources": [{"key": "a"}]}]},
            {"charts": [{"id": "x", "sources": [{"key": "a", "locator": "a.csv", "aggregator": {"time": 0}}]}]},
            {"charts": [{"id": "x", "sources": [{"key": "a", "locator": "a.csv"}], "playback": {"fps": 3}}]},
        ],
    )
    def test_malformed_documents(self, payload) -> None:
        with pytest.raises(ConfigError):
            parse_chart_config(payload)

    def test_duplicate_ids(self) -> None:
        doc = {"charts": [CONFIG["charts"][1], CONFIG["charts"][1]]}
        with pytest.raises(ConfigError):
            parse_chart_config(doc)

    def test_unreadable_file(self, tmp_path: Path) -> None:
        bad = tmp_path / "charts.json"
        bad.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_chart_config(bad)
        with pytest.raises(ConfigError):
            load_chart_config(tmp_path / "missing.json")

    def test_top_level_must_be_object(self, tmp_path: Path) -> None:
        path = tmp_path / "charts.json"
        path.write_text("[]", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_chart_config(path)
