import argparse
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path

import dash
from dash import Dash, Input, Output, State, dcc, html

from charts import DEFAULT_CHARTS, all_sources, load_chart_config
from errors import ConfigError
from overlay import InteractionOverlay
from render import ANIMATED, STATIC, FigureSurface, RenderDriver
from selection import SelectionController
from store import LoadState, LoaderLoop, SeriesStore
from theme import CUSTOM_CSS, INDEX_STRING, empty_figure, plot_area

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "ALCF-UChicago Lighthouse Initiative: Climate AI Models"
POLL_MS = 500

MODE_OPTIONS = [
    {"label": " Static", "value": STATIC},
    {"label": " Animated", "value": ANIMATED},
]

AUTOPLAY_JS = """
function(playback, graphId) {
    if (!playback || !playback.args) {
        return window.dash_clientside.no_update;
    }
    setTimeout(function() {
        var root = document.getElementById(graphId);
        var gd = root && root.querySelector('.js-plotly-plot');
        if (gd && window.Plotly) {
            window.Plotly.animate(gd, null, playback.args);
        }
    }, 50);
    return playback.token;
}
"""


def parse_relayout(relayout):
    """Map Plotly relayoutData to ("reset", None), ("window", (x0, x1, y0, y1)) or None."""
    if not relayout:
        return None
    if relayout.get("xaxis.autorange") or relayout.get("yaxis.autorange"):
        return "reset", None

    def axis_range(axis):
        if f"{axis}.range[0]" in relayout and f"{axis}.range[1]" in relayout:
            return relayout[f"{axis}.range[0]"], relayout[f"{axis}.range[1]"]
        value = relayout.get(f"{axis}.range")
        if isinstance(value, (list, tuple)) and len(value) == 2:
            return value[0], value[1]
        return None, None

    x0, x1 = axis_range("xaxis")
    if x0 is None:
        return None
    y0, y1 = axis_range("yaxis")
    return "window", (float(x0), float(x1), y0 if y0 is None else float(y0), y1 if y1 is None else float(y1))


def hovered_x(hover):
    points = (hover or {}).get("points") or []
    if not points or "x" not in points[0]:
        return None
    return float(points[0]["x"])


class ChartSession:
    """Surface, driver, overlay and controller for one mounted chart."""

    def __init__(self, chart, store):
        self.chart = chart
        self.surface = FigureSurface()
        self.driver = RenderDriver(self.surface, chart.layout(chart.initial_choice), chart.playback)
        self.overlay = None
        if chart.interactive:
            width, height = plot_area(chart.width, chart.height, chart.showlegend)
            self.overlay = InteractionOverlay(self.driver, width, height, chart.tooltip_decimals)
        self.controller = SelectionController(chart, store, self.driver, self.overlay, auto_render=False)
        self._sent_revision = None
        # Dash serves callbacks on worker threads
        self.lock = threading.Lock()

    def placeholder(self):
        message = self.controller.status() or "Loading…"
        return empty_figure(message, height=self.chart.height, width=self.chart.width)

    def update(self, trigger, metric=None, mode=None, hover=None, relayout=None, initial=False):
        """Apply one UI event; returns (figure, status, playback) with dash.no_update where unchanged."""
        ctl = self.controller
        if metric in self.chart.choice_keys:
            ctl.select(metric)
        if mode in (STATIC, ANIMATED):
            ctl.set_mode(mode)

        if trigger == "hoverData":
            x = hovered_x(hover)
            if x is None:
                ctl.leave()
            else:
                ctl.hover(x)
        elif trigger == "relayoutData":
            parsed = parse_relayout(relayout)
            if parsed is not None and parsed[0] == "reset":
                ctl.reset_zoom()
            elif parsed is not None:
                ctl.zoom_window(*parsed[1])
        else:
            ctl.refresh(force=initial)

        status = ctl.status()
        if self.surface.figure is None:
            return self.placeholder(), status, dash.no_update
        if not initial and self.surface.revision == self._sent_revision:
            return dash.no_update, status, dash.no_update
        self._sent_revision = self.surface.revision
        playback = dash.no_update
        if self.surface.animation is not None and ctl.mode == ANIMATED:
            playback = {"token": self.surface.revision, "args": self.surface.animation}
        return self.surface.figure, status, playback


@dataclass
class Dashboard:
    charts: tuple
    store: SeriesStore
    loader: LoaderLoop
    sessions: dict = field(default_factory=dict)
    settled_polls: int = 0

    @property
    def sources(self):
        return all_sources(self.charts)

    def start(self):
        self.loader.call(self.store.request_all, self.sources)

    def reload(self):
        async def reload_all():
            for descriptor in self.sources:
                self.store.reload(descriptor)

        self.loader.run(reload_all())

    def loading_summary(self):
        pending = []
        failed = []
        for descriptor in self.sources:
            state = self.store.state(descriptor.key)
            if state in (LoadState.PENDING, LoadState.MISSING):
                pending.append(descriptor.display_label)
            elif state is LoadState.ERROR:
                failed.append(descriptor.display_label)
        parts = []
        if pending:
            parts.append(f"Loading {len(pending)} source(s): {', '.join(pending)}")
        if failed:
            parts.append(f"Failed: {', '.join(failed)}")
        return pending, " · ".join(parts)


def build_dashboard(charts, base=None, loader=None):
    loader = loader or LoaderLoop().start()
    store = SeriesStore(base=base)
    dashboard = Dashboard(tuple(charts), store, loader)
    for chart in dashboard.charts:
        dashboard.sessions[chart.id] = ChartSession(chart, store)
    return dashboard


def build_chart_card(chart):
    multi = len(chart.choices) > 1
    return html.Div(
        className="grok-card",
        children=[
            html.Div(
                className="control-row",
                children=[
                    html.Div(
                        className="control-group",
                        style={} if multi else {"display": "none"},
                        children=[
                            html.Label("Metric", className="widget-label"),
                            dcc.Dropdown(
                                id=f"{chart.id}-metric",
                                options=[{"label": c.label, "value": c.key} for c in chart.choices],
                                value=chart.initial_choice,
                                clearable=False,
                            ),
                        ],
                    ),
                    html.Div(
                        className="control-group",
                        children=[
                            html.Label("Mode", className="widget-label"),
                            dcc.RadioItems(
                                id=f"{chart.id}-mode",
                                options=MODE_OPTIONS,
                                value=chart.default_mode,
                                className="grok-radio",
                                labelClassName="grok-radio-item",
                                inline=True,
                            ),
                        ],
                    ),
                ],
            ),
            dcc.Graph(
                id=f"{chart.id}-graph",
                figure=empty_figure("Loading…", height=chart.height, width=chart.width),
                config={"displaylogo": False, "scrollZoom": chart.interactive},
                clear_on_unhover=True,
            ),
            dcc.Store(id=f"{chart.id}-playback"),
            dcc.Store(id=f"{chart.id}-playback-started"),
            html.Div(id=f"{chart.id}-status", className="grok-status"),
        ],
    )


def build_layout(charts, title):
    cells = [
        html.Div(
            className="chart-cell",
            children=[html.H2(chart.heading or chart.title), build_chart_card(chart)],
        )
        for chart in charts
    ]
    rows = [html.Div(className="chart-row", children=cells[i:i + 2]) for i in range(0, len(cells), 2)]
    return html.Div(
        className="grok-main",
        children=[
            html.H1(title, className="grok-title"),
            html.Div(
                className="control-row",
                children=[
                    html.Button("Reload data", id="reload-data", className="grok-button"),
                    html.Div(id="load-status", className="grok-status"),
                ],
            ),
            dcc.Interval(id="load-poll", interval=POLL_MS, disabled=False),
            *rows,
        ],
    )


def register_chart_callbacks(app, session):
    cid = session.chart.id

    @app.callback(
        Output(f"{cid}-graph", "figure"),
        Output(f"{cid}-status", "children"),
        Output(f"{cid}-playback", "data"),
        Input(f"{cid}-metric", "value"),
        Input(f"{cid}-mode", "value"),
        Input("load-poll", "n_intervals"),
        Input(f"{cid}-graph", "hoverData"),
        Input(f"{cid}-graph", "relayoutData"),
    )
    def update_chart(metric, mode, _n_intervals, hover, relayout):
        ctx = dash.callback_context
        prop_id = ctx.triggered[0]["prop_id"] if ctx.triggered else "."
        initial = prop_id == "."
        trigger = prop_id.rsplit(".", 1)[-1] if prop_id.startswith(f"{cid}-graph.") else None
        with session.lock:
            return session.update(trigger, metric, mode, hover, relayout, initial=initial)

    app.clientside_callback(
        AUTOPLAY_JS,
        Output(f"{cid}-playback-started", "data"),
        Input(f"{cid}-playback", "data"),
        State(f"{cid}-graph", "id"),
    )


def create_app(charts=DEFAULT_CHARTS, base=None, title=DEFAULT_TITLE, dashboard=None):
    dashboard = dashboard or build_dashboard(charts, base)
    app = Dash(__name__)
    app.title = title
    app.index_string = INDEX_STRING.replace("__CUSTOM_CSS__", CUSTOM_CSS)
    app.layout = build_layout(dashboard.charts, title)

    @app.callback(
        Output("load-poll", "disabled"),
        Output("load-status", "children"),
        Input("load-poll", "n_intervals"),
        Input("reload-data", "n_clicks"),
    )
    def poll_loading(_n_intervals, n_clicks):
        ctx = dash.callback_context
        trigger_id = ctx.triggered[0]["prop_id"].split(".")[0] if ctx.triggered else None
        if trigger_id == "reload-data" and n_clicks:
            logger.info("Reloading all sources")
            dashboard.reload()
        pending, message = dashboard.loading_summary()
        dashboard.settled_polls = 0 if pending or trigger_id == "reload-data" else dashboard.settled_polls + 1
        # charts refresh on the same tick, so stop one tick after everything settled
        return dashboard.settled_polls >= 2, message

    for session in dashboard.sessions.values():
        register_chart_callbacks(app, session)

    dashboard.start()
    return app


def main():
    parser = argparse.ArgumentParser(description="Interactive viewer for training-run metric files.")
    parser.add_argument("--data-dir", default="data", help="Directory metric locators resolve against.")
    parser.add_argument("--base-url", default=None, help="Resolve locators against this URL instead of --data-dir.")
    parser.add_argument("--config", default=None, help="JSON chart configuration replacing the built-in charts.")
    parser.add_argument("--title", default=DEFAULT_TITLE)
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8050)
    parser.add_argument("--debug", action="store_true", help="Enable Dash debug + hot reload.")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # Suppress verbose werkzeug logging (GET / POST requests)
    log = logging.getLogger("werkzeug")
    log.setLevel(logging.ERROR)
    log.propagate = False

    try:
        charts = load_chart_config(args.config) if args.config else DEFAULT_CHARTS
    except ConfigError as exc:
        parser.error(str(exc))

    base = args.base_url or Path(args.data_dir)
    app = create_app(charts, base=base, title=args.title)
    app.server.logger.setLevel(logging.ERROR)

    run_kwargs = dict(
        host=args.host,
        port=args.port,
        debug=args.debug,
        dev_tools_hot_reload=args.debug,
        dev_tools_ui=args.debug,
        dev_tools_silence_routes_logging=True,
        use_reloader=False,
    )
    try:
        app.run(**run_kwargs)
    except TypeError:
        # Dash versions differ in which dev-tools keywords app.run accepts
        for k in (
            "dev_tools_silence_routes_logging",
            "dev_tools_hot_reload",
            "dev_tools_ui",
            "use_reloader",
        ):
            run_kwargs.pop(k, None)
        app.run(**run_kwargs)


if __name__ == "__main__":
    main()
