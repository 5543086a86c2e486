import plotly.graph_objects as go
import plotly.io as pio

GROK_BG = "#05070a"
GROK_PANEL = "rgba(13, 17, 26, 0.7)"
GROK_TEXT = "#e1e4e8"
GROK_MUTED = "#8b949e"
GROK_GRID = "#1f2430"
FONT_FAMILY = "'Space Grotesk', sans-serif"

NEON_CYAN = "#00f0ff"
NEON_MAGENTA = "#ff00aa"
NEON_YELLOW = "#fcee0a"
NEON_BLUE = "#44aaff"
NEON_GREEN = "#0aff84"

GROK_COLORWAY = [
    NEON_CYAN,
    NEON_MAGENTA,
    NEON_YELLOW,
    NEON_BLUE,
    NEON_GREEN,
]

pio.templates["grok"] = go.layout.Template(
    layout=go.Layout(
        font=dict(family=FONT_FAMILY, color=GROK_TEXT),
        paper_bgcolor=GROK_BG,
        plot_bgcolor=GROK_BG,
        colorway=GROK_COLORWAY,
    )
)
pio.templates.default = "grok"

CUSTOM_CSS = """
<style>
@import url('https://fonts.googleapis.com/css2?family=Space+Grotesk:wght@400;500;700&display=swap');

:root {
    --page-bg: #05070a;
    --card-bg: rgba(13, 17, 26, 0.7);
    --card-edge: rgba(255, 255, 255, 0.08);
    --ink: #e1e4e8;
    --ink-dim: #8b949e;
    --accent: #44aaff;
    --error: #ff00aa;
}

body {
    margin: 0;
    background: radial-gradient(circle at 50% 0%, #1a1f2c 0%, var(--page-bg) 100%) fixed;
    color: var(--ink);
    font: 15px 'Space Grotesk', sans-serif;
}

.grok-main { padding: 2rem 2.5rem 3rem; }
.grok-main h2 { font-size: 17px; font-weight: 500; margin: 0 0 0.6rem; }

.grok-title {
    font-size: 26px;
    font-weight: 700;
    letter-spacing: -0.01em;
    margin: 0 0 1.25rem;
}

/* two charts per row, wrapping on narrow screens */
.chart-row { display: flex; flex-wrap: wrap; gap: 1.5rem; margin-bottom: 1.5rem; }
.chart-cell { flex: 1 1 560px; min-width: 0; }

.grok-card {
    background: var(--card-bg);
    border: 1px solid var(--card-edge);
    border-radius: 14px;
    padding: 16px 18px;
    overflow-x: auto;
}

.control-row {
    display: flex;
    flex-wrap: wrap;
    align-items: flex-end;
    gap: 14px;
    margin-bottom: 12px;
}
.control-group { flex: 0 1 280px; }

.widget-label {
    display: block;
    margin-bottom: 6px;
    color: var(--ink-dim);
    font-size: 11px;
    font-weight: 600;
    letter-spacing: 0.08em;
    text-transform: uppercase;
}

.grok-radio-item { margin-right: 14px; color: var(--ink-dim); cursor: pointer; }
.grok-radio input { accent-color: var(--accent); }

.grok-button {
    padding: 7px 16px;
    border: 1px solid var(--card-edge);
    border-radius: 8px;
    background: #141923;
    color: var(--ink);
    font-family: inherit;
    cursor: pointer;
}
.grok-button:hover { border-color: var(--accent); }

.grok-status {
    min-height: 1.2em;
    margin-top: 8px;
    padding-left: 8px;
    border-left: 2px solid var(--accent);
    color: var(--ink-dim);
    font-size: 12.5px;
}

.Select-control, .Select-menu-outer {
    background-color: #0f141e !important;
    border-color: #283041 !important;
}
.Select-value-label, .Select-option { color: var(--ink) !important; }
</style>
"""

INDEX_STRING = """
<!DOCTYPE html>
<html>
    <head>
        {%metas%}
        <title>{%title%}</title>
        {%favicon%}
        {%css%}
        __CUSTOM_CSS__
    </head>
    <body>
        {%app_entry%}
        <footer>
            {%config%}
            {%scripts%}
            {%renderer%}
        </footer>
    </body>
</html>
"""


MARGIN_LEFT = 60
MARGIN_RIGHT = 20
MARGIN_BOTTOM = 50


def _top_margin(showlegend):
    return 80 if showlegend else 50


def plot_area(width, height, showlegend=True):
    """Pixel size of the data area inside the margins apply_grok_layout sets."""
    return width - MARGIN_LEFT - MARGIN_RIGHT, height - _top_margin(showlegend) - MARGIN_BOTTOM


def apply_grok_layout(fig, height=500, width=None, showlegend=True):
    top_margin = _top_margin(showlegend)
    fig.update_layout(
        paper_bgcolor=GROK_BG,
        plot_bgcolor=GROK_BG,
        font=dict(color=GROK_TEXT, family=FONT_FAMILY, size=13),
        margin=dict(l=MARGIN_LEFT, r=MARGIN_RIGHT, t=top_margin, b=MARGIN_BOTTOM),
        height=height,
        width=width,
        showlegend=showlegend,
        legend=dict(
            orientation="h",
            x=0.0,
            xanchor="left",
            y=1.02,
            yanchor="bottom",
            font=dict(color=GROK_TEXT, family=FONT_FAMILY, size=11),
            bgcolor="rgba(0,0,0,0)",
        )
        if showlegend
        else None,
        colorway=GROK_COLORWAY,
    )
    fig.update_xaxes(
        showgrid=True,
        gridcolor=GROK_GRID,
        zeroline=False,
        tickfont=dict(color=GROK_MUTED, family=FONT_FAMILY, size=12),
        title_font=dict(color=GROK_TEXT, family=FONT_FAMILY),
    )
    fig.update_yaxes(
        showgrid=True,
        gridcolor=GROK_GRID,
        zeroline=False,
        tickfont=dict(color=GROK_MUTED, family=FONT_FAMILY, size=12),
        title_font=dict(color=GROK_TEXT, family=FONT_FAMILY),
    )
    return fig


def empty_figure(message, height=500, width=None):
    fig = go.Figure()
    fig.add_annotation(
        text=message,
        xref="paper",
        yref="paper",
        x=0.5,
        y=0.5,
        showarrow=False,
        font=dict(color=GROK_MUTED, size=16, family=FONT_FAMILY),
    )
    fig.update_xaxes(visible=False)
    fig.update_yaxes(visible=False)
    return apply_grok_layout(fig, height=height, width=width, showlegend=False)
