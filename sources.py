"""
Source loading: fetch delimited metric files and turn them into Series.

A source is described by a SourceDescriptor. Two shapes are supported:

* two-column ``{step-or-time, value}`` files, read through a ColumnSelector
  (positional by default, so renamed run-identifier headers still work);
* multi-device files where an Aggregator averages several value columns
  into one y per row, with x taken from a single time column.

Rows whose selected fields do not coerce to finite numbers are dropped, as
are rows whose x does not advance past the previous kept row.
"""

from __future__ import annotations

import asyncio
import io
import logging
import re
import urllib.error
import urllib.request
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Union
from urllib.parse import urljoin, urlparse

import numpy as np
import pandas as pd

from errors import FetchError, ParseError
from series import Series

logger = logging.getLogger(__name__)

ColumnRef = Union[int, str]
Location = Union[Path, str]

USER_AGENT = "training-metrics-viewer (metric source loader)"


@dataclass(frozen=True)
class ColumnSelector:
    """x and y columns, by 0-based position or by header name."""

    x: ColumnRef = 0
    y: ColumnRef = 1


@dataclass(frozen=True)
class Aggregator:
    """Mean of several value columns per row, x from one time column.

    Value columns are either listed in ``columns`` or picked by searching
    each header for the ``match`` regular expression.
    """

    time: ColumnRef = 0
    columns: tuple[ColumnRef, ...] = ()
    match: Optional[str] = None

    def __post_init__(self):
        if not self.columns and not self.match:
            raise ValueError("Aggregator needs value columns or a match pattern.")
        # lists from JSON config
        object.__setattr__(self, "columns", tuple(self.columns))


@dataclass(frozen=True)
class SourceDescriptor:
    key: str
    display_label: str
    locator: str
    color: str = "steelblue"
    column_selector: Optional[ColumnSelector] = None
    aggregator: Optional[Aggregator] = None

    def __post_init__(self):
        if self.column_selector is not None and self.aggregator is not None:
            raise ValueError(f"Source {self.key!r}: use a column selector or an aggregator, not both.")
        if self.column_selector is None and self.aggregator is None:
            object.__setattr__(self, "column_selector", ColumnSelector())


def _is_url(value) -> bool:
    return urlparse(str(value)).scheme in ("http", "https")


def resolve_locator(locator: str, base: Optional[Location] = None) -> Location:
    if _is_url(locator):
        return locator
    if base is not None and _is_url(base):
        return urljoin(str(base).rstrip("/") + "/", locator.lstrip("/"))
    path = Path(locator)
    if path.is_absolute() or base is None:
        return path
    return Path(base) / locator


def _read_url(url: str) -> str:
    request = urllib.request.Request(
        url,
        headers={
            "User-Agent": USER_AGENT,
            "Accept": "text/csv,text/plain,*/*",
        },
    )
    try:
        with urllib.request.urlopen(request) as response:
            status = getattr(response, "status", 200)
            if not 200 <= status < 300:
                raise FetchError(url, status=status)
            charset = response.headers.get_content_charset() or "utf-8"
            return response.read().decode(charset, errors="replace")
    except urllib.error.HTTPError as exc:
        raise FetchError(url, status=exc.code) from exc
    except (urllib.error.URLError, OSError) as exc:
        raise FetchError(url, reason=str(exc)) from exc


def fetch_text(location: Location) -> str:
    """Blocking read of a local path or an http(s) URL."""
    if _is_url(location):
        return _read_url(str(location))
    path = Path(location)
    if not path.exists():
        raise FetchError(path, reason="file not found")
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise FetchError(path, reason=str(exc)) from exc


def read_table(text: str) -> pd.DataFrame:
    if not text or not text.strip():
        return pd.DataFrame()
    try:
        return pd.read_csv(
            io.StringIO(text),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except pd.errors.EmptyDataError:
        return pd.DataFrame()
    except pd.errors.ParserError as exc:
        raise ParseError(str(exc)) from exc


def _resolve_column(header: Sequence[str], ref: ColumnRef) -> Optional[str]:
    if isinstance(ref, int):
        return header[ref] if 0 <= ref < len(header) else None
    return ref if ref in header else None


def _numeric(frame: pd.DataFrame, column: str) -> np.ndarray:
    values = frame[column].astype(str).str.strip()
    return pd.to_numeric(values, errors="coerce").to_numpy(dtype=float)


def _value_columns(header: Sequence[str], aggregator: Aggregator) -> list[Optional[str]]:
    if aggregator.columns:
        return [_resolve_column(header, ref) for ref in aggregator.columns]
    pattern = re.compile(aggregator.match)
    return [name for name in header if pattern.search(name)]


def strictly_increasing(xs, ys) -> tuple[list[float], list[float]]:
    kept_x: list[float] = []
    kept_y: list[float] = []
    for x, y in zip(xs, ys):
        if kept_x and x <= kept_x[-1]:
            continue
        kept_x.append(float(x))
        kept_y.append(float(y))
    return kept_x, kept_y


def parse_samples(text: str, descriptor: SourceDescriptor) -> Series:
    frame = read_table(text)
    if frame.empty:
        return Series(descriptor.key)
    header = [str(c) for c in frame.columns]

    if descriptor.aggregator is not None:
        agg = descriptor.aggregator
        x_col = _resolve_column(header, agg.time)
        value_cols = _value_columns(header, agg)
        if x_col is None or not value_cols or any(c is None for c in value_cols):
            logger.warning(
                "Source %s: columns %s not found in header %s",
                descriptor.key,
                [agg.time, *(agg.columns or [agg.match])],
                header,
            )
            return Series(descriptor.key)
        x = _numeric(frame, x_col)
        values = np.column_stack([_numeric(frame, c) for c in value_cols])
        finite = np.isfinite(values).all(axis=1)
        with np.errstate(invalid="ignore"):
            y = values.mean(axis=1)
        mask = np.isfinite(x) & finite
    else:
        sel = descriptor.column_selector
        x_col = _resolve_column(header, sel.x)
        y_col = _resolve_column(header, sel.y)
        if x_col is None or y_col is None:
            logger.warning(
                "Source %s: columns %s not found in header %s",
                descriptor.key,
                [sel.x, sel.y],
                header,
            )
            return Series(descriptor.key)
        x = _numeric(frame, x_col)
        y = _numeric(frame, y_col)
        mask = np.isfinite(x) & np.isfinite(y)

    xs, ys = strictly_increasing(x[mask], y[mask])
    dropped = len(frame) - len(xs)
    if dropped:
        logger.debug("Source %s: dropped %d of %d rows", descriptor.key, dropped, len(frame))
    return Series.from_columns(descriptor.key, xs, ys)


async def load_series(descriptor: SourceDescriptor, base: Optional[Location] = None) -> Series:
    location = resolve_locator(descriptor.locator, base)
    logger.info("Fetching %s from %s", descriptor.key, location)
    text = await asyncio.to_thread(fetch_text, location)
    series = parse_samples(text, descriptor)
    logger.info("Loaded %s: %d samples", descriptor.key, len(series))
    return series
