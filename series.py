"""
Series data model: samples, immutable series and axis domains.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, NamedTuple, Optional, Sequence

Y_PADDING = 0.05


class Sample(NamedTuple):
    x: float
    y: float


class AxisDomain(NamedTuple):
    min: float
    max: float

    @property
    def span(self) -> float:
        return self.max - self.min

    def as_range(self) -> list[float]:
        return [self.min, self.max]

    def contains(self, other: "AxisDomain", tol: float = 1e-9) -> bool:
        return other.min >= self.min - tol and other.max <= self.max + tol


@dataclass(frozen=True)
class Series:
    """Ordered samples for one metric key. x is strictly increasing."""

    key: str
    samples: tuple[Sample, ...] = ()

    @classmethod
    def from_columns(cls, key: str, xs: Iterable[float], ys: Iterable[float]) -> "Series":
        return cls(key, tuple(Sample(float(x), float(y)) for x, y in zip(xs, ys)))

    def __len__(self) -> int:
        return len(self.samples)

    def __iter__(self) -> Iterator[Sample]:
        return iter(self.samples)

    def __getitem__(self, idx: int) -> Sample:
        return self.samples[idx]

    @property
    def xs(self) -> list[float]:
        return [s.x for s in self.samples]

    @property
    def ys(self) -> list[float]:
        return [s.y for s in self.samples]

    def prefix(self, n: int) -> tuple[Sample, ...]:
        return self.samples[: max(0, n)]

    def x_extent(self) -> Optional[AxisDomain]:
        if not self.samples:
            return None
        # x is sorted, so the ends are the extent
        return AxisDomain(self.samples[0].x, self.samples[-1].x)

    def y_extent(self) -> Optional[AxisDomain]:
        if not self.samples:
            return None
        ys = self.ys
        return AxisDomain(min(ys), max(ys))


def union_domain(domains: Iterable[Optional[AxisDomain]]) -> Optional[AxisDomain]:
    present = [d for d in domains if d is not None]
    if not present:
        return None
    return AxisDomain(min(d.min for d in present), max(d.max for d in present))


def pad_domain(domain: Optional[AxisDomain], padding: float = Y_PADDING) -> Optional[AxisDomain]:
    """Expand bounds by a proportional margin of their own magnitude.

    For positive values this is the familiar ``min * 0.95, max * 1.05``.
    """
    if domain is None:
        return None
    return AxisDomain(
        domain.min - abs(domain.min) * padding,
        domain.max + abs(domain.max) * padding,
    )


def x_domain(series: Sequence[Series]) -> Optional[AxisDomain]:
    return union_domain(s.x_extent() for s in series)


def y_domain(series: Sequence[Series], padding: float = Y_PADDING) -> Optional[AxisDomain]:
    return pad_domain(union_domain(s.y_extent() for s in series), padding)
