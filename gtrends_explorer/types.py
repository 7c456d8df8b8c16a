from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class Term:
    entity: str  # Google Trends topic id, e.g. "/m/0cycc"
    name: str
    alias: str | None = None


@dataclass(frozen=True)
class Geo:
    iso: str  # "" for worldwide
    name: str


@dataclass(frozen=True)
class Filter:
    terms: tuple[Term, ...]
    geo: Geo

    @property
    def term_names(self) -> list[str]:
        return [t.name for t in self.terms]


@dataclass(frozen=True)
class Point:
    date: str  # YYYY-MM-DD
    value: float


@dataclass(frozen=True)
class TermSeries:
    term: str
    points: tuple[Point, ...] = field(default_factory=tuple)

    @property
    def dates(self) -> list[str]:
        return [p.date for p in self.points]

    @property
    def values(self) -> list[float]:
        return [p.value for p in self.points]


@dataclass(frozen=True)
class TopQuery:
    title: str
    value: float


# One entry per term, in filter order.
RawGraph = list[TermSeries]
TopQueriesEntry = tuple[TopQuery, ...]


@dataclass(frozen=True)
class RunArgs:
    terms: list[str]
    geo: str
    timeframe: str
    engine: str  # "subprocess" | "local" | "fixture"
    engine_cmd: list[str] | None
    fixture: Path | None
    period: int
    csv: Path | None
    merge: bool
    cache_dir: Path
    cache_ttl_hours: float
    refresh: bool
    min_request_interval_seconds: float
    max_retries: int
    request_timeout_seconds: float
    engine_timeout_seconds: float
    include_js: str
    out: Path | None
    verbose: bool
