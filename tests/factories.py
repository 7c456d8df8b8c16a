"""Shared fakes and builders for pipeline tests."""

from __future__ import annotations

import asyncio
from typing import Sequence

import pandas as pd

from gtrends_explorer.errors import NetworkFailure, ProtocolFailure
from gtrends_explorer.fetch import StaticTrendsClient
from gtrends_explorer.types import Filter, Geo, Point, RawGraph, TermSeries, Term, TopQuery


def monthly_dates(n: int, start: str = "2015-01-01") -> list[str]:
    return [d.strftime("%Y-%m-%d") for d in pd.date_range(start, periods=n, freq="MS")]


def make_series(term: str, n: int = 24, base: float = 40.0) -> TermSeries:
    dates = monthly_dates(n)
    return TermSeries(term=term, points=tuple(Point(date=d, value=base + (i % 12)) for i, d in enumerate(dates)))


def make_filter(names: Sequence[str], iso: str = "US") -> Filter:
    return Filter(terms=tuple(Term(entity=n.lower(), name=n) for n in names), geo=Geo(iso=iso, name=iso))


def make_reply(n_trend: int, seasonal: Sequence[float] | None = None) -> str:
    s = list(seasonal) if seasonal is not None else [float(i) for i in range(1, 14)]
    return "seasonal:" + ",".join(str(v) for v in s) + "trend:" + ",".join(str(40 + i) for i in range(n_trend))


def make_client(names: Sequence[str], n: int = 24, *, delay_seconds: float = 0.0) -> StaticTrendsClient:
    graph: RawGraph = [make_series(name, n=n) for name in names]
    top = {name: [TopQuery(title=f"{name.lower()} symptoms", value=100.0), TopQuery(title=f"{name.lower()} treatment", value=60.0)] for name in names}
    return StaticTrendsClient(graph, top, delay_seconds=delay_seconds)


class InstrumentedEngine:
    """
    Engine fake that answers every request with a well-formed reply sized to the payload.

    Tracks how many requests are on the wire at once and logs events to ``events``.
    """

    def __init__(self, *, delay_seconds: float = 0.0, events: list[tuple[str, str]] | None = None) -> None:
        self.delay_seconds = delay_seconds
        self.in_flight = 0
        self.max_in_flight = 0
        self.payloads: list[str] = []
        self.resets = 0
        self.events = events if events is not None else []
        self._pending: str | None = None

    async def send(self, payload: str) -> None:
        if self._pending is not None:
            raise ProtocolFailure("overlapping request")
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        self.payloads.append(payload)
        self.events.append(("decompose", payload.split(";", 1)[0]))
        self._pending = make_reply(len(payload.split(";")))

    async def receive(self) -> str:
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        reply, self._pending = self._pending, None
        self.in_flight -= 1
        return reply or ""

    async def reset(self) -> None:
        self.resets += 1
        if self._pending is not None:
            self._pending = None
            self.in_flight -= 1

    async def close(self) -> None:
        self._pending = None


class RecordingTrendsClient(StaticTrendsClient):
    """StaticTrendsClient that also records overlap of top-queries calls."""

    def __init__(self, *args, events: list[tuple[str, str]] | None = None, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.events = events if events is not None else []
        self.in_flight = 0
        self.max_in_flight = 0

    async def get_top_queries(self, filter, start_index):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        self.events.append(("top_queries", str(start_index)))
        try:
            return await super().get_top_queries(filter, start_index)
        finally:
            self.in_flight -= 1


class FailingTrendsClient:
    def __init__(self, *, delay_seconds: float = 0.0) -> None:
        self.delay_seconds = delay_seconds

    async def get_graph(self, filter):
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        raise NetworkFailure("trends unavailable")

    async def get_top_queries(self, filter, start_index):
        raise NetworkFailure("trends unavailable")
