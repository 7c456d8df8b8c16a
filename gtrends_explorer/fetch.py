from __future__ import annotations

import asyncio
import threading
from pathlib import Path
from typing import Callable, Mapping, Protocol, Sequence

import pandas as pd
from pytrends.exceptions import ResponseError
from pytrends.request import TrendReq
from requests import exceptions as requests_exceptions  # type: ignore
from urllib3 import exceptions as urllib3_exceptions  # type: ignore

from .cache import DiskCache, RateLimiter, backoff_retry, cache_key
from .errors import NetworkFailure
from .io import load_multitimeline_csv, raw_graph_from_frame
from .types import Filter, RawGraph, Term, TermSeries, TopQueriesEntry, TopQuery

MAX_TERMS_PER_QUERY = 5
MAX_TOP_QUERIES = 10


class TrendsClient(Protocol):
    async def get_graph(self, filter: Filter) -> RawGraph: ...

    async def get_top_queries(self, filter: Filter, start_index: int) -> list[TopQueriesEntry]: ...


def trends_keyword(term: Term) -> str:
    # Topic ids disambiguate (disease vs. band name); plain catalog ids do not.
    if term.entity.startswith(("/m/", "/g/")):
        return term.entity
    return term.name


class PytrendsClient:
    """
    Google Trends access through pytrends.

    Responses go through the disk cache; live calls are throttled and retried with backoff
    when Trends rate-limits. Blocking pytrends calls run in a worker thread.

    ``TrendReq`` keeps the last payload on the instance; each build_payload -> fetch -> cache
    write sequence holds ``_session_lock``, including calls from superseded runs still in flight.
    """

    def __init__(
        self,
        *,
        timeframe: str = "all",
        gprop: str = "",
        cache_dir: str | Path | None = None,
        cache_ttl_seconds: float = 24 * 3600,
        refresh: bool = False,
        min_request_interval_seconds: float = 15.0,
        max_retries: int = 4,
        log_fn: Callable[[str], None] | None = None,
        pytrends: TrendReq | None = None,
    ) -> None:
        self.timeframe = timeframe
        self.gprop = gprop
        self.cache_ttl_seconds = float(cache_ttl_seconds)
        self.refresh = bool(refresh)
        self.max_retries = int(max_retries)
        self._log_fn = log_fn
        self._cache = DiskCache(
            cache_dir=cache_dir or (Path(".cache") / "gtrends_explorer"),
            namespace="pytrends",
            log_fn=log_fn,
        )
        self._limiter = RateLimiter(min_interval_seconds=min_request_interval_seconds, log_fn=log_fn)
        self._pytrends = pytrends or TrendReq(hl="en-US", tz=300, retries=2, backoff_factor=0.2, timeout=(10, 30))
        self._session_lock = threading.Lock()

    async def get_graph(self, filter: Filter) -> RawGraph:
        return await asyncio.to_thread(self._get_graph_sync, filter)

    async def get_top_queries(self, filter: Filter, start_index: int) -> list[TopQueriesEntry]:
        return await asyncio.to_thread(self._get_top_queries_sync, filter, start_index)

    def _get_graph_sync(self, filter: Filter) -> RawGraph:
        if not filter.terms:
            raise NetworkFailure("no terms to fetch")
        if len(filter.terms) > MAX_TERMS_PER_QUERY:
            raise NetworkFailure(f"Google Trends compares at most {MAX_TERMS_PER_QUERY} terms per request")

        keywords = [trends_keyword(t) for t in filter.terms]
        geo = filter.geo.iso
        k = cache_key("interest_over_time", {"terms": keywords, "geo": geo, "timeframe": self.timeframe, "gprop": self.gprop})

        def compute() -> pd.DataFrame:
            def call() -> pd.DataFrame:
                self._pytrends.build_payload(keywords, cat=0, timeframe=self.timeframe, geo=geo, gprop=self.gprop)
                return self._pytrends.interest_over_time()

            return self._call(call, what="interest over time")

        with self._session_lock:
            df = self._cache.get_or_compute_df(
                key=k,
                ttl_seconds=self.cache_ttl_seconds,
                refresh=self.refresh,
                compute_fn=compute,
                meta={"endpoint": "interest_over_time"},
            )
        if df is None or df.empty:
            raise NetworkFailure("Google Trends returned no data for the given query.")
        if "isPartial" in df.columns:
            df = df.drop(columns=["isPartial"])

        try:
            return raw_graph_from_frame(df, filter.term_names, columns=keywords)
        except ValueError as e:
            raise NetworkFailure(str(e)) from e

    def _get_top_queries_sync(self, filter: Filter, start_index: int) -> list[TopQueriesEntry]:
        if not 0 <= start_index < len(filter.terms):
            raise NetworkFailure(f"top queries index {start_index} out of range for {len(filter.terms)} terms")

        keyword = trends_keyword(filter.terms[start_index])
        geo = filter.geo.iso
        k = cache_key("related_queries_top", {"term": keyword, "geo": geo, "timeframe": self.timeframe, "gprop": self.gprop})

        def compute() -> list[dict]:
            def call() -> dict:
                self._pytrends.build_payload([keyword], cat=0, timeframe=self.timeframe, geo=geo, gprop=self.gprop)
                return self._pytrends.related_queries() or {}

            related = self._call(call, what="related queries")
            return _top_rows(related, keyword)

        with self._session_lock:
            rows = self._cache.get_or_compute_json(
                key=k,
                ttl_seconds=self.cache_ttl_seconds,
                refresh=self.refresh,
                compute_fn=compute,
                meta={"endpoint": "related_queries_top"},
            ) or []
        entry = tuple(TopQuery(title=str(r["query"]), value=float(r["value"])) for r in rows)
        return [entry]

    def _call(self, fn: Callable, *, what: str):
        self._limiter.wait()
        try:
            return backoff_retry(
                fn=fn,
                should_retry=_is_rate_limit_exception,
                max_attempts=self.max_retries,
                log_fn=self._log_fn,
            )
        except (ResponseError, requests_exceptions.RequestException, urllib3_exceptions.HTTPError) as e:
            raise NetworkFailure(
                f"Google Trends {what} request failed (rate limit or backend change). Try again later."
            ) from e


def _top_rows(related: Mapping, keyword: str) -> list[dict]:
    """Pull the "top" table for ``keyword`` out of a pytrends related_queries() mapping."""
    by_term = related.get(keyword) or {}
    top = by_term.get("top") if isinstance(by_term, Mapping) else None
    if not isinstance(top, pd.DataFrame) or top.empty:
        return []
    rows: list[dict] = []
    for _, r in top.head(MAX_TOP_QUERIES).iterrows():
        rows.append({"query": str(r["query"]), "value": float(r["value"])})
    return rows


def _is_rate_limit_exception(e: Exception) -> bool:
    # pytrends may raise ResponseError, and requests/urllib3 may raise retry errors on 429/sorry pages.
    if isinstance(e, ResponseError):
        return True
    if isinstance(e, requests_exceptions.RetryError):
        return True
    if isinstance(e, urllib3_exceptions.MaxRetryError):
        return True
    msg = (str(e) or "").lower()
    return ("429" in msg) or ("too many" in msg) or ("sorry" in msg)


class StaticTrendsClient:
    """
    Offline client serving a pre-loaded graph (e.g. a multiTimeline.csv export).

    Lines are looked up by term name; top queries come from ``top_queries`` (missing terms get
    an empty list).
    """

    def __init__(
        self,
        graph: Sequence[TermSeries],
        top_queries: Mapping[str, Sequence[TopQuery]] | None = None,
        *,
        delay_seconds: float = 0.0,
    ) -> None:
        self._lines = {s.term: s for s in graph}
        self._top_queries = dict(top_queries or {})
        self.delay_seconds = float(delay_seconds)
        self.graph_calls = 0
        self.top_queries_calls: list[int] = []

    @classmethod
    def from_csv(cls, path: str | Path, **kwargs) -> "StaticTrendsClient":
        df = load_multitimeline_csv(path)
        names = [str(c) for c in df.columns]
        return cls(raw_graph_from_frame(df, names), **kwargs)

    async def _pause(self) -> None:
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)

    async def get_graph(self, filter: Filter) -> RawGraph:
        self.graph_calls += 1
        await self._pause()
        missing = [n for n in filter.term_names if n not in self._lines]
        if missing:
            raise NetworkFailure(f"no offline data for: {', '.join(missing)}")
        return [self._lines[n] for n in filter.term_names]

    async def get_top_queries(self, filter: Filter, start_index: int) -> list[TopQueriesEntry]:
        self.top_queries_calls.append(start_index)
        await self._pause()
        if not 0 <= start_index < len(filter.terms):
            raise NetworkFailure(f"top queries index {start_index} out of range")
        name = filter.terms[start_index].name
        return [tuple(self._top_queries.get(name, ()))]
