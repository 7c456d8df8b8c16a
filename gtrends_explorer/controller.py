from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, TypeVar

from .accumulator import SeriesAccumulator
from .channel import DecompositionChannel, decode_decomposition
from .errors import GTrendsExplorerError, NetworkFailure, ProtocolFailure, StaleResponse
from .fetch import TrendsClient
from .types import Filter, RawGraph, TermSeries, TopQueriesEntry

T = TypeVar("T")


class PipelineState(str, Enum):
    IDLE = "idle"
    FETCHING_RAW = "fetching_raw"
    DECOMPOSING = "decomposing"
    FETCHING_TOP_QUERIES = "fetching_top_queries"
    READY = "ready"
    FAILED = "failed"


@dataclass
class PipelineRun:
    generation: int
    filter: Filter
    accumulator: SeriesAccumulator
    raw: RawGraph = field(default_factory=list)
    state: PipelineState = PipelineState.FETCHING_RAW
    error: GTrendsExplorerError | None = None

    @property
    def seasonal(self) -> tuple[TermSeries, ...]:
        return self.accumulator.seasonal

    @property
    def trend(self) -> tuple[TermSeries, ...]:
        return self.accumulator.trend

    @property
    def top_queries(self) -> tuple[TopQueriesEntry, ...]:
        return self.accumulator.top_queries

    @property
    def step(self) -> int:
        """Index i of DECOMPOSING(i) / FETCHING_TOP_QUERIES(i)."""
        if self.state == PipelineState.DECOMPOSING:
            return self.accumulator.next_decomposition_index()
        if self.state == PipelineState.FETCHING_TOP_QUERIES:
            return self.accumulator.next_top_queries_index()
        return 0


Listener = Callable[["AcquisitionController"], None]


class AcquisitionController:
    """
    Drives one pipeline run per confirmed filter:
    raw fetch -> sequential decomposition -> sequential top queries -> ready.

    Every confirm() allocates a new generation. A run whose generation is no longer
    current stops at its next resume point and its late replies are dropped.
    """

    def __init__(
        self,
        *,
        trends_client: TrendsClient,
        channel: DecompositionChannel,
        request_timeout_seconds: float | None = 120.0,
        log_fn: Callable[[str], None] | None = None,
    ) -> None:
        self.trends_client = trends_client
        self.channel = channel
        self.request_timeout_seconds = request_timeout_seconds
        self._log_fn = log_fn
        self._generation = 0
        self._run: PipelineRun | None = None
        self._task: asyncio.Task | None = None
        self._top_queries_lock = asyncio.Lock()
        self._listeners: list[Listener] = []
        self.discarded_responses = 0
        self.task_errors: list[BaseException] = []

    def _log(self, msg: str) -> None:
        if self._log_fn is not None:
            self._log_fn(msg)

    # --- read side ---

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def run(self) -> PipelineRun | None:
        return self._run

    @property
    def state(self) -> PipelineState:
        return self._run.state if self._run is not None else PipelineState.IDLE

    @property
    def is_loading(self) -> bool:
        return self.state in (PipelineState.FETCHING_RAW, PipelineState.DECOMPOSING)

    @property
    def error(self) -> GTrendsExplorerError | None:
        return self._run.error if self._run is not None else None

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _notify(self) -> None:
        for fn in list(self._listeners):
            fn(self)

    # --- write side ---

    def confirm(self, filter: Filter) -> asyncio.Task:
        """Start a new generation for ``filter``. Must be called from a running event loop."""
        loop = asyncio.get_running_loop()
        self._generation += 1
        run = PipelineRun(
            generation=self._generation,
            filter=filter,
            accumulator=SeriesAccumulator(filter.term_names),
        )
        self._run = run
        self._log(f"[gtrends] run {run.generation}: fetching raw graph for {filter.term_names} geo={filter.geo.iso or 'world'}")
        self._notify()
        self._task = loop.create_task(self._drive(run), name=f"gtrends-run-{run.generation}")
        self._task.add_done_callback(self._collect_task)
        return self._task

    async def wait(self) -> PipelineRun | None:
        """Wait for the current run to finish (ready, failed or superseded)."""
        while self._task is not None:
            task = self._task
            await task
            if task is self._task:
                break
        return self._run

    def _collect_task(self, task: asyncio.Task) -> None:
        # Superseded tasks are never awaited; retrieve their outcome here.
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.task_errors.append(exc)
            self._log(f"[gtrends] {task.get_name()} ended with {exc!r}")

    def _ensure_current(self, run: PipelineRun) -> None:
        if run.generation != self._generation:
            raise StaleResponse(run.generation, self._generation)

    def _transition(self, run: PipelineRun, state: PipelineState) -> None:
        run.state = state
        self._log(f"[gtrends] run {run.generation}: {state.value}")
        self._notify()

    async def _fetch(self, what: str, aw: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(aw, timeout=self.request_timeout_seconds)
        except asyncio.TimeoutError as e:
            raise NetworkFailure(f"{what} timed out after {self.request_timeout_seconds}s") from e
        except GTrendsExplorerError:
            raise
        except Exception as e:
            raise NetworkFailure(f"{what} failed: {e}") from e

    async def _drive(self, run: PipelineRun) -> None:
        try:
            raw = await self._fetch("raw graph fetch", self.trends_client.get_graph(run.filter))
            self._ensure_current(run)
            if len(raw) != run.accumulator.term_count:
                raise NetworkFailure(f"expected {run.accumulator.term_count} lines, got {len(raw)}")
            got = [s.term for s in raw]
            if got != list(run.accumulator.term_names):
                raise NetworkFailure(f"lines do not match the filter: expected {list(run.accumulator.term_names)}, got {got}")
            run.raw = list(raw)
            self._transition(run, PipelineState.DECOMPOSING)

            while not run.accumulator.decomposition_complete:
                await self._decompose_next(run)

            self._transition(run, PipelineState.FETCHING_TOP_QUERIES)

            while not run.accumulator.top_queries_complete:
                await self._top_queries_next(run)

            self._transition(run, PipelineState.READY)
        except StaleResponse as e:
            self.discarded_responses += 1
            self._log(f"[gtrends] discarded stale response: {e}")
        except (NetworkFailure, ProtocolFailure) as e:
            if run.generation != self._generation:
                self.discarded_responses += 1
                self._log(f"[gtrends] run {run.generation}: ignoring failure of superseded run ({e})")
                return
            run.error = e
            self._log(f"[gtrends] run {run.generation}: failed: {e}")
            self._transition(run, PipelineState.FAILED)
        except Exception as e:
            # Errors outside the taxonomy still end the current run.
            if run.generation != self._generation:
                self.discarded_responses += 1
                self._log(f"[gtrends] run {run.generation}: ignoring error of superseded run ({e!r})")
                return
            failure = GTrendsExplorerError(f"unexpected {type(e).__name__}: {e}")
            failure.__cause__ = e
            run.error = failure
            self._log(f"[gtrends] run {run.generation}: failed: {failure}")
            self._transition(run, PipelineState.FAILED)

    async def _decompose_next(self, run: PipelineRun) -> None:
        self._ensure_current(run)
        i = run.accumulator.next_decomposition_index()
        raw = run.raw[i]
        reply = await self.channel.request_decomposition(raw, guard=lambda: self._ensure_current(run))
        self._ensure_current(run)
        seasonal, trend = decode_decomposition(reply, raw)
        run.accumulator.append_decomposition(seasonal, trend)
        self._log(f"[gtrends] run {run.generation}: decomposed {raw.term!r} ({i + 1}/{run.accumulator.term_count})")
        self._notify()

    async def _top_queries_next(self, run: PipelineRun) -> None:
        async with self._top_queries_lock:
            self._ensure_current(run)
            i = run.accumulator.next_top_queries_index()
            increment = await self._fetch("top queries fetch", self.trends_client.get_top_queries(run.filter, i))
            self._ensure_current(run)
        if not increment:
            raise NetworkFailure(f"top queries fetch returned nothing for index {i}")
        for entry in increment:
            if run.accumulator.top_queries_complete:
                break
            run.accumulator.append_top_queries(entry)
        self._notify()
