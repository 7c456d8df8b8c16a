from __future__ import annotations

import asyncio
from types import SimpleNamespace

from gtrends_explorer.accumulator import SeriesAccumulator
from gtrends_explorer.channel import DecompositionChannel
from gtrends_explorer.chart_sync import ChartSync
from gtrends_explorer.controller import PipelineRun
from gtrends_explorer.session import ExploreSession
from tests.factories import InstrumentedEngine, make_client, make_filter, make_series


class FakeChart:
    def __init__(self) -> None:
        self.calls: list[list] = []
        self.hidden = 0

    def update_data(self, series_list) -> None:
        self.calls.append(list(series_list))

    def hide(self) -> None:
        self.hidden += 1


def _finished_run(names: list[str], *, decomposed: int | None = None) -> PipelineRun:
    acc = SeriesAccumulator(names)
    for n in names[: len(names) if decomposed is None else decomposed]:
        acc.append_decomposition(make_series(n, 13), make_series(n, 24))
    return PipelineRun(generation=1, filter=make_filter(names), accumulator=acc, raw=[make_series(n, base=10.0) for n in names])


def _sync() -> tuple[ChartSync, FakeChart, FakeChart]:
    primary, secondary = FakeChart(), FakeChart()
    return ChartSync(seasonal_chart=primary, secondary_chart=secondary), primary, secondary


def test_no_push_unless_changing() -> None:
    sync, primary, _ = _sync()
    ctl = SimpleNamespace(run=_finished_run(["Flu"]), is_loading=False)
    assert not sync.update_elements(ctl)
    assert primary.calls == []


def test_no_push_while_loading_or_incomplete() -> None:
    sync, primary, _ = _sync()
    sync.mark_changing()
    assert not sync.update_elements(SimpleNamespace(run=_finished_run(["Flu"]), is_loading=True))
    assert not sync.update_elements(SimpleNamespace(run=None, is_loading=False))
    # failed mid-way: one of two terms decomposed
    assert not sync.update_elements(SimpleNamespace(run=_finished_run(["Flu", "Cold"], decomposed=1), is_loading=False))
    assert primary.calls == []
    assert sync.is_changing


def test_push_once_then_idempotent() -> None:
    sync, primary, secondary = _sync()
    ctl = SimpleNamespace(run=_finished_run(["Flu", "Cold"]), is_loading=False)
    sync.mark_changing()
    assert sync.update_elements(ctl)
    assert not sync.update_elements(ctl)
    assert primary.calls == [list(ctl.run.seasonal)]
    assert secondary.calls == [list(ctl.run.trend)]
    assert not sync.is_changing
    assert sync.pushes == 1


def test_toggle_merge_switches_secondary_only() -> None:
    sync, primary, secondary = _sync()
    run = _finished_run(["Flu"])
    ctl = SimpleNamespace(run=run, is_loading=False)
    seasonal_before, trend_before = run.seasonal, run.trend

    sync.toggle_merge(ctl)
    assert sync.is_merged and sync.merge_label == "Split Charts"
    assert secondary.hidden == 1
    assert sync.secondary_kind == "total"
    assert secondary.calls[-1] == run.raw

    sync.toggle_merge(ctl)
    sync.toggle_merge(ctl)
    assert secondary.hidden == 3
    assert secondary.calls == [run.raw, list(run.trend), run.raw]
    assert run.seasonal == seasonal_before and run.trend == trend_before
    assert len(primary.calls) == 3


def test_session_pushes_after_decomposition_completes() -> None:
    async def go() -> ExploreSession:
        s = ExploreSession(
            trends_client=make_client(["Flu", "Cold"]),
            channel=DecompositionChannel(InstrumentedEngine()),
        )
        s.filters.select_terms(make_filter(["Flu", "Cold"]).terms)
        s.filters.confirm()
        await s.controller.wait()
        return s

    s = asyncio.run(go())
    assert s.chart_sync.pushes == 1
    assert [x.term for x in s.seasonal_chart.data] == ["Flu", "Cold"]
    assert s.secondary_chart.kind == "trend"
    assert len(s.secondary_chart.data[0].points) == 24

    s.toggle_merge()
    assert s.chart_sync.pushes == 2
    assert s.secondary_chart.kind == "total"
    assert s.secondary_chart.visible
