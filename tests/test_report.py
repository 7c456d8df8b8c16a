from __future__ import annotations

import asyncio

from gtrends_explorer.channel import DecompositionChannel
from gtrends_explorer.charts import PlotlyLineChart, seasonal_y_range
from gtrends_explorer.report import PLOTLY_CDN_TAG, render_explore_html, write_report
from gtrends_explorer.session import ExploreSession
from tests.factories import FailingTrendsClient, InstrumentedEngine, make_client, make_filter, make_series


def _run_session(client) -> ExploreSession:
    async def go() -> ExploreSession:
        s = ExploreSession(trends_client=client, channel=DecompositionChannel(InstrumentedEngine()))
        s.filters.select_terms(make_filter(["Flu", "Cold"]).terms)
        s.filters.confirm()
        await s.controller.wait()
        return s

    return asyncio.run(go())


def test_seasonal_y_range_is_symmetric_with_floor() -> None:
    assert seasonal_y_range([]) == (-20.0, 20.0)
    assert seasonal_y_range([make_series("a", 13, base=-35.0)]) == (-35.0, 35.0)
    assert seasonal_y_range([make_series("a", 13, base=1.0)]) == (-20.0, 20.0)


def test_chart_hidden_renders_nothing() -> None:
    chart = PlotlyLineChart("trend")
    chart.update_data([make_series("Flu")])
    assert "Trend over time" in chart.to_html()
    chart.hide()
    assert chart.to_html() == ""


def test_report_lists_charts_and_top_queries(tmp_path) -> None:
    s = _run_session(make_client(["Flu", "Cold"]))
    html = render_explore_html(s)
    assert "Seasonal per year" in html
    assert "Trend over time" in html
    assert "flu symptoms" in html and "cold treatment" in html
    assert PLOTLY_CDN_TAG in html

    out = write_report(s, out=tmp_path / "r" / "explore.html", include_js="inline")
    text = out.read_text(encoding="utf-8")
    assert PLOTLY_CDN_TAG not in text
    assert "Merge Charts" in text


def test_report_shows_failure() -> None:
    s = _run_session(FailingTrendsClient())
    html = render_explore_html(s)
    assert "Could not load data" in html
    assert "trends unavailable" in html
    assert "Top queries" not in html
