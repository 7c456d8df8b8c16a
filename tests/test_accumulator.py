from __future__ import annotations

import pytest

from gtrends_explorer.accumulator import SeriesAccumulator
from gtrends_explorer.types import TopQuery
from tests.factories import make_series


def test_accumulates_in_term_order() -> None:
    acc = SeriesAccumulator(["Flu", "Cold"])
    assert not acc.decomposition_complete
    acc.append_decomposition(make_series("Flu", 13), make_series("Flu", 24))
    assert len(acc.seasonal) == len(acc.trend) == 1
    acc.append_decomposition(make_series("Cold", 13), make_series("Cold", 24))
    assert acc.decomposition_complete
    assert [s.term for s in acc.seasonal] == ["Flu", "Cold"]
    assert [s.term for s in acc.trend] == ["Flu", "Cold"]


def test_rejects_out_of_order_term() -> None:
    acc = SeriesAccumulator(["Flu", "Cold"])
    with pytest.raises(ValueError):
        acc.append_decomposition(make_series("Cold", 13), make_series("Cold", 24))
    assert acc.seasonal == () and acc.trend == ()


def test_rejects_append_after_completion() -> None:
    acc = SeriesAccumulator(["Flu"])
    acc.append_decomposition(make_series("Flu", 13), make_series("Flu", 24))
    with pytest.raises(ValueError):
        acc.append_decomposition(make_series("Flu", 13), make_series("Flu", 24))


def test_top_queries_only_after_decomposition() -> None:
    acc = SeriesAccumulator(["Flu"])
    with pytest.raises(ValueError):
        acc.append_top_queries((TopQuery("flu shot", 100.0),))

    acc.append_decomposition(make_series("Flu", 13), make_series("Flu", 24))
    acc.append_top_queries([TopQuery("flu shot", 100.0)])
    assert acc.top_queries_complete
    assert acc.top_queries == ((TopQuery("flu shot", 100.0),),)
    with pytest.raises(ValueError):
        acc.append_top_queries(())


def test_views_are_copies() -> None:
    acc = SeriesAccumulator(["Flu"])
    view = acc.seasonal
    acc.append_decomposition(make_series("Flu", 13), make_series("Flu", 24))
    assert view == ()
