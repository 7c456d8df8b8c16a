from __future__ import annotations

from typing import Callable, Sequence

import pandas as pd
import plotly.graph_objects as go

from .types import TermSeries

_TITLES = {
    "seasonal": "Seasonal per year",
    "trend": "Trend over time",
    "total": "Interest over time",
}


def chart_title(kind: str) -> str:
    return _TITLES.get(kind, "Interest over time")


def seasonal_y_range(series_list: Sequence[TermSeries], floor: float = 20.0) -> tuple[float, float]:
    """Symmetric range around zero, never narrower than +/-floor."""
    values = [p.value for s in series_list for p in s.points]
    if not values:
        return (-floor, floor)
    extreme = max(abs(min(values)), abs(max(values)))
    bound = max(floor, extreme)
    return (-bound, bound)


class PlotlyLineChart:
    """
    One line per term; ``kind`` picks title, axis format and y-range.

    ``kind`` may be a callable for a chart whose content depends on a view mode
    (the secondary chart shows trend or raw totals).
    """

    def __init__(self, kind: str | Callable[[], str]) -> None:
        self._kind = kind
        self.data: list[TermSeries] = []
        self.visible = True
        self.updates = 0

    @property
    def kind(self) -> str:
        return self._kind() if callable(self._kind) else self._kind

    def update_data(self, series_list: Sequence[TermSeries]) -> None:
        self.data = list(series_list)
        self.visible = True
        self.updates += 1

    def hide(self) -> None:
        self.visible = False

    @property
    def title(self) -> str:
        return chart_title(self.kind)

    def figure(self) -> go.Figure:
        fig = go.Figure()
        for s in self.data:
            fig.add_trace(
                go.Scatter(
                    x=pd.to_datetime([p.date for p in s.points]),
                    y=[p.value for p in s.points],
                    mode="lines",
                    name=s.term,
                )
            )
        if self.kind == "seasonal":
            fig.update_xaxes(tickformat="%b")
            fig.update_yaxes(range=list(seasonal_y_range(self.data)), zeroline=True)
        else:
            fig.update_xaxes(tickformat="%Y")
            fig.update_yaxes(range=[0, 100])
        fig.update_layout(title=self.title, template="plotly_white", legend_title_text="Term")
        return fig

    def to_html(self, *, include_plotlyjs: bool | str = False) -> str:
        if not self.visible or not self.data:
            return ""
        return self.figure().to_html(full_html=False, include_plotlyjs=include_plotlyjs)
