from __future__ import annotations

from typing import Callable

from .channel import DecompositionChannel
from .chart_sync import ChartSync
from .charts import PlotlyLineChart
from .controller import AcquisitionController
from .fetch import TrendsClient
from .filters import DEFAULT_MAX_TERMS, FilterState
from .types import Filter


class ExploreSession:
    """Wires filter state, controller, chart sync and the two charts of the explore view."""

    def __init__(
        self,
        *,
        trends_client: TrendsClient,
        channel: DecompositionChannel,
        request_timeout_seconds: float | None = 120.0,
        initial: Filter | None = None,
        max_terms: int = DEFAULT_MAX_TERMS,
        log_fn: Callable[[str], None] | None = None,
    ) -> None:
        self.controller = AcquisitionController(
            trends_client=trends_client,
            channel=channel,
            request_timeout_seconds=request_timeout_seconds,
            log_fn=log_fn,
        )
        self.seasonal_chart = PlotlyLineChart("seasonal")
        self.secondary_chart = PlotlyLineChart(lambda: self.chart_sync.secondary_kind)
        self.chart_sync = ChartSync(
            seasonal_chart=self.seasonal_chart,
            secondary_chart=self.secondary_chart,
            log_fn=log_fn,
        )
        self.controller.subscribe(self.chart_sync.update_elements)
        self.filters = FilterState(
            self.controller,
            initial=initial,
            max_terms=max_terms,
            on_confirm=lambda _f: self.chart_sync.mark_changing(),
        )

    def toggle_merge(self) -> None:
        self.chart_sync.toggle_merge(self.controller)

    async def close(self) -> None:
        await self.controller.channel.close()
