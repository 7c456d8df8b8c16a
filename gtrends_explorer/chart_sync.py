from __future__ import annotations

from typing import Callable, Protocol, Sequence

from .controller import AcquisitionController
from .types import TermSeries


class ChartCollaborator(Protocol):
    def update_data(self, series_list: Sequence[TermSeries]) -> None: ...

    def hide(self) -> None: ...


class ChartSync:
    """
    Pushes finished series to the charts.

    Nothing is pushed while loading or before seasonal, trend and raw totals all exist;
    after a push the changing flag is cleared so repeated updates are no-ops.
    """

    def __init__(
        self,
        *,
        seasonal_chart: ChartCollaborator,
        secondary_chart: ChartCollaborator,
        log_fn: Callable[[str], None] | None = None,
    ) -> None:
        self.seasonal_chart = seasonal_chart
        self.secondary_chart = secondary_chart
        self.is_merged = False
        self.is_changing = False
        self.pushes = 0
        self._log_fn = log_fn

    @property
    def merge_label(self) -> str:
        return "Split Charts" if self.is_merged else "Merge Charts"

    @property
    def secondary_kind(self) -> str:
        return "total" if self.is_merged else "trend"

    def mark_changing(self) -> None:
        self.is_changing = True

    def toggle_merge(self, controller: AcquisitionController | None = None) -> None:
        self.is_merged = not self.is_merged
        self.secondary_chart.hide()
        self.is_changing = True
        if controller is not None:
            self.update_elements(controller)

    def update_elements(self, controller: AcquisitionController) -> bool:
        """Returns True when the charts were repainted."""
        run = controller.run
        if run is None or not self.is_changing or controller.is_loading:
            return False
        seasonal, trend, total = run.seasonal, run.trend, run.raw
        if not (seasonal and trend and total):
            return False
        # A failed run can hold a partial decomposition; never show it.
        if not run.accumulator.decomposition_complete:
            return False

        self.seasonal_chart.update_data(list(seasonal))
        self.secondary_chart.update_data(list(total) if self.is_merged else list(trend))
        self.is_changing = False
        self.pushes += 1
        if self._log_fn is not None:
            self._log_fn(f"[gtrends] charts updated (run {run.generation}, secondary={self.secondary_kind})")
        return True
