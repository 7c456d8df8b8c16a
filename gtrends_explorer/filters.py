from __future__ import annotations

import asyncio
from typing import Callable, Iterable

from .catalog import DEFAULT_GEO, geo_by_iso, term_by_entity
from .controller import AcquisitionController
from .types import Filter, Geo, Term

DEFAULT_MAX_TERMS = 3


class FilterState:
    """
    Pending vs. confirmed term/geo selection.

    Edits are staged and only reach the pipeline through confirm(); cancel() throws them away.
    """

    def __init__(
        self,
        controller: AcquisitionController,
        *,
        initial: Filter | None = None,
        max_terms: int = DEFAULT_MAX_TERMS,
        on_confirm: Callable[[Filter], None] | None = None,
    ) -> None:
        self.controller = controller
        self.max_terms = int(max_terms)
        self._on_confirm = on_confirm
        terms = tuple(initial.terms) if initial else ()
        geo = initial.geo if initial else DEFAULT_GEO
        self._confirmed = Filter(terms=terms, geo=geo)
        self._pending_terms: tuple[Term, ...] = terms
        self._pending_geo: Geo = geo
        self.affordance_visible = False

    @property
    def confirmed(self) -> Filter:
        return self._confirmed

    @property
    def pending(self) -> Filter:
        return Filter(terms=self._pending_terms, geo=self._pending_geo)

    def select_terms(self, terms: Iterable[Term]) -> None:
        picked: list[Term] = []
        for t in terms:
            if t not in picked:
                picked.append(t)
        if len(picked) > self.max_terms:
            raise ValueError(f"select at most {self.max_terms} terms (got {len(picked)})")
        self._pending_terms = tuple(picked)
        self.affordance_visible = True

    def select_terms_by_entity(self, entities: Iterable[str]) -> None:
        self.select_terms(term_by_entity(e) for e in entities)

    def select_geo(self, geo: Geo) -> None:
        self._pending_geo = geo
        self.affordance_visible = True

    def select_geo_by_iso(self, iso: str) -> None:
        self.select_geo(geo_by_iso(iso))

    def cancel(self) -> None:
        self._pending_terms = self._confirmed.terms
        self._pending_geo = self._confirmed.geo
        self.affordance_visible = False

    def confirm(self) -> asyncio.Task:
        pending = self.pending
        if not pending.terms:
            raise ValueError("select at least one term before confirming")
        self._confirmed = pending
        self.affordance_visible = False
        return self._start(pending)

    def load_curated(self, filter: Filter) -> asyncio.Task:
        """Jump straight to a prepared selection (pending and confirmed at once)."""
        if not filter.terms:
            raise ValueError("curated filter has no terms")
        self._confirmed = filter
        self._pending_terms = filter.terms
        self._pending_geo = filter.geo
        self.affordance_visible = False
        return self._start(filter)

    def _start(self, filter: Filter) -> asyncio.Task:
        if self._on_confirm is not None:
            self._on_confirm(filter)
        return self.controller.confirm(filter)
