from __future__ import annotations

from .types import TermSeries, TopQueriesEntry


class SeriesAccumulator:
    """
    Append-only, term-ordered storage for one pipeline run.

    Entry i of ``seasonal``, ``trend`` and ``top_queries`` always belongs to ``term_names[i]``.
    Seasonal and trend grow together, one pair per decomposition reply.
    """

    def __init__(self, term_names: list[str]) -> None:
        self.term_names: tuple[str, ...] = tuple(term_names)
        self._seasonal: list[TermSeries] = []
        self._trend: list[TermSeries] = []
        self._top_queries: list[TopQueriesEntry] = []

    @property
    def term_count(self) -> int:
        return len(self.term_names)

    @property
    def seasonal(self) -> tuple[TermSeries, ...]:
        return tuple(self._seasonal)

    @property
    def trend(self) -> tuple[TermSeries, ...]:
        return tuple(self._trend)

    @property
    def top_queries(self) -> tuple[TopQueriesEntry, ...]:
        return tuple(self._top_queries)

    @property
    def decomposition_complete(self) -> bool:
        return len(self._seasonal) == self.term_count

    @property
    def top_queries_complete(self) -> bool:
        return len(self._top_queries) == self.term_count

    def next_decomposition_index(self) -> int:
        return len(self._seasonal)

    def next_top_queries_index(self) -> int:
        return len(self._top_queries)

    def append_decomposition(self, seasonal: TermSeries, trend: TermSeries) -> None:
        i = len(self._seasonal)
        if i >= self.term_count:
            raise ValueError("decomposition already complete")
        expected = self.term_names[i]
        if seasonal.term != expected or trend.term != expected:
            raise ValueError(
                f"decomposition out of order at index {i}: expected {expected!r}, "
                f"got seasonal={seasonal.term!r} trend={trend.term!r}"
            )
        self._seasonal.append(seasonal)
        self._trend.append(trend)

    def append_top_queries(self, entry: TopQueriesEntry) -> None:
        if not self.decomposition_complete:
            raise ValueError("top queries cannot be added before decomposition completes")
        if len(self._top_queries) >= self.term_count:
            raise ValueError("top queries already complete")
        self._top_queries.append(tuple(entry))
