from __future__ import annotations

from io import StringIO
from pathlib import Path

import pandas as pd

from .types import Point, RawGraph, TermSeries

_PERIOD_HEADERS = ("Month,", "Week,", "Day,")


def load_multitimeline_csv(path: str | Path) -> pd.DataFrame:
    """
    Loads a Google Trends export CSV (multiTimeline.csv).

    The file often starts with:
      Category: ...
      <blank line>
      Month,<term1>,<term2>,...
    Weekly and daily exports ("Week," / "Day," headers) are accepted too.
    """
    p = Path(path)
    raw = p.read_text(encoding="utf-8", errors="replace").splitlines()

    header_idx = None
    for i, line in enumerate(raw):
        if line.startswith(_PERIOD_HEADERS):
            header_idx = i
            break
    if header_idx is None:
        raise ValueError(f"Could not find a Month/Week/Day header row in {p}")

    df = pd.read_csv(StringIO("\n".join(raw[header_idx:])))
    period_col = df.columns[0]
    df[period_col] = pd.to_datetime(df[period_col], errors="coerce")
    df = df.dropna(subset=[period_col]).set_index(period_col).sort_index()

    # Normalize columns like "Influenza: (United States)" -> "Influenza"
    def clean_col(c: str) -> str:
        c = str(c)
        if ": (" in c:
            return c.split(": (", 1)[0].strip()
        return c.strip()

    df = df.rename(columns={c: clean_col(c) for c in df.columns})
    # Trends writes "<1" for tiny values.
    df = df.replace("<1", 0)
    return df.apply(pd.to_numeric, errors="coerce").astype(float)


def raw_graph_from_frame(df: pd.DataFrame, term_names: list[str], columns: list[str] | None = None) -> RawGraph:
    """
    Convert an interest-over-time frame into one TermSeries per term, in ``term_names`` order.

    ``columns`` gives the frame column for each term when it differs from the term name
    (e.g. topic ids used as pytrends keywords).
    """
    cols = list(columns) if columns is not None else list(term_names)
    if len(cols) != len(term_names):
        raise ValueError("columns and term_names must have the same length")

    if not isinstance(df.index, pd.DatetimeIndex):
        df = df.copy()
        df.index = pd.to_datetime(df.index, errors="coerce")
    df = df[~df.index.isna()].sort_index()
    dates = [d.strftime("%Y-%m-%d") for d in df.index]

    graph: RawGraph = []
    for name, col in zip(term_names, cols):
        if col not in df.columns:
            raise ValueError(f"interest frame has no column for {name!r} ({col!r})")
        values = pd.to_numeric(df[col], errors="coerce").fillna(0.0).astype(float)
        graph.append(
            TermSeries(term=name, points=tuple(Point(date=d, value=float(v)) for d, v in zip(dates, values)))
        )
    return graph
