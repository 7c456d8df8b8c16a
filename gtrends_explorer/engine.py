"""
Seasonal/trend decomposition engine.

Speaks the explorer's line protocol: one request line of ``date,value`` pairs joined
by ``;`` in, one reply line out:

    seasonal:<13 comma-separated numbers>trend:<N comma-separated numbers>

Malformed requests get ``error:<message>``. Run ``python -m gtrends_explorer.engine``
to serve the protocol over stdin/stdout.
"""

from __future__ import annotations

import argparse
import sys
from typing import TextIO

import numpy as np
import pandas as pd
from statsmodels.tsa.seasonal import STL, seasonal_decompose

SEASONAL_POINTS = 13


def parse_payload(payload: str) -> pd.Series:
    pairs = [p for p in (payload or "").strip().split(";") if p.strip()]
    if not pairs:
        raise ValueError("empty request")

    dates: list[str] = []
    values: list[float] = []
    for pair in pairs:
        if "," not in pair:
            raise ValueError(f"bad point {pair!r}")
        d, v = pair.split(",", 1)
        dates.append(d.strip())
        values.append(float(v.strip()))

    idx = pd.to_datetime(dates, errors="coerce")
    if idx.isna().any():
        raise ValueError("request contains unparseable dates")
    s = pd.Series(values, index=idx, dtype=float)
    # Trends reports "<1" buckets as missing; keep the series length intact.
    return s.interpolate(limit_direction="both").fillna(0.0)


def decompose_series(series: pd.Series, *, period: int = 12, robust: bool = True) -> tuple[pd.Series, pd.Series]:
    """Return (seasonal, trend), both aligned with ``series``."""
    if period < 2:
        raise ValueError("period must be >= 2")
    if len(series) < 2 * period:
        # Too short for STL: classical decomposition on a shrunken period.
        p = max(2, len(series) // 4)
        result = seasonal_decompose(series, model="additive", period=p, extrapolate_trend="freq")
        return result.seasonal, result.trend

    result = STL(series, period=period, robust=robust).fit()
    return result.seasonal, result.trend


def format_response(seasonal: pd.Series, trend: pd.Series) -> str:
    s = ",".join(f"{float(v):.4f}" for v in seasonal.iloc[:SEASONAL_POINTS])
    t = ",".join(f"{float(v):.4f}" for v in trend)
    return f"seasonal:{s}trend:{t}"


def handle_request(payload: str, *, period: int = 12) -> str:
    try:
        series = parse_payload(payload)
        if len(series) < SEASONAL_POINTS:
            raise ValueError(f"need at least {SEASONAL_POINTS} points, got {len(series)}")
        seasonal, trend = decompose_series(series, period=period)
        if not np.isfinite(trend.to_numpy(dtype=float)).all():
            raise ValueError("decomposition produced non-finite trend values")
        return format_response(seasonal, trend)
    except ValueError as e:
        return f"error:{e}"


def serve(stdin: TextIO, stdout: TextIO, *, period: int = 12) -> int:
    served = 0
    for line in stdin:
        stdout.write(handle_request(line.rstrip("\r\n"), period=period) + "\n")
        stdout.flush()
        served += 1
    return served


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(prog="gtrends_explorer.engine", description="Serve the decomposition line protocol on stdio.")
    p.add_argument("--period", type=int, default=12, help="Seasonal period in samples (default: 12, monthly data).")
    ns = p.parse_args(argv)
    serve(sys.stdin, sys.stdout, period=int(ns.period))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
