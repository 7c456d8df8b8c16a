from __future__ import annotations

import argparse
import asyncio
import shlex
from pathlib import Path

from .catalog import COUNTRIES, CURATED, TERMS, geo_by_iso, resolve_term
from .channel import DecompositionChannel, EngineTransport, FixtureEngine, LocalEngine, SubprocessEngine
from .controller import PipelineState
from .env import env_command, env_float, env_path, load_dotenv_if_present
from .fetch import MAX_TERMS_PER_QUERY, PytrendsClient, StaticTrendsClient, TrendsClient
from .report import write_report
from .session import ExploreSession
from .types import Filter, RunArgs, Term


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="gtrends_explorer", add_help=True)
    sub = p.add_subparsers(dest="cmd", required=True)

    run = sub.add_parser("explore", help="Fetch, decompose and render search interest for a set of terms.")
    group = run.add_mutually_exclusive_group(required=True)
    group.add_argument(
        "--terms",
        nargs="+",
        help="Catalog terms (entity id, name or alias), in display order.",
    )
    group.add_argument(
        "--curated",
        choices=sorted(CURATED),
        help="Use a prepared selection instead of --terms/--geo.",
    )
    run.add_argument("--geo", default="US", help='Geo code (e.g. "US", "" for worldwide).')
    run.add_argument("--timeframe", default="all", help='Trends timeframe (default: "all", monthly points).')
    run.add_argument(
        "--engine",
        default="subprocess",
        choices=["subprocess", "local", "fixture"],
        help="Decomposition engine: external process, in-process statsmodels, or canned fixture replies.",
    )
    run.add_argument(
        "--engine-cmd",
        default=None,
        help="Command for the external engine (default: $GTRENDS_ENGINE_CMD or the bundled statsmodels engine).",
    )
    run.add_argument("--fixture", default=None, help="File with one canned engine reply per line (--engine fixture).")
    run.add_argument("--period", type=int, default=12, help="Seasonal period in samples for the bundled engine (default: 12).")
    run.add_argument(
        "--csv",
        default=None,
        help="Path to an exported Google Trends multiTimeline CSV (skips live fetching; no top queries).",
    )
    run.add_argument("--merge", action="store_true", help="Show raw interest instead of the decomposed trend.")

    run.add_argument(
        "--cache-dir",
        default=str(env_path("GTRENDS_CACHE_DIR", Path(".cache") / "gtrends_explorer")),
        help="Disk cache directory for pytrends responses (default: ./.cache/gtrends_explorer).",
    )
    run.add_argument("--cache-ttl-hours", type=float, default=24.0, help="Cache TTL in hours (default: 24).")
    run.add_argument("--refresh", action="store_true", help="Bypass cache and fetch fresh data.")
    run.add_argument(
        "--min-request-interval-seconds",
        type=float,
        default=15.0,
        help="Minimum delay between pytrends network requests (default: 15s).",
    )
    run.add_argument(
        "--max-retries",
        type=int,
        default=4,
        help="Max attempts per pytrends endpoint when rate-limited (default: 4).",
    )
    run.add_argument(
        "--request-timeout",
        type=float,
        default=env_float("GTRENDS_REQUEST_TIMEOUT", 600.0),
        help="Deadline in seconds for each Trends call, throttling and retries included (default: 600).",
    )
    run.add_argument(
        "--engine-timeout",
        type=float,
        default=env_float("GTRENDS_ENGINE_TIMEOUT", 60.0),
        help="Deadline in seconds for each decomposition round trip (default: 60).",
    )
    run.add_argument(
        "--include-js",
        default="cdn",
        choices=["cdn", "inline"],
        help='Plotly JS mode: "cdn" (small HTML) or "inline" (offline-capable but larger).',
    )
    run.add_argument("--out", default=None, help="Output HTML path. Defaults to reports/<slug>-<ts>.html")
    run.add_argument(
        "--verbose",
        action="store_true",
        help="Print pipeline transitions, cache hits/misses and throttling.",
    )

    sub.add_parser("catalog", help="List the selectable terms, geos and curated selections.")
    return p


def _parse_run_args(ns: argparse.Namespace) -> RunArgs:
    engine_cmd = shlex.split(ns.engine_cmd) if ns.engine_cmd else env_command("GTRENDS_ENGINE_CMD")
    return RunArgs(
        terms=list(ns.terms or []),
        geo=ns.geo,
        timeframe=ns.timeframe,
        engine=ns.engine,
        engine_cmd=engine_cmd,
        fixture=Path(ns.fixture).expanduser() if ns.fixture else None,
        period=int(ns.period),
        csv=Path(ns.csv).expanduser() if ns.csv else None,
        merge=bool(ns.merge),
        cache_dir=Path(ns.cache_dir).expanduser(),
        cache_ttl_hours=float(ns.cache_ttl_hours),
        refresh=bool(ns.refresh),
        min_request_interval_seconds=float(ns.min_request_interval_seconds),
        max_retries=int(ns.max_retries),
        request_timeout_seconds=float(ns.request_timeout),
        engine_timeout_seconds=float(ns.engine_timeout),
        include_js=ns.include_js,
        out=Path(ns.out).expanduser() if ns.out else None,
        verbose=bool(ns.verbose),
    )


def _resolve_terms(values: list[str], *, allow_adhoc: bool) -> list[Term]:
    out: list[Term] = []
    for v in values:
        try:
            out.append(resolve_term(v))
        except KeyError:
            if not allow_adhoc:
                raise
            # CSV exports may hold any column; use the column name as-is.
            out.append(Term(entity=v, name=v))
    return out


def build_transport(args: RunArgs, log_fn=None) -> EngineTransport:
    if args.engine == "fixture":
        if args.fixture is None:
            raise ValueError("--engine fixture needs --fixture <file>")
        return FixtureEngine.from_file(args.fixture, cycle=True)
    if args.engine == "local":
        return LocalEngine(period=args.period)
    return SubprocessEngine(args.engine_cmd, period=args.period, log_fn=log_fn)


def build_trends_client(args: RunArgs, log_fn=None) -> TrendsClient:
    if args.csv:
        return StaticTrendsClient.from_csv(args.csv)
    return PytrendsClient(
        timeframe=args.timeframe,
        cache_dir=args.cache_dir,
        cache_ttl_seconds=float(args.cache_ttl_hours) * 3600.0,
        refresh=args.refresh,
        min_request_interval_seconds=args.min_request_interval_seconds,
        max_retries=args.max_retries,
        log_fn=log_fn,
    )


async def run_explore(args: RunArgs, *, curated: Filter | None = None) -> tuple[PipelineState, Path]:
    log_fn = print if args.verbose else None
    channel = DecompositionChannel(
        build_transport(args, log_fn=log_fn),
        timeout_seconds=args.engine_timeout_seconds,
        log_fn=log_fn,
    )
    session = ExploreSession(
        trends_client=build_trends_client(args, log_fn=log_fn),
        channel=channel,
        request_timeout_seconds=args.request_timeout_seconds,
        max_terms=MAX_TERMS_PER_QUERY,
        log_fn=log_fn,
    )
    try:
        if curated is not None:
            session.filters.load_curated(curated)
        else:
            session.filters.select_terms(_resolve_terms(args.terms, allow_adhoc=args.csv is not None))
            session.filters.select_geo(geo_by_iso(args.geo))
            session.filters.confirm()
        await session.controller.wait()
        if args.merge:
            session.toggle_merge()
        out = write_report(session, out=args.out, include_js=args.include_js)
    finally:
        await session.close()
    return session.controller.state, out


def _print_catalog() -> None:
    print("Terms:")
    for t in TERMS:
        alias = f" (alias: {t.alias})" if t.alias else ""
        print(f"  {t.entity:<20} {t.name}{alias}")
    print("Geos:")
    for g in COUNTRIES:
        print(f"  {g.iso or '(world)':<20} {g.name}")
    print("Curated:")
    for name, f in CURATED.items():
        print(f"  {name:<20} {', '.join(f.term_names)} in {f.geo.name}")


def main(argv: list[str] | None = None) -> int:
    # Convenience: load local .env if present (engine command, timeouts, cache dir).
    load_dotenv_if_present()
    p = _build_parser()
    ns = p.parse_args(argv)

    if ns.cmd == "catalog":
        _print_catalog()
        return 0

    if ns.cmd == "explore":
        args = _parse_run_args(ns)
        curated = CURATED[ns.curated] if ns.curated else None
        try:
            state, out = asyncio.run(run_explore(args, curated=curated))
        except (KeyError, ValueError) as e:
            p.error(str(e))
        print(f"[gtrends] {state.value}: wrote {out}")
        return 0 if state == PipelineState.READY else 1

    p.error(f"Unknown command: {ns.cmd}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
