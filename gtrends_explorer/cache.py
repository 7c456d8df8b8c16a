from __future__ import annotations

import gzip
import hashlib
import json
import os
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

import pandas as pd


def _stable_json(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def cache_key(*parts: Any) -> str:
    """
    Stable cache key based on JSON serialization of parts.
    Returns a short hex digest suitable for filenames.
    """
    payload = _stable_json(parts).encode("utf-8", errors="strict")
    return hashlib.sha256(payload).hexdigest()[:24]


@dataclass(frozen=True)
class CacheEntry:
    key: str
    created_at: float
    ttl_seconds: float
    meta: dict[str, Any]

    @property
    def expires_at(self) -> float:
        return self.created_at + self.ttl_seconds

    def is_fresh(self, now: float | None = None) -> bool:
        n = time.time() if now is None else now
        return n <= self.expires_at


class DiskCache:
    """
    File-based TTL cache for Trends responses.

    Layout:
      <cache_dir>/<namespace>/<key>/
        meta.json
        payload.json | payload.csv.gz
    """

    def __init__(
        self,
        *,
        cache_dir: str | Path,
        namespace: str = "default",
        log_fn: Callable[[str], None] | None = None,
    ) -> None:
        self.root = Path(cache_dir).expanduser().resolve()
        self.base = self.root / namespace
        self.base.mkdir(parents=True, exist_ok=True)
        self._log_fn = log_fn

    def _log(self, msg: str) -> None:
        if self._log_fn is not None:
            self._log_fn(msg)

    def _entry_dir(self, key: str) -> Path:
        return self.base / key

    def _read_meta(self, key: str) -> CacheEntry | None:
        mp = self._entry_dir(key) / "meta.json"
        if not mp.exists():
            return None
        try:
            data = json.loads(mp.read_text(encoding="utf-8"))
            return CacheEntry(
                key=str(data["key"]),
                created_at=float(data["created_at"]),
                ttl_seconds=float(data["ttl_seconds"]),
                meta=dict(data.get("meta") or {}),
            )
        except (OSError, ValueError, KeyError, TypeError):
            # Unreadable meta counts as a miss.
            return None

    def _write_meta(self, *, key: str, ttl_seconds: float, meta: dict[str, Any]) -> None:
        ed = self._entry_dir(key)
        ed.mkdir(parents=True, exist_ok=True)
        (ed / "meta.json").write_text(
            _stable_json({"key": key, "created_at": time.time(), "ttl_seconds": float(ttl_seconds), "meta": meta}),
            encoding="utf-8",
        )

    def _get_or_compute(
        self,
        *,
        key: str,
        payload_name: str,
        ttl_seconds: float,
        refresh: bool,
        compute_fn: Callable[[], Any],
        read_fn: Callable[[Path, CacheEntry], Any],
        write_fn: Callable[[Path, Any], dict[str, Any]],
        meta: dict[str, Any] | None,
    ) -> Any:
        payload_path = self._entry_dir(key) / payload_name
        endpoint = (meta or {}).get("endpoint") or payload_name

        entry = None if refresh else self._read_meta(key)
        if entry is not None and entry.is_fresh() and payload_path.exists():
            self._log(f"[gtrends] cache hit ({endpoint}) key={key}")
            return read_fn(payload_path, entry)

        if refresh:
            self._log(f"[gtrends] cache bypass refresh ({endpoint}) key={key}")
        else:
            self._log(f"[gtrends] cache miss ({endpoint}) key={key}")
        value = compute_fn()
        payload_path.parent.mkdir(parents=True, exist_ok=True)
        extra_meta = write_fn(payload_path, value)
        self._write_meta(key=key, ttl_seconds=ttl_seconds, meta={**(meta or {}), **extra_meta})
        self._log(f"[gtrends] cache write ({endpoint}) key={key}")
        return value

    def get_or_compute_json(
        self,
        *,
        key: str,
        ttl_seconds: float,
        refresh: bool,
        compute_fn: Callable[[], Any],
        meta: dict[str, Any] | None = None,
    ) -> Any:
        def read(p: Path, _entry: CacheEntry) -> Any:
            return json.loads(p.read_text(encoding="utf-8"))

        def write(p: Path, value: Any) -> dict[str, Any]:
            p.write_text(_stable_json(value), encoding="utf-8")
            return {}

        return self._get_or_compute(
            key=key,
            payload_name="payload.json",
            ttl_seconds=ttl_seconds,
            refresh=refresh,
            compute_fn=compute_fn,
            read_fn=read,
            write_fn=write,
            meta=meta,
        )

    def get_or_compute_df(
        self,
        *,
        key: str,
        ttl_seconds: float,
        refresh: bool,
        compute_fn: Callable[[], pd.DataFrame],
        meta: dict[str, Any] | None = None,
    ) -> pd.DataFrame:
        def read(p: Path, entry: CacheEntry) -> pd.DataFrame:
            with gzip.open(p, "rt", encoding="utf-8") as f:
                df = pd.read_csv(f, index_col=0)
            # restore datetime index only if it was originally datetime
            if entry.meta.get("index") == "datetime":
                df.index = pd.to_datetime(df.index, errors="coerce")
            return df

        def write(p: Path, df: pd.DataFrame) -> dict[str, Any]:
            with gzip.open(p, "wt", encoding="utf-8") as f:
                df.to_csv(f)
            return {"index": "datetime"} if isinstance(df.index, pd.DatetimeIndex) else {}

        return self._get_or_compute(
            key=key,
            payload_name="payload.csv.gz",
            ttl_seconds=ttl_seconds,
            refresh=refresh,
            compute_fn=compute_fn,
            read_fn=read,
            write_fn=write,
            meta=meta,
        )


class RateLimiter:
    """
    Spaces out live Trends requests by at least ``min_interval_seconds`` (with jitter).

    Pytrends calls run in worker threads; a superseded run's fetch can overlap the current
    one, so waits are serialized under a lock.
    """

    def __init__(
        self,
        *,
        min_interval_seconds: float = 15.0,
        jitter_ratio: float = 0.2,
        log_fn: Callable[[str], None] | None = None,
    ) -> None:
        self.min_interval_seconds = float(min_interval_seconds)
        self.jitter_ratio = max(0.0, float(jitter_ratio))
        self._last = 0.0
        self._lock = threading.Lock()
        self._log_fn = log_fn

    def _jitter_factor(self) -> float:
        # uniform in [1-j, 1+j]
        if self.jitter_ratio <= 0:
            return 1.0
        b = int.from_bytes(os.urandom(2), "big") / 65535.0
        return (1.0 - self.jitter_ratio) + 2.0 * self.jitter_ratio * b

    def wait(self, *, sleep_fn: Callable[[float], None] = time.sleep, now_fn: Callable[[], float] = time.monotonic) -> None:
        if self.min_interval_seconds <= 0:
            return
        with self._lock:
            elapsed = max(0.0, float(now_fn()) - self._last)
            remaining = self.min_interval_seconds * self._jitter_factor() - elapsed
            if remaining > 0:
                if self._log_fn is not None:
                    self._log_fn(f"[gtrends] throttle sleep {remaining:.1f}s")
                sleep_fn(remaining)
            self._last = float(now_fn())


def backoff_retry(
    *,
    fn: Callable[[], Any],
    should_retry: Callable[[Exception], bool],
    max_attempts: int = 4,
    base_seconds: float = 30.0,
    max_seconds: float = 300.0,
    sleep_fn: Callable[[float], None] = time.sleep,
    log_fn: Callable[[str], None] | None = None,
) -> Any:
    """Call ``fn``, retrying with exponential backoff while ``should_retry`` accepts the error."""
    for attempt in range(1, max(1, int(max_attempts)) + 1):
        try:
            return fn()
        except Exception as e:
            if attempt >= max_attempts or not should_retry(e):
                raise
            wait = min(max_seconds, base_seconds * (2 ** (attempt - 1)))
            if log_fn is not None:
                log_fn(f"[gtrends] Trends rate limited ({type(e).__name__}), retry {attempt}/{max_attempts - 1} in {wait:.0f}s")
            sleep_fn(wait)
    raise AssertionError("unreachable")
