from __future__ import annotations

import asyncio
import math
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Protocol, Sequence

from .engine import handle_request
from .errors import ProtocolFailure
from .types import Point, TermSeries

SEASONAL_MARKER = "seasonal:"
TREND_MARKER = "trend:"
ERROR_MARKER = "error:"
SEASONAL_POINTS = 13


# --- wire codec ---------------------------------------------------------------


def serialize_points(series: TermSeries) -> str:
    """``date,value`` pairs joined by ``;`` (one request line)."""
    return ";".join(f"{p.date},{_format_number(p.value)}" for p in series.points)


def _format_number(v: float) -> str:
    f = float(v)
    if f.is_integer():
        return str(int(f))
    return repr(f)


def _round_half_up(value: float, ndigits: int = 0) -> float:
    q = 10**ndigits
    return math.floor(value * q + 0.5) / q


def _parse_tokens(section: str, *, what: str) -> list[float]:
    out: list[float] = []
    for i, raw in enumerate(section.split(",")):
        tok = raw.strip()
        if not tok:
            raise ProtocolFailure(f"empty {what} token at position {i}")
        try:
            v = float(tok)
        except ValueError as e:
            raise ProtocolFailure(f"non-numeric {what} token {tok!r} at position {i}") from e
        if not math.isfinite(v):
            raise ProtocolFailure(f"non-finite {what} token {tok!r} at position {i}")
        out.append(v)
    return out


@dataclass(frozen=True)
class DecompositionValues:
    seasonal: list[float]
    trend: list[int]


def parse_decomposition(text: str) -> DecompositionValues:
    """
    Parse an engine reply of the form ``seasonal:<13 numbers>trend:<N numbers>``.

    Seasonal values are rounded (half up) to 2 decimals, trend values to integers.
    Raises ProtocolFailure for missing/misordered markers or bad tokens.
    """
    text = text or ""
    if text.startswith(ERROR_MARKER):
        raise ProtocolFailure(f"decomposition engine error: {text[len(ERROR_MARKER):].strip()}")
    s_at = text.find(SEASONAL_MARKER)
    t_at = text.find(TREND_MARKER)
    if s_at < 0 or t_at < 0:
        head = text[:80]
        raise ProtocolFailure(f"decomposition reply is missing a marker: {head!r}")
    if t_at < s_at:
        raise ProtocolFailure("decomposition reply has 'trend:' before 'seasonal:'")

    seasonal_raw = _parse_tokens(text[s_at + len(SEASONAL_MARKER) : t_at], what="seasonal")
    if len(seasonal_raw) < SEASONAL_POINTS:
        raise ProtocolFailure(f"expected {SEASONAL_POINTS} seasonal values, got {len(seasonal_raw)}")
    seasonal = [_round_half_up(v, 2) for v in seasonal_raw[:SEASONAL_POINTS]]

    trend_raw = _parse_tokens(text[t_at + len(TREND_MARKER) :], what="trend")
    trend = [int(_round_half_up(v)) for v in trend_raw]
    return DecompositionValues(seasonal=seasonal, trend=trend)


def decode_decomposition(text: str, raw: TermSeries) -> tuple[TermSeries, TermSeries]:
    """
    Decode a reply into (seasonal, trend) series for ``raw.term``.

    The engine returns values only; dates are taken positionally from the raw series.
    """
    values = parse_decomposition(text)
    dates = raw.dates
    if len(dates) < SEASONAL_POINTS:
        raise ProtocolFailure(f"raw series for {raw.term!r} has {len(dates)} points; need {SEASONAL_POINTS}")
    if len(values.trend) != len(dates):
        raise ProtocolFailure(
            f"trend for {raw.term!r} has {len(values.trend)} values; raw series has {len(dates)}"
        )
    seasonal = TermSeries(
        term=raw.term,
        points=tuple(Point(date=d, value=v) for d, v in zip(dates, values.seasonal)),
    )
    trend = TermSeries(
        term=raw.term,
        points=tuple(Point(date=d, value=v) for d, v in zip(dates, values.trend)),
    )
    return seasonal, trend


# --- engine transports ---------------------------------------------------------


class EngineTransport(Protocol):
    async def send(self, payload: str) -> None: ...

    async def receive(self) -> str: ...

    async def reset(self) -> None: ...

    async def close(self) -> None: ...


class FixtureEngine:
    """
    Deterministic engine replaying canned replies in order.

    Keeps the payloads it was sent. A second send before the reply is received is rejected.
    """

    def __init__(self, responses: Sequence[str], *, delay_seconds: float = 0.0, cycle: bool = False) -> None:
        self._responses = list(responses)
        self._next = 0
        self._pending: str | None = None
        self.delay_seconds = float(delay_seconds)
        self.cycle = cycle
        self.payloads: list[str] = []

    @classmethod
    def from_file(cls, path: str | Path, **kwargs) -> "FixtureEngine":
        lines = Path(path).read_text(encoding="utf-8").splitlines()
        return cls([ln.strip() for ln in lines if ln.strip()], **kwargs)

    async def send(self, payload: str) -> None:
        if self._pending is not None:
            raise ProtocolFailure("fixture engine: request already outstanding")
        if not self._responses:
            raise ProtocolFailure("fixture engine has no canned responses")
        if self._next >= len(self._responses):
            if not self.cycle:
                raise ProtocolFailure("fixture engine ran out of canned responses")
            self._next = 0
        self.payloads.append(payload)
        self._pending = self._responses[self._next]
        self._next += 1

    async def receive(self) -> str:
        if self._pending is None:
            raise ProtocolFailure("fixture engine: receive without a request")
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)
        reply, self._pending = self._pending, None
        return reply

    async def reset(self) -> None:
        self._pending = None

    async def close(self) -> None:
        self._pending = None


class LocalEngine:
    """The statsmodels engine from ``engine.py``, run in a worker thread."""

    def __init__(self, *, period: int = 12) -> None:
        self.period = int(period)
        self._pending: str | None = None

    async def send(self, payload: str) -> None:
        if self._pending is not None:
            raise ProtocolFailure("local engine: request already outstanding")
        self._pending = payload

    async def receive(self) -> str:
        if self._pending is None:
            raise ProtocolFailure("local engine: receive without a request")
        payload = self._pending
        try:
            return await asyncio.to_thread(handle_request, payload, period=self.period)
        finally:
            self._pending = None

    async def reset(self) -> None:
        self._pending = None

    async def close(self) -> None:
        self._pending = None


def default_engine_command(*, period: int = 12) -> list[str]:
    return [sys.executable, "-m", "gtrends_explorer.engine", "--period", str(int(period))]


class SubprocessEngine:
    """
    Long-lived external engine process speaking the line protocol on stdin/stdout.

    The process keeps session state, so a reply that was not read (timeout, cancel)
    poisons the stream; ``reset`` kills the process and the next send starts a new one.
    """

    def __init__(
        self,
        command: Sequence[str] | None = None,
        *,
        period: int = 12,
        log_fn: Callable[[str], None] | None = None,
    ) -> None:
        self.command = list(command) if command else default_engine_command(period=period)
        self._proc: asyncio.subprocess.Process | None = None
        self._awaiting = False
        self._log_fn = log_fn

    def _log(self, msg: str) -> None:
        if self._log_fn is not None:
            self._log_fn(msg)

    async def _ensure_started(self) -> asyncio.subprocess.Process:
        if self._proc is not None and self._proc.returncode is None:
            return self._proc
        self._log(f"[gtrends] starting decomposition engine: {' '.join(self.command)}")
        try:
            self._proc = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                limit=4 * 1024 * 1024,
            )
        except OSError as e:
            raise ProtocolFailure(f"could not start decomposition engine {self.command[0]!r}") from e
        return self._proc

    async def send(self, payload: str) -> None:
        if self._awaiting:
            raise ProtocolFailure("engine process: request already outstanding")
        proc = await self._ensure_started()
        assert proc.stdin is not None
        try:
            proc.stdin.write(payload.encode("utf-8") + b"\n")
            await proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            await self.reset()
            raise ProtocolFailure("decomposition engine closed its input") from e
        self._awaiting = True

    async def receive(self) -> str:
        if not self._awaiting or self._proc is None:
            raise ProtocolFailure("engine process: receive without a request")
        assert self._proc.stdout is not None
        line = await self._proc.stdout.readline()
        self._awaiting = False
        if not line:
            await self.reset()
            raise ProtocolFailure("decomposition engine exited without replying")
        return line.decode("utf-8", errors="replace").strip()

    async def reset(self) -> None:
        self._awaiting = False
        proc, self._proc = self._proc, None
        if proc is None or proc.returncode is not None:
            return
        self._log("[gtrends] resetting decomposition engine")
        proc.kill()
        await proc.wait()

    async def close(self) -> None:
        self._awaiting = False
        proc, self._proc = self._proc, None
        if proc is None or proc.returncode is not None:
            return
        if proc.stdin is not None:
            proc.stdin.close()
        try:
            await asyncio.wait_for(proc.wait(), timeout=5.0)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()


# --- single-flight channel --------------------------------------------------------


class DecompositionChannel:
    """
    Single-flight access to a decomposition engine.

    Callers queue on a lock; at most one request is ever on the wire.
    """

    def __init__(
        self,
        transport: EngineTransport,
        *,
        timeout_seconds: float | None = 60.0,
        log_fn: Callable[[str], None] | None = None,
    ) -> None:
        self.transport = transport
        self.timeout_seconds = timeout_seconds
        self._lock = asyncio.Lock()
        self._log_fn = log_fn
        self.outstanding = 0
        self.max_outstanding = 0
        self.requests_sent = 0

    def _log(self, msg: str) -> None:
        if self._log_fn is not None:
            self._log_fn(msg)

    async def _round_trip(self, payload: str) -> str:
        await self.transport.send(payload)
        return await self.transport.receive()

    async def request_decomposition(self, raw: TermSeries, *, guard: Callable[[], None] | None = None) -> str:
        """
        Send ``raw`` to the engine and return its reply text.

        ``guard`` runs once the channel is acquired and may raise to abandon the request
        before anything is sent.
        """
        payload = serialize_points(raw)
        async with self._lock:
            if guard is not None:
                guard()
            self.outstanding += 1
            self.max_outstanding = max(self.max_outstanding, self.outstanding)
            self.requests_sent += 1
            self._log(f"[gtrends] decomposition request #{self.requests_sent} term={raw.term!r} points={len(raw.points)}")
            try:
                return await asyncio.wait_for(self._round_trip(payload), timeout=self.timeout_seconds)
            except asyncio.TimeoutError as e:
                await self.transport.reset()
                raise ProtocolFailure(
                    f"decomposition engine did not answer within {self.timeout_seconds}s (term={raw.term!r})"
                ) from e
            except asyncio.CancelledError:
                await self.transport.reset()
                raise
            finally:
                self.outstanding -= 1

    async def close(self) -> None:
        await self.transport.close()
