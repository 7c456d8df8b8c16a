from __future__ import annotations

import os
import shlex
from pathlib import Path


def load_dotenv_if_present(path: str | Path = ".env") -> bool:
    """
    Minimal .env loader (no dependency on python-dotenv).

    - Loads KEY=VALUE lines into os.environ if the key is not already set.
    - Ignores blank lines and comments starting with '#'.
    - Strips surrounding single/double quotes from values.
    """
    p = Path(path)
    if not p.is_file():
        return False

    for raw_line in p.read_text(encoding="utf-8", errors="replace").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue
        os.environ.setdefault(key, value.strip().strip("\"'"))

    return True


def env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e


def env_command(name: str) -> list[str] | None:
    """Shell-style split of a command held in an environment variable (None when unset)."""
    raw = os.environ.get(name, "").strip()
    return shlex.split(raw) if raw else None


def env_path(name: str, default: Path) -> Path:
    raw = os.environ.get(name, "").strip()
    return Path(raw).expanduser() if raw else default
