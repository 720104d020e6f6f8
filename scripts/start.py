#!/usr/bin/env python3
"""
Production entrypoint: run the release phase, then exec gunicorn.

Environment:
  PORT             listen port (default 8080)
  WEB_CONCURRENCY  gunicorn workers (default 2)
  WEB_TIMEOUT      worker timeout in seconds (default 120; video uploads are slow)

Usage:
    python scripts/start.py
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _positive_int(name: str, default: int, *, upper: int | None = None) -> int:
    raw = (os.environ.get(name) or "").strip() or str(default)
    try:
        value = int(raw)
    except ValueError:
        raise SystemExit(f"ERROR: {name} must be an integer (got {raw!r}).")
    if value < 1 or (upper is not None and value > upper):
        raise SystemExit(f"ERROR: {name} out of range (got {value}).")
    return value


def gunicorn_argv(port: int, workers: int, timeout: int) -> list[str]:
    return [
        "gunicorn",
        "app.wsgi:app",
        "--bind", f"0.0.0.0:{port}",
        "--workers", str(workers),
        "--timeout", str(timeout),
        # engine is disposed in each worker after fork
        "--preload",
        "--access-logfile", "-",
        "--error-logfile", "-",
    ]


def main() -> None:
    port = _positive_int("PORT", 8080, upper=65535)
    workers = _positive_int("WEB_CONCURRENCY", 2)
    timeout = _positive_int("WEB_TIMEOUT", 120)

    print("=== Running release phase ===", flush=True)
    from scripts.release import run_release

    try:
        run_release()
    except Exception as e:
        print(f"Release failed: {e}", flush=True)
        sys.exit(1)

    print(f"=== Starting gunicorn on 0.0.0.0:{port} ({workers} workers) ===", flush=True)
    # exec so gunicorn becomes PID 1 and receives signals directly
    os.execvp("gunicorn", gunicorn_argv(port, workers, timeout))


if __name__ == "__main__":
    main()
