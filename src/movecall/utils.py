"""Shared plumbing: lookup retries, env knob parsing, call-spec files and the helper subprocess."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import random
import subprocess
import tempfile
import time
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
N = TypeVar("N", int, float)

STALE_CALL_SPEC_AGE_S = 86400


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    *,
    attempts: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 10.0,
    retry_on: tuple[type[Exception], ...] = (Exception,),
) -> T:
    """
    Await `fn()` until it succeeds or `attempts` runs out.

    Failures matching `retry_on` sleep `base_delay * 2**n` (capped, plus jitter)
    before the next attempt; anything else propagates at once. The directory uses
    this for flaky RPC transports.
    """
    total = max(1, attempts)
    for n in range(total):
        try:
            return await fn()
        except retry_on as e:
            if n == total - 1:
                raise
            delay = min(max_delay, base_delay * (2**n) + random.uniform(0, base_delay))
            logger.warning(f"Attempt {n + 1}/{total} failed ({type(e).__name__}: {e}), retrying in {delay:.1f}s")
            await asyncio.sleep(delay)
    raise AssertionError("unreachable")


def _env_number(val: Any, default: N, cast: Callable[[Any], N], lo: N | None, hi: N | None, name: str) -> N:
    if val is None or val == "":
        return default
    try:
        n = cast(val)
    except (ValueError, TypeError):
        logger.warning(f"Ignoring {name}={val!r}, using {default}")
        return default
    if lo is not None and n < lo:
        logger.warning(f"{name}={n} below {lo}, clamping")
        return lo
    if hi is not None and n > hi:
        logger.warning(f"{name}={n} above {hi}, clamping")
        return hi
    return n


def env_int(val: Any, default: int, *, lo: int | None = None, hi: int | None = None, name: str = "value") -> int:
    """Integer env knob; unparsable text falls back to `default`, out-of-range values clamp."""
    return _env_number(val, default, int, lo, hi, name)


def env_float(
    val: Any, default: float, *, lo: float | None = None, hi: float | None = None, name: str = "value"
) -> float:
    return _env_number(val, default, float, lo, hi, name)


def extract_json(stdout: str, *, context: str = "helper") -> Any:
    """
    Parse the JSON document a helper printed, tolerating log lines around it.

    The whole text is tried first, then the outermost `{...}` span, then the
    outermost `[...]` span.
    """
    try:
        return json.loads(stdout)
    except json.JSONDecodeError as e:
        err = e

    s = stdout.strip()
    for opener, closer in (("{", "}"), ("[", "]")):
        start, end = s.find(opener), s.rfind(closer)
        if start == -1 or end <= start:
            continue
        try:
            return json.loads(s[start : end + 1])
        except json.JSONDecodeError:
            continue

    head = s[:80] + ("..." if len(s) > 80 else "")
    raise ValueError(f"no JSON document in {context} output ({err.msg}): {head!r}") from err


def atomic_write_json(path: Path, data: Any) -> None:
    """Write `data` as JSON through a sibling temp file so readers never see a partial file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f"{path.name}.{os.getpid()}.tmp")
    try:
        tmp.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
        tmp.replace(path)
    except OSError as e:
        logger.error(f"Could not write {path}: {e}")
        tmp.unlink(missing_ok=True)
        raise


def call_spec_dir() -> Path:
    """
    Directory holding call specs for the transaction helper.

    MOVECALL_TEMP_DIR overrides the default under the system temp directory.
    Specs left behind by crashed runs are pruned once they are a day old.
    """
    base = os.environ.get("MOVECALL_TEMP_DIR")
    p = Path(base) if base else Path(tempfile.gettempdir()) / "movecall_tmp"
    p.mkdir(parents=True, exist_ok=True)

    cutoff = time.time() - STALE_CALL_SPEC_AGE_S
    for spec in p.glob("call_spec_*.json"):
        try:
            if spec.stat().st_mtime < cutoff:
                spec.unlink()
        except OSError as e:
            logger.debug(f"Skipping stale spec {spec}: {e}")
    return p


def run_json_helper(cmd: list[str], *, timeout_s: float, context: str = "helper") -> dict[str, Any]:
    """
    Run the transaction helper and return the JSON object it printed.

    A timeout raises TimeoutError. A non-zero exit, unparsable stdout or a
    non-object document raises RuntimeError; the exit message carries the head
    of stderr, which the signer scans for transient-failure markers.
    """
    try:
        proc = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout_s)
    except subprocess.TimeoutExpired as e:
        raise TimeoutError(f"{context} timed out after {timeout_s}s") from e

    if proc.returncode != 0:
        stderr = (proc.stderr or "").strip()[:500] or "N/A"
        raise RuntimeError(f"{context} failed (exit {proc.returncode})\nStderr: {stderr}")

    try:
        data = extract_json(proc.stdout, context=context)
    except ValueError as e:
        raise RuntimeError(f"{context} returned invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise RuntimeError(f"{context} returned non-object JSON: {type(data).__name__}")
    return data
