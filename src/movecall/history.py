"""
History Store sink.

One directory per session:
- session.json: session metadata (one JSON object)
- history.jsonl: one row per finished execution attempt

The core only ever calls `record()`; nothing is read back.
"""

from __future__ import annotations

import json
import os
import secrets
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol


class HistoryStore(Protocol):
    def record(self, entry: dict[str, Any]) -> None: ...


def _now_unix() -> int:
    return int(time.time())


def _safe_filename(s: str) -> str:
    return "".join(ch if ch.isalnum() or ch in ("-", "_", ".") else "_" for ch in s)[:120]


def default_session_id(*, prefix: str = "calls") -> str:
    ts = time.strftime("%Y%m%d_%H%M%S", time.gmtime())
    return f"{prefix}_{ts}_pid{os.getpid()}_{secrets.token_hex(3)}"


@dataclass(frozen=True)
class HistoryPaths:
    root: Path
    session: Path
    history: Path


class JsonlHistoryStore:
    def __init__(self, *, base_dir: Path, session_id: str | None = None) -> None:
        session_id = _safe_filename(session_id or default_session_id())
        root = base_dir / session_id
        root.mkdir(parents=True, exist_ok=True)
        self.session_id = session_id
        self.paths = HistoryPaths(
            root=root,
            session=root / "session.json",
            history=root / "history.jsonl",
        )

    def write_session_metadata(self, obj: dict[str, Any]) -> None:
        self.paths.session.write_text(json.dumps(obj, indent=2, sort_keys=True) + "\n", encoding="utf-8")

    def record(self, entry: dict[str, Any]) -> None:
        """Append one row. Every row carries `t` (unix seconds)."""
        row = {"t": _now_unix(), **entry}
        with self.paths.history.open("a", encoding="utf-8") as f:
            f.write(json.dumps(row, sort_keys=True, default=str) + "\n")


class MemoryHistoryStore:
    """In-process sink, handy for embedding callers and tests."""

    def __init__(self) -> None:
        self.entries: list[dict[str, Any]] = []

    def record(self, entry: dict[str, Any]) -> None:
        self.entries.append(dict(entry))
