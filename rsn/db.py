from __future__ import annotations

import logging
import os
import sqlite3
from dataclasses import dataclass
from typing import Any, Iterable

from .runtime import utc_now
from .settings import settings

logger = logging.getLogger("rsn")


def _resolve_db_path() -> str:
    """Return a file path usable by sqlite.

    If the configured path is a directory (a bind mount created before the
    file existed, for example) the journal is placed inside it.
    """

    p = os.path.abspath(settings.db_path)

    if os.path.isdir(p):
        p = os.path.join(p, "rsn.db")

    parent = os.path.dirname(p)
    if parent and not os.path.exists(parent):
        os.makedirs(parent, exist_ok=True)

    return p


def connect() -> sqlite3.Connection:
    conn = sqlite3.connect(_resolve_db_path(), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def init_db() -> None:
    """Create tables if they do not exist."""
    with connect() as conn:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS attempts (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              instance_id TEXT NOT NULL,
              started_at TEXT NOT NULL,
              mount_path TEXT,
              master_endpoint TEXT,
              pid INTEGER,
              outcome TEXT NOT NULL, -- running|recycled|stopped
              reason TEXT,
              ended_at TEXT
            );

            CREATE TABLE IF NOT EXISTS events (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              ts TEXT NOT NULL,
              level TEXT NOT NULL,
              phase TEXT,
              message TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_events_ts ON events(ts);
            """
        )


def log_event(level: str, message: str, phase: str | None = None) -> None:
    """Record a lifecycle event in the journal and forward it to the logger."""
    level = level.upper()
    logger.log(getattr(logging, level, logging.INFO), message)
    try:
        with connect() as conn:
            conn.execute(
                "INSERT INTO events (ts, level, phase, message) VALUES (?, ?, ?, ?)",
                (utc_now(), level, phase, message),
            )
    except sqlite3.Error as e:
        logger.warning("Event journal unavailable: %s", e)


@dataclass(frozen=True)
class AttemptRow:
    id: int
    instance_id: str
    started_at: str
    mount_path: str | None
    master_endpoint: str | None
    pid: int | None
    outcome: str
    reason: str | None
    ended_at: str | None


def _rows_to_dataclass(rows: Iterable[sqlite3.Row], cls: Any) -> list[Any]:
    out: list[Any] = []
    for r in rows:
        out.append(cls(**dict(r)))
    return out


def insert_attempt(instance_id: str, started_at: str) -> int:
    with connect() as conn:
        cur = conn.execute(
            "INSERT INTO attempts (instance_id, started_at, outcome) VALUES (?, ?, 'running')",
            (instance_id, started_at),
        )
        return int(cur.lastrowid)


def update_attempt_launch(attempt_id: int, mount_path: str, master_endpoint: str, pid: int) -> None:
    with connect() as conn:
        conn.execute(
            "UPDATE attempts SET mount_path=?, master_endpoint=?, pid=? WHERE id=?",
            (mount_path, master_endpoint, pid, attempt_id),
        )


def finish_attempt(attempt_id: int, outcome: str, reason: str | None = None) -> None:
    with connect() as conn:
        conn.execute(
            "UPDATE attempts SET outcome=?, reason=?, ended_at=? WHERE id=? AND ended_at IS NULL",
            (outcome, reason, utc_now(), attempt_id),
        )


def list_attempts(limit: int = 20) -> list[AttemptRow]:
    with connect() as conn:
        rows = conn.execute("SELECT * FROM attempts ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        return _rows_to_dataclass(rows, AttemptRow)


def latest_events(limit: int = 100) -> list[dict[str, Any]]:
    with connect() as conn:
        rows = conn.execute("SELECT * FROM events ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        return [dict(r) for r in rows]
