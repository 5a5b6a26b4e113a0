"""Run checkpoint stores (in-memory and SQLite)."""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import threading
from typing import Dict, List, Optional, Protocol, Tuple

from taskAgent.graph.state import RunCheckpoint

LOGGER = logging.getLogger("taskagent.persistence")


class CheckpointStore(Protocol):
    """Keyed by (thread_id, run_id); save overwrites, load returns None if absent."""

    def save(self, thread_id: str, run_id: str, snapshot: RunCheckpoint) -> None:
        ...

    def load(self, thread_id: str, run_id: str) -> Optional[RunCheckpoint]:
        ...


class MemoryCheckpointStore:
    """Process-local store. Snapshots are kept serialized so callers never share objects."""

    def __init__(self) -> None:
        self._data: Dict[Tuple[str, str], str] = {}
        self._lock = threading.Lock()

    def save(self, thread_id: str, run_id: str, snapshot: RunCheckpoint) -> None:
        payload = json.dumps(snapshot.to_dict(), ensure_ascii=False)
        with self._lock:
            self._data[(thread_id, run_id)] = payload

    def load(self, thread_id: str, run_id: str) -> Optional[RunCheckpoint]:
        with self._lock:
            payload = self._data.get((thread_id, run_id))
        if payload is None:
            return None
        return RunCheckpoint.from_dict(json.loads(payload))

    def list_runs(self, thread_id: str) -> List[str]:
        with self._lock:
            return [run_id for (tid, run_id) in self._data if tid == thread_id]


class SqliteCheckpointStore:
    """SQLite store, one row per (thread_id, run_id)."""

    def __init__(self, db_path: str = "data/checkpoints.db"):
        db_dir = os.path.dirname(db_path)
        if db_dir and not os.path.exists(db_dir):
            os.makedirs(db_dir, exist_ok=True)

        self.db_path = db_path
        self._init_db()

    def _init_db(self):
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS checkpoints (
                    thread_id TEXT NOT NULL,
                    run_id TEXT NOT NULL,
                    status TEXT NOT NULL,
                    stage TEXT NOT NULL,
                    snapshot_json TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (thread_id, run_id)
                )
            """)
            conn.commit()
        finally:
            conn.close()

    def save(self, thread_id: str, run_id: str, snapshot: RunCheckpoint) -> None:
        snapshot_json = json.dumps(snapshot.to_dict(), ensure_ascii=False)
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute(
                """INSERT INTO checkpoints (thread_id, run_id, status, stage, snapshot_json, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?)
                   ON CONFLICT(thread_id, run_id) DO UPDATE SET
                       status = excluded.status,
                       stage = excluded.stage,
                       snapshot_json = excluded.snapshot_json,
                       updated_at = excluded.updated_at""",
                (thread_id, run_id, snapshot.status.value, snapshot.stage, snapshot_json, snapshot.updated_at),
            )
            conn.commit()
        finally:
            conn.close()

    def load(self, thread_id: str, run_id: str) -> Optional[RunCheckpoint]:
        conn = sqlite3.connect(self.db_path)
        try:
            cursor = conn.execute(
                "SELECT snapshot_json FROM checkpoints WHERE thread_id = ? AND run_id = ?",
                (thread_id, run_id),
            )
            row = cursor.fetchone()
        finally:
            conn.close()

        if row is None:
            return None
        return RunCheckpoint.from_dict(json.loads(row[0]))

    def list_runs(self, thread_id: str) -> List[Tuple[str, str, str, str]]:
        """List (run_id, status, stage, updated_at) for a thread, newest first."""
        conn = sqlite3.connect(self.db_path)
        try:
            cursor = conn.execute(
                """SELECT run_id, status, stage, updated_at FROM checkpoints
                   WHERE thread_id = ? ORDER BY updated_at DESC""",
                (thread_id,),
            )
            return cursor.fetchall()
        finally:
            conn.close()


def build_checkpoint_store(db_path: Optional[str] = None) -> CheckpointStore:
    """SQLite store when a path is configured, in-memory otherwise."""
    if db_path:
        LOGGER.info(f"Using SQLite checkpoint store at {db_path}")
        return SqliteCheckpointStore(db_path)
    LOGGER.info("Using in-memory checkpoint store")
    return MemoryCheckpointStore()
