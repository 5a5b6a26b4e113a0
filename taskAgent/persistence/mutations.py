"""Ledger of PendingMutation records with atomic status transitions.

Mutations are touched by more than one actor (the engine proposing them and a
human approving or rejecting them), so a transition only succeeds while the
stored status is still ``pending``.
"""

from __future__ import annotations

import json
import os
import sqlite3
import threading
from dataclasses import replace
from typing import Dict, List, Optional, Protocol

from taskAgent.graph.state import MutationStatus, PendingMutation
from taskAgent.utils.error_handler import MutationStateError


class MutationLedger(Protocol):
    def propose(self, mutation: PendingMutation) -> PendingMutation:
        ...

    def get(self, mutation_id: str) -> Optional[PendingMutation]:
        ...

    def approve(self, mutation_id: str) -> PendingMutation:
        ...

    def reject(self, mutation_id: str) -> PendingMutation:
        ...

    def annotate(self, mutation_id: str, note: str) -> PendingMutation:
        ...


def check_reproposal(existing: PendingMutation, mutation: PendingMutation) -> PendingMutation:
    """Re-proposing is only a no-op for the same still-pending change."""
    if existing.is_terminal:
        raise MutationStateError(f"Mutation {mutation.id} is already {existing.status.value}")
    if (existing.tool_name, _canonical(existing.arguments)) != (mutation.tool_name, _canonical(mutation.arguments)):
        raise MutationStateError(f"Mutation {mutation.id} already exists with different arguments")
    return existing


def _canonical(arguments) -> str:
    return json.dumps(arguments, ensure_ascii=False, sort_keys=True, default=str)


class MemoryMutationLedger:
    def __init__(self) -> None:
        self._records: Dict[str, PendingMutation] = {}
        self._lock = threading.Lock()

    def propose(self, mutation: PendingMutation) -> PendingMutation:
        with self._lock:
            existing = self._records.get(mutation.id)
            if existing is not None:
                return check_reproposal(existing, mutation)
            self._records[mutation.id] = mutation
            return mutation

    def get(self, mutation_id: str) -> Optional[PendingMutation]:
        with self._lock:
            return self._records.get(mutation_id)

    def list(self, status: Optional[MutationStatus] = None) -> List[PendingMutation]:
        with self._lock:
            return [m for m in self._records.values() if status is None or m.status is status]

    def approve(self, mutation_id: str) -> PendingMutation:
        return self._transition(mutation_id, approve=True)

    def reject(self, mutation_id: str) -> PendingMutation:
        return self._transition(mutation_id, approve=False)

    def annotate(self, mutation_id: str, note: str) -> PendingMutation:
        with self._lock:
            current = self._records.get(mutation_id)
            if current is None:
                raise MutationStateError(f"Unknown mutation: {mutation_id}")
            updated = replace(current, description=f"{current.description} [{note}]")
            self._records[mutation_id] = updated
            return updated

    def _transition(self, mutation_id: str, *, approve: bool) -> PendingMutation:
        with self._lock:
            current = self._records.get(mutation_id)
            if current is None:
                raise MutationStateError(f"Unknown mutation: {mutation_id}")
            updated = current.approve() if approve else current.reject()
            self._records[mutation_id] = updated
            return updated


class SqliteMutationLedger:
    def __init__(self, db_path: str = "data/mutations.db"):
        db_dir = os.path.dirname(db_path)
        if db_dir and not os.path.exists(db_dir):
            os.makedirs(db_dir, exist_ok=True)

        self.db_path = db_path
        self._init_db()

    def _init_db(self):
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS pending_mutations (
                    id TEXT PRIMARY KEY,
                    description TEXT NOT NULL,
                    status TEXT NOT NULL,
                    tool_name TEXT,
                    arguments_json TEXT NOT NULL
                )
            """)
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _row_to_mutation(row) -> PendingMutation:
        return PendingMutation(
            id=row[0],
            description=row[1],
            status=MutationStatus(row[2]),
            tool_name=row[3],
            arguments=json.loads(row[4]),
        )

    def propose(self, mutation: PendingMutation) -> PendingMutation:
        conn = sqlite3.connect(self.db_path)
        try:
            cursor = conn.execute(
                """INSERT OR IGNORE INTO pending_mutations (id, description, status, tool_name, arguments_json)
                   VALUES (?, ?, ?, ?, ?)""",
                (
                    mutation.id,
                    mutation.description,
                    mutation.status.value,
                    mutation.tool_name,
                    json.dumps(mutation.arguments, ensure_ascii=False, default=str),
                ),
            )
            inserted = cursor.rowcount
            conn.commit()
        finally:
            conn.close()
        if inserted:
            return mutation
        return check_reproposal(self.get(mutation.id), mutation)

    def get(self, mutation_id: str) -> Optional[PendingMutation]:
        conn = sqlite3.connect(self.db_path)
        try:
            cursor = conn.execute(
                "SELECT id, description, status, tool_name, arguments_json FROM pending_mutations WHERE id = ?",
                (mutation_id,),
            )
            row = cursor.fetchone()
        finally:
            conn.close()
        return self._row_to_mutation(row) if row else None

    def list(self, status: Optional[MutationStatus] = None) -> List[PendingMutation]:
        query = "SELECT id, description, status, tool_name, arguments_json FROM pending_mutations"
        params: tuple = ()
        if status is not None:
            query += " WHERE status = ?"
            params = (status.value,)
        conn = sqlite3.connect(self.db_path)
        try:
            rows = conn.execute(query, params).fetchall()
        finally:
            conn.close()
        return [self._row_to_mutation(row) for row in rows]

    def approve(self, mutation_id: str) -> PendingMutation:
        return self._transition(mutation_id, MutationStatus.APPROVED)

    def reject(self, mutation_id: str) -> PendingMutation:
        return self._transition(mutation_id, MutationStatus.REJECTED)

    def annotate(self, mutation_id: str, note: str) -> PendingMutation:
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute(
                "UPDATE pending_mutations SET description = description || ? WHERE id = ?",
                (f" [{note}]", mutation_id),
            )
            conn.commit()
        finally:
            conn.close()
        current = self.get(mutation_id)
        if current is None:
            raise MutationStateError(f"Unknown mutation: {mutation_id}")
        return current

    def _transition(self, mutation_id: str, target: MutationStatus) -> PendingMutation:
        conn = sqlite3.connect(self.db_path)
        try:
            cursor = conn.execute(
                "UPDATE pending_mutations SET status = ? WHERE id = ? AND status = ?",
                (target.value, mutation_id, MutationStatus.PENDING.value),
            )
            conn.commit()
            changed = cursor.rowcount
        finally:
            conn.close()

        current = self.get(mutation_id)
        if current is None:
            raise MutationStateError(f"Unknown mutation: {mutation_id}")
        if changed == 0:
            raise MutationStateError(
                f"Mutation {mutation_id} is already {current.status.value}; cannot move to {target.value}"
            )
        return current


def build_mutation_ledger(db_path: Optional[str] = None) -> MutationLedger:
    if db_path:
        return SqliteMutationLedger(db_path)
    return MemoryMutationLedger()
