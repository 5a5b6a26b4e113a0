"""Persistence helpers: run checkpoints and the mutation ledger."""

from .checkpointer import CheckpointStore, MemoryCheckpointStore, SqliteCheckpointStore, build_checkpoint_store
from .mutations import MemoryMutationLedger, MutationLedger, SqliteMutationLedger, build_mutation_ledger

__all__ = [
    "CheckpointStore",
    "MemoryCheckpointStore",
    "SqliteCheckpointStore",
    "build_checkpoint_store",
    "MemoryMutationLedger",
    "MutationLedger",
    "SqliteMutationLedger",
    "build_mutation_ledger",
]
