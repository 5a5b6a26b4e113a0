"""Checkpoint stores and mutation ledgers (in-memory and SQLite)."""

import pytest
from langchain_core.messages import AIMessage, HumanMessage

from taskAgent.graph.state import MutationStatus, PendingMutation, RunCheckpoint, RunStatus
from taskAgent.persistence import (
    MemoryCheckpointStore,
    MemoryMutationLedger,
    SqliteCheckpointStore,
    SqliteMutationLedger,
    build_checkpoint_store,
    build_mutation_ledger,
)
from taskAgent.utils.error_handler import MutationStateError


def _checkpoint(status=RunStatus.RUNNING, stage="router"):
    return RunCheckpoint(
        thread_id="t1",
        run_id="r1",
        status=status,
        stage=stage,
        messages=[HumanMessage(content="hi"), AIMessage(content="hello")],
    )


@pytest.fixture(params=["memory", "sqlite"])
def checkpoint_store(request, tmp_path):
    if request.param == "memory":
        return MemoryCheckpointStore()
    return SqliteCheckpointStore(str(tmp_path / "data" / "checkpoints.db"))


@pytest.fixture(params=["memory", "sqlite"])
def mutation_ledger(request, tmp_path):
    if request.param == "memory":
        return MemoryMutationLedger()
    return SqliteMutationLedger(str(tmp_path / "mutations.db"))


class TestCheckpointStore:
    def test_load_missing_returns_none(self, checkpoint_store):
        assert checkpoint_store.load("t1", "nope") is None

    def test_save_overwrites(self, checkpoint_store):
        checkpoint_store.save("t1", "r1", _checkpoint())
        checkpoint_store.save("t1", "r1", _checkpoint(status=RunStatus.COMPLETED, stage="end"))

        loaded = checkpoint_store.load("t1", "r1")

        assert loaded.status is RunStatus.COMPLETED
        assert loaded.stage == "end"
        assert [m.content for m in loaded.messages] == ["hi", "hello"]

    def test_loaded_snapshot_is_independent(self, checkpoint_store):
        checkpoint = _checkpoint()
        checkpoint_store.save("t1", "r1", checkpoint)
        checkpoint.messages.append(HumanMessage(content="not saved"))

        assert len(checkpoint_store.load("t1", "r1").messages) == 2

    def test_runs_are_keyed_by_thread_and_run(self, checkpoint_store):
        checkpoint_store.save("t1", "r1", _checkpoint())
        checkpoint_store.save("t1", "r2", _checkpoint(stage="coordinator"))

        assert checkpoint_store.load("t1", "r2").stage == "coordinator"
        assert checkpoint_store.load("t2", "r1") is None
        assert len(checkpoint_store.list_runs("t1")) == 2


class TestMutationLedger:
    def test_reproposing_the_same_pending_change_is_a_no_op(self, mutation_ledger):
        first = mutation_ledger.propose(PendingMutation(id="mut_1", description="update 1", arguments={"v": 1}))
        again = mutation_ledger.propose(PendingMutation(id="mut_1", description="update 1", arguments={"v": 1}))

        assert first.status is MutationStatus.PENDING
        assert again == first

    def test_reproposing_with_different_arguments_fails(self, mutation_ledger):
        mutation_ledger.propose(PendingMutation(
            id="mut_1", description="update 1", tool_name="update_record", arguments={"record_id": "1"},
        ))

        with pytest.raises(MutationStateError):
            mutation_ledger.propose(PendingMutation(
                id="mut_1", description="update 99", tool_name="update_record", arguments={"record_id": "99"},
            ))
        assert mutation_ledger.get("mut_1").arguments == {"record_id": "1"}

    def test_reproposing_a_decided_change_fails(self, mutation_ledger):
        mutation_ledger.propose(PendingMutation(id="mut_1", description="update 1", arguments={"v": 1}))
        mutation_ledger.approve("mut_1")

        with pytest.raises(MutationStateError):
            mutation_ledger.propose(PendingMutation(id="mut_1", description="update 1", arguments={"v": 1}))
        assert mutation_ledger.get("mut_1").status is MutationStatus.APPROVED

    def test_annotate_keeps_status(self, mutation_ledger):
        mutation_ledger.propose(PendingMutation(id="mut_1", description="update 1"))
        mutation_ledger.approve("mut_1")

        annotated = mutation_ledger.annotate("mut_1", "not executed")

        assert annotated.status is MutationStatus.APPROVED
        assert mutation_ledger.get("mut_1").description == "update 1 [not executed]"
        with pytest.raises(MutationStateError):
            mutation_ledger.annotate("missing", "note")

    def test_approve_then_reject_fails(self, mutation_ledger):
        mutation_ledger.propose(PendingMutation(id="mut_1", description="update 1"))

        assert mutation_ledger.approve("mut_1").status is MutationStatus.APPROVED
        with pytest.raises(MutationStateError):
            mutation_ledger.reject("mut_1")
        assert mutation_ledger.get("mut_1").status is MutationStatus.APPROVED

    def test_reject_is_terminal(self, mutation_ledger):
        mutation_ledger.propose(PendingMutation(id="mut_1", description="update 1"))
        mutation_ledger.reject("mut_1")

        with pytest.raises(MutationStateError):
            mutation_ledger.approve("mut_1")

    def test_unknown_mutation(self, mutation_ledger):
        with pytest.raises(MutationStateError):
            mutation_ledger.approve("missing")

    def test_list_filters_by_status(self, mutation_ledger):
        mutation_ledger.propose(PendingMutation(id="mut_1", description="update 1"))
        mutation_ledger.propose(PendingMutation(id="mut_2", description="update 2"))
        mutation_ledger.approve("mut_2")

        assert {m.id for m in mutation_ledger.list()} == {"mut_1", "mut_2"}
        assert [m.id for m in mutation_ledger.list(MutationStatus.PENDING)] == ["mut_1"]

    def test_arguments_are_kept(self, mutation_ledger):
        mutation_ledger.propose(PendingMutation(
            id="mut_1", description="update", tool_name="update_record", arguments={"record_id": "42"},
        ))
        stored = mutation_ledger.get("mut_1")
        assert stored.tool_name == "update_record"
        assert stored.arguments == {"record_id": "42"}


class TestBuilders:
    def test_memory_by_default(self):
        assert isinstance(build_checkpoint_store(None), MemoryCheckpointStore)
        assert isinstance(build_mutation_ledger(None), MemoryMutationLedger)

    def test_sqlite_when_path_given(self, tmp_path):
        db_path = str(tmp_path / "engine.db")
        assert isinstance(build_checkpoint_store(db_path), SqliteCheckpointStore)
        assert isinstance(build_mutation_ledger(db_path), SqliteMutationLedger)
