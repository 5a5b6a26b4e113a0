"""End-to-end runs through the assembled application with a scripted model."""

import itertools

import pytest
from langchain_core.messages import AIMessage

from taskAgent.agents import AgentConfig, AgentRegistry, PeerCommunicationConfig, SupervisorConfig
from taskAgent.graph.context import CallerContext
from taskAgent.graph.prompts import ABORT_OUTPUT_SYSTEM_PROMPT, DELEGATION_LIMIT_ANSWER
from taskAgent.graph.state import GateStatus, MutationStatus, RunStatus
from taskAgent.persistence import SqliteCheckpointStore, SqliteMutationLedger
from taskAgent.runtime import build_application
from taskAgent.utils.error_handler import ProtocolError

from tests.helpers import tool_call_message

THREAD, RUN = "thread-1", "run-1"
RECORD_ARGS = {"record_id": "42", "value": "blue"}


def _two_workers():
    return [
        AgentConfig(name="billing", description="Invoices and payments", peers=frozenset({"support"})),
        AgentConfig(name="support", description="Support tickets"),
    ]


class TestSingleWorkerRuns:
    @pytest.mark.asyncio
    async def test_greeting_gets_direct_reply(self, make_app, model, store, context):
        model.script("route", {"reasoning": "greeting", "response": "DIRECT_REPLY"})
        model.script("reply", AIMessage(content="Hello! How can I help?"))
        app = make_app()

        result = await app.run(THREAD, RUN, "hi", context)

        assert result.status is RunStatus.COMPLETED
        assert result.reply == "Hello! How can I help?"
        assert model.phases() == ["route", "reply"]
        checkpoint = store.load(THREAD, RUN)
        assert checkpoint.stage == "end"
        assert checkpoint.task_state is None

    @pytest.mark.asyncio
    async def test_router_failure_runs_the_task_engine(self, make_app, model, context):
        model.script("route", RuntimeError("classifier down"))
        model.script("plan", AIMessage(content="Hello there"))
        model.script("output", AIMessage(content="Hello! How can I help?"))
        app = make_app()

        result = await app.run(THREAD, RUN, "hi", context)

        assert result.status is RunStatus.COMPLETED
        assert result.reply == "Hello! How can I help?"
        assert model.phases() == ["route", "plan", "reflect", "output"]

    @pytest.mark.asyncio
    async def test_tool_round_then_answer(self, make_app, model, context):
        model.script(
            "plan",
            tool_call_message(("lookup", {"query": "Paris weather"}, "c1")),
            AIMessage(content="Paris is sunny"),
        )
        model.script("output", AIMessage(content="It is sunny in Paris."))
        app = make_app()

        result = await app.run(THREAD, RUN, "weather in Paris?", context)

        assert result.status is RunStatus.COMPLETED
        assert result.reply == "It is sunny in Paris."
        assert model.phases() == ["route", "plan", "plan", "reflect", "output"]
        second_round = model.calls_for("plan")[1]["messages"]
        assert any(getattr(m, "content", "") == "result for Paris weather" for m in second_round)
        assert [m.content for m in result.messages] == ["weather in Paris?", "It is sunny in Paris."]

    @pytest.mark.asyncio
    async def test_loop_budget_ends_in_abort_output(self, make_app, model, context):
        ids = itertools.count()
        model.always("plan", lambda: tool_call_message(("lookup", {"query": "more"}, f"c{next(ids)}")))
        model.script("output", AIMessage(content="Partial answer: the lookups never converged."))
        app = make_app()

        result = await app.run(THREAD, RUN, "research forever", context)

        assert result.status is RunStatus.COMPLETED
        assert len(model.calls_for("plan")) == 10
        assert model.calls_for("output")[0]["system_prompt"] == ABORT_OUTPUT_SYSTEM_PROMPT
        assert "reflect" not in model.phases()
        assert result.reply == "Partial answer: the lookups never converged."

    @pytest.mark.asyncio
    async def test_planner_failure_fails_the_run(self, make_app, model, store, context):
        model.script("plan", RuntimeError("upstream down"), RuntimeError("upstream down"))
        app = make_app()

        result = await app.run(THREAD, RUN, "weather in Paris?", context)

        assert result.status is RunStatus.FAILED
        assert result.error["type"] == "PlannerModelError"
        assert result.error["phase"] == "plan"
        checkpoint = store.load(THREAD, RUN)
        assert checkpoint.status is RunStatus.FAILED
        assert checkpoint.stage == "coordinator"
        assert checkpoint.task_node == "plan"
        assert checkpoint.messages[0].content == "weather in Paris?"

        with pytest.raises(ProtocolError):
            await app.run(THREAD, RUN, "weather in Paris?", context)


class TestReviewRuns:
    def _script_mutation(self, model):
        model.script(
            "plan",
            tool_call_message(("update_record", RECORD_ARGS, "w1")),
            AIMessage(content="Record 42 is now blue"),
        )
        model.script("output", AIMessage(content="Record 42 was updated to blue."))

    @pytest.mark.asyncio
    async def test_suspend_then_continue(self, make_app, model, store, ledger, writes, context):
        self._script_mutation(model)
        app = make_app()

        suspended = await app.run(THREAD, RUN, "set record 42 to blue", context)

        assert suspended.suspended
        assert suspended.interrupt["tool_call"]["args"] == RECORD_ARGS
        assert ledger.get(suspended.interrupt["mutation_id"]).status is MutationStatus.PENDING
        assert writes == []
        checkpoint = store.load(THREAD, RUN)
        assert checkpoint.status is RunStatus.SUSPENDED
        assert checkpoint.task_node == "review"

        result = await app.resume(THREAD, RUN, {"action": "continue"}, context)

        assert result.status is RunStatus.COMPLETED
        assert result.reply == "Record 42 was updated to blue."
        assert writes == [RECORD_ARGS]
        assert ledger.get(suspended.interrupt["mutation_id"]).status is MutationStatus.APPROVED
        assert model.phases() == ["route", "plan", "plan", "reflect", "output"]

    @pytest.mark.asyncio
    async def test_update_decision_skips_the_write(self, make_app, model, ledger, writes, context):
        model.script(
            "plan",
            tool_call_message(("update_record", RECORD_ARGS, "w1")),
            AIMessage(content="The user changed the value; nothing was written"),
        )
        app = make_app()
        suspended = await app.run(THREAD, RUN, "set record 42 to blue", context)

        result = await app.resume(
            THREAD, RUN, {"action": "update", "data": {"record_id": "42", "value": "green"}}, context
        )

        assert result.status is RunStatus.COMPLETED
        assert writes == []
        assert ledger.get(suspended.interrupt["mutation_id"]).status is MutationStatus.REJECTED

    @pytest.mark.asyncio
    async def test_call_id_reused_by_a_later_run_gets_its_own_record(self, make_app, model, ledger, writes):
        other_args = {"record_id": "99", "value": "red"}
        model.script(
            "plan",
            tool_call_message(("update_record", RECORD_ARGS, "w1")),
            AIMessage(content="Record 42 is now blue"),
            tool_call_message(("update_record", other_args, "w1")),
            AIMessage(content="Record 99 was left alone"),
        )
        model.script(
            "output",
            AIMessage(content="Record 42 was updated to blue."),
            AIMessage(content="Record 99 was not changed."),
        )
        app = make_app()
        first_context = CallerContext(thread_id="t-A", run_id="run-1")
        second_context = CallerContext(thread_id="t-B", run_id="run-1")

        first = await app.run("t-A", "run-1", "set record 42 to blue", first_context)
        await app.resume("t-A", "run-1", {"action": "continue"}, first_context)
        second = await app.run("t-B", "run-1", "set record 99 to red", second_context)

        assert second.suspended
        assert second.interrupt["tool_call"]["args"] == other_args
        assert second.interrupt["mutation_id"] != first.interrupt["mutation_id"]
        assert ledger.get(second.interrupt["mutation_id"]).status is MutationStatus.PENDING

        result = await app.resume("t-B", "run-1", {"action": "feedback", "data": "leave 99 alone"}, second_context)

        assert result.status is RunStatus.COMPLETED
        assert writes == [RECORD_ARGS]
        assert ledger.get(first.interrupt["mutation_id"]).status is MutationStatus.APPROVED
        rejected = ledger.get(second.interrupt["mutation_id"])
        assert rejected.status is MutationStatus.REJECTED
        assert rejected.arguments == other_args

    @pytest.mark.asyncio
    async def test_context_for_another_run_is_rejected(self, make_app, context):
        with pytest.raises(ProtocolError):
            await make_app().run(THREAD, "run-2", "hi", context)

    @pytest.mark.asyncio
    async def test_malformed_resume_terminates_review(self, make_app, model, store, ledger, writes, context):
        self._script_mutation(model)
        app = make_app()
        suspended = await app.run(THREAD, RUN, "set record 42 to blue", context)

        with pytest.raises(ProtocolError):
            await app.resume(THREAD, RUN, {"action": "approve"}, context)

        checkpoint = store.load(THREAD, RUN)
        assert checkpoint.status is RunStatus.FAILED
        assert checkpoint.review.status is GateStatus.TERMINATED
        assert checkpoint.task_node == "review"
        assert ledger.get(suspended.interrupt["mutation_id"]).status is MutationStatus.PENDING
        assert writes == []

    @pytest.mark.asyncio
    async def test_rerunning_a_suspended_run_is_rejected(self, make_app, model, context):
        self._script_mutation(model)
        app = make_app()
        await app.run(THREAD, RUN, "set record 42 to blue", context)

        with pytest.raises(ProtocolError):
            await app.run(THREAD, RUN, "set record 42 to blue", context)

    @pytest.mark.asyncio
    async def test_resume_requires_a_suspended_run(self, make_app, model, context):
        model.script("route", {"reasoning": "greeting", "response": "DIRECT_REPLY"})
        model.script("reply", AIMessage(content="Hello!"))
        app = make_app()
        await app.run(THREAD, RUN, "hi", context)

        with pytest.raises(ProtocolError):
            await app.resume(THREAD, RUN, {"action": "continue"}, context)
        with pytest.raises(ProtocolError):
            await app.resume(THREAD, "unknown-run", {"action": "continue"}, context)

    @pytest.mark.asyncio
    async def test_resume_from_another_instance(
        self, settings, model, tool_registry, approval_checker, writes, context, tmp_path
    ):
        db_path = str(tmp_path / "engine.db")

        def build():
            return build_application(
                settings,
                model=model,
                tool_registry=tool_registry,
                agent_registry=AgentRegistry([AgentConfig(name="assistant")]),
                supervisor_config=SupervisorConfig(),
                checkpoint_store=SqliteCheckpointStore(db_path),
                mutation_ledger=SqliteMutationLedger(db_path),
                approval_checker=approval_checker,
            )

        self._script_mutation(model)
        suspended = await build().run(THREAD, RUN, "set record 42 to blue", context)
        assert suspended.suspended

        result = await build().resume(THREAD, RUN, {"action": "continue"}, context)

        assert result.status is RunStatus.COMPLETED
        assert writes == [RECORD_ARGS]


class TestDelegation:
    @pytest.mark.asyncio
    async def test_coordinator_delegates_and_answers(self, make_app, model, store, context):
        model.script(
            "supervise",
            tool_call_message(("transfer_to_billing", {"task": "Check whether invoice 7 is paid"}, "s1")),
            AIMessage(content="Invoice 7 has been paid."),
        )
        model.script("plan", AIMessage(content="Invoice 7 is marked paid"))
        model.script("output", AIMessage(content="Invoice 7 is paid."))
        app = make_app(agents=_two_workers())

        result = await app.run(THREAD, RUN, "is invoice 7 paid?", context)

        assert result.status is RunStatus.COMPLETED
        assert result.reply == "Invoice 7 has been paid."
        assert model.phases() == ["route", "supervise", "plan", "reflect", "output", "supervise"]
        assert "Check whether invoice 7 is paid" in model.calls_for("plan")[0]["system_prompt"]
        second_supervise = model.calls_for("supervise")[1]["messages"]
        assert any(getattr(m, "content", "") == "Invoice 7 is paid." for m in second_supervise)
        assert store.load(THREAD, RUN).supervisor.visited == ["billing"]

    @pytest.mark.asyncio
    async def test_peer_handoff_runs_the_peer_next(self, make_app, model, store, context):
        model.script(
            "supervise",
            tool_call_message(("transfer_to_billing", {"task": "Refund invoice 7"}, "s1")),
            AIMessage(content="Refund issued and ticket opened."),
        )
        model.script(
            "plan",
            tool_call_message(("peer_transfer_to_support", {"task": "Open a ticket for the refund"}, "p1")),
            AIMessage(content="Refund issued, support will follow up"),
            AIMessage(content="Ticket opened"),
        )
        app = make_app(
            agents=_two_workers(),
            supervisor=SupervisorConfig(peer_communication=PeerCommunicationConfig(enabled=True)),
        )

        result = await app.run(THREAD, RUN, "refund invoice 7 and tell support", context)

        assert result.status is RunStatus.COMPLETED
        assert model.phases() == [
            "route", "supervise",
            "plan", "plan", "reflect", "output",
            "plan", "reflect", "output",
            "supervise",
        ]
        assert "Open a ticket for the refund" in model.calls_for("plan")[2]["system_prompt"]
        assert store.load(THREAD, RUN).supervisor.visited == ["billing", "support"]

    @pytest.mark.asyncio
    async def test_exhausted_hop_budget_returns_to_coordinator(self, make_app, model, store, context):
        model.script(
            "supervise",
            tool_call_message(("transfer_to_billing", {"task": "Refund invoice 7"}, "s1")),
            AIMessage(content="Refund issued."),
        )
        model.script(
            "plan",
            tool_call_message(("peer_transfer_to_support", {"task": "Open a ticket"}, "p1")),
            AIMessage(content="Refund issued"),
        )
        app = make_app(
            agents=_two_workers(),
            supervisor=SupervisorConfig(
                peer_communication=PeerCommunicationConfig(enabled=True, max_peer_hops=0)
            ),
        )

        result = await app.run(THREAD, RUN, "refund invoice 7", context)

        assert result.status is RunStatus.COMPLETED
        assert model.phases() == ["route", "supervise", "plan", "plan", "reflect", "output", "supervise"]
        assert store.load(THREAD, RUN).supervisor.visited == ["billing"]
        second_supervise = model.calls_for("supervise")[1]["messages"]
        assert any("was not performed" in str(getattr(m, "content", "")) for m in second_supervise)

    @pytest.mark.asyncio
    async def test_redelegated_worker_reusing_a_call_id_is_reviewed_again(
        self, make_app, model, ledger, writes, context
    ):
        second_args = {"record_id": "43", "value": "green"}
        model.script(
            "supervise",
            tool_call_message(("transfer_to_billing", {"task": "Set record 42 to blue"}, "s1")),
            tool_call_message(("transfer_to_billing", {"task": "Set record 43 to green"}, "s2")),
            AIMessage(content="Both records were updated."),
        )
        model.script(
            "plan",
            tool_call_message(("update_record", RECORD_ARGS, "w1")),
            AIMessage(content="Record 42 is blue"),
            tool_call_message(("update_record", second_args, "w1")),
            AIMessage(content="Record 43 is green"),
        )
        app = make_app(agents=_two_workers())

        first = await app.run(THREAD, RUN, "set 42 to blue and 43 to green", context)
        second = await app.resume(THREAD, RUN, {"action": "continue"}, context)

        assert second.suspended
        assert second.interrupt["tool_call"]["args"] == second_args
        assert second.interrupt["mutation_id"] != first.interrupt["mutation_id"]

        result = await app.resume(THREAD, RUN, {"action": "continue"}, context)

        assert result.status is RunStatus.COMPLETED
        assert result.reply == "Both records were updated."
        assert writes == [RECORD_ARGS, second_args]
        assert ledger.get(first.interrupt["mutation_id"]).status is MutationStatus.APPROVED
        assert ledger.get(second.interrupt["mutation_id"]).status is MutationStatus.APPROVED

    @pytest.mark.asyncio
    async def test_invalid_transfers_until_the_bound_still_reply(self, make_app, model, store, context):
        ids = itertools.count()
        model.always("supervise", lambda: tool_call_message(("transfer_to_ghost", {"task": "?"}, f"s{next(ids)}")))
        app = make_app(agents=_two_workers())

        result = await app.run(THREAD, RUN, "do something", context)

        assert result.status is RunStatus.COMPLETED
        assert result.reply == DELEGATION_LIMIT_ANSWER
        assert result.messages[-1].content == DELEGATION_LIMIT_ANSWER
        assert len(model.calls_for("supervise")) == 5
        assert "plan" not in model.phases()
        assert store.load(THREAD, RUN).supervisor.visited == []

    @pytest.mark.asyncio
    async def test_peer_tools_hidden_when_peer_routing_disabled(self, make_app, model, context):
        model.script(
            "supervise",
            tool_call_message(("transfer_to_billing", {"task": "Refund invoice 7"}, "s1")),
            AIMessage(content="Done."),
        )
        model.script("plan", AIMessage(content="Refund issued"))
        app = make_app(agents=_two_workers())

        await app.run(THREAD, RUN, "refund invoice 7", context)

        assert "peer_transfer_to_support" not in model.calls_for("plan")[0]["tools"]
