"""Tool invoker: per-call isolation, ordering, context injection, control results."""

import pytest
from langchain_core.messages import HumanMessage, ToolMessage
from langchain_core.tools import StructuredTool

from taskAgent.graph.nodes import build_tools_node, invoke_tool
from taskAgent.graph.results import ControlResult
from taskAgent.graph.state import HandoffRequest, MutationStatus, PendingMutation, apply_update, initial_task_state

from tests.helpers import tool_call_message


def _round_state(*calls):
    state = initial_task_state(
        messages=[HumanMessage(content="go")],
        agent_name="assistant",
        max_loops=10,
        max_reflection_steps=3,
    )
    return apply_update(state, {"task_engine_messages": [tool_call_message(*calls)], "loop_counter": 1})


@pytest.fixture
def tools_node(settings, tool_registry, ledger):
    return build_tools_node(
        resolve_tools=lambda ctx: tool_registry.resolve_tools(ctx),
        settings=settings,
        mutation_ledger=ledger,
    )


def _observations(result):
    return [m for m in result.patch["task_engine_messages"] if isinstance(m, ToolMessage)]


class TestToolsNode:
    @pytest.mark.asyncio
    async def test_failure_is_isolated_to_its_call(self, tools_node, context):
        state = _round_state(
            ("lookup", {"query": "a"}, "c1"),
            ("flaky_lookup", {"query": "b"}, "c2"),
            ("lookup", {"query": "c"}, "c3"),
        )

        result = await tools_node(state, context)

        observations = _observations(result)
        assert [m.tool_call_id for m in observations] == ["c1", "c2", "c3"]
        assert [m.status for m in observations] == ["success", "error", "success"]
        assert observations[0].content == "result for a"
        assert "backend unavailable" in observations[1].content
        assert observations[2].content == "result for c"

    @pytest.mark.asyncio
    async def test_observations_keep_emission_order(self, tools_node, context):
        state = _round_state(
            ("sleepy", {"label": "slow", "delay": 0.05}, "c1"),
            ("sleepy", {"label": "fast", "delay": 0.0}, "c2"),
        )

        result = await tools_node(state, context)

        assert [m.content for m in _observations(result)] == ["slow", "fast"]

    @pytest.mark.asyncio
    async def test_unknown_tool_becomes_error_observation(self, tools_node, context):
        state = _round_state(("does_not_exist", {}, "c1"))

        result = await tools_node(state, context)

        observation = _observations(result)[0]
        assert observation.status == "error"
        assert "does_not_exist" in observation.content

    @pytest.mark.asyncio
    async def test_context_is_injected(self, tools_node, context):
        state = _round_state(("whoami", {}, "c1"))

        result = await tools_node(state, context)

        assert _observations(result)[0].content == "acme:u-7"

    @pytest.mark.asyncio
    async def test_review_fields_are_reset(self, tools_node, context):
        state = apply_update(
            _round_state(("lookup", {"query": "a"}, "c1")),
            {"review_required": ["c1"], "approved_call_ids": ["c1"]},
        )

        result = await tools_node(state, context)

        assert result.patch["review_required"] == []
        assert result.patch["approved_call_ids"] == []
        assert result.patch["review"] is None


class TestControlResults:
    @pytest.mark.asyncio
    async def test_first_handoff_of_a_round_wins(self, settings, context):
        def make(target):
            def transfer(task: str) -> ControlResult:
                return ControlResult(
                    content=f"Successfully transferred to {target}",
                    handoff=HandoffRequest("billing", target, {"task": task}),
                )
            return StructuredTool.from_function(func=transfer, name=f"peer_transfer_to_{target}",
                                                description=f"Hand off to {target}")

        tools = [make("support"), make("shipping")]
        node = build_tools_node(resolve_tools=lambda ctx: tools, settings=settings)
        state = _round_state(
            ("peer_transfer_to_support", {"task": "ticket"}, "c1"),
            ("peer_transfer_to_shipping", {"task": "parcel"}, "c2"),
        )

        result = await node(state, context)

        assert result.patch["handoff"].to_agent == "support"
        assert [m.content for m in _observations(result)] == [
            "Successfully transferred to support",
            "Successfully transferred to shipping",
        ]

    @pytest.mark.asyncio
    async def test_patch_mutations_are_proposed_to_ledger(self, settings, context, ledger):
        def stage_change(record_id: str) -> ControlResult:
            mutation = PendingMutation(id=f"mut_{record_id}", description=f"delete {record_id}")
            return ControlResult(content="staged", patch={"pending_mutations": {mutation.id: mutation}})

        tool = StructuredTool.from_function(func=stage_change, name="stage_change", description="Stage a change")
        node = build_tools_node(resolve_tools=lambda ctx: [tool], settings=settings, mutation_ledger=ledger)

        result = await node(_round_state(("stage_change", {"record_id": "9"}, "c1")), context)

        assert result.patch["pending_mutations"]["mut_9"].status is MutationStatus.PENDING
        assert ledger.get("mut_9") is not None


class TestInvokeTool:
    @pytest.mark.asyncio
    async def test_missing_tool(self, context):
        invocation = await invoke_tool(None, {"name": "ghost", "args": {}, "id": "c1"}, context)
        assert invocation.observation.is_error
        assert invocation.observation.call_id == "c1"
