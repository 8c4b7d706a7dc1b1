"""Tests for tool aggregation across sources."""

from __future__ import annotations

import threading
from unittest.mock import patch

import pytest

from nano_mcp.aggregator import AggregationOptions, ToolAggregator, merge_tools
from nano_mcp.models import Tool


def http_workflow(**extra):
	return {"trigger": {"http": {"method": "POST"}}, **extra}


@pytest.fixture()
def aggregator(registry):
	return ToolAggregator(registry)


class TestMergeTools:
	def test_first_case_insensitive_name_wins(self):
		tools = [Tool(name="Foo", source="node"), Tool(name="foo", source="workflow"), Tool(name="bar")]
		merged = merge_tools(tools)
		assert [(t.name, t.source) for t in merged] == [("Foo", "node"), ("bar", "node")]


class TestGetAllTools:
	@pytest.mark.asyncio
	async def test_defaults_are_nodes_only(self, aggregator, registry, make_node, workflows_dir, write_workflow):
		registry.register("alpha", make_node())
		write_workflow(workflows_dir, "beta", http_workflow())

		tools = await aggregator.get_all_tools(AggregationOptions(workflows_dir=workflows_dir))

		assert [t.name for t in tools] == ["alpha"]

	@pytest.mark.asyncio
	async def test_priority_order(self, aggregator, registry, make_node, workflows_dir, write_workflow):
		registry.register("alpha", make_node())
		write_workflow(workflows_dir, "beta", http_workflow())
		options = AggregationOptions(
			discover_workflows=True, include_chain_tool=True, workflows_dir=workflows_dir,
		)

		tools = await aggregator.get_all_tools(options)

		assert [(t.name, t.source) for t in tools] == [
			("alpha", "node"), ("beta", "workflow"), ("chain_tools", "chain"),
		]

	@pytest.mark.asyncio
	@pytest.mark.parametrize("prioritize", [True, False])
	async def test_node_wins_name_collision(
		self, aggregator, registry, make_node, workflows_dir, write_workflow, prioritize,
	):
		registry.register("Foo", make_node())
		write_workflow(workflows_dir, "foo", http_workflow())
		options = AggregationOptions(
			discover_workflows=True, prioritize_nodes=prioritize, workflows_dir=workflows_dir,
		)

		tools = await aggregator.get_all_tools(options)

		assert [(t.name, t.source) for t in tools] == [("Foo", "node")]

	@pytest.mark.asyncio
	async def test_chain_tool_not_duplicated(self, aggregator, registry, make_node):
		registry.register("CHAIN_TOOLS", make_node())
		tools = await aggregator.get_all_tools(AggregationOptions(include_chain_tool=True))
		assert [t.name for t in tools] == ["CHAIN_TOOLS"]

	@pytest.mark.asyncio
	async def test_missing_workflow_dir_keeps_nodes(self, aggregator, registry, make_node, tmp_path):
		registry.register("alpha", make_node())
		options = AggregationOptions(discover_workflows=True, workflows_dir=tmp_path / "absent")
		assert [t.name for t in await aggregator.get_all_tools(options)] == ["alpha"]

	@pytest.mark.asyncio
	async def test_failing_source_is_isolated(self, aggregator, registry, make_node):
		registry.register("alpha", make_node())
		options = AggregationOptions(discover_workflows=True, include_chain_tool=True)

		with patch.object(ToolAggregator, "chainable_workflow_tools", side_effect=OSError("disk gone")):
			tools = await aggregator.get_all_tools(options)

		assert [t.name for t in tools] == ["alpha", "chain_tools"]

	@pytest.mark.asyncio
	async def test_failing_node_source_is_isolated(self, aggregator, workflows_dir, write_workflow):
		write_workflow(workflows_dir, "beta", http_workflow())
		options = AggregationOptions(discover_workflows=True, workflows_dir=workflows_dir)

		with patch.object(ToolAggregator, "node_tools", side_effect=RuntimeError("registry broken")):
			tools = await aggregator.get_all_tools(options)

		assert [t.name for t in tools] == ["beta"]

	@pytest.mark.asyncio
	async def test_excluded_nodes(self, aggregator, registry, make_node):
		registry.register("alpha", make_node())
		registry.register("secret", make_node())
		tools = await aggregator.get_all_tools(AggregationOptions(excluded_nodes=["secret"]))
		assert [t.name for t in tools] == ["alpha"]


class TestFetchAvailableTools:
	@pytest.mark.asyncio
	async def test_matches_sequential_order(self, aggregator, registry, make_node, workflows_dir, write_workflow):
		registry.register("alpha", make_node())
		registry.register("Beta", make_node())
		write_workflow(workflows_dir, "beta", http_workflow())
		write_workflow(workflows_dir, "gamma", http_workflow())
		options = AggregationOptions(
			discover_workflows=True, include_chain_tool=True, workflows_dir=workflows_dir,
		)

		concurrent = await aggregator.fetch_available_tools(options)
		sequential = await aggregator.get_all_tools(options)

		expected = ["alpha", "Beta", "gamma", "chain_tools"]
		assert [t.name for t in concurrent] == expected
		assert [t.name for t in sequential] == expected

	@pytest.mark.asyncio
	async def test_failing_source_is_isolated(self, aggregator, registry, make_node):
		registry.register("alpha", make_node())
		options = AggregationOptions(discover_workflows=True, include_chain_tool=True)

		with patch.object(ToolAggregator, "chainable_workflow_tools", side_effect=ValueError("bad")):
			tools = await aggregator.fetch_available_tools(options)

		assert [t.name for t in tools] == ["alpha", "chain_tools"]

	@pytest.mark.asyncio
	async def test_no_sources(self, aggregator):
		options = AggregationOptions(discover_nodes=False)
		assert await aggregator.fetch_available_tools(options) == []

	@pytest.mark.asyncio
	async def test_sources_run_on_loop_thread(self, registry, make_node, workflows_dir, write_workflow):
		threads = []

		class Recording(ToolAggregator):
			def node_tools(self, excluded_nodes=None):
				threads.append(threading.get_ident())
				return super().node_tools(excluded_nodes)

			def workflow_tools(self, options):
				threads.append(threading.get_ident())
				return super().workflow_tools(options)

			def chain_tool(self):
				threads.append(threading.get_ident())
				return super().chain_tool()

		registry.register("alpha", make_node())
		write_workflow(workflows_dir, "beta", http_workflow())
		options = AggregationOptions(
			discover_workflows=True, prioritize_nodes=False, include_chain_tool=True, workflows_dir=workflows_dir,
		)

		tools = await Recording(registry).fetch_available_tools(options)

		assert [t.name for t in tools] == ["alpha", "beta", "chain_tools"]
		assert threads == [threading.get_ident()] * 3


class TestNodeSequenceFactory:
	@pytest.mark.asyncio
	async def test_bound_to_registry(self, aggregator, registry, make_node):
		registry.register("echo", make_node(lambda inputs: {"seen": inputs}))
		tool = aggregator.create_node_sequence_tool("pipeline", "Echo pipeline", ["echo"])
		assert await tool.run({"x": 1}) == {"seen": {"x": 1}}
