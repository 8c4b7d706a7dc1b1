"""Merge node, workflow and chain tools into one deduplicated list.

Priority is fixed: nodes, then workflows, then the `chain_tools` meta-tool.
Names are compared case-insensitively and the first source to claim a name
keeps it. A failing source contributes nothing and never aborts the others.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import httpx

from nano_mcp.adapter import nodes_to_tools
from nano_mcp.chainer import (
	create_chain_executor_tool,
	create_node_sequence_tool,
	discover_node_sequences_from_workflows,
)
from nano_mcp.models import Tool
from nano_mcp.proxy import DEFAULT_TIMEOUT
from nano_mcp.registry import NodeRegistry
from nano_mcp.workflows import discover_workflow_tools

logger = logging.getLogger(__name__)


@dataclass
class AggregationOptions:
	"""Which sources to aggregate and how."""

	discover_nodes: bool = True
	discover_workflows: bool = False
	prioritize_nodes: bool = True
	include_chain_tool: bool = False
	workflows_dir: str | Path = "workflows"
	excluded_nodes: list[str] = field(default_factory=list)
	excluded_workflows: list[str] = field(default_factory=list)

	def with_overrides(self, **changes: Any) -> AggregationOptions:
		return replace(self, **changes)


class _SeenNames:
	"""Case-insensitive first-write-wins name set."""

	def __init__(self) -> None:
		self._owners: dict[str, str] = {}

	def claim(self, tool: Tool) -> bool:
		key = tool.name.lower()
		owner = self._owners.get(key)
		if owner is not None:
			logger.info(
				"Dropping %s tool %s: name already provided by a %s tool",
				tool.source, tool.name, owner,
			)
			return False
		self._owners[key] = tool.source
		return True


def merge_tools(tools: Iterable[Tool], seen: _SeenNames | None = None) -> list[Tool]:
	"""Deduplicate `tools` in order, keeping the first of each case-insensitive name."""
	seen = seen or _SeenNames()
	return [tool for tool in tools if seen.claim(tool)]


class ToolAggregator:
	"""Facade over the tool sources, bound to one node registry."""

	def __init__(
		self,
		registry: NodeRegistry,
		client: httpx.AsyncClient | None = None,
		timeout: float = DEFAULT_TIMEOUT,
	) -> None:
		self._registry = registry
		self._client = client
		self._timeout = timeout

	# -- Individual sources --

	def node_tools(self, excluded_nodes: Iterable[str] | None = None) -> list[Tool]:
		return nodes_to_tools(self._registry, excluded_nodes)

	def workflow_tools(self, options: AggregationOptions) -> list[Tool]:
		"""Plain proxying workflow tools."""
		return discover_workflow_tools(
			options.workflows_dir, options.excluded_workflows, self._client, self._timeout,
		)

	async def chainable_workflow_tools(self, options: AggregationOptions) -> list[Tool]:
		return await discover_node_sequences_from_workflows(
			self._registry, options.workflows_dir, options.excluded_workflows,
			self._client, self._timeout,
		)

	async def _workflow_source(self, options: AggregationOptions) -> list[Tool]:
		if options.prioritize_nodes:
			return await self.chainable_workflow_tools(options)
		return self.workflow_tools(options)

	def chain_tool(self) -> Tool:
		return create_chain_executor_tool(self._client, timeout=self._timeout)

	def create_node_sequence_tool(
		self,
		name: str,
		description: str,
		sequence: list[str],
		schema: dict[str, dict[str, Any]] | None = None,
	) -> Tool:
		return create_node_sequence_tool(self._registry, name, description, sequence, schema)

	# -- Aggregation --

	async def get_all_tools(self, options: AggregationOptions | None = None) -> list[Tool]:
		"""Aggregate sources one at a time in priority order."""
		options = options or AggregationOptions()
		seen = _SeenNames()
		tools: list[Tool] = []

		if options.discover_nodes:
			try:
				tools.extend(merge_tools(self.node_tools(options.excluded_nodes), seen))
			except Exception as exc:
				logger.error("Error during node discovery: %s", exc)

		if options.discover_workflows:
			try:
				tools.extend(merge_tools(await self._workflow_source(options), seen))
			except Exception as exc:
				logger.error("Error during workflow discovery: %s", exc)

		if options.include_chain_tool:
			try:
				tools.extend(merge_tools([self.chain_tool()], seen))
			except Exception as exc:
				logger.error("Error creating chain tool: %s", exc)

		return tools

	async def fetch_available_tools(self, options: AggregationOptions | None = None) -> list[Tool]:
		"""Aggregate all configured sources concurrently.

		Each source is isolated: a failure is logged and the others still
		contribute. Merging happens afterwards in the fixed priority order.
		"""
		options = options or AggregationOptions()

		async def nodes() -> list[Tool]:
			return self.node_tools(options.excluded_nodes)

		async def workflows() -> list[Tool]:
			return await self._workflow_source(options)

		async def chain() -> list[Tool]:
			return [self.chain_tool()]

		sources: list[tuple[str, Callable[[], Awaitable[list[Tool]]]]] = []
		if options.discover_nodes:
			sources.append(("nodes", nodes))
		if options.discover_workflows:
			sources.append(("workflows", workflows))
		if options.include_chain_tool:
			sources.append(("chain", chain))

		results = await asyncio.gather(*(fetch() for _, fetch in sources), return_exceptions=True)

		seen = _SeenNames()
		tools: list[Tool] = []
		for (label, _), result in zip(sources, results):
			if isinstance(result, BaseException):
				logger.error("Error fetching tools from source %s: %s", label, result)
				continue
			tools.extend(merge_tools(result, seen))
		return tools
