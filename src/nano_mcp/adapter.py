"""Convert registered nodes into Tool descriptors."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Iterable
from typing import Any

from nano_mcp.exceptions import ToolExecutionError, ToolNotFoundError
from nano_mcp.models import (
	Invocation,
	InvocationContext,
	Node,
	NodeContext,
	NodeResponse,
	RequestView,
	Tool,
	convert_properties,
)
from nano_mcp.registry import NodeRegistry

logger = logging.getLogger(__name__)

NODE_KIND = "Nanoservice node"


def describe_node(name: str, node: Node) -> str:
	"""Prefer a node's own `description`, then its docstring summary."""
	description = getattr(node, "description", "") or ""
	if not description:
		doc = inspect.getdoc(type(node)) or ""
		description = doc.split("\n\n", 1)[0].strip() if doc else ""
	return description or f"{NODE_KIND}: {name}"


def strip_context(params: dict[str, Any]) -> dict[str, Any]:
	"""Copy of `params` without the reserved ``context`` key."""
	return {k: v for k, v in params.items() if k != "context"}


async def call_node(node: Node, ctx: NodeContext, inputs: dict[str, Any]) -> NodeResponse:
	"""Run a node handler, awaiting it if needed, and normalise the result."""
	result = node.handle(ctx, inputs)
	if inspect.isawaitable(result):
		result = await result
	if isinstance(result, NodeResponse):
		return result
	return NodeResponse(data=result)


def build_node_context(params: dict[str, Any], context: InvocationContext | None) -> NodeContext:
	if context is None:
		raw = params.get("context")
		context = InvocationContext.from_mapping(raw if isinstance(raw, dict) else None)
	request = RequestView(
		body=strip_context(params),
		method=context.method or "POST",
		headers=dict(context.headers),
		query=dict(context.query),
		params=dict(context.params),
	)
	return NodeContext(id=context.caller_id, request=request)


def make_node_invocation(registry: NodeRegistry, name: str) -> Invocation:
	"""Build the invocation for node `name`.

	The node is looked up in the live registry on every call.
	"""

	async def invoke(params: dict[str, Any], context: InvocationContext | None = None) -> Any:
		node = registry.get(name)
		if node is None:
			raise ToolNotFoundError(f"Node not found: {name}", tool_name=name)

		ctx = build_node_context(params, context)
		try:
			response = await call_node(node, ctx, strip_context(params))
		except Exception as exc:
			raise ToolExecutionError(f"Error executing node {name}: {exc}", tool_name=name) from exc
		if response.error:
			raise ToolExecutionError(f"Error executing node {name}: {response.error}", tool_name=name)
		return response.payload

	return invoke


def node_to_tool(registry: NodeRegistry, name: str, node: Node) -> Tool:
	return Tool(
		name=name,
		description=describe_node(name, node),
		schema=convert_properties(getattr(node, "input_schema", None)),
		invoke=make_node_invocation(registry, name),
		source="node",
	)


def nodes_to_tools(registry: NodeRegistry, exclude: Iterable[str] | None = None) -> list[Tool]:
	"""One Tool per registered node, skipping exact-match names in `exclude`."""
	excluded = set(exclude or ())
	tools = [
		node_to_tool(registry, name, node)
		for name, node in registry.list().items()
		if name not in excluded
	]
	logger.debug("Converted %d nodes to tools (%d excluded)", len(tools), len(excluded))
	return tools
