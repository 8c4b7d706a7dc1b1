"""Tool chaining: run tools in order, feeding each output into the next input.

Three pieces live here:

- `execute_node_sequence` runs named nodes from the local registry.
- `run_remote_chain` runs tools through a remote execute endpoint, so any tool
  the gateway exposes can take part, not only local nodes.
- Tool factories: a fixed node sequence as a tool, the `chain_tools`
  meta-tool, and workflows re-exposed as chainable tools.

Steps always run strictly one after another; step k+1 needs step k's output.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

import httpx

from nano_mcp.adapter import call_node, strip_context
from nano_mcp.exceptions import ChainStepError, ToolExecutionError, ToolNotFoundError
from nano_mcp.models import InvocationContext, NodeContext, RequestView, Tool
from nano_mcp.proxy import (
	DEFAULT_TIMEOUT,
	build_url,
	client_scope,
	describe_http_error,
	resolve_base_url,
)
from nano_mcp.registry import NodeRegistry
from nano_mcp.workflows import (
	DiscoveredWorkflow,
	extract_schema,
	load_workflows,
	make_workflow_invocation,
	normalize_method,
	sanitize_tool_name,
	workflow_payload,
)

logger = logging.getLogger(__name__)

CHAIN_TOOL_NAME = "chain_tools"
CHAIN_TOOL_DESCRIPTION = (
	"Chain multiple tools together, passing the output of one tool as input to the next. "
	"This is useful for complex operations that require multiple steps."
)
EXECUTE_PATH = "auto-mcp-server/execute"


def next_inputs(result: Any) -> dict[str, Any]:
	"""Shape a step's output as the next step's input object."""
	if isinstance(result, Mapping):
		return dict(result)
	return {"result": result}


def unwrap_result(data: Any) -> Any:
	"""Execute responses wrap their payload in `result`; fall back to the whole body."""
	if isinstance(data, Mapping) and data.get("result"):
		return data["result"]
	return data


# -- Local node sequences --

async def _run_node_step(registry: NodeRegistry, node_name: str, inputs: dict[str, Any]) -> Any:
	node = registry.get(node_name)
	if node is None:
		raise ToolNotFoundError(f"Node not found: {node_name}", tool_name=node_name)

	ctx = NodeContext(id="node-sequence", request=RequestView(body=inputs))
	response = await call_node(node, ctx, inputs)
	if response.error:
		raise ToolExecutionError(f"Error in node {node_name}: {response.error}", tool_name=node_name)
	return response.payload


async def execute_node_sequence(
	registry: NodeRegistry,
	sequence: list[str],
	initial_inputs: Mapping[str, Any] | None = None,
) -> Any:
	"""Run `sequence` against the live registry.

	Returns the last step's output, or an ``{"error", "step", "node"}`` dict
	for the first failing step. Later steps never run after a failure.
	"""
	if not sequence:
		return {"error": "No nodes specified for sequence execution"}

	current = dict(initial_inputs or {})
	final: Any = None
	for position, node_name in enumerate(sequence, start=1):
		try:
			final = await _run_node_step(registry, node_name, current)
		except Exception as exc:
			logger.warning("Node sequence failed at step %d (%s): %s", position, node_name, exc)
			return {
				"error": f"Error in node sequence at step {position} ({node_name}): {exc}",
				"step": position,
				"node": node_name,
			}
		current = next_inputs(final)
	return final


def create_node_sequence_tool(
	registry: NodeRegistry,
	name: str,
	description: str,
	sequence: list[str],
	schema: dict[str, dict[str, Any]] | None = None,
) -> Tool:
	"""Expose a fixed node sequence as a single tool."""
	steps = list(sequence)

	async def invoke(params: dict[str, Any], context: InvocationContext | None = None) -> Any:
		return await execute_node_sequence(registry, steps, strip_context(params))

	return Tool(
		name=name,
		description=description,
		schema=dict(schema or {}),
		invoke=invoke,
		source="chain",
	)


# -- Remote chains --

def validate_sequence(sequence: Any) -> list[str]:
	if not isinstance(sequence, list) or not sequence:
		raise ValueError("No tools specified in the sequence")
	return [str(name) for name in sequence]


async def run_remote_chain(
	client: httpx.AsyncClient,
	base_url: str,
	sequence: Any,
	initial_input: Mapping[str, Any] | None = None,
) -> Any:
	"""Execute each tool through ``POST {base_url}/auto-mcp-server/execute``.

	Raises ValueError for an empty sequence and ChainStepError for the first
	failing step; no request is issued for the steps after it.
	"""
	steps = validate_sequence(sequence)
	url = build_url(base_url, EXECUTE_PATH)
	current: dict[str, Any] = dict(initial_input or {})
	final: Any = None

	for position, tool_name in enumerate(steps, start=1):
		logger.info("Chain executing tool %d/%d: %s", position, len(steps), tool_name)
		try:
			response = await client.post(url, json={"name": tool_name, "parameters": current})
			response.raise_for_status()
			data = response.json()
		except httpx.HTTPError as exc:
			raise ChainStepError(describe_http_error(exc), step=position, tool_name=tool_name) from exc
		except ValueError as exc:
			raise ChainStepError(f"Malformed response: {exc}", step=position, tool_name=tool_name) from exc
		final = unwrap_result(data)
		current = next_inputs(final)

	return final


def create_chain_executor_tool(
	client: httpx.AsyncClient | None = None,
	base_url: str | None = None,
	timeout: float = DEFAULT_TIMEOUT,
) -> Tool:
	"""The `chain_tools` meta-tool, driven entirely by the caller's sequence."""

	async def invoke(params: dict[str, Any], context: InvocationContext | None = None) -> Any:
		sequence = params.get("tool_sequence")
		initial_input = params.get("initial_input") or {}
		try:
			async with client_scope(client, timeout) as http:
				result = await run_remote_chain(http, base_url or resolve_base_url(), sequence, initial_input)
		except (ValueError, ChainStepError) as exc:
			return {"error": str(exc)}
		return {"result": result, "chained_tools": sequence}

	return Tool(
		name=CHAIN_TOOL_NAME,
		description=CHAIN_TOOL_DESCRIPTION,
		schema={
			"tool_sequence": {
				"type": {"type": "array"},
				"description": "Array of tool names to execute in sequence",
			},
			"initial_input": {
				"type": {"type": "object"},
				"description": "The input data for the first tool in the sequence",
			},
		},
		invoke=invoke,
		source="chain",
	)


# -- Workflows as chainable tools --

def workflow_to_chainable_tool(
	registry: NodeRegistry,
	workflow: DiscoveredWorkflow,
	client: httpx.AsyncClient | None = None,
	timeout: float = DEFAULT_TIMEOUT,
) -> Tool | None:
	"""Like `workflows.workflow_to_tool`, but runs the workflow's nodes locally.

	Falls back to the HTTP proxy when the workflow declares no steps or any
	step's node is missing from the registry at call time.
	"""
	http = workflow.definition.http
	if http is None:
		logger.info("Skipping workflow %s: No HTTP trigger", workflow.file_stem)
		return None

	method = normalize_method(http.method)
	sequence = workflow.definition.node_sequence
	proxy = make_workflow_invocation(workflow.file_stem, method, client, timeout)

	async def invoke(params: dict[str, Any], context: InvocationContext | None = None) -> Any:
		if sequence and all(node_name in registry for node_name in sequence):
			return await execute_node_sequence(registry, sequence, workflow_payload(params))
		return await proxy(params, context)

	return Tool(
		name=sanitize_tool_name(workflow.file_stem),
		description=workflow.description,
		schema=extract_schema(workflow.definition),
		invoke=invoke,
		http_method=method,
		source="workflow",
	)


async def discover_node_sequences_from_workflows(
	registry: NodeRegistry,
	workflows_dir: str | Path,
	exclude: Iterable[str] | None = None,
	client: httpx.AsyncClient | None = None,
	timeout: float = DEFAULT_TIMEOUT,
) -> list[Tool]:
	"""Discover HTTP-triggered workflows as chainable tools."""
	workflows = load_workflows(workflows_dir, exclude)
	tools: list[Tool] = []
	for workflow in workflows:
		tool = workflow_to_chainable_tool(registry, workflow, client, timeout)
		if tool is not None:
			tools.append(tool)
			logger.info("Added workflow as chainable tool: %s (HTTP method: %s)", workflow.file_stem, tool.http_method)
	return tools
