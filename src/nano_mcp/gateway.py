"""Stateless HTTP tool gateway.

Serves the endpoints the protocol server discovers tools from:
``GET {mount}/tools``, ``POST {mount}/execute`` and ``GET {mount}``. The tool
set is recomputed on every request, so registry and workflow changes show up
without a restart.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from nano_mcp.aggregator import AggregationOptions, ToolAggregator, merge_tools
from nano_mcp.chainer import CHAIN_TOOL_NAME, next_inputs, validate_sequence
from nano_mcp.exceptions import ChainStepError, ToolExecutionError, ToolNotFoundError
from nano_mcp.models import InvocationContext, Tool

logger = logging.getLogger(__name__)

LIST_TOOLS_NAME = "list_available_tools"
CHAIN_EXCLUSION_NAME = "chain-tools"
NODE_FIRST = "node_first"


# -- Wire models --

class ExecuteRequest(BaseModel):
	"""Body of ``POST {mount}/execute``."""

	name: str = ""
	parameters: dict[str, Any] = {}
	context: dict[str, Any] | None = None


def list_tools_tool() -> Tool:
	"""Listing tool; executed by the gateway itself rather than through `invoke`."""
	return Tool(
		name=LIST_TOOLS_NAME,
		description="Get a list of all tools available on this MCP server.",
		schema={
			"category": {
				"type": {"type": "string"},
				"description": "Optional category filter",
				"required": False,
			},
		},
		source="manual",
	)


def describe_tools(tools: list[Tool], category: str | None = None) -> dict[str, Any]:
	"""Summaries of `tools`, optionally filtered by a case-insensitive category."""
	summaries = [
		{
			"name": tool.name,
			"description": tool.description,
			"schema": [
				{
					"name": param,
					"description": entry.get("description") or param,
					"type": (entry.get("type") or {}).get("type") or "string",
				}
				for param, entry in tool.schema.items()
			],
		}
		for tool in tools
	]
	needle = category.lower() if isinstance(category, str) and category else ""
	if needle:
		summaries = [
			s for s in summaries
			if needle in s["name"].lower() or needle in s["description"].lower()
		]
	return {"tools": summaries, "total": len(summaries), "category": needle or "all"}


class ToolGateway:
	"""Aggregated tools behind a list / execute / info surface."""

	def __init__(
		self,
		aggregator: ToolAggregator,
		options: AggregationOptions | None = None,
		extra_tools: list[Tool] | None = None,
	) -> None:
		self._aggregator = aggregator
		self._options = options or AggregationOptions()
		self._extra_tools = list(extra_tools or [])

	def _options_for(self, mode: str) -> AggregationOptions:
		excluded = self._options.excluded_workflows
		return self._options.with_overrides(
			prioritize_nodes=mode == NODE_FIRST,
			include_chain_tool=self._options.include_chain_tool and CHAIN_EXCLUSION_NAME not in excluded,
		)

	async def tools(self, mode: str = NODE_FIRST) -> list[Tool]:
		"""Manual tools first, then discovered tools, then the listing tool."""
		discovered = await self._aggregator.fetch_available_tools(self._options_for(mode))
		tools = [t for t in merge_tools(self._extra_tools + discovered) if t.name != LIST_TOOLS_NAME]
		if LIST_TOOLS_NAME not in self._options.excluded_workflows:
			tools.append(list_tools_tool())
		return tools

	async def list_tools(self, mode: str = NODE_FIRST) -> dict[str, Any]:
		tools = await self.tools(mode)
		return {
			"protocol": "MCP",
			"version": "1.0",
			"type": "stateless",
			"tools": [tool.to_listing() for tool in tools],
		}

	async def info(self) -> dict[str, Any]:
		tools = await self.tools()
		return {
			"protocol": "Model Context Protocol",
			"implementation": "Stateless MCP",
			"version": "1.0.0",
			"description": "Stateless MCP gateway for nanoservice nodes and workflows",
			"endpoints": [
				{"path": "/tools", "description": "List all available tools"},
				{"path": "/execute", "description": "Execute a specific tool"},
			],
			"tools_count": len(tools),
		}

	async def execute(
		self,
		name: str,
		parameters: Mapping[str, Any] | None = None,
		context: InvocationContext | None = None,
	) -> dict[str, Any]:
		"""Run tool `name` and wrap its output as ``{"result": ...}``.

		Raises:
			ValueError: `name` is empty, or a chain sequence is invalid.
			ToolNotFoundError: No tool with that exact name.
			ToolExecutionError: The tool or a chain step failed.
		"""
		if not name:
			raise ValueError("Invalid request: Missing tool name")

		params = dict(parameters or {})
		tools = await self.tools()
		table = {tool.name: tool for tool in tools}
		tool = table.get(name)
		if tool is None:
			raise ToolNotFoundError(f"Tool '{name}' not found", tool_name=name)

		logger.info("Executing tool %s", name)
		if name == LIST_TOOLS_NAME:
			return {"result": describe_tools(tools, params.get("category"))}
		if name == CHAIN_TOOL_NAME:
			return {"result": await self._run_chain(table, params, context)}

		try:
			result = await tool.run(params, context)
		except (ToolExecutionError, ToolNotFoundError):
			raise
		except Exception as exc:
			raise ToolExecutionError(f"Error executing tool: {exc}", tool_name=name) from exc
		return {"result": result}

	async def _run_chain(
		self,
		table: dict[str, Tool],
		params: dict[str, Any],
		context: InvocationContext | None,
	) -> dict[str, Any]:
		"""Run ``tool_sequence`` over this gateway's own tools."""
		sequence = validate_sequence(params.get("tool_sequence"))
		current = dict(params.get("initial_input") or {})
		final: Any = None

		for position, tool_name in enumerate(sequence, start=1):
			step_tool = table.get(tool_name)
			if step_tool is None or tool_name in (CHAIN_TOOL_NAME, LIST_TOOLS_NAME):
				raise ChainStepError(
					f"Tool '{tool_name}' in sequence not found", step=position, tool_name=tool_name,
				)
			try:
				output = await step_tool.run(current, context)
			except Exception as exc:
				raise ChainStepError(str(exc), step=position, tool_name=tool_name) from exc
			final = output
			current = next_inputs(final)

		return {"result": final, "chained_tools": sequence}


def execution_context(
	request_id: str,
	method: str,
	headers: Mapping[str, Any],
	query: Mapping[str, Any],
	body: Mapping[str, Any],
) -> InvocationContext:
	return InvocationContext(
		operation="execute",
		method=method,
		headers=dict(headers),
		query=dict(query),
		body=dict(body),
		client_id=request_id,
		client_name="mcp-server",
		client_version="1.0.0",
	)


def create_app(gateway: ToolGateway, mount_path: str = "/auto-mcp-server") -> FastAPI:
	"""Build the FastAPI app serving `gateway` under `mount_path`."""
	mount = "/" + mount_path.strip("/")
	app = FastAPI(title="nano-mcp gateway", version="1.0.0")

	def _error(status: int, message: str) -> JSONResponse:
		return JSONResponse(status_code=status, content={"error": message})

	@app.get(mount)
	async def get_info() -> dict[str, Any]:
		return await gateway.info()

	@app.get(f"{mount}/tools")
	async def get_tools(mode: str = NODE_FIRST) -> dict[str, Any]:
		return await gateway.list_tools(mode)

	@app.post(f"{mount}/execute")
	async def post_execute(req: ExecuteRequest, request: Request) -> Any:
		if req.context is not None:
			context = InvocationContext.from_mapping(req.context)
		else:
			context = execution_context(
				str(uuid.uuid4()),
				request.method,
				request.headers,
				request.query_params,
				req.model_dump(exclude={"context"}),
			)
		try:
			return await gateway.execute(req.name, req.parameters, context)
		except ToolNotFoundError as exc:
			return _error(404, str(exc))
		except ValueError as exc:
			return _error(400, str(exc))
		except ToolExecutionError as exc:
			logger.error("Tool execution failed: %s", exc)
			return _error(500, str(exc))

	return app
