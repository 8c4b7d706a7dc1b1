"""MCP stdio server that proxies tool calls to a nanoservice HTTP backend.

The tool list is fetched from the backend on every list request and cached for
the calls that follow. Calls are forwarded as plain HTTP requests to
``{base_url}/{tool_name}``; `chain_tools` is run step by step through the
backend's execute endpoint.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

import httpx
from mcp import types
from mcp.server import Server
from mcp.server.stdio import stdio_server
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from nano_mcp.chainer import CHAIN_TOOL_NAME, run_remote_chain
from nano_mcp.exceptions import ToolExecutionError, ToolNotFoundError
from nano_mcp.models import protocol_input_schema
from nano_mcp.proxy import (
	DEFAULT_TIMEOUT,
	build_url,
	describe_http_error,
	new_client,
	payload_text,
	resolve_base_url,
	response_payload,
	send_tool_request,
)

if TYPE_CHECKING:
	from nano_mcp.config import NanoMCPConfig

logger = logging.getLogger(__name__)

COMBINED_TOOLS_PATH = "auto-mcp-server/tools?mode=node_first"
TOOLS_PATH = "tools"
NODES_PATH = "nodes"
WORKFLOWS_PATH = "workflows"


class RemoteTool(BaseModel):
	"""A tool as advertised by the backend's discovery endpoints."""

	model_config = ConfigDict(extra="ignore", populate_by_name=True)

	name: str
	description: str = ""
	input_schema: dict[str, Any] = Field(default_factory=dict, alias="schema")
	http_method: str | None = Field(default=None, alias="httpMethod")

	@property
	def display_description(self) -> str:
		return self.description or f"Tool: {self.name}"


class DiscoveryUnavailable(Exception):
	"""One discovery endpoint could not be used."""


def _parse_tools(entries: Any, source: str) -> list[RemoteTool]:
	if not isinstance(entries, list):
		raise DiscoveryUnavailable(f"{source}: expected a list of tools")
	tools: list[RemoteTool] = []
	for entry in entries:
		try:
			tools.append(RemoteTool.model_validate(entry))
		except ValidationError as exc:
			logger.warning("Ignoring malformed tool from %s: %s", source, exc)
	return tools


def _node_entry(node: Any) -> dict[str, Any]:
	node = node if isinstance(node, dict) else {}
	name = node.get("name")
	return {
		"name": name,
		"description": node.get("description") or f"Node: {name}",
		"schema": node.get("schema") or {},
	}


def _workflow_entry(workflow: Any) -> dict[str, Any]:
	workflow = workflow if isinstance(workflow, dict) else {}
	name = str(workflow.get("path") or workflow.get("name") or "").lstrip("/")
	return {
		"name": name,
		"description": workflow.get("description") or f"Workflow: {name}",
		"schema": workflow.get("schema") or {},
	}


class ToolCatalog:
	"""Cached view of the backend's tools, refreshed through tiered discovery."""

	def __init__(
		self,
		base_url: str | None = None,
		client: httpx.AsyncClient | None = None,
		timeout: float = DEFAULT_TIMEOUT,
	) -> None:
		self.base_url = (base_url or resolve_base_url()).rstrip("/")
		self._client = client or new_client(timeout)
		self._tools: list[RemoteTool] = []

	@property
	def client(self) -> httpx.AsyncClient:
		return self._client

	@property
	def tools(self) -> list[RemoteTool]:
		return list(self._tools)

	def find(self, name: str) -> RemoteTool | None:
		for tool in self._tools:
			if tool.name == name:
				return tool
		return None

	async def _get_json(self, path: str) -> Any:
		try:
			response = await self._client.get(build_url(self.base_url, path))
			response.raise_for_status()
			return response.json()
		except httpx.HTTPError as exc:
			raise DiscoveryUnavailable(f"{path}: {describe_http_error(exc)}") from exc
		except ValueError as exc:
			raise DiscoveryUnavailable(f"{path}: malformed JSON ({exc})") from exc

	async def _from_tools_endpoint(self, path: str) -> list[RemoteTool]:
		data = await self._get_json(path)
		entries = data.get("tools") if isinstance(data, dict) else None
		return _parse_tools(entries or [], path)

	async def _from_nodes_and_workflows(self) -> list[RemoteTool]:
		node_tools: list[RemoteTool] | None = None
		try:
			nodes = await self._get_json(NODES_PATH)
			node_tools = _parse_tools([_node_entry(n) for n in nodes or []], NODES_PATH)
			logger.info("Found %d nodes directly", len(node_tools))
		except (DiscoveryUnavailable, TypeError) as exc:
			logger.warning("Nodes endpoint failed: %s", exc)

		try:
			workflows = await self._get_json(WORKFLOWS_PATH)
			workflow_tools = _parse_tools([_workflow_entry(w) for w in workflows or []], WORKFLOWS_PATH)
			logger.info("Found %d workflows directly", len(workflow_tools))
		except (DiscoveryUnavailable, TypeError) as exc:
			logger.warning("Workflows endpoint failed: %s", exc)
			if node_tools is None:
				raise DiscoveryUnavailable("nodes and workflows endpoints both failed") from exc
			return node_tools

		if node_tools is None:
			return workflow_tools
		taken = {tool.name.lower() for tool in node_tools}
		unique = [tool for tool in workflow_tools if tool.name.lower() not in taken]
		logger.info("Adding %d unique workflows (prioritizing nodes)", len(unique))
		return node_tools + unique

	async def refresh(self) -> list[RemoteTool]:
		"""Re-fetch the tool list, trying each discovery tier in turn."""
		tiers = (
			("auto-mcp-server endpoint (node-first mode)", lambda: self._from_tools_endpoint(COMBINED_TOOLS_PATH)),
			("base /tools endpoint", lambda: self._from_tools_endpoint(TOOLS_PATH)),
			("nodes and workflows endpoints", self._from_nodes_and_workflows),
		)
		logger.info("Fetching tools from %s", self.base_url)
		for label, fetch in tiers:
			try:
				tools = await fetch()
			except DiscoveryUnavailable as exc:
				logger.warning("Tool discovery via %s failed: %s", label, exc)
				continue
			logger.info("Found %d tools via %s", len(tools), label)
			self._tools = tools
			return self.tools

		logger.error("All tool discovery endpoints failed; no tools available")
		self._tools = []
		return []

	async def aclose(self) -> None:
		await self._client.aclose()


async def call_tool_by_name(catalog: ToolCatalog, name: str, arguments: dict[str, Any] | None) -> str:
	"""Invoke a backend tool and return its response body as text.

	Raises:
		ValueError: Missing tool name, or an empty chain sequence.
		ToolNotFoundError: The name is unknown even after one refresh.
		ToolExecutionError: The backend call failed or returned non-2xx.
	"""
	if not name:
		raise ValueError("Missing tool name")
	args = dict(arguments or {})

	tool = catalog.find(name)
	if tool is None:
		await catalog.refresh()
		tool = catalog.find(name)
		if tool is None:
			raise ToolNotFoundError(f"Tool not found: {name}", tool_name=name)

	if name == CHAIN_TOOL_NAME:
		logger.info("Executing chain_tools with sequence: %s", args.get("tool_sequence"))
		result = await run_remote_chain(
			catalog.client, catalog.base_url, args.get("tool_sequence"), args.get("initial_input") or {},
		)
		return payload_text(result)

	method = (tool.http_method or "POST").upper()
	logger.info("Calling %s/%s with method %s", catalog.base_url, name, method)
	try:
		response = await send_tool_request(catalog.client, catalog.base_url, name, method, args)
		response.raise_for_status()
	except httpx.HTTPError as exc:
		raise ToolExecutionError(describe_http_error(exc), tool_name=name) from exc
	return payload_text(response_payload(response))


async def handle_call(catalog: ToolCatalog, name: str, arguments: dict[str, Any] | None) -> types.CallToolResult:
	"""Run one call, converting any failure into an error result."""
	try:
		text = await call_tool_by_name(catalog, name, arguments)
	except Exception as exc:
		logger.error("Error executing tool %s: %s", name, exc)
		return types.CallToolResult(
			content=[types.TextContent(type="text", text=f"Error: {exc}")],
			isError=True,
		)
	return types.CallToolResult(content=[types.TextContent(type="text", text=text)])


def list_tool_definitions(tools: list[RemoteTool]) -> list[types.Tool]:
	return [
		types.Tool(
			name=tool.name,
			description=tool.display_description,
			inputSchema=protocol_input_schema(tool.input_schema),
		)
		for tool in tools
	]


def build_server(catalog: ToolCatalog, name: str = "nanoservice", version: str = "1.0.0") -> Server:
	"""Wire list and call handlers for `catalog` into a low-level MCP server."""
	server: Server = Server(name, version=version)

	@server.list_tools()
	async def list_tools() -> list[types.Tool]:
		tools = await catalog.refresh()
		for tool in tools:
			logger.debug("Available tool: %s - %s", tool.name, tool.description)
		return list_tool_definitions(tools)

	# Registered directly so arguments skip schema validation (every property
	# is advertised as a string) and the handler controls isError itself.
	async def call_tool(req: types.CallToolRequest) -> types.ServerResult:
		result = await handle_call(catalog, req.params.name, req.params.arguments)
		return types.ServerResult(result)

	server.request_handlers[types.CallToolRequest] = call_tool
	return server


def _log_unhandled(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
	exc = context.get("exception")
	if exc is not None:
		logger.error("Unhandled exception in event loop: %s", context.get("message", ""), exc_info=exc)
	else:
		logger.error("Unhandled event loop error: %s", context.get("message", context))


async def serve(config: NanoMCPConfig) -> None:
	"""Warm the tool cache, then serve MCP over stdio until the stream closes."""
	asyncio.get_running_loop().set_exception_handler(_log_unhandled)
	logger.info("Using nanoservice URL: %s", config.server.base_url)

	catalog = ToolCatalog(config.server.base_url, timeout=config.server.timeout)
	try:
		await catalog.refresh()
		server = build_server(catalog, config.server.name, config.server.version)
		async with stdio_server() as (read_stream, write_stream):
			logger.info("MCP server running on stdio transport")
			await server.run(read_stream, write_stream, server.create_initialization_options())
	finally:
		await catalog.aclose()


def run_mcp_server(config: NanoMCPConfig) -> int:
	"""Entry point for `nano-mcp serve`. Returns the process exit code."""
	try:
		asyncio.run(serve(config))
	except KeyboardInterrupt:
		return 0
	except Exception as exc:
		logger.exception("Fatal error running server: %s", exc)
		return 1
	return 0
