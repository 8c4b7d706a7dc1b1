"""Workflow discovery: turn HTTP-triggered workflow definition files into tools.

Definitions live under ``<workflows_dir>/<format>/``. Only the JSON format is
supported. Each file is read fresh on every discovery pass.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from nano_mcp.exceptions import ToolExecutionError
from nano_mcp.models import Invocation, InvocationContext, Tool, convert_properties
from nano_mcp.proxy import (
	DEFAULT_TIMEOUT,
	client_scope,
	describe_http_error,
	resolve_base_url,
	response_payload,
	send_tool_request,
)

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9_-]")
_PATH_PARAM = re.compile(r":([a-zA-Z0-9_]+)(\?)?")

DATA_PARAM_DESCRIPTION = "Data to send to the workflow"


@dataclass(frozen=True)
class WorkflowFormat:
	directory: str
	extension: str
	parse: Callable[[str], Any]


FORMATS: tuple[WorkflowFormat, ...] = (
	WorkflowFormat(directory="json", extension=".json", parse=json.loads),
)


# -- Definition models --

class HttpTrigger(BaseModel):
	model_config = ConfigDict(extra="allow")

	method: str | None = None
	path: str | None = None


class WorkflowTrigger(BaseModel):
	model_config = ConfigDict(extra="allow")

	http: HttpTrigger | None = None


class WorkflowStep(BaseModel):
	model_config = ConfigDict(extra="allow")

	name: str = ""
	node: str = ""
	type: str = ""


class WorkflowDefinition(BaseModel):
	"""The fields of a workflow file that discovery cares about."""

	model_config = ConfigDict(extra="allow", populate_by_name=True)

	name: str | None = None
	description: str | None = None
	trigger: WorkflowTrigger | None = None
	input_schema: dict[str, Any] | None = Field(default=None, alias="inputSchema")
	steps: list[WorkflowStep] = []

	@property
	def http(self) -> HttpTrigger | None:
		return self.trigger.http if self.trigger else None

	@property
	def node_sequence(self) -> list[str]:
		return [step.node for step in self.steps if step.node]


@dataclass
class DiscoveredWorkflow:
	"""A parsed definition plus the file stem it was loaded from."""

	file_stem: str
	definition: WorkflowDefinition

	@property
	def display_name(self) -> str:
		return self.definition.name or self.file_stem

	@property
	def description(self) -> str:
		return self.definition.description or f"Workflow: {self.display_name}"


@dataclass(frozen=True)
class PathParam:
	name: str
	required: bool


# -- Derivation helpers --

def sanitize_tool_name(name: str) -> str:
	return _UNSAFE_CHARS.sub("_", name).lower()


def normalize_method(method: str | None) -> str:
	"""Uppercase the declared method. Wildcard means GET, absence means POST."""
	if not method:
		return "POST"
	if method == "*":
		return "GET"
	return method.upper()


def extract_path_params(path: str) -> list[PathParam]:
	return [
		PathParam(name=match.group(1), required=not match.group(2))
		for match in _PATH_PARAM.finditer(path)
	]


def extract_schema(definition: WorkflowDefinition) -> dict[str, dict[str, Any]]:
	"""Declared inputSchema first, then path segments, then a generic `data` object."""
	declared = convert_properties(definition.input_schema)
	if declared:
		return declared

	http = definition.http
	params = extract_path_params(http.path) if http and http.path else []
	if params:
		schema: dict[str, dict[str, Any]] = {}
		for param in params:
			entry: dict[str, Any] = {
				"type": {"type": "string"},
				"description": f"Path parameter: {param.name}",
			}
			if not param.required:
				entry["required"] = False
			schema[param.name] = entry
		return schema

	return {"data": {"type": {"type": "object"}, "description": DATA_PARAM_DESCRIPTION}}


def workflow_payload(params: dict[str, Any]) -> dict[str, Any]:
	"""The nested `data` object when one was given, else the parameters themselves."""
	data = params.get("data")
	if isinstance(data, dict):
		return data
	return {k: v for k, v in params.items() if k != "context"}


# -- Loading --

def load_workflows(
	workflows_dir: str | Path,
	exclude: Iterable[str] | None = None,
) -> list[DiscoveredWorkflow]:
	"""Parse every definition file under the supported format directories.

	Missing directories and unparseable files are logged and skipped.
	"""
	excluded = set(exclude or ())
	base = Path(workflows_dir)
	found: list[DiscoveredWorkflow] = []

	for fmt in FORMATS:
		format_dir = base / fmt.directory
		if not format_dir.is_dir():
			logger.info("Workflow directory not found: %s", format_dir)
			continue

		files = sorted(
			p for p in format_dir.iterdir()
			if p.is_file() and p.name.endswith(fmt.extension)
		)
		logger.info("Found %d workflow files in %s", len(files), format_dir)

		for path in files:
			stem = path.name[: -len(fmt.extension)]
			if stem in excluded:
				logger.info("Skipping excluded workflow: %s", path.name)
				continue
			try:
				raw = fmt.parse(path.read_text(encoding="utf-8"))
				definition = WorkflowDefinition.model_validate(raw)
			except (OSError, ValueError, ValidationError) as exc:
				logger.error("Error processing workflow %s: %s", path.name, exc)
				continue
			found.append(DiscoveredWorkflow(file_stem=stem, definition=definition))

	return found


# -- Invocation --

def make_workflow_invocation(
	workflow_name: str,
	method: str,
	client: httpx.AsyncClient | None = None,
	timeout: float = DEFAULT_TIMEOUT,
) -> Invocation:
	"""Proxy to ``{base_url}/{workflow_name}`` using the workflow's method."""

	async def invoke(params: dict[str, Any], context: InvocationContext | None = None) -> Any:
		base_url = resolve_base_url()
		try:
			async with client_scope(client, timeout) as http:
				response = await send_tool_request(
					http, base_url, workflow_name, method, workflow_payload(params),
				)
				response.raise_for_status()
				return response_payload(response)
		except httpx.HTTPError as exc:
			raise ToolExecutionError(
				f"Error executing workflow {workflow_name}: {describe_http_error(exc)}",
				tool_name=workflow_name,
			) from exc

	return invoke


def workflow_to_tool(
	workflow: DiscoveredWorkflow,
	client: httpx.AsyncClient | None = None,
	timeout: float = DEFAULT_TIMEOUT,
) -> Tool | None:
	"""Build the proxying tool, or None when the workflow has no HTTP trigger."""
	http = workflow.definition.http
	if http is None:
		logger.info("Skipping workflow %s: No HTTP trigger", workflow.file_stem)
		return None

	method = normalize_method(http.method)
	return Tool(
		name=sanitize_tool_name(workflow.file_stem),
		description=workflow.description,
		schema=extract_schema(workflow.definition),
		invoke=make_workflow_invocation(workflow.file_stem, method, client, timeout),
		http_method=method,
		source="workflow",
	)


def discover_workflow_tools(
	workflows_dir: str | Path,
	exclude: Iterable[str] | None = None,
	client: httpx.AsyncClient | None = None,
	timeout: float = DEFAULT_TIMEOUT,
) -> list[Tool]:
	"""Discover HTTP-triggered workflows as proxying tools."""
	tools: list[Tool] = []
	for workflow in load_workflows(workflows_dir, exclude):
		try:
			tool = workflow_to_tool(workflow, client, timeout)
		except Exception as exc:
			logger.error("Error processing workflow %s: %s", workflow.file_stem, exc)
			continue
		if tool is not None:
			tools.append(tool)
			logger.info("Added workflow as tool: %s (HTTP method: %s)", workflow.file_stem, tool.http_method)
	return tools
