"""Data models shared by the registry, adapters, chainer and protocol server."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

HTTP_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")


def _as_dict(value: Any) -> dict[str, Any]:
	"""Copy `value` if it is a mapping; anything else becomes empty."""
	return dict(value) if isinstance(value, Mapping) else {}


@dataclass(frozen=True)
class InvocationContext:
	"""Describes the outer request that triggered a tool call.

	Built once per call, handed to the invocation by value, never retained.
	"""

	operation: str = ""
	method: str = ""
	headers: Mapping[str, Any] = field(default_factory=dict)
	query: Mapping[str, Any] = field(default_factory=dict)
	params: Mapping[str, Any] = field(default_factory=dict)
	body: Mapping[str, Any] = field(default_factory=dict)
	client_id: str = ""
	client_name: str = ""
	client_version: str = ""

	@property
	def caller_id(self) -> str:
		return self.client_id or self.operation or "mcp-execution"

	@classmethod
	def from_mapping(cls, data: Mapping[str, Any] | None) -> InvocationContext:
		"""Build a context from the loose dict shape HTTP callers send."""
		if not data:
			return cls()
		client = _as_dict(data.get("client"))
		return cls(
			operation=str(data.get("operation") or ""),
			method=str(data.get("method") or ""),
			headers=_as_dict(data.get("headers")),
			query=_as_dict(data.get("query")),
			params=_as_dict(data.get("params")),
			body=_as_dict(data.get("body")),
			client_id=str(client.get("id") or ""),
			client_name=str(client.get("name") or ""),
			client_version=str(client.get("version") or ""),
		)


@dataclass(frozen=True)
class RequestView:
	"""Synthetic request handed to a node in place of a real HTTP request."""

	body: Mapping[str, Any] = field(default_factory=dict)
	method: str = "POST"
	headers: Mapping[str, Any] = field(default_factory=dict)
	query: Mapping[str, Any] = field(default_factory=dict)
	params: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class NodeContext:
	"""Minimal execution context a node receives."""

	id: str
	request: RequestView = field(default_factory=RequestView)


@dataclass
class NodeResponse:
	"""What a node handler returns. Either data/content or an error message."""

	data: Any = None
	content: Any = None
	error: str | None = None

	@property
	def payload(self) -> Any:
		if self.data is not None:
			return self.data
		if self.content is not None:
			return self.content
		return {}


@runtime_checkable
class Node(Protocol):
	"""Registration contract for in-process API-wrapper handlers.

	`handle` may be a coroutine function or a plain function; it may return a
	NodeResponse or a bare value.
	"""

	input_schema: dict[str, Any]

	def handle(self, ctx: NodeContext, inputs: dict[str, Any]) -> Any: ...


Invocation = Callable[[dict[str, Any], "InvocationContext | None"], Awaitable[Any]]


@dataclass
class Tool:
	"""Protocol-neutral tool descriptor.

	`schema` maps parameter name to ``{"type": {"type": <json type>}, "description": ...}``.
	An entry may also carry ``"required": False`` for optional path segments.
	"""

	name: str
	description: str = ""
	schema: dict[str, dict[str, Any]] = field(default_factory=dict)
	invoke: Invocation | None = None
	http_method: str | None = None
	source: str = "node"  # node/workflow/chain/manual

	def __post_init__(self) -> None:
		if not self.description:
			self.description = f"Tool: {self.name}"

	async def run(self, params: dict[str, Any], context: InvocationContext | None = None) -> Any:
		if self.invoke is None:
			raise RuntimeError(f"Tool {self.name} has no invocation")
		return await self.invoke(params, context)

	def to_listing(self) -> dict[str, Any]:
		"""Wire shape served by the gateway's tools endpoint."""
		return {
			"name": self.name,
			"description": self.description,
			"schema": self.schema,
			"httpMethod": self.http_method or "POST",
		}


def param_entry(name: str, prop: Mapping[str, Any] | None = None) -> dict[str, Any]:
	"""Convert one JSON-Schema property into a tool schema entry."""
	prop = prop or {}
	return {
		"type": {"type": prop.get("type") or "string"},
		"description": prop.get("description") or f"Parameter: {name}",
	}


def convert_properties(schema: Mapping[str, Any] | None) -> dict[str, dict[str, Any]]:
	"""Convert a JSON-Schema-like object into an ordered tool schema.

	No schema, or a schema without properties, yields an empty mapping.
	"""
	if not schema or not schema.get("properties"):
		return {}
	return {name: param_entry(name, prop) for name, prop in schema["properties"].items()}


def protocol_input_schema(schema: Mapping[str, Any] | None) -> dict[str, Any]:
	"""Flatten a tool schema into the object schema sent to protocol clients.

	Every property is advertised as a string and listed as required.
	"""
	schema = schema or {}
	properties: dict[str, Any] = {}
	for key, val in schema.items():
		val = val if isinstance(val, Mapping) else {}
		properties[key] = {
			"type": "string",
			"description": val.get("description") or f"Parameter: {key}",
		}
	return {"type": "object", "properties": properties, "required": list(properties)}
