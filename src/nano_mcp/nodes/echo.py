"""A node that returns its inputs unchanged."""

from __future__ import annotations

from typing import Any

from nano_mcp.models import NodeContext, NodeResponse


class EchoNode:
	"""Return the given message, plus any other inputs, unchanged."""

	input_schema: dict[str, Any] = {
		"type": "object",
		"properties": {
			"message": {"type": "string", "description": "Text to echo back"},
		},
	}

	def handle(self, ctx: NodeContext, inputs: dict[str, Any]) -> NodeResponse:
		return NodeResponse(data={**inputs, "caller": ctx.id})


NODES = {"echo": EchoNode()}
