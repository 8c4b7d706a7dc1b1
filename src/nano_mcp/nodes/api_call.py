"""Generic outbound HTTP request node."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from nano_mcp.models import HTTP_METHODS, NodeContext, NodeResponse
from nano_mcp.proxy import DEFAULT_TIMEOUT, client_scope, describe_http_error, response_payload

logger = logging.getLogger(__name__)


class ApiCallNode:
	"""Make an HTTP request to any URL and return the decoded response body."""

	input_schema: dict[str, Any] = {
		"type": "object",
		"properties": {
			"url": {"type": "string", "description": "Absolute URL to call"},
			"method": {"type": "string", "description": "HTTP method (default GET)"},
			"headers": {"type": "object", "description": "Request headers"},
			"body": {"type": "object", "description": "JSON body for non-GET requests"},
		},
	}

	def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = DEFAULT_TIMEOUT) -> None:
		self._client = client
		self._timeout = timeout

	async def handle(self, ctx: NodeContext, inputs: dict[str, Any]) -> NodeResponse:
		url = inputs.get("url")
		if not url:
			return NodeResponse(error="Missing required input: url")
		method = str(inputs.get("method") or "GET").upper()
		if method not in HTTP_METHODS:
			return NodeResponse(error=f"Unsupported HTTP method: {method}")

		request_kwargs: dict[str, Any] = {"headers": inputs.get("headers") or None}
		if method != "GET" and inputs.get("body") is not None:
			request_kwargs["json"] = inputs["body"]

		logger.debug("api-call %s %s (caller %s)", method, url, ctx.id)
		try:
			async with client_scope(self._client, self._timeout) as client:
				response = await client.request(method, url, **request_kwargs)
			response.raise_for_status()
		except httpx.HTTPError as exc:
			return NodeResponse(error=describe_http_error(exc))
		return NodeResponse(data=response_payload(response))


NODES = {"api-call": ApiCallNode()}
