"""Outbound HTTP helpers shared by workflow tools, chains and the protocol server."""

from __future__ import annotations

import json
import os
import urllib.parse
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Any

import httpx

BASE_URL_ENV = "NANOSERVICE_BASE_URL"
DEFAULT_BASE_URL = "http://localhost:4000"
DEFAULT_TIMEOUT = 30.0


def resolve_base_url(default: str = DEFAULT_BASE_URL) -> str:
	"""Base URL for proxied calls, read from the environment on every call."""
	return (os.environ.get(BASE_URL_ENV) or default).rstrip("/")


def _query_value(value: Any) -> str:
	if isinstance(value, bool):
		return "true" if value else "false"
	if isinstance(value, (dict, list)):
		return json.dumps(value)
	return str(value)


def build_query(arguments: Mapping[str, Any]) -> str:
	"""Encode arguments as a query string, keeping insertion order and dropping None."""
	pairs = [(key, _query_value(value)) for key, value in arguments.items() if value is not None]
	return urllib.parse.urlencode(pairs)


def build_url(base_url: str, path: str, query: str = "") -> str:
	url = f"{base_url.rstrip('/')}/{path.lstrip('/')}"
	return f"{url}?{query}" if query else url


async def send_tool_request(
	client: httpx.AsyncClient,
	base_url: str,
	path: str,
	method: str | None,
	arguments: Mapping[str, Any],
) -> httpx.Response:
	"""Issue a tool request shaped by its HTTP method.

	GET puts the arguments in the query string and sends no body. Every other
	method (POST when unspecified) sends them as a JSON body.
	"""
	verb = (method or "POST").upper()
	if verb == "GET":
		return await client.get(build_url(base_url, path, build_query(arguments)))
	return await client.request(
		verb,
		build_url(base_url, path),
		json=dict(arguments),
		headers={"Content-Type": "application/json"},
	)


def response_payload(response: httpx.Response) -> Any:
	"""Decoded JSON body, or the raw text when the body is not JSON."""
	try:
		return response.json()
	except ValueError:
		return response.text


def payload_text(payload: Any) -> str:
	if isinstance(payload, str):
		return payload
	return json.dumps(payload, indent=2)


def new_client(timeout: float = DEFAULT_TIMEOUT) -> httpx.AsyncClient:
	return httpx.AsyncClient(timeout=timeout)


@asynccontextmanager
async def client_scope(
	client: httpx.AsyncClient | None,
	timeout: float = DEFAULT_TIMEOUT,
) -> AsyncIterator[httpx.AsyncClient]:
	"""Yield `client` if given, otherwise a short-lived client closed on exit."""
	if client is not None:
		yield client
		return
	async with new_client(timeout) as owned:
		yield owned


def describe_http_error(exc: httpx.HTTPError) -> str:
	"""Short message for an httpx failure."""
	if isinstance(exc, httpx.HTTPStatusError):
		return f"Request failed with status: {exc.response.status_code}"
	return str(exc) or type(exc).__name__
