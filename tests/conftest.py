"""Shared pytest fixtures and factory functions for nano-mcp tests."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
import pytest

from nano_mcp.models import NodeContext, NodeResponse
from nano_mcp.registry import NodeRegistry

BASE_URL = "http://nano.test"


class FakeNode:
	"""Node double that records its calls and returns a fixed response."""

	def __init__(
		self,
		response: Any = None,
		input_schema: dict[str, Any] | None = None,
		description: str = "",
	) -> None:
		self.input_schema = input_schema or {}
		self.description = description
		self.response = response if response is not None else NodeResponse(data={"ok": True})
		self.calls: list[tuple[NodeContext, dict[str, Any]]] = []

	def handle(self, ctx: NodeContext, inputs: dict[str, Any]) -> Any:
		self.calls.append((ctx, inputs))
		if isinstance(self.response, Exception):
			raise self.response
		if callable(self.response):
			return self.response(inputs)
		return self.response


class AsyncFakeNode(FakeNode):
	async def handle(self, ctx: NodeContext, inputs: dict[str, Any]) -> Any:
		return super().handle(ctx, inputs)


@pytest.fixture(autouse=True)
def nanoservice_env(monkeypatch: pytest.MonkeyPatch) -> str:
	"""Point every proxied call at a fake host; tests never reach the network."""
	monkeypatch.setenv("NANOSERVICE_BASE_URL", BASE_URL)
	monkeypatch.delenv("PROJECT_DIR", raising=False)
	return BASE_URL


@pytest.fixture()
def registry() -> NodeRegistry:
	return NodeRegistry()


class RecordingTransport:
	"""Collects requests and answers each with `handler(request)`."""

	def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
		self.handler = handler
		self.requests: list[httpx.Request] = []

	def __call__(self, request: httpx.Request) -> httpx.Response:
		self.requests.append(request)
		return self.handler(request)

	def client(self) -> httpx.AsyncClient:
		return httpx.AsyncClient(transport=httpx.MockTransport(self))

	@property
	def paths(self) -> list[str]:
		return [r.url.path for r in self.requests]


def write_workflow(workflows_dir: Path, stem: str, definition: dict[str, Any] | str) -> Path:
	"""Write ``<workflows_dir>/json/<stem>.json``; a str is written verbatim."""
	json_dir = workflows_dir / "json"
	json_dir.mkdir(parents=True, exist_ok=True)
	path = json_dir / f"{stem}.json"
	path.write_text(definition if isinstance(definition, str) else json.dumps(definition))
	return path


@pytest.fixture()
def workflows_dir(tmp_path: Path) -> Path:
	path = tmp_path / "workflows"
	path.mkdir()
	return path


@pytest.fixture()
def make_node() -> Callable[..., FakeNode]:
	"""Factory for node doubles; pass ``use_async=True`` for a coroutine handler."""

	def _make(*args: Any, use_async: bool = False, **kwargs: Any) -> FakeNode:
		cls = AsyncFakeNode if use_async else FakeNode
		return cls(*args, **kwargs)

	return _make


@pytest.fixture()
def make_transport() -> Callable[[Callable[[httpx.Request], httpx.Response]], RecordingTransport]:
	return RecordingTransport


@pytest.fixture(name="write_workflow")
def write_workflow_fixture() -> Callable[..., Path]:
	return write_workflow
