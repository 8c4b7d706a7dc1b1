"""Tests for NodeRegistry and package node discovery."""

from __future__ import annotations

import sys
import textwrap

import pytest

from nano_mcp.node_discovery import discover_and_register, discover_nodes
from nano_mcp.registry import NodeRegistry


class TestNodeRegistry:
	def test_register_and_get(self, registry, make_node):
		node = make_node()
		registry.register("alpha", node)
		assert registry.get("alpha") is node
		assert "alpha" in registry
		assert len(registry) == 1

	def test_last_write_wins(self, registry, make_node):
		first, second = make_node(), make_node()
		registry.register("alpha", first)
		registry.register("alpha", second)
		assert registry.get("alpha") is second
		assert len(registry) == 1

	def test_register_many_preserves_order(self, registry, make_node):
		registry.register_many({"b": make_node(), "a": make_node()})
		assert registry.names() == ["b", "a"]
		assert list(registry) == ["b", "a"]

	def test_list_is_a_copy(self, registry, make_node):
		registry.register("alpha", make_node())
		snapshot = registry.list()
		snapshot.pop("alpha")
		assert "alpha" in registry

	def test_rejects_non_node(self, registry):
		with pytest.raises(TypeError, match="input_schema"):
			registry.register("bad", object())

	def test_get_missing_returns_none(self, registry):
		assert registry.get("missing") is None

	def test_constructor_accepts_mapping(self, make_node):
		reg = NodeRegistry({"x": make_node()})
		assert reg.names() == ["x"]


@pytest.fixture()
def node_package(tmp_path, monkeypatch):
	"""A throwaway importable package with one good, one broken, one odd module."""
	pkg = tmp_path / "fake_nodes_pkg"
	pkg.mkdir()
	(pkg / "__init__.py").write_text("")
	(pkg / "good.py").write_text(textwrap.dedent("""\
		class Greeter:
			input_schema = {"properties": {"name": {"type": "string"}}}

			def handle(self, ctx, inputs):
				return {"greeting": "hi " + inputs.get("name", "")}


		class NotANode:
			pass


		NODES = {"greeter": Greeter(), "broken": NotANode()}
	"""))
	(pkg / "exploding.py").write_text("raise RuntimeError('boom at import')\n")
	(pkg / "odd.py").write_text("NODES = ['not', 'a', 'mapping']\n")
	monkeypatch.syspath_prepend(str(tmp_path))
	yield "fake_nodes_pkg"
	for name in [m for m in sys.modules if m.startswith("fake_nodes_pkg")]:
		del sys.modules[name]


class TestNodeDiscovery:
	def test_discovers_conforming_exports_only(self, node_package):
		nodes = discover_nodes(node_package)
		assert list(nodes) == ["greeter"]

	def test_unknown_package_yields_nothing(self):
		assert discover_nodes("no_such_package_for_nano_mcp") == {}

	def test_discover_and_register(self, registry, node_package):
		count = discover_and_register(registry, [node_package])
		assert count == 1
		assert "greeter" in registry

	def test_builtin_nodes(self, registry):
		discover_and_register(registry, ["nano_mcp.nodes"])
		assert {"echo", "api-call"} <= set(registry.names())
