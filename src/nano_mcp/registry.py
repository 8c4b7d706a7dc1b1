"""In-memory node registry, constructed at startup and passed to its readers."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping

from nano_mcp.models import Node

logger = logging.getLogger(__name__)


class NodeRegistry:
	"""Maps tool names to node handlers.

	Registering a name again replaces the earlier node. Nodes are stored by
	reference and never mutated.
	"""

	def __init__(self, nodes: Mapping[str, Node] | None = None) -> None:
		self._nodes: dict[str, Node] = {}
		if nodes:
			self.register_many(nodes)

	def register(self, name: str, node: Node) -> None:
		"""Register a node. Raises TypeError if it lacks `input_schema`/`handle`."""
		if not isinstance(node, Node):
			raise TypeError(
				f"Cannot register {name!r}: {type(node).__name__} does not provide input_schema and handle()"
			)
		if name in self._nodes:
			logger.debug("Replacing node %s", name)
		self._nodes[name] = node

	def register_many(self, nodes: Mapping[str, Node]) -> None:
		for name, node in nodes.items():
			self.register(name, node)

	def get(self, name: str) -> Node | None:
		return self._nodes.get(name)

	def list(self) -> dict[str, Node]:
		"""Snapshot of the current name -> node mapping."""
		return dict(self._nodes)

	def names(self) -> list[str]:
		return list(self._nodes)

	def __contains__(self, name: object) -> bool:
		return name in self._nodes

	def __len__(self) -> int:
		return len(self._nodes)

	def __iter__(self) -> Iterator[str]:
		return iter(self._nodes)
