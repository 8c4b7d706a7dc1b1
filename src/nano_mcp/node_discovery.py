"""Discover nodes from Python packages.

A module opts in by exporting a module-level ``NODES`` mapping of tool name to
node instance. Nothing else in a scanned package is inspected.
"""

from __future__ import annotations

import importlib
import logging
import pkgutil
from collections.abc import Iterable, Mapping
from types import ModuleType

from nano_mcp.models import Node
from nano_mcp.registry import NodeRegistry

logger = logging.getLogger(__name__)

EXPORT_NAME = "NODES"


def _iter_modules(package: ModuleType) -> Iterable[ModuleType]:
	yield package
	path = getattr(package, "__path__", None)
	if path is None:
		return
	for info in pkgutil.walk_packages(path, prefix=f"{package.__name__}."):
		try:
			yield importlib.import_module(info.name)
		except Exception as exc:
			logger.error("Error importing node module %s: %s", info.name, exc)


def _collect(module: ModuleType, found: dict[str, Node]) -> None:
	exported = getattr(module, EXPORT_NAME, None)
	if exported is None:
		return
	if not isinstance(exported, Mapping):
		logger.warning("%s.%s is not a mapping, ignoring", module.__name__, EXPORT_NAME)
		return
	for name, node in exported.items():
		if not isinstance(node, Node):
			logger.warning(
				"Skipping %s from %s: %s does not satisfy the Node contract",
				name, module.__name__, type(node).__name__,
			)
			continue
		found[name] = node


def discover_nodes(package: str | ModuleType) -> dict[str, Node]:
	"""Import `package` and its submodules, returning every exported node."""
	if isinstance(package, str):
		try:
			package = importlib.import_module(package)
		except ImportError as exc:
			logger.error("Node package %s could not be imported: %s", package, exc)
			return {}

	found: dict[str, Node] = {}
	for module in _iter_modules(package):
		_collect(module, found)
	return found


def discover_and_register(registry: NodeRegistry, packages: Iterable[str | ModuleType]) -> int:
	"""Discover nodes from each package and register them. Returns the count registered."""
	count = 0
	for package in packages:
		nodes = discover_nodes(package)
		registry.register_many(nodes)
		count += len(nodes)
	logger.info("Node registry initialized with %d nodes", len(registry))
	return count
