"""CLI interface for nano-mcp."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import tomllib

from nano_mcp.aggregator import AggregationOptions, ToolAggregator
from nano_mcp.config import NanoMCPConfig, load_config, log_level, validate_config, workflows_path
from nano_mcp.node_discovery import discover_and_register
from nano_mcp.registry import NodeRegistry

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(
		prog="nano-mcp",
		description="Expose nanoservice nodes and workflows as MCP tools",
	)
	sub = parser.add_subparsers(dest="command")

	# nano-mcp serve
	serve = sub.add_parser("serve", help="Run the MCP server over stdio")
	serve.add_argument("--config", default=None, help="Config file path")

	# nano-mcp gateway
	gateway = sub.add_parser("gateway", help="Run the HTTP tool gateway")
	gateway.add_argument("--config", default=None, help="Config file path")
	gateway.add_argument("--host", default=None)
	gateway.add_argument("--port", type=int, default=None)

	# nano-mcp tools
	tools = sub.add_parser("tools", help="Print the aggregated tool listing as JSON")
	tools.add_argument("--config", default=None, help="Config file path")
	tools.add_argument("--workflows", action="store_true", help="Include workflow tools")
	tools.add_argument("--concurrent", action="store_true", help="Fetch sources concurrently")

	# nano-mcp validate
	validate = sub.add_parser("validate", help="Validate config file semantically")
	validate.add_argument("--config", default=None, help="Config file path")

	return parser


def configure_logging(config: NanoMCPConfig, file_logging: bool = False) -> None:
	"""Log to stderr, and optionally to ``<project_dir>/logs/<log_file>``.

	stdout carries the MCP protocol, so nothing is ever logged there.
	"""
	logging.basicConfig(
		level=log_level(config),
		format=LOG_FORMAT,
		stream=sys.stderr,
		force=True,
	)
	if not file_logging:
		return

	log_path = config.logging.log_path
	try:
		log_path.parent.mkdir(parents=True, exist_ok=True)
		handler = logging.FileHandler(log_path, encoding="utf-8")
	except OSError as exc:
		logger.warning("Unable to create log file %s, logging to stderr only: %s", log_path, exc)
		return
	handler.setFormatter(logging.Formatter(LOG_FORMAT))
	logging.getLogger().addHandler(handler)


def _load(args: argparse.Namespace) -> NanoMCPConfig | None:
	try:
		return load_config(args.config)
	except (FileNotFoundError, tomllib.TOMLDecodeError) as exc:
		print(f"Error: {exc}", file=sys.stderr)
		return None


def aggregation_options(config: NanoMCPConfig) -> AggregationOptions:
	dc = config.discovery
	return AggregationOptions(
		discover_nodes=dc.discover_nodes,
		discover_workflows=dc.discover_workflows,
		prioritize_nodes=dc.prioritize_nodes,
		include_chain_tool=dc.include_chain_tool,
		workflows_dir=workflows_path(config),
		excluded_nodes=list(dc.excluded_nodes),
		excluded_workflows=list(dc.excluded_workflows),
	)


def build_aggregator(config: NanoMCPConfig) -> ToolAggregator:
	"""Registry populated from the configured node packages, wrapped in an aggregator."""
	registry = NodeRegistry()
	if config.discovery.discover_nodes:
		discover_and_register(registry, config.discovery.node_packages)
	return ToolAggregator(registry, timeout=config.server.timeout)


def cmd_serve(args: argparse.Namespace) -> int:
	"""Start the MCP stdio server."""
	config = _load(args)
	if config is None:
		return 1
	configure_logging(config, file_logging=True)

	from nano_mcp.mcp_server import run_mcp_server

	return run_mcp_server(config)


def cmd_gateway(args: argparse.Namespace) -> int:
	"""Start the HTTP tool gateway."""
	config = _load(args)
	if config is None:
		return 1
	configure_logging(config)

	try:
		import uvicorn

		from nano_mcp.gateway import ToolGateway, create_app
	except ImportError:
		print("Gateway dependencies not installed. Run: pip install -e '.[gateway]'", file=sys.stderr)
		return 1

	gateway = ToolGateway(build_aggregator(config), aggregation_options(config))
	app = create_app(gateway, config.gateway.mount_path)
	host = args.host or config.gateway.host
	port = args.port or config.gateway.port
	logger.info("Tool gateway listening on %s:%d%s", host, port, config.gateway.mount_path)
	uvicorn.run(app, host=host, port=port, log_level="warning")
	return 0


def cmd_tools(args: argparse.Namespace) -> int:
	"""Print the locally aggregated tool listing."""
	config = _load(args)
	if config is None:
		return 1
	configure_logging(config)

	options = aggregation_options(config)
	if args.workflows:
		options = options.with_overrides(discover_workflows=True)
	aggregator = build_aggregator(config)

	if args.concurrent:
		tools = asyncio.run(aggregator.fetch_available_tools(options))
	else:
		tools = asyncio.run(aggregator.get_all_tools(options))

	print(json.dumps([tool.to_listing() for tool in tools], indent=2))
	return 0


def cmd_validate(args: argparse.Namespace) -> int:
	"""Validate config file semantically."""
	config = _load(args)
	if config is None:
		return 1
	issues = validate_config(config)

	errors = [(lvl, msg) for lvl, msg in issues if lvl == "error"]
	warnings = [(lvl, msg) for lvl, msg in issues if lvl == "warning"]

	for level, msg in issues:
		print(f"[{level.upper()}] {msg}")

	if not issues:
		print("Config OK")

	print(f"\n{len(errors)} error(s), {len(warnings)} warning(s)")
	return 1 if errors else 0


COMMANDS = {
	"serve": cmd_serve,
	"gateway": cmd_gateway,
	"tools": cmd_tools,
	"validate": cmd_validate,
}


def main(argv: list[str] | None = None) -> int:
	parser = build_parser()
	args = parser.parse_args(argv)

	if args.command is None:
		parser.print_help()
		return 0

	handler = COMMANDS.get(args.command)
	if handler is None:
		print(f"Unknown command: {args.command}", file=sys.stderr)
		return 1

	return handler(args)


if __name__ == "__main__":
	sys.exit(main())
