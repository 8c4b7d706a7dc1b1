"""TOML configuration loader for nano-mcp."""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from nano_mcp.proxy import BASE_URL_ENV, DEFAULT_BASE_URL, DEFAULT_TIMEOUT

DEFAULT_CONFIG_NAME = "nano-mcp.toml"
PROJECT_DIR_ENV = "PROJECT_DIR"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class ServerConfig:
	"""Outbound proxy target and protocol server identity."""

	base_url: str = DEFAULT_BASE_URL
	timeout: float = DEFAULT_TIMEOUT
	name: str = "nanoservice"
	version: str = "1.0.0"


@dataclass
class DiscoveryConfig:
	"""Which tool sources to aggregate."""

	discover_nodes: bool = True
	discover_workflows: bool = False
	prioritize_nodes: bool = True
	include_chain_tool: bool = True
	workflows_dir: str = "workflows"
	excluded_nodes: list[str] = field(default_factory=list)
	excluded_workflows: list[str] = field(default_factory=list)
	node_packages: list[str] = field(default_factory=lambda: ["nano_mcp.nodes"])


@dataclass
class GatewayConfig:
	host: str = "127.0.0.1"
	port: int = 4000
	mount_path: str = "/auto-mcp-server"


@dataclass
class LoggingConfig:
	level: str = "INFO"
	project_dir: str = ""  # empty = current directory
	log_file: str = "mcp-entry.log"

	@property
	def log_path(self) -> Path:
		base = Path(self.project_dir) if self.project_dir else Path.cwd()
		return base / "logs" / self.log_file


@dataclass
class NanoMCPConfig:
	"""Top-level nano-mcp configuration."""

	server: ServerConfig = field(default_factory=ServerConfig)
	discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
	gateway: GatewayConfig = field(default_factory=GatewayConfig)
	logging: LoggingConfig = field(default_factory=LoggingConfig)
	config_path: Path | None = None


def _build_server(data: dict[str, Any]) -> ServerConfig:
	sc = ServerConfig()
	if "base_url" in data:
		sc.base_url = str(data["base_url"])
	if "timeout" in data:
		sc.timeout = float(data["timeout"])
	for key in ("name", "version"):
		if key in data:
			setattr(sc, key, str(data[key]))
	return sc


def _build_discovery(data: dict[str, Any]) -> DiscoveryConfig:
	dc = DiscoveryConfig()
	for key in ("discover_nodes", "discover_workflows", "prioritize_nodes", "include_chain_tool"):
		if key in data:
			setattr(dc, key, bool(data[key]))
	if "workflows_dir" in data:
		dc.workflows_dir = str(data["workflows_dir"])
	for key in ("excluded_nodes", "excluded_workflows", "node_packages"):
		if key in data:
			setattr(dc, key, [str(v) for v in data[key]])
	return dc


def _build_gateway(data: dict[str, Any]) -> GatewayConfig:
	gc = GatewayConfig()
	if "host" in data:
		gc.host = str(data["host"])
	if "port" in data:
		gc.port = int(data["port"])
	if "mount_path" in data:
		gc.mount_path = "/" + str(data["mount_path"]).strip("/")
	return gc


def _build_logging(data: dict[str, Any]) -> LoggingConfig:
	lc = LoggingConfig()
	if "level" in data:
		lc.level = str(data["level"]).upper()
	for key in ("project_dir", "log_file"):
		if key in data:
			setattr(lc, key, str(data[key]))
	return lc


def _apply_env(config: NanoMCPConfig) -> None:
	base_url = os.environ.get(BASE_URL_ENV)
	if base_url:
		config.server.base_url = base_url
	project_dir = os.environ.get(PROJECT_DIR_ENV)
	if project_dir:
		config.logging.project_dir = project_dir


def load_config(path: str | Path | None = None) -> NanoMCPConfig:
	"""Load a nano-mcp.toml config file.

	Args:
		path: Path to the TOML config file. When omitted, ``nano-mcp.toml`` in
			the current directory is used if present, otherwise defaults.

	Returns:
		Parsed NanoMCPConfig with environment overrides applied.

	Raises:
		FileNotFoundError: If an explicit config path doesn't exist.
		tomllib.TOMLDecodeError: If config is invalid TOML.
	"""
	if path is None:
		candidate = Path.cwd() / DEFAULT_CONFIG_NAME
		config_path = candidate if candidate.exists() else None
	else:
		config_path = Path(path)
		if not config_path.exists():
			raise FileNotFoundError(f"Config file not found: {config_path}")

	data: dict[str, Any] = {}
	if config_path is not None:
		with open(config_path, "rb") as f:
			data = tomllib.load(f)

	nc = NanoMCPConfig(config_path=config_path)
	if "server" in data:
		nc.server = _build_server(data["server"])
	if "discovery" in data:
		nc.discovery = _build_discovery(data["discovery"])
	if "gateway" in data:
		nc.gateway = _build_gateway(data["gateway"])
	if "logging" in data:
		nc.logging = _build_logging(data["logging"])
	_apply_env(nc)
	return nc


def workflows_path(config: NanoMCPConfig) -> Path:
	"""Workflows directory, relative paths resolved against the config file."""
	path = Path(config.discovery.workflows_dir)
	if not path.is_absolute() and config.config_path is not None:
		path = config.config_path.parent / path
	return path


def validate_config(config: NanoMCPConfig) -> list[tuple[str, str]]:
	"""Perform semantic validation of a loaded NanoMCPConfig.

	Returns a list of (level, message) tuples where level is 'error' or 'warning'.
	"""
	issues: list[tuple[str, str]] = []

	if not config.server.base_url.startswith(("http://", "https://")):
		issues.append(("error", f"server.base_url must be an http(s) URL: {config.server.base_url}"))

	if config.server.timeout <= 0:
		issues.append(("error", f"server.timeout must be positive, got {config.server.timeout}"))

	if not 0 < config.gateway.port < 65536:
		issues.append(("error", f"gateway.port out of range: {config.gateway.port}"))

	if config.discovery.discover_workflows:
		wf_dir = workflows_path(config)
		if not wf_dir.is_dir():
			issues.append(("warning", f"workflows_dir does not exist: {wf_dir}"))

	if config.logging.level not in _LOG_LEVELS:
		issues.append(("error", f"logging.level must be one of {', '.join(_LOG_LEVELS)}: {config.logging.level}"))

	return issues


def log_level(config: NanoMCPConfig) -> int:
	return getattr(logging, config.logging.level, logging.INFO)
