"""Tests for config loading and validation."""

from __future__ import annotations

import tomllib
from pathlib import Path

import pytest

from nano_mcp.config import NanoMCPConfig, load_config, validate_config, workflows_path


@pytest.fixture()
def full_config(tmp_path: Path) -> Path:
	toml = tmp_path / "nano-mcp.toml"
	toml.write_text("""\
[server]
base_url = "http://backend:4000"
timeout = 5
name = "custom"

[discovery]
discover_workflows = true
prioritize_nodes = false
workflows_dir = "flows"
excluded_nodes = ["secret"]
node_packages = ["my_nodes"]

[gateway]
host = "0.0.0.0"
port = 8080
mount_path = "mcp/"

[logging]
level = "debug"
project_dir = "/var/nano"
""")
	return toml


class TestLoadConfig:
	def test_full_file(self, full_config, monkeypatch):
		monkeypatch.delenv("NANOSERVICE_BASE_URL")
		config = load_config(full_config)

		assert config.server.base_url == "http://backend:4000"
		assert config.server.timeout == 5.0
		assert config.server.name == "custom"
		assert config.server.version == "1.0.0"
		assert config.discovery.discover_workflows is True
		assert config.discovery.prioritize_nodes is False
		assert config.discovery.include_chain_tool is True
		assert config.discovery.excluded_nodes == ["secret"]
		assert config.discovery.node_packages == ["my_nodes"]
		assert config.gateway.port == 8080
		assert config.gateway.mount_path == "/mcp"
		assert config.logging.level == "DEBUG"
		assert config.logging.log_path == Path("/var/nano/logs/mcp-entry.log")

	def test_defaults_without_file(self, tmp_path, monkeypatch):
		monkeypatch.chdir(tmp_path)
		monkeypatch.delenv("NANOSERVICE_BASE_URL")
		config = load_config()

		assert config.config_path is None
		assert config.server.base_url == "http://localhost:4000"
		assert config.discovery.discover_nodes is True
		assert config.discovery.discover_workflows is False
		assert config.discovery.node_packages == ["nano_mcp.nodes"]
		assert config.gateway.mount_path == "/auto-mcp-server"

	def test_picks_up_file_in_cwd(self, full_config, monkeypatch):
		monkeypatch.chdir(full_config.parent)
		assert load_config().config_path == full_config

	def test_env_overrides(self, full_config, monkeypatch):
		monkeypatch.setenv("NANOSERVICE_BASE_URL", "http://env:1")
		monkeypatch.setenv("PROJECT_DIR", "/srv/project")
		config = load_config(full_config)
		assert config.server.base_url == "http://env:1"
		assert config.logging.project_dir == "/srv/project"

	def test_missing_explicit_file(self, tmp_path):
		with pytest.raises(FileNotFoundError):
			load_config(tmp_path / "absent.toml")

	def test_invalid_toml(self, tmp_path):
		bad = tmp_path / "bad.toml"
		bad.write_text("[server\n")
		with pytest.raises(tomllib.TOMLDecodeError):
			load_config(bad)

	def test_workflows_path_relative_to_config(self, full_config):
		assert workflows_path(load_config(full_config)) == full_config.parent / "flows"


class TestValidateConfig:
	def test_defaults_are_valid(self):
		assert validate_config(NanoMCPConfig()) == []

	def test_errors(self):
		config = NanoMCPConfig()
		config.server.base_url = "ftp://nope"
		config.server.timeout = 0
		config.gateway.port = 70000
		config.logging.level = "LOUD"

		issues = validate_config(config)

		assert [level for level, _ in issues] == ["error"] * 4
		messages = " ".join(msg for _, msg in issues)
		for needle in ("base_url", "timeout", "port", "logging.level"):
			assert needle in messages

	def test_missing_workflows_dir_is_warning(self, tmp_path):
		config = NanoMCPConfig()
		config.discovery.discover_workflows = True
		config.discovery.workflows_dir = str(tmp_path / "missing")
		assert validate_config(config) == [("warning", f"workflows_dir does not exist: {tmp_path / 'missing'}")]
