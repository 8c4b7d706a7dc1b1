"""Expose nanoservice nodes and workflows as MCP tools."""

__version__ = "0.1.0"
