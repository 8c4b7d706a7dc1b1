"""Tool-related exceptions used across nano-mcp."""

from __future__ import annotations


class ToolNotFoundError(LookupError):
	"""Raised when a tool or node name does not resolve."""

	def __init__(self, message: str, *, tool_name: str = "") -> None:
		self.tool_name = tool_name
		super().__init__(message)


class ToolExecutionError(RuntimeError):
	"""Raised when a tool fails to execute for any reason."""

	def __init__(self, message: str, *, tool_name: str = "") -> None:
		self.tool_name = tool_name
		self.message = message
		super().__init__(message)


class ChainStepError(ToolExecutionError):
	"""Raised when one step of a chain fails. `step` is 1-based."""

	def __init__(self, cause: str, *, step: int, tool_name: str) -> None:
		self.step = step
		self.cause = cause
		super().__init__(
			f"Chain failed at step {step} ({tool_name}): {cause}",
			tool_name=tool_name,
		)
