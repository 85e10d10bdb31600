"""Tool discovery and lookup registry."""

from __future__ import annotations

import importlib
import inspect
import os
from typing import TYPE_CHECKING, Iterable

from agent.exceptions import ToolNotFoundError, ToolRegistrationError
from agent.log_utils import build_file_logger
from tools.base_tool import Tool, ToolDefinition

if TYPE_CHECKING:
    from agent.config import AgentConfig


class ToolRegistry:
    """Holds the invocable tools, keyed by unique name."""

    def __init__(self, tools: Iterable[Tool] = (), log_dir: str | None = None):
        self._tools: dict[str, Tool] = {}
        self._logger = build_file_logger("tool_registry", log_dir) if log_dir else None
        for tool in tools:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        """Add a tool. Duplicate names are a configuration error."""
        if not tool.name:
            raise ToolRegistrationError(f"Tool {type(tool).__name__} has no name")
        if tool.name in self._tools:
            raise ToolRegistrationError(f"Tool with name '{tool.name}' already exists")
        self._tools[tool.name] = tool

    def lookup(self, name: str) -> Tool | None:
        """Return the tool, or None when no tool has that name."""
        return self._tools.get(name)

    def list_definitions(self) -> list[ToolDefinition]:
        """Definitions sent to the model so it knows what it may call."""
        return [tool.definition for tool in self._tools.values()]

    def subset(self, names: Iterable[str]) -> "ToolRegistry":
        """Build a smaller registry holding only the named tools."""
        smaller = ToolRegistry()
        for name in names:
            tool = self.lookup(name)
            if tool is None:
                raise ToolNotFoundError(f"Tool with name '{name}' does not exist")
            smaller.register(tool)
        return smaller

    def discover_tools(self, config: "AgentConfig", tools_dir: str | None = None) -> None:
        """Scan the tools/ directory and register every enabled Tool subclass."""
        if tools_dir is None:
            tools_dir = os.path.dirname(os.path.abspath(__file__))

        for filename in sorted(os.listdir(tools_dir)):
            if not filename.endswith(".py") or filename.startswith("_") or filename in (
                "base_tool.py", "tool_registry.py"
            ):
                continue

            module_name = f"tools.{filename[:-3]}"
            try:
                module = importlib.import_module(module_name)
            except Exception as e:
                self._warn("Failed to load %s: %s", module_name, e)
                continue

            for _, obj in inspect.getmembers(module, inspect.isclass):
                if not issubclass(obj, Tool) or obj is Tool or not obj.name:
                    continue
                if obj.__module__ != module.__name__:
                    continue
                if not obj.is_enabled(config):
                    self._info("Tool '%s' is not configured, skipping", obj.name)
                    continue
                self.register(obj(config))
                self._info("Registered tool '%s'", obj.name)

    @property
    def tool_names(self) -> list[str]:
        """List all registered tool names."""
        return sorted(self._tools.keys())

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def _warn(self, msg: str, *args) -> None:
        if self._logger:
            self._logger.warning(msg, *args)

    def _info(self, msg: str, *args) -> None:
        if self._logger:
            self._logger.info(msg, *args)
