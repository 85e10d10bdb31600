"""Abstract base class for all tools, plus the immutable tool definition."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from agent.config import AgentConfig
    from agent.notifier import ClientNotifier


@dataclass(frozen=True)
class ToolDefinition:
    """What the model is told about a tool: name, purpose and argument schema."""
    name: str
    description: str
    parameters: dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}, "required": []}
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }

    def to_openai_format(self) -> dict[str, Any]:
        return {"type": "function", "function": self.to_dict()}


class Tool(ABC):
    """Base class for all tools. Subclass this to create new tools."""

    name: str = ""
    description: str = ""
    parameters: dict[str, Any] = {"type": "object", "properties": {}, "required": []}

    def __init__(self, config: "AgentConfig | None" = None):
        self.config = config

    @classmethod
    def is_enabled(cls, config: "AgentConfig") -> bool:
        """Whether discovery should register this tool for the given config."""
        return True

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=self.parameters,
        )

    @abstractmethod
    async def execute(self, args: dict[str, Any], notifier: "ClientNotifier") -> Any:
        """
        Run the tool with arguments already validated against `parameters`.
        Return a string or any JSON-serializable value; raise on failure.
        Must be safe to run concurrently with other tools.
        """
        ...
