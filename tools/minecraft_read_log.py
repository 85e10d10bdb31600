"""Minecraft log tool: recent chat and server lines from the server log."""

from __future__ import annotations

import asyncio
import re
from collections import deque
from typing import Any

from agent.config import DEFAULT_MINECRAFT_LOG_FILTER
from tools.base_tool import Tool


class MinecraftReadLogTool(Tool):
    name = "minecraft_read_log"
    description = (
        "Checks the latest lines of the Minecraft server log to see what is "
        "happening on the server."
    )
    parameters = {"type": "object", "properties": {}, "required": []}

    def __init__(self, config=None):
        super().__init__(config)
        settings = config.tools.minecraft_log if config else None
        self.server_log_path = settings.server_log_path if settings else ""
        self.lines = settings.lines if settings else 50
        self.filter = re.compile((settings and settings.filter) or DEFAULT_MINECRAFT_LOG_FILTER)

    @classmethod
    def is_enabled(cls, config) -> bool:
        return bool(config.tools.minecraft_log.server_log_path)

    async def execute(self, args: dict[str, Any], notifier) -> list[str]:
        matching = await asyncio.to_thread(self._read_matching)
        notifier.on_status(f"Retrieved {len(matching)} log lines...")
        return matching

    def _read_matching(self) -> list[str]:
        with open(self.server_log_path, "r", encoding="utf-8", errors="replace") as f:
            tail = deque((line.rstrip("\n") for line in f), maxlen=self.lines)

        # newest first
        return [line for line in reversed(tail) if self.filter.search(line)]
