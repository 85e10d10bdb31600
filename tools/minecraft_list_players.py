"""Minecraft player list tool: asks the server over RCON who is online."""

from __future__ import annotations

from typing import Any

from rcon.source import rcon

from tools.base_tool import Tool


class MinecraftListPlayersTool(Tool):
    name = "minecraft_list_players"
    description = "Lists the players currently online on the Minecraft server"
    parameters = {"type": "object", "properties": {}, "required": []}

    def __init__(self, config=None):
        super().__init__(config)
        settings = config.tools.minecraft_rcon if config else None
        self.host = settings.host if settings else ""
        self.port = settings.port if settings else 25575
        self.password = settings.password if settings else ""

    @classmethod
    def is_enabled(cls, config) -> bool:
        settings = config.tools.minecraft_rcon
        return bool(settings.host and settings.password)

    async def execute(self, args: dict[str, Any], notifier) -> str:
        response = await rcon("list", host=self.host, port=self.port, passwd=self.password)
        notifier.on_status("Connected to Minecraft server...")
        return response
