"""Weather tool: current conditions and forecast from OpenWeatherMap."""

from __future__ import annotations

import asyncio
from typing import Any

import aiohttp
from agent.tool_cache import ToolCache
from tools.base_tool import Tool

GEO_ENDPOINT = "http://api.openweathermap.org/geo/1.0/direct"
ONECALL_ENDPOINT = "https://api.openweathermap.org/data/3.0/onecall"


class GetWeatherTool(Tool):
    name = "get_weather"
    description = "Get the current weather & forecast for a location"
    parameters = {
        "type": "object",
        "properties": {
            "location": {
                "type": "string",
                "description": "The location, for example a city or region.",
            },
        },
        "required": ["location"],
    }

    def __init__(self, config=None, cache: ToolCache | None = None):
        super().__init__(config)
        weather = config.tools.weather if config else None
        self.api_key = weather.api_key if weather else ""
        self.cache_seconds = weather.cache_seconds if weather else 0
        if cache is None and config is not None:
            cache = ToolCache(config.cache_path)
        self.cache = cache

    @classmethod
    def is_enabled(cls, config) -> bool:
        return bool(config.tools.weather.api_key)

    async def execute(self, args: dict[str, Any], notifier) -> Any:
        location = args["location"].strip()
        cache_key = f"weather:{location.lower()}"
        if self.cache:
            cached = await asyncio.to_thread(self.cache.retrieve, cache_key)
            if cached:
                return cached

        timeout = aiohttp.ClientTimeout(total=30)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(
                GEO_ENDPOINT,
                params={"q": location, "limit": 1, "appid": self.api_key},
            ) as resp:
                if resp.status != 200:
                    raise RuntimeError(f"Failed to get coordinates! {resp.status}")
                places = await resp.json()
            if not places:
                raise ValueError(f"Unknown location: {location}")
            lat, lon = places[0]["lat"], places[0]["lon"]

            notifier.on_status("Fetching weather data...")
            async with session.get(
                ONECALL_ENDPOINT,
                params={"lat": lat, "lon": lon, "exclude": "minutely", "appid": self.api_key},
            ) as resp:
                if resp.status != 200:
                    raise RuntimeError(f"Failed to check weather! {resp.status}")
                weather = await resp.json()

        if self.cache:
            await asyncio.to_thread(self.cache.store, cache_key, weather, self.cache_seconds)
        return weather
