"""Current-conditions weather tool backed by the Open-Meteo APIs.

Geocodes the city name, then fetches the current temperature, wind speed
and weather code. Results are JSON strings the model can quote directly;
failures come back as ``{"error": ...}`` rather than exceptions.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from ..chat.streaming.tooling import ToolContext

logger = logging.getLogger(__name__)

GEOCODING_URL = "https://geocoding-api.open-meteo.com/v1/search"
FORECAST_URL = "https://api.open-meteo.com/v1/forecast"

WEATHER_CONDITIONS: dict[int, str] = {
    0: "Clear sky",
    1: "Mainly clear",
    2: "Partly cloudy",
    3: "Overcast",
    45: "Foggy",
    51: "Light drizzle",
    61: "Slight rain",
    63: "Moderate rain",
    65: "Heavy rain",
    71: "Slight snow",
    73: "Moderate snow",
    75: "Heavy snow",
    95: "Thunderstorm",
}

WEATHER_TOOL_NAME = "get_weather"
WEATHER_TOOL_DESCRIPTION = "Get the current weather in a given location"
WEATHER_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "location": {
            "type": "string",
            "description": "The city and state, e.g. San Francisco, CA",
        },
    },
    "required": ["location"],
}


def _error(message: str) -> str:
    return json.dumps({"error": message}, ensure_ascii=False)


class WeatherTool:
    """Callable tool handler; pass ``client`` to reuse or mock the transport."""

    def __init__(self, client: httpx.AsyncClient | None = None, *, timeout: float = 10.0) -> None:
        self._client = client
        self._timeout = timeout

    async def fetch(self, location: str) -> str:
        # Open-Meteo geocoding does not understand "City, State"
        city_name = location.split(",")[0].strip()
        if not city_name:
            return _error("A location is required")

        if self._client is not None:
            return await self._fetch_with(self._client, location, city_name)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await self._fetch_with(client, location, city_name)

    async def _fetch_with(self, client: httpx.AsyncClient, location: str, city_name: str) -> str:
        try:
            geo_response = await client.get(
                GEOCODING_URL, params={"name": city_name, "count": 1}
            )
            if geo_response.status_code >= 400:
                return _error(f"Geocoding API error: {geo_response.status_code}")

            results = geo_response.json().get("results") or []
            if not results:
                return _error(f'Location "{location}" not found')
            place = results[0]

            weather_response = await client.get(
                FORECAST_URL,
                params={
                    "latitude": place["latitude"],
                    "longitude": place["longitude"],
                    "current": "temperature_2m,weather_code,wind_speed_10m",
                    "temperature_unit": "fahrenheit",
                    "wind_speed_unit": "mph",
                },
            )
            if weather_response.status_code >= 400:
                return _error(f"Weather API error: {weather_response.status_code}")

            current = weather_response.json().get("current")
            if not current:
                return _error("Weather data unavailable")
        except (httpx.HTTPError, ValueError, KeyError) as exc:
            logger.warning("Weather lookup for %s failed: %s", location, exc)
            return _error(f"Failed to fetch weather: {exc}")

        return json.dumps(
            {
                "location": f"{place.get('name')}, {place.get('country')}",
                "temperature": f"{current.get('temperature_2m')}°F",
                "wind_speed": f"{current.get('wind_speed_10m')} mph",
                "conditions": WEATHER_CONDITIONS.get(current.get("weather_code"), "Unknown"),
            },
            ensure_ascii=False,
        )

    async def __call__(self, arguments: dict[str, Any], context: ToolContext) -> str:
        location = arguments.get("location")
        if not isinstance(location, str):
            return _error("The location argument must be a string")
        return await self.fetch(location)


__all__ = [
    "WEATHER_CONDITIONS",
    "WEATHER_INPUT_SCHEMA",
    "WEATHER_TOOL_DESCRIPTION",
    "WEATHER_TOOL_NAME",
    "WeatherTool",
]
