from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass


@dataclass(frozen=True)
class WeatherReport:
    location: str
    temperature: int


MOCK_WEATHER: tuple[WeatherReport, ...] = (
    WeatherReport("Mumbai, India", 28),
    WeatherReport("Delhi, India", 23),
    WeatherReport("Bangalore, India", 25),
    WeatherReport("Chennai, India", 31),
    WeatherReport("Kolkata, India", 27),
)


class SimulatedWeatherLookup:
    """Stand-in for a location/weather service: picks a city from a fixed table."""

    def __init__(
        self,
        rng: random.Random | None = None,
        *,
        latency_seconds: float = 0.0,
        table: tuple[WeatherReport, ...] = MOCK_WEATHER,
    ) -> None:
        self._rng = rng or random.Random()
        self._latency = max(0.0, latency_seconds)
        self._table = table

    async def lookup(self) -> WeatherReport:
        if self._latency:
            await asyncio.sleep(self._latency)
        return self._rng.choice(self._table)
