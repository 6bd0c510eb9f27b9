"""OpenWeatherMap secondary provider."""
from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from .base import RetryingFetcher
from ..entities import (
    DATA_QUALITY_LIVE,
    RELIABILITY_SECONDARY,
    ForecastBlock,
    MetricBlock,
    Reading,
    ReadingData,
    StationValue,
)
from ..schemas import OpenWeatherResponse, parse_payload


OPENWEATHER_SOURCE = "OpenWeatherMap"
STATION_NAME = "openweathermap"


class OpenWeatherProvider:
    """Single-call provider whose payload is normalized to the NEA reading layout."""

    base_url = "https://api.openweathermap.org/data/2.5/weather"

    def __init__(
        self,
        *,
        api_key: str,
        fetcher: RetryingFetcher,
        base_url: Optional[str] = None,
        city: str = "Singapore",
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        if not api_key:
            raise ValueError("api_key must be provided")
        self.api_key = api_key
        self.fetcher = fetcher
        self.base_url = base_url or self.base_url
        self.city = city
        self._clock = clock
        self._now = now
        self._log = logging.getLogger(self.__class__.__name__)

    def current(self) -> Reading:
        started = self._clock()
        timestamp = self._now()
        params = {"q": self.city, "appid": self.api_key, "units": "metric"}
        payload = self.fetcher.fetch_json(self.base_url, params=params)
        data = self.normalize(payload)
        self._log.info("OpenWeatherMap reading for %s: %.1f C", self.city, data.temperature.average)
        return Reading(
            timestamp=timestamp,
            source=OPENWEATHER_SOURCE,
            data=data,
            collection_time_ms=int((self._clock() - started) * 1000),
            data_quality=DATA_QUALITY_LIVE,
            reliability=RELIABILITY_SECONDARY,
            metadata=self.fetcher.breaker.snapshot(),
        )

    def normalize(self, payload: Any) -> ReadingData:
        parsed = parse_payload(OpenWeatherResponse, payload, source="OpenWeatherMap")
        main = parsed.main
        condition = parsed.weather[0]

        rainfall = None
        if parsed.rain:
            amount = parsed.rain.get("1h", parsed.rain.get("3h"))
            if amount is not None:
                rainfall = MetricBlock.totalled([StationValue(STATION_NAME, amount)])

        conditions: Dict[str, Any] = {
            "feels_like": main.feels_like,
            "temp_min": main.temp_min,
            "temp_max": main.temp_max,
            "visibility": parsed.visibility,
        }
        if parsed.wind is not None:
            conditions["wind"] = {"speed": parsed.wind.speed, "deg": parsed.wind.deg}

        return ReadingData(
            temperature=MetricBlock.averaged([StationValue(STATION_NAME, main.temp)]),
            humidity=MetricBlock.averaged([StationValue(STATION_NAME, main.humidity)]),
            rainfall=rainfall,
            forecast=ForecastBlock(
                general={
                    "forecast": condition.description,
                    "main": condition.main,
                    "icon": condition.icon,
                }
            ),
            conditions=conditions,
        )


__all__ = ["OPENWEATHER_SOURCE", "OpenWeatherProvider"]
