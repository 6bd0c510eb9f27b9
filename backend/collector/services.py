"""Build the collector stack from Django settings."""
from __future__ import annotations

from django.conf import settings

from sgweather.breaker import CircuitBreaker
from sgweather.providers.base import RequestConfig, RetryingFetcher
from sgweather.providers.nea import NeaCollector
from sgweather.providers.openweather import OpenWeatherProvider
from sgweather.services.weather import WeatherService
from sgweather.storage import WeatherArchive


def build_fetcher() -> RetryingFetcher:
    breaker = CircuitBreaker(
        threshold=settings.CIRCUIT_BREAKER_THRESHOLD,
        cooldown=settings.CIRCUIT_BREAKER_COOLDOWN,
    )
    config = RequestConfig.from_milliseconds(settings.REQUEST_TIMEOUT, settings.MAX_RETRIES)
    return RetryingFetcher(request_config=config, breaker=breaker)


def build_weather_service() -> WeatherService:
    # One breaker per invocation, shared by every upstream call.
    fetcher = build_fetcher()
    secondary = None
    if settings.WEATHER_API_KEY:
        secondary = OpenWeatherProvider(
            api_key=settings.WEATHER_API_KEY,
            fetcher=fetcher,
            base_url=settings.OPENWEATHER_API_URL,
        )
    primary = NeaCollector(
        fetcher,
        base_url=settings.NEA_API_BASE_URL,
        request_delay=settings.NEA_REQUEST_DELAY,
    )
    return WeatherService(primary=primary, secondary=secondary)


def build_archive(data_dir=None) -> WeatherArchive:
    return WeatherArchive(data_dir or settings.WEATHER_DATA_DIR)
