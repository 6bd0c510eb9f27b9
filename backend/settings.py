"""Django settings for the weather collector."""
from __future__ import annotations

from pathlib import Path
import os

from django.core.exceptions import ImproperlyConfigured

BASE_DIR = Path(__file__).resolve().parent.parent


def env(name: str, default: str | None = None) -> str:
    """Fetch environment variables while allowing explicit defaults."""

    value = os.environ.get(name, default)
    if value is None:
        raise ImproperlyConfigured(f"Environment variable {name} is required")
    return value


def env_int(name: str, default: int) -> int:
    value = env(name, str(default))
    try:
        return int(value)
    except ValueError as exc:
        raise ImproperlyConfigured(f"Environment variable {name} must be an integer, got {value!r}") from exc


def env_float(name: str, default: float) -> float:
    value = env(name, str(default))
    try:
        return float(value)
    except ValueError as exc:
        raise ImproperlyConfigured(f"Environment variable {name} must be a number, got {value!r}") from exc


SECRET_KEY = env("DJANGO_SECRET_KEY", "weather-collector-not-served")
DEBUG = os.environ.get("DJANGO_DEBUG", "0") == "1"
ALLOWED_HOSTS: list[str] = []

INSTALLED_APPS = [
    "backend.collector",
]

DATABASES: dict = {}

TIME_ZONE = "UTC"
USE_TZ = True

# Collector ----------------------------------------------------------------
REQUEST_TIMEOUT = env_int("REQUEST_TIMEOUT", 10000)  # milliseconds
MAX_RETRIES = env_int("MAX_RETRIES", 3)
WEATHER_API_KEY = os.environ.get("WEATHER_API_KEY") or None
WEATHER_DATA_DIR = Path(env("WEATHER_DATA_DIR", str(BASE_DIR / "data" / "weather")))
NEA_API_BASE_URL = env("NEA_API_BASE_URL", "https://api.data.gov.sg/v1")
NEA_REQUEST_DELAY = env_float("NEA_REQUEST_DELAY", 1.0)  # seconds
OPENWEATHER_API_URL = env("OPENWEATHER_API_URL", "https://api.openweathermap.org/data/2.5/weather")
CIRCUIT_BREAKER_THRESHOLD = env_int("CIRCUIT_BREAKER_THRESHOLD", 5)
CIRCUIT_BREAKER_COOLDOWN = env_float("CIRCUIT_BREAKER_COOLDOWN", 60.0)  # seconds

LOG_LEVEL = env("LOG_LEVEL", "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "plain": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "plain"},
    },
    "root": {"handlers": ["console"], "level": LOG_LEVEL},
}
