"""Typed shapes of the upstream payloads, validated at ingestion.

NEA readings endpoints answer with ``items[0].readings[] = {station_id, value}``
and the forecast endpoint with ``items[0].general`` / ``items[0].periods``.
OpenWeatherMap answers with its ``main``/``weather``/``wind`` document. Any
payload that does not match is rejected with :class:`SchemaError` instead of
being guessed at.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .providers.base import SchemaError

__all__ = [
    "NeaForecastItem",
    "NeaForecastResponse",
    "NeaReadingsItem",
    "NeaReadingsResponse",
    "NeaStationReading",
    "OpenWeatherResponse",
    "parse_payload",
]


class _Upstream(BaseModel):
    model_config = ConfigDict(extra="ignore")


class NeaStationReading(_Upstream):
    station_id: str
    value: float


class NeaReadingsItem(_Upstream):
    timestamp: Optional[str] = None
    readings: List[NeaStationReading]


class NeaReadingsResponse(_Upstream):
    items: List[NeaReadingsItem] = Field(min_length=1)

    @property
    def latest(self) -> NeaReadingsItem:
        return self.items[0]


class NeaForecastItem(_Upstream):
    general: Dict[str, Any]
    periods: List[Dict[str, Any]] = Field(default_factory=list)
    valid_period: Optional[Dict[str, Any]] = None


class NeaForecastResponse(_Upstream):
    items: List[NeaForecastItem] = Field(min_length=1)

    @property
    def latest(self) -> NeaForecastItem:
        return self.items[0]


class OpenWeatherMain(_Upstream):
    temp: float
    humidity: float
    feels_like: Optional[float] = None
    temp_min: Optional[float] = None
    temp_max: Optional[float] = None
    pressure: Optional[float] = None


class OpenWeatherCondition(_Upstream):
    main: str
    description: str
    icon: Optional[str] = None


class OpenWeatherWind(_Upstream):
    speed: Optional[float] = None
    deg: Optional[float] = None


class OpenWeatherResponse(_Upstream):
    main: OpenWeatherMain
    weather: List[OpenWeatherCondition] = Field(min_length=1)
    wind: Optional[OpenWeatherWind] = None
    rain: Optional[Dict[str, float]] = None
    visibility: Optional[float] = None
    dt: Optional[int] = None


_Model = TypeVar("_Model", bound=BaseModel)


def parse_payload(model: Type[_Model], payload: Any, *, source: str) -> _Model:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise SchemaError(f"{source}: unexpected payload shape ({exc.error_count()} errors)") from exc
