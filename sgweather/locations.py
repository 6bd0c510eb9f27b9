"""Priority locations and the NEA stations preferred for each of them."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Tuple

from .entities import MetricBlock, ReadingData


@dataclass(frozen=True)
class PriorityLocation:
    key: str
    name: str
    latitude: float
    longitude: float
    station_preferences: Tuple[str, ...]


PRIORITY_LOCATIONS: Tuple[PriorityLocation, ...] = (
    PriorityLocation(
        "hwa_chong_international_school",
        "Hwa Chong International School",
        1.32865,
        103.80227,
        ("S116", "S121", "S118"),
    ),
    PriorityLocation("newton", "Newton", 1.3138, 103.8420, ("S106", "S107")),
    PriorityLocation("clementi", "Clementi", 1.3162, 103.7649, ("S122", "S113")),
)


def preferred_value(block: Optional[MetricBlock], preferences: Iterable[str]) -> Optional[Dict[str, Any]]:
    """Value of the first preferred station that reported, if any."""
    if block is None:
        return None
    for station in preferences:
        value = block.value_for(station)
        if value is not None:
            return {"station": station, "value": value}
    return None


def resolve_locations(
    data: ReadingData,
    locations: Iterable[PriorityLocation] = PRIORITY_LOCATIONS,
) -> Dict[str, Dict[str, Any]]:
    resolved: Dict[str, Dict[str, Any]] = {}
    for location in locations:
        resolved[location.key] = {
            "name": location.name,
            "coordinates": {"lat": location.latitude, "lng": location.longitude},
            "temperature": preferred_value(data.temperature, location.station_preferences),
            "humidity": preferred_value(data.humidity, location.station_preferences),
            "rainfall": preferred_value(data.rainfall, location.station_preferences),
        }
    return resolved


__all__ = ["PRIORITY_LOCATIONS", "PriorityLocation", "preferred_value", "resolve_locations"]
