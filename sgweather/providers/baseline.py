from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Mapping, Optional

from ..entities import (
    DATA_QUALITY_ESTIMATED,
    RELIABILITY_EMERGENCY,
    MetricBlock,
    Reading,
    ReadingData,
    StationValue,
)


EMERGENCY_SOURCE = "Emergency Baseline"
ESTIMATE_STATION = "baseline_estimate"
SINGAPORE_TZ = timezone(timedelta(hours=8), name="SGT")


@dataclass(frozen=True)
class EmergencyBaseline:
    """Degraded estimate used only when every real source is unavailable.

    Values follow Singapore's diurnal pattern: warmer, drier afternoons and
    humid mornings. Readings produced here are always tagged as estimated.
    """

    base_temperature: float = 27.0
    afternoon_warming: float = 4.0
    night_cooling: float = 1.5
    base_humidity: float = 78.0
    morning_humidity: float = 8.0
    afternoon_drying: float = 10.0

    def temperature_at(self, hour: int) -> float:
        if 12 <= hour < 18:
            return self.base_temperature + self.afternoon_warming
        if hour < 6:
            return self.base_temperature - self.night_cooling
        return self.base_temperature

    def humidity_at(self, hour: int) -> float:
        if 6 <= hour < 10:
            return self.base_humidity + self.morning_humidity
        if 12 <= hour < 18:
            return self.base_humidity - self.afternoon_drying
        return self.base_humidity

    def estimate(self, now: datetime, errors: Mapping[str, Optional[str]]) -> Reading:
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        hour = now.astimezone(SINGAPORE_TZ).hour
        reasons: Dict[str, str] = {
            "primary": errors.get("primary") or "primary source unavailable",
            "secondary": errors.get("secondary") or "secondary source unavailable",
        }
        return Reading(
            timestamp=now,
            source=EMERGENCY_SOURCE,
            data=ReadingData(
                temperature=MetricBlock.averaged([StationValue(ESTIMATE_STATION, self.temperature_at(hour))]),
                humidity=MetricBlock.averaged([StationValue(ESTIMATE_STATION, self.humidity_at(hour))]),
            ),
            data_quality=DATA_QUALITY_ESTIMATED,
            reliability=RELIABILITY_EMERGENCY,
            errors=reasons,
        )


__all__ = ["EMERGENCY_SOURCE", "EmergencyBaseline", "SINGAPORE_TZ"]
