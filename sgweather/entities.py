from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple


DATA_QUALITY_LIVE = "live"
DATA_QUALITY_ESTIMATED = "estimated"

RELIABILITY_PRIMARY = "primary"
RELIABILITY_SECONDARY = "secondary"
RELIABILITY_EMERGENCY = "emergency_mode"


@dataclass(frozen=True)
class StationValue:
    station: str
    value: float

    def to_dict(self) -> Dict[str, Any]:
        return {"station": self.station, "value": self.value}

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "StationValue":
        return cls(station=str(payload["station"]), value=float(payload["value"]))


@dataclass(frozen=True)
class MetricBlock:
    """Station readings for one metric plus the aggregates derived from them.

    Temperature and humidity carry ``average``; rainfall carries ``total``.
    Every block carries ``min``, ``max`` and ``total_stations``. All of them
    are computed from the readings actually returned, never padded.
    """

    readings: Tuple[StationValue, ...]
    average: Optional[float] = None
    total: Optional[float] = None
    min: Optional[float] = None
    max: Optional[float] = None
    total_stations: int = 0

    @classmethod
    def averaged(cls, readings: Sequence[StationValue]) -> "MetricBlock":
        values = tuple(readings)
        return cls(readings=values, average=_mean([r.value for r in values]), **_spread(values))

    @classmethod
    def totalled(cls, readings: Sequence[StationValue]) -> "MetricBlock":
        values = tuple(readings)
        return cls(readings=values, total=sum(r.value for r in values), **_spread(values))

    def value_for(self, station: str) -> Optional[float]:
        for reading in self.readings:
            if reading.station == station:
                return reading.value
        return None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"readings": [r.to_dict() for r in self.readings]}
        for name in ("average", "total", "min", "max"):
            value = getattr(self, name)
            if value is not None:
                payload[name] = value
        payload["total_stations"] = self.total_stations
        return payload

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "MetricBlock":
        readings = tuple(StationValue.from_dict(r) for r in payload.get("readings") or [])
        return cls(
            readings=readings,
            average=payload.get("average"),
            total=payload.get("total"),
            min=payload.get("min"),
            max=payload.get("max"),
            total_stations=int(payload.get("total_stations", len(readings))),
        )


@dataclass(frozen=True)
class ForecastBlock:
    general: Dict[str, Any]
    periods: Tuple[Dict[str, Any], ...] = ()
    valid_period: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"general": dict(self.general), "periods": [dict(p) for p in self.periods]}
        if self.valid_period is not None:
            payload["valid_period"] = dict(self.valid_period)
        return payload

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ForecastBlock":
        return cls(
            general=dict(payload.get("general") or {}),
            periods=tuple(dict(p) for p in payload.get("periods") or []),
            valid_period=payload.get("valid_period"),
        )


@dataclass(frozen=True)
class ReadingData:
    temperature: Optional[MetricBlock] = None
    humidity: Optional[MetricBlock] = None
    rainfall: Optional[MetricBlock] = None
    forecast: Optional[ForecastBlock] = None
    conditions: Optional[Dict[str, Any]] = None
    locations: Optional[Dict[str, Dict[str, Any]]] = None

    def metrics(self) -> List[str]:
        return [name for name in ("temperature", "humidity", "rainfall", "forecast") if getattr(self, name) is not None]

    def stations(self) -> List[str]:
        seen: Dict[str, None] = {}
        for name in ("temperature", "humidity", "rainfall"):
            block = getattr(self, name)
            if block is not None:
                for reading in block.readings:
                    seen.setdefault(reading.station)
        return list(seen)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        for name in ("temperature", "humidity", "rainfall", "forecast"):
            block = getattr(self, name)
            if block is not None:
                payload[name] = block.to_dict()
        if self.conditions is not None:
            payload["conditions"] = dict(self.conditions)
        if self.locations is not None:
            payload["locations"] = {key: dict(value) for key, value in self.locations.items()}
        return payload

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ReadingData":
        def _metric(name: str) -> Optional[MetricBlock]:
            block = payload.get(name)
            return MetricBlock.from_dict(block) if block is not None else None

        forecast = payload.get("forecast")
        return cls(
            temperature=_metric("temperature"),
            humidity=_metric("humidity"),
            rainfall=_metric("rainfall"),
            forecast=ForecastBlock.from_dict(forecast) if forecast is not None else None,
            conditions=payload.get("conditions"),
            locations=payload.get("locations"),
        )


@dataclass(frozen=True)
class Reading:
    """One collection cycle's result, real or estimated.

    The degraded state is carried by ``data_quality`` and ``reliability`` so
    that consumers of ``latest.json`` can tell estimated values from real ones.
    """

    timestamp: datetime
    source: str
    data: ReadingData
    collection_time_ms: int = 0
    data_quality: str = DATA_QUALITY_LIVE
    reliability: str = RELIABILITY_PRIMARY
    data_quality_score: Optional[int] = None
    api_calls: Optional[Dict[str, Any]] = None
    errors: Optional[Dict[str, str]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_estimated(self) -> bool:
        return self.data_quality == DATA_QUALITY_ESTIMATED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": format_timestamp(self.timestamp),
            "source": self.source,
            "collection_time_ms": self.collection_time_ms,
            "data_quality": self.data_quality,
            "reliability": self.reliability,
            "data_quality_score": self.data_quality_score,
            "data": self.data.to_dict(),
            "api_calls": dict(self.api_calls) if self.api_calls is not None else None,
            "errors": dict(self.errors) if self.errors is not None else None,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Reading":
        return cls(
            timestamp=parse_timestamp(payload["timestamp"]),
            source=payload["source"],
            data=ReadingData.from_dict(payload.get("data") or {}),
            collection_time_ms=int(payload.get("collection_time_ms") or 0),
            data_quality=payload.get("data_quality", DATA_QUALITY_LIVE),
            reliability=payload.get("reliability", RELIABILITY_PRIMARY),
            data_quality_score=payload.get("data_quality_score"),
            api_calls=payload.get("api_calls"),
            errors=payload.get("errors"),
            metadata=dict(payload.get("metadata") or {}),
        )


@dataclass
class DailySummary:
    """All of one UTC day's readings and the running statistics over them.

    Estimated readings are kept in ``readings`` and counted in
    ``estimated_readings`` but never feed ``statistics``.
    """

    date: str
    readings: List[Dict[str, Any]] = field(default_factory=list)
    statistics: Dict[str, Dict[str, float]] = field(default_factory=dict)
    estimated_readings: int = 0
    last_updated: Optional[str] = None

    def add(self, reading: Reading) -> None:
        self.readings.append(reading.to_dict())
        self.last_updated = format_timestamp(reading.timestamp)
        self._recompute()

    def _recompute(self) -> None:
        live = [r for r in self.readings if r.get("data_quality") != DATA_QUALITY_ESTIMATED]
        self.estimated_readings = len(self.readings) - len(live)
        self.statistics = {}
        for metric in ("temperature", "humidity"):
            values = [
                average
                for average in (_summary_average(r, metric) for r in live)
                if average is not None
            ]
            if values:
                self.statistics[metric] = {
                    "min": min(values),
                    "max": max(values),
                    "average": sum(values) / len(values),
                }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "readings": list(self.readings),
            "statistics": dict(self.statistics),
            "estimated_readings": self.estimated_readings,
            "last_updated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "DailySummary":
        """Rebuild a stored summary, raising ``ValueError`` on malformed content."""
        day = payload.get("date")
        readings = payload.get("readings") or []
        if not isinstance(day, str):
            raise ValueError("summary date must be a string")
        if not isinstance(readings, list) or not all(isinstance(r, dict) for r in readings):
            raise ValueError("summary readings must be a list of objects")
        for reading in readings:
            for metric in ("temperature", "humidity"):
                _summary_average(reading, metric)
        summary = cls(date=day, readings=list(readings), last_updated=payload.get("last_updated"))
        summary._recompute()
        return summary


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _summary_average(reading: Dict[str, Any], metric: str) -> Optional[float]:
    data = reading.get("data") or {}
    if not isinstance(data, dict):
        raise ValueError("reading data must be an object")
    block = data.get(metric) or {}
    if not isinstance(block, dict):
        raise ValueError(f"{metric} block must be an object")
    average = block.get("average")
    if average is None:
        return None
    if isinstance(average, bool) or not isinstance(average, (int, float)):
        raise ValueError(f"{metric} average must be a number, got {average!r}")
    return average


def _mean(values: List[float]) -> Optional[float]:
    if not values:
        return None
    return sum(values) / len(values)


def _spread(values: Sequence[StationValue]) -> Dict[str, Any]:
    numbers = [v.value for v in values]
    return {
        "min": min(numbers) if numbers else None,
        "max": max(numbers) if numbers else None,
        "total_stations": len(numbers),
    }


__all__ = [
    "DATA_QUALITY_ESTIMATED",
    "DATA_QUALITY_LIVE",
    "DailySummary",
    "ForecastBlock",
    "MetricBlock",
    "RELIABILITY_EMERGENCY",
    "RELIABILITY_PRIMARY",
    "RELIABILITY_SECONDARY",
    "Reading",
    "ReadingData",
    "StationValue",
    "format_timestamp",
    "parse_timestamp",
]
