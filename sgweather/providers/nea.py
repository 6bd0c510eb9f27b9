"""NEA (data.gov.sg) collector, the primary data source."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .base import ProviderError, RetryingFetcher
from ..entities import (
    DATA_QUALITY_LIVE,
    RELIABILITY_PRIMARY,
    ForecastBlock,
    MetricBlock,
    Reading,
    ReadingData,
    StationValue,
)
from ..locations import PRIORITY_LOCATIONS, PriorityLocation, resolve_locations
from ..schemas import NeaForecastResponse, NeaReadingsResponse, parse_payload


NEA_SOURCE = "NEA Singapore"

ENDPOINTS: Tuple[Tuple[str, str], ...] = (
    ("temperature", "/environment/air-temperature"),
    ("humidity", "/environment/relative-humidity"),
    ("rainfall", "/environment/rainfall"),
    ("forecast", "/environment/24-hour-weather-forecast"),
)

# Active NEA stations across the island, used to scale station coverage.
EXPECTED_STATIONS = 50


@dataclass(frozen=True)
class Settled:
    """Outcome of one endpoint call: exactly one of ``value``/``error`` is set."""

    name: str
    value: Any = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def quality_score(successful: int, total: int, stations: int, expected_stations: int = EXPECTED_STATIONS) -> int:
    """0-100 score: 40% endpoint success, 30% station coverage, 30% endpoint types covered."""
    if total <= 0:
        return 0
    success_rate = successful / total
    coverage = min(1.0, stations / expected_stations) if expected_stations > 0 else 0.0
    types_covered = successful / len(ENDPOINTS)
    return round((success_rate * 0.4 + coverage * 0.3 + types_covered * 0.3) * 100)


class NeaCollector:
    base_url = "https://api.data.gov.sg/v1"

    def __init__(
        self,
        fetcher: RetryingFetcher,
        base_url: Optional[str] = None,
        request_delay: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        locations: Iterable[PriorityLocation] = PRIORITY_LOCATIONS,
        expected_stations: int = EXPECTED_STATIONS,
    ) -> None:
        self.fetcher = fetcher
        self.locations = tuple(locations)
        self.expected_stations = expected_stations
        self.base_url = (base_url or self.base_url).rstrip("/")
        self.request_delay = request_delay
        self._sleep = sleep
        self._clock = clock
        self._now = now
        self.last_errors: Dict[str, str] = {}
        self._log = logging.getLogger(self.__class__.__name__)
        self._parsers: Dict[str, Callable[[Any], Any]] = {
            "temperature": self._parse_averaged,
            "humidity": self._parse_averaged,
            "rainfall": self._parse_totalled,
            "forecast": self._parse_forecast,
        }

    def collect(self) -> Optional[Reading]:
        """Query every endpoint in order and assemble whatever succeeded.

        Returns ``None`` when no endpoint succeeded; the reasons are kept in
        ``last_errors``.
        """
        started = self._clock()
        timestamp = self._now()
        results = self.settle()
        elapsed_ms = int((self._clock() - started) * 1000)

        self.last_errors = {r.name: str(r.error) for r in results if not r.ok}
        succeeded = [r for r in results if r.ok]
        if not succeeded:
            self._log.error("All %d NEA endpoints failed", len(results))
            return None

        data = ReadingData(**{r.name: r.value for r in succeeded})
        if self.locations:
            data = replace(data, locations=resolve_locations(data, self.locations))
        return Reading(
            timestamp=timestamp,
            source=NEA_SOURCE,
            data=data,
            collection_time_ms=elapsed_ms,
            data_quality=DATA_QUALITY_LIVE,
            reliability=RELIABILITY_PRIMARY,
            data_quality_score=quality_score(
                len(succeeded), len(results), len(data.stations()), self.expected_stations
            ),
            api_calls={
                "successful_calls": len(succeeded),
                "failed_calls": len(results) - len(succeeded),
                "failed_endpoints": sorted(self.last_errors),
            },
            metadata=self.fetcher.breaker.snapshot(),
        )

    def settle(self) -> List[Settled]:
        results: List[Settled] = []
        for index, (name, path) in enumerate(ENDPOINTS):
            if index:
                self._sleep(self.request_delay)
            try:
                payload = self.fetcher.fetch_json(f"{self.base_url}{path}")
                results.append(Settled(name, value=self._parsers[name](payload)))
            except ProviderError as exc:
                self._log.warning("NEA %s unavailable: %s", name, exc)
                results.append(Settled(name, error=exc))
        return results

    # parsers ------------------------------------------------------------
    def _parse_averaged(self, payload: Any) -> MetricBlock:
        return MetricBlock.averaged(self._station_values(payload))

    def _parse_totalled(self, payload: Any) -> MetricBlock:
        return MetricBlock.totalled(self._station_values(payload))

    def _parse_forecast(self, payload: Any) -> ForecastBlock:
        latest = parse_payload(NeaForecastResponse, payload, source="NEA forecast").latest
        return ForecastBlock(
            general=latest.general,
            periods=tuple(latest.periods),
            valid_period=latest.valid_period,
        )

    def _station_values(self, payload: Any) -> List[StationValue]:
        latest = parse_payload(NeaReadingsResponse, payload, source="NEA readings").latest
        return [StationValue(station=r.station_id, value=r.value) for r in latest.readings]


__all__ = ["ENDPOINTS", "EXPECTED_STATIONS", "NEA_SOURCE", "NeaCollector", "Settled", "quality_score"]
