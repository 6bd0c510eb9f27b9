from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from ..entities import Reading
from ..providers.base import ProviderError
from ..providers.baseline import EmergencyBaseline
from ..providers.nea import NeaCollector
from ..providers.openweather import OpenWeatherProvider


class WeatherService:
    """Fallback chain: NEA, then OpenWeatherMap, then the emergency baseline."""

    def __init__(
        self,
        *,
        primary: NeaCollector,
        secondary: Optional[OpenWeatherProvider] = None,
        baseline: Optional[EmergencyBaseline] = None,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.primary = primary
        self.secondary = secondary
        self.baseline = baseline or EmergencyBaseline()
        self._now = now
        self._log = logger or logging.getLogger(self.__class__.__name__)

    # Public API ---------------------------------------------------------
    def get_weather_data(self) -> Reading:
        errors: Dict[str, str] = {}

        reading = self._try_primary(errors)
        if reading is not None:
            return reading

        reading = self._try_secondary(errors)
        if reading is not None:
            return reading

        self._log.warning("All weather sources failed, writing emergency baseline: %s", errors)
        reading = self.baseline.estimate(self._now(), errors)
        return replace(reading, metadata=self.primary.fetcher.breaker.snapshot())

    # Helpers ------------------------------------------------------------
    def _try_primary(self, errors: Dict[str, str]) -> Optional[Reading]:
        reading = self.primary.collect()
        if reading is not None:
            failed = reading.api_calls["failed_calls"] if reading.api_calls else 0
            if failed:
                self._log.warning("NEA partially available: %s", self.primary.last_errors)
            return reading
        details = "; ".join(f"{name}: {reason}" for name, reason in self.primary.last_errors.items())
        errors["primary"] = f"all NEA endpoints failed ({details})" if details else "all NEA endpoints failed"
        return None

    def _try_secondary(self, errors: Dict[str, str]) -> Optional[Reading]:
        if self.secondary is None:
            errors["secondary"] = "secondary provider not configured"
            return None
        self._log.info("NEA data unavailable, trying OpenWeatherMap")
        try:
            return self.secondary.current()
        except ProviderError as exc:
            self._log.error("Provider %s failed: %s", self.secondary.__class__.__name__, exc)
            errors["secondary"] = str(exc)
            return None


__all__ = ["WeatherService"]
