"""On-disk layout consumed by the dashboard.

::

    <base>/latest.json                       current reading, overwritten
    <base>/collection-statistics.json        last run's quality and API performance
    <base>/<YYYY>/<MM>/<DD>/<HH>-<MM>.json   one snapshot per cycle, never overwritten
    <base>/<YYYY>/<MM>/<DD>/summary.json     daily summary with running statistics

Paths are derived from the reading's UTC timestamp. Only a failure to write
``latest.json`` is fatal; history, summary and statistics failures are logged
so the current-state pointer is always kept up to date.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .entities import DailySummary, Reading, format_timestamp


logger = logging.getLogger(__name__)


class StorageError(RuntimeError):
    """Raised when the current-state pointer cannot be written."""


class WeatherArchive:
    LATEST_NAME = "latest.json"
    SUMMARY_NAME = "summary.json"
    STATISTICS_NAME = "collection-statistics.json"

    def __init__(self, base_dir: Union[str, Path]) -> None:
        self.base_dir = Path(base_dir)

    # Paths --------------------------------------------------------------
    @property
    def latest_path(self) -> Path:
        return self.base_dir / self.LATEST_NAME

    @property
    def statistics_path(self) -> Path:
        return self.base_dir / self.STATISTICS_NAME

    def day_dir(self, when: Union[date, datetime]) -> Path:
        if isinstance(when, datetime):
            when = _utc(when).date()
        return self.base_dir / f"{when.year:04d}" / f"{when.month:02d}" / f"{when.day:02d}"

    def history_path(self, when: datetime) -> Path:
        when = _utc(when)
        return self.day_dir(when) / f"{when.hour:02d}-{when.minute:02d}.json"

    def summary_path(self, when: Union[date, datetime]) -> Path:
        return self.day_dir(when) / self.SUMMARY_NAME

    # Writes -------------------------------------------------------------
    def save(self, reading: Reading) -> bool:
        """Persist one reading.

        Returns ``True`` when a new historical snapshot was written. A reading
        whose snapshot already exists (a second run in the same minute) still
        replaces ``latest.json`` but is not appended to the daily summary, so
        the summary never counts a minute the history does not hold.
        """
        payload = reading.to_dict()

        try:
            archived = self._write_history(reading.timestamp, payload)
        except OSError as exc:
            logger.error("Failed to write historical snapshot", exc_info=exc)
            archived = False
            duplicate = False
        else:
            duplicate = not archived

        try:
            _write_json_atomic(self.latest_path, payload)
        except OSError as exc:
            raise StorageError(f"cannot write {self.latest_path}: {exc}") from exc

        if duplicate:
            logger.warning(
                "Skipping daily summary update for duplicate snapshot %s", self.history_path(reading.timestamp)
            )
        else:
            try:
                self._update_summary(reading)
            except (OSError, ValueError, TypeError) as exc:
                logger.error("Failed to update daily summary", exc_info=exc)

        try:
            _write_json_atomic(self.statistics_path, collection_statistics(reading))
        except OSError as exc:
            logger.error("Failed to write collection statistics", exc_info=exc)

        if archived:
            logger.info("Weather data saved: %s", self.history_path(reading.timestamp))
        else:
            logger.info("Weather data saved: %s (no new snapshot)", self.latest_path)
        return archived

    def _write_history(self, when: datetime, payload: Dict[str, Any]) -> bool:
        path = self.history_path(when)
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with path.open("x", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2)
        except FileExistsError:
            logger.warning("Snapshot %s already exists, keeping the original", path)
            return False
        return True

    def _update_summary(self, reading: Reading) -> DailySummary:
        day = _utc(reading.timestamp).date()
        summary = self.load_summary(day) or DailySummary(date=day.isoformat())
        summary.add(reading)
        _write_json_atomic(self.summary_path(day), summary.to_dict())
        return summary

    # Reads --------------------------------------------------------------
    def load_latest(self) -> Optional[Reading]:
        payload = _read_json(self.latest_path)
        if payload is None:
            return None
        return Reading.from_dict(payload)

    def load_summary(self, day: date) -> Optional[DailySummary]:
        """Stored summary for ``day``, or ``None`` when it must be started afresh."""
        path = self.summary_path(day)
        payload = _read_json(path)
        if payload is None:
            return None
        try:
            summary = DailySummary.from_dict(payload)
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            logger.warning("Ignoring malformed summary %s: %s", path, exc)
            return None
        if summary.date != day.isoformat():
            logger.warning("Summary %s belongs to %s, starting a new one", path, summary.date)
            return None
        return summary

    def load_statistics(self) -> Optional[Dict[str, Any]]:
        return _read_json(self.statistics_path)


def collection_statistics(reading: Reading) -> Dict[str, Any]:
    """Monitoring document for one run: quality score and API performance."""
    performance: Optional[Dict[str, Any]] = None
    calls = reading.api_calls or {}
    total = int(calls.get("successful_calls", 0)) + int(calls.get("failed_calls", 0))
    if total:
        performance = {
            "total_calls": total,
            "success_rate": round(calls.get("successful_calls", 0) / total * 100),
            "average_response_time_ms": reading.collection_time_ms / total,
        }
    return {
        "timestamp": format_timestamp(reading.timestamp),
        "source": reading.source,
        "reliability": reading.reliability,
        "data_quality": reading.data_quality,
        "data_quality_score": reading.data_quality_score,
        "stations_reporting": len(reading.data.stations()),
        "api_performance": performance,
        "metadata": dict(reading.metadata),
    }


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _read_json(path: Path) -> Optional[Dict[str, Any]]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
    except FileNotFoundError:
        return None
    except ValueError:
        logger.warning("Ignoring unreadable JSON file %s", path)
        return None
    if not isinstance(payload, dict):
        logger.warning("Ignoring unexpected JSON document in %s", path)
        return None
    return payload


def _write_json_atomic(path: Path, payload: Dict[str, Any]) -> None:
    """Write through a uniquely named sibling temp file and rename it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    handle = tempfile.NamedTemporaryFile(
        "w", encoding="utf-8", dir=path.parent, prefix=f".{path.name}.", suffix=".tmp", delete=False
    )
    tmp_path = Path(handle.name)
    try:
        with handle:
            json.dump(payload, handle, indent=2)
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


__all__ = ["StorageError", "WeatherArchive", "collection_statistics"]
