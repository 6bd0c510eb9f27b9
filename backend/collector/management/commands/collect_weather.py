"""Management command run by the scheduler once per collection cycle."""
from __future__ import annotations

import json
import logging
from typing import Any

from django.core.management.base import BaseCommand, CommandError

from backend.collector.services import build_archive, build_weather_service
from sgweather.storage import StorageError


logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Collect one weather reading and write it to the data directory"

    def add_arguments(self, parser) -> None:  # noqa: D401
        parser.add_argument("--data-dir", type=str, help="Override WEATHER_DATA_DIR")
        parser.add_argument("--print", action="store_true", dest="print_json", help="Echo the reading as JSON")

    def handle(self, *args: Any, **options: Any) -> None:  # noqa: D401
        service = build_weather_service()
        archive = build_archive(options.get("data_dir"))

        reading = service.get_weather_data()
        try:
            archive.save(reading)
        except StorageError as exc:
            raise CommandError(str(exc)) from exc

        temperature = reading.data.temperature
        logger.info(
            "Collected %s reading (%s, %s, score %s) in %dms, temperature %s",
            reading.source,
            reading.reliability,
            reading.data_quality,
            reading.data_quality_score if reading.data_quality_score is not None else "n/a",
            reading.collection_time_ms,
            f"{temperature.average:.1f}C" if temperature and temperature.average is not None else "n/a",
        )
        if options.get("print_json"):
            self.stdout.write(json.dumps(reading.to_dict()))
