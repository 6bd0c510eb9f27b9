from __future__ import annotations

from datetime import datetime, timezone
from typing import List

import pytest

from sgweather.breaker import CircuitBreaker
from sgweather.entities import StationValue
from sgweather.providers.base import FetchError, RequestConfig, RetryingFetcher, SchemaError
from sgweather.providers.nea import NEA_SOURCE, NeaCollector, quality_score
from sgweather.providers.openweather import OpenWeatherProvider
from sgweather.schemas import NeaReadingsResponse, parse_payload

NEA = "https://nea.test/v1"
OWM = "https://owm.test/data/2.5/weather"
NOW = datetime(2024, 3, 5, 6, 30, tzinfo=timezone.utc)


def readings(*pairs) -> dict:
    return {
        "items": [
            {
                "timestamp": "2024-03-05T14:25:00+08:00",
                "readings": [{"station_id": s, "value": v} for s, v in pairs],
            }
        ]
    }


FORECAST = {
    "items": [
        {
            "general": {"forecast": "Thundery Showers", "temperature": {"low": 24, "high": 33}},
            "periods": [{"time": {"start": "2024-03-05T12:00:00+08:00"}, "regions": {"west": "Showers"}}],
            "valid_period": {"start": "2024-03-05T12:00:00+08:00", "end": "2024-03-06T12:00:00+08:00"},
        }
    ]
}


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def make_fetcher(retries: int = 1) -> RetryingFetcher:
    return RetryingFetcher(
        request_config=RequestConfig(retries=retries),
        breaker=CircuitBreaker(threshold=5, cooldown=60),
        sleep=lambda seconds: None,
        jitter=lambda low, high: 0.0,
    )


def make_collector(sleep=None) -> NeaCollector:
    return NeaCollector(
        make_fetcher(),
        base_url=NEA,
        request_delay=1.0,
        sleep=sleep or (lambda seconds: None),
        now=lambda: NOW,
    )


def mock_nea(requests_mock, temperature=None, humidity=None, rainfall=None, forecast=None) -> None:
    for path, payload in (
        ("/environment/air-temperature", temperature),
        ("/environment/relative-humidity", humidity),
        ("/environment/rainfall", rainfall),
        ("/environment/24-hour-weather-forecast", forecast),
    ):
        if payload is None:
            requests_mock.get(f"{NEA}{path}", status_code=500, text="server error")
        else:
            requests_mock.get(f"{NEA}{path}", json=payload)


def test_nea_collects_all_endpoints(requests_mock):
    mock_nea(
        requests_mock,
        temperature={"items": [{"readings": [{"station_id": "S109", "value": 29.5}]}]},
        humidity=readings(("S109", 70.0), ("S116", 80.0)),
        rainfall=readings(("S109", 0.2), ("S116", 1.0)),
        forecast=FORECAST,
    )

    reading = make_collector().collect()

    assert reading is not None
    assert reading.source == NEA_SOURCE
    assert reading.timestamp == NOW
    assert reading.data.temperature.average == 29.5
    assert reading.data.to_dict()["temperature"]["readings"] == [{"station": "S109", "value": 29.5}]
    assert reading.data.humidity.average == 75.0
    assert reading.data.rainfall.total == pytest.approx(1.2)
    assert reading.data.rainfall.average is None
    assert reading.data.forecast.general["forecast"] == "Thundery Showers"
    assert reading.api_calls == {"successful_calls": 4, "failed_calls": 0, "failed_endpoints": []}
    assert reading.errors is None
    assert reading.metadata["circuit_breaker_state"] == "CLOSED"


def test_nea_queries_endpoints_in_order_with_courtesy_delay(requests_mock):
    mock_nea(
        requests_mock,
        temperature=readings(("S1", 30.0)),
        humidity=readings(("S1", 70.0)),
        rainfall=readings(("S1", 0.0)),
        forecast=FORECAST,
    )
    sleep = SleepRecorder()

    make_collector(sleep=sleep).collect()

    paths = [request.path for request in requests_mock.request_history]
    assert paths == [
        "/v1/environment/air-temperature",
        "/v1/environment/relative-humidity",
        "/v1/environment/rainfall",
        "/v1/environment/24-hour-weather-forecast",
    ]
    assert sleep.delays == [1.0, 1.0, 1.0]


def test_nea_partial_failure_keeps_successful_metrics(requests_mock):
    mock_nea(
        requests_mock,
        temperature=readings(("S1", 28.0), ("S2", 30.0)),
        rainfall=readings(("S1", 3.0)),
    )
    collector = make_collector()

    reading = collector.collect()

    assert reading is not None
    assert reading.data.metrics() == ["temperature", "rainfall"]
    assert reading.data.humidity is None
    assert reading.data.forecast is None
    assert reading.data.temperature.average == 29.0
    calls = reading.api_calls
    assert calls["successful_calls"] == 2
    assert calls["failed_calls"] == 2
    assert calls["successful_calls"] + calls["failed_calls"] == 4
    assert calls["failed_endpoints"] == ["forecast", "humidity"]
    assert set(collector.last_errors) == {"humidity", "forecast"}


def test_nea_returns_none_when_everything_fails(requests_mock):
    mock_nea(requests_mock)
    collector = make_collector()

    assert collector.collect() is None
    assert set(collector.last_errors) == {"temperature", "humidity", "rainfall", "forecast"}
    assert "HTTP 500" in collector.last_errors["temperature"]


def test_nea_schema_mismatch_is_a_rejected_endpoint(requests_mock):
    mock_nea(
        requests_mock,
        temperature={"items": []},
        humidity={"unexpected": True},
        rainfall=readings(("S1", 0.0)),
        forecast={"items": [{"periods": []}]},
    )
    collector = make_collector()

    reading = collector.collect()

    assert reading.data.metrics() == ["rainfall"]
    assert "unexpected payload shape" in collector.last_errors["temperature"]
    assert "unexpected payload shape" in collector.last_errors["forecast"]


def test_nea_empty_readings_have_no_average(requests_mock):
    mock_nea(requests_mock, temperature=readings())

    reading = make_collector().collect()

    assert reading.data.temperature.readings == ()
    assert reading.data.temperature.average is None
    assert reading.data.temperature.total_stations == 0
    assert reading.data.temperature.min is None


def test_nea_blocks_carry_spread_and_station_count(requests_mock):
    mock_nea(
        requests_mock,
        temperature=readings(("S1", 27.5), ("S2", 31.0), ("S3", 29.0)),
        rainfall=readings(("S1", 0.0), ("S2", 2.5)),
    )

    reading = make_collector().collect()

    temperature = reading.data.to_dict()["temperature"]
    assert temperature["min"] == 27.5
    assert temperature["max"] == 31.0
    assert temperature["total_stations"] == 3
    assert reading.data.rainfall.max == 2.5
    assert reading.data.rainfall.total_stations == 2


def test_nea_quality_score_reflects_success_and_coverage(requests_mock):
    mock_nea(
        requests_mock,
        temperature={"items": [{"readings": [{"station_id": "S109", "value": 29.5}]}]},
        humidity=readings(("S109", 70.0), ("S116", 80.0)),
        rainfall=readings(("S109", 0.2), ("S116", 1.0)),
        forecast=FORECAST,
    )

    reading = make_collector().collect()

    # 4/4 endpoints, 2 of 50 stations, all 4 types
    assert reading.data_quality_score == 71
    assert reading.to_dict()["data_quality_score"] == 71


def test_nea_quality_score_drops_with_failed_endpoints(requests_mock):
    mock_nea(
        requests_mock,
        temperature=readings(("S1", 28.0), ("S2", 30.0)),
        rainfall=readings(("S1", 3.0)),
    )

    reading = make_collector().collect()

    assert reading.data_quality_score == 36


@pytest.mark.parametrize(
    "successful,total,stations,expected",
    [
        (4, 4, 50, 100),
        (4, 4, 120, 100),
        (0, 4, 0, 0),
        (0, 0, 0, 0),
        (2, 4, 10, 41),
    ],
)
def test_quality_score_weights(successful, total, stations, expected):
    assert quality_score(successful, total, stations) == expected


def test_nea_resolves_priority_locations_by_station_preference(requests_mock):
    mock_nea(
        requests_mock,
        temperature=readings(("S121", 30.0), ("S116", 29.0), ("S106", 28.0)),
        humidity=readings(("S121", 75.0), ("S107", 81.0)),
    )

    reading = make_collector().collect()

    locations = reading.data.locations
    assert set(locations) == {"hwa_chong_international_school", "newton", "clementi"}
    school = locations["hwa_chong_international_school"]
    assert school["coordinates"] == {"lat": 1.32865, "lng": 103.80227}
    assert school["temperature"] == {"station": "S116", "value": 29.0}
    assert school["humidity"] == {"station": "S121", "value": 75.0}
    assert school["rainfall"] is None
    assert locations["newton"]["humidity"] == {"station": "S107", "value": 81.0}
    assert locations["clementi"]["temperature"] is None
    assert reading.data.to_dict()["locations"]["newton"]["temperature"]["station"] == "S106"


def test_nea_without_priority_locations_omits_block(requests_mock):
    mock_nea(requests_mock, temperature=readings(("S116", 29.0)))
    collector = NeaCollector(make_fetcher(), base_url=NEA, sleep=lambda seconds: None, locations=())

    reading = collector.collect()

    assert reading.data.locations is None
    assert "locations" not in reading.data.to_dict()


def test_parse_payload_rejects_non_numeric_values():
    with pytest.raises(SchemaError):
        parse_payload(NeaReadingsResponse, readings(("S1", "n/a")), source="NEA readings")


def test_openweather_normalization(requests_mock):
    requests_mock.get(
        OWM,
        json={
            "main": {"temp": 31.2, "feels_like": 36.0, "temp_min": 30.0, "temp_max": 32.5, "humidity": 66},
            "weather": [{"main": "Clouds", "description": "broken clouds", "icon": "04d"}],
            "wind": {"speed": 4.1, "deg": 150},
            "rain": {"1h": 0.4},
            "visibility": 10000,
        },
    )
    provider = OpenWeatherProvider(api_key="secret", fetcher=make_fetcher(), base_url=OWM, now=lambda: NOW)

    reading = provider.current()

    assert reading.source == "OpenWeatherMap"
    assert reading.reliability == "secondary"
    assert reading.data.temperature.readings == (StationValue("openweathermap", 31.2),)
    assert reading.data.temperature.average == 31.2
    assert reading.data.humidity.average == 66
    assert reading.data.rainfall.total == 0.4
    assert reading.data.forecast.general["forecast"] == "broken clouds"
    assert reading.data.conditions["wind"] == {"speed": 4.1, "deg": 150}
    query = requests_mock.request_history[0].qs
    assert query["q"] == ["singapore"]
    assert query["appid"] == ["secret"]
    assert query["units"] == ["metric"]


def test_openweather_shape_mismatch_raises(requests_mock):
    requests_mock.get(OWM, json={"cod": 401, "message": "Invalid API key"})
    provider = OpenWeatherProvider(api_key="secret", fetcher=make_fetcher(), base_url=OWM)

    with pytest.raises(SchemaError):
        provider.current()


def test_openweather_http_failure_raises(requests_mock):
    requests_mock.get(OWM, status_code=401)
    provider = OpenWeatherProvider(api_key="secret", fetcher=make_fetcher(), base_url=OWM)

    with pytest.raises(FetchError):
        provider.current()


def test_openweather_requires_api_key():
    with pytest.raises(ValueError):
        OpenWeatherProvider(api_key="", fetcher=make_fetcher())
