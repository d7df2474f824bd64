"""
Shared pytest fixtures for telraam_client tests.

Provides configuration objects, a recording sleep function, sample payloads
and FakeTelraamServer, an httpx.MockTransport handler that serves
deterministic traffic buckets and can be scripted to fail.
"""

import json
from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
import pytest
from pydantic import SecretStr

from telraam_client.client import TelraamClient
from telraam_client.commands import TelraamApi
from telraam_client.config import (
    ApiConfig,
    RetryConfig,
    TelraamConfig,
    TrafficConfig,
)
from telraam_client.models import ApiCredentials

TEST_BASE_URL: str = 'https://telraam.test'
TEST_TOKEN: str = 'test-token-123'
SAMPLE_START: datetime = datetime(2024, 1, 1, tzinfo=UTC)


# =============================================================================
# Sample Payloads
# =============================================================================


def make_report(
    date: datetime,
    segment_id: int = 348917,
    interval: str = 'hourly',
    **counts: float,
) -> dict[str, Any]:
    """Build one raw traffic bucket as the API returns it."""
    report: dict[str, Any] = {
        'instance_id': -1,
        'segment_id': segment_id,
        'date': date.strftime('%Y-%m-%dT%H:%M:%S.000Z'),
        'interval': interval,
        'uptime': 0.75,
        'heavy': 1.0,
        'car': 10.0,
        'bike': 5.0,
        'pedestrian': 2.0,
        'heavy_lft': 0.5,
        'heavy_rgt': 0.5,
        'car_lft': 4.0,
        'car_rgt': 6.0,
        'bike_lft': 2.0,
        'bike_rgt': 3.0,
        'pedestrian_lft': 1.0,
        'pedestrian_rgt': 1.0,
        'direction': 1,
        'timezone': 'Europe/Brussels',
        'car_speed_hist_0to70plus': [0.0, 5.0, 20.0, 40.0, 25.0, 8.0, 2.0, 0.0],
        'car_speed_hist_0to120plus': [0.0] * 25,
        'v85': 42.5,
    }
    report.update(counts)
    return report


def traffic_body(reports: list[dict[str, Any]]) -> dict[str, Any]:
    return {'status_code': 200, 'message': 'ok', 'report': reports}


def segment_feature(
    segment_id: int,
    coordinates: list[list[list[float]]] | None = None,
    geometry_type: str = 'MultiLineString',
    **properties: Any,
) -> dict[str, Any]:
    """Build a GeoJSON Feature for a segment."""
    if coordinates is None:
        coordinates = [[[4.35, 50.85], [4.36, 50.86]]]
    return {
        'type': 'Feature',
        'geometry': {'type': geometry_type, 'coordinates': coordinates},
        'properties': {'segment_id': segment_id, **properties},
    }


def feature_collection(*features: dict[str, Any]) -> dict[str, Any]:
    return {
        'type': 'FeatureCollection',
        'status_code': 200,
        'message': 'ok',
        'features': list(features),
    }


def camera_payload(instance_id: int = 1, **overrides: Any) -> dict[str, Any]:
    camera: dict[str, Any] = {
        'instance_id': instance_id,
        'mac': 202481589,
        'user_id': 7,
        'segment_id': 348917,
        'direction': True,
        'status': 'active',
        'manual': False,
        'time_added': '2020-05-12T10:00:00.000Z',
        'time_end': None,
        'last_data_package': '2024-01-02T12:00:00.000Z',
        'first_data_package': '2020-05-12T11:00:00.000Z',
        'pedestrians_left': True,
        'pedestrians_right': True,
        'bikes_left': True,
        'bikes_right': True,
        'cars_left': True,
        'cars_right': True,
        'is_calibration_done': 'yes',
    }
    camera.update(overrides)
    return camera


def deterministic_counts(bucket_start: datetime) -> dict[str, float]:
    """Counts derived from the bucket time, so any chunking yields the same data."""
    hours: int = int((bucket_start - SAMPLE_START).total_seconds() // 3600)
    return {
        'car': float(hours % 50),
        'bike': float(hours % 7),
        'pedestrian': float(hours % 3),
        'heavy': float(hours % 2),
    }


# =============================================================================
# Fake Server
# =============================================================================


def _parse_api_time(value: str) -> datetime:
    return datetime.fromisoformat(value.replace('Z', '+00:00'))


class FakeTelraamServer:
    """
    httpx.MockTransport handler emulating the Telraam API.

    reports/traffic returns one hourly bucket per hour of the requested
    closed-open window. Failures are scripted per chunk start:

        server.fail_chunk(start, [503, 503])    # two 503s, then success
        server.fail_chunk(start, [503], always=True)  # 503 forever

    Other paths are served from `routes` (path -> (status, json body)).
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict[str, tuple[int, Any]] = {}
        self._failures: dict[datetime, list[int | type[Exception]]] = {}
        self._always_fail: dict[datetime, int | type[Exception]] = {}
        self.report_override: Callable[[datetime, datetime], list[dict[str, Any]]] | None = None
        # Sent as Retry-After on scripted HTTP failures when set
        self.retry_after_header: str | None = None

    def fail_chunk(
        self,
        chunk_start: datetime,
        statuses: list[int | type[Exception]],
        always: bool = False,
    ) -> None:
        if always:
            self._always_fail[chunk_start] = statuses[0]
        else:
            self._failures[chunk_start] = list(statuses)

    def traffic_requests(self) -> list[dict[str, Any]]:
        return [
            json.loads(request.content)
            for request in self.requests
            if request.url.path.endswith('/reports/traffic')
        ]

    def attempts_for(self, chunk_start: datetime) -> int:
        return sum(
            1
            for body in self.traffic_requests()
            if _parse_api_time(body['time_start']) == chunk_start
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path: str = request.url.path

        if path.endswith('/reports/traffic') and request.method == 'POST':
            return self._traffic(request)

        if path in self.routes:
            status, body = self.routes[path]
            return httpx.Response(status, json=body)

        return httpx.Response(404, json={'status_code': 404, 'message': 'not found'})

    def _failure_response(
        self, failure: int | type[Exception], request: httpx.Request
    ) -> httpx.Response:
        if isinstance(failure, int):
            headers: dict[str, str] = (
                {'Retry-After': self.retry_after_header}
                if self.retry_after_header is not None
                else {}
            )
            return httpx.Response(failure, headers=headers, text='upstream unavailable')
        raise failure('simulated network failure', request=request)

    def _traffic(self, request: httpx.Request) -> httpx.Response:
        body: dict[str, Any] = json.loads(request.content)
        start: datetime = _parse_api_time(body['time_start'])
        end: datetime = _parse_api_time(body['time_end'])

        if start in self._always_fail:
            return self._failure_response(self._always_fail[start], request)

        pending: list[int | type[Exception]] = self._failures.get(start, [])
        if pending:
            return self._failure_response(pending.pop(0), request)

        if self.report_override is not None:
            return httpx.Response(200, json=traffic_body(self.report_override(start, end)))

        reports: list[dict[str, Any]] = []
        bucket: datetime = start
        while bucket < end:
            reports.append(
                make_report(bucket, segment_id=int(body['id']), **deterministic_counts(bucket))
            )
            bucket += timedelta(hours=1)

        return httpx.Response(200, json=traffic_body(reports))


class SleepRecorder:
    """Sleep replacement that records requested delays instead of waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture
def api_credentials() -> ApiCredentials:
    """Credentials pointing at the fake server's host."""
    return ApiCredentials(base_url=TEST_BASE_URL, api_key=SecretStr(TEST_TOKEN))


@pytest.fixture
def retry_config() -> RetryConfig:
    """Three attempts, 0.5s base backoff capped at 2s."""
    return RetryConfig(
        max_attempts=3,
        backoff_base_seconds=0.5,
        backoff_max_seconds=2.0,
    )


@pytest.fixture
def traffic_config() -> TrafficConfig:
    """Two-day chunks so short test ranges span several chunks."""
    return TrafficConfig(max_span_days=2)


@pytest.fixture
def telraam_config(
    retry_config: RetryConfig,
    traffic_config: TrafficConfig,
) -> TelraamConfig:
    return TelraamConfig(
        api=ApiConfig(base_url=TEST_BASE_URL, api_key=SecretStr(TEST_TOKEN)),
        retry=retry_config,
        traffic=traffic_config,
    )


# =============================================================================
# Client Fixtures
# =============================================================================


@pytest.fixture
def fake_server() -> FakeTelraamServer:
    return FakeTelraamServer()


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def fake_client(
    api_credentials: ApiCredentials,
    retry_config: RetryConfig,
    fake_server: FakeTelraamServer,
    sleep_recorder: SleepRecorder,
) -> Iterator[TelraamClient]:
    """Client wired to the fake server with a recording sleep."""
    client = TelraamClient(
        api_credentials,
        retry_config=retry_config,
        sleep=sleep_recorder,
        transport=httpx.MockTransport(fake_server),
    )
    yield client
    client.close()


@pytest.fixture
def fake_api(
    telraam_config: TelraamConfig,
    fake_server: FakeTelraamServer,
    sleep_recorder: SleepRecorder,
) -> Iterator[TelraamApi]:
    api = TelraamApi.from_config(
        telraam_config,
        sleep=sleep_recorder,
        transport=httpx.MockTransport(fake_server),
    )
    yield api
    api.close()
