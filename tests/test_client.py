"""
Tests for telraam_client.client module.

Tests TelraamClient request construction, response classification, retries,
and Retry-After handling against an httpx.MockTransport.
"""
# pyright: reportPrivateUsage=false

from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import Mock, patch

import httpx
import pytest

from conftest import (
    SAMPLE_START,
    TEST_TOKEN,
    FakeTelraamServer,
    SleepRecorder,
    make_report,
    traffic_body,
)
from telraam_client.client import (
    ApiError,
    DecodeError,
    HttpError,
    TelraamClient,
    TransportError,
    parse_retry_after,
)
from telraam_client.config import RetryConfig
from telraam_client.models import (
    ApiCredentials,
    RequestSpec,
    TelraamEndpoints,
    TrafficRequest,
    TrafficResponse,
    WelcomeResponse,
)

Handler = Callable[[httpx.Request], httpx.Response]


class ScriptedHandler:
    """MockTransport handler returning queued responses, repeating the last one."""

    def __init__(self, *responses: httpx.Response | type[Exception]) -> None:
        self._responses: list[httpx.Response | type[Exception]] = list(responses)
        self.calls: int = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        response = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if isinstance(response, httpx.Response):
            return response
        raise response('simulated failure', request=request)


@pytest.fixture
def make_client(
    api_credentials: ApiCredentials,
    retry_config: RetryConfig,
    sleep_recorder: SleepRecorder,
) -> Iterator[Callable[[Handler], TelraamClient]]:
    """Factory for clients backed by an arbitrary handler."""
    clients: list[TelraamClient] = []

    def _factory(handler: Handler) -> TelraamClient:
        client = TelraamClient(
            api_credentials,
            retry_config=retry_config,
            sleep=sleep_recorder,
            transport=httpx.MockTransport(handler),
        )
        clients.append(client)
        return client

    yield _factory

    for client in clients:
        client.close()


class TestTelraamClientInitialization:
    """Test TelraamClient initialization."""

    def test_defaults_retry_config(self, api_credentials: ApiCredentials) -> None:
        """Should fall back to the default retry policy."""
        with TelraamClient(api_credentials) as client:
            assert client.retry_config == RetryConfig()
            assert client.credentials is api_credentials

    def test_context_manager_closes_http_client(
        self, api_credentials: ApiCredentials
    ) -> None:
        """Should close the connection pool on exit."""
        with TelraamClient(api_credentials) as client:
            pass

        assert client._http_client.is_closed


class TestRequestConstruction:
    """Test headers, URLs and bodies sent to the API."""

    def test_token_sent_in_api_key_header(
        self,
        fake_client: TelraamClient,
        fake_server: FakeTelraamServer,
    ) -> None:
        """Should send the token as X-Api-Key on every request."""
        fake_server.routes['/v1'] = (200, {'msg': 'Welcome'})

        fake_client.fetch(TelraamEndpoints.WELCOME)

        request: httpx.Request = fake_server.requests[0]
        assert request.headers['X-Api-Key'] == TEST_TOKEN
        assert request.headers['Accept'] == 'application/json'
        assert request.headers['User-Agent'].startswith('telraam-client/')

    def test_token_absent_from_spec_repr_and_description(
        self, api_credentials: ApiCredentials
    ) -> None:
        """Should keep the token out of anything that can be logged."""
        spec: RequestSpec = TelraamEndpoints.SEGMENT_BY_ID.build_request_spec(
            api_credentials, segment_id=348917
        )

        assert TEST_TOKEN not in repr(spec)
        assert TEST_TOKEN not in spec.describe()
        assert spec.describe() == 'GET /segments/id/348917'
        assert spec.all_headers()['X-Api-Key'] == TEST_TOKEN

    def test_welcome_url_is_version_root(self, api_credentials: ApiCredentials) -> None:
        """Should build the API root URL for the welcome endpoint."""
        spec: RequestSpec = TelraamEndpoints.WELCOME.build_request_spec(api_credentials)

        assert spec.url == 'https://telraam.test/v1'

    def test_traffic_body_uses_millisecond_utc_timestamps(
        self,
        fake_client: TelraamClient,
        fake_server: FakeTelraamServer,
    ) -> None:
        """Should POST the traffic body in the API's wire format."""
        body = TrafficRequest(
            id=348917,
            time_start=SAMPLE_START,
            time_end=SAMPLE_START + timedelta(hours=2),
        )

        response: TrafficResponse = fake_client.fetch(TelraamEndpoints.TRAFFIC, body=body)

        assert fake_server.requests[0].method == 'POST'
        assert fake_server.traffic_requests() == [
            {
                'level': 'segments',
                'format': 'per-hour',
                'id': '348917',
                'time_start': '2024-01-01T00:00:00.000Z',
                'time_end': '2024-01-01T02:00:00.000Z',
            }
        ]
        assert len(response.reports) == 2  # noqa: PLR2004

    def test_missing_path_parameter_raises(self, fake_client: TelraamClient) -> None:
        """Should refuse to build a URL with an unresolved placeholder."""
        with pytest.raises(ValueError, match='segment_id'):
            fake_client.fetch(TelraamEndpoints.SEGMENT_BY_ID)


class TestResponseHandling:
    """Test mapping of responses onto results and errors."""

    def test_welcome_decodes(
        self,
        fake_client: TelraamClient,
        fake_server: FakeTelraamServer,
    ) -> None:
        """Should decode the welcome message from its 'msg' field."""
        fake_server.routes['/v1'] = (200, {'msg': 'Welcome to Telraam API'})

        welcome: WelcomeResponse = fake_client.fetch(TelraamEndpoints.WELCOME)

        assert welcome.message == 'Welcome to Telraam API'
        assert not welcome.is_error

    def test_non_json_success_body_raises_decode_error(
        self,
        make_client: Callable[[Handler], TelraamClient],
    ) -> None:
        """Should report an unparseable 2xx body as DecodeError('<body>')."""
        client: TelraamClient = make_client(
            lambda request: httpx.Response(200, text='<html>maintenance</html>')
        )

        with pytest.raises(DecodeError) as exc_info:
            client.fetch(TelraamEndpoints.WELCOME)

        assert exc_info.value.field == '<body>'

    def test_json_array_body_raises_decode_error(
        self,
        make_client: Callable[[Handler], TelraamClient],
    ) -> None:
        """Should require a JSON object at the top level."""
        client: TelraamClient = make_client(lambda request: httpx.Response(200, json=[1, 2]))

        with pytest.raises(DecodeError, match='expected a JSON object'):
            client.fetch(TelraamEndpoints.WELCOME)

    def test_error_payload_raises_api_error(
        self,
        make_client: Callable[[Handler], TelraamClient],
    ) -> None:
        """Should decode a structured error body into ApiError."""
        handler = ScriptedHandler(
            httpx.Response(
                403,
                json={'status_code': 403, 'message': 'Forbidden', 'code': 'E42'},
            )
        )
        client: TelraamClient = make_client(handler)

        with pytest.raises(ApiError) as exc_info:
            client.fetch(TelraamEndpoints.ALL_CAMERAS)

        assert exc_info.value.status_code == 403  # noqa: PLR2004
        assert exc_info.value.api_message == 'Forbidden'
        assert exc_info.value.code == 'E42'
        assert handler.calls == 1

    def test_unknown_segment_is_api_error(
        self,
        fake_client: TelraamClient,
        fake_server: FakeTelraamServer,
    ) -> None:
        """Should surface a 404 without retrying."""
        with pytest.raises(ApiError) as exc_info:
            fake_client.fetch(TelraamEndpoints.SEGMENT_BY_ID, segment_id=1)

        assert exc_info.value.status_code == 404  # noqa: PLR2004
        assert len(fake_server.requests) == 1

    def test_plain_text_error_raises_http_error(
        self,
        make_client: Callable[[Handler], TelraamClient],
    ) -> None:
        """Should raise HttpError (not ApiError) for an unstructured body."""
        client: TelraamClient = make_client(
            lambda request: httpx.Response(500, text='Internal Server Error')
        )

        with pytest.raises(HttpError) as exc_info:
            client.fetch(TelraamEndpoints.WELCOME)

        assert not isinstance(exc_info.value, ApiError)
        assert exc_info.value.status_code == 500  # noqa: PLR2004
        assert exc_info.value.response_body == 'Internal Server Error'

    def test_error_status_in_success_body_raises_api_error(
        self,
        make_client: Callable[[Handler], TelraamClient],
    ) -> None:
        """Should treat a body status_code >= 300 as an error despite HTTP 200."""
        client: TelraamClient = make_client(
            lambda request: httpx.Response(
                200, json={'status_code': 400, 'message': 'Invalid time range'}
            )
        )

        with pytest.raises(ApiError) as exc_info:
            client.fetch(TelraamEndpoints.WELCOME)

        assert exc_info.value.status_code == 400  # noqa: PLR2004
        assert exc_info.value.api_message == 'Invalid time range'

    def test_handle_response_with_mock(
        self,
        api_credentials: ApiCredentials,
    ) -> None:
        """Should return the JSON object of a successful response."""
        mock_response = Mock(spec=httpx.Response)
        mock_response.status_code = 200
        mock_response.is_success = True
        mock_response.text = '{"status_code": 200, "message": "ok"}'
        mock_response.headers = httpx.Headers()
        mock_response.json.return_value = {'status_code': 200, 'message': 'ok'}
        spec: RequestSpec = TelraamEndpoints.WELCOME.build_request_spec(api_credentials)

        with TelraamClient(api_credentials) as client:
            result: dict[str, Any] = client._handle_response(mock_response, spec)

        assert result == {'status_code': 200, 'message': 'ok'}

    def test_rate_limited_mock_response_records_retry_after(
        self,
        api_credentials: ApiCredentials,
    ) -> None:
        """Should attach the Retry-After delay to the raised error."""
        mock_response = Mock(spec=httpx.Response)
        mock_response.status_code = 429
        mock_response.is_success = False
        mock_response.text = 'slow down'
        mock_response.headers = httpx.Headers({'Retry-After': '12'})
        mock_response.json.side_effect = ValueError('not JSON')
        spec: RequestSpec = TelraamEndpoints.WELCOME.build_request_spec(api_credentials)

        with TelraamClient(api_credentials) as client, pytest.raises(HttpError) as exc_info:
            client._handle_response(mock_response, spec)

        assert exc_info.value.status_code == 429  # noqa: PLR2004
        assert exc_info.value.retry_after_seconds == 12.0  # noqa: PLR2004

    def test_malformed_report_names_field(
        self,
        make_client: Callable[[Handler], TelraamClient],
    ) -> None:
        """Should name the offending field in the DecodeError."""
        bad_report: dict[str, Any] = make_report(SAMPLE_START)
        bad_report['date'] = 'yesterday'
        client: TelraamClient = make_client(
            lambda request: httpx.Response(200, json=traffic_body([bad_report]))
        )

        with pytest.raises(DecodeError) as exc_info:
            client.fetch(
                TelraamEndpoints.TRAFFIC,
                body=TrafficRequest(
                    id=1, time_start=SAMPLE_START, time_end=SAMPLE_START
                ),
            )

        assert exc_info.value.field == 'report.0.date'


class TestRetries:
    """Test the retry loop around send()."""

    def test_transient_failures_then_success(
        self,
        make_client: Callable[[Handler], TelraamClient],
        sleep_recorder: SleepRecorder,
    ) -> None:
        """Should make K+1 calls after K transient failures."""
        handler = ScriptedHandler(
            httpx.Response(503, text='busy'),
            httpx.Response(503, text='busy'),
            httpx.Response(200, json={'msg': 'Welcome'}),
        )
        client: TelraamClient = make_client(handler)

        welcome: WelcomeResponse = client.fetch(TelraamEndpoints.WELCOME)

        assert welcome.message == 'Welcome'
        assert handler.calls == 3  # noqa: PLR2004
        assert sleep_recorder.delays == [0.5, 1.0]

    def test_always_failing_stops_at_max_attempts(
        self,
        make_client: Callable[[Handler], TelraamClient],
        sleep_recorder: SleepRecorder,
    ) -> None:
        """Should give up after max_attempts and raise the last error."""
        handler = ScriptedHandler(httpx.Response(502, text='bad gateway'))
        client: TelraamClient = make_client(handler)

        with pytest.raises(HttpError) as exc_info:
            client.fetch(TelraamEndpoints.WELCOME)

        assert exc_info.value.status_code == 502  # noqa: PLR2004
        assert handler.calls == 3  # noqa: PLR2004
        assert len(sleep_recorder.delays) == 2  # noqa: PLR2004

    def test_unauthorized_is_not_retried(
        self,
        make_client: Callable[[Handler], TelraamClient],
        sleep_recorder: SleepRecorder,
    ) -> None:
        """Should surface 401 after exactly one call."""
        handler = ScriptedHandler(
            httpx.Response(401, json={'message': 'Invalid authentication credentials'})
        )
        client: TelraamClient = make_client(handler)

        with pytest.raises(ApiError):
            client.fetch(TelraamEndpoints.WELCOME)

        assert handler.calls == 1
        assert sleep_recorder.delays == []

    def test_timeout_is_transport_error_and_retried(
        self,
        make_client: Callable[[Handler], TelraamClient],
    ) -> None:
        """Should wrap timeouts in TransportError and retry them."""
        handler = ScriptedHandler(
            httpx.ReadTimeout,
            httpx.Response(200, json={'msg': 'Welcome'}),
        )
        client: TelraamClient = make_client(handler)

        welcome: WelcomeResponse = client.fetch(TelraamEndpoints.WELCOME)

        assert welcome.message == 'Welcome'
        assert handler.calls == 2  # noqa: PLR2004

    def test_connection_error_exhausts_retries(
        self,
        make_client: Callable[[Handler], TelraamClient],
    ) -> None:
        """Should raise TransportError once every attempt failed to connect."""
        client: TelraamClient = make_client(ScriptedHandler(httpx.ConnectError))

        with (
            patch.object(
                client._http_client,
                'request',
                side_effect=httpx.ConnectError('connection refused'),
            ) as mock_request,
            pytest.raises(TransportError, match='Connection error'),
        ):
            client.fetch(TelraamEndpoints.WELCOME)

        assert mock_request.call_count == 3  # noqa: PLR2004

    def test_retry_after_header_overrides_backoff(
        self,
        make_client: Callable[[Handler], TelraamClient],
        sleep_recorder: SleepRecorder,
    ) -> None:
        """Should sleep for the server-suggested delay."""
        handler = ScriptedHandler(
            httpx.Response(
                429,
                headers={'Retry-After': '3'},
                json={'message': 'Too many requests'},
            ),
            httpx.Response(200, json={'msg': 'Welcome'}),
        )
        client: TelraamClient = make_client(handler)

        client.fetch(TelraamEndpoints.WELCOME)

        assert sleep_recorder.delays == [3.0]

    @pytest.mark.parametrize('header_value', ['nan', 'inf', '-5', '1e12', '9' * 400])
    def test_malformed_retry_after_uses_backoff(
        self,
        make_client: Callable[[Handler], TelraamClient],
        sleep_recorder: SleepRecorder,
        header_value: str,
    ) -> None:
        """Should ignore an invalid Retry-After and sleep for the computed backoff."""
        handler = ScriptedHandler(
            httpx.Response(503, headers={'Retry-After': header_value}, text='busy'),
            httpx.Response(200, json={'msg': 'Welcome'}),
        )
        client: TelraamClient = make_client(handler)

        client.fetch(TelraamEndpoints.WELCOME)

        assert sleep_recorder.delays == [0.5]

    def test_large_retry_after_is_capped(
        self,
        make_client: Callable[[Handler], TelraamClient],
        sleep_recorder: SleepRecorder,
    ) -> None:
        """Should not wait longer than retry_after_max_seconds."""
        handler = ScriptedHandler(
            httpx.Response(429, headers={'Retry-After': '86400'}, text='slow down'),
            httpx.Response(200, json={'msg': 'Welcome'}),
        )
        client: TelraamClient = make_client(handler)

        client.fetch(TelraamEndpoints.WELCOME)

        assert sleep_recorder.delays == [300.0]

    def test_on_retry_observer_sees_failed_attempts(
        self,
        make_client: Callable[[Handler], TelraamClient],
    ) -> None:
        """Should report each failed attempt with its error and delay."""
        handler = ScriptedHandler(
            httpx.Response(504, text='timeout'),
            httpx.Response(200, json={'msg': 'Welcome'}),
        )
        client: TelraamClient = make_client(handler)
        observed: list[tuple[int, type[BaseException], float]] = []

        client.fetch_json(
            TelraamEndpoints.WELCOME,
            on_retry=lambda attempt, error, delay: observed.append(
                (attempt, type(error), delay)
            ),
        )

        assert observed == [(1, HttpError, 0.5)]


class TestParseRetryAfter:
    """Test parse_retry_after()."""

    @pytest.mark.parametrize(
        ('header_value', 'expected'),
        [
            ('5', 5.0),
            (' 120 ', 120.0),
            ('0', 0.0),
            (None, None),
            ('', None),
            ('soon', None),
            ('2.5', None),
            ('-5', None),
            ('+5', None),
            ('nan', None),
            ('inf', None),
            ('1e12', None),
            ('9' * 400, None),
        ],
    )
    def test_delay_seconds(self, header_value: str | None, expected: float | None) -> None:
        """Should accept only digit delay-seconds and ignore everything else."""
        assert parse_retry_after(header_value) == expected

    def test_http_date(self) -> None:
        """Should convert an HTTP-date into seconds from now."""
        now = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)

        assert parse_retry_after('Mon, 01 Jan 2024 12:00:30 GMT', now=now) == 30.0  # noqa: PLR2004

    def test_http_date_in_the_past_is_zero(self) -> None:
        """Should never return a negative delay."""
        now = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)

        assert parse_retry_after('Mon, 01 Jan 2024 11:00:00 GMT', now=now) == 0.0
