# telraam_client/client.py
"""
HTTP client for the Telraam API.

This client executes RequestSpec objects without knowing which endpoint built
them. Paths, bodies and response decoding belong to the EndpointDefinition;
the client owns the transport, the token and the retry loop.

Response Handling:
------------------
- No response at all (timeout, connection error): TransportError.
- Non-2xx with a Telraam error body ({"status_code", "message"}): ApiError.
- Non-2xx with any other body: HttpError.
- 2xx whose body is not a JSON object: DecodeError('<body>').
- 2xx whose body reports status_code >= 300: ApiError. Telraam sometimes
  answers errors with HTTP 200.

Retry Behavior:
---------------
Transient failures are retried according to RetryConfig (see retry.py):
transport errors always, HTTP/API errors when their status is retryable.
Retry-After headers are honoured on both HttpError and ApiError.
"""

import logging
import time
from collections.abc import Callable
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from types import TracebackType
from typing import Any, Final, Self, cast

import httpx
from pydantic import BaseModel, ValidationError
from tenacity import RetryCallState, Retrying

from telraam_client import __version__
from telraam_client.config.config_models import RetryConfig
from telraam_client.errors import (
    ApiError,
    ConsistencyError,
    DecodeError,
    FetchFailedError,
    HttpError,
    InvalidRangeError,
    TelraamError,
    TransportError,
)
from telraam_client.models.requests import ApiCredentials, EndpointDefinition, RequestSpec
from telraam_client.models.responses import ErrorPayload, Status
from telraam_client.retry import SleepFunction, build_retrying

__all__: list[str] = [
    'ApiError',
    'ConsistencyError',
    'DecodeError',
    'FetchFailedError',
    'HttpError',
    'InvalidRangeError',
    'RetryObserver',
    'TelraamClient',
    'TelraamError',
    'TransportError',
    'parse_retry_after',
]

logger: logging.Logger = logging.getLogger(__name__)

USER_AGENT: Final[str] = f'telraam-client/{__version__}'

# Bodies are truncated before being attached to errors or logged
RESPONSE_BODY_PREVIEW_CHARS: Final[int] = 500

# Called before each retry with (failed_attempt, error, delay_seconds)
RetryObserver = Callable[[int, BaseException, float], None]


def parse_retry_after(header_value: str | None, now: datetime | None = None) -> float | None:
    """
    Parse a Retry-After header into seconds.

    Accepts both forms allowed by RFC 9110: delay-seconds (ASCII digits
    only) and HTTP-date. Signed, fractional and non-finite values such as
    "-5", "2.5" or "nan" are not delay-seconds and are ignored.

    Returns:
        Non-negative finite delay in seconds, or None if absent or unparseable.
    """
    if header_value is None or not header_value.strip():
        return None

    raw_value: str = header_value.strip()
    if raw_value.isascii() and raw_value.isdigit():
        try:
            return float(int(raw_value))
        except (OverflowError, ValueError):
            logger.debug('Ignoring out-of-range Retry-After header: %r', raw_value)
            return None

    try:
        retry_at: datetime = parsedate_to_datetime(raw_value)
    except (TypeError, ValueError):
        logger.debug('Ignoring unparseable Retry-After header: %r', raw_value)
        return None

    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=UTC)
    reference: datetime = now if now is not None else datetime.now(UTC)
    return max((retry_at - reference).total_seconds(), 0.0)


class TelraamClient:
    """
    HTTP client for the Telraam API.

    The client handles:
    - HTTP transport with connection pooling
    - Token injection (X-Api-Key) from SecretStr at send time
    - Mapping of failures onto the TelraamError hierarchy
    - Retries with exponential backoff for transient errors

    Thread Safety:
        The underlying httpx.Client is thread-safe, and each execute() call
        builds its own retry controller, so one client may serve the
        fetcher's worker threads.

    Example:
        >>> credentials = ApiCredentials(api_key=SecretStr('...'))
        >>> with TelraamClient(credentials) as client:
        ...     welcome = client.fetch(TelraamEndpoints.WELCOME)
        ...     print(welcome.message)
    """

    def __init__(
        self,
        credentials: ApiCredentials,
        retry_config: RetryConfig | None = None,
        sleep: SleepFunction = time.sleep,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """
        Initialize the Telraam API client.

        Args:
            credentials: Base URL, token, timeouts and SSL configuration.
            retry_config: Retry policy. None uses the defaults.
            sleep: Function used to wait between retries.
            transport: Optional httpx transport (e.g. httpx.MockTransport).
        """
        self._credentials: ApiCredentials = credentials
        self._retry_config: RetryConfig = retry_config or RetryConfig()
        self._sleep: SleepFunction = sleep

        connect_timeout: int
        read_timeout: int
        connect_timeout, read_timeout = credentials.timeout
        default_timeout = httpx.Timeout(
            connect=connect_timeout,
            read=read_timeout,
            write=connect_timeout,
            pool=connect_timeout,
        )

        self._http_client: httpx.Client = httpx.Client(
            timeout=default_timeout,
            verify=credentials.verify_ssl,
            headers={'User-Agent': USER_AGENT},
            transport=transport,
        )

        logger.info(
            'Initialized TelraamClient: base_url=%r, max_attempts=%d',
            credentials.base_url,
            self._retry_config.max_attempts,
        )

    @property
    def credentials(self) -> ApiCredentials:
        """Connection settings used to build requests."""
        return self._credentials

    @property
    def retry_config(self) -> RetryConfig:
        """Retry policy applied by execute()."""
        return self._retry_config

    # -------------------------------------------------------------------------
    # Context Manager Protocol
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the HTTP client. Safe to call multiple times."""
        self._http_client.close()
        logger.debug('TelraamClient closed')

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # Endpoint Methods
    # -------------------------------------------------------------------------

    def fetch_json(
        self,
        endpoint: EndpointDefinition[Any],
        body: BaseModel | None = None,
        on_retry: RetryObserver | None = None,
        **path_params: Any,
    ) -> dict[str, Any]:
        """
        Execute an endpoint and return the raw JSON object.

        Raises:
            TelraamError: Any transport, HTTP, API or decode failure.
        """
        request_spec: RequestSpec = endpoint.build_request_spec(
            credentials=self._credentials,
            body=body,
            **path_params,
        )
        return self.execute(request_spec, on_retry=on_retry)

    def fetch[ResultT](
        self,
        endpoint: EndpointDefinition[ResultT],
        body: BaseModel | None = None,
        **path_params: Any,
    ) -> ResultT:
        """
        Execute an endpoint and decode the response with the endpoint's parser.

        Args:
            endpoint: Self-describing endpoint definition.
            body: Request body model for POST endpoints.
            **path_params: Values for path placeholders (e.g. segment_id).

        Returns:
            The endpoint's decoded result type.

        Raises:
            TelraamError: Any transport, HTTP, API or decode failure.
        """
        response_json: dict[str, Any] = self.fetch_json(endpoint, body=body, **path_params)
        return endpoint.parse_response(response_json)

    # -------------------------------------------------------------------------
    # HTTP Execution Layer
    # -------------------------------------------------------------------------

    def execute(
        self,
        request_spec: RequestSpec,
        on_retry: RetryObserver | None = None,
    ) -> dict[str, Any]:
        """
        Send a request, retrying transient failures.

        Args:
            request_spec: Complete request specification.
            on_retry: Notified before each retry with the failed attempt
                number, its error and the delay about to be slept.

        Returns:
            Decoded JSON object of the successful response.

        Raises:
            TelraamError: The last error once retries are exhausted, or the
                first non-retryable error.
        """

        def _notify(retry_state: RetryCallState) -> None:
            if on_retry is None or retry_state.outcome is None:
                return
            error: BaseException | None = retry_state.outcome.exception()
            if error is not None:
                on_retry(
                    retry_state.attempt_number,
                    error,
                    retry_state.upcoming_sleep,
                )

        retrying: Retrying = build_retrying(
            self._retry_config,
            sleep=self._sleep,
            before_sleep=_notify,
        )
        return retrying(self.send, request_spec)

    def send(self, request_spec: RequestSpec) -> dict[str, Any]:
        """
        Send a request once, without retrying.

        Raises:
            TransportError: No response was received.
            HttpError: Non-2xx response without a Telraam error body.
            ApiError: Telraam error body (with any HTTP status).
            DecodeError: 2xx response whose body is not a JSON object.
        """
        response: httpx.Response = self._send_http_request(request_spec)
        return self._handle_response(response, request_spec)

    def _send_http_request(self, request_spec: RequestSpec) -> httpx.Response:
        """Send the HTTP request, converting httpx failures to TransportError."""
        timeout = httpx.Timeout(
            connect=request_spec.timeout[0],
            read=request_spec.timeout[1],
            write=request_spec.timeout[0],
            pool=request_spec.timeout[0],
        )

        try:
            return self._http_client.request(
                method=request_spec.method.value,
                url=request_spec.url,
                params=request_spec.query_params,
                headers=request_spec.all_headers(),
                json=request_spec.body,
                timeout=timeout,
            )
        except httpx.TimeoutException as error:
            logger.warning('Request timeout: %s', request_spec.describe())
            raise TransportError(
                f'Request timeout for {request_spec.describe()}: {error}'
            ) from error
        except httpx.RequestError as error:
            logger.warning(
                'Connection error: %s - %s', request_spec.describe(), error
            )
            raise TransportError(
                f'Connection error for {request_spec.describe()}: {error}'
            ) from error

    def _handle_response(
        self,
        response: httpx.Response,
        request_spec: RequestSpec,
    ) -> dict[str, Any]:
        """Map a response onto a JSON object or the matching TelraamError."""
        status_code: int = response.status_code
        body_preview: str = response.text[:RESPONSE_BODY_PREVIEW_CHARS]

        if not response.is_success:
            retry_after: float | None = parse_retry_after(
                response.headers.get('Retry-After')
            )
            error_payload: ErrorPayload | None = self._parse_error_payload(response)

            if error_payload is not None:
                logger.warning(
                    'API error %d for %s: %s',
                    status_code,
                    request_spec.describe(),
                    error_payload.message,
                )
                raise ApiError(
                    status_code=status_code,
                    api_message=error_payload.message,
                    code=error_payload.code,
                    response_body=body_preview,
                    retry_after_seconds=retry_after,
                )

            logger.warning(
                'HTTP error %d for %s: %s',
                status_code,
                request_spec.describe(),
                body_preview[:200],
            )
            raise HttpError(
                message=f'HTTP {status_code} for {request_spec.describe()}',
                status_code=status_code,
                response_body=body_preview,
                retry_after_seconds=retry_after,
            )

        try:
            json_body: Any = response.json()
        except ValueError as parse_error:
            raise DecodeError(
                field='<body>', message=f'invalid JSON: {parse_error}'
            ) from parse_error

        if not isinstance(json_body, dict):
            raise DecodeError(
                field='<body>',
                message=f'expected a JSON object, got {type(json_body).__name__}',
            )

        validated_response: dict[str, Any] = cast(dict[str, Any], json_body)

        # Telraam can report an error inside a 200 response
        try:
            status: Status = Status.model_validate(validated_response)
        except ValidationError:
            status = Status()
        if status.is_error:
            logger.warning(
                'API error %d in 2xx body for %s: %s',
                status.status_code,
                request_spec.describe(),
                status.message,
            )
            raise ApiError(
                status_code=status.status_code,
                api_message=status.message,
                response_body=body_preview,
                retry_after_seconds=parse_retry_after(
                    response.headers.get('Retry-After')
                ),
            )

        logger.debug('%s -> HTTP %d', request_spec.describe(), status_code)
        return validated_response

    @staticmethod
    def _parse_error_payload(response: httpx.Response) -> ErrorPayload | None:
        """Decode a structured error body, or None if the body is anything else."""
        try:
            raw_body: Any = response.json()
        except ValueError:
            return None
        if not isinstance(raw_body, dict):
            return None
        try:
            return ErrorPayload.model_validate(raw_body)
        except ValidationError:
            return None
