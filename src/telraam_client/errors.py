# telraam_client/errors.py
"""
Exception hierarchy for the Telraam client.

Every failure the client surfaces derives from TelraamError, so callers can
catch one type for "anything went wrong talking to Telraam" and narrow down
from there.

Taxonomy:
---------
- Transient: TransportError, and HttpError/ApiError whose status is in the
  configured retryable set (429, 502, 503, 504 by default). Retried
  automatically, only surfaced once retries are exhausted.
- Client: HttpError/ApiError with any other status (400, 401, 404, ...).
  Surfaced immediately, never retried.
- Decode: DecodeError. The response did not match the expected shape, which
  means the API contract changed. Surfaced immediately, never retried.
- Consistency: ConsistencyError. The server returned buckets outside the
  window that was asked for. Surfaced immediately.
- Caller input: InvalidRangeError for a date range whose start is after its end.
- Aggregate: FetchFailedError when every chunk of a traffic fetch failed.
"""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from telraam_client.fetcher import ChunkResult

__all__: list[str] = [
    'ApiError',
    'ConsistencyError',
    'DecodeError',
    'FetchFailedError',
    'HttpError',
    'InvalidRangeError',
    'TelraamError',
    'TransportError',
]


class TelraamError(Exception):
    """Root of the client's exception hierarchy."""


class TransportError(TelraamError):
    """
    Raised when no HTTP response was received at all.

    Covers connection failures, DNS errors and timeouts. Always retryable.
    """


class HttpError(TelraamError):
    """
    Raised for a non-2xx response whose body is not a Telraam error payload.

    Attributes:
        status_code: HTTP status code of the response.
        response_body: Raw (truncated) response body for debugging.
        retry_after_seconds: Server-suggested delay from the Retry-After
            header, or None if the header was absent or unparseable.
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        response_body: str | None = None,
        retry_after_seconds: float | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code: int = status_code
        self.response_body: str | None = response_body
        self.retry_after_seconds: float | None = retry_after_seconds


class ApiError(HttpError):
    """
    Raised when the API returned a structured error payload.

    Telraam reports errors in the body as {"status_code": ..., "message": ...},
    sometimes alongside a 2xx HTTP status. The decoded fields are kept so
    callers can branch on them without re-parsing the body.

    Attributes:
        api_message: Human-readable message from the payload.
        code: Machine-readable error code, if the payload carried one.
    """

    def __init__(
        self,
        status_code: int,
        api_message: str,
        code: str | None = None,
        response_body: str | None = None,
        retry_after_seconds: float | None = None,
    ) -> None:
        super().__init__(
            f'Telraam API error {status_code}: {api_message}',
            status_code=status_code,
            response_body=response_body,
            retry_after_seconds=retry_after_seconds,
        )
        self.api_message: str = api_message
        self.code: str | None = code


class DecodeError(TelraamError):
    """
    Raised when a payload cannot be decoded into the expected domain type.

    Attributes:
        field: Dotted path of the offending field (e.g. 'report.3.date'),
            or '<body>' when the body itself is not valid JSON.
    """

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f'Cannot decode field {field!r}: {message}')
        self.field: str = field


class ConsistencyError(TelraamError):
    """
    Raised when the API returned data that contradicts the request.

    For traffic reports this means a bucket starting outside the requested
    chunk, or buckets that are not in ascending order.
    """


class InvalidRangeError(TelraamError, ValueError):
    """Raised when a date range has its start after its end."""

    def __init__(self, start: Any, end: Any) -> None:
        super().__init__(f'Invalid date range: start {start} is after end {end}')
        self.start: Any = start
        self.end: Any = end


class FetchFailedError(TelraamError):
    """
    Raised when every chunk of a traffic fetch failed.

    A fetch where only some chunks failed is not an error; it returns a
    partial outcome instead.

    Attributes:
        failed_chunks: Final result of every chunk, each carrying its error.
    """

    def __init__(self, failed_chunks: 'list[ChunkResult]') -> None:
        super().__init__(
            f'All {len(failed_chunks)} chunk(s) of the traffic fetch failed'
        )
        self.failed_chunks: list[ChunkResult] = failed_chunks
