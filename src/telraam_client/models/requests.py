# telraam_client/models/requests.py
"""
Request specification models and the Telraam endpoint catalogue.

This module defines the contract between endpoint definitions (which build
request specs) and the client (which executes them). The client never needs
to know endpoint paths, body shapes, or how a response is decoded.

The API token travels as a SecretStr from ApiCredentials into each RequestSpec
and is only unwrapped at the moment the HTTP request is sent, so neither a
spec's repr nor a log line can leak it.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Collection
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Final

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    field_serializer,
    field_validator,
)

from telraam_client.models.decode import decode_payload
from telraam_client.models.geojson import GeometryType
from telraam_client.models.responses import (
    CamerasResponse,
    ResponseModelBase,
    TrafficResponse,
    WelcomeResponse,
)
from telraam_client.models.segments import SegmentCollection, decode_segments

__all__: list[str] = [
    'DEFAULT_AUTH_HEADER',
    'DEFAULT_BASE_URL',
    'ApiCredentials',
    'EndpointDefinition',
    'GeoJsonEndpointDefinition',
    'HTTPMethod',
    'ModelEndpointDefinition',
    'PathParameterSpec',
    'RequestSpec',
    'TelraamEndpoints',
    'TrafficFormat',
    'TrafficLevel',
    'TrafficRequest',
    'format_rfc3339_millis',
]

logger: logging.Logger = logging.getLogger(__name__)

DEFAULT_BASE_URL: Final[str] = 'https://telraam-api.net'
DEFAULT_API_VERSION: Final[str] = 'v1'
DEFAULT_AUTH_HEADER: Final[str] = 'X-Api-Key'


def format_rfc3339_millis(value: datetime) -> str:
    """
    Format a datetime as RFC 3339 UTC with millisecond precision.

    Naive datetimes are taken to be UTC.

    Example:
        >>> format_rfc3339_millis(datetime(2020, 10, 30, 7, tzinfo=UTC))
        '2020-10-30T07:00:00.000Z'
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    utc_value: datetime = value.astimezone(UTC)
    return f'{utc_value:%Y-%m-%dT%H:%M:%S}.{utc_value.microsecond // 1000:03d}Z'


class HTTPMethod(str, Enum):
    """HTTP methods used by the Telraam API."""

    GET = 'GET'
    POST = 'POST'


# =============================================================================
# Credentials
# =============================================================================


class ApiCredentials(BaseModel):
    """
    Connection settings and token for the Telraam API.

    Passed into every request build step; never stored globally.

    Attributes:
        base_url: API root without trailing slash.
        api_version: Version path segment (e.g. 'v1').
        api_key: Personal API token (SecretStr, masked in repr and logs).
        auth_header: Header that carries the token.
        timeout: (connect_timeout, read_timeout) in seconds.
        verify_ssl: SSL verification (bool or path to CA bundle).
    """

    model_config = ConfigDict(extra='forbid', frozen=True)

    base_url: str = DEFAULT_BASE_URL
    api_version: str = DEFAULT_API_VERSION
    api_key: SecretStr
    auth_header: str = DEFAULT_AUTH_HEADER
    timeout: tuple[int, int] = (10, 60)
    verify_ssl: bool | str = True

    @field_validator('base_url')
    @classmethod
    def strip_trailing_slash(cls, base_url: str) -> str:
        """Normalize the base URL for path joining."""
        return base_url.rstrip('/')


# =============================================================================
# Request Specification
# =============================================================================


class RequestSpec(BaseModel):
    """
    Complete specification for one HTTP request.

    This is the contract between EndpointDefinition (producer) and
    TelraamClient (consumer).

    Attributes:
        url: Complete URL ready for the HTTP request.
        path: Path relative to the API version root, for log messages.
        method: HTTP method.
        headers: Non-secret headers (Accept, Content-Type).
        query_params: Serialized query parameters.
        body: JSON body for POST requests (None for GET).
        timeout: (connect_timeout, read_timeout) in seconds.
        auth_header: Name of the header carrying the token.
        api_key: Token, unwrapped only in all_headers().
    """

    model_config = ConfigDict(extra='forbid', frozen=True)

    url: str
    path: str
    method: HTTPMethod = HTTPMethod.GET
    headers: dict[str, str] = Field(default_factory=dict)
    query_params: dict[str, str] = Field(default_factory=dict)
    body: dict[str, Any] | None = None
    timeout: tuple[int, int] = (10, 60)
    auth_header: str = DEFAULT_AUTH_HEADER
    api_key: SecretStr | None = None

    def all_headers(self) -> dict[str, str]:
        """Headers to send, including the unwrapped token header."""
        headers: dict[str, str] = dict(self.headers)
        if self.api_key is not None:
            headers[self.auth_header] = self.api_key.get_secret_value()
        return headers

    def describe(self) -> str:
        """Token-free description for logs and error messages."""
        return f'{self.method.value} {self.path}'


# =============================================================================
# Traffic Request Body
# =============================================================================


class TrafficLevel(str, Enum):
    """Aggregation level of a traffic report."""

    SEGMENTS = 'segments'
    INSTANCE = 'instance'


class TrafficFormat(str, Enum):
    """Bucket granularity of a traffic report."""

    PER_HOUR = 'per-hour'
    PER_QUARTER = 'per-quarter'


class TrafficRequest(BaseModel):
    """
    Body of POST reports/traffic.

    The interval is closed-open: time_end itself is not included. Telraam
    accepts at most three months per call, which is why the fetcher chunks
    longer ranges.

    Attributes:
        level: 'segments' (default) or 'instance'.
        format: Bucket granularity.
        id: Segment (or instance) identifier.
        time_start: Start of the interval (UTC).
        time_end: End of the interval (UTC, exclusive).
    """

    model_config = ConfigDict(extra='forbid', frozen=True)

    level: TrafficLevel = TrafficLevel.SEGMENTS
    format: TrafficFormat = TrafficFormat.PER_HOUR
    id: str
    time_start: datetime
    time_end: datetime

    @field_validator('id', mode='before')
    @classmethod
    def coerce_id_to_string(cls, value: Any) -> Any:
        """Accept integer segment ids."""
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_serializer('time_start', 'time_end')
    def serialize_time(self, value: datetime) -> str:
        """Serialize timestamps the way the API expects them."""
        return format_rfc3339_millis(value)


# =============================================================================
# Endpoint Definitions
# =============================================================================


class PathParameterSpec(BaseModel):
    """Specification for a URL path parameter placeholder."""

    model_config = ConfigDict(extra='forbid', frozen=True)

    name: str
    description: str = ''


class EndpointDefinition[ResultT](ABC, BaseModel):
    """
    Abstract base for self-describing Telraam endpoints.

    An endpoint knows its path, its method, the path parameters it needs,
    and how to decode its response. The client interacts with every endpoint
    through build_request_spec() and parse_response().

    Attributes:
        endpoint_path: Path below the version root (may contain {placeholders}).
            Empty for the API root.
        http_method: HTTP verb.
        description: Human-readable description.
        path_parameters: Specifications for path placeholders.
    """

    model_config = ConfigDict(extra='forbid', frozen=True)

    endpoint_path: str
    http_method: HTTPMethod = HTTPMethod.GET
    description: str
    path_parameters: tuple[PathParameterSpec, ...] = Field(default_factory=tuple)

    @field_validator('endpoint_path')
    @classmethod
    def validate_endpoint_path_format(cls, endpoint_path: str) -> str:
        """Ensure non-root paths start with a forward slash."""
        if endpoint_path and not endpoint_path.startswith('/'):
            endpoint_path = f'/{endpoint_path}'
        return endpoint_path.rstrip('/')

    def build_resource_path(self, **path_params: Any) -> str:
        """
        Resolve path placeholders into the relative resource path.

        Raises:
            ValueError: If a required path parameter is missing or empty.
        """
        resolved_path: str = self.endpoint_path

        for param_spec in self.path_parameters:
            value: Any = path_params.get(param_spec.name)
            if value is None or str(value) == '':
                raise ValueError(f'Missing required path parameter: {param_spec.name}')
            resolved_path = resolved_path.replace(f'{{{param_spec.name}}}', str(value))

        return resolved_path

    def build_request_spec(
        self,
        credentials: ApiCredentials,
        body: BaseModel | None = None,
        **path_params: Any,
    ) -> RequestSpec:
        """
        Build a complete request specification ready for HTTP execution.

        Args:
            credentials: Connection settings and token.
            body: Request body model for POST endpoints.
            **path_params: Values for path placeholders.

        Returns:
            RequestSpec carrying the token as a SecretStr.
        """
        resource_path: str = self.build_resource_path(**path_params)
        url: str = f'{credentials.base_url}/{credentials.api_version}{resource_path}'

        headers: dict[str, str] = {'Accept': 'application/json'}
        json_body: dict[str, Any] | None = None
        if body is not None:
            headers['Content-Type'] = 'application/json'
            json_body = body.model_dump(mode='json')

        logger.debug(
            'Built Telraam request: %s %s', self.http_method.value, resource_path or '/'
        )

        return RequestSpec(
            url=url,
            path=resource_path or '/',
            method=self.http_method,
            headers=headers,
            body=json_body,
            timeout=credentials.timeout,
            auth_header=credentials.auth_header,
            api_key=credentials.api_key,
        )

    @abstractmethod
    def parse_response(self, response_json: dict[str, Any]) -> ResultT:
        """
        Decode a raw JSON response into the endpoint's result type.

        Raises:
            DecodeError: If the response does not match the expected shape.
        """
        raise NotImplementedError('Subclasses must implement parse_response')


class ModelEndpointDefinition[ModelT: ResponseModelBase](EndpointDefinition[ModelT]):
    """Endpoint whose response decodes into a single pydantic model."""

    model_config = ConfigDict(extra='forbid', frozen=True, arbitrary_types_allowed=True)

    response_model: type[ModelT]

    def parse_response(self, response_json: dict[str, Any]) -> ModelT:
        return decode_payload(response_json, self.response_model)


class GeoJsonEndpointDefinition(EndpointDefinition[SegmentCollection]):
    """Endpoint whose response is a GeoJSON FeatureCollection of segments."""

    def parse_response(
        self,
        response_json: dict[str, Any],
        geometry_types: Collection[GeometryType] | None = None,
    ) -> SegmentCollection:
        return decode_segments(response_json, geometry_types=geometry_types)


# =============================================================================
# Telraam Endpoint Catalogue
# =============================================================================


_SEGMENT_ID_PARAMETER = PathParameterSpec(
    name='segment_id',
    description='Segment id, as in https://telraam.net/en/location/<segment_id>',
)


class TelraamEndpoints:
    """
    Catalogue of Telraam API endpoint definitions.

    Usage:
        >>> endpoint = TelraamEndpoints.SEGMENT_BY_ID
        >>> spec = endpoint.build_request_spec(credentials, segment_id=348917)
        >>> # ... execute with TelraamClient ...
        >>> segments = endpoint.parse_response(response_json)
    """

    WELCOME: ModelEndpointDefinition[WelcomeResponse] = ModelEndpointDefinition(
        endpoint_path='',
        description='Check that the Telraam API is alive',
        response_model=WelcomeResponse,
    )

    TRAFFIC: ModelEndpointDefinition[TrafficResponse] = ModelEndpointDefinition(
        endpoint_path='/reports/traffic',
        http_method=HTTPMethod.POST,
        description='Traffic statistics for a segment over at most three months',
        response_model=TrafficResponse,
    )

    TRAFFIC_SNAPSHOT_LIVE: GeoJsonEndpointDefinition = GeoJsonEndpointDefinition(
        endpoint_path='/reports/traffic_snapshot_live',
        description='Latest traffic for all segments, refreshed every 5 minutes',
    )

    ALL_SEGMENTS: GeoJsonEndpointDefinition = GeoJsonEndpointDefinition(
        endpoint_path='/segments/all',
        description='All road segments (only the segment id per feature)',
    )

    ACTIVE_SEGMENTS: GeoJsonEndpointDefinition = GeoJsonEndpointDefinition(
        endpoint_path='/segments/active',
        description='Segments with at least one active camera',
    )

    SEGMENT_BY_ID: GeoJsonEndpointDefinition = GeoJsonEndpointDefinition(
        endpoint_path='/segments/id/{segment_id}',
        description='A single segment in GeoJSON format',
        path_parameters=(_SEGMENT_ID_PARAMETER,),
    )

    ALL_CAMERAS: ModelEndpointDefinition[CamerasResponse] = ModelEndpointDefinition(
        endpoint_path='/cameras',
        description='All camera instances',
        response_model=CamerasResponse,
    )

    CAMERAS_BY_SEGMENT: ModelEndpointDefinition[CamerasResponse] = (
        ModelEndpointDefinition(
            endpoint_path='/cameras/segment/{segment_id}',
            description='Camera instances (active and archived) on a segment',
            path_parameters=(_SEGMENT_ID_PARAMETER,),
            response_model=CamerasResponse,
        )
    )

    CAMERA_BY_MAC: ModelEndpointDefinition[CamerasResponse] = ModelEndpointDefinition(
        endpoint_path='/cameras/{mac_id}',
        description='Camera instances of one device',
        path_parameters=(
            PathParameterSpec(name='mac_id', description='MAC id of the device'),
        ),
        response_model=CamerasResponse,
    )

    @classmethod
    def get_all_endpoints(cls) -> dict[str, EndpointDefinition[Any]]:
        """Return all endpoint definitions keyed by attribute name."""
        return {
            name: value
            for name, value in vars(cls).items()
            if isinstance(value, EndpointDefinition)
        }
