# telraam_client/models/__init__.py
"""
Typed models for Telraam requests and responses.

- geojson: Geometry models and bounding boxes.
- responses: Status envelope, traffic buckets, cameras.
- segments: Segment features and FeatureCollection decoding.
- requests: Credentials, request specs and the endpoint catalogue.
- decode: ValidationError to DecodeError conversion.
"""

from telraam_client.models.decode import (
    decode_payload,
    decode_with_adapter,
    error_field_path,
)
from telraam_client.models.geojson import (
    BoundingBox,
    Geometry,
    GeometryType,
    LineString,
    MultiLineString,
    MultiPoint,
    MultiPolygon,
    Point,
    Polygon,
)
from telraam_client.models.requests import (
    ApiCredentials,
    EndpointDefinition,
    GeoJsonEndpointDefinition,
    HTTPMethod,
    ModelEndpointDefinition,
    PathParameterSpec,
    RequestSpec,
    TelraamEndpoints,
    TrafficFormat,
    TrafficLevel,
    TrafficRequest,
    format_rfc3339_millis,
)
from telraam_client.models.responses import (
    INTERVAL_WIDTHS,
    Camera,
    CamerasResponse,
    ErrorPayload,
    ReportInterval,
    ResponseModelBase,
    Status,
    TrafficReport,
    TrafficResponse,
    WelcomeResponse,
)
from telraam_client.models.segments import (
    RejectedFeature,
    Segment,
    SegmentCollection,
    SegmentProperties,
    decode_segments,
)

__all__: list[str] = [
    'INTERVAL_WIDTHS',
    'ApiCredentials',
    'BoundingBox',
    'Camera',
    'CamerasResponse',
    'EndpointDefinition',
    'ErrorPayload',
    'GeoJsonEndpointDefinition',
    'Geometry',
    'GeometryType',
    'HTTPMethod',
    'LineString',
    'ModelEndpointDefinition',
    'MultiLineString',
    'MultiPoint',
    'MultiPolygon',
    'PathParameterSpec',
    'Point',
    'Polygon',
    'RejectedFeature',
    'ReportInterval',
    'RequestSpec',
    'ResponseModelBase',
    'Segment',
    'SegmentCollection',
    'SegmentProperties',
    'Status',
    'TelraamEndpoints',
    'TrafficFormat',
    'TrafficLevel',
    'TrafficReport',
    'TrafficRequest',
    'TrafficResponse',
    'WelcomeResponse',
    'decode_payload',
    'decode_segments',
    'decode_with_adapter',
    'error_field_path',
    'format_rfc3339_millis',
]
