# telraam_client/models/segments.py
"""
Segment models and GeoJSON FeatureCollection decoding.

Telraam returns segments (and live traffic snapshots) as GeoJSON: each
Feature carries the road geometry and a flat properties object. Decoding
happens feature by feature so one bad or unwanted feature is rejected on
its own instead of failing the whole collection.
"""

import logging
from collections.abc import Collection
from datetime import datetime
from typing import Any, Final

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter
from shapely.geometry.base import BaseGeometry

from telraam_client.errors import DecodeError
from telraam_client.models.decode import decode_payload, decode_with_adapter
from telraam_client.models.geojson import (
    BoundingBox,
    Geometry,
    GeometryType,
    geometry_type_of,
)
from telraam_client.models.responses import ResponseModelBase

__all__: list[str] = [
    'RejectedFeature',
    'Segment',
    'SegmentCollection',
    'SegmentProperties',
    'decode_segments',
]

logger: logging.Logger = logging.getLogger(__name__)

_GEOMETRY_ADAPTER: Final[TypeAdapter[Geometry]] = TypeAdapter(Geometry)

# Property names that may hold the segment identifier, in lookup order
SEGMENT_ID_PROPERTY_NAMES: Final[tuple[str, ...]] = ('segment_id', 'oidn')


class SegmentProperties(ResponseModelBase):
    """
    Attributes attached to a segment Feature.

    Which attributes are present depends on the endpoint: segment lookups
    return road metadata and long-term averages, the live snapshot returns
    the latest counts. Every field is therefore optional.
    """

    street_name: str | None = Field(
        default=None,
        validation_alias=AliasChoices('street_name', 'streetname', 'name'),
    )
    direction: bool | int | None = None
    status: str | None = None
    instance_id: int | None = None
    mac: int | None = None

    first_data_package: datetime | None = None
    last_data_package: datetime | None = None

    speed: float | None = None
    oneway: bool | None = None
    road_type: str | None = None
    road_speed: str | float | None = None

    uptime: float | None = None
    pedestrian: float | None = None
    bike: float | None = None
    car: float | None = None
    heavy: float | None = Field(
        default=None,
        validation_alias=AliasChoices('heavy', 'lorry'),
    )
    v85: float | None = None
    speed_histogram: tuple[float, ...] | None = None
    speed_buckets: tuple[float, ...] | None = None

    @property
    def is_active(self) -> bool | None:
        """Whether the segment is reported active, or None if unknown."""
        if self.status is None:
            return None
        return self.status == 'active'


class Segment(BaseModel):
    """
    A road section tracked by one or more Telraam devices.

    Attributes:
        segment_id: Identifier used by other API calls (e.g. traffic reports).
        geometry: GeoJSON geometry of the road section.
        properties: Decoded Feature properties.
    """

    model_config = ConfigDict(extra='forbid', frozen=True)

    segment_id: int | str
    geometry: Geometry
    properties: SegmentProperties = Field(default_factory=SegmentProperties)

    @property
    def geometry_type(self) -> GeometryType:
        """GeoJSON type of the segment geometry."""
        return GeometryType(self.geometry.type)

    def to_shape(self) -> BaseGeometry:
        """Shapely geometry of the road section."""
        return self.geometry.to_shape()


class RejectedFeature(BaseModel):
    """A Feature that was left out of a SegmentCollection, and why."""

    model_config = ConfigDict(extra='forbid', frozen=True)

    index: int
    reason: str


class SegmentCollection(BaseModel):
    """
    Decoded segments plus the features that were rejected.

    Attributes:
        segments: Successfully decoded segments, in response order.
        rejected: Features skipped because of an unrequested geometry type
            or a decode failure.
    """

    model_config = ConfigDict(extra='forbid', frozen=True)

    segments: tuple[Segment, ...] = ()
    rejected: tuple[RejectedFeature, ...] = ()

    @property
    def segment_count(self) -> int:
        """Number of decoded segments."""
        return len(self.segments)

    @property
    def segment_ids(self) -> list[int | str]:
        """Identifiers of the decoded segments, in order."""
        return [segment.segment_id for segment in self.segments]

    def filter_bbox(self, bbox: BoundingBox) -> 'SegmentCollection':
        """
        Keep only segments whose geometry intersects the box.

        Touching the box edge counts as intersecting. Segments with an empty
        geometry never match.
        """
        area: BaseGeometry = bbox.to_shape()
        return SegmentCollection(
            segments=tuple(
                segment
                for segment in self.segments
                if segment.to_shape().intersects(area)
            ),
            rejected=self.rejected,
        )


# =============================================================================
# Decoding
# =============================================================================


def _resolve_segment_id(
    feature: dict[str, Any],
    raw_properties: dict[str, Any],
    path: str,
) -> int | str:
    """Pick the segment identifier from properties, falling back to Feature.id."""
    for property_name in SEGMENT_ID_PROPERTY_NAMES:
        value: Any = raw_properties.get(property_name)
        if isinstance(value, int | str) and not isinstance(value, bool):
            return value

    feature_id: Any = feature.get('id')
    if isinstance(feature_id, int | str) and not isinstance(feature_id, bool):
        return feature_id

    raise DecodeError(field=f'{path}.properties.segment_id', message='missing segment id')


def _decode_feature(raw_feature: Any, path: str) -> Segment:
    """
    Decode a single GeoJSON Feature into a Segment.

    Raises:
        DecodeError: If the feature, its geometry, or its properties are malformed.
    """
    if not isinstance(raw_feature, dict) or raw_feature.get('type') != 'Feature':  # pyright: ignore[reportUnknownMemberType]
        raise DecodeError(field=f'{path}.type', message="expected a 'Feature' object")

    feature: dict[str, Any] = raw_feature  # pyright: ignore[reportUnknownVariableType]
    raw_properties: Any = feature.get('properties') or {}
    if not isinstance(raw_properties, dict):
        raise DecodeError(field=f'{path}.properties', message='expected an object')

    geometry: Geometry = decode_with_adapter(
        feature.get('geometry'), _GEOMETRY_ADAPTER, path_prefix=f'{path}.geometry'
    )
    properties: SegmentProperties = decode_payload(
        raw_properties, SegmentProperties, path_prefix=f'{path}.properties'
    )
    segment_id: int | str = _resolve_segment_id(feature, raw_properties, path)  # pyright: ignore[reportUnknownArgumentType]

    return Segment(segment_id=segment_id, geometry=geometry, properties=properties)


def decode_segments(
    payload: Any,
    geometry_types: Collection[GeometryType] | None = None,
) -> SegmentCollection:
    """
    Decode a GeoJSON FeatureCollection (or single Feature) into segments.

    Features are decoded independently. A feature whose geometry type is not
    in geometry_types, or that fails to decode, is logged and recorded in
    SegmentCollection.rejected; the remaining features are still returned.

    Args:
        payload: Raw JSON response body.
        geometry_types: Geometry types the caller accepts. None accepts all
            modelled types.

    Returns:
        SegmentCollection with decoded segments and rejected features.

    Raises:
        DecodeError: If the payload is neither a FeatureCollection nor a Feature.
    """
    if not isinstance(payload, dict):
        raise DecodeError(field='<root>', message='expected a GeoJSON object')

    body: dict[str, Any] = payload  # pyright: ignore[reportUnknownVariableType]
    payload_type: Any = body.get('type')

    if payload_type == 'FeatureCollection':
        raw_features: Any = body.get('features')
        if not isinstance(raw_features, list):
            raise DecodeError(field='features', message='expected a list of features')
        features: list[Any] = raw_features  # pyright: ignore[reportUnknownVariableType]
        path_root: str = 'features'
    elif payload_type == 'Feature':
        features = [body]
        path_root = '<feature>'
    else:
        raise DecodeError(
            field='type',
            message=f"expected 'FeatureCollection' or 'Feature', got {payload_type!r}",
        )

    allowed_types: set[str] | None = (
        {geometry_type.value for geometry_type in geometry_types}
        if geometry_types is not None
        else None
    )

    segments: list[Segment] = []
    rejected: list[RejectedFeature] = []

    for index, raw_feature in enumerate(features):
        path: str = f'{path_root}.{index}' if payload_type == 'FeatureCollection' else path_root

        if allowed_types is not None and isinstance(raw_feature, dict):
            raw_type: str | None = geometry_type_of(raw_feature.get('geometry'))  # pyright: ignore[reportUnknownMemberType]
            if raw_type not in allowed_types:
                reason: str = f'geometry type {raw_type!r} not requested'
                logger.debug('Rejecting feature %d: %s', index, reason)
                rejected.append(RejectedFeature(index=index, reason=reason))
                continue

        try:
            segments.append(_decode_feature(raw_feature, path))
        except DecodeError as error:
            logger.warning('Rejecting feature %d: %s', index, error)
            rejected.append(RejectedFeature(index=index, reason=str(error)))

    logger.debug(
        'Decoded %d segments (%d rejected)', len(segments), len(rejected)
    )

    return SegmentCollection(segments=tuple(segments), rejected=tuple(rejected))
