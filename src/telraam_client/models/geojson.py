# telraam_client/models/geojson.py
"""
Pydantic models for the GeoJSON geometries Telraam returns.

Segments and traffic snapshots are delivered as GeoJSON FeatureCollections.
Geometries are decoded into a closed set of models discriminated on the
GeoJSON 'type' member, so a geometry the client does not know about fails
validation instead of leaking through as a raw dictionary.

Design Notes:
    - Coordinates are stored as tuples so frozen models are truly immutable.
    - Positions are [lon, lat] or [lon, lat, alt] (RFC 7946 order).
    - GeometryCollection is not modelled; Telraam never returns one.
    - Spatial predicates are delegated to shapely via to_shape().
"""

from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from shapely.geometry import box, shape
from shapely.geometry.base import BaseGeometry

__all__: list[str] = [
    'BoundingBox',
    'Geometry',
    'GeometryType',
    'LineString',
    'MultiLineString',
    'MultiPoint',
    'MultiPolygon',
    'Point',
    'Polygon',
    'Position',
    'geometry_type_of',
]

# [lon, lat] or [lon, lat, altitude]
Position = Annotated[tuple[float, ...], Field(min_length=2, max_length=3)]


class GeometryType(str, Enum):
    """GeoJSON geometry type names understood by the client."""

    POINT = 'Point'
    MULTI_POINT = 'MultiPoint'
    LINE_STRING = 'LineString'
    MULTI_LINE_STRING = 'MultiLineString'
    POLYGON = 'Polygon'
    MULTI_POLYGON = 'MultiPolygon'


class BoundingBox(BaseModel):
    """
    Axis-aligned bounding box in WGS84 degrees.

    Used as the client-side filter for segment listings; the spatial test
    itself runs on the shapely polygon returned by to_shape().
    """

    model_config = ConfigDict(extra='forbid', frozen=True)

    min_lon: float
    min_lat: float
    max_lon: float
    max_lat: float

    @classmethod
    def from_string(cls, value: str) -> 'BoundingBox':
        """
        Parse 'min_lon,min_lat,max_lon,max_lat' into a bounding box.

        Raises:
            ValueError: If the string does not hold four numbers or the
                minimums exceed the maximums.
        """
        parts: list[str] = [part.strip() for part in value.split(',')]
        if len(parts) != 4:  # noqa: PLR2004
            raise ValueError(
                f'Bounding box must be min_lon,min_lat,max_lon,max_lat; got {value!r}'
            )
        min_lon, min_lat, max_lon, max_lat = (float(part) for part in parts)
        if min_lon > max_lon or min_lat > max_lat:
            raise ValueError(f'Bounding box minimums exceed maximums: {value!r}')
        return cls(min_lon=min_lon, min_lat=min_lat, max_lon=max_lon, max_lat=max_lat)

    def to_shape(self) -> BaseGeometry:
        """Shapely polygon covering the box."""
        return box(self.min_lon, self.min_lat, self.max_lon, self.max_lat)


class _GeometryBase(BaseModel):
    """Shared configuration for geometry models."""

    model_config = ConfigDict(extra='ignore', frozen=True)

    def to_shape(self) -> BaseGeometry:
        """Convert the geometry to its shapely equivalent."""
        return shape(self.model_dump(mode='json'))


class Point(_GeometryBase):
    type: Literal['Point'] = 'Point'
    coordinates: Position


class MultiPoint(_GeometryBase):
    type: Literal['MultiPoint'] = 'MultiPoint'
    coordinates: tuple[Position, ...]


class LineString(_GeometryBase):
    type: Literal['LineString'] = 'LineString'
    coordinates: Annotated[tuple[Position, ...], Field(min_length=2)]


class MultiLineString(_GeometryBase):
    """The geometry Telraam uses for road segments."""

    type: Literal['MultiLineString'] = 'MultiLineString'
    coordinates: tuple[Annotated[tuple[Position, ...], Field(min_length=2)], ...]


# Closed ring: first and last positions repeat, so at least four
LinearRing = Annotated[tuple[Position, ...], Field(min_length=4)]


class Polygon(_GeometryBase):
    type: Literal['Polygon'] = 'Polygon'
    coordinates: tuple[LinearRing, ...]


class MultiPolygon(_GeometryBase):
    type: Literal['MultiPolygon'] = 'MultiPolygon'
    coordinates: tuple[tuple[LinearRing, ...], ...]


Geometry = Annotated[
    Point | MultiPoint | LineString | MultiLineString | Polygon | MultiPolygon,
    Field(discriminator='type'),
]


def geometry_type_of(raw_geometry: Any) -> str | None:
    """Return the raw 'type' member of an undecoded geometry, if any."""
    if isinstance(raw_geometry, dict):
        type_name: Any = raw_geometry.get('type')  # pyright: ignore[reportUnknownMemberType]
        return type_name if isinstance(type_name, str) else None
    return None
