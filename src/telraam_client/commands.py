# telraam_client/commands.py
"""
Command layer: one method per supported Telraam operation.

TelraamApi combines the client, the traffic fetcher and the endpoint
catalogue into a single facade. Every operation returns a decoded domain
value or propagates the error raised below it unmodified.

Operations can also be looked up by name through the OPERATIONS catalogue
and dispatch(), which is what the CLI uses.

Usage:
------
    from telraam_client.commands import TelraamApi
    from telraam_client.config import TelraamConfig

    with TelraamApi.from_config(TelraamConfig.from_token(token)) as api:
        print(api.welcome().message)
        outcome = api.traffic_report(348917, start, end)
        segments = api.active_segments(bbox='4.3,50.8,4.4,50.9')
"""

import logging
import time
from collections.abc import Collection
from datetime import datetime
from types import MappingProxyType, TracebackType
from typing import Any, Final, Self

import httpx
from pydantic import BaseModel, ConfigDict

from telraam_client.chunking import DateRange
from telraam_client.client import TelraamClient
from telraam_client.config.config_models import TelraamConfig, TrafficConfig
from telraam_client.errors import DecodeError
from telraam_client.fetcher import TrafficFetcher, TrafficFetchOutcome
from telraam_client.models.geojson import BoundingBox, GeometryType
from telraam_client.models.requests import (
    GeoJsonEndpointDefinition,
    TelraamEndpoints,
    TrafficFormat,
    TrafficLevel,
)
from telraam_client.models.responses import Camera, CamerasResponse, WelcomeResponse
from telraam_client.models.segments import Segment, SegmentCollection
from telraam_client.retry import SleepFunction

__all__: list[str] = [
    'OPERATIONS',
    'OperationNotFoundError',
    'OperationSpec',
    'TelraamApi',
]

logger: logging.Logger = logging.getLogger(__name__)


# =============================================================================
# Operation Catalogue
# =============================================================================


class OperationNotFoundError(Exception):
    """
    Raised when an operation name is not in the catalogue.

    Attributes:
        operation: The name that was looked up.
        available_operations: Valid operation names.
    """

    def __init__(self, operation: str, available_operations: list[str]) -> None:
        self.operation: str = operation
        self.available_operations: list[str] = available_operations
        super().__init__(
            f"Operation '{operation}' not found. "
            f'Available: {", ".join(sorted(available_operations))}'
        )


class OperationSpec(BaseModel):
    """
    Description of one command-layer operation.

    Attributes:
        name: Operation name used by dispatch().
        method_name: TelraamApi method implementing it.
        required_params: Parameters the caller must supply.
        optional_params: Parameters the caller may supply.
        result_type: Name of the returned domain type.
        description: One-line description.
    """

    model_config = ConfigDict(extra='forbid', frozen=True)

    name: str
    method_name: str
    required_params: tuple[str, ...] = ()
    optional_params: tuple[str, ...] = ()
    result_type: str
    description: str

    @property
    def accepted_params(self) -> frozenset[str]:
        return frozenset(self.required_params) | frozenset(self.optional_params)


OPERATIONS: Final[MappingProxyType[str, OperationSpec]] = MappingProxyType(
    {
        spec.name: spec
        for spec in (
            OperationSpec(
                name='welcome',
                method_name='welcome',
                result_type='WelcomeResponse',
                description='Check that the API is up',
            ),
            OperationSpec(
                name='traffic',
                method_name='traffic_report',
                required_params=('segment_id', 'start', 'end'),
                optional_params=('traffic_format', 'level'),
                result_type='TrafficFetchOutcome',
                description='Traffic buckets for a segment over any date range',
            ),
            OperationSpec(
                name='segment',
                method_name='segment',
                required_params=('segment_id',),
                optional_params=('geometry_types',),
                result_type='Segment',
                description='Look up a single segment',
            ),
            OperationSpec(
                name='active_segments',
                method_name='active_segments',
                optional_params=('bbox', 'geometry_types'),
                result_type='SegmentCollection',
                description='Segments with an active camera, optionally within a box',
            ),
            OperationSpec(
                name='all_segments',
                method_name='all_segments',
                optional_params=('bbox', 'geometry_types'),
                result_type='SegmentCollection',
                description='Every segment known to Telraam',
            ),
            OperationSpec(
                name='traffic_snapshot',
                method_name='traffic_snapshot',
                optional_params=('bbox', 'geometry_types'),
                result_type='SegmentCollection',
                description='Latest traffic for all segments',
            ),
            OperationSpec(
                name='cameras',
                method_name='cameras',
                result_type='list[Camera]',
                description='Every camera instance',
            ),
            OperationSpec(
                name='cameras_by_segment',
                method_name='cameras_by_segment',
                required_params=('segment_id',),
                result_type='list[Camera]',
                description='Camera instances on a segment',
            ),
            OperationSpec(
                name='camera_by_mac',
                method_name='camera_by_mac',
                required_params=('mac_id',),
                result_type='list[Camera]',
                description='Camera instances of one device',
            ),
        )
    }
)


def _normalize_operation_name(name: str) -> str:
    return name.strip().lower().replace('-', '_')


# =============================================================================
# API Facade
# =============================================================================


class TelraamApi:
    """
    High-level facade for the Telraam API.

    The facade owns its client: use it as a context manager (or call
    close()) to release the connection pool.

    Example:
        >>> with TelraamApi.from_config(config) as api:
        ...     outcome = api.traffic_report(348917, start, end)
        ...     dataframe = outcome.to_dataframe()
    """

    def __init__(
        self,
        client: TelraamClient,
        traffic_config: TrafficConfig | None = None,
    ) -> None:
        self._client: TelraamClient = client
        self._fetcher: TrafficFetcher = TrafficFetcher(client, traffic_config)

    @classmethod
    def from_config(
        cls,
        config: TelraamConfig,
        sleep: SleepFunction = time.sleep,
        transport: httpx.BaseTransport | None = None,
    ) -> Self:
        """
        Build the facade from a validated configuration.

        Args:
            config: Loaded configuration.
            sleep: Function used to wait between retries.
            transport: Optional httpx transport for the underlying client.
        """
        client = TelraamClient(
            config.api.to_credentials(),
            retry_config=config.retry,
            sleep=sleep,
            transport=transport,
        )
        return cls(client, config.traffic)

    @property
    def client(self) -> TelraamClient:
        return self._client

    @property
    def fetcher(self) -> TrafficFetcher:
        return self._fetcher

    def close(self) -> None:
        self._client.close()

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
    # Operations
    # -------------------------------------------------------------------------

    def welcome(self) -> WelcomeResponse:
        """Liveness message from the API root."""
        return self._client.fetch(TelraamEndpoints.WELCOME)

    def traffic_report(
        self,
        segment_id: int | str,
        start: datetime,
        end: datetime,
        traffic_format: TrafficFormat | str | None = None,
        level: TrafficLevel | str | None = None,
    ) -> TrafficFetchOutcome:
        """
        Traffic buckets for a segment between start (inclusive) and end
        (exclusive), chunked and merged transparently.

        Raises:
            InvalidRangeError: If start is after end.
            FetchFailedError: If no chunk could be fetched.
            DecodeError, ConsistencyError: See TrafficFetcher.fetch().
        """
        return self._fetcher.fetch(
            segment_id,
            DateRange(start=start, end=end),
            traffic_format=TrafficFormat(traffic_format) if traffic_format else None,
            level=TrafficLevel(level) if level else None,
        )

    def segment(
        self,
        segment_id: int | str,
        geometry_types: Collection[GeometryType] | None = None,
    ) -> Segment:
        """
        Look up one segment.

        Raises:
            DecodeError: If the response holds no usable feature for the id,
                or only features for other segments.
        """
        collection: SegmentCollection = self._fetch_segments(
            TelraamEndpoints.SEGMENT_BY_ID,
            geometry_types=geometry_types,
            segment_id=segment_id,
        )

        for candidate in collection.segments:
            if str(candidate.segment_id) == str(segment_id):
                return candidate

        if collection.segments:
            raise DecodeError(
                field='features',
                message=(
                    f'no feature for segment {segment_id}; '
                    f'response holds {collection.segment_ids}'
                ),
            )

        reasons: str = '; '.join(rejected.reason for rejected in collection.rejected)
        raise DecodeError(
            field='features',
            message=f'no usable feature for segment {segment_id}'
            + (f' ({reasons})' if reasons else ''),
        )

    def active_segments(
        self,
        bbox: BoundingBox | str | None = None,
        geometry_types: Collection[GeometryType] | None = None,
    ) -> SegmentCollection:
        """Segments with at least one active camera, optionally within bbox."""
        return self._filtered(
            self._fetch_segments(
                TelraamEndpoints.ACTIVE_SEGMENTS, geometry_types=geometry_types
            ),
            bbox,
        )

    def all_segments(
        self,
        bbox: BoundingBox | str | None = None,
        geometry_types: Collection[GeometryType] | None = None,
    ) -> SegmentCollection:
        """Every segment, optionally within bbox."""
        return self._filtered(
            self._fetch_segments(TelraamEndpoints.ALL_SEGMENTS, geometry_types=geometry_types),
            bbox,
        )

    def traffic_snapshot(
        self,
        bbox: BoundingBox | str | None = None,
        geometry_types: Collection[GeometryType] | None = None,
    ) -> SegmentCollection:
        """Latest traffic per segment (refreshed every 5 minutes by Telraam)."""
        return self._filtered(
            self._fetch_segments(
                TelraamEndpoints.TRAFFIC_SNAPSHOT_LIVE, geometry_types=geometry_types
            ),
            bbox,
        )

    def cameras(self) -> list[Camera]:
        response: CamerasResponse = self._client.fetch(TelraamEndpoints.ALL_CAMERAS)
        return list(response.cameras)

    def cameras_by_segment(self, segment_id: int | str) -> list[Camera]:
        response: CamerasResponse = self._client.fetch(
            TelraamEndpoints.CAMERAS_BY_SEGMENT, segment_id=segment_id
        )
        return list(response.cameras)

    def camera_by_mac(self, mac_id: int | str) -> list[Camera]:
        response: CamerasResponse = self._client.fetch(
            TelraamEndpoints.CAMERA_BY_MAC, mac_id=mac_id
        )
        return list(response.cameras)

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def dispatch(self, operation: str, **params: Any) -> Any:
        """
        Run an operation by name.

        Names are case-insensitive and accept hyphens ('active-segments').

        Raises:
            OperationNotFoundError: If the name is unknown.
            ValueError: If required parameters are missing or unknown ones given.
        """
        operation_name: str = _normalize_operation_name(operation)
        spec: OperationSpec | None = OPERATIONS.get(operation_name)
        if spec is None:
            raise OperationNotFoundError(operation, list(OPERATIONS))

        supplied: dict[str, Any] = {
            name: value for name, value in params.items() if value is not None
        }
        missing: list[str] = [
            name for name in spec.required_params if name not in supplied
        ]
        if missing:
            raise ValueError(
                f"Operation '{spec.name}' requires: {', '.join(missing)}"
            )
        unknown: list[str] = sorted(set(supplied) - spec.accepted_params)
        if unknown:
            raise ValueError(
                f"Operation '{spec.name}' does not accept: {', '.join(unknown)}"
            )

        logger.debug('Dispatching %s with %s', spec.name, sorted(supplied))
        return getattr(self, spec.method_name)(**supplied)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _fetch_segments(
        self,
        endpoint: GeoJsonEndpointDefinition,
        geometry_types: Collection[GeometryType] | None = None,
        **path_params: Any,
    ) -> SegmentCollection:
        response_json: dict[str, Any] = self._client.fetch_json(endpoint, **path_params)
        return endpoint.parse_response(response_json, geometry_types=geometry_types)

    @staticmethod
    def _filtered(
        collection: SegmentCollection,
        bbox: BoundingBox | str | None,
    ) -> SegmentCollection:
        if bbox is None:
            return collection
        box: BoundingBox = BoundingBox.from_string(bbox) if isinstance(bbox, str) else bbox
        filtered: SegmentCollection = collection.filter_bbox(box)
        logger.info(
            'Bounding box kept %d of %d segments',
            filtered.segment_count,
            collection.segment_count,
        )
        return filtered
