# telraam_client/models/responses.py
"""
Pydantic response models for Telraam API payloads.

Models are organized from the shared status envelope up to full response
containers for each endpoint.

Design Notes:
    - Every Telraam body carries a status envelope: {"status_code", "message"}.
      The welcome endpoint uses "msg" instead of "message".
    - A body status_code of 300 or more is an error even when the HTTP status
      is 200; the transport checks this via Status.is_error.
    - All timestamps are ISO-8601 UTC. Naive timestamps are read as UTC.
    - Response models use extra='ignore' so new API fields do not break
      decoding, but nothing is ever exposed as an untyped dictionary.
"""

import logging
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any, Final

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
)

__all__: list[str] = [
    'INTERVAL_WIDTHS',
    'Camera',
    'CamerasResponse',
    'ErrorPayload',
    'ReportInterval',
    'ResponseModelBase',
    'Status',
    'TrafficReport',
    'TrafficResponse',
    'WelcomeResponse',
]

logger: logging.Logger = logging.getLogger(__name__)

# Telraam reports success as status_code 200; anything at or above this is an error
STATUS_CODE_ERROR_MIN: Final[int] = 300


def _ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes and normalize aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


# =============================================================================
# Base Configuration for Response Models
# =============================================================================


class ResponseModelBase(BaseModel):
    """
    Base class for all Telraam response models.

    Configuration:
        - extra='ignore': Silently ignore unknown fields from API responses.
        - populate_by_name=True: Allow initialization by field name OR alias.
        - frozen=True: Decoded values are immutable.
    """

    model_config = ConfigDict(
        extra='ignore',
        populate_by_name=True,
        frozen=True,
    )


# =============================================================================
# Status Envelope
# =============================================================================


class Status(ResponseModelBase):
    """
    Status envelope present in every Telraam response body.

    Attributes:
        status_code: HTTP-like status code; 0 when the body omits it
            (the welcome endpoint does).
        message: Message returned by Telraam ('ok' on success).
    """

    status_code: int = 0
    message: str = Field(
        default='',
        validation_alias=AliasChoices('message', 'msg'),
    )

    @property
    def is_error(self) -> bool:
        """Whether the body reports a failure regardless of HTTP status."""
        return self.status_code >= STATUS_CODE_ERROR_MIN


class ErrorPayload(ResponseModelBase):
    """
    Structured error body returned with non-2xx responses.

    Telraam itself answers with the status envelope; the gateway in front of
    it answers with {"message": "..."} or {"errorMessage": "..."}. At least
    one message field must be present for the body to count as structured.
    """

    status_code: int | None = None
    message: str = Field(
        validation_alias=AliasChoices('message', 'msg', 'errorMessage', 'error'),
    )
    code: str | None = Field(
        default=None,
        validation_alias=AliasChoices('code', 'error_code', 'errorCode'),
    )

    @field_validator('code', mode='before')
    @classmethod
    def coerce_code_to_string(cls, value: Any) -> Any:
        """Accept numeric error codes by converting them to strings."""
        if isinstance(value, int | float):
            return str(value)
        return value


class WelcomeResponse(Status):
    """Response from the API root: a liveness message."""


# =============================================================================
# Traffic Reports
# =============================================================================


class ReportInterval(str, Enum):
    """Width of the aggregation bucket of a traffic report."""

    QUARTERLY = 'quarterly'
    HOURLY = 'hourly'
    DAILY = 'daily'


INTERVAL_WIDTHS: Final[dict[ReportInterval, timedelta]] = {
    ReportInterval.QUARTERLY: timedelta(minutes=15),
    ReportInterval.HOURLY: timedelta(hours=1),
    ReportInterval.DAILY: timedelta(days=1),
}


class TrafficReport(ResponseModelBase):
    """
    One aggregated traffic bucket for a segment.

    Counts are estimates (uptime-corrected), hence floats. Left/right splits
    are relative to the direction of the segment's coordinate chain.

    Attributes:
        instance_id: Camera instance id for instance-level calls, -1 otherwise.
        segment_id: Segment id for segment-level calls, -1 otherwise.
        date: Start of the bucket (UTC).
        interval: Bucket width.
        uptime: Fraction of the bucket actually spent counting (0..1).
        heavy: Vehicles larger than a car.
        car: Cars.
        bike: Two-wheelers (mostly cyclists).
        pedestrian: Pedestrians.
        direction: Internal consistency flag; normally 1.
        timezone: Time zone name of the segment, for local-time conversion.
        car_speed_hist_0to70plus: Car speed distribution, 10 km/h bins (%).
        car_speed_hist_0to120plus: Car speed distribution, 5 km/h bins (%).
        v85: Speed (km/h) that 85% of cars stay below, when estimated.
    """

    instance_id: int
    segment_id: int
    date: datetime
    interval: ReportInterval
    uptime: float = Field(ge=0.0, le=1.0)

    heavy: float = Field(ge=0.0)
    car: float = Field(ge=0.0)
    bike: float = Field(ge=0.0)
    pedestrian: float = Field(ge=0.0)

    heavy_lft: float = Field(default=0.0, ge=0.0)
    heavy_rgt: float = Field(default=0.0, ge=0.0)
    car_lft: float = Field(default=0.0, ge=0.0)
    car_rgt: float = Field(default=0.0, ge=0.0)
    bike_lft: float = Field(default=0.0, ge=0.0)
    bike_rgt: float = Field(default=0.0, ge=0.0)
    pedestrian_lft: float = Field(default=0.0, ge=0.0)
    pedestrian_rgt: float = Field(default=0.0, ge=0.0)

    direction: int | None = None
    timezone: str | None = None
    car_speed_hist_0to70plus: tuple[float, ...] = ()
    car_speed_hist_0to120plus: tuple[float, ...] = ()
    v85: float | None = None

    @field_validator('date', mode='after')
    @classmethod
    def normalize_date_to_utc(cls, value: datetime) -> datetime:
        """Store the bucket start as an aware UTC datetime."""
        return _ensure_utc(value)  # type: ignore[return-value]

    @property
    def start(self) -> datetime:
        """Start of the bucket (inclusive)."""
        return self.date

    @property
    def end(self) -> datetime:
        """End of the bucket (exclusive)."""
        return self.date + INTERVAL_WIDTHS[self.interval]


class TrafficResponse(Status):
    """Response from POST reports/traffic."""

    reports: tuple[TrafficReport, ...] = Field(default=(), alias='report')


# =============================================================================
# Cameras
# =============================================================================


class Camera(ResponseModelBase):
    """
    A camera instance.

    An instance is the combination of a device (mac), its owner, its segment
    and its side of the road. Changing any of these closes the instance
    (time_end is set) and opens a new one.

    Attributes:
        instance_id: Unique id of the camera instance.
        mac: Unique id of the physical device.
        user_id: Owner of the device.
        segment_id: Segment the device watches.
        direction: Side of the road relative to the segment direction.
        status: 'active', 'non_active' or 'problematic'.
        manual: Internal flag.
        time_added: Registration time of the instance.
        time_end: End of the instance, None while active.
        last_data_package: Last data transfer, if any.
        first_data_package: First data transfer, if any.
        is_calibration_done: Whether heavy vehicles are told apart from cars.
            Sent as 'yes'/'no' on the wire.
    """

    instance_id: int
    mac: int
    user_id: int
    segment_id: int
    direction: bool
    status: str
    manual: bool = False
    time_added: datetime
    time_end: datetime | None = None
    last_data_package: datetime | None = None
    first_data_package: datetime | None = None
    pedestrians_left: bool = False
    pedestrians_right: bool = False
    bikes_left: bool = False
    bikes_right: bool = False
    cars_left: bool = False
    cars_right: bool = False
    is_calibration_done: bool = False

    @field_validator(
        'time_added', 'time_end', 'last_data_package', 'first_data_package', mode='after'
    )
    @classmethod
    def normalize_times_to_utc(cls, value: datetime | None) -> datetime | None:
        """Store timestamps as aware UTC datetimes."""
        return _ensure_utc(value)

    @field_validator('is_calibration_done', mode='before')
    @classmethod
    def parse_yes_no(cls, value: Any) -> Any:
        """Translate the API's 'yes'/'no' strings into booleans."""
        if isinstance(value, bool):
            return value
        if value == 'yes':
            return True
        if value == 'no':
            return False
        raise ValueError(f"expected 'yes' or 'no', got {value!r}")

    @field_serializer('is_calibration_done')
    def serialize_yes_no(self, value: bool) -> str:
        """Write calibration status back in the API's wire format."""
        return 'yes' if value else 'no'


class CamerasResponse(Status):
    """Response from the camera listing endpoints."""

    cameras: tuple[Camera, ...] = Field(
        default=(),
        validation_alias=AliasChoices('cameras', 'camera'),
    )
