# telraam_client/schema.py
"""
Canonical tabular schema for traffic reports.

This module provides the column definitions and DataFrame construction for
traffic buckets, so that everything handed to analysis code has the same
columns and types regardless of how many chunks the data came from.

The schema is flat: left/right splits are separate columns and the speed
histograms are left out (they are per-bucket arrays, not scalars).
"""

import logging
from collections.abc import Iterable
from typing import Any, Final

import numpy as np
import pandas as pd

from telraam_client.models.responses import TrafficReport

logger: logging.Logger = logging.getLogger(__name__)

__all__: list[str] = [
    'COUNT_COLUMNS',
    'TRAFFIC_COLUMNS',
    'enforce_traffic_schema',
    'reports_to_dataframe',
]

# =============================================================================
# Schema Constants
# =============================================================================

# Per-mode counts, including left/right splits
COUNT_COLUMNS: Final[list[str]] = [
    'pedestrian',
    'pedestrian_lft',
    'pedestrian_rgt',
    'bike',
    'bike_lft',
    'bike_rgt',
    'car',
    'car_lft',
    'car_rgt',
    'heavy',
    'heavy_lft',
    'heavy_rgt',
]

# Canonical column order for traffic records.
TRAFFIC_COLUMNS: Final[list[str]] = [
    'segment_id',  # Segment id, -1 for instance-level reports
    'instance_id',  # Camera instance id, -1 for segment-level reports
    'start',  # Bucket start (UTC, timezone-aware)
    'end',  # Bucket end, exclusive (UTC, timezone-aware)
    'interval',  # 'quarterly', 'hourly' or 'daily'
    'uptime',  # Fraction of the bucket spent counting (0..1)
    *COUNT_COLUMNS,
    'v85',  # 85th percentile car speed (km/h), NaN when not estimated
    'timezone',  # Time zone name of the segment
]


# =============================================================================
# Schema Functions
# =============================================================================


def _report_to_record(report: TrafficReport) -> dict[str, Any]:
    return {
        'segment_id': report.segment_id,
        'instance_id': report.instance_id,
        'start': report.start,
        'end': report.end,
        'interval': report.interval.value,
        'uptime': report.uptime,
        **{column: getattr(report, column) for column in COUNT_COLUMNS},
        'v85': report.v85,
        'timezone': report.timezone,
    }


def enforce_traffic_schema(dataframe: pd.DataFrame) -> pd.DataFrame:
    """
    Enforce column order and types on a traffic DataFrame.

    Idempotent: calling it twice gives the same result.

    Returns:
        DataFrame with:
            - start/end: datetime64[ns, UTC]
            - segment_id/instance_id: int64
            - uptime, counts, v85: float64 (v85 nullable via NaN)
            - interval: category
            - timezone: object (string or None)

    Raises:
        ValueError: If required columns are missing.
    """
    missing_columns: set[str] = set(TRAFFIC_COLUMNS) - set(dataframe.columns)
    if missing_columns:
        raise ValueError(
            f'DataFrame missing required columns: {sorted(missing_columns)}'
        )

    result: pd.DataFrame = dataframe.copy()

    for column_name in ('start', 'end'):
        result[column_name] = pd.to_datetime(result[column_name], utc=True)

    for column_name in ('segment_id', 'instance_id'):
        result[column_name] = result[column_name].astype(np.int64)

    for column_name in ['uptime', *COUNT_COLUMNS, 'v85']:
        result[column_name] = pd.to_numeric(
            result[column_name], errors='coerce'
        ).astype(np.float64)

    result['interval'] = result['interval'].astype('category')

    return result[TRAFFIC_COLUMNS]


def reports_to_dataframe(reports: Iterable[TrafficReport]) -> pd.DataFrame:
    """
    Build a DataFrame from traffic buckets, preserving their order.

    An empty input gives an empty frame that still has TRAFFIC_COLUMNS.

    Example:
        >>> dataframe = reports_to_dataframe(outcome.reports)
        >>> dataframe.set_index('start')['car'].resample('D').sum()
    """
    records: list[dict[str, Any]] = [_report_to_record(report) for report in reports]

    if not records:
        logger.debug('No traffic reports, returning empty DataFrame')
        return enforce_traffic_schema(pd.DataFrame(columns=TRAFFIC_COLUMNS))

    dataframe: pd.DataFrame = enforce_traffic_schema(pd.DataFrame.from_records(records))

    logger.debug(
        'Created traffic DataFrame: %d rows, %d columns',
        len(dataframe),
        len(dataframe.columns),
    )

    return dataframe
