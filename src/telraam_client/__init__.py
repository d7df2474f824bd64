# telraam_client/__init__.py
"""
Telraam Client - typed, retrying client for the Telraam traffic counting API.

Telraam devices count pedestrians, cyclists, cars and heavy vehicles on road
segments. This package queries the Telraam API and decodes its responses
(including GeoJSON segment geometry) into typed models:

- Traffic reports over any date range: the range is split into chunks the
  API accepts, chunks are fetched with retries, and results are merged into
  one ordered time series. Chunks that keep failing are reported as gaps
  instead of discarding what was fetched.
- Segment lookup and listings (active, all, live snapshot) with client-side
  bounding box filtering.
- Camera instance listings.

Quick Start:
    >>> from datetime import datetime, UTC
    >>> from telraam_client import TelraamApi, TelraamConfig
    >>>
    >>> config = TelraamConfig.from_token('my-token')
    >>> with TelraamApi.from_config(config) as api:
    ...     outcome = api.traffic_report(
    ...         348917,
    ...         start=datetime(2024, 1, 1, tzinfo=UTC),
    ...         end=datetime(2024, 7, 1, tzinfo=UTC),
    ...     )
    ...     if outcome.is_partial:
    ...         print('gaps:', [r.chunk.label() for r in outcome.failed_chunks])
    ...     dataframe = outcome.to_dataframe()

Command line:
    $ export TELRAAM_TOKEN=...
    $ telraam traffic 348917 --start 2024-01-01 --end 2024-07-01 --csv out.csv
"""

__version__ = '0.1.0'

from telraam_client.chunking import Chunk, DateRange, chunk_date_range
from telraam_client.client import TelraamClient
from telraam_client.commands import (
    OPERATIONS,
    OperationNotFoundError,
    TelraamApi,
)
from telraam_client.common import setup_logger
from telraam_client.config import TelraamConfig, load_config
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
from telraam_client.fetcher import (
    ChunkResult,
    ChunkStatus,
    FetchStatus,
    TrafficFetcher,
    TrafficFetchOutcome,
)
from telraam_client.schema import TRAFFIC_COLUMNS, reports_to_dataframe

__all__: list[str] = [
    'OPERATIONS',
    'TRAFFIC_COLUMNS',
    'ApiError',
    'Chunk',
    'ChunkResult',
    'ChunkStatus',
    'ConsistencyError',
    'DateRange',
    'DecodeError',
    'FetchFailedError',
    'FetchStatus',
    'HttpError',
    'InvalidRangeError',
    'OperationNotFoundError',
    'TelraamApi',
    'TelraamClient',
    'TelraamConfig',
    'TelraamError',
    'TrafficFetchOutcome',
    'TrafficFetcher',
    'TransportError',
    '__version__',
    'chunk_date_range',
    'load_config',
    'reports_to_dataframe',
    'setup_logger',
]
