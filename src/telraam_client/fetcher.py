# telraam_client/fetcher.py
"""
Chunked, retrying fetcher for Telraam traffic reports.

The reports/traffic endpoint accepts a bounded span per call, so a request
for a longer range is split into chunks (see chunking.py), each chunk is
fetched with the shared retry policy, and the successful chunks are merged
back into one ordered time series.

Chunk Lifecycle:
----------------
Each chunk runs through an explicit state machine whose transitions are
recorded on its ChunkResult and logged:

    PENDING -> RETRYING(attempt, delay)* -> SUCCEEDED | FAILED

- Transient errors move the chunk to RETRYING until attempts run out.
- Non-retryable HTTP/API errors move it straight to FAILED.
- A failed chunk never discards buckets already obtained from other chunks.

Outcome:
--------
- Every chunk succeeded: TrafficFetchOutcome with status COMPLETE.
- Some chunks failed: TrafficFetchOutcome with status PARTIAL, listing the
  failed chunks and their final errors.
- Every chunk failed: FetchFailedError.
- DecodeError and ConsistencyError abort the fetch immediately.
"""

import itertools
import logging
from collections.abc import Iterable, Iterator
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from enum import Enum

import pandas as pd
from pydantic import BaseModel, ConfigDict

from telraam_client.chunking import Chunk, DateRange, chunk_date_range
from telraam_client.client import TelraamClient
from telraam_client.config.config_models import TrafficConfig
from telraam_client.errors import (
    ConsistencyError,
    FetchFailedError,
    HttpError,
    TelraamError,
    TransportError,
)
from telraam_client.models.requests import (
    TelraamEndpoints,
    TrafficFormat,
    TrafficLevel,
    TrafficRequest,
)
from telraam_client.models.responses import TrafficReport, TrafficResponse
from telraam_client.schema import reports_to_dataframe

__all__: list[str] = [
    'ChunkResult',
    'ChunkState',
    'ChunkStatus',
    'FetchStatus',
    'TrafficFetchOutcome',
    'TrafficFetcher',
    'check_chunk_consistency',
    'merge_chunk_results',
]

logger: logging.Logger = logging.getLogger(__name__)


# =============================================================================
# Chunk State Machine
# =============================================================================


class ChunkStatus(str, Enum):
    """States of a single chunk fetch."""

    PENDING = 'pending'
    RETRYING = 'retrying'
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'


class ChunkState(BaseModel):
    """
    One step of a chunk's state machine.

    Attributes:
        status: State entered.
        attempt: Attempts made when the state was entered (0 while pending).
        delay_seconds: Backoff delay before the next attempt (RETRYING only).
    """

    model_config = ConfigDict(extra='forbid', frozen=True)

    status: ChunkStatus
    attempt: int = 0
    delay_seconds: float | None = None


class ChunkResult(BaseModel):
    """
    Final state of one chunk, with its data or its error.

    Attributes:
        chunk: The sub-range that was requested.
        state: Terminal state (SUCCEEDED or FAILED).
        transitions: Every state entered, in order, starting with PENDING.
        reports: Buckets returned for the chunk (empty on failure).
        error: Final error of a failed chunk.
    """

    model_config = ConfigDict(extra='forbid', frozen=True, arbitrary_types_allowed=True)

    chunk: Chunk
    state: ChunkState
    transitions: tuple[ChunkState, ...] = ()
    reports: tuple[TrafficReport, ...] = ()
    error: TelraamError | None = None

    @property
    def succeeded(self) -> bool:
        return self.state.status is ChunkStatus.SUCCEEDED

    @property
    def failed(self) -> bool:
        return self.state.status is ChunkStatus.FAILED

    @property
    def attempts(self) -> int:
        """Number of requests made for this chunk."""
        return self.state.attempt


# =============================================================================
# Fetch Outcome
# =============================================================================


class FetchStatus(str, Enum):
    """Overall result of a traffic fetch that obtained at least some data."""

    COMPLETE = 'complete'
    PARTIAL = 'partial'


class TrafficFetchOutcome(BaseModel):
    """
    Merged result of a chunked traffic fetch.

    Attributes:
        date_range: Range the caller asked for.
        chunks: Result of every chunk, in chunk order.
        reports: Buckets of the successful chunks, concatenated in chunk order.
        failed_chunks: Chunks that failed, with their final errors.
    """

    model_config = ConfigDict(extra='forbid', frozen=True, arbitrary_types_allowed=True)

    date_range: DateRange
    chunks: tuple[ChunkResult, ...]
    reports: tuple[TrafficReport, ...] = ()
    failed_chunks: tuple[ChunkResult, ...] = ()

    @property
    def status(self) -> FetchStatus:
        return FetchStatus.PARTIAL if self.failed_chunks else FetchStatus.COMPLETE

    @property
    def is_complete(self) -> bool:
        """Whether every chunk succeeded."""
        return self.status is FetchStatus.COMPLETE

    @property
    def is_partial(self) -> bool:
        """Whether the time series has known gaps."""
        return self.status is FetchStatus.PARTIAL

    def to_dataframe(self) -> pd.DataFrame:
        """Merged buckets as a DataFrame (see schema.TRAFFIC_COLUMNS)."""
        return reports_to_dataframe(self.reports)


# =============================================================================
# Merge and Validation
# =============================================================================


def check_chunk_consistency(chunk: Chunk, reports: Iterable[TrafficReport]) -> None:
    """
    Verify that buckets belong to the chunk and are strictly ascending.

    Raises:
        ConsistencyError: If a bucket starts outside the chunk bounds or does
            not start after the previous bucket.
    """
    previous_start: datetime | None = None

    for index, report in enumerate(reports):
        if not chunk.contains_bucket_start(report.start):
            raise ConsistencyError(
                f'{chunk.label()}: bucket {index} starts at '
                f'{report.start.isoformat()}, outside the requested bounds'
            )
        if previous_start is not None and report.start <= previous_start:
            raise ConsistencyError(
                f'{chunk.label()}: bucket {index} starts at '
                f'{report.start.isoformat()}, not after {previous_start.isoformat()}'
            )
        previous_start = report.start


def merge_chunk_results(
    date_range: DateRange,
    results: Iterable[ChunkResult],
) -> TrafficFetchOutcome:
    """
    Merge chunk results into one outcome.

    Successful chunks are concatenated in the order given, which must be
    chunk order. Chunks tile the range, so no deduplication or sorting is
    needed.

    Raises:
        FetchFailedError: If no chunk succeeded.
    """
    ordered_results: tuple[ChunkResult, ...] = tuple(results)
    failed: tuple[ChunkResult, ...] = tuple(
        result for result in ordered_results if result.failed
    )

    if not ordered_results or len(failed) == len(ordered_results):
        raise FetchFailedError(list(failed))

    reports: tuple[TrafficReport, ...] = tuple(
        itertools.chain.from_iterable(
            result.reports for result in ordered_results if result.succeeded
        )
    )

    outcome = TrafficFetchOutcome(
        date_range=date_range,
        chunks=ordered_results,
        reports=reports,
        failed_chunks=failed,
    )

    if outcome.is_partial:
        logger.warning(
            'Partial traffic fetch: %d bucket(s), %d of %d chunk(s) failed',
            len(reports),
            len(failed),
            len(ordered_results),
        )
    else:
        logger.info(
            'Traffic fetch complete: %d bucket(s) from %d chunk(s)',
            len(reports),
            len(ordered_results),
        )

    return outcome


# =============================================================================
# Fetcher
# =============================================================================


class TrafficFetcher:
    """
    Fetches traffic reports over arbitrary date ranges.

    Example:
        >>> with TelraamClient(credentials) as client:
        ...     fetcher = TrafficFetcher(client, TrafficConfig())
        ...     outcome = fetcher.fetch(348917, DateRange(start=start, end=end))
        ...     if outcome.is_partial:
        ...         print([r.chunk.label() for r in outcome.failed_chunks])
    """

    def __init__(
        self,
        client: TelraamClient,
        traffic_config: TrafficConfig | None = None,
    ) -> None:
        """
        Args:
            client: Transport used for every chunk request. Its retry policy
                and sleep function apply per chunk.
            traffic_config: Span limit, defaults and concurrency.
        """
        self._client: TelraamClient = client
        self._traffic_config: TrafficConfig = traffic_config or TrafficConfig()

    def plan(self, date_range: DateRange) -> list[Chunk]:
        """Chunks the range would be fetched in."""
        return chunk_date_range(date_range, self._traffic_config.max_span)

    def iter_chunk_results(
        self,
        segment_id: int | str,
        date_range: DateRange,
        traffic_format: TrafficFormat | None = None,
        level: TrafficLevel | None = None,
    ) -> Iterator[ChunkResult]:
        """
        Fetch chunks one by one, yielding each result as it completes.

        The caller may stop iterating at any chunk boundary; no further
        requests are made. Pass the collected results to
        merge_chunk_results() for an outcome.

        Raises:
            InvalidRangeError: If the range starts after it ends.
            DecodeError: If a chunk response cannot be decoded.
            ConsistencyError: If a chunk returned buckets outside its bounds.
        """
        for chunk in self.plan(date_range):
            yield self._fetch_chunk(segment_id, chunk, traffic_format, level)

    def fetch(
        self,
        segment_id: int | str,
        date_range: DateRange,
        traffic_format: TrafficFormat | None = None,
        level: TrafficLevel | None = None,
    ) -> TrafficFetchOutcome:
        """
        Fetch and merge traffic reports for a segment over a date range.

        With traffic.max_concurrent_chunks > 1, chunks are fetched on a
        bounded thread pool; results are still merged in chunk order.

        Args:
            segment_id: Segment (or instance, with level=INSTANCE) id.
            date_range: Range to fetch; end is exclusive.
            traffic_format: Bucket granularity. None uses the configured one.
            level: Aggregation level. None uses the configured one.

        Returns:
            Complete or partial outcome.

        Raises:
            InvalidRangeError: If the range starts after it ends.
            DecodeError: If a chunk response cannot be decoded.
            ConsistencyError: If a chunk returned buckets outside its bounds.
            FetchFailedError: If every chunk failed.
        """
        chunks: list[Chunk] = self.plan(date_range)
        max_workers: int = min(self._traffic_config.max_concurrent_chunks, len(chunks))

        logger.info(
            'Fetching traffic for segment %s: %s -> %s in %d chunk(s)',
            segment_id,
            date_range.start.isoformat(),
            date_range.end.isoformat(),
            len(chunks),
        )

        if max_workers <= 1:
            results: list[ChunkResult] = [
                self._fetch_chunk(segment_id, chunk, traffic_format, level)
                for chunk in chunks
            ]
        else:
            with ThreadPoolExecutor(
                max_workers=max_workers, thread_name_prefix='telraam-chunk'
            ) as executor:
                # map() yields in submission order, not completion order
                results = list(
                    executor.map(
                        lambda chunk: self._fetch_chunk(
                            segment_id, chunk, traffic_format, level
                        ),
                        chunks,
                    )
                )

        return merge_chunk_results(date_range, results)

    def _fetch_chunk(
        self,
        segment_id: int | str,
        chunk: Chunk,
        traffic_format: TrafficFormat | None,
        level: TrafficLevel | None,
    ) -> ChunkResult:
        """Run one chunk through its state machine."""
        transitions: list[ChunkState] = [ChunkState(status=ChunkStatus.PENDING)]

        def _enter_retrying(attempt: int, error: BaseException, delay: float) -> None:
            transitions.append(
                ChunkState(
                    status=ChunkStatus.RETRYING, attempt=attempt, delay_seconds=delay
                )
            )
            logger.info(
                '%s: attempt %d failed (%s), retrying in %.2fs',
                chunk.label(),
                attempt,
                error,
                delay,
            )

        body = TrafficRequest(
            level=level or self._traffic_config.level,
            format=traffic_format or self._traffic_config.format,
            id=segment_id,
            time_start=chunk.start,
            time_end=chunk.end,
        )

        try:
            response_json = self._client.fetch_json(
                TelraamEndpoints.TRAFFIC, body=body, on_retry=_enter_retrying
            )
        except (TransportError, HttpError) as error:
            final_state = ChunkState(status=ChunkStatus.FAILED, attempt=len(transitions))
            transitions.append(final_state)
            logger.error(
                '%s failed after %d attempt(s): %s',
                chunk.label(),
                final_state.attempt,
                error,
            )
            return ChunkResult(
                chunk=chunk,
                state=final_state,
                transitions=tuple(transitions),
                error=error,
            )

        response: TrafficResponse = TelraamEndpoints.TRAFFIC.parse_response(response_json)
        check_chunk_consistency(chunk, response.reports)

        final_state = ChunkState(status=ChunkStatus.SUCCEEDED, attempt=len(transitions))
        transitions.append(final_state)
        logger.debug(
            '%s succeeded after %d attempt(s): %d bucket(s)',
            chunk.label(),
            final_state.attempt,
            len(response.reports),
        )

        return ChunkResult(
            chunk=chunk,
            state=final_state,
            transitions=tuple(transitions),
            reports=response.reports,
        )
