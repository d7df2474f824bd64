# telraam_client/chunking.py
"""
Date range splitting for span-limited endpoints.

The traffic report endpoint accepts at most a fixed span (three months at
the time of writing) per call. chunk_date_range() splits a caller's range
into consecutive sub-ranges that respect that limit:

- chunks tile the range exactly: the first starts at range.start, the last
  ends at range.end, and each chunk ends where the next one starts;
- no chunk is longer than max_span;
- a range no longer than max_span yields one chunk equal to the range;
- a zero-length range yields one zero-length chunk.

The maximum span is configuration (traffic.max_span_days), not a constant,
because the service owns it and may change it.
"""

import logging
from datetime import UTC, datetime, timedelta

from pydantic import BaseModel, ConfigDict, field_validator

from telraam_client.errors import InvalidRangeError

__all__: list[str] = ['Chunk', 'DateRange', 'chunk_date_range']

logger: logging.Logger = logging.getLogger(__name__)


class DateRange(BaseModel):
    """
    A time range requested by the caller.

    Timestamps are normalized to aware UTC datetimes (naive values are read
    as UTC). Requests built from a range are closed-open: end is excluded.
    Ordering is checked by ensure_valid() rather than at construction so
    that the chunker can report a bad range with InvalidRangeError.

    Attributes:
        start: Start of the range (inclusive).
        end: End of the range (exclusive for API requests).
    """

    model_config = ConfigDict(extra='forbid', frozen=True)

    start: datetime
    end: datetime

    @field_validator('start', 'end', mode='after')
    @classmethod
    def normalize_to_utc(cls, value: datetime) -> datetime:
        """Store timestamps as aware UTC datetimes."""
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    @property
    def span(self) -> timedelta:
        """Length of the range."""
        return self.end - self.start

    @property
    def is_empty(self) -> bool:
        """Whether the range has zero length."""
        return self.start == self.end

    def ensure_valid(self) -> None:
        """
        Check the range ordering.

        Raises:
            InvalidRangeError: If start is after end.
        """
        if self.start > self.end:
            raise InvalidRangeError(self.start, self.end)

    def contains_bucket_start(self, moment: datetime) -> bool:
        """
        Whether a bucket starting at moment belongs to this range.

        Closed-open semantics: start <= moment < end. A zero-length range
        only contains its own start.
        """
        if self.is_empty:
            return moment == self.start
        return self.start <= moment < self.end


class Chunk(DateRange):
    """
    A sub-range of a DateRange no longer than the endpoint's maximum span.

    Attributes:
        index: Position of the chunk within its range (0-based).
    """

    index: int

    def label(self) -> str:
        """Short description for log messages."""
        return (
            f'chunk {self.index} '
            f'[{self.start.isoformat()} -> {self.end.isoformat()})'
        )


def chunk_date_range(date_range: DateRange, max_span: timedelta) -> list[Chunk]:
    """
    Split a date range into consecutive chunks of at most max_span.

    Args:
        date_range: Range to split.
        max_span: Longest span a single chunk may cover. Must be positive.

    Returns:
        Ordered chunks that exactly tile the range. Never empty.

    Raises:
        InvalidRangeError: If date_range.start is after date_range.end.
        ValueError: If max_span is not positive.

    Example:
        >>> day = datetime(2024, 1, 1, tzinfo=UTC)
        >>> chunks = chunk_date_range(
        ...     DateRange(start=day, end=day + timedelta(days=5)),
        ...     timedelta(days=2),
        ... )
        >>> [(c.start.day, c.end.day) for c in chunks]
        [(1, 3), (3, 5), (5, 6)]
    """
    if max_span <= timedelta(0):
        raise ValueError(f'max_span must be positive, got {max_span}')

    date_range.ensure_valid()

    if date_range.is_empty:
        return [Chunk(index=0, start=date_range.start, end=date_range.end)]

    chunks: list[Chunk] = []
    current_start: datetime = date_range.start

    while current_start < date_range.end:
        # Chunk end is either start + max_span or the range end, whichever is earlier
        current_end: datetime = min(current_start + max_span, date_range.end)
        chunks.append(Chunk(index=len(chunks), start=current_start, end=current_end))
        current_start = current_end

    logger.debug(
        'Split %s -> %s into %d chunk(s) of at most %s',
        date_range.start.isoformat(),
        date_range.end.isoformat(),
        len(chunks),
        max_span,
    )

    return chunks
