"""Packing of log segments into compaction groups of about a target size."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Sequence

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MS_PER_DAY = 86_400_000


@dataclass(frozen=True)
class CompactionSegment:
    """A log segment that is a candidate for compaction."""

    segment_id: int
    start_ts: int
    end_ts: int
    record_count: int
    file_size: int = 0


def day_from_millis(millis: int) -> datetime:
    """Return midnight UTC of the day holding a millisecond timestamp."""
    return _EPOCH + timedelta(days=millis // _MS_PER_DAY)


def filter_segments(segments: Sequence[CompactionSegment]) -> list[CompactionSegment]:
    """Drop segments that hold no records."""
    return [seg for seg in segments if seg.record_count > 0]


def _target_records(target_size: int, est_bytes_per_record: float) -> float:
    if est_bytes_per_record == 0:
        if target_size == 0:
            return math.nan
        return math.inf if target_size > 0 else -math.inf
    return float(target_size) / est_bytes_per_record


def pack_segments(
    segments: Sequence[CompactionSegment],
    target_size: int,
    est_bytes_per_record: float,
) -> list[list[CompactionSegment]]:
    """Group segments, sorted by start time, into packs of about target_size bytes.

    All segments must lie within one UTC day; otherwise ValueError is raised.
    """
    if not segments:
        return []

    day = day_from_millis(segments[0].start_ts)
    for seg in segments:
        if day_from_millis(seg.start_ts) != day or day_from_millis(seg.end_ts - 1) != day:
            raise ValueError(f"segments must be from the same day: {seg.start_ts}")

    kept = filter_segments(segments)
    if not kept:
        return []

    target_records = _target_records(target_size, est_bytes_per_record)

    groups: list[list[CompactionSegment]] = []
    current: list[CompactionSegment] = []
    sum_records = 0.0
    for seg in kept:
        count = float(seg.record_count)
        if not current or sum_records + count <= target_records:
            current.append(seg)
            sum_records += count
        else:
            groups.append(current)
            current = [seg]
            sum_records = count
    if current:
        groups.append(current)
    return groups