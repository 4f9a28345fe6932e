from datetime import datetime, timezone

import pytest

from lakerunner.compaction import (
    CompactionSegment,
    day_from_millis,
    filter_segments,
    pack_segments,
)

TARGET_SIZE = 1_000_000
BYTES_PER_RECORD = 100.0
TARGET_RECORD_COUNT = 10_000


def ids_of(groups):
    return [[seg.segment_id for seg in group] for group in groups]


def seg(segment_id, start, end, count, size=0):
    return CompactionSegment(
        segment_id=segment_id, start_ts=start, end_ts=end, record_count=count, file_size=size
    )


def test_pack_no_split():
    segments = [seg(1, 0, 10, 3000), seg(2, 11, 20, 4000), seg(3, 21, 30, 2000)]
    groups = pack_segments(segments, TARGET_SIZE, BYTES_PER_RECORD)
    assert ids_of(groups) == [[1, 2, 3]]


def test_pack_split_by_records():
    segments = [seg(1, 0, 10, 6000), seg(2, 11, 20, 5000), seg(3, 21, 30, 3000)]
    groups = pack_segments(segments, TARGET_SIZE, BYTES_PER_RECORD)
    assert ids_of(groups) == [[1], [2, 3]]


def test_pack_multi_group():
    segments = [
        seg(1, 0, 10, 3000),
        seg(2, 11, 20, 3000),
        seg(3, 21, 30, 3000),
        seg(4, 31, 40, 3000),
    ]
    groups = pack_segments(segments, TARGET_SIZE, BYTES_PER_RECORD)
    assert ids_of(groups) == [[1, 2, 3], [4]]


def test_pack_exact_threshold():
    segments = [
        seg(1, 0, 10, TARGET_RECORD_COUNT // 2),
        seg(2, 11, 20, TARGET_RECORD_COUNT // 2),
        seg(3, 21, 30, TARGET_RECORD_COUNT),
    ]
    groups = pack_segments(segments, TARGET_SIZE, BYTES_PER_RECORD)
    assert ids_of(groups) == [[1, 2], [3]]


def test_pack_empty_input():
    assert pack_segments([], TARGET_SIZE, BYTES_PER_RECORD) == []


def test_pack_drops_empty_segments():
    segments = [seg(1, 0, 10, 0), seg(2, 11, 20, 10), seg(3, 21, 30, 0)]
    assert ids_of(pack_segments(segments, TARGET_SIZE, BYTES_PER_RECORD)) == [[2]]


def test_pack_all_empty_segments():
    segments = [seg(1, 0, 10, 0), seg(2, 11, 20, 0)]
    assert pack_segments(segments, TARGET_SIZE, BYTES_PER_RECORD) == []


def test_pack_rejects_segments_spanning_days():
    segments = [seg(1, 0, 10, 100), seg(2, 86_400_000, 86_400_010, 100)]
    with pytest.raises(ValueError):
        pack_segments(segments, TARGET_SIZE, BYTES_PER_RECORD)


def test_pack_rejects_segment_ending_next_day():
    segments = [seg(1, 86_399_000, 86_400_001, 100)]
    with pytest.raises(ValueError):
        pack_segments(segments, TARGET_SIZE, BYTES_PER_RECORD)


@pytest.mark.parametrize(
    "millis, expected",
    [
        (0, datetime(1970, 1, 1, tzinfo=timezone.utc)),
        (1672531200000, datetime(2023, 1, 1, tzinfo=timezone.utc)),
        (1672574400123, datetime(2023, 1, 1, tzinfo=timezone.utc)),
        (1672617599999, datetime(2023, 1, 1, tzinfo=timezone.utc)),
        (1672617600000, datetime(2023, 1, 2, tzinfo=timezone.utc)),
    ],
)
def test_day_from_millis(millis, expected):
    assert day_from_millis(millis) == expected


@pytest.mark.parametrize(
    "segments, expected",
    [
        ([seg(1, 0, 0, 1, 10), seg(2, 0, 0, 1, 20)], [1, 2]),
        ([seg(1, 0, 0, 0, 0), seg(2, 0, 0, 1, 15), seg(3, 0, 0, 0, -5)], [2]),
        ([], []),
    ],
)
def test_filter_segments(segments, expected):
    assert [s.segment_id for s in filter_segments(segments)] == expected