# lakerunner

Building blocks for a telemetry data lake that keeps logs and metrics as
segment files in object storage. The package is a library; it has no
command of its own.

## Modules

| Module | Contents |
| --- | --- |
| `lakerunner.helpers` | Object keys for segment files (`make_db_object_id`, `make_db_object_id_bad`), metric time-series IDs (`compute_tid`), tag comparison and extraction (`match_tags`, `make_tags`), typed lookups in records (`get_float64_value`, `get_string_value`, `get_int64_value`, `get_float64_slice_json`), time conversion (`unix_millis_to_time`, `ms_to_dateint_hour`), file-system usage (`disk_usage`, `FSUsage`) and `clean_temp_dir`. |
| `lakerunner.idgen` | Time-ordered 63-bit IDs (`SonyFlakeGenerator`, `generate_id`), ULID strings (`IDGenerator`, `ULIDGenerator`, `InlineULIDGenerator`) and `hour_from_millis`. |
| `lakerunner.fingerprint` | Log fingerprints for indexing: `compute_hash`, `compute_fingerprint`, `to_trigrams`, `to_fingerprints`, `row_fingerprints`, `as_string`. |
| `lakerunner.compaction` | Planning of log-segment compaction: `CompactionSegment`, `pack_segments`, `filter_segments`, `day_from_millis`. |
| `lakerunner.nodes` | Column type descriptions inferred from example records: `Node`, `Schema`, `NodeMapBuilder`, `parquet_node_from_type`, `nodes_from_map`, `parquet_schema_from_nodemap`, `schema_type_to_node`, `merge_nodes`, `schema_from_nodes`, `want_dictionary`. |
| `lakerunner.estimator` | Average bytes-per-record estimates per organization, instance and signal: `Estimator`, `Estimate`, `Signal`, `EstimationQuerier`, `new_estimator`. |
| `lakerunner.configdb` | Storage-profile queries with a cache: `DBTX`, `Queries`, `Store`, `new_store`, `new_empty_store`, and the row and parameter dataclasses. |

## Examples

Object keys:

```python
import uuid
from lakerunner.helpers import make_db_object_id

key = make_db_object_id(
    uuid.UUID("123e4567-e89b-12d3-a456-426614174000"),
    "collector", 20240607, 7, 1, "metrics",
)
# "db/123e4567-e89b-12d3-a456-426614174000/collector/20240607/metrics/07/tbl_1.parquet"
```

`make_db_object_id_bad` builds the same key with the hour not zero-padded.

Fingerprints:

```python
from lakerunner.fingerprint import compute_hash, compute_fingerprint, to_trigrams

compute_hash("test")                          # 3556498
to_trigrams("abcd")                           # [".*", "abc", "bcd"]
compute_fingerprint("resource.file", ".*")    # hash of "resource.file:.*"
```

`row_fingerprints(columns, row)` fingerprints one record; it raises
`ValueError` if the record has a non-`None` field that is not among the
columns.

Hours from epoch milliseconds:

```python
from lakerunner.idgen import hour_from_millis

hour_from_millis(1747942514321)   # 19
```

Inferring column types from records:

```python
from lakerunner.nodes import NodeMapBuilder

builder = NodeMapBuilder()
builder.add({"foo": 123, "bar": "baz"})
builder.add({"foo": 321, "bar": "qux"})
nodes = builder.build()   # {"foo": Node(...), "bar": Node(...)}
```

`None` values are skipped. A field whose type conflicts with an earlier one
raises `ValueError`; a value of an unsupported type raises `TypeError`.

## Behaviour worth knowing

- `pack_segments` takes segments sorted by start time, all within one UTC
  day (otherwise `ValueError`), drops those with no records, and groups the
  rest so each pack holds about `target_size / est_bytes_per_record`
  records. A segment that would push a pack past that starts a new pack.
- `SonyFlakeGenerator` is thread-safe; its default epoch is 2020-01-01 UTC.
  `ULIDGenerator.make(now)` is strictly increasing within a millisecond and
  raises `OverflowError` if its entropy runs out. `InlineULIDGenerator`
  ignores the time it is given and uses the current time.
- `Estimator.get` returns the estimate for the key, else the average of all
  known estimates, else 100 bytes. `new_estimator` loads once and then
  refreshes every 30 minutes in a background thread until `stop()`.
- `Store` caches lookups for five minutes, failures included; a missing row
  raises `configdb.NoRowsError`.
- `clean_temp_dir()` deletes everything inside the system temporary
  directory. Call it only where that is intended.

## What it does not do

- It has no database driver. `Queries` and `Store` run against any object
  that meets the `DBTX` protocol, which the caller supplies; the estimator
  likewise takes any `EstimationQuerier`.
- It reads and writes no columnar files. `nodes` only describes column types
  and schemas.
- It does not talk to object storage or queues; it only builds object keys.

## Requirements

Python 3.10 or later. The only third-party dependency is `cachetools`.
Tests use pytest (`pip install .[test]`).