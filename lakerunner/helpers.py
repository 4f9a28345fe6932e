"""Helpers for object paths, tag handling, time conversion and disk usage."""

from __future__ import annotations

import contextlib
import json
import math
import os
import posixpath
import shutil
import tempfile
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Mapping

DB_PREFIX = "db"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_FNV64_OFFSET = 0xCBF29CE484222325
_FNV64_PRIME = 0x100000001B3
_MASK64 = (1 << 64) - 1


def _join_path(*parts: str) -> str:
    joined = "/".join(part for part in parts if part)
    return posixpath.normpath(joined) if joined else ""


def _org_string(org_id: uuid.UUID | str) -> str:
    return str(org_id if isinstance(org_id, uuid.UUID) else uuid.UUID(str(org_id)))


def make_db_object_id(
    org_id: uuid.UUID | str,
    collector_name: str,
    dateint: int,
    hour: int,
    segment_id: int,
    ttype: str,
) -> str:
    """Build the object key of a segment file, with a two-digit hour."""
    return _join_path(
        DB_PREFIX,
        _org_string(org_id),
        collector_name,
        str(int(dateint)),
        ttype,
        f"{hour:02d}",
        f"tbl_{segment_id}.parquet",
    )


def make_db_object_id_bad(
    org_id: uuid.UUID | str,
    collector_name: str,
    dateint: int,
    hour: int,
    segment_id: int,
    ttype: str,
) -> str:
    """Build the legacy object key, whose hour is not zero-padded."""
    return _join_path(
        DB_PREFIX,
        _org_string(org_id),
        collector_name,
        str(int(dateint)),
        ttype,
        str(hour),
        f"tbl_{segment_id}.parquet",
    )


def _format_float(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value == 0:
        return "-0" if math.copysign(1.0, value) < 0 else "0"
    sign, digit_tuple, exp = Decimal(repr(value)).normalize().as_tuple()
    digits = "".join(str(d) for d in digit_tuple)
    decimal_exp = len(digits) + exp - 1
    prefix = "-" if sign else ""
    if decimal_exp < -4 or decimal_exp >= 6:
        mantissa = digits[0] + ("." + digits[1:] if len(digits) > 1 else "")
        exp_sign = "-" if decimal_exp < 0 else "+"
        return f"{prefix}{mantissa}e{exp_sign}{abs(decimal_exp):02d}"
    if decimal_exp >= 0:
        whole = digits[: decimal_exp + 1].ljust(decimal_exp + 1, "0")
        frac = digits[decimal_exp + 1 :]
        return prefix + whole + ("." + frac if frac else "")
    return prefix + "0." + "0" * (-decimal_exp - 1) + digits


def _value_string(value: Any) -> str:
    """Render a value the way the default formatter of the stored data does."""
    if value is None:
        return "<nil>"
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return _format_float(value)
    if isinstance(value, (list, tuple)):
        return "[" + " ".join(_value_string(v) for v in value) + "]"
    if isinstance(value, Mapping):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "map[" + " ".join(f"{_value_string(k)}:{_value_string(v)}" for k, v in items) + "]"
    return str(value)


def _fnv1a64(data: bytes, state: int) -> int:
    for byte in data:
        state = ((state ^ byte) * _FNV64_PRIME) & _MASK64
    return state


def compute_tid(metric_name: str, tags: Mapping[str, Any]) -> int:
    """Hash a metric name and its public, non-empty tags into a signed 64-bit id."""
    keys = []
    for key, value in tags.items():
        if isinstance(value, str) and value == "":
            continue
        if not key:
            raise ValueError("tag names must not be empty")
        if key.startswith("_"):
            continue
        keys.append(key)
    state = _fnv1a64(metric_name.encode(), _FNV64_OFFSET)
    for key in sorted(keys):
        state = _fnv1a64(f"{key}={_value_string(tags[key])}|".encode(), state)
    return state - (1 << 64) if state >= 1 << 63 else state


def _same(a: Any, b: Any) -> bool:
    return type(a) is type(b) and a == b


def match_tags(existing: Mapping[str, Any], new: Mapping[str, Any]) -> dict[str, list[Any]]:
    """Return, per differing key, the pair [existing value, new value]."""
    mismatches: dict[str, list[Any]] = {}
    for key, value in existing.items():
        if key not in new or not _same(new[key], value):
            mismatches[key] = [value, new.get(key)]
    for key, value in new.items():
        if key not in existing:
            mismatches[key] = [None, value]
    return mismatches


def get_float64_value(m: Mapping[str, Any], key: str) -> float | None:
    """Return the float stored under key, or None if absent or not a float."""
    value = m.get(key)
    return value if isinstance(value, float) else None


def get_string_value(m: Mapping[str, Any], key: str) -> str | None:
    """Return the string stored under key, or None if absent or not a string."""
    value = m.get(key)
    return value if isinstance(value, str) else None


def get_int64_value(m: Mapping[str, Any], key: str) -> int | None:
    """Return the integer stored under key, or None if absent or not an integer."""
    value = m.get(key)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def make_tags(rec: Mapping[str, Any]) -> dict[str, Any]:
    """Keep the entries of a record that make up its public tags."""
    return {
        key: value
        for key, value in rec.items()
        if value is not None
        and key
        and not key.startswith("_")
        and _value_string(value) != ""
    }


def get_float64_slice_json(m: Mapping[str, Any], key: str) -> list[float] | None:
    """Decode a JSON array of numbers stored as a string under key."""
    value = m.get(key)
    if not isinstance(value, str):
        return None
    try:
        decoded = json.loads(value)
    except ValueError:
        return None
    if decoded is None:
        return []
    if not isinstance(decoded, list):
        return None
    result = []
    for item in decoded:
        if item is None:
            result.append(0.0)
        elif isinstance(item, (int, float)) and not isinstance(item, bool):
            result.append(float(item))
        else:
            return None
    return result


def unix_millis_to_time(ms: int) -> datetime:
    """Convert milliseconds since the epoch to an aware UTC datetime."""
    return _EPOCH + timedelta(milliseconds=ms)


def ms_to_dateint_hour(ms: int) -> tuple[int, int]:
    """Convert milliseconds since the epoch to (YYYYMMDD, hour) in UTC."""
    t = unix_millis_to_time(ms)
    return t.year * 10000 + t.month * 100 + t.day, t.hour


@dataclass(frozen=True)
class FSUsage:
    """Byte and inode usage of a filesystem."""

    total_bytes: int
    free_bytes: int
    used_bytes: int
    total_inodes: int
    free_inodes: int
    used_inodes: int


def disk_usage(path: str | os.PathLike[str]) -> FSUsage:
    """Return usage of the filesystem holding path; raises OSError on failure."""
    st = os.statvfs(path)
    total_bytes = st.f_blocks * st.f_frsize
    free_bytes = st.f_bavail * st.f_frsize
    return FSUsage(
        total_bytes=total_bytes,
        free_bytes=free_bytes,
        used_bytes=total_bytes - free_bytes,
        total_inodes=st.f_files,
        free_inodes=st.f_ffree,
        used_inodes=st.f_files - st.f_ffree,
    )


def clean_temp_dir() -> None:
    """Remove everything inside the system temporary directory, best effort."""
    temp = tempfile.gettempdir()
    with os.scandir(temp) as entries:
        paths = [(entry.path, entry.is_dir(follow_symlinks=False)) for entry in entries]
    for path, is_dir in paths:
        if is_dir:
            shutil.rmtree(path, ignore_errors=True)
        else:
            with contextlib.suppress(OSError):
                os.remove(path)