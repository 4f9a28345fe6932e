"""Fingerprints of log rows: trigram and existence hashes of indexed fields."""

from __future__ import annotations

import math
from typing import Any, Iterable, Mapping

from lakerunner.helpers import _value_string

EXISTS_REGEX = ".*"

INFRA_DIMENSIONS: tuple[str, ...] = (
    "resource.k8s.namespace.name",
    "resource.service.name",
    "resource.file",
)
DIMENSIONS_TO_INDEX: tuple[str, ...] = (
    "_cardinalhq.name",
    "_cardinalhq.level",
    "_cardinalhq.span_trace_id",
    *INFRA_DIMENSIONS,
)
INDEX_FULL_VALUE_DIMENSIONS: tuple[str, ...] = ("resource.file",)

_MASK64 = (1 << 64) - 1
_P1 = 31
_P2 = 31 * 31
_P3 = 31 * 31 * 31
_P4 = 31 * 31 * 31 * 31


def to_fingerprints(tag_values_by_name: Mapping[str, Iterable[str]]) -> set[int]:
    """Turn a mapping of tag name to its values into a set of fingerprints."""
    fingerprints: set[int] = set()
    for tag_name, values in tag_values_by_name.items():
        if tag_name not in DIMENSIONS_TO_INDEX:
            fingerprints.add(compute_fingerprint(tag_name, EXISTS_REGEX))
            continue

        if tag_name in INDEX_FULL_VALUE_DIMENSIONS:
            fingerprints.add(compute_fingerprint(tag_name, EXISTS_REGEX))
            fingerprints.update(compute_fingerprint(tag_name, value) for value in values)
            continue

        for value in values:
            fingerprints.update(
                compute_fingerprint(tag_name, trigram) for trigram in to_trigrams(value)
            )
    return fingerprints


def to_trigrams(s: str) -> list[str]:
    """Return the distinct three-character substrings of s plus the wildcard."""
    ngrams = {s[i : i + 3] for i in range(len(s) - 2)}
    ngrams.add(EXISTS_REGEX)
    return sorted(ngrams)


def compute_fingerprint(field_name: str, trigram: str) -> int:
    """Hash a field name together with one of its trigrams."""
    return compute_hash(f"{field_name}:{trigram}")


def compute_hash(s: str) -> int:
    """Polynomial base-31 hash over the UTF-8 bytes of s, as a signed 64-bit int."""
    data = s.encode("utf-8")
    h = 0
    length = len(data)
    i = 0
    while i + 3 < length:
        h = (
            _P4 * h
            + _P3 * data[i]
            + _P2 * data[i + 1]
            + _P1 * data[i + 2]
            + data[i + 3]
        ) & _MASK64
        i += 4
    for byte in data[i:]:
        h = (_P1 * h + byte) & _MASK64
    return h - (1 << 64) if h >= 1 << 63 else h


def _format_fixed(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    return f"{value:.6f}"


def as_string(v: Any) -> str:
    """Render a field value as text for fingerprinting."""
    if v is None:
        return ""
    if isinstance(v, str):
        return v
    if isinstance(v, bool):
        return "true" if v else "false"
    if isinstance(v, int):
        return str(v)
    if isinstance(v, float):
        return _format_fixed(v)
    return _value_string(v)


def row_fingerprints(columns: Iterable[str], row: Mapping[str, Any]) -> set[int]:
    """Fingerprint one row whose fields must all be among the given columns."""
    known = set(columns)
    values: dict[str, set[str]] = {}
    for key, value in row.items():
        if value is None:
            continue
        if key not in known:
            raise ValueError(f"column {key!r} is not in the schema")
        text = as_string(value)
        if text == "":
            continue
        if key not in DIMENSIONS_TO_INDEX:
            values.setdefault(key, set()).add(EXISTS_REGEX)
        else:
            values.setdefault(key, set()).add(text)
    return to_fingerprints(values)