"""Access to the configuration database: storage profiles and collectors."""

from __future__ import annotations

import sys
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Generic, Protocol, Sequence, TypeVar

from cachetools import TTLCache

DEFAULT_TTL = 5 * 60.0

GET_STORAGE_PROFILE_BY_COLLECTOR_NAME_UNCACHED = """\
-- name: GetStorageProfileByCollectorNameUncached :one
SELECT
  sp.cloud_provider AS cloud_provider,
  sp.region AS region,
  sp.role AS role,
  sp.hosted AS hosted,
  sp.bucket AS bucket,
  c.instance_num::SMALLINT AS instance_num,
  c.organization_id::UUID AS organization_id,
  c.external_id::TEXT AS external_id
FROM
  c_storage_profiles sp
  LEFT OUTER JOIN c_collectors c ON c.storage_profile_id = sp.id
WHERE
  c.deleted_at IS NULL
  AND c.organization_id = $1
  AND c.external_id = $2
"""

GET_STORAGE_PROFILE_UNCACHED = """\
-- name: GetStorageProfileUncached :one
SELECT
  sp.cloud_provider AS cloud_provider,
  sp.region AS region,
  sp.role AS role,
  sp.hosted AS hosted,
  sp.bucket AS bucket,
  c.instance_num::SMALLINT AS instance_num,
  c.organization_id::UUID AS organization_id,
  c.external_id::TEXT AS external_id
FROM
  c_storage_profiles sp
  LEFT OUTER JOIN c_collectors c ON c.storage_profile_id = sp.id
WHERE
  c.deleted_at IS NULL
  AND c.organization_id = $1
  AND c.instance_num = $2
"""


class NoRowsError(LookupError):
    """A query that must return one row returned none."""


class DBTX(Protocol):
    """A connection or transaction that can run queries.

    ``query_row`` returns the first row as a sequence of column values,
    or None when the query produced no rows.
    """

    def execute(self, query: str, *args: Any) -> Any: ...

    def query(self, query: str, *args: Any) -> Sequence[Sequence[Any]]: ...

    def query_row(self, query: str, *args: Any) -> Sequence[Any] | None: ...


@dataclass(frozen=True)
class CCollector:
    """A collector that writes into a storage profile."""

    id: uuid.UUID
    deleted_at: datetime | None
    organization_id: uuid.UUID
    storage_profile_id: uuid.UUID
    instance_num: int
    external_id: str
    type: int


@dataclass(frozen=True)
class CStorageProfile:
    """Where an organization's data is stored."""

    id: uuid.UUID
    organization_id: uuid.UUID
    cloud_provider: str
    bucket: str
    region: str
    hosted: bool
    properties: dict[str, Any] = field(default_factory=dict, hash=False)
    role: str | None = None


@dataclass(frozen=True)
class GetStorageProfileParams:
    organization_id: uuid.UUID
    instance_num: int


@dataclass(frozen=True)
class GetStorageProfileRow:
    cloud_provider: str
    region: str
    role: str | None
    hosted: bool
    bucket: str
    instance_num: int
    organization_id: uuid.UUID
    external_id: str


@dataclass(frozen=True)
class GetStorageProfileByCollectorNameParams:
    organization_id: uuid.UUID
    collector_name: str


@dataclass(frozen=True)
class GetStorageProfileByCollectorNameRow:
    cloud_provider: str
    region: str
    role: str | None
    hosted: bool
    bucket: str
    instance_num: int
    organization_id: uuid.UUID
    external_id: str


_R = TypeVar("_R")


class Queries:
    """The queries of the configuration database, run against one DBTX."""

    def __init__(self, db: DBTX | None) -> None:
        self.db = db

    def _query_row(self, query: str, *args: Any) -> Sequence[Any]:
        if self.db is None:
            raise RuntimeError("no database connection")
        row = self.db.query_row(query, *args)
        if row is None:
            raise NoRowsError("no rows in result set")
        return row

    def get_storage_profile_uncached(self, arg: GetStorageProfileParams) -> GetStorageProfileRow:
        """Look up the storage profile of a collector by instance number."""
        row = self._query_row(GET_STORAGE_PROFILE_UNCACHED, arg.organization_id, arg.instance_num)
        return GetStorageProfileRow(*row)

    def get_storage_profile_by_collector_name_uncached(
        self, arg: GetStorageProfileByCollectorNameParams
    ) -> GetStorageProfileByCollectorNameRow:
        """Look up the storage profile of a collector by its external name."""
        row = self._query_row(
            GET_STORAGE_PROFILE_BY_COLLECTOR_NAME_UNCACHED,
            arg.organization_id,
            arg.collector_name,
        )
        return GetStorageProfileByCollectorNameRow(*row)

    def with_tx(self, tx: DBTX) -> Queries:
        """Return queries that run inside the given transaction."""
        return Queries(tx)


@dataclass(frozen=True)
class _Outcome(Generic[_R]):
    row: _R | None
    error: BaseException | None


class _LoadingCache(Generic[_R]):
    """A TTL cache that remembers both results and failures of a loader."""

    def __init__(self, ttl: float, timer: Callable[[], float]) -> None:
        self._cache: TTLCache = TTLCache(maxsize=sys.maxsize, ttl=ttl, timer=timer)
        self._lock = threading.Lock()

    def get(self, key: Any, load: Callable[[Any], _R]) -> _R:
        with self._lock:
            outcome = self._cache.get(key)
        if outcome is None:
            try:
                outcome = _Outcome(load(key), None)
            except Exception as exc:  # cached so failing lookups are not retried at once
                outcome = _Outcome(None, exc)
            with self._lock:
                self._cache[key] = outcome
        if outcome.error is not None:
            raise outcome.error
        return outcome.row


class Store(Queries):
    """Queries plus cached lookups of storage profiles."""

    def __init__(
        self,
        conn: DBTX | None = None,
        ttl: float = DEFAULT_TTL,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(conn)
        self._profile_cache: _LoadingCache[GetStorageProfileRow] = _LoadingCache(ttl, timer)
        self._profile_by_name_cache: _LoadingCache[GetStorageProfileByCollectorNameRow] = (
            _LoadingCache(ttl, timer)
        )

    def get_storage_profile(self, params: GetStorageProfileParams) -> GetStorageProfileRow:
        """Cached form of get_storage_profile_uncached; failures are cached too."""
        return self._profile_cache.get(params, self.get_storage_profile_uncached)

    def get_storage_profile_by_collector_name(
        self, params: GetStorageProfileByCollectorNameParams
    ) -> GetStorageProfileByCollectorNameRow:
        """Cached form of get_storage_profile_by_collector_name_uncached."""
        return self._profile_by_name_cache.get(
            params, self.get_storage_profile_by_collector_name_uncached
        )


def new_empty_store() -> Store:
    """Return a store with caches but no database connection."""
    return Store()


def new_store(conn: DBTX) -> Store:
    """Return a store that runs its queries on conn."""
    return Store(conn)