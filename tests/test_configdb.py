import uuid

import pytest

from lakerunner.configdb import (
    GET_STORAGE_PROFILE_BY_COLLECTOR_NAME_UNCACHED,
    GET_STORAGE_PROFILE_UNCACHED,
    CStorageProfile,
    GetStorageProfileByCollectorNameParams,
    GetStorageProfileByCollectorNameRow,
    GetStorageProfileParams,
    GetStorageProfileRow,
    NoRowsError,
    Queries,
    Store,
    new_empty_store,
    new_store,
)

ORG = uuid.UUID("123e4567-e89b-12d3-a456-426614174000")


class FakeDB:
    def __init__(self, rows=None, error=None):
        self.rows = rows or {}
        self.error = error
        self.calls = []

    def execute(self, query, *args):
        self.calls.append((query, args))

    def query(self, query, *args):
        self.calls.append((query, args))
        return []

    def query_row(self, query, *args):
        self.calls.append((query, args))
        if self.error is not None:
            raise self.error
        return self.rows.get(args)


def profile_row(instance_num=3, name="collector-a", role="arn:aws:iam::role/test"):
    return ("aws", "us-east-2", role, True, "bucket-a", instance_num, ORG, name)


class Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_uncached_by_instance_maps_columns():
    db = FakeDB({(ORG, 3): profile_row()})
    row = Queries(db).get_storage_profile_uncached(GetStorageProfileParams(ORG, 3))
    assert row == GetStorageProfileRow(*profile_row())
    assert row.bucket == "bucket-a"
    assert row.instance_num == 3
    assert db.calls == [(GET_STORAGE_PROFILE_UNCACHED, (ORG, 3))]


def test_uncached_by_name_passes_name():
    db = FakeDB({(ORG, "collector-a"): profile_row()})
    row = Queries(db).get_storage_profile_by_collector_name_uncached(
        GetStorageProfileByCollectorNameParams(ORG, "collector-a")
    )
    assert row == GetStorageProfileByCollectorNameRow(*profile_row())
    assert row.external_id == "collector-a"
    assert db.calls == [(GET_STORAGE_PROFILE_BY_COLLECTOR_NAME_UNCACHED, (ORG, "collector-a"))]


def test_role_may_be_null():
    db = FakeDB({(ORG, 3): profile_row(role=None)})
    row = Queries(db).get_storage_profile_uncached(GetStorageProfileParams(ORG, 3))
    assert row.role is None


def test_no_rows_raises():
    with pytest.raises(NoRowsError):
        Queries(FakeDB()).get_storage_profile_uncached(GetStorageProfileParams(ORG, 9))


def test_with_tx_uses_transaction():
    outer = FakeDB()
    tx = FakeDB({(ORG, 3): profile_row()})
    q = Queries(outer).with_tx(tx)
    assert q.get_storage_profile_uncached(GetStorageProfileParams(ORG, 3)).instance_num == 3
    assert outer.calls == []
    assert len(tx.calls) == 1


def test_store_caches_rows():
    db = FakeDB({(ORG, 3): profile_row()})
    store = new_store(db)
    params = GetStorageProfileParams(ORG, 3)
    first = store.get_storage_profile(params)
    second = store.get_storage_profile(params)
    assert first == second
    assert len(db.calls) == 1


def test_store_caches_by_name_separately():
    db = FakeDB({(ORG, "collector-a"): profile_row(), (ORG, 3): profile_row()})
    store = new_store(db)
    name_params = GetStorageProfileByCollectorNameParams(ORG, "collector-a")
    store.get_storage_profile_by_collector_name(name_params)
    store.get_storage_profile_by_collector_name(name_params)
    store.get_storage_profile(GetStorageProfileParams(ORG, 3))
    assert len(db.calls) == 2


def test_store_caches_errors():
    db = FakeDB()
    store = new_store(db)
    params = GetStorageProfileParams(ORG, 4)
    with pytest.raises(NoRowsError):
        store.get_storage_profile(params)
    db.rows[(ORG, 4)] = profile_row(instance_num=4)
    with pytest.raises(NoRowsError):
        store.get_storage_profile(params)
    assert len(db.calls) == 1


def test_store_entries_expire():
    clock = Clock()
    db = FakeDB()
    store = Store(db, ttl=300, timer=clock)
    params = GetStorageProfileParams(ORG, 4)
    with pytest.raises(NoRowsError):
        store.get_storage_profile(params)
    db.rows[(ORG, 4)] = profile_row(instance_num=4)
    clock.now = 301
    assert store.get_storage_profile(params).instance_num == 4
    assert len(db.calls) == 2


def test_database_errors_propagate():
    store = new_store(FakeDB(error=ConnectionError("down")))
    with pytest.raises(ConnectionError):
        store.get_storage_profile_by_collector_name(
            GetStorageProfileByCollectorNameParams(ORG, "collector-a")
        )


def test_empty_store_has_no_connection():
    store = new_empty_store()
    with pytest.raises(RuntimeError):
        store.get_storage_profile(GetStorageProfileParams(ORG, 1))


def test_storage_profile_model_defaults():
    profile = CStorageProfile(ORG, ORG, "aws", "bucket-a", "us-east-2", False)
    assert profile.role is None
    assert profile.properties == {}
    assert hash(profile) == hash(CStorageProfile(ORG, ORG, "aws", "bucket-a", "us-east-2", False))