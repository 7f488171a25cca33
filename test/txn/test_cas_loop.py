import pytest

from src.kv.base.err_code import ErrCode
from src.kv.impl.memory_kv_store import MemoryKVStore
from src.txn.cas_loop import cas_update
from src.txn.exceptions import CasMismatchError, DocumentNotFoundError, StoreUnavailableError
from txn_helpers import FailingPutKVStore, InterferingKVStore, cas_of, seed, value_of


def bump(data):
    data["num"] += 1
    return data


def test_update_applies_fn():
    store = MemoryKVStore()
    seed(store, "doc1", {"num": 0})

    new_cas = cas_update(store, "doc1", bump)

    assert value_of(store, "doc1") == {"num": 1}
    assert cas_of(store, "doc1") == new_cas


def test_update_retries_after_lost_race():
    inner = MemoryKVStore()
    seed(inner, "doc1", {"num": 0})
    store = InterferingKVStore(inner, "doc1", lambda v: {"num": v["num"] + 10}, times=2)
    pauses = []

    cas_update(store, "doc1", bump, sleep=pauses.append)

    assert value_of(inner, "doc1") == {"num": 21}
    assert pauses == [0.001, 0.002]


def test_update_gives_up():
    inner = MemoryKVStore()
    seed(inner, "doc1", {"num": 0})
    store = InterferingKVStore(inner, "doc1", lambda v: v, times=100)
    pauses = []

    with pytest.raises(CasMismatchError):
        cas_update(store, "doc1", bump, max_retries=3, sleep=pauses.append)

    assert len(pauses) == 3
    assert value_of(inner, "doc1") == {"num": 0}


def test_update_missing_document():
    with pytest.raises(DocumentNotFoundError):
        cas_update(MemoryKVStore(), "nope", bump)


def test_update_store_failure():
    inner = MemoryKVStore()
    seed(inner, "doc1", {"num": 0})

    with pytest.raises(StoreUnavailableError):
        cas_update(FailingPutKVStore(inner, "doc1", err=ErrCode.IO_ERROR), "doc1", bump)
